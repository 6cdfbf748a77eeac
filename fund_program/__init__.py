"""Collective fund governance program"""
__version__ = "0.1.0"
