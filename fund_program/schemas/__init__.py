"""Instruction schemas"""
from .instruction import (
    Opcode,
    CreateFund,
    Deposit,
    CreateProposal,
    CastVote,
    Execute,
    Command,
    decode,
    encode,
)

__all__ = [
    "Opcode",
    "CreateFund",
    "Deposit",
    "CreateProposal",
    "CastVote",
    "Execute",
    "Command",
    "decode",
    "encode",
]
