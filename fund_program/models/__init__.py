"""Account state models"""
from fund_program.models.base import (
    AccountKind,
    AccountRecord,
    MINT_ACCOUNT_SIZE,
    TOKEN_ACCOUNT_SIZE,
)
from fund_program.models.fund import FundAccount
from fund_program.models.member import MemberAccount
from fund_program.models.proposal import ProposalAccount, ProposalState
from fund_program.models.vote import VoteAccount

__all__ = [
    "AccountKind",
    "AccountRecord",
    "MINT_ACCOUNT_SIZE",
    "TOKEN_ACCOUNT_SIZE",
    "FundAccount",
    "MemberAccount",
    "ProposalAccount",
    "ProposalState",
    "VoteAccount",
]
