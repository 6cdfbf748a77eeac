"""Reallocation proposal account"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List

from anchorpy.borsh_extension import BorshPubkey
from borsh_construct import CStruct, U8, U64, I64, Bool, Vec
from solders.pubkey import Pubkey

from fund_program.models.base import (
    AccountKind,
    AccountRecord,
    BOOL_SIZE,
    I64_SIZE,
    KIND_SIZE,
    LEN_PREFIX_SIZE,
    PUBKEY_SIZE,
    U64_SIZE,
)

ROUTING_TAG_SIZE = 1


class ProposalState(str, Enum):
    OPEN = "open"
    EXPIRED = "expired"
    EXECUTED = "executed"


@dataclass
class ProposalAccount(AccountRecord):
    """Deadline-bound set of asset reallocation legs and its vote tallies"""

    KIND = AccountKind.PROPOSAL
    LAYOUT = CStruct(
        "kind" / U8,
        "executed" / Bool,
        "fund" / BorshPubkey,
        "proposer" / BorshPubkey,
        "from_assets" / Vec(BorshPubkey),
        "to_assets" / Vec(BorshPubkey),
        "amounts" / Vec(U64),
        "routing_tags" / Vec(U8),
        "votes_yes" / U64,
        "votes_no" / U64,
        "deadline" / I64,
        "created_at" / I64,
    )

    fund: Pubkey
    proposer: Pubkey
    deadline: int
    from_assets: List[Pubkey] = field(default_factory=list)
    to_assets: List[Pubkey] = field(default_factory=list)
    amounts: List[int] = field(default_factory=list)
    routing_tags: List[int] = field(default_factory=list)
    votes_yes: int = 0
    votes_no: int = 0
    executed: bool = False
    created_at: int = 0

    @property
    def leg_count(self) -> int:
        return len(self.amounts)

    @staticmethod
    def space_for(leg_count: int) -> int:
        """Exact serialized size of a proposal with ``leg_count`` legs"""
        per_leg = 2 * PUBKEY_SIZE + U64_SIZE + ROUTING_TAG_SIZE
        return (
            KIND_SIZE
            + BOOL_SIZE
            + 2 * PUBKEY_SIZE  # fund, proposer
            + 4 * LEN_PREFIX_SIZE
            + 2 * U64_SIZE  # tallies
            + 2 * I64_SIZE  # deadline, created_at
            + per_leg * leg_count
        )

    def space(self) -> int:
        return self.space_for(self.leg_count)

    def state(self, now: int) -> ProposalState:
        """Open until the deadline passes, Executed once executed"""
        if self.executed:
            return ProposalState.EXECUTED
        if now > self.deadline:
            return ProposalState.EXPIRED
        return ProposalState.OPEN

    def __repr__(self):
        return f"<ProposalAccount {str(self.proposer)[:8]}... legs={self.leg_count} executed={self.executed}>"
