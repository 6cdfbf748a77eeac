"""Vote account"""
from dataclasses import dataclass

from anchorpy.borsh_extension import BorshPubkey
from borsh_construct import CStruct, U8, U64, I64, Bool
from solders.pubkey import Pubkey

from fund_program.models.base import (
    AccountKind,
    AccountRecord,
    BOOL_SIZE,
    I64_SIZE,
    KIND_SIZE,
    PUBKEY_SIZE,
    U64_SIZE,
)


@dataclass
class VoteAccount(AccountRecord):
    """Immutable snapshot of one voter's choice and voting power"""

    KIND = AccountKind.VOTE
    LAYOUT = CStruct(
        "kind" / U8,
        "choice" / Bool,
        "proposal" / BorshPubkey,
        "voter" / BorshPubkey,
        "voting_power" / U64,
        "cast_at" / I64,
    )

    proposal: Pubkey
    voter: Pubkey
    choice: bool
    voting_power: int
    cast_at: int = 0

    SPACE = KIND_SIZE + BOOL_SIZE + 2 * PUBKEY_SIZE + U64_SIZE + I64_SIZE

    def space(self) -> int:
        return self.SPACE

    def __repr__(self):
        return f"<VoteAccount {str(self.voter)[:8]}... ({'yes' if self.choice else 'no'})>"
