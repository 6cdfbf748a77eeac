"""Per-fund member account"""
from dataclasses import dataclass

from anchorpy.borsh_extension import BorshPubkey
from borsh_construct import CStruct, U8, U64, Bool
from solders.pubkey import Pubkey

from fund_program.models.base import (
    AccountKind,
    AccountRecord,
    BOOL_SIZE,
    KIND_SIZE,
    PUBKEY_SIZE,
    U64_SIZE,
)


@dataclass
class MemberAccount(AccountRecord):
    """Deposit and governance-token mirror of one member in one fund"""

    KIND = AccountKind.MEMBER
    LAYOUT = CStruct(
        "kind" / U8,
        "is_active" / Bool,
        "fund" / BorshPubkey,
        "user" / BorshPubkey,
        "deposit" / U64,
        "governance_token_balance" / U64,
        "governance_token_account" / BorshPubkey,
        "number_of_proposals" / U64,
    )

    fund: Pubkey
    user: Pubkey
    governance_token_account: Pubkey
    deposit: int = 0
    governance_token_balance: int = 0
    number_of_proposals: int = 0
    is_active: bool = False

    SPACE = KIND_SIZE + BOOL_SIZE + 3 * PUBKEY_SIZE + 3 * U64_SIZE

    def space(self) -> int:
        return self.SPACE

    def __repr__(self):
        return f"<MemberAccount {str(self.user)[:8]}... deposit={self.deposit}>"
