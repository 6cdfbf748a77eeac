"""Fund account"""
from dataclasses import dataclass, field
from typing import List

from anchorpy.borsh_extension import BorshPubkey
from borsh_construct import CStruct, U8, U64, I64, Bool, Vec, String
from construct import Bytes
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

SEED_SIZE = 32


@dataclass
class FundAccount(AccountRecord):
    """Collective fund: membership, vault, governance mint and aggregate deposit"""

    KIND = AccountKind.FUND
    LAYOUT = CStruct(
        "kind" / U8,
        "is_initialized" / Bool,
        "is_private" / Bool,
        "seed" / Bytes(SEED_SIZE),
        "creator" / BorshPubkey,
        "members" / Vec(BorshPubkey),
        "total_deposit" / U64,
        "governance_mint" / BorshPubkey,
        "vault" / BorshPubkey,
        "created_at" / I64,
        "name" / String,
    )

    seed: bytes
    creator: Pubkey
    governance_mint: Pubkey
    vault: Pubkey
    members: List[Pubkey] = field(default_factory=list)
    total_deposit: int = 0
    is_initialized: bool = False
    is_private: bool = False
    created_at: int = 0
    name: str = ""

    @property
    def member_count(self) -> int:
        return len(self.members)

    def is_member(self, key: Pubkey) -> bool:
        return key in self.members

    @staticmethod
    def space_for(member_count: int, name: str = "") -> int:
        """Exact serialized size of a fund with ``member_count`` members"""
        return (
            KIND_SIZE
            + 2 * BOOL_SIZE
            + SEED_SIZE
            + PUBKEY_SIZE  # creator
            + LEN_PREFIX_SIZE + PUBKEY_SIZE * member_count
            + U64_SIZE  # total_deposit
            + 2 * PUBKEY_SIZE  # governance_mint, vault
            + I64_SIZE  # created_at
            + LEN_PREFIX_SIZE + len(name.encode("utf-8"))
        )

    def space(self) -> int:
        return self.space_for(self.member_count, self.name)

    def __repr__(self):
        return f"<FundAccount {self.name or self.seed.hex()[:8]} members={self.member_count}>"
