"""Base class for program-owned account records"""
from dataclasses import fields
from enum import IntEnum
from typing import Any, ClassVar, Dict, Type, TypeVar

from construct import ConstructError
from borsh_construct import CStruct

from fund_program.errors import InvalidAccountData, StateMismatch

PUBKEY_SIZE = 32
U64_SIZE = 8
I64_SIZE = 8
BOOL_SIZE = 1
KIND_SIZE = 1
LEN_PREFIX_SIZE = 4  # borsh u32 length prefix of vectors and strings

# Sizes of accounts owned by the token program
MINT_ACCOUNT_SIZE = 82
TOKEN_ACCOUNT_SIZE = 165

R = TypeVar("R", bound="AccountRecord")


class AccountKind(IntEnum):
    """First byte of every record, guards against passing one record type as another"""
    UNINITIALIZED = 0
    FUND = 1
    MEMBER = 2
    PROPOSAL = 3
    VOTE = 4


class AccountRecord:
    """Borsh-serialized account record.

    Subclasses are dataclasses that declare ``KIND`` and ``LAYOUT``. The layout
    begins with a ``kind`` byte that is not a dataclass field.
    """

    KIND: ClassVar[AccountKind]
    LAYOUT: ClassVar[CStruct]

    def space(self) -> int:
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def serialize(self) -> bytes:
        return self.LAYOUT.build({"kind": int(self.KIND), **self.to_dict()})

    @classmethod
    def deserialize(cls: Type[R], data: bytes) -> R:
        if not data or data[0] == AccountKind.UNINITIALIZED:
            raise StateMismatch(f"{cls.__name__} is not initialized")
        if data[0] != cls.KIND:
            raise StateMismatch(
                f"Expected {cls.KIND.name.lower()} account, found kind {data[0]}"
            )
        try:
            parsed = cls.LAYOUT.parse(bytes(data))
        except ConstructError as e:
            raise InvalidAccountData(f"Malformed {cls.__name__}: {e}") from e

        values = {}
        for f in fields(cls):
            value = parsed[f.name]
            values[f.name] = list(value) if isinstance(value, list) else value
        return cls(**values)
