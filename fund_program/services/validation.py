"""Authorization and validation checks

Every check raises on failure. Processor flows run all of them before the
first call that changes ledger state.
"""
from typing import List, Optional, Sequence, Type, TypeVar, Union

from solders.instruction import AccountMeta
from solders.pubkey import Pubkey

from fund_program.errors import (
    AccountAlreadyInitialized,
    AddressMismatch,
    AlreadyVoted,
    ArithmeticOverflow,
    DeadlinePassed,
    InsufficientAccounts,
    InvalidAmount,
    LengthMismatch,
    MissingSignature,
    StateMismatch,
)
from fund_program.models.base import AccountRecord
from fund_program.models.vote import VoteAccount
from fund_program.services.ledger import Ledger

U64_MAX = 2**64 - 1

R = TypeVar("R", bound=AccountRecord)


class AccountCursor:
    """Hands out supplied accounts in order"""

    def __init__(self, accounts: Sequence[AccountMeta]):
        self._accounts = list(accounts)
        self._position = 0

    @property
    def remaining(self) -> int:
        return len(self._accounts) - self._position

    def next(self, role: str) -> AccountMeta:
        if self._position >= len(self._accounts):
            raise InsufficientAccounts(f"Missing {role} account")
        meta = self._accounts[self._position]
        self._position += 1
        return meta

    def take(self, count: int, role: str) -> List[AccountMeta]:
        """Exactly ``count`` accounts, or InsufficientAccounts"""
        if self.remaining < count:
            raise InsufficientAccounts(
                f"Expected {count} {role} accounts, only {self.remaining} supplied"
            )
        return [self.next(role) for _ in range(count)]


def _key(account: Union[AccountMeta, Pubkey]) -> Pubkey:
    return account.pubkey if isinstance(account, AccountMeta) else account


def require_signer(ledger: Ledger, account: AccountMeta, role: str) -> None:
    """Signer flag set and backed by a verified signature"""
    if not (account.is_signer and ledger.is_signer(account.pubkey)):
        raise MissingSignature(f"{role} {account.pubkey} must sign")


def require_address(account: Union[AccountMeta, Pubkey], expected: Pubkey, role: str) -> None:
    if _key(account) != expected:
        raise AddressMismatch(f"Wrong {role} account: expected {expected}, got {_key(account)}")


def require_match(actual: Pubkey, stored: Pubkey, what: str) -> None:
    """Supplied account agrees with the reference stored in program state"""
    if actual != stored:
        raise StateMismatch(f"{what} mismatch: state has {stored}, got {actual}")


def require_uninitialized(ledger: Ledger, address: Pubkey, role: str) -> None:
    account = ledger.get_account(address)
    if account is not None and not account.is_unclaimed:
        raise AccountAlreadyInitialized(f"{role} account {address} already exists")


def require_before_deadline(now: int, deadline: int) -> None:
    if now > deadline:
        raise DeadlinePassed(f"Deadline {deadline} passed at {now}")


def require_not_voted(ledger: Ledger, vote_address: Pubkey, program_id: Pubkey) -> None:
    """Only a vote record written by the program counts as a cast vote"""
    if load_optional_record(ledger, vote_address, VoteAccount, program_id) is not None:
        raise AlreadyVoted(f"Vote record {vote_address} already exists")


def require_positive(amount: int, what: str = "amount") -> None:
    if amount <= 0:
        raise InvalidAmount(f"{what} must be positive, got {amount}")


def require_equal_lengths(expected: int, **sequences: Sequence) -> None:
    for name, seq in sequences.items():
        if len(seq) != expected:
            raise LengthMismatch(f"{name} has {len(seq)} entries, expected {expected}")


def checked_add(a: int, b: int) -> int:
    """u64 addition"""
    total = a + b
    if total > U64_MAX:
        raise ArithmeticOverflow(f"{a} + {b} overflows u64")
    return total


def load_record(
    ledger: Ledger,
    address: Pubkey,
    record_cls: Type[R],
    program_id: Pubkey,
) -> R:
    """Deserialize a record the program owns at ``address``"""
    account = ledger.get_account(address)
    if account is None:
        raise StateMismatch(f"{record_cls.__name__} {address} does not exist")
    if account.owner != program_id:
        raise StateMismatch(f"{address} is not owned by the program")
    return record_cls.deserialize(bytes(account.data))


def load_optional_record(
    ledger: Ledger,
    address: Pubkey,
    record_cls: Type[R],
    program_id: Pubkey,
) -> Optional[R]:
    """None if nothing but lamports was ever put at ``address``"""
    account = ledger.get_account(address)
    if account is None or account.is_unclaimed:
        return None
    return load_record(ledger, address, record_cls, program_id)
