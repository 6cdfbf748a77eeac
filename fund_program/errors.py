"""Program errors

Every failure aborts the whole command. Each error carries a stable numeric
``code`` so clients can decide on their own retry policy.
"""
from typing import Optional


class FundError(Exception):
    """Base class for all program errors"""

    code: int = 0
    default_message: str = "Fund program error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def __repr__(self):
        return f"<{type(self).__name__} code={self.code}: {self.message}>"


class DecodeError(FundError):
    code = 1
    default_message = "Instruction data could not be decoded"


class InvalidInstruction(FundError):
    code = 2
    default_message = "Unknown or unsupported instruction"


class MissingSignature(FundError):
    code = 3
    default_message = "Required signature missing"


class AddressMismatch(FundError):
    code = 4
    default_message = "Supplied account does not match its derived address"


class StateMismatch(FundError):
    code = 5
    default_message = "Account state does not match the supplied accounts"


class DeadlinePassed(FundError):
    code = 6
    default_message = "Proposal deadline has passed"


class AlreadyVoted(FundError):
    code = 7
    default_message = "Voter already voted on this proposal"


class LengthMismatch(FundError):
    code = 8
    default_message = "Proposal legs have inconsistent lengths"


class InsufficientAccounts(FundError):
    code = 9
    default_message = "Not enough accounts supplied"


class AccountAlreadyInitialized(FundError):
    code = 10
    default_message = "Account already exists"


class InvalidAccountData(FundError):
    code = 11
    default_message = "Account data is malformed"


class InvalidAmount(FundError):
    code = 12
    default_message = "Amount must be positive"


class ArithmeticOverflow(FundError):
    code = 13
    default_message = "Arithmetic overflow"


class NotAMember(FundError):
    code = 14
    default_message = "Signer is not a member of this fund"


class ProposalAlreadyExecuted(FundError):
    code = 15
    default_message = "Proposal already executed"


class ProposalNotPassed(FundError):
    code = 16
    default_message = "Proposal has not reached quorum and majority"


class LedgerError(FundError):
    """Raised by the host ledger, not by program logic"""
    code = 100
    default_message = "Ledger rejected the operation"


class InsufficientFunds(LedgerError):
    code = 101
    default_message = "Insufficient lamports"


class UnauthorizedSigner(LedgerError):
    code = 102
    default_message = "Operation not authorized by the account owner"
