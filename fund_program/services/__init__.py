"""Fund program services"""
from .pda import AddressDeriver, canonical_fund_seed, derive, governance_token_address
from .ledger import (
    Account,
    Ledger,
    TokenService,
    ReallocationExecutor,
    ReallocationLeg,
    ReallocationRequest,
    LoggingReallocationExecutor,
)
from .local_ledger import LocalLedger
from .processor import FundProcessor

__all__ = [
    "AddressDeriver",
    "canonical_fund_seed",
    "derive",
    "governance_token_address",
    # Collaborators
    "Account",
    "Ledger",
    "TokenService",
    "ReallocationExecutor",
    "ReallocationLeg",
    "ReallocationRequest",
    "LoggingReallocationExecutor",
    "LocalLedger",
    # Processor
    "FundProcessor",
]
