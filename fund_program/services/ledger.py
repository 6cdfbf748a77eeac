"""Interfaces of the host ledger and its services

The program never touches storage, lamports or tokens directly; it asks these
collaborators. The host applies everything a command did, or nothing.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import structlog
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID

logger = structlog.get_logger()

SignerSeeds = Sequence[Sequence[bytes]]


@dataclass
class Account:
    """Raw ledger account"""
    lamports: int
    owner: Pubkey
    data: bytearray = field(default_factory=bytearray)

    @property
    def space(self) -> int:
        return len(self.data)

    @property
    def is_unclaimed(self) -> bool:
        """Holds only lamports; a program may still allocate and assign it"""
        return self.owner == SYSTEM_PROGRAM_ID and not self.data


class Ledger(ABC):
    """Account store, value transfer, signatures and clock"""

    @abstractmethod
    def get_account(self, address: Pubkey) -> Optional[Account]:
        ...

    @abstractmethod
    def create_account(
        self,
        payer: Pubkey,
        new_account: Pubkey,
        lamports: int,
        space: int,
        owner: Pubkey,
        signer_seeds: SignerSeeds = (),
    ) -> None:
        """Allocate ``space`` zeroed bytes at ``new_account`` funded by ``payer``

        An unclaimed address that already holds lamports is topped up and taken over.
        """

    @abstractmethod
    def transfer(
        self,
        source: Pubkey,
        destination: Pubkey,
        lamports: int,
        signer_seeds: SignerSeeds = (),
    ) -> None:
        ...

    @abstractmethod
    def write_data(self, address: Pubkey, data: bytes, program_id: Pubkey) -> None:
        """Overwrite a program-owned account; ``data`` must fill it exactly"""

    @abstractmethod
    def minimum_balance(self, space: int) -> int:
        """Lamports that make an account of ``space`` bytes rent exempt"""

    @abstractmethod
    def is_signer(self, address: Pubkey) -> bool:
        """True if the current command carries a valid signature from ``address``"""

    @abstractmethod
    def unix_timestamp(self) -> int:
        ...


class TokenService(ABC):
    """Fungible token operations for the governance mint"""

    @abstractmethod
    def initialize_mint(self, mint: Pubkey, decimals: int, mint_authority: Pubkey) -> None:
        ...

    @abstractmethod
    def create_holding_account(self, payer: Pubkey, owner: Pubkey, mint: Pubkey) -> Pubkey:
        """Create the owner's associated token account for ``mint``"""

    @abstractmethod
    def holding_exists(self, holding: Pubkey) -> bool:
        """True if ``holding`` is an initialized token account"""

    @abstractmethod
    def mint_to(
        self,
        mint: Pubkey,
        destination: Pubkey,
        authority: Pubkey,
        amount: int,
        signer_seeds: SignerSeeds = (),
    ) -> None:
        ...

    @abstractmethod
    def balance(self, holding: Pubkey) -> int:
        ...


@dataclass(frozen=True)
class ReallocationLeg:
    from_asset: Pubkey
    to_asset: Pubkey
    amount: int
    routing_tag: int


@dataclass(frozen=True)
class ReallocationRequest:
    """Everything an executor needs to move a fund's assets for a proposal"""
    fund: Pubkey
    vault: Pubkey
    proposal: Pubkey
    legs: Tuple[ReallocationLeg, ...]
    vault_signer_seeds: List[bytes]


class ReallocationExecutor(ABC):
    """Routes and performs the swaps of an approved proposal"""

    @abstractmethod
    def execute(self, request: ReallocationRequest) -> None:
        ...


class LoggingReallocationExecutor(ReallocationExecutor):
    """Records the requested legs without moving anything"""

    def execute(self, request: ReallocationRequest) -> None:
        for leg in request.legs:
            logger.info(
                "Reallocation leg",
                proposal=str(request.proposal),
                from_asset=str(leg.from_asset),
                to_asset=str(leg.to_asset),
                amount=leg.amount,
                routing_tag=leg.routing_tag,
            )
