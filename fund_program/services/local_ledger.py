"""In-process ledger host

Implements the ledger and token interfaces against plain dictionaries. It
verifies ed25519 signatures over each submitted command, authorises program
derived addresses from their signer seeds and restores its previous state when
a command fails, so a failed command leaves no trace.
"""
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Dict, Iterable, Iterator, Optional, Sequence, Set, Tuple

import structlog
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address

from fund_program.config import Settings, get_settings
from fund_program.errors import (
    AccountAlreadyInitialized,
    InsufficientFunds,
    InvalidAccountData,
    LedgerError,
    UnauthorizedSigner,
)
from fund_program.models.base import MINT_ACCOUNT_SIZE, TOKEN_ACCOUNT_SIZE
from fund_program.services.ledger import Account, Ledger, SignerSeeds, TokenService

logger = structlog.get_logger()


@dataclass
class MintState:
    decimals: int
    mint_authority: Pubkey
    supply: int = 0


@dataclass
class HoldingState:
    owner: Pubkey
    mint: Pubkey
    amount: int = 0


class LocalLedger(Ledger, TokenService):
    """Dictionary-backed host for running the program in tests and tooling"""

    def __init__(self, settings: Optional[Settings] = None, start_time: int = 0):
        self.settings = settings or get_settings()
        self.accounts: Dict[Pubkey, Account] = {}
        self.mints: Dict[Pubkey, MintState] = {}
        self.holdings: Dict[Pubkey, HoldingState] = {}
        self.clock = start_time
        self._signers: Set[Pubkey] = set()
        self._program_id: Optional[Pubkey] = None

    # Host operations

    def airdrop(self, address: Pubkey, lamports: int) -> None:
        account = self.accounts.get(address)
        if account is None:
            self.accounts[address] = Account(lamports=lamports, owner=SYSTEM_PROGRAM_ID)
        else:
            account.lamports += lamports

    def lamports(self, address: Pubkey) -> int:
        account = self.accounts.get(address)
        return account.lamports if account else 0

    def set_time(self, unix_timestamp: int) -> None:
        self.clock = unix_timestamp

    @staticmethod
    def message_bytes(instruction: Instruction) -> bytes:
        """Bytes every signer signs: program id, account metas, then data"""
        out = bytearray(bytes(instruction.program_id))
        for meta in instruction.accounts:
            out += bytes(meta.pubkey)
            out += bytes([int(meta.is_signer), int(meta.is_writable)])
        out += bytes(instruction.data)
        return bytes(out)

    def submit(self, processor, instruction: Instruction, signers: Iterable[Keypair] = ()) -> None:
        """Sign ``instruction`` with ``signers`` and run it as one command"""
        message = self.message_bytes(instruction)
        signatures = [(kp.pubkey(), kp.sign_message(message)) for kp in signers]
        self.execute(processor, instruction, signatures)

    def execute(
        self,
        processor,
        instruction: Instruction,
        signatures: Sequence[Tuple[Pubkey, Signature]],
    ) -> None:
        """Run a command atomically: commit all of its effects or none"""
        if instruction.program_id != processor.program_id:
            raise LedgerError(f"Instruction targets program {instruction.program_id}")

        message = self.message_bytes(instruction)
        verified = [key for key, sig in signatures if sig.verify(key, message)]
        with self.command(instruction.program_id, verified):
            processor.process_instruction(list(instruction.accounts), bytes(instruction.data))

    @contextmanager
    def command(self, program_id: Pubkey, signers: Iterable[Pubkey]) -> Iterator["LocalLedger"]:
        """Scope of one command signed by ``signers``, rolled back if it raises"""
        snapshot = self._snapshot()
        self._signers = set(signers)
        self._program_id = program_id
        try:
            yield self
        except Exception:
            self._restore(snapshot)
            logger.info("Command rolled back", program=str(program_id))
            raise
        finally:
            self._signers = set()
            self._program_id = None

    def _snapshot(self):
        return (
            {k: Account(a.lamports, a.owner, bytearray(a.data)) for k, a in self.accounts.items()},
            {k: replace(m) for k, m in self.mints.items()},
            {k: replace(h) for k, h in self.holdings.items()},
        )

    def _restore(self, snapshot) -> None:
        self.accounts, self.mints, self.holdings = snapshot

    def _authorize(self, address: Pubkey, signer_seeds: SignerSeeds) -> None:
        if address in self._signers:
            return
        for seeds in signer_seeds:
            if self._program_id is None or not seeds:
                continue
            derived, bump = Pubkey.find_program_address(list(seeds[:-1]), self._program_id)
            if derived == address and bytes(seeds[-1]) == bytes([bump]):
                return
        raise UnauthorizedSigner(f"{address} did not authorise this operation")

    # Ledger

    def get_account(self, address: Pubkey) -> Optional[Account]:
        return self.accounts.get(address)

    def create_account(
        self,
        payer: Pubkey,
        new_account: Pubkey,
        lamports: int,
        space: int,
        owner: Pubkey,
        signer_seeds: SignerSeeds = (),
    ) -> None:
        self._authorize(new_account, signer_seeds)
        self._create(payer, new_account, lamports, space, owner, signer_seeds)

    def _create(self, payer, new_account, lamports, space, owner, signer_seeds) -> None:
        existing = self.accounts.get(new_account)
        if existing is not None and not existing.is_unclaimed:
            raise AccountAlreadyInitialized(f"Account {new_account} already in use")
        # transfer, allocate, assign: lamports already sent to the address count toward rent
        held = existing.lamports if existing is not None else 0
        top_up = max(lamports - held, 0)
        self._debit(payer, top_up, signer_seeds)
        self.accounts[new_account] = Account(lamports=held + top_up, owner=owner, data=bytearray(space))

    def transfer(
        self,
        source: Pubkey,
        destination: Pubkey,
        lamports: int,
        signer_seeds: SignerSeeds = (),
    ) -> None:
        self._debit(source, lamports, signer_seeds)
        self.airdrop(destination, lamports)

    def _debit(self, source: Pubkey, lamports: int, signer_seeds: SignerSeeds) -> None:
        self._authorize(source, signer_seeds)
        account = self.accounts.get(source)
        available = account.lamports if account else 0
        if available < lamports:
            raise InsufficientFunds(f"{source} has {available} lamports, needs {lamports}")
        if account is not None:
            account.lamports -= lamports

    def write_data(self, address: Pubkey, data: bytes, program_id: Pubkey) -> None:
        account = self.accounts.get(address)
        if account is None or account.owner != program_id:
            raise UnauthorizedSigner(f"{address} is not owned by {program_id}")
        if len(data) != account.space:
            raise InvalidAccountData(
                f"{address} holds {account.space} bytes, write is {len(data)} bytes"
            )
        account.data[:] = data

    def minimum_balance(self, space: int) -> int:
        s = self.settings
        return int(
            (s.account_storage_overhead + space) * s.lamports_per_byte_year * s.exemption_threshold
        )

    def is_signer(self, address: Pubkey) -> bool:
        return address in self._signers

    def unix_timestamp(self) -> int:
        return self.clock

    # Token service

    def initialize_mint(self, mint: Pubkey, decimals: int, mint_authority: Pubkey) -> None:
        account = self.accounts.get(mint)
        if account is None or account.owner != TOKEN_PROGRAM_ID:
            raise LedgerError(f"Mint {mint} is not a token program account")
        if account.space != MINT_ACCOUNT_SIZE:
            raise InvalidAccountData(f"Mint {mint} has {account.space} bytes")
        if mint in self.mints:
            raise AccountAlreadyInitialized(f"Mint {mint} already initialized")
        self.mints[mint] = MintState(decimals=decimals, mint_authority=mint_authority)

    def create_holding_account(self, payer: Pubkey, owner: Pubkey, mint: Pubkey) -> Pubkey:
        if mint not in self.mints:
            raise LedgerError(f"Mint {mint} is not initialized")
        holding = get_associated_token_address(owner, mint)
        # the associated token program signs for the new account itself
        self._create(
            payer,
            holding,
            self.minimum_balance(TOKEN_ACCOUNT_SIZE),
            TOKEN_ACCOUNT_SIZE,
            TOKEN_PROGRAM_ID,
            (),
        )
        self.holdings[holding] = HoldingState(owner=owner, mint=mint)
        return holding

    def holding_exists(self, holding: Pubkey) -> bool:
        return holding in self.holdings

    def mint_to(
        self,
        mint: Pubkey,
        destination: Pubkey,
        authority: Pubkey,
        amount: int,
        signer_seeds: SignerSeeds = (),
    ) -> None:
        state = self.mints.get(mint)
        holding = self.holdings.get(destination)
        if state is None or holding is None or holding.mint != mint:
            raise LedgerError(f"Cannot mint {mint} into {destination}")
        if state.mint_authority != authority:
            raise UnauthorizedSigner(f"{authority} is not the mint authority of {mint}")
        self._authorize(authority, signer_seeds)
        state.supply += amount
        holding.amount += amount

    def balance(self, holding: Pubkey) -> int:
        state = self.holdings.get(holding)
        if state is None:
            raise LedgerError(f"Token account {holding} does not exist")
        return state.amount

    def transfer_tokens(self, source: Pubkey, destination: Pubkey, owner: Pubkey, amount: int) -> None:
        """Host-level token transfer between two holdings of the same mint"""
        src = self.holdings.get(source)
        dst = self.holdings.get(destination)
        if src is None or dst is None or src.mint != dst.mint:
            raise LedgerError("Token accounts do not share a mint")
        if src.owner != owner:
            raise UnauthorizedSigner(f"{owner} does not own {source}")
        if src.amount < amount:
            raise InsufficientFunds(f"{source} holds {src.amount} tokens, needs {amount}")
        src.amount -= amount
        dst.amount += amount

    def supply(self, mint: Pubkey) -> int:
        return self.mints[mint].supply

