"""Pytest configuration and fixtures for fund program tests"""
from typing import List, Optional, Sequence

import pytest
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from fund_program.config import Settings
from fund_program.schemas.instruction import (
    CastVote,
    CreateFund,
    CreateProposal,
    Deposit,
    Execute,
    encode,
)
from fund_program.services.ledger import ReallocationExecutor, ReallocationRequest
from fund_program.services.local_ledger import LocalLedger
from fund_program.services.pda import AddressDeriver, canonical_fund_seed, governance_token_address
from fund_program.services.processor import FundProcessor

START_TIME = 1704067200  # 2024-01-01
ONE_DAY = 86400
LAMPORTS_PER_SOL = 1_000_000_000


class RecordingExecutor(ReallocationExecutor):
    """Keeps every reallocation request it receives"""

    def __init__(self):
        self.requests: List[ReallocationRequest] = []

    def execute(self, request: ReallocationRequest) -> None:
        self.requests.append(request)


class FundClient:
    """Builds account lists and submits signed instructions to the local ledger"""

    def __init__(self, processor: FundProcessor, ledger: LocalLedger):
        self.processor = processor
        self.ledger = ledger
        self.addresses = AddressDeriver(processor.program_id, processor.settings.protocol_funding_tag)
        self.seed: Optional[bytes] = None

    @property
    def fund(self) -> Pubkey:
        return self.addresses.derive_fund_pda(self.seed)[0]

    @property
    def vault(self) -> Pubkey:
        return self.addresses.derive_vault_pda(self.fund)[0]

    @property
    def mint(self) -> Pubkey:
        return self.addresses.derive_mint_pda(self.fund)[0]

    def member_record(self, user: Pubkey) -> Pubkey:
        return self.addresses.derive_member_pda(self.fund, user)[0]

    def proposal(self, proposer: Pubkey) -> Pubkey:
        return self.addresses.derive_proposal_pda(self.fund, proposer)[0]

    def vote_record(self, proposal: Pubkey, voter: Pubkey) -> Pubkey:
        return self.addresses.derive_vote_pda(proposal, voter)[0]

    def holding(self, owner: Pubkey) -> Pubkey:
        return governance_token_address(owner, self.mint)

    def send(self, command, metas: Sequence[AccountMeta], signers: Sequence[Keypair]) -> None:
        instruction = Instruction(self.processor.program_id, encode(command), list(metas))
        self.ledger.submit(self.processor, instruction, signers)

    def send_raw(self, data: bytes, metas: Sequence[AccountMeta], signers: Sequence[Keypair]) -> None:
        instruction = Instruction(self.processor.program_id, data, list(metas))
        self.ledger.submit(self.processor, instruction, signers)

    # Account lists

    def create_fund_accounts(self, members: Sequence[Pubkey], signed: bool = True) -> List[AccountMeta]:
        return [
            AccountMeta(self.mint, False, True),
            AccountMeta(self.vault, False, True),
            AccountMeta(self.fund, False, True),
            AccountMeta(self.addresses.derive_funding_pda()[0], False, True),
        ] + [AccountMeta(m, signed, True) for m in members]

    def deposit_accounts(self, member: Pubkey) -> List[AccountMeta]:
        return [
            AccountMeta(self.mint, False, True),
            AccountMeta(self.vault, False, True),
            AccountMeta(self.fund, False, True),
            AccountMeta(self.holding(member), False, True),
            AccountMeta(member, True, True),
            AccountMeta(self.member_record(member), False, True),
        ]

    def proposal_accounts(
        self,
        proposer: Pubkey,
        from_assets: Sequence[Pubkey],
        to_assets: Sequence[Pubkey],
    ) -> List[AccountMeta]:
        return [
            AccountMeta(proposer, True, True),
            AccountMeta(self.proposal(proposer), False, True),
            AccountMeta(self.fund, False, False),
            AccountMeta(self.member_record(proposer), False, True),
        ] + [AccountMeta(a, False, False) for a in list(from_assets) + list(to_assets)]

    def vote_accounts(self, voter: Pubkey, proposal: Pubkey) -> List[AccountMeta]:
        return [
            AccountMeta(voter, True, True),
            AccountMeta(self.vote_record(proposal, voter), False, True),
            AccountMeta(self.fund, False, False),
            AccountMeta(proposal, False, True),
            AccountMeta(self.member_record(voter), False, False),
            AccountMeta(self.mint, False, False),
            AccountMeta(self.holding(voter), False, False),
        ]

    def execute_accounts(self, executor: Pubkey, proposal: Pubkey) -> List[AccountMeta]:
        return [
            AccountMeta(executor, True, True),
            AccountMeta(proposal, False, True),
            AccountMeta(self.fund, False, True),
            AccountMeta(self.vault, False, True),
            AccountMeta(self.member_record(executor), False, False),
        ]

    # Flows

    def create_fund(self, members: Sequence[Keypair], name: str = "", is_private: bool = False) -> Pubkey:
        keys = [m.pubkey() for m in members]
        self.seed = canonical_fund_seed(keys)
        command = CreateFund(member_count=len(keys), seed=self.seed, is_private=is_private, name=name)
        self.send(command, self.create_fund_accounts(keys), members)
        return self.fund

    def deposit(self, member: Keypair, amount: int) -> None:
        command = Deposit(amount=amount, seed=self.seed)
        self.send(command, self.deposit_accounts(member.pubkey()), [member])

    def create_proposal(
        self,
        proposer: Keypair,
        amounts: Sequence[int],
        routing_tags: Sequence[int],
        deadline: int,
        from_assets: Optional[Sequence[Pubkey]] = None,
        to_assets: Optional[Sequence[Pubkey]] = None,
    ) -> Pubkey:
        from_assets = from_assets if from_assets is not None else [Pubkey.new_unique() for _ in amounts]
        to_assets = to_assets if to_assets is not None else [Pubkey.new_unique() for _ in amounts]
        command = CreateProposal(
            leg_count=len(amounts),
            amounts=amounts,
            routing_tags=routing_tags,
            deadline=deadline,
            seed=self.seed,
        )
        metas = self.proposal_accounts(proposer.pubkey(), from_assets, to_assets)
        self.send(command, metas, [proposer])
        return self.proposal(proposer.pubkey())

    def cast_vote(self, voter: Keypair, proposal: Pubkey, choice: bool) -> Pubkey:
        command = CastVote(choice=choice, seed=self.seed)
        self.send(command, self.vote_accounts(voter.pubkey(), proposal), [voter])
        return self.vote_record(proposal, voter.pubkey())

    def execute(self, executor: Keypair, proposal: Pubkey) -> None:
        command = Execute(target=proposal)
        self.send(command, self.execute_accounts(executor.pubkey(), proposal), [executor])


@pytest.fixture
def settings() -> Settings:
    """Settings with the default rent schedule and a 50% quorum"""
    return Settings(quorum_bps=5000, governance_decimals=6)


@pytest.fixture
def program_id(settings) -> Pubkey:
    return Pubkey.from_string(settings.program_id)


@pytest.fixture
def ledger(settings) -> LocalLedger:
    return LocalLedger(settings=settings, start_time=START_TIME)


@pytest.fixture
def executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def processor(ledger, executor, program_id, settings) -> FundProcessor:
    return FundProcessor(ledger, ledger, program_id=program_id, executor=executor, settings=settings)


@pytest.fixture
def funding(ledger, processor) -> Pubkey:
    """Protocol funding account with a small float for rounding remainders"""
    address = processor.addresses.derive_funding_pda()[0]
    ledger.airdrop(address, 1_000)
    return address


def _funded_keypair(ledger: LocalLedger) -> Keypair:
    kp = Keypair()
    ledger.airdrop(kp.pubkey(), 10 * LAMPORTS_PER_SOL)
    return kp


@pytest.fixture
def members(ledger) -> List[Keypair]:
    """Three funded founding members"""
    return [_funded_keypair(ledger) for _ in range(3)]


@pytest.fixture
def outsider(ledger) -> Keypair:
    """Funded wallet that is not a founding member"""
    return _funded_keypair(ledger)


@pytest.fixture
def client(processor, ledger) -> FundClient:
    return FundClient(processor, ledger)


@pytest.fixture
def fund(client, members, funding) -> Pubkey:
    """Public fund created by the three members"""
    return client.create_fund(members, name="Alpha Club")
