"""Governance processor

Turns a decoded command plus its account list into ledger effects. Every flow
has the same shape: read and check everything, then call the ledger and token
services, then write each touched record back once. The host discards all
effects of a command that raises, so flows never undo anything themselves.
"""
from typing import Optional, Sequence

import structlog
from solders.instruction import AccountMeta
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID

from fund_program.config import Settings, get_settings
from fund_program.errors import (
    AddressMismatch,
    DeadlinePassed,
    FundError,
    InvalidInstruction,
    LengthMismatch,
    MissingSignature,
    NotAMember,
    ProposalAlreadyExecuted,
    ProposalNotPassed,
    StateMismatch,
)
from fund_program.models import (
    FundAccount,
    MemberAccount,
    MINT_ACCOUNT_SIZE,
    ProposalAccount,
    TOKEN_ACCOUNT_SIZE,
    VoteAccount,
)
from fund_program.schemas.instruction import (
    CastVote,
    Command,
    CreateFund,
    CreateProposal,
    Deposit,
    Execute,
    decode,
)
from fund_program.services.ledger import (
    Ledger,
    LoggingReallocationExecutor,
    ReallocationExecutor,
    ReallocationLeg,
    ReallocationRequest,
    TokenService,
)
from fund_program.services.pda import AddressDeriver, canonical_fund_seed, governance_token_address
from fund_program.services.validation import (
    AccountCursor,
    checked_add,
    load_optional_record,
    load_record,
    require_address,
    require_before_deadline,
    require_equal_lengths,
    require_match,
    require_not_voted,
    require_positive,
    require_signer,
    require_uninitialized,
)

logger = structlog.get_logger()

BPS_DENOMINATOR = 10_000


class FundProcessor:
    """
    Entry point of the fund program.

    Account order per instruction:
    - CreateFund: mint, vault, fund, protocol funding, members...
    - Deposit: mint, vault, fund, governance token account, member (signer), member record
    - CreateProposal: proposer (signer), proposal, fund, member record, from assets..., to assets...
    - CastVote: voter (signer), vote record, fund, proposal, member record, mint, governance token account
    - Execute: executor (signer), proposal, fund, vault, member record
    """

    def __init__(
        self,
        ledger: Ledger,
        tokens: TokenService,
        program_id: Optional[Pubkey] = None,
        executor: Optional[ReallocationExecutor] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.program_id = (
            program_id if program_id is not None else Pubkey.from_string(self.settings.program_id)
        )
        self.ledger = ledger
        self.tokens = tokens
        self.executor = executor or LoggingReallocationExecutor()
        self.addresses = AddressDeriver(self.program_id, self.settings.protocol_funding_tag)

    def process_instruction(self, accounts: Sequence[AccountMeta], data: bytes) -> None:
        """Decode raw instruction data and run it"""
        try:
            command = decode(data)
        except FundError as e:
            logger.warning("Instruction cannot be unpacked", error=type(e).__name__, code=e.code, reason=e.message)
            raise
        self.process(command, accounts)

    def process(self, command: Command, accounts: Sequence[AccountMeta]) -> None:
        """Run an already decoded command"""
        handlers = {
            CreateFund: self._process_create_fund,
            Deposit: self._process_deposit,
            CreateProposal: self._process_create_proposal,
            CastVote: self._process_cast_vote,
            Execute: self._process_execute,
        }
        handler = handlers.get(type(command))
        if handler is None:
            raise InvalidInstruction(f"Unsupported command {type(command).__name__}")

        name = type(command).__name__
        logger.info("Instruction", instruction=name)
        try:
            handler(command, AccountCursor(accounts))
        except FundError as e:
            logger.warning(
                "Instruction failed",
                instruction=name,
                error=type(e).__name__,
                code=e.code,
                reason=e.message,
            )
            raise

    # Helpers

    def _rent(self, space: int) -> int:
        return self.ledger.minimum_balance(space)

    def _load_fund(self, address: Pubkey) -> FundAccount:
        fund = load_record(self.ledger, address, FundAccount, self.program_id)
        if not fund.is_initialized:
            raise StateMismatch(f"Fund {address} is not initialized")
        return fund

    def _load_active_member(self, address: Pubkey, fund: Pubkey, user: Pubkey) -> MemberAccount:
        member = load_optional_record(self.ledger, address, MemberAccount, self.program_id)
        if member is None or not member.is_active:
            raise NotAMember(f"{user} has no active membership in fund {fund}")
        require_match(member.fund, fund, "Member fund")
        require_match(member.user, user, "Member user")
        return member

    def _write(self, address: Pubkey, record) -> None:
        self.ledger.write_data(address, record.serialize(), self.program_id)

    # CreateFund

    def _process_create_fund(self, command: CreateFund, accounts: AccountCursor) -> None:
        mint_info = accounts.next("governance mint")
        vault_info = accounts.next("vault")
        fund_info = accounts.next("fund")
        funding_info = accounts.next("protocol funding")

        if command.member_count == 0:
            raise MissingSignature("A fund needs at least one signing member")
        if accounts.remaining < command.member_count:
            raise MissingSignature(
                f"Expected {command.member_count} signing members, only {accounts.remaining} supplied"
            )
        members = accounts.take(command.member_count, "fund member")
        for member in members:
            require_signer(self.ledger, member, "Fund member")

        member_keys = [m.pubkey for m in members]
        if len(set(member_keys)) != len(member_keys):
            raise InvalidInstruction("Duplicate fund member")
        if command.seed != canonical_fund_seed(member_keys):
            raise AddressMismatch("Fund seed is not derived from the signing members")

        fund_key, _ = self.addresses.derive_fund_pda(command.seed)
        vault_key, _ = self.addresses.derive_vault_pda(fund_key)
        mint_key, _ = self.addresses.derive_mint_pda(fund_key)
        funding_key, _ = self.addresses.derive_funding_pda()
        require_address(fund_info, fund_key, "fund")
        require_address(vault_info, vault_key, "vault")
        require_address(mint_info, mint_key, "governance mint")
        require_address(funding_info, funding_key, "protocol funding")
        for key, role in ((fund_key, "Fund"), (vault_key, "Vault"), (mint_key, "Mint")):
            require_uninitialized(self.ledger, key, role)

        fund_space = FundAccount.space_for(command.member_count, command.name)
        fund_rent = self._rent(fund_space)
        vault_rent = self._rent(TOKEN_ACCOUNT_SIZE)
        mint_rent = self._rent(MINT_ACCOUNT_SIZE)
        total_rent = fund_rent + vault_rent + mint_rent
        # integer division, the funding account covers the remainder
        rent_per_member = total_rent // command.member_count

        fund = FundAccount(
            seed=command.seed,
            creator=member_keys[0],
            governance_mint=mint_key,
            vault=vault_key,
            members=member_keys,
            total_deposit=0,
            is_initialized=True,
            is_private=command.is_private,
            created_at=self.ledger.unix_timestamp(),
            name=command.name,
        )

        for key in member_keys:
            self.ledger.transfer(key, funding_key, rent_per_member)

        funding_seeds = self.addresses.signer_seeds(self.addresses.funding_seeds())
        self.ledger.create_account(
            funding_key, fund_key, fund_rent, fund_space, self.program_id,
            signer_seeds=[funding_seeds, self.addresses.signer_seeds(self.addresses.fund_seeds(command.seed))],
        )
        self.ledger.create_account(
            funding_key, vault_key, vault_rent, TOKEN_ACCOUNT_SIZE, self.program_id,
            signer_seeds=[funding_seeds, self.addresses.signer_seeds(self.addresses.vault_seeds(fund_key))],
        )
        self.ledger.create_account(
            funding_key, mint_key, mint_rent, MINT_ACCOUNT_SIZE, TOKEN_PROGRAM_ID,
            signer_seeds=[funding_seeds, self.addresses.signer_seeds(self.addresses.mint_seeds(fund_key))],
        )
        self.tokens.initialize_mint(mint_key, self.settings.governance_decimals, fund_key)

        self._write(fund_key, fund)

        logger.info(
            "Fund created",
            fund=str(fund_key),
            members=command.member_count,
            rent_per_member=rent_per_member,
            total_rent=total_rent,
        )

    # Deposit

    def _process_deposit(self, command: Deposit, accounts: AccountCursor) -> None:
        mint_info = accounts.next("governance mint")
        vault_info = accounts.next("vault")
        fund_info = accounts.next("fund")
        holding_info = accounts.next("governance token")
        member_info = accounts.next("member")
        record_info = accounts.next("member record")

        require_signer(self.ledger, member_info, "Member")
        require_positive(command.amount, "Deposit amount")
        member_key = member_info.pubkey

        fund_key, _ = self.addresses.derive_fund_pda(command.seed)
        require_address(fund_info, fund_key, "fund")
        fund = self._load_fund(fund_key)

        vault_key, _ = self.addresses.derive_vault_pda(fund_key)
        require_address(vault_info, vault_key, "vault")
        require_match(vault_key, fund.vault, "Vault")
        require_match(mint_info.pubkey, fund.governance_mint, "Governance mint")

        record_key, _ = self.addresses.derive_member_pda(fund_key, member_key)
        require_address(record_info, record_key, "member record")
        holding_key = governance_token_address(member_key, fund.governance_mint)
        require_address(holding_info, holding_key, "governance token")

        if fund.is_private and not fund.is_member(member_key):
            raise NotAMember(f"{member_key} is not listed in private fund {fund_key}")

        member = load_optional_record(self.ledger, record_key, MemberAccount, self.program_id)
        create_record = member is None
        if create_record:
            member = MemberAccount(fund=fund_key, user=member_key, governance_token_account=holding_key)
        else:
            require_match(member.fund, fund_key, "Member fund")
            require_match(member.user, member_key, "Member user")
            require_match(holding_key, member.governance_token_account, "Governance token account")
        create_holding = not self.tokens.holding_exists(holding_key)

        total_deposit = checked_add(fund.total_deposit, command.amount)
        member_deposit = checked_add(member.deposit, command.amount)
        member_balance = checked_add(member.governance_token_balance, command.amount)

        if create_record:
            self.ledger.create_account(
                member_key, record_key, self._rent(MemberAccount.SPACE), MemberAccount.SPACE,
                self.program_id,
                signer_seeds=[self.addresses.signer_seeds(self.addresses.member_seeds(fund_key, member_key))],
            )
        if create_holding:
            self.tokens.create_holding_account(member_key, member_key, fund.governance_mint)
        self.ledger.transfer(member_key, vault_key, command.amount)
        self.tokens.mint_to(
            fund.governance_mint,
            holding_key,
            fund_key,
            command.amount,
            signer_seeds=[self.addresses.signer_seeds(self.addresses.fund_seeds(command.seed))],
        )

        fund.total_deposit = total_deposit
        member.deposit = member_deposit
        member.governance_token_balance = member_balance
        member.is_active = True
        self._write(fund_key, fund)
        self._write(record_key, member)

        logger.info(
            "Deposit received",
            fund=str(fund_key),
            member=str(member_key),
            amount=command.amount,
            new_member=create_record,
        )

    # CreateProposal

    def _process_create_proposal(self, command: CreateProposal, accounts: AccountCursor) -> None:
        proposer_info = accounts.next("proposer")
        proposal_info = accounts.next("proposal")
        fund_info = accounts.next("fund")
        record_info = accounts.next("member record")

        require_signer(self.ledger, proposer_info, "Proposer")
        require_equal_lengths(
            command.leg_count,
            amounts=command.amounts,
            routing_tags=command.routing_tags,
        )
        if command.leg_count == 0:
            raise LengthMismatch("A proposal needs at least one leg")
        from_assets = accounts.take(command.leg_count, "from asset")
        to_assets = accounts.take(command.leg_count, "to asset")

        proposer_key = proposer_info.pubkey
        fund_key, _ = self.addresses.derive_fund_pda(command.seed)
        require_address(fund_info, fund_key, "fund")
        self._load_fund(fund_key)

        proposal_key, _ = self.addresses.derive_proposal_pda(fund_key, proposer_key)
        require_address(proposal_info, proposal_key, "proposal")
        record_key, _ = self.addresses.derive_member_pda(fund_key, proposer_key)
        require_address(record_info, record_key, "member record")
        member = self._load_active_member(record_key, fund_key, proposer_key)

        now = self.ledger.unix_timestamp()
        if command.deadline <= now:
            raise DeadlinePassed(f"Deadline {command.deadline} is not after {now}")
        require_uninitialized(self.ledger, proposal_key, "Proposal")
        number_of_proposals = checked_add(member.number_of_proposals, 1)

        proposal = ProposalAccount(
            fund=fund_key,
            proposer=proposer_key,
            deadline=command.deadline,
            from_assets=[a.pubkey for a in from_assets],
            to_assets=[a.pubkey for a in to_assets],
            amounts=list(command.amounts),
            routing_tags=list(command.routing_tags),
            created_at=now,
        )
        space = ProposalAccount.space_for(command.leg_count)

        self.ledger.create_account(
            proposer_key, proposal_key, self._rent(space), space, self.program_id,
            signer_seeds=[self.addresses.signer_seeds(self.addresses.proposal_seeds(fund_key, proposer_key))],
        )

        member.number_of_proposals = number_of_proposals
        self._write(proposal_key, proposal)
        self._write(record_key, member)

        logger.info(
            "Proposal created",
            fund=str(fund_key),
            proposal=str(proposal_key),
            legs=command.leg_count,
            deadline=command.deadline,
        )

    # CastVote

    def _process_cast_vote(self, command: CastVote, accounts: AccountCursor) -> None:
        voter_info = accounts.next("voter")
        vote_info = accounts.next("vote record")
        fund_info = accounts.next("fund")
        proposal_info = accounts.next("proposal")
        record_info = accounts.next("member record")
        mint_info = accounts.next("governance mint")
        holding_info = accounts.next("governance token")

        require_signer(self.ledger, voter_info, "Voter")
        voter_key = voter_info.pubkey

        fund_key, _ = self.addresses.derive_fund_pda(command.seed)
        require_address(fund_info, fund_key, "fund")
        fund = self._load_fund(fund_key)
        require_match(mint_info.pubkey, fund.governance_mint, "Governance mint")

        proposal_key = proposal_info.pubkey
        proposal = load_record(self.ledger, proposal_key, ProposalAccount, self.program_id)
        require_match(proposal.fund, fund_key, "Proposal fund")
        expected_proposal, _ = self.addresses.derive_proposal_pda(fund_key, proposal.proposer)
        require_address(proposal_info, expected_proposal, "proposal")

        record_key, _ = self.addresses.derive_member_pda(fund_key, voter_key)
        require_address(record_info, record_key, "member record")
        member = self._load_active_member(record_key, fund_key, voter_key)

        holding_key = governance_token_address(voter_key, fund.governance_mint)
        require_address(holding_info, holding_key, "governance token")
        require_match(holding_key, member.governance_token_account, "Governance token account")

        vote_key, _ = self.addresses.derive_vote_pda(proposal_key, voter_key)
        require_address(vote_info, vote_key, "vote record")

        if proposal.executed:
            raise ProposalAlreadyExecuted(f"Proposal {proposal_key} is closed")
        now = self.ledger.unix_timestamp()
        require_before_deadline(now, proposal.deadline)
        require_not_voted(self.ledger, vote_key, self.program_id)

        # snapshot, never re-read after the vote is recorded
        voting_power = self.tokens.balance(holding_key)
        if command.choice:
            votes_yes = checked_add(proposal.votes_yes, voting_power)
            votes_no = proposal.votes_no
        else:
            votes_yes = proposal.votes_yes
            votes_no = checked_add(proposal.votes_no, voting_power)

        vote = VoteAccount(
            proposal=proposal_key,
            voter=voter_key,
            choice=command.choice,
            voting_power=voting_power,
            cast_at=now,
        )

        self.ledger.create_account(
            voter_key, vote_key, self._rent(VoteAccount.SPACE), VoteAccount.SPACE, self.program_id,
            signer_seeds=[self.addresses.signer_seeds(self.addresses.vote_seeds(proposal_key, voter_key))],
        )

        proposal.votes_yes = votes_yes
        proposal.votes_no = votes_no
        self._write(vote_key, vote)
        self._write(proposal_key, proposal)

        logger.info(
            "Vote cast",
            proposal=str(proposal_key),
            voter=str(voter_key),
            choice="yes" if command.choice else "no",
            voting_power=voting_power,
        )

    # Execute

    def passes(self, proposal: ProposalAccount, fund: FundAccount) -> bool:
        """Majority of cast power, and yes power meets the quorum share of all deposits"""
        if proposal.votes_yes <= proposal.votes_no:
            return False
        return proposal.votes_yes * BPS_DENOMINATOR >= self.settings.quorum_bps * fund.total_deposit

    def _process_execute(self, command: Execute, accounts: AccountCursor) -> None:
        executor_info = accounts.next("executor")
        proposal_info = accounts.next("proposal")
        fund_info = accounts.next("fund")
        vault_info = accounts.next("vault")
        record_info = accounts.next("member record")

        require_signer(self.ledger, executor_info, "Executor")
        executor_key = executor_info.pubkey

        require_address(proposal_info, command.target, "proposal")
        proposal = load_record(self.ledger, command.target, ProposalAccount, self.program_id)
        require_match(fund_info.pubkey, proposal.fund, "Proposal fund")
        fund_key = fund_info.pubkey
        fund = self._load_fund(fund_key)

        expected_fund, _ = self.addresses.derive_fund_pda(fund.seed)
        require_address(fund_info, expected_fund, "fund")
        expected_proposal, _ = self.addresses.derive_proposal_pda(fund_key, proposal.proposer)
        require_address(proposal_info, expected_proposal, "proposal")
        vault_key, _ = self.addresses.derive_vault_pda(fund_key)
        require_address(vault_info, vault_key, "vault")
        require_match(vault_key, fund.vault, "Vault")

        record_key, _ = self.addresses.derive_member_pda(fund_key, executor_key)
        require_address(record_info, record_key, "member record")
        self._load_active_member(record_key, fund_key, executor_key)

        if proposal.executed:
            raise ProposalAlreadyExecuted(f"Proposal {command.target} already executed")
        if not self.passes(proposal, fund):
            raise ProposalNotPassed(
                f"yes={proposal.votes_yes} no={proposal.votes_no} "
                f"total_deposit={fund.total_deposit} quorum_bps={self.settings.quorum_bps}"
            )

        request = ReallocationRequest(
            fund=fund_key,
            vault=vault_key,
            proposal=command.target,
            legs=tuple(
                ReallocationLeg(from_asset=f, to_asset=t, amount=a, routing_tag=r)
                for f, t, a, r in zip(
                    proposal.from_assets, proposal.to_assets, proposal.amounts, proposal.routing_tags
                )
            ),
            vault_signer_seeds=self.addresses.signer_seeds(self.addresses.vault_seeds(fund_key)),
        )
        self.executor.execute(request)

        proposal.executed = True
        self._write(command.target, proposal)

        logger.info(
            "Proposal executed",
            proposal=str(command.target),
            state=proposal.state(self.ledger.unix_timestamp()).value,
            legs=proposal.leg_count,
        )
