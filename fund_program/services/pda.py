"""Program derived address helpers

Every address the program trusts is recomputed from public seeds, so any
client or verifier holding the program id can derive the same addresses.
"""
import hashlib
from typing import Iterable, List, Optional, Sequence, Tuple

from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from fund_program.config import get_settings

FUND_TAG = b"fund"
VAULT_TAG = b"vault"
MINT_TAG = b"mint"
MEMBER_TAG = b"member"
PROPOSAL_TAG = b"proposal"
VOTE_TAG = b"vote"


def derive(seeds: Sequence[bytes], program_id: Pubkey) -> Tuple[Pubkey, int]:
    """Derive an off-curve address and its bump seed"""
    return Pubkey.find_program_address(list(seeds), program_id)


def canonical_fund_seed(members: Iterable[Pubkey]) -> bytes:
    """Fund seed bound to the member set: sha256 over the sorted member keys"""
    digest = hashlib.sha256()
    for key in sorted(bytes(m) for m in members):
        digest.update(key)
    return digest.digest()


def governance_token_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
    """Associated token account holding ``owner``'s governance tokens"""
    return get_associated_token_address(owner, mint)


class AddressDeriver:
    """Role-specific address derivation for one deployed program"""

    def __init__(self, program_id: Pubkey, funding_tag: Optional[str] = None):
        self.program_id = program_id
        self.funding_tag = (funding_tag or get_settings().protocol_funding_tag).encode("utf-8")

    # Seed lists per role
    def fund_seeds(self, seed: bytes) -> List[bytes]:
        return [seed, FUND_TAG]

    def vault_seeds(self, fund: Pubkey) -> List[bytes]:
        return [VAULT_TAG, bytes(fund)]

    def mint_seeds(self, fund: Pubkey) -> List[bytes]:
        return [MINT_TAG, bytes(fund)]

    def member_seeds(self, fund: Pubkey, user: Pubkey) -> List[bytes]:
        return [MEMBER_TAG, bytes(fund), bytes(user)]

    def proposal_seeds(self, fund: Pubkey, proposer: Pubkey) -> List[bytes]:
        return [PROPOSAL_TAG, bytes(fund), bytes(proposer)]

    def vote_seeds(self, proposal: Pubkey, voter: Pubkey) -> List[bytes]:
        return [VOTE_TAG, bytes(proposal), bytes(voter)]

    def funding_seeds(self) -> List[bytes]:
        return [self.funding_tag]

    def derive_fund_pda(self, seed: bytes) -> Tuple[Pubkey, int]:
        """Derive fund PDA"""
        return derive(self.fund_seeds(seed), self.program_id)

    def derive_vault_pda(self, fund: Pubkey) -> Tuple[Pubkey, int]:
        """Derive vault PDA"""
        return derive(self.vault_seeds(fund), self.program_id)

    def derive_mint_pda(self, fund: Pubkey) -> Tuple[Pubkey, int]:
        """Derive governance mint PDA"""
        return derive(self.mint_seeds(fund), self.program_id)

    def derive_member_pda(self, fund: Pubkey, user: Pubkey) -> Tuple[Pubkey, int]:
        """Derive member record PDA"""
        return derive(self.member_seeds(fund, user), self.program_id)

    def derive_proposal_pda(self, fund: Pubkey, proposer: Pubkey) -> Tuple[Pubkey, int]:
        """Derive proposal PDA"""
        return derive(self.proposal_seeds(fund, proposer), self.program_id)

    def derive_vote_pda(self, proposal: Pubkey, voter: Pubkey) -> Tuple[Pubkey, int]:
        """Derive vote record PDA"""
        return derive(self.vote_seeds(proposal, voter), self.program_id)

    def derive_funding_pda(self) -> Tuple[Pubkey, int]:
        """Derive the protocol funding PDA that pays for fund creation"""
        return derive(self.funding_seeds(), self.program_id)

    def signer_seeds(self, seeds: Sequence[bytes]) -> List[bytes]:
        """Seeds plus bump byte, lets the host authorise the program to sign for the PDA"""
        _, bump = derive(seeds, self.program_id)
        return list(seeds) + [bytes([bump])]
