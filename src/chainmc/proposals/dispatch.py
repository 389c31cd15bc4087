"""
Proposal Dispatch

Maps each ProposalType to its proposal function. Chains look up their
proposal once at construction and call it directly every iteration.
"""

from ..mcmc.types import ProposalType
from .rand_walk import rand_walk_proposal
from .mvn import mvn_proposal
from .adaptive import adaptive_proposal
from .mala import mala_proposal


PROPOSAL_REGISTRY = {
    ProposalType.RANDOM_WALK: rand_walk_proposal,
    ProposalType.MULTIVARIATE_NORMAL: mvn_proposal,
    ProposalType.ADAPTIVE_COVARIANCE: adaptive_proposal,
    ProposalType.MALA: mala_proposal,
}


def parse_proposal_type(proposal_type) -> ProposalType:
    """
    Convert a ProposalType, its integer value or its name to the enum member.

    Raises:
        ValueError: If the proposal type is unknown
    """
    try:
        if isinstance(proposal_type, str):
            return ProposalType[proposal_type.strip().upper()]
        return ProposalType(proposal_type)
    except (KeyError, ValueError) as e:
        valid = [p.name.lower() for p in ProposalType]
        raise ValueError(f"Unknown proposal type {proposal_type!r}. Valid types: {valid}") from e


def get_proposal(proposal_type):
    """Look up the proposal function for a ProposalType (or its name/value)."""
    return PROPOSAL_REGISTRY[parse_proposal_type(proposal_type)]
