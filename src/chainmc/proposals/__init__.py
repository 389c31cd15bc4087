"""
Proposal Distributions for MCMC Sampling

This package implements proposal distributions for Metropolis-Hastings sampling.
ProposalType enum is defined in mcmc/types.py.

To add a new proposal:
1. Add enum value to ProposalType in mcmc/types.py
2. Create new file in proposals/ directory with proposal function
3. Add to PROPOSAL_REGISTRY in proposals/dispatch.py
4. Export from this __init__.py

All proposal functions share one signature:
    fn(rng, current_values, state, settings) -> (proposal, log_hastings_ratio)

Each proposal computes its own Hastings ratio, so the chain needs no separate
symmetric/asymmetric handling. The state argument is the calling chain's own
ProposalState; proposals read it but never modify it.
"""

from .rand_walk import rand_walk_proposal
from .mvn import mvn_proposal
from .adaptive import adaptive_proposal
from .mala import mala_proposal, make_gradient
from .common import ProposalState, RunningCovariance, make_proposal_state
from .dispatch import PROPOSAL_REGISTRY, get_proposal, parse_proposal_type

__all__ = [
    'rand_walk_proposal',
    'mvn_proposal',
    'adaptive_proposal',
    'mala_proposal',
    'make_gradient',
    'ProposalState',
    'RunningCovariance',
    'make_proposal_state',
    'PROPOSAL_REGISTRY',
    'get_proposal',
    'parse_proposal_type',
]
