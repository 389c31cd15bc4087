"""
Random Walk Proposal for MCMC Sampling

Gaussian random walk with independent per-dimension step sizes.

Proposal: x' ~ N(x_current, factor * cov_mult * diag(scale**2))
where:
    - scale is the chain's per-dimension step standard deviation
    - factor is the chain's adapted variance multiplier (1.0 before tuning)
    - cov_mult is SettingSlot.COV_MULT (default 1.0)

Hastings ratio: 0 (symmetric proposal, q(x'|x) = q(x|x'))

This is the simplest proposal and a good choice for low-dimensional targets
whose parameters are roughly uncorrelated. For correlated targets use
MULTIVARIATE_NORMAL with a known covariance or ADAPTIVE_COVARIANCE.

Settings used:
    COV_MULT - Variance multiplier. Step size in each dimension is
               scale * sqrt(factor * cov_mult).
"""

import numpy as np

from ..settings import SettingSlot


def rand_walk_proposal(rng, current_values, state, settings):
    """
    Random walk proposal with diagonal covariance.

    Args:
        rng: ChainRandom owned by the calling chain
        current_values: Current parameter values (P,)
        state: ProposalState of the calling chain (uses scale, factor)
        settings: Settings array indexed by SettingSlot

    Returns:
        proposal: Proposed parameter values (P,)
        log_hastings_ratio: 0.0 (symmetric proposal)
    """
    cov_mult = settings[SettingSlot.COV_MULT]
    noise = rng.normal()
    step = noise * state.scale * np.sqrt(state.factor * cov_mult)
    return current_values + step, 0.0
