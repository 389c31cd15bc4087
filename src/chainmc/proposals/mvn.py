"""
Multivariate Normal Proposal for MCMC Sampling

Gaussian random walk with a fixed full covariance matrix, for targets whose
parameters are correlated.

Proposal: x' ~ N(x_current, factor * (cov_mult * Σ + nugget * I))
where:
    - Σ is the proposal covariance supplied at configuration time
    - factor is the chain's adapted variance multiplier

The Cholesky factor of the regularized covariance is computed once per chain
and cached on the chain's ProposalState.

Hastings ratio: 0 (symmetric proposal)

Settings used:
    COV_MULT  - Variance multiplier applied to Σ
    COV_NUGGET - Diagonal regularization before factorization
"""

import numpy as np

from ..settings import SettingSlot
from .common import sample_diffusion


def mvn_proposal(rng, current_values, state, settings):
    """
    Random walk proposal with full covariance.

    Args:
        rng: ChainRandom owned by the calling chain
        current_values: Current parameter values (P,)
        state: ProposalState of the calling chain (uses covariance, factor)
        settings: Settings array indexed by SettingSlot

    Returns:
        proposal: Proposed parameter values (P,)
        log_hastings_ratio: 0.0 (symmetric proposal)
    """
    L = state.cholesky(settings[SettingSlot.COV_MULT], settings[SettingSlot.COV_NUGGET])
    diffusion = sample_diffusion(rng.normal(), L, scale=np.sqrt(state.factor))
    return current_values + diffusion, 0.0
