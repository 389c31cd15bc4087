"""
Adaptive Covariance Proposal for MCMC Sampling

Adaptive random walk Metropolis (Haario et al., 2001) using the chain's own
running covariance as the proposal covariance.

For the first 100 * P iterations, and afterwards with probability
IDENTITY_PROB, the proposal uses a small isotropic covariance:

    x' ~ N(x_current, (0.1^2 / P) * I)

Otherwise it uses the optimal-scaling adaptive covariance:

    x' ~ N(x_current, factor * cov_mult * (2.38^2 / P) * Σ_running + nugget * I)

where Σ_running is the chain's Welford covariance, updated by the chain with
every recorded state. The identity component keeps the kernel irreducible
while Σ_running is still degenerate.

Hastings ratio: 0 (both mixture components are symmetric in x and x')

Settings used:
    COV_MULT      - Variance multiplier on the adaptive covariance
    IDENTITY_PROB - Probability of the isotropic component after the initial period
    COV_NUGGET    - Diagonal regularization before factorization
"""

import numpy as np

from ..settings import SettingSlot
from .common import regularize_covariance, sample_diffusion

# Optimal scaling for Gaussian targets (Roberts, Gelman & Gilks, 1997)
OPTIMAL_SCALE = 2.38 ** 2
IDENTITY_SCALE = 0.1 ** 2
# Identity-only iterations per parameter before the running covariance is trusted
INITIAL_PERIOD_PER_PARAM = 100


def adaptive_proposal(rng, current_values, state, settings):
    """
    Adaptive covariance proposal.

    Args:
        rng: ChainRandom owned by the calling chain
        current_values: Current parameter values (P,)
        state: ProposalState of the calling chain (uses running, factor, iteration)
        settings: Settings array indexed by SettingSlot

    Returns:
        proposal: Proposed parameter values (P,)
        log_hastings_ratio: 0.0 (symmetric proposal)
    """
    dim = current_values.shape[0]
    # Draw the mixture component first so the stream layout does not depend on the branch
    use_identity = rng.uniform() <= settings[SettingSlot.IDENTITY_PROB]
    noise = rng.normal()

    if use_identity or state.iteration <= INITIAL_PERIOD_PER_PARAM * dim or state.running.n < 2:
        step = noise * np.sqrt(IDENTITY_SCALE / dim)
        return current_values + step, 0.0

    cov = regularize_covariance(state.running.covariance,
                                settings[SettingSlot.COV_MULT] * OPTIMAL_SCALE / dim,
                                settings[SettingSlot.COV_NUGGET])
    try:
        L = np.linalg.cholesky(cov)
    except np.linalg.LinAlgError:
        # Degenerate running covariance (e.g. a chain that has never moved)
        step = noise * np.sqrt(IDENTITY_SCALE / dim)
        return current_values + step, 0.0

    return current_values + sample_diffusion(noise, L, scale=np.sqrt(state.factor)), 0.0
