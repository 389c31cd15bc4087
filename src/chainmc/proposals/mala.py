"""
MALA (Metropolis-Adjusted Langevin Algorithm) Proposal for MCMC Sampling

Preconditioned Langevin proposal: the random walk is pushed along the
gradient of the log-likelihood before the Gaussian noise is added.

Proposal: x' = x + (1/2) C ∇log π(x) + L z,   z ~ N(0, I)
where:
    - C = factor * (cov_mult * Σ + nugget * I) = L L^T
    - Σ is the base proposal covariance (diag(scale**2) by default)
    - factor is the chain's adapted variance multiplier

The drift makes the proposal asymmetric, so the Hastings ratio is not zero:

    log q(x | x') - log q(x' | x)
        = -1/2 (||L^-1 (x - x' - d(x'))||^2 - ||L^-1 (x' - x - d(x))||^2)

with d(y) = (1/2) C ∇log π(y). The Gaussian normalizing constants cancel
because both directions share C.

The gradient comes from the chain's ProposalState. When none is supplied the
sampler differentiates the log-likelihood with jax.grad, which requires a
jax-traceable callable.

Settings used:
    COV_MULT   - Variance multiplier applied to Σ
    COV_NUGGET - Diagonal regularization before factorization
"""

import jax
import numpy as np
from scipy.linalg import solve_triangular

from ..settings import SettingSlot
from .common import sample_diffusion


def make_gradient(log_likelihood, gradient=None):
    """
    Gradient callable for MALA.

    Args:
        log_likelihood: fn(values) -> float
        gradient: Optional user gradient fn(values) -> (P,)

    Returns:
        fn(values) -> (P,) float64 array
    """
    if gradient is None:
        gradient = jax.grad(log_likelihood)

    def grad_fn(values):
        return np.asarray(gradient(values), dtype=np.float64).reshape(-1)

    return grad_fn


def mala_proposal(rng, current_values, state, settings):
    """
    Langevin proposal with its Hastings correction.

    Args:
        rng: ChainRandom owned by the calling chain
        current_values: Current parameter values (P,)
        state: ProposalState of the calling chain (uses covariance, factor, gradient)
        settings: Settings array indexed by SettingSlot

    Returns:
        proposal: Proposed parameter values (P,)
        log_hastings_ratio: log q(x | x') - log q(x' | x); NaN when the
                            gradient is not finite, which the chain rejects

    Raises:
        ValueError: If the chain's ProposalState carries no gradient
    """
    if state.gradient is None:
        raise ValueError("MALA proposal requires a log-likelihood gradient")

    L = state.cholesky(settings[SettingSlot.COV_MULT], settings[SettingSlot.COV_NUGGET])
    root = np.sqrt(state.factor)
    cov = state.factor * (L @ L.T)

    def drift(values):
        return 0.5 * (cov @ state.gradient(values))

    drift_current = drift(current_values)
    proposal = current_values + drift_current + sample_diffusion(rng.normal(), L, scale=root)

    y_forward = solve_triangular(L, proposal - current_values - drift_current, lower=True,
                                 check_finite=False) / root
    y_reverse = solve_triangular(L, current_values - proposal - drift(proposal), lower=True,
                                 check_finite=False) / root
    log_hastings = -0.5 * (np.sum(y_reverse ** 2) - np.sum(y_forward ** 2))

    return proposal, float(log_hastings)
