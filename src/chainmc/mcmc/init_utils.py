"""
Chain Initialization Utilities.

Helpers for choosing starting states when the caller has bounds for each
parameter but no good initial guesses:

    candidates = latin_hypercube_candidates(lower, upper, n=50, seed=12345)
    initial_states = select_initial_states(log_likelihood, candidates, num_chains=4)

A Latin hypercube spreads the candidates evenly over the box; the best
num_chains candidates (highest log-likelihood) become the chains' starting
points.
"""

import numpy as np
from scipy.stats import qmc

from .chain import safe_log_likelihood
from .types import ParameterSet

import logging
logger = logging.getLogger('chainmc')


def latin_hypercube_candidates(lower, upper, n: int, seed: int = 12345) -> np.ndarray:
    """
    Draw a Latin hypercube sample inside [lower, upper].

    Args:
        lower: (P,) lower bounds
        upper: (P,) upper bounds, each strictly greater than its lower bound
        n: Number of candidate points
        seed: Seed for the hypercube's random permutation

    Returns:
        (n, P) array of candidate parameter vectors
    """
    lower = np.atleast_1d(np.asarray(lower, dtype=np.float64))
    upper = np.atleast_1d(np.asarray(upper, dtype=np.float64))
    if lower.shape != upper.shape:
        raise ValueError(f"Bounds must have the same shape, got {lower.shape} and {upper.shape}")
    if np.any(upper <= lower):
        raise ValueError("Every upper bound must exceed its lower bound")
    if n < 1:
        raise ValueError(f"n must be >= 1, got {n}")

    sampler = qmc.LatinHypercube(d=lower.shape[0], seed=seed)
    return qmc.scale(sampler.random(n), lower, upper)


def select_initial_states(log_likelihood, candidates, num_chains: int):
    """
    Evaluate candidates and keep the best num_chains as initial states.

    NaN and infinite log-likelihoods count as -inf. Ties keep candidate order.

    Returns:
        List of num_chains ParameterSets in descending fitness order

    Raises:
        ValueError: If there are fewer candidates than chains
    """
    candidates = np.asarray(candidates, dtype=np.float64)
    if candidates.ndim == 1:
        candidates = candidates[:, None]
    if candidates.shape[0] < num_chains:
        raise ValueError(
            f"The initial population ({candidates.shape[0]}) cannot be smaller than "
            f"the number of chains ({num_chains})")

    fitness = np.array([safe_log_likelihood(log_likelihood, c) for c in candidates])
    order = np.argsort(-fitness, kind='stable')[:num_chains]

    if not np.isfinite(fitness[order[0]]):
        logger.warning("No candidate has a finite log-likelihood; chains start in an invalid region")

    return [ParameterSet(candidates[i], fitness[i]) for i in order]
