"""
MCMC Diagnostics.

Convergence and efficiency diagnostics for MCMC chains:
- effective_sample_size: ESS from the truncated autocorrelation sum
- gelman_rubin: Standard Gelman-Rubin R-hat per parameter
- minimum_sample_size: Raftery-Lewis style sample size for a quantile
- mean_log_likelihood: Index-aligned average log-likelihood across chains
- log_rhat_summary: Log R-hat statistics with convergence check
- log_acceptance_summary: Log acceptance rate statistics

Chains can be given either as sequences of ParameterSet (a chain's history)
or as numeric arrays of shape (n_iterations, n_params).
"""

import math
from typing import Sequence

import numpy as np
from scipy import stats

from ..autocorrelation import autocorrelation
from ..error_handling import DimensionMismatchError
from .types import ParameterSet

import logging
logger = logging.getLogger('chainmc')

# Autocorrelations below this cutoff end the ESS sum
ESS_ACF_CUTOFF = 0.05
RHAT_THRESHOLD = 1.1


def _chain_array(chain) -> np.ndarray:
    """Convert one chain to an (n_iterations, n_params) float array."""
    if len(chain) > 0 and isinstance(chain[0], ParameterSet):
        return np.stack([s.values for s in chain])
    array = np.asarray(chain, dtype=np.float64)
    if array.ndim == 1:
        array = array[:, None]
    return array


def _fitness_series(chain) -> np.ndarray:
    if len(chain) > 0 and isinstance(chain[0], ParameterSet):
        return np.array([s.fitness for s in chain])
    return np.asarray(chain, dtype=np.float64).reshape(-1)


def effective_sample_size(series) -> float:
    """
    Effective sample size of a single parameter's series.

    The autocorrelation function is computed to lag ceil(N/2); positive
    autocorrelations from lag 1 are summed until the first lag whose value
    drops below 0.05 (that lag is excluded). ESS = min(N / (1 + 2 * sum), N).

    A zero-variance series has an undefined ACF and yields NaN.

    Args:
        series: 1-D sequence of N samples

    Returns:
        ESS as a float, never greater than N
    """
    x = np.asarray(series, dtype=np.float64).reshape(-1)
    n = x.shape[0]
    if n < 2:
        return float(n)

    _, acf = autocorrelation(x, lag_max=int(math.ceil(n / 2)))
    tail = acf[1:]
    below = np.flatnonzero(tail < ESS_ACF_CUTOFF)
    stop = below[0] if below.size else tail.shape[0]
    rho = float(np.sum(tail[:stop]))

    ess = n / (1.0 + 2.0 * rho)
    if math.isnan(ess):
        return ess
    return min(ess, float(n))


def gelman_rubin(chains: Sequence, warmup_iterations: int = 0) -> np.ndarray:
    """
    Gelman-Rubin potential scale reduction factor for each parameter.

    Chains are aligned to the shortest chain, then the first
    warmup_iterations samples of each are discarded. With M chains of N
    remaining samples:

        B = N / (M - 1) * sum_j (mean_j - grand_mean)^2
        W = mean_j var_j          (var_j with ddof=1)
        V = ((N - 1) * W + B) / N
        R-hat = sqrt(V / W)

    Args:
        chains: M chains, each a sequence of ParameterSet or an (n, P) array
        warmup_iterations: Leading samples to discard from every chain

    Returns:
        (P,) array of R-hat values. With fewer than two chains the array is all
        NaN; the diagnostic needs between-chain variance.

    Raises:
        ValueError: If no chains are given, warmup_iterations is negative,
                    fewer than two post-warm-up samples remain, or P < 1
    """
    if len(chains) == 0:
        raise ValueError("At least one chain is required")
    if warmup_iterations < 0:
        raise ValueError(f"warmup_iterations must be non-negative, got {warmup_iterations}")

    arrays = [_chain_array(c) for c in chains]
    num_params = arrays[0].shape[1] if arrays[0].ndim == 2 else 0
    num_chains = len(arrays)

    if num_chains < 2:
        return np.full(num_params, np.nan)
    if any(a.shape[1] != num_params for a in arrays):
        raise DimensionMismatchError("All chains must have the same number of parameters")

    n_min = min(a.shape[0] for a in arrays)
    n = n_min - warmup_iterations
    if n < 2:
        raise ValueError(f"At least two post-warm-up iterations are required, got {n}")
    if num_params < 1:
        raise ValueError("At least one parameter is required")

    data = np.stack([a[warmup_iterations:n_min] for a in arrays])  # (M, N, P)

    chain_means = data.mean(axis=1)
    grand_mean = chain_means.mean(axis=0)
    B = n / (num_chains - 1) * np.sum((chain_means - grand_mean) ** 2, axis=0)
    W = data.var(axis=1, ddof=1).mean(axis=0)
    V = ((n - 1) * W + B) / n

    with np.errstate(divide='ignore', invalid='ignore'):
        return np.sqrt(V / W)


def round_to_hundred(n: float) -> int:
    """Round to the nearest multiple of 100; exact halves go to the even hundred (250 -> 200)."""
    return int(round(n / 100.0)) * 100


def minimum_sample_size(quantile: float, tolerance: float, probability: float) -> int:
    """
    Minimum number of independent samples needed to estimate a quantile.

    N = q (1 - q) * z^2 / r^2 with z = Phi^-1((s + 1) / 2), rounded to the
    nearest 100 (see round_to_hundred).

    Args:
        quantile: Target quantile q in (0, 1)
        tolerance: Accuracy r > 0 on the quantile's probability scale
        probability: Probability s in (0, 1) of achieving that accuracy
    """
    if not 0.0 < quantile < 1.0:
        raise ValueError(f"quantile must be in (0, 1), got {quantile}")
    if tolerance <= 0.0:
        raise ValueError(f"tolerance must be positive, got {tolerance}")
    if not 0.0 < probability < 1.0:
        raise ValueError(f"probability must be in (0, 1), got {probability}")

    z = stats.norm.ppf(0.5 * (probability + 1.0))
    n = quantile * (1.0 - quantile) * z ** 2 / tolerance ** 2
    return round_to_hundred(n)


def mean_log_likelihood(chains: Sequence) -> np.ndarray:
    """
    Per-iteration log-likelihood averaged across chains.

    Args:
        chains: Sequences of ParameterSet (their fitness is used) or 1-D
                arrays of log-likelihood values, all of the same length

    Raises:
        ValueError: If no chains are given
        DimensionMismatchError: If the chains differ in length
    """
    if len(chains) == 0:
        raise ValueError("At least one chain is required")
    series = [_fitness_series(c) for c in chains]
    lengths = {s.shape[0] for s in series}
    if len(lengths) != 1:
        raise DimensionMismatchError(
            f"Chains must have equal lengths to average, got lengths {[s.shape[0] for s in series]}")
    return np.mean(np.stack(series), axis=0)


def log_rhat_summary(rhat: np.ndarray, threshold: float = RHAT_THRESHOLD) -> bool:
    """
    Log R-hat summary statistics.

    Returns:
        True if every finite R-hat is below the threshold and none is NaN/Inf
    """
    rhat = np.asarray(rhat, dtype=np.float64)
    n_bad = int(np.sum(~np.isfinite(rhat)))
    if n_bad == rhat.size:
        logger.info("R-hat not available (fewer than two chains or zero variance)")
        return False

    max_rhat = np.nanmax(rhat[np.isfinite(rhat)])
    logger.info(f"--- Gelman-Rubin R-hat ({rhat.size} params) ---")
    logger.info(f"  Max: {max_rhat:.4f}  Median: {np.nanmedian(rhat):.4f}  Threshold: {threshold:.2f}")
    if n_bad > 0:
        logger.warning(f"  {n_bad} params have NaN/Inf R-hat (stuck chains)")

    converged = n_bad == 0 and max_rhat < threshold
    if converged:
        logger.info(f"  Converged (max < {threshold:.2f})")
    else:
        logger.warning(f"  Not Converged (max = {max_rhat:.4f})")
    return converged


def log_acceptance_summary(acceptance_rates) -> None:
    """Log summary statistics for per-chain acceptance rates."""
    rates = np.asarray(acceptance_rates, dtype=np.float64)
    if rates.size == 0:
        return

    logger.info(f"--- Acceptance Rates ({rates.size} chains) ---")
    logger.info(f"  Mean: {np.mean(rates):.1%}  Median: {np.median(rates):.1%}  "
                f"Min: {np.min(rates):.1%}  Max: {np.max(rates):.1%}")

    low = np.flatnonzero(rates < 0.10)
    if low.size:
        logger.warning(f"  {low.size} chain(s) have acceptance rate < 10%: {low.tolist()}")
