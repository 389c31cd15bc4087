"""
Post-processing of a finished sampler run.

Classes:
    ParameterStatistics: Summary statistics for one parameter
    KernelDensity: Gaussian kernel density estimate of one parameter's samples
    Histogram: Rice-rule histogram of one parameter's samples
    ParameterResults: KDE curve, histogram, statistics and ACF for one parameter
    MCMCResults: Immutable snapshot of a sampler run plus per-parameter results

Results are computed once at construction and never modified. Every array is
stored read-only; chains and samples are held as ParameterSets, which are
immutable themselves.

Example:
    sampler.run()
    results = MCMCResults.from_sampler(sampler, alpha=0.1)
    results.parameter_results[0].statistics.mean
    payload = results.to_bytes()
    assert MCMCResults.from_bytes(payload) == results
"""

import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import astuple, dataclass, fields
from typing import List, Optional, Tuple

import numpy as np
from scipy import stats
from scipy.optimize import brentq

from .autocorrelation import autocorrelation
from .mcmc.diagnostics import effective_sample_size, gelman_rubin, log_rhat_summary
from .mcmc.types import ParameterSet

import logging
logger = logging.getLogger('chainmc')

MAX_ACF_LAG = 50
DEFAULT_ALPHA = 0.1


def _frozen(array, dtype=np.float64) -> np.ndarray:
    array = np.array(array, dtype=dtype, copy=True)
    array.flags.writeable = False
    return array


def _arrays_equal(a, b) -> bool:
    a, b = np.asarray(a), np.asarray(b)
    if a.shape != b.shape:
        return False
    if a.dtype.kind == 'f' or b.dtype.kind == 'f':
        return bool(np.array_equal(a, b, equal_nan=True))
    return bool(np.array_equal(a, b))


# =============================================================================
# SUMMARY STATISTICS
# =============================================================================

@dataclass(frozen=True, eq=False)
class ParameterStatistics:
    """Summary statistics of one parameter's posterior samples."""
    n: int
    mean: float
    median: float
    standard_deviation: float
    lower_ci: float
    upper_ci: float
    rhat: float = math.nan
    ess: float = math.nan

    def __eq__(self, other):
        if not isinstance(other, ParameterStatistics):
            return NotImplemented
        return _arrays_equal(astuple(self), astuple(other))

    __hash__ = None


STATISTICS_FIELDS = tuple(f.name for f in fields(ParameterStatistics))


# =============================================================================
# KERNEL DENSITY
# =============================================================================

class KernelDensity:
    """
    Gaussian kernel density estimate.

    Bandwidth h = sigma * (4 / (3 n))^(1/5), with sigma the sample standard
    deviation. The CDF is clamped to 0 below the sample minimum and 1 above
    the sample maximum, so quantiles always lie within the data range.

    Raises:
        ValueError: If fewer than two samples are given or they have zero variance
    """

    def __init__(self, values):
        sample = np.sort(np.asarray(values, dtype=np.float64).reshape(-1))
        n = sample.shape[0]
        if n < 2:
            raise ValueError(f"A kernel density needs at least two samples, got {n}")
        sigma = np.std(sample, ddof=1)
        if not sigma > 0:
            raise ValueError("A kernel density needs samples with positive variance")

        self.sample = sample
        self.bandwidth_factor = (4.0 / (3.0 * n)) ** 0.2
        self.bandwidth = sigma * self.bandwidth_factor
        self._kde = stats.gaussian_kde(sample, bw_method=self.bandwidth_factor)

    @property
    def minimum(self) -> float:
        return float(self.sample[0])

    @property
    def maximum(self) -> float:
        return float(self.sample[-1])

    def pdf(self, x):
        return self._kde(np.atleast_1d(np.asarray(x, dtype=np.float64)))

    def cdf(self, x: float) -> float:
        if x <= self.minimum:
            return 0.0
        if x >= self.maximum:
            return 1.0
        return float(self._kde.integrate_box_1d(-np.inf, x))

    def inverse_cdf(self, probability: float) -> float:
        if not 0.0 <= probability <= 1.0:
            raise ValueError(f"Probability must be between 0 and 1, got {probability}")
        if probability == 0.0:
            return self.minimum
        if probability == 1.0:
            return self.maximum
        return float(brentq(lambda x: self.cdf(x) - probability, self.minimum, self.maximum))

    def pdf_graph(self, points: int = 1000) -> np.ndarray:
        """
        Density curve for plotting.

        Returns:
            (points, 2) array of (x, density) at the midpoints of equal-width
            strata between the 0.05% and 99.95% quantiles
        """
        lo, hi = self.inverse_cdf(0.0005), self.inverse_cdf(0.9995)
        edges = np.linspace(lo, hi, points + 1)
        x = 0.5 * (edges[:-1] + edges[1:])
        return np.column_stack([x, self.pdf(x)])


# =============================================================================
# HISTOGRAM
# =============================================================================

@dataclass(frozen=True, eq=False)
class Histogram:
    """
    Equal-width histogram spanning the sample minimum to maximum.

    edges has one more entry than counts; both are empty for an empty sample.
    """
    edges: np.ndarray
    counts: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, 'edges', _frozen(self.edges))
        object.__setattr__(self, 'counts', _frozen(self.counts, np.int64))

    @classmethod
    def from_values(cls, values, num_bins: Optional[int] = None) -> 'Histogram':
        """Bin a sample; the default bin count is the Rice rule ceil(2 n^(1/3)) + 1."""
        x = np.asarray(values, dtype=np.float64).reshape(-1)
        n = x.shape[0]
        if n == 0:
            return cls(np.empty(0), np.empty(0, dtype=np.int64))
        if num_bins is None:
            num_bins = int(math.ceil(2.0 * n ** (1.0 / 3.0)) + 1)

        lo, hi = float(x.min()), float(x.max())
        width = (hi - lo) / num_bins
        edges = lo + width * np.arange(num_bins + 1)
        edges[-1] = hi

        index = np.searchsorted(edges, x, side='right') - 1
        index = np.clip(index, 0, num_bins - 1)
        counts = np.bincount(index, minlength=num_bins)
        return cls(edges, counts)

    @property
    def num_bins(self) -> int:
        return self.counts.shape[0]

    @property
    def midpoints(self) -> np.ndarray:
        return 0.5 * (self.edges[:-1] + self.edges[1:])

    @property
    def total(self) -> int:
        return int(self.counts.sum())

    @property
    def mean(self) -> float:
        if self.total == 0:
            return math.nan
        return float(np.dot(self.midpoints, self.counts) / self.total)

    @property
    def median(self) -> float:
        """Midpoint of the bin where the cumulative count first reaches half the total."""
        if self.total == 0:
            return math.nan
        m = int(np.searchsorted(np.cumsum(self.counts), self.total // 2))
        return float(self.midpoints[m])

    @property
    def mode(self) -> float:
        if self.total == 0:
            return math.nan
        return float(self.midpoints[int(np.argmax(self.counts))])

    def __eq__(self, other):
        if not isinstance(other, Histogram):
            return NotImplemented
        return _arrays_equal(self.edges, other.edges) and _arrays_equal(self.counts, other.counts)

    __hash__ = None


# =============================================================================
# PER-PARAMETER RESULTS
# =============================================================================

def averaged_autocorrelation(chain_series: List[np.ndarray], max_lag: int = MAX_ACF_LAG) -> np.ndarray:
    """
    Average the per-chain ACFs at each lag.

    Each chain's ACF is computed on its own series up to min(max_lag, n - 1);
    lags that no chain reaches are NaN. Chains shorter than two samples, or
    with zero variance, contribute nothing.

    Returns:
        (max_lag + 1, 2) array of (lag, mean autocorrelation)
    """
    total = np.zeros(max_lag + 1)
    count = np.zeros(max_lag + 1)
    for series in chain_series:
        series = np.asarray(series, dtype=np.float64)
        if series.shape[0] < 2 or not np.var(series) > 0:
            continue
        lags, acf = autocorrelation(series, lag_max=min(max_lag, series.shape[0] - 1))
        total[lags] += acf
        count[lags] += 1

    with np.errstate(invalid='ignore'):
        mean_acf = np.where(count > 0, total / np.maximum(count, 1), np.nan)
    return np.column_stack([np.arange(max_lag + 1, dtype=np.float64), mean_acf])


@dataclass(frozen=True, eq=False)
class ParameterResults:
    """KDE curve, histogram, summary statistics and averaged ACF for one parameter."""
    statistics: ParameterStatistics
    kernel_density: np.ndarray
    histogram: Histogram
    autocorrelation: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, 'kernel_density', _frozen(self.kernel_density).reshape(-1, 2))
        object.__setattr__(self, 'autocorrelation', _frozen(self.autocorrelation).reshape(-1, 2))

    @classmethod
    def from_values(cls, values, alpha: float = DEFAULT_ALPHA, rhat: float = math.nan,
                    ess: Optional[float] = None, chain_series: Optional[List[np.ndarray]] = None
                    ) -> 'ParameterResults':
        """
        Summarize one parameter's samples.

        Mean and standard deviation come from the sample; median and the
        (alpha/2, 1 - alpha/2) credible interval come from the KDE's inverse
        CDF. A sample with fewer than two points or zero variance has no KDE;
        its median and interval collapse to the mean.

        Args:
            values: Pooled samples of the parameter
            alpha: Credible interval level; 0.1 gives a 90% interval
            rhat: Gelman-Rubin statistic to record
            ess: Effective sample size; computed from values when None
            chain_series: Per-chain samples for the averaged ACF; values is
                          treated as a single chain when None
        """
        if not 0.0 < alpha < 1.0:
            raise ValueError(f"alpha must be in (0, 1), got {alpha}")

        x = np.asarray(values, dtype=np.float64).reshape(-1)
        n = x.shape[0]
        mean = float(np.mean(x)) if n else math.nan
        sd = float(np.std(x, ddof=1)) if n > 1 else math.nan
        if ess is None:
            ess = effective_sample_size(x)

        if n > 1 and sd > 0:
            kde = KernelDensity(x)
            median = kde.inverse_cdf(0.5)
            lower_ci = kde.inverse_cdf(alpha / 2.0)
            upper_ci = kde.inverse_cdf(1.0 - alpha / 2.0)
            curve = kde.pdf_graph()
        else:
            median = lower_ci = upper_ci = mean
            curve = np.empty((0, 2))

        statistics = ParameterStatistics(
            n=n, mean=mean, median=median, standard_deviation=sd,
            lower_ci=lower_ci, upper_ci=upper_ci, rhat=float(rhat), ess=float(ess))

        if chain_series is None:
            chain_series = [x]

        return cls(
            statistics=statistics,
            kernel_density=curve,
            histogram=Histogram.from_values(x),
            autocorrelation=averaged_autocorrelation(chain_series),
        )

    def __eq__(self, other):
        if not isinstance(other, ParameterResults):
            return NotImplemented
        return (self.statistics == other.statistics
                and self.histogram == other.histogram
                and _arrays_equal(self.kernel_density, other.kernel_density)
                and _arrays_equal(self.autocorrelation, other.autocorrelation))

    __hash__ = None


# =============================================================================
# RUN RESULTS
# =============================================================================

@dataclass(frozen=True, eq=False)
class MCMCResults:
    """
    Immutable report of a finished (or cancelled) sampler run.

    Fields:
        markov_chains: Full history of every chain (tuple of tuples of ParameterSet)
        output: Thinned post-warm-up samples, chain by chain
        mean_log_likelihood: (n_iterations,) average log-likelihood across chains
        acceptance_rates: (n_chains,) acceptance rate per chain
        parameter_results: One ParameterResults per parameter
        map: Highest-fitness state across all chains (None if nothing ran)
        warmup_iterations: Warm-up length used for R-hat and output
        thinning_interval: Thinning used for output
        alpha: Credible interval level of the parameter statistics
    """
    markov_chains: Tuple[Tuple[ParameterSet, ...], ...]
    output: Tuple[ParameterSet, ...]
    mean_log_likelihood: np.ndarray
    acceptance_rates: np.ndarray
    parameter_results: Tuple[ParameterResults, ...]
    map: Optional[ParameterSet]
    warmup_iterations: int = 0
    thinning_interval: int = 1
    alpha: float = DEFAULT_ALPHA

    def __post_init__(self):
        object.__setattr__(self, 'markov_chains', tuple(tuple(c) for c in self.markov_chains))
        object.__setattr__(self, 'output', tuple(self.output))
        object.__setattr__(self, 'parameter_results', tuple(self.parameter_results))
        object.__setattr__(self, 'mean_log_likelihood', _frozen(self.mean_log_likelihood))
        object.__setattr__(self, 'acceptance_rates', _frozen(self.acceptance_rates))

    @classmethod
    def from_sampler(cls, sampler, alpha: float = DEFAULT_ALPHA) -> 'MCMCResults':
        """
        Snapshot a sampler after run() and compute per-parameter results.

        R-hat uses the post-warm-up histories; ESS uses the pooled output; the
        ACF is averaged over each chain's thinned output. Parameters are
        processed in parallel.
        """
        if not sampler.has_run:
            raise RuntimeError("MCMCSampler.run() must complete before building results")

        markov_chains = [tuple(s.clone() for s in history) for history in sampler.markov_chains]
        output = [s.clone() for s in sampler.output]
        warmup = sampler.warmup_iterations
        num_params = sampler.num_params

        rhat = np.full(num_params, np.nan)
        if len(markov_chains) >= 2:
            n_min = min(len(c) for c in markov_chains)
            if n_min - warmup >= 2:
                rhat = gelman_rubin(markov_chains, warmup)
                log_rhat_summary(rhat)
            else:
                logger.warning(f"R-hat unavailable: only {max(n_min - warmup, 0)} post-warm-up iterations")

        pooled = (np.stack([s.values for s in output]) if output
                  else np.empty((0, num_params)))
        per_chain = [
            np.stack([s.values for s in chain_output]) if chain_output else np.empty((0, num_params))
            for chain_output in sampler.chain_outputs
        ]

        def build(i):
            return ParameterResults.from_values(
                pooled[:, i], alpha=alpha, rhat=rhat[i],
                chain_series=[c[:, i] for c in per_chain])

        with ThreadPoolExecutor() as executor:
            parameter_results = list(executor.map(build, range(num_params)))

        return cls(
            markov_chains=markov_chains,
            output=output,
            mean_log_likelihood=sampler.mean_log_likelihood,
            acceptance_rates=sampler.acceptance_rates,
            parameter_results=parameter_results,
            map=sampler.map.clone() if sampler.map is not None else None,
            warmup_iterations=warmup,
            thinning_interval=sampler.thinning_interval,
            alpha=alpha,
        )

    @property
    def num_chains(self) -> int:
        return len(self.markov_chains)

    @property
    def num_params(self) -> int:
        return len(self.parameter_results)

    def rhat(self) -> np.ndarray:
        return np.array([p.statistics.rhat for p in self.parameter_results])

    def ess(self) -> np.ndarray:
        return np.array([p.statistics.ess for p in self.parameter_results])

    def to_bytes(self) -> bytes:
        from .serialization import results_to_bytes
        return results_to_bytes(self)

    @classmethod
    def from_bytes(cls, payload: bytes) -> 'MCMCResults':
        from .serialization import results_from_bytes
        return results_from_bytes(payload)

    def save(self, filepath) -> None:
        from .serialization import save_results
        save_results(filepath, self)

    @classmethod
    def load(cls, filepath) -> 'MCMCResults':
        from .serialization import load_results
        return load_results(filepath)

    def __eq__(self, other):
        if not isinstance(other, MCMCResults):
            return NotImplemented
        return (self.markov_chains == other.markov_chains
                and self.output == other.output
                and self.parameter_results == other.parameter_results
                and self.map == other.map
                and self.warmup_iterations == other.warmup_iterations
                and self.thinning_interval == other.thinning_interval
                and self.alpha == other.alpha
                and _arrays_equal(self.mean_log_likelihood, other.mean_log_likelihood)
                and _arrays_equal(self.acceptance_rates, other.acceptance_rates))

    __hash__ = None
