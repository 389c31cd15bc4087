"""
chainmc - Multi-chain Metropolis-Hastings Sampling and Diagnostics

Public API:
    Sampling:
        MCMCSampler - Configure and run M independent chains
        ParameterSet - Immutable parameter vector + log-likelihood record
        ProposalType - Enum for proposal types (RANDOM_WALK, MULTIVARIATE_NORMAL, ADAPTIVE_COVARIANCE, MALA)
        ChainPhase - Enum for chain phases (WARMUP, SAMPLING)

    Settings:
        SettingSlot - IntEnum for proposal setting indices (COV_MULT, TARGET_ACCEPT_LOW, etc.)

    Diagnostics:
        effective_sample_size - ESS from the truncated autocorrelation sum
        gelman_rubin - Gelman-Rubin R-hat per parameter
        minimum_sample_size - Raftery-Lewis style sample size for a quantile
        mean_log_likelihood - Per-iteration log-likelihood averaged across chains
        autocorrelation - Sample ACF / ACVF / PACF

    Results:
        MCMCResults - Immutable report of a run, serializable to bytes
        ParameterResults - KDE curve, histogram, statistics and ACF for one parameter
        ParameterStatistics - Summary statistics of one parameter

    Initialization:
        latin_hypercube_candidates - Spread candidate starting points over a box
        select_initial_states - Keep the best candidates as initial states

    Errors:
        DimensionMismatchError - Chains or vectors that must align do not
        DeserializationError - Corrupt or incomplete results payload

Example:
    import numpy as np
    from chainmc import MCMCSampler, MCMCResults

    def log_likelihood(x):
        return -0.5 * np.sum((x - 10.0) ** 2)

    sampler = MCMCSampler(log_likelihood)
    sampler.configure(num_chains=4, warmup_iterations=1000, sampling_iterations=5000,
                      thinning_interval=1, initial_states=[np.zeros(1)],
                      proposal_scale=1.0, rng_seed=12345)
    sampler.run()
    results = MCMCResults.from_sampler(sampler)
    results.parameter_results[0].statistics.mean
"""
# CRITICAL: Import jax_config FIRST to set environment variables before JAX loads
from . import jax_config  # noqa: F401

from .mcmc import (
    MCMCSampler,
    ParameterSet,
    ProposalType,
    ChainPhase,
    effective_sample_size,
    gelman_rubin,
    minimum_sample_size,
    mean_log_likelihood,
    latin_hypercube_candidates,
    select_initial_states,
)
from .settings import SettingSlot
from .autocorrelation import autocorrelation, correlation_confidence_interval
from .results import MCMCResults, ParameterResults, ParameterStatistics, KernelDensity, Histogram
from .error_handling import DimensionMismatchError, DeserializationError

__version__ = "0.1.0"

__all__ = [
    # Sampling
    'MCMCSampler',
    'ParameterSet',
    'ProposalType',
    'ChainPhase',
    # Settings
    'SettingSlot',
    # Diagnostics
    'effective_sample_size',
    'gelman_rubin',
    'minimum_sample_size',
    'mean_log_likelihood',
    'autocorrelation',
    'correlation_confidence_interval',
    # Results
    'MCMCResults',
    'ParameterResults',
    'ParameterStatistics',
    'KernelDensity',
    'Histogram',
    # Initialization
    'latin_hypercube_candidates',
    'select_initial_states',
    # Errors
    'DimensionMismatchError',
    'DeserializationError',
]
