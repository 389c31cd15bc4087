"""
Pytest configuration and shared fixtures for chainmc tests.
"""

import pytest
import numpy as np

from chainmc.mcmc.chain import Chain
from chainmc.mcmc.rng import ChainRandom
from chainmc.mcmc.types import ParameterSet, ProposalType
from chainmc.proposals import make_proposal_state
from chainmc.settings import SettingSlot, MAX_SETTINGS, SETTING_DEFAULTS


# 200 daily closing prices used as the reference series for R's acf()/pacf()
R_REFERENCE_SAMPLE = np.array([
    142.25, 141.23, 141.33, 140.82, 141.31, 140.58, 141.58, 142.15, 143.07, 142.85,
    143.17, 142.54, 143.07, 142.26, 142.97, 143.86, 142.57, 142.19, 142.35, 142.63,
    144.15, 144.73, 144.7, 144.97, 145.12, 144.78, 145.06, 143.94, 143.77, 144.8,
    145.67, 145.44, 145.56, 145.61, 146.05, 145.74, 145.83, 143.88, 140.39, 139.34,
    140.05, 137.93, 138.78, 139.59, 140.54, 141.31, 140.42, 140.18, 138.43, 138.97,
    139.31, 139.26, 140.08, 141.1, 143.48, 143.28, 143.5, 143.12, 142.14, 142.54,
    142.24, 142.16, 142.97, 143.69, 143.67, 144.65, 144.33, 144.82, 143.74, 144.9,
    145.83, 146.97, 146.6, 146.55, 148.22, 148.37, 148.23, 148.73, 149.49, 149.09,
    149.64, 148.42, 148.9, 149.97, 150.75, 150.88, 150.58, 150.64, 150.73, 149.75,
    150.86, 150.7, 150.8, 151.38, 152.01, 152.58, 152.7, 152.95, 152.53, 151.5, 151.94,
    151.46, 153.67, 153.88, 153.54, 153.74, 152.86, 151.56, 149.58, 150.93, 150.67,
    150.5, 152.06, 153.14, 153.38, 152.55, 153.58, 151.08, 151.52, 150.24, 150.21,
    148.13, 150.38, 150.9, 150.87, 152.18, 152.4, 152.38, 153.16, 152.29, 150.75,
    152.37, 154.57, 154.99, 154.93, 154.23, 155.2, 154.89, 154.18, 153.12, 152.02,
    150.19, 148.21, 145.93, 148.33, 145.18, 146.76, 147.28, 144.21, 145.94, 148.41,
    147.43, 144.39, 146.5, 145.7, 142.72, 139.79, 145.5, 145.17, 144.6, 146.01, 147.34,
    146.48, 147.85, 146.16, 144.37, 145.45, 147.65, 147.45, 148.2, 147.95, 146.48,
    146.52, 146.24, 147.29, 148.55, 147.96, 148.31, 148.83, 153.41, 153.34, 152.71,
    152.42, 150.81, 152.25, 152.91, 152.85, 152.6, 154.61, 153.81, 154.11, 155.03,
    155.39, 155.6, 156.04, 156.93, 155.46, 156.27, 154.41, 154.98
])


@pytest.fixture
def rng_seed():
    """Default RNG seed for reproducible tests."""
    return 12345


@pytest.fixture
def basic_mcmc_config():
    """Basic MCMC configuration for tests."""
    return {
        'num_chains': 4,
        'warmup_iterations': 100,
        'sampling_iterations': 400,
        'thinning_interval': 1,
        'rng_seed': 12345,
        'parallel': False,
    }


@pytest.fixture
def r_reference_sample():
    return R_REFERENCE_SAMPLE.copy()


def normal_log_likelihood(mean=10.0, sd=1.0):
    """Log-density of independent N(mean, sd^2) components, up to a constant."""
    def log_likelihood(x):
        return float(-0.5 * np.sum(((np.asarray(x) - mean) / sd) ** 2))
    return log_likelihood


def nan_log_likelihood(x):
    return float('nan')


def make_settings_array(cov_mult=None, adapt_every=None, identity_prob=None,
                        target_accept_low=None, target_accept_high=None, cov_nugget=None):
    """
    Create a settings array for testing proposal functions and chains.

    Args:
        cov_mult: Proposal variance multiplier (default: 1.0)
        adapt_every: Iterations between scale adaptations (default: 100, 0 disables)
        identity_prob: ADAPTIVE_COVARIANCE identity probability (default: 0.05)
        target_accept_low: Lower edge of the acceptance window (default: 0.20)
        target_accept_high: Upper edge of the acceptance window (default: 0.40)
        cov_nugget: Diagonal regularization of proposal covariances (default: 1e-10)

    Returns:
        numpy array of shape (MAX_SETTINGS,) with specified values
    """
    settings = np.zeros(MAX_SETTINGS, dtype=np.float64)
    for slot, default in SETTING_DEFAULTS.items():
        settings[slot] = default
    if cov_mult is not None:
        settings[SettingSlot.COV_MULT] = cov_mult
    if adapt_every is not None:
        settings[SettingSlot.ADAPT_EVERY] = adapt_every
    if identity_prob is not None:
        settings[SettingSlot.IDENTITY_PROB] = identity_prob
    if target_accept_low is not None:
        settings[SettingSlot.TARGET_ACCEPT_LOW] = target_accept_low
    if target_accept_high is not None:
        settings[SettingSlot.TARGET_ACCEPT_HIGH] = target_accept_high
    if cov_nugget is not None:
        settings[SettingSlot.COV_NUGGET] = cov_nugget
    return settings


def make_chain(log_likelihood=None, initial=None, proposal_type=ProposalType.RANDOM_WALK,
               warmup_iterations=0, seed=12345, index=0, settings=None, scale=1.0,
               covariance=None, gradient=None):
    """Build a single chain with its own stream for direct stepping."""
    if log_likelihood is None:
        log_likelihood = normal_log_likelihood()
    if initial is None:
        initial = np.zeros(1)
    initial = np.asarray(initial, dtype=np.float64)
    dim = initial.shape[0]
    if settings is None:
        settings = make_settings_array()
    start = ParameterSet(initial, log_likelihood(initial))
    return Chain(
        index=index,
        initial_state=start,
        log_likelihood=log_likelihood,
        proposal_type=proposal_type,
        proposal_state=make_proposal_state(dim, scale, covariance, gradient),
        rng=ChainRandom.from_seed(seed, index, dim),
        settings=settings,
        warmup_iterations=warmup_iterations,
    )
