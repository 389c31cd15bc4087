"""
Error Handling and Validation Utilities for the MCMC Sampler

This module provides the package exception types, configuration validation,
and diagnostic tools for finished sampler runs.
"""

from typing import Any, Dict, Sequence

import numpy as np

import logging
logger = logging.getLogger('chainmc')


class DimensionMismatchError(ValueError):
    """Raised when chains or parameter vectors that must align do not."""


class DeserializationError(ValueError):
    """Raised when a serialized results buffer is corrupt or incomplete."""


def validate_mcmc_config(mcmc_config: Dict[str, Any]) -> None:
    """
    Validates that MCMC configuration is sensible.

    Every violated constraint is collected so the caller sees all problems at
    once rather than fixing them one at a time.

    Args:
        mcmc_config: Configuration dictionary (lowercase keys)

    Raises:
        ValueError: If configuration is invalid
    """
    errors = []

    required_keys = ['num_chains', 'warmup_iterations', 'sampling_iterations',
                     'thinning_interval']
    for key in required_keys:
        if key not in mcmc_config:
            errors.append(f"Missing required config key: '{key}'")

    if 'num_chains' in mcmc_config:
        if mcmc_config['num_chains'] < 1:
            errors.append("num_chains must be >= 1")

    if 'warmup_iterations' in mcmc_config:
        if mcmc_config['warmup_iterations'] < 0:
            errors.append("warmup_iterations must be >= 0")

    if 'sampling_iterations' in mcmc_config:
        if mcmc_config['sampling_iterations'] < 1:
            errors.append("sampling_iterations must be >= 1")

    if 'thinning_interval' in mcmc_config:
        if mcmc_config['thinning_interval'] < 1:
            errors.append("thinning_interval must be >= 1")

    if 'progress_rate' in mcmc_config:
        rate = mcmc_config['progress_rate']
        if rate <= 0 or rate > 1:
            errors.append(f"progress_rate must be in (0, 1], got {rate}")

    settings = mcmc_config.get('proposal_settings') or {}
    low = settings.get('target_accept_low')
    high = settings.get('target_accept_high')
    if low is not None and not 0 <= low <= 1:
        errors.append(f"target_accept_low must be in [0, 1], got {low}")
    if high is not None and not 0 <= high <= 1:
        errors.append(f"target_accept_high must be in [0, 1], got {high}")
    if low is not None and high is not None and low > high:
        errors.append(f"target_accept_low ({low}) cannot exceed target_accept_high ({high})")
    if settings.get('cov_mult', 1.0) <= 0:
        errors.append(f"cov_mult must be > 0, got {settings['cov_mult']}")
    identity_prob = settings.get('identity_prob')
    if identity_prob is not None and not 0 <= identity_prob <= 1:
        errors.append(f"identity_prob must be in [0, 1], got {identity_prob}")

    if errors:
        raise ValueError("Invalid MCMC configuration:\n  " + "\n  ".join(errors))


def diagnose_sampler_issues(chain_values: Sequence[np.ndarray], acceptance_rates: np.ndarray,
                            diagnostics: Dict[str, Any]) -> Dict[str, Any]:
    """
    Inspect a finished run for symptoms of a misconfigured sampler.

    Chains are checked on their own histories, so a cancelled run whose chains
    stopped at different iterations is still inspected in full.

    Args:
        chain_values: One (n_iterations_i, n_params) array per chain
        acceptance_rates: Acceptance rate per chain (n_chains,)
        diagnostics: Run facts to carry into the report (e.g. wall_time)

    Returns:
        Copy of diagnostics with 'issues', 'warnings' and 'info' lists added
    """
    report = dict(diagnostics, issues=[], warnings=[], info=[])
    rates = np.asarray(acceptance_rates, dtype=np.float64)
    lengths = [len(values) for values in chain_values]

    if sum(lengths) == 0:
        report['issues'].append("No iterations were recorded")
        return report

    ran = [i for i, n in enumerate(lengths) if n > 0]
    empty = [i for i, n in enumerate(lengths) if n == 0]
    if empty:
        report['issues'].append(f"Chains {empty} recorded no iterations")
    if len(set(lengths)) > 1:
        report['warnings'].append(f"Chains stopped at unequal lengths {lengths}")

    bad_chains = [i for i in ran if not np.all(np.isfinite(chain_values[i]))]
    if bad_chains:
        report['issues'].append(f"Chains {bad_chains} recorded NaN or Inf parameter values")

    never_moved = [i for i in ran if rates[i] == 0.0]
    if never_moved:
        report['issues'].append(
            f"Chains {never_moved} never accepted a proposal; the initial state "
            f"may lie where the log-likelihood is -inf")

    stuck = sum(1 for i in ran if np.all(np.ptp(chain_values[i], axis=0) < 1e-10))
    if stuck:
        report['warnings'].append(f"{stuck} chain(s) appear stuck (no parameter moved)")

    low = sum(1 for i in ran if rates[i] < 0.10)
    if low:
        report['warnings'].append(f"{low} chain(s) have acceptance rate < 10%")
    high = sum(1 for i in ran if rates[i] > 0.90)
    if high:
        report['warnings'].append(f"{high} chain(s) accept > 90% of proposals; steps may be too small")

    if len(set(lengths)) == 1:
        report['info'].append(f"Iterations per chain: {lengths[0]}")
    else:
        report['info'].append(f"Iterations per chain: {min(lengths)} to {max(lengths)}")
    report['info'].append(f"Number of chains: {len(lengths)}")
    report['info'].append(f"Number of parameters: {chain_values[ran[0]].shape[1]}")
    return report


def print_diagnostics(diagnostics: Dict[str, Any]) -> None:
    """Log a report from diagnose_sampler_issues at matching levels."""
    levels = (('issues', logger.error), ('warnings', logger.warning), ('info', logger.info))
    for key, log in levels:
        for message in diagnostics[key]:
            log(f"  [{key}] {message}")

    if not diagnostics['issues'] and not diagnostics['warnings']:
        logger.info("  No sampler issues detected")
