"""
MCMC Configuration and Initialization.

This module handles setting up and validating MCMC configurations:
- configure_mcmc_system: Main configuration entry point
- validate_mcmc_inputs: Validate initial states and proposal shapes before sampling
- build_run_params: Freeze the validated config into RunParams

Configuration is split into two parts:
- user_config: Serializable config that can be saved/loaded without JAX
- runtime_ctx: JAX-dependent objects that exist only during execution

All config keys use lowercase with underscores (e.g., 'num_chains', 'rng_seed').
"""

import jax
import jax.numpy as jnp
from typing import Any, Dict, Sequence, Tuple

import numpy as np

from ..error_handling import DimensionMismatchError, validate_mcmc_config
from ..settings import build_settings_array
from .rng import master_key
from .types import ParameterSet, RunParams
from .utils import clean_config


def _state_values(state) -> np.ndarray:
    if isinstance(state, ParameterSet):
        return state.values
    return np.asarray(state, dtype=np.float64).reshape(-1)


def validate_mcmc_inputs(config: Dict[str, Any], initial_states: Sequence,
                         proposal_scale=None, proposal_covariance=None) -> int:
    """
    Validate initial states and proposal shapes before sampling.

    Args:
        config: Cleaned user config (needs 'num_chains')
        initial_states: One initial state per chain, or a single state shared
                        by every chain (ParameterSet or array-like)
        proposal_scale: Optional scalar or (P,) step sizes
        proposal_covariance: Optional (P, P) covariance

    Returns:
        The parameter dimension P

    Raises:
        DimensionMismatchError: If initial states or proposal shapes disagree on P
        ValueError: For any other violated constraint
    """
    errors = []

    if initial_states is None or len(initial_states) == 0:
        raise ValueError("MCMC Input Validation Failed:\n  at least one initial state is required")

    num_chains = config['num_chains']
    if len(initial_states) not in (1, num_chains):
        errors.append(
            f"expected 1 or num_chains ({num_chains}) initial states, got {len(initial_states)}")

    dims = [_state_values(s).shape[0] for s in initial_states]
    num_params = dims[0]
    if num_params < 1:
        errors.append(f"Total parameters must be >= 1, got {num_params}")

    mismatched = [i for i, d in enumerate(dims) if d != num_params]
    if mismatched:
        raise DimensionMismatchError(
            f"Initial states must all have dimension {num_params}; "
            f"states {mismatched} have dimensions {[dims[i] for i in mismatched]}")

    if proposal_scale is not None:
        scale = np.asarray(proposal_scale, dtype=np.float64)
        if scale.ndim > 0 and scale.shape != (num_params,):
            raise DimensionMismatchError(
                f"proposal_scale must be a scalar or have length {num_params}, got shape {scale.shape}")

    if proposal_covariance is not None:
        cov = np.asarray(proposal_covariance, dtype=np.float64)
        if cov.ndim != 2 or cov.shape[0] != cov.shape[1]:
            errors.append(f"proposal_covariance must be square, got shape {cov.shape}")
        elif cov.shape[0] != num_params:
            raise DimensionMismatchError(
                f"proposal_covariance must be {num_params}x{num_params}, got {cov.shape}")

    if errors:
        raise ValueError("MCMC Input Validation Failed:\n  " + "\n  ".join(errors))

    return num_params


def build_run_params(user_config: Dict[str, Any], num_params: int) -> RunParams:
    """Freeze the validated config into the run parameters shared by all chains."""
    return RunParams(
        NUM_CHAINS=int(user_config['num_chains']),
        WARMUP_ITERATIONS=int(user_config['warmup_iterations']),
        SAMPLING_ITERATIONS=int(user_config['sampling_iterations']),
        THINNING_INTERVAL=int(user_config['thinning_interval']),
        NUM_PARAMS=int(num_params),
        RNG_SEED=int(user_config['rng_seed']),
        PROPOSAL_TYPE=user_config['proposal_type'],
        PARALLEL=bool(user_config['parallel']),
    )


def configure_mcmc_system(mcmc_config: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Configure the MCMC system from a config dict.

    Splits configuration into:
    - user_config: Serializable values (can be saved to disk without JAX)
    - runtime_ctx: JAX-dependent objects (keys, dtypes) and the settings array

    Args:
        mcmc_config: Input configuration dict with keys like 'num_chains',
                     'warmup_iterations', 'sampling_iterations', ...

    Returns:
        user_config: Clean config dict with user values and defaults applied
        runtime_ctx: Dict with the master key, the float dtype chain streams
                     draw in, and the proposal settings array

    Raises:
        ValueError: If any configuration value is invalid
    """
    mcmc_config = clean_config(mcmc_config)
    validate_mcmc_config(mcmc_config)

    use_double = bool(mcmc_config['use_double'])
    rng_seed = int(mcmc_config['rng_seed'])

    user_config = {
        'num_chains': int(mcmc_config['num_chains']),
        'warmup_iterations': int(mcmc_config['warmup_iterations']),
        'sampling_iterations': int(mcmc_config['sampling_iterations']),
        'thinning_interval': int(mcmc_config['thinning_interval']),
        'rng_seed': rng_seed,
        'use_double': use_double,
        'parallel': bool(mcmc_config['parallel']),
        'proposal_type': mcmc_config['proposal_type'],
        'proposal_settings': dict(mcmc_config['proposal_settings']),
        'progress_rate': float(mcmc_config['progress_rate']),
    }
    for key in ('proposal_scale', 'proposal_covariance'):
        if mcmc_config.get(key) is not None:
            user_config[key] = mcmc_config[key]

    # Configure JAX precision
    if use_double:
        jax.config.update("jax_enable_x64", True)
        jnp_float_dtype = jnp.float64
    else:
        jax.config.update("jax_enable_x64", False)
        jnp_float_dtype = jnp.float32

    runtime_ctx = {
        'jnp_float_dtype': jnp_float_dtype,
        'master_key': master_key(rng_seed),
        'settings': build_settings_array(user_config['proposal_settings']),
    }

    return user_config, runtime_ctx
