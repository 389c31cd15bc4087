"""
MCMC Subpackage - Core MCMC sampling implementation.

This package contains the core MCMC sampling logic:
- types: Core data structures (ParameterSet, ProposalType, ChainPhase, RunParams)
- rng: Per-chain random streams derived from the master seed
- chain: Single-chain Metropolis-Hastings loop
- sampler: Multi-chain orchestrator (MCMCSampler)
- config: Configuration and validation
- diagnostics: ESS, Gelman-Rubin R-hat, minimum sample size
- init_utils: Latin hypercube chain initialization
- utils: Miscellaneous utilities
"""

# Import types first (needed by other modules)
from .types import ParameterSet, ProposalType, ChainPhase, RunParams

# Import main entry points
from .chain import Chain
from .sampler import MCMCSampler

# Import commonly used functions
from .config import (
    configure_mcmc_system,
    validate_mcmc_inputs,
)
from .diagnostics import (
    effective_sample_size,
    gelman_rubin,
    minimum_sample_size,
    mean_log_likelihood,
    log_rhat_summary,
    log_acceptance_summary,
)
from .init_utils import latin_hypercube_candidates, select_initial_states
from .rng import ChainRandom, master_key

__all__ = [
    # Main entry points
    'MCMCSampler',
    'Chain',
    # Types
    'ParameterSet',
    'ProposalType',
    'ChainPhase',
    'RunParams',
    'ChainRandom',
    # Config
    'configure_mcmc_system',
    'validate_mcmc_inputs',
    'master_key',
    # Diagnostics
    'effective_sample_size',
    'gelman_rubin',
    'minimum_sample_size',
    'mean_log_likelihood',
    'log_rhat_summary',
    'log_acceptance_summary',
    # Initialization
    'latin_hypercube_candidates',
    'select_initial_states',
]
