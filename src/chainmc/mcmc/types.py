"""
MCMC Data Structures and Type Definitions.

This module contains the core data structures used by the sampler:
- ParameterSet: Immutable parameter vector + fitness (log-likelihood) record
- ProposalType: Enumeration of proposal distribution strategies
- ChainPhase: Warm-up / sampling state of a chain
- RunParams: Immutable, validated run parameters shared by every chain
"""

import math
from dataclasses import dataclass
from enum import Enum, IntEnum

import numpy as np


@dataclass(frozen=True, eq=False)
class ParameterSet:
    """
    A parameter vector and the fitness (log-likelihood or log-posterior)
    evaluated at it.

    The values are copied on construction into a read-only float64 array, so
    an instance never shares backing storage with the caller and can be handed
    across threads without further copying. Transformations return new
    instances; nothing mutates in place.
    """
    values: np.ndarray
    fitness: float

    def __post_init__(self):
        values = np.array(self.values, dtype=np.float64, copy=True).reshape(-1)
        values.flags.writeable = False
        object.__setattr__(self, 'values', values)
        object.__setattr__(self, 'fitness', float(self.fitness))

    @property
    def dimension(self) -> int:
        return self.values.shape[0]

    def clone(self) -> 'ParameterSet':
        """Deep copy with independent backing storage."""
        return ParameterSet(self.values, self.fitness)

    def with_values(self, values) -> 'ParameterSet':
        return ParameterSet(values, self.fitness)

    def with_fitness(self, fitness: float) -> 'ParameterSet':
        return ParameterSet(self.values, fitness)

    def __eq__(self, other):
        if not isinstance(other, ParameterSet):
            return NotImplemented
        same_fitness = (self.fitness == other.fitness
                        or (math.isnan(self.fitness) and math.isnan(other.fitness)))
        return same_fitness and np.array_equal(self.values, other.values, equal_nan=True)

    __hash__ = None

    def __repr__(self):
        return f"ParameterSet(values={self.values.tolist()}, fitness={self.fitness})"


class ProposalType(IntEnum):
    """
    Enumeration of proposal distribution strategies.

    To add a new proposal:
    1. Add enum value here
    2. Create new file in proposals/ directory with proposal function
    3. Add it to PROPOSAL_REGISTRY in proposals/dispatch.py
    """
    RANDOM_WALK = 0          # Independent per-dimension Gaussian steps
    MULTIVARIATE_NORMAL = 1  # Gaussian steps with a fixed full covariance
    ADAPTIVE_COVARIANCE = 2  # Gaussian steps with the chain's running covariance
    MALA = 3                 # Gradient-drifted Gaussian steps (asymmetric)

    def __str__(self):
        return self.name.replace('_', ' ').title()


class ChainPhase(Enum):
    """Warm-up samples are recorded in history but excluded from output."""
    WARMUP = 'warmup'
    SAMPLING = 'sampling'


@dataclass(frozen=True)
class RunParams:
    """
    Immutable run parameters shared read-only by all chains of one run.
    """
    NUM_CHAINS: int
    WARMUP_ITERATIONS: int
    SAMPLING_ITERATIONS: int
    THINNING_INTERVAL: int
    NUM_PARAMS: int
    RNG_SEED: int
    PROPOSAL_TYPE: ProposalType = ProposalType.RANDOM_WALK
    PARALLEL: bool = True

    @property
    def TOTAL_ITERATIONS(self) -> int:
        return self.WARMUP_ITERATIONS + self.SAMPLING_ITERATIONS
