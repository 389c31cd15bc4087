"""
Per-chain random streams.

Every chain owns exactly one ChainRandom. Its JAX key is derived from the
run's master key and the chain index with fold_in, so streams are independent
across chains and reproducible regardless of thread scheduling.

JAX draws are made in blocks and served from host-side buffers; a JAX call per
iteration would dominate the cost of a cheap log-likelihood.
"""

import jax.numpy as jnp
import jax.random as random
import numpy as np

DEFAULT_BLOCK_SIZE = 1024


def master_key(rng_seed: int):
    """The run's master key. Chain keys are folded out of it."""
    return random.PRNGKey(rng_seed)


def chain_key(key, chain_index: int):
    """Derive the key for one chain from the run's master key."""
    return random.fold_in(key, chain_index)


class ChainRandom:
    """
    Buffered random stream for a single chain.

    Args:
        key: JAX PRNG key owned by this chain
        dimension: Length of the standard normal vectors returned by normal()
        block_size: Number of draws fetched from JAX per refill
        dtype: Precision the draws are generated and buffered in
               (jnp.float32 when the run has use_double=False)
    """

    def __init__(self, key, dimension: int, block_size: int = DEFAULT_BLOCK_SIZE,
                 dtype=jnp.float64):
        self._key = key
        self.dimension = int(dimension)
        self._block_size = int(block_size)
        self.dtype = np.dtype(dtype)
        self._normals = np.empty((0, self.dimension), dtype=self.dtype)
        self._normal_pos = 0
        self._uniforms = np.empty(0, dtype=self.dtype)
        self._uniform_pos = 0

    @classmethod
    def from_seed(cls, rng_seed: int, chain_index: int, dimension: int,
                  block_size: int = DEFAULT_BLOCK_SIZE, dtype=jnp.float64) -> 'ChainRandom':
        """The stream MCMCSampler gives chain `chain_index` of a run seeded with `rng_seed`."""
        return cls(chain_key(master_key(rng_seed), chain_index), dimension, block_size, dtype)

    def _next_key(self):
        self._key, sub_key = random.split(self._key)
        return sub_key

    def normal(self) -> np.ndarray:
        """One standard normal vector of length `dimension`."""
        if self._normal_pos >= self._normals.shape[0]:
            draws = random.normal(self._next_key(), shape=(self._block_size, self.dimension),
                                  dtype=self.dtype)
            self._normals = np.asarray(draws, dtype=self.dtype)
            self._normal_pos = 0
        z = self._normals[self._normal_pos]
        self._normal_pos += 1
        return z

    def uniform(self) -> float:
        """One uniform draw on [0, 1)."""
        if self._uniform_pos >= self._uniforms.shape[0]:
            draws = random.uniform(self._next_key(), shape=(self._block_size,), dtype=self.dtype)
            self._uniforms = np.asarray(draws, dtype=self.dtype)
            self._uniform_pos = 0
        u = float(self._uniforms[self._uniform_pos])
        self._uniform_pos += 1
        return u

    def integers(self, low: int, high: int) -> int:
        """One integer draw on [low, high)."""
        if high <= low:
            raise ValueError(f"high ({high}) must be greater than low ({low})")
        return min(low + int(self.uniform() * (high - low)), high - 1)
