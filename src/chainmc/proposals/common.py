"""
Common utilities for proposal distributions.

This module provides shared state and numerics used across the proposal
implementations.

Classes:
    RunningCovariance: Welford online mean/covariance of the chain's states
    ProposalState: Chain-owned adaptive state read by every proposal

Functions:
    regularize_covariance: Scale and add nugget regularization to a covariance matrix
    sample_diffusion: Generate correlated diffusion noise from a Cholesky factor
    make_proposal_state: Build the initial ProposalState for a chain
"""

from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np


class RunningCovariance:
    """
    Online mean and covariance (Welford's algorithm).

    Numerically stable for long chains; no history is stored.
    """

    def __init__(self, dimension: int):
        self.dimension = dimension
        self.n = 0
        self.mean = np.zeros(dimension)
        self._m2 = np.zeros((dimension, dimension))

    def push(self, x) -> None:
        x = np.asarray(x, dtype=np.float64)
        self.n += 1
        delta = x - self.mean
        self.mean = self.mean + delta / self.n
        self._m2 = self._m2 + np.outer(delta, x - self.mean)

    @property
    def covariance(self) -> np.ndarray:
        """Sample covariance (n - 1 denominator). Zeros until two points are seen."""
        if self.n < 2:
            return np.zeros((self.dimension, self.dimension))
        return self._m2 / (self.n - 1)

    @property
    def variance(self) -> np.ndarray:
        return np.diag(self.covariance).copy()


@dataclass
class ProposalState:
    """
    Adaptive proposal state owned by exactly one chain.

    Fields:
        scale: Per-dimension step standard deviations (RANDOM_WALK)
        covariance: Base proposal covariance (MULTIVARIATE_NORMAL, MALA)
        factor: Multiplier on the proposal variance, tuned during warm-up
        running: Running covariance of the chain's states (ADAPTIVE_COVARIANCE)
        iteration: Number of proposals generated so far
        gradient: fn(values) -> (P,) gradient of the log-likelihood (MALA)
    """
    scale: np.ndarray
    covariance: np.ndarray
    factor: float = 1.0
    running: Optional[RunningCovariance] = None
    iteration: int = 0
    _cholesky: Optional[np.ndarray] = field(default=None, repr=False)
    gradient: Optional[Callable] = field(default=None, repr=False)

    def cholesky(self, cov_mult: float, nugget: float) -> np.ndarray:
        """Cholesky factor of the fixed base covariance, computed once."""
        if self._cholesky is None:
            self._cholesky = np.linalg.cholesky(
                regularize_covariance(self.covariance, cov_mult, nugget))
        return self._cholesky


def regularize_covariance(cov, cov_mult=1.0, nugget=1e-10):
    """
    Scale and regularize a covariance matrix for numerical stability.

    Args:
        cov: Input covariance matrix (n, n)
        cov_mult: Covariance multiplier (proposal variance = cov_mult * cov)
        nugget: Small constant added to diagonal

    Returns:
        Regularized covariance matrix: cov_mult * cov + nugget * I
    """
    n = cov.shape[0]
    return cov_mult * cov + nugget * np.eye(n)


def sample_diffusion(noise, L, scale=1.0):
    """
    Generate diffusion noise: scale * (L @ z) where z ~ N(0, I).

    Args:
        noise: Standard normal vector z (n,)
        L: Lower Cholesky factor (n, n)
        scale: Scalar multiplier (e.g. sqrt of the adapted factor)

    Returns:
        Diffusion vector (n,)
    """
    return scale * (L @ noise)


def make_proposal_state(dimension: int, scale=None, covariance=None,
                        gradient=None) -> ProposalState:
    """
    Build the initial proposal state for one chain.

    Args:
        dimension: Number of parameters P
        scale: Scalar or (P,) per-dimension step sizes (default 1.0)
        covariance: (P, P) proposal covariance (default diag(scale**2))
        gradient: Log-likelihood gradient used by MALA

    Raises:
        ValueError: If the scale or covariance shape does not match P, or the
                    covariance is not symmetric positive definite
    """
    if scale is None:
        scale = 1.0
    scale = np.asarray(scale, dtype=np.float64)
    if scale.ndim == 0:
        scale = np.full(dimension, float(scale))
    else:
        scale = scale.copy()
    if scale.shape != (dimension,):
        raise ValueError(f"Proposal scale must have length {dimension}, got shape {scale.shape}")
    if np.any(scale <= 0):
        raise ValueError("Proposal scales must be positive")

    if covariance is None:
        covariance = np.diag(scale ** 2)
    covariance = np.array(covariance, dtype=np.float64)
    if covariance.shape != (dimension, dimension):
        raise ValueError(
            f"The proposal covariance matrix must be {dimension}x{dimension}, got {covariance.shape}")
    if not np.allclose(covariance, covariance.T):
        raise ValueError("The proposal covariance matrix must be symmetric")
    try:
        np.linalg.cholesky(covariance)
    except np.linalg.LinAlgError as e:
        raise ValueError("The proposal covariance matrix must be positive definite") from e

    return ProposalState(scale=scale, covariance=covariance,
                         running=RunningCovariance(dimension), gradient=gradient)
