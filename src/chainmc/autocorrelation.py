"""
Sample autocorrelation functions.

Conventions follow R's acf(): the mean is removed once and every lag's sum
of products is divided by n (not n - lag), so the autocovariance sequence is
positive semi-definite. The default maximum lag is floor(min(10 log10 n, n - 1)).

Functions:
    autocorrelation: ACF, autocovariance or partial ACF as (lags, values)
    correlation_confidence_interval: White-noise bounds for a sample ACF
    default_lag_max: R's default maximum lag for a series of length n
"""

import math

import numpy as np
from scipy import stats

KINDS = ('correlation', 'covariance', 'partial')


def default_lag_max(n: int) -> int:
    return int(math.floor(min(10.0 * math.log10(n), n - 1)))


def _autocovariance(x: np.ndarray, lag_max: int) -> np.ndarray:
    """Autocovariance at lags 0..lag_max via a zero-padded FFT."""
    n = x.shape[0]
    centered = x - x.mean()
    nfft = 1 << (2 * n - 1).bit_length()
    spectrum = np.fft.rfft(centered, nfft)
    acvf = np.fft.irfft(spectrum * np.conj(spectrum), nfft)[:lag_max + 1]
    return acvf / n


def _durbin_levinson(acvf: np.ndarray, lag_max: int) -> np.ndarray:
    """Partial autocorrelations at lags 1..lag_max from an autocovariance sequence."""
    pacf = np.empty(lag_max)
    phi = np.zeros(lag_max)
    phi[0] = acvf[1] / acvf[0]
    pacf[0] = phi[0]
    v = acvf[0] * (1.0 - phi[0] ** 2)

    for k in range(2, lag_max + 1):
        prev = phi[:k - 1].copy()
        phi_kk = (acvf[k] - np.dot(prev, acvf[k - 1:0:-1])) / v
        phi[:k - 1] = prev - phi_kk * prev[::-1]
        phi[k - 1] = phi_kk
        v *= 1.0 - phi_kk ** 2
        pacf[k - 1] = phi_kk

    return pacf


def autocorrelation(series, lag_max: int = -1, kind: str = 'correlation'):
    """
    Sample autocorrelation function of a series.

    Args:
        series: 1-D sequence of observations
        lag_max: Largest lag to compute; negative selects default_lag_max(n)
        kind: 'correlation' (ACF), 'covariance' (ACVF) or 'partial' (PACF)

    Returns:
        (lags, values): Integer lags and the function values at them. ACF and
        ACVF start at lag 0; the PACF starts at lag 1.

    Raises:
        ValueError: If the series has fewer than two points, lag_max is zero
                    or not below n, or kind is unknown
    """
    if kind not in KINDS:
        raise ValueError(f"Unknown autocorrelation kind '{kind}'. Valid kinds: {list(KINDS)}")

    x = np.asarray(series, dtype=np.float64).reshape(-1)
    n = x.shape[0]
    if n < 2:
        raise ValueError(f"At least two observations are required, got {n}")
    if lag_max < 0:
        lag_max = default_lag_max(n)
    if lag_max < 1 or lag_max >= n:
        raise ValueError(f"lag_max must be in [1, {n - 1}], got {lag_max}")

    acvf = _autocovariance(x, lag_max)

    if kind == 'covariance':
        return np.arange(lag_max + 1), acvf
    if kind == 'partial':
        return np.arange(1, lag_max + 1), _durbin_levinson(acvf, lag_max)

    with np.errstate(divide='ignore', invalid='ignore'):
        acf = acvf / acvf[0]
    return np.arange(lag_max + 1), acf


def correlation_confidence_interval(sample_size: int, interval: float = 0.95):
    """
    Approximate (lower, upper) bounds for the ACF of white noise.

    Sample autocorrelations outside these bounds are significant at the
    1 - interval level.
    """
    alpha = 0.5 * (1.0 - interval)
    root_n = math.sqrt(sample_size)
    return stats.norm.ppf(alpha) / root_n, stats.norm.ppf(1.0 - alpha) / root_n
