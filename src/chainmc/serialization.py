"""
Binary serialization of MCMCResults.

The payload is an .npz container (numpy's zip of named arrays) with an
explicit, versioned schema. No pickled objects are written or read, so a
payload can be inspected with any npz reader and loading untrusted data
cannot execute code.

Schema (format_version 1):
    magic, format_version               header
    warmup_iterations, thinning_interval, alpha
    chain_lengths (M,)                  history length of each chain
    chain_values (sum n, P), chain_fitness (sum n,)
    output_values (K, P), output_fitness (K,)
    mean_log_likelihood, acceptance_rates
    has_map, map_values (P,), map_fitness
    statistics (P, 8)                   ParameterStatistics fields in order
    kde_lengths (P,), kde (sum k, 2)
    hist_lengths (P,), hist_edges, hist_counts
    acf (P, 51, 2)
"""

import io
import zipfile
import zlib
from pathlib import Path
from typing import Dict, List

import numpy as np

from .error_handling import DeserializationError
from .mcmc.types import ParameterSet
from .results import (
    STATISTICS_FIELDS,
    Histogram,
    MCMCResults,
    ParameterResults,
    ParameterStatistics,
)

import logging
logger = logging.getLogger('chainmc')

MAGIC = 'chainmc.results'
FORMAT_VERSION = 1

REQUIRED_KEYS = (
    'magic', 'format_version', 'warmup_iterations', 'thinning_interval', 'alpha',
    'chain_lengths', 'chain_values', 'chain_fitness', 'output_values', 'output_fitness',
    'mean_log_likelihood', 'acceptance_rates', 'has_map', 'map_values', 'map_fitness',
    'statistics', 'kde_lengths', 'kde', 'hist_lengths', 'hist_edges', 'hist_counts', 'acf',
)


def _pack_states(states, num_params: int):
    if not states:
        return np.empty((0, num_params)), np.empty(0)
    return np.stack([s.values for s in states]), np.array([s.fitness for s in states])


def _unpack_states(values: np.ndarray, fitness: np.ndarray) -> List[ParameterSet]:
    return [ParameterSet(v, f) for v, f in zip(values, fitness)]


def _split(array: np.ndarray, lengths: np.ndarray) -> List[np.ndarray]:
    return np.split(array, np.cumsum(lengths)[:-1]) if len(lengths) else []


def results_to_arrays(results: MCMCResults) -> Dict[str, np.ndarray]:
    """Flatten results into the named arrays of the current schema."""
    num_params = results.num_params
    chain_states = [s for chain in results.markov_chains for s in chain]
    chain_values, chain_fitness = _pack_states(chain_states, num_params)
    output_values, output_fitness = _pack_states(list(results.output), num_params)

    prs = results.parameter_results
    statistics = np.array([[float(getattr(p.statistics, f)) for f in STATISTICS_FIELDS] for p in prs])

    has_map = results.map is not None
    return {
        'magic': np.array(MAGIC),
        'format_version': np.array(FORMAT_VERSION, dtype=np.int64),
        'warmup_iterations': np.array(results.warmup_iterations, dtype=np.int64),
        'thinning_interval': np.array(results.thinning_interval, dtype=np.int64),
        'alpha': np.array(results.alpha, dtype=np.float64),
        'chain_lengths': np.array([len(c) for c in results.markov_chains], dtype=np.int64),
        'chain_values': chain_values,
        'chain_fitness': chain_fitness,
        'output_values': output_values,
        'output_fitness': output_fitness,
        'mean_log_likelihood': np.asarray(results.mean_log_likelihood),
        'acceptance_rates': np.asarray(results.acceptance_rates),
        'has_map': np.array(has_map),
        'map_values': results.map.values if has_map else np.empty(0),
        'map_fitness': np.array(results.map.fitness if has_map else np.nan),
        'statistics': statistics.reshape(len(prs), len(STATISTICS_FIELDS)),
        'kde_lengths': np.array([p.kernel_density.shape[0] for p in prs], dtype=np.int64),
        'kde': (np.concatenate([p.kernel_density for p in prs]) if prs else np.empty((0, 2))),
        'hist_lengths': np.array([p.histogram.num_bins for p in prs], dtype=np.int64),
        'hist_edges': np.concatenate([p.histogram.edges for p in prs]) if prs else np.empty(0),
        'hist_counts': np.concatenate([p.histogram.counts for p in prs]) if prs else np.empty(0, np.int64),
        'acf': np.stack([p.autocorrelation for p in prs]) if prs else np.empty((0, 0, 2)),
    }


def results_from_arrays(data) -> MCMCResults:
    """Rebuild results from the named arrays of the current schema."""
    missing = [k for k in REQUIRED_KEYS if k not in data]
    if missing:
        raise DeserializationError(f"Results payload is missing arrays: {missing}")
    if str(data['magic']) != MAGIC:
        raise DeserializationError(f"Not a results payload (magic {str(data['magic'])!r})")
    version = int(data['format_version'])
    if version != FORMAT_VERSION:
        raise DeserializationError(
            f"Unsupported results format version {version} (expected {FORMAT_VERSION})")

    chain_lengths = data['chain_lengths']
    chain_values, chain_fitness = data['chain_values'], data['chain_fitness']
    if chain_values.shape[0] != chain_fitness.shape[0] or chain_values.shape[0] != chain_lengths.sum():
        raise DeserializationError("Chain arrays do not match the recorded chain lengths")
    markov_chains = [
        tuple(_unpack_states(v, f))
        for v, f in zip(_split(chain_values, chain_lengths), _split(chain_fitness, chain_lengths))
    ]

    if data['output_values'].shape[0] != data['output_fitness'].shape[0]:
        raise DeserializationError("Output values and fitness have different lengths")
    output = _unpack_states(data['output_values'], data['output_fitness'])

    statistics = data['statistics']
    kde_lengths, hist_lengths = data['kde_lengths'], data['hist_lengths']
    num_params = statistics.shape[0]
    acf = data['acf']
    hist_edge_lengths = np.where(hist_lengths > 0, hist_lengths + 1, 0)
    if (statistics.ndim != 2 or statistics.shape[1] != len(STATISTICS_FIELDS)
            or kde_lengths.shape[0] != num_params or hist_lengths.shape[0] != num_params
            or acf.shape[0] != num_params
            or data['kde'].shape[0] != kde_lengths.sum()
            or data['hist_counts'].shape[0] != hist_lengths.sum()
            or data['hist_edges'].shape[0] != hist_edge_lengths.sum()):
        raise DeserializationError("Parameter result arrays are inconsistent")

    kdes = _split(data['kde'], kde_lengths)
    edges = _split(data['hist_edges'], hist_edge_lengths)
    counts = _split(data['hist_counts'], hist_lengths)
    parameter_results = []
    for i in range(num_params):
        row = dict(zip(STATISTICS_FIELDS, statistics[i].tolist()))
        row['n'] = int(row['n'])
        parameter_results.append(ParameterResults(
            statistics=ParameterStatistics(**row),
            kernel_density=kdes[i],
            histogram=Histogram(edges[i], counts[i]),
            autocorrelation=acf[i],
        ))

    map_state = None
    if bool(data['has_map']):
        map_state = ParameterSet(data['map_values'], float(data['map_fitness']))

    return MCMCResults(
        markov_chains=markov_chains,
        output=output,
        mean_log_likelihood=data['mean_log_likelihood'],
        acceptance_rates=data['acceptance_rates'],
        parameter_results=parameter_results,
        map=map_state,
        warmup_iterations=int(data['warmup_iterations']),
        thinning_interval=int(data['thinning_interval']),
        alpha=float(data['alpha']),
    )


def results_to_bytes(results: MCMCResults) -> bytes:
    buffer = io.BytesIO()
    np.savez_compressed(buffer, **results_to_arrays(results))
    return buffer.getvalue()


def results_from_bytes(payload: bytes) -> MCMCResults:
    """
    Deserialize results written by results_to_bytes.

    Raises:
        DeserializationError: If the payload is not a complete, consistent
                              results container of a supported version
    """
    try:
        with np.load(io.BytesIO(payload), allow_pickle=False) as npz:
            data = {key: npz[key].copy() for key in npz.files}
    except (OSError, EOFError, ValueError, KeyError, zipfile.BadZipFile, zlib.error) as e:
        raise DeserializationError(f"Could not read results payload: {e}") from e

    try:
        return results_from_arrays(data)
    except DeserializationError:
        raise
    except (ValueError, TypeError, IndexError) as e:
        raise DeserializationError(f"Results payload is corrupt: {e}") from e


def save_results(filepath, results: MCMCResults) -> None:
    """Write results to disk as an .npz file."""
    filepath = Path(filepath)
    filepath.write_bytes(results_to_bytes(results))
    logger.info(f"Results saved to {filepath}")


def load_results(filepath) -> MCMCResults:
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Results file not found: {filepath}")
    return results_from_bytes(filepath.read_bytes())
