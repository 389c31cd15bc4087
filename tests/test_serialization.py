"""
Results Serialization Tests

Tests the npz-based binary format for MCMCResults:
- Bytes and file round trips preserve every field
- Corrupt, truncated and foreign payloads raise DeserializationError
- Schema header checks (magic, version, missing arrays)

Run with: pytest tests/test_serialization.py -v
"""

import io

import numpy as np
import pytest
from numpy.testing import assert_array_equal

from chainmc.error_handling import DeserializationError
from chainmc.mcmc.sampler import MCMCSampler
from chainmc.results import MCMCResults
from chainmc.serialization import (
    FORMAT_VERSION,
    MAGIC,
    REQUIRED_KEYS,
    load_results,
    results_from_bytes,
    results_to_arrays,
    results_to_bytes,
    save_results,
)

from .conftest import normal_log_likelihood


@pytest.fixture(scope="module")
def results():
    sampler = MCMCSampler(normal_log_likelihood(mean=10.0, sd=1.0))
    sampler.configure(num_chains=2, warmup_iterations=50, sampling_iterations=300,
                      thinning_interval=3, initial_states=[np.array([9.0, 10.0, 11.0])],
                      parallel=False)
    sampler.run()
    return MCMCResults.from_sampler(sampler, alpha=0.05)


def to_npz_bytes(arrays):
    buffer = io.BytesIO()
    np.savez(buffer, **arrays)
    return buffer.getvalue()


# ============================================================================
# ROUND TRIP
# ============================================================================

class TestRoundTrip:
    """Serialized results reload equal to the original."""

    def test_bytes(self, results):
        restored = MCMCResults.from_bytes(results.to_bytes())
        assert restored == results

    def test_fields_preserved(self, results):
        restored = results_from_bytes(results_to_bytes(results))
        assert restored.alpha == 0.05
        assert restored.warmup_iterations == 50
        assert restored.thinning_interval == 3
        assert restored.num_chains == 2
        assert restored.num_params == 3
        assert restored.map == results.map
        assert_array_equal(restored.acceptance_rates, results.acceptance_rates)
        for a, b in zip(restored.parameter_results, results.parameter_results):
            assert a.statistics == b.statistics
            assert a.histogram == b.histogram
            assert_array_equal(a.kernel_density, b.kernel_density)
            assert_array_equal(a.autocorrelation, b.autocorrelation)

    def test_file(self, results, tmp_path):
        path = tmp_path / "run.npz"
        results.save(path)
        assert path.exists()
        assert MCMCResults.load(path) == results
        assert load_results(str(path)) == results

    def test_save_results_function(self, results, tmp_path):
        path = tmp_path / "other.npz"
        save_results(path, results)
        assert load_results(path) == results

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_results(tmp_path / "absent.npz")

    def test_no_pickled_objects(self, results):
        """Every array in the payload loads with pickling disabled."""
        with np.load(io.BytesIO(results.to_bytes()), allow_pickle=False) as npz:
            for key in npz.files:
                assert npz[key].dtype != object

    def test_schema_header(self, results):
        arrays = results_to_arrays(results)
        assert set(arrays) == set(REQUIRED_KEYS)
        assert str(arrays['magic']) == MAGIC
        assert int(arrays['format_version']) == FORMAT_VERSION
        assert arrays['statistics'].shape == (3, 8)
        assert arrays['acf'].shape == (3, 51, 2)


# ============================================================================
# INVALID PAYLOADS
# ============================================================================

class TestInvalidPayloads:
    """Anything other than a complete, consistent payload is rejected."""

    def test_garbage(self):
        with pytest.raises(DeserializationError):
            results_from_bytes(b"definitely not an npz file")

    def test_empty(self):
        with pytest.raises(DeserializationError):
            results_from_bytes(b"")

    def test_truncated(self, results):
        payload = results.to_bytes()
        with pytest.raises(DeserializationError):
            results_from_bytes(payload[:len(payload) // 2])

    def test_wrong_magic(self, results):
        arrays = results_to_arrays(results)
        arrays['magic'] = np.array('something.else')
        with pytest.raises(DeserializationError, match="magic"):
            results_from_bytes(to_npz_bytes(arrays))

    def test_future_version(self, results):
        arrays = results_to_arrays(results)
        arrays['format_version'] = np.array(FORMAT_VERSION + 1)
        with pytest.raises(DeserializationError, match="version"):
            results_from_bytes(to_npz_bytes(arrays))

    def test_missing_array(self, results):
        arrays = results_to_arrays(results)
        del arrays['chain_fitness']
        with pytest.raises(DeserializationError, match="chain_fitness"):
            results_from_bytes(to_npz_bytes(arrays))

    def test_inconsistent_lengths(self, results):
        arrays = results_to_arrays(results)
        arrays['chain_lengths'] = arrays['chain_lengths'] + 1
        with pytest.raises(DeserializationError):
            results_from_bytes(to_npz_bytes(arrays))

    def test_inconsistent_parameter_arrays(self, results):
        arrays = results_to_arrays(results)
        arrays['kde'] = arrays['kde'][:-1]
        with pytest.raises(DeserializationError):
            results_from_bytes(to_npz_bytes(arrays))

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            results_from_bytes(b"\x00\x01")
