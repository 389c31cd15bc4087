"""
Tests for proposal distributions.

Tests cover:
- Output shapes for every registered proposal and zero Hastings ratios for the symmetric ones
- Step size scaling with COV_MULT and the adapted factor
- Correlated steps from MULTIVARIATE_NORMAL
- ADAPTIVE_COVARIANCE initial identity period and switch to the running covariance
- MALA drift and its Hastings ratio against Gaussian transition densities
- Registry lookup and proposal type parsing

Run with: pytest tests/test_proposals.py -v
"""

import jax.numpy as jnp
import numpy as np
import pytest
from numpy.testing import assert_allclose
from scipy import stats

from chainmc.mcmc.rng import ChainRandom
from chainmc.mcmc.types import ProposalType
from chainmc.proposals import (
    PROPOSAL_REGISTRY,
    adaptive_proposal,
    get_proposal,
    make_gradient,
    make_proposal_state,
    mala_proposal,
    mvn_proposal,
    parse_proposal_type,
    rand_walk_proposal,
)
from chainmc.proposals.adaptive import INITIAL_PERIOD_PER_PARAM

from .conftest import make_settings_array

SYMMETRIC_PROPOSALS = [ProposalType.RANDOM_WALK, ProposalType.MULTIVARIATE_NORMAL,
                       ProposalType.ADAPTIVE_COVARIANCE]


def standard_normal_gradient(x):
    return -np.asarray(x, dtype=np.float64)


def draw_steps(proposal_fn, state, settings, dim, n=4000, seed=0):
    """Draw n proposals from the origin and return the steps as an (n, dim) array."""
    rng = ChainRandom.from_seed(seed, 0, dim)
    current = np.zeros(dim)
    steps = []
    for _ in range(n):
        proposal, _ = proposal_fn(rng, current, state, settings)
        steps.append(proposal - current)
    return np.array(steps)


# =============================================================================
# COMMON BEHAVIOUR
# =============================================================================

class TestAllProposals:
    """Properties every proposal shares."""

    @pytest.mark.parametrize("proposal_type", list(ProposalType))
    def test_shape(self, proposal_type):
        fn = PROPOSAL_REGISTRY[proposal_type]
        rng = ChainRandom.from_seed(1, 0, 3)
        state = make_proposal_state(3, 0.5, gradient=standard_normal_gradient)
        current = np.array([1.0, 2.0, 3.0])

        proposal, log_hastings = fn(rng, current, state, make_settings_array())

        assert proposal.shape == (3,)
        assert np.all(np.isfinite(proposal))
        assert np.isfinite(log_hastings)
        assert not np.array_equal(proposal, current)

    @pytest.mark.parametrize("proposal_type", SYMMETRIC_PROPOSALS)
    def test_symmetric_hastings_is_zero(self, proposal_type):
        fn = PROPOSAL_REGISTRY[proposal_type]
        rng = ChainRandom.from_seed(1, 0, 3)
        _, log_hastings = fn(rng, np.ones(3), make_proposal_state(3, 0.5), make_settings_array())
        assert log_hastings == 0.0

    @pytest.mark.parametrize("proposal_type", list(ProposalType))
    def test_does_not_modify_state(self, proposal_type):
        fn = PROPOSAL_REGISTRY[proposal_type]
        rng = ChainRandom.from_seed(1, 0, 2)
        state = make_proposal_state(2, 1.0, gradient=standard_normal_gradient)
        current = np.zeros(2)
        fn(rng, current, state, make_settings_array())
        assert state.iteration == 0
        assert state.factor == 1.0
        assert state.running.n == 0
        assert np.all(current == 0.0)

    def test_registry_covers_every_type(self):
        assert set(PROPOSAL_REGISTRY) == set(ProposalType)


# =============================================================================
# RANDOM WALK
# =============================================================================

class TestRandomWalk:
    """Test the diagonal random walk proposal."""

    def test_step_sd_matches_scale(self):
        state = make_proposal_state(2, [0.5, 2.0])
        steps = draw_steps(rand_walk_proposal, state, make_settings_array(), 2)
        assert_allclose(steps.std(axis=0), [0.5, 2.0], rtol=0.05)
        assert_allclose(steps.mean(axis=0), [0.0, 0.0], atol=0.1)

    def test_cov_mult_scales_variance(self):
        state = make_proposal_state(1, 1.0)
        steps = draw_steps(rand_walk_proposal, state, make_settings_array(cov_mult=4.0), 1)
        assert_allclose(steps.std(), 2.0, rtol=0.05)

    def test_factor_scales_variance(self):
        state = make_proposal_state(1, 1.0)
        state.factor = 0.25
        steps = draw_steps(rand_walk_proposal, state, make_settings_array(), 1)
        assert_allclose(steps.std(), 0.5, rtol=0.05)


# =============================================================================
# MULTIVARIATE NORMAL
# =============================================================================

class TestMultivariateNormal:
    """Test the fixed-covariance proposal."""

    def test_step_covariance(self):
        cov = np.array([[1.0, 0.8], [0.8, 1.0]])
        state = make_proposal_state(2, covariance=cov)
        steps = draw_steps(mvn_proposal, state, make_settings_array(), 2, n=8000)
        assert_allclose(np.cov(steps, rowvar=False), cov, atol=0.08)

    def test_cholesky_cached(self):
        state = make_proposal_state(2, covariance=np.eye(2))
        rng = ChainRandom.from_seed(1, 0, 2)
        mvn_proposal(rng, np.zeros(2), state, make_settings_array())
        first = state._cholesky
        mvn_proposal(rng, np.zeros(2), state, make_settings_array())
        assert state._cholesky is first


# =============================================================================
# ADAPTIVE COVARIANCE
# =============================================================================

class TestAdaptiveCovariance:
    """Test the adaptive covariance proposal."""

    def test_identity_during_initial_period(self):
        """Before 100 * P iterations every step uses the small isotropic covariance."""
        dim = 2
        state = make_proposal_state(dim, 5.0)
        steps = draw_steps(adaptive_proposal, state, make_settings_array(), dim)
        expected_sd = np.sqrt(0.1 ** 2 / dim)
        assert_allclose(steps.std(axis=0), [expected_sd, expected_sd], rtol=0.05)

    def test_running_covariance_after_initial_period(self):
        dim = 1
        state = make_proposal_state(dim, 1.0)
        rng = np.random.default_rng(0)
        for x in rng.normal(scale=3.0, size=(2000, dim)):
            state.running.push(x)
        state.iteration = INITIAL_PERIOD_PER_PARAM * dim + 1

        steps = draw_steps(adaptive_proposal, state, make_settings_array(identity_prob=0.0), dim)
        # 2.38^2 / P * var(running) with var ~ 9
        expected_sd = np.sqrt(2.38 ** 2 * state.running.covariance[0, 0])
        assert_allclose(steps.std(), expected_sd, rtol=0.05)

    def test_identity_prob_one_always_identity(self):
        dim = 1
        state = make_proposal_state(dim, 1.0)
        for x in np.linspace(-10, 10, 100):
            state.running.push([x])
        state.iteration = 10 ** 6
        steps = draw_steps(adaptive_proposal, state, make_settings_array(identity_prob=1.0), dim)
        assert_allclose(steps.std(), 0.1, rtol=0.05)

    def test_degenerate_running_covariance_falls_back(self):
        """A chain that never moved has a zero covariance; proposals still move."""
        dim = 2
        state = make_proposal_state(dim, 1.0)
        for _ in range(10):
            state.running.push(np.ones(dim))
        state.iteration = 10 ** 6
        steps = draw_steps(adaptive_proposal, state,
                           make_settings_array(identity_prob=0.0), dim, n=100)
        assert np.all(np.isfinite(steps))
        assert np.all(np.abs(steps).sum(axis=1) > 0)


# =============================================================================
# MALA
# =============================================================================

class TestMala:
    """Test the Langevin drift and its Hastings correction."""

    def test_hastings_matches_normal_densities(self):
        """One parameter, standard normal target: log q(x|x') - log q(x'|x) by hand."""
        sd = 0.7
        state = make_proposal_state(1, sd, gradient=standard_normal_gradient)
        settings = make_settings_array(cov_nugget=0.0)
        rng = ChainRandom.from_seed(5, 0, 1)
        current = np.array([1.0])

        for _ in range(20):
            proposal, log_hastings = mala_proposal(rng, current, state, settings)
            x, y = current[0], proposal[0]
            forward = stats.norm.logpdf(y, loc=x - 0.5 * sd ** 2 * x, scale=sd)
            reverse = stats.norm.logpdf(x, loc=y - 0.5 * sd ** 2 * y, scale=sd)
            assert_allclose(log_hastings, reverse - forward, rtol=1e-10, atol=1e-12)

    def test_hastings_matches_multivariate_densities(self):
        """Full covariance, cov_mult and adapted factor all enter the transition density."""
        base = np.array([[1.0, 0.3], [0.3, 0.5]])
        precision = np.linalg.inv(np.array([[2.0, 0.5], [0.5, 1.0]]))
        state = make_proposal_state(2, covariance=base, gradient=lambda x: -precision @ x)
        state.factor = 1.5
        settings = make_settings_array(cov_mult=0.8, cov_nugget=0.0)
        step_cov = 1.5 * 0.8 * base
        rng = ChainRandom.from_seed(6, 0, 2)
        current = np.array([0.5, -1.0])

        def mean(x):
            return x + 0.5 * step_cov @ (-precision @ x)

        for _ in range(20):
            proposal, log_hastings = mala_proposal(rng, current, state, settings)
            forward = stats.multivariate_normal.logpdf(proposal, mean(current), step_cov)
            reverse = stats.multivariate_normal.logpdf(current, mean(proposal), step_cov)
            assert_allclose(log_hastings, reverse - forward, rtol=1e-8, atol=1e-10)

    def test_drift_moves_toward_mode(self):
        state = make_proposal_state(1, 1.0, gradient=standard_normal_gradient)
        rng = ChainRandom.from_seed(2, 0, 1)
        current = np.array([3.0])
        steps = [mala_proposal(rng, current, state, make_settings_array())[0][0] - 3.0
                 for _ in range(4000)]
        assert abs(np.mean(steps) + 1.5) < 0.1
        assert abs(np.std(steps) - 1.0) < 0.1

    def test_requires_gradient(self):
        rng = ChainRandom.from_seed(1, 0, 2)
        with pytest.raises(ValueError, match="gradient"):
            mala_proposal(rng, np.zeros(2), make_proposal_state(2, 1.0), make_settings_array())

    def test_non_finite_gradient_gives_nan_ratio(self):
        state = make_proposal_state(1, 1.0, gradient=lambda x: np.full_like(x, np.nan))
        rng = ChainRandom.from_seed(1, 0, 1)
        _, log_hastings = mala_proposal(rng, np.zeros(1), state, make_settings_array())
        assert np.isnan(log_hastings)

    def test_make_gradient_differentiates_jax_likelihood(self):
        grad_fn = make_gradient(lambda x: -0.5 * jnp.sum(x ** 2))
        g = grad_fn(np.array([1.0, -2.0]))
        assert g.dtype == np.float64
        assert_allclose(g, [-1.0, 2.0])

    def test_make_gradient_prefers_user_gradient(self):
        grad_fn = make_gradient(None, gradient=lambda x: [4.0, 5.0])
        assert_allclose(grad_fn(np.zeros(2)), [4.0, 5.0])


# =============================================================================
# DISPATCH
# =============================================================================

class TestDispatch:
    """Test proposal type parsing and lookup."""

    @pytest.mark.parametrize("value, expected", [
        (ProposalType.RANDOM_WALK, ProposalType.RANDOM_WALK),
        (1, ProposalType.MULTIVARIATE_NORMAL),
        ('adaptive_covariance', ProposalType.ADAPTIVE_COVARIANCE),
        ('  Random_Walk ', ProposalType.RANDOM_WALK),
    ])
    def test_parse(self, value, expected):
        assert parse_proposal_type(value) is expected

    @pytest.mark.parametrize("value", ['hamiltonian', 7, -1])
    def test_parse_unknown(self, value):
        with pytest.raises(ValueError, match="Valid types"):
            parse_proposal_type(value)

    def test_get_proposal(self):
        assert get_proposal('random_walk') is rand_walk_proposal
        assert get_proposal(ProposalType.MULTIVARIATE_NORMAL) is mvn_proposal
        assert get_proposal(2) is adaptive_proposal
        assert get_proposal('mala') is mala_proposal
