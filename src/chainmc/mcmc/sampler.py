"""
MCMC Sampler - orchestration of independent chains.

The sampler validates a run configuration, builds one Chain per requested
chain (each with its own JAX-derived random stream, proposal state and
log-likelihood callable), runs them to completion, then aggregates:

- output: thinned post-warm-up samples, concatenated chain by chain
- chain_outputs: the same samples grouped per chain
- acceptance_rates: one rate per chain
- map: highest-fitness state across every chain's initial state and full history
- mean_log_likelihood: per-iteration log-likelihood averaged across chains
- diagnostics: stuck-chain and acceptance checks, logged on completion

Chains share nothing mutable while stepping. With parallel=True each chain
runs in its own ThreadPoolExecutor worker; aggregation starts only after
every worker has returned.

Usage:
    sampler = MCMCSampler(log_likelihood)
    sampler.configure(num_chains=4, warmup_iterations=1000,
                      sampling_iterations=5000, thinning_interval=1,
                      initial_states=[np.zeros(2)] * 4)
    sampler.run()
    sampler.output, sampler.map, sampler.acceptance_rates
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from ..error_handling import diagnose_sampler_issues, print_diagnostics
from ..proposals import make_gradient, make_proposal_state
from .chain import Chain, safe_log_likelihood
from .config import build_run_params, configure_mcmc_system, validate_mcmc_inputs
from .diagnostics import log_acceptance_summary, mean_log_likelihood
from .rng import ChainRandom, chain_key
from .types import ParameterSet, ProposalType

import logging
logger = logging.getLogger('chainmc')


class MCMCSampler:
    """
    Runs M independent Metropolis-Hastings chains against one target density.

    Args:
        log_likelihood: fn(values) -> float shared by every chain. It is called
                        from several threads when parallel=True, so it must be
                        safe to call concurrently.
        log_likelihood_factory: Alternative to log_likelihood for stateful
                        evaluators; called as factory(chain_index) once per
                        chain so no two chains share an instance.
        progress_callback: Optional fn(fraction, text) invoked as sampling
                        advances, at most once per progress_rate of the total
                        work. May be called from worker threads.
        gradient: Optional fn(values) -> (P,) gradient of the log-likelihood,
                        used by the MALA proposal. Without it MALA differentiates
                        each chain's log-likelihood with jax.grad.
    """

    def __init__(self, log_likelihood: Optional[Callable] = None,
                 log_likelihood_factory: Optional[Callable[[int], Callable]] = None,
                 progress_callback: Optional[Callable[[float, str], None]] = None,
                 gradient: Optional[Callable] = None):
        if (log_likelihood is None) == (log_likelihood_factory is None):
            raise ValueError("Provide exactly one of log_likelihood or log_likelihood_factory")

        self._log_likelihood = log_likelihood
        self._log_likelihood_factory = log_likelihood_factory
        self.progress_callback = progress_callback
        self._gradient = gradient

        self.user_config: Optional[Dict[str, Any]] = None
        self.runtime_ctx: Optional[Dict[str, Any]] = None
        self.run_params = None

        self._likelihoods: List[Callable] = []
        self._initial_states: List[ParameterSet] = []
        self._cancel_event = threading.Event()
        self._progress_lock = threading.Lock()
        self._progress = 0
        self._reset_outputs()

    @classmethod
    def from_config(cls, mcmc_config: Dict[str, Any], initial_states: Sequence,
                    log_likelihood: Optional[Callable] = None,
                    log_likelihood_factory: Optional[Callable[[int], Callable]] = None,
                    progress_callback: Optional[Callable[[float, str], None]] = None,
                    gradient: Optional[Callable] = None) -> 'MCMCSampler':
        """Build and configure a sampler from a config dict (see configure_mcmc_system)."""
        sampler = cls(log_likelihood, log_likelihood_factory, progress_callback, gradient)
        sampler._configure(mcmc_config, initial_states)
        return sampler

    def _reset_outputs(self) -> None:
        self.chains: tuple = ()
        self.chain_outputs: List[List[ParameterSet]] = []
        self.output: List[ParameterSet] = []
        self.acceptance_rates = np.empty(0)
        self.map: Optional[ParameterSet] = None
        self.mean_log_likelihood = np.empty(0)
        self.cancelled = False
        self.has_run = False
        self.diagnostics = {}

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure(self, num_chains: int, warmup_iterations: int, sampling_iterations: int,
                  thinning_interval: int, initial_states: Sequence, **options) -> 'MCMCSampler':
        """
        Validate and store the run configuration.

        Args:
            num_chains: Number of chains M (>= 1; R-hat needs >= 2)
            warmup_iterations: Iterations per chain excluded from output (>= 0)
            sampling_iterations: Iterations per chain after warm-up (>= 1)
            thinning_interval: Keep every k-th post-warm-up sample (>= 1)
            initial_states: One state per chain, or a single state for all
                            chains; ParameterSets or plain vectors (evaluated)
            **options: Any other config key: rng_seed, proposal_type,
                       proposal_scale, proposal_covariance, proposal_settings,
                       parallel, use_double, progress_rate

        Raises:
            ValueError: Naming every violated constraint
            DimensionMismatchError: If initial states or proposal shapes disagree
        """
        mcmc_config = dict(options)
        mcmc_config.update(
            num_chains=num_chains,
            warmup_iterations=warmup_iterations,
            sampling_iterations=sampling_iterations,
            thinning_interval=thinning_interval,
        )
        return self._configure(mcmc_config, initial_states)

    def _configure(self, mcmc_config: Dict[str, Any], initial_states: Sequence) -> 'MCMCSampler':
        user_config, runtime_ctx = configure_mcmc_system(mcmc_config)
        num_params = validate_mcmc_inputs(
            user_config, initial_states,
            user_config.get('proposal_scale'), user_config.get('proposal_covariance'))

        # Fails fast on a non positive definite covariance
        make_proposal_state(num_params, user_config.get('proposal_scale'),
                            user_config.get('proposal_covariance'))

        self.user_config = user_config
        self.runtime_ctx = runtime_ctx
        self.run_params = build_run_params(user_config, num_params)

        num_chains = self.run_params.NUM_CHAINS
        if self._log_likelihood_factory is not None:
            self._likelihoods = [self._log_likelihood_factory(i) for i in range(num_chains)]
        else:
            self._likelihoods = [self._log_likelihood] * num_chains

        if len(initial_states) == 1:
            initial_states = list(initial_states) * num_chains
        self._initial_states = [
            self._initial_parameter_set(state, self._likelihoods[i])
            for i, state in enumerate(initial_states)
        ]
        self._reset_outputs()

        logger.debug(f"Configured {num_chains} chains x {num_params} params, "
                     f"proposal={self.run_params.PROPOSAL_TYPE}")
        return self

    @staticmethod
    def _initial_parameter_set(state, log_likelihood) -> ParameterSet:
        if isinstance(state, ParameterSet):
            if np.isfinite(state.fitness):
                return state.clone()
            return state.with_fitness(-np.inf)
        values = np.asarray(state, dtype=np.float64).reshape(-1)
        return ParameterSet(values, safe_log_likelihood(log_likelihood, values))

    @property
    def is_configured(self) -> bool:
        return self.run_params is not None

    @property
    def num_chains(self) -> int:
        return self.run_params.NUM_CHAINS

    @property
    def num_params(self) -> int:
        return self.run_params.NUM_PARAMS

    @property
    def warmup_iterations(self) -> int:
        return self.run_params.WARMUP_ITERATIONS

    @property
    def thinning_interval(self) -> int:
        return self.run_params.THINNING_INTERVAL

    @property
    def initial_states(self) -> List[ParameterSet]:
        return list(self._initial_states)

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def _build_chains(self) -> List[Chain]:
        rp = self.run_params
        master_key = self.runtime_ctx['master_key']
        float_dtype = self.runtime_ctx['jnp_float_dtype']
        settings = self.runtime_ctx['settings']
        uses_gradient = rp.PROPOSAL_TYPE == ProposalType.MALA

        chains = []
        for i in range(rp.NUM_CHAINS):
            proposal_state = make_proposal_state(
                rp.NUM_PARAMS, self.user_config.get('proposal_scale'),
                self.user_config.get('proposal_covariance'),
                make_gradient(self._likelihoods[i], self._gradient) if uses_gradient else None)
            chains.append(Chain(
                index=i,
                initial_state=self._initial_states[i],
                log_likelihood=self._likelihoods[i],
                proposal_type=rp.PROPOSAL_TYPE,
                proposal_state=proposal_state,
                rng=ChainRandom(chain_key(master_key, i), rp.NUM_PARAMS, dtype=float_dtype),
                settings=settings,
                warmup_iterations=rp.WARMUP_ITERATIONS,
            ))
        return chains

    def _on_iteration(self, chain_index: int) -> None:
        if self.progress_callback is None:
            return
        total = self.run_params.NUM_CHAINS * self.run_params.TOTAL_ITERATIONS
        step = max(1, int(total * self.user_config['progress_rate']))
        with self._progress_lock:
            self._progress += 1
            progress = self._progress
        if progress % step == 0 or progress == total:
            fraction = progress / total
            self.progress_callback(fraction, f"{fraction * 100:.0f}%")

    def run(self) -> 'MCMCSampler':
        """
        Run every chain for warm-up + sampling iterations, then aggregate.

        Each run starts from the configured initial states with fresh streams
        derived from rng_seed, so repeated runs reproduce the same chains.
        Exceptions raised by the log-likelihood stop the remaining chains and
        propagate.

        Raises:
            RuntimeError: If the sampler has not been configured
        """
        if not self.is_configured:
            raise RuntimeError("MCMCSampler.configure() must be called before run()")

        rp = self.run_params
        self._cancel_event.clear()
        self._progress = 0
        self._reset_outputs()
        chains = self._build_chains()
        n_iterations = rp.TOTAL_ITERATIONS

        logger.info(f"--- MCMC RUN ({rp.NUM_CHAINS} chains, {rp.WARMUP_ITERATIONS} warm-up + "
                    f"{rp.SAMPLING_ITERATIONS} sampling iterations) ---")
        start = time.perf_counter()

        if rp.PARALLEL and rp.NUM_CHAINS > 1:
            with ThreadPoolExecutor(max_workers=rp.NUM_CHAINS) as executor:
                futures = [
                    executor.submit(chain.run, n_iterations, self._cancel_event, self._on_iteration)
                    for chain in chains
                ]
                try:
                    for future in futures:
                        future.result()
                except Exception:
                    self._cancel_event.set()
                    raise
        else:
            for chain in chains:
                chain.run(n_iterations, self._cancel_event, self._on_iteration)

        wall_time = time.perf_counter() - start
        logger.info(f"  Total Wall Time: {timedelta(seconds=int(wall_time))} ({wall_time:.2f}s)")

        self._aggregate(chains, wall_time)
        return self

    def cancel(self) -> None:
        """Request cooperative cancellation; chains stop at the next iteration boundary."""
        self._cancel_event.set()

    # ------------------------------------------------------------------
    # Aggregation (after the barrier; chains are no longer stepping)
    # ------------------------------------------------------------------

    def _aggregate(self, chains: List[Chain], wall_time: float) -> None:
        thin = self.run_params.THINNING_INTERVAL

        self.chains = tuple(chains)
        self.chain_outputs = [list(chain.thinned(thin)) for chain in chains]
        self.output = [state for chain_output in self.chain_outputs for state in chain_output]
        self.acceptance_rates = np.array([chain.acceptance_rate for chain in chains])

        best = None
        for chain in chains:
            if chain.best is not None and (best is None or chain.best.fitness > best.fitness):
                best = chain.best
        self.map = best

        lengths = [len(chain) for chain in chains]
        common = min(lengths)
        if len(set(lengths)) > 1:
            logger.warning(f"Chains stopped at different iterations {lengths}; "
                           f"mean log-likelihood uses the first {common}")
        self.mean_log_likelihood = mean_log_likelihood(
            [chain.fitness_array()[:common] for chain in chains])

        self.cancelled = self._cancel_event.is_set()
        self.has_run = True

        if self.cancelled:
            logger.warning(f"Sampling cancelled after {common} iterations per chain")
        log_acceptance_summary(self.acceptance_rates)

        self.diagnostics = diagnose_sampler_issues(
            [chain.values_array() for chain in chains], self.acceptance_rates,
            {'wall_time': wall_time, 'cancelled': self.cancelled})
        print_diagnostics(self.diagnostics)

    @property
    def markov_chains(self) -> List[tuple]:
        """Full, unthinned history of every chain."""
        return [chain.history for chain in self.chains]

    def output_array(self) -> np.ndarray:
        """Thinned output values as an (n_output, P) array."""
        if not self.output:
            return np.empty((0, self.num_params))
        return np.stack([s.values for s in self.output])
