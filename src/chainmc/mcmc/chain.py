"""
Single Markov chain: Metropolis-Hastings accept/reject loop.

A Chain owns everything it mutates while stepping: its current state, its
history, its counters, its ProposalState and its ChainRandom. Nothing is
shared with other chains, so chains can step concurrently without locks.

Per iteration:
    1. Propose x' from the current state x
    2. Evaluate the log-likelihood at x' exactly once (NaN/inf -> -inf)
    3. log_alpha = L(x') - L(x) + log_hastings_ratio
    4. Accept iff log(u) < log_alpha, u ~ U[0, 1) from the chain's own stream
    5. Append the resulting state to history (accepted or not)
    6. Update counters; every ADAPT_EVERY warm-up iterations rescale the
       proposal toward the target acceptance window
"""

import math
from typing import Callable, List, Optional

import numpy as np

from ..proposals import get_proposal
from ..settings import SettingSlot
from .types import ChainPhase, ParameterSet, ProposalType

import logging
logger = logging.getLogger('chainmc')


def safe_log_likelihood(log_likelihood: Callable, values: np.ndarray) -> float:
    """
    Evaluate a log-likelihood, mapping NaN and +/-inf to -inf.

    Exceptions raised by the callback propagate; only non-finite results are
    treated as a numerically invalid region.
    """
    value = float(log_likelihood(values))
    if not math.isfinite(value):
        return -math.inf
    return value


class Chain:
    """
    One Markov chain.

    Args:
        index: Chain index within the run
        initial_state: Starting ParameterSet (fitness already evaluated)
        log_likelihood: fn(values) -> float, owned by or safe to share with this chain
        proposal_type: ProposalType used to generate candidates
        proposal_state: ProposalState owned by this chain
        rng: ChainRandom owned by this chain
        settings: Settings array indexed by SettingSlot (read-only)
        warmup_iterations: Iterations before the chain enters the sampling phase
    """

    def __init__(self, index: int, initial_state: ParameterSet, log_likelihood: Callable,
                 proposal_type: ProposalType, proposal_state, rng, settings: np.ndarray,
                 warmup_iterations: int = 0):
        self.index = index
        self.proposal_type = ProposalType(proposal_type)
        self.proposal_state = proposal_state
        self.rng = rng
        self.settings = settings
        self.warmup_iterations = int(warmup_iterations)

        self._log_likelihood = log_likelihood
        self._proposal_fn = get_proposal(self.proposal_type)
        self._state = initial_state
        self._history: List[ParameterSet] = []
        self._best: ParameterSet = initial_state

        self.accept_count = 0
        self.sample_count = 0
        self._window_accepts = 0
        self._window_count = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> ParameterSet:
        return self._state

    @property
    def phase(self) -> ChainPhase:
        if self.sample_count < self.warmup_iterations:
            return ChainPhase.WARMUP
        return ChainPhase.SAMPLING

    @property
    def acceptance_rate(self) -> float:
        """Fraction of accepted proposals; 0.0 before the first iteration."""
        if self.sample_count == 0:
            return 0.0
        return self.accept_count / self.sample_count

    @property
    def best(self) -> ParameterSet:
        """Highest-fitness state seen by this chain, its initial state included."""
        return self._best

    def __len__(self):
        return len(self._history)

    # ------------------------------------------------------------------
    # Stepping
    # ------------------------------------------------------------------

    def step(self) -> bool:
        """
        Run one Metropolis-Hastings iteration.

        Returns:
            True if the proposal was accepted
        """
        current = self._state
        in_warmup = self.phase == ChainPhase.WARMUP

        proposal, log_hastings = self._proposal_fn(
            self.rng, current.values, self.proposal_state, self.settings)
        self.proposal_state.iteration += 1
        proposal = np.asarray(proposal, dtype=np.float64)
        proposal.flags.writeable = False

        log_lh = safe_log_likelihood(self._log_likelihood, proposal)
        log_ratio = log_lh - current.fitness + log_hastings

        u = self.rng.uniform()
        log_u = math.log(u) if u > 0.0 else -math.inf
        # NaN ratios (e.g. -inf minus -inf) compare False and are rejected
        accepted = log_u < log_ratio

        if accepted:
            self._state = ParameterSet(proposal, log_lh)
            self.accept_count += 1
        self.sample_count += 1
        self._record(self._state)

        if in_warmup:
            self._window_accepts += int(accepted)
            self._window_count += 1
            self._adapt()

        return accepted

    def run(self, n_iterations: int, cancel_event=None,
            on_iteration: Optional[Callable[[int], None]] = None) -> 'Chain':
        """
        Step the chain up to n_iterations times.

        The cancel event is checked once per iteration; a cancelled chain keeps
        every iteration completed so far.
        """
        for _ in range(n_iterations):
            if cancel_event is not None and cancel_event.is_set():
                logger.debug(f"Chain {self.index} cancelled after {self.sample_count} iterations")
                break
            self.step()
            if on_iteration is not None:
                on_iteration(self.index)
        return self

    def _record(self, state: ParameterSet) -> None:
        self._history.append(state)
        if state.fitness > self._best.fitness:
            self._best = state
        if self.proposal_type == ProposalType.ADAPTIVE_COVARIANCE:
            self.proposal_state.running.push(state.values)

    def _adapt(self) -> None:
        """Rescale the proposal variance once per adaptation window."""
        adapt_every = int(self.settings[SettingSlot.ADAPT_EVERY])
        if adapt_every <= 0 or self._window_count < adapt_every:
            return

        rate = self._window_accepts / self._window_count
        factor = self.settings[SettingSlot.ADAPT_FACTOR]
        if rate < self.settings[SettingSlot.TARGET_ACCEPT_LOW]:
            self.proposal_state.factor /= factor
        elif rate > self.settings[SettingSlot.TARGET_ACCEPT_HIGH]:
            self.proposal_state.factor *= factor
        self._window_accepts = 0
        self._window_count = 0

    # ------------------------------------------------------------------
    # Query-time views (history is never thinned at write time)
    # ------------------------------------------------------------------

    @property
    def history(self) -> tuple:
        return tuple(self._history)

    def post_warmup(self) -> tuple:
        return tuple(self._history[self.warmup_iterations:])

    def thinned(self, interval: int) -> tuple:
        """Every interval-th post-warm-up state."""
        if interval < 1:
            raise ValueError(f"thinning interval must be >= 1, got {interval}")
        return tuple(self._history[self.warmup_iterations + interval - 1::interval])

    def values_array(self) -> np.ndarray:
        """History values as an (n, P) array."""
        if not self._history:
            return np.empty((0, self.rng.dimension))
        return np.stack([s.values for s in self._history])

    def fitness_array(self) -> np.ndarray:
        return np.array([s.fitness for s in self._history])
