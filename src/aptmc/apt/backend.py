"""
APT Backend - Main Entry Point.

This module provides the orchestrator that drives an adaptive parallel
tempering run, and the run_apt() / run_untempered() conveniences.

Per iteration the driver runs the jitted phase kernels in order:

    SAMPLING  -> every rung takes its MH step(s), in parallel
    SWAPPING  -> adjacent-pair exchanges chosen by the swap policy
    ADAPTING  -> ladder adaptation, only on epoch boundaries
    record    -> cold-rung snapshot appended to the history

and checks for a cooperative stop request only once the iteration is
complete, so the history and the ladder are always consistent with each
other.
"""

import time
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

import jax
import jax.numpy as jnp
import jax.random as random
import numpy as np

from ..error_handling import ConfigurationError, diagnose_sampler_issues, print_diagnostics
from ..settings import Phase
from .adaptation import check_ladder
from .compile import compile_apt_kernels
from .config import configure_apt_system, initialize_apt_system
from .diagnostics import (
    print_acceptance_summary,
    print_round_trip_summary,
    print_swap_acceptance_summary,
    swap_acceptance_rates,
)
from .phases import is_epoch_end
from .sampling import RandomWalkMetropolis
from .types import AdaptationState, AptParams, AptResult, Ladder

import logging
logger = logging.getLogger('aptmc')


class AptSampler:
    """
    Adaptive parallel tempering driver.

    Composed explicitly from a posterior, a per-rung sampler and run
    parameters; nothing is looked up by name.

    Example:
        sampler = AptSampler.from_config(posterior, {
            'initial_state': [0.0, 0.0],
            'n_rungs': 6,
            'num_iterations': 5000,
        })
        result = sampler.run()
    """

    def __init__(self, posterior, params: AptParams, ladder: Ladder, adapt_state: AdaptationState,
                 key, rung_sampler=None, user_config: Optional[Dict[str, Any]] = None):
        self.posterior = posterior
        self.params = params
        self.rung_sampler = rung_sampler if rung_sampler is not None else RandomWalkMetropolis()
        if ladder.n_rungs != params.N_RUNGS:
            raise ConfigurationError(
                f"Ladder has {ladder.n_rungs} rungs but params expect N_RUNGS={params.N_RUNGS}"
            )
        self.user_config = user_config or {}
        self.kernels = compile_apt_kernels(posterior, self.rung_sampler, params)

        self.ladder = ladder
        self.adapt_state = adapt_state
        self.key = key
        self.iteration = 0
        self.phase = Phase.INITIALIZING

        self._states = []
        self._log_posts = []
        self._replicas = []
        self._epoch_rates = []
        self._epoch_temperatures = []

    @classmethod
    def from_config(cls, posterior, apt_config: Dict[str, Any], rung_sampler=None, min_rungs: int = 2):
        """
        Validate the config and build the initial ladder.

        Raises:
            ConfigurationError: Invalid config or zero-density initial state
        """
        user_config, params, runtime_ctx = configure_apt_system(apt_config, min_rungs=min_rungs)
        rung_sampler = rung_sampler if rung_sampler is not None else RandomWalkMetropolis()
        kernels = compile_apt_kernels(posterior, rung_sampler, params)
        ladder, adapt_state = initialize_apt_system(
            runtime_ctx['initial_state'],
            runtime_ctx['temperatures'],
            runtime_ctx['proposal_scales'],
            kernels.log_density,
            runtime_ctx['jnp_float_dtype'],
            runtime_ctx['adaptation_epochs'],
        )
        return cls(posterior, params, ladder, adapt_state, runtime_ctx['master_key'],
                   rung_sampler=rung_sampler, user_config=user_config)

    @property
    def tempered(self) -> bool:
        return self.params.N_RUNGS > 1

    def step(self) -> None:
        """Run one complete iteration and append its record to the history."""
        self.key, sample_key, swap_key = random.split(self.key, 3)
        iteration = jnp.int32(self.iteration)

        self.phase = Phase.SAMPLING
        self.ladder = self.kernels.sample(sample_key, self.ladder, iteration)

        if self.tempered:
            self.phase = Phase.SWAPPING
            self.ladder, self.adapt_state, _ = self.kernels.swap(swap_key, self.ladder, self.adapt_state)

            if is_epoch_end(self.iteration, self.params):
                self.phase = Phase.ADAPTING
                self.ladder, self.adapt_state = self.kernels.adapt(self.ladder, self.adapt_state, iteration)
                self._close_epoch()

        record = self.kernels.record(self.ladder)
        self._states.append(record.state)
        self._log_posts.append(record.log_posterior)
        self._replicas.append(record.replica_ids)
        self.iteration += 1

    def _close_epoch(self) -> None:
        temperatures = np.asarray(jax.device_get(self.ladder.temperatures))
        rates = np.asarray(jax.device_get(self.adapt_state.last_rates))
        check_ladder(temperatures)
        self._epoch_temperatures.append(temperatures)
        self._epoch_rates.append(rates)
        logger.debug(f"Epoch ending at iteration {self.iteration + 1}: "
                     f"swap rates {np.round(rates, 3).tolist()}, "
                     f"ladder {np.round(temperatures, 3).tolist()}")

    def run(self, num_iterations: Optional[int] = None, stop_event=None,
            callback: Optional[Callable] = None, verbose: bool = True) -> AptResult:
        """
        Run iterations until the budget is spent or a stop is requested.

        Args:
            num_iterations: Iterations to run now (default: params.NUM_ITERATIONS)
            stop_event: Object with is_set() (e.g. threading.Event). Checked
                after each complete iteration; never interrupts one.
            callback: fn(iteration, sampler) called after each iteration
            verbose: Log acceptance and swap summaries at the end

        Returns:
            AptResult with everything recorded so far
        """
        total = self.params.NUM_ITERATIONS if num_iterations is None else num_iterations
        logger.info(f"--- APT RUN --- {total} iterations, {self.params.N_RUNGS} rungs, "
                    f"policy={self.params.SWAP_POLICY.value}")

        stopped_early = False
        start_run_time = time.perf_counter()
        progress_every = max(1, total // 10)

        for i in range(total):
            self.step()
            if callback is not None:
                callback(self.iteration - 1, self)
            if i % progress_every == 0:
                logger.debug(f"  Iteration {self.iteration}/{total}")
            if stop_event is not None and stop_event.is_set() and i + 1 < total:
                logger.info(f"Stop requested; halting after iteration {self.iteration}")
                stopped_early = True
                break

        jax.block_until_ready(self.ladder)
        wall_time = time.perf_counter() - start_run_time

        result = self.finalize(stopped_early, wall_time)
        if verbose:
            print_acceptance_summary(result.temperatures, result.mh_acceptance)
            print_swap_acceptance_summary(result.temperatures, result.swap_accepts, result.swap_attempts)
            print_round_trip_summary(result.replica_history)
            logger.info(f"  Total Wall Time: {timedelta(seconds=int(wall_time))} ({wall_time:.2f}s)")
        return result

    def finalize(self, stopped_early: bool = False, wall_time: float = 0.0) -> AptResult:
        """Transfer the history to host and package the result."""
        self.phase = Phase.FINALIZING
        n_rungs = self.params.N_RUNGS
        n_pairs = max(n_rungs - 1, 0)
        n_params = self.ladder.n_params

        if self._states:
            # Stacked on host, never as a device concatenate
            samples = np.stack(jax.device_get(self._states))
            log_posterior = np.stack(jax.device_get(self._log_posts))
            replica_history = np.stack(jax.device_get(self._replicas))
        else:
            samples = np.zeros((0, n_params))
            log_posterior = np.zeros(0)
            replica_history = np.zeros((0, n_rungs), dtype=np.int32)

        ladder = jax.device_get(self.ladder)
        swap_accepts = np.asarray(self.adapt_state.total_accepts)
        swap_attempts = np.asarray(self.adapt_state.total_attempts)
        mh_attempts = np.asarray(ladder.mh_attempts)
        mh_acceptance = np.where(mh_attempts > 0,
                                 np.asarray(ladder.mh_accepts) / np.maximum(mh_attempts, 1), 0.0)

        return AptResult(
            samples=samples,
            log_posterior=log_posterior,
            replica_history=replica_history,
            temperatures=np.asarray(ladder.temperatures),
            swap_accepts=swap_accepts,
            swap_attempts=swap_attempts,
            swap_acceptance=swap_acceptance_rates(swap_accepts, swap_attempts),
            mh_acceptance=mh_acceptance,
            proposal_scales=np.asarray(ladder.proposal_scales),
            epoch_swap_rates=(np.stack(self._epoch_rates) if self._epoch_rates
                              else np.zeros((0, n_pairs))),
            temperature_history=(np.stack(self._epoch_temperatures) if self._epoch_temperatures
                                 else np.zeros((0, n_rungs))),
            iterations_completed=self.iteration,
            stopped_early=stopped_early,
            wall_time=wall_time,
            swap_policy=self.params.SWAP_POLICY.value,
            ladder=self.ladder,
            adaptation=self.adapt_state,
        )


def run_apt(posterior, apt_config: Dict[str, Any], rung_sampler=None, stop_event=None,
            callback: Optional[Callable] = None, diagnose: bool = False) -> AptResult:
    """
    Validate, initialize and run adaptive parallel tempering.

    Args:
        posterior: Posterior model definition
        apt_config: Config dict (see settings.DEFAULT_CONFIG); must contain
            'initial_state'
        rung_sampler: Per-rung sampler (default RandomWalkMetropolis())
        stop_event: Optional cooperative stop flag (threading.Event)
        callback: Optional fn(iteration, sampler) after each iteration
        diagnose: Log diagnose_sampler_issues() output at the end

    Returns:
        AptResult

    Raises:
        ConfigurationError: Fewer than 2 rungs, non-positive iteration
            count or step sizes, invalid initial state, ...
        LadderInvariantViolation: The adapted ladder became invalid
    """
    sampler = AptSampler.from_config(posterior, apt_config, rung_sampler=rung_sampler)
    result = sampler.run(stop_event=stop_event, callback=callback)
    if diagnose:
        print_diagnostics(diagnose_sampler_issues(result))
    return result


def run_untempered(posterior, apt_config: Dict[str, Any], rung_sampler=None,
                   stop_event=None) -> AptResult:
    """
    Single-chain baseline at temperature 1 with the same per-rung sampler.

    Uses the same config keys as run_apt; ladder settings are ignored and no
    swaps or ladder adaptation take place. Proposal-scale adaptation still
    applies, so the baseline differs from APT only by the missing ladder.
    """
    sampler = AptSampler.from_config(posterior, apt_config, rung_sampler=rung_sampler, min_rungs=1)
    return sampler.run(stop_event=stop_event, verbose=False)
