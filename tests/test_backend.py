"""
Orchestrator Tests - End-to-end APT runs

Tests:
- AptSampler / run_apt: history shapes, phases, density consistency,
  reproducibility, epoch bookkeeping
- Cooperative cancellation through stop_event and callbacks
- run_untempered baseline
- Warm start from a previous run's ladder
- Statistical behaviour: mode visiting on a bimodal target, swap-rate
  convergence to the target rate

Run with: pytest tests/test_backend.py -v
"""

import dataclasses
import threading
import time

import jax
import numpy as np
import pytest

from aptmc import (
    AptSampler,
    ComponentwiseMetropolis,
    ConfigurationError,
    Phase,
    count_mode_switches,
    run_apt,
    run_untempered,
)
from aptmc.apt.compile import clear_kernel_cache
from aptmc.apt.density import make_log_density


# ============================================================================
# BASIC RUNS
# ============================================================================

class TestRunApt:

    def test_history_shapes(self, gaussian_posterior, base_config):
        result = run_apt(gaussian_posterior, base_config)
        assert result.samples.shape == (200, 2)
        assert result.log_posterior.shape == (200,)
        assert result.replica_history.shape == (200, 3)
        assert result.temperatures.shape == (3,)
        assert result.swap_acceptance.shape == (2,)
        assert result.mh_acceptance.shape == (3,)
        assert result.iterations_completed == 200
        assert not result.stopped_early

    def test_epoch_bookkeeping(self, gaussian_posterior, base_config):
        result = run_apt(gaussian_posterior, base_config)
        n_epochs = 200 // 20
        assert result.epoch_swap_rates.shape == (n_epochs, 2)
        assert result.temperature_history.shape == (n_epochs, 3)
        np.testing.assert_allclose(result.temperature_history[-1], result.temperatures)
        assert np.all(result.temperature_history[:, 0] == 1.0)
        assert np.all(np.diff(result.temperature_history, axis=1) > 0)

    def test_final_ladder_consistent(self, gaussian_posterior, base_config):
        """Stored tempered densities equal fresh evaluations on every rung."""
        result = run_apt(gaussian_posterior, base_config)
        ladder = result.ladder
        evaluate = make_log_density(gaussian_posterior)
        tempered, _, _ = jax.vmap(evaluate)(ladder.states, ladder.betas)
        np.testing.assert_allclose(ladder.log_densities, tempered, rtol=1e-5, atol=1e-6)
        assert sorted(np.asarray(ladder.replica_ids).tolist()) == [0, 1, 2]

    def test_log_posterior_matches_samples(self, gaussian_posterior, base_config):
        result = run_apt(gaussian_posterior, base_config)
        expected = -0.5 * np.sum(result.samples ** 2, axis=1)
        np.testing.assert_allclose(result.log_posterior, expected, rtol=1e-5, atol=1e-6)

    def test_counters_add_up(self, gaussian_posterior, base_config):
        result = run_apt(gaussian_posterior, {**base_config, 'swap_policy': 'all_pairs'})
        np.testing.assert_array_equal(result.swap_attempts, [200, 200])
        assert np.all(result.swap_accepts <= result.swap_attempts)

    def test_deo_splits_attempts(self, gaussian_posterior, base_config):
        result = run_apt(gaussian_posterior, {**base_config, 'n_rungs': 4})
        np.testing.assert_array_equal(result.swap_attempts, [100, 100, 100])

    def test_reproducible(self, gaussian_posterior, base_config):
        first = run_apt(gaussian_posterior, base_config)
        second = run_apt(gaussian_posterior, base_config)
        np.testing.assert_array_equal(first.samples, second.samples)
        np.testing.assert_array_equal(first.temperatures, second.temperatures)

    def test_componentwise_sampler(self, gaussian_posterior, base_config):
        result = run_apt(gaussian_posterior, {**base_config, 'target_accept_rate': 0.44},
                         rung_sampler=ComponentwiseMetropolis())
        assert result.samples.shape == (200, 2)
        assert np.all(np.isfinite(result.samples))

    def test_bounded_support_respected(self, bounded_posterior):
        result = run_apt(bounded_posterior, {
            'initial_state': [0.5, 0.5],
            'n_rungs': 3,
            'num_iterations': 300,
            'temper_prior': True,
        })
        assert np.all(result.samples > 0)
        assert np.all(np.isfinite(result.log_posterior))

    def test_fixed_ladder(self, gaussian_posterior, base_config):
        config = {**base_config, 'temperatures': [1.0, 2.0, 5.0], 'adapt_ladder': False}
        result = run_apt(gaussian_posterior, config)
        np.testing.assert_allclose(result.temperatures, [1.0, 2.0, 5.0], rtol=1e-6)

    def test_adapt_until_freezes_ladder(self, gaussian_posterior, base_config):
        result = run_apt(gaussian_posterior, {**base_config, 'adapt_until': 100})
        frozen = result.temperature_history[100 // 20:]
        for temps in frozen:
            np.testing.assert_allclose(temps, frozen[0], rtol=1e-6)

    def test_rejects_single_rung(self, gaussian_posterior, base_config):
        with pytest.raises(ConfigurationError):
            run_apt(gaussian_posterior, {**base_config, 'temperatures': [1.0]})

    def test_rejects_zero_iterations(self, gaussian_posterior, base_config):
        with pytest.raises(ConfigurationError):
            run_apt(gaussian_posterior, {**base_config, 'num_iterations': 0})

    def test_rejects_start_outside_support(self, bounded_posterior):
        with pytest.raises(ConfigurationError, match="zero posterior density"):
            run_apt(bounded_posterior, {'initial_state': [-1.0, 1.0]})

    def test_rejects_ladder_that_collapses_in_float32(self, gaussian_posterior, base_config):
        calls = []
        config = {**base_config, 'temperatures': [1.0, 1.00000001, 2.0], 'adapt_ladder': False,
                  'epoch_length': 5, 'num_iterations': 10}
        with pytest.raises(ConfigurationError, match="strictly increasing"):
            run_apt(gaussian_posterior, config, callback=lambda it, s: calls.append(it))
        assert calls == []

    def test_explicit_ladder_outside_gap_bounds_kept_when_frozen(self, gaussian_posterior, base_config):
        config = {**base_config, 'temperatures': [1.0, 1.0005, 2.0], 'adapt_until': 0,
                  'epoch_length': 5, 'num_iterations': 10}
        result = run_apt(gaussian_posterior, config)
        np.testing.assert_allclose(result.temperatures, [1.0, 1.0005, 2.0], rtol=1e-6)
        for temps in result.temperature_history:
            np.testing.assert_allclose(temps, [1.0, 1.0005, 2.0], rtol=1e-6)


# ============================================================================
# DRIVER
# ============================================================================

class TestAptSampler:

    def test_phases(self, gaussian_posterior, base_config):
        sampler = AptSampler.from_config(gaussian_posterior, base_config)
        assert sampler.phase is Phase.INITIALIZING
        sampler.step()
        assert sampler.phase is Phase.SWAPPING
        assert sampler.iteration == 1
        sampler.run(num_iterations=19, verbose=False)
        assert sampler.phase is Phase.FINALIZING

    def test_adapting_phase_on_epoch_boundary(self, gaussian_posterior, base_config):
        sampler = AptSampler.from_config(gaussian_posterior, {**base_config, 'epoch_length': 3})
        seen = []
        for _ in range(6):
            sampler.step()
            seen.append(sampler.phase)
        assert seen == [Phase.SWAPPING, Phase.SWAPPING, Phase.ADAPTING] * 2

    def test_callback_every_iteration(self, gaussian_posterior, base_config):
        calls = []
        run_apt(gaussian_posterior, {**base_config, 'num_iterations': 30},
                callback=lambda it, sampler: calls.append(it))
        assert calls == list(range(30))

    def test_run_can_continue(self, gaussian_posterior, base_config):
        sampler = AptSampler.from_config(gaussian_posterior, base_config)
        sampler.run(num_iterations=50, verbose=False)
        result = sampler.run(num_iterations=30, verbose=False)
        assert result.iterations_completed == 80
        assert result.samples.shape == (80, 2)

    def test_finalize_long_history(self, gaussian_posterior, base_config):
        """Packaging thousands of records stays fast and keeps their order."""
        sampler = AptSampler.from_config(gaussian_posterior, base_config)
        n_records = 5000
        record = sampler.kernels.record(sampler.ladder)
        for i in range(n_records):
            sampler._states.append(record.state + i)
            sampler._log_posts.append(record.log_posterior)
            sampler._replicas.append(record.replica_ids)
        sampler.iteration = n_records

        start = time.perf_counter()
        result = sampler.finalize()
        elapsed = time.perf_counter() - start

        assert elapsed < 10.0
        assert result.samples.shape == (n_records, 2)
        assert result.replica_history.shape == (n_records, 3)
        np.testing.assert_allclose(result.samples[:, 0], np.arange(n_records), rtol=1e-6)

    def test_rejects_mismatched_params(self, gaussian_posterior, base_config):
        sampler = AptSampler.from_config(gaussian_posterior, base_config)
        params = dataclasses.replace(sampler.params, N_RUNGS=4)
        with pytest.raises(ConfigurationError, match="N_RUNGS"):
            AptSampler(gaussian_posterior, params, sampler.ladder, sampler.adapt_state, sampler.key)

    def test_kernel_cache_reused(self, gaussian_posterior, base_config):
        clear_kernel_cache()
        first = AptSampler.from_config(gaussian_posterior, base_config)
        second = AptSampler.from_config(gaussian_posterior, base_config)
        assert first.kernels is second.kernels
        clear_kernel_cache()
        third = AptSampler.from_config(gaussian_posterior, base_config)
        assert third.kernels is not first.kernels


# ============================================================================
# CANCELLATION
# ============================================================================

class TestCancellation:

    def test_stop_event(self, gaussian_posterior, base_config):
        stop = threading.Event()

        def callback(iteration, sampler):
            if iteration == 9:
                stop.set()

        result = run_apt(gaussian_posterior, base_config, stop_event=stop, callback=callback)
        assert result.stopped_early
        assert result.iterations_completed == 10
        assert result.samples.shape == (10, 2)
        assert result.replica_history.shape == (10, 3)

    def test_stop_before_start_runs_one_iteration(self, gaussian_posterior, base_config):
        """Cancellation never interrupts an iteration in progress."""
        stop = threading.Event()
        stop.set()
        result = run_apt(gaussian_posterior, base_config, stop_event=stop)
        assert result.iterations_completed == 1
        assert result.stopped_early

    def test_stopped_state_is_consistent(self, gaussian_posterior, base_config):
        stop = threading.Event()
        result = run_apt(gaussian_posterior, base_config, stop_event=stop,
                         callback=lambda it, s: stop.set() if it == 24 else None)
        evaluate = make_log_density(gaussian_posterior)
        tempered, _, _ = jax.vmap(evaluate)(result.ladder.states, result.ladder.betas)
        np.testing.assert_allclose(result.ladder.log_densities, tempered, rtol=1e-5, atol=1e-6)
        assert result.epoch_swap_rates.shape == (1, 2)


# ============================================================================
# UNTEMPERED BASELINE
# ============================================================================

class TestRunUntempered:

    def test_single_chain(self, gaussian_posterior, base_config):
        result = run_untempered(gaussian_posterior, base_config)
        np.testing.assert_array_equal(result.temperatures, [1.0])
        assert result.samples.shape == (200, 2)
        assert result.swap_attempts.shape == (0,)
        assert result.epoch_swap_rates.shape == (0, 0)
        np.testing.assert_array_equal(result.replica_history, np.zeros((200, 1)))

    def test_still_validates(self, gaussian_posterior, base_config):
        with pytest.raises(ConfigurationError):
            run_untempered(gaussian_posterior, {**base_config, 'num_iterations': 0})


# ============================================================================
# WARM START
# ============================================================================

class TestWarmStart:

    def test_start_from_evolved_ladder(self, gaussian_posterior, base_config):
        first = run_apt(gaussian_posterior, base_config)
        config = {
            **base_config,
            'temperatures': first.temperatures.tolist(),
            'proposal_scale': first.proposal_scales.tolist(),
            'initial_state': first.samples[-1].tolist(),
            'adapt_ladder': False,
        }
        second = run_apt(gaussian_posterior, config)
        np.testing.assert_allclose(second.temperatures, first.temperatures, rtol=1e-6)


# ============================================================================
# STATISTICAL BEHAVIOUR
# ============================================================================

class TestMixing:

    def test_bimodal_modes_visited(self, bimodal_posterior):
        """The tempered cold chain hops between modes; the untempered chain does not."""
        config = {
            'initial_state': [-4.0],
            'temperatures': [1.0, 3.0, 9.0, 27.0, 81.0],
            'adapt_ladder': False,
            'proposal_scale': 0.5,
            'num_iterations': 4000,
            'swap_policy': 'deo',
            'rng_seed': 3,
        }
        tempered = run_apt(bimodal_posterior, config)
        baseline = run_untempered(bimodal_posterior, config)

        cold = tempered.samples[:, 0]
        assert np.any(cold > 0) and np.any(cold < 0)
        assert count_mode_switches(baseline.samples[:, 0]) == 0
        assert count_mode_switches(cold) > count_mode_switches(baseline.samples[:, 0])

    def test_swap_rates_converge_to_target(self, gaussian_posterior):
        config = {
            'initial_state': [0.0, 0.0],
            'n_rungs': 3,
            'num_iterations': 12000,
            'epoch_length': 50,
            'swap_policy': 'all_pairs',
            'target_swap_rate': 0.234,
            'rng_seed': 11,
        }
        result = run_apt(gaussian_posterior, config)
        late = result.epoch_swap_rates[result.epoch_swap_rates.shape[0] // 2:]
        np.testing.assert_allclose(late.mean(axis=0), [0.234, 0.234], atol=0.05)
        assert result.temperatures[0] == 1.0
        assert np.all(np.diff(result.temperatures) > 0)
