"""
Pytest configuration and shared fixtures for aptmc tests.
"""

import pytest
import numpy as np
import jax
import jax.numpy as jnp
from jax.scipy.special import logsumexp

from aptmc.model import Posterior
from aptmc.apt.config import initialize_apt_system
from aptmc.apt.adaptation import reevaluate_ladder
from aptmc.apt.density import make_log_density
from aptmc.apt.types import AptParams


def _std_normal_log_lik(x):
    return -0.5 * jnp.sum(x ** 2)


def _bimodal_log_lik(x):
    """Equal mixture of N(-4, 0.5^2) and N(4, 0.5^2) in each coordinate."""
    sd = 0.5
    lower = -0.5 * jnp.sum(((x + 4.0) / sd) ** 2)
    upper = -0.5 * jnp.sum(((x - 4.0) / sd) ** 2)
    return logsumexp(jnp.array([lower, upper]))


def _positive_support(x):
    return jnp.all(x > 0)


def _exponential_log_prior(x):
    return -jnp.sum(x)


@pytest.fixture(autouse=True)
def single_precision():
    """Keep every test in float32 unless it opts into x64 itself."""
    jax.config.update("jax_enable_x64", False)
    yield
    jax.config.update("jax_enable_x64", False)


@pytest.fixture
def gaussian_posterior():
    """Standard normal likelihood with a flat prior."""
    return Posterior(log_likelihood=_std_normal_log_lik, name='std_normal')


@pytest.fixture
def bimodal_posterior():
    """Well-separated two-mode target (modes at -4 and +4)."""
    return Posterior(log_likelihood=_bimodal_log_lik, name='bimodal')


@pytest.fixture
def bounded_posterior():
    """Positive-orthant support with an exponential prior."""
    return Posterior(
        log_likelihood=lambda x: -0.5 * jnp.sum((x - 1.0) ** 2),
        log_prior=_exponential_log_prior,
        in_support=_positive_support,
        name='bounded',
    )


@pytest.fixture
def base_config():
    """Small APT configuration for fast driver tests."""
    return {
        'initial_state': [0.0, 0.0],
        'n_rungs': 3,
        'num_iterations': 200,
        'epoch_length': 20,
        'rng_seed': 42,
    }


@pytest.fixture
def apt_params():
    """Run parameters for calling kernels directly."""
    return AptParams(NUM_ITERATIONS=100, N_RUNGS=3, EPOCH_LENGTH=10)


def make_ladder(posterior, temperatures, states, proposal_scale=1.0, temper_prior=False):
    """
    Build a ladder with one given state per rung.

    Returns:
        ladder, adapt_state, log_density
    """
    log_density = make_log_density(posterior, temper_prior)
    states = jnp.asarray(states, dtype=jnp.float32)
    temperatures = np.asarray(temperatures, dtype=float)
    ladder, adapt_state = initialize_apt_system(
        np.asarray(states[0]),
        temperatures,
        np.full(temperatures.size, proposal_scale),
        log_density,
    )
    ladder = reevaluate_ladder(ladder.replace(states=states), log_density)
    return ladder, adapt_state, log_density


@pytest.fixture
def ladder_factory():
    """make_ladder as a fixture, for tests that build ladders by hand."""
    return make_ladder
