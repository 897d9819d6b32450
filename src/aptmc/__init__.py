"""
aptmc - Adaptive Parallel Tempering MCMC

Public API:
    Model:
        Posterior - Log-likelihood / log-prior / support bundle
        flat_log_prior - Improper flat prior (log density 0)

    Running:
        run_apt - Validate, initialize and run adaptive parallel tempering
        run_untempered - Single temperature-1 chain baseline
        AptSampler - Driver with step()/run() and cooperative cancellation

    Samplers:
        RandomWalkMetropolis - Gaussian random walk, all coordinates at once
        ComponentwiseMetropolis - One coordinate at a time

    Settings:
        SwapPolicy - DEO, ALL_PAIRS or RANDOM_PAIR
        Phase - Driver phase (INITIALIZING, SAMPLING, SWAPPING, ...)
        DEFAULT_CONFIG - Default configuration values

    Errors:
        AptError, ConfigurationError, LadderInvariantViolation

    Checkpointing:
        save_checkpoint - Save a run to disk
        load_checkpoint - Load a saved run
        ladder_from_checkpoint - Config entries for a warm start

Example:
    import jax.numpy as jnp
    from aptmc import Posterior, run_apt

    posterior = Posterior(log_likelihood=lambda x: -0.5 * jnp.sum(x ** 2))
    result = run_apt(posterior, {'initial_state': [0.0, 0.0], 'n_rungs': 4})
    print(result.swap_acceptance, result.temperatures)
"""
# CRITICAL: Import jax_config FIRST to set environment variables before JAX loads
from . import jax_config  # noqa: F401

from .model import Posterior, flat_log_prior
from .settings import SwapPolicy, Phase, DEFAULT_CONFIG
from .error_handling import (
    AptError,
    ConfigurationError,
    LadderInvariantViolation,
    validate_apt_config,
    diagnose_sampler_issues,
    print_diagnostics,
)
from .apt import (
    AptSampler,
    AptResult,
    run_apt,
    run_untempered,
    RandomWalkMetropolis,
    ComponentwiseMetropolis,
    count_mode_switches,
    compute_round_trip_rate,
)
from .checkpoint_io import save_checkpoint, load_checkpoint, ladder_from_checkpoint

__all__ = [
    # Model
    'Posterior',
    'flat_log_prior',
    # Running
    'run_apt',
    'run_untempered',
    'AptSampler',
    'AptResult',
    # Samplers
    'RandomWalkMetropolis',
    'ComponentwiseMetropolis',
    # Settings
    'SwapPolicy',
    'Phase',
    'DEFAULT_CONFIG',
    # Errors
    'AptError',
    'ConfigurationError',
    'LadderInvariantViolation',
    'validate_apt_config',
    'diagnose_sampler_issues',
    'print_diagnostics',
    # Diagnostics
    'count_mode_switches',
    'compute_round_trip_rate',
    # Checkpointing
    'save_checkpoint',
    'load_checkpoint',
    'ladder_from_checkpoint',
]
