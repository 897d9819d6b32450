"""
APT Configuration and Initialization.

This module handles setting up and validating APT configurations:
- clean_config: Fill defaults
- configure_apt_system: Main configuration entry point
- build_temperature_ladder: Default geometric ladder
- initialize_apt_system: Build the initial Ladder and AdaptationState
- gen_rng_keys: Generate JAX random keys

Configuration is split into two parts:
- user_config: Serializable config that can be saved/loaded without JAX
- runtime_ctx: JAX-dependent objects that exist only during execution

All config keys use lowercase with underscores (e.g., 'n_rungs', 'rng_seed').
"""

from typing import Any, Dict, Tuple

import jax
import jax.numpy as jnp
import jax.random as random
import numpy as np

from ..error_handling import ConfigurationError, LadderInvariantViolation, validate_apt_config
from ..settings import DEFAULT_CONFIG, SwapPolicy
from .adaptation import check_ladder
from .types import AdaptationState, AptParams, Ladder

import logging
logger = logging.getLogger('aptmc')


def clean_config(apt_config: Dict[str, Any]) -> Dict[str, Any]:
    """Copy the config and set defaults for every missing key."""
    apt_config = dict(apt_config)
    for key, value in DEFAULT_CONFIG.items():
        apt_config.setdefault(key, value)
    return apt_config


def gen_rng_keys(rng_seed: int) -> Tuple[Any, Any]:
    """Generate JAX random keys from seed.

    Returns:
        (master_key, init_key): Tuple of JAX PRNGKeys
    """
    mkey = jax.random.PRNGKey(rng_seed)
    master_key, init_key = random.split(mkey, 2)
    return master_key, init_key


def build_temperature_ladder(n_rungs: int, spacing: float) -> np.ndarray:
    """Geometric ladder T_i = spacing**i, so T_0 = 1."""
    return np.power(float(spacing), np.arange(n_rungs, dtype=float))


def configure_apt_system(
    apt_config: Dict[str, Any],
    min_rungs: int = 2,
) -> Tuple[Dict[str, Any], AptParams, Dict[str, Any]]:
    """
    Configure the APT system from a config dict.

    Args:
        apt_config: Input configuration dict (see settings.DEFAULT_CONFIG)
        min_rungs: Smallest accepted ladder. Only the untempered baseline
            passes 1.

    Returns:
        user_config: Clean config dict with defaults and derived values
        params: Frozen AptParams for the kernels
        runtime_ctx: Dict with JAX keys, dtype, initial arrays

    Raises:
        ConfigurationError: If any setting is invalid
    """
    apt_config = clean_config(apt_config)

    if min_rungs == 1:
        # Degenerate single-rung run: only the cold temperature
        apt_config['temperatures'] = [1.0]
        if np.ndim(apt_config['proposal_scale']) == 1:
            apt_config['proposal_scale'] = apt_config['proposal_scale'][0]
    validate_apt_config(apt_config, min_rungs=min_rungs)

    if apt_config['temperatures'] is not None:
        temperatures = np.asarray(apt_config['temperatures'], dtype=float)
    else:
        temperatures = build_temperature_ladder(apt_config['n_rungs'], apt_config['temperature_spacing'])
    n_rungs = int(temperatures.size)

    use_double = apt_config['use_double']
    if use_double:
        jax.config.update("jax_enable_x64", True)
        jnp_float_dtype = jnp.float64
    else:
        jax.config.update("jax_enable_x64", False)
        jnp_float_dtype = jnp.float32

    policy = SwapPolicy(apt_config['swap_policy'])
    proposal_scales = np.broadcast_to(
        np.asarray(apt_config['proposal_scale'], dtype=float), (n_rungs,)
    ).copy()

    user_config = {
        **apt_config,
        'temperatures': temperatures.tolist(),
        'n_rungs': n_rungs,
        'swap_policy': policy.value,
        'initial_state': np.asarray(apt_config['initial_state'], dtype=float).tolist(),
        'proposal_scale': proposal_scales.tolist(),
        'num_params': int(np.asarray(apt_config['initial_state']).size),
    }

    params = AptParams(
        NUM_ITERATIONS=int(apt_config['num_iterations']),
        N_RUNGS=n_rungs,
        TARGET_SWAP_RATE=float(apt_config['target_swap_rate']),
        EPOCH_LENGTH=int(apt_config['epoch_length']),
        ADAPTATION_RATE=float(apt_config['adaptation_rate']),
        ADAPTATION_DECAY=float(apt_config['adaptation_decay']),
        MIN_GAP=float(apt_config['min_gap']),
        MAX_GAP=None if apt_config['max_gap'] is None else float(apt_config['max_gap']),
        ADAPT_LADDER=apt_config['adapt_ladder'] and n_rungs > 1,
        ADAPT_UNTIL=None if apt_config['adapt_until'] is None else int(apt_config['adapt_until']),
        ADAPT_PROPOSALS=apt_config['adapt_proposals'],
        TARGET_ACCEPT_RATE=float(apt_config['target_accept_rate']),
        SCALE_ADAPTATION_RATE=float(apt_config['scale_adaptation_rate']),
        SWAP_POLICY=policy,
        TEMPER_PRIOR=apt_config['temper_prior'],
    )

    master_key, init_key = gen_rng_keys(apt_config['rng_seed'])
    runtime_ctx = {
        'jnp_float_dtype': jnp_float_dtype,
        'master_key': master_key,
        'init_key': init_key,
        'temperatures': temperatures,
        'proposal_scales': proposal_scales,
        'initial_state': np.asarray(apt_config['initial_state'], dtype=float),
        'adaptation_epochs': int(apt_config['adaptation_epochs']),
    }

    return user_config, params, runtime_ctx


def initialize_apt_system(
    initial_state,
    temperatures,
    proposal_scales,
    log_density,
    jnp_float_dtype=jnp.float32,
    adaptation_epochs: int = 0,
) -> Tuple[Ladder, AdaptationState]:
    """
    Build the initial ladder: the starting state replicated on every rung.

    Args:
        initial_state: (n_params,) starting parameter values
        temperatures: (n_rungs,) ladder, temperatures[0] == 1
        proposal_scales: (n_rungs,) initial per-rung random-walk scales
        log_density: evaluate(state, beta) -> (tempered, log_lik, log_prior)
        jnp_float_dtype: Float dtype for all state arrays
        adaptation_epochs: Ladder adaptation epochs already applied (warm
            start); the adapter step size continues from there

    Returns:
        ladder, adapt_state

    Raises:
        ConfigurationError: If the ladder is invalid in the working dtype
            (e.g. two temperatures that round to the same float32), or the
            starting state has zero density (outside the support, or
            NaN/inf log density)
    """
    state = jnp.asarray(initial_state, dtype=jnp_float_dtype)
    temps = jnp.asarray(temperatures, dtype=jnp_float_dtype)
    try:
        check_ladder(np.asarray(temps))
    except LadderInvariantViolation as e:
        raise ConfigurationError(f"Invalid temperature ladder in {jnp.dtype(jnp_float_dtype).name}: {e}") from e
    n_rungs = temps.shape[0]
    n_pairs = max(n_rungs - 1, 0)

    states = jnp.tile(state[None, :], (n_rungs, 1))
    tempered, log_liks, log_priors = jax.vmap(log_density)(states, 1.0 / temps)

    if not np.all(np.isfinite(np.asarray(tempered))):
        raise ConfigurationError(
            f"Initial state has zero posterior density (outside the support or "
            f"non-finite log density): {np.asarray(initial_state).tolist()}"
        )

    ladder = Ladder(
        temperatures=temps,
        states=states,
        log_densities=tempered,
        log_likelihoods=log_liks,
        log_priors=log_priors,
        proposal_scales=jnp.asarray(proposal_scales, dtype=jnp_float_dtype),
        mh_accepts=jnp.zeros(n_rungs, dtype=jnp.int32),
        mh_attempts=jnp.zeros(n_rungs, dtype=jnp.int32),
        replica_ids=jnp.arange(n_rungs, dtype=jnp.int32),
    )

    adapt_state = AdaptationState(
        epoch_accepts=jnp.zeros(n_pairs, dtype=jnp.int32),
        epoch_attempts=jnp.zeros(n_pairs, dtype=jnp.int32),
        total_accepts=jnp.zeros(n_pairs, dtype=jnp.int32),
        total_attempts=jnp.zeros(n_pairs, dtype=jnp.int32),
        log_gaps=jnp.log(jnp.diff(temps)),
        last_rates=jnp.zeros(n_pairs, dtype=jnp_float_dtype),
        n_epochs=jnp.array(adaptation_epochs, dtype=jnp.int32),
        swap_parity=jnp.array(0, dtype=jnp.int32),
    )

    logger.info(f"APT ladder: {n_rungs} rungs, temperatures "
                f"{[f'{t:.3f}' for t in np.asarray(temps).tolist()]}")
    return ladder, adapt_state
