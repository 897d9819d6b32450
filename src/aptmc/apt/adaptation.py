"""
Ladder and proposal-scale adaptation.

Ladder adapter (runs once per epoch):
    eta_k     = eta0 / k**kappa,  k = 1, 2, ... counts adaptation epochs
    log_gap_i += eta_k * (rate_i - target)
    T         = 1 + cumsum(exp(log_gap)),  T[0] = 1, moved gaps clipped to [min_gap, max_gap]

A pair that swaps more often than the target is pulled apart, one that
swaps less often is pushed together. Because eta_k -> 0 and sum(eta_k)
diverges for kappa in (0, 1], adaptation diminishes while still being able
to reach any ladder (Robbins-Monro conditions); the gap clamp keeps the
ladder strictly increasing. Compare the per-sample update of Vousden et al.
(2016), which moves gaps by the difference of neighbouring swap
indicators.

Proposal-scale adaptation (runs every iteration, per rung):
    log scale_r += gamma_t * (step_rate_r - target_accept),
    gamma_t = scale_adaptation_rate / t**kappa
"""

import jax
import jax.numpy as jnp
import numpy as np

from ..error_handling import LadderInvariantViolation
from ..settings import MIN_PROPOSAL_SCALE, MAX_PROPOSAL_SCALE
from .types import AdaptationState, AptParams, Ladder


def adaptation_step_size(n_epochs, eta0: float, kappa: float):
    """Step size for the (n_epochs + 1)-th adaptation epoch."""
    return eta0 / (n_epochs + 1.0) ** kappa


def gaps_to_temperatures(gaps):
    """Rebuild absolute temperatures from gaps, starting at exactly 1."""
    return jnp.concatenate([jnp.ones(1, dtype=gaps.dtype), 1.0 + jnp.cumsum(gaps)])


def clamp_log_gaps(log_gaps, params: AptParams):
    upper = jnp.inf if params.MAX_GAP is None else float(np.log(params.MAX_GAP))
    return jnp.clip(log_gaps, float(np.log(params.MIN_GAP)), upper)


def reevaluate_ladder(ladder: Ladder, log_density) -> Ladder:
    """Recompute every rung's tempered density at its current temperature."""
    tempered, log_liks, log_priors = jax.vmap(log_density)(ladder.states, ladder.betas)
    return ladder.replace(log_densities=tempered, log_likelihoods=log_liks, log_priors=log_priors)


def reset_epoch_counters(adapt_state: AdaptationState) -> AdaptationState:
    """Close an epoch without touching the ladder."""
    attempts = adapt_state.epoch_attempts
    rates = adapt_state.epoch_accepts / jnp.maximum(attempts, 1).astype(adapt_state.log_gaps.dtype)
    return adapt_state.replace(
        epoch_accepts=jnp.zeros_like(adapt_state.epoch_accepts),
        epoch_attempts=jnp.zeros_like(attempts),
        last_rates=jnp.where(attempts > 0, rates, adapt_state.last_rates),
    )


def adapt_ladder(ladder: Ladder, adapt_state: AdaptationState, iteration,
                 params: AptParams, log_density):
    """
    Adjust the temperature gaps from this epoch's swap acceptance rates.

    Pairs with no attempts this epoch (possible under RANDOM_PAIR with short
    epochs) keep their gap. Only gaps that move are clamped to
    [MIN_GAP, MAX_GAP], so an explicit ladder outside those bounds is left as
    given until its gaps adapt. Once iteration reaches ADAPT_UNTIL the ladder
    is frozen: counters still reset, the temperatures do not move.

    Args:
        ladder: Current ladder
        adapt_state: Counters accumulated since the last epoch boundary
        iteration: 0-based index of the iteration that closes the epoch
        params: Run parameters
        log_density: evaluate(state, beta) -> (tempered, log_lik, log_prior)

    Returns:
        ladder: With new temperatures and re-evaluated densities
        adapt_state: Counters reset, n_epochs advanced, log_gaps updated
    """
    attempts = adapt_state.epoch_attempts
    observed = attempts > 0
    dtype = adapt_state.log_gaps.dtype
    rates = adapt_state.epoch_accepts / jnp.maximum(attempts, 1).astype(dtype)

    eta = adaptation_step_size(adapt_state.n_epochs, params.ADAPTATION_RATE, params.ADAPTATION_DECAY)
    if params.ADAPT_UNTIL is not None:
        active = jnp.asarray(iteration < params.ADAPT_UNTIL)
    else:
        active = jnp.bool_(True)

    stepped = observed & active
    step = eta * (rates - params.TARGET_SWAP_RATE)
    log_gaps = jnp.where(
        stepped,
        clamp_log_gaps(adapt_state.log_gaps + step.astype(dtype), params),
        adapt_state.log_gaps,
    )
    temperatures = jnp.where(active, gaps_to_temperatures(jnp.exp(log_gaps)), ladder.temperatures)

    new_ladder = reevaluate_ladder(ladder.replace(temperatures=temperatures), log_density)
    new_state = adapt_state.replace(
        epoch_accepts=jnp.zeros_like(adapt_state.epoch_accepts),
        epoch_attempts=jnp.zeros_like(attempts),
        log_gaps=log_gaps,
        last_rates=jnp.where(observed, rates, adapt_state.last_rates),
        n_epochs=adapt_state.n_epochs + active.astype(adapt_state.n_epochs.dtype),
    )
    return new_ladder, new_state


def adapt_proposal_scales(ladder: Ladder, step_rates, iteration, params: AptParams) -> Ladder:
    """
    Robbins-Monro update of each rung's random-walk scale toward the target
    acceptance rate, with the same decay exponent as the ladder adapter.
    """
    dtype = ladder.proposal_scales.dtype
    gamma = params.SCALE_ADAPTATION_RATE / (iteration + 1.0) ** params.ADAPTATION_DECAY
    if params.ADAPT_UNTIL is not None:
        gamma = jnp.where(iteration < params.ADAPT_UNTIL, gamma, 0.0)

    log_scales = jnp.log(ladder.proposal_scales) + (gamma * (step_rates - params.TARGET_ACCEPT_RATE)).astype(dtype)
    scales = jnp.clip(jnp.exp(log_scales), MIN_PROPOSAL_SCALE, MAX_PROPOSAL_SCALE)
    return ladder.replace(proposal_scales=scales.astype(dtype))


def check_ladder(temperatures) -> None:
    """
    Host-side check of the ladder invariant.

    Raises:
        LadderInvariantViolation: If temperatures[0] != 1 or the ladder is
            not strictly increasing and finite.
    """
    temps = np.asarray(temperatures)
    if temps.ndim != 1 or temps.size == 0:
        raise LadderInvariantViolation(f"Ladder must be a non-empty 1-D array, got shape {temps.shape}")
    if temps[0] != 1.0:
        raise LadderInvariantViolation(f"Cold rung temperature must be exactly 1, got {temps[0]}")
    if not np.all(np.isfinite(temps)):
        raise LadderInvariantViolation(f"Ladder contains non-finite temperatures: {temps.tolist()}")
    if not np.all(np.diff(temps) > 0):
        raise LadderInvariantViolation(f"Ladder is not strictly increasing: {temps.tolist()}")
