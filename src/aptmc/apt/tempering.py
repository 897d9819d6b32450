"""
APT Tempering - Replica exchange between adjacent rungs.

Unlike an index process (where chains keep their traces and only their
temperature labels move), this module swaps chain STATES between rungs:
after an accepted exchange the cold rung holds the state that used to sit
one rung hotter, and both tempered densities are re-evaluated at the
rungs' own temperatures. Replica labels travel with the states so round
trips can still be measured.

Only adjacent pairs (i, i+1) are eligible. Which pairs are attempted in an
iteration is set by the SwapPolicy (DEO by default, see settings.py).

Functions:
- swap_log_acceptance: log of the Metropolis exchange ratio
- exchange_rungs: apply an accepted exchange
- propose_swap: attempt one adjacent pair
- attempt_swaps: the Swapping phase of one iteration
"""

from typing import NamedTuple

import jax
import jax.numpy as jnp
import jax.random as random

from ..settings import SwapPolicy
from .density import swap_energy
from .types import AdaptationState, AptParams, Ladder


class SwapInfo(NamedTuple):
    """Per-pair outcome of one Swapping phase."""
    log_alpha: jnp.ndarray   # (n_pairs,) log acceptance ratio (meaningful where attempted)
    attempted: jnp.ndarray   # (n_pairs,) bool
    accepted: jnp.ndarray    # (n_pairs,) bool


def swap_log_acceptance(beta_a, beta_b, energy_a, energy_b):
    """
    Log acceptance ratio for exchanging the states of two rungs:

        log_alpha = (beta_a - beta_b) * (energy_b - energy_a)

    where energy is the tempered component of the log density (the
    log-likelihood, or the full log posterior when priors are tempered).
    """
    log_alpha = (beta_a - beta_b) * (energy_b - energy_a)
    return jnp.nan_to_num(log_alpha, nan=-jnp.inf)


def pair_log_acceptance(ladder: Ladder, pair, temper_prior: bool = False):
    """Log acceptance ratio for rungs (pair, pair + 1) of the current ladder."""
    betas = ladder.betas
    energies = swap_energy(ladder.log_likelihoods, ladder.log_priors, temper_prior)
    return swap_log_acceptance(betas[pair], betas[pair + 1], energies[pair], energies[pair + 1])


def exchange_rungs(ladder: Ladder, pair, log_density) -> Ladder:
    """
    Exchange the states of rungs (pair, pair + 1).

    States and replica labels move; temperatures, proposal scales and MH
    counters stay with the rung. Both tempered densities are recomputed by
    calling the density at the new (state, temperature) pairs.
    """
    i, j = pair, pair + 1

    def swap_rows(x):
        xi, xj = x[i], x[j]
        return x.at[i].set(xj).at[j].set(xi)

    states = swap_rows(ladder.states)
    betas = ladder.betas
    tempered_i, lik_i, prior_i = log_density(states[i], betas[i])
    tempered_j, lik_j, prior_j = log_density(states[j], betas[j])

    return ladder.replace(
        states=states,
        log_densities=ladder.log_densities.at[i].set(tempered_i).at[j].set(tempered_j),
        log_likelihoods=ladder.log_likelihoods.at[i].set(lik_i).at[j].set(lik_j),
        log_priors=ladder.log_priors.at[i].set(prior_i).at[j].set(prior_j),
        replica_ids=swap_rows(ladder.replica_ids),
    )


def propose_swap(key, ladder: Ladder, pair, log_density, temper_prior: bool = False):
    """
    Attempt one exchange between rungs (pair, pair + 1).

    Args:
        key: JAX random key for the uniform draw
        ladder: Current ladder
        pair: Index of the lower rung
        log_density: evaluate(state, beta) -> (tempered, log_lik, log_prior)
        temper_prior: Whether priors are tempered along with likelihoods

    Returns:
        accepted: bool scalar
        log_alpha: log acceptance ratio
        ladder: Ladder after the (possibly rejected) exchange
    """
    log_alpha = pair_log_acceptance(ladder, pair, temper_prior)
    log_uniform = jnp.log(random.uniform(key, dtype=ladder.temperatures.dtype))
    accepted = log_uniform < log_alpha
    new_ladder = jax.lax.cond(
        accepted,
        lambda l: exchange_rungs(l, pair, log_density),
        lambda l: l,
        ladder
    )
    return accepted, log_alpha, new_ladder


def active_pairs(policy: SwapPolicy, n_pairs: int, swap_parity, select_key):
    """
    Boolean mask of the pairs attempted this iteration.

    DEO: pairs whose index parity matches swap_parity.
    ALL_PAIRS: every pair.
    RANDOM_PAIR: one pair drawn uniformly with select_key.
    """
    pair_indices = jnp.arange(n_pairs)
    if policy == SwapPolicy.DEO:
        return (pair_indices % 2) == swap_parity
    if policy == SwapPolicy.ALL_PAIRS:
        return jnp.ones(n_pairs, dtype=bool)
    if policy == SwapPolicy.RANDOM_PAIR:
        chosen = random.randint(select_key, (), 0, n_pairs)
        return pair_indices == chosen
    raise ValueError(f"Unknown swap policy: {policy}")


def attempt_swaps(key, ladder: Ladder, adapt_state: AdaptationState, params: AptParams, log_density):
    """
    The Swapping phase: attempt exchanges for the pairs the policy selects.

    Attempts run in rung index order. Under DEO the active pairs are
    disjoint, so ordering does not matter; under ALL_PAIRS rung i+1 may
    already hold a new state when pair (i+1, i+2) is attempted.

    Randomness: key is split into (select_key, accept_key); accept_key is
    split into one key per pair, and pair p draws its uniform from key p.

    Returns:
        ladder: Ladder after all exchanges
        adapt_state: Counters updated, DEO parity toggled
        info: SwapInfo for this iteration
    """
    n_pairs = params.N_RUNGS - 1
    select_key, accept_key = random.split(key)
    active = active_pairs(params.SWAP_POLICY, n_pairs, adapt_state.swap_parity, select_key)
    pair_keys = random.split(accept_key, n_pairs)

    def swap_one_pair(curr_ladder, inputs):
        pair, is_active, pair_key = inputs
        log_alpha = pair_log_acceptance(curr_ladder, pair, params.TEMPER_PRIOR)
        log_uniform = jnp.log(random.uniform(pair_key, dtype=curr_ladder.temperatures.dtype))
        accepted = is_active & (log_uniform < log_alpha)
        next_ladder = jax.lax.cond(
            accepted,
            lambda l: exchange_rungs(l, pair, log_density),
            lambda l: l,
            curr_ladder
        )
        return next_ladder, (log_alpha, accepted)

    new_ladder, (log_alphas, accepted) = jax.lax.scan(
        swap_one_pair,
        ladder,
        (jnp.arange(n_pairs), active, pair_keys)
    )

    n_attempted = active.astype(jnp.int32)
    n_accepted = accepted.astype(jnp.int32)
    new_adapt_state = adapt_state.replace(
        epoch_accepts=adapt_state.epoch_accepts + n_accepted,
        epoch_attempts=adapt_state.epoch_attempts + n_attempted,
        total_accepts=adapt_state.total_accepts + n_accepted,
        total_attempts=adapt_state.total_attempts + n_attempted,
        swap_parity=1 - adapt_state.swap_parity,
    )
    return new_ladder, new_adapt_state, SwapInfo(log_alphas, active, accepted)
