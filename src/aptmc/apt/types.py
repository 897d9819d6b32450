"""
APT Data Structures and Type Definitions.

This module contains the core data structures used by the APT backend:
- Ladder: per-rung state as a struct of arrays (JAX pytree)
- AdaptationState: per-pair swap counters and ladder gaps (JAX pytree)
- SampleRecord: one iteration's cold-rung snapshot
- Rung: host-side read-only view of one rung
- AptParams: immutable run parameters for JAX static arguments
- AptResult: what a finished run hands back to the caller
"""

from dataclasses import dataclass, field, fields, replace
from typing import NamedTuple, Optional

import jax
import jax.numpy as jnp
import numpy as np

from ..settings import SwapPolicy


def _register_dataclass_pytree(cls):
    """Register a frozen dataclass whose fields are all arrays as a JAX pytree."""
    names = tuple(f.name for f in fields(cls))

    def flatten(obj):
        return tuple(getattr(obj, name) for name in names), None

    def unflatten(aux_data, children):
        return cls(**dict(zip(names, children)))

    jax.tree_util.register_pytree_node(cls, flatten, unflatten)
    return cls


@_register_dataclass_pytree
@dataclass(frozen=True)
class Ladder:
    """
    Ordered rungs of the temperature ladder, one row per rung.

    Rung 0 is the cold rung (temperature exactly 1, the inference target).
    log_densities[r] always equals a fresh evaluation of the tempered
    density at (states[r], 1 / temperatures[r]).

    replica_ids tracks which replica currently sits on each rung. Replicas
    move between rungs only through accepted swaps, so the labels trace
    round trips through the ladder.
    """
    temperatures: jnp.ndarray     # (n_rungs,) strictly increasing, [0] == 1
    states: jnp.ndarray           # (n_rungs, n_params)
    log_densities: jnp.ndarray    # (n_rungs,) tempered
    log_likelihoods: jnp.ndarray  # (n_rungs,) untempered
    log_priors: jnp.ndarray       # (n_rungs,) untempered
    proposal_scales: jnp.ndarray  # (n_rungs,) per-rung random-walk scale
    mh_accepts: jnp.ndarray       # (n_rungs,) int32 running MH accept count
    mh_attempts: jnp.ndarray      # (n_rungs,) int32 running MH attempt count
    replica_ids: jnp.ndarray      # (n_rungs,) int32

    @property
    def n_rungs(self) -> int:
        return self.temperatures.shape[0]

    @property
    def n_params(self) -> int:
        return self.states.shape[1]

    @property
    def betas(self) -> jnp.ndarray:
        return 1.0 / self.temperatures

    def replace(self, **changes) -> 'Ladder':
        return replace(self, **changes)

    def rung(self, index: int) -> 'Rung':
        """Host-side snapshot of one rung."""
        accepts = int(self.mh_accepts[index])
        attempts = int(self.mh_attempts[index])
        return Rung(
            index=index,
            temperature=float(self.temperatures[index]),
            beta=float(1.0 / self.temperatures[index]),
            state=np.asarray(self.states[index]),
            log_density=float(self.log_densities[index]),
            log_likelihood=float(self.log_likelihoods[index]),
            log_prior=float(self.log_priors[index]),
            proposal_scale=float(self.proposal_scales[index]),
            acceptance_rate=accepts / attempts if attempts else 0.0,
            replica_id=int(self.replica_ids[index]),
        )


class Rung(NamedTuple):
    """Read-only view of one rung, detached from the device."""
    index: int
    temperature: float
    beta: float
    state: np.ndarray
    log_density: float
    log_likelihood: float
    log_prior: float
    proposal_scale: float
    acceptance_rate: float
    replica_id: int


@_register_dataclass_pytree
@dataclass(frozen=True)
class AdaptationState:
    """
    Per adjacent rung pair swap statistics and ladder gaps.

    Pair i is rungs (i, i+1). epoch_* counters cover the current adaptation
    epoch and are reset at every epoch boundary; total_* counters cover the
    whole run. log_gaps are log(T[i+1] - T[i]) and are the quantity the
    ladder adapter moves.
    """
    epoch_accepts: jnp.ndarray    # (n_pairs,) int32
    epoch_attempts: jnp.ndarray   # (n_pairs,) int32
    total_accepts: jnp.ndarray    # (n_pairs,) int32
    total_attempts: jnp.ndarray   # (n_pairs,) int32
    log_gaps: jnp.ndarray         # (n_pairs,)
    last_rates: jnp.ndarray       # (n_pairs,) rates observed in the last finished epoch
    n_epochs: jnp.ndarray         # () int32, adaptation epochs applied so far
    swap_parity: jnp.ndarray      # () int32, DEO parity (0 = even pairs, 1 = odd pairs)

    def replace(self, **changes) -> 'AdaptationState':
        return replace(self, **changes)


class SampleRecord(NamedTuple):
    """Cold-rung snapshot taken at the end of every iteration."""
    state: jnp.ndarray            # (n_params,)
    log_posterior: jnp.ndarray    # () untempered log_lik + log_prior
    replica_ids: jnp.ndarray      # (n_rungs,)


@dataclass(frozen=True)
class AptParams:
    """
    Immutable run parameters for JAX static argument compatibility.

    This frozen dataclass is hashable, so it can key the compiled kernel
    cache and be closed over by jitted phase functions.
    """
    NUM_ITERATIONS: int
    N_RUNGS: int
    TARGET_SWAP_RATE: float = 0.234
    EPOCH_LENGTH: int = 50
    ADAPTATION_RATE: float = 1.0
    ADAPTATION_DECAY: float = 0.6
    MIN_GAP: float = 1e-3
    MAX_GAP: Optional[float] = None
    ADAPT_LADDER: bool = True
    ADAPT_UNTIL: Optional[int] = None
    ADAPT_PROPOSALS: bool = True
    TARGET_ACCEPT_RATE: float = 0.234
    SCALE_ADAPTATION_RATE: float = 1.0
    SWAP_POLICY: SwapPolicy = SwapPolicy.DEO
    TEMPER_PRIOR: bool = False


@dataclass
class AptResult:
    """
    Output of a run: cold-rung history, evolved ladder and diagnostics.

    Arrays are numpy (host) arrays. `ladder` and `adaptation` keep the final
    device-side state so a run can be inspected or warm-started.
    """
    samples: np.ndarray               # (n_iterations, n_params) cold-rung states
    log_posterior: np.ndarray         # (n_iterations,) untempered cold-rung log posterior
    replica_history: np.ndarray       # (n_iterations, n_rungs) replica label per rung
    temperatures: np.ndarray          # (n_rungs,) final ladder
    swap_accepts: np.ndarray          # (n_pairs,) cumulative
    swap_attempts: np.ndarray         # (n_pairs,) cumulative
    swap_acceptance: np.ndarray       # (n_pairs,) cumulative rate
    mh_acceptance: np.ndarray         # (n_rungs,) cumulative rate
    proposal_scales: np.ndarray       # (n_rungs,) final
    epoch_swap_rates: np.ndarray      # (n_epochs, n_pairs) rate observed in each epoch
    temperature_history: np.ndarray   # (n_epochs, n_rungs) ladder after each epoch
    iterations_completed: int
    stopped_early: bool
    wall_time: float
    swap_policy: str
    ladder: Optional[Ladder] = field(default=None, repr=False)
    adaptation: Optional[AdaptationState] = field(default=None, repr=False)
