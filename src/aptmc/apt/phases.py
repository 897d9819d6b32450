"""
APT iteration phases.

One iteration is Sampling -> Swapping -> (Adapting at epoch boundaries)
-> record. Each phase is a pure function of its inputs so it can be jitted
on its own; the driver in backend.py sequences them, which gives the
barrier between phases for free (a phase consumes the whole ladder the
previous phase produced).

- sampling_phase: per-rung MH steps (vmapped) and proposal-scale adaptation
- swapping_phase: replica exchange for the pairs the policy selects
- adapting_phase: ladder adaptation, or a plain counter reset
- record_cold_rung: snapshot of rung 0 for the sample history
"""

from .adaptation import adapt_ladder, adapt_proposal_scales, reset_epoch_counters
from .sampling import sample_rungs
from .tempering import attempt_swaps
from .types import AdaptationState, AptParams, Ladder, SampleRecord


def sampling_phase(key, ladder: Ladder, iteration, sampler, log_density, params: AptParams) -> Ladder:
    ladder, step_rates = sample_rungs(key, ladder, sampler, log_density)
    if params.ADAPT_PROPOSALS:
        ladder = adapt_proposal_scales(ladder, step_rates, iteration, params)
    return ladder


def swapping_phase(key, ladder: Ladder, adapt_state: AdaptationState, log_density, params: AptParams):
    return attempt_swaps(key, ladder, adapt_state, params, log_density)


def adapting_phase(ladder: Ladder, adapt_state: AdaptationState, iteration, log_density, params: AptParams):
    """Close an adaptation epoch. Only called when iteration ends an epoch."""
    if params.ADAPT_LADDER:
        return adapt_ladder(ladder, adapt_state, iteration, params, log_density)
    return ladder, reset_epoch_counters(adapt_state)


def record_cold_rung(ladder: Ladder) -> SampleRecord:
    return SampleRecord(
        state=ladder.states[0],
        log_posterior=ladder.log_likelihoods[0] + ladder.log_priors[0],
        replica_ids=ladder.replica_ids,
    )


def is_epoch_end(iteration: int, params: AptParams) -> bool:
    return (iteration + 1) % params.EPOCH_LENGTH == 0
