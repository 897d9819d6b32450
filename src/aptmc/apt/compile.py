"""
APT Kernel Compilation and Caching.

This module handles JAX compilation of the per-phase kernels:
- compile_apt_kernels: Jit the phase functions for one model/sampler/params
- clear_kernel_cache: Drop cached kernels (tests, long-lived sessions)

Kernels are cached in memory by (posterior, sampler, params). All three
are frozen dataclasses, so equal configurations share compiled code and
a repeated run in the same session skips tracing.
"""

from functools import partial
from typing import Callable, NamedTuple

import jax

from .density import make_log_density
from .phases import adapting_phase, record_cold_rung, sampling_phase, swapping_phase
from .types import AptParams

import logging
logger = logging.getLogger('aptmc')


class AptKernels(NamedTuple):
    """Jitted phase functions plus the density they close over."""
    sample: Callable       # (key, ladder, iteration) -> ladder
    swap: Callable         # (key, ladder, adapt_state) -> (ladder, adapt_state, info)
    adapt: Callable        # (ladder, adapt_state, iteration) -> (ladder, adapt_state)
    record: Callable       # (ladder) -> SampleRecord
    log_density: Callable  # (state, beta) -> (tempered, log_lik, log_prior), not jitted


# --- COMPILED FUNCTION CACHE ---
_COMPILED_KERNEL_CACHE = {}


def compile_apt_kernels(posterior, sampler, params: AptParams) -> AptKernels:
    """
    Build (or fetch from cache) the jitted phase kernels.

    Args:
        posterior: Posterior model definition
        sampler: RungSampler instance
        params: Run parameters

    Returns:
        AptKernels
    """
    cache_key = (posterior, sampler, params)
    cached = _COMPILED_KERNEL_CACHE.get(cache_key)
    if cached is not None:
        logger.debug("Using cached APT kernels")
        return cached

    log_density = make_log_density(posterior, params.TEMPER_PRIOR)
    kernels = AptKernels(
        sample=jax.jit(partial(sampling_phase, sampler=sampler, log_density=log_density, params=params)),
        swap=jax.jit(partial(swapping_phase, log_density=log_density, params=params)),
        adapt=jax.jit(partial(adapting_phase, log_density=log_density, params=params)),
        record=jax.jit(record_cold_rung),
        log_density=log_density,
    )
    _COMPILED_KERNEL_CACHE[cache_key] = kernels
    return kernels


def clear_kernel_cache() -> None:
    _COMPILED_KERNEL_CACHE.clear()
