"""
APT Subpackage - Adaptive parallel tempering engine.

This package contains the sampling engine:
- backend: Orchestrator (AptSampler, run_apt, run_untempered)
- compile: Jitted phase kernels and caching
- config: Configuration and initialization
- phases: Sampling, swapping, adapting and record phases
- density: Tempered log density evaluator
- sampling: Per-rung Metropolis samplers
- tempering: Replica exchange and swap policies
- adaptation: Ladder and proposal-scale adaptation
- diagnostics: Swap, acceptance and round-trip summaries
- types: Core data structures (Ladder, AdaptationState, AptParams, AptResult)
"""

# Import types first (registers the pytrees)
from .types import Ladder, Rung, AdaptationState, AptParams, AptResult, SampleRecord

# Import main entry points
from .backend import AptSampler, run_apt, run_untempered

from .config import (
    clean_config,
    configure_apt_system,
    initialize_apt_system,
    build_temperature_ladder,
)
from .density import make_log_density, swap_energy
from .sampling import RungSampler, RandomWalkMetropolis, ComponentwiseMetropolis, sample_rungs
from .tempering import attempt_swaps, propose_swap, swap_log_acceptance
from .adaptation import adapt_ladder, adapt_proposal_scales, check_ladder, gaps_to_temperatures
from .diagnostics import (
    swap_acceptance_rates,
    print_acceptance_summary,
    print_swap_acceptance_summary,
    compute_round_trip_rate,
    print_round_trip_summary,
    count_mode_switches,
)
from .compile import compile_apt_kernels, clear_kernel_cache

__all__ = [
    # Main entry points
    'AptSampler',
    'run_apt',
    'run_untempered',
    # Types
    'Ladder',
    'Rung',
    'AdaptationState',
    'AptParams',
    'AptResult',
    'SampleRecord',
    # Config
    'clean_config',
    'configure_apt_system',
    'initialize_apt_system',
    'build_temperature_ladder',
    # Components
    'make_log_density',
    'swap_energy',
    'RungSampler',
    'RandomWalkMetropolis',
    'ComponentwiseMetropolis',
    'sample_rungs',
    'attempt_swaps',
    'propose_swap',
    'swap_log_acceptance',
    'adapt_ladder',
    'adapt_proposal_scales',
    'check_ladder',
    'gaps_to_temperatures',
    # Diagnostics
    'swap_acceptance_rates',
    'print_acceptance_summary',
    'print_swap_acceptance_summary',
    'compute_round_trip_rate',
    'print_round_trip_summary',
    'count_mode_switches',
    # Compilation
    'compile_apt_kernels',
    'clear_kernel_cache',
]
