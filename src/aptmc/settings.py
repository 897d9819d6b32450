"""
Run settings: default configuration values and enumerations.

All config keys use lowercase with underscores. `clean_config` in
`aptmc.apt.config` fills any key missing from a user config with the
value in DEFAULT_CONFIG.

To add a new setting:
1. Add its default to DEFAULT_CONFIG
2. Add a rule for it in error_handling.validate_apt_config
3. Carry it into AptParams (apt/types.py) if the kernels need it
"""

from enum import Enum


class SwapPolicy(str, Enum):
    """
    Which adjacent rung pairs attempt an exchange in one iteration.

    DEO         - Deterministic even/odd: pairs (0,1),(2,3),... on even
                  iterations, (1,2),(3,4),... on odd ones. Pairs within a
                  round are disjoint. Round trips are O(N) in the number of
                  rungs (Syed et al. 2021).
    ALL_PAIRS   - Every adjacent pair, serialized in index order.
    RANDOM_PAIR - One uniformly chosen adjacent pair per iteration.
    """
    DEO = 'deo'
    ALL_PAIRS = 'all_pairs'
    RANDOM_PAIR = 'random_pair'


class Phase(Enum):
    """Orchestrator state machine."""
    INITIALIZING = 'initializing'
    SAMPLING = 'sampling'
    SWAPPING = 'swapping'
    ADAPTING = 'adapting'
    FINALIZING = 'finalizing'


DEFAULT_CONFIG = {
    # Ladder
    'n_rungs': 4,
    'temperatures': None,          # Explicit ladder overrides n_rungs/temperature_spacing
    'temperature_spacing': 2.0,    # Geometric ratio T_{i+1} / T_i of the default ladder
    # Run length
    'num_iterations': 1000,
    # Swap adaptation
    'target_swap_rate': 0.234,
    'epoch_length': 50,
    'adaptation_rate': 1.0,        # eta0
    'adaptation_decay': 0.6,       # kappa: eta_k = eta0 / k**kappa
    'min_gap': 1e-3,
    'max_gap': None,
    'adapt_ladder': True,
    'adapt_until': None,           # Iteration at which all adaptation freezes
    'adaptation_epochs': 0,        # Epochs already applied; a warm start resumes eta_k from here
    # Per-rung proposals
    'proposal_scale': 1.0,
    'adapt_proposals': True,
    'target_accept_rate': 0.234,
    'scale_adaptation_rate': 1.0,
    # Swaps
    'swap_policy': SwapPolicy.DEO.value,
    'temper_prior': False,
    # Numerics
    'rng_seed': 42,
    'use_double': False,
}

# Bounds applied to adapted per-rung proposal scales
MIN_PROPOSAL_SCALE = 1e-8
MAX_PROPOSAL_SCALE = 1e8

# Swap/MH rates below this are reported as warnings
LOW_RATE_WARNING = 0.10
