"""
Error Handling and Validation Utilities for the APT Backend

This module provides the exception taxonomy, configuration validation and
post-run diagnostic tools for adaptive parallel tempering runs.

Density anomalies (out-of-support states, NaN, overflow) are not exceptions:
they evaluate to -inf and are absorbed as Metropolis rejections.
"""

from typing import Any, Dict

import numpy as np

from .settings import SwapPolicy, LOW_RATE_WARNING

import logging
logger = logging.getLogger('aptmc')


class AptError(Exception):
    """Base class for aptmc errors."""


class ConfigurationError(AptError, ValueError):
    """Invalid run setup. Raised before any iteration runs."""


class LadderInvariantViolation(AptError, RuntimeError):
    """Temperatures are no longer strictly increasing from exactly 1."""


def _is_int(value) -> bool:
    return isinstance(value, (int, np.integer)) and not isinstance(value, bool)


def _is_positive(value) -> bool:
    return isinstance(value, (int, float, np.integer, np.floating)) and not isinstance(value, bool) and value > 0


def validate_apt_config(apt_config: Dict[str, Any], min_rungs: int = 2) -> None:
    """
    Validates that an APT configuration is sensible.

    Args:
        apt_config: Configuration dictionary (defaults already filled in)
        min_rungs: Smallest accepted ladder length

    Raises:
        ConfigurationError: If configuration is invalid. All problems are
            collected and reported together.
    """
    errors = []

    if apt_config.get('initial_state') is None:
        errors.append("Missing required config key: 'initial_state'")
    else:
        initial_state = np.asarray(apt_config['initial_state'], dtype=float)
        if initial_state.ndim != 1 or initial_state.size < 1:
            errors.append(f"initial_state must be a non-empty 1-D sequence, got shape {initial_state.shape}")
        elif not np.all(np.isfinite(initial_state)):
            errors.append("initial_state must be finite")

    temperatures = apt_config.get('temperatures')
    if temperatures is not None:
        temps = np.asarray(temperatures, dtype=float)
        if temps.ndim != 1 or temps.size < min_rungs:
            errors.append(f"temperatures must list at least {min_rungs} rungs, got {temps.size}")
        else:
            if temps[0] != 1.0:
                errors.append(f"temperatures[0] must be exactly 1.0, got {temps[0]}")
            if not np.all(np.diff(temps) > 0):
                errors.append("temperatures must be strictly increasing")
        n_rungs = int(temps.size)
    else:
        n_rungs = apt_config.get('n_rungs', 0)
        if not _is_int(n_rungs) or n_rungs < min_rungs:
            errors.append(f"n_rungs must be an integer >= {min_rungs}, got {n_rungs}")
        spacing = apt_config.get('temperature_spacing')
        if not _is_positive(spacing) or spacing <= 1.0:
            errors.append(f"temperature_spacing must be > 1, got {spacing}")

    num_iterations = apt_config.get('num_iterations')
    if not _is_int(num_iterations) or num_iterations < 1:
        errors.append(f"num_iterations must be an integer >= 1, got {num_iterations}")

    for key in ('target_swap_rate', 'target_accept_rate'):
        rate = apt_config.get(key)
        if not _is_positive(rate) or rate >= 1.0:
            errors.append(f"{key} must be in (0, 1), got {rate}")

    epoch_length = apt_config.get('epoch_length')
    if not _is_int(epoch_length) or epoch_length < 1:
        errors.append(f"epoch_length must be an integer >= 1, got {epoch_length}")

    for key in ('adaptation_rate', 'scale_adaptation_rate', 'min_gap'):
        if not _is_positive(apt_config.get(key)):
            errors.append(f"{key} must be > 0, got {apt_config.get(key)}")

    kappa = apt_config.get('adaptation_decay')
    if not _is_positive(kappa) or kappa > 1.0:
        errors.append(f"adaptation_decay must be in (0, 1], got {kappa}")

    max_gap = apt_config.get('max_gap')
    if max_gap is not None:
        min_gap = apt_config.get('min_gap')
        if not _is_positive(max_gap) or (_is_positive(min_gap) and max_gap <= min_gap):
            errors.append(f"max_gap must be > min_gap, got {max_gap}")

    adapt_until = apt_config.get('adapt_until')
    if adapt_until is not None and (not _is_int(adapt_until) or adapt_until < 0):
        errors.append(f"adapt_until must be an integer >= 0, got {adapt_until}")

    epochs = apt_config.get('adaptation_epochs')
    if not _is_int(epochs) or epochs < 0:
        errors.append(f"adaptation_epochs must be an integer >= 0, got {epochs}")

    scale = np.asarray(apt_config.get('proposal_scale'), dtype=float)
    if scale.ndim > 1 or (scale.ndim == 1 and scale.size != n_rungs):
        errors.append(f"proposal_scale must be a scalar or one value per rung ({n_rungs}), got shape {scale.shape}")
    elif not np.all(scale > 0):
        errors.append("proposal_scale must be > 0")

    valid_policies = [p.value for p in SwapPolicy]
    policy = apt_config.get('swap_policy')
    if isinstance(policy, SwapPolicy):
        policy = policy.value
    if policy not in valid_policies:
        errors.append(f"swap_policy must be one of {valid_policies}, got {policy!r}")

    for key in ('adapt_ladder', 'adapt_proposals', 'temper_prior', 'use_double'):
        if not isinstance(apt_config.get(key), bool):
            errors.append(f"'{key}' must be True or False")

    if errors:
        raise ConfigurationError("Invalid APT configuration:\n  " + "\n  ".join(errors))


def diagnose_sampler_issues(result, diagnostics: Dict[str, Any] = None) -> Dict[str, Any]:
    """
    Analyzes an APT result to identify common issues.

    Args:
        result: AptResult from a finished (or stopped) run
        diagnostics: Existing diagnostics dict to extend

    Returns:
        diagnostics: Dictionary with issues, warnings, and info
    """
    diagnostics = dict(diagnostics or {})
    for key in ('issues', 'warnings', 'info'):
        diagnostics[key] = list(diagnostics.get(key, []))

    samples = result.samples
    if samples.size and not np.all(np.isfinite(samples)):
        diagnostics['issues'].append(
            "History contains NaN or Inf values - sampler became unstable"
        )

    if samples.shape[0] > 1:
        stuck = np.all(np.var(samples, axis=0) < 1e-12)
        if stuck:
            diagnostics['warnings'].append("Cold chain appears stuck (near-zero variance)")

    swap_rates = np.asarray(result.swap_acceptance)
    low_swaps = np.flatnonzero(swap_rates < LOW_RATE_WARNING)
    if low_swaps.size:
        diagnostics['warnings'].append(
            f"{low_swaps.size} rung pair(s) have swap rate < {LOW_RATE_WARNING:.0%}: {low_swaps.tolist()}"
        )

    mh_rates = np.asarray(result.mh_acceptance)
    low_mh = np.flatnonzero(mh_rates < LOW_RATE_WARNING)
    if low_mh.size:
        diagnostics['warnings'].append(
            f"{low_mh.size} rung(s) have MH acceptance < {LOW_RATE_WARNING:.0%}: {low_mh.tolist()}"
        )

    if result.stopped_early:
        diagnostics['info'].append(f"Run stopped early after {result.iterations_completed} iterations")

    diagnostics['info'].append(f"Total cold-rung samples: {samples.shape[0]}")
    diagnostics['info'].append(f"Number of rungs: {len(result.temperatures)}")
    diagnostics['info'].append(f"Number of parameters: {samples.shape[1] if samples.ndim == 2 else 0}")

    return diagnostics


def print_diagnostics(diagnostics: Dict[str, Any]) -> None:
    """Pretty-print diagnostics from diagnose_sampler_issues."""
    if diagnostics['issues']:
        logger.error("[ERROR] ISSUES:")
        for issue in diagnostics['issues']:
            logger.error(f"  - {issue}")

    if diagnostics['warnings']:
        logger.warning("[WARN] WARNINGS:")
        for warning in diagnostics['warnings']:
            logger.warning(f"  - {warning}")

    if diagnostics['info']:
        logger.info("[INFO] INFO:")
        for info in diagnostics['info']:
            logger.info(f"  - {info}")

    if not diagnostics['issues'] and not diagnostics['warnings']:
        logger.info("[OK] No issues detected")
