"""
Checkpoint I/O utilities for saving and loading APT run state.

This module provides functions for:
- Saving a finished (or stopped) run to disk
- Loading checkpoints for analysis or a warm start
- Extracting the evolved ladder to seed the next run
"""

from typing import Any, Dict, Optional

import numpy as np
from pathlib import Path

import logging
logger = logging.getLogger('aptmc')


def save_checkpoint(filepath: str, result, config: Optional[Dict[str, Any]] = None,
                    metadata: Optional[Dict[str, Any]] = None) -> None:
    """
    Save an APT run to disk.

    Args:
        filepath: Path to save checkpoint (.npz file)
        result: AptResult from run_apt / AptSampler.run
        config: Config dict used for the run (stored for reference)
        metadata: Optional dict of additional metadata

    Saves:
        - Final ladder (temperatures, proposal scales, rung states)
        - Swap and MH counters
        - Cold-rung history and replica label history
        - Per-epoch swap rates and ladders
    """
    checkpoint = {
        'temperatures': np.asarray(result.temperatures),
        'proposal_scales': np.asarray(result.proposal_scales),
        'swap_accepts': np.asarray(result.swap_accepts),
        'swap_attempts': np.asarray(result.swap_attempts),
        'mh_acceptance': np.asarray(result.mh_acceptance),
        'samples': np.asarray(result.samples),
        'log_posterior': np.asarray(result.log_posterior),
        'replica_history': np.asarray(result.replica_history),
        'epoch_swap_rates': np.asarray(result.epoch_swap_rates),
        'temperature_history': np.asarray(result.temperature_history),
        'iterations_completed': int(result.iterations_completed),
        'stopped_early': bool(result.stopped_early),
        'swap_policy': str(result.swap_policy),
    }

    if result.ladder is not None:
        checkpoint['rung_states'] = np.asarray(result.ladder.states)
        checkpoint['replica_ids'] = np.asarray(result.ladder.replica_ids)
    if result.adaptation is not None:
        checkpoint['log_gaps'] = np.asarray(result.adaptation.log_gaps)
        checkpoint['n_epochs'] = int(result.adaptation.n_epochs)

    if config:
        checkpoint['config'] = _serializable_config(config)
    if metadata:
        checkpoint['metadata'] = metadata

    filepath = Path(filepath)
    np.savez_compressed(filepath, **checkpoint)
    logger.info(f"Checkpoint saved to {filepath}")


def _serializable_config(config: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    for key, value in config.items():
        # numpy / JAX arrays and scalars become plain Python values
        if hasattr(value, 'tolist'):
            value = value.tolist()
        out[key] = value
    return out


def load_checkpoint(filepath: str) -> Dict[str, Any]:
    """
    Load an APT checkpoint from disk.

    Args:
        filepath: Path to checkpoint file (.npz)

    Returns:
        Dict with the saved arrays and scalars, plus 'config' and 'metadata'
        when they were stored.
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Checkpoint not found: {filepath}")

    # Copy arrays so nothing keeps the file open
    with np.load(filepath, allow_pickle=True) as data:
        checkpoint = {
            'temperatures': data['temperatures'].copy(),
            'proposal_scales': data['proposal_scales'].copy(),
            'swap_accepts': data['swap_accepts'].copy(),
            'swap_attempts': data['swap_attempts'].copy(),
            'mh_acceptance': data['mh_acceptance'].copy(),
            'samples': data['samples'].copy(),
            'log_posterior': data['log_posterior'].copy(),
            'replica_history': data['replica_history'].copy(),
            'epoch_swap_rates': data['epoch_swap_rates'].copy(),
            'temperature_history': data['temperature_history'].copy(),
            'iterations_completed': int(data['iterations_completed']),
            'stopped_early': bool(data['stopped_early']),
            'swap_policy': str(data['swap_policy']),
        }

        if 'rung_states' in data:
            checkpoint['rung_states'] = data['rung_states'].copy()
            checkpoint['replica_ids'] = data['replica_ids'].copy()
        if 'log_gaps' in data:
            checkpoint['log_gaps'] = data['log_gaps'].copy()
            checkpoint['n_epochs'] = int(data['n_epochs'])
        if 'config' in data:
            checkpoint['config'] = data['config'].item()
        if 'metadata' in data:
            checkpoint['metadata'] = data['metadata'].item()

    return checkpoint


def ladder_from_checkpoint(filepath: str) -> Dict[str, Any]:
    """
    Config entries that warm-start a new run from a saved ladder.

    Returns:
        Dict with 'temperatures', 'proposal_scale', 'initial_state' (the
        cold-rung state) and 'adaptation_epochs' (so ladder adaptation
        continues its decaying step size), ready to merge into a config dict.

    Example:
        config = {**base_config, **ladder_from_checkpoint('run1.npz')}
        result = run_apt(posterior, config)
    """
    checkpoint = load_checkpoint(filepath)
    if 'rung_states' in checkpoint:
        initial_state = checkpoint['rung_states'][0]
    elif checkpoint['samples'].shape[0] > 0:
        initial_state = checkpoint['samples'][-1]
    else:
        raise ValueError(f"Checkpoint {filepath} holds no state to start from")

    logger.info(f"Warm start from {filepath}: {checkpoint['temperatures'].size} rungs")
    return {
        'temperatures': checkpoint['temperatures'].tolist(),
        'proposal_scale': checkpoint['proposal_scales'].tolist(),
        'initial_state': np.asarray(initial_state, dtype=float).tolist(),
        'adaptation_epochs': int(checkpoint.get('n_epochs', 0)),
    }
