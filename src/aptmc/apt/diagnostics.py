"""
APT Diagnostics.

Post-run summaries for adaptive parallel tempering:
- swap_acceptance_rates: Per-pair accepted/attempted ratios
- print_acceptance_summary: Print per-rung MH acceptance rates
- print_swap_acceptance_summary: Print per-pair swap rates with the ladder
- replica_positions: Rung occupied by each replica over time
- compute_round_trip_rate / print_round_trip_summary: Cold-hot-cold trips
- count_mode_switches: Sign changes of a scalar trace around a threshold
"""

from typing import Tuple

import numpy as np

from ..settings import LOW_RATE_WARNING


def swap_acceptance_rates(swap_accepts: np.ndarray, swap_attempts: np.ndarray) -> np.ndarray:
    """Accepted / attempted per pair; 0 for pairs never attempted."""
    accepts = np.asarray(swap_accepts, dtype=float)
    attempts = np.asarray(swap_attempts, dtype=float)
    return np.where(attempts > 0, accepts / np.maximum(attempts, 1.0), 0.0)


def print_acceptance_summary(temperatures: np.ndarray, mh_rates: np.ndarray) -> None:
    """
    Print summary statistics for per-rung MH acceptance rates.

    Args:
        temperatures: Temperature ladder (n_rungs,)
        mh_rates: MH acceptance rate per rung (n_rungs,)
    """
    mh_rates = np.asarray(mh_rates, dtype=float)
    if mh_rates.size == 0:
        return

    print(f"\n--- MH Acceptance Rates ({mh_rates.size} rungs) ---")
    print(f"  Mean: {np.mean(mh_rates):.1%}  Median: {np.median(mh_rates):.1%}  "
          f"Min: {np.min(mh_rates):.1%}  Max: {np.max(mh_rates):.1%}")

    low_rate_mask = mh_rates < LOW_RATE_WARNING
    if np.any(low_rate_mask):
        low_temps = [f"T={t:.3f}" for t, is_low in zip(temperatures, low_rate_mask) if is_low]
        print(f"  WARNING: {np.sum(low_rate_mask)} rung(s) have acceptance rate < {LOW_RATE_WARNING:.0%}")
        print(f"    Low rungs: {', '.join(low_temps)}")


def print_swap_acceptance_summary(
    temperatures: np.ndarray,
    swap_accepts: np.ndarray,
    swap_attempts: np.ndarray
) -> None:
    """
    Print summary statistics for replica exchange acceptance rates.

    Args:
        temperatures: Temperature values (n_rungs,)
        swap_accepts: Number of accepted swaps per adjacent pair
        swap_attempts: Number of attempted swaps per adjacent pair
    """
    n_rungs = len(temperatures)
    if n_rungs <= 1:
        return

    print(f"\n--- Parallel Tempering Swap Rates ({n_rungs} temperatures) ---")
    print(f"  Temperature ladder: {', '.join(f'{t:.3f}' for t in temperatures)}")

    swap_rates = swap_acceptance_rates(swap_accepts, swap_attempts)
    for i, rate in enumerate(swap_rates):
        print(f"  Pair ({temperatures[i]:.3f} <-> {temperatures[i + 1]:.3f}): "
              f"{rate:.1%} ({swap_accepts[i]}/{swap_attempts[i]})")
    print(f"  Mean swap rate: {np.mean(swap_rates):.1%}")

    low_swap_mask = (swap_rates < LOW_RATE_WARNING) & (np.asarray(swap_attempts) > 0)
    if np.any(low_swap_mask):
        print(f"  WARNING: Some swap rates are < {LOW_RATE_WARNING:.0%} - consider more rungs or ladder adaptation")


# =============================================================================
# REPLICA ROUND TRIPS
# =============================================================================

def replica_positions(replica_history: np.ndarray) -> np.ndarray:
    """
    Invert the replica labels into positions.

    Args:
        replica_history: (n_samples, n_rungs), entry [t, r] is the label of
            the replica sitting on rung r after iteration t

    Returns:
        positions: (n_samples, n_rungs), entry [t, k] is the rung holding
            replica k after iteration t
    """
    replica_history = np.asarray(replica_history)
    n_samples, n_rungs = replica_history.shape
    positions = np.empty_like(replica_history)
    rows = np.arange(n_samples)[:, None]
    positions[rows, replica_history] = np.arange(n_rungs)[None, :]
    return positions


def compute_round_trip_rate(replica_history: np.ndarray) -> Tuple[float, np.ndarray]:
    """
    Compute round-trip rate from the replica label history.

    A round trip is hot rung -> cold rung after having touched the hot end,
    counted per replica. It measures how well states travel between the
    reference (hottest) and target (cold) distributions.

    Args:
        replica_history: (n_samples, n_rungs) replica labels per rung

    Returns:
        mean_rate: Mean round trips per sample across replicas
        per_replica_trips: Number of completed round trips per replica
    """
    if replica_history is None:
        return 0.0, np.array([])
    replica_history = np.asarray(replica_history)
    if replica_history.ndim != 2 or replica_history.shape[1] <= 1:
        return 0.0, np.array([])

    n_samples, n_rungs = replica_history.shape
    positions = replica_positions(replica_history)
    per_replica_trips = np.zeros(n_rungs, dtype=np.int32)

    for k in range(n_rungs):
        touched_hot = False
        trips = 0
        for rung in positions[:, k]:
            if rung == 0:
                if touched_hot:
                    trips += 1
                    touched_hot = False
            elif rung == n_rungs - 1:
                touched_hot = True
        per_replica_trips[k] = trips

    mean_rate = np.mean(per_replica_trips) / n_samples if n_samples > 0 else 0.0
    return float(mean_rate), per_replica_trips


def print_round_trip_summary(replica_history: np.ndarray) -> None:
    """Print replica round-trip statistics."""
    if replica_history is None or np.asarray(replica_history).shape[-1] <= 1:
        return

    mean_rate, per_replica_trips = compute_round_trip_rate(replica_history)
    n_samples, n_rungs = np.asarray(replica_history).shape

    print(f"\n--- Replica Round-Trip Summary ({n_rungs} rungs) ---")
    print(f"  Samples: {n_samples}")
    print(f"  Total round trips: {np.sum(per_replica_trips)}")
    print(f"  Mean trips per replica: {np.mean(per_replica_trips):.1f}")
    print(f"  Round-trip rate: {mean_rate:.4f} trips/sample")

    if np.mean(per_replica_trips) < 1:
        print(f"  WARNING: Low round-trip count - replicas may not be mixing through temperatures")


def count_mode_switches(values: np.ndarray, threshold: float = 0.0) -> int:
    """
    Number of times a scalar trace crosses from one side of threshold to the other.

    Values exactly at the threshold count as the upper side.
    """
    values = np.asarray(values, dtype=float).ravel()
    if values.size < 2:
        return 0
    side = values >= threshold
    return int(np.count_nonzero(side[1:] != side[:-1]))
