"""
Per-bucket flock statistics (stage 2 of the tick).

For every composite (cell, team) key, averages the positions and
velocities of the bucket's members. These are the "average neighbour"
targets for cohesion and alignment in motion.py.

Empty buckets write the zero vector. No agent ever reads an empty bucket's
aggregate, because every agent is a member of its own bucket after
reindexing; the zero keeps the arrays free of NaN for debug consumers.

A key range maps to one contiguous slice of the bucket order, so the whole
range is reduced with np.bincount instead of a per-key loop.
"""

import numpy as np

from .spatial_grid import BucketOrder


def aggregate_cells(
    start: int,
    stop: int,
    buckets: BucketOrder,
    positions: np.ndarray,
    velocities: np.ndarray,
    out_average_position: np.ndarray,
    out_average_velocity: np.ndarray
):
    """
    Average position/velocity of buckets [start, stop).

    Args:
        buckets: Sorted membership snapshot (read-only)
        positions: (N, 3) agent positions (read-only)
        velocities: (N, 3) agent velocities (read-only)
        out_average_position: (K, 3) written at keys [start, stop)
        out_average_velocity: (K, 3) written at keys [start, stop)
    """
    width = stop - start
    lo, hi = buckets.offsets[start], buckets.offsets[stop]
    agents = buckets.order[lo:hi]
    local_keys = buckets.sorted_keys[lo:hi] - start

    counts = np.bincount(local_keys, minlength=width)
    inv_counts = np.zeros(width, dtype=np.float64)
    occupied = counts > 0
    inv_counts[occupied] = 1.0 / counts[occupied]

    out_average_position[start:stop] = _key_sums(local_keys, positions[agents], width) * inv_counts[:, np.newaxis]
    out_average_velocity[start:stop] = _key_sums(local_keys, velocities[agents], width) * inv_counts[:, np.newaxis]


def _key_sums(local_keys: np.ndarray, values: np.ndarray, width: int) -> np.ndarray:
    """(width, 3) per-key sums of (M, 3) values"""
    return np.stack(
        [np.bincount(local_keys, weights=values[:, axis], minlength=width) for axis in range(3)],
        axis=1
    )
