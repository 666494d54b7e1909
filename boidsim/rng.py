"""
RNG utilities for boid spawning.

Uses SHA256 hashing to derive stable seeds from hierarchical components
(world_seed, component_name). All randomness uses
numpy.random.Generator(PCG64); a None seed draws fresh OS entropy.
"""

import hashlib
import numpy as np
from typing import Any, Optional


def make_seed(*components: Any) -> int:
    """
    Generate deterministic 64-bit seed from hierarchical components.

    Args:
        *components: Seed components (world_seed, "positions", etc.)

    Returns:
        64-bit integer seed for numpy RNG

    Example:
        position_seed = make_seed(world_seed, "positions")
    """
    hash_input = ":".join(str(c) for c in components)
    hash_bytes = hashlib.sha256(hash_input.encode('utf-8')).digest()
    return int.from_bytes(hash_bytes[:8], byteorder='big')


def make_generator(seed: Optional[int], component: str) -> np.random.Generator:
    """
    Create the generator for one spawn component.

    Args:
        seed: World seed, or None for a non-reproducible run
        component: Component name mixed into the seed ("positions", ...)
    """
    if seed is None:
        return np.random.Generator(np.random.PCG64())
    return np.random.Generator(np.random.PCG64(make_seed(seed, component)))


def random_unit_vectors(rng: np.random.Generator, count: int) -> np.ndarray:
    """
    Generate random 3D unit vectors (uniform on the sphere surface).

    Normalizes isotropic Gaussian samples; the rare near-zero sample is
    redrawn so no vector is degenerate.

    Returns:
        (count, 3) float64 array of unit vectors
    """
    vectors = rng.standard_normal((count, 3))
    lengths = np.linalg.norm(vectors, axis=1)

    degenerate = lengths < 1e-6
    while np.any(degenerate):
        vectors[degenerate] = rng.standard_normal((int(degenerate.sum()), 3))
        lengths = np.linalg.norm(vectors, axis=1)
        degenerate = lengths < 1e-6

    return vectors / lengths[:, np.newaxis]


def random_positions_in_box(rng: np.random.Generator, half_extent: np.ndarray, count: int) -> np.ndarray:
    """
    Generate positions uniformly distributed in an origin-centered box.

    Args:
        rng: Generator to draw from
        half_extent: (3,) half size of the box per axis (>= 0)
        count: Number of positions

    Returns:
        (count, 3) float64 array with |p[axis]| <= half_extent[axis]
    """
    half_extent = np.asarray(half_extent, dtype=np.float64)
    return rng.uniform(-half_extent, half_extent, size=(count, 3))


def random_team_indexes(rng: np.random.Generator, count: int, teams_count: int) -> np.ndarray:
    """Generate uniform team assignments in [0, teams_count)"""
    return rng.integers(0, teams_count, size=count, dtype=np.int64)
