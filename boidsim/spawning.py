"""
Boid spawning system.

Seeds the initial agent arrays: uniform positions inside the world volume
(kept SPAWN_MARGIN away from every face), random headings on the unit
sphere at the initial speed, and uniform team assignment.
"""

import math
import numpy as np
from typing import Optional, Tuple

from .rng import make_generator, random_positions_in_box, random_unit_vectors, random_team_indexes
from .constants import BOID_DENSITY, WORLD_SIZE_ROUNDING, SPAWN_MARGIN


def world_size_for_population(population: int) -> Tuple[float, float, float]:
    """
    Cubic world edge that keeps density roughly constant across populations.

    edge = ceil(N^(1/3) * BOID_DENSITY / WORLD_SIZE_ROUNDING) * WORLD_SIZE_ROUNDING

    Example:
        world_size_for_population(64)    -> (20.0, 20.0, 20.0)
        world_size_for_population(4096)  -> (65.0, 65.0, 65.0)
    """
    if population <= 0:
        raise ValueError(f"population must be > 0, got {population}")

    edge = population ** (1.0 / 3.0) * BOID_DENSITY / WORLD_SIZE_ROUNDING
    # Guard against 64 ** (1/3) == 3.9999999999999996 style round-off
    edge = math.ceil(round(edge, 9)) * WORLD_SIZE_ROUNDING
    return (float(edge), float(edge), float(edge))


def spawn_half_extent(world_size) -> np.ndarray:
    """Half extent of the spawn box (never negative)"""
    world_size = np.asarray(world_size, dtype=np.float64)
    return np.maximum(world_size * 0.5 - SPAWN_MARGIN, 0.0)


def spawn_boids(
    world_size,
    population: int,
    teams_count: int,
    initial_velocity: float,
    seed: Optional[int] = None
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Create initial agent state.

    Args:
        world_size: (3,) world edge lengths
        population: Number of agents (> 0)
        teams_count: Number of teams (> 0)
        initial_velocity: Spawn speed (m/s)
        seed: Optional seed; each component draws from its own derived stream

    Returns:
        Tuple of (positions (N, 3), velocities (N, 3), team_indexes (N,))
    """
    half_extent = spawn_half_extent(world_size)

    positions = random_positions_in_box(make_generator(seed, "positions"), half_extent, population)
    velocities = random_unit_vectors(make_generator(seed, "velocities"), population) * initial_velocity
    team_indexes = random_team_indexes(make_generator(seed, "teams"), population, teams_count)

    return positions, velocities, team_indexes
