"""
Motion integration (stage 4 of the tick).

Combines every steering contribution into the velocity, then advances the
position. The steps are order-dependent: each one reads the velocity left
by the previous one.

    1. World-bound containment
    2. Alignment   (toward bucket average velocity)
    3. Cohesion    (toward bucket average position)
    4. Avoidance   (away from crowding teammates)
    5. Team acceleration along heading
    6. Team drag
    7. position += velocity * dt
"""

import numpy as np

from .constants import BOUNDARY_STRENGTH, DRAG_COEFFICIENT_SCALE
from .data_types import TickConfig
from .spatial import box_overshoot, normalize_rows


def integrate_motion(
    start: int,
    stop: int,
    config: TickConfig,
    positions: np.ndarray,
    velocities: np.ndarray,
    cell_indexes: np.ndarray,
    team_indexes: np.ndarray,
    team_acceleration: np.ndarray,
    team_drag: np.ndarray,
    avoidance_velocities: np.ndarray,
    average_positions: np.ndarray,
    average_velocities: np.ndarray
):
    """
    Advance agents [start, stop) by one time step.

    Args:
        config: Tick parameter snapshot
        positions: (N, 3) updated in place at [start, stop)
        velocities: (N, 3) updated in place at [start, stop)
        cell_indexes: (N,) cached cells (read-only)
        team_indexes: (N,) teams (read-only)
        team_acceleration: (T,) per-team acceleration
        team_drag: (T,) per-team drag
        avoidance_velocities: (N, 3) from avoidance stage (read-only)
        average_positions: (K, 3) bucket averages (read-only)
        average_velocities: (K, 3) bucket averages (read-only)
    """
    dt = config.dt
    position = positions[start:stop]
    velocity = velocities[start:stop].copy()
    teams = team_indexes[start:stop]
    keys = cell_indexes[start:stop] + config.cells_count * teams

    # Avoid world bounds
    half_size = np.asarray(config.world_half_size, dtype=np.float64)
    overshoot = box_overshoot(position, half_size, config.avoidance_range)
    velocity -= overshoot * np.sign(position) * BOUNDARY_STRENGTH * dt

    # Align
    velocity += (average_velocities[keys] - velocity) * dt * config.match_velocity_rate

    # Coherence
    velocity += (average_positions[keys] - position) * dt * config.coherence_rate

    # Avoid teammates
    velocity += avoidance_velocities[start:stop] * dt * config.avoidance_rate

    # Team acceleration (zero velocity has no heading and is left alone)
    heading, _ = normalize_rows(velocity)
    velocity += heading * (team_acceleration[teams] * dt)[:, np.newaxis]

    # Team drag
    velocity *= (1.0 - DRAG_COEFFICIENT_SCALE * team_drag[teams] * dt)[:, np.newaxis]

    positions[start:stop] = position + velocity * dt
    velocities[start:stop] = velocity
