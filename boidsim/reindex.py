"""
Grid reindexing (stage 1 of the tick).

Keeps the per-agent cell cache and the spatial grid in step with agent
positions. Runs as two parallel passes:

1. predict_cell_indexes: read-only over agent state, writes the scratch
   array of target cells (one slot per agent, no contention).
2. apply_cell_changes: moves agents whose target differs from the cached
   cell. Grid mutations go through the grid's sharded locks because two
   agents of one range and another may target the same bucket.

Anticipatory indexing: the target cell is computed from
`position + velocity * dt`, i.e. where the agent is expected to be after
this tick's integration, using tick-start state. For one tick the cache
therefore leads the stored position; aggregation and avoidance in the
same tick see agents grouped by their predicted cell.
"""

import numpy as np

from .spatial_grid import GridGeometry, SpatialGrid


def predict_cell_indexes(
    start: int,
    stop: int,
    geometry: GridGeometry,
    positions: np.ndarray,
    velocities: np.ndarray,
    dt: float,
    out_next_cells: np.ndarray
):
    """
    Compute next-tick cell of agents [start, stop).

    Args:
        geometry: Grid layout
        positions: (N, 3) tick-start positions (read-only)
        velocities: (N, 3) tick-start velocities (read-only)
        dt: Scaled time step
        out_next_cells: (N,) scratch, written at [start, stop)
    """
    predicted = positions[start:stop] + velocities[start:stop] * dt
    out_next_cells[start:stop] = geometry.cell_indexes_of(predicted)


def apply_cell_changes(
    start: int,
    stop: int,
    grid: SpatialGrid,
    cell_indexes: np.ndarray,
    next_cell_indexes: np.ndarray,
    team_indexes: np.ndarray
) -> int:
    """
    Re-bucket agents [start, stop) whose target cell changed.

    Args:
        grid: Spatial grid (mutated under its shard locks)
        cell_indexes: (N,) cached cells, updated at [start, stop)
        next_cell_indexes: (N,) targets from predict_cell_indexes
        team_indexes: (N,) team of each agent (read-only)

    Returns:
        Number of agents that changed bucket
    """
    current = cell_indexes[start:stop]
    target = next_cell_indexes[start:stop]
    moved = np.nonzero(current != target)[0]

    if len(moved) == 0:
        return 0

    agents = moved + start
    teams = team_indexes[agents]
    old_keys = grid.composite_key(current[moved], teams)
    new_keys = grid.composite_key(target[moved], teams)

    for agent_index, old_key, new_key in zip(agents.tolist(), old_keys.tolist(), new_keys.tolist()):
        grid.remove(old_key, agent_index)
        grid.insert(new_key, agent_index)

    cell_indexes[agents] = target[moved]
    return len(moved)
