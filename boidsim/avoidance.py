"""
Teammate avoidance (stage 3 of the tick).

Each agent is pushed away from every same-team agent of its own bucket
that is closer than the avoidance range. Every too-close neighbour
contributes one unit vector pointing away from it, so the result counts
crowding rather than measuring overlap depth.

Architecture:
- Agent-indexed: one output row per agent, written only by the task that
  owns the agent's index range
- Bucket-batched: agents of the range that share a bucket are evaluated
  together against that bucket's members (a slice of the bucket order)
- Bounded blocks: a group is cut into (agents x members) blocks of at
  most AVOIDANCE_MAX_PAIRS pairs, so memory stays flat for crowded buckets
- Cost is O(members-per-bucket) per agent, which is why the grid
  resolution is tunable
"""

import numpy as np

from .constants import AVOIDANCE_MAX_PAIRS
from .spatial_grid import BucketOrder


def compute_avoidance(
    start: int,
    stop: int,
    buckets: BucketOrder,
    positions: np.ndarray,
    avoidance_range: float,
    out_avoidance: np.ndarray,
    max_pairs: int = AVOIDANCE_MAX_PAIRS
):
    """
    Accumulate repulsion for agents [start, stop).

    Args:
        buckets: Sorted membership snapshot (read-only)
        positions: (N, 3) agent positions (read-only)
        avoidance_range: Repulsion radius (meters)
        out_avoidance: (N, 3) written at [start, stop)
        max_pairs: Pair budget of one evaluated block
    """
    keys = buckets.agent_keys[start:stop]
    range_sq = avoidance_range * avoidance_range

    # Group range agents by bucket so each bucket is visited once
    order = np.argsort(keys, kind='stable')
    sorted_keys = keys[order]
    boundaries = np.flatnonzero(np.diff(sorted_keys)) + 1

    for group in np.split(order, boundaries):
        if len(group) == 0:
            continue
        agents = group + start
        members = buckets.members(int(keys[group[0]]))
        out_avoidance[agents] = _group_repulsion(positions, agents, members, range_sq, max_pairs)


def _group_repulsion(positions: np.ndarray, agents: np.ndarray, members: np.ndarray,
                     range_sq: float, max_pairs: int) -> np.ndarray:
    """Repulsion of agents from members, evaluated in bounded blocks"""
    member_count = max(1, len(members))
    agent_step = max(1, max_pairs // member_count)
    member_step = max(1, max_pairs // agent_step)

    result = np.zeros((len(agents), 3), dtype=np.float64)
    for a0 in range(0, len(agents), agent_step):
        agent_positions = positions[agents[a0:a0 + agent_step]]
        for m0 in range(0, len(members), member_step):
            result[a0:a0 + agent_step] += _bucket_repulsion(
                agent_positions, positions[members[m0:m0 + member_step]], range_sq
            )
    return result


def _bucket_repulsion(agent_positions: np.ndarray, member_positions: np.ndarray, range_sq: float) -> np.ndarray:
    """
    Sum of unit vectors away from close members, per agent.

    Args:
        agent_positions: (A, 3) positions of evaluated agents
        member_positions: (M, 3) positions of bucket members
        range_sq: Squared avoidance radius

    Returns:
        (A, 3) repulsion. Pairs at zero distance (the agent itself or a
        coincident teammate) contribute nothing.
    """
    if len(member_positions) == 0:
        return np.zeros_like(agent_positions)

    delta = agent_positions[:, np.newaxis, :] - member_positions[np.newaxis, :, :]  # (A, M, 3)
    dist_sq = np.einsum('amk,amk->am', delta, delta)  # (A, M)

    close = (dist_sq < range_sq) & (dist_sq > 0.0)
    inv_dist = np.zeros_like(dist_sq)
    inv_dist[close] = 1.0 / np.sqrt(dist_sq[close])

    return np.einsum('amk,am->ak', delta, inv_dist)
