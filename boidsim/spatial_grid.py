"""
Uniform spatial hash grid partitioned by team.

The world volume (origin-centered box) is cut into a fixed number of cells
per axis. Each agent lives in exactly one bucket identified by its
composite key:

    composite_key = cell_index + cells_count * team_index

so agents of different teams never share a bucket even when they share a
physical cell.

Concurrency model:
- Buckets are plain sets of agent indices, created lazily and reused
  (emptied, never deleted) so steady-state ticks do not allocate.
- insert/remove take a per-shard lock (shard = key % shard_count).
  Concurrent mutations of the same key from different tasks never lose
  an entry.
- Reads (members, members_array, count) take no lock. Callers must not
  mutate and read the same key within one stage.

The read-only stages (aggregation, avoidance) do not walk the sets. They
take a BucketOrder snapshot once per tick: all agents sorted by key with
per-key offsets, so every bucket is a contiguous slice.
"""

import math
import threading
from typing import Dict, Iterator, Set, Tuple

import numpy as np

from .constants import CELL_BASE_SIZE, GRID_LOCK_SHARDS


class GridGeometry:
    """
    Cell layout of the world volume.

    Attributes:
        world_size: (3,) world edge lengths
        half_size: (3,) half of world_size
        axis_limits: (3,) cells per axis
        cell_size: (3,) cell edge lengths
        cells_count: Total number of cells (product of axis_limits)
    """

    def __init__(self, world_size, axis_limits):
        self.world_size = np.array(world_size, dtype=np.float64)
        self.half_size = self.world_size * 0.5
        self.axis_limits = np.array(axis_limits, dtype=np.int64)
        self.cell_size = self.world_size / self.axis_limits
        self.cells_count = int(np.prod(self.axis_limits))
        self._max_axis = self.axis_limits - 1

    @classmethod
    def from_world(cls, world_size, cell_division: float) -> 'GridGeometry':
        """
        Derive the grid for a world volume.

        cells per axis = floor(world_size / 3.0 * cell_division), at least 1.

        Args:
            world_size: (3,) world edge lengths (> 0)
            cell_division: Resolution factor (> 0); larger = finer grid
        """
        world_size = np.asarray(world_size, dtype=np.float64)
        axis_limits = [
            max(1, int(math.floor(edge / CELL_BASE_SIZE * cell_division)))
            for edge in world_size
        ]
        return cls(world_size, axis_limits)

    def axis_indexes_of(self, positions: np.ndarray) -> np.ndarray:
        """
        Per-axis cell coordinates of positions.

        Positions outside the world volume clamp to the boundary cell.

        Args:
            positions: (M, 3) positions

        Returns:
            (M, 3) int64 axis indexes in [0, axis_limits)
        """
        scaled = np.floor((positions + self.half_size) / self.cell_size)
        # Clip in float space so far-out (or non-finite) values never overflow the cast
        scaled = np.nan_to_num(scaled, nan=0.0)
        return np.clip(scaled, 0, self._max_axis).astype(np.int64)

    def cell_indexes_of(self, positions: np.ndarray) -> np.ndarray:
        """
        Flattened cell index (z*ax*ay + y*ax + x) of each position.

        Args:
            positions: (M, 3) positions

        Returns:
            (M,) int64 cell indexes in [0, cells_count)
        """
        axis = self.axis_indexes_of(positions)
        ax, ay = int(self.axis_limits[0]), int(self.axis_limits[1])
        return axis[:, 2] * (ax * ay) + axis[:, 1] * ax + axis[:, 0]

    def cell_index_of(self, position) -> int:
        """Cell index of a single (3,) position"""
        position = np.asarray(position, dtype=np.float64).reshape(1, 3)
        return int(self.cell_indexes_of(position)[0])

    def cell_axis_indexes(self, cell_index: int) -> Tuple[int, int, int]:
        """Inverse of the flattening: cell index -> (x, y, z)"""
        if not 0 <= cell_index < self.cells_count:
            raise IndexError(f"cell index {cell_index} outside [0, {self.cells_count})")
        ax, ay = int(self.axis_limits[0]), int(self.axis_limits[1])
        z, rest = divmod(cell_index, ax * ay)
        y, x = divmod(rest, ax)
        return x, y, z

    def cell_center(self, cell_index: int) -> np.ndarray:
        """World-space center of a cell"""
        axis = np.array(self.cell_axis_indexes(cell_index), dtype=np.float64)
        return (axis + 0.5) * self.cell_size - self.half_size


class SpatialGrid:
    """
    Concurrency-safe multi-map: composite key -> set of agent indices.

    The grid is a derived index over agent state (cell cache + team), never
    a source of truth for positions.
    """

    def __init__(self, geometry: GridGeometry, teams_count: int, shard_count: int = GRID_LOCK_SHARDS):
        """
        Args:
            geometry: Cell layout of the world
            teams_count: Number of teams (composite key partitions)
            shard_count: Number of bucket locks
        """
        self.geometry = geometry
        self.teams_count = teams_count
        self.cells_count = geometry.cells_count
        self.key_count = self.cells_count * teams_count

        self._buckets: Dict[int, Set[int]] = {}
        self._shard_count = max(1, shard_count)
        self._locks = [threading.Lock() for _ in range(self._shard_count)]

    def composite_key(self, cell_index, team_index):
        """Bucket key for a cell/team pair (scalars or int arrays)"""
        return cell_index + self.cells_count * team_index

    def insert(self, key: int, agent_index: int):
        """Add agent to the bucket of key"""
        self._check_key(key)
        with self._locks[key % self._shard_count]:
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = set()
                self._buckets[key] = bucket
            bucket.add(agent_index)

    def remove(self, key: int, agent_index: int) -> bool:
        """
        Remove agent from the bucket of key.

        Returns:
            True if the agent was present, False otherwise
        """
        self._check_key(key)
        with self._locks[key % self._shard_count]:
            bucket = self._buckets.get(key)
            if bucket is None or agent_index not in bucket:
                return False
            bucket.discard(agent_index)
            return True

    def members(self, key: int) -> Iterator[int]:
        """
        Lazy iterator over agent indices of a bucket.

        Finite and single-pass. The bucket must not be mutated while the
        iterator is being consumed.
        """
        self._check_key(key)
        bucket = self._buckets.get(key)
        if not bucket:
            return iter(())
        return iter(bucket)

    def members_array(self, key: int) -> np.ndarray:
        """Bucket members as a sorted int64 array (empty array if none)"""
        self._check_key(key)
        bucket = self._buckets.get(key)
        if not bucket:
            return np.empty(0, dtype=np.int64)
        members = np.fromiter(bucket, dtype=np.int64, count=len(bucket))
        members.sort()
        return members

    def count(self, key: int) -> int:
        """Number of agents in a bucket"""
        self._check_key(key)
        bucket = self._buckets.get(key)
        return len(bucket) if bucket else 0

    def total_count(self) -> int:
        """Number of entries across all buckets"""
        return sum(len(bucket) for bucket in self._buckets.values())

    def occupancy(self) -> np.ndarray:
        """(key_count,) int64 member counts, indexed by composite key"""
        counts = np.zeros(self.key_count, dtype=np.int64)
        for key, bucket in self._buckets.items():
            counts[key] = len(bucket)
        return counts

    def clear(self):
        """Empty every bucket (buckets are kept for reuse)"""
        for bucket in self._buckets.values():
            bucket.clear()

    def build(self, cell_indexes: np.ndarray, team_indexes: np.ndarray):
        """
        Bulk (re)fill the grid from per-agent cell and team indexes.

        Not thread-safe against concurrent mutation; used at start-up.
        """
        self.clear()
        keys = self.composite_key(cell_indexes, team_indexes)
        for agent_index, key in enumerate(keys.tolist()):
            self.insert(key, agent_index)

    def matches(self, cell_indexes: np.ndarray, team_indexes: np.ndarray) -> bool:
        """
        Check the grid invariant against agent state.

        True iff every agent is in exactly the bucket of its
        (cell_index, team_index) and nothing else is stored.
        """
        if self.total_count() != len(cell_indexes):
            return False
        keys = self.composite_key(cell_indexes, team_indexes)
        for agent_index, key in enumerate(keys.tolist()):
            bucket = self._buckets.get(key)
            if bucket is None or agent_index not in bucket:
                return False
        return True

    def bucket_order(self, cell_indexes: np.ndarray, team_indexes: np.ndarray) -> 'BucketOrder':
        """Sorted membership snapshot for the read-only stages of a tick"""
        return BucketOrder(self.composite_key(cell_indexes, team_indexes), self.key_count)

    def _check_key(self, key: int):
        if not 0 <= key < self.key_count:
            raise IndexError(f"composite key {key} outside [0, {self.key_count})")


class BucketOrder:
    """
    Read-only snapshot of bucket membership as one sorted agent order.

    Agents are sorted by composite key (stable, so ascending agent index
    within a bucket); bucket k holds order[offsets[k]:offsets[k + 1]].
    Built from the cell cache after reindexing, when the grid invariant
    makes it equal to the grid's membership.

    Attributes:
        agent_keys: (N,) composite key of every agent
        order: (N,) agent indices sorted by key
        sorted_keys: (N,) agent_keys[order]
        offsets: (key_count + 1,) start of every bucket in order
    """

    def __init__(self, agent_keys: np.ndarray, key_count: int):
        self.agent_keys = np.asarray(agent_keys, dtype=np.int64)
        self.key_count = key_count
        self.order = np.argsort(self.agent_keys, kind='stable')
        self.sorted_keys = self.agent_keys[self.order]

        counts = np.bincount(self.agent_keys, minlength=key_count)
        self.offsets = np.zeros(key_count + 1, dtype=np.int64)
        np.cumsum(counts, out=self.offsets[1:])

    def members(self, key: int) -> np.ndarray:
        """Agents of a bucket, ascending (a view into order)"""
        return self.order[self.offsets[key]:self.offsets[key + 1]]

    def count(self, key: int) -> int:
        return int(self.offsets[key + 1] - self.offsets[key])
