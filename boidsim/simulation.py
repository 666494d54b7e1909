"""
Boid simulation kernel.

Main simulation class that owns the agent arrays, team metadata and spatial
grid, and sequences the four-stage tick on a worker pool.
"""

import math
import numbers
import os
import threading
import time
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .aggregation import aggregate_cells
from .avoidance import compute_avoidance
from .constants import (
    AGENT_BATCH_SIZE,
    CELL_BATCH_DIVISOR,
    CROWDED_BUCKET_WARN_DENSITY,
    TICK_TIME_WINDOW,
    WORKER_COUNT_DEFAULT,
)
from .data_types import SimulationConfig, SimulationState, SimulatorParams, Team, TickConfig
from .motion import integrate_motion
from .parallel import ParallelExecutor
from .reindex import apply_cell_changes, predict_cell_indexes
from .spatial_grid import GridGeometry, SpatialGrid
from .spawning import spawn_boids, world_size_for_population


class SimulationConfigError(ValueError):
    """Raised when start-up input, a time step or a tunable is invalid"""
    pass


class SimulationStateError(RuntimeError):
    """Raised when an operation is called in the wrong lifecycle state"""
    pass


def _readonly(array: np.ndarray) -> np.ndarray:
    view = array.view()
    view.flags.writeable = False
    return view


class BoidSimulation:
    """
    Team-partitioned flocking simulation.

    Lifecycle: UNINITIALIZED --start--> RUNNING --stop--> STOPPED --start--> ...

    FOUR-STAGE TICK CONTRACT (Critical Invariant):

    Stage 1: Reindex    (agents)  reads tick-start positions/velocities,
                                  mutates grid + cell cache, then
                                  snapshots the sorted bucket order
    Stage 2: Aggregate  (buckets) reads bucket order + positions/velocities,
                                  writes bucket averages
    Stage 3: Avoid      (agents)  reads bucket order + positions,
                                  writes avoidance scratch
    Stage 4: Integrate  (agents)  reads averages + avoidance,
                                  writes positions/velocities

    Each stage is a parallel pass whose tasks write disjoint indices, and
    each stage finishes completely before the next starts. No stage reads
    what a concurrent task of the same stage writes.
    """

    def __init__(self, params: Optional[SimulatorParams] = None, workers: Optional[int] = WORKER_COUNT_DEFAULT):
        """
        Args:
            params: Initial tunables (defaults when None)
            workers: Worker threads for stage passes (None = cpu count)
        """
        params = replace(params) if params is not None else SimulatorParams()
        errors = params.validation_errors()
        if errors:
            raise SimulationConfigError("; ".join(errors))

        self._params: SimulatorParams = params
        self._params_lock = threading.Lock()
        self._tick_lock = threading.Lock()

        self.workers = workers
        self.state = SimulationState.UNINITIALIZED
        self.tick_count: int = 0
        self.last_moved_count: int = 0

        self._release_resources()
        self._reset_timing()

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def start(
        self,
        world_size: Sequence[float],
        population_count: int,
        teams: Sequence[Team],
        seed: Optional[int] = None
    ):
        """
        Allocate and seed a new simulation.

        Args:
            world_size: (3,) world edge lengths, centered at origin
            population_count: Number of agents (> 0)
            teams: Non-empty ordered team roster
            seed: Optional spawn seed (None = fresh entropy)

        Raises:
            SimulationStateError: Already running (call stop() first)
            SimulationConfigError: Invalid population, teams or world size
        """
        with self._params_lock:
            params = replace(self._params)
        self._start(world_size, population_count, teams, seed, params, self.workers)

    def start_from_config(self, config: SimulationConfig):
        """
        Start using a loaded configuration.

        The config's parameters become the current tunables once the start
        succeeds. A missing world size is derived from the population.
        """
        errors = config.params.validation_errors()
        if errors:
            raise SimulationConfigError("; ".join(errors))

        world_size = config.world_size
        if world_size is None:
            self._validate_population(config.population)
            world_size = world_size_for_population(config.population)

        workers = config.workers if config.workers is not None else self.workers
        self._start(world_size, config.population, config.teams, config.seed, replace(config.params), workers)

        with self._params_lock:
            self._params = replace(config.params)

    def _start(self, world_size, population_count, teams, seed, params: SimulatorParams, workers):
        with self._tick_lock:
            if self.state == SimulationState.RUNNING:
                raise SimulationStateError("Simulation already running; call stop() before start()")

            self._validate_population(population_count)
            teams = self._validate_teams(teams)
            world_size = self._validate_world_size(world_size)
            if workers is not None and workers < 1:
                raise SimulationConfigError(f"workers must be >= 1, got {workers}")

            geometry = GridGeometry.from_world(world_size, params.cell_division)
            positions, velocities, team_indexes = spawn_boids(
                world_size, population_count, len(teams), params.initial_velocity, seed
            )
            self._allocate(geometry, teams, positions, velocities, team_indexes)
            self._executor = ParallelExecutor(workers)

            self.state = SimulationState.RUNNING
            self.tick_count = 0
            self.last_moved_count = 0
            self._reset_timing()

        ax, ay, az = (int(a) for a in geometry.axis_limits)
        print(f"[OK] Simulation started: {population_count} boids, {len(teams)} teams, "
              f"world={tuple(float(w) for w in world_size)}, cells={ax}x{ay}x{az}, "
              f"workers={self._executor.workers}")

        density = population_count / (geometry.cells_count * len(teams))
        if density > CROWDED_BUCKET_WARN_DENSITY:
            print(f"[WARN] {density:.0f} boids per bucket on average; "
                  f"avoidance cost grows with bucket size, consider a larger cell_division")

    def _allocate(self, geometry: GridGeometry, teams: Tuple[Team, ...],
                  positions: np.ndarray, velocities: np.ndarray, team_indexes: np.ndarray):
        """Build every array and the grid for a fresh population"""
        count = len(positions)
        key_count = geometry.cells_count * len(teams)

        self._geometry = geometry
        self._teams = teams
        self._team_acceleration = np.array([t.acceleration for t in teams], dtype=np.float64)
        self._team_drag = np.array([t.drag for t in teams], dtype=np.float64)

        self._positions = positions
        self._velocities = velocities
        self._team_indexes = team_indexes
        self._cell_indexes = geometry.cell_indexes_of(positions)

        # Per-tick scratch (fully rewritten every tick)
        self._next_cell_indexes = np.empty(count, dtype=np.int64)
        self._avoidance_velocities = np.zeros((count, 3), dtype=np.float64)
        self._cells_average_position = np.zeros((key_count, 3), dtype=np.float64)
        self._cells_average_velocity = np.zeros((key_count, 3), dtype=np.float64)

        self._grid = SpatialGrid(geometry, len(teams))
        self._grid.build(self._cell_indexes, self._team_indexes)

    def stop(self):
        """
        Release all arrays, the grid and the worker pool.

        Idempotent: a no-op when not running. Waits for an in-flight tick.
        """
        with self._tick_lock:
            if self.state != SimulationState.RUNNING:
                return

            self._executor.shutdown()
            self._release_resources()
            self.state = SimulationState.STOPPED

        print(f"[OK] Simulation stopped after {self.tick_count} ticks")

    def _release_resources(self):
        self._executor: Optional[ParallelExecutor] = None
        self._geometry: Optional[GridGeometry] = None
        self._grid: Optional[SpatialGrid] = None
        self._teams: Tuple[Team, ...] = ()
        self._team_acceleration = np.empty(0, dtype=np.float64)
        self._team_drag = np.empty(0, dtype=np.float64)

        self._positions = np.empty((0, 3), dtype=np.float64)
        self._velocities = np.empty((0, 3), dtype=np.float64)
        self._team_indexes = np.empty(0, dtype=np.int64)
        self._cell_indexes = np.empty(0, dtype=np.int64)

        self._next_cell_indexes = np.empty(0, dtype=np.int64)
        self._avoidance_velocities = np.empty((0, 3), dtype=np.float64)
        self._cells_average_position = np.empty((0, 3), dtype=np.float64)
        self._cells_average_velocity = np.empty((0, 3), dtype=np.float64)

    def __enter__(self) -> 'BoidSimulation':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()

    # ========================================================================
    # Tick
    # ========================================================================

    def step(self, dt: float):
        """
        Advance the simulation by dt seconds (scaled by time_scale).

        Raises:
            SimulationStateError: Not running
            SimulationConfigError: dt not a real number, negative or not finite
        """
        with self._tick_lock:
            if self.state != SimulationState.RUNNING:
                raise SimulationStateError(f"step() requires a running simulation (state={self.state.value})")
            if isinstance(dt, bool) or not isinstance(dt, numbers.Real) or not math.isfinite(dt) or dt < 0:
                raise SimulationConfigError(f"dt must be finite and >= 0, got {dt!r}")
            dt = float(dt)

            with self._params_lock:
                config = TickConfig.snapshot(self._params, dt, self._geometry.half_size, self._geometry.cells_count)

            self._run_tick(config)
            self.tick_count += 1

            # Debug invariant check (zero perf impact when env var not set)
            if os.getenv('BOIDSIM_DEBUG_INVARIANTS') == '1':
                self._check_invariants()

    def _run_tick(self, config: TickConfig):
        executor = self._executor
        count = len(self._positions)
        key_count = self._grid.key_count
        start_time = time.perf_counter()

        # Stage 1: reindex (predict pass, then locked apply pass)
        stage_start = time.perf_counter()
        executor.parallel_for(
            count, AGENT_BATCH_SIZE, predict_cell_indexes,
            self._geometry, self._positions, self._velocities, config.dt, self._next_cell_indexes
        )
        moved = executor.parallel_for(
            count, AGENT_BATCH_SIZE, apply_cell_changes,
            self._grid, self._cell_indexes, self._next_cell_indexes, self._team_indexes
        )
        self.last_moved_count = sum(moved)
        buckets = self._grid.bucket_order(self._cell_indexes, self._team_indexes)
        self._reindex_times.append(time.perf_counter() - stage_start)

        # Stage 2: bucket averages
        stage_start = time.perf_counter()
        executor.parallel_for(
            key_count, max(1, key_count // CELL_BATCH_DIVISOR), aggregate_cells,
            buckets, self._positions, self._velocities,
            self._cells_average_position, self._cells_average_velocity
        )
        self._aggregate_times.append(time.perf_counter() - stage_start)

        # Stage 3: teammate avoidance
        stage_start = time.perf_counter()
        executor.parallel_for(
            count, AGENT_BATCH_SIZE, compute_avoidance,
            buckets, self._positions, config.avoidance_range, self._avoidance_velocities
        )
        self._avoidance_times.append(time.perf_counter() - stage_start)

        # Stage 4: integrate
        stage_start = time.perf_counter()
        executor.parallel_for(
            count, AGENT_BATCH_SIZE, integrate_motion,
            config, self._positions, self._velocities, self._cell_indexes, self._team_indexes,
            self._team_acceleration, self._team_drag, self._avoidance_velocities,
            self._cells_average_position, self._cells_average_velocity
        )
        self._motion_times.append(time.perf_counter() - stage_start)

        self._record_tick_time(time.perf_counter() - start_time)

    def _check_invariants(self):
        assert np.all(np.isfinite(self._positions)), "non-finite position after tick"
        assert np.all(np.isfinite(self._velocities)), "non-finite velocity after tick"
        assert self._grid.matches(self._cell_indexes, self._team_indexes), \
            "spatial grid out of sync with cell cache"

    # ========================================================================
    # Published state (read-only views, valid until the next step/start/stop)
    # ========================================================================

    @property
    def positions(self) -> np.ndarray:
        self._require_running()
        return _readonly(self._positions)

    @property
    def velocities(self) -> np.ndarray:
        self._require_running()
        return _readonly(self._velocities)

    @property
    def team_indexes(self) -> np.ndarray:
        self._require_running()
        return _readonly(self._team_indexes)

    @property
    def cell_indexes(self) -> np.ndarray:
        self._require_running()
        return _readonly(self._cell_indexes)

    @property
    def teams(self) -> Tuple[Team, ...]:
        self._require_running()
        return self._teams

    @property
    def population_count(self) -> int:
        self._require_running()
        return len(self._positions)

    @property
    def world_size(self) -> np.ndarray:
        self._require_running()
        return self._geometry.world_size.copy()

    @property
    def geometry(self) -> GridGeometry:
        self._require_running()
        return self._geometry

    @property
    def grid(self) -> SpatialGrid:
        self._require_running()
        return self._grid

    def _require_running(self):
        if self.state != SimulationState.RUNNING:
            raise SimulationStateError(f"Simulation not running (state={self.state.value})")

    # ========================================================================
    # Tunables
    # ========================================================================

    @property
    def params(self) -> SimulatorParams:
        """Copy of the current tunables"""
        with self._params_lock:
            return replace(self._params)

    def update_params(self, **changes):
        """
        Change tunables; they take effect at the next step().

        cell_division only takes effect at the next start().

        Raises:
            SimulationConfigError: Unknown name or invalid value (nothing
                is changed in that case)
        """
        unknown = sorted(set(changes) - set(SimulatorParams.names()))
        if unknown:
            raise SimulationConfigError(f"Unknown parameter(s): {', '.join(unknown)}")

        with self._params_lock:
            candidate = replace(self._params, **changes)
            errors = candidate.validation_errors()
            if errors:
                raise SimulationConfigError("; ".join(errors))
            self._params = candidate

    # ========================================================================
    # Debug helpers
    # ========================================================================

    def set_agent_state(self, index: int, position, velocity=None):
        """
        Overwrite one agent's position (and optionally velocity).

        The agent is re-bucketed immediately so the grid invariant holds.
        Intended for tests and scripted scenarios.
        """
        with self._tick_lock:
            self._require_running()
            if not 0 <= index < len(self._positions):
                raise IndexError(f"agent index {index} outside [0, {len(self._positions)})")

            self._positions[index] = np.asarray(position, dtype=np.float64)
            if velocity is not None:
                self._velocities[index] = np.asarray(velocity, dtype=np.float64)

            old_cell = int(self._cell_indexes[index])
            new_cell = self._geometry.cell_index_of(self._positions[index])
            if new_cell != old_cell:
                team = int(self._team_indexes[index])
                self._grid.remove(self._grid.composite_key(old_cell, team), index)
                self._grid.insert(self._grid.composite_key(new_cell, team), index)
                self._cell_indexes[index] = new_cell

    def get_cell_overlay(self) -> Dict:
        """
        Occupied buckets with their latest aggregates (for debug overlays).

        Returns:
            Dict with keys: cells_count, axis_limits, cell_size, density,
            keys, cell_indexes, team_indexes, cell_centers, counts,
            average_positions, average_velocities
        """
        self._require_running()
        geometry = self._geometry
        occupancy = self._grid.occupancy()
        keys = np.flatnonzero(occupancy)
        cell_indexes = keys % geometry.cells_count

        centers = np.array([geometry.cell_center(int(c)) for c in cell_indexes], dtype=np.float64)
        return {
            'cells_count': geometry.cells_count,
            'axis_limits': tuple(int(a) for a in geometry.axis_limits),
            'cell_size': geometry.cell_size.copy(),
            'density': len(self._positions) / geometry.cells_count,
            'keys': keys,
            'cell_indexes': cell_indexes,
            'team_indexes': keys // geometry.cells_count,
            'cell_centers': centers.reshape(-1, 3),
            'counts': occupancy[keys],
            'average_positions': self._cells_average_position[keys].copy(),
            'average_velocities': self._cells_average_velocity[keys].copy(),
        }

    # ========================================================================
    # Validation
    # ========================================================================

    @staticmethod
    def _validate_population(population_count):
        if isinstance(population_count, bool) or not isinstance(population_count, (int, np.integer)):
            raise SimulationConfigError(f"population_count must be an integer, got {population_count!r}")
        if population_count <= 0:
            raise SimulationConfigError(f"population_count must be > 0, got {population_count}")

    @staticmethod
    def _validate_teams(teams) -> Tuple[Team, ...]:
        teams = tuple(teams) if teams is not None else ()
        if not teams:
            raise SimulationConfigError("teams must contain at least one Team")
        for i, team in enumerate(teams):
            if not isinstance(team, Team):
                raise SimulationConfigError(f"teams[{i}] is not a Team: {team!r}")
            errors = team.validation_errors()
            if errors:
                raise SimulationConfigError(f"teams[{i}]: " + "; ".join(errors))
        return teams

    @staticmethod
    def _validate_world_size(world_size) -> np.ndarray:
        try:
            world_size = np.asarray(world_size, dtype=np.float64)
        except (TypeError, ValueError):
            raise SimulationConfigError(f"world_size must be three numbers, got {world_size!r}")
        if world_size.shape != (3,):
            raise SimulationConfigError(f"world_size must have 3 components, got shape {world_size.shape}")
        if not np.all(np.isfinite(world_size)) or np.any(world_size <= 0):
            raise SimulationConfigError(f"world_size components must be finite and > 0, got {world_size.tolist()}")
        return world_size

    # ========================================================================
    # Timing
    # ========================================================================

    def _reset_timing(self):
        self._tick_times: List[float] = []
        self._tick_time_sum: float = 0.0
        self._tick_time_window: int = TICK_TIME_WINDOW

        self._reindex_times: List[float] = []
        self._aggregate_times: List[float] = []
        self._avoidance_times: List[float] = []
        self._motion_times: List[float] = []

    def _record_tick_time(self, elapsed: float):
        """
        Record tick timing for rolling average.

        Args:
            elapsed: Tick time in seconds
        """
        self._tick_times.append(elapsed)
        self._tick_time_sum += elapsed

        # Maintain rolling window
        if len(self._tick_times) > self._tick_time_window:
            removed = self._tick_times.pop(0)
            self._tick_time_sum -= removed

        for stage_times in (self._reindex_times, self._aggregate_times,
                            self._avoidance_times, self._motion_times):
            if len(stage_times) > self._tick_time_window:
                stage_times.pop(0)

    def get_tick_stats(self) -> dict:
        """
        Get current tick timing statistics.

        Returns:
            Dict with tick_count, avg_tick_time_ms, last_tick_time_ms, moved_last_tick
        """
        if not self._tick_times:
            return {
                'tick_count': self.tick_count,
                'avg_tick_time_ms': 0.0,
                'last_tick_time_ms': 0.0,
                'moved_last_tick': self.last_moved_count
            }

        return {
            'tick_count': self.tick_count,
            'avg_tick_time_ms': self._tick_time_sum / len(self._tick_times) * 1000.0,
            'last_tick_time_ms': self._tick_times[-1] * 1000.0,
            'moved_last_tick': self.last_moved_count
        }

    def print_tick_summary(self):
        """Print tick summary to console (lightweight monitoring)"""
        stats = self.get_tick_stats()
        population = len(self._positions)
        print(f"Tick {stats['tick_count']:5d} | "
              f"Avg: {stats['avg_tick_time_ms']:6.3f} ms | "
              f"Last: {stats['last_tick_time_ms']:6.3f} ms | "
              f"Boids: {population} | "
              f"Re-bucketed: {stats['moved_last_tick']}")

    def print_perf_breakdown(self, every: int = 200):
        """
        Print per-stage timing breakdown on interval.

        Only prints every N ticks to reduce overhead.

        Args:
            every: Print interval in ticks (default 200)
        """
        if self.tick_count == 0 or self.tick_count % every != 0:
            return

        window = min(every, len(self._tick_times))
        if window == 0:
            return

        def avg_ms(times: List[float]) -> float:
            recent = times[-window:]
            return sum(recent) / len(recent) * 1000.0 if recent else 0.0

        avg_reindex = avg_ms(self._reindex_times)
        avg_aggregate = avg_ms(self._aggregate_times)
        avg_avoidance = avg_ms(self._avoidance_times)
        avg_motion = avg_ms(self._motion_times)
        avg_total = avg_ms(self._tick_times)

        print(f"\n[Perf Breakdown] Tick {self.tick_count} ({len(self._positions)} boids, "
              f"{self._executor.workers if self._executor else 0} workers)")
        print(f"  Reindex:      {avg_reindex:6.3f} ms")
        print(f"  Aggregate:    {avg_aggregate:6.3f} ms")
        print(f"  Avoidance:    {avg_avoidance:6.3f} ms")
        print(f"  Motion:       {avg_motion:6.3f} ms")
        print(f"  Total:        {avg_total:6.3f} ms")
        print(f"  Overhead:     {(avg_total - avg_reindex - avg_aggregate - avg_avoidance - avg_motion):6.3f} ms")
