"""
Data types for simulation configuration and per-tick snapshots.

Team and SimulatorParams are populated by loader.py from YAML files, or
constructed directly by callers.
"""

import math
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import List, Optional, Tuple

from .constants import (
    INITIAL_VELOCITY_DEFAULT,
    MATCH_VELOCITY_RATE_DEFAULT,
    AVOIDANCE_RANGE_DEFAULT,
    AVOIDANCE_RATE_DEFAULT,
    COHERENCE_RATE_DEFAULT,
    VIEW_RANGE_DEFAULT,
    CELL_DIVISION_DEFAULT,
    TIME_SCALE_DEFAULT,
    DEFAULT_TEAMS,
)


# ============================================================================
# Teams
# ============================================================================

@dataclass(frozen=True)
class Team:
    """Motion parameters shared by every agent of one team"""
    acceleration: float  # Thrust along heading (m/s^2)
    drag: float  # Scaled by DRAG_COEFFICIENT_SCALE per second
    size: float = 1.0  # Visual scale, passed through to renderers
    name: Optional[str] = None

    def validation_errors(self) -> List[str]:
        """
        Check the motion fields for usable values.

        acceleration must be finite, drag finite and >= 0, size finite
        and > 0. A NaN here would spread to every velocity of the team.

        Returns:
            List of human-readable problems (empty when valid)
        """
        errors = []
        for name in ('acceleration', 'drag', 'size'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                errors.append(f"{name} must be a number, got {value!r}")
            elif not math.isfinite(value):
                errors.append(f"{name} must be finite, got {value!r}")
            elif name == 'drag' and value < 0:
                errors.append(f"drag must be >= 0, got {value!r}")
            elif name == 'size' and value <= 0:
                errors.append(f"size must be > 0, got {value!r}")
        return errors


def default_teams() -> List[Team]:
    """Return the standard red/green/blue roster"""
    return [
        Team(acceleration=acceleration, drag=drag, size=size, name=name)
        for name, acceleration, drag, size in DEFAULT_TEAMS
    ]


# ============================================================================
# Tunable Parameters
# ============================================================================

# Fields that must be strictly positive (all others must be non-negative)
_POSITIVE_PARAMS = ('avoidance_range', 'cell_division')


@dataclass
class SimulatorParams:
    """Tunable parameter block (settable at any time, read at next step)"""
    initial_velocity: float = INITIAL_VELOCITY_DEFAULT
    match_velocity_rate: float = MATCH_VELOCITY_RATE_DEFAULT
    avoidance_range: float = AVOIDANCE_RANGE_DEFAULT
    avoidance_rate: float = AVOIDANCE_RATE_DEFAULT
    coherence_rate: float = COHERENCE_RATE_DEFAULT
    view_range: float = VIEW_RANGE_DEFAULT  # Reserved: not read by any force
    cell_division: float = CELL_DIVISION_DEFAULT  # Applied on next start only
    time_scale: float = TIME_SCALE_DEFAULT

    @classmethod
    def names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def validation_errors(self) -> List[str]:
        """
        Check every field for a usable value.

        Returns:
            List of human-readable problems (empty when valid)
        """
        errors = []
        for name in self.names():
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                errors.append(f"{name} must be a number, got {value!r}")
                continue
            if not math.isfinite(value):
                errors.append(f"{name} must be finite, got {value!r}")
            elif name in _POSITIVE_PARAMS and value <= 0:
                errors.append(f"{name} must be > 0, got {value!r}")
            elif value < 0:
                errors.append(f"{name} must be >= 0, got {value!r}")
        return errors


@dataclass(frozen=True)
class TickConfig:
    """
    Immutable parameter snapshot handed to every stage of one tick.

    Taken once at dispatch so parameter updates made while a tick is
    running cannot be observed half-way through the pipeline.
    """
    dt: float  # Scaled time step (caller dt * time_scale)
    match_velocity_rate: float
    avoidance_range: float
    avoidance_rate: float
    coherence_rate: float
    view_range: float
    world_half_size: Tuple[float, float, float]
    cells_count: int

    @classmethod
    def snapshot(cls, params: SimulatorParams, dt: float,
                 world_half_size, cells_count: int) -> 'TickConfig':
        return cls(
            dt=dt * params.time_scale,
            match_velocity_rate=params.match_velocity_rate,
            avoidance_range=params.avoidance_range,
            avoidance_rate=params.avoidance_rate,
            coherence_rate=params.coherence_rate,
            view_range=params.view_range,
            world_half_size=tuple(float(h) for h in world_half_size),
            cells_count=cells_count,
        )


# ============================================================================
# Simulation Configuration
# ============================================================================

class SimulationState(Enum):
    """Lifecycle states of the simulator"""
    UNINITIALIZED = "uninitialized"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class SimulationConfig:
    """Complete start-up configuration (usually loaded from YAML)"""
    population: int
    teams: List[Team]
    params: SimulatorParams = field(default_factory=SimulatorParams)
    world_size: Optional[Tuple[float, float, float]] = None  # None = derive from population
    seed: Optional[int] = None
    workers: Optional[int] = None
    description: Optional[str] = None
