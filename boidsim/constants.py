"""
Central configuration constants for the boid simulation.

Defines fixed physics constants, tunable defaults, spawning rules and
parallel scheduling parameters used across multiple modules.
"""

# ============================================================================
# Physics Constants (fixed, not tunable)
# ============================================================================

# Scale of the world-bound containment force (per meter of overshoot)
BOUNDARY_STRENGTH = 5.0

# Multiplier applied to Team.drag before it is used as a per-second damping
DRAG_COEFFICIENT_SCALE = 30.0


# ============================================================================
# Tunable Parameter Defaults
# ============================================================================

INITIAL_VELOCITY_DEFAULT = 2.0      # Spawn speed (m/s)
MATCH_VELOCITY_RATE_DEFAULT = 4.0   # Alignment strength
AVOIDANCE_RANGE_DEFAULT = 2.0       # Teammate repulsion radius (meters)
AVOIDANCE_RATE_DEFAULT = 5.0        # Avoidance strength
COHERENCE_RATE_DEFAULT = 2.0        # Cohesion strength
VIEW_RANGE_DEFAULT = 3.0            # Reserved, not read by any force
CELL_DIVISION_DEFAULT = 0.6         # Grid resolution factor (applied on start)
TIME_SCALE_DEFAULT = 1.0            # Multiplier on every step's dt


# ============================================================================
# Spatial Grid Configuration
# ============================================================================

# Nominal cell edge before the division factor is applied:
# cells per axis = floor(world_size / CELL_BASE_SIZE * cell_division)
CELL_BASE_SIZE = 3.0

# Number of independent locks guarding grid buckets (key % shards)
GRID_LOCK_SHARDS = 64


# ============================================================================
# Spawning Configuration
# ============================================================================

# Distance kept between spawned agents and the world bounds (per axis)
SPAWN_MARGIN = 3.0

# Agents per unit of world edge when deriving world size from population
BOID_DENSITY = 4.0

# World edge is rounded up to a multiple of this value
WORLD_SIZE_ROUNDING = 5

# Population sizes offered to front ends and the perf script
POPULATION_PRESETS = (64, 256, 1024, 4096, 8192, 16384, 32768, 65536, 262144)

# Default team roster: (name, acceleration, drag, size)
DEFAULT_TEAMS = (
    ('red', 4.0, 0.02, 1.0),
    ('green', 4.0, 0.03, 0.5),
    ('blue', 11.0, 0.04, 0.33),
)


# ============================================================================
# Parallel Scheduling Configuration
# ============================================================================

# Worker threads for stage passes (None = os.cpu_count())
WORKER_COUNT_DEFAULT = None

# Agents per task in agent-indexed stages (reindex, avoidance, motion)
AGENT_BATCH_SIZE = 4096

# Largest (agents x members) pair block evaluated at once by avoidance
AVOIDANCE_MAX_PAIRS = 1 << 20

# Cell stage splits the key range into roughly this many tasks
CELL_BATCH_DIVISOR = 8


# ============================================================================
# Performance Configuration
# ============================================================================

# Tick timing window for rolling average
TICK_TIME_WINDOW = 100  # Number of ticks to average

# Default tick summary interval (print every N ticks)
TICK_SUMMARY_INTERVAL = 100

# Mean boids per bucket above which start() prints a crowding warning
CROWDED_BUCKET_WARN_DENSITY = 256.0
