"""
Multi-N performance validation for the four-stage boid tick.

Runs the default three-team flock at several population presets and
reports median/p90 tick time plus the per-stage breakdown.
BLAS threads are pinned so only the stage worker pool runs in parallel.
"""

# Pin threading for stable measurement
import os
os.environ.update({
    'OPENBLAS_NUM_THREADS': '1',
    'MKL_NUM_THREADS': '1',
    'NUMEXPR_NUM_THREADS': '1',
    'OMP_NUM_THREADS': '1'
})

import gc
import sys
import time
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent))

from boidsim.constants import POPULATION_PRESETS
from boidsim.data_types import default_teams
from boidsim.simulation import BoidSimulation
from boidsim.spawning import world_size_for_population


DT = 1.0 / 60.0


def run_boids_perf_test(boid_count: int, workers: int, ticks: int = 30, warmup: int = 5) -> dict:
    """
    Run the tick at given population.

    Args:
        boid_count: Number of boids
        workers: Stage worker threads
        ticks: Measured ticks
        warmup: Unmeasured ticks before timing (lets flocks form buckets)

    Returns:
        Dict with p50, p90, min, max and per-stage means (ms)
    """
    sim = BoidSimulation(workers=workers)
    sim.start(world_size_for_population(boid_count), boid_count, default_teams(), seed=42)

    try:
        for _ in range(warmup):
            sim.step(DT)

        # Measure (GC disabled for stable timing)
        gc.collect()
        gc.disable()

        times_ns = []
        try:
            for _ in range(ticks):
                start = time.perf_counter_ns()
                sim.step(DT)
                times_ns.append(time.perf_counter_ns() - start)
        finally:
            gc.enable()

        times_ms = np.array(times_ns) / 1_000_000
        stage_ms = {
            'reindex_ms': np.mean(sim._reindex_times[-ticks:]) * 1000.0,
            'aggregate_ms': np.mean(sim._aggregate_times[-ticks:]) * 1000.0,
            'avoidance_ms': np.mean(sim._avoidance_times[-ticks:]) * 1000.0,
            'motion_ms': np.mean(sim._motion_times[-ticks:]) * 1000.0,
        }
        cells = sim.geometry.cells_count
    finally:
        sim.stop()

    return {
        'boid_count': boid_count,
        'workers': workers,
        'cells': cells,
        'p50_ms': np.percentile(times_ms, 50),
        'p90_ms': np.percentile(times_ms, 90),
        'min_ms': np.min(times_ms),
        'max_ms': np.max(times_ms),
        **stage_ms
    }


def main():
    """Run multi-N boid tick performance validation."""
    print("=" * 80)
    print("Boid Tick Multi-N Performance Validation")
    print("=" * 80)
    print()

    max_count = int(sys.argv[1]) if len(sys.argv) > 1 else 16384
    workers = int(sys.argv[2]) if len(sys.argv) > 2 else (os.cpu_count() or 1)
    test_sizes = [n for n in POPULATION_PRESETS if n <= max_count]

    results = []

    for boid_count in test_sizes:
        print(f"[N = {boid_count}, workers = {workers}]")

        result = run_boids_perf_test(boid_count, workers)

        print(f"  p50: {result['p50_ms']:.3f}ms")
        print(f"  p90: {result['p90_ms']:.3f}ms")
        print(f"  min: {result['min_ms']:.3f}ms, max: {result['max_ms']:.3f}ms")
        print(f"  Stages: reindex={result['reindex_ms']:.3f} aggregate={result['aggregate_ms']:.3f} "
              f"avoid={result['avoidance_ms']:.3f} motion={result['motion_ms']:.3f} (ms)")

        # Frame time check at 60 Hz (log-only)
        budget_ms = DT * 1000.0
        if result['p50_ms'] >= budget_ms:
            print(f"  WARNING: p50 {result['p50_ms']:.3f}ms >= {budget_ms:.1f}ms frame budget")
        else:
            print(f"  PASS: {(budget_ms - result['p50_ms']) / budget_ms * 100:.1f}% headroom under frame budget")

        results.append(result)
        print()

    print("=" * 80)
    print("Summary Table")
    print("=" * 80)
    print()
    print("| Boids | Cells | p50 (ms) | p90 (ms) | Avoid (ms) | Aggregate (ms) |")
    print("|-------|-------|----------|----------|------------|----------------|")
    for r in results:
        print(f"| {r['boid_count']:5d} | {r['cells']:5d} | {r['p50_ms']:8.3f} | {r['p90_ms']:8.3f} | "
              f"{r['avoidance_ms']:10.3f} | {r['aggregate_ms']:14.3f} |")

    print()
    print("=" * 80)


if __name__ == '__main__':
    main()
