"""
Headless run from a YAML configuration.

Usage:
    python scripts/run_headless.py [config.yaml] [ticks]

Defaults to data/simulation.yaml and 600 ticks at 60 Hz, printing a tick
summary every TICK_SUMMARY_INTERVAL ticks and the stage breakdown at the end.
"""

import sys
from pathlib import Path

import numpy as np

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from boidsim.constants import TICK_SUMMARY_INTERVAL
from boidsim.loader import load_simulation_config
from boidsim.simulation import BoidSimulation


DT = 1.0 / 60.0


def main():
    config_path = Path(sys.argv[1]) if len(sys.argv) > 1 else ROOT / "data" / "simulation.yaml"
    ticks = int(sys.argv[2]) if len(sys.argv) > 2 else 600

    print("Loading configuration...")
    config = load_simulation_config(config_path, schema_dir=ROOT / "schemas")

    with BoidSimulation() as sim:
        sim.start_from_config(config)

        for _ in range(ticks):
            sim.step(DT)
            if sim.tick_count % TICK_SUMMARY_INTERVAL == 0:
                sim.print_tick_summary()

        sim.print_perf_breakdown(every=sim.tick_count)

        positions = sim.positions
        speeds = np.linalg.norm(sim.velocities, axis=1)
        print(f"\n[OK] Finished {sim.tick_count} ticks: "
              f"mean speed={speeds.mean():.2f} m/s, "
              f"max |x|={np.abs(positions).max():.2f} m, "
              f"occupied buckets={len(sim.get_cell_overlay()['keys'])}")


if __name__ == '__main__':
    main()
