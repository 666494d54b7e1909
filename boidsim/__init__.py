"""
Boid Flocking Simulation

A headless, team-partitioned flocking simulator built around a spatial hash
grid and a four-stage parallel tick (reindex, aggregate, avoid, integrate).

Architecture: the simulator is the source of truth. Renderers and debug
overlays are consumers of its published arrays.
"""

__version__ = "0.1.0"
