"""
Tests for seeded spawning and world sizing.

Covers:
- World edge derived from population (density preset table)
- Spawn margin from every face
- Spawn speed and team assignment
- Seed determinism via make_seed-derived streams
"""

import numpy as np
import pytest

from boidsim.constants import SPAWN_MARGIN
from boidsim.rng import make_generator, make_seed, random_unit_vectors
from boidsim.spawning import spawn_boids, spawn_half_extent, world_size_for_population


def test_world_size_for_population():
    assert world_size_for_population(64) == (20.0, 20.0, 20.0)
    assert world_size_for_population(4096) == (65.0, 65.0, 65.0)
    assert world_size_for_population(1) == (5.0, 5.0, 5.0)
    assert world_size_for_population(1000) == (40.0, 40.0, 40.0)


def test_world_size_requires_population():
    with pytest.raises(ValueError):
        world_size_for_population(0)


def test_spawn_respects_margin():
    world_size = (30.0, 20.0, 10.0)
    positions, _, _ = spawn_boids(world_size, 2000, 3, 2.0, seed=1)

    limit = np.array(world_size) * 0.5 - SPAWN_MARGIN
    assert positions.shape == (2000, 3)
    assert np.all(np.abs(positions) <= limit)


def test_spawn_in_world_smaller_than_margin():
    positions, velocities, _ = spawn_boids((4.0, 4.0, 4.0), 10, 1, 2.0, seed=1)

    assert np.allclose(spawn_half_extent((4.0, 4.0, 4.0)), 0.0)
    assert np.allclose(positions, 0.0)
    assert np.all(np.isfinite(velocities))


def test_spawn_speed_and_teams():
    _, velocities, team_indexes = spawn_boids((30.0, 30.0, 30.0), 3000, 3, 2.0, seed=9)

    assert np.allclose(np.linalg.norm(velocities, axis=1), 2.0)
    assert team_indexes.dtype == np.int64
    assert team_indexes.min() >= 0
    assert team_indexes.max() < 3
    # Every team gets a share
    assert set(np.unique(team_indexes).tolist()) == {0, 1, 2}


def test_zero_initial_velocity():
    _, velocities, _ = spawn_boids((30.0, 30.0, 30.0), 50, 1, 0.0, seed=2)

    assert np.all(velocities == 0.0)


def test_seed_determinism():
    first = spawn_boids((30.0, 30.0, 30.0), 100, 3, 2.0, seed=12345)
    second = spawn_boids((30.0, 30.0, 30.0), 100, 3, 2.0, seed=12345)
    other = spawn_boids((30.0, 30.0, 30.0), 100, 3, 2.0, seed=54321)

    for a, b in zip(first, second):
        assert np.array_equal(a, b)
    assert not np.array_equal(first[0], other[0])


def test_make_seed_is_stable_and_component_specific():
    assert make_seed(42, "positions") == make_seed(42, "positions")
    assert make_seed(42, "positions") != make_seed(42, "velocities")
    assert make_seed(42, "positions") != make_seed(43, "positions")
    assert 0 <= make_seed(42, "teams") < 2 ** 64


def test_unit_vectors_have_unit_length():
    vectors = random_unit_vectors(make_generator(3, "velocities"), 500)

    assert vectors.shape == (500, 3)
    assert np.allclose(np.linalg.norm(vectors, axis=1), 1.0)
