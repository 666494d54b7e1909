"""
Tests for teammate avoidance.

Checks pair symmetry, team and bucket locality, the zero-distance rule,
agreement with a brute-force neighbour search, and bounded block evaluation
of crowded buckets.
"""

import numpy as np
from scipy.spatial import cKDTree

from boidsim.avoidance import compute_avoidance
from boidsim.constants import AVOIDANCE_MAX_PAIRS
from boidsim.tests.stage_harness import build_stage_state


def run_avoidance(state, avoidance_range=2.0, ranges=None, max_pairs=AVOIDANCE_MAX_PAIRS):
    count = len(state.positions)
    out = np.full((count, 3), np.nan)
    for start, stop in (ranges or [(0, count)]):
        compute_avoidance(start, stop, state.buckets, state.positions, avoidance_range, out, max_pairs)
    return out


def brute_force_avoidance(state, avoidance_range):
    positions = state.positions
    keys = state.buckets.agent_keys
    expected = np.zeros((len(positions), 3))
    for i, j in cKDTree(positions).query_pairs(avoidance_range):
        if keys[i] != keys[j]:
            continue
        delta = positions[i] - positions[j]
        dist = np.linalg.norm(delta)
        if 0.0 < dist < avoidance_range:
            expected[i] += delta / dist
            expected[j] -= delta / dist
    return expected


def test_pair_repulsion_is_antisymmetric():
    # Both inside the cell spanning x in [0, 5)
    state = build_stage_state([[1.0, 1.0, 1.0], [2.0, 1.0, 1.0]])

    avoidance = run_avoidance(state)

    assert np.allclose(avoidance[0], [-1.0, 0.0, 0.0])
    assert np.allclose(avoidance[1], [1.0, 0.0, 0.0])
    assert np.allclose(avoidance[0], -avoidance[1])


def test_each_close_neighbour_adds_one_unit_vector():
    state = build_stage_state([[2.0, 2.0, 2.0], [2.5, 2.0, 2.0], [3.5, 2.0, 2.0]])

    avoidance = run_avoidance(state)

    # Agent 0 pushed away from both: two unit vectors along -x
    assert np.allclose(avoidance[0], [-2.0, 0.0, 0.0])
    # Agent 1 sits between: the contributions cancel
    assert np.allclose(avoidance[1], [0.0, 0.0, 0.0])


def test_other_team_is_ignored():
    state = build_stage_state(
        [[1.0, 1.0, 1.0], [1.5, 1.0, 1.0]],
        team_indexes=[0, 1],
        teams_count=2,
    )

    avoidance = run_avoidance(state)

    assert np.allclose(avoidance, 0.0)


def test_coincident_teammates_contribute_nothing():
    state = build_stage_state([[1.0, 1.0, 1.0], [1.0, 1.0, 1.0]])

    avoidance = run_avoidance(state)

    assert np.all(np.isfinite(avoidance))
    assert np.allclose(avoidance, 0.0)


def test_neighbour_beyond_range_is_ignored():
    state = build_stage_state([[0.5, 1.0, 1.0], [3.0, 1.0, 1.0]])

    assert np.allclose(run_avoidance(state, avoidance_range=2.0), 0.0)
    # Exactly at the range is not "closer than"
    assert np.allclose(run_avoidance(state, avoidance_range=2.5), 0.0)
    assert np.allclose(run_avoidance(state, avoidance_range=2.6)[0], [-1.0, 0.0, 0.0])


def test_neighbour_in_adjacent_cell_is_ignored():
    # 0.2 m apart but on either side of the x = 5 cell face
    state = build_stage_state([[4.9, 1.0, 1.0], [5.1, 1.0, 1.0]])

    assert state.cell_indexes[0] != state.cell_indexes[1]
    assert np.allclose(run_avoidance(state), 0.0)


def test_lonely_agent_gets_zero():
    state = build_stage_state([[-7.0, 3.0, 12.0]])

    assert np.allclose(run_avoidance(state), 0.0)


def test_matches_brute_force_neighbour_search():
    rng = np.random.default_rng(11)
    count = 600
    avoidance_range = 2.0
    positions = rng.uniform(-15.0, 15.0, size=(count, 3))
    teams = rng.integers(0, 3, size=count)
    state = build_stage_state(positions, team_indexes=teams, teams_count=3)

    avoidance = run_avoidance(state, avoidance_range)

    assert np.allclose(avoidance, brute_force_avoidance(state, avoidance_range))


def test_partitioned_ranges_match_single_range():
    rng = np.random.default_rng(5)
    count = 300
    state = build_stage_state(
        rng.uniform(-10.0, 10.0, size=(count, 3)),
        team_indexes=rng.integers(0, 2, size=count),
        teams_count=2,
    )

    whole = run_avoidance(state)
    split = run_avoidance(state, ranges=[(0, 7), (7, 150), (150, 299), (299, 300)])

    assert np.allclose(whole, split)


def test_single_crowded_bucket_matches_brute_force():
    # cell_division 0.1 gives one cell for the whole world: every agent shares a bucket
    rng = np.random.default_rng(23)
    count = 1500
    avoidance_range = 2.0
    state = build_stage_state(rng.uniform(-6.0, 6.0, size=(count, 3)), cell_division=0.1)
    assert state.geometry.cells_count == 1
    assert state.buckets.count(0) == count

    expected = brute_force_avoidance(state, avoidance_range)

    assert np.allclose(run_avoidance(state, avoidance_range), expected)


def test_block_size_does_not_change_result():
    rng = np.random.default_rng(29)
    count = 700
    state = build_stage_state(
        rng.uniform(-5.0, 5.0, size=(count, 3)),
        team_indexes=rng.integers(0, 2, size=count),
        teams_count=2,
        cell_division=0.1,
    )

    whole = run_avoidance(state)
    # 1000 pairs: agent blocks of a few rows against the full bucket
    agent_blocks = run_avoidance(state, max_pairs=1000)
    # 100 pairs: single agents against member slices of 100
    member_blocks = run_avoidance(state, max_pairs=100)

    assert np.allclose(whole, agent_blocks)
    assert np.allclose(whole, member_blocks)
    assert np.allclose(whole, brute_force_avoidance(state, 2.0))
