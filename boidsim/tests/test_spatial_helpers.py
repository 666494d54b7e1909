"""Tests for zero-safe vector helpers"""

import numpy as np

from boidsim.spatial import box_overshoot, normalize_rows


def test_normalize_rows_keeps_zero_rows():
    units, lengths = normalize_rows(np.array([[0.0, 2.0, 0.0], [0.0, 0.0, 0.0], [1.0, 1.0, 1.0]]))

    assert np.allclose(lengths, [2.0, 0.0, np.sqrt(3.0)])
    assert np.allclose(units[0], [0.0, 1.0, 0.0])
    assert np.all(units[1] == 0.0)
    assert np.allclose(np.linalg.norm(units[2]), 1.0)
    assert np.all(np.isfinite(units))


def test_box_overshoot():
    half = np.array([15.0, 10.0, 5.0])
    positions = np.array([
        [14.0, 0.0, 0.0],
        [0.0, -9.5, 0.0],
        [0.0, 0.0, 2.0],
        [20.0, 0.0, 0.0],
    ])

    overshoot = box_overshoot(positions, half, 2.0)

    assert np.allclose(overshoot[0], [1.0, 0.0, 0.0])
    assert np.allclose(overshoot[1], [0.0, 1.5, 0.0])
    assert np.allclose(overshoot[2], [0.0, 0.0, 0.0])
    assert np.allclose(overshoot[3], [7.0, 0.0, 0.0])
