"""
Vector utility functions for 3D flocking math.

Zero-safe row normalization and box containment helpers. Every function
operates on float64 numpy arrays and never produces NaN for degenerate
(zero-length) input.
"""

import numpy as np
from typing import Tuple


def normalize_rows(vectors: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Normalize each row of an (M, 3) array.

    Args:
        vectors: (M, 3) array

    Returns:
        Tuple of ((M, 3) unit rows, (M,) original lengths). Zero rows stay
        zero instead of dividing by zero.
    """
    lengths = np.sqrt(np.einsum('ij,ij->i', vectors, vectors))
    units = np.zeros_like(vectors)
    nonzero = lengths > 0.0
    units[nonzero] = vectors[nonzero] / lengths[nonzero, np.newaxis]
    return units, lengths


def box_overshoot(positions: np.ndarray, half_size: np.ndarray, margin: float) -> np.ndarray:
    """
    Per-axis distance by which positions intrude into the boundary band.

    The band is `margin` wide, measured inwards from each face of the
    origin-centered box with half extent `half_size`.

    Args:
        positions: (M, 3) positions
        half_size: (3,) box half extent
        margin: Band width (meters)

    Returns:
        (M, 3) non-negative overshoot: max(|p| + margin - half, 0)
    """
    return np.maximum(np.abs(positions) + margin - half_size, 0.0)
