from typing import List, Sequence, Tuple

import numpy as np

from utils.geo import EARTH_RADIUS_KM, Point


def compute_distance_matrix(origins: Sequence[Point], destinations: Sequence[Point]) -> np.ndarray:
    """
    Returns an array of shape (len(origins), len(destinations)) where
    matrix[i, j] is the Haversine distance in km from origins[i] to destinations[j].
    """
    if not origins or not destinations:
        return np.zeros((len(origins), len(destinations)))

    o = np.radians(np.asarray(origins, dtype=float))
    d = np.radians(np.asarray(destinations, dtype=float))
    phi1 = o[:, 0][:, None]
    phi2 = d[:, 0][None, :]
    d_phi = phi2 - phi1
    d_lambda = d[:, 1][None, :] - o[:, 1][:, None]
    a = np.sin(d_phi / 2) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(d_lambda / 2) ** 2
    a = np.clip(a, 0.0, 1.0)
    return EARTH_RADIUS_KM * 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))


def sorted_pairs(matrix: np.ndarray) -> List[Tuple[int, int, float]]:
    """
    All (row, col, distance) cells ordered by ascending distance. The sort is
    stable so ties keep row-major order.
    """
    if matrix.size == 0:
        return []
    flat_order = np.argsort(matrix, axis=None, kind="stable")
    rows, cols = np.unravel_index(flat_order, matrix.shape)
    return [(int(r), int(c), float(matrix[r, c])) for r, c in zip(rows, cols)]
