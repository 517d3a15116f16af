"""Colour-space conversion and cost-matrix computation."""

from __future__ import annotations

import numpy as np
from scipy.spatial.distance import cdist
from skimage.color import rgb2lab


def rgb_to_lab(rgb: np.ndarray) -> np.ndarray:
    """Convert flat (N, 3) RGB (0-255) → (N, 3) float64 CIELAB."""
    return rgb2lab(np.asarray(rgb, dtype=np.float64).reshape(1, -1, 3) / 255.0).reshape(-1, 3)


def compute_cost_matrix(
    cell_colors: np.ndarray,
    candidate_colors: np.ndarray,
    color_space: str = "rgb",
    chunk_size: int = 1024,
) -> np.ndarray:
    """Pairwise Euclidean distance between grid-cell and candidate colours.

    Args:
        cell_colors:      (N, 3) RGB - sampled target colour per grid cell.
        candidate_colors: (M, 3) RGB - mean colour per candidate photo.
        color_space: ``"rgb"`` or ``"lab"``.
        chunk_size: Cell rows computed per batch (controls peak RAM).

    Returns:
        (N, M) float64 cost matrix.
    """
    if color_space == "lab":
        cells = rgb_to_lab(cell_colors)
        cands = rgb_to_lab(candidate_colors)
    else:
        cells = np.asarray(cell_colors, dtype=np.float64).reshape(-1, 3)
        cands = np.asarray(candidate_colors, dtype=np.float64).reshape(-1, 3)

    n = len(cells)
    cost = np.empty((n, len(cands)), dtype=np.float64)
    for i in range(0, n, chunk_size):
        j = min(i + chunk_size, n)
        cost[i:j] = cdist(cells[i:j], cands, metric="euclidean")
    return cost
