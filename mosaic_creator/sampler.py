"""Reduce the target image to one average colour per grid cell."""

from __future__ import annotations

import logging
import math
import time
from pathlib import Path

import numpy as np
from PIL import Image, ImageOps

from mosaic_creator.config import MAX_SAMPLING_SIDE, SAMPLES_PER_CELL
from mosaic_creator.errors import TargetImageUnreadable
from mosaic_creator.grid import GridSpec
from mosaic_creator.image_io import DECODE_ERRORS, open_rgb
from mosaic_creator.progress import CancellationToken

logger = logging.getLogger(__name__)


def load_target(path: str | Path) -> Image.Image:
    """Decode the target photograph or raise :class:`TargetImageUnreadable`."""
    try:
        img = open_rgb(path)
    except DECODE_ERRORS as exc:
        msg = f"Unable to read target image {path}: {exc}"
        raise TargetImageUnreadable(msg) from exc
    logger.info("Target: %s (%dx%d)", Path(path).name, img.width, img.height)
    return img


def prepare_working_image(
    target: Image.Image,
    canvas_width: int,
    canvas_height: int,
    max_side: int = MAX_SAMPLING_SIDE,
) -> tuple[np.ndarray, float]:
    """Crop-to-fill the target onto the canvas at a bounded resolution.

    Returns:
        ``(pixels, scale)`` where *pixels* is an (H, W, 3) uint8 array and
        *scale* maps canvas pixel coordinates onto it.
    """
    scale = min(1.0, max_side / max(canvas_width, canvas_height))
    w = max(1, round(canvas_width * scale))
    h = max(1, round(canvas_height * scale))
    working = ImageOps.fit(target, (w, h), Image.LANCZOS, centering=(0.5, 0.5))
    return np.asarray(working, dtype=np.uint8), scale


def sample_points(start: int, stop: int, count: int) -> np.ndarray:
    """*count* evenly spaced integer positions in ``[start, stop)``."""
    length = stop - start
    count = max(1, min(count, length))
    return start + ((np.arange(count) + 0.5) * length / count).astype(np.intp)


def sample_cell_colors(
    working: np.ndarray,
    scale: float,
    grid: GridSpec,
    samples_per_cell: int = SAMPLES_PER_CELL,
    cancel: CancellationToken | None = None,
) -> np.ndarray:
    """Average colour of every grid cell.

    Each cell is read at a lattice of at most *samples_per_cell* points
    spread uniformly over its source rectangle.

    Args:
        working:  (H, W, 3) uint8 working bitmap.
        scale:    Canvas → working-bitmap coordinate scale.
        grid:     Cells to sample, in scan order.
        samples_per_cell: Upper bound on sample points per cell.
        cancel:   Optional stop signal, polled between cells.

    Returns:
        (N, 3) uint8 - rounded mean RGB per cell, in scan order.
    """
    h, w = working.shape[:2]
    per_axis = max(1, math.isqrt(samples_per_cell))
    colors = np.empty((len(grid), 3), dtype=np.uint8)

    for i, cell in enumerate(grid):
        if cancel is not None:
            cancel.raise_if_cancelled()
        x0 = min(w - 1, int(cell.x * scale))
        y0 = min(h - 1, int(cell.y * scale))
        x1 = min(w, max(x0 + 1, int((cell.x + cell.width) * scale)))
        y1 = min(h, max(y0 + 1, int((cell.y + cell.height) * scale)))
        ys = sample_points(y0, y1, per_axis)
        xs = sample_points(x0, x1, per_axis)
        samples = working[np.ix_(ys, xs)].reshape(-1, 3)
        colors[i] = np.clip(np.rint(samples.mean(axis=0)), 0, 255).astype(np.uint8)
    return colors


def sample_target(
    target: Image.Image,
    grid: GridSpec,
    cancel: CancellationToken | None = None,
) -> np.ndarray:
    """Working-bitmap preparation plus per-cell sampling."""
    t0 = time.perf_counter()
    working, scale = prepare_working_image(target, grid.canvas_width, grid.canvas_height)
    colors = sample_cell_colors(working, scale, grid, cancel=cancel)
    logger.info(
        "Sampled %d cells from %dx%d working bitmap (%.2f s)",
        len(grid), working.shape[1], working.shape[0], time.perf_counter() - t0,
    )
    return colors
