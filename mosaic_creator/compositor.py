"""Render assignments into the final canvas with partial colour blending."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import Executor, ThreadPoolExecutor, as_completed
from pathlib import Path

import numpy as np

from mosaic_creator.cell_index import CellPhotoIndex, default_workers
from mosaic_creator.errors import OutputWriteError
from mosaic_creator.grid import GridSpec
from mosaic_creator.image_io import fit_to_cell, write_temp_image
from mosaic_creator.progress import CancellationToken
from mosaic_creator.selector import Assignment

logger = logging.getLogger(__name__)

TileKey = tuple[int, bool, int, int]  # candidate, mirrored, width, height


def blend_tile(tile: np.ndarray, color: np.ndarray, blend: float) -> np.ndarray:
    """Pull every pixel of *tile* toward *color*.

    ``out = tile * (1 - p) + color * p``, rounded and clamped to 0-255.
    ``p = 0`` returns the tile unchanged, ``p = 1`` a flat *color* fill.
    """
    p = min(max(float(blend), 0.0), 1.0)
    if p == 0.0:
        return tile.copy()
    mixed = tile.astype(np.float64) * (1.0 - p) + np.asarray(color, dtype=np.float64) * p
    return np.clip(np.rint(mixed), 0, 255).astype(np.uint8)


class Compositor:
    """Paint every assigned candidate into one canvas bitmap.

    Tiles are fitted once per distinct ``(candidate, mirrored, size)`` and
    then blended per cell. Cells never overlap, so both passes run in
    parallel on the executor.
    """

    def __init__(self, index: CellPhotoIndex, blend: float) -> None:
        self.index = index
        self.blend = blend

    def render(
        self,
        grid: GridSpec,
        assignments: Sequence[Assignment],
        cell_colors: np.ndarray,
        executor: Executor | None = None,
        cancel: CancellationToken | None = None,
        on_progress: Callable[[int], None] | None = None,
    ) -> np.ndarray:
        """Composite all cells.

        Returns:
            (grid.height, grid.width, 3) uint8 canvas.
        """
        if executor is None:
            with ThreadPoolExecutor(max_workers=default_workers(), thread_name_prefix="render") as pool:
                return self.render(grid, assignments, cell_colors, pool, cancel, on_progress)

        t0 = time.perf_counter()
        keys: dict[TileKey, None] = {}
        for a in assignments:
            keys[(a.candidate, a.mirrored, a.cell.width, a.cell.height)] = None
        tiles = self._fit_tiles(list(keys), executor, cancel)

        canvas = np.zeros((grid.height, grid.width, 3), dtype=np.uint8)

        def _paint(i: int, assignment: Assignment) -> None:
            if cancel is not None and cancel.cancelled:
                return
            cell = assignment.cell
            key = (assignment.candidate, assignment.mirrored, cell.width, cell.height)
            canvas[cell.y : cell.y + cell.height, cell.x : cell.x + cell.width] = blend_tile(
                tiles[key], cell_colors[i], self.blend,
            )

        futures = [executor.submit(_paint, i, a) for i, a in enumerate(assignments)]
        try:
            for done, future in enumerate(as_completed(futures), 1):
                future.result()
                if on_progress is not None:
                    on_progress(done)
        finally:
            for future in futures:
                future.cancel()

        if cancel is not None:
            cancel.raise_if_cancelled()

        logger.info(
            "Rendered %d cells (%d distinct tiles) into %dx%d canvas (%.1f s)",
            len(assignments), len(tiles), grid.width, grid.height, time.perf_counter() - t0,
        )
        return canvas

    def _fit_tiles(
        self,
        keys: list[TileKey],
        executor: Executor,
        cancel: CancellationToken | None,
    ) -> dict[TileKey, np.ndarray]:
        def _fit(key: TileKey) -> np.ndarray | None:
            if cancel is not None and cancel.cancelled:
                return None
            candidate, mirrored, width, height = key
            thumb = self.index.candidates[candidate].thumbnail
            return fit_to_cell(thumb, width, height, mirrored)

        fitted = list(executor.map(_fit, keys))
        if cancel is not None:
            cancel.raise_if_cancelled()
        return dict(zip(keys, fitted, strict=True))


def save_canvas(
    canvas: np.ndarray,
    cache_dir: str | Path,
    output_format: str = "png",
) -> Path:
    """Encode the canvas into a temporary file under *cache_dir*."""
    t0 = time.perf_counter()
    try:
        path = write_temp_image(canvas, cache_dir, output_format, prefix="mosaic_")
    except OSError as exc:
        msg = f"Unable to write mosaic to {cache_dir}: {exc}"
        raise OutputWriteError(msg) from exc
    logger.info("Saved %s (%.1f s)", path, time.perf_counter() - t0)
    return path
