"""Constrained best-match tile assignment.

Grid cells are visited one at a time in canonical scan order. Every
candidate variant is scored against the cell's sampled colour::

    cost = distance(cell colour, variant colour)
         - UNUSED_BONUS     if use_all_images and the photo is still unused
         + SPACING_PENALTY  if the photo sits within duplicate_spacing

and the cheapest variant wins. Ties resolve to the lowest discovery index,
then unmirrored before mirrored, because variants are laid out in that order
and ``np.argmin`` returns the first minimum. Each decision depends on the
usage and placements of all previous ones, so the scan is strictly
sequential and its state belongs to a single run.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import numpy as np

from mosaic_creator.cell_index import CellPhotoIndex
from mosaic_creator.color_utils import compute_cost_matrix
from mosaic_creator.config import SPACING_PENALTY, UNUSED_BONUS
from mosaic_creator.grid import GridCell, GridSpec
from mosaic_creator.progress import CancellationToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Assignment:
    """The variant chosen for one grid cell.

    ``candidate`` indexes :attr:`CellPhotoIndex.candidates`, ``variant``
    indexes :attr:`CellPhotoIndex.variants`.
    """

    cell: GridCell
    candidate: int
    variant: int
    mirrored: bool

    @property
    def position(self) -> tuple[int, int]:
        return self.cell.row, self.cell.column


@dataclass
class SelectionState:
    """Mutable bookkeeping of one selection run.

    Attributes:
        usage_counts: Placements so far per candidate photo.
        placements:   Grid positions per candidate photo, in placement order.
        occupancy:    Tile-unit map holding the candidate placed there (-1 = empty).
    """

    usage_counts: np.ndarray
    placements: dict[int, list[tuple[int, int]]] = field(default_factory=dict)
    occupancy: np.ndarray = field(default_factory=lambda: np.empty((0, 0), dtype=np.intp))

    @classmethod
    def for_run(cls, grid: GridSpec, index: CellPhotoIndex) -> SelectionState:
        return cls(
            usage_counts=np.zeros(len(index), dtype=np.int64),
            occupancy=np.full((grid.rows, grid.columns), -1, dtype=np.intp),
        )

    def spacing_violations(self, cell: GridCell, spacing: int, sources: np.ndarray) -> np.ndarray:
        """Boolean mask of variants whose photo lies within *spacing* units of *cell*.

        *sources* maps each variant to its candidate, so a mirrored copy is
        blocked wherever its original is.

        Distance is the Chebyshev distance between tile-unit footprints, so
        for square grids it is plain ``max(|dr|, |dc|)`` between cells.
        """
        if spacing <= 0:
            return np.zeros(len(sources), dtype=bool)
        rows, cols = self.occupancy.shape
        r0 = max(0, cell.row - spacing)
        r1 = min(rows, cell.row + cell.row_span + spacing)
        c0 = max(0, cell.column - spacing)
        c1 = min(cols, cell.column + cell.col_span + spacing)
        window = self.occupancy[r0:r1, c0:c1]
        hit = np.zeros(len(self.usage_counts), dtype=bool)
        hit[window[window >= 0]] = True
        return hit[sources]

    def record(self, cell: GridCell, candidate: int) -> None:
        self.usage_counts[candidate] += 1
        self.placements.setdefault(candidate, []).append((cell.row, cell.column))
        self.occupancy[
            cell.row : cell.row + cell.row_span,
            cell.column : cell.column + cell.col_span,
        ] = candidate


class TileSelector:
    """Assign one candidate variant to every grid cell.

    Args:
        index:             Decoded candidate pool.
        duplicate_spacing: Minimum Chebyshev distance between reuses of a photo.
        use_all_images:    Prefer unused photos until every one is placed.
        color_space:       ``"rgb"`` or ``"lab"`` distance.
    """

    def __init__(
        self,
        index: CellPhotoIndex,
        duplicate_spacing: int = 0,
        use_all_images: bool = False,
        color_space: str = "rgb",
    ) -> None:
        self.index = index
        self.duplicate_spacing = duplicate_spacing
        self.use_all_images = use_all_images
        self.color_space = color_space

    def select(
        self,
        grid: GridSpec,
        cell_colors: np.ndarray,
        cancel: CancellationToken | None = None,
        on_progress: Callable[[int], None] | None = None,
    ) -> list[Assignment]:
        """Run the sequential scan.

        Args:
            grid:        Cells in canonical order.
            cell_colors: (N, 3) sampled colour per cell, same order.
            cancel:      Stop signal, polled between cells.
            on_progress: Called with the number of cells assigned.

        Returns:
            One :class:`Assignment` per cell, in scan order.
        """
        if len(self.index) == 0:
            msg = "Cannot select tiles from an empty candidate pool"
            raise ValueError(msg)
        if len(cell_colors) != len(grid):
            msg = f"Expected {len(grid)} cell colours, got {len(cell_colors)}"
            raise ValueError(msg)

        t0 = time.perf_counter()
        cost = compute_cost_matrix(cell_colors, self.index.averages, self.color_space)
        sources = self.index.variant_sources
        mirrored = np.array([v.mirrored for v in self.index.variants], dtype=bool)

        state = SelectionState.for_run(grid, self.index)
        assignments: list[Assignment] = []
        relaxed = 0

        for i, cell in enumerate(grid):
            if cancel is not None:
                cancel.raise_if_cancelled()

            scores = cost[i, sources]
            if self.use_all_images:
                scores = scores - UNUSED_BONUS * (state.usage_counts[sources] == 0)

            violations = state.spacing_violations(cell, self.duplicate_spacing, sources)
            if violations.all():
                # Pool too small for the spacing: relax rather than fail
                relaxed += 1
                logger.debug("Spacing relaxed at cell (%d, %d)", cell.row, cell.column)
            else:
                scores = scores + SPACING_PENALTY * violations

            variant = int(np.argmin(scores))
            candidate = int(sources[variant])
            state.record(cell, candidate)
            assignments.append(Assignment(cell, candidate, variant, bool(mirrored[variant])))

            if on_progress is not None:
                on_progress(i + 1)

        used = int(np.count_nonzero(state.usage_counts))
        logger.info(
            "Assigned %d cells using %d/%d photos (%.2f s)",
            len(assignments), used, len(self.index), time.perf_counter() - t0,
        )
        if relaxed:
            logger.info("Duplicate spacing relaxed for %d cells (pool too small)", relaxed)
        return assignments
