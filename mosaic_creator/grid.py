"""Tile layout planning: uniform square grid or mixed-orientation parquet."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

from mosaic_creator.config import PatternKind
from mosaic_creator.settings import ResolvedSettings

logger = logging.getLogger(__name__)


class Orientation(str, Enum):
    SQUARE = "square"
    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"


def classify_aspect(width: int, height: int) -> Orientation:
    if width > height:
        return Orientation.LANDSCAPE
    if height > width:
        return Orientation.PORTRAIT
    return Orientation.SQUARE


@dataclass(frozen=True)
class GridCell:
    """One tile of the output grid.

    ``row`` / ``column`` address the cell's top-left tile-unit; a parquet
    landscape cell spans two unit columns, a portrait cell two unit rows.
    """

    row: int
    column: int
    x: int
    y: int
    width: int
    height: int
    orientation: Orientation
    row_span: int = 1
    col_span: int = 1

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def box(self) -> tuple[int, int, int, int]:
        return self.x, self.y, self.x + self.width, self.y + self.height


@dataclass(frozen=True)
class GridSpec:
    """Ordered cells covering the output canvas.

    Attributes:
        cells:         Cells in canonical row-major scan order.
        rows:          Tile-unit rows covered.
        columns:       Tile-unit columns covered.
        tile_width:    Width of one tile-unit in pixels.
        tile_height:   Height of one tile-unit in pixels.
        canvas_width:  Requested canvas width (before clipping).
        canvas_height: Requested canvas height (before clipping).
        pattern:       Layout that produced the cells.
    """

    cells: tuple[GridCell, ...]
    rows: int
    columns: int
    tile_width: int
    tile_height: int
    canvas_width: int
    canvas_height: int
    pattern: PatternKind

    @property
    def width(self) -> int:
        """Covered width; the clipped remainder strip is excluded."""
        return self.columns * self.tile_width

    @property
    def height(self) -> int:
        return self.rows * self.tile_height

    def __len__(self) -> int:
        return len(self.cells)

    def __iter__(self) -> Iterator[GridCell]:
        return iter(self.cells)

    def count(self, orientation: Orientation) -> int:
        return sum(1 for c in self.cells if c.orientation is orientation)


def plan_grid(resolved: ResolvedSettings) -> GridSpec:
    """Compute the tile layout for the resolved canvas."""
    if resolved.pattern is PatternKind.SQUARE:
        grid = plan_square_grid(
            resolved.output_width, resolved.output_height,
            resolved.tile_width, resolved.tile_height,
        )
    elif resolved.pattern is PatternKind.PARQUET:
        grid = plan_parquet_grid(
            resolved.output_width, resolved.output_height,
            resolved.tile_width, resolved.tile_height,
            resolved.parquet_ratio,
        )
    else:
        msg = f"Unsupported pattern {resolved.pattern!r}"
        raise ValueError(msg)

    logger.info(
        "Grid: %s, %dx%d units, %d cells, covering %dx%d of %dx%d px",
        grid.pattern.value, grid.columns, grid.rows, len(grid),
        grid.width, grid.height, grid.canvas_width, grid.canvas_height,
    )
    return grid


# -- Square ------------------------------------------------------------


def plan_square_grid(
    canvas_width: int,
    canvas_height: int,
    tile_width: int,
    tile_height: int,
) -> GridSpec:
    """Uniform grid; the right/bottom remainder strip is clipped."""
    rows = canvas_height // tile_height
    columns = canvas_width // tile_width
    cells = tuple(
        GridCell(
            row=r,
            column=c,
            x=c * tile_width,
            y=r * tile_height,
            width=tile_width,
            height=tile_height,
            orientation=Orientation.SQUARE,
        )
        for r in range(rows)
        for c in range(columns)
    )
    return GridSpec(
        cells=cells,
        rows=rows,
        columns=columns,
        tile_width=tile_width,
        tile_height=tile_height,
        canvas_width=canvas_width,
        canvas_height=canvas_height,
        pattern=PatternKind.SQUARE,
    )


# -- Parquet -----------------------------------------------------------

# A landscape slot is two stacked 2x1 landscape cells (2 units wide);
# a portrait slot is a single 1x2 portrait cell (1 unit wide).
_SLOT_WIDTH = {Orientation.LANDSCAPE: 2, Orientation.PORTRAIT: 1}


def parquet_cycle(ratio: tuple[int, int]) -> list[Orientation]:
    """Slot sequence of one repeating band cycle.

    ``L`` landscape slots (``2L`` landscape cells) followed by ``2P``
    portrait slots (``2P`` portrait cells): exactly ``L:P`` per cycle.
    """
    landscape, portrait = ratio
    return [Orientation.LANDSCAPE] * landscape + [Orientation.PORTRAIT] * (2 * portrait)


def parquet_cycle_width(ratio: tuple[int, int]) -> int:
    """Width of one cycle in tile-units."""
    return sum(_SLOT_WIDTH[o] for o in parquet_cycle(ratio))


def plan_parquet_grid(
    canvas_width: int,
    canvas_height: int,
    tile_width: int,
    tile_height: int,
    ratio: tuple[int, int],
) -> GridSpec:
    """Mixed landscape / portrait layout packed in two-unit-high bands.

    Odd bands start the cycle at the portrait run so neighbouring bands
    interlock like bricks. A landscape slot that does not fit the end of a
    band is replaced by a portrait slot, so every band is gap-free.
    """
    unit_columns = canvas_width // tile_width
    bands = canvas_height // (2 * tile_height)
    cycle = parquet_cycle(ratio)
    offset = ratio[0]  # index of the first portrait slot

    cells: list[GridCell] = []
    for band in range(bands):
        top = 2 * band
        slot = offset if band % 2 else 0
        col = 0
        while col < unit_columns:
            kind = cycle[slot % len(cycle)]
            if _SLOT_WIDTH[kind] > unit_columns - col:
                kind = Orientation.PORTRAIT
            cells.extend(_parquet_slot(kind, top, col, tile_width, tile_height))
            col += _SLOT_WIDTH[kind]
            slot += 1

    cells.sort(key=lambda c: (c.row, c.column))
    return GridSpec(
        cells=tuple(cells),
        rows=2 * bands,
        columns=unit_columns,
        tile_width=tile_width,
        tile_height=tile_height,
        canvas_width=canvas_width,
        canvas_height=canvas_height,
        pattern=PatternKind.PARQUET,
    )


def _parquet_slot(
    kind: Orientation,
    top: int,
    col: int,
    tile_width: int,
    tile_height: int,
) -> list[GridCell]:
    x = col * tile_width
    if kind is Orientation.PORTRAIT:
        return [
            GridCell(
                row=top, column=col,
                x=x, y=top * tile_height,
                width=tile_width, height=2 * tile_height,
                orientation=Orientation.PORTRAIT,
                row_span=2, col_span=1,
            ),
        ]
    return [
        GridCell(
            row=r, column=col,
            x=x, y=r * tile_height,
            width=2 * tile_width, height=tile_height,
            orientation=Orientation.LANDSCAPE,
            row_span=1, col_span=2,
        )
        for r in (top, top + 1)
    ]
