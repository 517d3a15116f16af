"""Pre-flight summary of a mosaic: grid size, pool mix and reuse pressure.

Only image headers are read, so a plan is cheap even for large pools.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from mosaic_creator.config import MosaicSettings, PatternKind
from mosaic_creator.errors import TargetImageUnreadable
from mosaic_creator.grid import Orientation, classify_aspect, plan_grid
from mosaic_creator.image_io import DECODE_ERRORS, read_size
from mosaic_creator.settings import resolve_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MosaicPlan:
    """What a generation with the given inputs would produce.

    Attributes:
        required_uses:        Placements per photo needed to fill every cell
                              (``ceil(cells / photos)``); 0 for an empty pool.
        recommended_max_uses: Head-room bound on reuse, twice the required uses.
        suggested_ratio:      Parquet ``L:P`` ratio matching the pool's aspect
                              mix, or ``None`` when it cannot be derived.
    """

    output_width: int
    output_height: int
    grid_rows: int
    grid_columns: int
    total_cells: int
    landscape_cells: int
    portrait_cells: int
    total_photos: int
    landscape_photos: int
    portrait_photos: int
    square_photos: int
    unreadable_photos: int
    required_uses: int
    recommended_max_uses: int
    suggested_ratio: tuple[int, int] | None


def suggest_parquet_ratio(landscape: int, portrait: int) -> tuple[int, int] | None:
    """Derive an ``L:P`` ratio from the number of landscape and portrait photos.

    The majority orientation gets ``floor(majority / minority)``, the
    minority 1. Returns ``None`` if either orientation is missing.
    """
    if landscape <= 0 or portrait <= 0:
        return None
    if landscape >= portrait:
        return max(1, landscape // portrait), 1
    return 1, max(1, portrait // landscape)


def plan_mosaic(
    settings: MosaicSettings,
    target_path: str | Path,
    candidate_paths: Sequence[str | Path],
) -> MosaicPlan:
    """Resolve the grid for *target_path* and count the candidate mix.

    Raises:
        InvalidSettings: settings cannot produce a grid.
        TargetImageUnreadable: the target header cannot be read.
    """
    try:
        target_size = read_size(target_path)
    except DECODE_ERRORS as exc:
        msg = f"Unable to read target image {target_path}: {exc}"
        raise TargetImageUnreadable(msg) from exc

    resolved = resolve_settings(settings, target_size)
    grid = plan_grid(resolved)

    counts = dict.fromkeys(Orientation, 0)
    unreadable = 0
    for path in candidate_paths:
        try:
            counts[classify_aspect(*read_size(path))] += 1
        except DECODE_ERRORS as exc:
            unreadable += 1
            logger.debug("Unreadable candidate %s: %s", path, exc)

    photos = sum(counts.values())
    required = math.ceil(len(grid) / photos) if photos else 0
    suggested = None
    if settings.pattern is PatternKind.PARQUET:
        suggested = suggest_parquet_ratio(
            counts[Orientation.LANDSCAPE], counts[Orientation.PORTRAIT],
        )

    plan = MosaicPlan(
        output_width=grid.width,
        output_height=grid.height,
        grid_rows=grid.rows,
        grid_columns=grid.columns,
        total_cells=len(grid),
        landscape_cells=grid.count(Orientation.LANDSCAPE),
        portrait_cells=grid.count(Orientation.PORTRAIT),
        total_photos=photos,
        landscape_photos=counts[Orientation.LANDSCAPE],
        portrait_photos=counts[Orientation.PORTRAIT],
        square_photos=counts[Orientation.SQUARE],
        unreadable_photos=unreadable,
        required_uses=required,
        recommended_max_uses=max(1, required * 2),
        suggested_ratio=suggested,
    )
    logger.info(
        "Plan: %dx%d cells over %dx%d px, %d photos, %d uses each",
        plan.grid_columns, plan.grid_rows, plan.output_width, plan.output_height,
        photos, required,
    )
    return plan
