"""CSV report of where every candidate photo was placed."""

from __future__ import annotations

import csv
import logging
import os
import tempfile
from collections import defaultdict
from collections.abc import Sequence
from pathlib import Path

from mosaic_creator.cell_index import CellPhotoIndex
from mosaic_creator.errors import OutputWriteError
from mosaic_creator.selector import Assignment

logger = logging.getLogger(__name__)

REPORT_HEADER = ("Name", "UseCount", "X", "Y")


def usage_rows(
    assignments: Sequence[Assignment],
    index: CellPhotoIndex,
) -> list[tuple[str, int, int | str, int | str]]:
    """One row per placement; unused candidates get a single row without position."""
    positions: dict[int, list[tuple[int, int]]] = defaultdict(list)
    for a in assignments:
        positions[a.candidate].append((a.cell.x, a.cell.y))

    rows: list[tuple[str, int, int | str, int | str]] = []
    for i, cand in enumerate(index.candidates):
        placed = positions.get(i, [])
        if not placed:
            rows.append((cand.path.name, 0, "", ""))
        rows.extend((cand.path.name, len(placed), x, y) for x, y in placed)
    return rows


def write_usage_report(
    assignments: Sequence[Assignment],
    index: CellPhotoIndex,
    cache_dir: str | Path,
) -> Path:
    """Write the usage CSV into a new temporary file under *cache_dir*."""
    cache_dir = Path(cache_dir)
    try:
        cache_dir.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(prefix="mosaic_usage_", suffix=".csv", dir=cache_dir)
    except OSError as exc:
        msg = f"Unable to write usage report to {cache_dir}: {exc}"
        raise OutputWriteError(msg) from exc

    path = Path(name)
    try:
        with os.fdopen(fd, "w", newline="", encoding="utf-8") as fh:
            writer = csv.writer(fh, quoting=csv.QUOTE_MINIMAL)
            writer.writerow(REPORT_HEADER)
            writer.writerows(usage_rows(assignments, index))
    except OSError as exc:
        path.unlink(missing_ok=True)
        msg = f"Unable to write usage report to {cache_dir}: {exc}"
        raise OutputWriteError(msg) from exc

    logger.info("Usage report: %s", path)
    return path
