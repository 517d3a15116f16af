"""Centralised configuration via frozen dataclasses."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

# Print resolution (dots per inch)
DPI = 300
MM_PER_INCH = 25.4

# Engine constants
THUMBNAIL_MAX_SIDE = 256  # longest side of a cached candidate thumbnail
SAMPLES_PER_CELL = 64  # colour samples averaged per grid cell (8 x 8 lattice)
MAX_SAMPLING_SIDE = 2048  # longest side of the working bitmap used for sampling

# Selection weights. UNUSED_BONUS must exceed the largest possible colour
# distance (~441.7 in RGB) and SPACING_PENALTY must dominate both.
UNUSED_BONUS = 1_000.0
SPACING_PENALTY = 1_000_000.0

COLOR_SPACES = ("rgb", "lab")
OUTPUT_FORMATS = ("png", "jpeg")


class PatternKind(str, Enum):
    """Tile layout of the mosaic grid."""

    SQUARE = "square"
    PARQUET = "parquet"


@dataclass(frozen=True)
class PrintSize:
    """Physical print dimensions in inches."""

    label: str
    width_in: float
    height_in: float


@dataclass(frozen=True)
class CellSize:
    """Physical edge length of one tile in millimetres."""

    label: str
    size_mm: float


PRINT_SIZES: dict[str, PrintSize] = {
    p.label: p
    for p in (
        PrintSize("8x10", 8.0, 10.0),
        PrintSize("11x14", 11.0, 14.0),
        PrintSize("12x18", 12.0, 18.0),
        PrintSize("16x20", 16.0, 20.0),
        PrintSize("20x30", 20.0, 30.0),
        PrintSize("24x36", 24.0, 36.0),
    )
}

CELL_SIZES: dict[str, CellSize] = {
    c.label: c
    for c in (
        CellSize("10mm", 10.0),
        CellSize("15mm", 15.0),
        CellSize("20mm", 20.0),
        CellSize("25mm", 25.0),
    )
}


@dataclass(frozen=True)
class MosaicSettings:
    """All user-facing parameters for one mosaic generation.

    Attributes:
        print_size:            Physical output size (inches).
        cell_size:             Physical tile edge (millimetres).
        color_change_percent:  0-100, blend weight pulling tiles toward the target colour.
        pattern:               Square grid or mixed-orientation parquet.
        parquet_ratio:         Landscape : portrait tile count ratio (parquet only).
        use_all_images:        Place every candidate once before any repeat.
        mirror_images:         Offer a mirrored copy of every candidate.
        duplicate_spacing:     Minimum Chebyshev grid distance between reuses.
        color_space:           Distance metric for matching - "rgb" or "lab".
        match_target_orientation: Swap print width/height to follow the target.
        output_format:         Encoded image format of the mosaic file.
        write_usage_report:    Also write a CSV of candidate placements.
    """

    print_size: PrintSize = field(default_factory=lambda: PRINT_SIZES["20x30"])
    cell_size: CellSize = field(default_factory=lambda: CELL_SIZES["15mm"])
    color_change_percent: float = 20.0
    pattern: PatternKind = PatternKind.SQUARE
    parquet_ratio: tuple[int, int] = (1, 1)
    use_all_images: bool = False
    mirror_images: bool = False
    duplicate_spacing: int = 3

    # Matching / output
    color_space: str = "rgb"
    match_target_orientation: bool = True
    output_format: str = "png"
    write_usage_report: bool = False

    RESOLUTION_DPI: int = DPI

    SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(
        {".jpg", ".jpeg", ".png", ".bmp", ".tiff", ".tif", ".webp", ".jfif"}
    )


# -- Parsing helpers (CLI / caller input) ------------------------------

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*[xX]\s*(\d+(?:\.\d+)?)\s*$")
_MM_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(?:mm)?\s*$", re.IGNORECASE)
_RATIO_RE = re.compile(r"^\s*(\d+)\s*[:/]\s*(\d+)\s*$")


def parse_print_size(text: str) -> PrintSize:
    """Resolve a preset label (``"20x30"``) or a custom ``"WxH"`` in inches."""
    if text in PRINT_SIZES:
        return PRINT_SIZES[text]
    match = _SIZE_RE.match(text)
    if match is None:
        available = ", ".join(PRINT_SIZES)
        msg = f"Unknown print size '{text}'. Use WxH inches or one of: {available}"
        raise ValueError(msg)
    return PrintSize(text.strip(), float(match.group(1)), float(match.group(2)))


def parse_cell_size(text: str) -> CellSize:
    """Resolve a preset label (``"15mm"``) or a plain millimetre value."""
    if text in CELL_SIZES:
        return CELL_SIZES[text]
    match = _MM_RE.match(text)
    if match is None:
        msg = f"Unknown cell size '{text}'. Use a millimetre value like '12.5'"
        raise ValueError(msg)
    size = float(match.group(1))
    return CellSize(f"{size:g}mm", size)


def parse_ratio(text: str) -> tuple[int, int]:
    """Parse a parquet ratio written as ``"L:P"`` (e.g. ``"2:1"``)."""
    match = _RATIO_RE.match(text)
    if match is None:
        msg = f"Invalid parquet ratio '{text}'. Expected 'L:P', e.g. '2:1'"
        raise ValueError(msg)
    return int(match.group(1)), int(match.group(2))
