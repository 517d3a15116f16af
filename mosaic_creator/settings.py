"""Normalise user-facing units (inches, millimetres, percent) into pixels."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from mosaic_creator.config import (
    COLOR_SPACES,
    MM_PER_INCH,
    OUTPUT_FORMATS,
    MosaicSettings,
    PatternKind,
)
from mosaic_creator.errors import InvalidSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedSettings:
    """Pixel-space parameters derived from :class:`MosaicSettings`."""

    output_width: int
    output_height: int
    tile_width: int
    tile_height: int
    blend: float  # color_change_percent / 100
    pattern: PatternKind
    parquet_ratio: tuple[int, int]
    use_all_images: bool
    mirror_images: bool
    duplicate_spacing: int
    color_space: str
    output_format: str
    write_usage_report: bool


def inches_to_pixels(inches: float, dpi: int) -> int:
    return int(round(inches * dpi))


def millimeters_to_pixels(millimeters: float, dpi: int) -> int:
    """Convert a physical length to whole pixels (rounded, minimum 1)."""
    return max(1, int(round(millimeters * dpi / MM_PER_INCH)))


def validate_settings(settings: MosaicSettings) -> None:
    """Raise :class:`InvalidSettings` for values no geometry can satisfy."""
    percent = settings.color_change_percent
    if not (isinstance(percent, (int, float)) and 0 <= percent <= 100):
        msg = f"Color change percent must be within 0-100, got {percent!r}"
        raise InvalidSettings(msg)

    if settings.print_size.width_in <= 0 or settings.print_size.height_in <= 0:
        msg = f"Print size must be positive, got {settings.print_size}"
        raise InvalidSettings(msg)

    if settings.cell_size.size_mm <= 0:
        msg = f"Cell size must be positive, got {settings.cell_size}"
        raise InvalidSettings(msg)

    if settings.RESOLUTION_DPI <= 0:
        msg = f"Resolution must be positive, got {settings.RESOLUTION_DPI}"
        raise InvalidSettings(msg)

    if settings.pattern not in (PatternKind.SQUARE, PatternKind.PARQUET):
        msg = f"Unknown pattern {settings.pattern!r}"
        raise InvalidSettings(msg)

    if settings.pattern is PatternKind.PARQUET:
        landscape, portrait = settings.parquet_ratio
        if landscape < 1 or portrait < 1:
            msg = f"Parquet ratio counts must be >= 1, got {landscape}:{portrait}"
            raise InvalidSettings(msg)

    if settings.duplicate_spacing < 0:
        msg = f"Duplicate spacing must be >= 0, got {settings.duplicate_spacing}"
        raise InvalidSettings(msg)

    if settings.color_space not in COLOR_SPACES:
        msg = f"Unknown colour space '{settings.color_space}'. Available: {', '.join(COLOR_SPACES)}"
        raise InvalidSettings(msg)

    if settings.output_format not in OUTPUT_FORMATS:
        msg = f"Unknown output format '{settings.output_format}'. Available: {', '.join(OUTPUT_FORMATS)}"
        raise InvalidSettings(msg)


def resolve_settings(
    settings: MosaicSettings,
    target_size: tuple[int, int] | None = None,
) -> ResolvedSettings:
    """Derive canvas and tile pixel dimensions at the configured resolution.

    Args:
        settings:    User-facing settings.
        target_size: ``(width, height)`` of the target image. When given and
            ``match_target_orientation`` is set, the print's long side is
            laid along the target's long side.

    Returns:
        The resolved pixel geometry.

    Raises:
        InvalidSettings: if any value is out of range or the canvas cannot
            hold a single tile (square) or band (parquet).
    """
    validate_settings(settings)
    dpi = settings.RESOLUTION_DPI

    width_in = settings.print_size.width_in
    height_in = settings.print_size.height_in
    if target_size is not None and settings.match_target_orientation:
        tw, th = target_size
        long_side, short_side = max(width_in, height_in), min(width_in, height_in)
        if tw > th:
            width_in, height_in = long_side, short_side
        elif th > tw:
            width_in, height_in = short_side, long_side

    output_width = inches_to_pixels(width_in, dpi)
    output_height = inches_to_pixels(height_in, dpi)
    tile = millimeters_to_pixels(settings.cell_size.size_mm, dpi)

    if output_width <= 0 or output_height <= 0:
        msg = f"Canvas resolves to {output_width}x{output_height} px"
        raise InvalidSettings(msg)

    # Parquet bands are two tile-units high
    band = 2 if settings.pattern is PatternKind.PARQUET else 1
    if tile > output_width or tile * band > output_height:
        msg = (
            f"Cell size {settings.cell_size.size_mm:g} mm ({tile} px) does not fit "
            f"a {output_width}x{output_height} px canvas"
        )
        raise InvalidSettings(msg)

    resolved = ResolvedSettings(
        output_width=output_width,
        output_height=output_height,
        tile_width=tile,
        tile_height=tile,
        blend=float(settings.color_change_percent) / 100.0,
        pattern=settings.pattern,
        parquet_ratio=tuple(settings.parquet_ratio),
        use_all_images=settings.use_all_images,
        mirror_images=settings.mirror_images,
        duplicate_spacing=int(settings.duplicate_spacing),
        color_space=settings.color_space,
        output_format=settings.output_format,
        write_usage_report=settings.write_usage_report,
    )
    logger.debug(
        "Resolved canvas %dx%d px, tile %d px (%s)",
        output_width, output_height, tile, settings.pattern.value,
    )
    return resolved
