"""Image loading, tile fitting and saving."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

import numpy as np
from PIL import Image, ImageOps

logger = logging.getLogger(__name__)

# Errors Pillow raises for missing, truncated or unsupported files
DECODE_ERRORS = (OSError, ValueError, Image.DecompressionBombError)

_PIL_FORMATS = {"png": "PNG", "jpeg": "JPEG"}
_SUFFIXES = {"png": ".png", "jpeg": ".jpg"}


def compute_target_size(
    original_width: int,
    original_height: int,
    max_side: int,
) -> tuple[int, int]:
    """Compute downscaled (w, h) preserving aspect ratio.

    The longest side becomes *max_side*; the other is scaled
    proportionally (rounded to the nearest integer, minimum 1).
    """
    if original_width >= original_height:
        w = max_side
        h = max(1, round(original_height * max_side / original_width))
    else:
        h = max_side
        w = max(1, round(original_width * max_side / original_height))
    return w, h


def open_rgb(path: str | Path) -> Image.Image:
    """Decode an image fully, honour EXIF orientation, return RGB."""
    with Image.open(path) as img:
        img.load()
        img = ImageOps.exif_transpose(img)
        return img.convert("RGB")


def read_size(path: str | Path) -> tuple[int, int]:
    """Read ``(width, height)`` from the header, accounting for EXIF rotation."""
    with Image.open(path) as img:
        w, h = img.size
        # Orientations 5-8 swap width and height
        if img.getexif().get(0x0112, 1) in (5, 6, 7, 8):
            return h, w
        return w, h


def load_thumbnail(path: str | Path, max_side: int) -> Image.Image:
    """Load an image with its longest side bounded to *max_side*.

    Smaller images are kept at their native size.
    """
    img = open_rgb(path)
    if max(img.size) > max_side:
        w, h = compute_target_size(img.width, img.height, max_side)
        img = img.resize((w, h), Image.LANCZOS)
    return img


def fit_to_cell(
    image: Image.Image,
    width: int,
    height: int,
    mirrored: bool = False,
) -> np.ndarray:
    """Center-crop-to-fill *image* into a ``width x height`` tile.

    The aspect ratio is never distorted: the image is scaled to cover the
    tile and the overflow is cropped symmetrically.

    Returns:
        (height, width, 3) uint8 array.
    """
    tile = ImageOps.fit(image, (width, height), Image.LANCZOS, centering=(0.5, 0.5))
    if mirrored:
        tile = ImageOps.mirror(tile)
    return np.asarray(tile, dtype=np.uint8)


def write_temp_image(
    array: np.ndarray,
    directory: str | Path,
    output_format: str = "png",
    prefix: str = "mosaic_",
) -> Path:
    """Encode *array* into a new uniquely named file inside *directory*.

    A partially written file is removed before the error propagates.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(prefix=prefix, suffix=_SUFFIXES[output_format], dir=directory)
    path = Path(name)
    try:
        with os.fdopen(fd, "wb") as fh:
            img = Image.fromarray(array.astype(np.uint8))
            if output_format == "jpeg":
                img.save(fh, format=_PIL_FORMATS[output_format], quality=95)
            else:
                img.save(fh, format=_PIL_FORMATS[output_format])
    except BaseException:
        path.unlink(missing_ok=True)
        raise
    logger.debug("Wrote %s (%dx%d)", path, array.shape[1], array.shape[0])
    return path
