"""Shared fixtures: synthetic photos written under tmp_path."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

ImageFactory = Callable[..., Path]


@pytest.fixture
def make_image(tmp_path: Path) -> ImageFactory:
    """Write a solid-colour (or supplied) RGB image and return its path."""

    def _make(
        name: str,
        size: tuple[int, int] = (40, 30),
        color: tuple[int, int, int] = (128, 128, 128),
        pixels: np.ndarray | None = None,
        folder: str = "cells",
    ) -> Path:
        directory = tmp_path / folder
        directory.mkdir(parents=True, exist_ok=True)
        if pixels is None:
            w, h = size
            pixels = np.empty((h, w, 3), dtype=np.uint8)
            pixels[:] = color
        path = directory / name
        Image.fromarray(pixels).save(path)
        return path

    return _make


@pytest.fixture
def target_image(make_image: ImageFactory) -> Path:
    """Portrait target with a horizontal colour gradient."""
    h, w = 300, 200
    ramp = np.linspace(0, 255, w, dtype=np.float64)
    pixels = np.zeros((h, w, 3), dtype=np.uint8)
    pixels[..., 0] = ramp.astype(np.uint8)
    pixels[..., 1] = 80
    pixels[..., 2] = (255 - ramp).astype(np.uint8)
    return make_image("target.png", pixels=pixels, folder="target")


@pytest.fixture
def cell_paths(make_image: ImageFactory) -> list[Path]:
    """Fifty distinct solid-colour cell photos."""
    rng = np.random.default_rng(7)
    colors = rng.integers(0, 256, size=(50, 3))
    return [
        make_image(f"cell_{i:02d}.png", color=tuple(int(v) for v in c))
        for i, c in enumerate(colors)
    ]


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    d = tmp_path / "cache"
    d.mkdir()
    return d
