"""Tests for the mosaic_creator building blocks."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from mosaic_creator.cell_index import CandidatePhoto, CellPhotoIndex
from mosaic_creator.color_utils import compute_cost_matrix, rgb_to_lab
from mosaic_creator.compositor import Compositor, blend_tile, save_canvas
from mosaic_creator.config import (
    CELL_SIZES,
    CellSize,
    MosaicSettings,
    PatternKind,
    PrintSize,
    parse_cell_size,
    parse_print_size,
    parse_ratio,
)
from mosaic_creator.errors import (
    GenerationCancelled,
    InvalidSettings,
    OutputWriteError,
    TargetImageUnreadable,
)
from mosaic_creator.grid import (
    Orientation,
    classify_aspect,
    parquet_cycle_width,
    plan_grid,
    plan_parquet_grid,
    plan_square_grid,
)
from mosaic_creator.image_io import compute_target_size, fit_to_cell, load_thumbnail
from mosaic_creator.plan import plan_mosaic, suggest_parquet_ratio
from mosaic_creator.progress import CancellationToken, ProgressReporter, Stage
from mosaic_creator.report import usage_rows
from mosaic_creator.sampler import load_target, prepare_working_image, sample_cell_colors
from mosaic_creator.selector import TileSelector
from mosaic_creator.settings import millimeters_to_pixels, resolve_settings

# -- Helpers -----------------------------------------------------------


def _index(colors: list[tuple[int, int, int]], mirror: bool = False) -> CellPhotoIndex:
    """In-memory pool of solid 8x6 candidates."""
    candidates = []
    for i, c in enumerate(colors):
        pixels = np.empty((6, 8, 3), dtype=np.uint8)
        pixels[:] = c
        candidates.append(CandidatePhoto(
            index=i,
            path=Path(f"cand_{i}.png"),
            thumbnail=Image.fromarray(pixels),
            average=np.asarray(c, dtype=np.float64),
            orientation=Orientation.LANDSCAPE,
        ))
    return CellPhotoIndex(candidates, mirror_images=mirror)


def _coverage(grid) -> np.ndarray:
    """Per-pixel count of cells covering the grid's area."""
    cover = np.zeros((grid.height, grid.width), dtype=np.int32)
    for cell in grid:
        cover[cell.y : cell.y + cell.height, cell.x : cell.x + cell.width] += 1
    return cover


# -- Config ------------------------------------------------------------

class TestConfig:
    def test_defaults(self) -> None:
        s = MosaicSettings()
        assert s.print_size.label == "20x30"
        assert s.cell_size == CELL_SIZES["15mm"]
        assert s.pattern is PatternKind.SQUARE
        assert s.output_format == "png"

    def test_frozen(self) -> None:
        s = MosaicSettings()
        with pytest.raises(AttributeError):
            s.duplicate_spacing = 5  # type: ignore[misc]

    def test_parse_presets_and_custom(self) -> None:
        assert parse_print_size("16x20").width_in == 16.0
        custom = parse_print_size("10 x 15")
        assert (custom.width_in, custom.height_in) == (10.0, 15.0)
        assert parse_cell_size("12.7").size_mm == pytest.approx(12.7)
        assert parse_cell_size("10mm") == CELL_SIZES["10mm"]
        assert parse_ratio("2:1") == (2, 1)

    @pytest.mark.parametrize("text", ["big", "10by15", ""])
    def test_parse_print_size_rejects(self, text: str) -> None:
        with pytest.raises(ValueError, match="print size"):
            parse_print_size(text)

    def test_parse_ratio_rejects(self) -> None:
        with pytest.raises(ValueError, match="parquet ratio"):
            parse_ratio("2-1")


# -- Settings resolution ----------------------------------------------

class TestResolveSettings:
    def test_default_pixels(self) -> None:
        r = resolve_settings(MosaicSettings())
        assert (r.output_width, r.output_height) == (6000, 9000)
        assert r.tile_width == r.tile_height == 177
        assert r.blend == pytest.approx(0.2)

    def test_half_inch_cell(self) -> None:
        assert millimeters_to_pixels(12.7, 300) == 150

    def test_tiny_cell_is_at_least_one_pixel(self) -> None:
        assert millimeters_to_pixels(0.01, 300) == 1

    def test_follows_landscape_target(self) -> None:
        r = resolve_settings(MosaicSettings(), target_size=(4000, 3000))
        assert (r.output_width, r.output_height) == (9000, 6000)

    def test_square_target_keeps_orientation(self) -> None:
        r = resolve_settings(MosaicSettings(), target_size=(500, 500))
        assert (r.output_width, r.output_height) == (6000, 9000)

    def test_orientation_matching_disabled(self) -> None:
        s = MosaicSettings(match_target_orientation=False)
        r = resolve_settings(s, target_size=(4000, 3000))
        assert (r.output_width, r.output_height) == (6000, 9000)

    @pytest.mark.parametrize("percent", [-1, 100.5, 150])
    def test_percent_out_of_range(self, percent: float) -> None:
        with pytest.raises(InvalidSettings, match="percent"):
            resolve_settings(MosaicSettings(color_change_percent=percent))

    def test_percent_bounds_accepted(self) -> None:
        assert resolve_settings(MosaicSettings(color_change_percent=0)).blend == 0.0
        assert resolve_settings(MosaicSettings(color_change_percent=100)).blend == 1.0

    def test_bad_parquet_ratio(self) -> None:
        s = MosaicSettings(pattern=PatternKind.PARQUET, parquet_ratio=(0, 1))
        with pytest.raises(InvalidSettings, match="ratio"):
            resolve_settings(s)

    def test_negative_spacing(self) -> None:
        with pytest.raises(InvalidSettings, match="spacing"):
            resolve_settings(MosaicSettings(duplicate_spacing=-1))

    def test_unknown_color_space(self) -> None:
        with pytest.raises(InvalidSettings, match="colour space"):
            resolve_settings(MosaicSettings(color_space="hsv"))

    def test_cell_larger_than_canvas(self) -> None:
        s = MosaicSettings(cell_size=CellSize("1000mm", 1000.0))
        with pytest.raises(InvalidSettings, match="does not fit"):
            resolve_settings(s)

    def test_parquet_needs_a_full_band(self) -> None:
        # 1 inch = 300 px holds one 254 px tile but not a 508 px band
        s = MosaicSettings(
            print_size=PrintSize("1x1", 1.0, 1.0),
            cell_size=CellSize("21.5mm", 21.5),
            pattern=PatternKind.PARQUET,
        )
        with pytest.raises(InvalidSettings):
            resolve_settings(s)
        resolve_settings(MosaicSettings(print_size=s.print_size, cell_size=s.cell_size))


# -- Grid planning ----------------------------------------------------

class TestSquareGrid:
    def test_floor_formula(self) -> None:
        grid = plan_square_grid(6000, 9000, 177, 177)
        assert grid.columns == 6000 // 177
        assert grid.rows == 9000 // 177
        assert len(grid) == grid.rows * grid.columns

    def test_scan_order_and_clipping(self) -> None:
        grid = plan_square_grid(35, 25, 10, 10)
        assert (grid.width, grid.height) == (30, 20)
        assert [(c.row, c.column) for c in grid][:4] == [(0, 0), (0, 1), (0, 2), (1, 0)]
        assert _coverage(grid).min() == 1
        assert _coverage(grid).max() == 1

    def test_plan_grid_dispatch(self) -> None:
        s = MosaicSettings(
            print_size=PrintSize("10x15", 10.0, 15.0),
            cell_size=CellSize("12.7mm", 12.7),
        )
        grid = plan_grid(resolve_settings(s))
        assert (grid.columns, grid.rows) == (20, 30)
        assert grid.pattern is PatternKind.SQUARE


class TestParquetGrid:
    @pytest.mark.parametrize("ratio", [(1, 1), (2, 1), (1, 2), (3, 2)])
    def test_no_overlap_and_full_cover(self, ratio: tuple[int, int]) -> None:
        grid = plan_parquet_grid(370, 185, 10, 10, ratio)
        cover = _coverage(grid)
        assert cover.min() == 1
        assert cover.max() == 1
        assert sum(c.area for c in grid) == grid.width * grid.height

    @pytest.mark.parametrize("ratio", [(1, 1), (2, 1), (1, 3)])
    def test_exact_ratio_over_complete_cycles(self, ratio: tuple[int, int]) -> None:
        width_units = parquet_cycle_width(ratio) * 3
        grid = plan_parquet_grid(width_units * 10, 40, 10, 10, ratio)
        landscape = grid.count(Orientation.LANDSCAPE)
        portrait = grid.count(Orientation.PORTRAIT)
        assert landscape * ratio[1] == portrait * ratio[0]
        assert landscape + portrait == len(grid)

    def test_cell_shapes(self) -> None:
        grid = plan_parquet_grid(80, 40, 10, 10, (1, 1))
        for cell in grid:
            if cell.orientation is Orientation.LANDSCAPE:
                assert (cell.width, cell.height) == (20, 10)
            else:
                assert (cell.width, cell.height) == (10, 20)

    def test_odd_bands_are_offset(self) -> None:
        grid = plan_parquet_grid(80, 40, 10, 10, (1, 1))
        first_in_band = {c.row: c for c in grid if c.column == 0}
        assert first_in_band[0].orientation is Orientation.LANDSCAPE
        assert first_in_band[2].orientation is Orientation.PORTRAIT

    def test_row_end_falls_back_to_portrait(self) -> None:
        # 5 units with cycle L,P,P (4 units): the fifth unit cannot hold a landscape
        grid = plan_parquet_grid(50, 20, 10, 10, (1, 1))
        last = max(grid, key=lambda c: c.x)
        assert last.orientation is Orientation.PORTRAIT
        assert last.x == 40

    def test_scan_order(self) -> None:
        grid = plan_parquet_grid(80, 40, 10, 10, (2, 1))
        keys = [(c.row, c.column) for c in grid]
        assert keys == sorted(keys)

    def test_classify_aspect(self) -> None:
        assert classify_aspect(40, 30) is Orientation.LANDSCAPE
        assert classify_aspect(30, 40) is Orientation.PORTRAIT
        assert classify_aspect(30, 30) is Orientation.SQUARE


# -- Colour utilities -------------------------------------------------

class TestColorUtils:
    def test_lab_shape(self) -> None:
        lab = rgb_to_lab(np.array([[255, 0, 0], [0, 0, 0]], dtype=np.uint8))
        assert lab.shape == (2, 3)
        assert lab[1, 0] == pytest.approx(0.0, abs=1e-6)

    def test_cost_matrix_rgb(self) -> None:
        cells = np.array([[0, 0, 0], [255, 255, 255]], dtype=np.uint8)
        cands = np.array([[0, 0, 0], [3, 4, 0], [255, 255, 255]], dtype=np.float64)
        cost = compute_cost_matrix(cells, cands)
        assert cost.shape == (2, 3)
        assert cost[0, 1] == pytest.approx(5.0)
        assert cost[1, 2] == pytest.approx(0.0)
        assert cost[0, 2] == pytest.approx(255 * np.sqrt(3))

    def test_cost_matrix_chunked(self) -> None:
        rng = np.random.default_rng(1)
        cells = rng.integers(0, 256, (50, 3))
        cands = rng.integers(0, 256, (7, 3))
        full = compute_cost_matrix(cells, cands, chunk_size=1024)
        chunked = compute_cost_matrix(cells, cands, chunk_size=8)
        np.testing.assert_allclose(full, chunked)


# -- Image I/O ---------------------------------------------------------

class TestImageIO:
    def test_target_size(self) -> None:
        assert compute_target_size(1920, 1080, 64) == (64, 36)
        assert compute_target_size(1080, 1920, 64) == (36, 64)

    def test_thumbnail_bounded(self, make_image) -> None:
        path = make_image("big.png", size=(600, 300))
        thumb = load_thumbnail(path, 256)
        assert thumb.size == (256, 128)

    def test_small_image_not_upscaled(self, make_image) -> None:
        path = make_image("small.png", size=(40, 30))
        assert load_thumbnail(path, 256).size == (40, 30)

    def test_fit_to_cell_crops_without_stretch(self) -> None:
        pixels = np.zeros((20, 60, 3), dtype=np.uint8)
        pixels[:, :20] = (255, 0, 0)
        pixels[:, 20:40] = (0, 255, 0)
        pixels[:, 40:] = (0, 0, 255)
        tile = fit_to_cell(Image.fromarray(pixels), 20, 20)
        assert tile.shape == (20, 20, 3)
        # The centre third survives the crop
        assert tuple(tile[10, 10]) == (0, 255, 0)

    def test_fit_to_cell_mirrored(self) -> None:
        rng = np.random.default_rng(3)
        img = Image.fromarray(rng.integers(0, 256, (30, 40, 3), dtype=np.uint8))
        plain = fit_to_cell(img, 20, 10)
        mirrored = fit_to_cell(img, 20, 10, mirrored=True)
        np.testing.assert_array_equal(mirrored, plain[:, ::-1])


# -- Target sampling ---------------------------------------------------

class TestSampler:
    def test_unreadable_target(self, tmp_path: Path) -> None:
        bad = tmp_path / "broken.jpg"
        bad.write_bytes(b"definitely not a jpeg")
        with pytest.raises(TargetImageUnreadable):
            load_target(bad)

    def test_missing_target(self, tmp_path: Path) -> None:
        with pytest.raises(TargetImageUnreadable):
            load_target(tmp_path / "nope.png")

    def test_cell_colors(self) -> None:
        pixels = np.zeros((40, 60, 3), dtype=np.uint8)
        pixels[:, :30] = (200, 10, 10)
        pixels[:, 30:] = (10, 10, 200)
        target = Image.fromarray(pixels)
        grid = plan_square_grid(60, 40, 30, 20)
        working, scale = prepare_working_image(target, 60, 40)
        assert scale == 1.0
        colors = sample_cell_colors(working, scale, grid)
        assert colors.dtype == np.uint8
        assert [tuple(c) for c in colors] == [
            (200, 10, 10), (10, 10, 200), (200, 10, 10), (10, 10, 200),
        ]

    def test_working_image_is_bounded(self) -> None:
        target = Image.new("RGB", (300, 200), (50, 60, 70))
        working, scale = prepare_working_image(target, 9000, 6000, max_side=2048)
        assert max(working.shape[:2]) == 2048
        assert scale == pytest.approx(2048 / 9000)

    def test_sampling_cancelled(self) -> None:
        token = CancellationToken()
        token.cancel()
        grid = plan_square_grid(20, 20, 10, 10)
        with pytest.raises(GenerationCancelled):
            sample_cell_colors(np.zeros((20, 20, 3), dtype=np.uint8), 1.0, grid, cancel=token)


# -- Cell photo index --------------------------------------------------

class TestCellPhotoIndex:
    def test_build_keeps_order_and_skips_failures(self, make_image, tmp_path: Path) -> None:
        paths = [
            make_image("a.png", size=(60, 30), color=(255, 0, 0)),
            make_image("b.png", size=(30, 60), color=(0, 255, 0)),
        ]
        broken = tmp_path / "cells" / "c.jpg"
        broken.write_bytes(b"garbage")
        paths.insert(1, broken)
        paths.append(make_image("d.png", size=(40, 40), color=(0, 0, 255)))

        index = CellPhotoIndex.build(paths, max_workers=2)
        assert [c.path.name for c in index.candidates] == ["a.png", "b.png", "d.png"]
        assert [f.path.name for f in index.failures] == ["c.jpg"]
        np.testing.assert_allclose(index.averages[0], (255, 0, 0))
        assert [c.orientation for c in index.candidates] == [
            Orientation.LANDSCAPE, Orientation.PORTRAIT, Orientation.SQUARE,
        ]

    def test_mirrored_variants(self) -> None:
        index = _index([(0, 0, 0), (9, 9, 9)], mirror=True)
        assert [(v.candidate.index, v.mirrored) for v in index.variants] == [
            (0, False), (0, True), (1, False), (1, True),
        ]
        assert list(index.variant_sources) == [0, 0, 1, 1]

    def test_progress_and_cancel(self, make_image) -> None:
        paths = [make_image(f"{i}.png") for i in range(4)]
        seen: list[int] = []
        CellPhotoIndex.build(paths, max_workers=2, on_progress=seen.append)
        assert seen == [1, 2, 3, 4]

        token = CancellationToken()
        token.cancel()
        with pytest.raises(GenerationCancelled):
            CellPhotoIndex.build(paths, cancel=token)


# -- Tile selection ----------------------------------------------------

class TestTileSelector:
    def test_best_colour_wins(self) -> None:
        index = _index([(0, 0, 0), (250, 250, 250)])
        grid = plan_square_grid(20, 10, 10, 10)
        colors = np.array([[240, 240, 240], [5, 5, 5]], dtype=np.uint8)
        result = TileSelector(index).select(grid, colors)
        assert [a.candidate for a in result] == [1, 0]

    def test_ties_resolve_to_lowest_index(self) -> None:
        index = _index([(10, 10, 10)] * 3)
        grid = plan_square_grid(30, 10, 10, 10)
        colors = np.full((3, 3), 10, dtype=np.uint8)
        result = TileSelector(index).select(grid, colors)
        assert [a.candidate for a in result] == [0, 0, 0]

    def test_use_all_places_every_photo_before_repeats(self) -> None:
        rng = np.random.default_rng(11)
        pool = [tuple(int(v) for v in c) for c in rng.integers(0, 256, (10, 3))]
        index = _index(pool)
        grid = plan_square_grid(60, 50, 10, 10)
        colors = np.zeros((len(grid), 3), dtype=np.uint8)
        result = TileSelector(index, use_all_images=True).select(grid, colors)
        first = [a.candidate for a in result[:10]]
        assert sorted(first) == list(range(10))

    @pytest.mark.parametrize("mirror", [False, True])
    def test_spacing_honoured_when_pool_is_large_enough(self, mirror: bool) -> None:
        d = 3
        index = _index([(100, 100, 100)] * ((2 * d + 1) ** 2 + 1), mirror=mirror)
        grid = plan_square_grid(120, 120, 10, 10)
        colors = np.full((len(grid), 3), 100, dtype=np.uint8)
        result = TileSelector(index, duplicate_spacing=d).select(grid, colors)
        by_photo: dict[int, list[tuple[int, int]]] = {}
        for a in result:
            by_photo.setdefault(a.candidate, []).append(a.position)
        for positions in by_photo.values():
            for i, (r1, c1) in enumerate(positions):
                for r2, c2 in positions[i + 1 :]:
                    assert max(abs(r1 - r2), abs(c1 - c2)) > d

    def test_spacing_relaxed_for_tiny_pool(self) -> None:
        index = _index([(1, 2, 3)])
        grid = plan_square_grid(30, 30, 10, 10)
        colors = np.zeros((9, 3), dtype=np.uint8)
        result = TileSelector(index, duplicate_spacing=3).select(grid, colors)
        assert len(result) == 9
        assert {a.candidate for a in result} == {0}

    def test_mirrored_copy_blocked_next_to_its_original(self) -> None:
        index = _index([(50, 50, 50), (200, 10, 10)], mirror=True)
        grid = plan_square_grid(20, 10, 10, 10)
        colors = np.full((2, 3), 50, dtype=np.uint8)
        result = TileSelector(index, duplicate_spacing=1).select(grid, colors)
        assert [a.candidate for a in result] == [0, 1]
        assert [a.mirrored for a in result] == [False, False]

    def test_mirrored_copy_relaxed_only_without_alternative(self) -> None:
        index = _index([(50, 50, 50)], mirror=True)
        grid = plan_square_grid(20, 10, 10, 10)
        colors = np.full((2, 3), 50, dtype=np.uint8)
        result = TileSelector(index, duplicate_spacing=1).select(grid, colors)
        assert [a.candidate for a in result] == [0, 0]
        assert [a.mirrored for a in result] == [False, False]

    def test_best_photo_never_neighbours_itself_with_mirroring(self) -> None:
        rng = np.random.default_rng(9)
        pool = [(60, 120, 180)] + [tuple(int(v) for v in c) for c in rng.integers(0, 256, (9, 3))]
        index = _index(pool, mirror=True)
        grid = plan_square_grid(60, 60, 10, 10)
        colors = np.tile(np.array([60, 120, 180], dtype=np.uint8), (len(grid), 1))
        result = TileSelector(index, duplicate_spacing=1).select(grid, colors)
        placed = {a.position: a.candidate for a in result}
        for (r, c), cand in placed.items():
            for dr in (-1, 0, 1):
                for dc in (-1, 0, 1):
                    if (dr, dc) != (0, 0):
                        assert placed.get((r + dr, c + dc)) != cand

    def test_parquet_spacing_uses_footprints(self) -> None:
        index = _index([(0, 0, 0)] * 40)
        grid = plan_parquet_grid(80, 40, 10, 10, (1, 1))
        colors = np.zeros((len(grid), 3), dtype=np.uint8)
        result = TileSelector(index, duplicate_spacing=1).select(grid, colors)
        # Landscape pair cells are stacked neighbours and may not share a photo
        first, second = result[0], next(a for a in result if a.position == (1, 0))
        assert first.candidate != second.candidate

    def test_deterministic(self) -> None:
        rng = np.random.default_rng(5)
        pool = [tuple(int(v) for v in c) for c in rng.integers(0, 256, (12, 3))]
        grid = plan_square_grid(80, 80, 10, 10)
        colors = rng.integers(0, 256, (len(grid), 3)).astype(np.uint8)
        runs = [
            [(a.candidate, a.mirrored) for a in TileSelector(
                _index(pool, mirror=True), duplicate_spacing=2, use_all_images=True,
            ).select(grid, colors)]
            for _ in range(2)
        ]
        assert runs[0] == runs[1]

    def test_cancel_between_cells(self) -> None:
        token = CancellationToken()
        token.cancel()
        grid = plan_square_grid(20, 10, 10, 10)
        with pytest.raises(GenerationCancelled):
            TileSelector(_index([(0, 0, 0)])).select(
                grid, np.zeros((2, 3), dtype=np.uint8), cancel=token,
            )

    def test_empty_pool_rejected(self) -> None:
        grid = plan_square_grid(10, 10, 10, 10)
        with pytest.raises(ValueError, match="empty"):
            TileSelector(_index([])).select(grid, np.zeros((1, 3), dtype=np.uint8))


# -- Compositing -------------------------------------------------------

class TestCompositor:
    def test_blend_zero_is_identity(self) -> None:
        tile = np.random.default_rng(0).integers(0, 256, (4, 4, 3), dtype=np.uint8)
        np.testing.assert_array_equal(blend_tile(tile, np.array([9, 9, 9]), 0.0), tile)

    def test_blend_one_is_flat_fill(self) -> None:
        tile = np.random.default_rng(0).integers(0, 256, (4, 4, 3), dtype=np.uint8)
        out = blend_tile(tile, np.array([12, 34, 56]), 1.0)
        assert (out == np.array([12, 34, 56], dtype=np.uint8)).all()

    def test_blend_partial_rounds(self) -> None:
        tile = np.full((1, 1, 3), 100, dtype=np.uint8)
        out = blend_tile(tile, np.array([200, 200, 200]), 0.25)
        assert tuple(out[0, 0]) == (125, 125, 125)

    def test_blend_weight_clamped(self) -> None:
        tile = np.full((1, 1, 3), 100, dtype=np.uint8)
        out = blend_tile(tile, np.array([0, 0, 0]), 1.7)
        assert tuple(out[0, 0]) == (0, 0, 0)

    def test_render_full_change(self) -> None:
        index = _index([(255, 0, 0), (0, 0, 255)])
        grid = plan_square_grid(40, 20, 10, 10)
        rng = np.random.default_rng(2)
        colors = rng.integers(0, 256, (len(grid), 3)).astype(np.uint8)
        assignments = TileSelector(index).select(grid, colors)
        canvas = Compositor(index, 1.0).render(grid, assignments, colors)
        assert canvas.shape == (20, 40, 3)
        for cell, color in zip(grid, colors, strict=True):
            region = canvas[cell.y : cell.y + cell.height, cell.x : cell.x + cell.width]
            assert (region == color).all()

    def test_render_no_change_keeps_photos(self) -> None:
        index = _index([(255, 0, 0), (0, 0, 255)])
        grid = plan_square_grid(20, 10, 10, 10)
        colors = np.array([[250, 0, 0], [0, 0, 250]], dtype=np.uint8)
        assignments = TileSelector(index).select(grid, colors)
        canvas = Compositor(index, 0.0).render(grid, assignments, colors)
        np.testing.assert_allclose(canvas[5, 5], (255, 0, 0), atol=1)
        np.testing.assert_allclose(canvas[5, 15], (0, 0, 255), atol=1)

    def test_render_cancelled(self) -> None:
        index = _index([(1, 1, 1)])
        grid = plan_square_grid(20, 10, 10, 10)
        colors = np.zeros((2, 3), dtype=np.uint8)
        assignments = TileSelector(index).select(grid, colors)
        token = CancellationToken()
        token.cancel()
        with pytest.raises(GenerationCancelled):
            Compositor(index, 0.5).render(grid, assignments, colors, cancel=token)

    def test_save_canvas(self, tmp_path: Path) -> None:
        canvas = np.full((6, 8, 3), 77, dtype=np.uint8)
        path = save_canvas(canvas, tmp_path, "png")
        assert path.parent == tmp_path
        assert path.name.startswith("mosaic_")
        assert path.suffix == ".png"
        with Image.open(path) as img:
            assert img.size == (8, 6)

    def test_save_canvas_jpeg(self, tmp_path: Path) -> None:
        path = save_canvas(np.zeros((4, 4, 3), dtype=np.uint8), tmp_path, "jpeg")
        assert path.suffix == ".jpg"

    def test_save_canvas_unwritable(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(OutputWriteError):
            save_canvas(np.zeros((4, 4, 3), dtype=np.uint8), blocker / "sub")


# -- Progress ----------------------------------------------------------

class TestProgress:
    def test_cancel_raises_with_message(self) -> None:
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel()
        with pytest.raises(GenerationCancelled, match="cancelled"):
            token.raise_if_cancelled()

    def test_percent_never_decreases(self) -> None:
        seen = []
        reporter = ProgressReporter(seen.append)
        reporter.update(Stage.INDEXING, 0.5)
        reporter.update(Stage.VALIDATING, 1.0)
        reporter.update(Stage.SELECTING, 0.0)
        reporter.update(Stage.COMPLETE, 1.0)
        percents = [e.percent for e in seen]
        assert percents == sorted(percents)
        assert percents[-1] == 100

    def test_duplicates_dropped(self) -> None:
        seen = []
        reporter = ProgressReporter(seen.append)
        tick = reporter.counter(Stage.SELECTING, 1000)
        for done in range(1, 1001):
            tick(done)
        assert len(seen) == len({e.percent for e in seen})


# -- Plan & report -----------------------------------------------------

class TestPlan:
    def test_suggest_ratio(self) -> None:
        assert suggest_parquet_ratio(6, 2) == (3, 1)
        assert suggest_parquet_ratio(5, 2) == (2, 1)
        assert suggest_parquet_ratio(2, 7) == (1, 3)
        assert suggest_parquet_ratio(0, 4) is None

    def test_plan_mosaic(self, make_image, target_image: Path) -> None:
        cells = [make_image(f"l{i}.png", size=(40, 30)) for i in range(3)]
        cells.append(make_image("p.png", size=(30, 40)))
        s = MosaicSettings(
            print_size=PrintSize("4x6", 4.0, 6.0),
            cell_size=CellSize("12.7mm", 12.7),
            pattern=PatternKind.PARQUET,
        )
        plan = plan_mosaic(s, target_image, cells)
        assert (plan.output_width, plan.output_height) == (1200, 1800)
        assert plan.total_cells == plan.landscape_cells + plan.portrait_cells
        assert (plan.landscape_photos, plan.portrait_photos) == (3, 1)
        assert plan.required_uses == -(-plan.total_cells // 4)
        assert plan.recommended_max_uses == 2 * plan.required_uses
        assert plan.suggested_ratio == (3, 1)

    def test_usage_rows(self) -> None:
        index = _index([(0, 0, 0), (255, 255, 255), (9, 9, 9)])
        grid = plan_square_grid(20, 10, 10, 10)
        colors = np.array([[0, 0, 0], [255, 255, 255]], dtype=np.uint8)
        rows = usage_rows(TileSelector(index).select(grid, colors), index)
        assert rows == [
            ("cand_0.png", 1, 0, 0),
            ("cand_1.png", 1, 10, 0),
            ("cand_2.png", 0, "", ""),
        ]
