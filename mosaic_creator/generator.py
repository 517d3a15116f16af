"""End-to-end mosaic generation with progress, cancellation and run state.

Pipeline::

    validate -> load target -> plan grid -> index pool || sample target
             -> select tiles -> render -> save [-> usage report]
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from mosaic_creator.cell_index import CellPhotoIndex, default_workers
from mosaic_creator.compositor import Compositor, save_canvas
from mosaic_creator.config import MosaicSettings
from mosaic_creator.errors import (
    Busy,
    DecodeFailure,
    EmptyCellPool,
    GenerationCancelled,
    MosaicError,
)
from mosaic_creator.grid import plan_grid
from mosaic_creator.progress import CancellationToken, ProgressReporter, ProgressSink, Stage
from mosaic_creator.report import write_usage_report
from mosaic_creator.sampler import load_target, sample_target
from mosaic_creator.selector import TileSelector
from mosaic_creator.settings import resolve_settings, validate_settings

logger = logging.getLogger(__name__)


class GenerationState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class MosaicResult:
    """Summary of a finished generation.

    The files at ``output_file_path`` and ``usage_report_path`` belong to the
    caller from here on.
    """

    grid_rows: int
    grid_columns: int
    output_width: int
    output_height: int
    used_cell_photos: int
    total_cell_photos: int
    generation_time_ms: int
    output_file_path: Path
    usage_report_path: Path | None = None
    decode_failures: tuple[DecodeFailure, ...] = ()

    @property
    def unused_cell_photos(self) -> int:
        return self.total_cell_photos - self.used_cell_photos


class MosaicGenerator:
    """Runs one generation at a time.

    ``IDLE -> RUNNING -> SUCCESS | ERROR | CANCELLED``; :meth:`reset` returns
    a finished generator to ``IDLE``. Starting a run while another is in
    progress raises :class:`Busy`.

    Args:
        max_workers: Size of the per-run worker pool (default: CPU count).
    """

    def __init__(self, max_workers: int | None = None) -> None:
        self.max_workers = max_workers or default_workers()
        self._lock = threading.Lock()
        self._state = GenerationState.IDLE
        self._background: ThreadPoolExecutor | None = None

    @property
    def state(self) -> GenerationState:
        return self._state

    def _begin(self) -> None:
        with self._lock:
            if self._state is GenerationState.RUNNING:
                msg = "A mosaic generation is already running"
                raise Busy(msg)
            self._state = GenerationState.RUNNING

    def _finish(self, state: GenerationState) -> None:
        with self._lock:
            self._state = state

    def reset(self) -> None:
        """Return to ``IDLE`` after a finished run."""
        with self._lock:
            if self._state is GenerationState.RUNNING:
                msg = "Cannot reset while a generation is running"
                raise Busy(msg)
            self._state = GenerationState.IDLE

    # -- public entry points -------------------------------------------

    def generate(
        self,
        target_path: str | Path,
        candidate_paths: Sequence[str | Path],
        settings: MosaicSettings,
        cache_dir: str | Path,
        progress: ProgressSink | None = None,
        cancel: CancellationToken | None = None,
    ) -> MosaicResult:
        """Generate a mosaic and block until it is written.

        Args:
            target_path:     Photograph to reproduce.
            candidate_paths: Cell photos, in discovery order.
            settings:        Generation parameters.
            cache_dir:       Directory receiving the output file.
            progress:        Callback for :class:`GenerationProgress` events.
            cancel:          Token polled throughout the run.

        Raises:
            Busy: another generation is running.
            MosaicError: invalid settings, unreadable target, empty pool or
                failed write.
            GenerationCancelled: *cancel* was triggered; no files remain.
        """
        self._begin()
        return self._execute(target_path, candidate_paths, settings, cache_dir, progress, cancel)

    def submit(
        self,
        target_path: str | Path,
        candidate_paths: Sequence[str | Path],
        settings: MosaicSettings,
        cache_dir: str | Path,
        progress: ProgressSink | None = None,
        cancel: CancellationToken | None = None,
    ) -> Future[MosaicResult]:
        """Start :meth:`generate` on the background worker.

        :class:`Busy` is raised here, synchronously; every other outcome is
        delivered through the returned future.
        """
        self._begin()
        if self._background is None:
            self._background = ThreadPoolExecutor(max_workers=1, thread_name_prefix="mosaic")
        return self._background.submit(
            self._execute, target_path, candidate_paths, settings, cache_dir, progress, cancel,
        )

    def shutdown(self, wait: bool = True) -> None:
        if self._background is not None:
            self._background.shutdown(wait=wait)
            self._background = None

    def __enter__(self) -> MosaicGenerator:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    # -- pipeline ------------------------------------------------------

    def _execute(
        self,
        target_path: str | Path,
        candidate_paths: Sequence[str | Path],
        settings: MosaicSettings,
        cache_dir: str | Path,
        progress: ProgressSink | None,
        cancel: CancellationToken | None,
    ) -> MosaicResult:
        cancel = cancel or CancellationToken()
        written: list[Path] = []
        try:
            result = self._run(
                target_path, candidate_paths, settings, Path(cache_dir),
                ProgressReporter(progress), cancel, written,
            )
        except GenerationCancelled:
            _discard(written)
            self._finish(GenerationState.CANCELLED)
            logger.info("Mosaic generation cancelled")
            raise
        except MosaicError as exc:
            _discard(written)
            self._finish(GenerationState.ERROR)
            logger.error("Mosaic generation failed: %s", exc)
            raise
        except Exception:
            _discard(written)
            self._finish(GenerationState.ERROR)
            logger.exception("Mosaic generation failed unexpectedly")
            raise
        self._finish(GenerationState.SUCCESS)
        return result

    def _run(
        self,
        target_path: str | Path,
        candidate_paths: Sequence[str | Path],
        settings: MosaicSettings,
        cache_dir: Path,
        reporter: ProgressReporter,
        cancel: CancellationToken,
        written: list[Path],
    ) -> MosaicResult:
        t_total = time.perf_counter()

        reporter.update(Stage.VALIDATING)
        validate_settings(settings)
        target = load_target(target_path)
        resolved = resolve_settings(settings, target.size)
        reporter.update(Stage.VALIDATING, 1.0)
        cancel.raise_if_cancelled()

        grid = plan_grid(resolved)
        if not candidate_paths:
            msg = "No cell photos were supplied"
            raise EmptyCellPool(msg)
        reporter.update(Stage.PLANNING, 1.0)

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="mosaic-worker") as pool:
            sampling = pool.submit(sample_target, target, grid, cancel)
            try:
                index = CellPhotoIndex.build(
                    candidate_paths,
                    mirror_images=resolved.mirror_images,
                    executor=pool,
                    cancel=cancel,
                    on_progress=reporter.counter(Stage.INDEXING, len(candidate_paths)),
                )
            except GenerationCancelled:
                sampling.cancel()
                raise
            cell_colors = sampling.result()

            if len(index) == 0:
                msg = f"None of the {len(candidate_paths)} cell photos could be decoded"
                raise EmptyCellPool(msg)

            selector = TileSelector(
                index,
                duplicate_spacing=resolved.duplicate_spacing,
                use_all_images=resolved.use_all_images,
                color_space=resolved.color_space,
            )
            assignments = selector.select(
                grid, cell_colors, cancel=cancel,
                on_progress=reporter.counter(Stage.SELECTING, len(grid)),
            )

            canvas = Compositor(index, resolved.blend).render(
                grid, assignments, cell_colors, executor=pool, cancel=cancel,
                on_progress=reporter.counter(Stage.RENDERING, len(grid)),
            )

        cancel.raise_if_cancelled()
        reporter.update(Stage.SAVING)
        output_path = save_canvas(canvas, cache_dir, resolved.output_format)
        written.append(output_path)

        report_path = None
        if resolved.write_usage_report:
            report_path = write_usage_report(assignments, index, cache_dir)
            written.append(report_path)
        reporter.update(Stage.SAVING, 1.0)
        cancel.raise_if_cancelled()

        used = len({a.candidate for a in assignments})
        elapsed_ms = int(round((time.perf_counter() - t_total) * 1000))
        result = MosaicResult(
            grid_rows=grid.rows,
            grid_columns=grid.columns,
            output_width=grid.width,
            output_height=grid.height,
            used_cell_photos=used,
            total_cell_photos=len(index),
            generation_time_ms=elapsed_ms,
            output_file_path=output_path,
            usage_report_path=report_path,
            decode_failures=tuple(index.failures),
        )
        reporter.update(Stage.COMPLETE, 1.0)
        logger.info(
            "Mosaic %dx%d px (%dx%d cells, %d/%d photos used) in %.1f s -> %s",
            result.output_width, result.output_height, grid.columns, grid.rows,
            used, len(index), elapsed_ms / 1000, output_path,
        )
        return result


def _discard(paths: list[Path]) -> None:
    for path in paths:
        path.unlink(missing_ok=True)


def generate_mosaic(
    target_path: str | Path,
    candidate_paths: Sequence[str | Path],
    settings: MosaicSettings | None = None,
    cache_dir: str | Path = ".",
    progress: ProgressSink | None = None,
    cancel: CancellationToken | None = None,
    max_workers: int | None = None,
) -> MosaicResult:
    """One-shot generation on a private :class:`MosaicGenerator`."""
    generator = MosaicGenerator(max_workers=max_workers)
    return generator.generate(
        target_path, candidate_paths, settings or MosaicSettings(), cache_dir, progress, cancel,
    )
