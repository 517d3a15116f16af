"""Decode, downsize and colour-profile every candidate photo once."""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable, Sequence
from concurrent.futures import Executor, Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
from PIL import Image

from mosaic_creator.config import THUMBNAIL_MAX_SIDE
from mosaic_creator.errors import DecodeFailure
from mosaic_creator.grid import Orientation, classify_aspect
from mosaic_creator.image_io import DECODE_ERRORS, load_thumbnail, read_size
from mosaic_creator.progress import CancellationToken

logger = logging.getLogger(__name__)


def default_workers() -> int:
    return max(1, min(32, os.cpu_count() or 1))


@dataclass(frozen=True, eq=False)
class CandidatePhoto:
    """A decoded candidate.

    Attributes:
        index:       Discovery index (position in the caller's path list).
        path:        Source file.
        thumbnail:   RGB image, longest side <= THUMBNAIL_MAX_SIDE.
        average:     (3,) float64 mean RGB of the thumbnail.
        orientation: Aspect class of the source photo.
    """

    index: int
    path: Path
    thumbnail: Image.Image
    average: np.ndarray
    orientation: Orientation


@dataclass(frozen=True)
class CandidateVariant:
    """One selectable option: a candidate, optionally mirrored."""

    candidate: CandidatePhoto
    mirrored: bool = False

    @property
    def average(self) -> np.ndarray:
        # Mirroring does not change the mean colour
        return self.candidate.average


def index_candidate(index: int, path: str | Path, max_side: int = THUMBNAIL_MAX_SIDE) -> CandidatePhoto:
    """Decode one candidate; raises the underlying Pillow error on failure."""
    path = Path(path)
    width, height = read_size(path)
    thumb = load_thumbnail(path, max_side)
    average = np.asarray(thumb, dtype=np.float64).reshape(-1, 3).mean(axis=0)
    return CandidatePhoto(
        index=index,
        path=path,
        thumbnail=thumb,
        average=average,
        orientation=classify_aspect(width, height),
    )


@dataclass
class CellPhotoIndex:
    """All usable candidates of a run plus the ones that failed to decode.

    ``candidates`` keeps the caller's path order with failures removed;
    ``variants`` lists, per candidate, the unmirrored option first and the
    mirrored one second when mirroring is enabled.
    """

    candidates: list[CandidatePhoto]
    failures: list[DecodeFailure] = field(default_factory=list)
    mirror_images: bool = False
    variants: list[CandidateVariant] = field(init=False)

    def __post_init__(self) -> None:
        self.variants = []
        for cand in self.candidates:
            self.variants.append(CandidateVariant(cand, mirrored=False))
            if self.mirror_images:
                self.variants.append(CandidateVariant(cand, mirrored=True))

    def __len__(self) -> int:
        return len(self.candidates)

    @property
    def averages(self) -> np.ndarray:
        """(M, 3) mean colour per candidate."""
        if not self.candidates:
            return np.empty((0, 3), dtype=np.float64)
        return np.stack([c.average for c in self.candidates])

    @property
    def variant_sources(self) -> np.ndarray:
        """Position in ``candidates`` of each variant's source photo."""
        per = 2 if self.mirror_images else 1
        return np.repeat(np.arange(len(self.candidates)), per)

    @classmethod
    def build(
        cls,
        paths: Sequence[str | Path],
        mirror_images: bool = False,
        executor: Executor | None = None,
        max_workers: int | None = None,
        max_side: int = THUMBNAIL_MAX_SIDE,
        cancel: CancellationToken | None = None,
        on_progress: Callable[[int], None] | None = None,
    ) -> CellPhotoIndex:
        """Decode all candidates on a bounded worker pool.

        Args:
            paths:         Candidate files, in discovery order.
            mirror_images: Register a mirrored variant for each candidate.
            executor:      Pool to run on; a private one is created if omitted.
            max_workers:   Size of the private pool (default: CPU count).
            max_side:      Thumbnail bound.
            cancel:        Stop signal, polled before each candidate.
            on_progress:   Called with the number of candidates processed.

        Returns:
            The index; failures are recorded, never raised.
        """
        t0 = time.perf_counter()
        if executor is None:
            with ThreadPoolExecutor(
                max_workers=max_workers or default_workers(),
                thread_name_prefix="cell-index",
            ) as pool:
                return cls.build(
                    paths, mirror_images, pool,
                    max_side=max_side, cancel=cancel, on_progress=on_progress,
                )

        def _task(i: int, path: str | Path) -> CandidatePhoto | DecodeFailure | None:
            if cancel is not None and cancel.cancelled:
                return None
            try:
                return index_candidate(i, path, max_side)
            except DECODE_ERRORS as exc:
                return DecodeFailure(Path(path), str(exc))

        futures: dict[Future, int] = {
            executor.submit(_task, i, p): i for i, p in enumerate(paths)
        }
        results: list[CandidatePhoto | DecodeFailure | None] = [None] * len(paths)
        try:
            for done, future in enumerate(as_completed(futures), 1):
                results[futures[future]] = future.result()
                if on_progress is not None:
                    on_progress(done)
        finally:
            for future in futures:
                future.cancel()

        if cancel is not None:
            cancel.raise_if_cancelled()

        candidates = [r for r in results if isinstance(r, CandidatePhoto)]
        failures = [r for r in results if isinstance(r, DecodeFailure)]
        for failure in failures:
            logger.warning("Skipping %s: %s", failure.path.name, failure.reason)

        logger.info(
            "Indexed %d/%d cell photos%s (%.1f s)",
            len(candidates), len(paths),
            " (+ mirrored)" if mirror_images else "",
            time.perf_counter() - t0,
        )
        return cls(candidates, failures, mirror_images=mirror_images)

    def orientation_counts(self) -> dict[Orientation, int]:
        counts = dict.fromkeys(Orientation, 0)
        for cand in self.candidates:
            counts[cand.orientation] += 1
        return counts
