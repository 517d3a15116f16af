"""Progress events and cooperative cancellation."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from mosaic_creator.errors import GenerationCancelled


class Stage(str, Enum):
    VALIDATING = "validating"
    PLANNING = "planning"
    INDEXING = "indexing"
    SELECTING = "selecting"
    RENDERING = "rendering"
    SAVING = "saving"
    COMPLETE = "complete"


# Share of the overall 0-100 range covered by each stage.
STAGE_BANDS: dict[Stage, tuple[int, int]] = {
    Stage.VALIDATING: (0, 2),
    Stage.PLANNING: (2, 5),
    Stage.INDEXING: (5, 45),
    Stage.SELECTING: (45, 75),
    Stage.RENDERING: (75, 95),
    Stage.SAVING: (95, 99),
    Stage.COMPLETE: (100, 100),
}


@dataclass(frozen=True)
class GenerationProgress:
    stage: Stage
    percent: int


ProgressSink = Callable[[GenerationProgress], None]


class CancellationToken:
    """Shared stop signal polled by the engine between work items."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            msg = "Mosaic generation cancelled"
            raise GenerationCancelled(msg)


class ProgressReporter:
    """Map per-stage fractions onto one non-decreasing 0-100 stream.

    Safe to call from worker threads; duplicate percentages are dropped so
    the sink only sees changes.
    """

    def __init__(self, sink: ProgressSink | None = None) -> None:
        self._sink = sink
        self._lock = threading.Lock()
        self._last: tuple[Stage, int] | None = None
        self._percent = 0

    def update(self, stage: Stage, fraction: float = 0.0) -> None:
        lo, hi = STAGE_BANDS[stage]
        fraction = min(max(fraction, 0.0), 1.0)
        with self._lock:
            percent = max(self._percent, int(lo + (hi - lo) * fraction))
            if self._last == (stage, percent):
                return
            self._percent = percent
            self._last = (stage, percent)
            if self._sink is not None:
                self._sink(GenerationProgress(stage, percent))

    def counter(self, stage: Stage, total: int) -> Callable[[int], None]:
        """Return a callback reporting ``done / total`` for *stage*."""
        total = max(1, total)

        def _report(done: int) -> None:
            self.update(stage, done / total)

        return _report
