"""Error taxonomy of the mosaic engine."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


class MosaicError(Exception):
    """Base class for every failure the engine reports."""


class InvalidSettings(MosaicError):
    """Settings cannot be turned into a usable pixel geometry."""


class TargetImageUnreadable(MosaicError):
    """The target photograph could not be decoded."""


class EmptyCellPool(MosaicError):
    """No candidate photo survived decoding."""


class Busy(MosaicError):
    """A generation is already running on this generator."""


class OutputWriteError(MosaicError):
    """The finished mosaic could not be written to the cache directory."""


class GenerationCancelled(Exception):  # noqa: N818
    """The run was stopped through its cancellation token.

    Not a :class:`MosaicError`: cancellation is a normal terminal outcome.
    """


@dataclass(frozen=True)
class DecodeFailure:
    """A candidate photo that was dropped because it failed to decode."""

    path: Path
    reason: str
