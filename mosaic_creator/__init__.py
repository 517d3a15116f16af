"""
Mosaic Creator
==============

Rebuild a target photograph as a print-resolution mosaic of cell photos.
Two tile layouts:

- **Square** (uniform grid)
- **Parquet** (interleaved landscape / portrait tiles)
"""

__version__ = "1.0.0"

from mosaic_creator.config import (
    CELL_SIZES,
    PRINT_SIZES,
    CellSize,
    MosaicSettings,
    PatternKind,
    PrintSize,
)
from mosaic_creator.errors import (
    Busy,
    DecodeFailure,
    EmptyCellPool,
    GenerationCancelled,
    InvalidSettings,
    MosaicError,
    OutputWriteError,
    TargetImageUnreadable,
)
from mosaic_creator.generator import (
    GenerationState,
    MosaicGenerator,
    MosaicResult,
    generate_mosaic,
)
from mosaic_creator.plan import MosaicPlan, plan_mosaic, suggest_parquet_ratio
from mosaic_creator.progress import CancellationToken, GenerationProgress, Stage

__all__ = [
    "CELL_SIZES",
    "PRINT_SIZES",
    "Busy",
    "CancellationToken",
    "CellSize",
    "DecodeFailure",
    "EmptyCellPool",
    "GenerationCancelled",
    "GenerationProgress",
    "GenerationState",
    "InvalidSettings",
    "MosaicError",
    "MosaicGenerator",
    "MosaicPlan",
    "MosaicResult",
    "MosaicSettings",
    "OutputWriteError",
    "PatternKind",
    "PrintSize",
    "Stage",
    "TargetImageUnreadable",
    "generate_mosaic",
    "plan_mosaic",
    "suggest_parquet_ratio",
]
