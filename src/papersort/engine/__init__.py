"""Document processing engines.

This package provides:
- Classification pipeline that recognizes and files documents in order
- Reorganizer for selection-based bulk corrections afterwards
"""

from papersort.engine.pipeline import (
    ClassificationPipeline,
    DocumentOutcome,
    MatchState,
    PipelineRunResult,
    PipelineState,
    ProgressEvent,
    run_classification,
)
from papersort.engine.reorganize import Reorganizer

__all__ = [
    # Pipeline
    "ClassificationPipeline",
    "DocumentOutcome",
    "MatchState",
    "PipelineRunResult",
    "PipelineState",
    "ProgressEvent",
    "run_classification",
    # Reorganization
    "Reorganizer",
]
