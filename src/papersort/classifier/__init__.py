"""Document classification components.

This package provides the pure decision logic:
- Text helpers (timeout-guarded regex, code normalization, year extraction)
- The matching engine that assigns recognized text to a subject bucket
"""

from papersort.classifier.matching import (
    DEFAULT_POLICY,
    ExistingBucket,
    MatchPolicy,
    MatchResult,
    NewBucket,
    StickyBucket,
    Unmatched,
    classify,
)
from papersort.classifier.text import extract_year, normalize_code

__all__ = [
    # Matching
    "DEFAULT_POLICY",
    "ExistingBucket",
    "MatchPolicy",
    "MatchResult",
    "NewBucket",
    "StickyBucket",
    "Unmatched",
    "classify",
    # Text helpers
    "extract_year",
    "normalize_code",
]
