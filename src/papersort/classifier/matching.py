"""Subject matching engine for recognized document text.

Decides which bucket a document belongs to. The engine is a pure function
over the text, a registry snapshot and the sticky context (the bucket the
previous document went to); it never mutates anything.

Rules are evaluated in strict precedence, first applicable wins:

1. Code match: the uppercased text contains a bucket's code, either
   verbatim or with its whitespace removed ("CIT417").
2. Name match: at least N significant words of a bucket's title appear
   in the text.
3. New-bucket detection: the text contains something shaped like a
   subject code ("ABC 123") not yet in the registry.
4. Sticky fallback: attach to the previous document's bucket when the page
   looks like a continuation page, or (unless the policy requires a marker)
   whenever this is not the first document of the run.
5. Unmatched.

Usage:
    from papersort.classifier.matching import classify, ExistingBucket

    result = classify(text, registry.snapshot(), sticky_bucket_id, is_first=False)
    if isinstance(result, ExistingBucket):
        registry.add_document(result.bucket_id, document)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, Union

import regex

from papersort.classifier.text import (
    REGEX_TIMEOUT,
    SUBJECT_CODE_PATTERN,
    TITLE_STRIP_CHARS,
    compact,
    has_continuation_marker,
    normalize_code,
    normalize_text,
    search,
    significant_words,
)
from papersort.core.logging import get_logger

if TYPE_CHECKING:
    from papersort.config_schema import MatchingConfig
    from papersort.registry.models import BucketId, BucketView, RegistrySnapshot

logger = get_logger(__name__)

DETECTED_SUBJECT_FALLBACK = "Detected Subject"


# ---------------------------------------------------------------------------
# Result variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ExistingBucket:
    """Text matched a bucket already in the registry.

    Attributes:
        bucket_id: The matched bucket
        rule: Which rule matched: 'code', 'name' or 'detected_code'
    """

    bucket_id: BucketId
    rule: Literal["code", "name", "detected_code"] = "code"


@dataclass(frozen=True, slots=True)
class NewBucket:
    """Text carries a subject code no bucket has yet."""

    code: str
    display_name: str


@dataclass(frozen=True, slots=True)
class StickyBucket:
    """Nothing matched; the document continues the previous one's bucket."""

    bucket_id: BucketId


@dataclass(frozen=True, slots=True)
class Unmatched:
    """No rule applied."""


MatchResult = Union[ExistingBucket, NewBucket, StickyBucket, Unmatched]


@dataclass(frozen=True, slots=True)
class MatchPolicy:
    """Tunable thresholds for the heuristics.

    Attributes:
        min_significant_words: Name words needed for a fuzzy name match
        significant_word_min_length: Shortest word counted as significant
        min_title_length: Detected titles must be longer than this
        sticky_requires_marker: If True, only continuation-looking pages stick
    """

    min_significant_words: int = 2
    significant_word_min_length: int = 4
    min_title_length: int = 5
    sticky_requires_marker: bool = False

    @classmethod
    def from_config(cls, config: MatchingConfig) -> MatchPolicy:
        return cls(
            min_significant_words=config.min_significant_words,
            significant_word_min_length=config.significant_word_min_length,
            min_title_length=config.min_title_length,
            sticky_requires_marker=config.sticky_requires_marker,
        )


DEFAULT_POLICY = MatchPolicy()


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _matches_code(upper_text: str, bucket: BucketView) -> bool:
    code = bucket.code.strip().upper()
    if not code:
        return False
    return code in upper_text or compact(code) in upper_text


def match_code(upper_text: str, snapshot: RegistrySnapshot) -> BucketView | None:
    """Rule 1: first bucket whose code appears in the text."""
    for bucket in snapshot:
        if _matches_code(upper_text, bucket):
            return bucket
    return None


def match_name(
    upper_text: str,
    snapshot: RegistrySnapshot,
    policy: MatchPolicy = DEFAULT_POLICY,
) -> BucketView | None:
    """Rule 2: first bucket with enough significant name words in the text."""
    for bucket in snapshot:
        words = significant_words(bucket.display_name, policy.significant_word_min_length)
        found = sum(1 for word in words if word in upper_text)
        if found >= policy.min_significant_words:
            return bucket
    return None


def detect_new_subject(
    text: str,
    upper_text: str,
    policy: MatchPolicy = DEFAULT_POLICY,
) -> NewBucket | None:
    """Rule 3: find a code-shaped token and derive a display name for it.

    The display name is the rest of the line holding the code, when that
    rest is long enough; otherwise a generic label.
    """
    match = search(SUBJECT_CODE_PATTERN, upper_text, "subject_code")
    if match is None:
        return None

    raw = match.group(0)
    code = normalize_code(raw)
    display_name = f"{code}: {DETECTED_SUBJECT_FALLBACK}"

    for line in text.splitlines():
        upper_line = line.upper()
        if raw not in upper_line and code not in upper_line:
            continue
        cut = raw if raw in upper_line else code
        title = regex.sub(
            regex.escape(cut),
            "",
            line,
            count=1,
            flags=regex.IGNORECASE,
            timeout=REGEX_TIMEOUT,
        )
        title = title.strip(TITLE_STRIP_CHARS)
        if len(title) > policy.min_title_length:
            display_name = f"{code}: {title}"
        break

    return NewBucket(code=code, display_name=display_name)


def is_sticky(
    text: str,
    sticky_bucket_id: BucketId | None,
    snapshot: RegistrySnapshot,
    is_first: bool,
    policy: MatchPolicy = DEFAULT_POLICY,
) -> bool:
    """Rule 4: whether an otherwise unmatched document joins the sticky bucket."""
    if sticky_bucket_id is None or snapshot.get(sticky_bucket_id) is None:
        return False
    if has_continuation_marker(text):
        return True
    return not is_first and not policy.sticky_requires_marker


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def classify(
    text: str,
    snapshot: RegistrySnapshot,
    sticky_bucket_id: BucketId | None = None,
    *,
    is_first: bool = False,
    policy: MatchPolicy = DEFAULT_POLICY,
) -> MatchResult:
    """Decide which bucket the recognized text belongs to.

    Args:
        text: Raw recognized text of one document
        snapshot: Registry state to match against, in display order
        sticky_bucket_id: Bucket of the immediately preceding document, if any
        is_first: Whether this is the first document of the run
        policy: Matching thresholds

    Returns:
        One of ExistingBucket, NewBucket, StickyBucket or Unmatched
    """
    upper_text = normalize_text(text)

    bucket = match_code(upper_text, snapshot)
    if bucket is not None:
        logger.debug("match_rule_code", bucket_id=bucket.id, code=bucket.code)
        return ExistingBucket(bucket_id=bucket.id, rule="code")

    bucket = match_name(upper_text, snapshot, policy)
    if bucket is not None:
        logger.debug("match_rule_name", bucket_id=bucket.id, code=bucket.code)
        return ExistingBucket(bucket_id=bucket.id, rule="name")

    detected = detect_new_subject(text, upper_text, policy)
    if detected is not None:
        existing = snapshot.find_by_code(detected.code)
        if existing is not None:
            logger.debug("match_rule_detected_existing", bucket_id=existing.id, code=existing.code)
            return ExistingBucket(bucket_id=existing.id, rule="detected_code")
        logger.debug("match_rule_new_subject", code=detected.code, name=detected.display_name)
        return detected

    if is_sticky(text, sticky_bucket_id, snapshot, is_first, policy):
        logger.debug("match_rule_sticky", bucket_id=sticky_bucket_id)
        return StickyBucket(bucket_id=sticky_bucket_id)

    return Unmatched()
