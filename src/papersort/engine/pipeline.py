"""Classification pipeline: recognizes and files documents one at a time.

Per document, strictly in input order:
1. Await recognized text from the recognizer (OCR)
2. Classify the text against the current registry snapshot and the
   sticky context (bucket of the immediately preceding document)
3. Apply the result to the registry (create a bucket first if needed)
4. Carry the bucket forward as the next sticky context, or clear it
5. Notify progress observers

The pipeline is best-effort: an OCR failure marks that document as failed
and resets the sticky context, but the run continues. Cancellation is
cooperative and only takes effect between documents.

States: IDLE -> RUNNING -> COMPLETED (or CANCELLED). A finished pipeline
must be reset() before it can run again; reset clears the registry and
re-seeds it from the configured subjects.

Usage:
    from papersort.engine.pipeline import ClassificationPipeline

    pipeline = ClassificationPipeline(registry, recognizer, config)
    pipeline.add_observer(lambda event: print(event.status_label))
    result = await pipeline.run(images)
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Literal

from papersort.classifier.matching import (
    ExistingBucket,
    MatchPolicy,
    MatchResult,
    NewBucket,
    StickyBucket,
    classify,
)
from papersort.classifier.text import extract_year
from papersort.config_schema import AppConfig
from papersort.core.errors import DuplicateCodeError, PipelineStateError, RecognizerError
from papersort.core.logging import get_logger, set_correlation_id
from papersort.registry.models import BucketId, Document, RegistrySnapshot
from papersort.registry.store import BucketRegistry

if TYPE_CHECKING:
    from papersort.ocr.tesseract import ImageSource, Recognizer

logger = get_logger(__name__)

Outcome = Literal["matched", "created", "sticky", "unmatched", "failed"]


class PipelineState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# State and result dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MatchState:
    """Inputs the matcher needs for one document.

    Built fresh for every document and never mutated; the pipeline derives
    the next state from the previous one.

    Attributes:
        snapshot: Registry contents as committed so far
        sticky_bucket_id: Bucket of the previous document, None if unset
        index: Position of the document in the run
    """

    snapshot: RegistrySnapshot
    sticky_bucket_id: BucketId | None = None
    index: int = 0

    @property
    def is_first(self) -> bool:
        return self.index == 0


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """Notification sent to observers after each document."""

    index: int
    total_count: int
    bucket_code: str | None
    status_label: str
    outcome: Outcome


ProgressObserver = Callable[[ProgressEvent], None]


@dataclass
class DocumentOutcome:
    """What happened to one input document."""

    index: int
    image_ref: str
    display_name: str
    outcome: Outcome
    bucket_id: BucketId | None = None
    bucket_code: str | None = None
    rule: str | None = None
    year: int | None = None
    error: str | None = None


@dataclass
class PipelineRunResult:
    """Result of one pipeline run."""

    run_id: str
    state: PipelineState = PipelineState.IDLE
    total: int = 0
    processed: int = 0
    matched: int = 0
    created: int = 0
    sticky: int = 0
    unmatched: int = 0
    failed: int = 0
    duration_ms: int = 0
    outcomes: list[DocumentOutcome] = field(default_factory=list)

    @property
    def unfiled(self) -> list[DocumentOutcome]:
        """Documents that ended up in no bucket (unmatched or failed)."""
        return [o for o in self.outcomes if o.outcome in ("unmatched", "failed")]

    def record(self, outcome: DocumentOutcome) -> None:
        self.outcomes.append(outcome)
        self.processed += 1
        if outcome.outcome == "matched":
            self.matched += 1
        elif outcome.outcome == "created":
            self.created += 1
        elif outcome.outcome == "sticky":
            self.sticky += 1
        elif outcome.outcome == "unmatched":
            self.unmatched += 1
        elif outcome.outcome == "failed":
            self.failed += 1


def status_label(outcome: Outcome, bucket_code: str | None) -> str:
    """Human-readable progress text for an outcome."""
    if outcome == "created":
        return f"New Subject Detected: {bucket_code}"
    if outcome == "sticky":
        return f"Matching context to: {bucket_code}..."
    if outcome == "matched":
        return f"Filed under: {bucket_code}"
    if outcome == "failed":
        return "Error processing file"
    return "Unclassified"


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class ClassificationPipeline:
    """Sequential recognize-classify-file loop over a batch of images.

    Attributes:
        _registry: Bucket registry the pipeline writes to
        _recognizer: Text recognizer (OCR collaborator)
        _config: Application configuration (subjects, matching policy)
        _policy: Matching thresholds derived from config
        _state: Current PipelineState
        _cancel_requested: Cooperative cancellation flag
        _observers: Progress callbacks
    """

    def __init__(
        self,
        registry: BucketRegistry,
        recognizer: Recognizer,
        config: AppConfig | None = None,
    ):
        self._registry = registry
        self._recognizer = recognizer
        self._config = config or AppConfig()
        self._policy = MatchPolicy.from_config(self._config.matching)
        self._state = PipelineState.IDLE
        self._cancel_requested = False
        self._observers: list[ProgressObserver] = []

        if len(self._registry) == 0:
            self._registry.seed(self._config.subjects)

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def registry(self) -> BucketRegistry:
        return self._registry

    def add_observer(self, observer: ProgressObserver) -> None:
        self._observers.append(observer)

    def remove_observer(self, observer: ProgressObserver) -> None:
        self._observers.remove(observer)

    def cancel(self) -> None:
        """Ask a running pipeline to stop before the next document."""
        if self._state is PipelineState.RUNNING:
            self._cancel_requested = True
            logger.info("pipeline_cancel_requested")

    def reset(self) -> None:
        """Return to IDLE with a freshly seeded registry.

        Raises:
            PipelineStateError: If a run is in progress
        """
        if self._state is PipelineState.RUNNING:
            raise PipelineStateError(
                "Cannot reset while a classification run is in progress. Cancel it first.",
                state=self._state.value,
            )
        self._registry.clear()
        self._registry.seed(self._config.subjects)
        self._state = PipelineState.IDLE
        self._cancel_requested = False
        logger.info("pipeline_reset", seeded=len(self._registry))

    async def run(self, images: Sequence[ImageSource]) -> PipelineRunResult:
        """Classify every image in order and file it into the registry.

        Args:
            images: Ordered image sources

        Returns:
            PipelineRunResult with per-document outcomes and counters

        Raises:
            PipelineStateError: If the pipeline is not IDLE
        """
        if self._state is not PipelineState.IDLE:
            raise PipelineStateError(
                f"Pipeline is {self._state.value}; call reset() before running again.",
                state=self._state.value,
            )

        run_id = str(uuid.uuid4())
        set_correlation_id(run_id)
        start_time = time.monotonic()
        self._state = PipelineState.RUNNING
        self._cancel_requested = False

        result = PipelineRunResult(run_id=run_id, total=len(images))
        match_state = MatchState(snapshot=self._registry.snapshot())

        logger.info("pipeline_run_start", total=len(images), buckets=len(self._registry))

        try:
            for index, image in enumerate(images):
                if self._cancel_requested:
                    logger.info("pipeline_run_cancelled", processed=result.processed)
                    self._state = PipelineState.CANCELLED
                    break

                match_state = replace(
                    match_state,
                    snapshot=self._registry.snapshot(),
                    index=index,
                )
                outcome = await self._process_document(image, match_state)
                result.record(outcome)

                # Unmatched and failed documents carry bucket_id=None, clearing the context
                match_state = replace(match_state, sticky_bucket_id=outcome.bucket_id)

                self._emit(
                    ProgressEvent(
                        index=index,
                        total_count=len(images),
                        bucket_code=outcome.bucket_code,
                        status_label=status_label(outcome.outcome, outcome.bucket_code),
                        outcome=outcome.outcome,
                    )
                )
            else:
                self._state = PipelineState.COMPLETED
        finally:
            if self._state is PipelineState.RUNNING:
                # Interrupted by an exception escaping the loop
                self._state = PipelineState.CANCELLED
            result.state = self._state
            result.duration_ms = int((time.monotonic() - start_time) * 1000)

            logger.info(
                "pipeline_run_complete",
                state=result.state.value,
                duration_ms=result.duration_ms,
                processed=result.processed,
                matched=result.matched,
                created=result.created,
                sticky=result.sticky,
                unmatched=result.unmatched,
                failed=result.failed,
            )
            set_correlation_id(None)

        return result

    async def _process_document(self, image: ImageSource, state: MatchState) -> DocumentOutcome:
        """Recognize, classify and file one document."""
        outcome = DocumentOutcome(
            index=state.index,
            image_ref=image.image_ref,
            display_name=image.display_name,
            outcome="unmatched",
        )

        try:
            text = await self._recognizer.recognize(image.image_ref)
        except RecognizerError as e:
            logger.warning(
                "ocr_failed",
                index=state.index,
                image_ref=image.image_ref,
                error=str(e),
            )
            outcome.outcome = "failed"
            outcome.error = str(e)
            return outcome
        except Exception as e:  # noqa: BLE001
            # Recognizers are pluggable; an unmapped error still fails only this document
            logger.error(
                "ocr_failed",
                index=state.index,
                image_ref=image.image_ref,
                error=str(e),
                error_type=type(e).__name__,
            )
            outcome.outcome = "failed"
            outcome.error = f"{type(e).__name__}: {e}"
            return outcome

        match = classify(
            text,
            state.snapshot,
            state.sticky_bucket_id,
            is_first=state.is_first,
            policy=self._policy,
        )
        year = extract_year(text)
        outcome.year = year

        bucket_id, kind, rule = self._apply(match)
        if bucket_id is None:
            logger.info("document_unclassified", index=state.index, image_ref=image.image_ref)
            return outcome

        document = Document(
            image_ref=image.image_ref,
            display_name=image.display_name,
            year=year,
            default_year=self._config.matching.default_year,
        )
        self._registry.add_document(bucket_id, document)

        bucket = self._registry.get_bucket(bucket_id)
        outcome.outcome = kind
        outcome.bucket_id = bucket_id
        outcome.bucket_code = bucket.code
        outcome.rule = rule

        logger.info(
            "document_classified",
            index=state.index,
            image_ref=image.image_ref,
            bucket_code=bucket.code,
            outcome=kind,
            rule=rule,
            year=year,
        )
        return outcome

    def _apply(self, match: MatchResult) -> tuple[BucketId | None, Outcome, str | None]:
        """Resolve a match result to a bucket id, creating the bucket if needed."""
        if isinstance(match, ExistingBucket):
            return match.bucket_id, "matched", match.rule
        if isinstance(match, StickyBucket):
            return match.bucket_id, "sticky", "sticky"
        if isinstance(match, NewBucket):
            try:
                bucket_id = self._registry.create_bucket(
                    match.code, match.display_name, origin="detected"
                )
            except DuplicateCodeError as e:
                # Created by a user edit after the snapshot was taken
                logger.info("detected_bucket_exists", code=match.code)
                return e.existing_id, "matched", "detected_code"
            return bucket_id, "created", "new_subject"
        return None, "unmatched", None

    def _emit(self, event: ProgressEvent) -> None:
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception as e:  # noqa: BLE001
                logger.warning("progress_observer_failed", error=str(e), index=event.index)


def run_classification(
    images: Sequence[ImageSource],
    recognizer: Recognizer,
    config: AppConfig | None = None,
    registry: BucketRegistry | None = None,
) -> RegistrySnapshot:
    """Run a full classification synchronously and return the final snapshot."""
    if registry is None:
        registry = BucketRegistry()
    pipeline = ClassificationPipeline(registry, recognizer, config)
    asyncio.run(pipeline.run(images))
    return pipeline.registry.snapshot()
