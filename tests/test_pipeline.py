"""Tests for the classification pipeline.

Tests cover:
- The three-paper walkthrough (new subject, sticky page, second subject)
- Sticky context reset on unmatched and failed documents
- Year extraction and placeholder years on filed documents
- Progress events and misbehaving observers
- Registry edits made while a run is in progress
- State machine: completion, cancellation, reset and re-run
- The synchronous run_classification wrapper
"""

from unittest.mock import AsyncMock

import pytest

from papersort.config_schema import AppConfig
from papersort.core.errors import OcrFailure, PipelineStateError
from papersort.engine.pipeline import (
    ClassificationPipeline,
    PipelineState,
    ProgressEvent,
    run_classification,
)
from papersort.ocr.tesseract import ImageSource, StaticRecognizer
from papersort.registry.store import BucketRegistry

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_images(count: int) -> list[ImageSource]:
    return [ImageSource(f"/scans/p{i}.jpg", f"p{i}.jpg") for i in range(count)]


def recognizer_for(texts: list[str]) -> StaticRecognizer:
    return StaticRecognizer({f"/scans/p{i}.jpg": text for i, text in enumerate(texts)})


def make_pipeline(texts: list[str], config: AppConfig) -> ClassificationPipeline:
    return ClassificationPipeline(BucketRegistry(), recognizer_for(texts), config)


EXAMPLE_TEXTS = [
    "CIT 417 Data Driven Websites Exam 2023",
    "Question 1: ...",
    "CIR 405 Distributed Systems 2022",
]


# ---------------------------------------------------------------------------
# Classification flow
# ---------------------------------------------------------------------------


class TestClassificationFlow:
    async def test_three_paper_example(self, empty_config: AppConfig):
        pipeline = make_pipeline(EXAMPLE_TEXTS, empty_config)

        result = await pipeline.run(make_images(3))

        snapshot = pipeline.registry.snapshot()
        assert [b.code for b in snapshot] == ["CIT 417", "CIR 405"]
        cit, cir = snapshot.buckets
        assert cit.count == 2
        assert cir.count == 1
        assert cit.display_name == "CIT 417: Data Driven Websites Exam 2023"
        assert [o.outcome for o in result.outcomes] == ["created", "sticky", "created"]
        assert result.unmatched == 0
        assert result.failed == 0
        assert result.state is PipelineState.COMPLETED

    async def test_seeded_subjects_matched_not_created(self, sample_config: AppConfig):
        pipeline = make_pipeline(EXAMPLE_TEXTS, sample_config)

        result = await pipeline.run(make_images(3))

        assert result.created == 0
        assert result.matched == 2
        assert result.sticky == 1
        assert len(pipeline.registry) == 2

    async def test_unmatched_first_page_leaves_no_context(self, empty_config: AppConfig):
        # Page 1 is unmatched (first document, no header), so page 2 has no context
        pipeline = make_pipeline(["smudge", "blurry"], empty_config)

        result = await pipeline.run(make_images(2))

        assert [o.outcome for o in result.outcomes] == ["unmatched", "unmatched"]
        assert pipeline.registry.total_documents() == 0
        assert len(result.unfiled) == 2

    async def test_ocr_failure_is_not_fatal(self, empty_config: AppConfig):
        recognizer = AsyncMock()
        recognizer.recognize.side_effect = [
            "CIT 417 Data Driven Websites",
            OcrFailure("unreadable", image_ref="/scans/p1.jpg"),
            "Question 2",
            "CIR 405 Distributed Systems",
        ]
        pipeline = ClassificationPipeline(BucketRegistry(), recognizer, empty_config)

        result = await pipeline.run(make_images(4))

        outcomes = [o.outcome for o in result.outcomes]
        # The failure clears the context, so "Question 2" has nowhere to stick
        assert outcomes == ["created", "failed", "unmatched", "created"]
        assert result.failed == 1
        assert result.outcomes[1].error == "unreadable"
        assert result.state is PipelineState.COMPLETED
        assert pipeline.registry.total_documents() == 2
        assert recognizer.recognize.await_count == 4

    async def test_unexpected_recognizer_error_is_not_fatal(self, empty_config: AppConfig):
        recognizer = AsyncMock()
        recognizer.recognize.side_effect = [
            RuntimeError("tesseract crashed"),
            "CIR 405 Distributed Systems 2022",
        ]
        pipeline = ClassificationPipeline(BucketRegistry(), recognizer, empty_config)

        result = await pipeline.run(make_images(2))

        assert [o.outcome for o in result.outcomes] == ["failed", "created"]
        assert result.outcomes[0].error == "RuntimeError: tesseract crashed"
        assert result.state is PipelineState.COMPLETED

    async def test_bucket_created_by_user_during_run(self, empty_config: AppConfig):
        registry = BucketRegistry()
        texts = {"/scans/p0.jpg": "CIR 405 Distributed Systems 2022"}

        class EditingRecognizer(StaticRecognizer):
            async def recognize(self, image_ref: str) -> str:
                # The user adds the subject while the page is being read
                registry.create_bucket("CIR 405", "CIR 405: Distributed Systems", origin="manual")
                return await super().recognize(image_ref)

        pipeline = ClassificationPipeline(registry, EditingRecognizer(texts), empty_config)

        result = await pipeline.run(make_images(1))

        outcome = result.outcomes[0]
        assert outcome.outcome == "matched"
        assert outcome.rule == "detected_code"
        assert len(registry) == 1
        bucket = registry.get_bucket(outcome.bucket_id)
        assert bucket.display_name == "CIR 405: Distributed Systems"
        assert bucket.count == 1

    async def test_missing_text_reported_as_failure(self, empty_config: AppConfig):
        pipeline = ClassificationPipeline(BucketRegistry(), StaticRecognizer({}), empty_config)

        result = await pipeline.run(make_images(1))

        assert result.outcomes[0].outcome == "failed"

    async def test_years_on_documents(self, empty_config: AppConfig):
        pipeline = make_pipeline(
            ["CIT 417 Data Driven Websites 2021", "CIT 417 Data Driven Websites", "CIT 417 2023"],
            empty_config,
        )

        await pipeline.run(make_images(3))

        docs = pipeline.registry.snapshot().buckets[0].documents
        assert [(d.display_name, d.effective_year, d.year_assumed) for d in docs] == [
            ("p1.jpg", 2024, True),
            ("p2.jpg", 2023, False),
            ("p0.jpg", 2021, False),
        ]

    async def test_no_placeholder_year(self):
        config = AppConfig(subjects=[], matching={"default_year": None})
        pipeline = make_pipeline(["CIT 417 Web Engineering"], config)

        await pipeline.run(make_images(1))

        doc = pipeline.registry.snapshot().buckets[0].documents[0]
        assert doc.year is None
        assert doc.effective_year is None
        assert doc.year_assumed is False

    async def test_marker_policy_from_config(self):
        config = AppConfig(subjects=[], matching={"sticky_requires_marker": True})
        pipeline = make_pipeline(["CIT 417 Data Driven Websites", "blurry", "Page 2"], config)

        result = await pipeline.run(make_images(3))

        # "blurry" is unmatched and clears the context for "Page 2" too
        assert [o.outcome for o in result.outcomes] == ["created", "unmatched", "unmatched"]


# ---------------------------------------------------------------------------
# Progress observers
# ---------------------------------------------------------------------------


class TestProgress:
    async def test_event_per_document(self, empty_config: AppConfig):
        pipeline = make_pipeline(EXAMPLE_TEXTS + ["???"], empty_config)
        events: list[ProgressEvent] = []
        pipeline.add_observer(events.append)

        await pipeline.run(make_images(4))

        assert [(e.index, e.total_count) for e in events] == [(0, 4), (1, 4), (2, 4), (3, 4)]
        assert [e.bucket_code for e in events] == ["CIT 417", "CIT 417", "CIR 405", "CIR 405"]
        assert events[0].status_label == "New Subject Detected: CIT 417"
        assert events[1].status_label == "Matching context to: CIT 417..."

    async def test_labels_for_matched_unmatched_and_failed(self, sample_config: AppConfig):
        recognizer = AsyncMock()
        recognizer.recognize.side_effect = ["blurry", "CIR 405", OcrFailure("bad")]
        pipeline = ClassificationPipeline(BucketRegistry(), recognizer, sample_config)
        events: list[ProgressEvent] = []
        pipeline.add_observer(events.append)

        await pipeline.run(make_images(3))

        assert [e.status_label for e in events] == [
            "Unclassified",
            "Filed under: CIR 405",
            "Error processing file",
        ]
        assert events[0].bucket_code is None

    async def test_failing_observer_does_not_stop_run(self, empty_config: AppConfig):
        pipeline = make_pipeline(EXAMPLE_TEXTS, empty_config)

        def broken(event: ProgressEvent) -> None:
            raise RuntimeError("display went away")

        pipeline.add_observer(broken)

        result = await pipeline.run(make_images(3))

        assert result.processed == 3


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class TestStateMachine:
    async def test_rerun_requires_reset(self, empty_config: AppConfig):
        pipeline = make_pipeline(EXAMPLE_TEXTS, empty_config)
        await pipeline.run(make_images(3))

        with pytest.raises(PipelineStateError) as exc_info:
            await pipeline.run(make_images(3))
        assert exc_info.value.state == "completed"

    async def test_reset_clears_and_reseeds(self, sample_config: AppConfig):
        pipeline = make_pipeline(["XYZ 100 Something new"], sample_config)
        await pipeline.run(make_images(1))
        assert len(pipeline.registry) == 3

        pipeline.reset()

        assert pipeline.state is PipelineState.IDLE
        assert [b.code for b in pipeline.registry.buckets()] == ["CIT 417", "CIR 405"]
        assert pipeline.registry.total_documents() == 0

        result = await pipeline.run(make_images(1))
        assert result.created == 1

    async def test_cancel_between_documents(self, empty_config: AppConfig):
        pipeline = make_pipeline(EXAMPLE_TEXTS, empty_config)

        def cancel_after_first(event: ProgressEvent) -> None:
            if event.index == 0:
                pipeline.cancel()

        pipeline.add_observer(cancel_after_first)

        result = await pipeline.run(make_images(3))

        assert result.state is PipelineState.CANCELLED
        assert pipeline.state is PipelineState.CANCELLED
        assert result.processed == 1
        assert pipeline.registry.total_documents() == 1

    async def test_cancel_when_idle_is_ignored(self, empty_config: AppConfig):
        pipeline = make_pipeline(EXAMPLE_TEXTS, empty_config)
        pipeline.cancel()

        result = await pipeline.run(make_images(3))

        assert result.state is PipelineState.COMPLETED

    async def test_reset_while_running_rejected(self, empty_config: AppConfig):
        pipeline = make_pipeline(EXAMPLE_TEXTS, empty_config)
        errors: list[Exception] = []

        def try_reset(event: ProgressEvent) -> None:
            try:
                pipeline.reset()
            except PipelineStateError as e:
                errors.append(e)

        pipeline.add_observer(try_reset)
        await pipeline.run(make_images(1))

        assert len(errors) == 1
        assert errors[0].state == "running"

    async def test_empty_input_completes(self, empty_config: AppConfig):
        pipeline = make_pipeline([], empty_config)
        result = await pipeline.run([])
        assert result.state is PipelineState.COMPLETED
        assert result.total == 0

    def test_existing_registry_not_reseeded(self, sample_config: AppConfig):
        registry = BucketRegistry()
        registry.create_bucket("ZZZ 999", "Custom")

        ClassificationPipeline(registry, StaticRecognizer({}), sample_config)

        assert [b.code for b in registry.buckets()] == ["ZZZ 999"]


def test_run_classification_returns_snapshot(empty_config: AppConfig):
    snapshot = run_classification(make_images(3), recognizer_for(EXAMPLE_TEXTS), empty_config)

    assert [(b.code, b.count) for b in snapshot] == [("CIT 417", 2), ("CIR 405", 1)]
    assert snapshot.total_documents() == 3


def test_run_classification_fills_callers_registry(empty_config: AppConfig):
    registry = BucketRegistry()

    snapshot = run_classification(
        make_images(3), recognizer_for(EXAMPLE_TEXTS), empty_config, registry=registry
    )

    assert len(registry) == 2
    assert registry.total_documents() == snapshot.total_documents() == 3
