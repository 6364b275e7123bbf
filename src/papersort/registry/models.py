"""Data model for subject buckets and the documents filed in them.

A bucket is a classification target (a course such as "CIT 417") holding
scanned documents. Buckets live in an arena keyed by a stable BucketId so
reorganization code can keep references while the display order changes.

Usage:
    from papersort.registry.models import Document

    doc = Document(image_ref="scans/paper1.jpg", display_name="paper1.jpg", year=2023)
    doc.effective_year  # 2023
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

BucketId = str

BucketOrigin = Literal["seed", "detected", "manual"]


@dataclass(eq=False)
class Document:
    """One scanned document image.

    Equality is identity: two scans of the same file are still two documents.

    Attributes:
        image_ref: Opaque reference to the source image (path or URL)
        display_name: Original filename or synthesized label
        year: Year detected in the recognized text, None when unknown
        default_year: Placeholder cohort year used when nothing was detected
    """

    image_ref: str
    display_name: str
    year: int | None = None
    default_year: int | None = None

    @property
    def year_assumed(self) -> bool:
        """True when the placeholder year stands in for a missing detection."""
        return self.year is None and self.default_year is not None

    @property
    def effective_year(self) -> int | None:
        """Detected year, else the placeholder, else None."""
        if self.year is not None:
            return self.year
        return self.default_year

    @property
    def sort_year(self) -> int:
        """Key used for the year-descending order inside a bucket."""
        return self.effective_year or 0


@dataclass
class Bucket:
    """Mutable bucket record owned by a BucketRegistry.

    Attributes:
        id: Stable identifier, never reused within a registry
        code: Short subject code, unique case-insensitively
        display_name: Human label, often "<code>: <title>"
        origin: How the bucket came to exist (seed, detected, manual)
        documents: Documents sorted by year descending
        revision: Bumped on every change to documents
    """

    id: BucketId
    code: str
    display_name: str
    origin: BucketOrigin = "manual"
    documents: list[Document] = field(default_factory=list)
    revision: int = 0

    @property
    def count(self) -> int:
        return len(self.documents)

    def view(self) -> BucketView:
        return BucketView(
            id=self.id,
            code=self.code,
            display_name=self.display_name,
            origin=self.origin,
            documents=tuple(self.documents),
        )


@dataclass(frozen=True, slots=True)
class BucketView:
    """Read-only copy of a bucket taken at snapshot time."""

    id: BucketId
    code: str
    display_name: str
    origin: BucketOrigin
    documents: tuple[Document, ...]

    @property
    def count(self) -> int:
        return len(self.documents)


@dataclass(frozen=True, slots=True)
class RegistrySnapshot:
    """Immutable view of the registry in display order.

    The matcher only ever sees a snapshot, never the live registry.
    """

    buckets: tuple[BucketView, ...] = ()

    def __len__(self) -> int:
        return len(self.buckets)

    def __iter__(self):
        return iter(self.buckets)

    def get(self, bucket_id: BucketId) -> BucketView | None:
        for bucket in self.buckets:
            if bucket.id == bucket_id:
                return bucket
        return None

    def find_by_code(self, code: str) -> BucketView | None:
        """Case-insensitive exact code lookup."""
        wanted = code.strip().upper()
        for bucket in self.buckets:
            if bucket.code.strip().upper() == wanted:
                return bucket
        return None

    def total_documents(self) -> int:
        return sum(bucket.count for bucket in self.buckets)


def snapshot_to_dict(snapshot: RegistrySnapshot) -> dict:
    """Serialize a snapshot for YAML/JSON export.

    Assumed years are exported alongside detected ones so downstream tools
    can tell them apart.
    """
    return {
        "buckets": [
            {
                "id": bucket.id,
                "code": bucket.code,
                "name": bucket.display_name,
                "origin": bucket.origin,
                "count": bucket.count,
                "documents": [
                    {
                        "image_ref": doc.image_ref,
                        "name": doc.display_name,
                        "year": doc.effective_year,
                        "year_assumed": doc.year_assumed,
                    }
                    for doc in bucket.documents
                ],
            }
            for bucket in snapshot.buckets
        ],
        "total_documents": snapshot.total_documents(),
    }
