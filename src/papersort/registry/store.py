"""In-memory bucket registry.

Owns every bucket and document for one session. Buckets are kept in an
arena keyed by BucketId plus a list giving display order (insertion order).
Inside a bucket, documents stay sorted by year descending with insertion
order preserved among equal years.

Thread-safe: all mutations go through a single reentrant lock, so the
pipeline and user-driven reorganization never write at the same time.

Usage:
    from papersort.registry.store import BucketRegistry

    registry = BucketRegistry()
    bucket_id = registry.create_bucket("CIT 417", "CIT 417: Data Driven Websites")
    registry.add_document(bucket_id, document)
    moved = registry.remove_documents(bucket_id, lambda d: d.year == 2021)
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from papersort.core.errors import DuplicateCodeError, UnknownBucketError
from papersort.core.logging import get_logger
from papersort.registry.models import (
    Bucket,
    BucketId,
    BucketOrigin,
    Document,
    RegistrySnapshot,
)

if TYPE_CHECKING:
    from papersort.config_schema import SubjectConfig

logger = get_logger(__name__)


def _code_key(code: str) -> str:
    return code.strip().upper()


class BucketRegistry:
    """Ordered collection of buckets with invariant-preserving mutations.

    Attributes:
        _buckets: Arena of buckets keyed by id
        _order: Bucket ids in display order
        _next_id: Counter for generating bucket ids
        _lock: Guards every read-modify-write
    """

    def __init__(self) -> None:
        self._buckets: dict[BucketId, Bucket] = {}
        self._order: list[BucketId] = []
        self._next_id = 1
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, bucket_id: object) -> bool:
        return bucket_id in self._buckets

    # ------------------------------------------------------------------
    # Buckets
    # ------------------------------------------------------------------

    def create_bucket(
        self,
        code: str,
        display_name: str,
        origin: BucketOrigin = "manual",
    ) -> BucketId:
        """Create a bucket and append it to the display order.

        Args:
            code: Subject code, stored as given
            display_name: Human label
            origin: How the bucket was created

        Returns:
            Id of the new bucket

        Raises:
            DuplicateCodeError: If the code is taken (case-insensitive)
        """
        if not code or not code.strip():
            raise ValueError("Bucket code cannot be empty")

        with self._lock:
            existing = self.find_bucket_by_code(code)
            if existing is not None:
                raise DuplicateCodeError(
                    f"Cannot create bucket '{code}': code already used by bucket {existing}. "
                    "Choose a different code.",
                    code=code,
                    existing_id=existing,
                )

            bucket_id = f"bucket-{self._next_id}"
            self._next_id += 1
            self._buckets[bucket_id] = Bucket(
                id=bucket_id,
                code=code,
                display_name=display_name,
                origin=origin,
            )
            self._order.append(bucket_id)

        logger.info("bucket_created", bucket_id=bucket_id, code=code, origin=origin)
        return bucket_id

    def rename_bucket(self, bucket_id: BucketId, new_display_name: str) -> None:
        """Change a bucket's display name. Names need not be unique."""
        with self._lock:
            bucket = self.get_bucket(bucket_id)
            old_name = bucket.display_name
            bucket.display_name = new_display_name

        logger.info(
            "bucket_renamed",
            bucket_id=bucket_id,
            old_name=old_name,
            new_name=new_display_name,
        )

    def find_bucket_by_code(self, code: str) -> BucketId | None:
        """Return the id of the bucket with this code (case-insensitive), if any."""
        wanted = _code_key(code)
        with self._lock:
            for bucket_id in self._order:
                if _code_key(self._buckets[bucket_id].code) == wanted:
                    return bucket_id
        return None

    def get_bucket(self, bucket_id: BucketId) -> Bucket:
        """Return the live bucket record.

        Raises:
            UnknownBucketError: If no bucket has this id
        """
        try:
            return self._buckets[bucket_id]
        except KeyError:
            raise UnknownBucketError(
                f"Bucket '{bucket_id}' does not exist in the registry. "
                "It may have been cleared by a pipeline reset.",
                bucket_id=bucket_id,
            ) from None

    def buckets(self) -> list[Bucket]:
        """Return live bucket records in display order."""
        with self._lock:
            return [self._buckets[bucket_id] for bucket_id in self._order]

    def bucket_ids(self) -> list[BucketId]:
        with self._lock:
            return list(self._order)

    def seed(self, subjects: Iterable[SubjectConfig]) -> list[BucketId]:
        """Create empty buckets for configured subjects, skipping known codes."""
        created = []
        with self._lock:
            for subject in subjects:
                if self.find_bucket_by_code(subject.code) is not None:
                    logger.debug("seed_subject_skipped", code=subject.code)
                    continue
                created.append(self.create_bucket(subject.code, subject.name, origin="seed"))
        return created

    def clear(self) -> None:
        """Drop every bucket. Ids are not reused afterwards."""
        with self._lock:
            self._buckets.clear()
            self._order.clear()
        logger.debug("registry_cleared")

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def add_document(self, bucket_id: BucketId, document: Document) -> int:
        """Insert a document keeping the bucket sorted by year descending.

        The document goes after every document with the same or a later
        year, which keeps the order stable among equal years.

        Returns:
            Index the document was inserted at
        """
        with self._lock:
            bucket = self.get_bucket(bucket_id)
            key = document.sort_year
            position = len(bucket.documents)
            for i, existing in enumerate(bucket.documents):
                if existing.sort_year < key:
                    position = i
                    break
            bucket.documents.insert(position, document)
            bucket.revision += 1
        return position

    def remove_documents(
        self,
        bucket_id: BucketId,
        predicate: Callable[[Document], bool],
    ) -> list[Document]:
        """Remove and return every document in the bucket matching predicate.

        Removed documents keep their relative order; ownership passes to
        the caller.
        """
        with self._lock:
            bucket = self.get_bucket(bucket_id)
            kept: list[Document] = []
            removed: list[Document] = []
            for doc in bucket.documents:
                (removed if predicate(doc) else kept).append(doc)
            if removed:
                bucket.documents = kept
                bucket.revision += 1
        return removed

    def move_documents(
        self,
        from_id: BucketId,
        to_id: BucketId,
        documents: Iterable[Document],
    ) -> list[Document]:
        """Transfer documents from one bucket to another.

        Both ids are validated before anything changes. Documents not held
        by the source bucket are ignored.

        Returns:
            The documents actually moved

        Raises:
            UnknownBucketError: If either bucket id is invalid
        """
        wanted = {id(doc) for doc in documents}
        with self._lock:
            self.get_bucket(from_id)
            self.get_bucket(to_id)

            moved = self.remove_documents(from_id, lambda doc: id(doc) in wanted)
            for doc in moved:
                self.add_document(to_id, doc)

        logger.info("documents_moved", from_bucket=from_id, to_bucket=to_id, count=len(moved))
        return moved

    def find_bucket_containing(self, document: Document) -> BucketId | None:
        with self._lock:
            for bucket_id in self._order:
                if any(doc is document for doc in self._buckets[bucket_id].documents):
                    return bucket_id
        return None

    def total_documents(self) -> int:
        with self._lock:
            return sum(bucket.count for bucket in self._buckets.values())

    def snapshot(self) -> RegistrySnapshot:
        """Return an immutable copy of the registry in display order."""
        with self._lock:
            return RegistrySnapshot(
                buckets=tuple(self._buckets[bucket_id].view() for bucket_id in self._order)
            )
