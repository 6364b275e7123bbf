"""User-directed corrections on a populated registry.

Tracks which bucket is currently being viewed and which of its documents
are selected, and applies bulk delete/move operations to the selection.
Selections are indices into the viewed bucket's document list, so they are
dropped whenever the viewed bucket changes or its documents change (the
registry bumps a per-bucket revision on every document mutation).

All operations are synchronous. They only ever see documents the
pipeline has already committed to the registry.

Usage:
    from papersort.engine.reorganize import Reorganizer

    reorg = Reorganizer(registry)
    reorg.select_documents(source_id, [0, 2])
    reorg.move_selected(source_id, target_id)
"""

from __future__ import annotations

from collections.abc import Iterable

from papersort.core.errors import InvalidTargetError
from papersort.core.logging import get_logger
from papersort.registry.models import BucketId, Document
from papersort.registry.store import BucketRegistry

logger = get_logger(__name__)

MANUAL_CODE_PREFIX = "NEW"


class Reorganizer:
    """Selection state plus bulk operations over a BucketRegistry.

    Attributes:
        _registry: Registry being edited
        _viewed_bucket_id: Bucket whose documents the selection refers to
        _viewed_revision: Revision of that bucket when the selection was made
        _selection: Selected document indices
    """

    def __init__(self, registry: BucketRegistry):
        self._registry = registry
        self._viewed_bucket_id: BucketId | None = None
        self._viewed_revision: int | None = None
        self._selection: set[int] = set()

    # ------------------------------------------------------------------
    # Buckets
    # ------------------------------------------------------------------

    def create_manual_bucket(self) -> BucketId:
        """Create an empty bucket with a placeholder code ("NEW <n>")."""
        n = len(self._registry) + 1
        while self._registry.find_bucket_by_code(f"{MANUAL_CODE_PREFIX} {n}") is not None:
            n += 1
        code = f"{MANUAL_CODE_PREFIX} {n}"
        return self._registry.create_bucket(
            code,
            f"{code} - Click pencil to rename",
            origin="manual",
        )

    def rename_bucket(self, bucket_id: BucketId, new_display_name: str) -> None:
        self._registry.rename_bucket(bucket_id, new_display_name)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    @property
    def viewed_bucket_id(self) -> BucketId | None:
        return self._viewed_bucket_id

    @property
    def selection(self) -> frozenset[int]:
        """Currently selected indices, empty if the viewed bucket changed."""
        self._invalidate_if_stale()
        return frozenset(self._selection)

    def view_bucket(self, bucket_id: BucketId | None) -> None:
        """Switch the viewed bucket, clearing any selection."""
        if bucket_id is None:
            self._viewed_bucket_id = None
            self._viewed_revision = None
        else:
            bucket = self._registry.get_bucket(bucket_id)
            self._viewed_bucket_id = bucket_id
            self._viewed_revision = bucket.revision
        self._selection.clear()

    def select_documents(self, bucket_id: BucketId, indices: Iterable[int]) -> frozenset[int]:
        """Add indices to the selection, viewing bucket_id first if needed.

        Raises:
            UnknownBucketError: If the bucket does not exist
            IndexError: If an index is outside the bucket's documents
        """
        if bucket_id != self._viewed_bucket_id:
            self.view_bucket(bucket_id)
        self._invalidate_if_stale()

        count = self._registry.get_bucket(bucket_id).count
        wanted = set(indices)
        for index in wanted:
            if not 0 <= index < count:
                raise IndexError(
                    f"Document index {index} out of range for bucket {bucket_id} "
                    f"({count} documents)"
                )
        self._selection.update(wanted)
        return frozenset(self._selection)

    def toggle_selection(self, index: int) -> bool:
        """Flip one index in the viewed bucket; returns True if now selected."""
        if self._viewed_bucket_id is None:
            return False
        self._invalidate_if_stale()
        if index in self._selection:
            self._selection.discard(index)
            return False
        self.select_documents(self._viewed_bucket_id, [index])
        return True

    def deselect_all(self) -> None:
        self._selection.clear()

    def _invalidate_if_stale(self) -> None:
        if self._viewed_bucket_id is None:
            return
        if self._viewed_bucket_id not in self._registry:
            self.view_bucket(None)
            return
        revision = self._registry.get_bucket(self._viewed_bucket_id).revision
        if revision != self._viewed_revision:
            if self._selection:
                logger.debug("selection_invalidated", bucket_id=self._viewed_bucket_id)
            self._selection.clear()
            self._viewed_revision = revision

    def _take_selection(self, bucket_id: BucketId, indices: Iterable[int] | None) -> list[Document]:
        """Resolve the selection for bucket_id to documents."""
        if indices is not None:
            self.view_bucket(bucket_id)
            self.select_documents(bucket_id, indices)
        if bucket_id != self._viewed_bucket_id:
            return []
        selected = self.selection
        documents = self._registry.get_bucket(bucket_id).documents
        return [documents[i] for i in sorted(selected)]

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    def delete_selected(
        self,
        bucket_id: BucketId,
        indices: Iterable[int] | None = None,
    ) -> list[Document]:
        """Permanently remove the selected documents.

        Args:
            bucket_id: Bucket holding the selection
            indices: Explicit indices to select first; None uses the current selection

        Returns:
            Deleted documents; empty when nothing was selected
        """
        doomed = self._take_selection(bucket_id, indices)
        if not doomed:
            return []

        ids = {id(doc) for doc in doomed}
        removed = self._registry.remove_documents(bucket_id, lambda doc: id(doc) in ids)
        self.view_bucket(bucket_id)

        logger.info("documents_deleted", bucket_id=bucket_id, count=len(removed))
        return removed

    def move_selected(
        self,
        bucket_id: BucketId,
        target_bucket_id: BucketId,
        indices: Iterable[int] | None = None,
    ) -> list[Document]:
        """Move the selected documents to another bucket and clear the selection.

        Raises:
            InvalidTargetError: If the target is unknown or is the source bucket
            UnknownBucketError: If the source bucket is unknown
        """
        if target_bucket_id == bucket_id:
            raise InvalidTargetError(
                f"Cannot move documents from bucket {bucket_id} into itself. "
                "Pick a different target bucket.",
                source_id=bucket_id,
                target_id=target_bucket_id,
            )
        if target_bucket_id not in self._registry:
            raise InvalidTargetError(
                f"Target bucket {target_bucket_id} does not exist.",
                source_id=bucket_id,
                target_id=target_bucket_id,
            )
        self._registry.get_bucket(bucket_id)

        documents = self._take_selection(bucket_id, indices)
        if not documents:
            return []

        moved = self._registry.move_documents(bucket_id, target_bucket_id, documents)
        self.view_bucket(bucket_id)
        return moved

    def move_selected_to_code(
        self,
        bucket_id: BucketId,
        target_code: str,
        indices: Iterable[int] | None = None,
    ) -> list[Document]:
        """Like move_selected, with the target given by its subject code."""
        target_id = self._registry.find_bucket_by_code(target_code)
        if target_id is None:
            raise InvalidTargetError(
                f"No bucket has code '{target_code}'.",
                source_id=bucket_id,
                target_id=None,
            )
        return self.move_selected(bucket_id, target_id, indices)
