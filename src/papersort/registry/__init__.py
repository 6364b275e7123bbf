"""Bucket registry: the bucket/document model and its in-memory store.

Usage:
    from papersort.registry import BucketRegistry, Document

    registry = BucketRegistry()
    bucket_id = registry.create_bucket("CIR 405", "CIR 405: Distributed Systems")
    registry.add_document(bucket_id, Document("p1.jpg", "p1.jpg", year=2022))
"""

from papersort.registry.models import (
    Bucket,
    BucketId,
    BucketView,
    Document,
    RegistrySnapshot,
    snapshot_to_dict,
)
from papersort.registry.store import BucketRegistry

__all__ = [
    "Bucket",
    "BucketId",
    "BucketRegistry",
    "BucketView",
    "Document",
    "RegistrySnapshot",
    "snapshot_to_dict",
]
