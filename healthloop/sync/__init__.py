"""
Remote synchronization for feature lists

- DocumentStore protocol and an in-memory implementation
- SyncedCollection: single-subscription local mirror with write-through
"""

from healthloop.sync.document_store import (
    DocumentStore,
    InMemoryDocumentStore,
    SubscriptionHandle,
    collection_path,
)
from healthloop.sync.synced_collection import SyncedCollection, WriteResult

__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "SubscriptionHandle",
    "collection_path",
    "SyncedCollection",
    "WriteResult",
]
