"""
Remote document-store collaborator.

Per-user namespaced, ordered collections with live snapshot listeners.
The protocol mirrors what managed document databases offer:

- subscribe(path, order_field, descending, on_snapshot) -> SubscriptionHandle
- unsubscribe(handle)
- set_document(path, doc_id, data)   full overwrite (last write wins)
- delete_document(path, doc_id)

Snapshots are full replacements: a list of (doc_id, data) pairs in query
order. Listeners may be invoked from any thread.
"""

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

Document = Tuple[str, Dict[str, Any]]
SnapshotListener = Callable[[List[Document]], None]

_handle_ids = count(1)


@dataclass(eq=False)
class SubscriptionHandle:
    """Opaque capability for one live subscription"""

    path: str
    handle_id: int = field(default_factory=lambda: next(_handle_ids))
    active: bool = True


def collection_path(namespace: str, collection: str) -> str:
    """``users/{namespace}/{collection}``"""
    return f"users/{namespace}/{collection}"


class DocumentStore(Protocol):
    """Document-store collaborator used by SyncedCollection"""

    async def subscribe(
        self,
        path: str,
        order_field: str,
        descending: bool,
        on_snapshot: SnapshotListener,
    ) -> SubscriptionHandle: ...

    async def unsubscribe(self, handle: SubscriptionHandle) -> None: ...

    async def set_document(self, path: str, doc_id: str, data: Dict[str, Any]) -> None: ...

    async def delete_document(self, path: str, doc_id: str) -> None: ...


@dataclass
class _Listener:
    handle: SubscriptionHandle
    order_field: str
    descending: bool
    callback: SnapshotListener


class InMemoryDocumentStore:
    """
    Process-local document store with live listeners.

    Delivers the current contents on subscribe and again after every write
    to the affected collection. Documents lacking the order field are left
    out of ordered snapshots, as ordered queries in hosted stores do.
    """

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._listeners: Dict[int, _Listener] = {}
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def subscribe(
        self,
        path: str,
        order_field: str,
        descending: bool,
        on_snapshot: SnapshotListener,
    ) -> SubscriptionHandle:
        handle = SubscriptionHandle(path=path)
        listener = _Listener(handle, order_field, descending, on_snapshot)
        self._listeners[handle.handle_id] = listener
        logger.debug(f"Listener {handle.handle_id} attached to {path}")
        self._deliver(listener)
        return handle

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        handle.active = False
        if self._listeners.pop(handle.handle_id, None) is not None:
            logger.debug(f"Listener {handle.handle_id} detached from {handle.path}")

    def listener_count(self, path: Optional[str] = None) -> int:
        """Live listeners, optionally for one collection path"""
        return sum(
            1 for listener in self._listeners.values()
            if path is None or listener.handle.path == path
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def set_document(self, path: str, doc_id: str, data: Dict[str, Any]) -> None:
        async with self._write_lock:
            self._collections.setdefault(path, {})[doc_id] = copy.deepcopy(data)
        self._fan_out(path)

    async def delete_document(self, path: str, doc_id: str) -> None:
        async with self._write_lock:
            self._collections.get(path, {}).pop(doc_id, None)
        self._fan_out(path)

    def put_raw(self, path: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Write without validation, as another client or a migration would"""
        self._collections.setdefault(path, {})[doc_id] = copy.deepcopy(data)
        self._fan_out(path)

    def documents(self, path: str) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(self._collections.get(path, {}))

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _query(self, path: str, order_field: str, descending: bool) -> List[Document]:
        docs = [
            (doc_id, copy.deepcopy(data))
            for doc_id, data in self._collections.get(path, {}).items()
            if data.get(order_field) is not None
        ]
        try:
            docs.sort(key=lambda item: item[1][order_field], reverse=descending)
        except TypeError:
            # Mixed value types in the order field; fall back to string order
            docs.sort(key=lambda item: str(item[1][order_field]), reverse=descending)
        return docs

    def _deliver(self, listener: _Listener) -> None:
        if not listener.handle.active:
            return
        snapshot = self._query(listener.handle.path, listener.order_field, listener.descending)
        listener.callback(snapshot)

    def _fan_out(self, path: str) -> None:
        for listener in list(self._listeners.values()):
            if listener.handle.path == path:
                self._deliver(listener)
