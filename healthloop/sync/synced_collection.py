"""
Synchronized Collection

Local, ordered mirror of one remote collection (``users/{namespace}/{name}``)
kept current by a live subscription, with write-through mutation.

Rules:
- At most one live SubscriptionHandle per instance. subscribe() always
  releases the previous handle before opening a new one.
- Every snapshot fully replaces the local list, in server order. Documents
  that fail to decode are skipped and reported in ``last_decode_errors``.
- add/update/remove only write to the remote store; the local list changes
  when the resulting snapshot arrives.
- Snapshots are applied on the owning event loop thread. Deliveries from
  other threads are marshaled with ``call_soon_threadsafe``.
- A generation counter discards deliveries that belong to a subscription
  which has since been released or replaced.
"""

import asyncio
import logging
import threading
import weakref
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterator, List, Mapping, Optional, Type, TypeVar

from pydantic import ValidationError as PydanticValidationError

from healthloop.exceptions import DecodeError, RemoteWriteError, SubscriptionError, ValidationError
from healthloop.models.records import SyncedRecord
from healthloop.sync.document_store import (
    Document,
    DocumentStore,
    SubscriptionHandle,
    collection_path,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=SyncedRecord)

ChangeListener = Callable[[List[Any]], None]


@dataclass
class WriteResult:
    """Outcome of a write-through operation"""
    success: bool
    record_id: str
    error: Optional[RemoteWriteError] = None

    def __bool__(self) -> bool:
        return self.success


def _release_orphaned_handle(
    store: DocumentStore,
    handle: SubscriptionHandle,
    loop: Optional[asyncio.AbstractEventLoop],
) -> None:
    """Finalizer for a collection garbage-collected while still subscribed"""
    if loop is None or loop.is_closed():
        return
    logger.warning(
        f"Collection for {handle.path} dropped without close(); "
        f"releasing listener {handle.handle_id}"
    )
    future = asyncio.run_coroutine_threadsafe(store.unsubscribe(handle), loop)
    future.add_done_callback(_log_orphan_release)


def _log_orphan_release(future) -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.warning(f"Releasing orphaned listener failed: {error}")


class SyncedCollection(Generic[T]):
    """
    Generic synchronized collection.

    Example:
        actions = SyncedCollection(store, ActionItem, "actions")
        await actions.subscribe(user_id)
        await actions.add(ActionItem(title="Drink water", category="hydration"))
        ...
        await actions.close()
    """

    def __init__(
        self,
        store: DocumentStore,
        record_type: Type[T],
        collection: str,
        order_field: str = "createdAt",
        descending: bool = True,
        namespace: Optional[str] = None,
    ):
        self.store = store
        self.record_type = record_type
        self.collection = collection
        self.order_field = order_field
        self.descending = descending

        self._namespace = namespace
        self._records: List[T] = []
        self._handle: Optional[SubscriptionHandle] = None
        self._generation = 0
        self._lock = asyncio.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._owner_thread: Optional[int] = None
        self._finalizer: Optional[weakref.finalize] = None
        self._change_listeners: List[ChangeListener] = []
        self.last_decode_errors: List[DecodeError] = []

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def records(self) -> List[T]:
        return list(self._records)

    @property
    def namespace(self) -> Optional[str]:
        return self._namespace

    @property
    def path(self) -> Optional[str]:
        if not self._namespace:
            return None
        return collection_path(self._namespace, self.collection)

    @property
    def is_subscribed(self) -> bool:
        return self._handle is not None

    def get(self, record_id: str) -> Optional[T]:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._records))

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        """
        Register a callback receiving the new list after each snapshot

        Returns:
            Function that removes the listener
        """
        self._change_listeners.append(listener)

        def remove() -> None:
            if listener in self._change_listeners:
                self._change_listeners.remove(listener)

        return remove

    # ------------------------------------------------------------------
    # Subscription lifecycle
    # ------------------------------------------------------------------

    async def subscribe(self, namespace: Optional[str] = None) -> None:
        """
        Start mirroring ``users/{namespace}/{collection}``

        Any live subscription held by this instance is released first.

        Raises:
            ValidationError: no namespace given or configured
            SubscriptionError: the store refused the listener
        """
        namespace = namespace or self._namespace
        if not namespace:
            raise ValidationError(
                "Namespace is required to subscribe",
                field="namespace",
                value=namespace,
                operation=f"subscribe_{self.collection}",
            )

        async with self._lock:
            await self._release()

            self._namespace = namespace
            self._loop = asyncio.get_running_loop()
            self._owner_thread = threading.get_ident()
            self._generation += 1
            generation = self._generation
            path = collection_path(namespace, self.collection)

            try:
                handle = await self.store.subscribe(
                    path,
                    self.order_field,
                    self.descending,
                    self._make_listener(generation),
                )
            except Exception as e:
                self._generation += 1
                raise SubscriptionError(
                    f"Failed to subscribe to {path}: {e}",
                    path=path,
                    user_id=namespace,
                    operation=f"subscribe_{self.collection}",
                    cause=e,
                )

            self._handle = handle
            self._finalizer = weakref.finalize(
                self, _release_orphaned_handle, self.store, handle, self._loop
            )
            self._finalizer.atexit = False
            logger.info(f"Subscribed to {path} (listener {handle.handle_id})")

    async def unsubscribe(self) -> None:
        """Release the live subscription; safe to call when none is active"""
        async with self._lock:
            await self._release()

    async def close(self) -> None:
        """Teardown: release the subscription and drop change listeners"""
        try:
            await self.unsubscribe()
        finally:
            self._change_listeners.clear()

    async def __aenter__(self) -> "SyncedCollection[T]":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _release(self) -> None:
        # Invalidate first so deliveries racing with the release are dropped
        self._generation += 1
        handle = self._handle
        if handle is None:
            return
        try:
            await self.store.unsubscribe(handle)
        except Exception as e:
            # Handle is kept so a later unsubscribe() can retry the release
            raise SubscriptionError(
                f"Failed to unsubscribe from {handle.path}: {e}",
                path=handle.path,
                user_id=self._namespace,
                operation=f"unsubscribe_{self.collection}",
                cause=e,
            )

        self._handle = None
        if self._finalizer is not None:
            self._finalizer.detach()
            self._finalizer = None
        logger.info(f"Unsubscribed from {handle.path} (listener {handle.handle_id})")

    def _make_listener(self, generation: int) -> Callable[[List[Document]], None]:
        # Weak reference: the store must not keep a dropped collection alive
        ref = weakref.ref(self)

        def on_snapshot(documents: List[Document]) -> None:
            collection = ref()
            if collection is None:
                return
            if threading.get_ident() == collection._owner_thread:
                collection._apply_snapshot(generation, documents)
                return
            loop = collection._loop
            if loop is None or loop.is_closed():
                return
            loop.call_soon_threadsafe(collection._apply_snapshot, generation, documents)

        return on_snapshot

    def _apply_snapshot(self, generation: int, documents: List[Document]) -> None:
        if generation != self._generation:
            logger.warning(
                f"Discarding stale snapshot for {self.collection} "
                f"(generation {generation}, current {self._generation})"
            )
            return

        records: List[T] = []
        errors: List[DecodeError] = []
        for doc_id, data in documents:
            if not isinstance(data, Mapping):
                errors.append(self._decode_error(
                    doc_id, f"expected a mapping, got {type(data).__name__}"
                ))
                continue
            try:
                records.append(self.record_type.model_validate({**data, "id": doc_id}))
            except PydanticValidationError as e:
                errors.append(self._decode_error(doc_id, f"{e.error_count()} validation errors"))

        self._records = records
        self.last_decode_errors = errors
        logger.debug(
            f"Applied snapshot to {self.collection}: {len(records)} records, "
            f"{len(errors)} skipped"
        )

        for listener in list(self._change_listeners):
            try:
                listener(list(records))
            except Exception as e:
                logger.warning(f"Change listener for {self.collection} failed: {e}")

    def _decode_error(self, doc_id: str, reason: str) -> DecodeError:
        return DecodeError(
            f"Skipping malformed {self.record_type.__name__} document: {reason}",
            path=self.path,
            document_id=doc_id,
            user_id=self._namespace,
            operation=f"decode_{self.collection}",
        )

    # ------------------------------------------------------------------
    # Write-through
    # ------------------------------------------------------------------

    async def add(self, record: T) -> WriteResult:
        """Write a new record; it appears locally with the next snapshot"""
        return await self._write(
            "add",
            record.id,
            lambda path: self.store.set_document(path, record.id, record.to_document()),
        )

    async def update(self, record: T) -> WriteResult:
        """Overwrite the whole document stored under ``record.id``"""
        return await self._write(
            "update",
            record.id,
            lambda path: self.store.set_document(path, record.id, record.to_document()),
        )

    async def remove(self, record_id: str) -> WriteResult:
        """Delete a document; it disappears locally with the next snapshot"""
        return await self._write(
            "remove",
            record_id,
            lambda path: self.store.delete_document(path, record_id),
        )

    async def _write(
        self,
        operation: str,
        record_id: str,
        action: Callable[[str], Awaitable[None]],
    ) -> WriteResult:
        path = self.path
        if path is None:
            error = RemoteWriteError(
                f"Cannot {operation} {self.collection} record without a namespace",
                document_id=record_id,
                operation=f"{operation}_{self.collection}",
            )
            return WriteResult(success=False, record_id=record_id, error=error)

        try:
            await action(path)
        except Exception as e:
            # Reported to the caller as a result; the live list stays as is
            error = RemoteWriteError(
                f"Failed to {operation} {record_id} in {path}: {e}",
                path=path,
                document_id=record_id,
                user_id=self._namespace,
                operation=f"{operation}_{self.collection}",
                cause=e,
            )
            return WriteResult(success=False, record_id=record_id, error=error)

        logger.debug(f"{operation} {record_id} written to {path}")
        return WriteResult(success=True, record_id=record_id)
