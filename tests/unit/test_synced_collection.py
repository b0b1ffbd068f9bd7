"""Unit tests for SyncedCollection (healthloop/sync/synced_collection.py)"""
import asyncio
import gc
import threading
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from healthloop.exceptions import RemoteWriteError, SubscriptionError, ValidationError
from healthloop.models.action import ActionCategory, ActionItem
from healthloop.sync.document_store import SubscriptionHandle
from healthloop.sync.synced_collection import SyncedCollection


BASE_TIME = datetime(2024, 1, 15, 8, 0, 0, tzinfo=timezone.utc)
PATH = "users/user_123456789/actions"


def make_action(title: str, minutes: int = 0, **kwargs) -> ActionItem:
    return ActionItem(
        title=title,
        category=ActionCategory.HYDRATION,
        created_at=BASE_TIME + timedelta(minutes=minutes),
        **kwargs,
    )


@pytest.fixture
def collection(document_store):
    return SyncedCollection(document_store, ActionItem, "actions")


class CapturingStore:
    """Document store double that records listeners instead of calling them"""

    def __init__(self):
        self.listeners = []
        self.unsubscribed = []
        self.set_document = AsyncMock()
        self.delete_document = AsyncMock()

    async def subscribe(self, path, order_field, descending, on_snapshot):
        handle = SubscriptionHandle(path=path)
        self.listeners.append((handle, on_snapshot))
        return handle

    async def unsubscribe(self, handle):
        handle.active = False
        self.unsubscribed.append(handle)


# ============================================================================
# Subscription Tests
# ============================================================================

@pytest.mark.asyncio
async def test_subscribe_loads_existing_documents(collection, document_store, test_user_id):
    await document_store.set_document(PATH, "a1", make_action("Walk", id="a1").to_document())

    await collection.subscribe(test_user_id)

    assert collection.is_subscribed
    assert [a.title for a in collection.records] == ["Walk"]
    assert collection.path == PATH


@pytest.mark.asyncio
async def test_snapshot_order_newest_first(collection, test_user_id):
    await collection.subscribe(test_user_id)
    await collection.add(make_action("old", minutes=0))
    await collection.add(make_action("newest", minutes=20))
    await collection.add(make_action("middle", minutes=10))

    assert [a.title for a in collection.records] == ["newest", "middle", "old"]


@pytest.mark.asyncio
async def test_subscribe_twice_keeps_one_handle(collection, document_store, test_user_id):
    """Test re-subscribing releases the previous listener first"""
    await collection.subscribe(test_user_id)
    await collection.subscribe(test_user_id)

    assert document_store.listener_count(PATH) == 1

    deliveries = []
    collection.on_change(deliveries.append)
    await document_store.set_document(PATH, "a1", make_action("Walk", id="a1").to_document())

    assert len(deliveries) == 1
    assert len(collection) == 1


@pytest.mark.asyncio
async def test_subscribe_many_times_single_delivery(collection, document_store, test_user_id):
    for _ in range(5):
        await collection.subscribe(test_user_id)

    deliveries = []
    collection.on_change(deliveries.append)
    await document_store.set_document(PATH, "a1", make_action("Walk", id="a1").to_document())

    assert document_store.listener_count() == 1
    assert len(deliveries) == 1


@pytest.mark.asyncio
async def test_resubscribe_other_namespace_replaces_list(collection, document_store):
    await document_store.set_document("users/alice/actions", "a1", make_action("Alice", id="a1").to_document())
    await document_store.set_document("users/bob/actions", "b1", make_action("Bob", id="b1").to_document())

    await collection.subscribe("alice")
    await collection.subscribe("bob")

    assert [a.title for a in collection.records] == ["Bob"]
    assert document_store.listener_count("users/alice/actions") == 0


@pytest.mark.asyncio
async def test_subscribe_requires_namespace(collection):
    with pytest.raises(ValidationError):
        await collection.subscribe("")


@pytest.mark.asyncio
async def test_subscribe_uses_configured_namespace(document_store, test_user_id):
    collection = SyncedCollection(document_store, ActionItem, "actions", namespace=test_user_id)
    await collection.subscribe()
    assert document_store.listener_count(PATH) == 1


@pytest.mark.asyncio
async def test_subscribe_failure_raises_subscription_error(test_user_id):
    store = CapturingStore()
    store.subscribe = AsyncMock(side_effect=ConnectionRefusedError("offline"))
    collection = SyncedCollection(store, ActionItem, "actions")

    with pytest.raises(SubscriptionError):
        await collection.subscribe(test_user_id)

    assert not collection.is_subscribed


@pytest.mark.asyncio
async def test_unsubscribe_is_idempotent(collection, document_store, test_user_id):
    await collection.unsubscribe()

    await collection.subscribe(test_user_id)
    await collection.unsubscribe()
    await collection.unsubscribe()

    assert not collection.is_subscribed
    assert document_store.listener_count() == 0


@pytest.mark.asyncio
async def test_context_manager_releases_handle(document_store, test_user_id):
    async with SyncedCollection(document_store, ActionItem, "actions") as collection:
        await collection.subscribe(test_user_id)
        assert document_store.listener_count() == 1

    assert document_store.listener_count() == 0


@pytest.mark.asyncio
async def test_dropped_collection_releases_listener(document_store, test_user_id):
    """Test a collection garbage-collected without close() detaches from the store"""
    collection = SyncedCollection(document_store, ActionItem, "actions")
    await collection.subscribe(test_user_id)
    assert document_store.listener_count() == 1

    del collection
    gc.collect()
    for _ in range(3):
        await asyncio.sleep(0)

    assert document_store.listener_count() == 0


@pytest.mark.asyncio
async def test_closed_collection_release_runs_once(test_user_id):
    store = CapturingStore()
    collection = SyncedCollection(store, ActionItem, "actions")
    await collection.subscribe(test_user_id)
    await collection.close()

    del collection
    gc.collect()
    await asyncio.sleep(0)

    assert len(store.unsubscribed) == 1


@pytest.mark.asyncio
async def test_failed_unsubscribe_raises_typed_error_and_keeps_handle(test_user_id):
    store = CapturingStore()
    collection = SyncedCollection(store, ActionItem, "actions")
    await collection.subscribe(test_user_id)
    working_unsubscribe = store.unsubscribe
    store.unsubscribe = AsyncMock(side_effect=ConnectionResetError("network down"))

    with pytest.raises(SubscriptionError) as exc_info:
        await collection.unsubscribe()

    assert exc_info.value.path == PATH
    assert collection.is_subscribed

    store.unsubscribe = working_unsubscribe
    await collection.unsubscribe()

    assert not collection.is_subscribed
    assert len(store.unsubscribed) == 1


@pytest.mark.asyncio
async def test_failed_unsubscribe_discards_later_deliveries(test_user_id):
    store = CapturingStore()
    collection = SyncedCollection(store, ActionItem, "actions")
    await collection.subscribe(test_user_id)
    _, on_snapshot = store.listeners[0]
    store.unsubscribe = AsyncMock(side_effect=TimeoutError())

    with pytest.raises(SubscriptionError):
        await collection.close()

    on_snapshot([("a1", make_action("late", id="a1").to_document())])
    assert collection.records == []


# ============================================================================
# Stale Delivery Tests
# ============================================================================

@pytest.mark.asyncio
async def test_delivery_after_unsubscribe_is_discarded(test_user_id):
    store = CapturingStore()
    collection = SyncedCollection(store, ActionItem, "actions")
    await collection.subscribe(test_user_id)
    _, on_snapshot = store.listeners[0]

    await collection.unsubscribe()
    on_snapshot([("a1", make_action("late", id="a1").to_document())])

    assert collection.records == []


@pytest.mark.asyncio
async def test_delivery_from_replaced_subscription_is_discarded(test_user_id):
    store = CapturingStore()
    collection = SyncedCollection(store, ActionItem, "actions")
    await collection.subscribe(test_user_id)
    await collection.subscribe(test_user_id)
    (_, old_listener), (_, new_listener) = store.listeners

    old_listener([("a1", make_action("stale", id="a1").to_document())])
    assert collection.records == []

    new_listener([("a2", make_action("fresh", id="a2").to_document())])
    assert [a.title for a in collection.records] == ["fresh"]
    assert len(store.unsubscribed) == 1


@pytest.mark.asyncio
async def test_thread_delivery_is_marshaled_to_loop(test_user_id):
    """Test snapshots from another thread are applied on the owner loop"""
    store = CapturingStore()
    collection = SyncedCollection(store, ActionItem, "actions")
    await collection.subscribe(test_user_id)
    _, on_snapshot = store.listeners[0]

    applied_on = []
    collection.on_change(lambda records: applied_on.append(threading.get_ident()))

    await asyncio.to_thread(on_snapshot, [("a1", make_action("Walk", id="a1").to_document())])
    await asyncio.sleep(0)

    assert [a.title for a in collection.records] == ["Walk"]
    assert applied_on == [threading.get_ident()]


@pytest.mark.asyncio
async def test_thread_delivery_racing_unsubscribe_is_discarded(test_user_id):
    store = CapturingStore()
    collection = SyncedCollection(store, ActionItem, "actions")
    await collection.subscribe(test_user_id)
    _, on_snapshot = store.listeners[0]

    worker = threading.Thread(
        target=on_snapshot,
        args=([("a1", make_action("racing", id="a1").to_document())],),
    )
    worker.start()
    worker.join()

    # Delivery is queued on the loop but not yet applied
    await collection.unsubscribe()
    await asyncio.sleep(0)

    assert collection.records == []


# ============================================================================
# Decoding Tests
# ============================================================================

@pytest.mark.asyncio
async def test_malformed_document_is_skipped(collection, document_store, action_document, test_user_id):
    document_store.put_raw(PATH, "good", action_document)
    document_store.put_raw(PATH, "bad", {"createdAt": BASE_TIME, "category": "not-a-category"})

    await collection.subscribe(test_user_id)

    assert [a.id for a in collection.records] == ["good"]
    assert len(collection.last_decode_errors) == 1
    assert collection.last_decode_errors[0].document_id == "bad"


@pytest.mark.asyncio
async def test_non_mapping_document_does_not_abort_siblings(action_document, test_user_id):
    store = CapturingStore()
    collection = SyncedCollection(store, ActionItem, "actions")
    await collection.subscribe(test_user_id)
    _, on_snapshot = store.listeners[0]

    on_snapshot([("bad", None), ("good", action_document), ("worse", ["not", "a", "dict"])])

    assert [a.id for a in collection.records] == ["good"]
    assert [e.document_id for e in collection.last_decode_errors] == ["bad", "worse"]


@pytest.mark.asyncio
async def test_document_id_comes_from_key(collection, document_store, action_document, test_user_id):
    document_store.put_raw(PATH, "doc-key", {**action_document, "id": "something-else"})
    await collection.subscribe(test_user_id)
    assert collection.records[0].id == "doc-key"


@pytest.mark.asyncio
async def test_camel_case_fields_decode(collection, document_store, action_document, test_user_id):
    document_store.put_raw(PATH, "a", {**action_document, "isCompleted": True})
    await collection.subscribe(test_user_id)
    assert collection.get("a").is_completed is True


# ============================================================================
# Write-through Tests
# ============================================================================

@pytest.mark.asyncio
async def test_add_does_not_touch_local_list(test_user_id):
    """Test local state only changes through snapshots"""
    store = CapturingStore()
    collection = SyncedCollection(store, ActionItem, "actions")
    await collection.subscribe(test_user_id)
    action = make_action("Walk")

    result = await collection.add(action)

    assert result.success
    assert collection.records == []
    store.set_document.assert_awaited_once_with(PATH, action.id, action.to_document())


@pytest.mark.asyncio
async def test_update_overwrites_full_document(collection, document_store, test_user_id):
    await collection.subscribe(test_user_id)
    action = make_action("Walk", description="30 minutes", source="coach")
    await collection.add(action)

    replacement = action.model_copy(update={"description": "", "source": None, "is_completed": True})
    await collection.update(replacement)

    stored = document_store.documents(PATH)[action.id]
    assert stored["isCompleted"] is True
    assert stored["description"] == ""
    assert "source" not in stored
    assert collection.get(action.id).is_completed


@pytest.mark.asyncio
async def test_remove_arrives_via_snapshot(collection, test_user_id):
    await collection.subscribe(test_user_id)
    action = make_action("Walk")
    await collection.add(action)

    result = await collection.remove(action.id)

    assert result.success
    assert collection.get(action.id) is None


@pytest.mark.asyncio
async def test_write_failure_returned_not_raised(collection, document_store, test_user_id):
    await collection.subscribe(test_user_id)
    document_store.set_document = AsyncMock(side_effect=ConnectionResetError("network down"))

    result = await collection.add(make_action("Walk"))

    assert not result
    assert isinstance(result.error, RemoteWriteError)
    assert result.error.path == PATH
    assert collection.records == []


@pytest.mark.asyncio
async def test_remove_failure_returned(collection, document_store, test_user_id):
    await collection.subscribe(test_user_id)
    document_store.delete_document = AsyncMock(side_effect=TimeoutError())

    result = await collection.remove("missing")

    assert not result.success
    assert result.record_id == "missing"


@pytest.mark.asyncio
async def test_write_without_namespace_fails(collection):
    result = await collection.add(make_action("Walk"))
    assert not result.success
    assert isinstance(result.error, RemoteWriteError)


# ============================================================================
# Change Listener Tests
# ============================================================================

@pytest.mark.asyncio
async def test_change_listener_removal(collection, test_user_id):
    seen = []
    remove = collection.on_change(seen.append)
    await collection.subscribe(test_user_id)
    remove()
    await collection.add(make_action("Walk"))

    assert len(seen) == 1


@pytest.mark.asyncio
async def test_failing_listener_does_not_block_update(collection, test_user_id):
    def broken(records):
        raise RuntimeError("render failed")

    collection.on_change(broken)
    await collection.subscribe(test_user_id)
    await collection.add(make_action("Walk"))

    assert len(collection) == 1
