"""
End-to-end tests for a learning session

Exercises ServiceContainer with in-memory backends: progression ledger,
streaks and unlocks persisted through the key-value store, and the feature
collections kept live through the document store.
"""
import pytest
from datetime import date

from healthloop import config
from healthloop.models.action import ActionCategory, ActionItem
from healthloop.models.plan import MicroPlan
from healthloop.persistence.key_value import InMemoryKeyValueStore, RedisKeyValueStore
from healthloop.services.container import create_persistence


# ============================================================================
# Progression Scenario
# ============================================================================

@pytest.mark.asyncio
async def test_quiz_session_scenario(session, kv_store):
    """Test the reference quiz session from a fresh install"""
    progression = session.progression

    update = await progression.complete_quiz()
    assert (update.new_level, update.xp, update.streak, update.completed_count) == (1, 25, 1, 1)

    for _ in range(3):
        await progression.record_correct_answer()
    assert progression.state.xp == 55

    update = await progression.record_correct_answer()
    assert (update.new_level, update.xp) == (1, 65)

    assert await progression.unlock_next_level("bio", 1) == 2
    assert await progression.unlock_next_level("bio", 5) == 2

    assert kv_store.snapshot() == {
        "completedCount": 1,
        "xp": 65,
        "level": 1,
        "streak": 1,
        "lastPlayedDay": "2024-01-15",
        "unlockedLevels": {"bio": 2},
    }


@pytest.mark.asyncio
async def test_level_up_carries_remainder(session):
    progression = session.progression

    for _ in range(4):
        await progression.complete_quiz()
    update = await progression.record_correct_answer()

    # 4 * 25 + 10 = 110 crosses the 100 XP threshold of level 1
    assert update.leveled_up
    assert (update.new_level, update.xp) == (2, 10)
    assert progression.level_info()["xp_to_next_level"] == 115


@pytest.mark.asyncio
async def test_hints_never_drop_xp_below_zero(session):
    await session.progression.record_hint_used()
    assert session.progression.state.xp == 0


@pytest.mark.asyncio
async def test_streak_across_days(session, fixed_clock):
    progression = session.progression

    await progression.complete_quiz()
    await progression.complete_quiz()
    assert progression.state.streak == 1

    fixed_clock.advance(days=1)
    await progression.complete_quiz()
    assert progression.state.streak == 2

    fixed_clock.advance(days=3)
    await progression.complete_quiz()
    assert progression.state.streak == 1
    assert progression.state.last_played_day == date(2024, 1, 19)


@pytest.mark.asyncio
async def test_unlocks_through_quiz_completion(session):
    progression = session.progression

    for completed in range(1, 6):
        await progression.complete_quiz(category_key="heart", level=completed)

    assert progression.highest_unlocked_level("heart") == 5
    assert progression.highest_unlocked_level("bio") == 1


@pytest.mark.asyncio
async def test_progress_survives_restart(make_container, kv_store):
    first = make_container()
    await first.start()
    await first.progression.complete_quiz(category_key="bio", level=1)
    await first.progression.record_correct_answer()
    await first.shutdown()

    second = make_container()
    await second.start()
    try:
        state = second.progression.state
        assert (state.xp, state.level, state.completed_count) == (35, 1, 1)
        assert state.unlocked_levels == {"bio": 2}
        assert state.last_played_day == date(2024, 1, 15)
    finally:
        await second.shutdown()


# ============================================================================
# Session Lifecycle
# ============================================================================

@pytest.mark.asyncio
async def test_start_opens_one_listener_per_collection(make_container, document_store):
    container = make_container()
    await container.start()
    await container.start()

    assert document_store.listener_count() == 3

    await container.shutdown()
    assert document_store.listener_count() == 0


@pytest.mark.asyncio
async def test_shutdown_persists_open_focus_session(make_container, kv_store, fixed_clock):
    container = make_container()
    await container.start()

    container.progression.start_session()
    fixed_clock.advance(seconds=90)
    await container.shutdown()

    assert kv_store.snapshot()["learningTime"] == 90.0
    assert not container.progression.session_active


@pytest.mark.asyncio
async def test_collections_share_user_namespace(session, document_store, test_user_id):
    await session.actions.add(ActionItem(title="Water", category=ActionCategory.HYDRATION))
    await session.plans.add(MicroPlan(name="Walk", frequency="daily", icon="figure.walk"))
    await session.photos.upload(b"jpeg-bytes", "skin")

    assert len(session.actions) == 1
    assert len(session.plans) == 1
    assert len(session.photos) == 1
    assert len(document_store.documents(f"users/{test_user_id}/visualPhotos")) == 1


@pytest.mark.asyncio
async def test_two_devices_see_each_others_writes(make_container, document_store, kv_store):
    """Test a second session on the same account receives live updates"""
    phone = make_container()
    tablet = make_container(persistence=InMemoryKeyValueStore())
    await phone.start()
    await tablet.start()
    try:
        result = await phone.actions.add(ActionItem(title="Sleep by 11", category=ActionCategory.SLEEP))

        assert tablet.actions.get(result.record_id).title == "Sleep by 11"

        await tablet.actions.toggle(tablet.actions.get(result.record_id))
        assert phone.actions.get(result.record_id).is_completed
    finally:
        await phone.shutdown()
        await tablet.shutdown()


# ============================================================================
# Persistence Selection
# ============================================================================

def test_create_persistence_in_memory_without_url(monkeypatch, test_user_id):
    monkeypatch.setattr(config, "REDIS_URL", "")
    assert isinstance(create_persistence(test_user_id), InMemoryKeyValueStore)


def test_create_persistence_redis_prefix(monkeypatch, test_user_id):
    monkeypatch.setattr(config, "REDIS_URL", "redis://localhost:6379/0")
    monkeypatch.setattr(config, "REDIS_KEY_PREFIX", "hl:")

    store = create_persistence(test_user_id)

    assert isinstance(store, RedisKeyValueStore)
    assert store.prefix == f"hl:{test_user_id}:"
