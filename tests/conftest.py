"""Global test fixtures and utilities for healthloop tests"""
import pytest
import pytest_asyncio
from datetime import datetime, date, timezone

from healthloop.config import EngineSettings
from healthloop.gamification.progression_store import ProgressionStore
from healthloop.models.progression import ProgressionState
from healthloop.persistence.key_value import InMemoryKeyValueStore
from healthloop.sync.document_store import InMemoryDocumentStore
from healthloop.utils.datetime_helpers import FixedClock


# ============================================================================
# User Fixtures
# ============================================================================

@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "user_123456789"


# ============================================================================
# Time Fixtures
# ============================================================================

@pytest.fixture
def frozen_time():
    """Fixed moment for deterministic streak tests"""
    return datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def fixed_clock(frozen_time):
    """Clock pinned to frozen_time (UTC)"""
    return FixedClock(frozen_time)


# ============================================================================
# Gamification Fixtures
# ============================================================================

@pytest.fixture
def engine_settings():
    """Reference tunables: curve 100 + 25/level, 10/25/-5 XP, 5 tiers"""
    return EngineSettings(
        xp_level_base=100,
        xp_level_step=25,
        xp_per_correct_answer=10,
        xp_per_quiz_completion=25,
        xp_hint_cost=5,
        unlock_max_tier=5,
        focus_timer_interval=0.01,
        user_timezone="UTC",
    )


@pytest.fixture
def fresh_state():
    """Default progression (level 1, nothing earned)"""
    return ProgressionState()


@pytest.fixture
def test_streak_state():
    """Progression with a 7-day streak last played on 2024-01-15"""
    return ProgressionState(streak=7, last_played_day=date(2024, 1, 15), xp=40, level=3)


@pytest.fixture
def kv_store():
    """Empty in-memory key-value persistence"""
    return InMemoryKeyValueStore()


@pytest.fixture
def progression_store(kv_store, fixed_clock, engine_settings, test_user_id):
    """Unloaded ProgressionStore over in-memory persistence"""
    return ProgressionStore(kv_store, clock=fixed_clock, settings=engine_settings, user_id=test_user_id)


@pytest_asyncio.fixture
async def loaded_store(progression_store):
    """ProgressionStore after load()"""
    await progression_store.load()
    return progression_store


# ============================================================================
# Sync Fixtures
# ============================================================================

@pytest.fixture
def document_store():
    """Empty in-memory document store"""
    return InMemoryDocumentStore()


@pytest.fixture
def action_document():
    """Raw action document as another client writes it"""
    return {
        "id": "action_1",
        "title": "Drink 2L water",
        "description": "",
        "category": "hydration",
        "isCompleted": False,
        "createdAt": datetime(2024, 1, 15, 8, 0, 0, tzinfo=timezone.utc),
    }
