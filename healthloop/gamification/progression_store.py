"""
Progression Store

Owns the session's ProgressionState and composes the XP ledger, streak
tracker and unlock ladder on top of a key-value persistence collaborator.

Lifecycle:
- Uninitialized: constructed, nothing read yet. Every mutator raises
  NotInitializedError.
- Ready: after load(). Each mutator computes the new state, persists the
  touched keys in a single set_many() write, and only then replaces the
  in-memory state. A failed write leaves the previous state in place.

Persisted keys: xp, level, completedCount, learningTime, streak,
lastPlayedDay (YYYY-MM-DD), unlockedLevels ({category: level}).
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from healthloop.config import EngineSettings, get_settings
from healthloop.exceptions import NotInitializedError, PersistenceError
from healthloop.gamification.focus_timer import FocusTimer
from healthloop.gamification.streak_system import record_activity
from healthloop.gamification.unlock_ladder import highest_unlocked_level, unlock_next
from healthloop.gamification.xp_system import LevelCurve, apply_xp_delta, level_progress
from healthloop.models.progression import ProgressionState, ProgressUpdate
from healthloop.persistence.key_value import KeyValueStore
from healthloop.utils.datetime_helpers import Clock, parse_day

logger = logging.getLogger(__name__)

KEY_XP = "xp"
KEY_LEVEL = "level"
KEY_COMPLETED_COUNT = "completedCount"
KEY_LEARNING_TIME = "learningTime"
KEY_STREAK = "streak"
KEY_LAST_PLAYED_DAY = "lastPlayedDay"
KEY_UNLOCKED_LEVELS = "unlockedLevels"


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_levels(value: Any) -> Dict[str, int]:
    if not isinstance(value, dict):
        return {}
    levels = {}
    for key, level in value.items():
        try:
            levels[str(key)] = int(level)
        except (TypeError, ValueError):
            logger.warning(f"Dropping malformed unlocked level for '{key}': {level!r}")
    return levels


def state_to_record(state: ProgressionState) -> Dict[str, Any]:
    """Full persisted representation of a state"""
    return {
        KEY_XP: state.xp,
        KEY_LEVEL: state.level,
        KEY_COMPLETED_COUNT: state.completed_count,
        KEY_LEARNING_TIME: state.total_focus_time,
        KEY_STREAK: state.streak,
        KEY_LAST_PLAYED_DAY: state.last_played_day.isoformat() if state.last_played_day else None,
        KEY_UNLOCKED_LEVELS: dict(state.unlocked_levels),
    }


class ProgressionStore:
    """
    Session-scoped gamification state with write-through persistence.

    Constructed explicitly and handed to whoever needs it; there is no
    module-level instance.
    """

    def __init__(
        self,
        persistence: KeyValueStore,
        clock: Optional[Clock] = None,
        settings: Optional[EngineSettings] = None,
        user_id: Optional[str] = None,
    ):
        self.persistence = persistence
        self.settings = settings or get_settings()
        self.clock = clock or Clock(self.settings.user_timezone)
        self.curve = LevelCurve(
            base=self.settings.xp_level_base,
            step=self.settings.xp_level_step,
        )
        self.user_id = user_id
        self._state: Optional[ProgressionState] = None
        self._lock = asyncio.Lock()

        self._session_start: Optional[datetime] = None
        self._display_focus_time: float = 0.0
        self._timer = FocusTimer(
            self.clock,
            on_tick=self._on_timer_tick,
            interval=self.settings.focus_timer_interval,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_loaded(self) -> bool:
        return self._state is not None

    @property
    def state(self) -> ProgressionState:
        if self._state is None:
            raise NotInitializedError(user_id=self.user_id, operation="state")
        return self._state

    async def load(self) -> ProgressionState:
        """
        Read persisted scalars and enter the Ready state

        Absent keys default to level 1, zero counters and no unlocks. Calling
        load() again re-reads and supersedes the current state.
        """
        try:
            level = _as_int(await self.persistence.get(KEY_LEVEL), 1)
            xp = _as_int(await self.persistence.get(KEY_XP), 0)
            completed = _as_int(await self.persistence.get(KEY_COMPLETED_COUNT), 0)
            learning_time = await self.persistence.get(KEY_LEARNING_TIME, 0.0)
            streak = _as_int(await self.persistence.get(KEY_STREAK), 0)
            last_played = parse_day(await self.persistence.get(KEY_LAST_PLAYED_DAY))
            unlocked = _as_levels(await self.persistence.get(KEY_UNLOCKED_LEVELS))
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(
                f"Failed to load progression: {e}",
                user_id=self.user_id,
                operation="load_progression",
                cause=e,
            )

        try:
            focus_time = max(0.0, float(learning_time or 0.0))
        except (TypeError, ValueError):
            focus_time = 0.0

        # Stored values from older builds may hold xp above the threshold
        # or a zero level; normalize through the carry rule
        state = ProgressionState(
            completed_count=max(0, completed),
            total_focus_time=focus_time,
            streak=max(0, streak),
            last_played_day=last_played,
            xp=0,
            level=max(1, level),
            unlocked_levels=unlocked,
        )
        state = apply_xp_delta(state, max(0, xp), self.curve)

        self._state = state
        self._display_focus_time = state.total_focus_time
        logger.info(
            f"Loaded progression for {self.user_id or 'session'}: "
            f"level {state.level}, xp {state.xp}, streak {state.streak}"
        )
        return state

    # ------------------------------------------------------------------
    # Gamified actions
    # ------------------------------------------------------------------

    async def record_correct_answer(self) -> ProgressUpdate:
        """Award XP for a correct quiz answer"""
        return await self._apply_xp(self.settings.xp_per_correct_answer, "record_correct_answer")

    async def record_hint_used(self) -> ProgressUpdate:
        """Charge the hint cost (XP never drops below zero)"""
        return await self._apply_xp(-self.settings.xp_hint_cost, "record_hint_used")

    async def complete_quiz(
        self,
        category_key: Optional[str] = None,
        level: Optional[int] = None,
    ) -> ProgressUpdate:
        """
        Record a finished quiz

        Increments the completed count, awards completion XP, updates the
        daily streak and, when a category and level are given, unlocks the
        next level in that category.
        """
        async with self._lock:
            old = self.state
            new = old.model_copy(update={"completed_count": old.completed_count + 1})
            new = apply_xp_delta(new, self.settings.xp_per_quiz_completion, self.curve)
            new = record_activity(new, self.clock.today())

            unlocked = None
            if category_key is not None and level is not None:
                before = highest_unlocked_level(new, category_key)
                new = unlock_next(new, category_key, level, self.settings.unlock_max_tier)
                after = highest_unlocked_level(new, category_key)
                if after > before:
                    unlocked = after

            touched = [KEY_COMPLETED_COUNT, KEY_XP, KEY_LEVEL, KEY_STREAK, KEY_LAST_PLAYED_DAY]
            if unlocked is not None:
                touched.append(KEY_UNLOCKED_LEVELS)
            await self._commit(new, touched, "complete_quiz")

            return self._summarize(old, new, self.settings.xp_per_quiz_completion, unlocked)

    async def unlock_next_level(self, category_key: str, completed_level: int) -> int:
        """
        Unlock the level following ``completed_level``

        Returns:
            Highest unlocked level in the category afterwards
        """
        async with self._lock:
            old = self.state
            new = unlock_next(old, category_key, completed_level, self.settings.unlock_max_tier)
            if new is not old:
                await self._commit(new, [KEY_UNLOCKED_LEVELS], "unlock_next_level")
            return highest_unlocked_level(new, category_key)

    def highest_unlocked_level(self, category_key: str) -> int:
        return highest_unlocked_level(self.state, category_key)

    def level_info(self) -> Dict[str, Any]:
        return level_progress(self.state, self.curve)

    # ------------------------------------------------------------------
    # Focus time
    # ------------------------------------------------------------------

    @property
    def display_focus_time(self) -> float:
        """Persisted focus time plus the running session, for display"""
        return self._display_focus_time

    @property
    def session_active(self) -> bool:
        return self._session_start is not None

    def start_session(self) -> None:
        """Open a focus session and start the display timer"""
        state = self.state
        self._session_start = self.clock.now()
        self._display_focus_time = state.total_focus_time
        self._timer.start(self._session_start, state.total_focus_time)

    async def end_session(self) -> float:
        """
        Close the focus session and persist the elapsed time

        The session stays open when the write fails, so the call can be
        retried without losing the elapsed time.

        Returns:
            Seconds added to the total (0.0 when no session was open)
        """
        async with self._lock:
            start = self._session_start
            if start is None:
                self._timer.stop()
                return 0.0

            elapsed = max(0.0, (self.clock.now() - start).total_seconds())
            old = self.state
            new = old.model_copy(update={"total_focus_time": old.total_focus_time + elapsed})
            await self._commit(new, [KEY_LEARNING_TIME], "end_session")
            self._session_start = None

        self._timer.stop()
        self._display_focus_time = new.total_focus_time
        return elapsed

    def _on_timer_tick(self, total: float) -> None:
        self._display_focus_time = total

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _apply_xp(self, delta: int, operation: str) -> ProgressUpdate:
        async with self._lock:
            old = self.state
            new = apply_xp_delta(old, delta, self.curve)
            await self._commit(new, [KEY_XP, KEY_LEVEL], operation)
            return self._summarize(old, new, delta, None)

    async def _commit(self, new: ProgressionState, keys: list[str], operation: str) -> None:
        """Persist ``keys`` of ``new`` in one write, then adopt it"""
        record = state_to_record(new)
        try:
            await self.persistence.set_many({key: record[key] for key in keys})
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(
                f"Failed to persist {', '.join(keys)}: {e}",
                keys=keys,
                user_id=self.user_id,
                operation=operation,
                cause=e,
            )
        self._state = new

    @staticmethod
    def _summarize(
        old: ProgressionState,
        new: ProgressionState,
        delta: int,
        unlocked: Optional[int],
    ) -> ProgressUpdate:
        return ProgressUpdate(
            xp_awarded=delta,
            old_level=old.level,
            new_level=new.level,
            xp=new.xp,
            streak=new.streak,
            completed_count=new.completed_count,
            unlocked=unlocked,
        )
