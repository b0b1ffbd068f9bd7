"""
Daily Streak Tracking

Counts consecutive calendar days with at least one quiz completion.

Logic:
- First activity ever: streak starts at 1
- Activity on the day after the last one: streak + 1
- Activity on the same day: no change (re-entrant calls never double count)
- Gap of two or more days, or a day before the last one (clock skew):
  streak resets to 1
"""

from datetime import date
import logging

from healthloop.models.progression import ProgressionState
from healthloop.utils.datetime_helpers import days_between, start_of_day

logger = logging.getLogger(__name__)


def next_streak(last_played_day: date | None, today: date, current_streak: int) -> int:
    """Streak value after recording activity on ``today``"""
    if last_played_day is None:
        return 1

    gap_days = days_between(last_played_day, today)
    if gap_days == 0:
        return current_streak
    if gap_days == 1:
        return current_streak + 1
    return 1


def record_activity(state: ProgressionState, today: date) -> ProgressionState:
    """
    Record a streak-worthy activity on ``today``

    Args:
        state: Current progression
        today: Calendar day of the activity (time-of-day is stripped)

    Returns:
        New ProgressionState (the same values when already counted today)
    """
    today = start_of_day(today)
    last_day = state.last_played_day

    if last_day == today:
        return state

    streak = next_streak(last_day, today, state.streak)

    if last_day is None:
        logger.info("Streak started: day 1")
    elif streak == 1:
        logger.info(
            f"Streak reset. Previous: {state.streak} days, "
            f"gap was {days_between(last_day, today)} days"
        )
    else:
        logger.info(f"Streak continues: {state.streak} → {streak} days")

    return state.model_copy(update={"streak": streak, "last_played_day": today})
