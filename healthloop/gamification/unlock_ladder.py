"""
Level Unlock Ladder

Per-category highest accessible quiz level. Starts at 1, only moves forward,
never past the maximum tier.
"""

import logging

from healthloop.models.progression import ProgressionState

logger = logging.getLogger(__name__)

DEFAULT_MAX_TIER = 5


def highest_unlocked_level(state: ProgressionState, category_key: str) -> int:
    """Highest level the user may open in a category (at least 1)"""
    return max(1, state.unlocked_levels.get(category_key, 1))


def is_level_unlocked(state: ProgressionState, category_key: str, level: int) -> bool:
    return level <= highest_unlocked_level(state, category_key)


def unlock_next(
    state: ProgressionState,
    category_key: str,
    completed_level: int,
    max_tier: int = DEFAULT_MAX_TIER
) -> ProgressionState:
    """
    Unlock the level after ``completed_level`` in a category

    Advances only when the completed level is the currently unlocked one (or
    a later one) and is below ``max_tier``. Replaying an older level or
    completing the top tier leaves the state unchanged.

    Args:
        state: Current progression
        category_key: Quiz category identifier
        completed_level: Level the user just finished
        max_tier: Highest level in the category

    Returns:
        New ProgressionState, or ``state`` itself when nothing unlocks
    """
    current = highest_unlocked_level(state, category_key)

    if completed_level < current or completed_level >= max_tier:
        logger.debug(
            f"No unlock for '{category_key}': completed {completed_level}, "
            f"unlocked {current}, max tier {max_tier}"
        )
        return state

    unlocked = dict(state.unlocked_levels)
    unlocked[category_key] = completed_level + 1
    logger.info(f"Unlocked level {completed_level + 1} in '{category_key}'")

    return state.model_copy(update={"unlocked_levels": unlocked})
