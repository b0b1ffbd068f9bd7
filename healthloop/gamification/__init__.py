"""
Gamification engine for healthloop

Converts quiz activity into progression:
- XP and leveling (linear threshold curve with carry)
- Daily streak tracking
- Per-category level unlock ladder
- Session-scoped progression store with write-through persistence
"""

from healthloop.gamification.xp_system import LevelCurve, apply_xp_delta, level_progress
from healthloop.gamification.streak_system import record_activity
from healthloop.gamification.unlock_ladder import highest_unlocked_level, unlock_next
from healthloop.gamification.progression_store import ProgressionStore

__all__ = [
    "LevelCurve",
    "apply_xp_delta",
    "level_progress",
    "record_activity",
    "highest_unlocked_level",
    "unlock_next",
    "ProgressionStore",
]
