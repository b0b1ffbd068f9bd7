"""
XP and Leveling System

Pure functions mapping XP deltas onto (xp, level) pairs.

Leveling Curve:
- threshold(level) = base + (level - 1) * step
- Default: base 100, step 25 (level 1 → 100 XP, level 2 → 125 XP, ...)
- xp always holds the progress inside the current level; excess XP is
  carried into level-ups, never left dangling

XP Award Rules:
- Correct quiz answer: +10 XP
- Quiz completion: +25 XP
- Hint used: -5 XP (never drives XP below zero)
"""

from dataclasses import dataclass
from typing import Dict, Any
import logging

from healthloop import config
from healthloop.models.progression import ProgressionState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LevelCurve:
    """Linear level threshold curve"""

    base: int = 100
    step: int = 25

    def __post_init__(self):
        # Thresholds must be positive and non-decreasing or the carry loop
        # would never terminate
        if self.base <= 0:
            raise ValueError("LevelCurve.base must be positive")
        if self.step < 0:
            raise ValueError("LevelCurve.step must not be negative")

    def threshold(self, level: int) -> int:
        """XP required to advance from ``level`` to ``level + 1``"""
        return self.base + (max(1, level) - 1) * self.step

    @classmethod
    def from_config(cls) -> "LevelCurve":
        return cls(base=config.XP_LEVEL_BASE, step=config.XP_LEVEL_STEP)


DEFAULT_CURVE = LevelCurve()


def carry_levels(xp: int, level: int, curve: LevelCurve = DEFAULT_CURVE) -> tuple[int, int]:
    """
    Fold excess XP forward into level increments

    Returns:
        (xp, level) with xp < curve.threshold(level)
    """
    xp = max(0, xp)
    level = max(1, level)
    while xp >= curve.threshold(level):
        xp -= curve.threshold(level)
        level += 1
    return xp, level


def apply_xp_delta(
    state: ProgressionState,
    delta: int,
    curve: LevelCurve = DEFAULT_CURVE
) -> ProgressionState:
    """
    Add ``delta`` XP to the state, clamping at zero and carrying level-ups

    A single large delta may cross several thresholds in one call. Negative
    deltas reduce XP inside the current level only; level never decreases.

    Args:
        state: Current progression
        delta: XP to add (negative for penalties such as hints)
        curve: Level threshold curve

    Returns:
        New ProgressionState
    """
    xp, level = carry_levels(state.xp + delta, state.level, curve)

    if level > state.level:
        logger.info(f"Level up: {state.level} → {level} (xp {xp}/{curve.threshold(level)})")

    return state.model_copy(update={"xp": xp, "level": level})


def level_progress(state: ProgressionState, curve: LevelCurve = DEFAULT_CURVE) -> Dict[str, Any]:
    """
    Level information for display

    Returns:
        {
            'current_level': int,
            'xp_in_current_level': int,
            'xp_to_next_level': int,
            'total_xp_for_next_level': int,
            'progress_fraction': float (0.0-1.0)
        }
    """
    threshold = curve.threshold(state.level)
    return {
        "current_level": state.level,
        "xp_in_current_level": state.xp,
        "xp_to_next_level": threshold - state.xp,
        "total_xp_for_next_level": threshold,
        "progress_fraction": state.xp / threshold,
    }


def get_xp_for_activity(activity_type: str) -> int:
    """
    XP amount for a gamified activity

    Args:
        activity_type: correct_answer, quiz_completion or hint_used

    Returns:
        XP delta (negative for costs); 0 for unknown activities
    """
    awards = {
        "correct_answer": config.XP_PER_CORRECT_ANSWER,
        "quiz_completion": config.XP_PER_QUIZ_COMPLETION,
        "hint_used": -config.XP_HINT_COST,
    }
    amount = awards.get(activity_type)
    if amount is None:
        logger.warning(f"No XP rule for activity '{activity_type}'")
        return 0
    return amount
