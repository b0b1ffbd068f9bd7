"""Progression models for gamification"""
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProgressionState(BaseModel):
    """XP, level, streak and unlock ladder for one app session

    Immutable: every gamification operation returns an updated copy.
    """
    model_config = ConfigDict(frozen=True)

    completed_count: int = Field(default=0, ge=0)
    total_focus_time: float = Field(default=0.0, ge=0)
    streak: int = Field(default=0, ge=0)
    last_played_day: Optional[date] = None
    xp: int = Field(default=0, ge=0)
    level: int = Field(default=1, ge=1)
    unlocked_levels: dict[str, int] = Field(default_factory=dict)

    @field_validator("unlocked_levels")
    @classmethod
    def levels_at_least_one(cls, value: dict[str, int]) -> dict[str, int]:
        return {key: max(1, level) for key, level in value.items()}


class ProgressUpdate(BaseModel):
    """Summary of one progression mutation, for UI feedback"""
    xp_awarded: int
    old_level: int
    new_level: int
    xp: int
    streak: int
    completed_count: int
    unlocked: Optional[int] = None

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level
