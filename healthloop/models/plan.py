"""Micro-habit plan models"""
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from healthloop.models.records import SyncedRecord


class ReminderTime(BaseModel):
    """Daily reminder time for a plan"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    hour: int = Field(ge=0, le=23)
    minute: int = Field(ge=0, le=59)


def default_reminder_times() -> list[ReminderTime]:
    return [ReminderTime(hour=9, minute=0)]


class MicroPlan(SyncedRecord):
    """A small repeatable habit with its own day streak"""
    name: str
    frequency: str
    icon: str
    description: str = ""
    streak: int = Field(default=0, ge=0)
    is_completed_today: bool = False
    today_progress: float = Field(default=0.0, ge=0.0, le=1.0)
    reminder_times: list[ReminderTime] = Field(default_factory=default_reminder_times)
    reminder_enabled: bool = True

    @field_validator("reminder_times")
    @classmethod
    def at_least_one_reminder(cls, value: list[ReminderTime]) -> list[ReminderTime]:
        # An empty list falls back to the 09:00 default
        return value or default_reminder_times()
