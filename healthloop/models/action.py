"""Action item models"""
from enum import Enum
from datetime import datetime
from typing import Optional

from healthloop.models.records import SyncedRecord


class ActionCategory(str, Enum):
    """Action categories"""
    HYDRATION = "hydration"
    SLEEP = "sleep"
    EXERCISE = "exercise"
    NUTRITION = "nutrition"
    MEDICATION = "medication"
    CHECKUP = "checkup"
    HABIT = "habit"
    OTHER = "other"


class ActionItem(SyncedRecord):
    """A to-do style health action, optionally suggested by an assistant"""
    title: str
    description: str = ""
    category: ActionCategory = ActionCategory.OTHER
    is_completed: bool = False
    due_date: Optional[datetime] = None
    source: Optional[str] = None
