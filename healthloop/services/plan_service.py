"""
PlansCollection - micro-habit plans mirrored from users/{uid}/plans

Reminder scheduling lives with the platform notification layer; this
collection only keeps plan documents and their streak counters in sync.
"""

import logging
from typing import Optional

from healthloop.models.plan import MicroPlan
from healthloop.sync.document_store import DocumentStore
from healthloop.sync.synced_collection import SyncedCollection, WriteResult

logger = logging.getLogger(__name__)


class PlansCollection(SyncedCollection[MicroPlan]):
    """Micro-habit plans, newest first"""

    def __init__(self, store: DocumentStore, namespace: Optional[str] = None):
        super().__init__(store, MicroPlan, "plans", namespace=namespace)

    async def toggle(self, plan: MicroPlan) -> WriteResult:
        """
        Mark today's habit done (or undo it)

        Completing adds a streak day and sets progress to 1.0; undoing takes
        the day back (never below zero) and clears progress.
        """
        done = not plan.is_completed_today
        streak = plan.streak + 1 if done else max(0, plan.streak - 1)
        updated = plan.model_copy(update={
            "is_completed_today": done,
            "today_progress": 1.0 if done else 0.0,
            "streak": streak,
        })
        logger.debug(f"Plan {plan.id} toggled: done={done}, streak {plan.streak} → {streak}")
        return await self.update(updated)

    @property
    def active_count(self) -> int:
        """Plans still open today or carrying a streak"""
        return sum(1 for plan in self.records if not plan.is_completed_today or plan.streak > 0)

    @property
    def longest_streak(self) -> int:
        return max((plan.streak for plan in self.records), default=0)

    @property
    def week_completion(self) -> int:
        """Share of plans done today, as a whole percentage"""
        records = self.records
        if not records:
            return 0
        done = sum(1 for plan in records if plan.is_completed_today)
        return int(done / len(records) * 100)
