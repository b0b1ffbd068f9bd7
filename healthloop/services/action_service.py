"""
ActionsCollection - health action items mirrored from users/{uid}/actions
"""

import logging
from typing import List, Optional

from healthloop.models.action import ActionCategory, ActionItem
from healthloop.sync.document_store import DocumentStore
from healthloop.sync.synced_collection import SyncedCollection, WriteResult

logger = logging.getLogger(__name__)


class ActionsCollection(SyncedCollection[ActionItem]):
    """Action items, newest first"""

    def __init__(self, store: DocumentStore, namespace: Optional[str] = None):
        super().__init__(store, ActionItem, "actions", namespace=namespace)

    async def toggle(self, action: ActionItem) -> WriteResult:
        """Flip completion and overwrite the stored document"""
        updated = action.model_copy(update={"is_completed": not action.is_completed})
        return await self.update(updated)

    async def delete(self, action: ActionItem) -> WriteResult:
        return await self.remove(action.id)

    def pending(self) -> List[ActionItem]:
        return [action for action in self.records if not action.is_completed]

    def completed(self) -> List[ActionItem]:
        return [action for action in self.records if action.is_completed]

    def by_category(self, category: ActionCategory) -> List[ActionItem]:
        return [action for action in self.records if action.category == category]

    def completion_rate(self) -> int:
        """Completed share as a whole percentage (0 when empty)"""
        records = self.records
        if not records:
            return 0
        return int(len(self.completed()) / len(records) * 100)
