"""
PhotosCollection - visual check photos mirrored from users/{uid}/visualPhotos
"""

import logging
from typing import List, Optional

from healthloop.models.photo import VisualPhoto
from healthloop.sync.document_store import DocumentStore
from healthloop.sync.synced_collection import SyncedCollection, WriteResult

logger = logging.getLogger(__name__)


class PhotosCollection(SyncedCollection[VisualPhoto]):
    """Progress photos, newest first"""

    def __init__(self, store: DocumentStore, namespace: Optional[str] = None):
        super().__init__(store, VisualPhoto, "visualPhotos", namespace=namespace)

    async def upload(
        self,
        image_bytes: bytes,
        category: str,
        note: Optional[str] = None,
    ) -> WriteResult:
        """Store a JPEG inline as a data URL document"""
        photo = VisualPhoto.from_image_bytes(image_bytes, category, note=note)
        logger.info(f"Uploading {len(image_bytes)} byte photo to '{category}'")
        return await self.add(photo)

    async def delete(self, photo: VisualPhoto) -> WriteResult:
        return await self.remove(photo.id)

    def for_category(self, category: str) -> List[VisualPhoto]:
        return [photo for photo in self.records if photo.category == category]

    def previous_notes(self, category: str, limit: int = 3) -> List[str]:
        """
        Most recent assistant notes for a category, newest first

        Returns the ``limit`` newest notes, not the oldest ones at the tail
        of the newest-first list.
        """
        notes = [photo.ai_note for photo in self.for_category(category) if photo.ai_note]
        return notes[:limit]
