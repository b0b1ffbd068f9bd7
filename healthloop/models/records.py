"""Base model for documents mirrored from the remote store"""
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from healthloop.utils.datetime_helpers import now_utc


class SyncedRecord(BaseModel):
    """Identified, user-owned document with a creation timestamp

    Field names are camelCase on the wire (``createdAt``) so documents written
    by other clients decode unchanged.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str = Field(default_factory=lambda: str(uuid4()))
    created_at: datetime = Field(default_factory=now_utc)

    def to_document(self) -> dict:
        """Serialize for the document store (the id is the document key)"""
        return self.model_dump(by_alias=True, exclude_none=True)
