from datetime import datetime

from pydantic import BaseModel, Field


class NotificationOut(BaseModel):
    id: str
    type: str
    title: str
    message: str
    related_entity_type: str
    related_entity_id: str
    read: bool = False
    created_at: datetime | None = None


class UnreadCountOut(BaseModel):
    unread: int


class MarkReadRequest(BaseModel):
    notification_ids: list[str] = Field(min_length=1, max_length=200)


class MarkReadOut(BaseModel):
    updated: int
