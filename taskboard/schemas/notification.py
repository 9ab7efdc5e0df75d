"""
Taskboard Backend — Notification Schemas
==========================================

What:  Response models for the notification inbox endpoints.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class NotificationResponse(BaseModel):
    id: uuid.UUID
    type: str
    title: str
    message: str
    related_task_id: Optional[uuid.UUID] = None
    related_project_id: Optional[uuid.UUID] = None
    read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    """
    Offset-paginated inbox page, newest first.

    total counts every notification matching the filter; unread_count counts
    unread notifications regardless of the filter (for the badge).
    """
    notifications: List[NotificationResponse] = Field(description="Page of notifications")
    total_count: int
    unread_count: int
    has_more: bool


class UnreadCountResponse(BaseModel):
    unread_count: int


class MarkAllReadResponse(BaseModel):
    updated: int = Field(description="Number of notifications that changed from unread to read")
