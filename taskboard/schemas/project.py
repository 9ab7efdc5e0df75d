"""
Taskboard Backend — Project Schemas
=====================================
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from taskboard.models.project import ProjectStatus


class ProjectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=2000)
    status: ProjectStatus = ProjectStatus.ACTIVE


class ProjectResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    owner_id: uuid.UUID
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class MemberResponse(BaseModel):
    """A project participant. The owner is listed with role "owner" and no joined_at."""
    user_id: uuid.UUID
    name: str
    email: str
    role: str = Field(description="owner or member")
    joined_at: Optional[datetime] = None
