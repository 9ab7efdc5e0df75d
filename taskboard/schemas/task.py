"""
Taskboard Backend — Task Schemas
==================================

What:  Request/response models for the thin task CRUD surface.

TaskUpdate semantics:
    Only fields present in the request body are applied
    (`model_fields_set`), so `{"assigned_to": null}` unassigns while an
    omitted assigned_to leaves the assignee untouched.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from taskboard.models.task import TaskPriority, TaskStatus


class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    assigned_to: Optional[uuid.UUID] = None
    project_id: Optional[uuid.UUID] = None
    reminder: Optional[datetime] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    assigned_to: Optional[uuid.UUID] = None
    project_id: Optional[uuid.UUID] = None
    reminder: Optional[datetime] = None


class TaskResponse(BaseModel):
    id: uuid.UUID
    title: str
    description: Optional[str] = None
    status: str
    priority: str
    due_date: Optional[datetime] = None
    assigned_to: Optional[uuid.UUID] = None
    created_by: uuid.UUID
    project_id: Optional[uuid.UUID] = None
    reminder: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
