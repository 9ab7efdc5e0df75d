"""
Taskboard Backend — Task SQLAlchemy Model
===========================================

What:  ORM model representing the `tasks` table.
Who:   Written by TaskService (thin CRUD layer), read by the membership guard
       and the reminder scanner.

Invariant:
    completed_at IS NOT NULL  ⇔  status = 'done'
    TaskService.apply_status() is the only place that changes status, and it
    stamps/clears completed_at in the same assignment.

Indexes:
    idx_tasks_due_open / idx_tasks_reminder_open back the two reminder
    scanner queries (open tasks ordered by due_date / reminder).
"""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from taskboard.database import Base, UTCDateTime, utcnow


class TaskStatus(str, enum.Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class TaskPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Task(Base):
    """A unit of work, optionally linked to a project and an assignee."""

    __tablename__ = "tasks"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=TaskStatus.TODO.value,
        comment="todo, in_progress, done",
    )

    priority: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=TaskPriority.MEDIUM.value,
        comment="low, medium, high",
    )

    due_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    assigned_to: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=True,
        index=True,
    )

    # Immutable after creation
    created_by: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    reminder: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
    )

    # Set explicitly by TaskService on every write; also the occasion key of
    # task_assigned notifications.
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        Index("idx_tasks_due_open", "status", "due_date"),
        Index("idx_tasks_reminder_open", "status", "reminder"),
    )

    @property
    def is_done(self) -> bool:
        return self.status == TaskStatus.DONE

    def __repr__(self) -> str:
        return f"<Task(id={self.id}, title='{self.title}', status='{self.status}')>"
