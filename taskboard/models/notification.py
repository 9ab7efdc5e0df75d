"""
Taskboard Backend — Notification SQLAlchemy Model
===================================================

What:  ORM model representing the `notifications` table.
Who:   Written only by NotificationService.notify(); read by the
       notification routes and by delivery sinks.

Deduplication:
    dedup_key = "{type}:{task or -}:{project or -}:{occasion or -}"
    UNIQUE (recipient_id, dedup_key)

    The occasion distinguishes a genuinely new event (a new due date, a new
    assignment) from a repeat trigger of the same one. The key is a single
    non-null string because NULL columns never collide in a composite unique
    constraint.

    occasion_at repeats the occasion when it is an instant (due date, reminder,
    completion or assignment time) so the reminder scanner can skip tasks
    whose current instant was already notified without building keys in SQL.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from taskboard.database import Base, UTCDateTime, utcnow


class NotificationType(str, enum.Enum):
    TASK_ASSIGNED = "task_assigned"
    TASK_DUE = "task_due"
    TASK_REMINDER = "task_reminder"
    PROJECT_INVITE = "project_invite"
    TASK_COMPLETED = "task_completed"


class Notification(Base):
    """A durable user-facing alert."""

    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    recipient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
    )

    type: Mapped[str] = mapped_column(String(30), nullable=False)

    title: Mapped[str] = mapped_column(String(200), nullable=False)

    message: Mapped[str] = mapped_column(Text, nullable=False)

    related_task_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("tasks.id", ondelete="SET NULL"),
        nullable=True,
    )

    related_project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="SET NULL"),
        nullable=True,
    )

    dedup_key: Mapped[str] = mapped_column(String(255), nullable=False)

    occasion_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    read_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        UniqueConstraint("recipient_id", "dedup_key", name="uq_notifications_recipient_key"),
        # Inbox query: WHERE recipient_id = ? [AND read = false] ORDER BY created_at DESC
        Index("idx_notifications_inbox", "recipient_id", "read", "created_at"),
        # Reminder scanner anti-join: (task, type, instant) already notified
        Index("idx_notifications_task_occasion", "related_task_id", "type", "occasion_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Notification(id={self.id}, recipient_id={self.recipient_id}, "
            f"type='{self.type}', read={self.read})>"
        )
