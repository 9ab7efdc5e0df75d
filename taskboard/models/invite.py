"""
Taskboard Backend — Project Invite SQLAlchemy Model
=====================================================

What:  ORM model representing the `project_invites` table.
Who:   Owned by InviteService (services/invite_service.py).

State machine:
    pending ──▶ accepted
        │
        ├────▶ rejected
        │
        └────▶ expired      (derived: expires_at <= now)

    All three targets are terminal. Nothing ever re-enters pending.

Constraints enforced by the database:
    uq_project_invites_token
        Token unique across every invite ever issued, not only live ones.
    uq_project_invites_pending
        Partial unique index on (project_id, email) WHERE status = 'pending'.
        At most one pending invite per pair; two concurrent issue() calls
        cannot both insert, whichever service instance runs them.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from taskboard.database import Base, UTCDateTime, utcnow


class InviteStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


TERMINAL_STATUSES = frozenset(
    {InviteStatus.ACCEPTED.value, InviteStatus.REJECTED.value, InviteStatus.EXPIRED.value}
)


class ProjectInvite(Base):
    """An invitation for one email address to join one project."""

    __tablename__ = "project_invites"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="Invitee email, lowercased and trimmed",
    )

    inviter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
    )

    token: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="URL-safe secret, 256 bits of entropy",
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=InviteStatus.PENDING.value,
        comment="pending, accepted, rejected, expired (stored; see effective_status)",
    )

    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    accepted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Stamped on every terminal transition (accept, reject, expire)
    responded_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        UniqueConstraint("token", name="uq_project_invites_token"),
        Index(
            "uq_project_invites_pending",
            "project_id",
            "email",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ProjectInvite(id={self.id}, project_id={self.project_id}, "
            f"email='{self.email}', status='{self.status}')>"
        )
