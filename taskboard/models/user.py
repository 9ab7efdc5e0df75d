"""
Taskboard Backend — User SQLAlchemy Model
===========================================

What:  ORM model representing the `users` table.
Who:   Read by the invite ledger (email matching) and the membership guard.
       Registration and credential handling live outside this service.

Table Design:
    - email is stored lowercased and trimmed; the unique index therefore
      enforces case-insensitive uniqueness.
    - password_hash is opaque to this service.
"""

import uuid
from datetime import datetime

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from taskboard.database import Base, UTCDateTime, utcnow


def normalize_email(email: str) -> str:
    """Canonical form used for storage and every email comparison."""
    return email.strip().lower()


class User(Base):
    """A registered account. Never hard-deleted within this service."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Display name",
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Lowercased, trimmed email address",
    )

    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
        comment="Credential hash, managed by the identity service",
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"
