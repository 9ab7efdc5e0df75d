"""
Taskboard Backend — Notification Dispatcher
=============================================

What:  Creates notification records exactly once per dedup key, and serves
       the notification inbox (list, unread count, mark read, delete).
How:   notify() issues a single INSERT ... ON CONFLICT DO NOTHING against
       the unique (recipient_id, dedup_key) constraint. The database decides
       which of several concurrent callers wins; losers get None back.
Who:   Mutation hooks (request handlers) and the reminder scanner. Both go
       through the same notify() call and therefore share one dedup contract.

Dedup key:
    "{type}:{related_task_id or -}:{related_project_id or -}:{occasion or -}"

    occasion per type (chosen by the callers, see hooks.py and
    reminder_scanner.py):
        task_assigned   task.updated_at at assignment time
        task_completed  task.completed_at
        task_due        task.due_date
        task_reminder   task.reminder
        project_invite  invite.id

Delivery:
    Only the durable row is produced here. Inserted rows are queued on the
    session outbox; delivery happens after commit (services/delivery.py).
"""

import logging
import uuid
from datetime import datetime
from typing import Optional, Union
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.database import utcnow
from taskboard.exceptions import DatabaseError, NotFoundError
from taskboard.models.notification import Notification, NotificationType
from taskboard.schemas.notification import (
    NotificationListResponse,
    NotificationResponse,
)
from taskboard.services.delivery import enqueue

logger = logging.getLogger(__name__)

Occasion = Union[datetime, UUID, str, None]


def format_occasion(occasion: Occasion) -> Optional[str]:
    """Stable string form of an occasion; datetimes are keyed in UTC ISO 8601."""
    if occasion is None:
        return None
    if isinstance(occasion, datetime):
        return occasion.isoformat()
    return str(occasion)


def build_dedup_key(
    notification_type: Union[NotificationType, str],
    related_task_id: Optional[UUID] = None,
    related_project_id: Optional[UUID] = None,
    occasion: Occasion = None,
) -> str:
    type_value = (
        notification_type.value
        if isinstance(notification_type, NotificationType)
        else str(notification_type)
    )
    parts = [
        type_value,
        str(related_task_id) if related_task_id else "-",
        str(related_project_id) if related_project_id else "-",
        format_occasion(occasion) or "-",
    ]
    return ":".join(parts)


class NotificationService:
    """
    Dispatcher and inbox for notifications.

    Responsibilities:
        - notify(): idempotent insert keyed by dedup key
        - list_notifications() / unread_count(): inbox reads
        - mark_read() / mark_all_read() / delete_notification(): inbox writes
    """

    async def notify(
        self,
        db: AsyncSession,
        recipient_id: UUID,
        notification_type: NotificationType,
        title: str,
        message: str,
        related_task_id: Optional[UUID] = None,
        related_project_id: Optional[UUID] = None,
        occasion: Occasion = None,
    ) -> Optional[Notification]:
        """
        Create a notification unless one with the same key already exists.

        Returns:
            The inserted Notification, or None when the key was already taken
            (by an earlier call, or by a concurrent caller that won the race).
        """
        dedup_key = build_dedup_key(
            notification_type, related_task_id, related_project_id, occasion
        )
        values = {
            "id": uuid.uuid4(),
            "recipient_id": recipient_id,
            "type": notification_type.value,
            "title": title[:200],
            "message": message,
            "related_task_id": related_task_id,
            "related_project_id": related_project_id,
            "dedup_key": dedup_key,
            "occasion_at": occasion if isinstance(occasion, datetime) else None,
            "read": False,
            "created_at": utcnow(),
        }

        dialect = db.get_bind().dialect.name
        insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = (
            insert_fn(Notification)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["recipient_id", "dedup_key"])
            .returning(Notification.id)
        )

        result = await db.execute(stmt)
        inserted_id = result.scalar_one_or_none()

        if inserted_id is None:
            logger.debug(
                "Notification skipped (duplicate key) recipient=%s key=%s",
                recipient_id,
                dedup_key,
            )
            return None

        notification = await db.get(Notification, inserted_id)
        enqueue(db, notification)
        logger.info(
            "Notification %s created: type=%s recipient=%s",
            inserted_id,
            notification_type.value,
            recipient_id,
        )
        return notification

    async def list_notifications(
        self,
        db: AsyncSession,
        user_id: UUID,
        unread_only: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> NotificationListResponse:
        """
        Inbox page for one user, newest first.

        Fetches limit + 1 rows to compute has_more without a second page query.
        """
        try:
            query = select(Notification).where(Notification.recipient_id == user_id)
            count_query = select(func.count(Notification.id)).where(
                Notification.recipient_id == user_id
            )
            if unread_only:
                query = query.where(Notification.read.is_(False))
                count_query = count_query.where(Notification.read.is_(False))

            query = (
                query.order_by(Notification.created_at.desc(), Notification.id.desc())
                .offset(offset)
                .limit(limit + 1)
            )
            result = await db.execute(query)
            rows = list(result.scalars().all())

            total_count = (await db.execute(count_query)).scalar() or 0
            unread = await self.unread_count(db, user_id)
        except SQLAlchemyError as e:
            logger.error("Database error listing notifications: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve notifications. Please try again.",
                context={"error_type": type(e).__name__},
            )

        has_more = len(rows) > limit
        rows = rows[:limit]

        return NotificationListResponse(
            notifications=[NotificationResponse.model_validate(n) for n in rows],
            total_count=total_count,
            unread_count=unread,
            has_more=has_more,
        )

    async def unread_count(self, db: AsyncSession, user_id: UUID) -> int:
        result = await db.execute(
            select(func.count(Notification.id)).where(
                Notification.recipient_id == user_id,
                Notification.read.is_(False),
            )
        )
        return result.scalar() or 0

    async def mark_read(
        self,
        db: AsyncSession,
        user_id: UUID,
        notification_id: UUID,
    ) -> Notification:
        """
        Mark one notification read. Idempotent.

        Raises:
            NotFoundError: No such notification for this user. Someone else's
                notification is reported the same way, so ids don't leak.
        """
        notification = await self._get_owned(db, user_id, notification_id)
        if not notification.read:
            notification.read = True
            notification.read_at = utcnow()
            await db.flush()
        return notification

    async def mark_all_read(self, db: AsyncSession, user_id: UUID) -> int:
        """Returns the number of notifications that went from unread to read."""
        result = await db.execute(
            update(Notification)
            .where(
                Notification.recipient_id == user_id,
                Notification.read.is_(False),
            )
            .values(read=True, read_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        logger.info("Marked %d notifications read for user %s", result.rowcount, user_id)
        return result.rowcount or 0

    async def delete_notification(
        self,
        db: AsyncSession,
        user_id: UUID,
        notification_id: UUID,
    ) -> None:
        await self._get_owned(db, user_id, notification_id)
        await db.execute(
            delete(Notification)
            .where(Notification.id == notification_id)
            .execution_options(synchronize_session=False)
        )

    async def _get_owned(
        self,
        db: AsyncSession,
        user_id: UUID,
        notification_id: UUID,
    ) -> Notification:
        result = await db.execute(
            select(Notification)
            .where(
                Notification.id == notification_id,
                Notification.recipient_id == user_id,
            )
            .execution_options(populate_existing=True)
        )
        notification = result.scalar_one_or_none()
        if notification is None:
            raise NotFoundError(resource="notification", resource_id=str(notification_id))
        return notification


# ── Singleton Instance ────────────────────────────────────────────────────
notification_service = NotificationService()
