"""
Taskboard Backend — Notification Route Handlers
=================================================

What:  The caller's notification inbox.

    GET    /api/notifications                 list (offset paginated)
    GET    /api/notifications/unread-count
    PATCH  /api/notifications/read-all
    PATCH  /api/notifications/{id}/read
    DELETE /api/notifications/{id}

Route order matters: the literal paths are declared before /{id} so that
"read-all" and "unread-count" are never parsed as ids.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.database import get_db_session
from taskboard.deps import get_current_user_id
from taskboard.schemas.common import Envelope, ErrorResponse
from taskboard.schemas.notification import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from taskboard.services.notification_service import notification_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get(
    "",
    response_model=Envelope[NotificationListResponse],
    summary="List the caller's notifications, newest first",
)
async def list_notifications(
    response: Response,
    unread_only: bool = Query(default=False, description="Only unread notifications"),
    limit: int = Query(default=20, ge=1, le=100, description="Items per page (max 100)"),
    offset: int = Query(default=0, ge=0),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[NotificationListResponse]:
    result = await notification_service.list_notifications(
        db,
        user_id,
        unread_only=unread_only,
        limit=limit,
        offset=offset,
    )
    response.headers["X-Total-Count"] = str(result.total_count)
    response.headers["Cache-Control"] = "no-store"
    return Envelope(data=result)


@router.get(
    "/unread-count",
    response_model=Envelope[UnreadCountResponse],
    summary="Number of unread notifications",
)
async def unread_count(
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[UnreadCountResponse]:
    count = await notification_service.unread_count(db, user_id)
    return Envelope(data=UnreadCountResponse(unread_count=count))


@router.patch(
    "/read-all",
    response_model=Envelope[MarkAllReadResponse],
    summary="Mark every notification read",
)
async def mark_all_read(
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[MarkAllReadResponse]:
    updated = await notification_service.mark_all_read(db, user_id)
    return Envelope(data=MarkAllReadResponse(updated=updated))


@router.patch(
    "/{notification_id}/read",
    response_model=Envelope[NotificationResponse],
    responses={404: {"model": ErrorResponse}},
    summary="Mark one notification read",
)
async def mark_read(
    notification_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[NotificationResponse]:
    notification = await notification_service.mark_read(db, user_id, notification_id)
    return Envelope(data=NotificationResponse.model_validate(notification))


@router.delete(
    "/{notification_id}",
    response_model=Envelope[None],
    responses={404: {"model": ErrorResponse}},
    summary="Delete a notification",
)
async def delete_notification(
    notification_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[None]:
    await notification_service.delete_notification(db, user_id, notification_id)
    return Envelope(data=None)
