"""
Taskboard Backend — Mutation Hooks
====================================

What:  Post-write callbacks turning task/invite writes into notifications.
Who:   TaskService (task create/update) and InviteService (invite issue).
When:  After the write is flushed, inside the same request transaction,
       before the HTTP response is produced. A client polling its inbox right
       after a 2xx therefore sees the notification.

These functions are the only bridge between the CRUD layer and the
notification dispatcher. Each one decides whether an event happened at all
and picks the occasion that makes repeated calls idempotent.

Self-notification:
    task_completed is NOT sent when the creator completes their own task.
    task_assigned IS sent on self-assignment (nothing in the product rules
    says otherwise).
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.models.invite import ProjectInvite
from taskboard.models.notification import Notification, NotificationType
from taskboard.models.project import Project
from taskboard.models.task import Task, TaskStatus
from taskboard.models.user import User
from taskboard.services.notification_service import notification_service

logger = logging.getLogger(__name__)


async def on_task_assigned(
    db: AsyncSession,
    task: Task,
    previous_assignee: Optional[UUID],
) -> Optional[Notification]:
    """
    task_assigned → new assignee, when assigned_to became a different non-null user.

    Re-saving a task with the same assignee is not an assignment event.
    """
    if task.assigned_to is None or task.assigned_to == previous_assignee:
        return None

    return await notification_service.notify(
        db,
        recipient_id=task.assigned_to,
        notification_type=NotificationType.TASK_ASSIGNED,
        title="New task assigned",
        message=f'You have been assigned to "{task.title}".',
        related_task_id=task.id,
        related_project_id=task.project_id,
        occasion=task.updated_at,
    )


async def on_task_status_changed(
    db: AsyncSession,
    task: Task,
    previous_status: Optional[str],
    acting_user_id: Optional[UUID],
) -> Optional[Notification]:
    """
    task_completed → creator, when status moved into done from anything else.

    Skipped when the creator is the one who completed the task.
    """
    if task.status != TaskStatus.DONE or previous_status == TaskStatus.DONE:
        return None
    if acting_user_id is not None and acting_user_id == task.created_by:
        logger.debug("Task %s completed by its creator; no notification", task.id)
        return None

    return await notification_service.notify(
        db,
        recipient_id=task.created_by,
        notification_type=NotificationType.TASK_COMPLETED,
        title="Task completed",
        message=f'"{task.title}" has been marked as done.',
        related_task_id=task.id,
        related_project_id=task.project_id,
        occasion=task.completed_at,
    )


async def on_invite_issued(
    db: AsyncSession,
    invite: ProjectInvite,
    project: Project,
) -> Optional[Notification]:
    """project_invite → invitee, only if the email belongs to a registered user."""
    result = await db.execute(select(User.id).where(User.email == invite.email))
    invitee_id = result.scalar_one_or_none()
    if invitee_id is None:
        return None

    return await notification_service.notify(
        db,
        recipient_id=invitee_id,
        notification_type=NotificationType.PROJECT_INVITE,
        title="Project invitation",
        message=f'You have been invited to join the project "{project.name}".',
        related_project_id=project.id,
        occasion=invite.id,
    )
