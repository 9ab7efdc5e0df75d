"""
Taskboard Backend — Task Service
==================================

What:  Thin CRUD over tasks. The only writer of task.status.
How:   Every write is flushed first, then the mutation hooks run inside the
       same transaction, so a notification exists iff the write commits.
Who:   Called by the task routes.

Authorization (via MembershipGuard):
    read    creator, assignee, or member of the task's project
    update  creator or assignee
    delete  creator

Project rules:
    - Linking a task to a project requires the acting user to be a member.
    - The assignee of a project task must be a member of that project.

Completion invariant:
    completed_at is stamped when status moves into 'done', cleared when it
    moves out, and left untouched otherwise (see apply_status()).
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.database import utcnow
from taskboard.exceptions import ForbiddenError, NotFoundError, ValidationError
from taskboard.models.project import Project
from taskboard.models.task import Task, TaskStatus
from taskboard.models.user import User
from taskboard.schemas.task import TaskCreate, TaskUpdate
from taskboard.services.hooks import on_task_assigned, on_task_status_changed
from taskboard.services.membership import membership_guard

logger = logging.getLogger(__name__)

# Fields a PATCH may set to null
NULLABLE_FIELDS = {"description", "due_date", "assigned_to", "project_id", "reminder"}


def apply_status(task: Task, new_status: TaskStatus, now: datetime) -> None:
    """Set status and keep completed_at consistent with it."""
    if new_status == TaskStatus.DONE:
        if task.status != TaskStatus.DONE or task.completed_at is None:
            task.completed_at = now
    else:
        task.completed_at = None
    task.status = new_status.value


class TaskService:
    """Business logic layer for tasks."""

    async def create_task(
        self,
        db: AsyncSession,
        acting_user_id: UUID,
        data: TaskCreate,
    ) -> Task:
        """
        Create a task owned by the acting user.

        Raises:
            NotFoundError: Creator, project or assignee does not exist
            ForbiddenError: Acting user is not a member of the target project
            ValidationError: Assignee is not a member of the target project
        """
        now = utcnow()
        if await db.get(User, acting_user_id) is None:
            raise NotFoundError(resource="user", resource_id=str(acting_user_id))

        if data.project_id is not None:
            await self._require_project_access(db, data.project_id, acting_user_id)
        if data.assigned_to is not None:
            await self._require_valid_assignee(db, data.assigned_to, data.project_id)

        task = Task(
            title=data.title.strip(),
            description=data.description,
            priority=data.priority.value,
            due_date=data.due_date,
            assigned_to=data.assigned_to,
            created_by=acting_user_id,
            project_id=data.project_id,
            reminder=data.reminder,
            created_at=now,
            updated_at=now,
        )
        task.status = TaskStatus.TODO.value
        apply_status(task, data.status, now)

        db.add(task)
        await db.flush()
        logger.info("Task %s created by %s", task.id, acting_user_id)

        await on_task_assigned(db, task, previous_assignee=None)
        await on_task_status_changed(
            db, task, previous_status=None, acting_user_id=acting_user_id
        )
        return task

    async def get_task(
        self,
        db: AsyncSession,
        task_id: UUID,
        acting_user_id: UUID,
    ) -> Task:
        task = await self._load(db, task_id)
        if not await membership_guard.can_access_task(db, acting_user_id, task):
            raise ForbiddenError(message="You do not have access to this task")
        return task

    async def update_task(
        self,
        db: AsyncSession,
        task_id: UUID,
        acting_user_id: UUID,
        data: TaskUpdate,
    ) -> Task:
        """
        Apply a partial update and fire the mutation hooks.

        Only fields present in the request are applied. Re-saving a task with
        the same assignee or the same status fires nothing.

        The row is locked before the previous assignee and status are read, so
        concurrent updates are serialized and each transition fires its hook
        once: the second writer sees the first writer's committed values.
        """
        now = utcnow()
        await self._lock_for_update(db, task_id)
        task = await self._load(db, task_id)
        if not membership_guard.can_mutate_task(acting_user_id, task):
            raise ForbiddenError(message="Only the creator or the assignee can update this task")

        fields = data.model_fields_set
        for name in fields:
            if getattr(data, name) is None and name not in NULLABLE_FIELDS:
                raise ValidationError(message=f"{name} cannot be null", field=name)

        previous_assignee = task.assigned_to
        previous_status = task.status

        if "project_id" in fields and data.project_id != task.project_id:
            if data.project_id is not None:
                await self._require_project_access(db, data.project_id, acting_user_id)
            task.project_id = data.project_id

        if "assigned_to" in fields:
            task.assigned_to = data.assigned_to

        if task.assigned_to is not None and (
            "assigned_to" in fields or "project_id" in fields
        ):
            await self._require_valid_assignee(db, task.assigned_to, task.project_id)

        if "title" in fields:
            task.title = data.title.strip()
        if "description" in fields:
            task.description = data.description
        if "priority" in fields:
            task.priority = data.priority.value
        if "due_date" in fields:
            task.due_date = data.due_date
        if "reminder" in fields:
            task.reminder = data.reminder
        if "status" in fields:
            apply_status(task, data.status, now)

        task.updated_at = now
        await db.flush()
        logger.info("Task %s updated by %s (fields=%s)", task.id, acting_user_id, sorted(fields))

        await on_task_assigned(db, task, previous_assignee=previous_assignee)
        await on_task_status_changed(
            db, task, previous_status=previous_status, acting_user_id=acting_user_id
        )
        return task

    async def delete_task(
        self,
        db: AsyncSession,
        task_id: UUID,
        acting_user_id: UUID,
    ) -> None:
        task = await self._load(db, task_id)
        if not membership_guard.can_delete_task(acting_user_id, task):
            raise ForbiddenError(message="Only the creator can delete this task")

        await db.execute(
            delete(Task).where(Task.id == task_id).execution_options(synchronize_session=False)
        )
        db.expunge(task)
        logger.info("Task %s deleted by %s", task_id, acting_user_id)

    # ── Internals ─────────────────────────────────────────────────────────

    async def _lock_for_update(self, db: AsyncSession, task_id: UUID) -> None:
        """
        Take the row write lock with a no-op UPDATE.

        SELECT ... FOR UPDATE is ignored by SQLite; an UPDATE locks the row on
        PostgreSQL and takes the database write lock on SQLite.
        """
        await db.execute(
            update(Task)
            .where(Task.id == task_id)
            .values(updated_at=Task.updated_at)
            .execution_options(synchronize_session=False)
        )

    async def _load(self, db: AsyncSession, task_id: UUID) -> Task:
        result = await db.execute(
            select(Task).where(Task.id == task_id).execution_options(populate_existing=True)
        )
        task = result.scalar_one_or_none()
        if task is None:
            raise NotFoundError(resource="task", resource_id=str(task_id))
        return task

    async def _require_project_access(
        self,
        db: AsyncSession,
        project_id: UUID,
        acting_user_id: UUID,
    ) -> None:
        if await db.get(Project, project_id) is None:
            raise NotFoundError(resource="project", resource_id=str(project_id))
        if not await membership_guard.is_project_member(db, acting_user_id, project_id):
            raise ForbiddenError(message="You are not a member of this project")

    async def _require_valid_assignee(
        self,
        db: AsyncSession,
        assignee_id: UUID,
        project_id: Optional[UUID],
    ) -> None:
        if await db.get(User, assignee_id) is None:
            raise NotFoundError(resource="user", resource_id=str(assignee_id))
        if project_id is not None and not await membership_guard.is_project_member(
            db, assignee_id, project_id
        ):
            raise ValidationError(
                message="The assignee must be a member of the task's project",
                field="assigned_to",
            )


# ── Singleton Instance ────────────────────────────────────────────────────
task_service = TaskService()
