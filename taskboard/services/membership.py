"""
Taskboard Backend — Membership Guard
======================================

What:  Authorization predicates: is owner / is member / can access / can
       mutate / can delete.
How:   Each predicate reads current state from the database; nothing is cached
       between calls.
Who:   InviteService, ProjectService, TaskService and NotificationService.

Contract:
    - No side effects.
    - Fails closed: a missing project, task or user yields False, never an
      exception. Callers decide separately whether "missing" means 404.
    - The owner counts as a member (is_owner OR has a member row). The owner
      is never written into project_members.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.models.project import Project, ProjectMember
from taskboard.models.task import Task

logger = logging.getLogger(__name__)


class MembershipGuard:
    """Stateless authorization predicates over projects and tasks."""

    async def is_project_owner(
        self,
        db: AsyncSession,
        user_id: Optional[UUID],
        project_id: Optional[UUID],
    ) -> bool:
        if user_id is None or project_id is None:
            return False
        result = await db.execute(
            select(Project.owner_id).where(Project.id == project_id)
        )
        owner_id = result.scalar_one_or_none()
        return owner_id is not None and owner_id == user_id

    async def has_member_row(
        self,
        db: AsyncSession,
        user_id: Optional[UUID],
        project_id: Optional[UUID],
    ) -> bool:
        """True only for users literally stored in the member set (never the owner)."""
        if user_id is None or project_id is None:
            return False
        result = await db.execute(
            select(ProjectMember.id).where(
                ProjectMember.project_id == project_id,
                ProjectMember.user_id == user_id,
            )
        )
        return result.first() is not None

    async def is_project_member(
        self,
        db: AsyncSession,
        user_id: Optional[UUID],
        project_id: Optional[UUID],
    ) -> bool:
        """Owner or stored member."""
        if await self.is_project_owner(db, user_id, project_id):
            return True
        return await self.has_member_row(db, user_id, project_id)

    def can_mutate_task(self, user_id: Optional[UUID], task: Optional[Task]) -> bool:
        """Creator or assignee may update a task."""
        if user_id is None or task is None:
            return False
        return user_id == task.created_by or (
            task.assigned_to is not None and user_id == task.assigned_to
        )

    def can_delete_task(self, user_id: Optional[UUID], task: Optional[Task]) -> bool:
        """Only the creator may delete a task."""
        if user_id is None or task is None:
            return False
        return user_id == task.created_by

    async def can_access_task(
        self,
        db: AsyncSession,
        user_id: Optional[UUID],
        task: Optional[Task],
    ) -> bool:
        """
        Creator or assignee; members of the task's project get read access too.
        """
        if self.can_mutate_task(user_id, task):
            return True
        if task is None or task.project_id is None:
            return False
        return await self.is_project_member(db, user_id, task.project_id)


# ── Singleton Instance ────────────────────────────────────────────────────
membership_guard = MembershipGuard()
