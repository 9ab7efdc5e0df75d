"""
Taskboard Backend — Project Service
=====================================

What:  Thin CRUD over projects and their member set.
Who:   Called by the project routes.

Member listing:
    The owner is never stored in project_members, so list_members() prepends
    the owner (role "owner") to the stored members (role "member").
"""

import logging
from typing import List
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.database import utcnow
from taskboard.exceptions import (
    DatabaseError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
)
from taskboard.models.project import Project, ProjectMember
from taskboard.models.user import User
from taskboard.schemas.project import MemberResponse, ProjectCreate
from taskboard.services.membership import membership_guard

logger = logging.getLogger(__name__)


class ProjectService:
    """
    Business logic layer for projects.

    Responsibilities:
        - create_project(): acting user becomes the immutable owner
        - get_project(): visible to owner and members only
        - list_members(): owner first, then members by join time
        - remove_member(): owner-only, never removes the owner
    """

    async def create_project(
        self,
        db: AsyncSession,
        owner_id: UUID,
        data: ProjectCreate,
    ) -> Project:
        owner = await db.get(User, owner_id)
        if owner is None:
            raise NotFoundError(resource="user", resource_id=str(owner_id))

        project = Project(
            name=data.name.strip(),
            description=data.description,
            owner_id=owner_id,
            status=data.status.value,
            created_at=utcnow(),
        )
        db.add(project)
        await db.flush()
        logger.info("Project %s created by %s", project.id, owner_id)
        return project

    async def get_project(
        self,
        db: AsyncSession,
        project_id: UUID,
        acting_user_id: UUID,
    ) -> Project:
        """
        Raises:
            NotFoundError: Project does not exist
            ForbiddenError: Caller is neither owner nor member
        """
        project = await self._load(db, project_id)
        if not await membership_guard.is_project_member(db, acting_user_id, project_id):
            raise ForbiddenError(message="You are not a member of this project")
        return project

    async def list_members(
        self,
        db: AsyncSession,
        project_id: UUID,
        acting_user_id: UUID,
    ) -> List[MemberResponse]:
        project = await self.get_project(db, project_id, acting_user_id)

        try:
            owner = await db.get(User, project.owner_id)
            result = await db.execute(
                select(ProjectMember, User)
                .join(User, User.id == ProjectMember.user_id)
                .where(ProjectMember.project_id == project_id)
                .order_by(ProjectMember.joined_at.asc())
            )
            rows = result.all()
        except SQLAlchemyError as e:
            logger.error("Database error listing members of %s: %s", project_id, str(e))
            raise DatabaseError(
                message="Could not retrieve project members. Please try again.",
                context={"project_id": str(project_id)},
            )

        members = [
            MemberResponse(
                user_id=owner.id,
                name=owner.name,
                email=owner.email,
                role="owner",
                joined_at=None,
            )
        ]
        members.extend(
            MemberResponse(
                user_id=user.id,
                name=user.name,
                email=user.email,
                role="member",
                joined_at=member.joined_at,
            )
            for member, user in rows
        )
        return members

    async def remove_member(
        self,
        db: AsyncSession,
        project_id: UUID,
        acting_user_id: UUID,
        member_id: UUID,
    ) -> None:
        """
        Remove a user from the project's member set.

        Raises:
            NotFoundError: Project missing, or member_id is not a stored member
            ForbiddenError: Caller is not the owner
            InvalidStateError: member_id is the owner
        """
        project = await self._load(db, project_id)
        if project.owner_id != acting_user_id:
            raise ForbiddenError(message="Only the project owner can remove members")
        if member_id == project.owner_id:
            raise InvalidStateError(message="The project owner cannot be removed")

        result = await db.execute(
            delete(ProjectMember)
            .where(
                ProjectMember.project_id == project_id,
                ProjectMember.user_id == member_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError(resource="project member", resource_id=str(member_id))

        logger.info("User %s removed from project %s by owner", member_id, project_id)

    async def _load(self, db: AsyncSession, project_id: UUID) -> Project:
        result = await db.execute(
            select(Project)
            .where(Project.id == project_id)
            .execution_options(populate_existing=True)
        )
        project = result.scalar_one_or_none()
        if project is None:
            raise NotFoundError(resource="project", resource_id=str(project_id))
        return project


# ── Singleton Instance ────────────────────────────────────────────────────
project_service = ProjectService()
