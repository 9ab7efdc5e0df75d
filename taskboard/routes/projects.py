"""
Taskboard Backend — Project Route Handlers
============================================

What:  Project CRUD, member management and owner-side invite endpoints.
Who:   Project owners and members.

    POST   /api/projects
    GET    /api/projects/{project_id}
    GET    /api/projects/{project_id}/members
    DELETE /api/projects/{project_id}/members/{user_id}
    POST   /api/projects/{project_id}/invites
    GET    /api/projects/{project_id}/invites
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.database import get_db_session, utcnow
from taskboard.deps import get_current_user_id
from taskboard.models.invite import InviteStatus
from taskboard.schemas.common import Envelope, ErrorResponse
from taskboard.schemas.invite import InviteCreate, InviteResponse, IssuedInviteResponse
from taskboard.schemas.project import MemberResponse, ProjectCreate, ProjectResponse
from taskboard.services.invite_service import effective_status, invite_service
from taskboard.services.project_service import project_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects", tags=["Projects"])


@router.post(
    "",
    response_model=Envelope[ProjectResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create a project owned by the caller",
)
async def create_project(
    body: ProjectCreate,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[ProjectResponse]:
    project = await project_service.create_project(db, owner_id=user_id, data=body)
    return Envelope(data=ProjectResponse.model_validate(project))


@router.get(
    "/{project_id}",
    response_model=Envelope[ProjectResponse],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Get a project (owner and members only)",
)
async def get_project(
    project_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[ProjectResponse]:
    project = await project_service.get_project(db, project_id, user_id)
    return Envelope(data=ProjectResponse.model_validate(project))


@router.get(
    "/{project_id}/members",
    response_model=Envelope[List[MemberResponse]],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="List the owner and members of a project",
)
async def list_members(
    project_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[List[MemberResponse]]:
    members = await project_service.list_members(db, project_id, user_id)
    return Envelope(data=members)


@router.delete(
    "/{project_id}/members/{member_id}",
    response_model=Envelope[None],
    responses={
        400: {"description": "Attempt to remove the owner", "model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Remove a member (owner only)",
)
async def remove_member(
    project_id: UUID,
    member_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[None]:
    await project_service.remove_member(db, project_id, user_id, member_id)
    return Envelope(data=None)


@router.post(
    "/{project_id}/invites",
    response_model=Envelope[IssuedInviteResponse],
    status_code=status.HTTP_201_CREATED,
    responses={
        403: {"description": "Caller is not the owner", "model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"description": "Already a member, or invite pending", "model": ErrorResponse},
    },
    summary="Invite an email address to the project",
)
async def issue_invite(
    project_id: UUID,
    body: InviteCreate,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[IssuedInviteResponse]:
    """
    The response is the only place the invite token is ever returned; the
    owner forwards it to the invitee as part of the invite link.
    """
    invite = await invite_service.issue(db, project_id, user_id, body.email)
    base = InviteResponse.from_invite(invite, invite.status)
    return Envelope(data=IssuedInviteResponse(**base.model_dump(), token=invite.token))


@router.get(
    "/{project_id}/invites",
    response_model=Envelope[List[InviteResponse]],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="List the project's invites (owner only)",
)
async def list_project_invites(
    project_id: UUID,
    status_filter: Optional[InviteStatus] = Query(
        default=None,
        alias="status",
        description="Filter by effective status",
    ),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[List[InviteResponse]]:
    now = utcnow()
    invites = await invite_service.list_project_invites(
        db,
        project_id,
        user_id,
        status=status_filter.value if status_filter else None,
        now=now,
    )
    return Envelope(
        data=[InviteResponse.from_invite(i, effective_status(i, now)) for i in invites]
    )
