"""
Taskboard Backend — Invite Route Handlers
===========================================

What:  Invitee-side invite endpoints, addressed by token.
Who:   The person who received an invite link.

    GET  /api/invites                   my pending invites
    GET  /api/invites/{token}           preview (no principal needed)
    POST /api/invites/{token}/accept    principal optional
    POST /api/invites/{token}/reject
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.database import get_db_session, utcnow
from taskboard.deps import get_current_user_id, get_optional_user_id
from taskboard.models.invite import ProjectInvite
from taskboard.models.project import Project
from taskboard.schemas.common import Envelope, ErrorResponse
from taskboard.schemas.invite import AcceptInviteResponse, InvitePreview, InviteResponse
from taskboard.services.invite_service import effective_status, invite_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/invites", tags=["Invites"])

INVITE_ERRORS = {
    400: {"description": "Invite expired", "model": ErrorResponse},
    403: {"description": "Invite addressed to another email", "model": ErrorResponse},
    404: {"description": "Unknown token", "model": ErrorResponse},
    409: {"description": "Invite already processed", "model": ErrorResponse},
}


def _preview(invite: ProjectInvite, project: Project) -> InvitePreview:
    return InvitePreview(
        project_id=project.id,
        project_name=project.name,
        email=invite.email,
        status=effective_status(invite, utcnow()),
        expires_at=invite.expires_at,
    )


@router.get(
    "",
    response_model=Envelope[List[InviteResponse]],
    summary="List pending invites addressed to the caller",
)
async def list_my_invites(
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[List[InviteResponse]]:
    invites = await invite_service.list_my_invites(db, user_id)
    return Envelope(data=[InviteResponse.from_invite(i, i.status) for i in invites])


@router.get(
    "/{token}",
    response_model=Envelope[InvitePreview],
    responses={404: {"model": ErrorResponse}},
    summary="Preview an invite",
)
async def preview_invite(
    token: str,
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[InvitePreview]:
    result = await invite_service.preview(db, token)
    return Envelope(data=_preview(result.invite, result.project))


@router.post(
    "/{token}/accept",
    response_model=Envelope[AcceptInviteResponse],
    responses=INVITE_ERRORS,
    summary="Accept an invite",
)
async def accept_invite(
    token: str,
    user_id: Optional[UUID] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[AcceptInviteResponse]:
    """
    Without X-User-ID the token is only validated and the response says
    requires_authentication; the client then signs in and retries.
    """
    result = await invite_service.accept(db, token, acting_user_id=user_id)
    return Envelope(
        data=AcceptInviteResponse(
            outcome=result.outcome.value,
            invite=_preview(result.invite, result.project),
        )
    )


@router.post(
    "/{token}/reject",
    response_model=Envelope[InviteResponse],
    responses=INVITE_ERRORS,
    summary="Reject an invite",
)
async def reject_invite(
    token: str,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[InviteResponse]:
    invite = await invite_service.reject(db, token, acting_user_id=user_id)
    return Envelope(data=InviteResponse.from_invite(invite, invite.status))
