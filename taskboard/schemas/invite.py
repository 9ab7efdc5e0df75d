"""
Taskboard Backend — Invite Schemas
====================================

What:  Request/response models for the invite endpoints.

Token exposure:
    IssuedInviteResponse (returned once, to the owner who issued the invite)
    is the only schema that carries the token. Listings and previews never
    do.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from taskboard.models.invite import ProjectInvite


class InviteCreate(BaseModel):
    """Body of POST /api/projects/{project_id}/invites."""
    email: EmailStr = Field(description="Address of the person to invite")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase without surrounding whitespace."""
        return v.strip().lower()


class InviteResponse(BaseModel):
    """An invite as seen by its project owner. `status` is the effective status."""
    id: uuid.UUID
    project_id: uuid.UUID
    email: str
    inviter_id: uuid.UUID
    status: str = Field(description="pending, accepted, rejected, expired (expiry already applied)")
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_invite(cls, invite: ProjectInvite, status: str) -> "InviteResponse":
        return cls(
            id=invite.id,
            project_id=invite.project_id,
            email=invite.email,
            inviter_id=invite.inviter_id,
            status=status,
            expires_at=invite.expires_at,
            accepted_at=invite.accepted_at,
            responded_at=invite.responded_at,
            created_at=invite.created_at,
        )


class IssuedInviteResponse(InviteResponse):
    """Returned by IssueInvite only: includes the secret token for the invite link."""
    token: str


class InvitePreview(BaseModel):
    """Public view of an invite, resolved from its token."""
    project_id: uuid.UUID
    project_name: str
    email: str
    status: str
    expires_at: datetime


class AcceptInviteResponse(BaseModel):
    """
    Result of POST /api/invites/{token}/accept.

    outcome:
        accepted                 The caller joined the project.
        requires_authentication  Token is valid but no principal was supplied;
                                 nothing was changed.
    """
    outcome: str
    invite: InvitePreview
