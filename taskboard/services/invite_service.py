"""
Taskboard Backend — Invite Ledger
===================================

What:  Issues project invites and moves them through their state machine.
How:   Every invariant that must survive concurrent requests is enforced by
       the database, never by an in-process lock:
         - one pending invite per (project, email): partial unique index
         - accept/reject exactly once: conditional UPDATE ... WHERE status = 'pending'
         - one membership per (project, user): unique constraint
Who:   Called by the invite routes.

State machine:
    pending ──▶ accepted | rejected | expired     (all terminal)

Expiry is derived, not swept:
    effective_status(invite, now) reports a stored 'pending' invite whose
    expires_at has passed as 'expired'. Every read applies it; every write
    is guarded by it (the conditional UPDATE also checks expires_at > now).
    When accept/reject hits such a record, the 'expired' status is persisted
    and committed before ExpiredError is raised.

Error taxonomy:
    accept()  NotFound | Expired | AlreadyAccepted | AlreadyRejected |
              Forbidden (email mismatch) | Conflict (already a member)
    reject()  NotFound | Expired | AlreadyProcessed (any other non-pending
              state) | Forbidden (email mismatch)
"""

import enum
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.config import settings
from taskboard.database import utcnow
from taskboard.exceptions import (
    AlreadyAcceptedError,
    AlreadyProcessedError,
    AlreadyRejectedError,
    ConflictError,
    ExpiredError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
)
from taskboard.models.invite import TERMINAL_STATUSES, InviteStatus, ProjectInvite
from taskboard.models.project import Project, ProjectMember, ProjectStatus
from taskboard.models.user import User, normalize_email
from taskboard.services.hooks import on_invite_issued
from taskboard.services.membership import membership_guard

logger = logging.getLogger(__name__)

# 32 random bytes → 256 bits of entropy, 43 URL-safe characters
TOKEN_BYTES = 32


def generate_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def effective_status(invite: ProjectInvite, now: Optional[datetime] = None) -> str:
    """
    Status of an invite as every caller must see it.

    A stored 'pending' invite past its expiry is 'expired'. Terminal stored
    statuses are returned unchanged.
    """
    now = now or utcnow()
    if invite.status == InviteStatus.PENDING and invite.expires_at <= now:
        return InviteStatus.EXPIRED.value
    return invite.status


def transition_allowed(current: str, target: str) -> bool:
    """Only pending may move, and only into a terminal state."""
    return current == InviteStatus.PENDING and target in TERMINAL_STATUSES


def require_transition(current: str, target: str) -> None:
    if not transition_allowed(current, target):
        raise InvalidStateError(
            message=f"Invitation cannot move from {current} to {target}",
            context={"from": current, "to": target},
        )


class AcceptOutcome(str, enum.Enum):
    ACCEPTED = "accepted"
    REQUIRES_AUTHENTICATION = "requires_authentication"


@dataclass
class AcceptResult:
    outcome: AcceptOutcome
    invite: ProjectInvite
    project: Project


class InviteService:
    """
    Business logic for project invites.

    Responsibilities:
        - issue(): create a pending invite (owner only)
        - accept() / reject(): single atomic transition out of pending
        - preview(), list_project_invites(), list_my_invites(): reads with
          expiry applied
    """

    # ══════════════════════════════════════════════════════════════════════
    # Issue
    # ══════════════════════════════════════════════════════════════════════

    async def issue(
        self,
        db: AsyncSession,
        project_id: UUID,
        inviter_id: UUID,
        email: str,
        now: Optional[datetime] = None,
    ) -> ProjectInvite:
        """
        Invite an email address to a project.

        Workflow:
            1. Load project; only its owner may invite
            2. Reject if the email already belongs to the owner or a member
            3. Flip stale pending invites for the pair to 'expired' so they
               release the pending slot
            4. Reject if an unexpired pending invite exists
            5. Insert; the partial unique index arbitrates concurrent issuers
            6. Notify the invitee if they already have an account

        Raises:
            NotFoundError: Project does not exist
            ForbiddenError: Inviter is not the project owner
            InvalidStateError: Project is not active
            ConflictError: Already a member, or a pending invite exists
        """
        now = now or utcnow()
        email = normalize_email(email)

        project = await self._load_project(db, project_id)
        if project.owner_id != inviter_id:
            raise ForbiddenError(
                message="Only the project owner can invite members",
                context={"project_id": str(project_id)},
            )
        if project.status != ProjectStatus.ACTIVE:
            raise InvalidStateError(
                message=f"Cannot invite members to a project that is {project.status}",
                context={"project_id": str(project_id)},
            )

        invitee = await self._find_user_by_email(db, email)
        if invitee is not None and await membership_guard.is_project_member(
            db, invitee.id, project_id
        ):
            raise ConflictError(
                message=f"{email} is already a member of this project",
                context={"project_id": str(project_id)},
            )

        await db.execute(
            update(ProjectInvite)
            .where(
                ProjectInvite.project_id == project_id,
                ProjectInvite.email == email,
                ProjectInvite.status == InviteStatus.PENDING.value,
                ProjectInvite.expires_at <= now,
            )
            .values(status=InviteStatus.EXPIRED.value, responded_at=now)
            .execution_options(synchronize_session=False)
        )

        existing = await db.execute(
            select(ProjectInvite.id).where(
                ProjectInvite.project_id == project_id,
                ProjectInvite.email == email,
                ProjectInvite.status == InviteStatus.PENDING.value,
            )
        )
        if existing.first() is not None:
            raise ConflictError(
                message=f"A pending invitation for {email} already exists",
                context={"project_id": str(project_id)},
            )

        invite = ProjectInvite(
            project_id=project_id,
            email=email,
            inviter_id=inviter_id,
            token=generate_token(),
            status=InviteStatus.PENDING.value,
            expires_at=now + timedelta(days=settings.invite_ttl_days),
            created_at=now,
        )
        db.add(invite)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            logger.info(
                "Concurrent invite for project %s / %s lost the uniqueness race",
                project_id,
                email,
            )
            raise ConflictError(
                message=f"A pending invitation for {email} already exists",
                context={"project_id": str(project_id)},
            )

        logger.info("Invite %s issued for project %s by %s", invite.id, project_id, inviter_id)
        await on_invite_issued(db, invite, project)
        return invite

    # ══════════════════════════════════════════════════════════════════════
    # Accept / Reject
    # ══════════════════════════════════════════════════════════════════════

    async def accept(
        self,
        db: AsyncSession,
        token: str,
        acting_user_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> AcceptResult:
        """
        Accept an invite on behalf of the acting user.

        Without an acting user this is a read-only validity check: the token
        is verified and REQUIRES_AUTHENTICATION is returned, nothing changes.
        An expired invite still raises ExpiredError but is not marked expired;
        that write is left to an authenticated accept or reject.

        Concurrency:
            The pending → accepted transition is a single UPDATE conditioned
            on status = 'pending' AND expires_at > now. Of N concurrent
            callers exactly one sees rowcount 1; the others re-read the
            record and get AlreadyAcceptedError.
        """
        now = now or utcnow()
        invite = await self._load_by_token(db, token)
        await self._ensure_open(
            db, invite, now, coarse=False, persist_expiry=acting_user_id is not None
        )
        project = await self._load_project(db, invite.project_id)

        if acting_user_id is None:
            return AcceptResult(
                outcome=AcceptOutcome.REQUIRES_AUTHENTICATION,
                invite=invite,
                project=project,
            )

        user = await self._require_matching_user(db, invite, acting_user_id)

        if await membership_guard.is_project_member(db, user.id, project.id):
            # A concurrent accept may have just committed: report that first.
            await self._reload(db, invite)
            await self._ensure_open(db, invite, now, coarse=False)
            raise ConflictError(
                message="You are already a member of this project",
                context={"project_id": str(project.id)},
            )

        changed = await self._transition(db, invite, InviteStatus.ACCEPTED, now)
        if not changed:
            await self._raise_lost_race(db, invite, now, coarse=False)

        db.add(ProjectMember(project_id=project.id, user_id=user.id, joined_at=now))
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise ConflictError(
                message="You are already a member of this project",
                context={"project_id": str(project.id)},
            )

        await self._reload(db, invite)
        logger.info("Invite %s accepted by %s; joined project %s", invite.id, user.id, project.id)
        return AcceptResult(outcome=AcceptOutcome.ACCEPTED, invite=invite, project=project)

    async def reject(
        self,
        db: AsyncSession,
        token: str,
        acting_user_id: UUID,
        now: Optional[datetime] = None,
    ) -> ProjectInvite:
        """
        Decline an invite.

        Every non-pending state other than expiry is reported as the same
        AlreadyProcessedError.
        """
        now = now or utcnow()
        invite = await self._load_by_token(db, token)
        await self._ensure_open(db, invite, now, coarse=True)
        await self._require_matching_user(db, invite, acting_user_id)

        changed = await self._transition(db, invite, InviteStatus.REJECTED, now)
        if not changed:
            await self._raise_lost_race(db, invite, now, coarse=True)

        await self._reload(db, invite)
        logger.info("Invite %s rejected by %s", invite.id, acting_user_id)
        return invite

    # ══════════════════════════════════════════════════════════════════════
    # Reads
    # ══════════════════════════════════════════════════════════════════════

    async def preview(
        self,
        db: AsyncSession,
        token: str,
    ) -> AcceptResult:
        """Resolve a token for display. Never mutates state."""
        invite = await self._load_by_token(db, token)
        project = await self._load_project(db, invite.project_id)
        return AcceptResult(
            outcome=AcceptOutcome.REQUIRES_AUTHENTICATION,
            invite=invite,
            project=project,
        )

    async def list_project_invites(
        self,
        db: AsyncSession,
        project_id: UUID,
        acting_user_id: UUID,
        status: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[ProjectInvite]:
        """
        Invites of a project, newest first, filtered by EFFECTIVE status.

        Raises:
            NotFoundError / ForbiddenError: missing project / caller not owner
        """
        now = now or utcnow()
        project = await self._load_project(db, project_id)
        if project.owner_id != acting_user_id:
            raise ForbiddenError(message="Only the project owner can view its invitations")

        result = await db.execute(
            select(ProjectInvite)
            .where(ProjectInvite.project_id == project_id)
            .order_by(ProjectInvite.created_at.desc())
            .execution_options(populate_existing=True)
        )
        invites = list(result.scalars().all())
        if status is not None:
            invites = [i for i in invites if effective_status(i, now) == status]
        return invites

    async def list_my_invites(
        self,
        db: AsyncSession,
        acting_user_id: UUID,
        now: Optional[datetime] = None,
    ) -> List[ProjectInvite]:
        """Effectively pending invites addressed to the acting user's email."""
        now = now or utcnow()
        user = await db.get(User, acting_user_id)
        if user is None:
            raise NotFoundError(resource="user", resource_id=str(acting_user_id))

        result = await db.execute(
            select(ProjectInvite)
            .where(
                ProjectInvite.email == normalize_email(user.email),
                ProjectInvite.status == InviteStatus.PENDING.value,
                ProjectInvite.expires_at > now,
            )
            .order_by(ProjectInvite.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    # ══════════════════════════════════════════════════════════════════════
    # Internals
    # ══════════════════════════════════════════════════════════════════════

    async def _load_by_token(self, db: AsyncSession, token: str) -> ProjectInvite:
        result = await db.execute(
            select(ProjectInvite)
            .where(ProjectInvite.token == token)
            .execution_options(populate_existing=True)
        )
        invite = result.scalar_one_or_none()
        if invite is None:
            # Never echo the token back: it is a secret.
            raise NotFoundError(resource="invitation")
        return invite

    async def _load_project(self, db: AsyncSession, project_id: UUID) -> Project:
        result = await db.execute(
            select(Project)
            .where(Project.id == project_id)
            .execution_options(populate_existing=True)
        )
        project = result.scalar_one_or_none()
        if project is None:
            raise NotFoundError(resource="project", resource_id=str(project_id))
        return project

    async def _find_user_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == normalize_email(email)))
        return result.scalar_one_or_none()

    async def _require_matching_user(
        self,
        db: AsyncSession,
        invite: ProjectInvite,
        acting_user_id: UUID,
    ) -> User:
        user = await db.get(User, acting_user_id)
        if user is None:
            raise NotFoundError(resource="user", resource_id=str(acting_user_id))
        if normalize_email(user.email) != invite.email:
            logger.warning(
                "User %s tried to use invite %s addressed to another email",
                acting_user_id,
                invite.id,
            )
            raise ForbiddenError(message="This invitation was sent to a different email address")
        return user

    async def _reload(self, db: AsyncSession, invite: ProjectInvite) -> None:
        await db.refresh(invite)

    async def _ensure_open(
        self,
        db: AsyncSession,
        invite: ProjectInvite,
        now: datetime,
        coarse: bool,
        persist_expiry: bool = True,
    ) -> None:
        """
        Raise the error matching the invite's effective status unless it is pending.

        coarse=True (reject path) folds accepted/rejected into AlreadyProcessedError.
        persist_expiry=False reports expiry without storing it.
        """
        status = effective_status(invite, now)
        if status == InviteStatus.PENDING:
            return

        if status == InviteStatus.EXPIRED:
            if persist_expiry and invite.status == InviteStatus.PENDING:
                await self._persist_expiry(db, invite, now)
            raise ExpiredError(context={"expired_at": invite.expires_at.isoformat()})

        if coarse:
            raise AlreadyProcessedError()
        if status == InviteStatus.ACCEPTED:
            raise AlreadyAcceptedError()
        if status == InviteStatus.REJECTED:
            raise AlreadyRejectedError()
        raise InvalidStateError(context={"status": status})

    async def _persist_expiry(
        self,
        db: AsyncSession,
        invite: ProjectInvite,
        now: datetime,
    ) -> None:
        """
        Store 'expired' for a pending invite found past its expiry.

        Committed immediately: the ExpiredError raised right after would
        otherwise roll the write back with the rest of the request.
        """
        result = await db.execute(
            update(ProjectInvite)
            .where(
                ProjectInvite.id == invite.id,
                ProjectInvite.status == InviteStatus.PENDING.value,
            )
            .values(status=InviteStatus.EXPIRED.value, responded_at=now)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        if result.rowcount:
            logger.info("Invite %s marked expired", invite.id)

    async def _transition(
        self,
        db: AsyncSession,
        invite: ProjectInvite,
        target: InviteStatus,
        now: datetime,
    ) -> bool:
        """
        Conditional pending → target update. Returns False if the record was
        no longer pending (or had expired) at write time.
        """
        require_transition(InviteStatus.PENDING.value, target.value)

        values = {"status": target.value, "responded_at": now}
        if target == InviteStatus.ACCEPTED:
            values["accepted_at"] = now

        result = await db.execute(
            update(ProjectInvite)
            .where(
                ProjectInvite.id == invite.id,
                ProjectInvite.status == InviteStatus.PENDING.value,
                ProjectInvite.expires_at > now,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _raise_lost_race(
        self,
        db: AsyncSession,
        invite: ProjectInvite,
        now: datetime,
        coarse: bool,
    ) -> None:
        await self._reload(db, invite)
        await self._ensure_open(db, invite, now, coarse=coarse)
        # Still pending after a failed conditional update: expires_at crossed
        # `now` between read and write.
        raise ExpiredError()


# ── Singleton Instance ────────────────────────────────────────────────────
invite_service = InviteService()
