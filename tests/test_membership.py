"""
Taskboard Backend — Membership Guard & Project Service Tests
==============================================================

What we test:
    ✅ Owner counts as a member without a member row
    ✅ Missing ids fail closed (False, never an exception)
    ✅ Task predicates: mutate (creator/assignee), delete (creator), access
    ✅ Member listing puts the owner first
    ✅ remove_member: owner only, never the owner, 404 for non-members
"""

from uuid import uuid4

import pytest

from taskboard.exceptions import ForbiddenError, InvalidStateError, NotFoundError
from taskboard.models import Task
from taskboard.schemas.project import ProjectCreate
from taskboard.services.membership import MembershipGuard
from taskboard.services.project_service import ProjectService


class TestMembershipGuard:

    def setup_method(self):
        self.guard = MembershipGuard()

    @pytest.mark.asyncio
    async def test_owner_is_member_without_row(self, db, make_user, make_project):
        alice = await make_user("Alice")
        project = await make_project(alice)

        assert await self.guard.is_project_owner(db, alice.id, project.id) is True
        assert await self.guard.has_member_row(db, alice.id, project.id) is False
        assert await self.guard.is_project_member(db, alice.id, project.id) is True

    @pytest.mark.asyncio
    async def test_stored_member(self, db, make_user, make_project, make_member):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        project = await make_project(alice)
        await make_member(project, bob)

        assert await self.guard.is_project_owner(db, bob.id, project.id) is False
        assert await self.guard.is_project_member(db, bob.id, project.id) is True

    @pytest.mark.asyncio
    async def test_fails_closed(self, db, make_user, make_project):
        alice = await make_user("Alice")
        project = await make_project(alice)

        assert await self.guard.is_project_member(db, None, project.id) is False
        assert await self.guard.is_project_member(db, alice.id, None) is False
        assert await self.guard.is_project_member(db, alice.id, uuid4()) is False
        assert await self.guard.can_access_task(db, alice.id, None) is False

    def test_task_mutation_rules(self):
        creator, assignee, other = uuid4(), uuid4(), uuid4()
        task = Task(created_by=creator, assigned_to=assignee)

        assert self.guard.can_mutate_task(creator, task) is True
        assert self.guard.can_mutate_task(assignee, task) is True
        assert self.guard.can_mutate_task(other, task) is False
        assert self.guard.can_delete_task(creator, task) is True
        assert self.guard.can_delete_task(assignee, task) is False

    @pytest.mark.asyncio
    async def test_project_task_access(self, db, make_user, make_project, make_member):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        eve = await make_user("Eve")
        project = await make_project(alice)
        await make_member(project, bob)
        task = Task(created_by=alice.id, project_id=project.id)

        assert await self.guard.can_access_task(db, bob.id, task) is True
        assert await self.guard.can_access_task(db, eve.id, task) is False


class TestProjectService:

    def setup_method(self):
        self.service = ProjectService()

    @pytest.mark.asyncio
    async def test_create_and_get(self, db, make_user):
        alice = await make_user("Alice")
        eve = await make_user("Eve")

        project = await self.service.create_project(
            db, alice.id, ProjectCreate(name="  Roadmap  ")
        )
        await db.commit()

        assert project.name == "Roadmap"
        assert project.owner_id == alice.id
        assert (await self.service.get_project(db, project.id, alice.id)).id == project.id
        with pytest.raises(ForbiddenError):
            await self.service.get_project(db, project.id, eve.id)

    @pytest.mark.asyncio
    async def test_list_members_owner_first(self, db, make_user, make_project, make_member):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        carol = await make_user("Carol")
        project = await make_project(alice)
        await make_member(project, bob)
        await make_member(project, carol)

        members = await self.service.list_members(db, project.id, bob.id)

        assert [(m.name, m.role) for m in members] == [
            ("Alice", "owner"),
            ("Bob", "member"),
            ("Carol", "member"),
        ]

    @pytest.mark.asyncio
    async def test_remove_member(self, db, make_user, make_project, make_member):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        project = await make_project(alice)
        await make_member(project, bob)

        await self.service.remove_member(db, project.id, alice.id, bob.id)
        await db.commit()

        members = await self.service.list_members(db, project.id, alice.id)
        assert [m.user_id for m in members] == [alice.id]

    @pytest.mark.asyncio
    async def test_remove_member_rules(self, db, make_user, make_project, make_member):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        carol = await make_user("Carol")
        project = await make_project(alice)
        await make_member(project, bob)

        with pytest.raises(ForbiddenError):
            await self.service.remove_member(db, project.id, bob.id, bob.id)
        with pytest.raises(InvalidStateError):
            await self.service.remove_member(db, project.id, alice.id, alice.id)
        with pytest.raises(NotFoundError):
            await self.service.remove_member(db, project.id, alice.id, carol.id)
        with pytest.raises(NotFoundError):
            await self.service.remove_member(db, uuid4(), alice.id, bob.id)
