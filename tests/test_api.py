"""
Taskboard Backend — HTTP API Tests
====================================

What:  End-to-end tests through the FastAPI app (HTTPX ASGITransport).
How:   Requests go through the full middleware chain and exception handlers;
       sessions are opened on the per-test SQLite database.

What we test:
    ✅ Identity header: missing/malformed → 401 error envelope
    ✅ Invite flow: issue → notify → preview → accept (anonymous, then signed in)
    ✅ Error codes: already_accepted (409), forbidden (403), not_found (404)
    ✅ Task writes produce inbox entries visible right after the 2xx
    ✅ Inbox endpoints: list headers, unread count, read-all, delete
    ✅ Health check and request id propagation
"""

from uuid import uuid4

import pytest


async def create_project(client, auth, owner, name="Launch"):
    response = await client.post("/api/projects", json={"name": name}, headers=auth(owner))
    assert response.status_code == 201
    return response.json()["data"]


async def issue_invite(client, auth, owner, project_id, email):
    response = await client.post(
        f"/api/projects/{project_id}/invites",
        json={"email": email},
        headers=auth(owner),
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestIdentity:

    @pytest.mark.asyncio
    async def test_missing_header(self, test_client):
        response = await test_client.get("/api/notifications")

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "unauthenticated"
        assert body["request_id"] == response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_malformed_header(self, test_client):
        response = await test_client.get(
            "/api/notifications", headers={"X-User-ID": "not-a-uuid"}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, test_client):
        response = await test_client.get("/health", headers={"X-Request-ID": "abc12345"})
        assert response.headers["X-Request-ID"] == "abc12345"


class TestInviteFlow:

    @pytest.mark.asyncio
    async def test_issue_preview_accept(self, test_client, auth, make_user, mock_sink):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        project = await create_project(test_client, auth, alice)

        invite = await issue_invite(test_client, auth, alice, project["id"], "Bob@Example.com")
        assert invite["email"] == "bob@example.com"
        assert invite["status"] == "pending"
        token = invite["token"]

        # Bob is a registered user, so the invite shows up in his inbox
        inbox = await test_client.get("/api/notifications", headers=auth(bob))
        items = inbox.json()["data"]["notifications"]
        assert [n["type"] for n in items] == ["project_invite"]
        mock_sink.deliver.assert_awaited_once()

        preview = await test_client.get(f"/api/invites/{token}")
        assert preview.status_code == 200
        assert preview.json()["data"]["project_name"] == "Launch"
        assert "token" not in preview.json()["data"]

        anonymous = await test_client.post(f"/api/invites/{token}/accept")
        assert anonymous.status_code == 200
        assert anonymous.json()["data"]["outcome"] == "requires_authentication"

        accepted = await test_client.post(f"/api/invites/{token}/accept", headers=auth(bob))
        assert accepted.status_code == 200
        assert accepted.json()["data"]["outcome"] == "accepted"
        assert accepted.json()["data"]["invite"]["status"] == "accepted"

        again = await test_client.post(f"/api/invites/{token}/accept", headers=auth(bob))
        assert again.status_code == 409
        assert again.json()["error"] == "already_accepted"

        members = await test_client.get(
            f"/api/projects/{project['id']}/members", headers=auth(bob)
        )
        assert [m["role"] for m in members.json()["data"]] == ["owner", "member"]

    @pytest.mark.asyncio
    async def test_accept_by_other_user(self, test_client, auth, make_user):
        alice = await make_user("Alice")
        await make_user("Bob")
        eve = await make_user("Eve")
        project = await create_project(test_client, auth, alice)
        invite = await issue_invite(test_client, auth, alice, project["id"], "bob@example.com")

        response = await test_client.post(
            f"/api/invites/{invite['token']}/accept", headers=auth(eve)
        )

        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    @pytest.mark.asyncio
    async def test_duplicate_pending_invite(self, test_client, auth, make_user):
        alice = await make_user("Alice")
        project = await create_project(test_client, auth, alice)
        await issue_invite(test_client, auth, alice, project["id"], "new@example.com")

        response = await test_client.post(
            f"/api/projects/{project['id']}/invites",
            json={"email": "NEW@example.com"},
            headers=auth(alice),
        )

        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    @pytest.mark.asyncio
    async def test_non_owner_cannot_invite(self, test_client, auth, make_user):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        project = await create_project(test_client, auth, alice)

        response = await test_client.post(
            f"/api/projects/{project['id']}/invites",
            json={"email": "carol@example.com"},
            headers=auth(bob),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_reject_and_list(self, test_client, auth, make_user):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        project = await create_project(test_client, auth, alice)
        invite = await issue_invite(test_client, auth, alice, project["id"], "bob@example.com")

        mine = await test_client.get("/api/invites", headers=auth(bob))
        assert [i["id"] for i in mine.json()["data"]] == [invite["id"]]

        rejected = await test_client.post(
            f"/api/invites/{invite['token']}/reject", headers=auth(bob)
        )
        assert rejected.status_code == 200
        assert rejected.json()["data"]["status"] == "rejected"

        listing = await test_client.get(
            f"/api/projects/{project['id']}/invites",
            params={"status": "rejected"},
            headers=auth(alice),
        )
        assert [i["id"] for i in listing.json()["data"]] == [invite["id"]]

        again = await test_client.post(
            f"/api/invites/{invite['token']}/reject", headers=auth(bob)
        )
        assert again.status_code == 409
        assert again.json()["error"] == "already_processed"

    @pytest.mark.asyncio
    async def test_unknown_token(self, test_client, auth, make_user):
        bob = await make_user("Bob")

        response = await test_client.post("/api/invites/nope/accept", headers=auth(bob))

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


class TestTasksAndInbox:

    @pytest.mark.asyncio
    async def test_assignment_visible_after_response(self, test_client, auth, make_user):
        alice = await make_user("Alice")
        bob = await make_user("Bob")

        created = await test_client.post(
            "/api/tasks",
            json={"title": "Review PR", "assigned_to": str(bob.id)},
            headers=auth(alice),
        )
        assert created.status_code == 201
        task_id = created.json()["data"]["id"]

        count = await test_client.get("/api/notifications/unread-count", headers=auth(bob))
        assert count.json()["data"]["unread_count"] == 1

        # Same assignee again: no new notification
        await test_client.patch(
            f"/api/tasks/{task_id}",
            json={"assigned_to": str(bob.id), "title": "Review PR #7"},
            headers=auth(alice),
        )
        done = await test_client.patch(
            f"/api/tasks/{task_id}", json={"status": "done"}, headers=auth(bob)
        )
        assert done.json()["data"]["completed_at"] is not None

        bob_inbox = await test_client.get("/api/notifications", headers=auth(bob))
        assert bob_inbox.headers["X-Total-Count"] == "1"
        alice_inbox = await test_client.get("/api/notifications", headers=auth(alice))
        assert [n["type"] for n in alice_inbox.json()["data"]["notifications"]] == [
            "task_completed"
        ]

    @pytest.mark.asyncio
    async def test_forbidden_task_update(self, test_client, auth, make_user):
        alice = await make_user("Alice")
        eve = await make_user("Eve")
        created = await test_client.post(
            "/api/tasks", json={"title": "Private"}, headers=auth(alice)
        )

        response = await test_client.patch(
            f"/api/tasks/{created.json()['data']['id']}",
            json={"title": "Mine now"},
            headers=auth(eve),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_read_all_and_delete(self, test_client, auth, make_user):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        for title in ("One", "Two"):
            await test_client.post(
                "/api/tasks",
                json={"title": title, "assigned_to": str(bob.id)},
                headers=auth(alice),
            )

        read_all = await test_client.patch("/api/notifications/read-all", headers=auth(bob))
        assert read_all.json()["data"]["updated"] == 2

        inbox = await test_client.get("/api/notifications", headers=auth(bob))
        first_id = inbox.json()["data"]["notifications"][0]["id"]
        assert all(n["read"] for n in inbox.json()["data"]["notifications"])

        forbidden = await test_client.delete(f"/api/notifications/{first_id}", headers=auth(alice))
        assert forbidden.status_code == 404

        deleted = await test_client.delete(f"/api/notifications/{first_id}", headers=auth(bob))
        assert deleted.status_code == 200
        assert deleted.json() == {"success": True, "data": None}

    @pytest.mark.asyncio
    async def test_mark_unknown_notification(self, test_client, auth, make_user):
        bob = await make_user("Bob")

        response = await test_client.patch(
            f"/api/notifications/{uuid4()}/read", headers=auth(bob)
        )
        assert response.status_code == 404


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["delivery"] == "available"
        assert body["scheduler"] == "disabled"
