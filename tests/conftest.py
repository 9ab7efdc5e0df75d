"""
Taskboard Backend — Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every test gets its own file-backed SQLite database (aiosqlite) in
       tmp_path with the full schema created from the ORM metadata. Separate
       sessions open separate connections, so the concurrency tests exercise
       real database locking and real constraint violations.

Fixture Hierarchy (all function-scoped):
    db_engine ─┬─ session_factory ─┬─ db            one session for the test body
               │                   └─ test_client   HTTPX client, app sessions
               │                                    bound to the same database
    make_user / make_project / make_member          committed row factories
    mock_sink                                       captures delivered notifications
"""

import os
import tempfile
from typing import AsyncGenerator, Optional
from unittest.mock import AsyncMock

# Override settings for testing BEFORE any taskboard imports
os.environ["DATABASE_URL"] = (
    f"sqlite+aiosqlite:///{tempfile.mkdtemp(prefix='taskboard_test_')}/app.db"
)
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["NOTIFICATION_SINK"] = "log"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_REQUESTS"] = "100000"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from taskboard.database import Base, get_db_session
from taskboard.models import Project, ProjectMember, User
from taskboard.models.user import normalize_email
from taskboard.services.delivery import (
    NotificationSink,
    discard_outbox,
    flush_outbox,
    set_sink,
)


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """
    Fresh SQLite database file per test.

    timeout=30: a writer blocked by another session's open write transaction
    waits instead of failing with "database is locked".
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'taskboard.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ══════════════════════════════════════════════════════════════════════════
# Row factories
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def make_user(session_factory):
    """
    Usage:
        alice = await make_user("Alice")              # alice@example.com
        bob = await make_user("Bob", "Bob@Example.COM")
    """
    async def _make(name: str, email: Optional[str] = None) -> User:
        async with session_factory() as session:
            user = User(
                name=name,
                email=normalize_email(email or f"{name.lower()}@example.com"),
                password_hash="not-a-real-hash",
            )
            session.add(user)
            await session.commit()
            return user

    return _make


@pytest.fixture
def make_project(session_factory):
    async def _make(owner: User, name: str = "Launch") -> Project:
        async with session_factory() as session:
            project = Project(name=name, owner_id=owner.id)
            session.add(project)
            await session.commit()
            return project

    return _make


@pytest.fixture
def make_member(session_factory):
    async def _make(project: Project, user: User) -> ProjectMember:
        async with session_factory() as session:
            member = ProjectMember(project_id=project.id, user_id=user.id)
            session.add(member)
            await session.commit()
            return member

    return _make


# ══════════════════════════════════════════════════════════════════════════
# Delivery
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_sink():
    """
    A sink whose deliver() is an AsyncMock, installed as the process sink.

    Usage:
        mock_sink.deliver.assert_awaited_once()
    """
    sink = AsyncMock(spec=NotificationSink)
    sink.health_check = AsyncMock(return_value=True)
    set_sink(sink)
    yield sink
    set_sink(None)


# ══════════════════════════════════════════════════════════════════════════
# HTTP client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(session_factory):
    """
    HTTPX AsyncClient talking to the FastAPI app in-process.

    get_db_session is overridden to open sessions on the per-test database;
    the override keeps the production contract (commit, then deliver).

    Usage:
        response = await test_client.get("/api/notifications", headers=auth(alice))
    """
    from taskboard.main import app

    async def override_get_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                discard_outbox(session)
                raise
        await flush_outbox(session)

    app.dependency_overrides[get_db_session] = override_get_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    """auth(user) → identity header for a request made as that user."""
    def _headers(user: User) -> dict:
        return {"X-User-ID": str(user.id)}

    return _headers
