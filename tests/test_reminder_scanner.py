"""
Taskboard Backend — Reminder Scanner Tests
============================================

What we test:
    ✅ Due-soon and overdue tasks produce exactly one task_due each
    ✅ Passed reminders produce exactly one task_reminder
    ✅ A second cycle over unchanged data selects nothing
    ✅ Moving the due date produces one fresh alert
    ✅ Done tasks and far-future dates are ignored
    ✅ Recipient is the assignee, falling back to the creator
    ✅ Reassignment with an unchanged due date alerts the new assignee
    ✅ A task completed after selection is skipped
    ✅ An overlapping cycle that inserts first is counted as a duplicate
    ✅ run_scheduled_cycle commits and hands new rows to the sink
    ✅ start_scheduler() honours SCHEDULER_ENABLED
"""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select

from taskboard.database import utcnow
from taskboard.models import Notification, NotificationType, Task, TaskStatus
from taskboard.schemas.task import TaskUpdate
from taskboard.services import reminder_scanner as scanner_module
from taskboard.services.reminder_scanner import (
    ReminderScanner,
    run_scheduled_cycle,
    scheduler_status,
    start_scheduler,
)
from taskboard.services.task_service import task_service


@pytest.fixture
def make_task(session_factory):
    """
    Usage:
        task = await make_task(alice, due_date=now + timedelta(hours=2))
    """
    async def _make(creator, assignee=None, status="todo", **fields) -> Task:
        now = utcnow()
        async with session_factory() as session:
            task = Task(
                title=fields.pop("title", "Quarterly report"),
                created_by=creator.id,
                assigned_to=assignee.id if assignee else None,
                status=status,
                completed_at=now if status == "done" else None,
                created_at=now,
                updated_at=now,
                **fields,
            )
            session.add(task)
            await session.commit()
            return task

    return _make


async def notifications_of_type(session_factory, notification_type):
    async with session_factory() as session:
        result = await session.execute(
            select(Notification).where(Notification.type == notification_type)
        )
        return list(result.scalars().all())


class TestRunCycle:

    def setup_method(self):
        self.scanner = ReminderScanner(due_soon_window=timedelta(hours=24))

    @pytest.mark.asyncio
    async def test_due_soon_and_overdue(self, db, session_factory, make_user, make_task):
        alice = await make_user("Alice")
        now = utcnow()
        soon = await make_task(alice, title="Soon", due_date=now + timedelta(hours=3))
        late = await make_task(alice, title="Late", due_date=now - timedelta(hours=1))
        await make_task(alice, title="Later", due_date=now + timedelta(days=10))

        result = await self.scanner.run_cycle(db, now=now)
        await db.commit()

        assert result.due_sent == 2
        due = await notifications_of_type(session_factory, "task_due")
        titles = {n.related_task_id: n.title for n in due}
        assert titles == {soon.id: "Task due soon", late.id: "Task overdue"}

    @pytest.mark.asyncio
    async def test_reminder_passed(self, db, session_factory, make_user, make_task):
        alice = await make_user("Alice")
        now = utcnow()
        task = await make_task(alice, reminder=now - timedelta(minutes=5))
        await make_task(alice, title="Not yet", reminder=now + timedelta(hours=1))

        result = await self.scanner.run_cycle(db, now=now)
        await db.commit()

        assert result.reminders_sent == 1
        (reminder,) = await notifications_of_type(session_factory, "task_reminder")
        assert reminder.related_task_id == task.id
        assert reminder.recipient_id == alice.id

    @pytest.mark.asyncio
    async def test_second_cycle_sends_nothing(self, db, session_factory, make_user, make_task):
        alice = await make_user("Alice")
        now = utcnow()
        await make_task(
            alice,
            due_date=now + timedelta(hours=1),
            reminder=now - timedelta(minutes=1),
        )

        first = await self.scanner.run_cycle(db, now=now)
        await db.commit()
        second = await self.scanner.run_cycle(db, now=now + timedelta(minutes=15))
        await db.commit()

        assert (first.due_sent, first.reminders_sent) == (1, 1)
        assert (second.due_sent, second.reminders_sent) == (0, 0)
        assert (second.duplicates, second.skipped) == (0, 0)
        assert len(await notifications_of_type(session_factory, "task_due")) == 1
        assert len(await notifications_of_type(session_factory, "task_reminder")) == 1

    @pytest.mark.asyncio
    async def test_rescheduled_due_date_alerts_again(self, db, session_factory, make_user, make_task):
        alice = await make_user("Alice")
        now = utcnow()
        task = await make_task(alice, due_date=now + timedelta(hours=1))

        await self.scanner.run_cycle(db, now=now)
        await db.commit()

        async with session_factory() as session:
            stored = await session.get(Task, task.id)
            stored.due_date = now + timedelta(hours=5)
            await session.commit()

        result = await self.scanner.run_cycle(db, now=now)
        await db.commit()

        assert result.due_sent == 1
        assert len(await notifications_of_type(session_factory, "task_due")) == 2

    @pytest.mark.asyncio
    async def test_done_tasks_ignored(self, db, make_user, make_task):
        alice = await make_user("Alice")
        now = utcnow()
        await make_task(
            alice,
            status="done",
            due_date=now - timedelta(hours=1),
            reminder=now - timedelta(hours=2),
        )

        result = await self.scanner.run_cycle(db, now=now)

        assert (result.due_sent, result.reminders_sent, result.duplicates) == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_assignee_receives_alert(self, db, session_factory, make_user, make_task):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        now = utcnow()
        await make_task(alice, assignee=bob, due_date=now + timedelta(hours=2))

        await self.scanner.run_cycle(db, now=now)
        await db.commit()

        (due,) = await notifications_of_type(session_factory, "task_due")
        assert due.recipient_id == bob.id

    @pytest.mark.asyncio
    async def test_reassigned_task_alerts_new_assignee(
        self, db, session_factory, make_user, make_task
    ):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        now = utcnow()
        task = await make_task(alice, due_date=now + timedelta(hours=2))

        await self.scanner.run_cycle(db, now=now)
        await db.commit()

        async with session_factory() as session:
            stored = await session.get(Task, task.id)
            stored.assigned_to = bob.id
            await session.commit()

        result = await self.scanner.run_cycle(db, now=now)
        await db.commit()

        assert result.due_sent == 1
        due = await notifications_of_type(session_factory, "task_due")
        assert sorted(n.recipient_id == bob.id for n in due) == [False, True]


class TestConcurrentActivity:

    @pytest.mark.asyncio
    async def test_completed_after_selection_is_skipped(
        self, db, session_factory, make_user, make_task
    ):
        alice = await make_user("Alice")
        now = utcnow()
        task = await make_task(alice, due_date=now - timedelta(hours=1))

        class CompletingScanner(ReminderScanner):
            async def _select(self, db, column, upper_bound, notification_type):
                ids = await super()._select(db, column, upper_bound, notification_type)
                if notification_type is NotificationType.TASK_DUE:
                    async with session_factory() as other:
                        await task_service.update_task(
                            other, task.id, alice.id, TaskUpdate(status=TaskStatus.DONE)
                        )
                        await other.commit()
                return ids

        result = await CompletingScanner(due_soon_window=timedelta(hours=24)).run_cycle(
            db, now=now
        )
        await db.commit()

        assert (result.due_sent, result.skipped) == (0, 1)
        assert await notifications_of_type(session_factory, "task_due") == []

    @pytest.mark.asyncio
    async def test_overlapping_cycle_counts_duplicate(
        self, db, session_factory, make_user, make_task
    ):
        alice = await make_user("Alice")
        now = utcnow()
        await make_task(alice, due_date=now + timedelta(hours=1))

        class OverlappedScanner(ReminderScanner):
            async def _select(self, db, column, upper_bound, notification_type):
                ids = await super()._select(db, column, upper_bound, notification_type)
                if notification_type is NotificationType.TASK_DUE:
                    async with session_factory() as other:
                        await ReminderScanner(self.due_soon_window).run_cycle(other, now=now)
                        await other.commit()
                return ids

        result = await OverlappedScanner(due_soon_window=timedelta(hours=24)).run_cycle(
            db, now=now
        )
        await db.commit()

        assert (result.due_sent, result.duplicates) == (0, 1)
        assert len(await notifications_of_type(session_factory, "task_due")) == 1

    @pytest.mark.asyncio
    async def test_scan_racing_completion(self, session_factory, make_user, make_task):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        now = utcnow()
        task = await make_task(alice, assignee=bob, due_date=now - timedelta(hours=1))
        scanner = ReminderScanner(due_soon_window=timedelta(hours=24))

        async def scan():
            async with session_factory() as session:
                result = await scanner.run_cycle(session, now=now)
                await session.commit()
                return result

        async def complete():
            async with session_factory() as session:
                await task_service.update_task(
                    session, task.id, bob.id, TaskUpdate(status=TaskStatus.DONE)
                )
                await session.commit()

        result, _ = await asyncio.gather(scan(), complete())

        assert result.due_sent + result.skipped <= 1
        assert len(await notifications_of_type(session_factory, "task_due")) == result.due_sent
        assert len(await notifications_of_type(session_factory, "task_completed")) == 1
        async with session_factory() as session:
            stored = await session.get(Task, task.id)
        assert stored.status == "done"


class TestScheduledCycle:

    @pytest.mark.asyncio
    async def test_commits_and_delivers(self, session_factory, make_user, make_task, mock_sink):
        alice = await make_user("Alice")
        await make_task(alice, due_date=utcnow() - timedelta(minutes=30))

        result = await run_scheduled_cycle(session_factory=session_factory)

        assert result.due_sent == 1
        assert len(await notifications_of_type(session_factory, "task_due")) == 1
        mock_sink.deliver.assert_awaited_once()
        delivered = mock_sink.deliver.await_args.args[0]
        assert delivered.type == "task_due"

    @pytest.mark.asyncio
    async def test_failed_cycle_delivers_nothing(self, session_factory, mock_sink):
        class ExplodingScanner(ReminderScanner):
            async def run_cycle(self, db, now=None):
                raise RuntimeError("boom")

        result = await run_scheduled_cycle(
            session_factory=session_factory,
            scanner=ExplodingScanner(),
        )

        assert result is None
        mock_sink.deliver.assert_not_awaited()


class TestSchedulerLifecycle:

    def test_disabled_by_settings(self, monkeypatch):
        monkeypatch.setattr(scanner_module.settings, "scheduler_enabled", False)

        assert start_scheduler() is None
        assert scheduler_status() == "disabled"

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, monkeypatch):
        monkeypatch.setattr(scanner_module.settings, "scheduler_enabled", True)
        monkeypatch.setattr(scanner_module, "run_scheduled_cycle", _noop_cycle)

        try:
            first = start_scheduler()
            second = start_scheduler()
            assert first is second
            assert scheduler_status() == "running"
            assert first.get_job(scanner_module.JOB_ID) is not None
        finally:
            scanner_module.shutdown_scheduler()

        assert scheduler_status() == "stopped"


async def _noop_cycle(*args, **kwargs):
    return None
