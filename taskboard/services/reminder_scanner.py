"""
Taskboard Backend — Reminder Scanner
======================================

What:  Periodic sweep emitting task_due and task_reminder notifications.
How:   Selects open tasks whose due date falls inside the due-soon window (or
       has passed) and open tasks whose reminder instant has passed, then
       calls the same notify() used by the mutation hooks. The dedup key
       carries the due/reminder instant, so re-running a cycle never
       re-alerts, and moving a due date produces one fresh alert. Tasks
       whose current instant was already notified are not selected again.
Who:   An APScheduler job started from the FastAPI lifespan.
When:  Every REMINDER_SCAN_INTERVAL_SECONDS (default 15 minutes).

Races with live requests:
    Each candidate task is re-read right before its notification is created.
    A task completed (or rescheduled) between selection and emission is
    skipped. The scanner holds no state between cycles; a crashed or missed
    cycle is simply made up by the next one.

Scheduling:
    max_instances=1 keeps cycles from overlapping; coalesce=True folds runs
    missed while the process was busy into one. A single active scheduler
    per deployment is assumed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from uuid import UUID

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.config import settings
from taskboard.database import async_session_factory, utcnow
from taskboard.models.notification import Notification, NotificationType
from taskboard.models.task import Task, TaskStatus
from taskboard.services.delivery import discard_outbox, flush_outbox
from taskboard.services.notification_service import notification_service

logger = logging.getLogger(__name__)

JOB_ID = "taskboard_reminder_scan"


@dataclass
class ScanResult:
    due_sent: int = 0
    reminders_sent: int = 0
    skipped: int = 0
    duplicates: int = 0


class ReminderScanner:
    """Stateless due-date / reminder sweep. One call = one cycle."""

    def __init__(self, due_soon_window: Optional[timedelta] = None):
        self.due_soon_window = due_soon_window or timedelta(
            hours=settings.due_soon_window_hours
        )

    async def run_cycle(
        self,
        db: AsyncSession,
        now: Optional[datetime] = None,
    ) -> ScanResult:
        """
        Run one sweep inside the given session. The caller commits.

        Returns:
            ScanResult with counts of created notifications, skipped tasks
            (completed or rescheduled since selection) and duplicates
            (the key was taken between selection and insert,
            e.g. by an overlapping cycle).
        """
        now = now or utcnow()
        horizon = now + self.due_soon_window
        result = ScanResult()

        due_candidates = await self._select(
            db, Task.due_date, horizon, NotificationType.TASK_DUE
        )
        for task_id in due_candidates:
            task = await self._reload_open(db, task_id)
            if task is None or task.due_date is None or task.due_date > horizon:
                result.skipped += 1
                continue

            overdue = task.due_date <= now
            notification = await notification_service.notify(
                db,
                recipient_id=task.assigned_to or task.created_by,
                notification_type=NotificationType.TASK_DUE,
                title="Task overdue" if overdue else "Task due soon",
                message=(
                    f'"{task.title}" was due {task.due_date:%Y-%m-%d %H:%M} UTC.'
                    if overdue
                    else f'"{task.title}" is due {task.due_date:%Y-%m-%d %H:%M} UTC.'
                ),
                related_task_id=task.id,
                related_project_id=task.project_id,
                occasion=task.due_date,
            )
            if notification is None:
                result.duplicates += 1
            else:
                result.due_sent += 1

        reminder_candidates = await self._select(
            db, Task.reminder, now, NotificationType.TASK_REMINDER
        )
        for task_id in reminder_candidates:
            task = await self._reload_open(db, task_id)
            if task is None or task.reminder is None or task.reminder > now:
                result.skipped += 1
                continue

            notification = await notification_service.notify(
                db,
                recipient_id=task.assigned_to or task.created_by,
                notification_type=NotificationType.TASK_REMINDER,
                title="Task reminder",
                message=f'Reminder: "{task.title}"',
                related_task_id=task.id,
                related_project_id=task.project_id,
                occasion=task.reminder,
            )
            if notification is None:
                result.duplicates += 1
            else:
                result.reminders_sent += 1

        logger.info(
            "Reminder scan at %s: due_sent=%d reminders_sent=%d skipped=%d duplicates=%d",
            now.isoformat(),
            result.due_sent,
            result.reminders_sent,
            result.skipped,
            result.duplicates,
        )
        return result

    async def _select(
        self,
        db: AsyncSession,
        column,
        upper_bound: datetime,
        notification_type: NotificationType,
    ) -> List[UUID]:
        """
        Open tasks whose instant in `column` is at or before `upper_bound`
        and has not been notified yet to the current recipient.

        The anti-join keeps the candidate set bounded by pending work instead
        of every overdue task in the table.
        """
        already_notified = exists().where(
            Notification.related_task_id == Task.id,
            Notification.type == notification_type.value,
            Notification.recipient_id == func.coalesce(Task.assigned_to, Task.created_by),
            Notification.occasion_at == column,
        )
        rows = await db.execute(
            select(Task.id)
            .where(
                Task.status != TaskStatus.DONE.value,
                column.is_not(None),
                column <= upper_bound,
                ~already_notified,
            )
            .order_by(column.asc())
        )
        return list(rows.scalars().all())

    async def _reload_open(self, db: AsyncSession, task_id: UUID) -> Optional[Task]:
        """Fresh read of one task; None if it vanished or is done."""
        row = await db.execute(
            select(Task).where(Task.id == task_id).execution_options(populate_existing=True)
        )
        task = row.scalar_one_or_none()
        if task is None or task.is_done:
            return None
        return task


reminder_scanner = ReminderScanner()


async def run_scheduled_cycle(
    session_factory: Optional[Callable[[], AsyncSession]] = None,
    scanner: Optional[ReminderScanner] = None,
) -> Optional[ScanResult]:
    """
    Scheduler entry point: one cycle in its own session, committed, then
    delivered. Errors are logged; the next tick retries from scratch.
    """
    factory = session_factory or async_session_factory
    scanner = scanner or reminder_scanner

    async with factory() as session:
        try:
            result = await scanner.run_cycle(session)
            await session.commit()
        except Exception:
            await session.rollback()
            discard_outbox(session)
            logger.exception("Reminder scan cycle failed")
            return None
        await flush_outbox(session)
        return result


# ══════════════════════════════════════════════════════════════════════════
# Scheduler lifecycle
# ══════════════════════════════════════════════════════════════════════════

_scheduler: Optional[AsyncIOScheduler] = None


def start_scheduler() -> Optional[AsyncIOScheduler]:
    """
    Start the in-process scheduler. Safe to call more than once.

    Must run inside the event loop (the lifespan handler does).
    """
    global _scheduler

    if not settings.scheduler_enabled:
        logger.info("Reminder scheduler disabled via settings (SCHEDULER_ENABLED=false)")
        return None

    if _scheduler is not None:
        logger.info("Reminder scheduler already running, skipping initialization")
        return _scheduler

    _scheduler = AsyncIOScheduler(timezone="UTC")
    _scheduler.add_job(
        run_scheduled_cycle,
        trigger="interval",
        seconds=settings.reminder_scan_interval_seconds,
        id=JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        next_run_time=utcnow(),
    )
    _scheduler.start()

    logger.info(
        "Reminder scheduler started: scan every %ds, due-soon window %dh",
        settings.reminder_scan_interval_seconds,
        settings.due_soon_window_hours,
    )
    return _scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is None:
        return
    _scheduler.shutdown(wait=False)
    _scheduler = None
    logger.info("Reminder scheduler stopped")


def scheduler_status() -> str:
    """'running', 'stopped' or 'disabled' (health endpoint)."""
    if not settings.scheduler_enabled:
        return "disabled"
    if _scheduler is not None and _scheduler.running:
        return "running"
    return "stopped"
