"""
TaskDeck — Reminder Scheduler.

A polling loop that scans every open, time-based task with a due date and
writes a REMINDER notification to the task owner when one of its reminders
is due to fire.

A reminder fires when the poll lands within one minute of its trigger time,
or when the trigger time has passed but the task is not yet due (catch-up
after a slow tick or a restart). A REMINDER already written for the same
(owner, task) within the dedup window suppresses the new one, which is what
keeps overlapping ticks and the catch-up rule from producing duplicates.

Only the first firing of a reminder is evaluated; repeat settings are stored
on the reminder but not acted on here.
"""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable

from taskdeck.core.notifications import NotificationEvent
from taskdeck.data.models import NotificationType, utcnow

if TYPE_CHECKING:
    from taskdeck.core.notifications import NotificationFanOut
    from taskdeck.data.models import CustomReminder, RelativeReminder, Task
    from taskdeck.ports.store_port import RecordStore

logger = logging.getLogger(__name__)

FIRE_WINDOW = timedelta(minutes=1)
SYSTEM_ACTOR_NAME = "System"


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}" if n == 1 else f"{n} {unit}s"


def should_fire(trigger_time: datetime, due_date: datetime, now: datetime) -> bool:
    """Within the polling window, or past the trigger but not yet due."""
    within_window = abs(now - trigger_time) < FIRE_WINDOW
    catch_up = trigger_time <= now < due_date
    return within_window or catch_up


def reminder_message(task_title: str, due_date: datetime, now: datetime) -> str:
    """Human-readable time-until-due, rounded to minutes, hours or days."""
    minutes = _round_half_up((due_date - now).total_seconds() / 60)
    if minutes <= 0:
        return f'Task "{task_title}" is now due!'
    if minutes < 60:
        return f'Task "{task_title}" is due in {_plural(minutes, "minute")}'
    if minutes < 1440:
        return f'Task "{task_title}" is due in {_plural(_round_half_up(minutes / 60), "hour")}'
    return f'Task "{task_title}" is due in {_plural(_round_half_up(minutes / 1440), "day")}'


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class ReminderScheduler:
    """Owns its own timer: start() and stop() are per instance.

    start() must be called from a running event loop. It scans once right
    away and then every poll interval. stop() cancels the timer only; a scan
    already in flight runs to completion (await wait_idle() to join it).
    """

    def __init__(
        self,
        store: RecordStore,
        fanout: NotificationFanOut,
        poll_interval_ms: int | None = None,
        dedup_window_minutes: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if poll_interval_ms is None or dedup_window_minutes is None:
            from taskdeck.config import settings
            if poll_interval_ms is None:
                poll_interval_ms = settings.REMINDER_POLL_INTERVAL_MS
            if dedup_window_minutes is None:
                dedup_window_minutes = settings.REMINDER_DEDUP_WINDOW_MINUTES

        self._store = store
        self._fanout = fanout
        self._interval_s = max(0.001, poll_interval_ms / 1000)
        self._dedup_window_minutes = dedup_window_minutes
        self._clock = clock
        self._timer: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def start(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().create_task(
            self._tick_forever(), name="reminder-scheduler",
        )
        logger.info(
            "Reminder scheduler started: every %.0fs, dedup window %d min",
            self._interval_s, self._dedup_window_minutes,
        )

    def stop(self) -> None:
        if self._timer is None:
            return
        self._timer.cancel()
        self._timer = None
        logger.info("Reminder scheduler stopped")

    async def wait_idle(self) -> None:
        """Wait for scans already launched by the timer to finish."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def _tick_forever(self) -> None:
        while True:
            scan = asyncio.create_task(self._run_cycle())
            self._inflight.add(scan)
            scan.add_done_callback(self._inflight.discard)
            await asyncio.sleep(self._interval_s)

    async def _run_cycle(self) -> None:
        try:
            await self.scan_once()
        except Exception as exc:
            logger.error("Reminder scan failed: %s", exc)

    async def scan_once(self, now: datetime | None = None) -> int:
        """Run one scan cycle; returns the number of reminders written."""
        if now is None:
            now = self._clock()

        tasks = await self._store.query_time_based_open_tasks()
        sent = 0
        for task in tasks:
            try:
                sent += await self._evaluate_task(task, now)
            except Exception as exc:
                logger.error("Reminder check failed for task %s: %s", task.id, exc)
        if sent:
            logger.info("Reminder scan at %s: %d sent", now.isoformat(), sent)
        return sent

    async def _evaluate_task(self, task: Task, now: datetime) -> int:
        if task.due_date is None or not task.reminders:
            return 0

        sent = 0
        for reminder in task.reminders:
            if await self._maybe_fire(task, reminder, now):
                sent += 1
        return sent

    async def _maybe_fire(
        self,
        task: Task,
        reminder: RelativeReminder | CustomReminder,
        now: datetime,
    ) -> bool:
        trigger_time = reminder.trigger_time(task.due_date)
        if not should_fire(trigger_time, task.due_date, now):
            return False

        recent = await self._store.find_recent_reminder_notification(
            task.owner_id, task.id, self._dedup_window_minutes, now,
        )
        if recent is not None:
            return False

        message = reminder_message(task.title, task.due_date, now)
        written = await self._fanout.write(
            NotificationEvent(
                recipient_user_id=task.owner_id,
                type=NotificationType.REMINDER,
                task_id=task.id,
                task_title=task.title,
                actor_id=task.owner_id,
                actor_name=SYSTEM_ACTOR_NAME,
                message=message,
            ),
            created_at=now,
        )
        if written is None:
            return False
        logger.info("Reminder sent to %s: %s", task.owner_id, message)
        return True
