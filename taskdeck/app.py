"""
TaskDeck — Application wiring.

build_app() assembles the record store and every core service into one
container handed to the route layer. main() runs the reminder scheduler as
a standalone worker until interrupted.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from taskdeck.adapters.sqlite_store import SQLiteRecordStore
from taskdeck.config import settings
from taskdeck.core.inbox import NotificationInbox
from taskdeck.core.notifications import NotificationFanOut
from taskdeck.core.permissions import PermissionResolver
from taskdeck.core.reminders import ReminderScheduler
from taskdeck.core.sharing import ShareManager
from taskdeck.core.tasks import TaskService

logger = logging.getLogger(__name__)


@dataclass
class TaskDeckApp:
    store: SQLiteRecordStore
    resolver: PermissionResolver
    fanout: NotificationFanOut
    shares: ShareManager
    tasks: TaskService
    inbox: NotificationInbox
    reminders: ReminderScheduler


def build_app(db_path: str | None = None) -> TaskDeckApp:
    """Wire the store and services. Nothing is started."""
    store = SQLiteRecordStore(db_path or settings.DATABASE_PATH)
    resolver = PermissionResolver(store)
    fanout = NotificationFanOut(store)
    app = TaskDeckApp(
        store=store,
        resolver=resolver,
        fanout=fanout,
        shares=ShareManager(store, resolver, fanout),
        tasks=TaskService(store, resolver, fanout),
        inbox=NotificationInbox(store, settings.NOTIFICATION_PAGE_SIZE),
        reminders=ReminderScheduler(
            store,
            fanout,
            poll_interval_ms=settings.REMINDER_POLL_INTERVAL_MS,
            dedup_window_minutes=settings.REMINDER_DEDUP_WINDOW_MINUTES,
        ),
    )
    logger.info("TaskDeck wired with database %s", db_path or settings.DATABASE_PATH)
    return app


async def _run_worker(app: TaskDeckApp) -> None:
    app.reminders.start()
    try:
        await asyncio.Event().wait()
    finally:
        app.reminders.stop()
        await app.reminders.wait_idle()


def main() -> None:
    """Entry point: start the reminder scheduler and block until Ctrl+C."""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting TaskDeck reminder worker...")
    app = build_app()
    try:
        asyncio.run(_run_worker(app))
    except KeyboardInterrupt:
        logger.info("TaskDeck reminder worker shut down")


if __name__ == "__main__":
    main()
