"""SQLite record store adapter — implements RecordStore on the *DB classes.

All SQLite-specific logic lives in taskdeck.data.db; this adapter gives it the
async port shape. Each blocking sqlite3 call runs in a worker thread via
asyncio.to_thread so the event loop keeps serving while a query runs.
Integrity violations (duplicate email, duplicate share) become ConflictError;
any other driver failure becomes TransientStoreError.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import datetime, timedelta
from functools import wraps

from taskdeck.data.db import NotificationDB, ShareDB, TaskDB, UserDB
from taskdeck.data.models import (
    DefaultView,
    Notification,
    NotificationType,
    Permission,
    Task,
    TaskShare,
    TaskStatus,
    User,
)
from taskdeck.errors import ConflictError, TransientStoreError

logger = logging.getLogger(__name__)


def _store_call(fn):
    """Translate sqlite3 failures raised by a store method into TaskDeck errors."""

    @wraps(fn)
    async def wrapper(self, *args, **kwargs):
        try:
            return await fn(self, *args, **kwargs)
        except sqlite3.IntegrityError as exc:
            raise ConflictError(f"Record already exists: {exc}") from exc
        except sqlite3.Error as exc:
            logger.error("SQLite error in %s: %s", fn.__name__, exc)
            raise TransientStoreError(f"Record store unavailable: {exc}") from exc

    return wrapper


class SQLiteRecordStore:
    """SQLite implementation of RecordStore."""

    def __init__(self, db_path: str | None = None) -> None:
        self.users = UserDB(db_path)
        self.tasks = TaskDB(db_path)
        self.shares = ShareDB(db_path)
        self.notifications = NotificationDB(db_path)

    # --- users ---

    @_store_call
    async def create_user(
        self,
        name: str,
        email: str,
        password_hash: str = "",
        default_view: DefaultView = DefaultView.LIST,
        timezone: str = "UTC",
    ) -> User:
        return await asyncio.to_thread(
            self.users.add_user, name, email, password_hash, default_view, timezone,
        )

    @_store_call
    async def find_user(self, user_id: str) -> User | None:
        return await asyncio.to_thread(self.users.get_user, user_id)

    @_store_call
    async def find_user_by_email(self, email: str) -> User | None:
        return await asyncio.to_thread(self.users.find_by_email, email)

    @_store_call
    async def update_user_profile(
        self,
        user_id: str,
        name: str | None = None,
        default_view: DefaultView | None = None,
        timezone: str | None = None,
    ) -> User | None:
        return await asyncio.to_thread(
            self.users.update_profile, user_id, name, default_view, timezone,
        )

    # --- tasks ---

    @_store_call
    async def create_task(self, task: Task) -> Task:
        return await asyncio.to_thread(self.tasks.add_task, task)

    @_store_call
    async def get_task(self, task_id: str) -> Task | None:
        return await asyncio.to_thread(self.tasks.get_task, task_id)

    @_store_call
    async def find_task_by_owner(self, task_id: str, owner_id: str) -> Task | None:
        return await asyncio.to_thread(self.tasks.find_by_owner, task_id, owner_id)

    @_store_call
    async def update_task(self, task_id: str, **changes) -> Task | None:
        return await asyncio.to_thread(self.tasks.update_fields, task_id, **changes)

    @_store_call
    async def list_tasks_for_owner(
        self,
        owner_id: str,
        q: str | None = None,
        status: TaskStatus | None = None,
        tag: str | None = None,
        archived: bool | None = False,
    ) -> list[Task]:
        return await asyncio.to_thread(
            self.tasks.list_for_owner, owner_id, q=q, status=status, tag=tag, archived=archived,
        )

    @_store_call
    async def list_tasks_shared_with(self, user_id: str) -> list[Task]:
        return await asyncio.to_thread(self.tasks.list_shared_with, user_id)

    @_store_call
    async def list_deleted_tasks(self, owner_id: str) -> list[Task]:
        return await asyncio.to_thread(self.tasks.list_deleted, owner_id)

    @_store_call
    async def query_time_based_open_tasks(self) -> list[Task]:
        return await asyncio.to_thread(self.tasks.list_time_based_open)

    @_store_call
    async def delete_task(self, task_id: str) -> bool:
        return await asyncio.to_thread(self.tasks.delete_task, task_id)

    # --- shares ---

    @_store_call
    async def find_share(self, task_id: str, user_id: str) -> TaskShare | None:
        return await asyncio.to_thread(self.shares.get_share, task_id, user_id)

    @_store_call
    async def create_share(
        self, task_id: str, user_id: str, permission: Permission, shared_by: str,
    ) -> TaskShare:
        return await asyncio.to_thread(
            self.shares.add_share, task_id, user_id, permission, shared_by,
        )

    @_store_call
    async def update_share(self, share_id: str, permission: Permission) -> TaskShare | None:
        return await asyncio.to_thread(self.shares.update_permission, share_id, permission)

    @_store_call
    async def delete_share(self, share_id: str) -> bool:
        return await asyncio.to_thread(self.shares.delete_share, share_id)

    @_store_call
    async def list_shares_for_task(self, task_id: str) -> list[TaskShare]:
        return await asyncio.to_thread(self.shares.list_for_task, task_id)

    # --- notifications ---

    @_store_call
    async def create_notification(self, notification: Notification) -> Notification:
        return await asyncio.to_thread(self.notifications.add_notification, notification)

    @_store_call
    async def find_recent_reminder_notification(
        self, user_id: str, task_id: str, window_minutes: int, now: datetime,
    ) -> Notification | None:
        since = now - timedelta(minutes=window_minutes)
        return await asyncio.to_thread(
            self.notifications.find_recent,
            user_id, task_id, NotificationType.REMINDER, since,
        )

    @_store_call
    async def list_notifications(self, user_id: str, limit: int = 50) -> list[Notification]:
        return await asyncio.to_thread(self.notifications.list_for_user, user_id, limit)

    @_store_call
    async def count_unread_notifications(self, user_id: str) -> int:
        return await asyncio.to_thread(self.notifications.count_unread, user_id)

    @_store_call
    async def mark_notification_read(self, notification_id: str, user_id: str) -> bool:
        return await asyncio.to_thread(self.notifications.mark_read, notification_id, user_id)

    @_store_call
    async def mark_all_notifications_read(self, user_id: str) -> int:
        return await asyncio.to_thread(self.notifications.mark_all_read, user_id)

    @_store_call
    async def delete_notification(self, notification_id: str, user_id: str) -> bool:
        return await asyncio.to_thread(
            self.notifications.delete_notification, notification_id, user_id,
        )

    @_store_call
    async def clear_notifications(self, user_id: str) -> int:
        return await asyncio.to_thread(self.notifications.clear, user_id)
