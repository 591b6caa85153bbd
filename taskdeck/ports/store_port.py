"""Record store port — abstract interface for durable TaskDeck records.

Core modules depend on this protocol, never on a specific database.
Every method is an I/O boundary; implementations raise TransientStoreError
when the underlying storage fails, and ConflictError when a create collides
with an existing unique record.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from taskdeck.data.models import (
    DefaultView,
    Notification,
    Permission,
    Task,
    TaskShare,
    TaskStatus,
    User,
)


class RecordStore(Protocol):
    """Abstract record store used by core modules."""

    # Users
    async def create_user(
        self,
        name: str,
        email: str,
        password_hash: str = "",
        default_view: DefaultView = DefaultView.LIST,
        timezone: str = "UTC",
    ) -> User: ...

    async def find_user(self, user_id: str) -> User | None: ...

    async def find_user_by_email(self, email: str) -> User | None: ...

    async def update_user_profile(
        self,
        user_id: str,
        name: str | None = None,
        default_view: DefaultView | None = None,
        timezone: str | None = None,
    ) -> User | None: ...

    # Tasks
    async def create_task(self, task: Task) -> Task: ...

    async def get_task(self, task_id: str) -> Task | None: ...

    async def find_task_by_owner(self, task_id: str, owner_id: str) -> Task | None: ...

    async def update_task(self, task_id: str, **changes: Any) -> Task | None: ...

    async def list_tasks_for_owner(
        self,
        owner_id: str,
        q: str | None = None,
        status: TaskStatus | None = None,
        tag: str | None = None,
        archived: bool | None = False,
    ) -> list[Task]: ...

    async def list_tasks_shared_with(self, user_id: str) -> list[Task]: ...

    async def list_deleted_tasks(self, owner_id: str) -> list[Task]: ...

    async def query_time_based_open_tasks(self) -> list[Task]: ...

    async def delete_task(self, task_id: str) -> bool: ...

    # Shares
    async def find_share(self, task_id: str, user_id: str) -> TaskShare | None: ...

    async def create_share(
        self, task_id: str, user_id: str, permission: Permission, shared_by: str,
    ) -> TaskShare: ...

    async def update_share(self, share_id: str, permission: Permission) -> TaskShare | None: ...

    async def delete_share(self, share_id: str) -> bool: ...

    async def list_shares_for_task(self, task_id: str) -> list[TaskShare]: ...

    # Notifications
    async def create_notification(self, notification: Notification) -> Notification: ...

    async def find_recent_reminder_notification(
        self, user_id: str, task_id: str, window_minutes: int, now: datetime,
    ) -> Notification | None: ...

    async def list_notifications(self, user_id: str, limit: int = 50) -> list[Notification]: ...

    async def count_unread_notifications(self, user_id: str) -> int: ...

    async def mark_notification_read(self, notification_id: str, user_id: str) -> bool: ...

    async def mark_all_notifications_read(self, user_id: str) -> int: ...

    async def delete_notification(self, notification_id: str, user_id: str) -> bool: ...

    async def clear_notifications(self, user_id: str) -> int: ...
