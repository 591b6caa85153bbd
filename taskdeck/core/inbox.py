"""
TaskDeck — Notification Inbox.

The recipient's side of notifications: newest first, unread counter, and
the only mutations a notification allows after creation (read flag, dismiss).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from taskdeck.errors import NotFoundError

if TYPE_CHECKING:
    from taskdeck.data.models import Notification
    from taskdeck.ports.store_port import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class InboxPage:
    notifications: list[Notification] = field(default_factory=list)
    unread_count: int = 0


class NotificationInbox:
    def __init__(self, store: RecordStore, page_size: int | None = None) -> None:
        if page_size is None:
            from taskdeck.config import settings
            page_size = settings.NOTIFICATION_PAGE_SIZE
        self._store = store
        self._page_size = page_size

    async def list(self, user_id: str, limit: int | None = None) -> InboxPage:
        notifications = await self._store.list_notifications(user_id, limit or self._page_size)
        unread = await self._store.count_unread_notifications(user_id)
        return InboxPage(notifications, unread)

    async def unread_count(self, user_id: str) -> int:
        return await self._store.count_unread_notifications(user_id)

    async def mark_read(self, user_id: str, notification_id: str) -> None:
        if not await self._store.mark_notification_read(notification_id, user_id):
            raise NotFoundError("Notification not found")

    async def mark_all_read(self, user_id: str) -> int:
        return await self._store.mark_all_notifications_read(user_id)

    async def dismiss(self, user_id: str, notification_id: str) -> None:
        if not await self._store.delete_notification(notification_id, user_id):
            raise NotFoundError("Notification not found")

    async def clear_all(self, user_id: str) -> int:
        cleared = await self._store.clear_notifications(user_id)
        logger.info("Cleared %d notification(s) for %s", cleared, user_id)
        return cleared
