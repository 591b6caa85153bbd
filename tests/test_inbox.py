"""Tests for taskdeck.core.inbox."""

from datetime import datetime, timedelta, timezone

import pytest

from taskdeck.core.inbox import NotificationInbox
from taskdeck.data.models import Notification, NotificationType
from taskdeck.errors import NotFoundError

START = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


def _seed(store, user_id, count):
    for i in range(count):
        store.notifications.add_notification(
            Notification(
                id=f"{user_id}-{i}",
                user_id=user_id,
                type=NotificationType.TASK_EDITED,
                task_id="t1",
                task_title="Plan offsite",
                actor_id="someone",
                actor_name="Someone",
                message=f"edit {i}",
                created_at=START + timedelta(minutes=i),
            )
        )


class TestNotificationInbox:
    @pytest.mark.asyncio
    async def test_list_is_newest_first_and_capped(self, store):
        _seed(store, "u1", 5)
        inbox = NotificationInbox(store, page_size=3)

        page = await inbox.list("u1")
        assert [n.id for n in page.notifications] == ["u1-4", "u1-3", "u1-2"]
        assert page.unread_count == 5

    @pytest.mark.asyncio
    async def test_default_page_size_from_settings(self, store):
        _seed(store, "u1", 2)
        page = await NotificationInbox(store).list("u1")
        assert len(page.notifications) == 2

    @pytest.mark.asyncio
    async def test_mark_read_and_all(self, store):
        _seed(store, "u1", 3)
        inbox = NotificationInbox(store)

        await inbox.mark_read("u1", "u1-0")
        assert await inbox.unread_count("u1") == 2
        assert await inbox.mark_all_read("u1") == 2
        assert await inbox.unread_count("u1") == 0

    @pytest.mark.asyncio
    async def test_cannot_touch_someone_elses_notification(self, store):
        _seed(store, "u1", 1)
        inbox = NotificationInbox(store)

        with pytest.raises(NotFoundError):
            await inbox.mark_read("u2", "u1-0")
        with pytest.raises(NotFoundError):
            await inbox.dismiss("u2", "u1-0")
        assert await inbox.unread_count("u1") == 1

    @pytest.mark.asyncio
    async def test_dismiss_and_clear(self, store):
        _seed(store, "u1", 3)
        _seed(store, "u2", 1)
        inbox = NotificationInbox(store)

        await inbox.dismiss("u1", "u1-1")
        assert await inbox.clear_all("u1") == 2
        assert (await inbox.list("u1")).notifications == []
        assert len((await inbox.list("u2")).notifications) == 1
