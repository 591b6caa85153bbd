"""Tests for taskdeck.adapters.sqlite_store."""

import asyncio
import sqlite3
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from taskdeck.data.models import Notification, NotificationType, Permission, Task
from taskdeck.errors import ConflictError, TransientStoreError

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestSQLiteRecordStore:
    @pytest.mark.asyncio
    async def test_user_round_trip(self, store):
        user = await store.create_user("Dana", "dana@example.com")
        assert (await store.find_user(user.id)).email == "dana@example.com"
        assert (await store.find_user_by_email("DANA@example.com")).id == user.id

    @pytest.mark.asyncio
    async def test_integrity_errors_become_conflicts(self, store):
        await store.create_user("Dana", "dana@example.com")
        with pytest.raises(ConflictError) as exc_info:
            await store.create_user("Dana again", "dana@example.com")
        assert exc_info.value.status == 409
        assert isinstance(exc_info.value.__cause__, sqlite3.IntegrityError)

    @pytest.mark.asyncio
    async def test_slow_query_does_not_block_event_loop(self, store):
        ticks = 0

        async def ticker():
            nonlocal ticks
            while True:
                await asyncio.sleep(0.01)
                ticks += 1

        def slow_query():
            time.sleep(0.3)
            return []

        with patch.object(store.tasks, "list_time_based_open", side_effect=slow_query):
            ticking = asyncio.create_task(ticker())
            assert await store.query_time_based_open_tasks() == []
            ticking.cancel()
        assert ticks >= 5

    @pytest.mark.asyncio
    async def test_operational_errors_become_transient(self, store):
        with patch.object(
            store.tasks, "get_task", side_effect=sqlite3.OperationalError("database is locked"),
        ):
            with pytest.raises(TransientStoreError) as exc_info:
                await store.get_task("t1")
        assert exc_info.value.status == 503
        assert "database is locked" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_task_and_share_flow(self, store):
        await store.create_task(Task(id="t1", owner_id="u1", title="Draft"))
        share = await store.create_share("t1", "u2", Permission.VIEWER, "u1")

        assert (await store.find_task_by_owner("t1", "u1")).title == "Draft"
        assert (await store.find_share("t1", "u2")).id == share.id
        assert [t.id for t in await store.list_tasks_shared_with("u2")] == ["t1"]

        updated = await store.update_task("t1", title="Final")
        assert updated.title == "Final"
        assert updated.updated_at >= updated.created_at

    @pytest.mark.asyncio
    async def test_recent_reminder_window(self, store):
        await store.create_notification(
            Notification(
                id="n1", user_id="u1", type=NotificationType.REMINDER, task_id="t1",
                task_title="Draft", actor_id="u1", actor_name="System",
                message="m", created_at=NOW,
            )
        )
        assert await store.find_recent_reminder_notification(
            "u1", "t1", 5, NOW + timedelta(minutes=4),
        ) is not None
        assert await store.find_recent_reminder_notification(
            "u1", "t1", 5, NOW + timedelta(minutes=6),
        ) is None
        assert await store.find_recent_reminder_notification(
            "u2", "t1", 5, NOW,
        ) is None
