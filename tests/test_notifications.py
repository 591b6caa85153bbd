"""Tests for taskdeck.core.notifications — recipients, messages, fan-out."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from taskdeck.core.notifications import (
    NotificationEvent,
    NotificationFanOut,
    describe_edit,
    recipients_for,
)
from taskdeck.data.models import NotificationType, Permission, TaskShare, TaskStatus
from taskdeck.errors import TransientStoreError

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _share(user_id, permission=Permission.VIEWER):
    return TaskShare(
        id=f"s-{user_id}", task_id="t1", user_id=user_id,
        permission=permission, shared_by="owner",
    )


def _event(recipient="u2", actor="u1"):
    return NotificationEvent(
        recipient_user_id=recipient,
        type=NotificationType.TASK_EDITED,
        task_id="t1",
        task_title="Plan offsite",
        actor_id=actor,
        actor_name="Alice",
        message="Alice edited \"Plan offsite\"",
    )


def _passthrough_store():
    store = AsyncMock()
    store.create_notification.side_effect = lambda n: n
    return store


class TestRecipientsFor:
    def test_owner_first_actor_excluded(self):
        shares = [_share("alice"), _share("bob")]
        assert recipients_for("owner", shares, "alice") == ["owner", "bob"]

    def test_owner_acting_is_excluded(self):
        shares = [_share("alice"), _share("bob")]
        assert recipients_for("owner", shares, "owner") == ["alice", "bob"]

    def test_exclude_and_dedup(self):
        shares = [_share("alice"), _share("alice"), _share("bob")]
        assert recipients_for("owner", shares, "owner", exclude=["bob"]) == ["alice"]

    def test_no_shares(self):
        assert recipients_for("owner", [], "owner") == []


class TestDescribeEdit:
    def test_several_fields(self):
        message = describe_edit("Alice", "Launch", {"status": TaskStatus.DONE, "title": "Launch"})
        assert message == 'Alice updated details of "Launch"'

    def test_untracked_only(self):
        assert describe_edit("Alice", "Launch", {"tags": ["x"]}) == 'Alice edited "Launch"'

    @pytest.mark.parametrize(
        "changes, expected",
        [
            ({"status": TaskStatus.IN_PROGRESS},
             'Alice changed the status of "Launch" to In Progress'),
            ({"title": "Launch"}, 'Alice renamed a task to "Launch"'),
            ({"due_date": FIXED_NOW}, 'Alice changed the due date of "Launch"'),
            ({"due_date": None}, 'Alice removed the due date of "Launch"'),
            ({"description": "new"}, 'Alice updated the description of "Launch"'),
        ],
    )
    def test_single_field(self, changes, expected):
        assert describe_edit("Alice", "Launch", changes) == expected

    def test_untracked_fields_do_not_count_as_multiple(self):
        message = describe_edit("Alice", "Launch", {"description": "d", "tags": ["x"]})
        assert message == 'Alice updated the description of "Launch"'


class TestNotificationFanOut:
    @pytest.mark.asyncio
    async def test_notify_writes_record(self):
        store = _passthrough_store()
        fanout = NotificationFanOut(store, clock=lambda: FIXED_NOW)

        notification = await fanout.notify(_event())
        assert notification.user_id == "u2"
        assert notification.actor_name == "Alice"
        assert notification.read is False
        assert notification.created_at == FIXED_NOW
        store.create_notification.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_notify_skips_actor(self):
        store = _passthrough_store()
        fanout = NotificationFanOut(store)
        assert await fanout.notify(_event(recipient="u1", actor="u1")) is None
        store.create_notification.assert_not_called()

    @pytest.mark.asyncio
    async def test_write_failure_is_swallowed_and_logged(self, caplog):
        store = AsyncMock()
        store.create_notification.side_effect = TransientStoreError("disk full")
        fanout = NotificationFanOut(store)

        assert await fanout.notify(_event()) is None
        assert "disk full" in caplog.text

    @pytest.mark.asyncio
    async def test_fan_out_continues_past_failures(self):
        store = AsyncMock()
        calls = []

        def create(notification):
            calls.append(notification.user_id)
            if notification.user_id == "bob":
                raise TransientStoreError("locked")
            return notification

        store.create_notification.side_effect = create
        fanout = NotificationFanOut(store)

        written = await fanout.fan_out(
            ["alice", "bob", "carol", "alice"],
            type=NotificationType.TASK_EDITED,
            task_id="t1",
            task_title="Plan offsite",
            actor_id="owner",
            actor_name="Olivia",
            message="m",
        )
        assert calls == ["alice", "bob", "carol"]
        assert [n.user_id for n in written] == ["alice", "carol"]

    @pytest.mark.asyncio
    async def test_fan_out_never_notifies_actor(self):
        store = _passthrough_store()
        fanout = NotificationFanOut(store)
        written = await fanout.fan_out(
            ["owner", "alice"],
            type=NotificationType.TASK_EDITED,
            task_id="t1",
            task_title="Plan offsite",
            actor_id="owner",
            actor_name="Olivia",
            message="m",
        )
        assert [n.user_id for n in written] == ["alice"]

    @pytest.mark.asyncio
    async def test_write_bypasses_self_guard(self):
        store = _passthrough_store()
        fanout = NotificationFanOut(store)
        notification = await fanout.write(_event(recipient="u1", actor="u1"), created_at=FIXED_NOW)
        assert notification.user_id == "u1"
        assert notification.created_at == FIXED_NOW
