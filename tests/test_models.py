"""Tests for taskdeck.data.models — entities and the reminder variant."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from taskdeck.data.models import (
    CustomReminder,
    Permission,
    RelativeReminder,
    Role,
    Task,
    TaskStatus,
    parse_reminders,
    parse_repeat_interval,
    reminders_from_json,
    reminders_to_json,
)


class TestReminderParsing:
    def test_relative_from_camel_case(self):
        [reminder] = parse_reminders([{"type": "relative", "beforeMinutes": 15}])
        assert isinstance(reminder, RelativeReminder)
        assert reminder.before_minutes == 15
        assert reminder.lead_minutes == 15

    def test_relative_without_lead_defaults_to_thirty(self):
        [reminder] = parse_reminders([{"type": "relative"}])
        assert reminder.before_minutes is None
        assert reminder.lead_minutes == 30

    def test_custom_from_snake_case(self):
        [reminder] = parse_reminders(
            [{"type": "custom", "custom_date": "2026-03-01T09:00:00+00:00"}]
        )
        assert isinstance(reminder, CustomReminder)
        assert reminder.custom_date == datetime(2026, 3, 1, 9, tzinfo=timezone.utc)

    def test_naive_custom_date_is_utc(self):
        reminder = CustomReminder(custom_date=datetime(2026, 3, 1, 9))
        assert reminder.custom_date.tzinfo == timezone.utc

    def test_custom_with_before_minutes_rejected(self):
        with pytest.raises(ValidationError):
            parse_reminders(
                [{"type": "custom", "customDate": "2026-03-01T09:00:00Z", "beforeMinutes": 10}]
            )

    def test_null_foreign_keys_tolerated(self):
        [reminder] = parse_reminders(
            [{"type": "relative", "beforeMinutes": 60, "customDate": None}]
        )
        assert reminder.lead_minutes == 60

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_reminders([{"type": "sometimes"}])

    def test_negative_lead_rejected(self):
        with pytest.raises(ValidationError):
            parse_reminders([{"type": "relative", "beforeMinutes": -5}])

    def test_repeat_fields_stored(self):
        [reminder] = parse_reminders(
            [{"type": "relative", "repeat": True, "repeatInterval": "15M", "repeatCount": 3}]
        )
        assert reminder.repeat is True
        assert reminder.repeat_interval == "15m"
        assert reminder.repeat_count == 3

    def test_bad_repeat_interval_rejected(self):
        with pytest.raises(ValidationError):
            parse_reminders([{"type": "relative", "repeatInterval": "soon"}])

    def test_json_round_trip_keeps_variant(self):
        reminders = parse_reminders([
            {"type": "relative", "beforeMinutes": 10},
            {"type": "custom", "customDate": "2026-03-01T09:00:00Z"},
        ])
        restored = reminders_from_json(reminders_to_json(reminders))
        assert restored == reminders
        assert '"beforeMinutes":10' in reminders_to_json(reminders)

    def test_trigger_times(self):
        due = datetime(2026, 3, 1, 12, tzinfo=timezone.utc)
        relative = RelativeReminder(before_minutes=45)
        custom = CustomReminder(custom_date=due - timedelta(days=1))
        assert relative.trigger_time(due) == due - timedelta(minutes=45)
        assert custom.trigger_time(due) == due - timedelta(days=1)


class TestRepeatInterval:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("15m", timedelta(minutes=15)),
            ("2h", timedelta(hours=2)),
            ("1d", timedelta(days=1)),
            ("1w", timedelta(weeks=1)),
            ("weekly", timedelta(weeks=1)),
        ],
    )
    def test_valid(self, text, expected):
        assert parse_repeat_interval(text) == expected

    @pytest.mark.parametrize("text", ["", "0m", "15", "m15", "1y"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_repeat_interval(text)


class TestRole:
    def test_ordering(self):
        assert Role.OWNER.at_least(Role.EDITOR)
        assert Role.EDITOR.at_least(Role.VIEWER)
        assert not Role.VIEWER.at_least(Role.EDITOR)
        assert not Role.EDITOR.at_least(Role.OWNER)

    def test_from_permission(self):
        assert Role.from_permission(Permission.VIEWER) is Role.VIEWER
        assert Role.from_permission(Permission.EDITOR) is Role.EDITOR


def test_task_defaults():
    task = Task(id="t1", owner_id="u1", title="Write report")
    assert task.status is TaskStatus.TODO
    assert task.tags == []
    assert task.reminders == []
    assert task.archived is False
    assert task.is_deleted is False
    assert task.created_at.tzinfo is not None
