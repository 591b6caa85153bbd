"""
TaskDeck — Data Models.

Users own tasks, tasks are shared with collaborators through TaskShare rows,
and every mutation a collaborator should hear about becomes a Notification.
Ownership is implicit (Task.owner_id) and never stored as a share.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    """Timezone-aware 'now'; every stored timestamp is UTC."""
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class TaskStatus(str, Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"


class Permission(str, Enum):
    """Grant stored on a TaskShare row."""

    VIEWER = "VIEWER"
    EDITOR = "EDITOR"


class Role(str, Enum):
    """Effective role of a user on a task (OWNER is never stored)."""

    OWNER = "OWNER"
    EDITOR = "EDITOR"
    VIEWER = "VIEWER"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    def at_least(self, other: Role) -> bool:
        return self.rank >= other.rank

    @classmethod
    def from_permission(cls, permission: Permission) -> Role:
        return cls(permission.value)


_ROLE_RANK = {Role.VIEWER: 1, Role.EDITOR: 2, Role.OWNER: 3}


class NotificationType(str, Enum):
    TASK_SHARED = "TASK_SHARED"
    COLLABORATOR_ADDED = "COLLABORATOR_ADDED"
    PERMISSION_CHANGED = "PERMISSION_CHANGED"
    COLLABORATOR_REMOVED = "COLLABORATOR_REMOVED"
    TASK_EDITED = "TASK_EDITED"
    TASK_ARCHIVED = "TASK_ARCHIVED"
    REMINDER = "REMINDER"


class DefaultView(str, Enum):
    LIST = "LIST"
    BOARD = "BOARD"


# ---------------------------------------------------------------------------
# Reminder configuration — tagged variant embedded in Task
# ---------------------------------------------------------------------------

DEFAULT_LEAD_MINUTES = 30

_INTERVAL_RE = re.compile(r"^(\d+)([mhdw])$")
_INTERVAL_UNITS = {"m": "minutes", "h": "hours", "d": "days", "w": "weeks"}
_NAMED_INTERVALS = {
    "daily": timedelta(days=1),
    "weekly": timedelta(weeks=1),
    "monthly": timedelta(days=30),
}


def parse_repeat_interval(value: str) -> timedelta:
    """Parse a repeat interval like "15m", "2h", "1d", "1w" or "daily".

    Raises ValueError for anything else.
    """
    text = value.strip().lower()
    if text in _NAMED_INTERVALS:
        return _NAMED_INTERVALS[text]
    match = _INTERVAL_RE.match(text)
    if match is None or int(match.group(1)) == 0:
        raise ValueError(f"invalid repeat interval {value!r}")
    return timedelta(**{_INTERVAL_UNITS[match.group(2)]: int(match.group(1))})


class _ReminderBase(BaseModel):
    """Fields shared by both reminder kinds.

    Repeat settings are stored and validated but the scheduler only
    evaluates the first firing of a reminder.
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    repeat: bool = False
    repeat_interval: str | None = None
    repeat_count: int = Field(default=0, ge=0)  # 0 = unbounded

    @model_validator(mode="before")
    @classmethod
    def drop_null_foreign_keys(cls, data: object) -> object:
        # Clients send the other variant's keys as null; only nulls are tolerated.
        if isinstance(data, dict):
            known = set(cls.model_fields) | {
                f.alias for f in cls.model_fields.values() if f.alias
            }
            return {k: v for k, v in data.items() if k in known or v is not None}
        return data

    @field_validator("repeat_interval")
    @classmethod
    def check_interval(cls, v: str | None) -> str | None:
        if v is None:
            return v
        parse_repeat_interval(v)
        return v.strip().lower()


class RelativeReminder(_ReminderBase):
    """Fires ``before_minutes`` ahead of the task's due date.

    JSON example:
    {"type": "relative", "beforeMinutes": 30}
    """

    type: Literal["relative"] = "relative"
    before_minutes: int | None = Field(default=None, ge=0)

    @property
    def lead_minutes(self) -> int:
        return self.before_minutes or DEFAULT_LEAD_MINUTES

    def trigger_time(self, due_date: datetime) -> datetime:
        return due_date - timedelta(minutes=self.lead_minutes)


class CustomReminder(_ReminderBase):
    """Fires at an absolute moment.

    JSON example:
    {"type": "custom", "customDate": "2026-03-01T09:00:00Z"}
    """

    type: Literal["custom"] = "custom"
    custom_date: datetime

    @field_validator("custom_date")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    def trigger_time(self, due_date: datetime) -> datetime:
        return self.custom_date


ReminderConfig = Annotated[
    Union[RelativeReminder, CustomReminder],
    Field(discriminator="type"),
]

_REMINDER_LIST = TypeAdapter(list[ReminderConfig])


def parse_reminders(raw: object) -> list[RelativeReminder | CustomReminder]:
    """Validate a list of reminder dicts (camelCase or snake_case keys)."""
    if raw is None:
        return []
    return _REMINDER_LIST.validate_python(raw)


def reminders_to_json(reminders: list[RelativeReminder | CustomReminder]) -> str:
    return _REMINDER_LIST.dump_json(list(reminders), by_alias=True).decode()


def reminders_from_json(text: str | None) -> list[RelativeReminder | CustomReminder]:
    if not text:
        return []
    return _REMINDER_LIST.validate_json(text)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


@dataclass
class User:
    """A registered account. Passwords are hashed by the auth layer."""

    id: str
    name: str
    email: str
    password_hash: str = ""
    default_view: DefaultView = DefaultView.LIST
    timezone: str = "UTC"
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Task:
    """A task owned by exactly one user.

    ``deleted_at`` marks a soft-deleted task: hidden from listings but still
    addressable by id for restore or permanent deletion.
    """

    id: str
    owner_id: str
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.TODO
    tags: list[str] = field(default_factory=list)
    due_date: datetime | None = None
    is_time_based: bool = False
    reminders: list[RelativeReminder | CustomReminder] = field(default_factory=list)
    archived: bool = False
    archived_at: datetime | None = None
    deleted_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass
class TaskShare:
    """Grant of VIEWER or EDITOR access on a task to a non-owner."""

    id: str
    task_id: str
    user_id: str
    permission: Permission
    shared_by: str
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Notification:
    """A message for one recipient.

    ``task_title`` and ``actor_name`` are snapshots taken when the
    notification was written; they are not refreshed after a rename.
    """

    id: str
    user_id: str
    type: NotificationType
    task_id: str
    task_title: str
    actor_id: str
    actor_name: str
    message: str
    read: bool = False
    created_at: datetime = field(default_factory=utcnow)
