"""
TaskDeck — SQLite storage.

One class per table, all sharing a single database file. Each method opens
its own connection, so every call is an independent atomic unit; callers
get per-row atomicity and nothing more.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from taskdeck.data.models import (
    DefaultView,
    Notification,
    NotificationType,
    Permission,
    Task,
    TaskShare,
    TaskStatus,
    User,
    reminders_from_json,
    reminders_to_json,
    utcnow,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id             TEXT PRIMARY KEY,
    name           TEXT NOT NULL,
    email          TEXT NOT NULL UNIQUE,
    password_hash  TEXT NOT NULL DEFAULT '',
    default_view   TEXT NOT NULL DEFAULT 'LIST',
    timezone       TEXT NOT NULL DEFAULT 'UTC',
    created_at     TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tasks (
    id            TEXT PRIMARY KEY,
    owner_id      TEXT NOT NULL,
    title         TEXT NOT NULL,
    description   TEXT NOT NULL DEFAULT '',
    status        TEXT NOT NULL DEFAULT 'TODO',
    tags          TEXT NOT NULL DEFAULT '[]',
    due_date      TEXT,
    archived      INTEGER NOT NULL DEFAULT 0,
    archived_at   TEXT,
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS task_shares (
    id          TEXT PRIMARY KEY,
    task_id     TEXT NOT NULL,
    user_id     TEXT NOT NULL,
    permission  TEXT NOT NULL,
    shared_by   TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    UNIQUE (task_id, user_id)
);

CREATE TABLE IF NOT EXISTS notifications (
    id          TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL,
    type        TEXT NOT NULL,
    task_id     TEXT NOT NULL,
    task_title  TEXT NOT NULL,
    actor_id    TEXT NOT NULL,
    actor_name  TEXT NOT NULL,
    message     TEXT NOT NULL,
    read        INTEGER NOT NULL DEFAULT 0,
    created_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_tasks_owner ON tasks(owner_id);
CREATE INDEX IF NOT EXISTS idx_shares_user ON task_shares(user_id);
CREATE INDEX IF NOT EXISTS idx_notifications_recipient
    ON notifications(user_id, task_id, type, created_at);
"""

# Columns that arrived after the first release of the tasks table.
_TASK_MIGRATIONS = {
    "is_time_based": "INTEGER NOT NULL DEFAULT 0",
    "reminders": "TEXT NOT NULL DEFAULT '[]'",
    "deleted_at": "TEXT",
}

def _new_id() -> str:
    return uuid.uuid4().hex


def _ts(value: datetime | None) -> str | None:
    """Fixed-width UTC ISO text, so string order equals time order."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _escape_like(text: str) -> str:
    """Make ``%`` and ``_`` in user text match literally under ESCAPE '\\'."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _dt(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


class _SQLiteDB:
    """Shared connection handling and schema setup."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from taskdeck.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit (or roll back) on exit, then close it."""
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Create all tables if missing, and migrate the tasks table."""
        with self._connect() as conn:
            conn.executescript(_SCHEMA)
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(tasks)").fetchall()
            }
            for name, decl in _TASK_MIGRATIONS.items():
                if name not in existing_cols:
                    conn.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
        logger.debug("%s initialized at %s", type(self).__name__, self._db_path)


class UserDB(_SQLiteDB):
    """Registered accounts."""

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            password_hash=row["password_hash"],
            default_view=DefaultView(row["default_view"]),
            timezone=row["timezone"],
            created_at=_dt(row["created_at"]),
        )

    def add_user(
        self,
        name: str,
        email: str,
        password_hash: str = "",
        default_view: DefaultView = DefaultView.LIST,
        timezone: str = "UTC",
    ) -> User:
        """Register a new user. Raises sqlite3.IntegrityError on a taken email."""
        user = User(
            id=_new_id(),
            name=name.strip(),
            email=email.strip().lower(),
            password_hash=password_hash,
            default_view=default_view,
            timezone=timezone,
        )
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO users
                    (id, name, email, password_hash, default_view, timezone, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user.id, user.name, user.email, user.password_hash,
                    user.default_view.value, user.timezone, _ts(user.created_at),
                ),
            )
        logger.info("User registered: %s <%s>", user.id, user.email)
        return user

    def get_user(self, user_id: str) -> User | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(row) if row else None

    def find_by_email(self, email: str) -> User | None:
        """Case-insensitive exact match on email."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?", (email.strip().lower(),),
            ).fetchone()
        return self._row_to_user(row) if row else None

    def update_profile(
        self,
        user_id: str,
        name: str | None = None,
        default_view: DefaultView | None = None,
        timezone: str | None = None,
    ) -> User | None:
        """Update display preferences; returns the updated user or None."""
        fields: list[str] = []
        params: list = []
        if name is not None:
            fields.append("name = ?")
            params.append(name.strip())
        if default_view is not None:
            fields.append("default_view = ?")
            params.append(DefaultView(default_view).value)
        if timezone is not None:
            fields.append("timezone = ?")
            params.append(timezone)

        if fields:
            params.append(user_id)
            with self._connect() as conn:
                conn.execute(f"UPDATE users SET {', '.join(fields)} WHERE id = ?", params)
        return self.get_user(user_id)


class TaskDB(_SQLiteDB):
    """Tasks, including archived and soft-deleted ones."""

    # Python attribute -> (column, encoder)
    _COLUMNS = {
        "title": ("title", lambda v: v),
        "description": ("description", lambda v: v),
        "status": ("status", lambda v: TaskStatus(v).value),
        "tags": ("tags", lambda v: json.dumps(list(v))),
        "due_date": ("due_date", _ts),
        "is_time_based": ("is_time_based", int),
        "reminders": ("reminders", reminders_to_json),
        "archived": ("archived", int),
        "archived_at": ("archived_at", _ts),
        "deleted_at": ("deleted_at", _ts),
    }

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            owner_id=row["owner_id"],
            title=row["title"],
            description=row["description"],
            status=TaskStatus(row["status"]),
            tags=json.loads(row["tags"] or "[]"),
            due_date=_dt(row["due_date"]),
            is_time_based=bool(row["is_time_based"]),
            reminders=reminders_from_json(row["reminders"]),
            archived=bool(row["archived"]),
            archived_at=_dt(row["archived_at"]),
            deleted_at=_dt(row["deleted_at"]),
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
        )

    def add_task(self, task: Task) -> Task:
        """Insert a fully built Task (id included)."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO tasks
                    (id, owner_id, title, description, status, tags, due_date,
                     is_time_based, reminders, archived, archived_at, deleted_at,
                     created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task.id, task.owner_id, task.title, task.description,
                    task.status.value, json.dumps(task.tags), _ts(task.due_date),
                    int(task.is_time_based), reminders_to_json(task.reminders),
                    int(task.archived), _ts(task.archived_at), _ts(task.deleted_at),
                    _ts(task.created_at), _ts(task.updated_at),
                ),
            )
        logger.info("Task added: %s '%s' owner=%s", task.id, task.title, task.owner_id)
        return task

    def get_task(self, task_id: str) -> Task | None:
        """Fetch a task by id, whether or not it is soft-deleted."""
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return self._row_to_task(row) if row else None

    def find_by_owner(self, task_id: str, owner_id: str) -> Task | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = ? AND owner_id = ?",
                (task_id, owner_id),
            ).fetchone()
        return self._row_to_task(row) if row else None

    def update_fields(self, task_id: str, **changes) -> Task | None:
        """Write the given attributes and bump updated_at.

        Unknown attribute names raise KeyError. Returns the stored task.
        """
        fields: list[str] = []
        params: list = []
        for attr, value in changes.items():
            column, encode = self._COLUMNS[attr]
            fields.append(f"{column} = ?")
            params.append(None if value is None else encode(value))

        fields.append("updated_at = ?")
        params.append(_ts(utcnow()))
        params.append(task_id)

        with self._connect() as conn:
            conn.execute(f"UPDATE tasks SET {', '.join(fields)} WHERE id = ?", params)
        return self.get_task(task_id)

    def list_for_owner(
        self,
        owner_id: str,
        q: str | None = None,
        status: TaskStatus | None = None,
        tag: str | None = None,
        archived: bool | None = False,
    ) -> list[Task]:
        """Owner's live tasks, newest update first. archived=None lists both."""
        query = "SELECT * FROM tasks WHERE owner_id = ? AND deleted_at IS NULL"
        params: list = [owner_id]
        if archived is not None:
            query += " AND archived = ?"
            params.append(int(archived))
        if status is not None:
            query += " AND status = ?"
            params.append(TaskStatus(status).value)
        if tag:
            query += " AND EXISTS (SELECT 1 FROM json_each(tasks.tags) WHERE value = ?)"
            params.append(tag)
        if q:
            pattern = f"%{_escape_like(q)}%"
            query += " AND (title LIKE ? ESCAPE '\\' OR description LIKE ? ESCAPE '\\')"
            params.extend([pattern, pattern])
        query += " ORDER BY updated_at DESC"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_task(r) for r in rows]

    def list_shared_with(self, user_id: str) -> list[Task]:
        """Live tasks on which the user holds a share."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT tasks.* FROM tasks
                JOIN task_shares ON task_shares.task_id = tasks.id
                WHERE task_shares.user_id = ? AND tasks.deleted_at IS NULL
                ORDER BY tasks.updated_at DESC
                """,
                (user_id,),
            ).fetchall()
        return [self._row_to_task(r) for r in rows]

    def list_deleted(self, owner_id: str) -> list[Task]:
        """The owner's trash: soft-deleted tasks, most recently deleted first."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM tasks
                WHERE owner_id = ? AND deleted_at IS NOT NULL
                ORDER BY deleted_at DESC
                """,
                (owner_id,),
            ).fetchall()
        return [self._row_to_task(r) for r in rows]

    def list_time_based_open(self) -> list[Task]:
        """Tasks the reminder scheduler has to look at."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM tasks
                WHERE is_time_based = 1
                  AND due_date IS NOT NULL
                  AND archived = 0
                  AND status != 'DONE'
                  AND deleted_at IS NULL
                ORDER BY due_date
                """
            ).fetchall()
        return [self._row_to_task(r) for r in rows]

    def delete_task(self, task_id: str) -> bool:
        """Permanently delete a task with its shares and notifications."""
        with self._connect() as conn:
            conn.execute("DELETE FROM task_shares WHERE task_id = ?", (task_id,))
            conn.execute("DELETE FROM notifications WHERE task_id = ?", (task_id,))
            cursor = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Task %s permanently deleted", task_id)
        return deleted


class ShareDB(_SQLiteDB):
    """TaskShare rows: at most one per (task_id, user_id)."""

    @staticmethod
    def _row_to_share(row: sqlite3.Row) -> TaskShare:
        return TaskShare(
            id=row["id"],
            task_id=row["task_id"],
            user_id=row["user_id"],
            permission=Permission(row["permission"]),
            shared_by=row["shared_by"],
            created_at=_dt(row["created_at"]),
        )

    def add_share(
        self, task_id: str, user_id: str, permission: Permission, shared_by: str,
    ) -> TaskShare:
        """Insert a share. Raises sqlite3.IntegrityError if one already exists."""
        share = TaskShare(
            id=_new_id(),
            task_id=task_id,
            user_id=user_id,
            permission=Permission(permission),
            shared_by=shared_by,
        )
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO task_shares
                    (id, task_id, user_id, permission, shared_by, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    share.id, task_id, user_id, share.permission.value,
                    shared_by, _ts(share.created_at),
                ),
            )
        logger.info(
            "Task %s shared with %s as %s by %s",
            task_id, user_id, share.permission.value, shared_by,
        )
        return share

    def get_share(self, task_id: str, user_id: str) -> TaskShare | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM task_shares WHERE task_id = ? AND user_id = ?",
                (task_id, user_id),
            ).fetchone()
        return self._row_to_share(row) if row else None

    def update_permission(self, share_id: str, permission: Permission) -> TaskShare | None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE task_shares SET permission = ? WHERE id = ?",
                (Permission(permission).value, share_id),
            )
            row = conn.execute(
                "SELECT * FROM task_shares WHERE id = ?", (share_id,),
            ).fetchone()
        return self._row_to_share(row) if row else None

    def delete_share(self, share_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM task_shares WHERE id = ?", (share_id,))
        return cursor.rowcount > 0

    def list_for_task(self, task_id: str) -> list[TaskShare]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM task_shares WHERE task_id = ? ORDER BY created_at",
                (task_id,),
            ).fetchall()
        return [self._row_to_share(r) for r in rows]


class NotificationDB(_SQLiteDB):
    """Per-recipient notification records."""

    @staticmethod
    def _row_to_notification(row: sqlite3.Row) -> Notification:
        return Notification(
            id=row["id"],
            user_id=row["user_id"],
            type=NotificationType(row["type"]),
            task_id=row["task_id"],
            task_title=row["task_title"],
            actor_id=row["actor_id"],
            actor_name=row["actor_name"],
            message=row["message"],
            read=bool(row["read"]),
            created_at=_dt(row["created_at"]),
        )

    def add_notification(self, notification: Notification) -> Notification:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO notifications
                    (id, user_id, type, task_id, task_title, actor_id, actor_name,
                     message, read, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    notification.id, notification.user_id, notification.type.value,
                    notification.task_id, notification.task_title,
                    notification.actor_id, notification.actor_name,
                    notification.message, int(notification.read),
                    _ts(notification.created_at),
                ),
            )
        return notification

    def find_recent(
        self,
        user_id: str,
        task_id: str,
        notification_type: NotificationType,
        since: datetime,
    ) -> Notification | None:
        """Newest notification of a type for (user, task) created at or after ``since``."""
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM notifications
                WHERE user_id = ? AND task_id = ? AND type = ? AND created_at >= ?
                ORDER BY created_at DESC
                LIMIT 1
                """,
                (user_id, task_id, NotificationType(notification_type).value, _ts(since)),
            ).fetchone()
        return self._row_to_notification(row) if row else None

    def list_for_user(self, user_id: str, limit: int = 50) -> list[Notification]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM notifications WHERE user_id = ?
                ORDER BY created_at DESC LIMIT ?
                """,
                (user_id, int(limit)),
            ).fetchall()
        return [self._row_to_notification(r) for r in rows]

    def count_unread(self, user_id: str) -> int:
        with self._connect() as conn:
            (n,) = conn.execute(
                "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND read = 0",
                (user_id,),
            ).fetchone()
        return int(n)

    def mark_read(self, notification_id: str, user_id: str) -> bool:
        """Mark one of the user's notifications read; False if it isn't theirs."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE notifications SET read = 1 WHERE id = ? AND user_id = ?",
                (notification_id, user_id),
            )
        return cursor.rowcount > 0

    def mark_all_read(self, user_id: str) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE notifications SET read = 1 WHERE user_id = ? AND read = 0",
                (user_id,),
            )
        return cursor.rowcount

    def delete_notification(self, notification_id: str, user_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM notifications WHERE id = ? AND user_id = ?",
                (notification_id, user_id),
            )
        return cursor.rowcount > 0

    def clear(self, user_id: str) -> int:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM notifications WHERE user_id = ?", (user_id,))
        return cursor.rowcount
