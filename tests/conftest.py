"""Shared test fixtures and configuration.

Pins environment variables before any taskdeck imports so settings are
deterministic, and provides a temp-file SQLite store plus wired services.
"""

import os

# Patch env vars BEFORE any taskdeck imports
os.environ.setdefault("REMINDER_POLL_INTERVAL_MS", "60000")
os.environ.setdefault("REMINDER_DEDUP_WINDOW_MINUTES", "5")
os.environ.setdefault("NOTIFICATION_PAGE_SIZE", "50")
os.environ.setdefault("LOG_LEVEL", "INFO")

from types import SimpleNamespace

import pytest


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_taskdeck.db")


@pytest.fixture
def store(tmp_db_path):
    """Return a SQLiteRecordStore backed by a temp file."""
    from taskdeck.adapters.sqlite_store import SQLiteRecordStore
    return SQLiteRecordStore(tmp_db_path)


@pytest.fixture
def app(tmp_db_path):
    """Return a fully wired TaskDeckApp on a temp database."""
    from taskdeck.app import build_app
    return build_app(tmp_db_path)


@pytest.fixture
def people(app):
    """Four registered users: an owner and three potential collaborators."""
    users = app.store.users
    return SimpleNamespace(
        owner=users.add_user("Olivia", "olivia@example.com"),
        alice=users.add_user("Alice", "alice@example.com"),
        bob=users.add_user("Bob", "bob@example.com"),
        carol=users.add_user("Carol", "carol@example.com"),
    )


@pytest.fixture
def shared_task(app, people):
    """A task owned by Olivia, shared with Alice (EDITOR) and Bob (VIEWER)."""
    from taskdeck.data.models import Permission, Task

    task = app.store.tasks.add_task(
        Task(id="task-1", owner_id=people.owner.id, title="Plan offsite")
    )
    app.store.shares.add_share(task.id, people.alice.id, Permission.EDITOR, people.owner.id)
    app.store.shares.add_share(task.id, people.bob.id, Permission.VIEWER, people.owner.id)
    return task
