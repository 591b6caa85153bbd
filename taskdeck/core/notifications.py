"""
TaskDeck — Notification Fan-Out Engine.

Turns a mutation into one Notification record per recipient. Delivery is
best-effort: a failed write is logged and never undoes the mutation that
triggered it, and never stops the remaining recipients.

Recipient sets are computed by the callers (share manager, task service,
reminder scheduler) with recipients_for(), which drops the actor up front.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Iterable

from taskdeck.data.models import Notification, NotificationType, utcnow
from taskdeck.errors import TransientStoreError

if TYPE_CHECKING:
    from taskdeck.data.models import TaskShare
    from taskdeck.ports.store_port import RecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    recipient_user_id: str
    type: NotificationType
    task_id: str
    task_title: str
    actor_id: str
    actor_name: str
    message: str


# ---------------------------------------------------------------------------
# Recipient sets
# ---------------------------------------------------------------------------


def recipients_for(
    owner_id: str,
    shares: Iterable[TaskShare],
    actor_id: str,
    exclude: Iterable[str] = (),
) -> list[str]:
    """Owner plus every share holder, minus the actor and ``exclude``.

    Order is stable (owner first, then shares in the given order) and each
    user appears once.
    """
    skipped = {actor_id, *exclude}
    recipients: list[str] = []
    for user_id in [owner_id, *(s.user_id for s in shares)]:
        if user_id in skipped or user_id in recipients:
            continue
        recipients.append(user_id)
    return recipients


# ---------------------------------------------------------------------------
# Message composition for task edits
# ---------------------------------------------------------------------------

# Tracked fields, in the order they are reported.
EDIT_TRACKED_FIELDS = ("status", "title", "due_date", "description")

_STATUS_LABELS = {
    "TODO": "To Do",
    "IN_PROGRESS": "In Progress",
    "DONE": "Done",
}


def describe_edit(actor_name: str, task_title: str, changes: dict[str, object]) -> str:
    """Build the TASK_EDITED message from the tracked fields that changed.

    ``changes`` maps a tracked field name to its new value; untracked keys
    are ignored. ``task_title`` is the title after the edit.
    """
    changed = [name for name in EDIT_TRACKED_FIELDS if name in changes]

    if len(changed) > 1:
        return f'{actor_name} updated details of "{task_title}"'
    if not changed:
        return f'{actor_name} edited "{task_title}"'

    field_name = changed[0]
    if field_name == "status":
        status = getattr(changes["status"], "value", changes["status"])
        label = _STATUS_LABELS.get(str(status), str(status))
        return f'{actor_name} changed the status of "{task_title}" to {label}'
    if field_name == "title":
        return f'{actor_name} renamed a task to "{task_title}"'
    if field_name == "due_date":
        if changes["due_date"] is None:
            return f'{actor_name} removed the due date of "{task_title}"'
        return f'{actor_name} changed the due date of "{task_title}"'
    return f'{actor_name} updated the description of "{task_title}"'


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class NotificationFanOut:
    """Writes notifications through the record store."""

    def __init__(
        self,
        store: RecordStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._clock = clock

    async def notify(self, event: NotificationEvent) -> Notification | None:
        """Write one notification; None if skipped (self) or the write failed."""
        if event.recipient_user_id == event.actor_id:
            return None
        return await self.write(event)

    async def write(
        self, event: NotificationEvent, created_at: datetime | None = None,
    ) -> Notification | None:
        """Store the notification as given, without the self-recipient guard.

        Used directly only for system-authored notifications (reminders)
        where the recipient is also the nominal actor.
        """
        notification = Notification(
            id=uuid.uuid4().hex,
            user_id=event.recipient_user_id,
            type=event.type,
            task_id=event.task_id,
            task_title=event.task_title,
            actor_id=event.actor_id,
            actor_name=event.actor_name,
            message=event.message,
            created_at=created_at or self._clock(),
        )
        try:
            stored = await self._store.create_notification(notification)
        except TransientStoreError as exc:
            logger.error(
                "Failed to write %s notification for user %s on task %s: %s",
                event.type.value, event.recipient_user_id, event.task_id, exc,
            )
            return None
        logger.debug(
            "Notification %s -> %s: %s",
            event.type.value, event.recipient_user_id, event.message,
        )
        return stored

    async def fan_out(
        self,
        recipients: Iterable[str],
        *,
        type: NotificationType,
        task_id: str,
        task_title: str,
        actor_id: str,
        actor_name: str,
        message: str,
    ) -> list[Notification]:
        """Notify each recipient independently; returns what was written."""
        written: list[Notification] = []
        seen: set[str] = set()
        for user_id in recipients:
            if user_id in seen:
                continue
            seen.add(user_id)
            notification = await self.notify(
                NotificationEvent(
                    recipient_user_id=user_id,
                    type=type,
                    task_id=task_id,
                    task_title=task_title,
                    actor_id=actor_id,
                    actor_name=actor_name,
                    message=message,
                )
            )
            if notification is not None:
                written.append(notification)
        if written:
            logger.info(
                "%s on task %s: notified %d user(s)", type.value, task_id, len(written),
            )
        return written
