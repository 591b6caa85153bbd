"""
TaskDeck — Task Service.

The task-edit path: authorize through the permission resolver, mutate the
record, then fan out notifications. Owners and EDITORs edit and archive;
only owners delete, restore and purge.

Deletion is two-stage. delete_task() on a live task moves it to the trash
(soft delete); on a trashed task it deletes permanently. Shares are left
alone by soft delete and restore; permanent deletion cascades to shares and
notifications. While a task is in the trash every other operation answers 404.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Iterable

from pydantic import ValidationError as PydanticValidationError

from taskdeck.core.notifications import EDIT_TRACKED_FIELDS, describe_edit, recipients_for
from taskdeck.data.models import (
    CustomReminder,
    NotificationType,
    RelativeReminder,
    Role,
    Task,
    TaskStatus,
    parse_reminders,
    utcnow,
)
from taskdeck.errors import AuthorizationError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from taskdeck.core.notifications import NotificationFanOut
    from taskdeck.core.permissions import AccessResolution, PermissionResolver
    from taskdeck.ports.store_port import RecordStore

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset(
    {"title", "description", "status", "tags", "due_date", "is_time_based", "reminders"}
)

Reminder = RelativeReminder | CustomReminder


def _normalize_tags(tags: Iterable[str]) -> list[str]:
    """Strip, drop empties and duplicates, keep first-seen order."""
    seen: list[str] = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def _coerce_reminders(raw: Iterable[Any] | None) -> list[Reminder]:
    if raw is None:
        return []
    try:
        return parse_reminders(list(raw))
    except PydanticValidationError as exc:
        raise ValidationError(
            "Invalid reminder configuration",
            details={"reminders": exc.errors(include_url=False)},
        ) from exc


def _check_reminders_resolvable(
    is_time_based: bool, due_date: datetime | None, reminders: list[Reminder],
) -> None:
    if is_time_based and due_date is None and any(
        isinstance(r, RelativeReminder) for r in reminders
    ):
        raise ValidationError("Relative reminders require a due date")


class TaskService:
    """Task CRUD with collaboration-aware authorization and notifications."""

    def __init__(
        self,
        store: RecordStore,
        resolver: PermissionResolver,
        fanout: NotificationFanOut,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._fanout = fanout
        self._clock = clock

    async def _actor_name(self, actor_id: str) -> str:
        actor = await self._store.find_user(actor_id)
        return actor.name if actor else "Someone"

    async def _require(
        self, task_id: str, actor_id: str, min_role: Role, allow_trashed: bool = False,
    ) -> AccessResolution:
        """Resolve the actor; invisible -> 404, visible but too weak -> 403.

        Trashed tasks count as invisible unless ``allow_trashed`` is set.
        """
        if allow_trashed:
            access = await self._resolver.authorize(task_id, actor_id)
        else:
            access = await self._resolver.authorize_live(task_id, actor_id)
        if not access.role.at_least(min_role):
            raise AuthorizationError(
                "Only the owner can do that" if min_role is Role.OWNER
                else "Viewers cannot modify this task"
            )
        return access

    # ------------------------------------------------------------------
    # create / read
    # ------------------------------------------------------------------

    async def create_task(
        self,
        owner_id: str,
        title: str,
        description: str = "",
        status: TaskStatus = TaskStatus.TODO,
        tags: Iterable[str] = (),
        due_date: datetime | None = None,
        is_time_based: bool = False,
        reminders: Iterable[Any] | None = None,
    ) -> Task:
        if not title or not title.strip():
            raise ValidationError("Title is required")
        parsed_reminders = _coerce_reminders(reminders)
        _check_reminders_resolvable(is_time_based, due_date, parsed_reminders)

        now = self._clock()
        task = Task(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            title=title.strip(),
            description=description,
            status=TaskStatus(status),
            tags=_normalize_tags(tags),
            due_date=due_date,
            is_time_based=is_time_based,
            reminders=parsed_reminders,
            created_at=now,
            updated_at=now,
        )
        return await self._store.create_task(task)

    async def get_task(self, task_id: str, user_id: str) -> Task:
        access = await self._resolver.authorize_live(task_id, user_id)
        return access.task

    async def list_tasks(
        self,
        user_id: str,
        q: str | None = None,
        status: TaskStatus | None = None,
        tag: str | None = None,
        archived: bool | None = False,
    ) -> list[Task]:
        """The user's own tasks; soft-deleted ones never appear."""
        return await self._store.list_tasks_for_owner(
            user_id, q=q, status=status, tag=tag, archived=archived,
        )

    async def list_shared_tasks(self, user_id: str) -> list[Task]:
        return await self._store.list_tasks_shared_with(user_id)

    async def list_trash(self, user_id: str) -> list[Task]:
        return await self._store.list_deleted_tasks(user_id)

    # ------------------------------------------------------------------
    # edit / archive
    # ------------------------------------------------------------------

    async def update_task(self, task_id: str, actor_id: str, **changes: Any) -> Task:
        """Apply an edit as owner or EDITOR and notify everyone else on the task.

        Only fields whose value actually differs are written and reported.
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown task field(s): {', '.join(sorted(unknown))}")

        access = await self._require(task_id, actor_id, Role.EDITOR)
        task = access.task

        if "title" in changes:
            title = (changes["title"] or "").strip()
            if not title:
                raise ValidationError("Title is required")
            changes["title"] = title
        if "status" in changes:
            changes["status"] = TaskStatus(changes["status"])
        if "tags" in changes:
            changes["tags"] = _normalize_tags(changes["tags"] or [])
        if "reminders" in changes:
            changes["reminders"] = _coerce_reminders(changes["reminders"])

        diff = {k: v for k, v in changes.items() if getattr(task, k) != v}
        if not diff:
            return task

        _check_reminders_resolvable(
            diff.get("is_time_based", task.is_time_based),
            diff.get("due_date", task.due_date),
            diff.get("reminders", task.reminders),
        )

        updated = await self._store.update_task(task_id, **diff)
        if updated is None:
            raise NotFoundError("Task not found")

        tracked = {k: v for k, v in diff.items() if k in EDIT_TRACKED_FIELDS}
        actor_name = await self._actor_name(actor_id)
        shares = await self._store.list_shares_for_task(task_id)
        await self._fanout.fan_out(
            recipients_for(updated.owner_id, shares, actor_id),
            type=NotificationType.TASK_EDITED,
            task_id=task_id,
            task_title=updated.title,
            actor_id=actor_id,
            actor_name=actor_name,
            message=describe_edit(actor_name, updated.title, tracked),
        )
        logger.info("Task %s edited by %s: %s", task_id, actor_id, sorted(diff))
        return updated

    async def archive_task(self, task_id: str, actor_id: str) -> Task:
        access = await self._require(task_id, actor_id, Role.EDITOR)
        task = access.task
        if task.archived:
            return task

        updated = await self._store.update_task(
            task_id, archived=True, archived_at=self._clock(),
        )
        if not access.is_owner:
            actor_name = await self._actor_name(actor_id)
            await self._fanout.fan_out(
                [task.owner_id],
                type=NotificationType.TASK_ARCHIVED,
                task_id=task_id,
                task_title=task.title,
                actor_id=actor_id,
                actor_name=actor_name,
                message=f'{actor_name} archived "{task.title}"',
            )
        logger.info("Task %s archived by %s", task_id, actor_id)
        return updated

    async def unarchive_task(self, task_id: str, actor_id: str) -> Task:
        access = await self._require(task_id, actor_id, Role.EDITOR)
        if not access.task.archived:
            return access.task
        updated = await self._store.update_task(task_id, archived=False, archived_at=None)
        logger.info("Task %s unarchived by %s", task_id, actor_id)
        return updated

    # ------------------------------------------------------------------
    # trash
    # ------------------------------------------------------------------

    async def delete_task(self, task_id: str, actor_id: str) -> Task | None:
        """Soft-delete a live task; permanently delete a trashed one.

        Returns the trashed task, or None after a permanent delete.
        """
        access = await self._require(task_id, actor_id, Role.OWNER, allow_trashed=True)
        if access.task.is_deleted:
            await self.permanent_delete(task_id, actor_id)
            return None
        trashed = await self._store.update_task(task_id, deleted_at=self._clock())
        logger.info("Task %s moved to trash", task_id)
        return trashed

    async def restore_task(self, task_id: str, actor_id: str) -> Task:
        access = await self._require(task_id, actor_id, Role.OWNER, allow_trashed=True)
        if not access.task.is_deleted:
            return access.task
        restored = await self._store.update_task(task_id, deleted_at=None)
        logger.info("Task %s restored from trash", task_id)
        return restored

    async def permanent_delete(self, task_id: str, actor_id: str) -> None:
        await self._require(task_id, actor_id, Role.OWNER, allow_trashed=True)
        await self._store.delete_task(task_id)

    async def empty_trash(self, user_id: str) -> int:
        """Permanently delete every trashed task of the user; returns the count."""
        trashed = await self._store.list_deleted_tasks(user_id)
        for task in trashed:
            await self._store.delete_task(task.id)
        if trashed:
            logger.info("Emptied trash for %s: %d task(s)", user_id, len(trashed))
        return len(trashed)
