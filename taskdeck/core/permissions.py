"""
TaskDeck — Permission Resolver.

Determines a user's role on a task: ownership first, then the share row.
A caller without a role must be answered as if the task did not exist, so
task ids are never confirmed to outsiders.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from taskdeck.data.models import Role
from taskdeck.errors import NotFoundError

if TYPE_CHECKING:
    from taskdeck.data.models import Task
    from taskdeck.ports.store_port import RecordStore

logger = logging.getLogger(__name__)

TASK_NOT_VISIBLE = "Task not found or no access"


@dataclass
class AccessResolution:
    """Outcome of a permission lookup. ``role`` is None for no access."""

    role: Role | None
    task: Task | None = None

    @property
    def granted(self) -> bool:
        return self.role is not None

    @property
    def is_owner(self) -> bool:
        return self.role is Role.OWNER


class PermissionResolver:
    """Resolves OWNER / EDITOR / VIEWER / no access for (task, user)."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def resolve(
        self, task_id: str, user_id: str, min_role: Role | None = None,
    ) -> AccessResolution:
        """Look up the caller's role; never raises for missing access.

        With ``min_role`` a weaker role is reported as no access, using the
        order OWNER > EDITOR > VIEWER.
        """
        task = await self._store.find_task_by_owner(task_id, user_id)
        if task is not None:
            resolution = AccessResolution(Role.OWNER, task)
        else:
            share = await self._store.find_share(task_id, user_id)
            if share is None:
                return AccessResolution(None)
            task = await self._store.get_task(task_id)
            if task is None:
                # Dangling share left behind by a concurrent permanent delete.
                return AccessResolution(None)
            resolution = AccessResolution(Role.from_permission(share.permission), task)

        if min_role is not None and not resolution.role.at_least(min_role):
            return AccessResolution(None)
        return resolution

    async def authorize(
        self, task_id: str, user_id: str, min_role: Role | None = None,
    ) -> AccessResolution:
        """Like resolve(), but raises NotFoundError when there is no access."""
        resolution = await self.resolve(task_id, user_id, min_role)
        if not resolution.granted:
            logger.debug("User %s has no access to task %s", user_id, task_id)
            raise NotFoundError(TASK_NOT_VISIBLE)
        return resolution

    async def authorize_live(
        self, task_id: str, user_id: str, min_role: Role | None = None,
    ) -> AccessResolution:
        """authorize() for tasks outside the trash.

        A soft-deleted task is only reachable for restore, deletion and
        leaving it; everything else gets the same 404 as an unknown task.
        """
        resolution = await self.authorize(task_id, user_id, min_role)
        if resolution.task.is_deleted:
            logger.debug("Task %s is in the trash; hidden from %s", task_id, user_id)
            raise NotFoundError(TASK_NOT_VISIBLE)
        return resolution
