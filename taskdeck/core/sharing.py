"""
TaskDeck — Share Manager.

Owns the TaskShare lifecycle for one (task, user) pair:

    no-access -> VIEWER <-> EDITOR -> no-access (revoked)

Every transition is gated by the actor's role and reported through the
notification fan-out. Sharing policy compares roles by identity rather than
rank: a VIEWER may invite others, but only as VIEWER.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from taskdeck.core.notifications import recipients_for
from taskdeck.data.models import NotificationType, Permission, Role
from taskdeck.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from taskdeck.core.notifications import NotificationFanOut
    from taskdeck.core.permissions import PermissionResolver
    from taskdeck.data.models import Task, TaskShare, User
    from taskdeck.ports.store_port import RecordStore

logger = logging.getLogger(__name__)

UNKNOWN_ACTOR = "Someone"


class ShareOutcome(Enum):
    CREATED = "created"
    UPDATED = "updated"
    ALREADY_SHARED = "already_shared"


@dataclass
class ShareResult:
    share: TaskShare
    outcome: ShareOutcome
    message: str


@dataclass
class Collaborator:
    user_id: str
    name: str
    email: str
    role: Role
    share_id: str | None = None


@dataclass
class CollaboratorList:
    collaborators: list[Collaborator] = field(default_factory=list)
    my_role: Role | None = None


class ShareManager:
    """Invite, re-permission, revoke and list collaborators on a task."""

    def __init__(
        self,
        store: RecordStore,
        resolver: PermissionResolver,
        fanout: NotificationFanOut,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._fanout = fanout

    async def _actor_name(self, actor_id: str) -> str:
        actor = await self._store.find_user(actor_id)
        return actor.name if actor else UNKNOWN_ACTOR

    # ------------------------------------------------------------------
    # invite
    # ------------------------------------------------------------------

    async def invite(
        self,
        task_id: str,
        actor_id: str,
        grantee_email: str,
        permission: Permission,
    ) -> ShareResult:
        """Share a task with the user registered under ``grantee_email``.

        Re-inviting with the same permission is a no-op ("Already shared");
        with a different permission the existing share is updated in place.
        """
        permission = Permission(permission)
        access = await self._resolver.authorize_live(task_id, actor_id)
        task = access.task

        if access.role is Role.VIEWER and permission is Permission.EDITOR:
            raise AuthorizationError("Viewers can only share as Viewer")

        grantee = await self._store.find_user_by_email(grantee_email)
        if grantee is None:
            raise NotFoundError("User not found. They need to sign up first.")
        if grantee.id == actor_id:
            raise ValidationError("Cannot share with yourself")
        if grantee.id == task.owner_id:
            raise ValidationError("Cannot share with the task owner")

        existing = await self._store.find_share(task_id, grantee.id)
        actor_name = await self._actor_name(actor_id)

        if existing is not None:
            return await self._reinvite(task, grantee, existing, permission, actor_id, actor_name)

        try:
            share = await self._store.create_share(task_id, grantee.id, permission, actor_id)
        except ConflictError:
            # A concurrent invite for the same grantee created the share first.
            existing = await self._store.find_share(task_id, grantee.id)
            if existing is None:
                raise
            return await self._reinvite(task, grantee, existing, permission, actor_id, actor_name)
        await self._notify_share_created(task, grantee, actor_id, actor_name)
        return ShareResult(share, ShareOutcome.CREATED, "Shared")

    async def _reinvite(
        self,
        task: Task,
        grantee: User,
        existing: TaskShare,
        permission: Permission,
        actor_id: str,
        actor_name: str,
    ) -> ShareResult:
        if existing.permission is permission:
            return ShareResult(existing, ShareOutcome.ALREADY_SHARED, "Already shared")
        updated = await self._store.update_share(existing.id, permission)
        if updated is None:
            raise NotFoundError("Collaborator not found")
        await self._notify_permission_changed(
            task, grantee, permission, actor_id, actor_name,
            recipients=recipients_for(task.owner_id, [updated], actor_id),
        )
        logger.info(
            "Task %s: %s changed %s to %s", task.id, actor_id, grantee.id, permission.value,
        )
        return ShareResult(updated, ShareOutcome.UPDATED, "Permission updated")

    async def _notify_share_created(
        self, task: Task, grantee: User, actor_id: str, actor_name: str,
    ) -> None:
        shares = await self._store.list_shares_for_task(task.id)
        existing = recipients_for(task.owner_id, shares, actor_id, exclude=[grantee.id])
        await self._fanout.fan_out(
            existing,
            type=NotificationType.COLLABORATOR_ADDED,
            task_id=task.id,
            task_title=task.title,
            actor_id=actor_id,
            actor_name=actor_name,
            message=f'{actor_name} added {grantee.name} to "{task.title}"',
        )
        await self._fanout.fan_out(
            [grantee.id],
            type=NotificationType.TASK_SHARED,
            task_id=task.id,
            task_title=task.title,
            actor_id=actor_id,
            actor_name=actor_name,
            message=f'{actor_name} shared "{task.title}" with you',
        )

    async def _notify_permission_changed(
        self,
        task: Task,
        grantee: User,
        permission: Permission,
        actor_id: str,
        actor_name: str,
        recipients: list[str],
    ) -> None:
        for user_id in recipients:
            if user_id == grantee.id:
                message = (
                    f'{actor_name} changed your permission to {permission.value} '
                    f'on "{task.title}"'
                )
            else:
                message = (
                    f"{actor_name} changed {grantee.name}'s permission to "
                    f'{permission.value} on "{task.title}"'
                )
            await self._fanout.fan_out(
                [user_id],
                type=NotificationType.PERMISSION_CHANGED,
                task_id=task.id,
                task_title=task.title,
                actor_id=actor_id,
                actor_name=actor_name,
                message=message,
            )

    # ------------------------------------------------------------------
    # change permission / revoke
    # ------------------------------------------------------------------

    async def change_permission(
        self,
        task_id: str,
        actor_id: str,
        grantee_user_id: str,
        new_permission: Permission,
    ) -> TaskShare:
        """Owner-only: switch a collaborator between VIEWER and EDITOR."""
        new_permission = Permission(new_permission)
        access = await self._resolver.authorize_live(task_id, actor_id)
        if not access.is_owner:
            raise AuthorizationError("Only the owner can change permissions")

        share = await self._store.find_share(task_id, grantee_user_id)
        if share is None:
            raise NotFoundError("Collaborator not found")
        if share.permission is new_permission:
            return share

        updated = await self._store.update_share(share.id, new_permission)
        if updated is None:
            raise NotFoundError("Collaborator not found")

        grantee = await self._store.find_user(grantee_user_id)
        if grantee is not None:
            actor_name = await self._actor_name(actor_id)
            await self._notify_permission_changed(
                access.task, grantee, new_permission, actor_id, actor_name,
                recipients=[grantee.id],
            )
        logger.info(
            "Task %s: %s is now %s", task_id, grantee_user_id, new_permission.value,
        )
        return updated

    async def revoke(self, task_id: str, actor_id: str, grantee_user_id: str) -> None:
        """Remove a collaborator. The owner may remove anyone; others only themselves."""
        access = await self._resolver.authorize(task_id, actor_id)
        if not access.is_owner and grantee_user_id != actor_id:
            raise AuthorizationError("Only the owner can remove other collaborators")

        share = await self._store.find_share(task_id, grantee_user_id)
        if share is None:
            raise NotFoundError("Collaborator not found")
        await self._store.delete_share(share.id)

        task = access.task
        actor_name = await self._actor_name(actor_id)
        if grantee_user_id == actor_id:
            recipient, message = task.owner_id, f'{actor_name} left "{task.title}"'
        else:
            recipient, message = grantee_user_id, f'{actor_name} removed you from "{task.title}"'
        await self._fanout.fan_out(
            [recipient],
            type=NotificationType.COLLABORATOR_REMOVED,
            task_id=task.id,
            task_title=task.title,
            actor_id=actor_id,
            actor_name=actor_name,
            message=message,
        )
        logger.info("Task %s: share for %s revoked by %s", task_id, grantee_user_id, actor_id)

    # ------------------------------------------------------------------
    # listing
    # ------------------------------------------------------------------

    async def list_collaborators(self, task_id: str, actor_id: str) -> CollaboratorList:
        """Owner first (role OWNER), then each share holder with their permission."""
        access = await self._resolver.authorize_live(task_id, actor_id)
        task = access.task

        collaborators: list[Collaborator] = []
        owner = await self._store.find_user(task.owner_id)
        if owner is not None:
            collaborators.append(
                Collaborator(owner.id, owner.name, owner.email, Role.OWNER)
            )
        for share in await self._store.list_shares_for_task(task_id):
            user = await self._store.find_user(share.user_id)
            if user is None:
                continue
            collaborators.append(
                Collaborator(
                    user.id, user.name, user.email,
                    Role.from_permission(share.permission), share.id,
                )
            )
        return CollaboratorList(collaborators, access.role)
