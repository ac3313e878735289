"""
Branch Asset & Payables Desk
Notification Service.

Workflow transitions call ``NotificationService.emit`` after their own
write has succeeded. Emission is fire-and-forget: a failure is logged and
swallowed so it never undoes the transition that triggered it.

A notification targets any combination of role, branch and username; one
with no target is a broadcast. A manager receives branch-targeted
notifications for every branch in their scope, the same branches the
Scope Resolver lets them see.
"""

import logging

from assetdesk.core.exceptions import NotFoundError
from assetdesk.models.schema import NOTIFICATIONS
from assetdesk.services.scope_resolver import RoleKind, normalize_branch, resolve_scope
from assetdesk.store import get_store
from assetdesk.utils.helpers import now_iso

logger = logging.getLogger(__name__)


def _is_read(n):
    return str(n.get("isRead", "false")).lower() == "true"


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, title, message="", type="info", target_role=None, target_branch=None,
               target_username=None, asset_id=None, created_by=None):
        """Create a single notification record. Storage errors propagate."""
        record = {
            "title": title,
            "message": message,
            "type": type,
            "targetRole": target_role,
            "targetBranch": target_branch,
            "targetUsername": target_username,
            "assetId": asset_id,
            "createdBy": created_by,
            "isRead": "false",
            "createdAt": now_iso(),
        }
        return get_store().insert(NOTIFICATIONS, {k: v for k, v in record.items() if v is not None})

    @staticmethod
    def emit(**kwargs):
        """Create a notification, logging instead of raising on failure.

        Returns the created record, or None when creation failed.
        """
        try:
            return NotificationService.create(**kwargs)
        except Exception:
            logger.exception("Notification %r could not be stored; continuing",
                             kwargs.get("title"))
            return None

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def _branch_matches(branch, actor, scope):
        if actor.role.kind is RoleKind.MANAGER:
            if scope is None:
                scope = resolve_scope(actor)
            return scope.holds({"branchCode": branch})
        return normalize_branch(branch) == normalize_branch(actor.branch_code)

    @staticmethod
    def matches(notification, actor, scope=None) -> bool:
        """True when *notification* is addressed to *actor*.

        *scope* is the actor's resolved scope; pass it when matching many
        notifications so a manager's branches are resolved once.
        """
        role = str(notification.get("targetRole") or "").strip()
        branch = str(notification.get("targetBranch") or "").strip()
        username = str(notification.get("targetUsername") or "").strip()
        if not (role or branch or username):
            return True
        if username and actor.username and username.lower() == actor.username.lower():
            return True
        if role and role.replace(" ", "").lower() in (
            actor.role.label.replace(" ", "").lower(), actor.role.kind.value.lower(),
        ):
            return not branch or NotificationService._branch_matches(branch, actor, scope)
        if branch and not role and NotificationService._branch_matches(branch, actor, scope):
            return True
        return False

    @staticmethod
    def list_for(actor, unread_only=False):
        """Notifications addressed to *actor*, newest first."""
        scope = resolve_scope(actor) if actor.role.kind is RoleKind.MANAGER else None
        items = [
            n for n in get_store().get_all(NOTIFICATIONS)
            if NotificationService.matches(n, actor, scope) and not (unread_only and _is_read(n))
        ]
        items.sort(key=lambda n: (str(n.get("createdAt") or ""), n["id"]), reverse=True)
        return items

    @staticmethod
    def unread_count(actor):
        return len(NotificationService.list_for(actor, unread_only=True))

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, actor=None):
        """Mark a single notification as read.

        With *actor*, a notification not addressed to them is NotFoundError.
        """
        store = get_store()
        with store.lock(NOTIFICATIONS):
            n = store.get_or_raise(NOTIFICATIONS, notification_id, "Notification")
            if actor is not None and not NotificationService.matches(n, actor):
                raise NotFoundError("Notification", notification_id)
            return store.update(NOTIFICATIONS, notification_id, {"isRead": "true", "readAt": now_iso()})

    @staticmethod
    def mark_all_read(actor):
        """Mark every unread notification addressed to *actor* as read."""
        store = get_store()
        count = 0
        with store.lock(NOTIFICATIONS):
            for n in NotificationService.list_for(actor, unread_only=True):
                store.update(NOTIFICATIONS, n["id"], {"isRead": "true", "readAt": now_iso()})
                count += 1
        return count
