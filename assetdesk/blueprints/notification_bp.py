"""
Notification Blueprint.

Endpoints:
    GET  /api/notifications                 — notifications addressed to the actor
    POST /api/notifications                 — post a notification
    GET  /api/notifications/unread-count    — unread count for the actor
    PUT  /api/notifications/<id>/read       — mark one as read
    PUT  /api/notifications/read-all        — mark all of the actor's as read
"""

import logging

from flask import Blueprint, jsonify

from assetdesk.blueprints import actor_and_scope, flag, json_body, paginate_list
from assetdesk.core.exceptions import ValidationError
from assetdesk.services.notification import NotificationService

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/notifications")


@notification_bp.route("", methods=["GET"])
def list_notifications():
    """Query params: role, branchCode, username, unreadOnly, limit, offset"""
    actor, _ = actor_and_scope()
    items = NotificationService.list_for(actor, unread_only=flag("unreadOnly"))
    page, _total = paginate_list(items)
    return jsonify(page), 200


@notification_bp.route("", methods=["POST"])
def create_notification():
    """Body: { title, message?, type?, targetRole?, targetBranch?, targetUsername?, assetId? }"""
    actor, _ = actor_and_scope()
    data = json_body()
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    notif = NotificationService.create(
        title=title,
        message=data.get("message", ""),
        type=data.get("type", "info"),
        target_role=data.get("targetRole"),
        target_branch=data.get("targetBranch"),
        target_username=data.get("targetUsername"),
        asset_id=data.get("assetId"),
        created_by=actor.name,
    )
    return jsonify(notif), 201


@notification_bp.route("/unread-count", methods=["GET"])
def unread_count():
    actor, _ = actor_and_scope()
    return jsonify({"unread_count": NotificationService.unread_count(actor)}), 200


@notification_bp.route("/<int:notification_id>/read", methods=["PUT"])
def mark_read(notification_id):
    """404 unless the notification is addressed to the actor."""
    actor, _ = actor_and_scope()
    return jsonify(NotificationService.mark_read(notification_id, actor)), 200


@notification_bp.route("/read-all", methods=["PUT"])
def mark_all_read():
    actor, _ = actor_and_scope()
    return jsonify({"marked_read": NotificationService.mark_all_read(actor)}), 200
