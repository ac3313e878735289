"""
Branch Asset & Payables Desk
Blueprint registry and shared request helpers.
"""

from flask import request

from assetdesk.core.exceptions import NotFoundError
from assetdesk.services.scope_resolver import resolve_scope
from assetdesk.utils.helpers import actor_from_request

# Body keys that describe the caller rather than the record
ACTOR_KEYS = frozenset({"actorRole", "actorBranchCode", "actorUsername"})


def paginate_list(items, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to an in-memory list.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_page, total_count)
    """
    total = len(items)
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return items[offset:offset + limit], total


def json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def record_payload():
    """JSON body without the actor keys."""
    return {k: v for k, v in json_body().items() if k not in ACTOR_KEYS}


def actor_and_scope():
    actor = actor_from_request()
    return actor, resolve_scope(actor)


def flag(name):
    return request.args.get(name, "").lower() in ("1", "true", "yes")


def require_in_scope(record, scope, label, record_id, held=False):
    """404 for records outside the actor's scope, same as a missing id.

    held=True also hides records that are visible only because they were
    transferred out; those are read-only for the origin branch.
    """
    visible = scope.holds(record) if held else scope.includes(record)
    if not visible:
        raise NotFoundError(label, record_id)
    return record
