"""Shared utility functions for services and blueprints.

parse_date:          lenient date parsing (returns None on bad input)
parse_date_input:    strict date parsing (raises ValidationError)
now_iso / today:     timestamps in the format stored on records
month_year:          "YYYY-MM" bucket used by the monthly bill ceiling
require_fields:      missing-field check raising ValidationError
actor_from_request:  self-asserted actor (role, branchCode, username)
"""
import logging
import math
from datetime import date, datetime, timezone

from flask import request

from assetdesk.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY / DD-MM-YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY and DD-MM-YYYY (dates typed into workbooks by hand)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text)
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except (ValueError, TypeError):
        pass
    for fmt in ("%d.%m.%Y", "%d-%m-%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except (ValueError, TypeError):
            continue
    return None


def parse_date_input(value, field):
    """Same as parse_date() but raises ValidationError for a non-empty bad value."""
    if value in (None, ""):
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(
            f"{field} must be a date (YYYY-MM-DD)", details={field: str(value)},
        )
    return parsed


def today():
    return date.today()


def now_iso():
    return datetime.now(timezone.utc).isoformat()


def month_year(d):
    """Return the "YYYY-MM" bucket of a date."""
    return f"{d.year:04d}-{d.month:02d}"


def to_amount(value, field="amount"):
    """Parse a money amount.

    ValidationError unless it is a finite, non-negative number; float()
    alone lets "nan" and "inf" through.
    """
    if value in (None, ""):
        raise ValidationError(f"{field} is required", details={field: "required"})
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", details={field: str(value)}) from None
    if not math.isfinite(amount):
        raise ValidationError(f"{field} must be a finite number", details={field: str(value)})
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative", details={field: str(value)})
    return amount


def is_blank(value):
    return value is None or not str(value).strip()


def require_fields(data, *names):
    """Raise ValidationError listing every blank field in *names*."""
    missing = [n for n in names if is_blank(data.get(n))]
    if missing:
        raise ValidationError(
            f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required",
            details={n: "required" for n in missing},
        )


# ── Request helpers ──────────────────────────────────────────────────────────

def actor_from_request():
    """Build the acting user from the request.

    The actor comes from the query string (``role``, ``branchCode``,
    ``username``) when it carries a role, else from the JSON body's
    ``actorRole`` / ``actorBranchCode`` / ``actorUsername``. Body fields
    named ``branchCode`` describe the record being written, not the actor.

    Raises ValidationError when the role is missing or not a known role.
    """
    from assetdesk.services.scope_resolver import make_actor

    if request.args.get("role"):
        return make_actor(
            request.args.get("role"),
            request.args.get("branchCode", ""),
            username=request.args.get("username"),
        )
    body = request.get_json(silent=True)
    body = body if isinstance(body, dict) else {}
    return make_actor(
        body.get("actorRole"),
        body.get("actorBranchCode", ""),
        username=body.get("actorUsername"),
    )
