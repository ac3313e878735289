"""
User directory and the no-credential login.

Login is a username lookup: the returned user's role and branch become
the client's self-asserted actor on later calls.
"""

import logging

from assetdesk.core.exceptions import ConflictError, NotFoundError, ValidationError
from assetdesk.models.schema import USERS
from assetdesk.services.scope_resolver import parse_role
from assetdesk.store import get_store

logger = logging.getLogger(__name__)


def list_users():
    return get_store().get_all(USERS)


def get_user(user_id):
    return get_store().get_or_raise(USERS, user_id, "User")


def get_user_by_username(username):
    name = str(username or "").strip().lower()
    for u in get_store().get_all(USERS):
        if str(u.get("username", "")).strip().lower() == name:
            return u
    return None


def login(username):
    """Return the user named *username*; NotFoundError when there is none."""
    if not username or not str(username).strip():
        raise ValidationError("username is required", details={"username": "required"})
    user = get_user_by_username(username)
    if user is None:
        raise NotFoundError("User", str(username).strip())
    # Reject users whose stored role cannot be parsed before they get a session
    parse_role(user.get("role"))
    logger.info("Login: %s (%s, %s)", user["username"], user.get("role"), user.get("branchCode"))
    return user


def create_user(data):
    username = str(data.get("username") or "").strip()
    if not username:
        raise ValidationError("username is required", details={"username": "required"})
    role = parse_role(data.get("role"))
    record = {
        "username": username,
        "role": role.label,
        "branchCode": str(data.get("branchCode") or "").strip(),
        "branchName": data.get("branchName", ""),
        "managerId": str(data.get("managerId") or "").strip(),
        "reportingTo": str(data.get("reportingTo") or "").strip(),
    }
    store = get_store()
    with store.lock(USERS):
        if get_user_by_username(username) is not None:
            raise ConflictError("User", "username", username)
        if record["managerId"].isdigit() and store.get(USERS, record["managerId"]) is None:
            raise ValidationError("managerId does not match a user", details={"managerId": record["managerId"]})
        return store.insert(USERS, record)
