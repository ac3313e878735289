"""
Role permission bundles.

Roles are records in the Roles table carrying one "true"/"false" flag per
permission (see ``PERMISSION_FLAGS``). The out-of-box roles are seeded at
start-up when absent.

``require_permission`` is called by blueprints before a workflow action.
It is a no-op unless ENFORCE_ROLE_PERMISSIONS is set. The flag defaults to
false (config.py), so out of the box every role may perform every workflow
action its scope allows; deployments opt in with ENFORCE_ROLE_PERMISSIONS=true.
"""

import logging

from flask import current_app, has_app_context

from assetdesk.core.exceptions import ConflictError, PermissionDeniedError, ValidationError
from assetdesk.models.schema import PERMISSION_FLAGS, ROLES
from assetdesk.store import get_store

logger = logging.getLogger(__name__)


def _flags(*granted):
    return {flag: "true" if flag in granted else "false" for flag in PERMISSION_FLAGS}


_MANAGER_FLAGS = _flags(
    "assetConfirmation", "approveDisposal", "approveTransfer", "approveAgreement", "approveBill",
)

OOB_ROLES = [
    {"name": "HO", "description": "Head office: full access", **_flags(*PERMISSION_FLAGS)},
    {"name": "Admin", "description": "Administrator",
     **_flags(*[f for f in PERMISSION_FLAGS if f != "manageRoles"])},
    {"name": "Manager", "description": "Branch manager", **_MANAGER_FLAGS},
    {"name": "Manager1", "description": "Level 1 manager", **_MANAGER_FLAGS},
    {"name": "Manager2", "description": "Level 2 manager", **_MANAGER_FLAGS},
    {"name": "BranchUser", "description": "Branch user",
     **_flags("assetCreation", "assetModification", "assetConfirmation",
              "initiateDisposal", "initiateTransfer", "createBill")},
]


def _key(name):
    return str(name or "").replace(" ", "").lower()


def seed_roles():
    """Insert any out-of-box role that is missing. Returns the number added."""
    store = get_store()
    added = 0
    with store.lock(ROLES):
        existing = {_key(r.get("name")) for r in store.get_all(ROLES)}
        for role in OOB_ROLES:
            if _key(role["name"]) not in existing:
                store.insert(ROLES, role)
                added += 1
    if added:
        logger.info("Seeded %d role(s)", added)
    return added


def list_roles():
    return get_store().get_all(ROLES)


def find_role(name):
    key = _key(name)
    for role in get_store().get_all(ROLES):
        if _key(role.get("name")) == key:
            return role
    return None


def _clean_flags(data):
    out = {}
    for flag in PERMISSION_FLAGS:
        if flag in data:
            value = data[flag]
            out[flag] = "true" if str(value).lower() in ("true", "1", "yes") else "false"
    return out


def create_role(data):
    name = str(data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    store = get_store()
    with store.lock(ROLES):
        if find_role(name) is not None:
            raise ConflictError("Role", "name", name)
        record = {"name": name, "description": data.get("description", ""), **_clean_flags(data)}
        return store.insert(ROLES, record)


def update_role(role_id, data):
    store = get_store()
    with store.lock(ROLES):
        role = store.get_or_raise(ROLES, role_id, "Role")
        changes = _clean_flags(data)
        if "description" in data:
            changes["description"] = data["description"]
        new_name = str(data.get("name") or "").strip()
        if new_name and _key(new_name) != _key(role.get("name")):
            if find_role(new_name) is not None:
                raise ConflictError("Role", "name", new_name)
            changes["name"] = new_name
        return store.update(ROLES, role_id, changes)


def has_permission(actor, flag):
    """True when the actor's role record grants *flag*."""
    role = find_role(actor.role.label) or find_role(actor.role.kind.value)
    if role is None:
        return False
    return str(role.get(flag, "false")).lower() == "true"


def require_permission(actor, flag):
    """Raise PermissionDeniedError when enforcement is on and *flag* is not granted."""
    if flag not in PERMISSION_FLAGS:
        raise ValueError(f"Unknown permission flag {flag!r}")
    if not (has_app_context() and current_app.config.get("ENFORCE_ROLE_PERMISSIONS")):
        return
    if not has_permission(actor, flag):
        logger.warning("Denied %s to %s (%s)", flag, actor.name, actor.role.label)
        raise PermissionDeniedError(actor.role.label, flag)


def require_head_office(actor, flag):
    """Like require_permission, but the role must also be Admin or HO.

    Used for final disposal approval and bill payment.
    """
    require_permission(actor, flag)
    if current_app.config.get("ENFORCE_ROLE_PERMISSIONS") and not actor.role.unrestricted:
        logger.warning("Denied %s to %s: head office only", flag, actor.name)
        raise PermissionDeniedError(actor.role.label, flag)
