"""
Scope Resolver — decides which records an actor may see and act on.

Roles are a closed set parsed once at the request boundary:

    Admin, HO     everything
    Manager<N>    own branch, branches of users linked to the manager,
                  and records transferred out of any of those branches
    BranchUser    own branch, and records transferred out of it

``Scope.includes`` is the single predicate applied to asset, agreement,
bill and dashboard queries alike.

Manager links: the canonical link is ``User.managerId == <manager user id>``.
Older user sheets filled ``managerId`` / ``reportingTo`` with the manager's
role string or branch code instead; those are honoured while the
LEGACY_MANAGER_LINKS setting is on.
"""

import enum
import logging
import re
from dataclasses import dataclass, field

from flask import current_app, has_app_context

from assetdesk.core.exceptions import ValidationError
from assetdesk.models.schema import TRANSFERRED, USERS

logger = logging.getLogger(__name__)


class RoleKind(enum.Enum):
    ADMIN = "Admin"
    HO = "HO"
    MANAGER = "Manager"
    BRANCH_USER = "BranchUser"


_MANAGER_RE = re.compile(r"^manager(\d*)$")


@dataclass(frozen=True)
class Role:
    kind: RoleKind
    label: str                 # as stored on the user, e.g. "Manager2"
    level: int | None = None   # the N of Manager<N>

    @property
    def unrestricted(self):
        return self.kind in (RoleKind.ADMIN, RoleKind.HO)


def parse_role(raw) -> Role:
    """Parse a free-text role string; unknown roles raise ValidationError."""
    if raw is None or not str(raw).strip():
        raise ValidationError("role is required", details={"role": "required"})
    label = str(raw).strip()
    compact = re.sub(r"[\s_-]+", "", label).lower()

    if compact == "admin":
        return Role(RoleKind.ADMIN, label)
    if compact in ("ho", "headoffice"):
        return Role(RoleKind.HO, label)
    m = _MANAGER_RE.match(compact)
    if m:
        return Role(RoleKind.MANAGER, label, int(m.group(1)) if m.group(1) else None)
    if compact in ("branchuser", "branch", "user"):
        return Role(RoleKind.BRANCH_USER, label)
    raise ValidationError(f"Unknown role {label!r}", details={"role": label})


def normalize_branch(code) -> str:
    return str(code or "").strip().lower()


@dataclass(frozen=True)
class Actor:
    role: Role
    branch_code: str = ""
    username: str | None = None
    user_id: int | None = None

    @property
    def name(self):
        return self.username or self.role.label


def make_actor(role, branch_code="", username=None, user_id=None) -> Actor:
    return Actor(
        role=role if isinstance(role, Role) else parse_role(role),
        branch_code=str(branch_code or "").strip(),
        username=(str(username).strip() or None) if username else None,
        user_id=user_id,
    )


@dataclass(frozen=True)
class Scope:
    """Visibility predicate for one actor."""

    unrestricted: bool = False
    branches: frozenset = field(default_factory=frozenset)

    def holds(self, record) -> bool:
        """True when the record currently sits in a visible branch."""
        if self.unrestricted:
            return True
        return normalize_branch(record.get("branchCode")) in self.branches

    def transferred_out(self, record) -> bool:
        """True when the record is visible only because it left a visible branch."""
        if self.unrestricted or self.holds(record):
            return False
        return normalize_branch(record.get("fromBranchCode")) in self.branches

    def includes(self, record) -> bool:
        return self.holds(record) or self.transferred_out(record)

    def filter(self, records):
        return [r for r in records if self.includes(r)]

    def view_status(self, asset) -> str:
        return TRANSFERRED if self.transferred_out(asset) else asset.get("status")


def _legacy_links_enabled():
    if has_app_context():
        return current_app.config.get("LEGACY_MANAGER_LINKS", True)
    return True


def managed_branches(actor: Actor, users, legacy_links=None) -> set[str]:
    """Branch codes (normalised) of users reporting to *actor*."""
    if legacy_links is None:
        legacy_links = _legacy_links_enabled()

    manager_id = actor.user_id
    if manager_id is None and actor.username:
        for u in users:
            if str(u.get("username", "")).strip().lower() == actor.username.lower():
                manager_id = u.get("id")
                break

    own = normalize_branch(actor.branch_code)
    legacy_keys = {actor.role.label.strip().lower()}
    if own:
        legacy_keys.add(own)

    branches = set()
    for u in users:
        link = str(u.get("managerId") or "").strip()
        reporting = str(u.get("reportingTo") or "").strip()
        linked = manager_id is not None and link == str(manager_id)
        if not linked and legacy_links:
            linked = link.lower() in legacy_keys or reporting.lower() in legacy_keys
        if linked:
            code = normalize_branch(u.get("branchCode"))
            if code:
                branches.add(code)
    return branches


def resolve_scope(actor: Actor, users=None) -> Scope:
    """Return the visibility scope of *actor*.

    *users* is the Users table; it is loaded from the record store when
    omitted and only consulted for managers.
    """
    kind = actor.role.kind
    own = normalize_branch(actor.branch_code)

    if kind in (RoleKind.ADMIN, RoleKind.HO):
        return Scope(unrestricted=True)
    if kind is RoleKind.MANAGER:
        if users is None:
            from assetdesk.store import get_store
            users = get_store().get_all(USERS)
        branches = managed_branches(actor, users)
        if own:
            branches.add(own)
        logger.debug("Manager %s scope: %s", actor.name, sorted(branches))
        return Scope(branches=frozenset(branches))
    if kind is RoleKind.BRANCH_USER:
        return Scope(branches=frozenset({own}) if own else frozenset())
    raise AssertionError(f"Unhandled role kind {kind}")
