"""
Tests — Scope Resolver.

Covers:
    1. parse_role: closed role set, spelling tolerance, unknown roles
    2. Scope predicate: holds / transferred_out / includes / view_status
    3. Manager branches: canonical managerId links and legacy links
    4. resolve_scope per role kind
"""

import pytest

from assetdesk.core.exceptions import ValidationError
from assetdesk.services.scope_resolver import (
    RoleKind,
    Scope,
    make_actor,
    managed_branches,
    parse_role,
    resolve_scope,
)


# ═════════════════════════════════════════════════════════════════════════════
# parse_role
# ═════════════════════════════════════════════════════════════════════════════


class TestParseRole:
    @pytest.mark.parametrize("raw,kind", [
        ("Admin", RoleKind.ADMIN),
        ("admin", RoleKind.ADMIN),
        ("HO", RoleKind.HO),
        ("Head Office", RoleKind.HO),
        ("Manager", RoleKind.MANAGER),
        ("Manager2", RoleKind.MANAGER),
        ("BranchUser", RoleKind.BRANCH_USER),
        ("branch_user", RoleKind.BRANCH_USER),
    ])
    def test_known_roles(self, raw, kind):
        assert parse_role(raw).kind is kind

    def test_manager_level_is_kept(self):
        role = parse_role("Manager2")
        assert role.level == 2
        assert role.label == "Manager2"

    def test_unknown_role_rejected(self):
        with pytest.raises(ValidationError):
            parse_role("Auditor")

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_missing_role_rejected(self, raw):
        with pytest.raises(ValidationError):
            parse_role(raw)

    def test_unrestricted_only_for_admin_and_ho(self):
        assert parse_role("Admin").unrestricted
        assert parse_role("HO").unrestricted
        assert not parse_role("Manager1").unrestricted
        assert not parse_role("BranchUser").unrestricted


# ═════════════════════════════════════════════════════════════════════════════
# Scope predicate
# ═════════════════════════════════════════════════════════════════════════════


class TestScopePredicate:
    scope = Scope(branches=frozenset({"br1"}))

    def test_holds_is_case_insensitive(self):
        assert self.scope.holds({"branchCode": " BR1 "})
        assert not self.scope.holds({"branchCode": "BR2"})

    def test_transferred_out_record_is_included(self):
        moved = {"branchCode": "BR2", "fromBranchCode": "BR1", "status": "Active"}
        assert self.scope.transferred_out(moved)
        assert self.scope.includes(moved)
        assert self.scope.view_status(moved) == "Transferred"

    def test_held_record_keeps_its_status(self):
        asset = {"branchCode": "BR1", "fromBranchCode": "BR9", "status": "Active"}
        assert not self.scope.transferred_out(asset)
        assert self.scope.view_status(asset) == "Active"

    def test_unrelated_record_excluded(self):
        assert not self.scope.includes({"branchCode": "BR7", "fromBranchCode": "BR8"})

    def test_unrestricted_sees_everything_without_transferred_view(self):
        scope = Scope(unrestricted=True)
        moved = {"branchCode": "BR2", "fromBranchCode": "BR1", "status": "Active"}
        assert scope.includes(moved)
        assert scope.view_status(moved) == "Active"

    def test_filter(self):
        records = [{"branchCode": "BR1"}, {"branchCode": "BR2"}, {"branchCode": "BR3", "fromBranchCode": "br1"}]
        assert len(self.scope.filter(records)) == 2


# ═════════════════════════════════════════════════════════════════════════════
# Manager links
# ═════════════════════════════════════════════════════════════════════════════


USERS = [
    {"id": 1, "username": "mgr", "role": "Manager1", "branchCode": "BR1"},
    {"id": 2, "username": "u2", "role": "BranchUser", "branchCode": "BR2", "managerId": "1"},
    {"id": 3, "username": "u3", "role": "BranchUser", "branchCode": "BR3", "managerId": "Manager1"},
    {"id": 4, "username": "u4", "role": "BranchUser", "branchCode": "BR4", "reportingTo": "BR1"},
    {"id": 5, "username": "u5", "role": "BranchUser", "branchCode": "BR5", "managerId": "9"},
]


class TestManagedBranches:
    def test_canonical_link_by_user_id(self):
        actor = make_actor("Manager1", "BR1", username="mgr", user_id=1)
        assert "br2" in managed_branches(actor, USERS, legacy_links=False)

    def test_user_id_resolved_from_username(self):
        actor = make_actor("Manager1", "BR1", username="MGR")
        assert "br2" in managed_branches(actor, USERS, legacy_links=False)

    def test_legacy_links_on(self):
        actor = make_actor("Manager1", "BR1", username="mgr")
        branches = managed_branches(actor, USERS, legacy_links=True)
        assert branches == {"br2", "br3", "br4"}

    def test_legacy_links_off(self):
        actor = make_actor("Manager1", "BR1", username="mgr")
        assert managed_branches(actor, USERS, legacy_links=False) == {"br2"}

    def test_legacy_links_follow_app_config(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "LEGACY_MANAGER_LINKS", False)
        actor = make_actor("Manager1", "BR1", username="mgr")
        assert managed_branches(actor, USERS) == {"br2"}


class TestResolveScope:
    def test_admin_and_ho_unrestricted(self):
        assert resolve_scope(make_actor("Admin")).unrestricted
        assert resolve_scope(make_actor("HO")).unrestricted

    def test_branch_user_own_branch(self):
        scope = resolve_scope(make_actor("BranchUser", "BR2"))
        assert scope.branches == frozenset({"br2"})

    def test_branch_user_without_branch_sees_nothing(self):
        scope = resolve_scope(make_actor("BranchUser", ""))
        assert not scope.includes({"branchCode": ""})

    def test_manager_includes_own_branch(self):
        actor = make_actor("Manager1", "BR1", username="mgr", user_id=1)
        scope = resolve_scope(actor, users=USERS)
        assert {"br1", "br2"} <= scope.branches

    def test_manager_loads_users_from_store(self, users, actor):
        scope = resolve_scope(actor("mgr1"))
        assert scope.branches == frozenset({"br1", "br2"})

    def test_legacy_manager_from_store(self, users, actor):
        scope = resolve_scope(actor("mgr2"))
        assert scope.branches == frozenset({"br4", "br5"})


# Shared record set: held, transferred out of BR1 / BR2, and unrelated
RECORDS = [
    {"id": 1, "branchCode": "BR1", "status": "Active"},
    {"id": 2, "branchCode": "BR2", "status": "Active"},
    {"id": 3, "branchCode": "BR3", "fromBranchCode": "BR1", "status": "Active"},
    {"id": 4, "branchCode": "BR3", "status": "Active"},
    {"id": 5, "branchCode": "BR4", "fromBranchCode": "BR2", "status": "Active"},
    {"id": 6, "branchCode": "BR5", "status": "TransferApprovalPending"},
]


def _visible(scope):
    return {r["id"] for r in RECORDS if scope.includes(r)}


class TestScopeMonotonicity:
    @pytest.mark.parametrize("branch_user,manager", [
        ("bu1", "mgr1"), ("bu2", "mgr1"), ("bu4", "mgr2"),
    ])
    def test_branch_user_within_manager_within_head_office(self, users, actor, branch_user, manager):
        seen_by_user = _visible(resolve_scope(actor(branch_user)))
        seen_by_manager = _visible(resolve_scope(actor(manager)))
        seen_by_ho = _visible(resolve_scope(actor("ho")))
        assert seen_by_user <= seen_by_manager <= seen_by_ho
        assert seen_by_ho == _visible(resolve_scope(actor("admin"))) == {r["id"] for r in RECORDS}

    def test_transferred_out_record_seen_up_the_chain(self, users, actor):
        assert _visible(resolve_scope(actor("bu1"))) == {1, 3}
        assert _visible(resolve_scope(actor("mgr1"))) == {1, 2, 3, 5}

    def test_unmanaged_branch_user_not_seen_by_manager(self, users, actor):
        assert _visible(resolve_scope(actor("bu3"))) == {3, 4}
        assert not _visible(resolve_scope(actor("bu3"))) <= _visible(resolve_scope(actor("mgr1")))
