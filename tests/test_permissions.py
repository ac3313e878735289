"""
Tests — Role permission bundles.

Covers:
    1. Out-of-box role seeding (idempotent)
    2. has_permission per seeded role
    3. require_permission / require_head_office with enforcement off and on
    4. Role create / update, duplicate names
    5. HTTP: 403 when enforcement is on
"""

import pytest

from assetdesk.config import Config
from assetdesk.core.exceptions import ConflictError, PermissionDeniedError
from assetdesk.models.schema import ROLES
from assetdesk.services import bill_service, permission_service
from assetdesk.services.scope_resolver import make_actor
from assetdesk.utils.helpers import today


@pytest.fixture()
def enforcing(app, monkeypatch):
    monkeypatch.setitem(app.config, "ENFORCE_ROLE_PERMISSIONS", True)


class TestSeeding:
    def test_roles_seeded_once(self):
        names = {r["name"] for r in permission_service.list_roles()}
        assert names == {"HO", "Admin", "Manager", "Manager1", "Manager2", "BranchUser"}
        assert permission_service.seed_roles() == 0

    def test_missing_role_reseeded(self, store):
        store.update(ROLES, permission_service.find_role("Admin")["id"], {"name": "Administrator"})
        assert permission_service.seed_roles() == 1

    def test_find_role_ignores_case_and_spaces(self):
        assert permission_service.find_role("branch user")["name"] == "BranchUser"


class TestHasPermission:
    @pytest.mark.parametrize("role,flag,granted", [
        ("BranchUser", "createBill", True),
        ("BranchUser", "initiateTransfer", True),
        ("BranchUser", "approveBill", False),
        ("Manager2", "approveBill", True),
        ("Manager", "approveTransfer", True),
        ("Manager1", "createAgreement", False),
        ("Admin", "manageRoles", False),
        ("Admin", "approveDisposal", True),
        ("HO", "manageRoles", True),
    ])
    def test_seeded_flags(self, role, flag, granted):
        assert permission_service.has_permission(make_actor(role), flag) is granted

    def test_unnumbered_manager_role_falls_back_to_kind(self, store):
        store.update(ROLES, permission_service.find_role("Manager2")["id"], {"name": "Regional"})
        assert permission_service.has_permission(make_actor("Manager2"), "approveBill")


class TestEnforcement:
    def test_not_enforced_by_default(self):
        assert Config.ENFORCE_ROLE_PERMISSIONS is False
        permission_service.require_permission(make_actor("BranchUser"), "approveBill")

    def test_unknown_flag(self):
        with pytest.raises(ValueError):
            permission_service.require_permission(make_actor("HO"), "launchRockets")

    def test_denied_when_enforcing(self, enforcing):
        with pytest.raises(PermissionDeniedError) as exc:
            permission_service.require_permission(make_actor("BranchUser"), "approveBill")
        assert exc.value.permission == "approveBill"
        permission_service.require_permission(make_actor("Manager1"), "approveBill")

    def test_head_office_only(self, enforcing):
        with pytest.raises(PermissionDeniedError):
            permission_service.require_head_office(make_actor("Manager1"), "approveDisposal")
        permission_service.require_head_office(make_actor("Admin"), "approveDisposal")


class TestRoleCrud:
    def test_create_and_update(self):
        role = permission_service.create_role({"name": "Auditor", "assetConfirmation": True})
        assert role["assetConfirmation"] == "true"
        assert role["approveBill"] == "false"
        updated = permission_service.update_role(role["id"], {"approveBill": "yes"})
        assert updated["approveBill"] == "true"
        assert updated["assetConfirmation"] == "true"

    def test_duplicate_name(self):
        with pytest.raises(ConflictError):
            permission_service.create_role({"name": "branch user"})

    def test_rename_onto_existing(self):
        role = permission_service.create_role({"name": "Auditor"})
        with pytest.raises(ConflictError):
            permission_service.update_role(role["id"], {"name": "HO"})


class TestHttpEnforcement:
    def test_branch_user_cannot_approve_bill(self, client, enforcing, make_agreement):
        ctr = make_agreement("BR1")["contractId"]
        bill = bill_service.create_bill({"contractId": ctr, "amount": 10, "billDate": today().isoformat()})
        res = client.post(
            f"/api/payables/bills/{bill['id']}/approve?role=BranchUser&branchCode=BR1",
            json={},
        )
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_manager_cannot_pay(self, client, enforcing, make_agreement):
        ctr = make_agreement("BR1")["contractId"]
        bill = bill_service.create_bill({"contractId": ctr, "amount": 10, "billDate": today().isoformat()})
        res = client.post(
            f"/api/payables/bills/{bill['id']}/pay?role=Manager1&branchCode=BR1",
            json={"modeOfPayment": "NEFT"},
        )
        assert res.status_code == 403

    def test_role_admin_requires_manage_roles(self, client, enforcing):
        res = client.post("/api/roles?role=Admin", json={"name": "Auditor"})
        assert res.status_code == 403
        res = client.post("/api/roles?role=HO", json={"name": "Auditor"})
        assert res.status_code == 201
