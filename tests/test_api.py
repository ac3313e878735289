"""
Tests — HTTP API end-to-end.

Covers:
    1. Health, login and the user directory
    2. Actor handling: missing / unknown role → 400
    3. Asset register with scope isolation (404 outside scope)
    4. Transfer, gate pass and disposal flows over HTTP, 409 on invalid transitions
    5. Payables: agreements, validation, bills, approval, payment, unpaid list
    6. Dashboard and notifications
    7. Error envelope for unknown routes and record store failures, request ids
"""

import pytest

from assetdesk.core.exceptions import StorageError
from assetdesk.utils.helpers import today

BU1 = "role=BranchUser&branchCode=BR1&username=bu1"
BU2 = "role=BranchUser&branchCode=BR2&username=bu2"
BU3 = "role=BranchUser&branchCode=BR3&username=bu3"
MGR1 = "role=Manager1&branchCode=BR1&username=mgr1"
HO = "role=HO&username=ho"


def _create_asset(client, branch="BR1", tag="TAG-1", qs=BU1, **extra):
    res = client.post(
        f"/api/assets?{qs}",
        json={"name": "Laptop", "tagNumber": tag, "branchCode": branch, **extra},
    )
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _create_agreement(client, branch="BR1", amount=5000):
    res = client.post(
        "/api/payables/agreements",
        json={"actorRole": "HO", "type": "Rent Agreement", "vendorName": "Acme",
              "branchCode": branch, "amount": amount},
    )
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _create_bill(client, contract_id, amount=1000):
    res = client.post(
        f"/api/payables/bills?{BU1}",
        json={"contractId": contract_id, "amount": amount, "billDate": today().isoformat()},
    )
    assert res.status_code == 201, res.get_json()
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════════
# Health / auth
# ═════════════════════════════════════════════════════════════════════════════


class TestHealthAndAuth:
    def test_health(self, client):
        assert client.get("/api/health").status_code == 200
        assert client.get("/api/health/ready").get_json() == {"status": "ok"}

    def test_live_checks_store(self, client):
        res = client.get("/api/health/live")
        assert res.status_code == 200
        data = res.get_json()
        assert data["status"] == "healthy"
        assert data["checks"]["record_store"]["roles"] == 6

    def test_login(self, client, users):
        res = client.post("/api/login", json={"username": "MGR1"})
        assert res.status_code == 200
        assert res.get_json()["branchCode"] == "BR1"

    def test_login_unknown_user(self, client, users):
        res = client.post("/api/login", json={"username": "nobody"})
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_login_blank(self, client):
        res = client.post("/api/login", json={})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_users(self, client, users):
        assert len(client.get("/api/users").get_json()) == len(users)
        assert client.get(f"/api/users/{users['bu1']['id']}").get_json()["username"] == "bu1"

    def test_create_user_duplicate(self, client, users):
        res = client.post("/api/users", json={"username": "bu1", "role": "BranchUser"})
        assert res.status_code == 409

    def test_create_user_unknown_role(self, client):
        res = client.post("/api/users", json={"username": "x", "role": "Janitor"})
        assert res.status_code == 400


class TestActor:
    def test_missing_role(self, client):
        res = client.get("/api/assets")
        assert res.status_code == 400
        assert res.get_json()["details"] == {"role": "required"}

    def test_unknown_role(self, client):
        assert client.get("/api/assets?role=Visitor").status_code == 400

    def test_actor_from_body(self, client):
        res = client.post(
            "/api/assets",
            json={"actorRole": "BranchUser", "actorBranchCode": "BR1", "actorUsername": "bu1",
                  "name": "Desk", "tagNumber": "D-1", "branchCode": "BR1"},
        )
        assert res.status_code == 201
        body = res.get_json()
        assert body["branchUser"] == "bu1"
        assert "actorRole" not in body


# ═════════════════════════════════════════════════════════════════════════════
# Assets
# ═════════════════════════════════════════════════════════════════════════════


class TestAssets:
    def test_scope_isolation(self, client):
        asset = _create_asset(client)
        assert [a["id"] for a in client.get(f"/api/assets?{BU1}").get_json()] == [asset["id"]]
        assert client.get(f"/api/assets?{BU2}").get_json() == []
        assert client.get(f"/api/assets/{asset['id']}?{BU2}").status_code == 404
        assert client.get(f"/api/assets/{asset['id']}?{HO}").status_code == 200

    def test_manager_sees_managed_branches(self, client, users):
        _create_asset(client, "BR1", "A")
        _create_asset(client, "BR2", "B", qs=BU2)
        _create_asset(client, "BR3", "C", qs=BU3)
        tags = sorted(a["tagNumber"] for a in client.get(f"/api/assets?{MGR1}").get_json())
        assert tags == ["A", "B"]

    def test_pagination(self, client):
        for i in range(3):
            _create_asset(client, tag=f"P-{i}")
        data = client.get(f"/api/assets?{BU1}&limit=2&offset=1").get_json()
        assert data["total"] == 3
        assert [a["tagNumber"] for a in data["items"]] == ["P-1", "P-2"]

    def test_search(self, client):
        _create_asset(client, tag="LAP-77")
        assert len(client.get(f"/api/assets/search?{BU1}&q=lap-7").get_json()) == 1
        assert client.get(f"/api/assets/search?{BU1}&q=").get_json() == []

    def test_duplicate_tag(self, client):
        _create_asset(client, tag="X-1")
        res = client.post(f"/api/assets?{BU1}", json={"name": "Dup", "tagNumber": "X-1", "branchCode": "BR1"})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_update(self, client):
        asset = _create_asset(client)
        res = client.put(f"/api/assets/{asset['id']}?{BU1}", json={"custodian": "Anil"})
        assert res.status_code == 200
        assert res.get_json()["custodian"] == "Anil"
        res = client.put(f"/api/assets/{asset['id']}?{BU1}", json={"status": "Disposed"})
        assert res.status_code == 400

    def test_update_cannot_move_asset(self, client):
        aid = _create_asset(client)["id"]
        client.post(f"/api/assets/{aid}/transfer/initiate?{BU1}", json={"toLocation": "BR2"})
        res = client.put(f"/api/assets/{aid}?{BU1}", json={"branchCode": "BR9"})
        assert res.status_code == 400
        assert res.get_json()["details"] == {"branchCode": "read-only"}
        asset = client.get(f"/api/assets/{aid}?{HO}").get_json()
        assert asset["branchCode"] == "BR1"
        assert asset["status"] == "TransferApprovalPending"


class TestTransferApi:
    def test_full_transfer(self, client):
        asset = _create_asset(client)
        aid = asset["id"]
        res = client.post(f"/api/assets/{aid}/transfer/initiate?{BU1}",
                          json={"toLocation": "BR3", "reason": "Relocation"})
        assert res.status_code == 200
        assert res.get_json()["status"] == "TransferApprovalPending"

        res = client.post(f"/api/assets/{aid}/transfer/approve?{HO}", json={})
        assert res.status_code == 200
        assert res.get_json()["branchCode"] == "BR3"

        origin = client.get(f"/api/assets/{aid}?{BU1}").get_json()
        assert origin["viewStatus"] == "Transferred"
        assert [a["id"] for a in client.get(f"/api/assets/transferred?{BU1}").get_json()] == [aid]
        assert client.get(f"/api/assets/{aid}?{BU3}").get_json()["viewStatus"] == "Active"

        history = client.get(f"/api/assets/{aid}/transfers?{BU1}").get_json()
        assert [e["event"] for e in history] == ["initiated", "approved"]

    def test_origin_cannot_act_on_transferred_asset(self, client):
        aid = _create_asset(client)["id"]
        client.post(f"/api/assets/{aid}/transfer/initiate?{BU1}", json={"toLocation": "BR3"})
        client.post(f"/api/assets/{aid}/transfer/approve?{HO}", json={})
        res = client.post(f"/api/assets/{aid}/transfer/initiate?{BU1}", json={"toLocation": "BR2"})
        assert res.status_code == 404

    def test_approve_twice_conflicts(self, client):
        aid = _create_asset(client)["id"]
        client.post(f"/api/assets/{aid}/transfer/initiate?{BU1}", json={"toLocation": "BR3"})
        assert client.post(f"/api/assets/{aid}/transfer/approve?{HO}", json={}).status_code == 200
        res = client.post(f"/api/assets/{aid}/transfer/approve?{HO}", json={})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_STATE"

    def test_reject_without_reason(self, client):
        aid = _create_asset(client)["id"]
        client.post(f"/api/assets/{aid}/transfer/initiate?{BU1}", json={"toLocation": "BR3"})
        res = client.post(f"/api/assets/{aid}/transfer/reject?{HO}", json={})
        assert res.status_code == 400


class TestGatePassApi:
    def test_issue_list_close(self, client):
        aid = _create_asset(client)["id"]
        res = client.post(f"/api/assets/{aid}/gatepass?{BU1}",
                          json={"toLocation": "Service centre", "gatePassType": "Temporary"})
        assert res.status_code == 201
        assert [g["id"] for g in client.get(f"/api/gatepass?{BU1}").get_json()] == [aid]
        assert client.post(f"/api/assets/{aid}/gatepass/close?{BU1}", json={}).status_code == 200
        assert client.get(f"/api/gatepass?{BU1}").get_json() == []


class TestDisposalApi:
    def test_full_disposal(self, client):
        aid = _create_asset(client)["id"]
        assert client.post(f"/api/assets/{aid}/disposal/initiate?{BU1}",
                           json={"reason": "Beyond repair"}).status_code == 200
        cart = client.get(f"/api/disposals?{BU1}").get_json()
        assert [d["disposalStatus"] for d in cart] == ["In Cart"]

        assert client.put(f"/api/disposals/{aid}/submit?{BU1}", json={}).status_code == 200
        assert client.put(f"/api/disposals/{aid}/recommend?{MGR1}", json={}).status_code == 200
        res = client.put(f"/api/disposals/{aid}/approve?{HO}", json={})
        assert res.status_code == 200
        assert res.get_json()["status"] == "Disposed"
        assert client.get(f"/api/disposals?{BU1}").get_json() == []

    def test_approve_from_cart_conflicts(self, client):
        aid = _create_asset(client)["id"]
        client.post(f"/api/assets/{aid}/disposal/initiate?{BU1}", json={})
        res = client.post(f"/api/assets/{aid}/disposal/approve?{HO}", json={})
        assert res.status_code == 409
        assert res.get_json()["details"]["current"] == "DisposalInitiated"

    def test_remove_from_cart(self, client):
        aid = _create_asset(client)["id"]
        client.post(f"/api/assets/{aid}/disposal/initiate?{BU1}", json={})
        res = client.delete(f"/api/disposals/{aid}?{BU1}")
        assert res.status_code == 200
        assert res.get_json()["status"] == "Active"

    def test_other_branch_cannot_submit(self, client):
        aid = _create_asset(client)["id"]
        client.post(f"/api/assets/{aid}/disposal/initiate?{BU1}", json={})
        assert client.put(f"/api/disposals/{aid}/submit?{BU2}", json={}).status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# Payables
# ═════════════════════════════════════════════════════════════════════════════


class TestPayablesApi:
    def test_agreements_in_scope(self, client):
        _create_agreement(client, "BR1")
        _create_agreement(client, "BR3")
        assert len(client.get(f"/api/payables/agreements?{BU1}").get_json()) == 1
        assert len(client.get(f"/api/payables/agreements?{HO}").get_json()) == 2

    def test_validate(self, client):
        ctr = _create_agreement(client, amount=5000)["contractId"]
        _create_bill(client, ctr, 4000)
        res = client.post("/api/bills/validate",
                          json={"contractId": ctr, "amount": 1500, "billDate": today().isoformat()})
        assert res.status_code == 200
        data = res.get_json()
        assert data["monthlyLimitValid"] is False
        assert data["needsException"] is True
        assert data["currentMonthTotal"] == 4000

    def test_validate_unknown_contract(self, client):
        res = client.post("/api/bills/validate",
                          json={"contractId": "NOPE", "amount": 1, "billDate": today().isoformat()})
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_INVALID_REFERENCE"

    def test_bill_for_unknown_contract(self, client):
        res = client.post(f"/api/payables/bills?{BU1}",
                          json={"contractId": "NOPE", "amount": 1, "billDate": today().isoformat()})
        assert res.status_code == 422

    @pytest.mark.parametrize("amount", ["NaN", "Infinity", -10])
    def test_bill_amount_must_be_finite(self, client, amount):
        ctr = _create_agreement(client)["contractId"]
        res = client.post(f"/api/payables/bills?{BU1}",
                          json={"contractId": ctr, "amount": amount, "billDate": today().isoformat()})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"
        assert client.get(f"/api/payables/bills?{HO}").get_json() == []

    def test_approve_pay_flow(self, client):
        ctr = _create_agreement(client)["contractId"]
        bill = _create_bill(client, ctr)
        pending = client.get(f"/api/payables/pending-approvals?{MGR1}").get_json()
        assert [b["id"] for b in pending] == [bill["id"]]
        assert client.get(f"/api/dashboard/pending-actions?{MGR1}").get_json() == {"count": 1}

        res = client.post(f"/api/payables/bills/{bill['id']}/approve?{MGR1}", json={"userId": 3})
        assert res.status_code == 200
        assert res.get_json()["approvedBy"] == "mgr1"

        res = client.post(f"/api/payables/bills/{bill['id']}/pay?{HO}",
                          json={"modeOfPayment": "NEFT", "utrNumber": "UTR9"})
        assert res.status_code == 200
        assert res.get_json()["paymentStatus"] == "Paid"
        assert client.get(f"/api/payables/unpaid-bills?{HO}").get_json() == []

    def test_reject_requires_reason(self, client):
        ctr = _create_agreement(client)["contractId"]
        bill = _create_bill(client, ctr)
        res = client.post(f"/api/payables/bills/{bill['id']}/reject?{MGR1}", json={})
        assert res.status_code == 400
        res = client.post(f"/api/payables/bills/{bill['id']}/reject?{MGR1}", json={"reason": "Duplicate"})
        assert res.get_json()["approvalStatus"] == "Rejected"

    def test_status_update(self, client):
        ctr = _create_agreement(client)["contractId"]
        bill = _create_bill(client, ctr)
        res = client.put(f"/api/payables/bills/{bill['id']}/status?{HO}",
                         json={"status": "Hold", "remarks": "Budget", "paymentScheduledDate": "2025-03-01"})
        assert res.status_code == 200
        assert res.get_json()["paymentScheduledDate"] == "2025-03-01"

    def test_contract_bills(self, client):
        ctr = _create_agreement(client)["contractId"]
        _create_bill(client, ctr)
        assert len(client.get(f"/api/agreements/{ctr}/bills?{BU1}").get_json()) == 1
        assert client.get(f"/api/agreements/{ctr}/bills?{BU3}").get_json() == []

    def test_other_branch_bill_hidden(self, client):
        ctr = _create_agreement(client)["contractId"]
        bill = _create_bill(client, ctr)
        res = client.post(f"/api/payables/bills/{bill['id']}/approve?{BU3}", json={})
        assert res.status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# Dashboard / notifications
# ═════════════════════════════════════════════════════════════════════════════


class TestDashboardAndNotifications:
    def test_stats(self, client):
        _create_asset(client)
        data = client.get(f"/api/dashboard/stats?{BU1}").get_json()
        assert data["totalAssets"] == 1
        assert set(data) == {"totalAssets", "expiringSoon", "disposalPending", "pendingActions"}

    def test_disposal_submission_reaches_head_office(self, client):
        aid = _create_asset(client)["id"]
        client.post(f"/api/assets/{aid}/disposal/initiate?{BU1}", json={})
        client.put(f"/api/disposals/{aid}/submit?{BU1}", json={})

        notes = client.get(f"/api/notifications?{HO}").get_json()
        assert any(n["type"] == "disposal" for n in notes)
        assert client.get(f"/api/notifications/unread-count?{HO}").get_json()["unread_count"] >= 1

        res = client.put(f"/api/notifications/read-all?{HO}", json={})
        assert res.get_json()["marked_read"] >= 1
        assert client.get(f"/api/notifications/unread-count?{HO}").get_json()["unread_count"] == 0

    def test_post_and_read_notification(self, client):
        res = client.post("/api/notifications",
                          json={"actorRole": "HO", "title": "Audit Friday", "targetBranch": "BR1"})
        assert res.status_code == 201
        nid = res.get_json()["id"]
        assert [n["title"] for n in client.get(f"/api/notifications?{BU1}").get_json()] == ["Audit Friday"]
        assert client.get(f"/api/notifications?{BU2}").get_json() == []
        res = client.put(f"/api/notifications/{nid}/read?{BU2}", json={})
        assert res.status_code == 404
        assert client.put(f"/api/notifications/{nid}/read?{BU1}", json={}).get_json()["isRead"] == "true"

    def test_branch_manager_gets_bill_alert(self, client, users):
        ctr = _create_agreement(client, "BR2")["contractId"]
        client.post(f"/api/payables/bills?{BU2}",
                    json={"contractId": ctr, "amount": 100, "billDate": today().isoformat()})
        titles = [n["title"] for n in client.get(f"/api/notifications?{MGR1}").get_json()]
        assert titles == ["Bill awaiting approval"]

    def test_post_requires_title(self, client):
        res = client.post("/api/notifications", json={"actorRole": "HO"})
        assert res.status_code == 400


@pytest.mark.parametrize("method,path", [
    ("get", "/api/nothing-here"),
    ("get", "/api/assets/abc"),
])
def test_unknown_route(client, method, path):
    res = getattr(client, method)(path)
    assert res.status_code == 404
    assert res.get_json()["path"] == path


def test_method_not_allowed(client):
    assert client.delete("/api/roles").status_code == 405


def test_request_id_echoed(client):
    res = client.get("/api/health", headers={"X-Request-ID": "abc123"})
    assert res.headers["X-Request-ID"] == "abc123"
    assert "X-Request-Duration-Ms" in res.headers


class TestStoreFailure:
    @pytest.fixture()
    def broken_store(self, store, monkeypatch):
        def fail(table):
            raise StorageError(f"{table} unreadable")

        monkeypatch.setattr(store, "get_all", fail)

    def test_storage_error_envelope(self, client, broken_store):
        res = client.get(f"/api/assets?{HO}")
        assert res.status_code == 500
        assert res.get_json() == {"error": "Record store unavailable", "code": "ERR_STORAGE"}

    def test_live_reports_degraded(self, client, broken_store):
        res = client.get("/api/health/live")
        assert res.status_code == 503
        assert res.get_json()["status"] == "degraded"
