"""
Shared pytest fixtures for the Branch Asset & Payables Desk test suite.

Provides:
    - app: Flask application (session-scoped)
    - store: Fresh workbook record store per test, roles seeded (autouse)
    - client: Flask test client (function-scoped)
    - users: Seeded user directory (Admin, HO, two managers, branch users)
    - actor: Factory for service-level actors
    - make_asset / make_agreement: Convenience record factories
"""

import pytest

from assetdesk import create_app
from assetdesk.services import asset_lifecycle, bill_service, user_service
from assetdesk.services.permission_service import seed_roles
from assetdesk.services.scope_resolver import make_actor
from assetdesk.store.workbook import WorkbookStore


# ── App & store fixtures ─────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """Create the Flask application once per test session."""
    data_dir = tmp_path_factory.mktemp("desk-data")
    application = create_app("testing", {"DATA_DIR": str(data_dir)})
    return application


@pytest.fixture(autouse=True)
def store(app, tmp_path):
    """Per-test: empty data directory, roles seeded, app context open."""
    with app.app_context():
        fresh = WorkbookStore(str(tmp_path / "data"), cache_ttl=0, asset_cache_ttl=0)
        app.extensions["record_store"] = fresh
        seed_roles()
        yield fresh


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def users():
    """Seed the user directory and return users keyed by username.

    mgr1 (Manager1, BR1) manages bu1 (BR1) and bu2 (BR2) through managerId.
    bu4 (BR5) reports to Manager2 through a legacy role-string link.
    bu3 (BR3) reports to nobody.
    """
    created = {}

    def add(username, role, branch="", **extra):
        created[username] = user_service.create_user(
            {"username": username, "role": role, "branchCode": branch, **extra}
        )
        return created[username]

    add("admin", "Admin")
    add("ho", "HO")
    mgr1 = add("mgr1", "Manager1", "BR1")
    add("bu1", "BranchUser", "BR1", managerId=mgr1["id"])
    add("bu2", "BranchUser", "BR2", managerId=mgr1["id"])
    add("bu3", "BranchUser", "BR3")
    add("mgr2", "Manager2", "BR4")
    add("bu4", "BranchUser", "BR5", managerId="Manager2")
    return created


@pytest.fixture()
def actor(users):
    """Build the actor of a seeded user: actor("bu1")."""
    def _actor(username):
        u = users[username]
        return make_actor(u["role"], u["branchCode"], username=u["username"], user_id=u["id"])
    return _actor


@pytest.fixture()
def make_asset():
    """Register an asset directly through the lifecycle service."""
    counter = {"n": 0}

    def _make(branch="BR1", **fields):
        counter["n"] += 1
        data = {
            "name": f"Laptop {counter['n']}",
            "tagNumber": f"TAG-{counter['n']:04d}",
            "branchCode": branch,
            "type": "IT",
            **fields,
        }
        return asset_lifecycle.create_asset(data, created_by=fields.get("branchUser"))
    return _make


@pytest.fixture()
def make_agreement():
    """Create a vendor agreement directly through the bill service."""
    def _make(branch="BR1", amount=10000, **fields):
        data = {
            "type": "Rent Agreement",
            "vendorName": "Acme Estates",
            "branchCode": branch,
            "amount": amount,
            **fields,
        }
        return bill_service.create_agreement(data, created_by="ho")
    return _make
