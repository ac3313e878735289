"""
Tests — Dashboard Aggregator.

Covers:
    1. coverage_end / is_expiring edge cases
    2. get_dashboard_stats per scope, transferred-out assets excluded from headline counts
"""

from datetime import date, timedelta

from assetdesk.services import asset_lifecycle as lifecycle
from assetdesk.services import bill_service, dashboard_service
from assetdesk.services.scope_resolver import resolve_scope
from assetdesk.utils.helpers import today


class TestCoverage:
    ON = date(2025, 6, 1)

    def test_amc_end_preferred(self):
        asset = {"amcEnd": "2025-07-01", "warrantyEnd": "2030-01-01", "amcWarranty": "AMC"}
        assert dashboard_service.coverage_end(asset) == date(2025, 7, 1)

    def test_warranty_end_while_under_warranty(self):
        asset = {"warrantyEnd": "2025-08-01", "amcWarranty": "Warranty"}
        assert dashboard_service.coverage_end(asset) == date(2025, 8, 1)

    def test_amc_without_end_has_no_coverage_date(self):
        assert dashboard_service.coverage_end({"warrantyEnd": "2025-08-01", "amcWarranty": "AMC"}) is None

    def test_window_bounds(self):
        inside = {"warrantyEnd": (self.ON + timedelta(days=90)).isoformat()}
        outside = {"warrantyEnd": (self.ON + timedelta(days=91)).isoformat()}
        lapsed = {"warrantyEnd": (self.ON - timedelta(days=1)).isoformat()}
        assert dashboard_service.is_expiring(inside, on=self.ON)
        assert not dashboard_service.is_expiring(outside, on=self.ON)
        assert not dashboard_service.is_expiring(lapsed, on=self.ON)


class TestDashboardStats:
    def _seed(self, make_asset, make_agreement):
        soon = (today() + timedelta(days=30)).isoformat()
        later = (today() + timedelta(days=400)).isoformat()
        expiring = make_asset("BR1", warrantyEnd=soon)
        make_asset("BR1", warrantyEnd=later)
        in_cart = make_asset("BR1")
        moved = make_asset("BR1", warrantyEnd=soon)
        make_asset("BR3")

        lifecycle.initiate_disposal(in_cart["id"], "bu1")
        lifecycle.initiate_transfer(moved["id"], "BR3", "Relocation", "bu1")
        lifecycle.approve_transfer(moved["id"], "ho")

        ctr = make_agreement("BR1")["contractId"]
        bill_service.create_bill(
            {"contractId": ctr, "amount": 100, "billDate": today().isoformat()}, created_by="bu1",
        )
        return expiring

    def test_branch_user(self, make_asset, make_agreement, actor):
        self._seed(make_asset, make_agreement)
        stats = dashboard_service.get_dashboard_stats(resolve_scope(actor("bu1")))
        assert stats == {
            "totalAssets": 2,
            "expiringSoon": 1,
            "disposalPending": 1,
            "pendingActions": 1,
        }

    def test_destination_branch(self, make_asset, make_agreement, actor):
        self._seed(make_asset, make_agreement)
        stats = dashboard_service.get_dashboard_stats(resolve_scope(actor("bu3")))
        assert stats == {
            "totalAssets": 2,
            "expiringSoon": 1,
            "disposalPending": 0,
            "pendingActions": 0,
        }

    def test_head_office(self, make_asset, make_agreement, actor):
        self._seed(make_asset, make_agreement)
        stats = dashboard_service.get_dashboard_stats(resolve_scope(actor("ho")))
        assert stats["totalAssets"] == 4
        assert stats["expiringSoon"] == 2
        assert stats["disposalPending"] == 1
        assert stats["pendingActions"] == 1

    def test_disposed_counts_toward_total(self, make_asset, actor):
        asset = make_asset("BR1")
        lifecycle.initiate_disposal(asset["id"], "bu1")
        lifecycle.submit_disposal(asset["id"])
        lifecycle.approve_disposal(asset["id"], "ho")
        stats = dashboard_service.get_dashboard_stats(resolve_scope(actor("bu1")))
        assert stats["totalAssets"] == 1
        assert stats["disposalPending"] == 0
