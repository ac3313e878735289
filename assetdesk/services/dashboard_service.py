"""
Dashboard Aggregator — headline counts over the actor's scope.

    totalAssets      assets whose view status is Active or Disposed
    expiringSoon     amcEnd (else warrantyEnd while under warranty) within 90 days
    disposalPending  assets somewhere in the disposal flow
    pendingActions   bills awaiting approval
"""

from datetime import timedelta

from assetdesk.models.schema import ACTIVE, DISPOSAL_STATUSES, DISPOSED, TRANSFERRED
from assetdesk.services import asset_lifecycle, bill_service
from assetdesk.utils.helpers import parse_date, today

EXPIRY_WINDOW_DAYS = 90
HEADLINE_STATUSES = {ACTIVE, DISPOSED}


def coverage_end(asset):
    """The date cover runs out: AMC end if set, else warranty end unless on AMC."""
    amc_end = parse_date(asset.get("amcEnd"))
    if amc_end is not None:
        return amc_end
    if asset.get("amcWarranty") != "AMC":
        return parse_date(asset.get("warrantyEnd"))
    return None


def is_expiring(asset, on=None, window_days=EXPIRY_WINDOW_DAYS):
    on = on or today()
    end = coverage_end(asset)
    return end is not None and on <= end <= on + timedelta(days=window_days)


def get_dashboard_stats(scope):
    assets = asset_lifecycle.list_assets(scope)
    on = today()
    return {
        "totalAssets": sum(1 for a in assets if a["viewStatus"] in HEADLINE_STATUSES),
        "expiringSoon": sum(1 for a in assets if a["viewStatus"] != TRANSFERRED and is_expiring(a, on)),
        "disposalPending": sum(1 for a in assets if a["viewStatus"] in DISPOSAL_STATUSES),
        "pendingActions": bill_service.pending_actions_count(scope),
    }
