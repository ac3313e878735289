"""
Asset Lifecycle Engine.

Disposal:  Active → DisposalInitiated ("In Cart") → Pending Disposal
           → [Recommended] → Disposed
           reject:  Pending Disposal | Recommended → DisposalInitiated
           remove:  DisposalInitiated → Active
Transfer:  Active → TransferApprovalPending → Active (destination branch)
           reject:  TransferApprovalPending → Active (origin branch)
Gate pass: Active → GatePass → Active (closed by hand)

``status`` is the only workflow discriminator, so at most one of the
three flows is in flight per asset. Every transition runs under the
Assets write lock and re-checks the current status before writing;
a request against any other status raises StateConflictError.

An approved transfer rewrites the same row: the destination becomes
``branchCode`` and the origin moves to ``fromBranchCode``. Every transfer
step is also appended to the TransferEvents ledger.
"""

import logging

from assetdesk.core.exceptions import ConflictError, StateConflictError, ValidationError
from assetdesk.models.schema import (
    ACTIVE, ASSETS, DISPOSAL_DISPLAY, DISPOSAL_INITIATED, DISPOSAL_STATUSES,
    DISPOSED, GATE_PASS, GATE_PASS_TYPES, LEGACY_ASSET_STATUSES, PENDING_DISPOSAL,
    RECOMMENDED, TRANSFER_EVENTS, TRANSFER_PENDING, validate_asset_transition,
)
from assetdesk.services.notification import NotificationService
from assetdesk.store import get_store
from assetdesk.utils.helpers import (
    is_blank, now_iso, parse_date, parse_date_input, require_fields, today,
)

logger = logging.getLogger(__name__)

# Fields only the workflow functions may write
WORKFLOW_FIELDS = frozenset({
    "status", "toLocation", "toBranchName", "reason", "initiatedBy", "initiatedAt",
    "approvedBy", "approvedAt", "recommendedBy", "recommendedAt",
    "fromBranch", "fromBranchCode", "transferStatus",
    "rejectionReason", "rejectedBy", "rejectedAt",
    "gatePassType", "purpose", "generatedBy", "generatedAt",
})

# Set at registration; afterwards only an approved transfer moves an asset
LOCATION_FIELDS = frozenset({"branchCode", "branchName"})

_DATE_FIELDS = ("purchaseDate", "warrantyEnd", "amcStart", "amcEnd")


# ── Read-side normalisation ──────────────────────────────────────────────────


def warranty_label(asset, on=None):
    """"AMC" once the warranty has lapsed, else the stored label."""
    on = on or today()
    end = parse_date(asset.get("warrantyEnd"))
    if end is not None and end < on and asset.get("amcWarranty") != "AMC":
        return "AMC"
    return asset.get("amcWarranty") or "Warranty"


def normalize_asset(asset, on=None):
    """Legacy status spellings and the lapsed-warranty label, applied in memory."""
    out = dict(asset)
    out["status"] = LEGACY_ASSET_STATUSES.get(out.get("status"), out.get("status") or ACTIVE)
    out["amcWarranty"] = warranty_label(out, on)
    if out["status"] in DISPOSAL_DISPLAY:
        out["disposalStatus"] = DISPOSAL_DISPLAY[out["status"]]
    return out


def _with_view(asset, scope):
    out = normalize_asset(asset)
    if scope is not None:
        out["viewStatus"] = scope.view_status(out)
    return out


def get_asset(asset_id):
    return normalize_asset(get_store().get_or_raise(ASSETS, asset_id, "Asset"))


def list_assets(scope, q=None, current_only=False, status=None):
    """Assets visible to *scope*.

    current_only drops assets seen only through ``fromBranchCode``.
    """
    needle = (q or "").strip().lower()
    out = []
    for asset in get_store().get_all(ASSETS):
        if not (scope.holds(asset) if current_only else scope.includes(asset)):
            continue
        if needle and needle not in str(asset.get("name", "")).lower() \
                and needle not in str(asset.get("tagNumber", "")).lower():
            continue
        view = _with_view(asset, scope)
        if status and view["status"] != status:
            continue
        out.append(view)
    return out


def search_assets(q, scope):
    if is_blank(q):
        return []
    return list_assets(scope, q=q)


def transferred_out(scope):
    """Assets that left a branch in *scope* and now sit elsewhere."""
    return [
        _with_view(a, scope) for a in get_store().get_all(ASSETS)
        if scope.transferred_out(a)
    ]


def list_disposals(scope):
    return [a for a in list_assets(scope, current_only=True) if a["status"] in DISPOSAL_STATUSES]


def list_gate_passes(scope):
    return list_assets(scope, current_only=True, status=GATE_PASS)


# ── Create / update ──────────────────────────────────────────────────────────


def _check_dates(data):
    for f in _DATE_FIELDS:
        if f in data and not is_blank(data[f]):
            data[f] = parse_date_input(data[f], f).isoformat()


def _tag_taken(store, tag, exclude_id=None):
    tag = str(tag).strip().lower()
    return any(
        str(a.get("tagNumber", "")).strip().lower() == tag and a["id"] != exclude_id
        for a in store.get_all(ASSETS)
    )


def create_asset(data, created_by=None):
    require_fields(data, "name", "tagNumber", "branchCode")
    record = {k: v for k, v in data.items() if k not in WORKFLOW_FIELDS and k != "id"}
    _check_dates(record)
    record["status"] = ACTIVE
    record["branchCode"] = str(record["branchCode"]).strip()
    if created_by and is_blank(record.get("branchUser")):
        record["branchUser"] = created_by
    end = parse_date(record.get("warrantyEnd"))
    if is_blank(record.get("amcWarranty")):
        record["amcWarranty"] = "AMC" if end is not None and end < today() else "Warranty"

    store = get_store()
    with store.lock(ASSETS):
        if _tag_taken(store, record["tagNumber"]):
            raise ConflictError("Asset", "tagNumber", record["tagNumber"])
        asset = store.insert(ASSETS, record)
    logger.info("Asset %s (%s) created in %s", asset["id"], asset["tagNumber"], asset["branchCode"])
    return normalize_asset(asset)


def update_asset(asset_id, data):
    """Partial update of descriptive fields.

    Workflow fields and the location fields are rejected; a change of
    branch goes through initiate_transfer / approve_transfer.
    """
    blocked = sorted(set(data) & WORKFLOW_FIELDS)
    if blocked:
        raise ValidationError(
            "Workflow fields cannot be edited directly",
            details={f: "read-only" for f in blocked},
        )
    moved = sorted(set(data) & LOCATION_FIELDS)
    if moved:
        raise ValidationError(
            "Branch can only change through an approved transfer",
            details={f: "read-only" for f in moved},
        )
    changes = {k: v for k, v in data.items() if k != "id"}
    _check_dates(changes)
    store = get_store()
    with store.lock(ASSETS):
        asset = store.get_or_raise(ASSETS, asset_id, "Asset")
        if "tagNumber" in changes and _tag_taken(store, changes["tagNumber"], exclude_id=asset["id"]):
            raise ConflictError("Asset", "tagNumber", changes["tagNumber"])
        return normalize_asset(store.update(ASSETS, asset_id, changes))


# ── Transition core ──────────────────────────────────────────────────────────


def _transition(asset_id, allowed_from, new_status, build_changes):
    """Move an asset from one of *allowed_from* to *new_status*.

    build_changes(asset) returns the extra fields to write. Returns the
    asset as it was before and after the write.
    """
    store = get_store()
    with store.lock(ASSETS):
        asset = normalize_asset(store.get_or_raise(ASSETS, asset_id, "Asset"))
        current = asset["status"]
        if current not in allowed_from or not validate_asset_transition(current, new_status):
            raise StateConflictError("Asset", asset["id"], current, sorted(allowed_from))
        changes = build_changes(asset)
        changes["status"] = new_status
        updated = store.update(ASSETS, asset["id"], changes)
    logger.info("Asset %s: %s -> %s", asset["id"], current, new_status)
    return asset, normalize_asset(updated)


def _notify_initiator(asset, title, message, actor_name):
    if asset.get("initiatedBy"):
        NotificationService.emit(
            title=title, message=message, type="asset",
            target_username=asset["initiatedBy"], asset_id=asset["id"], created_by=actor_name,
        )


_CLEARED_DISPOSAL = {
    "reason": None, "initiatedBy": None, "initiatedAt": None,
    "recommendedBy": None, "recommendedAt": None,
    "rejectionReason": None, "rejectedBy": None, "rejectedAt": None,
}


# ── Disposal ─────────────────────────────────────────────────────────────────


def initiate_disposal(asset_id, initiated_by, reason=None):
    """Active → DisposalInitiated (the asset goes into the disposal cart)."""
    _, asset = _transition(asset_id, {ACTIVE}, DISPOSAL_INITIATED, lambda a: {
        **_CLEARED_DISPOSAL,
        "reason": reason,
        "initiatedBy": initiated_by,
        "initiatedAt": now_iso(),
    })
    return asset


def submit_disposal(asset_id, submitted_by=None):
    """DisposalInitiated → Pending Disposal; Admin and HO are told."""
    _, asset = _transition(asset_id, {DISPOSAL_INITIATED}, PENDING_DISPOSAL, lambda a: {})
    for role in ("Admin", "HO"):
        NotificationService.emit(
            title="Disposal pending approval",
            message=f"Asset {asset.get('tagNumber')} ({asset.get('name')}) was submitted for disposal "
                    f"from branch {asset.get('branchCode')}.",
            type="disposal", target_role=role, asset_id=asset["id"],
            created_by=submitted_by or asset.get("initiatedBy"),
        )
    return asset


def recommend_disposal(asset_id, recommended_by):
    """Pending Disposal → Recommended (manager action)."""
    _, asset = _transition(asset_id, {PENDING_DISPOSAL}, RECOMMENDED, lambda a: {
        "recommendedBy": recommended_by, "recommendedAt": now_iso(),
    })
    _notify_initiator(asset, "Disposal recommended",
                      f"Disposal of asset {asset.get('tagNumber')} was recommended by {recommended_by}.",
                      recommended_by)
    return asset


def approve_disposal(asset_id, approved_by):
    """Pending Disposal | Recommended → Disposed (terminal)."""
    _, asset = _transition(asset_id, {PENDING_DISPOSAL, RECOMMENDED}, DISPOSED, lambda a: {
        "approvedBy": approved_by, "approvedAt": now_iso(),
    })
    _notify_initiator(asset, "Disposal approved",
                      f"Asset {asset.get('tagNumber')} has been disposed (approved by {approved_by}).",
                      approved_by)
    return asset


def reject_disposal(asset_id, rejected_by, reason=None):
    """Pending Disposal | Recommended → DisposalInitiated, for the initiator to rework."""
    _, asset = _transition(asset_id, {PENDING_DISPOSAL, RECOMMENDED}, DISPOSAL_INITIATED, lambda a: {
        "rejectionReason": reason, "rejectedBy": rejected_by, "rejectedAt": now_iso(),
        "recommendedBy": None, "recommendedAt": None,
    })
    _notify_initiator(asset, "Disposal returned",
                      f"Disposal of asset {asset.get('tagNumber')} was returned by {rejected_by}"
                      + (f": {reason}" if reason else "."),
                      rejected_by)
    return asset


def remove_disposal(asset_id, removed_by=None):
    """DisposalInitiated → Active; the disposal intent is discarded."""
    _, asset = _transition(asset_id, {DISPOSAL_INITIATED}, ACTIVE, lambda a: dict(_CLEARED_DISPOSAL))
    logger.info("Disposal of asset %s removed from cart by %s", asset["id"], removed_by)
    return asset


# ── Transfer ─────────────────────────────────────────────────────────────────


def _record_event(asset, event, actor, reason=None, **extra):
    entry = {
        "assetId": asset["id"],
        "tagNumber": asset.get("tagNumber"),
        "event": event,
        "actor": actor,
        "reason": reason,
        "createdAt": now_iso(),
        **extra,
    }
    try:
        get_store().insert(TRANSFER_EVENTS, {k: v for k, v in entry.items() if v is not None})
    except Exception:
        logger.exception("Transfer ledger append failed for asset %s (%s)", asset["id"], event)


def initiate_transfer(asset_id, to_location, reason, initiated_by, to_branch_name=None):
    """Active → TransferApprovalPending. The asset stays in its current branch until approved."""
    if is_blank(to_location):
        raise ValidationError("toLocation is required", details={"toLocation": "required"})
    to_location = str(to_location).strip()

    def changes(a):
        if to_location.lower() == str(a.get("branchCode", "")).strip().lower():
            raise ValidationError("Asset is already at that branch", details={"toLocation": to_location})
        return {
            "toLocation": to_location,
            "toBranchName": to_branch_name or to_location,
            "reason": reason,
            "initiatedBy": initiated_by,
            "initiatedAt": now_iso(),
            "rejectionReason": None, "rejectedBy": None, "rejectedAt": None,
        }

    before, asset = _transition(asset_id, {ACTIVE}, TRANSFER_PENDING, changes)
    _record_event(asset, "initiated", initiated_by, reason,
                  fromBranchCode=before.get("branchCode"), fromBranch=before.get("branchName"),
                  toBranchCode=to_location, toBranch=asset.get("toBranchName"))
    message = (f"Asset {asset.get('tagNumber')} transfer from {before.get('branchCode')} "
               f"to {to_location} awaits approval.")
    for role in ("Admin", "HO"):
        NotificationService.emit(title="Transfer pending approval", message=message, type="transfer",
                                 target_role=role, asset_id=asset["id"], created_by=initiated_by)
    NotificationService.emit(title="Transfer pending approval", message=message, type="transfer",
                             target_role="Manager", target_branch=before.get("branchCode"),
                             asset_id=asset["id"], created_by=initiated_by)
    NotificationService.emit(title="Incoming transfer", message=message, type="transfer",
                             target_branch=to_location, asset_id=asset["id"], created_by=initiated_by)
    return asset


def approve_transfer(asset_id, approved_by):
    """TransferApprovalPending → Active at the destination, rewriting the same row."""
    def changes(a):
        destination = a.get("toLocation")
        if is_blank(destination):
            raise StateConflictError("Asset", a["id"], a["status"], [TRANSFER_PENDING])
        return {
            "branchCode": destination,
            "branchName": a.get("toBranchName") or destination,
            "fromBranch": a.get("branchName") or a.get("branchCode"),
            "fromBranchCode": a.get("branchCode"),
            "transferStatus": "Transferred",
            "approvedBy": approved_by,
            "approvedAt": now_iso(),
            "toLocation": None,
            "toBranchName": None,
        }

    _, asset = _transition(asset_id, {TRANSFER_PENDING}, ACTIVE, changes)
    _record_event(asset, "approved", approved_by,
                  fromBranchCode=asset.get("fromBranchCode"), fromBranch=asset.get("fromBranch"),
                  toBranchCode=asset.get("branchCode"), toBranch=asset.get("branchName"))
    _notify_initiator(asset, "Transfer approved",
                      f"Asset {asset.get('tagNumber')} now belongs to {asset.get('branchCode')}.",
                      approved_by)
    NotificationService.emit(title="Asset received",
                             message=f"Asset {asset.get('tagNumber')} was transferred in from "
                                     f"{asset.get('fromBranchCode')}.",
                             type="transfer", target_branch=asset.get("branchCode"),
                             asset_id=asset["id"], created_by=approved_by)
    return asset


def reject_transfer(asset_id, rejected_by, reason):
    """TransferApprovalPending → Active at the origin branch."""
    if is_blank(reason):
        raise ValidationError("reason is required", details={"reason": "required"})
    _, asset = _transition(asset_id, {TRANSFER_PENDING}, ACTIVE, lambda a: {
        "rejectionReason": reason.strip(),
        "rejectedBy": rejected_by,
        "rejectedAt": now_iso(),
        "toLocation": None,
        "toBranchName": None,
    })
    _record_event(asset, "rejected", rejected_by, reason.strip(),
                  fromBranchCode=asset.get("branchCode"), fromBranch=asset.get("branchName"))
    _notify_initiator(asset, "Transfer rejected",
                      f"Transfer of asset {asset.get('tagNumber')} was rejected: {reason.strip()}",
                      rejected_by)
    return asset


def transfer_history(asset_id):
    """Ledger events of one asset, oldest first."""
    asset = get_store().get_or_raise(ASSETS, asset_id, "Asset")
    return [e for e in get_store().get_all(TRANSFER_EVENTS) if str(e.get("assetId")) == str(asset["id"])]


# ── Gate pass ────────────────────────────────────────────────────────────────


def generate_gate_pass(asset_id, to_location, reason, generated_by,
                       gate_pass_type="Temporary", purpose=None):
    """Active → GatePass. Ownership does not change."""
    if gate_pass_type not in GATE_PASS_TYPES:
        raise ValidationError(
            f"gatePassType must be one of {sorted(GATE_PASS_TYPES)}",
            details={"gatePassType": gate_pass_type},
        )
    if is_blank(to_location):
        raise ValidationError("toLocation is required", details={"toLocation": "required"})
    _, asset = _transition(asset_id, {ACTIVE}, GATE_PASS, lambda a: {
        "gatePassType": gate_pass_type,
        "toLocation": str(to_location).strip(),
        "reason": reason,
        "purpose": purpose,
        "generatedBy": generated_by,
        "generatedAt": now_iso(),
    })
    return asset


def close_gate_pass(asset_id, closed_by=None):
    """GatePass → Active, once the asset is back."""
    _, asset = _transition(asset_id, {GATE_PASS}, ACTIVE, lambda a: {
        "gatePassType": None, "toLocation": None, "reason": None,
        "purpose": None, "generatedBy": None, "generatedAt": None,
    })
    logger.info("Gate pass on asset %s closed by %s", asset["id"], closed_by)
    return asset


# ── Backfill ─────────────────────────────────────────────────────────────────


def backfill_assets():
    """Persist legacy status spellings and lapsed-warranty labels. Returns rows changed."""
    store = get_store()
    changed = 0
    with store.lock(ASSETS):
        for asset in store.get_all(ASSETS):
            fixed = normalize_asset(asset)
            diff = {k: fixed[k] for k in ("status", "amcWarranty") if fixed[k] != asset.get(k)}
            if diff:
                store.update(ASSETS, asset["id"], diff)
                changed += 1
    return changed
