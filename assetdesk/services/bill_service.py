"""
Bill Approval Engine — agreements, bills and the pre-submission check.

Bill approvalStatus:  Pending → Approved | Rejected
                      Pending ⇄ Hold ⇄ SentForFinance   (update_bill_status)
Bill paymentStatus:   Unpaid → Paid  (forces approvalStatus=Approved)

A bill must reference an existing agreement by contractId. The monthly
ceiling check sums every bill of the contract in the same "YYYY-MM" month,
read fresh from the store on every call.
"""

import logging
from datetime import timedelta

from assetdesk.core.exceptions import (
    ConflictError, InvalidReferenceError, StateConflictError, ValidationError,
)
from assetdesk.models.schema import (
    AD_HOC_BILL_STATUSES, AGREEMENT_TO_BILL_TYPE, AGREEMENTS, BILL_APPROVED,
    BILL_PENDING, BILL_REJECTED, BILLS, PAYABLE_APPROVAL_STATUSES, PAYMENT_PAID,
    PAYMENT_UNPAID, validate_bill_transition,
)
from assetdesk.services.notification import NotificationService
from assetdesk.store import get_store
from assetdesk.utils.helpers import (
    is_blank, month_year, now_iso, parse_date_input, to_amount, today,
)

logger = logging.getLogger(__name__)

BILL_DATE_WINDOW_DAYS = 90
DUE_DATE_OFFSET_DAYS = 30


def _number(value):
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


# ── Agreements ───────────────────────────────────────────────────────────────


def _next_contract_id(agreements):
    highest = 0
    for a in agreements:
        cid = str(a.get("contractId") or "")
        if cid.startswith("CTR-") and cid[4:].isdigit():
            highest = max(highest, int(cid[4:]))
    return f"CTR-{highest + 1:04d}"


def create_agreement(data, created_by=None):
    """Create an agreement; contractId is generated when not supplied."""
    if is_blank(data.get("branchCode")):
        raise ValidationError("branchCode is required", details={"branchCode": "required"})
    record = {k: v for k, v in data.items() if k != "id"}
    record["amount"] = to_amount(data.get("amount"))
    for f in ("agreementDate", "renewalDate"):
        if not is_blank(record.get(f)):
            record[f] = parse_date_input(record[f], f).isoformat()
    if is_blank(record.get("billType")) and record.get("type") in AGREEMENT_TO_BILL_TYPE:
        record["billType"] = AGREEMENT_TO_BILL_TYPE[record["type"]]
    record.setdefault("status", "Active")
    record["createdBy"] = created_by or record.get("createdBy")
    record["createdAt"] = now_iso()

    store = get_store()
    with store.lock(AGREEMENTS):
        agreements = store.get_all(AGREEMENTS)
        if is_blank(record.get("contractId")):
            record["contractId"] = _next_contract_id(agreements)
        else:
            record["contractId"] = str(record["contractId"]).strip()
            if any(a.get("contractId") == record["contractId"] for a in agreements):
                raise ConflictError("Agreement", "contractId", record["contractId"])
        agreement = store.insert(AGREEMENTS, record)
    logger.info("Agreement %s created for branch %s", agreement["contractId"], agreement["branchCode"])
    return agreement


def list_agreements(scope):
    return scope.filter(get_store().get_all(AGREEMENTS))


def get_agreement_by_contract(contract_id):
    contract_id = str(contract_id or "").strip()
    for a in get_store().get_all(AGREEMENTS):
        if str(a.get("contractId", "")).strip() == contract_id:
            return a
    return None


# ── Read-side normalisation ──────────────────────────────────────────────────


def normalize_bill(bill):
    """A paid bill always reads as approved."""
    out = dict(bill)
    if out.get("paymentStatus") == PAYMENT_PAID and out.get("approvalStatus") != BILL_APPROVED:
        out["approvalStatus"] = BILL_APPROVED
    return out


def _all_bills():
    return [normalize_bill(b) for b in get_store().get_all(BILLS)]


def get_bill(bill_id):
    return normalize_bill(get_store().get_or_raise(BILLS, bill_id, "Bill"))


def list_bills(scope, contract_id=None):
    bills = scope.filter(_all_bills())
    if contract_id:
        bills = [b for b in bills if b.get("contractId") == contract_id]
    return bills


def bills_for_contract(contract_id):
    """Bills of one contract, newest bill date first."""
    bills = [b for b in _all_bills() if b.get("contractId") == contract_id]
    bills.sort(key=lambda b: str(b.get("billDate") or ""), reverse=True)
    return bills


def pending_bills(scope):
    return [b for b in list_bills(scope) if b.get("approvalStatus") == BILL_PENDING]


def pending_actions_count(scope):
    return len(pending_bills(scope))


def get_unpaid_bills():
    """Bills still awaiting payment; branchCode filled from the agreement when blank."""
    agreements = {a.get("contractId"): a for a in get_store().get_all(AGREEMENTS)}
    out = []
    for b in _all_bills():
        if b.get("paymentStatus") == PAYMENT_PAID or b.get("approvalStatus") == BILL_REJECTED:
            continue
        if is_blank(b.get("branchCode")) and b.get("contractId") in agreements:
            b["branchCode"] = agreements[b["contractId"]].get("branchCode", "")
        out.append(b)
    return out


# ── Validation ───────────────────────────────────────────────────────────────


def get_monthly_bill_total(contract_id, month):
    """Sum of every recorded bill of *contract_id* in month "YYYY-MM"."""
    return sum(
        _number(b.get("amount"))
        for b in get_store().get_all(BILLS)
        if b.get("contractId") == contract_id and b.get("monthYear") == month
    )


def validate_bill(contract_id, amount, bill_date, month=None):
    """Pre-submission check of a bill against its agreement.

    Returns dateValid, amountValid, monthlyLimitValid, needsException,
    currentMonthTotal and agreementAmount. Nothing is written.
    """
    agreement = get_agreement_by_contract(contract_id)
    if agreement is None:
        raise InvalidReferenceError("Agreement", "contractId", contract_id)
    amount = to_amount(amount)
    billed_on = parse_date_input(bill_date, "billDate")
    if billed_on is None:
        raise ValidationError("billDate is required", details={"billDate": "required"})
    month = month or month_year(billed_on)

    now = today()
    ceiling = _number(agreement.get("amount"))
    current_total = get_monthly_bill_total(agreement["contractId"], month)
    amount_valid = amount <= ceiling
    monthly_valid = current_total + amount <= ceiling
    return {
        "dateValid": now - timedelta(days=BILL_DATE_WINDOW_DAYS) <= billed_on <= now,
        "amountValid": amount_valid,
        "monthlyLimitValid": monthly_valid,
        "needsException": not amount_valid or not monthly_valid,
        "currentMonthTotal": current_total,
        "agreementAmount": ceiling,
    }


# ── Create ───────────────────────────────────────────────────────────────────


def _notify_creator(bill, title, message, actor_name):
    if bill.get("createdBy"):
        NotificationService.emit(
            title=title, message=message, type="bill",
            target_username=bill["createdBy"], created_by=actor_name,
        )


def create_bill(data, created_by=None):
    """Record a bill against an existing agreement.

    isException/exceptionReason are stored as supplied; the caller decides
    them from validate_bill.
    """
    contract_id = str(data.get("contractId") or "").strip()
    if not contract_id:
        raise ValidationError("contractId is required", details={"contractId": "required"})
    agreement = get_agreement_by_contract(contract_id)
    if agreement is None:
        raise InvalidReferenceError("Agreement", "contractId", contract_id)

    amount = to_amount(data.get("amount"))
    billed_on = parse_date_input(data.get("billDate"), "billDate")
    if billed_on is None:
        raise ValidationError("billDate is required", details={"billDate": "required"})

    record = {k: v for k, v in data.items() if k != "id"}
    record.update({
        "contractId": contract_id,
        "amount": amount,
        "billDate": billed_on.isoformat(),
        "monthYear": data.get("monthYear") or month_year(billed_on),
        "approvalStatus": BILL_PENDING,
        "paymentStatus": PAYMENT_UNPAID,
        "isException": data.get("isException") or "No",
        "createdBy": created_by or data.get("createdBy"),
    })
    due = parse_date_input(data.get("dueDate"), "dueDate")
    record["dueDate"] = (due or billed_on + timedelta(days=DUE_DATE_OFFSET_DAYS)).isoformat()
    if is_blank(record.get("vendorName")):
        record["vendorName"] = agreement.get("vendorName")
    if is_blank(record.get("branchCode")):
        record["branchCode"] = agreement.get("branchCode")
    if is_blank(record.get("billType")):
        record["billType"] = agreement.get("billType") or AGREEMENT_TO_BILL_TYPE.get(agreement.get("type"))

    bill = get_store().insert(BILLS, {k: v for k, v in record.items() if v is not None})
    logger.info("Bill %s recorded against %s (%.2f)", bill["id"], contract_id, amount)
    for role in ("Manager", "Admin", "HO"):
        NotificationService.emit(
            title="Bill awaiting approval",
            message=f"Bill {bill.get('billNo') or bill['id']} of {amount:.2f} for {contract_id} "
                    f"({bill.get('branchCode')}) needs approval.",
            type="bill", target_role=role,
            target_branch=bill.get("branchCode") if role == "Manager" else None,
            created_by=bill.get("createdBy"),
        )
    return bill


# ── Transitions ──────────────────────────────────────────────────────────────


def _change_bill(bill_id, check, build_changes):
    """Run check(bill) then write build_changes(bill) under the Bills lock."""
    store = get_store()
    with store.lock(BILLS):
        bill = normalize_bill(store.get_or_raise(BILLS, bill_id, "Bill"))
        check(bill)
        changes = build_changes(bill)
        updated = store.update(BILLS, bill["id"], changes)
    return bill, normalize_bill(updated)


def _expect_approval(*allowed):
    def check(bill):
        if bill.get("paymentStatus") == PAYMENT_PAID or bill.get("approvalStatus") not in allowed:
            raise StateConflictError("Bill", bill["id"], bill.get("approvalStatus"), list(allowed))
    return check


def approve_bill(bill_id, approver_name, approver_id=None):
    """Pending → Approved."""
    _, bill = _change_bill(bill_id, _expect_approval(BILL_PENDING), lambda b: {
        "approvalStatus": BILL_APPROVED,
        "approvedBy": approver_name,
        "approverId": approver_id,
        "approvedAt": now_iso(),
    })
    _notify_creator(bill, "Bill approved",
                    f"Bill {bill.get('billNo') or bill['id']} was approved by {approver_name}.",
                    approver_name)
    return bill


def reject_bill(bill_id, rejected_by, reason, rejector_id=None):
    """Pending → Rejected. A non-blank reason is mandatory."""
    if is_blank(reason):
        raise ValidationError("Rejection reason is required", details={"reason": "required"})
    _, bill = _change_bill(bill_id, _expect_approval(BILL_PENDING), lambda b: {
        "approvalStatus": BILL_REJECTED,
        "rejectionReason": reason.strip(),
        "rejectedBy": rejected_by,
        "rejectedAt": now_iso(),
        "approverId": rejector_id,
    })
    _notify_creator(bill, "Bill rejected",
                    f"Bill {bill.get('billNo') or bill['id']} was rejected: {reason.strip()}",
                    rejected_by)
    return bill


def pay_bill(bill_id, paid_by, mode_of_payment, utr_number=None, payment_date=None):
    """Mark a bill paid. Pending bills are approved in the same write."""
    if is_blank(mode_of_payment):
        raise ValidationError("modeOfPayment is required", details={"modeOfPayment": "required"})
    paid_on = parse_date_input(payment_date, "paymentDate") or today()

    def build(b):
        changes = {
            "paymentStatus": PAYMENT_PAID,
            "approvalStatus": BILL_APPROVED,
            "paidBy": paid_by,
            "paidAt": now_iso(),
            "paymentDate": paid_on.isoformat(),
            "modeOfPayment": mode_of_payment,
            "utrNumber": utr_number,
        }
        if b.get("approvalStatus") != BILL_APPROVED:
            changes.update({"approvedBy": b.get("approvedBy") or paid_by, "approvedAt": now_iso()})
        return changes

    _, bill = _change_bill(bill_id, _expect_approval(*sorted(PAYABLE_APPROVAL_STATUSES)), build)
    _notify_creator(bill, "Bill paid",
                    f"Bill {bill.get('billNo') or bill['id']} was paid via {mode_of_payment}.",
                    paid_by)
    return bill


def update_bill_status(bill_id, status, remarks=None, updated_by=None, extras=None):
    """Move a bill to Hold, SentForFinance or back to Pending.

    *extras* may carry paymentScheduledDate for Hold.
    """
    if status not in AD_HOC_BILL_STATUSES:
        raise ValidationError(
            f"status must be one of {sorted(AD_HOC_BILL_STATUSES)}", details={"status": status},
        )
    extras = dict(extras or {})
    scheduled = parse_date_input(extras.pop("paymentScheduledDate", None), "paymentScheduledDate")

    def check(b):
        if b.get("paymentStatus") == PAYMENT_PAID or b.get("approvalStatus") == BILL_REJECTED \
                or not validate_bill_transition(b.get("approvalStatus"), status):
            raise StateConflictError("Bill", b["id"], b.get("approvalStatus"),
                                     [s for s in ("Pending", "Approved", "Hold", "SentForFinance")
                                      if validate_bill_transition(s, status)])

    def build(b):
        changes = {k: v for k, v in extras.items() if k not in ("id", "paymentStatus", "approvalStatus")}
        changes.update({
            "approvalStatus": status,
            "remarks": remarks,
            "statusUpdatedBy": updated_by,
            "statusUpdatedAt": now_iso(),
        })
        if scheduled is not None:
            changes["paymentScheduledDate"] = scheduled.isoformat()
        return changes

    before, bill = _change_bill(bill_id, check, build)
    logger.info("Bill %s: %s -> %s by %s", bill["id"], before.get("approvalStatus"), status, updated_by)
    _notify_creator(bill, f"Bill status: {status}",
                    f"Bill {bill.get('billNo') or bill['id']} is now {status}"
                    + (f" ({remarks})" if remarks else "."),
                    updated_by)
    return bill


# ── Backfill ─────────────────────────────────────────────────────────────────


def backfill_bills():
    """Persist approvalStatus=Approved on paid bills. Returns rows changed."""
    store = get_store()
    changed = 0
    with store.lock(BILLS):
        for bill in store.get_all(BILLS):
            if normalize_bill(bill)["approvalStatus"] != bill.get("approvalStatus"):
                store.update(BILLS, bill["id"], {"approvalStatus": BILL_APPROVED})
                changed += 1
    return changed
