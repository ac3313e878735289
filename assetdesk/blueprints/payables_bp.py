"""
Payables Blueprint — vendor agreements and the bills raised against them.

Endpoints:
    GET    /api/payables/agreements                — agreements in scope
    POST   /api/payables/agreements                — create an agreement
    GET    /api/agreements/<contractId>/bills      — bills of one contract, newest first
    GET    /api/payables/bills                     — bills in scope (?contractId=)
    POST   /api/payables/bills                     — record a bill
    POST   /api/bills/validate                     — pre-submission ceiling / date check
    GET    /api/payables/pending-approvals         — Pending bills in scope
    GET    /api/payables/unpaid-bills              — every bill not yet paid or rejected
    POST   /api/payables/bills/<id>/approve        — Pending → Approved
    POST   /api/payables/bills/<id>/reject         — Pending → Rejected (reason required)
    POST   /api/payables/bills/<id>/pay            — mark paid
    PUT    /api/payables/bills/<id>/status         — Hold / SentForFinance / Pending
"""

import logging

from flask import Blueprint, jsonify, request

from assetdesk.blueprints import actor_and_scope, json_body, record_payload, require_in_scope
from assetdesk.services import bill_service
from assetdesk.services.permission_service import require_head_office, require_permission

logger = logging.getLogger(__name__)

payables_bp = Blueprint("payables_bp", __name__, url_prefix="/api")

_STATUS_BODY_KEYS = {"status", "updatedBy", "remarks", "actorRole", "actorBranchCode", "actorUsername"}


def _scoped_bill(bill_id, scope):
    return require_in_scope(bill_service.get_bill(bill_id), scope, "Bill", bill_id)


# ═════════════════════════════════════════════════════════════════════════════
# AGREEMENTS
# ═════════════════════════════════════════════════════════════════════════════


@payables_bp.route("/payables/agreements", methods=["GET"])
def list_agreements():
    _, scope = actor_and_scope()
    return jsonify(bill_service.list_agreements(scope)), 200


@payables_bp.route("/payables/agreements", methods=["POST"])
def create_agreement():
    """Body: { contractId?, type, vendorName, branchCode, amount, agreementDate?, renewalDate? }"""
    actor, _ = actor_and_scope()
    require_permission(actor, "createAgreement")
    return jsonify(bill_service.create_agreement(record_payload(), created_by=actor.name)), 201


@payables_bp.route("/agreements/<string:contract_id>/bills", methods=["GET"])
def contract_bills(contract_id):
    _, scope = actor_and_scope()
    return jsonify(scope.filter(bill_service.bills_for_contract(contract_id))), 200


# ═════════════════════════════════════════════════════════════════════════════
# BILLS
# ═════════════════════════════════════════════════════════════════════════════


@payables_bp.route("/payables/bills", methods=["GET"])
def list_bills():
    _, scope = actor_and_scope()
    return jsonify(bill_service.list_bills(scope, contract_id=request.args.get("contractId"))), 200


@payables_bp.route("/payables/bills", methods=["POST"])
def create_bill():
    """Body: { contractId, amount, billDate, billNo?, isException?, exceptionReason?, ... }"""
    actor, _ = actor_and_scope()
    require_permission(actor, "createBill")
    data = record_payload()
    bill = bill_service.create_bill(data, created_by=data.get("createdBy") or actor.name)
    return jsonify(bill), 201


@payables_bp.route("/bills/validate", methods=["POST"])
def validate_bill():
    """Body: { contractId, amount, billDate, monthYear? }"""
    data = json_body()
    result = bill_service.validate_bill(
        data.get("contractId"), data.get("amount"), data.get("billDate"), data.get("monthYear"),
    )
    return jsonify(result), 200


@payables_bp.route("/payables/pending-approvals", methods=["GET"])
def pending_approvals():
    _, scope = actor_and_scope()
    return jsonify(bill_service.pending_bills(scope)), 200


@payables_bp.route("/payables/unpaid-bills", methods=["GET"])
def unpaid_bills():
    return jsonify(bill_service.get_unpaid_bills()), 200


@payables_bp.route("/payables/bills/<int:bill_id>/approve", methods=["POST"])
def approve_bill(bill_id):
    """Body: { username?, userId? }"""
    actor, scope = actor_and_scope()
    require_permission(actor, "approveBill")
    _scoped_bill(bill_id, scope)
    data = json_body()
    bill = bill_service.approve_bill(bill_id, data.get("username") or actor.name, data.get("userId"))
    return jsonify(bill), 200


@payables_bp.route("/payables/bills/<int:bill_id>/reject", methods=["POST"])
def reject_bill(bill_id):
    """Body: { reason, username?, userId? }"""
    actor, scope = actor_and_scope()
    require_permission(actor, "approveBill")
    _scoped_bill(bill_id, scope)
    data = json_body()
    bill = bill_service.reject_bill(
        bill_id, data.get("username") or actor.name, data.get("reason"), data.get("userId"),
    )
    return jsonify(bill), 200


@payables_bp.route("/payables/bills/<int:bill_id>/pay", methods=["POST"])
def pay_bill(bill_id):
    """Body: { modeOfPayment, utrNumber?, paymentDate?, paidBy? }"""
    actor, scope = actor_and_scope()
    require_head_office(actor, "approveBill")
    _scoped_bill(bill_id, scope)
    data = json_body()
    bill = bill_service.pay_bill(
        bill_id,
        data.get("paidBy") or actor.name,
        data.get("modeOfPayment"),
        utr_number=data.get("utrNumber"),
        payment_date=data.get("paymentDate"),
    )
    return jsonify(bill), 200


@payables_bp.route("/payables/bills/<int:bill_id>/status", methods=["PUT"])
def update_bill_status(bill_id):
    """Body: { status: Hold|SentForFinance|Pending, remarks?, updatedBy?, paymentScheduledDate?, ... }"""
    actor, scope = actor_and_scope()
    require_permission(actor, "approveBill")
    _scoped_bill(bill_id, scope)
    data = json_body()
    extras = {k: v for k, v in data.items() if k not in _STATUS_BODY_KEYS}
    bill = bill_service.update_bill_status(
        bill_id,
        data.get("status"),
        remarks=data.get("remarks"),
        updated_by=data.get("updatedBy") or actor.name,
        extras=extras,
    )
    return jsonify(bill), 200
