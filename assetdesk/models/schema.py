"""
Branch Asset & Payables Desk
Record layouts, status constants and transition maps.

Every logical table has an explicit, versioned field list. Records written
by older versions may lack newer fields; ``TableSchema.apply_defaults``
fills them on read so services never branch on a missing key.

Tables:
    - Users, Assets, Agreements, Bills, Roles, Notifications
    - TransferEvents: append-only transfer ledger keyed by assetId
"""

from dataclasses import dataclass, field

SCHEMA_VERSION = 3


@dataclass(frozen=True)
class TableSchema:
    name: str
    fields: tuple[str, ...]
    defaults: dict = field(default_factory=dict)
    version: int = SCHEMA_VERSION

    def apply_defaults(self, record: dict) -> dict:
        """Return a copy of *record* with every absent or blank field defaulted."""
        out = dict(record)
        for key, value in self.defaults.items():
            if out.get(key) in (None, ""):
                out[key] = value
        return out

    def column_order(self, record_keys) -> list[str]:
        """Known fields first in declared order, then any extra keys as they appear."""
        known = ["id", *[f for f in self.fields if f != "id"]]
        extra = [k for k in record_keys if k not in known]
        return known + extra


# ── Asset statuses ───────────────────────────────────────────────────────────

ACTIVE = "Active"
DISPOSAL_INITIATED = "DisposalInitiated"   # shown as "In Cart"
PENDING_DISPOSAL = "Pending Disposal"
RECOMMENDED = "Recommended"
DISPOSED = "Disposed"
TRANSFER_PENDING = "TransferApprovalPending"
GATE_PASS = "GatePass"
TRANSFERRED = "Transferred"                # view status only, never stored in status

ASSET_STATUSES = {
    ACTIVE, DISPOSAL_INITIATED, PENDING_DISPOSAL, RECOMMENDED,
    DISPOSED, TRANSFER_PENDING, GATE_PASS,
}

# Spellings found in older workbooks
LEGACY_ASSET_STATUSES = {
    "In Cart": DISPOSAL_INITIATED,
    "InCart": DISPOSAL_INITIATED,
    "PendingDisposal": PENDING_DISPOSAL,
    "Pending": PENDING_DISPOSAL,
}

DISPOSAL_STATUSES = {DISPOSAL_INITIATED, PENDING_DISPOSAL, RECOMMENDED}
DISPOSAL_DISPLAY = {
    DISPOSAL_INITIATED: "In Cart",
    PENDING_DISPOSAL: "Pending",
    RECOMMENDED: "Recommended",
    DISPOSED: "Approved",
}

GATE_PASS_TYPES = {"Temporary", "Transfer"}

ASSET_TRANSITIONS = {
    ACTIVE:             [DISPOSAL_INITIATED, TRANSFER_PENDING, GATE_PASS],
    DISPOSAL_INITIATED: [PENDING_DISPOSAL, ACTIVE],
    PENDING_DISPOSAL:   [RECOMMENDED, DISPOSED, DISPOSAL_INITIATED],
    RECOMMENDED:        [DISPOSED, DISPOSAL_INITIATED],
    DISPOSED:           [],
    TRANSFER_PENDING:   [ACTIVE],
    GATE_PASS:          [ACTIVE],
}


def validate_asset_transition(old_status, new_status):
    """Return True if an Asset status transition is valid."""
    return new_status in ASSET_TRANSITIONS.get(old_status, [])


# ── Bill statuses ────────────────────────────────────────────────────────────

BILL_PENDING = "Pending"
BILL_APPROVED = "Approved"
BILL_REJECTED = "Rejected"
BILL_HOLD = "Hold"
BILL_SENT_FOR_FINANCE = "SentForFinance"

PAYMENT_UNPAID = "Unpaid"
PAYMENT_PAID = "Paid"

BILL_TRANSITIONS = {
    BILL_PENDING:          [BILL_APPROVED, BILL_REJECTED, BILL_HOLD, BILL_SENT_FOR_FINANCE],
    BILL_HOLD:             [BILL_PENDING, BILL_SENT_FOR_FINANCE],
    BILL_SENT_FOR_FINANCE: [BILL_PENDING, BILL_HOLD],
    BILL_APPROVED:         [BILL_HOLD, BILL_SENT_FOR_FINANCE],
    BILL_REJECTED:         [],
}

# Statuses settable through update_bill_status
AD_HOC_BILL_STATUSES = {BILL_HOLD, BILL_SENT_FOR_FINANCE, BILL_PENDING}
PAYABLE_APPROVAL_STATUSES = {BILL_APPROVED, BILL_PENDING}


def validate_bill_transition(old_status, new_status):
    """Return True if a Bill approvalStatus transition is valid."""
    return new_status in BILL_TRANSITIONS.get(old_status, [])


AGREEMENT_TO_BILL_TYPE = {
    "Rent Agreement": "Rent Invoice",
    "KSEB Agreement": "Electricity Bill",
    "Water Bill Agreement": "Water Bill",
    "Maintenance Agreement": "Maintenance Bill",
    "Internet Agreement": "Internet Bill",
    "Security Agreement": "Security Bill",
}


# ── Role permission flags ────────────────────────────────────────────────────

PERMISSION_FLAGS = (
    "manageRoles",
    "assetCreation",
    "assetModification",
    "assetDeletion",
    "assetConfirmation",
    "initiateDisposal",
    "approveDisposal",
    "initiateTransfer",
    "approveTransfer",
    "createAgreement",
    "approveAgreement",
    "createBill",
    "approveBill",
)


# ── Table layouts ────────────────────────────────────────────────────────────

USERS = "Users"
ASSETS = "Assets"
AGREEMENTS = "Agreements"
BILLS = "Bills"
ROLES = "Roles"
NOTIFICATIONS = "Notifications"
TRANSFER_EVENTS = "TransferEvents"

TABLE_SCHEMAS = {
    USERS: TableSchema(
        name=USERS,
        fields=("id", "username", "role", "branchCode", "branchName", "managerId", "reportingTo"),
        defaults={"branchCode": "", "branchName": "", "managerId": "", "reportingTo": ""},
    ),
    ASSETS: TableSchema(
        name=ASSETS,
        fields=(
            "id", "name", "tagNumber", "type", "purchaseDate", "warrantyEnd",
            "amcStart", "amcEnd", "amcWarranty", "branchCode", "branchName",
            "branchUser", "status", "mappedEmployee", "custodian",
            "toLocation", "toBranchName", "reason", "initiatedBy", "initiatedAt",
            "approvedBy", "approvedAt", "recommendedBy", "recommendedAt",
            "fromBranch", "fromBranchCode", "transferStatus",
            "rejectionReason", "rejectedBy", "rejectedAt",
            "gatePassType", "purpose", "generatedBy", "generatedAt",
        ),
        defaults={"status": ACTIVE, "branchCode": "", "branchName": "", "amcWarranty": "Warranty"},
    ),
    AGREEMENTS: TableSchema(
        name=AGREEMENTS,
        fields=(
            "id", "contractId", "type", "vendorName", "billType", "branchCode",
            "agreementDate", "renewalDate", "amount", "description", "status",
            "createdBy", "createdAt",
        ),
        defaults={"status": "Active", "amount": 0, "branchCode": ""},
    ),
    BILLS: TableSchema(
        name=BILLS,
        fields=(
            "id", "billNo", "contractId", "amount", "billDate", "monthYear",
            "dueDate", "branchCode", "vendorName", "billType",
            "approvalStatus", "paymentStatus", "isException", "exceptionReason",
            "createdBy", "approvedBy", "approverId", "approvedAt",
            "rejectionReason", "rejectedBy", "rejectedAt",
            "paidBy", "paidAt", "paymentDate", "modeOfPayment", "utrNumber",
            "paymentScheduledDate", "remarks", "statusUpdatedBy", "statusUpdatedAt",
        ),
        defaults={
            "approvalStatus": BILL_PENDING,
            "paymentStatus": PAYMENT_UNPAID,
            "isException": "No",
            "amount": 0,
            "branchCode": "",
        },
    ),
    ROLES: TableSchema(
        name=ROLES,
        fields=("id", "name", "description", *PERMISSION_FLAGS),
        defaults={flag: "false" for flag in PERMISSION_FLAGS},
    ),
    NOTIFICATIONS: TableSchema(
        name=NOTIFICATIONS,
        fields=(
            "id", "title", "message", "type", "targetRole", "targetBranch",
            "targetUsername", "assetId", "createdBy", "isRead", "createdAt",
        ),
        defaults={"isRead": "false", "type": "info"},
    ),
    TRANSFER_EVENTS: TableSchema(
        name=TRANSFER_EVENTS,
        fields=(
            "id", "assetId", "tagNumber", "event", "fromBranchCode", "fromBranch",
            "toBranchCode", "toBranch", "actor", "reason", "createdAt",
        ),
    ),
}


def schema_for(table: str) -> TableSchema:
    try:
        return TABLE_SCHEMAS[table]
    except KeyError:
        raise KeyError(f"Unknown table {table!r}") from None
