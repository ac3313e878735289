"""Standardised API error responses.

Every failure leaves the API as ``{"error", "code", "details?"}``:

    return api_error(E.NOT_FOUND, "Asset id=4 not found")
    return error_response(StateConflictError("Bill", 7, "Paid", ["Pending"]))

``error_response`` is what the app factory registers for the service
exceptions in ``assetdesk.core.exceptions``.
"""

from __future__ import annotations

from flask import jsonify

from assetdesk.core.exceptions import (
    ConflictError,
    InvalidReferenceError,
    NotFoundError,
    PermissionDeniedError,
    StateConflictError,
    StorageError,
    ValidationError,
)


class E:
    """Machine-readable error codes (``ERR_`` prefix)."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"   # 400, a required field is blank
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"     # 400, malformed value or unknown role
    INVALID_REFERENCE = "ERR_INVALID_REFERENCE"       # 422, e.g. bill for an unknown contractId
    NOT_FOUND = "ERR_NOT_FOUND"                       # 404, missing or outside the actor's scope
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"     # 409, tagNumber / contractId / username taken
    CONFLICT_STATE = "ERR_CONFLICT_STATE"             # 409, transition not allowed from current status
    FORBIDDEN = "ERR_FORBIDDEN"                       # 403, role lacks the permission flag
    STORAGE = "ERR_STORAGE"                           # 500, record store unreadable / write failed
    INTERNAL = "ERR_INTERNAL"                         # 500


_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.INVALID_REFERENCE: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.FORBIDDEN: 403,
    E.STORAGE: 500,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Return ``(jsonify(body), http_status)`` for a Flask view or error handler.

    The status falls back to the code's default, then to 400.
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _DEFAULT_STATUS.get(code, 400)


def _validation(exc: ValidationError):
    # "x is required" messages come from blank mandatory fields
    code = E.VALIDATION_REQUIRED if "required" in str(exc) else E.VALIDATION_INVALID
    return code, str(exc), exc.details


def _state_conflict(exc: StateConflictError):
    return E.CONFLICT_STATE, str(exc), {"current": exc.current, "expected": exc.expected}


# exception type -> (code, message, details)
_TRANSLATORS = {
    ValidationError: _validation,
    InvalidReferenceError: lambda exc: (E.INVALID_REFERENCE, str(exc), {exc.field: exc.value}),
    NotFoundError: lambda exc: (E.NOT_FOUND, str(exc), None),
    StateConflictError: _state_conflict,
    ConflictError: lambda exc: (E.CONFLICT_DUPLICATE, str(exc), {exc.field: exc.value}),
    PermissionDeniedError: lambda exc: (E.FORBIDDEN, str(exc), {"permission": exc.permission}),
    StorageError: lambda exc: (E.STORAGE, "Record store unavailable", None),
}

SERVICE_EXCEPTIONS = tuple(_TRANSLATORS)


def error_response(exc: Exception):
    """Translate a service exception into the standard envelope."""
    for exc_type, translate in _TRANSLATORS.items():
        if isinstance(exc, exc_type):
            code, message, details = translate(exc)
            return api_error(code, message, details=details)
    return api_error(E.INTERNAL, "Internal server error")
