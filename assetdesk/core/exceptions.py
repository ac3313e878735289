"""
Service-layer exception hierarchy.

Services and the record store raise only these types. The app factory
registers one handler per type, so every blueprint returns the same HTTP
status and error envelope for the same failure.

Usage:
    from assetdesk.core.exceptions import NotFoundError, StateConflictError

    raise NotFoundError(resource="Asset", resource_id=42)
    raise StateConflictError("Asset", 42, current="Active", expected=["TransferApprovalPending"])
"""


class NotFoundError(Exception):
    """Raised when an asset, bill, agreement, role, user or notification id does not resolve.

    Args:
        resource: Human-readable entity name (e.g. "Asset", "Bill").
        resource_id: The id that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when a required field is missing or malformed.

    The operation is not attempted. Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidReferenceError(Exception):
    """Raised when a record points at a parent that does not exist.

    A bill whose contractId has no agreement is the canonical case. Maps to HTTP 422.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"No {resource} with {field}={value!r}")


class StateConflictError(Exception):
    """Raised when a transition is requested from a state that does not allow it.

    Maps to HTTP 409.

    Args:
        resource: Entity name.
        resource_id: Entity id.
        current: The state the entity is actually in.
        expected: States from which the transition is allowed.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None,
        current: str | None,
        expected: list[str] | tuple[str, ...] = (),
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.current = current
        self.expected = list(expected)
        msg = f"{resource} id={resource_id} is in state {current!r}"
        if self.expected:
            msg += f"; expected one of {self.expected}"
        super().__init__(msg)


class ConflictError(Exception):
    """Raised when an insert would duplicate a unique field (contractId, tagNumber, username).

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class PermissionDeniedError(Exception):
    """Raised when the acting role lacks the permission flag an action needs. Maps to HTTP 403."""

    def __init__(self, role: str, permission: str) -> None:
        self.role = role
        self.permission = permission
        super().__init__(f"Role {role!r} lacks permission {permission!r}")


class StorageError(Exception):
    """Raised when the backing record store cannot be read or written.

    The failed write is never partially visible. Maps to HTTP 500.
    """
