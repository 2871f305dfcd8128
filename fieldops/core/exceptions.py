"""
Task-engine exception hierarchy.

Services raise these types and never return error tuples. Blueprints
register handlers against them once (see ``fieldops.utils.errors``) and get
consistent HTTP status codes everywhere:

    UnauthorizedError  401   no actor, or actor is not executor / member
    ForbiddenError     403   actor known, policy denies a review / admin action
    NotFoundError      404   task, delivery, checklist index or user absent
    ConflictError      409   state-machine violation
    ValidationError    400   malformed payload or business-rule input failure

Usage:
    from fieldops.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Task", resource_id=42)
    raise ValidationError("Description too short", details={"description": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Task", "ChecklistItem").
        resource_id: The key that was looked up.
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
    """Raised when input fails validation in the service layer.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
                 Keys are field names; values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation is illegal in the entity's current state.

    Examples: reviewing a checklist delivery that was already reviewed,
    delivering a task that is not in a deliverable status, approving a task
    with no pending delivery, over-allocating stock.

    Args:
        message: Human-readable explanation.
        resource: Optional entity name, kept for logs.
        current_status: Optional status the entity was found in.
    """

    def __init__(
        self,
        message: str,
        *,
        resource: str | None = None,
        current_status: str | None = None,
    ) -> None:
        self.resource = resource
        self.current_status = current_status
        super().__init__(message)


class UnauthorizedError(Exception):
    """Raised when there is no acting identity, or the actor is not bound to the task."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class ForbiddenError(Exception):
    """Raised when the actor is known but the authorization policy denies the action."""

    def __init__(self, message: str = "Permission denied", *, action: str | None = None) -> None:
        self.action = action
        super().__init__(message)
