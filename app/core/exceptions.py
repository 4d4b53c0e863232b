"""
Platform-wide exception hierarchy.

Services raise these; blueprints translate them into JSON error responses
through ``app.utils.errors.register_error_handlers``. Every class carries a
stable machine-readable ``code`` so API clients never parse messages.

Usage:
    from app.core.exceptions import NotFoundError, InvalidStateTransition

    raise NotFoundError(resource="Sprint", resource_id=42)
    raise InvalidStateTransition("Questionnaire", current="approved", target="rejected")
"""


class PlatformError(Exception):
    """Base class for expected, recoverable business failures."""

    code = "ERR_PLATFORM"

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class NotFoundError(PlatformError):
    """Raised when a referenced record does not exist or is archived.

    Args:
        resource: Human-readable entity name (e.g. "Sprint", "Task").
        resource_id: The key that was looked up. Included in the message.
    """

    code = "ERR_NOT_FOUND"

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(PlatformError):
    """Raised when input is missing or malformed for an operation.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown; keys are field names.
    """

    code = "ERR_VALIDATION"


class MissingFieldError(ValidationError):
    """A field that the requested transition requires was not supplied."""

    code = "ERR_MISSING_FIELD"

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"{field} is required", details={field: "required"})


class InvalidStateTransition(PlatformError):
    """Raised when a status change is not legal from the current state."""

    code = "ERR_INVALID_STATE_TRANSITION"

    def __init__(self, resource: str, *, current: str, target: str | None = None,
                 reason: str | None = None) -> None:
        self.resource = resource
        self.current_status = current
        self.target_status = target
        msg = f"{resource} cannot move from '{current}'"
        if target:
            msg += f" to '{target}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, details={"current_status": current, "target_status": target})


class ConflictError(PlatformError):
    """Raised when an operation would violate a uniqueness invariant.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    code = "ERR_CONFLICT"

    def __init__(self, resource: str, field: str, value: str | int | None = None,
                 message: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(message or f"{resource} with {field}={value!r} already exists")


class AlreadyExistsError(ConflictError):
    code = "ERR_ALREADY_EXISTS"


class AlreadySelectedError(ConflictError):
    """A sprint package has already been chosen; the choice is final."""

    code = "ERR_ALREADY_SELECTED"

    def __init__(self, sprint_id: int) -> None:
        super().__init__(
            "Sprint", "selected_package", sprint_id,
            message=f"Sprint id={sprint_id} already has a selected package",
        )


class AlreadyLinkedError(ConflictError):
    """An anonymous questionnaire token was already claimed by an owner."""

    code = "ERR_ALREADY_LINKED"

    def __init__(self, temporary_id: str) -> None:
        super().__init__(
            "Questionnaire", "temporary_id", temporary_id,
            message="Questionnaire is already linked to an owner",
        )


class AccessDenied(PlatformError):
    """Actor lacks permission for the resource. Maps to HTTP 403."""

    code = "ERR_ACCESS_DENIED"

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message)


class PaymentRequired(AccessDenied):
    """Sprint board requested before the selected package was paid."""

    code = "PAYMENT_REQUIRED"

    def __init__(self, sprint_id: int) -> None:
        self.sprint_id = sprint_id
        super().__init__("Board cannot be accessed until payment is confirmed")


class PreconditionFailed(PlatformError):
    """An ordered dependency between workflow steps was not satisfied."""

    code = "ERR_PRECONDITION_FAILED"


class PackageRequired(PreconditionFailed):
    code = "ERR_PACKAGE_REQUIRED"

    def __init__(self) -> None:
        super().__init__("A package must be selected first")


class DocumentsRequired(PreconditionFailed):
    code = "ERR_DOCUMENTS_REQUIRED"

    def __init__(self) -> None:
        super().__init__("Documents not submitted")
