"""Domain error taxonomy.

Every error carries a stable ``code`` and the HTTP status the API layer
renders it with. Validation and authorization errors are raised before any
transaction opens; the rest come out of a rolled-back transaction or a
failed object-store call.
"""

from datetime import datetime


class DomainError(Exception):
    """Base class for errors the caller is allowed to see."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def flags(self) -> dict[str, object]:
        """Extra result flags rendered next to the error."""
        return {}


class UnauthenticatedError(DomainError):
    """No caller identity."""

    code = "UNAUTHENTICATED"
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class ForbiddenError(DomainError):
    """Resource exists but belongs to another tenant."""

    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(DomainError):
    code = "NOT_FOUND"
    status_code = 404


class ValidationError(DomainError):
    """Malformed input, caught before any I/O."""

    code = "VALIDATION_ERROR"
    status_code = 422


class InvalidIdError(ValidationError):
    code = "INVALID_ID"


class DuplicateNameError(DomainError):
    code = "DUPLICATE_NAME"
    status_code = 409


class DuplicateEmailError(DomainError):
    code = "DUPLICATE_EMAIL"
    status_code = 409


class SlugConflictError(DomainError):
    code = "SLUG_CONFLICT"
    status_code = 409


class ConflictError(DomainError):
    """A transaction was rolled back and no specific invariant could be named."""

    code = "CONFLICT"
    status_code = 409


class CircularReferenceError(DomainError):
    code = "CIRCULAR_REFERENCE"
    status_code = 422

    def __init__(self, message: str = "Cannot move a folder into itself or one of its subfolders"):
        super().__init__(message)


class NestingDepthExceededError(DomainError):
    code = "NESTING_DEPTH_EXCEEDED"
    status_code = 422

    def __init__(self, max_depth: int):
        super().__init__(f"Maximum folder nesting depth of {max_depth} levels exceeded")
        self.max_depth = max_depth


class OwnerProtectedError(DomainError):
    """The owner permission of a link can never be removed or re-roled."""

    code = "OWNER_PROTECTED"
    status_code = 403

    def __init__(self, message: str = "The link owner's permission cannot be changed"):
        super().__init__(message)


class RateLimitedError(DomainError):
    code = "RATE_LIMITED"
    status_code = 429

    def __init__(self, reset_at: datetime, blocked: bool = False):
        super().__init__("Too many requests. Please try again later.")
        self.reset_at = reset_at
        self.blocked = blocked

    def flags(self) -> dict[str, object]:
        return {"blocked": self.blocked, "reset_at": self.reset_at.isoformat()}


class StorageFailureError(DomainError):
    """An object-store call failed."""

    code = "STORAGE_FAILURE"
    status_code = 502
