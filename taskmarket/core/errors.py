"""Error taxonomy and classification into user-facing responses."""

from enum import Enum, StrEnum

from pydantic import BaseModel, ValidationError as PydanticValidationError


class ValidationReason(StrEnum):
    """Reasons a request is refused before touching any state."""

    DUPLICATE_APPLICATION = "duplicate_application"
    QUOTA_EXCEEDED = "quota_exceeded"
    RATING_REQUIRED = "rating_required"
    RATING_OUT_OF_RANGE = "rating_out_of_range"
    ALREADY_RATED = "already_rated"
    SELF_APPLICATION = "self_application"
    SELF_CHAT = "self_chat"
    EMPTY_MESSAGE = "empty_message"


class ValidationError(ValueError):
    """Request refused by a business rule. Surfaced to the user, never retried."""

    def __init__(self, reason: ValidationReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class StoreError(RuntimeError):
    """Persistence backend operation failed."""


class NotFoundError(KeyError):
    """Referenced record does not exist."""

    def __str__(self) -> str:
        # KeyError quotes its argument by default
        return str(self.args[0]) if self.args else ""


class PermissionDeniedError(PermissionError):
    """Acting user is not allowed to perform the operation."""


class InvalidStateTransitionError(ValueError):
    """Operation is not valid in the task's or application's current state."""


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    # Validation errors
    ERR_DUPLICATE_APPLICATION = "ERR_DUPLICATE_APPLICATION"
    ERR_QUOTA_EXCEEDED = "ERR_QUOTA_EXCEEDED"
    ERR_RATING_REQUIRED = "ERR_RATING_REQUIRED"
    ERR_ALREADY_RATED = "ERR_ALREADY_RATED"
    ERR_VALIDATION = "ERR_VALIDATION"

    # State and permission errors
    ERR_INVALID_STATE_TRANSITION = "ERR_INVALID_STATE_TRANSITION"
    ERR_PERMISSION_DENIED = "ERR_PERMISSION_DENIED"
    ERR_NOT_FOUND = "ERR_NOT_FOUND"

    # Backend errors
    ERR_STORE = "ERR_STORE"

    # Generic errors
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity


_VALIDATION_RESPONSES: dict[ValidationReason, tuple[str, str, str]] = {
    ValidationReason.DUPLICATE_APPLICATION: (
        ErrorCode.ERR_DUPLICATE_APPLICATION,
        "You have already applied for this task.",
        "Wait for the task creator to review your application.",
    ),
    ValidationReason.QUOTA_EXCEEDED: (
        ErrorCode.ERR_QUOTA_EXCEEDED,
        "You have reached the limit of active tasks.",
        "Complete or cancel one of your active tasks first.",
    ),
    ValidationReason.RATING_REQUIRED: (
        ErrorCode.ERR_RATING_REQUIRED,
        "Please select a rating before submitting.",
        "Choose between 1 and 5 stars.",
    ),
    ValidationReason.RATING_OUT_OF_RANGE: (
        ErrorCode.ERR_RATING_REQUIRED,
        "Ratings must be between 1 and 5 stars.",
        "Choose between 1 and 5 stars.",
    ),
    ValidationReason.ALREADY_RATED: (
        ErrorCode.ERR_ALREADY_RATED,
        "You have already rated this task.",
        "No further action is needed.",
    ),
}


def classify_error_with_response(exception: Exception) -> ErrorResponse:  # noqa: PLR0911
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised while running an operation

    Returns:
        ErrorResponse with code, message, suggestion, and severity
    """
    if isinstance(exception, ValidationError):
        known = _VALIDATION_RESPONSES.get(exception.reason)
        if known:
            code, message, suggestion = known
            return ErrorResponse(code=code, message=message, suggestion=suggestion, severity=ErrorSeverity.LOW)
        return ErrorResponse(
            code=ErrorCode.ERR_VALIDATION,
            message=str(exception),
            suggestion="Check your input and try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, PydanticValidationError):
        first_error = exception.errors()[0] if exception.errors() else {}
        return ErrorResponse(
            code=ErrorCode.ERR_VALIDATION,
            message=str(first_error.get("msg", "Invalid input")),
            suggestion="Check your input and try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, InvalidStateTransitionError):
        return ErrorResponse(
            code=ErrorCode.ERR_INVALID_STATE_TRANSITION,
            message=str(exception),
            suggestion="Refresh the task to see its current state.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, PermissionDeniedError):
        return ErrorResponse(
            code=ErrorCode.ERR_PERMISSION_DENIED,
            message="You don't have permission for this action.",
            suggestion="Only the parties of a task can act on it.",
            severity=ErrorSeverity.MEDIUM,
        )

    if isinstance(exception, NotFoundError):
        return ErrorResponse(
            code=ErrorCode.ERR_NOT_FOUND,
            message="The requested item could not be found.",
            suggestion="It may have been removed. Refresh and try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, StoreError):
        return ErrorResponse(
            code=ErrorCode.ERR_STORE,
            message="The operation failed. Please try again.",
            suggestion="If the problem persists, try again later.",
            severity=ErrorSeverity.HIGH,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred.",
        suggestion="Please try again later. If the problem persists, contact support.",
        severity=ErrorSeverity.MEDIUM,
    )
