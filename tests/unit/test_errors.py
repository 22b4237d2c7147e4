"""Unit tests for error classification utilities."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from taskmarket.core.errors import (
    ErrorCode,
    ErrorSeverity,
    InvalidStateTransitionError,
    NotFoundError,
    PermissionDeniedError,
    StoreError,
    ValidationError,
    ValidationReason,
    classify_error_with_response,
)
from taskmarket.domain.create_models import ProfileCreate


@pytest.mark.unit
class TestClassifyErrorWithResponse:
    """Tests for classify_error_with_response function."""

    @pytest.mark.parametrize(
        ("reason", "code"),
        [
            (ValidationReason.DUPLICATE_APPLICATION, ErrorCode.ERR_DUPLICATE_APPLICATION),
            (ValidationReason.QUOTA_EXCEEDED, ErrorCode.ERR_QUOTA_EXCEEDED),
            (ValidationReason.RATING_REQUIRED, ErrorCode.ERR_RATING_REQUIRED),
            (ValidationReason.RATING_OUT_OF_RANGE, ErrorCode.ERR_RATING_REQUIRED),
            (ValidationReason.ALREADY_RATED, ErrorCode.ERR_ALREADY_RATED),
        ],
    )
    def test_known_validation_reasons(self, reason, code):
        """Test known validation reasons map to their error codes."""
        response = classify_error_with_response(ValidationError(reason, "refused"))

        assert response.code == code
        assert response.severity == ErrorSeverity.LOW

    def test_other_validation_reason_keeps_message(self):
        """Test other validation reasons keep their message."""
        response = classify_error_with_response(
            ValidationError(ValidationReason.SELF_APPLICATION, "You cannot apply for your own task")
        )

        assert response.code == ErrorCode.ERR_VALIDATION
        assert response.message == "You cannot apply for your own task"

    def test_quota_message(self):
        """Test the quota message suggests cancelling a task."""
        response = classify_error_with_response(ValidationError(ValidationReason.QUOTA_EXCEEDED, "3 tasks"))

        assert "limit of active tasks" in response.message
        assert "cancel" in response.suggestion.lower()

    def test_pydantic_validation_error(self):
        """Test pydantic validation errors are classified as validation failures."""
        with pytest.raises(PydanticValidationError) as exc_info:
            ProfileCreate(username="")

        response = classify_error_with_response(exc_info.value)

        assert response.code == ErrorCode.ERR_VALIDATION
        assert "Username cannot be empty" in response.message

    def test_invalid_state_transition(self):
        """Test invalid state transitions keep their message."""
        error = InvalidStateTransitionError("Cannot verify: task 1 is already completed")
        response = classify_error_with_response(error)

        assert response.code == ErrorCode.ERR_INVALID_STATE_TRANSITION
        assert "already completed" in response.message

    def test_permission_denied(self):
        """Test permission denials hide user ids."""
        response = classify_error_with_response(PermissionDeniedError("User 3 is not a party to task 1"))

        assert response.code == ErrorCode.ERR_PERMISSION_DENIED
        assert response.severity == ErrorSeverity.MEDIUM
        assert "User 3" not in response.message

    def test_not_found(self):
        """Test not-found errors are classified."""
        response = classify_error_with_response(NotFoundError("Record not found in tasks: 9"))

        assert response.code == ErrorCode.ERR_NOT_FOUND

    def test_store_error(self):
        """Test store errors hide driver details."""
        response = classify_error_with_response(StoreError("database is locked"))

        assert response.code == ErrorCode.ERR_STORE
        assert response.severity == ErrorSeverity.HIGH
        assert "database is locked" not in response.message

    def test_unknown_error(self):
        """Test unknown errors get a generic message."""
        response = classify_error_with_response(RuntimeError("boom"))

        assert response.code == ErrorCode.ERR_UNKNOWN
        assert "unexpected" in response.message.lower()


@pytest.mark.unit
def test_not_found_str_is_unquoted():
    """Test NotFoundError renders without quotes."""
    assert str(NotFoundError("Record not found in tasks: 9")) == "Record not found in tasks: 9"


@pytest.mark.unit
def test_validation_error_carries_reason():
    """Test ValidationError carries its reason."""
    error = ValidationError(ValidationReason.EMPTY_MESSAGE, "Message cannot be empty")

    assert isinstance(error, ValueError)
    assert error.reason == ValidationReason.EMPTY_MESSAGE
    assert str(error) == "Message cannot be empty"
