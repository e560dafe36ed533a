"""Unit tests for the error taxonomy."""

from http import HTTPStatus

from propledger.errors import (
    ActiveLeaseExistsError,
    AppError,
    ConsumptionInconsistencyError,
    DuplicateReadingError,
    InvalidStateError,
    NotFoundError,
    OverpaymentError,
    RegressiveReadingError,
    ValidationFailureError,
    error_response,
)


class TestErrors:
    """Test error codes and HTTP statuses."""

    def test_not_found_default_message(self):
        """Test entity and id end up in the message."""
        error = NotFoundError("Bill", 12)
        assert error.message == "Bill not found for ID: 12"
        assert error.code == "not_found"
        assert error.http_status == HTTPStatus.NOT_FOUND
        assert error.entity == "Bill"
        assert error.entity_id == 12

    def test_not_found_custom_message(self):
        """Test an explicit message wins."""
        assert str(NotFoundError("Bill", 1, "Bill not found")) == "Bill not found"

    def test_invariant_violations_are_invalid_state(self):
        """Test every invariant error is an InvalidStateError answering 400."""
        errors = [
            OverpaymentError("too much"),
            DuplicateReadingError("dup"),
            RegressiveReadingError("back"),
            ConsumptionInconsistencyError("negative"),
            ActiveLeaseExistsError(5),
        ]
        for error in errors:
            assert isinstance(error, InvalidStateError)
            assert isinstance(error, AppError)
            assert error.http_status == HTTPStatus.BAD_REQUEST

        assert [e.code for e in errors] == [
            "overpayment",
            "duplicate_reading",
            "regressive_reading",
            "consumption_inconsistency",
            "active_lease_exists",
        ]

    def test_active_lease_exists_names_unit(self):
        """Test the unit id is carried."""
        error = ActiveLeaseExistsError(5)
        assert error.unit_id == 5
        assert "Unit 5" in error.message

    def test_validation_failure(self):
        """Test validation failures are not invariant violations."""
        error = ValidationFailureError("bad input")
        assert not isinstance(error, InvalidStateError)
        assert error.code == "validation_failed"

    def test_error_response(self):
        """Test the response envelope."""
        assert error_response(OverpaymentError("too much")) == {
            "error": {"code": "overpayment", "message": "too much"}
        }
