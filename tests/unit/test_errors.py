"""
================================================================================
Calaveras Inventory API - Error Taxonomy Unit Tests
================================================================================
Developed by Waqqas Hanafi
Calaveras County Health and Human Services Agency

Description:
    Unit tests for the exception classes surfaced through the HTTP layer.

Test Coverage:
    - Status codes per error class
    - Messages of the specialised errors
    - MultiError aggregation text
================================================================================
"""
import pytest

from inventory.errors import (
    BadRequestError,
    HostNotFoundError,
    InternalError,
    InvalidAckError,
    InvalidProfileIdError,
    MultiError,
    NotFoundError,
    ReadOnlyError,
    ValidationError,
)


class TestStatusCodes:
    @pytest.mark.parametrize("error, status", [
        (ValidationError("page", "x"), 422),
        (InvalidAckError(), 422),
        (BadRequestError("bad"), 400),
        (InvalidProfileIdError("aaa"), 400),
        (HostNotFoundError("db01"), 404),
        (ReadOnlyError(), 403),
        (InternalError("DB ERROR"), 500),
        (MultiError(), 500),
    ])
    def test_status(self, error, status):
        assert error.status_code == status


class TestMessages:
    def test_validation_error_names_field(self):
        error = ValidationError("older-than", "not-a-date")
        assert "older-than" in error.detail
        assert "not-a-date" in error.detail
        assert error.reason == "Unprocessable Entity"

    def test_invalid_profile_id(self):
        assert str(InvalidProfileIdError("aaa")) == "invalid profile id aaa"

    def test_internal_error_with_cause(self):
        error = InternalError("READ_TEMPLATE", FileNotFoundError("template.xlsm"))
        assert error.detail == "READ_TEMPLATE: template.xlsm"

    def test_read_only(self):
        assert "read-only" in ReadOnlyError().detail

    def test_host_not_found_is_not_found(self):
        assert isinstance(HostNotFoundError("db01"), NotFoundError)


class TestMultiError:
    def test_empty(self):
        errors = MultiError()
        assert not errors
        assert len(errors) == 0

    def test_single_error_text(self):
        errors = MultiError()
        errors.append(InvalidProfileIdError("aaa"))
        assert errors
        assert errors.detail == "1 error occurred: 'invalid profile id aaa'"
        assert str(errors) == errors.detail

    def test_several_errors_text(self):
        errors = MultiError([InvalidProfileIdError("bbb"), InvalidProfileIdError("ccc")])
        assert errors.detail == "2 errors occurred: 'invalid profile id bbb', 'invalid profile id ccc'"
