"""Tests for error classification and HTTP status mapping."""

import json

import pytest

from shared_logging.errors import (
    ErrorKind,
    NotFoundError,
    SystemFailureError,
    ValidationError,
    classify,
    http_status_for,
    is_not_found_error,
    is_validation_error,
)


class LegacyNotFound(Exception):
    """Error from a package that predates kind tags, declaring only a name."""

    def __init__(self, message):
        super().__init__(message)
        self.name = "NotFoundError"


class ForeignValidationError(Exception):
    """Unrelated class from another package carrying the tag as plain data."""
    kind = "Validation"


class TestClassify:

    @pytest.mark.parametrize("err, expected", [
        (NotFoundError("missing"), ErrorKind.NOT_FOUND),
        (ValidationError("bad input"), ErrorKind.VALIDATION),
        (SystemFailureError("down"), ErrorKind.SYSTEM),
        (RuntimeError("boom"), ErrorKind.SYSTEM),
        (LegacyNotFound("gone"), ErrorKind.NOT_FOUND),
        ({"kind": "Validation", "message": "bad"}, ErrorKind.VALIDATION),
        ({"name": "NotFoundError", "message": "gone"}, ErrorKind.NOT_FOUND),
        ({"message": "who knows"}, ErrorKind.SYSTEM),
    ])
    def test_classifies_every_error_into_exactly_one_kind(self, err, expected):
        assert classify(err) is expected
        matches = [is_not_found_error(err), is_validation_error(err), classify(err) is ErrorKind.SYSTEM]
        assert matches.count(True) == 1

    def test_tag_survives_serialization(self):
        # Arrange
        payload = json.loads(json.dumps(NotFoundError("no booking").to_dict()))

        # Act / Assert
        assert classify(payload) is ErrorKind.NOT_FOUND

    def test_tag_checked_by_value_not_class_identity(self):
        err = ForeignValidationError("redefined elsewhere")
        assert classify(err) is ErrorKind.VALIDATION

    def test_unknown_tag_falls_back_to_name(self):
        err = RuntimeError("odd")
        err.kind = "Teapot"
        err.name = "ValidationError"
        assert classify(err) is ErrorKind.VALIDATION

    def test_http_status_mapping(self):
        assert http_status_for(NotFoundError("x")) == 404
        assert http_status_for(ValidationError("x")) == 400
        assert http_status_for(KeyError("x")) == 500
