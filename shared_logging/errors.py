"""
Error taxonomy shared by services that report through the logging module
"""

from enum import Enum
from typing import Any, Mapping


class ErrorKind(str, Enum):
    """Classification tag carried as data on an error value"""
    NOT_FOUND = "NotFound"
    VALIDATION = "Validation"
    SYSTEM = "System"


HTTP_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.SYSTEM: 500,
}

AUTHENTICATION_ERROR_STATUS = 401


class TaggedError(Exception):
    """Base class for errors that carry an explicit classification tag"""
    kind: ErrorKind = ErrorKind.SYSTEM

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message
        self.name = type(self).__name__

    def to_dict(self) -> dict:
        """Serializable form; the tag survives where the class does not"""
        return {"name": self.name, "kind": self.kind.value, "message": self.message}


class NotFoundError(TaggedError):
    kind = ErrorKind.NOT_FOUND


class ValidationError(TaggedError):
    kind = ErrorKind.VALIDATION


class SystemFailureError(TaggedError):
    kind = ErrorKind.SYSTEM


# Legacy errors only declare a name
_NAME_FALLBACK = {
    "NotFoundError": ErrorKind.NOT_FOUND,
    "ValidationError": ErrorKind.VALIDATION,
}


def _tag_of(err: Any) -> Any:
    if isinstance(err, Mapping):
        return err.get("kind")
    return getattr(err, "kind", None)


def _name_of(err: Any) -> Any:
    if isinstance(err, Mapping):
        return err.get("name")
    return getattr(err, "name", None) or type(err).__name__


def classify(err: Any) -> ErrorKind:
    """
    Classify an error value as NotFound, Validation or System.

    The explicit ``kind`` tag is compared by value so errors that lost their
    type identity (re-raised by another package, decoded from JSON) still
    classify correctly. Untagged errors fall back to their declared name.

    Args:
        err: Exception instance or a mapping produced by ``to_dict``

    Returns:
        The error's ErrorKind; System for anything unrecognised
    """
    tag = _tag_of(err)
    if tag is not None:
        try:
            return ErrorKind(getattr(tag, "value", tag))
        except ValueError:
            pass

    return _NAME_FALLBACK.get(_name_of(err), ErrorKind.SYSTEM)


def http_status_for(err: Any) -> int:
    """Map an error value to its HTTP status code"""
    return HTTP_STATUS[classify(err)]


def is_not_found_error(err: Any) -> bool:
    return classify(err) is ErrorKind.NOT_FOUND


def is_validation_error(err: Any) -> bool:
    return classify(err) is ErrorKind.VALIDATION
