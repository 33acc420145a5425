"""Error taxonomy for the lending core."""
from enum import Enum
from typing import Any, Dict, Tuple
import logging

logger = logging.getLogger(__name__)


class ErrorKind(Enum):
    """Kinds of failure the core can report."""
    NOT_FOUND = "not_found"
    DOMAIN_VALIDATION = "domain_validation"
    ALREADY_LOANED = "already_loaned"
    INTERNAL = "internal"


class LibraryError(Exception):
    """Tagged error raised by the lending core.

    Callers match on ``kind`` rather than on the exception type.
    """

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def is_validation(self) -> bool:
        """AlreadyLoaned is a specialization of DomainValidation."""
        return self.kind in (ErrorKind.DOMAIN_VALIDATION, ErrorKind.ALREADY_LOANED)

    def __repr__(self):
        return f"LibraryError({self.kind.name}, {self.message!r})"


def not_found(message: str) -> LibraryError:
    return LibraryError(ErrorKind.NOT_FOUND, message)


def validation_error(message: str) -> LibraryError:
    return LibraryError(ErrorKind.DOMAIN_VALIDATION, message)


def already_loaned(message: str = "Book is already loaned out") -> LibraryError:
    return LibraryError(ErrorKind.ALREADY_LOANED, message)


def internal_error(message: str) -> LibraryError:
    return LibraryError(ErrorKind.INTERNAL, message)


def error_response(error: BaseException) -> Tuple[int, Dict[str, Any]]:
    """
    Map an error to a status code and response body.

    Args:
        error: Exception raised by the core or the service layer

    Returns:
        Tuple of (status_code, {"message": ...})
    """
    if isinstance(error, LibraryError):
        if error.kind is ErrorKind.NOT_FOUND:
            status = 404
        elif error.is_validation:
            status = 422
        else:
            status = 500
        message = error.message
    elif isinstance(error, Exception):
        status = 400
        message = str(error)
    else:
        status = 500
        message = "An unexpected error occurred"

    logger.error(f"[{status}] Error occurred: {message}")
    return status, {"message": message}
