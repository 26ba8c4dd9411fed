"""Error taxonomy for Pantry Tracker."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class PantryError(Exception):
    """Base class for all Pantry Tracker errors."""

    error_code = "PANTRY_ERROR"


class ValidationError(PantryError):
    """Raised when input violates one or more field constraints."""

    error_code = "VALIDATION_ERROR"

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("Please fix the following: " + "; ".join(self.errors))


class NotFoundError(PantryError):
    """Raised when a referenced record does not exist."""

    error_code = "NOT_FOUND"

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} with ID '{record_id}' not found")


class InvalidStateError(PantryError):
    """Raised when an operation is not allowed in the record's current state."""

    error_code = "INVALID_STATE"


class StoreUnavailableError(PantryError):
    """Raised when the underlying record store fails."""

    error_code = "STORE_UNAVAILABLE"


class ExternalServiceError(PantryError):
    """Raised when the text-completion service fails."""

    error_code = "EXTERNAL_SERVICE_ERROR"


class RateLimitedError(ExternalServiceError):
    """Raised when the text-completion service rejects a call for rate limiting."""

    error_code = "RATE_LIMITED"


@contextmanager
def secondary_effect(description: str) -> Iterator[None]:
    """Run a best-effort write, logging and discarding any failure.

    Used around shopping-list sync, history logging and similar writes that
    follow a committed primary mutation and must never undo it.
    """
    try:
        yield
    except Exception:
        logger.warning("Secondary effect failed: %s", description, exc_info=True)
