"""
KYC error taxonomy.

Every failure the verification core reports is one of these. Route handlers
translate them to HTTP status codes (see HTTP_STATUS_CODES); the transition
engine retries only the ones marked retryable.
"""

from typing import Optional


class KycError(Exception):
    """Base class for all verification-core errors."""

    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidTransition(KycError):
    """The requested edge is not legal from the subject's current status."""

    def __init__(self, message: str, current_status: Optional[str] = None, action: Optional[str] = None):
        super().__init__(message)
        self.current_status = current_status
        self.action = action


class ValidationError(KycError):
    """A required field is missing or malformed (e.g. rejection without a reason)."""


class NotFound(KycError):
    """Subject account or verification record is absent where one is required."""


class WriteConflict(KycError):
    """The unit of work was aborted by a concurrent mutation. Safe to retry."""

    retryable = True


class StoreUnavailable(KycError):
    """The backing store cannot be reached."""


HTTP_STATUS_CODES = {
    InvalidTransition: 409,
    ValidationError: 400,
    NotFound: 404,
    WriteConflict: 409,
    StoreUnavailable: 503,
}


def http_status_for(error: KycError) -> int:
    for error_type, status_code in HTTP_STATUS_CODES.items():
        if isinstance(error, error_type):
            return status_code
    return 500
