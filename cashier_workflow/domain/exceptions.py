"""Domain-specific exceptions"""

from enum import Enum


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class NotFoundError(DomainException):
    """Requested payment method or transaction does not exist"""

    pass


class CatalogError(DomainException):
    """Method catalog or limits could not be fetched"""

    pass


class LimitsUnavailableError(CatalogError):
    """Account limits service failed or returned invalid data"""

    pass


class InvalidTransitionError(DomainException):
    """Workflow event is not allowed in the current step"""

    pass


class ValidationError(DomainException):
    """Client-detected, user-correctable amount/field/limit violation"""

    def __init__(self, reason, message: str, field: str | None = None):
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.field = field


class SubmissionErrorKind(str, Enum):
    VALIDATION_REJECTED = "validation_rejected"
    NETWORK_ERROR = "network_error"
    DUPLICATE_REFERENCE = "duplicate_reference"
    UNAUTHORIZED = "unauthorized"


class SubmissionError(DomainException):
    """Transaction submission failed on the network or was rejected by the server"""

    def __init__(self, kind: SubmissionErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def retryable(self) -> bool:
        return self.kind == SubmissionErrorKind.NETWORK_ERROR
