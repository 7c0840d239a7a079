"""Domain error codes for the challans module."""

from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    VALIDATION_FAILED = "VALIDATION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"
    UNSUPPORTED_METHOD = "UNSUPPORTED_METHOD"
    GATEWAY_FAILED = "GATEWAY_FAILED"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"


class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode = ErrorCode.VALIDATION_FAILED

    def __init__(self, message: str, code: ErrorCode | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class ValidationError(DomainError):
    """Raised when attributes are malformed or missing."""

    code = ErrorCode.VALIDATION_FAILED

    def __init__(self, message: str, fields: dict[str, list[str]] | None = None) -> None:
        super().__init__(message)
        self.fields = fields or {}


class NotFoundError(DomainError):
    """Raised when a user, challan or payment reference is unknown."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, entity: str, reference: str) -> None:
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.reference = reference


class AuthorizationError(DomainError):
    """Raised on a missing capability or an ownership mismatch."""

    code = ErrorCode.NOT_AUTHORIZED


class IllegalTransitionError(DomainError):
    """Raised when a challan or payment status change is not allowed."""

    code = ErrorCode.ILLEGAL_TRANSITION

    def __init__(self, message: str, current: str | None = None, target: str | None = None) -> None:
        super().__init__(message)
        self.current = current
        self.target = target


class UnsupportedMethodError(DomainError):
    """Raised for an unknown payment method or gateway."""

    code = ErrorCode.UNSUPPORTED_METHOD

    def __init__(self, method: str, kind: str = "payment method") -> None:
        super().__init__(f"Unsupported {kind}: {method}")
        self.method = method


class GatewayError(DomainError):
    """Raised when a payment gateway fails to process or refund."""

    code = ErrorCode.GATEWAY_FAILED

    def __init__(self, message: str, gateway: str | None = None) -> None:
        super().__init__(message)
        self.gateway = gateway


class PersistenceError(DomainError):
    """Raised when the store fails. Opaque and never retried by the core."""

    code = ErrorCode.PERSISTENCE_FAILED
