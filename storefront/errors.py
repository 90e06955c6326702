"""Error taxonomy for the checkout and reconciliation flows."""

from enum import Enum


class ErrorKind(Enum):
    VALIDATION = "validation_error"
    PRICE = "price_error"
    NOT_FOUND = "not_found"
    CAPACITY = "capacity_error"
    AUTHENTICITY = "authenticity_error"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    PERSISTENCE = "persistence_error"
    PROVIDER = "provider_error"
    CONFIGURATION = "configuration_error"


class StorefrontError(Exception):
    """Base error carrying a kind, an HTTP status and a user-safe message."""

    kind: ErrorKind
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message}


class ValidationError(StorefrontError):
    kind = ErrorKind.VALIDATION
    status_code = 400


class PriceError(StorefrontError):
    """A referenced catalog item is missing or its price cannot be resolved."""

    kind = ErrorKind.PRICE
    status_code = 400


class NotFoundError(StorefrontError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class CapacityError(StorefrontError):
    kind = ErrorKind.CAPACITY
    status_code = 409


class AuthenticityError(StorefrontError):
    kind = ErrorKind.AUTHENTICITY
    status_code = 400


class UnauthenticatedError(StorefrontError):
    kind = ErrorKind.UNAUTHENTICATED
    status_code = 401


class ForbiddenError(StorefrontError):
    """The caller is authenticated but not on the admin allowlist."""

    kind = ErrorKind.FORBIDDEN
    status_code = 403


class PersistenceError(StorefrontError):
    kind = ErrorKind.PERSISTENCE
    status_code = 500


class UnknownColumnError(PersistenceError):
    """The store schema does not have this column yet (migration not applied).

    Callers may tolerate this for optional columns only.
    """

    def __init__(self, column: str, message: str | None = None) -> None:
        super().__init__(message or f"Column not present in schema: {column}")
        self.column = column


class ProviderError(StorefrontError):
    """The payment or email provider call failed."""

    kind = ErrorKind.PROVIDER
    status_code = 502


class ConfigurationError(StorefrontError):
    kind = ErrorKind.CONFIGURATION
    status_code = 500
