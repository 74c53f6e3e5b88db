"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing
    # str(exception). Don't raise this directly - always use a specific subclass so callers
    # (and the API exception handlers) can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    # entity_type and entity_id are kept separately so the operator sees WHICH id is missing
    # without digging through logs. A stale audit preview is the usual cause.
    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationError(DomainException):
    """Input validation failed.

    Raised for malformed scope keys, missing merge arguments, or an album ID
    that does not have the expected shape.

    HTTP Status: 422

    Example:
        raise ValidationError("Invalid manual album ID: spotify-123", field="manual_id")
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class BusinessRuleViolation(DomainException):
    """A business rule was violated.

    HTTP Status: 400

    Example:
        raise BusinessRuleViolation("Album exists in albums table - not orphaned")
    """

    pass


class TransientConflictError(DomainException):
    """The datastore aborted a transaction because of a concurrent writer.

    Hey future me - this wraps serialization failures and lock timeouts. The
    transaction is already rolled back when this is raised, so the caller may
    simply retry. We never retry internally.

    HTTP Status: 409
    """

    retryable = True

    def __init__(self, message: str, operation: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation


class ConfigurationError(DomainException):
    """Application misconfiguration.

    HTTP Status: 503

    Example:
        raise ConfigurationError("Datastore does not support transactions")
    """

    pass


class CacheInvalidationWarning(UserWarning):
    """Category for failed response-cache invalidations.

    Only ever logged - an invalidation failure must never fail the operation
    that triggered it.
    """


EntityNotFoundError = EntityNotFoundException


__all__ = [
    "BusinessRuleViolation",
    "CacheInvalidationWarning",
    "ConfigurationError",
    "DomainException",
    "EntityNotFoundError",
    "EntityNotFoundException",
    "TransientConflictError",
    "ValidationError",
]
