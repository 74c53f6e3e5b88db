"""Custom exception handlers for FastAPI application.

Converts domain exceptions into HTTP responses so they never leak as 500s:

- ValidationError -> 422 (includes the offending field)
- EntityNotFoundError -> 404 (includes which ID is missing)
- BusinessRuleViolation -> 400
- TransientConflictError -> 409 with "retryable": true
- ConfigurationError -> 503
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from recordkeeper.domain.exceptions import (
    BusinessRuleViolation,
    ConfigurationError,
    EntityNotFoundException,
    TransientConflictError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Register handlers for domain exceptions.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(ValidationError)
    async def validation_exception_handler(
        request: Request, exc: ValidationError
    ) -> JSONResponse:
        """Handle domain validation errors with 422 Unprocessable Entity."""
        logger.warning(
            "Validation error at %s: %s",
            request.url.path,
            exc.message,
            extra={"path": request.url.path, "error": exc.message, "field": exc.field},
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.message, "field": exc.field},
        )

    @app.exception_handler(EntityNotFoundException)
    async def entity_not_found_exception_handler(
        request: Request, exc: EntityNotFoundException
    ) -> JSONResponse:
        """Handle entity not found exceptions with 404 Not Found."""
        logger.info(
            "Entity not found at %s: %s %s",
            request.url.path,
            exc.entity_type,
            exc.entity_id,
            extra={
                "path": request.url.path,
                "entity_type": exc.entity_type,
                "entity_id": exc.entity_id,
            },
        )
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={
                "detail": exc.message,
                "entity_type": exc.entity_type,
                "entity_id": str(exc.entity_id),
            },
        )

    @app.exception_handler(BusinessRuleViolation)
    async def business_rule_violation_handler(
        request: Request, exc: BusinessRuleViolation
    ) -> JSONResponse:
        """Handle business rule violations with 400 Bad Request."""
        logger.warning(
            "Business rule violated at %s: %s",
            request.url.path,
            exc.message,
            extra={"path": request.url.path, "error": exc.message},
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": exc.message},
        )

    # Hey future me - 409 + retryable tells the admin UI it can just resend the same request.
    # The transaction was already rolled back, nothing is half-applied.
    @app.exception_handler(TransientConflictError)
    async def transient_conflict_handler(
        request: Request, exc: TransientConflictError
    ) -> JSONResponse:
        """Handle concurrent-writer aborts with 409 Conflict."""
        logger.warning(
            "Transient conflict at %s: %s",
            request.url.path,
            exc.message,
            extra={"path": request.url.path, "operation": exc.operation},
        )
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": exc.message, "retryable": exc.retryable},
        )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        request: Request, exc: ConfigurationError
    ) -> JSONResponse:
        """Handle misconfiguration with 503 Service Unavailable."""
        logger.error(
            "Configuration error at %s: %s",
            request.url.path,
            exc.message,
            extra={"path": request.url.path, "error": exc.message},
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": exc.message},
        )
