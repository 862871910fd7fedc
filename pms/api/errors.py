"""Traducción de errores de dominio a respuestas HTTP."""

import logging
import uuid

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from pms.domain.errors import (
    AllocationRuleNotFoundError,
    AllotmentAlreadyExistsError,
    AllotmentNotFoundError,
    AmendmentAlreadyResolvedError,
    AmendmentConflictError,
    AmendmentNotFoundError,
    ConflictingVersionError,
    DomainError,
    InsufficientInventoryError,
    InvalidTransitionError,
    ReservationAlreadyExistsError,
    ReservationNotFoundError,
)

logger = logging.getLogger(__name__)

NOT_FOUND_ERRORS = (
    ReservationNotFoundError,
    AllotmentNotFoundError,
    AllocationRuleNotFoundError,
    AmendmentNotFoundError,
)
CONFLICT_ERRORS = (
    ReservationAlreadyExistsError,
    AllotmentAlreadyExistsError,
    ConflictingVersionError,
    InvalidTransitionError,
    InsufficientInventoryError,
    AmendmentAlreadyResolvedError,
    AmendmentConflictError,
)


def status_for(error: DomainError) -> int:
    if isinstance(error, NOT_FOUND_ERRORS):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, CONFLICT_ERRORS):
        return status.HTTP_409_CONFLICT
    return status.HTTP_422_UNPROCESSABLE_ENTITY


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        status_code = status_for(exc)
        logger.info(
            "Domain error",
            extra={"code": exc.code, "path": request.url.path, "method": request.method, "status_code": status_code},
        )
        return JSONResponse(status_code=status_code, content={"detail": exc.message, "code": exc.code})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Manejador global: registra la excepción con un error_id y responde
        un mensaje genérico sin exponer el stack trace.
        """
        error_id = str(uuid.uuid4())
        logger.error(
            "Unhandled exception occurred",
            exc_info=exc,
            extra={
                "error_id": error_id,
                "path": request.url.path,
                "method": request.method,
                "client_host": request.client.host if request.client else None,
            },
        )
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "error_id": error_id,
                "message": "An unexpected error occurred. Please contact support with the error_id if the issue persists.",
            },
        )
