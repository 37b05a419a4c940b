"""Mapping of domain errors to HTTP responses.

Every :class:`NegotiationError` is rendered as ``{"error": code, "detail":
message}``.  The status comes from :data:`ERROR_STATUS_CODES`, looked up
along the exception's MRO so a subclass inherits its parent's status unless
it is listed itself.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from negotiation_engine.domain.errors import (
    DuplicateActiveNegotiationError,
    InvalidActionError,
    InvalidOfferError,
    InvalidStateError,
    InvalidTransitionError,
    NegotiationClosedError,
    NegotiationError,
    NoOpenOfferError,
    NotFoundError,
    NotParticipantError,
    OwnOfferResponseError,
    PropertyServiceError,
    PropertyUnavailableError,
    SelfDealingError,
    WrongTurnError,
)
from negotiation_engine.observability.metrics import DOMAIN_ERRORS

logger = structlog.get_logger()

ERROR_STATUS_CODES: dict[type[NegotiationError], int] = {
    NotFoundError: 404,
    SelfDealingError: 403,
    NotParticipantError: 403,
    OwnOfferResponseError: 403,
    DuplicateActiveNegotiationError: 409,
    NoOpenOfferError: 409,
    WrongTurnError: 400,
    NegotiationClosedError: 400,
    InvalidTransitionError: 400,
    InvalidActionError: 400,
    InvalidOfferError: 400,
    InvalidStateError: 400,
    PropertyUnavailableError: 400,
    PropertyServiceError: 502,
}


def status_code_for(exc: NegotiationError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 400


def register_error_handlers(app: FastAPI) -> None:
    """Install exception handlers for domain and request validation errors."""

    @app.exception_handler(NegotiationError)
    async def handle_negotiation_error(request: Request, exc: NegotiationError) -> JSONResponse:
        status_code = status_code_for(exc)
        DOMAIN_ERRORS.labels(code=exc.code).inc()
        log = logger.error if status_code >= 500 else logger.warning
        log(
            "request_rejected",
            error=exc.code,
            detail=str(exc),
            status_code=status_code,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=status_code,
            content={"error": exc.code, "detail": str(exc)},
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")} for err in exc.errors()
        ]
        logger.warning("request_invalid", path=request.url.path, errors=errors)
        return JSONResponse(
            status_code=400,
            content={"error": "INVALID_REQUEST", "detail": errors},
        )
