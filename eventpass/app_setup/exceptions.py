"""
Gestionnaires d'exceptions.
- DomainError: JSON {"code", "detail", "errors"} avec un statut HTTP par code métier.
- HTTPException: corps JSON FastAPI standard ({"detail": ...}).
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from eventpass.errors import DomainError, ErrorCode

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    ErrorCode.INVALID_ATTENDEE_COUNT: 422,
    ErrorCode.INVALID_REGISTRATIONS: 422,
    ErrorCode.TICKET_TYPE_NOT_ALLOWED: 422,
    ErrorCode.REGISTRATION_LIMIT: 409,
    ErrorCode.PURCHASE_LOCKED: 409,
    ErrorCode.PAYMENT_IN_PROGRESS: 409,
    ErrorCode.REGISTRATION_NOT_FOUND: 404,
    ErrorCode.PURCHASE_NOT_FOUND: 404,
}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        status = STATUS_BY_CODE.get(exc.code, 400)
        logger.info("app.domain_error path=%s code=%s", request.url.path, exc.code.value)
        return JSONResponse(
            status_code=status,
            content={"code": exc.code.value, "detail": exc.message, "errors": exc.errors},
        )

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))
