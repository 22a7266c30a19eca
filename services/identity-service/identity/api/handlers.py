"""Map domain faults and denials onto HTTP responses."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..domain.errors import ErrorKind, IdentityError, RequestThrottled
from ..security.access import AccessDecisionReporter, AccessDenied

logger = logging.getLogger(__name__)

_STATUS_BY_KIND: dict[ErrorKind, tuple[int, str]] = {
    ErrorKind.INVALID_CREDENTIALS: (status.HTTP_401_UNAUTHORIZED, "Credenciales invalidas"),
    ErrorKind.INVALID_TOKEN: (status.HTTP_401_UNAUTHORIZED, "No autenticado"),
    ErrorKind.ACCOUNT_DISABLED: (status.HTTP_403_FORBIDDEN, "Usuario deshabilitado"),
    ErrorKind.ACCOUNT_NOT_FOUND: (status.HTTP_404_NOT_FOUND, "Recurso no encontrado"),
    ErrorKind.PERSON_NOT_FOUND: (status.HTTP_404_NOT_FOUND, "Recurso no encontrado"),
    ErrorKind.LINKED_ACCOUNT_NOT_FOUND: (status.HTTP_404_NOT_FOUND, "Recurso no encontrado"),
    ErrorKind.DUPLICATE_EMAIL: (status.HTTP_409_CONFLICT, "Email duplicado"),
    ErrorKind.BUSINESS_RULE_VIOLATION: (status.HTTP_400_BAD_REQUEST, "Error de negocio"),
    ErrorKind.UNACCEPTABLE_PASSWORD: (status.HTTP_400_BAD_REQUEST, "Solicitud invalida"),
    ErrorKind.RATE_LIMITED: (status.HTTP_429_TOO_MANY_REQUESTS, "Demasiadas solicitudes"),
    ErrorKind.ROLE_NOT_CONFIGURED: (status.HTTP_500_INTERNAL_SERVER_ERROR, "Error interno"),
}


def error_body(status_code: int, error: str, message: str, path: str) -> dict[str, Any]:
    """Body shared by every structured error response."""
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "estado": status_code,
        "error": error,
        "mensaje": message,
        "path": path,
    }


def install_error_handlers(app: FastAPI, reporter: AccessDecisionReporter | None = None) -> None:
    """Register the handlers that render domain errors, denials and bad payloads."""
    access_reporter = reporter or AccessDecisionReporter()

    @app.exception_handler(IdentityError)
    async def handle_identity_error(request: Request, exc: IdentityError) -> JSONResponse:
        status_code, error = _STATUS_BY_KIND[exc.kind]
        if status_code >= 500:
            logger.error("configuration fault on %s: %s", request.url.path, exc.message)
        headers: dict[str, str] | None = None
        if exc.kind is ErrorKind.INVALID_TOKEN:
            headers = {"WWW-Authenticate": "Bearer"}
        elif isinstance(exc, RequestThrottled):
            headers = {"Retry-After": str(exc.retry_after)}
        return JSONResponse(
            status_code=status_code,
            content=error_body(status_code, error, exc.message, request.url.path),
            headers=headers,
        )

    @app.exception_handler(AccessDenied)
    async def handle_access_denied(request: Request, exc: AccessDenied) -> JSONResponse:
        denial = access_reporter.report(request.url.path, exc.message)
        logger.warning("access denied on %s", denial.path)
        return JSONResponse(status_code=denial.status, content=denial.to_body())

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = [
            {"campo": ".".join(str(part) for part in err["loc"][1:]), "mensaje": err["msg"]}
            for err in exc.errors()
        ]
        message = problems[0]["mensaje"] if problems else "Solicitud invalida"
        body = error_body(status.HTTP_400_BAD_REQUEST, "Solicitud invalida", message, request.url.path)
        body["errores"] = problems
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body)
