"""Structured reporting of authorization denials."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from fastapi import status

DEFAULT_DENIAL_MESSAGE = "No tienes permisos para acceder a este recurso"


class AccessDenied(Exception):
    """Raised when an authenticated principal lacks the capability for a request."""

    def __init__(self, message: str = DEFAULT_DENIAL_MESSAGE) -> None:
        self.message = message
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class AccessDenial:
    timestamp: datetime
    status: int
    error: str
    message: str
    path: str

    def to_body(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "estado": self.status,
            "error": self.error,
            "mensaje": self.message,
            "path": self.path,
        }


class AccessDecisionReporter:
    """Turns a denial signal into a 403 record; session state is never touched."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def report(self, path: str, message: str = DEFAULT_DENIAL_MESSAGE) -> AccessDenial:
        return AccessDenial(
            timestamp=self._clock(),
            status=status.HTTP_403_FORBIDDEN,
            error="Acceso Denegado",
            message=message,
            path=path,
        )
