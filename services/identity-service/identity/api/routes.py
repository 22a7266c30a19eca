"""HTTP route definitions for the identity service."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, EmailStr, Field, StringConstraints, field_validator

from turnos_schemas import ClientAdminView, ClientRoster, LoginResponse, RegistrationReceipt

from ..config import get_settings
from ..domain.account import RoleType
from ..domain.contracts import ClientEdit, ClientRegistration, IdentityClaims
from ..domain.errors import InvalidToken, RequestThrottled
from ..domain.service import AuthenticationGateway, ClientLifecycleManager
from ..security.access import AccessDenied
from ..security.passwords import MAX_PASSWORD_BYTES, password_byte_length
from ..security.throttle import Throttle, ThrottleScope, build_throttle
from ..security.tokens import TokenValidator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=50)]
NonBlank = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class LoginRequest(BaseModel):
    """Credentials submitted to obtain a bearer token."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class RegisterRequest(BaseModel):
    """Public self-registration payload for a new client."""

    nombre: Name
    apellido: Name
    email: EmailStr
    password: str = Field(..., min_length=6)
    telefono: NonBlank

    @field_validator("password")
    @classmethod
    def password_hashable(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("password must not be blank")
        if password_byte_length(value) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


class EditClientRequest(BaseModel):
    """Fields an administrator may overwrite on a client."""

    nombre: Name
    apellido: Name
    dni: str | None = Field(default=None, max_length=20)
    email: EmailStr


settings = get_settings()

throttle: Throttle = build_throttle(settings)

bearer_scheme = HTTPBearer(auto_error=False)


def get_gateway(request: Request) -> AuthenticationGateway:
    """Resolve the `AuthenticationGateway` stored on the FastAPI application state."""
    gateway: AuthenticationGateway = request.app.state.authentication_gateway
    return gateway


def get_lifecycle(request: Request) -> ClientLifecycleManager:
    manager: ClientLifecycleManager = request.app.state.client_lifecycle
    return manager


def get_token_validator(request: Request) -> TokenValidator:
    validator: TokenValidator = request.app.state.token_validator
    return validator


def current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    validator: TokenValidator = Depends(get_token_validator),
) -> IdentityClaims:
    """Authenticate the bearer token; missing or invalid tokens are a 401."""
    if credentials is None:
        raise InvalidToken("missing bearer token")
    return validator.validate(credentials.credentials)


def require_role(role: RoleType):
    """Dependency factory rejecting principals whose role set lacks ``role``."""

    def dependency(identity: IdentityClaims = Depends(current_identity)) -> IdentityClaims:
        if role not in identity.roles:
            raise AccessDenied()
        return identity

    return dependency


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _enforce_throttle(scope: ThrottleScope, subject: str) -> None:
    admission = throttle.admit(scope, subject)
    if not admission.allowed:
        logger.warning("throttled %s attempt for %s", scope.value, subject)
        raise RequestThrottled(admission.retry_after)


@router.post("/auth/login", response_model=LoginResponse, tags=["auth"])
def login(
    payload: LoginRequest,
    request: Request,
    gateway: AuthenticationGateway = Depends(get_gateway),
) -> LoginResponse:
    """Authenticate a user and return a signed JWT with display details."""
    subject = f"{_client_key(request)}:{payload.email.lower()}"
    _enforce_throttle(ThrottleScope.LOGIN, subject)
    result = gateway.authenticate(payload.email, payload.password)
    throttle.reset(ThrottleScope.LOGIN, subject)
    return LoginResponse(
        token=result.token,
        email=result.email,
        role=result.role,
        id=result.display_id,
        name=result.display_name,
    )


@router.post("/auth/register", response_model=RegistrationReceipt, tags=["auth"])
def register(
    payload: RegisterRequest,
    request: Request,
    lifecycle: ClientLifecycleManager = Depends(get_lifecycle),
) -> RegistrationReceipt:
    """Register a new client; no authentication is required."""
    _enforce_throttle(ThrottleScope.REGISTER, _client_key(request))
    registered = lifecycle.register(
        ClientRegistration(
            first_name=payload.nombre,
            last_name=payload.apellido,
            email=payload.email,
            password=payload.password,
            phone=payload.telefono,
        )
    )
    return RegistrationReceipt(
        mensaje="Cliente registrado exitosamente",
        email=registered.email,
        timestamp=registered.registered_at,
    )


admin_only = Depends(require_role(RoleType.ADMIN))


@router.get("/admin/clients", response_model=ClientRoster, tags=["admin"], dependencies=[admin_only])
def list_clients(lifecycle: ClientLifecycleManager = Depends(get_lifecycle)) -> ClientRoster:
    """List clients split into active and logically removed."""
    return lifecycle.list_clients()


@router.patch(
    "/admin/clients/{client_id}/deactivate",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["admin"],
    dependencies=[admin_only],
)
def deactivate_client(
    client_id: int,
    lifecycle: ClientLifecycleManager = Depends(get_lifecycle),
) -> Response:
    lifecycle.deactivate(client_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch(
    "/admin/clients/{client_id}/activate",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["admin"],
    dependencies=[admin_only],
)
def activate_client(
    client_id: int,
    lifecycle: ClientLifecycleManager = Depends(get_lifecycle),
) -> Response:
    lifecycle.activate(client_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put(
    "/admin/clients/{client_id}",
    response_model=ClientAdminView,
    tags=["admin"],
    dependencies=[admin_only],
)
def edit_client(
    client_id: int,
    payload: EditClientRequest,
    lifecycle: ClientLifecycleManager = Depends(get_lifecycle),
) -> ClientAdminView:
    """Overwrite a client's profile fields and login email."""
    return lifecycle.edit(
        client_id,
        ClientEdit(
            first_name=payload.nombre,
            last_name=payload.apellido,
            document_id=payload.dni,
            email=payload.email,
        ),
    )
