"""FastAPI application wiring for the identity service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.handlers import install_error_handlers
from .api.routes import router as api_router
from .config import get_settings
from .domain.service import AuthenticationGateway, ClientLifecycleManager
from .repository import AccountRepository
from .security.access import AccessDecisionReporter
from .security.passwords import BcryptPasswordHasher
from .security.tokens import TokenIssuer, TokenValidator

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services) for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    store = AccountRepository(pool)
    hasher = BcryptPasswordHasher(rounds=settings.bcrypt_rounds)
    app.state.pool = pool
    app.state.authentication_gateway = AuthenticationGateway(store, hasher, TokenIssuer(settings))
    app.state.client_lifecycle = ClientLifecycleManager(store, hasher)
    app.state.token_validator = TokenValidator(settings)
    logger.info("%s %s ready", settings.app_name, settings.version)
    try:
        yield
    finally:
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)

install_error_handlers(app, AccessDecisionReporter())


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", tags=["health"])
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(api_router)
