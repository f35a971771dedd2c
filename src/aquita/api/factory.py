"""FastAPI application factory with role-based route mounting."""

import os
from contextlib import asynccontextmanager
from typing import Literal

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from aquita.observability.correlation import (
    CORRELATION_ID_HEADER,
    correlation_scope,
    resolve_correlation_id,
)
from aquita.observability.logging import get_logger
from aquita.observability.redaction import safe_log_context
from aquita.resilience.circuit_breaker import CircuitOpenError

from .routers import public
from .routes import click_to_chat, conversations, operations, webhooks_whatsapp_meta
from .services import Services, build_services

AppRole = Literal["public", "ops"]

logger = get_logger(__name__)


def create_app(role: AppRole | None = None, services: Services | None = None) -> FastAPI:
    """Create FastAPI app with routes based on APP_ROLE.

    Args:
        role: Explicit role override. If None, reads from APP_ROLE env var.
              Defaults to "public" if env var is not set.
        services: Prebuilt service graph (tests). Built from the environment
                  when omitted; closed when the app shuts down.

    Returns:
        Configured FastAPI application.
    """
    if role is None:
        role = os.environ.get("APP_ROLE", "public")  # type: ignore[assignment]

    app_services = services or build_services()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app_services.close()

    app = FastAPI(
        title="AquiTaDo WhatsApp Core",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.services = app_services

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = resolve_correlation_id(request.headers.get(CORRELATION_ID_HEADER))
        with correlation_scope(cid):
            response = await call_next(request)
        response.headers[CORRELATION_ID_HEADER] = cid
        return response

    @app.exception_handler(CircuitOpenError)
    async def circuit_open_handler(request: Request, exc: CircuitOpenError) -> JSONResponse:
        logger.warning(
            "request rejected by open circuit",
            extra={"extra_fields": safe_log_context(key=exc.key, path=request.url.path)},
        )
        return JSONResponse(status_code=503, content={"error": "circuit_open", "key": exc.key})

    # Public routes (always)
    app.include_router(public.router)
    app.include_router(webhooks_whatsapp_meta.router)
    app.include_router(click_to_chat.router)

    # Operational routes only for ops role
    if role == "ops":
        app.include_router(operations.router)
        app.include_router(conversations.router)

    return app
