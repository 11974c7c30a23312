from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response
from structlog.contextvars import bind_contextvars, clear_contextvars

from campaign_core.api.routes import register_routes
from campaign_core.api.schemas.common import failure
from campaign_core.core.config import Settings, get_settings
from campaign_core.core.logging import setup_logging
from campaign_core.domain.clock import Clock, SystemClock
from campaign_core.domain.errors import CampaignCoreError, ErrorKind
from campaign_core.infrastructure.db.session import Database
from campaign_core.libs.adapters import Collaborators
from campaign_core.libs.ai_client import OpenAIQuestionGenerator
from campaign_core.libs.notifications import ChannelRouter

logger = structlog.get_logger()

STATUS_BY_KIND = {
    ErrorKind.TENANT_MISSING: status.HTTP_403_FORBIDDEN,
    ErrorKind.TEMPLATE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.VALIDATION_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONFLICT_DETECTED: status.HTTP_409_CONFLICT,
    ErrorKind.ILLEGAL_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.HAS_RESPONSES: status.HTTP_409_CONFLICT,
    ErrorKind.HAS_STARTED_ASSIGNMENTS: status.HTTP_409_CONFLICT,
    ErrorKind.ASSIGNMENT_STARTED: status.HTTP_409_CONFLICT,
    ErrorKind.TEMPLATE_CONSTRAINT: status.HTTP_409_CONFLICT,
    ErrorKind.DEPENDENCY_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

HTTP_ERRORS = {
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: ErrorKind.NOT_FOUND.value,
}


def default_collaborators(settings: Settings, clock: Clock) -> Collaborators:
    generator = (
        OpenAIQuestionGenerator.from_settings(settings, clock) if settings.openai_api_key else None
    )
    return Collaborators(
        notifications=ChannelRouter.from_settings(settings),
        question_generator=generator,
    )


def create_app(
    settings: Settings | None = None,
    *,
    database: Database | None = None,
    clock: Clock | None = None,
    collaborators: Collaborators | None = None,
) -> FastAPI:
    """Application factory for the public API."""
    settings = settings or get_settings()
    setup_logging(settings.log_level)
    owns_database = database is None
    database = database or Database.from_settings(settings)
    clock = clock or SystemClock()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "service_startup",
            service=settings.app_name,
            environment=settings.environment,
            version=settings.version,
        )
        yield
        if owns_database:
            await database.dispose()

    app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.clock = clock
    app.state.policy = settings.campaign_policy()
    app.state.collaborators = collaborators or default_collaborators(settings, clock)

    cors_origins = ["http://localhost:3000", "http://localhost:5173"]
    if settings.environment in ["local", "development"]:
        cors_origins = ["*"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)
    _register_exception_handlers(app)

    @app.middleware("http")
    async def deadline_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        try:
            return await asyncio.wait_for(
                call_next(request), timeout=settings.request_timeout_seconds
            )
        except TimeoutError:
            logger.error("request_deadline_exceeded", timeout=settings.request_timeout_seconds)
            return JSONResponse(
                status_code=status.HTTP_504_GATEWAY_TIMEOUT,
                content=failure(ErrorKind.INTERNAL.value, "Request deadline exceeded"),
            )

    @app.middleware("http")
    async def correlation_id_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get("x-request-id", str(uuid4()))
        bind_contextvars(
            request_id=request_id,
            path=str(request.url.path),
            method=request.method,
        )
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_contextvars()

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CampaignCoreError)
    async def handle_core_error(request: Request, exc: CampaignCoreError) -> JSONResponse:
        status_code = STATUS_BY_KIND.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
        log = logger.warning if status_code < 500 else logger.error
        log("request_refused", error=exc.kind.value, message=exc.message)
        return JSONResponse(
            status_code=status_code,
            content=failure(exc.kind.value, exc.message, jsonable_encoder(exc.details)),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=failure(
                ErrorKind.VALIDATION_FAILED.value,
                "Request validation failed",
                jsonable_encoder(exc.errors()),
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        error = HTTP_ERRORS.get(exc.status_code, ErrorKind.INTERNAL.value)
        return JSONResponse(
            status_code=exc.status_code,
            content=failure(error, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )


app = create_app()
