"""
FastAPI Application Module

Real-time messaging for the alumni platform. Conversations and their
messages are served over REST, and live delivery runs over a WebSocket
channel where clients join one room per conversation.

Key Features:
- Direct conversations found or created per user pair, plus group conversations
- Participant-only access to every conversation
- Read receipts and unread counts derived at query time
- Per-conversation send ordering with room fan-out
- Structured logging, Prometheus metrics and OpenTelemetry tracing

Identity comes from the authentication layer in front of this service,
which attaches the caller's id and role as request headers.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException
from structlog import get_logger

from ..config import Settings
from ..domain.errors import MessagingError
from ..metrics import CUSTOM_REGISTRY, ERRORS, REQUESTS
from ..repositories.base import Repository
from ..repositories.directory import InMemoryUserDirectory, UserDirectory
from ..repositories.memory import InMemoryRepository
from .dependencies import Messaging
from .routes import router as messaging_router
from .schemas import ErrorResponse
from .socket import router as socket_router

logger = get_logger()

_STATUS_KINDS = {
    401: "Unauthenticated",
    403: "Forbidden",
    404: "NotFound",
    405: "MethodNotAllowed",
    409: "Conflict",
    422: "ValidationError",
}


def _error_response(status_code: int, kind: str, message: str, details=None) -> JSONResponse:
    body = ErrorResponse(error=kind, message=message, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def create_app(
    settings: Optional[Settings] = None,
    repository: Optional[Repository] = None,
    directory: Optional[UserDirectory] = None,
) -> FastAPI:
    """Builds the application with its own set of messaging components"""
    settings = settings or Settings.from_env()
    messaging = Messaging.build(
        settings,
        repository or InMemoryRepository(),
        directory or InMemoryUserDirectory(),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handles app startup/shutdown and resource management"""
        logger.info("application_startup_complete", api_prefix=settings.api_prefix)

        yield

        await messaging.shutdown()
        logger.info("application_shutdown_complete")

    app = FastAPI(
        title="Alumni Messaging API",
        description="Conversations, messages and live delivery for the alumni platform",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.messaging = messaging

    # Enable cross-origin requests from the web client
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Set up request tracing
    if settings.tracing_enabled:
        FastAPIInstrumentor.instrument_app(app)

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Tracks requests and failures"""
        REQUESTS.inc()
        logger.info("request_started", method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
        except Exception as e:
            ERRORS.inc()
            logger.error("request_failed", path=request.url.path, error=str(e))
            raise
        if response.status_code >= 500:
            ERRORS.inc()
        return response

    @app.exception_handler(MessagingError)
    async def messaging_error_handler(request: Request, exc: MessagingError):
        logger.info(
            "request_rejected",
            path=request.url.path,
            error=exc.kind,
            status_code=exc.status_code,
        )
        return _error_response(exc.status_code, exc.kind, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = [
            {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        return _error_response(422, "ValidationError", "Request validation failed", details)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        kind = _STATUS_KINDS.get(exc.status_code, "InternalError" if exc.status_code >= 500 else "HTTPError")
        return _error_response(exc.status_code, kind, str(exc.detail))

    app.include_router(messaging_router, prefix=settings.api_prefix)
    app.include_router(socket_router, prefix=settings.api_prefix)

    @app.get("/api/health")
    async def health():
        """Liveness probe"""
        return {"message": "Server is running"}

    @app.get("/metrics")
    async def metrics():
        """Provides Prometheus metrics for system monitoring"""
        return Response(generate_latest(CUSTOM_REGISTRY), media_type="text/plain")

    return app


app = create_app()
