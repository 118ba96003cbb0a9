"""Main FastAPI application module."""

import asyncio
import os
import traceback
import uuid
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api import recordings, sessions, webhooks
from app.api.deps import get_api_key, get_settings, get_token_issuer
from app.config import Settings
from app.core.errors import AppError, ExternalServiceFailure
from app.core.events import EventBus, WebhookHandlers
from app.models.recording.requests import TokenRequest
from app.services.livekit import LiveKitClient
from app.services.recording_controller import RecordingController
from app.services.recording_store import InMemoryRecordingStore
from app.services.session_registry import SessionRegistry
from app.services.token_issuer import TokenIssuer
from app.utils.logging_config import get_logger, setup_logging

logger = get_logger(__name__)

HTTP_UNPROCESSABLE_ENTITY = 422
HTTP_INTERNAL_SERVER_ERROR = 500


def _redacted(value: str | None) -> str:
    return f"{value[:8]}..." if value else "missing"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the services on startup and release them on shutdown."""
    setup_logging()
    settings: Settings = app.state.settings

    logger.info("Initializing services")
    token_issuer = TokenIssuer(settings.livekit)
    livekit_client = app.state.livekit_client or LiveKitClient(settings.livekit)
    registry = SessionRegistry(settings=settings.session)
    recording_store = InMemoryRecordingStore(
        retention_limit=settings.recording.retention_limit
    )
    controller = RecordingController(settings, registry, recording_store, livekit_client)

    logger.info("Initializing event bus")
    event_bus = EventBus()
    await event_bus.start()
    await WebhookHandlers(registry, controller).register(event_bus)

    app.state.token_issuer = token_issuer
    app.state.livekit_client = livekit_client
    app.state.registry = registry
    app.state.recording_store = recording_store
    app.state.controller = controller
    app.state.event_bus = event_bus

    sweeper = asyncio.create_task(registry.run_sweeper())

    logger.info(
        "Startup complete",
        extra={
            "environment": settings.server.environment,
            "livekit_url": settings.livekit.url,
            "livekit_http_url": settings.livekit.http_url,
            "livekit_api_key": _redacted(settings.livekit.api_key),
            "storage_bucket": settings.storage.bucket or "not set",
        },
    )
    if not settings.storage.is_configured:
        logger.warning(
            "Storage not configured, recordings cannot be started",
            extra={"missing": settings.storage.missing},
        )

    try:
        yield
    finally:
        logger.info("Starting application shutdown")
        sweeper.cancel()
        await asyncio.gather(sweeper, return_exceptions=True)

        try:
            await asyncio.wait_for(event_bus.shutdown(), timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Event bus shutdown timed out after 5 seconds")

        try:
            await livekit_client.aclose()
        except Exception as e:
            logger.error(f"Error closing media server client: {e!s}")

        logger.info("Shutdown complete")


async def api_logging_middleware(
    request: Request, call_next: Callable[[Request], Any]
) -> Response:
    """Middleware to log requests with timing information."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    start_time = datetime.now(UTC)

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            "Error processing request",
            extra={
                "req_id": request_id,
                "error": str(e),
                "traceback": traceback.format_exc(),
                "request": {"method": request.method, "path": request.url.path},
            },
        )
        raise

    duration = (datetime.now(UTC) - start_time).total_seconds()
    response.headers["X-Request-ID"] = request_id
    logger.info(
        "API request completed",
        extra={
            "req_id": request_id,
            "request": {
                "method": request.method,
                "path": request.url.path,
                "path_params": request.path_params,
                "query_params": dict(request.query_params),
            },
            "response": {"status_code": response.status_code, "duration": duration},
        },
    )
    return response


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render application errors with the status code they carry."""
    content: dict[str, Any] = {
        "success": False,
        "error": exc.message,
        "errorType": type(exc).__name__,
    }
    if isinstance(exc, ExternalServiceFailure):
        content["failureKind"] = exc.kind.value

    log = logger.error if exc.status_code >= HTTP_INTERNAL_SERVER_ERROR else logger.info
    log(
        "Request failed",
        extra={
            "path": request.url.path,
            "status_code": exc.status_code,
            "error": exc.message,
            "error_type": type(exc).__name__,
        },
    )
    return JSONResponse(status_code=exc.status_code, content=content)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle validation errors in request data."""
    logger.error(
        "Validation error",
        extra={"errors": exc.errors(), "path": request.url.path},
    )
    return JSONResponse(
        status_code=HTTP_UNPROCESSABLE_ENTITY,
        content={"success": False, "error": "Invalid request", "detail": exc.errors()},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception",
        extra={"path": request.url.path, "error": str(exc)},
        exc_info=exc,
    )
    settings: Settings = request.app.state.settings
    message = "Internal server error" if settings.server.is_production else str(exc)
    return JSONResponse(
        status_code=HTTP_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": message},
    )


def create_app(
    settings: Settings | None = None,
    livekit_client: LiveKitClient | None = None,
) -> FastAPI:
    """Create the application.

    Args:
        settings: Configuration, read from the environment when omitted
        livekit_client: Media server adapter override
    """
    app = FastAPI(
        title="Session Recording API",
        description="Access tokens, sessions and recording control for media rooms",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings or Settings.from_env()
    app.state.livekit_client = livekit_client

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(api_logging_middleware)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(sessions.router)
    app.include_router(recordings.router)
    app.include_router(webhooks.router)

    @app.post("/api/token")
    async def issue_token(
        body: TokenRequest | None = None,
        token_issuer: TokenIssuer = Depends(get_token_issuer),
    ) -> dict[str, Any]:
        """Legacy token endpoint kept for older clients."""
        body = body or TokenRequest()
        issued = token_issuer.generate_token(body.room_name, body.identity)
        return {
            "token": issued.token,
            "url": issued.endpoint_url,
            "identity": issued.identity,
            "roomName": issued.room_name,
        }

    @app.get("/health")
    async def health_check(settings: Settings = Depends(get_settings)) -> dict[str, Any]:
        """Health check endpoint."""
        return {
            "status": "ok",
            "timestamp": datetime.now(UTC).isoformat(),
            "environment": settings.server.environment,
        }

    @app.get("/api/config/check", dependencies=[Depends(get_api_key)])
    async def config_check(settings: Settings = Depends(get_settings)) -> dict[str, Any]:
        """Report which settings are present without revealing them."""
        return {
            "success": True,
            "config": {
                "livekit": {
                    "httpUrl": settings.livekit.http_url,
                    "hasApiKey": bool(settings.livekit.api_key),
                    "hasApiSecret": bool(settings.livekit.api_secret),
                    "apiKeyPrefix": _redacted(settings.livekit.api_key),
                },
                "storage": {
                    "hasAccessKey": bool(settings.storage.access_key),
                    "hasSecretKey": bool(settings.storage.secret_key),
                    "bucket": settings.storage.bucket or "not set",
                    "endpoint": settings.storage.endpoint or "not set",
                    "region": settings.storage.region,
                },
            },
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=os.getenv("API_HOST", "127.0.0.1"),
        port=int(os.getenv("API_PORT", "8001")),
    )
