"""WorkerBank Assistant API Service.

FastAPI application for the migrant-worker banking chat assistant: chat
turns, session reset, text-to-speech and the speech-to-text relay.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from api.deps import Backends
from api.errors import AssistantError
from api.models import HealthResponse
from api.routers import chat as chat_router, speech as speech_router
from libs.common.settings import get_settings

# Configure structured logging
logging.basicConfig(format="%(message)s", level=get_settings().log_level)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

# Multipart overhead on top of the largest allowed upload
REQUEST_OVERHEAD_BYTES = 1024 * 1024


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    logger.info("Starting WorkerBank Assistant API", env=settings.app_env, version="1.0.0")

    # Startup
    app.state.backends = Backends(settings)
    try:
        yield
    finally:
        # Shutdown
        await app.state.backends.aclose()
        logger.info("Shutting down WorkerBank Assistant API")


async def assistant_error_handler(request: Request, exc: AssistantError) -> ORJSONResponse:
    """Render pipeline errors as ``{"error": message}`` and keep the session alive."""
    logger.warning(
        "Request rejected",
        request_id=getattr(request.state, "request_id", None),
        error_type=type(exc).__name__,
        status_code=exc.status_code,
        detail=exc.detail,
    )
    response = ORJSONResponse(status_code=exc.status_code, content={"error": exc.message})

    session = getattr(request.state, "session", None)
    manager = getattr(request.state, "session_manager", None)
    if session is not None and manager is not None:
        manager.apply(response, session)
    return response


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="WorkerBank Assistant API",
        description="Banking help for migrant workers in Singapore, with multi-turn context and reply rewriting",
        version="1.0.0",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
        debug=settings.debug,
    )

    cors_origins = ["*"] if settings.is_development else settings.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=False if settings.is_development else True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AssistantError, assistant_error_handler)

    @app.middleware("http")
    async def limit_request_size(request: Request, call_next):
        """Limit request body size to prevent abuse."""
        max_size = get_settings().max_upload_bytes + REQUEST_OVERHEAD_BYTES

        if request.method in ["POST", "PUT", "PATCH"]:
            content_length = request.headers.get("content-length")
            if content_length and content_length.isdigit() and int(content_length) > max_size:
                return ORJSONResponse(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    content={"error": f"Request body too large. Maximum size: {max_size} bytes"},
                )

        return await call_next(request)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing and structured data."""
        start_time = time.time()
        request_id = f"req_{int(start_time * 1000000)}"
        request.state.request_id = request_id

        logger.info(
            "Request started",
            request_id=request_id,
            method=request.method,
            url=str(request.url),
            user_agent=request.headers.get("user-agent"),
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                request_id=request_id,
                error=str(e),
                process_time_ms=round((time.time() - start_time) * 1000, 2),
                exc_info=True,
            )
            raise

        logger.info(
            "Request completed",
            request_id=request_id,
            status_code=response.status_code,
            process_time_ms=round((time.time() - start_time) * 1000, 2),
        )
        response.headers["X-Request-ID"] = request_id
        return response

    app.include_router(chat_router.router, prefix="/api", tags=["Chat"])
    app.include_router(speech_router.router, prefix="/api", tags=["Speech"])

    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint to confirm the API is running."""
        return {"message": "WorkerBank Assistant API is running."}

    @app.get("/healthz", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Health check endpoint for liveness probes."""
        return HealthResponse(status="healthy", service="api", version="1.0.0", timestamp=time.time())

    @app.get("/readyz", response_model=HealthResponse, tags=["Health"])
    async def readiness_check() -> HealthResponse:
        """Readiness check: ready once the agent identifiers are configured.

        Example:
            ```bash
            curl http://localhost:8000/readyz
            ```
        """
        missing = get_settings().missing_dialogflow_settings()
        return HealthResponse(
            status="not_ready" if missing else "ready",
            service="api",
            version="1.0.0",
            timestamp=time.time(),
            details={"missing": ",".join(missing)} if missing else {"dialogflow": "configured"},
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    # For local development only
    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
