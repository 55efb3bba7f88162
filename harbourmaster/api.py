"""FastAPI application for the harbourmaster REST API."""

import logging
import uuid
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from harbourmaster import __version__
from harbourmaster.errors import ErrorCode, HarbourmasterError
from harbourmaster.lifespan import lifespan
from harbourmaster.models import ErrorResponse, ServerSettings, SystemConfig
from harbourmaster.routers import containers, events, health, root
from harbourmaster.state import set_config
from harbourmaster.utils import get_request_id, now_ms

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    400: ErrorCode.INVALID_INPUT,
    401: ErrorCode.AUTHENTICATION_REQUIRED,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.INVALID_INPUT,
    409: ErrorCode.PRECONDITION_FAILED,
    503: ErrorCode.DOCKER_UNAVAILABLE,
}


def _error_response(request: Request, status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=message,
            code=code,
            request_id=get_request_id(request),
            timestamp=now_ms(),
        ).model_dump(),
    )


async def harbourmaster_exception_handler(request: Request, exc: HarbourmasterError):
    """Render control-plane errors with their stable code and safe message."""
    logger.error(f"Request {get_request_id(request)} failed: {exc.code.value}: {exc.message}")
    return _error_response(request, exc.status_code, exc.message, exc.code.value)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Custom exception handler for HTTP exceptions."""
    if isinstance(exc.detail, dict):
        message = exc.detail.get("error") or "Unknown error"
        code = exc.detail.get("code") or ErrorCode.INTERNAL_ERROR.value
    else:
        message = exc.detail or "Unknown error"
        code = HTTP_ERROR_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR).value
    return _error_response(request, exc.status_code, message, code)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Render request validation failures in the common error envelope."""
    logger.warning(f"Request {get_request_id(request)} rejected: {exc.errors()}")
    return _error_response(request, 422, "Invalid request parameters", ErrorCode.INVALID_INPUT.value)


async def unhandled_exception_handler(request: Request, exc: Exception):
    """Hide internal details from clients; the full error goes to the log."""
    logger.exception(f"Request {get_request_id(request)} failed with unhandled error: {exc}")
    return _error_response(request, 500, "Internal server error", ErrorCode.INTERNAL_ERROR.value)


def create_app(config: Optional[SystemConfig] = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Configuration to use. If None, the lifespan loads it from
            file and environment on startup.
    """
    if config is not None:
        set_config(config)
    server = config.server if config is not None else ServerSettings()

    app = FastAPI(
        title="Harbourmaster API",
        description="""
        Local control plane for Docker containers.

        Browser clients talk to this API instead of the Docker socket. The API
        validates every request, serializes lifecycle operations per container,
        and relays Docker events to subscribers.

        ## Features

        * List and inspect containers
        * Start, stop, restart and delete containers (idempotent start/stop)
        * Live Docker events via Server-Sent Events or WebSocket

        ## Documentation

        * **Swagger UI**: Available at `/docs` (interactive API testing)
        * **ReDoc**: Available at `/redoc` (alternative documentation)
        * **OpenAPI Schema**: Available at `/openapi.json`
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        tags_metadata=[
            {
                "name": "root",
                "description": "Root endpoint and API information",
            },
            {
                "name": "health",
                "description": "Docker connectivity and daemon health.",
            },
            {
                "name": "containers",
                "description": "Docker container management operations. List, inspect, start, stop, restart and delete containers.",
            },
            {
                "name": "events",
                "description": "Live Docker event feed over Server-Sent Events and WebSocket.",
            },
        ],
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=server.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Authorization", "Content-Type"],
        expose_headers=["X-Request-ID"],
    )

    @app.middleware("http")
    async def assign_request_id(request: Request, call_next):
        """Tag every request with an ID that appears in logs and responses."""
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    app.include_router(root.router)
    app.include_router(health.router)
    app.include_router(containers.router)
    app.include_router(events.router)

    app.add_exception_handler(HarbourmasterError, harbourmaster_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    return app


app = create_app()
