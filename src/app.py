"""FastAPI application factory for the booking chat API."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from src.config import settings
from src.database.engine import engine
from src.exceptions import AppException, TransientInfraException
from src.middleware.request_id import RequestIdLogFilter, RequestIdMiddleware
from src.modules.chat.router import limiter

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"


def _configure_logging() -> None:
    """Root logging at ``settings.log_level``; every record carries the request ID."""
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RequestIdLogFilter) for f in handler.filters):
            handler.addFilter(RequestIdLogFilter())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Dispose the async engine on shutdown."""
    logger.info("Booking chat API starting (chat enabled: %s)", settings.chat_enabled)
    yield
    await engine.dispose()


def _error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: list | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Structured error envelope shared by every handler."""
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content={
            "error": {
                "code": code,
                "message": message,
                "details": details or [],
                "requestId": getattr(request.state, "request_id", "unknown"),
            }
        },
    )


def _register_exception_handlers(application: FastAPI) -> None:
    @application.exception_handler(AppException)
    async def handle_app_exception(request: Request, exc: AppException) -> JSONResponse:
        headers = None
        if isinstance(exc, TransientInfraException):
            # Clients may retry; the failure is on our side.
            logger.warning("Transient failure on %s: %s", request.url.path, exc.message)
            headers = {"Retry-After": str(exc.retry_after)}
        return _error_response(
            request, exc.status_code, exc.code, exc.message, exc.details, headers
        )

    @application.exception_handler(RequestValidationError)
    async def handle_request_validation(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = [
            {"field": ".".join(str(loc) for loc in err.get("loc", [])), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        return _error_response(request, 422, "VALIDATION_ERROR", "Validation failed", details)

    @application.exception_handler(RateLimitExceeded)
    async def handle_rate_limit(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        return _error_response(request, 429, "RATE_LIMITED", str(exc.detail))

    @application.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception on %s %s: %s", request.method, request.url.path, exc)
        return _error_response(request, 500, "INTERNAL_ERROR", "An unexpected error occurred.")


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    _configure_logging()

    application = FastAPI(
        title="Booking Chat API",
        description="Per-booking chat threads between clients and staff, with media purge on close.",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )
    application.state.limiter = limiter

    # Last added = outermost in Starlette: request ID wraps CORS.
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_middleware(RequestIdMiddleware)

    from src.api.v1 import v1_router

    application.include_router(v1_router)
    _register_exception_handlers(application)

    @application.get("/health")
    async def health_check() -> dict:
        return {"status": "ok", "chat_enabled": settings.chat_enabled}

    return application


app = create_app()
