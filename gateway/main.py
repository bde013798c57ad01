"""
Main Application - FastAPI application setup.
"""

import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from gateway.api.ai_routes import router as ai_router
from gateway.api.auth_routes import router as auth_router
from gateway.api.status_routes import router as status_router
from gateway.api.subscription_routes import router as subscription_router
from gateway.api.usage_routes import router as usage_router
from gateway.config import settings
from gateway.db.session import close_engines
from gateway.exceptions import GatewayError, RateLimitedError
from gateway.observability import get_logger, log_context, metrics, setup_logging, setup_tracing
from gateway.observability.tracing import instrument_fastapi
from gateway.services.provider import build_generation_provider
from gateway.services.rate_limit import global_limiter, normalize_ip
from gateway.services.tokens import build_token_issuer

# Setup logging before anything else
setup_logging()
logger = get_logger(__name__)

API_PREFIX = "/api"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Builds the shared token issuer and provider client on startup and
    releases connections on shutdown.
    """
    # Startup
    logger.info(
        "application_starting",
        service=settings.api_title,
        version=settings.api_version,
        tracing_enabled=settings.tracing_enabled,
        metrics_enabled=settings.metrics_enabled,
    )
    app.state.token_issuer = build_token_issuer()
    app.state.generation_provider = build_generation_provider()

    yield

    # Shutdown
    logger.info("application_shutting_down")
    await app.state.generation_provider.close()
    await close_engines()
    logger.info("database_engines_closed")


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=settings.api_description,
    lifespan=lifespan,
)


# ============================================================================
# Error handlers - uniform {"status": "error", "message": ...} body
# ============================================================================


def error_response(
    status_code: int, message: str, headers: dict[str, str] | None = None, **extra: object
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "message": message, **extra},
        headers=headers,
    )


def rate_limited_response(exc: RateLimitedError) -> JSONResponse:
    """429 body with retryAfter and the matching headers."""
    retry_after = max(0, int(exc.reset_at.timestamp() - time.time()))
    return error_response(
        exc.status_code,
        exc.message,
        headers={
            "Retry-After": str(retry_after),
            "X-RateLimit-Reset": str(int(exc.reset_at.timestamp())),
        },
        retryAfter=exc.reset_at.isoformat(),
    )


@app.exception_handler(GatewayError)
async def gateway_exception_handler(request: Request, exc: GatewayError) -> JSONResponse:
    """Translate domain errors into their HTTP status."""
    if exc.status_code >= 500:
        metrics.record_error(type(exc).__name__, request.url.path)
        logger.error(
            "request_error",
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
            error=exc.message,
        )
    else:
        logger.info(
            "request_rejected",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error_type=type(exc).__name__,
        )

    if isinstance(exc, RateLimitedError):
        return rate_limited_response(exc)
    return error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report the first validation problem as a 400."""
    errors = exc.errors()

    # Sanitize errors for logging (ctx may contain non-serializable objects)
    sanitized_errors = [
        {"type": error.get("type"), "loc": error.get("loc"), "msg": error.get("msg")}
        for error in errors
    ]
    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        errors=sanitized_errors,
    )

    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return error_response(400, message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Framework HTTP errors (404 route, 405 method, health 503)."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content=exc.detail, headers=exc.headers)
    return error_response(exc.status_code, str(exc.detail), headers=exc.headers)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unexpected is a 500 with no internal detail."""
    metrics.record_error(type(exc).__name__, request.url.path)
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True,
    )
    return error_response(500, "Internal server error")


# Setup tracing
setup_tracing()
instrument_fastapi(app)


# ============================================================================
# Middleware (registered innermost first)
# ============================================================================


@app.middleware("http")
async def rate_limit_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Global per-IP window over everything under /api."""
    if request.url.path.startswith(API_PREFIX):
        client_ip = normalize_ip(request.client.host if request.client else None)
        try:
            await global_limiter.hit(client_ip)
        except RateLimitedError as exc:
            return rate_limited_response(exc)
    return await call_next(request)


# Request logging middleware
@app.middleware("http")
async def logging_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Log all HTTP requests with timing."""
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")
    structlog.contextvars.clear_contextvars()

    # Track in-progress requests
    endpoint = request.url.path
    method = request.method
    metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).inc()

    with log_context(request_id=request_id):
        logger.info("request_started", method=method, path=endpoint)
        try:
            response = await call_next(request)
            duration = time.time() - start_time

            # Record metrics
            metrics.record_http_request(endpoint, method, response.status_code, duration)

            logger.info(
                "request_completed",
                method=method,
                path=endpoint,
                status_code=response.status_code,
                duration_seconds=duration,
            )

            return response
        except Exception as e:
            duration = time.time() - start_time
            metrics.record_http_request(endpoint, method, 500, duration)
            metrics.record_error(type(e).__name__, "http_request")

            logger.error(
                "request_failed",
                method=method,
                path=endpoint,
                error=str(e),
                duration_seconds=duration,
                exc_info=True,
            )
            raise
        finally:
            metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).dec()


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def forwarded_client(forwarded_for: str, hops: int) -> str | None:
    """
    Client address recorded by the trusted proxy chain.

    Each trusted proxy appends the peer it saw, so the client is the entry
    `hops` places from the right. Entries further left are client-supplied.
    """
    entries = [entry.strip() for entry in forwarded_for.split(",") if entry.strip()]
    if not entries:
        return None
    return entries[-min(hops, len(entries))]


# Proxy headers middleware - trust X-Forwarded-* headers from the configured proxies
class ProxyHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to handle X-Forwarded-* headers from reverse proxy."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        peer = request.client.host if request.client else None
        if normalize_ip(peer) in settings.trusted_proxies:
            # Fix scheme based on X-Forwarded-Proto header
            forwarded_proto = request.headers.get("X-Forwarded-Proto")
            if forwarded_proto:
                request.scope["scheme"] = forwarded_proto

            forwarded_for = request.headers.get("X-Forwarded-For")
            client_host = (
                forwarded_client(forwarded_for, settings.trusted_proxy_hops)
                if forwarded_for
                else None
            )
            if client_host:
                port = request.client.port if request.client else 0
                request.scope["client"] = (client_host, port)

        response = await call_next(request)
        return response


app.add_middleware(ProxyHeadersMiddleware)


# Register routes
app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(ai_router, prefix=API_PREFIX)
app.include_router(usage_router, prefix=API_PREFIX)
app.include_router(subscription_router, prefix=API_PREFIX)
app.include_router(status_router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "status": "running",
    }


@app.get("/metrics")
async def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    return PlainTextResponse(generate_latest())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "gateway.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
