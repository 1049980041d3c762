"""HTTP middleware for request handling, sessions, logging, and security."""

from fastapi import Request
from fastapi.responses import JSONResponse
import time
import uuid
from .config import settings
from .logger import logger, request_id_var
from .sessions import ClientSession, session_store

PRIVATE_PATH_PREFIXES = ("/auth/", "/admin/")

# Import will be set by main.py to avoid circular dependency
shutdown_manager = None


def set_shutdown_manager(manager):
    """Set the shutdown manager instance (called from main.py)."""
    global shutdown_manager
    shutdown_manager = manager


# ==================== Graceful Shutdown Middleware ====================

async def graceful_shutdown_middleware(request: Request, call_next):
    """Track active requests and reject new requests during shutdown."""
    if shutdown_manager and shutdown_manager.is_shutting_down:
        logger.warning(
            f"Rejecting request {request.method} {request.url.path} - service is shutting down"
        )
        return JSONResponse(
            status_code=503,
            content={
                "error": "SERVICE_UNAVAILABLE",
                "message": "Service is shutting down - please retry with another instance"
            },
            headers={"Retry-After": "10"}
        )

    if shutdown_manager:
        shutdown_manager.request_started()

    try:
        response = await call_next(request)
        return response
    finally:
        if shutdown_manager:
            shutdown_manager.request_finished()


# ==================== Request ID Middleware ====================

async def add_request_id_middleware(request: Request, call_next):
    """Reuse or issue an X-Request-ID and bind it to every log record of this request."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    token = request_id_var.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)

    response.headers["X-Request-ID"] = request_id
    return response


# ==================== Request Logging Middleware ====================

async def request_logging_middleware(request: Request, call_next):
    """Access log line per request with status and duration."""
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        logger.error(
            f"{request.method} {request.url.path} failed after {time.perf_counter() - started:.3f}s",
            exc_info=True,
        )
        raise

    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} "
        f"({time.perf_counter() - started:.3f}s)"
    )
    return response


# ==================== Session Middleware ====================

async def session_middleware(request: Request, call_next):
    """Bind a ClientSession to the request and sync the session cookie afterwards."""
    session = ClientSession(session_store, request.cookies.get(settings.SESSION_COOKIE_NAME))
    request.state.session = session

    response = await call_next(request)

    if session.cookie_action == "set" and session.session_id:
        response.set_cookie(
            settings.SESSION_COOKIE_NAME,
            session.session_id,
            max_age=settings.SESSION_TTL,
            httponly=True,
            samesite="lax",
            secure=settings.is_production,
        )
    elif session.cookie_action == "clear":
        response.delete_cookie(
            settings.SESSION_COOKIE_NAME,
            httponly=True,
            samesite="lax",
            secure=settings.is_production,
        )

    return response


# ==================== Security Headers Middleware ====================

async def security_headers_middleware(request: Request, call_next):
    """Add security headers to all responses."""
    response = await call_next(request)

    # Prevent MIME type sniffing
    response.headers["X-Content-Type-Options"] = "nosniff"

    # Prevent clickjacking attacks
    response.headers["X-Frame-Options"] = "DENY"

    # Enable XSS protection in older browsers
    response.headers["X-XSS-Protection"] = "1; mode=block"

    # Enforce HTTPS in production
    if settings.is_production:
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

    # Content Security Policy (allows CDN resources for Swagger UI)
    response.headers["Content-Security-Policy"] = (
        "default-src 'self'; "
        "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "img-src 'self' data: https://cdn.jsdelivr.net; "
        "font-src 'self' https://cdn.jsdelivr.net"
    )

    response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"

    # Account data and session responses must not be stored by browsers or proxies
    if request.url.path.startswith(PRIVATE_PATH_PREFIXES):
        response.headers["Cache-Control"] = "no-store"

    return response
