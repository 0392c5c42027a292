"""
API Middleware - CORS, logging and error handling for the streaming API.

Provides:
- CORS headers and preflight handling for the configured origin
- Request logging with timing
- Unified JSON error response formatting
- Mapping of stream errors onto HTTP statuses
"""

import time
import traceback
from typing import Callable

from aiohttp import web

from potree_stream.core.errors import (
    AlreadyActiveError,
    InvalidRequestError,
    NoActiveSessionError,
    StartAbortedError,
    StreamError,
)
from potree_stream.core.logging_utils import get_module_logger


logger = get_module_logger("APIMiddleware")

# Debug mode flag - set via APIServer
_debug_mode: bool = False

CORS_ORIGIN_KEY = "cors_origin"
CORS_ALLOW_METHODS = "GET, POST, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type"


def set_debug_mode(enabled: bool) -> None:
    """Enable or disable debug mode for verbose error responses."""
    global _debug_mode
    _debug_mode = enabled


def _apply_cors_headers(response: web.StreamResponse, origin: str) -> None:
    response.headers["Access-Control-Allow-Origin"] = origin
    response.headers["Access-Control-Allow-Methods"] = CORS_ALLOW_METHODS
    response.headers["Access-Control-Allow-Headers"] = CORS_ALLOW_HEADERS


@web.middleware
async def cors_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    """Answer preflight requests and tag every response with CORS headers."""
    origin = request.app.get(CORS_ORIGIN_KEY, "*")

    if request.method == "OPTIONS":
        response = web.Response(status=204)
        _apply_cors_headers(response, origin)
        return response

    response = await handler(request)
    # WebSocket and streamed responses have already sent their headers.
    if not response.prepared:
        _apply_cors_headers(response, origin)
    return response


@web.middleware
async def request_logging_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    """Log method, path, status and timing of every request."""
    start_time = time.perf_counter()
    response = await handler(request)
    elapsed_ms = (time.perf_counter() - start_time) * 1000

    if request.path.startswith(("/hls/", "/potree/", "/file/")) and not _debug_mode:
        logger.debug("%s %s -> %d (%.1f ms)", request.method, request.path, response.status, elapsed_ms)
    else:
        logger.info("%s %s -> %d (%.1f ms)", request.method, request.path, response.status, elapsed_ms)
    return response


@web.middleware
async def error_handling_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    """
    Middleware to catch and format all errors as JSON responses.

    Provides unified error response format:
    {
        "error": {
            "code": "ERROR_CODE",
            "message": "Human-readable message",
            "details": { ... }  # Optional
        },
        "status": 500
    }
    """
    try:
        return await handler(request)
    except web.HTTPException as e:
        if e.status < 400:
            raise
        return create_error_response(
            e.reason.upper().replace(" ", "_") if e.reason else "HTTP_ERROR",
            e.text or str(e),
            status=e.status,
        )
    except StreamError as e:
        return stream_error_response(e)
    except Exception as e:
        tb = traceback.format_exc()
        logger.error("Unexpected error: %s\n%s", e, tb)

        details = {"type": type(e).__name__, "message": str(e)}
        if _debug_mode:
            details["traceback"] = tb.split("\n")
            details["request"] = {"method": request.method, "path": request.path}
        return create_error_response(
            "INTERNAL_ERROR", "An unexpected error occurred", status=500, details=details
        )


def status_for_error(error: StreamError) -> int:
    if isinstance(error, InvalidRequestError):
        return 400
    if isinstance(error, NoActiveSessionError):
        return 404
    if isinstance(error, (AlreadyActiveError, StartAbortedError)):
        return 409
    return 500


def stream_error_response(error: StreamError) -> web.Response:
    status = status_for_error(error)
    if status >= 500:
        logger.error("%s: %s", type(error).__name__, error)
    else:
        logger.warning("%s: %s", type(error).__name__, error)
    return create_error_response(error.code, str(error), status=status)


def create_error_response(code: str, message: str, status: int = 400, details: dict = None) -> web.Response:
    """Create standardized error response."""
    error = {"error": {"code": code, "message": message}, "status": status}
    if details:
        error["error"]["details"] = details
    return web.json_response(error, status=status)


async def parse_json_body(request: web.Request, required: bool = True):
    """Parse JSON body with error handling. Returns (body, error_response)."""
    try:
        body = await request.json()
    except ValueError:
        if required:
            return None, create_error_response("INVALID_BODY", "Request body must be valid JSON", status=400)
        return {}, None
    if required and not body:
        return None, create_error_response("EMPTY_BODY", "Request body must contain data", status=400)
    return body, None
