"""Cross-cutting HTTP middleware: access logging and the error boundary."""
from __future__ import annotations

import logging
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse, Response

access_logger = logging.getLogger("users_api.access")
logger = logging.getLogger("users_api.api")


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Log one line per request with its status and elapsed time."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.perf_counter()
        access_logger.info("<-- %s %s", request.method, request.url.path)
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        access_logger.info(
            "--> %s %s %s %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response


class ErrorBoundaryMiddleware(BaseHTTPMiddleware):
    """Convert exceptions that escape a route into a generic 500 response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except Exception:
            logger.exception("Unhandled error while serving %s %s", request.method, request.url.path)
            return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


__all__ = ["AccessLogMiddleware", "ErrorBoundaryMiddleware"]
