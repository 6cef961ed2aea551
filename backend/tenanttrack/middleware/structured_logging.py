# backend/tenanttrack/middleware/structured_logging.py
from __future__ import annotations

import logging
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

log = logging.getLogger("tenanttrack.request")


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    One log line per request: method, path, status_code and duration_ms.

    Runs outside RequestIDMiddleware, so the id is read back from
    request.state once the inner stack has returned.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        t0 = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            level = logging.WARNING if status_code >= 500 else logging.INFO
            log.log(
                level,
                "%s %s -> %s",
                request.method,
                request.url.path,
                status_code,
                extra={
                    "request_id": getattr(request.state, "request_id", None),
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": status_code,
                    "duration_ms": round((time.perf_counter() - t0) * 1000, 1),
                },
            )
