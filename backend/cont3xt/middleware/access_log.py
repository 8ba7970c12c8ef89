"""Request access logging.

One line per request with the resolved user, so lookups can be attributed.
"""

import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("cont3xt.access")


def get_client_ip(request: Request) -> str:
    """Extract client IP from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Logs method, path, user, status and duration of each request."""

    EXCLUDE_PATHS = {"/health", "/favicon.ico"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in self.EXCLUDE_PATHS:
            return await call_next(request)

        start_time = time.monotonic()
        client_ip = get_client_ip(request)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "%s %s %s user=%s error=%s duration_ms=%.2f",
                client_ip,
                request.method,
                path,
                _user_id(request),
                e,
                (time.monotonic() - start_time) * 1000,
            )
            raise

        log = logger.warning if response.status_code >= 400 else logger.info
        log(
            "%s %s %s user=%s status=%d duration_ms=%.2f request_id=%s",
            client_ip,
            request.method,
            path,
            _user_id(request),
            response.status_code,
            (time.monotonic() - start_time) * 1000,
            getattr(request.state, "request_id", "-"),
        )
        return response


def _user_id(request: Request) -> str:
    user = getattr(request.state, "user", None)
    return user.user_id if user is not None else "-"
