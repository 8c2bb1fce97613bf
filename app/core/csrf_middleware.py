"""
CSRF Protection Middleware

Auth travels in cookies, so state-changing requests must come from an allowed
origin.
"""

import logging
from typing import Callable
from urllib.parse import urlparse

from fastapi import Request, status
from fastapi.responses import JSONResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# State-changing HTTP methods that need CSRF protection
STATE_CHANGING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


class CSRFProtectionMiddleware(BaseHTTPMiddleware):
    """
    Middleware to validate Origin header for state-changing requests.

    Requests without Origin or Referer (curl, server-to-server) pass through.
    """

    def __init__(self, app, allowed_origins: list[str]):
        super().__init__(app)
        self.allowed_origins = {origin.rstrip("/") for origin in allowed_origins}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method not in STATE_CHANGING_METHODS:
            return await call_next(request)

        origin = request.headers.get("Origin")
        if not origin:
            referer = request.headers.get("Referer")
            if referer:
                parsed = urlparse(referer)
                if parsed.scheme and parsed.netloc:
                    origin = f"{parsed.scheme}://{parsed.netloc}"

        if origin and origin.rstrip("/") not in self.allowed_origins:
            logger.warning(f"[CSRF] Rejected request from origin: {origin}")
            # Exceptions raised here bypass FastAPI's handlers, so answer directly
            return JSONResponse(
                status_code=status.HTTP_403_FORBIDDEN,
                content={"detail": "Origin not allowed"},
            )

        return await call_next(request)
