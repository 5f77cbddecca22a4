"""HTTP middleware for the gateway.

- Every route is GET-only; any other method is answered with 404
  before routing (FastAPI would otherwise answer 405).
- One log line per request, path only: query strings carry codes and state.
"""

import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from oauth.endpoints import render_error
from oauth.errors import NotFound

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ("GET",)


class GetOnlyMiddleware(BaseHTTPMiddleware):
    """Reject non-GET requests with 404 and log each request."""

    async def dispatch(self, request: Request, call_next):
        if request.method not in ALLOWED_METHODS:
            logger.info(
                f"[HTTP] {request.method} {request.url.path} -> 404 (method)",
                extra={"path": request.url.path, "status": 404},
            )
            return render_error(NotFound())

        response = await call_next(request)
        logger.info(
            f"[HTTP] {request.method} {request.url.path} -> {response.status_code}",
            extra={"path": request.url.path, "status": response.status_code},
        )
        return response
