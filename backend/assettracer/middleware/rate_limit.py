"""
Rate limiting middleware.

Every request under the API prefix is counted against the rule for its
endpoint type (see dependencies.rate_limit.ENDPOINT_LIMITS). Signed-in
callers are keyed by user id, everyone else by client IP.
"""

import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response, JSONResponse

from ..core.config import settings
from ..core.security import extract_user_id_from_token
from ..dependencies.rate_limit import (
    ENDPOINT_LIMITS,
    check_rate_limit,
    classify_path,
    get_rate_limit_key,
    rate_limit_headers,
)

logger = logging.getLogger(__name__)

# Paths that are exempt from rate limiting
EXEMPT_PATHS = {
    "/",
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
}


class EndpointRateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed-window limits per endpoint type: auth, api and webhook."""

    def __init__(self, app, limits=None):
        super().__init__(app)
        self.limits = limits or ENDPOINT_LIMITS

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path

        if path in EXEMPT_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        endpoint_type = classify_path(path)
        rule = self.limits[endpoint_type]

        user_id = self._get_user_id(request)
        key = f"{endpoint_type.value}:{get_rate_limit_key(request, user_id)}"

        is_allowed, remaining, reset_in = check_rate_limit(key, rule.limit, rule.window_seconds)

        if not is_allowed:
            logger.warning(f"Rate limit exceeded for {key} on {path}")
            return JSONResponse(
                status_code=429,
                content={
                    "detail": f"Rate limit exceeded. Try again in {reset_in} seconds.",
                    "retry_after": reset_in,
                },
                headers={**rate_limit_headers(rule.limit, 0, reset_in), "Retry-After": str(reset_in)},
            )

        response = await call_next(request)
        response.headers.update(rate_limit_headers(rule.limit, remaining, reset_in))
        return response

    def _get_user_id(self, request: Request):
        """User id from the session cookie or bearer token, without hitting the database."""
        token = request.cookies.get(settings.session_cookie_name)
        auth_header = request.headers.get("authorization", "")
        if not token and auth_header.startswith("Bearer "):
            token = auth_header[len("Bearer "):]
        if not token:
            return None
        return extract_user_id_from_token(token)
