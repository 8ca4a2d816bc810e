"""
Endpoint-type rate limiting.

Auth: 5 requests per 15 minutes
API: 200 requests/minute
Webhooks: 1000 requests/minute

Counters are fixed windows held in process memory, so limits apply per
worker.
"""

import time
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from fastapi import HTTPException, Request, status

from ..core.config import settings


class EndpointType(str, Enum):
    AUTH = "auth"
    API = "api"
    WEBHOOK = "webhook"


@dataclass(frozen=True)
class RateLimitRule:
    limit: int
    window_seconds: int


ENDPOINT_LIMITS: Dict[EndpointType, RateLimitRule] = {
    EndpointType.AUTH: RateLimitRule(settings.rate_limit_auth, settings.rate_limit_auth_window),
    EndpointType.API: RateLimitRule(settings.rate_limit_api, 60),
    EndpointType.WEBHOOK: RateLimitRule(settings.rate_limit_webhook, 60),
}

_rate_limit_store: dict = defaultdict(lambda: {"count": 0, "reset_at": 0.0})


def classify_path(path: str) -> EndpointType:
    """Webhooks and cron callbacks get the high ceiling, session routes the low one."""
    if path.endswith("/webhook") or "/cron/" in path:
        return EndpointType.WEBHOOK
    if path.endswith("/auth/session"):
        return EndpointType.AUTH
    return EndpointType.API


def get_rate_limit_key(request: Request, user_id: Optional[str] = None) -> str:
    """
    Generate a unique rate limit key based on user or IP.
    """
    if user_id:
        return f"user:{user_id}"

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.client.host if request.client else "unknown"

    return f"ip:{ip}"


def check_rate_limit(
    key: str,
    limit: int,
    window_seconds: int = 60,
    now: Optional[float] = None,
) -> Tuple[bool, int, int]:
    """
    Count one request against key.

    Returns:
        (is_allowed, remaining, reset_in_seconds)
    """
    now = time.time() if now is None else now
    bucket = _rate_limit_store[key]

    if now >= bucket["reset_at"]:
        bucket["count"] = 0
        bucket["reset_at"] = now + window_seconds

    reset_in = max(int(bucket["reset_at"] - now), 0)
    if bucket["count"] >= limit:
        return False, 0, reset_in

    bucket["count"] += 1
    return True, limit - bucket["count"], reset_in


def reset_rate_limits() -> None:
    _rate_limit_store.clear()


def rate_limit_headers(limit: int, remaining: int, reset_in: int) -> Dict[str, str]:
    return {
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": str(remaining),
        "X-RateLimit-Reset": str(reset_in),
    }


class EndpointRateLimiter:
    """
    Per-route limiter for endpoints that need a tighter rule than their
    path classification gives them.

    Usage:
        test_email_limit = EndpointRateLimiter(RateLimitRule(3, 3600), scope="test-email")

        @router.post("/test-email", dependencies=[Depends(test_email_limit)])
    """

    def __init__(self, rule: RateLimitRule, scope: str):
        self.rule = rule
        self.scope = scope

    async def __call__(self, request: Request) -> None:
        key = f"{self.scope}:{get_rate_limit_key(request)}"
        is_allowed, remaining, reset_in = check_rate_limit(
            key, self.rule.limit, self.rule.window_seconds
        )

        request.state.rate_limit_limit = self.rule.limit
        request.state.rate_limit_remaining = remaining
        request.state.rate_limit_reset = reset_in

        if not is_allowed:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Rate limit exceeded. Try again in {reset_in} seconds.",
                headers={**rate_limit_headers(self.rule.limit, 0, reset_in), "Retry-After": str(reset_in)},
            )

