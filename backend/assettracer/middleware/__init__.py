"""
Middleware module for FastAPI application.
"""

from .rate_limit import EndpointRateLimitMiddleware

__all__ = ["EndpointRateLimitMiddleware"]
