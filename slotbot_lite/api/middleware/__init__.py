"""Middleware components for request processing.

Request correlation IDs, per-client rate limiting and the CSRF
double-submit check used by the mutating API routes.
"""

from .correlation_id import correlation_id_middleware, get_request_id
from .csrf import CSRF_HEADER, csrf_header_token, csrf_tokens_match, new_csrf_token
from .rate_limiter import RateLimitConfig, RateLimiter, rate_limit_middleware

__all__ = [
    "CSRF_HEADER",
    "RateLimitConfig",
    "RateLimiter",
    "correlation_id_middleware",
    "csrf_header_token",
    "csrf_tokens_match",
    "get_request_id",
    "new_csrf_token",
    "rate_limit_middleware",
]
