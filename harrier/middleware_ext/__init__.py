"""
Extended middleware - cross-origin and rate limiting.

All middleware follow the Harrier async signature:
    async def __call__(self, request, ctx, next) -> Response
"""

from .rate_limit import (
    RateLimitMiddleware,
    RateLimitRule,
    api_key_extractor,
    ip_key_extractor,
)
from .security import CORSMiddleware

__all__ = [
    "CORSMiddleware",
    "RateLimitMiddleware",
    "RateLimitRule",
    "ip_key_extractor",
    "api_key_extractor",
]
