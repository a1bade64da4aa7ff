"""
Rate limiting middleware.

Algorithms:
- Fixed Window:   per-interval counters that reset when the window ends
- Sliding Window: weighted pair of adjacent windows (no boundary spike)
- Token Bucket:   burst-tolerant limiting with a steady refill rate

A client over budget gets RateLimitExceededFault (429 with Retry-After)
through the application's error handler. Responses that pass carry
X-RateLimit-Limit / -Remaining / -Reset for the first matching rule.
"""

from __future__ import annotations

import math
import time
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Tuple

from ..faults import RateLimitExceededFault
from ..middleware import Handler
from ..request import Request
from ..response import Response

if TYPE_CHECKING:
    from ..controller.base import RequestCtx

Clock = Callable[[], float]
KeyFunc = Callable[[Request], Optional[str]]


# ============================================================================
# Key extractors
# ============================================================================

def ip_key_extractor(request: Request) -> str:
    """Client address: first X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = request.header("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return f"ip:{first}"
    real_ip = request.header("x-real-ip")
    if real_ip:
        return f"ip:{real_ip.strip()}"
    client = request.client
    if client:
        return f"ip:{client[0]}"
    return "ip:unknown"


def api_key_extractor(request: Request) -> Optional[str]:
    """X-API-Key or bearer token; None (rule skipped) when neither is sent."""
    api_key = request.header("x-api-key")
    if api_key:
        return f"apikey:{api_key}"
    auth = request.header("authorization")
    if auth and auth.lower().startswith("bearer "):
        return f"bearer:{auth[7:][:32]}"
    return None


# ============================================================================
# Counters
# ============================================================================

class _FixedWindow:
    __slots__ = ("limit", "window", "count", "reset_at")

    def __init__(self, limit: int, window: float, now: float):
        self.limit = limit
        self.window = window
        self.count = 0
        self.reset_at = now + window

    def consume(self, now: float) -> Tuple[bool, float]:
        if now >= self.reset_at:
            self.count = 0
            self.reset_at = now + self.window
        if self.count < self.limit:
            self.count += 1
            return True, 0.0
        return False, self.reset_at - now

    def remaining(self, now: float) -> int:
        if now >= self.reset_at:
            return self.limit
        return max(0, self.limit - self.count)

    def reset_in(self, now: float) -> float:
        return max(0.0, self.reset_at - now)


class _SlidingWindow:
    """
    Sliding window counter over two adjacent fixed windows.

    weighted = previous_count * overlap + current_count
    """

    __slots__ = ("limit", "window", "_prev_count", "_curr_count", "_curr_start")

    def __init__(self, limit: int, window: float, now: float):
        self.limit = limit
        self.window = window
        self._prev_count = 0
        self._curr_count = 0
        self._curr_start = now

    def _advance(self, now: float) -> None:
        passed = int((now - self._curr_start) // self.window)
        if passed >= 2:
            self._prev_count = 0
            self._curr_count = 0
            self._curr_start = now
        elif passed == 1:
            self._prev_count = self._curr_count
            self._curr_count = 0
            self._curr_start += self.window

    def _weighted(self, now: float) -> float:
        weight = max(0.0, 1.0 - (now - self._curr_start) / self.window)
        return self._prev_count * weight + self._curr_count

    def consume(self, now: float) -> Tuple[bool, float]:
        self._advance(now)
        if self._weighted(now) >= self.limit:
            return False, max(0.1, self.reset_in(now))
        self._curr_count += 1
        return True, 0.0

    def remaining(self, now: float) -> int:
        self._advance(now)
        return max(0, self.limit - int(self._weighted(now)))

    def reset_in(self, now: float) -> float:
        return max(0.0, self._curr_start + self.window - now)


class _TokenBucket:
    """Token bucket with lazy refill."""

    __slots__ = ("limit", "capacity", "refill_rate", "tokens", "last_refill")

    def __init__(self, limit: int, capacity: int, refill_rate: float, now: float):
        self.limit = limit
        self.capacity = capacity
        self.refill_rate = refill_rate
        self.tokens = float(capacity)
        self.last_refill = now

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(float(self.capacity), self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def consume(self, now: float) -> Tuple[bool, float]:
        self._refill(now)
        if self.tokens >= 1:
            self.tokens -= 1
            return True, 0.0
        return False, (1 - self.tokens) / self.refill_rate

    def remaining(self, now: float) -> int:
        self._refill(now)
        return int(self.tokens)

    def reset_in(self, now: float) -> float:
        self._refill(now)
        return (self.capacity - self.tokens) / self.refill_rate


class _BucketStore:
    """
    Per-key counters; keys idle for longer than ``idle_ttl`` are dropped on
    a lazy schedule so the table does not grow with every client seen.
    """

    def __init__(self, clock: Clock, cleanup_interval: float = 60.0, idle_ttl: float = 300.0):
        self._clock = clock
        self._buckets: Dict[str, Any] = {}
        self._last_access: Dict[str, float] = {}
        self._cleanup_interval = cleanup_interval
        self._idle_ttl = idle_ttl
        self._last_cleanup = clock()

    def __len__(self) -> int:
        return len(self._buckets)

    def get_or_create(self, key: str, factory: Callable[[float], Any], now: float) -> Any:
        if now - self._last_cleanup > self._cleanup_interval:
            self._cleanup(now)

        self._last_access[key] = now
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = self._buckets[key] = factory(now)
        return bucket

    def _cleanup(self, now: float) -> None:
        self._last_cleanup = now
        expired = [key for key, seen in self._last_access.items() if now - seen > self._idle_ttl]
        for key in expired:
            self._buckets.pop(key, None)
            self._last_access.pop(key, None)


# ============================================================================
# Rules & middleware
# ============================================================================

ALGORITHMS = ("fixed_window", "sliding_window", "token_bucket")


class RateLimitRule:
    """
    A single rate-limit rule.

    Attributes:
        limit: Maximum requests per window
        window: Window size in seconds
        algorithm: "fixed_window", "sliding_window" or "token_bucket"
        key_func: Request -> client key (None skips the rule for that
            request). Defaults to the client address.
        burst: Bucket capacity (token_bucket only, defaults to limit)
        scope: Path prefix the rule applies to ("*" = all)
        methods: HTTP methods the rule applies to (empty = all)
    """

    __slots__ = ("limit", "window", "algorithm", "key_func", "burst", "scope", "methods")

    def __init__(
        self,
        limit: int = 100,
        window: float = 60.0,
        algorithm: str = "fixed_window",
        key_func: Optional[KeyFunc] = None,
        burst: Optional[int] = None,
        scope: str = "*",
        methods: Optional[Iterable[str]] = None,
    ):
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        if window <= 0:
            raise ValueError(f"window must be positive, got {window}")
        if algorithm not in ALGORITHMS:
            raise ValueError(f"unknown rate limit algorithm '{algorithm}' (expected one of {', '.join(ALGORITHMS)})")
        self.limit = limit
        self.window = window
        self.algorithm = algorithm
        self.key_func = key_func or ip_key_extractor
        self.burst = burst
        self.scope = scope
        self.methods = [m.upper() for m in methods or ()]

    def matches(self, request: Request) -> bool:
        if self.methods and request.method not in self.methods:
            return False
        return self.scope == "*" or request.path.startswith(self.scope)

    def create_bucket(self, now: float) -> Any:
        if self.algorithm == "token_bucket":
            capacity = self.burst if self.burst is not None else self.limit
            return _TokenBucket(self.limit, capacity, self.limit / self.window, now)
        if self.algorithm == "sliding_window":
            return _SlidingWindow(self.limit, self.window, now)
        return _FixedWindow(self.limit, self.window, now)


class RateLimitMiddleware:
    """
    Rate limiting over an ordered list of rules.

    Every matching rule consumes from its own bucket; the first exhausted
    bucket rejects the request.

    Args:
        rules: Rules to evaluate (one default rule when omitted)
        default_limit: Limit of the default rule
        default_window: Window (seconds) of the default rule
        include_headers: Add X-RateLimit-* headers to responses
        exempt_paths: Paths never limited
        clock: Monotonic time source
    """

    def __init__(
        self,
        rules: Optional[List[RateLimitRule]] = None,
        default_limit: int = 100,
        default_window: float = 60.0,
        include_headers: bool = True,
        exempt_paths: Optional[Iterable[str]] = None,
        clock: Clock = time.monotonic,
    ):
        self.rules = list(rules) if rules else [RateLimitRule(limit=default_limit, window=default_window)]
        self.include_headers = include_headers
        self.exempt_paths = set(exempt_paths if exempt_paths is not None else ("/health", "/ready", "/live"))
        self._clock = clock
        self._store = _BucketStore(clock)

    async def __call__(self, request: Request, ctx: "RequestCtx", next: Handler) -> Response:
        if request.path in self.exempt_paths:
            return await next(request, ctx)

        now = self._clock()
        applied = None
        for position, rule in enumerate(self.rules):
            if not rule.matches(request):
                continue
            key = rule.key_func(request)
            if key is None:
                continue

            bucket = self._store.get_or_create(f"{position}:{key}", rule.create_bucket, now)
            allowed, retry_after = bucket.consume(now)
            if not allowed:
                raise RateLimitExceededFault(
                    rule.limit,
                    rule.window,
                    retry_after,
                    headers=self._headers(rule, bucket, now) if self.include_headers else None,
                )
            if applied is None:
                applied = (rule, bucket)

        response = await next(request, ctx)
        if self.include_headers and applied is not None:
            response.headers.update(self._headers(*applied, self._clock()))
        return response

    @staticmethod
    def _headers(rule: RateLimitRule, bucket: Any, now: float) -> Dict[str, str]:
        return {
            "x-ratelimit-limit": str(rule.limit),
            "x-ratelimit-remaining": str(bucket.remaining(now)),
            "x-ratelimit-reset": str(math.ceil(bucket.reset_in(now))),
        }
