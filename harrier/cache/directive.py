"""
Harrier Cache - Route-level cache directives.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple, Union

_TTL_RE = re.compile(r"^(\d+)([smhd])$")
_TTL_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400}

TTL = Union[int, float, str]


def parse_ttl(ttl: TTL) -> float:
    """
    Convert a TTL to seconds.

    Accepts a number of seconds or a string such as "30s", "5m", "2h", "1d".

    Raises:
        ValueError: Unrecognized TTL string
    """
    if isinstance(ttl, bool):
        raise ValueError(f"Invalid TTL: {ttl!r}")
    if isinstance(ttl, (int, float)):
        return ttl
    match = _TTL_RE.match(ttl.strip())
    if not match:
        raise ValueError(f"Invalid TTL format: {ttl!r}. Use a number or e.g. '5s', '5m', '5h', '5d'")
    return int(match.group(1)) * _TTL_UNITS[match.group(2)]


@dataclass(frozen=True)
class CacheDirective:
    """
    Request to cache a route's result.

    Attributes:
        ttl: Time-to-live in seconds (strings like "5m" are accepted)
        key: Explicit key template; {name} placeholders take path parameters
        prefix: Optional leading key component
        include_query: Whether query parameters become part of the key
        vary_by_headers: Header names whose values suffix the key
        condition: Predicate over the result; False skips the cache write
        store: Name of a registered store (None uses the default store)
    """

    ttl: TTL = 60
    key: Optional[str] = None
    prefix: Optional[str] = None
    include_query: bool = False
    vary_by_headers: Tuple[str, ...] = field(default_factory=tuple)
    condition: Optional[Callable[[Any], bool]] = None
    store: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "ttl", parse_ttl(self.ttl))
        object.__setattr__(self, "vary_by_headers", tuple(h.lower() for h in self.vary_by_headers))

    def accepts(self, result: Any) -> bool:
        return self.condition is None or bool(self.condition(result))
