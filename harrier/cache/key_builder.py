"""
Harrier Cache - Deterministic route cache keys and invalidation patterns.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Mapping, Optional

import orjson

from .directive import CacheDirective

_PLACEHOLDER_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")
_GLOB_CHARS_RE = re.compile(r"([*?\[])")


def _canonical_json(data: Mapping[str, Any]) -> str:
    return orjson.dumps(dict(data), option=orjson.OPT_SORT_KEYS).decode("utf-8")


def escape_glob(value: str) -> str:
    """Make value match itself literally under fnmatch ("*" -> "[*]")."""
    return _GLOB_CHARS_RE.sub(r"[\1]", value)


def substitute_placeholders(
    template: str,
    params: Mapping[str, Any],
    escape: Optional[Callable[[str], str]] = None,
) -> str:
    """
    Replace {name} placeholders with parameter values.

    Only the brace form is recognised because ":" separates key components.
    Placeholders without a matching parameter are left untouched. When the
    result is used as a pattern, ``escape`` keeps substituted values from
    acting as wildcards; only the template's own wildcards stay live.
    """

    def replace(match: re.Match) -> str:
        name = match.group(1)
        if name in params:
            value = str(params[name])
            return escape(value) if escape is not None else value
        return match.group(0)

    return _PLACEHOLDER_RE.sub(replace, template)


class CacheKeyBuilder:
    """
    Builds colon-joined cache keys.

    Layout: [prefix] : (key template | method : path-with-colons [: params])
    [: query] [: header=value ...]. The result depends only on its inputs.
    """

    def build(
        self,
        directive: CacheDirective,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        query: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> str:
        parts = []
        if directive.prefix:
            parts.append(directive.prefix)

        if directive.key:
            parts.append(substitute_placeholders(directive.key, params or {}))
        else:
            parts.append(method.lower())
            parts.append(path.replace("/", ":"))
            if params:
                parts.append(_canonical_json(params))

        if directive.include_query and query:
            parts.append(_canonical_json(query))

        for name in directive.vary_by_headers:
            value = headers.get(name) if headers is not None else None
            parts.append(f"{name}={value or ''}")

        return ":".join(parts)
