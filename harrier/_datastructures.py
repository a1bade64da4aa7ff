"""
Request data structures.

- MultiDict: query parameters, keys may repeat
- Headers: case-insensitive view over raw ASGI header pairs
- parse_cookie_header: Cookie header to name -> value map
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple


class MultiDict(Mapping[str, List[str]]):
    """
    Read-only mapping of key -> list of values, in first-seen key order.

    ``get`` returns the first value; ``get_all`` every value.
    """

    __slots__ = ("_data",)

    def __init__(self, pairs: Iterable[Tuple[str, str]] = ()):
        self._data: Dict[str, List[str]] = {}
        for key, value in pairs:
            self._data.setdefault(key, []).append(value)

    def __getitem__(self, key: str) -> List[str]:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:  # type: ignore[override]
        values = self._data.get(key)
        return values[0] if values else default

    def get_all(self, key: str) -> List[str]:
        return list(self._data.get(key, ()))

    def to_dict(self, multi: bool = False) -> Dict[str, Any]:
        """
        Plain dict copy.

        With ``multi`` every key maps to its list; otherwise keys seen once map
        to their single value and repeated keys keep the list.
        """
        if multi:
            return {key: list(values) for key, values in self._data.items()}
        return {key: values[0] if len(values) == 1 else list(values) for key, values in self._data.items()}

    def __repr__(self) -> str:
        return f"MultiDict({self._data!r})"


class Headers:
    """
    Case-insensitive header lookup.

    ``raw`` keeps the ASGI ``(bytes, bytes)`` pairs untouched; lookups go
    through a lower-cased index built once.
    """

    __slots__ = ("raw", "_index")

    def __init__(self, raw: Optional[List[Tuple[bytes, bytes]]] = None):
        self.raw = list(raw or ())
        self._index: Dict[str, List[str]] = {}
        for name, value in self.raw:
            self._index.setdefault(name.decode("latin-1").lower(), []).append(value.decode("latin-1"))

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        values = self._index.get(name.lower())
        return values[0] if values else default

    def get_all(self, name: str) -> List[str]:
        return list(self._index.get(name.lower(), ()))

    def to_dict(self) -> Dict[str, str]:
        """Lower-cased names; repeated headers joined with ', '."""
        return {name: ", ".join(values) for name, values in self._index.items()}

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._index

    def __getitem__(self, name: str) -> str:
        values = self._index.get(name.lower())
        if not values:
            raise KeyError(name)
        return values[0]

    def __len__(self) -> int:
        return len(self.raw)

    def __repr__(self) -> str:
        return f"Headers({self.to_dict()!r})"


def parse_cookie_header(header: Optional[str]) -> Dict[str, str]:
    """
    Parse ``name=value; name2="value 2"`` pairs.

    The first occurrence of a name wins; fragments without '=' are skipped.
    """
    cookies: Dict[str, str] = {}
    for fragment in (header or "").split(";"):
        name, sep, value = fragment.partition("=")
        name = name.strip()
        if not sep or not name or name in cookies:
            continue
        value = value.strip()
        if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
            value = value[1:-1]
        cookies[name] = value
    return cookies
