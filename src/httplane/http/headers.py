"""Immutable, case-insensitive header multimap."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Optional, Union, overload

HeaderPairs = Iterable[tuple[str, str]]


class Headers:
    """
    Ordered multimap of header name to value.

    Names compare case-insensitively but keep the spelling they were
    added with. Instances are never mutated; the ``with_header``,
    ``replace`` and ``without`` methods return new objects, so a Headers
    value can be shared freely between threads.

    Example:
        headers = Headers([("Accept", "application/xml")])
        headers = headers.with_header("X-Trace", "1").with_header("X-Trace", "2")
        headers.get("accept")         # "application/xml"
        headers.get_all("x-trace")    # ["1", "2"]
    """

    __slots__ = ("_items",)

    def __init__(self, items: Union[HeaderPairs, dict[str, str], None] = None) -> None:
        if items is None:
            pairs: tuple[tuple[str, str], ...] = ()
        elif isinstance(items, dict):
            pairs = tuple((str(k), str(v)) for k, v in items.items())
        else:
            pairs = tuple((str(k), str(v)) for k, v in items)
        self._items = pairs

    @overload
    def get(self, name: str) -> Optional[str]: ...

    @overload
    def get(self, name: str, default: str) -> str: ...

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return the first value for ``name``, or ``default``."""
        key = name.lower()
        for k, v in self._items:
            if k.lower() == key:
                return v
        return default

    def get_all(self, name: str) -> list[str]:
        """Return every value for ``name`` in the order received."""
        key = name.lower()
        return [v for k, v in self._items if k.lower() == key]

    def with_header(self, name: str, value: str) -> Headers:
        """Return a copy with one more ``name: value`` entry appended."""
        return Headers(self._items + ((name, value),))

    def replace(self, name: str, value: str) -> Headers:
        """Return a copy where ``name`` has exactly one value."""
        return self.without(name).with_header(name, value)

    def without(self, *names: str) -> Headers:
        """Return a copy with every entry for ``names`` removed."""
        keys = {n.lower() for n in names}
        return Headers((k, v) for k, v in self._items if k.lower() not in keys)

    def to_dict(self) -> dict[str, list[str]]:
        """Lower-cased name -> list of values."""
        result: dict[str, list[str]] = {}
        for k, v in self._items:
            result.setdefault(k.lower(), []).append(v)
        return result

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        key = name.lower()
        return any(k.lower() == key for k, _ in self._items)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Headers):
            return NotImplemented
        return [(k.lower(), v) for k, v in self._items] == [(k.lower(), v) for k, v in other._items]

    def __hash__(self) -> int:
        return hash(tuple((k.lower(), v) for k, v in self._items))

    def __repr__(self) -> str:
        return f"Headers({list(self._items)!r})"
