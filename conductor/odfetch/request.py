# ODFetch - Request Model
# SPDX-License-Identifier: Apache-2.0

"""
MARS-like request expressed as keyword/value pairs.

A value is either a single string token or a non-empty list of tokens.
Numbers are kept verbatim as their decimal string; matching rules for
numeric keywords (step, levelist, ...) live in the index matcher.

    req = Request(type="fc", param="msl", step=240, target="data.grib2")
    req = Request.from_str_pairs([("step", "12,24,36"), ("param", "2t,msl")])
"""

from datetime import date, datetime
from typing import Iterable, Iterator, Optional, Union

from odfetch.errors import InvalidRequest

Token = Union[str, int]
Value = Union[str, list[str]]

# Serialization order used when request order is not preserved
CANONICAL_ORDER = (
    "date",
    "time",
    "model",
    "resol",
    "stream",
    "type",
    "step",
    "fcmonth",
    "levtype",
    "levelist",
    "number",
    "param",
    "target",
)


def normalize_key(key: str) -> str:
    if not isinstance(key, str) or not key.strip():
        raise InvalidRequest(f"Request keyword must be a non-empty string, got {key!r}")
    return key.strip().lower()


def _token(value) -> str:
    # bool is an int subclass; True/False are never meaningful tokens
    if isinstance(value, bool) or value is None:
        raise InvalidRequest(f"Unsupported request value: {value!r}")
    if isinstance(value, datetime):
        if value.hour or value.minute or value.second:
            return value.strftime("%Y-%m-%d %H:%M:%S")
        return value.strftime("%Y%m%d")
    if isinstance(value, date):
        return value.strftime("%Y%m%d")
    if isinstance(value, (int, str)):
        text = str(value).strip()
        if not text:
            raise InvalidRequest("Request values must not be blank")
        return text
    raise InvalidRequest(f"Unsupported request value type: {type(value).__name__}")


def normalize_value(value) -> Value:
    """Convert a user value to a string token or a list of string tokens."""
    if isinstance(value, (list, tuple, range)):
        tokens = [_token(v) for v in value]
        if not tokens:
            raise InvalidRequest("List values must not be empty")
        return tokens
    return _token(value)


def expand_numeric_syntax(text: str) -> list[str]:
    """
    Expand ``a/to/b`` and ``a/to/b/by/n`` into explicit integer tokens.

    Anything else is returned unchanged as a single-element list.
    """
    tokens = [t for t in text.split("/") if t]
    is_range = len(tokens) == 3 and tokens[1].lower() == "to"
    is_stepped = (
        len(tokens) == 5
        and tokens[1].lower() == "to"
        and tokens[3].lower() == "by"
    )
    if not (is_range or is_stepped):
        return [text]

    try:
        start = int(tokens[0])
        end = int(tokens[2])
        by = int(tokens[4]) if is_stepped else 1
    except ValueError:
        raise InvalidRequest(f"Cannot parse numeric range {text!r}") from None

    if by <= 0:
        raise InvalidRequest(f"Range step must be > 0, got {by}")
    if end < start:
        raise InvalidRequest(f"Range end {end} < start {start}")
    return [str(v) for v in range(start, end + 1, by)]


class Request:
    """Ordered keyword/value mapping describing one retrieval."""

    def __init__(self, **kwargs):
        self._items: dict[str, Value] = {}
        for key, value in kwargs.items():
            self.set(key, value)

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, object]]) -> "Request":
        """Build from typed pairs (str, int, date, or lists of them)."""
        req = cls()
        for key, value in pairs:
            req.set(key, value)
        return req

    @classmethod
    def from_str_pairs(cls, pairs: Iterable[tuple[str, str]]) -> "Request":
        """
        Build from string pairs, as read from a config file or form.

        Comma-separated values become lists: ``("step", "12,24,36")`` is the
        same request as ``step=[12, 24, 36]``.
        """
        req = cls()
        for key, value in pairs:
            parts = [p.strip() for p in str(value).split(",") if p.strip()]
            if not parts:
                raise InvalidRequest(f"Empty value for keyword {key!r}")
            req.set(key, parts if len(parts) > 1 else parts[0])
        return req

    def set(self, key: str, value) -> "Request":
        # dict keeps the first-insertion position on overwrite
        self._items[normalize_key(key)] = normalize_value(value)
        return self

    def get(self, key: str, default: Optional[Value] = None) -> Optional[Value]:
        return self._items.get(normalize_key(key), default)

    def values_of(self, key: str) -> list[str]:
        """Return the value for key as a list (empty if absent)."""
        value = self.get(key)
        if value is None:
            return []
        if isinstance(value, list):
            return list(value)
        return [value]

    def first(self, key: str, default: Optional[str] = None) -> Optional[str]:
        values = self.values_of(key)
        return values[0] if values else default

    def remove(self, key: str) -> None:
        self._items.pop(normalize_key(key), None)

    def copy(self) -> "Request":
        clone = Request()
        clone._items = {
            k: list(v) if isinstance(v, list) else v for k, v in self._items.items()
        }
        return clone

    def canonical(self) -> "Request":
        """Return a copy with keywords in canonical order."""
        def rank(key: str) -> tuple[int, str]:
            if key in CANONICAL_ORDER:
                return (CANONICAL_ORDER.index(key), key)
            return (len(CANONICAL_ORDER), key)

        clone = Request()
        for key in sorted(self._items, key=rank):
            value = self._items[key]
            clone._items[key] = list(value) if isinstance(value, list) else value
        return clone

    def keys(self) -> list[str]:
        return list(self._items)

    def items(self) -> Iterator[tuple[str, Value]]:
        return iter(self._items.items())

    def to_dict(self) -> dict[str, Value]:
        return self.copy()._items

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.strip().lower() in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Request):
            return NotImplemented
        return self._items == other._items

    def __repr__(self) -> str:
        body = ", ".join(f"{k}={v!r}" for k, v in self._items.items())
        return f"Request({body})"
