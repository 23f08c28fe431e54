"""
Field Collection - Schema-less attribute and event data store
=============================================================

Action attributes and event data are open key/value bags. This module
wraps them with typed accessors that fail explicitly instead of
guessing, plus `must_*` convenience variants for actor code.
"""

import re
import threading
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from .exceptions import ValueMismatchError, ValueNotSetError


_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": timedelta(microseconds=0.001),
    "us": timedelta(microseconds=1),
    "µs": timedelta(microseconds=1),
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
}

_MISSING = object()


def parse_duration(value: Any) -> timedelta:
    """
    Parse a duration.

    Accepts timedelta objects, plain numbers (seconds) and duration
    strings like "1h30m", "90s", "1.5s" or "250ms".

    Raises:
        ValueError: If the value cannot be interpreted as duration
    """
    try:
        return _parse_duration(value)
    except OverflowError:
        raise ValueError(f"duration out of range {value!r}") from None


def _parse_duration(value: Any) -> timedelta:
    if isinstance(value, timedelta):
        return value

    if isinstance(value, bool):
        raise ValueError(f"invalid duration {value!r}")

    if isinstance(value, (int, float)):
        return timedelta(seconds=value)

    if not isinstance(value, str):
        raise ValueError(f"invalid duration {value!r}")

    text = value.strip()
    sign = 1
    if text[:1] in ("-", "+"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]

    if text == "0":
        return timedelta(0)

    try:
        return timedelta(seconds=sign * float(text))
    except ValueError:
        pass

    pos = 0
    total = timedelta(0)
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            raise ValueError(f"invalid duration {value!r}")
        total += _DURATION_UNITS[match.group(2)] * float(match.group(1))
        pos = match.end()

    if pos == 0 or pos != len(text):
        raise ValueError(f"invalid duration {value!r}")

    return total * sign


def format_duration(value: timedelta) -> str:
    """Format a timedelta as a duration string parse_duration accepts."""
    total = value.total_seconds()
    if total == 0:
        return "0s"

    sign = "-" if total < 0 else ""
    total = abs(total)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)

    out = sign
    if hours:
        out += f"{int(hours)}h"
    if minutes:
        out += f"{int(minutes)}m"
    if seconds:
        out += f"{seconds:g}s"
    return out


class FieldCollection:
    """
    Thread-safe map with typed accessors.

    Example:
        attrs = FieldCollection({"message": "pong", "delay": "2s"})
        attrs.get_string("message")            # "pong"
        attrs.get_duration("delay")            # timedelta(seconds=2)
        attrs.must_bool("as_reply", False)     # False (default applied)
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = {}
        self._lock = threading.RLock()
        if data:
            self.set_from_data(data)

    def __repr__(self) -> str:
        return f"FieldCollection({self.data()!r})"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FieldCollection):
            return self.data() == other.data()
        return NotImplemented

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    # Mutation

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def set_from_data(self, data: Dict[str, Any]) -> None:
        """Copy all keys of `data` into the collection."""
        with self._lock:
            self._data.update(data)

    def data(self) -> Dict[str, Any]:
        """Return a shallow copy of the stored data."""
        with self._lock:
            return dict(self._data)

    def clone(self) -> "FieldCollection":
        return FieldCollection(self.data())

    # Presence

    def get(self, key: str) -> Any:
        with self._lock:
            value = self._data.get(key, _MISSING)
        if value is _MISSING:
            raise ValueNotSetError(key)
        return value

    def expect(self, *keys: str) -> None:
        """
        Ensure all keys are present.

        Raises:
            ValueNotSetError: For the first missing key
        """
        with self._lock:
            missing = [k for k in keys if k not in self._data]
        if missing:
            raise ValueNotSetError(", ".join(missing))

    def has_all(self, *keys: str) -> bool:
        with self._lock:
            return all(k in self._data for k in keys)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data)

    # Typed accessors

    def get_string(self, key: str) -> str:
        value = self.get(key)
        if isinstance(value, str):
            return value
        if isinstance(value, (dict, list, tuple)):
            raise ValueMismatchError(key, "string")
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def get_bool(self, key: str) -> bool:
        value = self.get(key)
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"
        raise ValueMismatchError(key, "bool")

    def get_int(self, key: str) -> int:
        value = self.get(key)
        if isinstance(value, bool):
            raise ValueMismatchError(key, "int")
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            return int(value)
        raise ValueMismatchError(key, "int")

    def get_duration(self, key: str) -> timedelta:
        value = self.get(key)
        try:
            return parse_duration(value)
        except ValueError:
            raise ValueMismatchError(key, "duration")

    def get_string_list(self, key: str) -> List[str]:
        value = self.get(key)
        if not isinstance(value, (list, tuple)):
            raise ValueMismatchError(key, "string list")
        if not all(isinstance(v, str) for v in value):
            raise ValueMismatchError(key, "string list")
        return list(value)

    # Convenience wrappers

    def can_string(self, key: str) -> bool:
        return self._can(self.get_string, key)

    def can_bool(self, key: str) -> bool:
        return self._can(self.get_bool, key)

    def can_int(self, key: str) -> bool:
        return self._can(self.get_int, key)

    def can_duration(self, key: str) -> bool:
        return self._can(self.get_duration, key)

    def can_string_list(self, key: str) -> bool:
        return self._can(self.get_string_list, key)

    def must_string(self, key: str, default: Any = _MISSING) -> str:
        return self._must(self.get_string, key, default)

    def must_bool(self, key: str, default: Any = _MISSING) -> bool:
        return self._must(self.get_bool, key, default)

    def must_int(self, key: str, default: Any = _MISSING) -> int:
        return self._must(self.get_int, key, default)

    def must_duration(self, key: str, default: Any = _MISSING) -> timedelta:
        return self._must(self.get_duration, key, default)

    def must_string_list(self, key: str, default: Any = _MISSING) -> List[str]:
        return self._must(self.get_string_list, key, default)

    @staticmethod
    def _can(accessor, key: str) -> bool:
        try:
            accessor(key)
        except (ValueNotSetError, ValueMismatchError):
            return False
        return True

    @staticmethod
    def _must(accessor, key: str, default: Any):
        # Without a default the accessor error propagates to the caller
        try:
            return accessor(key)
        except (ValueNotSetError, ValueMismatchError):
            if default is _MISSING:
                raise
            return default

    def unknown_keys(self, known: Iterable[str]) -> List[str]:
        """List keys not contained in `known`."""
        known = set(known)
        with self._lock:
            return sorted(k for k in self._data if k not in known)
