# recheader/io/options.py
from __future__ import annotations

from dataclasses import dataclass, fields
from numbers import Number
from typing import Any, Mapping, Sequence

import numpy as np

from recheader.core.exceptions import InvalidOptions

# Seconds between two attempts when polling a live buffer.
RETRY_INTERVAL = 1.0

_ALIASES = {
    "headerformat": "format_override",
    "fallback": "fallback_format",
}

_MISSING = object()

_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0", ""}

_BOOL_FIELDS = ("cache", "retry", "join_segments")
_FLOAT_FIELDS = ("retry_interval", "max_wait")


def _canonical_key(key: str) -> str:
    k = key.strip().lower()
    return _ALIASES.get(k, k)


def get_option(options: Any, key: str, default: Any = None) -> Any:
    """Return the value stored under ``key`` in ``options``, or ``default``.

    ``options`` may be:
    - None
    - a mapping: {"cache": True}
    - a flat key/value sequence: ["cache", True, "retry", False]
    - a ReadOptions instance

    Keys are case-insensitive; ``headerformat`` and ``fallback`` are accepted
    as aliases. A value of None counts as "not specified".
    """
    want = _canonical_key(key)

    if options is None:
        return default

    if isinstance(options, ReadOptions):
        value = getattr(options, want, _MISSING)
        return default if value is _MISSING or value is None else value

    if isinstance(options, Mapping):
        for k, v in options.items():
            if isinstance(k, str) and _canonical_key(k) == want:
                return default if v is None else v
        return default

    if isinstance(options, Sequence) and not isinstance(options, (str, bytes)):
        if len(options) % 2 != 0:
            raise InvalidOptions("Key/value options must come in pairs.")
        for k, v in zip(options[0::2], options[1::2]):
            if not isinstance(k, str):
                raise InvalidOptions(f"Option keys must be strings, got {k!r}.")
            if _canonical_key(k) == want:
                return default if v is None else v
        return default

    raise InvalidOptions(f"Unsupported options container: {type(options).__name__}")


def to_bool(value: Any, key: str = "option") -> bool:
    """Interpret a flag given as bool, number or "yes"/"no", "true"/"false", "on"/"off"."""
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise InvalidOptions(f"Option '{key}' expects a boolean, got {value!r}.")
    if isinstance(value, (bool, np.bool_, Number)):
        return bool(value)
    raise InvalidOptions(f"Option '{key}' expects a boolean, got {type(value).__name__}.")


def _to_float(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise InvalidOptions(f"Option '{key}' expects a number, got {value!r}.") from e


@dataclass(frozen=True, slots=True)
class ReadOptions:
    """
    Caller-specified overrides for read_header().

    format_override:
      Skip identification and use this format tag.
    cache:
      Use the process-wide header cache. None means "format default".
    fallback_format:
      Format tag whose decoder is tried when no decoder handles the file.
    retry:
      Keep polling a live buffer until it answers.
    join_segments:
      Join numbered sibling files of segmented formats into one recording.
    retry_interval:
      Seconds to sleep between two live buffer attempts.
    max_wait:
      Upper bound in seconds for the retry loop; None keeps polling forever.
    """
    format_override: str | None = None
    cache: bool | None = None
    fallback_format: str | None = None
    retry: bool = False
    join_segments: bool = True
    retry_interval: float = RETRY_INTERVAL
    max_wait: float | None = None

    def __post_init__(self) -> None:
        if self.retry_interval < 0:
            raise InvalidOptions("ReadOptions.retry_interval must be >= 0.")
        if self.max_wait is not None and self.max_wait < 0:
            raise InvalidOptions("ReadOptions.max_wait must be >= 0 or None.")

    @classmethod
    def from_any(cls, options: Any = None) -> "ReadOptions":
        """Build ReadOptions from any container accepted by get_option()."""
        if isinstance(options, ReadOptions):
            return options
        values: dict[str, Any] = {}
        for f in fields(cls):
            value = get_option(options, f.name, _MISSING)
            if value is not _MISSING:
                values[f.name] = value
        for key in _BOOL_FIELDS:
            if key in values:
                values[key] = to_bool(values[key], key)
        for key in _FLOAT_FIELDS:
            if key in values:
                values[key] = _to_float(values[key], key)
        return cls(**values)
