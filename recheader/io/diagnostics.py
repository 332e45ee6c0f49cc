# recheader/io/diagnostics.py
"""Non-fatal diagnostics that should reach the log once per process."""
from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)

_emitted: set[str] = set()
_lock = threading.Lock()


def warn_once(key: str, msg: str, *args: object, log: logging.Logger | None = None) -> bool:
    """Log ``msg`` at WARNING level the first time ``key`` is seen.

    Returns True when the message was emitted by this call.
    """
    with _lock:
        if key in _emitted:
            return False
        _emitted.add(key)
    (log or logger).warning(msg, *args)
    return True


def reset_warn_once() -> None:
    """Forget which diagnostics were emitted (the process state starts empty)."""
    with _lock:
        _emitted.clear()
