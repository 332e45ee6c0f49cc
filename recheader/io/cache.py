# recheader/io/cache.py
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

from recheader.core.header import CanonicalHeader

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    identity: Any
    header: CanonicalHeader


class HeaderCache:
    """
    Single-slot memo of the last parsed header.

    The slot is valid while the stored identity equals the caller's freshly
    taken one (see io.files.file_identity); any other identity is a miss and
    the next parse replaces the slot wholesale. All access to the slot goes
    through one re-entrant lock.
    """

    def __init__(self) -> None:
        self._entry: CacheEntry | None = None
        self._lock = threading.RLock()

    @property
    def entry(self) -> CacheEntry | None:
        with self._lock:
            return self._entry

    def get(self, identity: Any) -> CanonicalHeader | None:
        with self._lock:
            if self._entry is not None and self._entry.identity == identity:
                return self._entry.header
            return None

    def put(self, identity: Any, header: CanonicalHeader) -> None:
        with self._lock:
            self._entry = CacheEntry(identity=identity, header=header)

    def get_or_parse(
        self,
        identity: Any,
        parse_fn: Callable[[], CanonicalHeader],
        refresh: Callable[[CanonicalHeader], CanonicalHeader] | None = None,
    ) -> CanonicalHeader:
        """Return the cached header for ``identity`` or parse and store a new one.

        ``refresh`` is applied to cache hits only, for recordings whose
        sample count keeps growing while the header file stays the same.
        """
        with self._lock:
            header = self.get(identity)
            if header is not None:
                logger.debug("Header cache hit for %s", header.source or header.format_tag)
                return refresh(header) if refresh is not None else header
            header = parse_fn()
            self.put(identity, header)
            return header

    def clear(self) -> None:
        with self._lock:
            self._entry = None


default_cache = HeaderCache()
