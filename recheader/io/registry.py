# recheader/io/registry.py
from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Callable, Iterable, Protocol

from recheader.core.exceptions import DecodeError, NotFound, ReadError, UnsupportedFormat
from recheader.core.header import CanonicalHeader
from recheader.core.raw import RAW_HEADER_TYPES, RawHeader
from recheader.io.files import DatasetFiles
from recheader.io.options import ReadOptions
from recheader.io import toolbox

logger = logging.getLogger(__name__)

# Low-level failures that mean "the bytes are not what the decoder expected".
_DECODE_FAILURES = (struct.error, ValueError, EOFError, IndexError, KeyError, OSError)


class Decoder(Protocol):
    """Produce a format-native header from the files of one recording."""

    def __call__(self, files: DatasetFiles, options: ReadOptions) -> RawHeader:
        ...


# Re-derives sample totals of a cached header from the files currently on disk.
RefreshHook = Callable[[CanonicalHeader, DatasetFiles], CanonicalHeader]


@dataclass(frozen=True, slots=True)
class DecoderEntry:
    """
    A registered decoder and its per-format policy.

    cache_default: whether read_header caches this format unless told otherwise
    segmented:     numbered sibling files are joined into one recording
    requires:      toolbox that must be importable for the decoder to run
    refresh:       hook applied to cached headers whose size can grow on disk
    """
    tag: str
    decoder: Decoder
    cache_default: bool = False
    segmented: bool = False
    requires: str | None = None
    refresh: RefreshHook | None = None

    @property
    def name(self) -> str:
        return getattr(self.decoder, "__qualname__", repr(self.decoder))

    def decode(self, files: DatasetFiles, options: ReadOptions) -> RawHeader:
        """Run the decoder; low-level failures come back as DecodeError."""
        try:
            raw = self.decoder(files, options)
        except ReadError:
            raise
        except FileNotFoundError as e:
            raise NotFound(f"{self.tag}: {e}") from e
        except _DECODE_FAILURES as e:
            raise DecodeError(f"{self.tag}: could not decode '{files.header}': {e}") from e

        if not isinstance(raw, RAW_HEADER_TYPES):
            raise DecodeError(
                f"{self.tag}: decoder {self.name} returned {type(raw).__name__}, not a raw header."
            )
        return raw


class DecoderRegistry:
    """Mapping from format tag to decoder.

    New formats are added with the ``register`` decorator; the dispatcher
    itself never changes.
    """

    def __init__(self) -> None:
        self._entries: dict[str, DecoderEntry] = {}

    def register(
        self,
        *tags: str,
        cache_default: bool = False,
        segmented: bool = False,
        requires: str | None = None,
        refresh: RefreshHook | None = None,
    ) -> Callable[[Decoder], Decoder]:
        if not tags:
            raise ValueError("register() needs at least one format tag.")

        def deco(func: Decoder) -> Decoder:
            for tag in tags:
                if tag in self._entries:
                    raise ValueError(f"Format tag '{tag}' is already registered.")
                self._entries[tag] = DecoderEntry(
                    tag=tag,
                    decoder=func,
                    cache_default=cache_default,
                    segmented=segmented,
                    requires=requires,
                    refresh=refresh,
                )
            return func

        return deco

    def __contains__(self, tag: object) -> bool:
        return tag in self._entries

    def tags(self) -> list[str]:
        return sorted(self._entries)

    def lookup(self, tag: str) -> DecoderEntry:
        try:
            return self._entries[tag]
        except KeyError:
            raise UnsupportedFormat(f"No decoder registered for format '{tag}'.") from None

    def _usable(self, tag: str) -> tuple[DecoderEntry | None, str]:
        entry = self._entries.get(tag)
        if entry is None:
            return None, f"no decoder registered for format '{tag}'"
        if entry.requires is not None and not toolbox.available(entry.requires):
            return None, f"format '{tag}' requires '{entry.requires}', which is not installed"
        return entry, ""

    def resolve(self, tag: str, options: ReadOptions | None = None) -> DecoderEntry:
        """Return the entry that will decode ``tag``, trying the fallback format second."""
        options = options or ReadOptions()
        entry, reason = self._usable(tag)
        if entry is not None:
            return entry

        fallback = options.fallback_format
        if fallback and fallback != tag:
            fb_entry, fb_reason = self._usable(fallback)
            if fb_entry is not None:
                logger.info("%s; using fallback decoder '%s'", reason, fallback)
                return fb_entry
            raise UnsupportedFormat(f"{reason}; fallback failed: {fb_reason}.")
        raise UnsupportedFormat(f"{reason[0].upper()}{reason[1:]}.")

    def decode(self, tag: str, files: DatasetFiles, options: ReadOptions | None = None) -> RawHeader:
        options = options or ReadOptions()
        return self.resolve(tag, options).decode(files, options)

    def copy(self, exclude: Iterable[str] = ()) -> "DecoderRegistry":
        """A new registry holding the same entries, minus ``exclude``."""
        out = DecoderRegistry()
        skip = set(exclude)
        out._entries = {k: v for k, v in self._entries.items() if k not in skip}
        return out


default_registry = DecoderRegistry()
