# recheader/core/exceptions.py
from __future__ import annotations


class ReadError(Exception):
    """Base error for everything raised while acquiring a header."""


# ---- Construction errors ----
class InvalidHeader(ReadError):
    """Raised when a CanonicalHeader is constructed with invalid inputs."""


class InvalidOptions(ReadError, ValueError):
    """Raised when read options are malformed or hold values of the wrong kind."""


# ---- Resolution errors ----
class NotFound(ReadError, FileNotFoundError):
    """Raised when the target does not exist and is not a network resource."""


class UnsupportedFormat(ReadError):
    """Raised when no decoder (and no fallback decoder) handles a format tag."""


# ---- Decoding errors ----
class DecodeError(ReadError):
    """Raised when a decoder ran but the bytes did not match expectations."""


class InconsistentHeader(ReadError):
    """Raised when counts or labels contradict each other within one header."""


class JoinError(ReadError):
    """Raised when segment headers cannot be joined into one recording."""


class InconsistentSegments(JoinError, InconsistentHeader):
    """Raised when joined segments disagree on channels or sampling rate."""


# ---- Realtime errors (also behave like the builtin ConnectionError) ----
class RealtimeConnectionError(ReadError, ConnectionError):
    """Raised when a live buffer could not be queried for its header."""
