# test/test_exceptions.py
import pytest

from recheader.core import (
    DecodeError,
    InconsistentHeader,
    InconsistentSegments,
    InvalidHeader,
    InvalidOptions,
    JoinError,
    NotFound,
    ReadError,
    RealtimeConnectionError,
    UnsupportedFormat,
)


def test_exception_inheritance_read_error():
    for exc in (
        InvalidHeader,
        InvalidOptions,
        NotFound,
        UnsupportedFormat,
        DecodeError,
        InconsistentHeader,
        JoinError,
        InconsistentSegments,
        RealtimeConnectionError,
    ):
        assert issubclass(exc, ReadError)


def test_exception_inheritance_builtins():
    assert issubclass(NotFound, FileNotFoundError)
    assert issubclass(InvalidOptions, ValueError)
    assert issubclass(RealtimeConnectionError, ConnectionError)
    assert issubclass(RealtimeConnectionError, OSError)


def test_inconsistent_segments_is_join_and_header_error():
    assert issubclass(InconsistentSegments, JoinError)
    assert issubclass(InconsistentSegments, InconsistentHeader)


def test_not_found_can_be_caught_as_file_not_found():
    with pytest.raises(FileNotFoundError):
        raise NotFound("missing.edf")
