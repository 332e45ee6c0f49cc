# recheader/core/__init__.py
"""
Core domain objects for recheader.

This module defines the format-agnostic header model:
- CanonicalHeader: validated, normalised description of one recording
- ChannelType: classification of each channel
- SensorGeometry: coil positions/orientations for MEG-class recordings
- RawHeader: union of the format-native structures returned by decoders

The core layer is independent from I/O, sockets and decoding libraries.
"""

from .header import CanonicalHeader, ChannelType, SensorGeometry
from .raw import (
    RawHeader,
    RAW_HEADER_TYPES,
    EdfRaw,
    EdfSignal,
    BrainVisionRaw,
    BrainVisionChannel,
    NeuralynxRaw,
    NeuralynxTtlRaw,
    CtfRaw,
    CtfChannel,
    CtfCoil,
    Bci2000Raw,
    MdfRaw,
    MdfChannel,
    MdfSegment,
    BufferRaw,
)
from .exceptions import (
    ReadError,
    InvalidHeader,
    InvalidOptions,
    NotFound,
    UnsupportedFormat,
    DecodeError,
    InconsistentHeader,
    JoinError,
    InconsistentSegments,
    RealtimeConnectionError,
)


__all__ = [
    # canonical model
    "CanonicalHeader",
    "ChannelType",
    "SensorGeometry",

    # raw structures
    "RawHeader",
    "RAW_HEADER_TYPES",
    "EdfRaw",
    "EdfSignal",
    "BrainVisionRaw",
    "BrainVisionChannel",
    "NeuralynxRaw",
    "NeuralynxTtlRaw",
    "CtfRaw",
    "CtfChannel",
    "CtfCoil",
    "Bci2000Raw",
    "MdfRaw",
    "MdfChannel",
    "MdfSegment",
    "BufferRaw",

    # exceptions
    "ReadError",
    "InvalidHeader",
    "InvalidOptions",
    "NotFound",
    "UnsupportedFormat",
    "DecodeError",
    "InconsistentHeader",
    "JoinError",
    "InconsistentSegments",
    "RealtimeConnectionError",
]
