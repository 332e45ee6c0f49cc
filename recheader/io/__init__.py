# recheader/io/__init__.py
from . import decoders
from .cache import CacheEntry, HeaderCache, default_cache
from .files import DatasetFiles, FileIdentity, dataset_files, file_identity, samples_from_payload
from .identify import identify, parse_buffer_uri
from .join import discover_segments, join
from .normalize import normalize
from .options import ReadOptions, get_option
from .read import read_header
from .realtime import fetch_header, request_header
from .registry import Decoder, DecoderEntry, DecoderRegistry, default_registry
from .toolbox import available

__all__ = [
    "decoders",
    "read_header",
    "identify",
    "parse_buffer_uri",
    "dataset_files",
    "file_identity",
    "samples_from_payload",
    "DatasetFiles",
    "FileIdentity",
    "normalize",
    "discover_segments",
    "join",
    "HeaderCache",
    "CacheEntry",
    "default_cache",
    "fetch_header",
    "request_header",
    "ReadOptions",
    "get_option",
    "Decoder",
    "DecoderEntry",
    "DecoderRegistry",
    "default_registry",
    "available",
]
