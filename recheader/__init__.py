# recheader/__init__.py
"""
recheader: read the header of electrophysiology and MEG recordings.

    >>> from recheader import read_header
    >>> hdr = read_header("subject01.ds")
    >>> hdr.sampling_rate, hdr.channel_count, hdr.labels[:3]
"""
import logging

from recheader.core import *  # noqa: F401,F403
from recheader.core import __all__ as _core_all
from recheader.io import (
    HeaderCache,
    ReadOptions,
    fetch_header,
    identify,
    normalize,
    read_header,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = list(_core_all) + [
    "HeaderCache",
    "ReadOptions",
    "fetch_header",
    "identify",
    "normalize",
    "read_header",
]
