# recheader/io/identify.py
"""
Format identification.

identify() maps a path or URI onto a format tag. It only looks at the URI
scheme, the filesystem entry, the first bytes of a file and its extension;
it never decodes a header.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from urllib.parse import urlsplit

from recheader.core.exceptions import NotFound, UnsupportedFormat

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"

# Default TCP port of a FieldTrip-style acquisition buffer.
DEFAULT_BUFFER_PORT = 1972

# URI scheme -> tag; these resources are valid without a filesystem entry.
URI_SCHEMES = {
    "buffer": "fcdc_buffer",
    "shm": "ctf_shm",
    "mysql": "fcdc_mysql",
}

_MAGIC_READ = 64

_BRAINVISION_PAYLOAD = {
    ".eeg": "brainvision_eeg",
    ".seg": "brainvision_seg",
    ".dat": "brainvision_dat",
}

_EXTENSIONS = {
    ".edf": "edf",
    ".bdf": "biosemi_bdf",
    ".vhdr": "brainvision_vhdr",
    ".vmrk": "brainvision_vmrk",
    ".ncs": "neuralynx_ncs",
    ".ttl": "neuralynx_ttl",
    ".tsl": "neuralynx_tsl",
    ".tsh": "neuralynx_tsh",
    ".res4": "ctf_res4",
    ".meg4": "ctf_meg4",
    ".mf4": "mdf",
    ".mdf": "mdf",
}

_CTF_MAGIC = re.compile(rb"^MEG4\d(RS|CP)")


def _scheme(path_or_uri: str) -> str | None:
    m = re.match(r"^([A-Za-z][A-Za-z0-9+.-]*)://", path_or_uri)
    return m.group(1).lower() if m else None


def parse_buffer_uri(uri: str) -> tuple[str, int]:
    """Split ``buffer://host:port`` into (host, port).

    A missing host means localhost, a missing port means 1972.
    """
    parts = urlsplit(uri)
    if parts.scheme.lower() != "buffer":
        raise UnsupportedFormat(f"Not a buffer URI: {uri!r}")
    try:
        port = parts.port
    except ValueError as e:
        raise UnsupportedFormat(f"Bad port in buffer URI {uri!r}: {e}") from e
    host = parts.hostname or "localhost"
    if port is None:
        port = DEFAULT_BUFFER_PORT
    return host, port


def _from_magic(head: bytes) -> str | None:
    if head.startswith(b"\xffBIOSEMI"):
        return "biosemi_bdf"
    if head.startswith(b"0       "):
        return "edf"
    if head.startswith(b"HeaderLen=") or head.startswith(b"BCI2000V="):
        return "bci2000_dat"
    m = _CTF_MAGIC.match(head)
    if m:
        return "ctf_res4" if m.group(1) == b"RS" else "ctf_meg4"
    if head.startswith(b"MDF     ") or head.startswith(b"UnFinMF "):
        return "mdf"
    if head.startswith(b"######## Neuralynx"):
        return "neuralynx_ncs"
    if head.startswith(b"Brain Vision Data Exchange Header File") or head.startswith(
        b"BrainVision Data Exchange Header File"
    ):
        return "brainvision_vhdr"
    return None


def _is_ctf_dataset(path: Path) -> bool:
    if path.suffix.lower() == ".ds":
        return True
    return any(p.suffix.lower() == ".res4" for p in path.iterdir())


def identify(path_or_uri: str | Path) -> str:
    """Return the format tag of ``path_or_uri``.

    Raises NotFound when the target neither exists nor uses a recognised
    network or shared-memory scheme.
    """
    text = str(path_or_uri)
    scheme = _scheme(text)
    if scheme is not None:
        if scheme in URI_SCHEMES:
            return URI_SCHEMES[scheme]
        logger.debug("Unrecognised URI scheme '%s' in %s", scheme, text)
        return UNKNOWN

    path = Path(text)
    if not path.exists():
        raise NotFound(f"No such file or directory: '{path}'")

    if path.is_dir():
        return "ctf_ds" if _is_ctf_dataset(path) else UNKNOWN

    with open(path, "rb") as f:
        head = f.read(_MAGIC_READ)

    tag = _from_magic(head)
    if tag is not None:
        return tag

    ext = path.suffix.lower()
    if ext in _BRAINVISION_PAYLOAD:
        if path.with_suffix(".vhdr").exists():
            return _BRAINVISION_PAYLOAD[ext]
        return UNKNOWN
    return _EXTENSIONS.get(ext, UNKNOWN)
