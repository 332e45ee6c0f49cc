# recheader/io/files.py
"""
Header/data path separation and file identity.

Several formats keep the header in a file other than the one the caller
names (a CTF dataset directory, a BrainVision payload next to its .vhdr).
dataset_files() resolves those paths once so that decoders receive them
ready-made.
"""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from recheader.core.exceptions import DecodeError, NotFound
from recheader.io.identify import identify

logger = logging.getLogger(__name__)

_CTF_TAGS = ("ctf_ds", "ctf_res4", "ctf_meg4")
_BRAINVISION_TAGS = (
    "brainvision_vhdr",
    "brainvision_vmrk",
    "brainvision_eeg",
    "brainvision_seg",
    "brainvision_dat",
)

_DATAFILE_RE = re.compile(r"^\s*DataFile\s*=\s*(?P<name>.+?)\s*$", re.MULTILINE)
_MEG4_RE = re.compile(r"^(?P<stem>.+?)\.(?:(?P<n>\d+)_)?meg4$", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class DatasetFiles:
    """
    Resolved locations of one recording.

    dataset: what the caller asked for (directory or file)
    header:  file holding the header
    data:    file holding the samples
    tag:     format tag, re-identified from the header when it differs
    """
    dataset: Path
    header: Path
    data: Path
    tag: str


@dataclass(frozen=True, slots=True)
class FileStat:
    path: str
    size: int
    mtime_ns: int


# Snapshot of every file a header was built from; compared by value.
FileIdentity = tuple[FileStat, ...]


def _ctf_files(path: Path) -> tuple[Path, Path, Path]:
    if path.is_dir():
        dataset = path
        res4 = dataset / f"{dataset.stem}.res4"
        if not res4.exists():
            found = sorted(dataset.glob("*.res4"))
            if not found:
                raise NotFound(f"No .res4 file in CTF dataset '{dataset}'")
            res4 = found[0]
    else:
        dataset = path.parent
        m = _MEG4_RE.match(path.name)
        stem = m.group("stem") if m else path.stem
        res4 = dataset / f"{stem}.res4"
    return dataset, res4, res4.with_suffix(".meg4")


def _brainvision_files(path: Path) -> tuple[Path, Path]:
    header = path if path.suffix.lower() == ".vhdr" else path.with_suffix(".vhdr")
    if not header.exists():
        raise NotFound(f"BrainVision header '{header}' not found")
    with open(header, "rb") as f:
        text = f.read().decode("latin-1")
    m = _DATAFILE_RE.search(text)
    data = header.parent / m.group("name") if m else header.with_suffix(".eeg")
    return header, data


def dataset_files(path: str | Path, tag: str) -> DatasetFiles:
    """Resolve the header and data files that make up the recording at ``path``."""
    path = Path(path)
    if tag in _CTF_TAGS:
        dataset, header, data = _ctf_files(path)
        return DatasetFiles(dataset=dataset, header=header, data=data, tag="ctf_ds")

    if tag in _BRAINVISION_TAGS:
        header, data = _brainvision_files(path)
    else:
        header = data = path

    if header != path:
        new_tag = identify(header)
        logger.debug("Reading header '%s' for '%s' (%s -> %s)", header, path, tag, new_tag)
        tag = new_tag
    return DatasetFiles(dataset=path, header=header, data=data, tag=tag)


def ctf_payload_files(dataset: Path, stem: str) -> list[Path]:
    """Return ``<stem>.meg4`` followed by ``<stem>.1_meg4``, ``<stem>.2_meg4``, ...

    The numbered parts are contiguous from 1; the list stops at the first gap.
    """
    first = dataset / f"{stem}.meg4"
    if not first.exists():
        return []
    files = [first]
    n = 1
    while True:
        part = dataset / f"{stem}.{n}_meg4"
        if not part.exists():
            break
        files.append(part)
        n += 1
    return files


def file_identity(paths: Iterable[str | Path]) -> FileIdentity:
    """Stat every file in ``paths``; any change in size or mtime changes the identity."""
    stats = []
    for p in paths:
        try:
            st = os.stat(p)
        except FileNotFoundError as e:
            raise NotFound(f"No such file or directory: '{p}'") from e
        stats.append(FileStat(path=str(Path(p).resolve()), size=st.st_size, mtime_ns=st.st_mtime_ns))
    return tuple(stats)


def samples_from_payload(
    size: int,
    channel_count: int,
    bytes_per_sample: int,
    header_bytes: int = 0,
    extra_bytes_per_sample: int = 0,
) -> int:
    """Number of whole samples in a payload of ``size`` bytes.

    Each sample occupies ``channel_count * bytes_per_sample`` bytes plus
    ``extra_bytes_per_sample`` (e.g. a state vector); ``header_bytes`` are
    skipped first. A trailing partial sample is ignored.
    """
    stride = channel_count * bytes_per_sample + extra_bytes_per_sample
    if stride <= 0:
        raise DecodeError(
            f"Cannot derive sample count: {channel_count} channels x {bytes_per_sample} bytes per sample."
        )
    if size < header_bytes:
        raise DecodeError(f"File of {size} bytes is shorter than its {header_bytes}-byte header.")
    return (size - header_bytes) // stride
