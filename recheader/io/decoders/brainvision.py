# recheader/io/decoders/brainvision.py
"""BrainVision Recorder / Analyzer headers (.vhdr, with .eeg/.dat/.seg payload)."""
from __future__ import annotations

import configparser
import os
import re
from pathlib import Path

from recheader.core.exceptions import DecodeError, InconsistentHeader, NotFound
from recheader.core.raw import BrainVisionChannel, BrainVisionRaw
from recheader.io.files import DatasetFiles, samples_from_payload
from recheader.io.options import ReadOptions
from recheader.io.registry import default_registry

BINARY_SAMPLE_BYTES = {
    "INT_16": 2,
    "UINT_16": 2,
    "INT_32": 4,
    "IEEE_FLOAT_32": 4,
}

DEFAULT_UNIT = "µV"

INI_SECTIONS = ("Common Infos", "Binary Infos", "ASCII Infos", "Channel Infos")

_SECTION_RE = re.compile(r"^\[([^\]]+)\][ \t]*\r?$", re.MULTILINE)


def _read_text(path: Path) -> str:
    data = path.read_bytes()
    if b"Codepage=UTF-8" in data:
        return data.decode("utf-8")
    return data.decode("latin-1")


def _parse_ini(text: str) -> configparser.ConfigParser:
    # the identification line precedes the first section; free-text sections
    # such as [Comment] are not INI and are dropped
    chunks = _SECTION_RE.split(text)
    if len(chunks) < 3:
        raise DecodeError("BrainVision header has no sections.")
    kept = [
        f"[{name}]\n{body}"
        for name, body in zip(chunks[1::2], chunks[2::2])
        if name.strip() in INI_SECTIONS
    ]
    parser = configparser.ConfigParser(
        interpolation=None,
        strict=False,
        comment_prefixes=(";",),
        inline_comment_prefixes=None,
    )
    parser.optionxform = str
    parser.read_string("\n".join(kept))
    return parser


def _parse_channel(entry: str) -> BrainVisionChannel:
    # "Fp1,,0.1,µV"; commas inside names are written as "\1"
    parts = entry.split(",")
    name = parts[0].replace(r"\1", ",").strip()
    reference = parts[1].replace(r"\1", ",").strip() if len(parts) > 1 else ""
    resolution_text = parts[2].strip() if len(parts) > 2 else ""
    resolution = float(resolution_text) if resolution_text else 1.0
    unit = parts[3].strip() if len(parts) > 3 and parts[3].strip() else DEFAULT_UNIT
    return BrainVisionChannel(name=name, reference=reference, resolution=resolution, unit=unit)


def _ascii_samples(data_path: Path, orientation: str, n_channels: int) -> int:
    with open(data_path, "r", encoding="latin-1") as f:
        lines = [ln for ln in f if ln.strip()]
    if not lines:
        return 0
    if orientation == "VECTORIZED":
        # one line per channel: "Fp1 1.0 2.0 ..."
        return len(lines[0].split()) - 1
    first = lines[0].split()
    try:
        [float(v) for v in first]
    except ValueError:
        # header line with channel names
        return len(lines) - 1
    if len(first) != n_channels:
        raise InconsistentHeader(
            f"'{data_path}' has {len(first)} columns for {n_channels} channels."
        )
    return len(lines)


def read_vhdr(header_path: Path, data_path: Path | None = None) -> BrainVisionRaw:
    ini = _parse_ini(_read_text(header_path))
    if not ini.has_section("Common Infos"):
        raise DecodeError(f"'{header_path}' has no [Common Infos] section.")
    common = dict(ini.items("Common Infos"))

    if data_path is None:
        data_path = header_path.parent / common.get("DataFile", header_path.with_suffix(".eeg").name)
    marker = common.get("MarkerFile")
    marker_path = header_path.parent / marker if marker else None

    n_channels = int(common["NumberOfChannels"])
    sampling_interval = float(common["SamplingInterval"])
    if sampling_interval <= 0:
        raise DecodeError(f"'{header_path}' has SamplingInterval={sampling_interval}.")

    entries = dict(ini.items("Channel Infos")) if ini.has_section("Channel Infos") else {}
    channels = tuple(
        _parse_channel(entries[f"Ch{i}"]) for i in range(1, len(entries) + 1) if f"Ch{i}" in entries
    )
    if channels and len(channels) != n_channels:
        raise InconsistentHeader(
            f"'{header_path}' declares NumberOfChannels={n_channels} but lists {len(channels)} channels."
        )

    data_format = common.get("DataFormat", "BINARY").upper()
    orientation = common.get("DataOrientation", "MULTIPLEXED").upper()
    binary_format = None
    declared = int(common["DataPoints"]) if "DataPoints" in common else None

    if data_format == "BINARY":
        binary_format = (
            ini.get("Binary Infos", "BinaryFormat", fallback="INT_16").upper()
        )
        if binary_format not in BINARY_SAMPLE_BYTES:
            raise DecodeError(f"'{header_path}': unsupported BinaryFormat {binary_format}.")
        if data_path.exists():
            n_samples = samples_from_payload(
                os.path.getsize(data_path), n_channels, BINARY_SAMPLE_BYTES[binary_format]
            )
            if declared is not None and declared != n_samples:
                raise InconsistentHeader(
                    f"'{header_path}' declares DataPoints={declared} but the payload holds {n_samples} samples."
                )
        elif declared is not None:
            n_samples = declared
        else:
            raise NotFound(f"BrainVision data file '{data_path}' not found")
    elif data_format == "ASCII":
        if declared is not None:
            n_samples = declared
        elif data_path.exists():
            n_samples = _ascii_samples(data_path, orientation, n_channels)
        else:
            raise NotFound(f"BrainVision data file '{data_path}' not found")
    else:
        raise DecodeError(f"'{header_path}': unsupported DataFormat {data_format}.")

    n_trials = 1
    segment_points = common.get("SegmentDataPoints")
    if segment_points:
        per_trial = int(segment_points)
        if per_trial <= 0 or n_samples % per_trial:
            raise InconsistentHeader(
                f"'{header_path}': {n_samples} samples do not split into segments of {per_trial}."
            )
        n_trials = n_samples // per_trial
        n_samples = per_trial

    return BrainVisionRaw(
        header_path=header_path,
        data_path=data_path,
        marker_path=marker_path,
        data_format=data_format,
        orientation=orientation,
        binary_format=binary_format,
        sampling_interval_us=sampling_interval,
        n_channels=n_channels,
        channels=channels,
        n_samples=n_samples,
        n_samples_pre=0,
        n_trials=n_trials,
        common_infos=common,
    )


@default_registry.register(
    "brainvision_vhdr",
    "brainvision_eeg",
    "brainvision_seg",
    "brainvision_dat",
    "brainvision_vmrk",
)
def decode_brainvision(files: DatasetFiles, options: ReadOptions) -> BrainVisionRaw:
    data = files.data if files.data != files.header else None
    return read_vhdr(files.header, data)
