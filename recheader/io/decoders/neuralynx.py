# recheader/io/decoders/neuralynx.py
"""
Neuralynx continuous (.ncs) and TTL/timestamp (.ttl, .tsl, .tsh) files.

An NCS file is a 16 kB text header followed by fixed-size records:
uint64 timestamp (µs), uint32 channel, uint32 sampling frequency,
uint32 number of valid samples, then 512 int16 samples.
"""
from __future__ import annotations

import logging
import os
import struct
from pathlib import Path

from recheader.core.exceptions import DecodeError, InconsistentHeader
from recheader.core.raw import NeuralynxRaw, NeuralynxTtlRaw
from recheader.io.files import DatasetFiles, samples_from_payload
from recheader.io.options import ReadOptions
from recheader.io.registry import default_registry

logger = logging.getLogger(__name__)

NCS_HEADER_BYTES = 16 * 1024
NCS_SAMPLES_PER_RECORD = 512
NCS_RECORD = struct.Struct("<QIII")
NCS_RECORD_BYTES = NCS_RECORD.size + 2 * NCS_SAMPLES_PER_RECORD  # 1044

# TTL-style files: 8-byte header, one int32 per sample at a fixed clock
TTL_HEADER_BYTES = 8
TTL_SAMPLE_BYTES = 4
TTL_SAMPLING_FREQUENCY = 32556.0


def parse_text_header(block: bytes) -> dict[str, str]:
    """Collect ``-Key value`` lines of a Neuralynx text header."""
    out: dict[str, str] = {}
    text = block.split(b"\x00", 1)[0].decode("latin-1")
    for line in text.splitlines():
        line = line.strip()
        if not line.startswith("-"):
            continue
        key, _, value = line[1:].partition(" ")
        out[key] = value.strip()
    return out


def read_ncs_header(path: Path, label: str | None = None) -> NeuralynxRaw:
    """Read an NCS header. The channel is named by ``-AcqEntName``, else ``label``, else the file stem."""
    size = os.path.getsize(path)
    n_records = (size - NCS_HEADER_BYTES) // NCS_RECORD_BYTES
    if n_records < 1:
        raise DecodeError(f"'{path}' holds no complete NCS record ({size} bytes).")

    with open(path, "rb") as f:
        header = parse_text_header(f.read(NCS_HEADER_BYTES))
        first = NCS_RECORD.unpack(f.read(NCS_RECORD.size))
        f.seek(NCS_HEADER_BYTES + (n_records - 1) * NCS_RECORD_BYTES)
        last = NCS_RECORD.unpack(f.read(NCS_RECORD.size))

    first_ts, first_chan, first_freq, _ = first
    last_ts, last_chan, last_freq, _ = last
    if first_chan != last_chan:
        raise InconsistentHeader(
            f"'{path}': first record is channel {first_chan}, last record is channel {last_chan}."
        )
    if first_freq != last_freq:
        raise InconsistentHeader(
            f"'{path}': sampling frequency changes from {first_freq} to {last_freq} Hz."
        )
    if last_ts < first_ts:
        raise InconsistentHeader(f"'{path}': timestamps decrease ({first_ts} -> {last_ts}).")

    fs = float(header["SamplingFrequency"]) if "SamplingFrequency" in header else float(first_freq)
    ad_bit_volts = float(header["ADBitVolts"].split()[0]) if header.get("ADBitVolts") else None

    return NeuralynxRaw(
        path=path,
        header=header,
        n_records=n_records,
        samples_per_record=NCS_SAMPLES_PER_RECORD,
        sampling_frequency=fs,
        channel_number=first_chan,
        first_timestamp=first_ts,
        last_timestamp=last_ts,
        ad_bit_volts=ad_bit_volts,
        channel_label=header.get("AcqEntName") or label or path.stem,
    )


@default_registry.register("neuralynx_ncs", segmented=True)
def decode_ncs(files: DatasetFiles, options: ReadOptions) -> NeuralynxRaw:
    # continuation parts carry the first file of the recording as their dataset
    return read_ncs_header(files.header, label=files.dataset.stem)


@default_registry.register("neuralynx_ttl", "neuralynx_tsl", "neuralynx_tsh")
def decode_ttl(files: DatasetFiles, options: ReadOptions) -> NeuralynxTtlRaw:
    path = files.header
    n_samples = samples_from_payload(
        os.path.getsize(path), 1, TTL_SAMPLE_BYTES, header_bytes=TTL_HEADER_BYTES
    )
    logger.debug("'%s': %d samples at %.0f Hz", path, n_samples, TTL_SAMPLING_FREQUENCY)
    return NeuralynxTtlRaw(
        path=path,
        kind=path.suffix.lower().lstrip(".") or "ttl",
        n_samples=n_samples,
        sampling_frequency=TTL_SAMPLING_FREQUENCY,
    )
