# recheader/io/decoders/edf.py
"""
EDF and BioSemi BDF headers.

Both share one layout: a 256-byte fixed ASCII block followed by 256 bytes per
signal, stored field by field (all labels, then all transducers, ...).
BDF differs in its version field (0xFF + "BIOSEMI") and in 24-bit samples.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path

from recheader.core.exceptions import DecodeError, InconsistentHeader
from recheader.core.raw import EdfRaw, EdfSignal
from recheader.io.files import DatasetFiles, samples_from_payload
from recheader.io.options import ReadOptions
from recheader.io.registry import default_registry

logger = logging.getLogger(__name__)

FIXED_BYTES = 256
BYTES_PER_SIGNAL = 256
BDF_VERSION = b"\xffBIOSEMI"

# (name, width) of each per-signal field, in file order
_SIGNAL_FIELDS = (
    ("label", 16),
    ("transducer", 80),
    ("physical_dim", 8),
    ("physical_min", 8),
    ("physical_max", 8),
    ("digital_min", 8),
    ("digital_max", 8),
    ("prefiltering", 80),
    ("samples_per_record", 8),
    ("reserved", 32),
)


def _text(raw: bytes) -> str:
    return raw.decode("latin-1").strip()


def _number(raw: bytes, what: str) -> float:
    text = _text(raw)
    try:
        return float(text)
    except ValueError as e:
        raise DecodeError(f"EDF field '{what}' is not numeric: {text!r}") from e


def _split_signal_block(block: bytes, ns: int) -> dict[str, list[bytes]]:
    out: dict[str, list[bytes]] = {}
    offset = 0
    for name, width in _SIGNAL_FIELDS:
        out[name] = [block[offset + i * width: offset + (i + 1) * width] for i in range(ns)]
        offset += width * ns
    return out


def read_edf_header(path: os.PathLike | str) -> EdfRaw:
    """Parse the header of one EDF or BDF file."""
    size = os.path.getsize(path)
    with open(path, "rb") as f:
        fixed = f.read(FIXED_BYTES)
        if len(fixed) < FIXED_BYTES:
            raise DecodeError(f"'{path}' is too short for an EDF header ({len(fixed)} bytes).")
        ns = int(_number(fixed[252:256], "number of signals"))
        if ns <= 0:
            raise DecodeError(f"'{path}' declares {ns} signals.")
        block = f.read(BYTES_PER_SIGNAL * ns)
        if len(block) < BYTES_PER_SIGNAL * ns:
            raise DecodeError(f"'{path}' is truncated inside the signal header block.")

    is_bdf = fixed[:8] == BDF_VERSION
    bytes_per_sample = 3 if is_bdf else 2

    header_bytes = int(_number(fixed[184:192], "header bytes"))
    expected = FIXED_BYTES + BYTES_PER_SIGNAL * ns
    if header_bytes != expected:
        raise InconsistentHeader(
            f"'{path}' declares a {header_bytes}-byte header but {ns} signals need {expected} bytes."
        )

    fields = _split_signal_block(block, ns)
    signals = tuple(
        EdfSignal(
            label=_text(fields["label"][i]),
            transducer=_text(fields["transducer"][i]),
            physical_dim=_text(fields["physical_dim"][i]),
            physical_min=_number(fields["physical_min"][i], "physical minimum"),
            physical_max=_number(fields["physical_max"][i], "physical maximum"),
            digital_min=_number(fields["digital_min"][i], "digital minimum"),
            digital_max=_number(fields["digital_max"][i], "digital maximum"),
            prefiltering=_text(fields["prefiltering"][i]),
            samples_per_record=int(_number(fields["samples_per_record"][i], "samples per record")),
        )
        for i in range(ns)
    )

    duration = _number(fixed[244:252], "record duration")
    if duration <= 0:
        raise DecodeError(f"'{path}' has a non-positive record duration ({duration}).")

    data_signals = [s for s in signals if not s.is_annotation]
    if not data_signals:
        raise DecodeError(f"'{path}' contains only annotation signals.")
    rates = {s.samples_per_record for s in data_signals}
    if len(rates) > 1:
        raise InconsistentHeader(
            f"'{path}': channels with different sampling rate not supported "
            f"(samples per record: {sorted(rates)})."
        )

    num_records = int(_number(fixed[236:244], "number of data records"))
    if num_records < 0:
        # still being written; count the records that are on disk
        per_record = sum(s.samples_per_record for s in signals)
        num_records = samples_from_payload(size, per_record, bytes_per_sample, header_bytes)
        logger.debug("'%s': number of records unknown, %d found in payload", path, num_records)

    return EdfRaw(
        path=Path(path),
        version=fixed[:8].decode("latin-1"),
        patient=_text(fixed[8:88]),
        recording=_text(fixed[88:168]),
        start_date=_text(fixed[168:176]),
        start_time=_text(fixed[176:184]),
        header_bytes=header_bytes,
        reserved=_text(fixed[192:236]),
        num_records=num_records,
        record_duration=duration,
        signals=signals,
        bytes_per_sample=bytes_per_sample,
    )


@default_registry.register("edf", "biosemi_bdf", segmented=True)
def decode_edf(files: DatasetFiles, options: ReadOptions) -> EdfRaw:
    return read_edf_header(files.header)
