# recheader/io/decoders/bci2000.py
"""
BCI2000 .dat files.

The header is text: a first line of ``Key= value`` pairs, a state vector
section and a parameter section, followed by binary samples. Each sample
holds SourceCh values plus a StatevectorLen-byte state vector.
"""
from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from urllib.parse import unquote

from recheader.core.exceptions import DecodeError, InconsistentHeader
from recheader.core.raw import Bci2000Raw
from recheader.io.files import DatasetFiles, samples_from_payload
from recheader.io.options import ReadOptions
from recheader.io.registry import default_registry

logger = logging.getLogger(__name__)

SAMPLE_BYTES = {
    "int16": 2,
    "int32": 4,
    "float32": 4,
}

_FIRST_LINE_RE = re.compile(r"(\w+)=\s*(\S+)")
_SECTION_RE = re.compile(r"^\[\s*(.+?)\s*\]\s*$")
_RATE_RE = re.compile(r"^\s*([0-9.eE+-]+)\s*(?:Hz)?\s*$")


def _first_line(line: str) -> dict[str, str]:
    return {k: v for k, v in _FIRST_LINE_RE.findall(line)}


def _parameter(line: str) -> tuple[str, list[str]] | None:
    """Split ``Section:Sub type Name= values... // comment`` into (Name, values)."""
    body = line.split("//", 1)[0]
    tokens = body.split()
    for i, tok in enumerate(tokens):
        if tok.endswith("=") and i >= 2:
            return tok[:-1], [unquote(t) for t in tokens[i + 1:]]
    return None


def _list_values(values: list[str]) -> list[str]:
    # "ChannelNames= 3 C3 Cz C4 ..." -> ["C3", "Cz", "C4"]
    if not values:
        return []
    count = int(values[0])
    items = values[1:1 + count]
    if len(items) != count:
        raise DecodeError(f"List parameter announces {count} entries but holds {len(items)}.")
    return items


def _sampling_rate(value: str) -> float:
    m = _RATE_RE.match(value)
    if not m:
        raise DecodeError(f"Cannot read SamplingRate {value!r}.")
    return float(m.group(1))


def read_bci2000_header(path: Path) -> Bci2000Raw:
    size = os.path.getsize(path)
    with open(path, "rb") as f:
        first = f.readline().decode("latin-1")
        fields = _first_line(first)
        try:
            header_len = int(fields["HeaderLen"])
            source_ch = int(fields["SourceCh"])
            statevector_len = int(fields["StatevectorLen"])
        except KeyError as e:
            raise DecodeError(f"'{path}': first header line lacks {e.args[0]}.") from e
        rest = f.read(max(header_len - len(first.encode("latin-1")), 0)).decode("latin-1")

    data_format = fields.get("DataFormat", "int16").lower()
    if data_format not in SAMPLE_BYTES:
        raise DecodeError(f"'{path}': unsupported DataFormat {data_format}.")

    states: list[str] = []
    parameters: dict[str, list[str]] = {}
    section = ""
    for line in rest.splitlines():
        if not line.strip():
            continue
        m = _SECTION_RE.match(line)
        if m:
            section = m.group(1).lower()
            continue
        if section.startswith("state"):
            states.append(line.split()[0])
        elif section.startswith("parameter"):
            parsed = _parameter(line)
            if parsed is not None:
                parameters[parsed[0]] = parsed[1]

    if "SamplingRate" not in parameters or not parameters["SamplingRate"]:
        raise DecodeError(f"'{path}' has no SamplingRate parameter.")
    sampling_rate = _sampling_rate(parameters["SamplingRate"][0])

    if parameters.get("SourceCh"):
        declared = int(parameters["SourceCh"][0])
        if declared != source_ch:
            raise InconsistentHeader(
                f"'{path}': first line says SourceCh={source_ch}, parameter section says {declared}."
            )

    channel_names: tuple[str, ...] = ()
    if parameters.get("ChannelNames"):
        channel_names = tuple(_list_values(parameters["ChannelNames"]))
        if channel_names and len(channel_names) != source_ch:
            raise InconsistentHeader(
                f"'{path}': {len(channel_names)} channel names for SourceCh={source_ch}."
            )

    n_samples = samples_from_payload(
        size,
        source_ch,
        SAMPLE_BYTES[data_format],
        header_bytes=header_len,
        extra_bytes_per_sample=statevector_len,
    )
    logger.debug("'%s': %d channels, %d samples at %g Hz", path, source_ch, n_samples, sampling_rate)

    return Bci2000Raw(
        path=path,
        header_len=header_len,
        source_ch=source_ch,
        statevector_len=statevector_len,
        data_format=data_format,
        sampling_rate=sampling_rate,
        channel_names=channel_names,
        n_samples=n_samples,
        states=tuple(states),
        parameters={k: " ".join(v) for k, v in parameters.items()},
    )


@default_registry.register("bci2000_dat", cache_default=True)
def decode_bci2000(files: DatasetFiles, options: ReadOptions) -> Bci2000Raw:
    return read_bci2000_header(files.header)
