# recheader/io/decoders/mdf.py
"""
ASAM MDF (v3/v4) files through asammdf.

Channels are indexed the way Concerto exports them: the measurement name
("RecResult[1]", "D[3]", ...) is the last component of the channel source
path or of the channel group acquisition name, and one logical channel is
the concatenation of its segments in index order.
"""
from __future__ import annotations

import logging
import re
from collections import defaultdict
from pathlib import Path

import numpy as np

from recheader.core.exceptions import DecodeError, InconsistentHeader
from recheader.core.raw import MdfChannel, MdfRaw, MdfSegment
from recheader.io.files import DatasetFiles
from recheader.io.options import ReadOptions
from recheader.io.registry import default_registry

logger = logging.getLogger(__name__)

# Preferred measurement key when a logical channel exists under several keys.
DEFAULT_KEY = "RecResult"

_MASTER_NAMES = ("time", "t", "timestamps")

# Relative tolerance when comparing group sampling rates
RATE_RTOL = 1e-6

_MEAS_RE = re.compile(r"^(?P<key>[A-Za-z]+)(?:\[(?P<idx>\d+)\])?$")


def _parse_key_and_index(meas_name: str) -> tuple[str, int | None]:
    """Parse measurement name into (key, index).

    Examples
    --------
    "RecResult[1]" -> ("RecResult", 1)
    "D[3]"         -> ("D", 3)
    "Foo"          -> ("Foo", None)
    """
    m = _MEAS_RE.match(meas_name)
    if not m:
        return meas_name, None
    idx = m.group("idx")
    return m.group("key"), int(idx) if idx is not None else None


def _extract_measurement_name(source_path: str) -> str:
    """Last component of a path like ".../RecResult[1]"."""
    if not source_path:
        return ""
    return source_path.replace("\\", "/").split("/")[-1]


def _source_path(channel, group) -> str:
    # asammdf exposes the source either as a string or as a SourceInformation
    source = getattr(channel, "source_path", None) or getattr(channel, "source", None)
    if isinstance(source, str) and source:
        return source
    if source is not None:
        path = getattr(source, "path", "") or ""
        if path:
            return path
    return getattr(getattr(group, "channel_group", None), "acq_name", "") or ""


def _group_rate(mdf, group_index: int) -> float | None:
    t = np.asarray(mdf.get_master(group_index), dtype=np.float64)
    if t.size < 2:
        return None
    step = float(np.median(np.diff(t)))
    if step <= 0:
        raise InconsistentHeader(f"Group {group_index} has non-increasing timestamps.")
    return 1.0 / step


def read_mdf_header(path: Path) -> MdfRaw:
    from asammdf import MDF

    mdf = MDF(str(path))
    try:
        version = str(mdf.version)
        masters = getattr(mdf, "masters_db", {}) or {}
        temp_segments: dict[tuple[str, str], list[MdfSegment]] = defaultdict(list)
        group_rates: dict[int, float] = {}

        for group_index, group in enumerate(mdf.groups):
            n_samples = int(group.channel_group.cycles_nr)
            data_channels = [
                (channel_index, channel)
                for channel_index, channel in enumerate(group.channels)
                if channel_index != masters.get(group_index)
                and channel.name.lower() not in _MASTER_NAMES
            ]
            if not data_channels or n_samples == 0:
                continue

            rate = _group_rate(mdf, group_index)
            if rate is not None:
                group_rates[group_index] = rate

            for channel_index, channel in data_channels:
                source_path = _source_path(channel, group)
                meas_name = _extract_measurement_name(source_path)
                key, idx = _parse_key_and_index(meas_name)
                temp_segments[(key, channel.name)].append(
                    MdfSegment(
                        measurement_name=meas_name,
                        key=key,
                        index=idx,
                        source_path=source_path,
                        channel_name=channel.name,
                        unit=getattr(channel, "unit", None) or None,
                        n_samples=n_samples,
                        group_index=group_index,
                        channel_index=channel_index,
                    )
                )
    finally:
        mdf.close()

    if not temp_segments:
        raise DecodeError(f"'{path}' contains no data channels.")
    if not group_rates:
        raise DecodeError(f"'{path}': no group has enough samples to derive a sampling rate.")

    rates = sorted(group_rates.values())
    if not np.isclose(rates[0], rates[-1], rtol=RATE_RTOL, atol=0.0):
        raise InconsistentHeader(
            f"'{path}': channel groups with different sampling rates "
            f"({rates[0]:g} Hz to {rates[-1]:g} Hz) are not supported."
        )

    by_key_name: dict[tuple[str, str], MdfChannel] = {}
    for (key, ch_name), segments in temp_segments.items():
        ordered = sorted(segments, key=lambda s: (s.index if s.index is not None else -1))
        by_key_name[(key, ch_name)] = MdfChannel(
            logical_name=ch_name,
            key=key,
            segments=tuple(ordered),
            unit=ordered[0].unit,
        )

    # one view per logical name, preferring DEFAULT_KEY
    logical: dict[str, MdfChannel] = {}
    for (key, ch_name), info in by_key_name.items():
        if ch_name not in logical or key == DEFAULT_KEY:
            logical[ch_name] = info

    totals = {info.n_samples for info in logical.values()}
    if len(totals) > 1:
        raise InconsistentHeader(
            f"'{path}': logical channels hold different numbers of samples {sorted(totals)}."
        )

    return MdfRaw(
        path=path,
        version=version,
        channels=tuple(logical.values()),
        sampling_rate=rates[0],
        group_rates=group_rates,
    )


@default_registry.register("mdf", requires="asammdf", cache_default=True)
def decode_mdf(files: DatasetFiles, options: ReadOptions) -> MdfRaw:
    return read_mdf_header(files.header)
