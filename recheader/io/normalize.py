# recheader/io/normalize.py
"""
Map format-native raw headers onto CanonicalHeader.

Each RawHeader variant has exactly one mapper in ``_MAPPERS``; the table is
checked against the RawHeader union when this module is imported. Mappers
only move fields around. Label repair, type/unit inference and geometry are
shared and happen in normalize().
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, Sequence

import numpy as np

from recheader.core.exceptions import InconsistentHeader, UnsupportedFormat
from recheader.core.header import CanonicalHeader, ChannelType, SensorGeometry
from recheader.core.raw import (
    RAW_HEADER_TYPES,
    Bci2000Raw,
    BrainVisionRaw,
    BufferRaw,
    CtfChannel,
    CtfRaw,
    EdfRaw,
    MdfRaw,
    NeuralynxRaw,
    NeuralynxTtlRaw,
    RawHeader,
)
from recheader.io.chantype import ctf_type, infer_types, infer_units
from recheader.io.diagnostics import warn_once

logger = logging.getLogger(__name__)

FAKE_LABELS_MESSAGE = "creating fake channel names"

# Live buffers with at least this many channels (voxel streams) get numeric names silently.
FAKE_LABELS_QUIET_CHANNELS = 2000

GeometryBuilder = Callable[[tuple[str, ...]], "SensorGeometry | None"]


@dataclass
class _Mapped:
    sampling_rate: float
    channel_count: int
    samples_per_trial: int
    pre_trigger_samples: int = 0
    trial_count: int = 1
    labels: Sequence[str] = ()
    types: Sequence[ChannelType] | None = None
    units: Sequence[str | None] | None = None
    default_type: ChannelType = ChannelType.UNKNOWN
    first_timestamp: int | None = None
    timestamp_per_sample: float | None = None
    geometry: GeometryBuilder | None = None
    source: str = ""
    announce_fake_labels: bool = True


# ---- label repair ----
def repair_labels(
    labels: Sequence[str], channel_count: int, *, announce: bool = True
) -> tuple[tuple[str, ...], list[str]]:
    """Return unique, non-empty labels for ``channel_count`` channels plus diagnostics.

    - no labels at all: "1".."N", logged once per process unless ``announce`` is off
    - an empty label: its 1-based position
    - duplicates: every repeat gets "-2", "-3", ... in file order, skipping
      names that are already taken
    """
    diagnostics: list[str] = []
    labels = [str(lab).strip() for lab in labels]

    if not labels and channel_count > 0:
        if announce:
            warn_once("fake-channel-names", FAKE_LABELS_MESSAGE, log=logger)
            diagnostics.append(f"{FAKE_LABELS_MESSAGE} 1..{channel_count}")
        return tuple(str(i + 1) for i in range(channel_count)), diagnostics

    if len(labels) != channel_count:
        raise InconsistentHeader(f"{len(labels)} channel labels for {channel_count} channels.")

    for i, lab in enumerate(labels):
        if not lab:
            labels[i] = str(i + 1)
            diagnostics.append(f"channel {i + 1} has no label, using '{labels[i]}'")

    taken = set(labels)
    seen: set[str] = set()
    out: list[str] = []
    for lab in labels:
        if lab not in seen:
            seen.add(lab)
            out.append(lab)
            continue
        k = 2
        while f"{lab}-{k}" in taken or f"{lab}-{k}" in seen:
            k += 1
        new = f"{lab}-{k}"
        seen.add(new)
        out.append(new)
        diagnostics.append(f"duplicate channel label '{lab}' renamed to '{new}'")
    return tuple(out), diagnostics


def ctf_label(name: str) -> str:
    """Drop the site-specific suffix: 'MZC01-1706' -> 'MZC01'."""
    parts = [p for p in name.split("-") if p]
    return parts[0] if parts else name


# ---- geometry ----
def build_geometry(builder: GeometryBuilder, labels: tuple[str, ...]) -> tuple[SensorGeometry | None, list[str]]:
    """Run a geometry builder; failure leaves the header without geometry."""
    try:
        return builder(labels), []
    except Exception as e:
        msg = f"sensor geometry unavailable: {e}"
        logger.warning("sensor geometry unavailable: %s", e)
        return None, [msg]


def _ctf_geometry(channels: Sequence[CtfChannel], types: Sequence[ChannelType]) -> GeometryBuilder:
    def build(labels: tuple[str, ...]) -> SensorGeometry | None:
        geo_labels: list[str] = []
        positions, orientations, owner = [], [], []
        for label, ch, ctype in zip(labels, channels, types):
            if not ctype.is_magnetic:
                continue
            if not ch.coils:
                raise ValueError(f"MEG channel '{label}' has no coils")
            k = len(geo_labels)
            geo_labels.append(label)
            for coil in ch.coils:
                positions.append(tuple(float(v) for v in coil.position))
                orientations.append(tuple(float(v) for v in coil.orientation))
                owner.append(k)
        if not geo_labels:
            return None
        if not (np.all(np.isfinite(positions)) and np.all(np.isfinite(orientations))):
            raise ValueError("non-finite coil position or orientation")
        return SensorGeometry(
            labels=tuple(geo_labels),
            coil_positions=tuple(positions),
            coil_orientations=tuple(orientations),
            coil_channel=tuple(owner),
            unit="cm",
        )

    return build


# ---- mappers ----
def _map_edf(raw: EdfRaw) -> _Mapped:
    signals = raw.data_signals
    spr = signals[0].samples_per_record
    return _Mapped(
        sampling_rate=spr / raw.record_duration,
        channel_count=len(signals),
        samples_per_trial=raw.num_records * spr,
        labels=[s.label for s in signals],
        units=[s.physical_dim or None for s in signals],
        source=str(raw.path),
    )


def _map_brainvision(raw: BrainVisionRaw) -> _Mapped:
    return _Mapped(
        sampling_rate=1e6 / raw.sampling_interval_us,
        channel_count=raw.n_channels,
        samples_per_trial=raw.n_samples,
        pre_trigger_samples=raw.n_samples_pre,
        trial_count=raw.n_trials,
        labels=[c.name for c in raw.channels],
        units=[c.unit for c in raw.channels] if raw.channels else None,
        default_type=ChannelType.EEG,
        source=str(raw.header_path),
    )


def _map_ncs(raw: NeuralynxRaw) -> _Mapped:
    n_samples = raw.n_records * raw.samples_per_record
    if raw.n_records > 1:
        per_sample = (raw.last_timestamp - raw.first_timestamp) / ((raw.n_records - 1) * raw.samples_per_record)
    else:
        # timestamps are in microseconds
        per_sample = 1e6 / raw.sampling_frequency
    return _Mapped(
        sampling_rate=raw.sampling_frequency,
        channel_count=1,
        samples_per_trial=n_samples,
        labels=[raw.channel_label or raw.path.stem],
        types=[ChannelType.LFP],
        units=["V" if raw.ad_bit_volts is not None else None],
        first_timestamp=raw.first_timestamp,
        timestamp_per_sample=per_sample,
        source=str(raw.path),
    )


def _map_ttl(raw: NeuralynxTtlRaw) -> _Mapped:
    return _Mapped(
        sampling_rate=raw.sampling_frequency,
        channel_count=1,
        samples_per_trial=raw.n_samples,
        labels=[raw.kind],
        types=[ChannelType.TRIGGER],
        source=str(raw.path),
    )


_CTF_UNITS = {
    ChannelType.EEG: "V",
    ChannelType.ADC: "V",
    ChannelType.HEADLOC: "m",
}


def _ctf_channels(raw: CtfRaw) -> tuple[list[str], list[ChannelType], list[str | None]]:
    labels = [ctf_label(ch.name) for ch in raw.channels]
    types = [ctf_type(ch.sensor_type, lab) for ch, lab in zip(raw.channels, labels)]
    units = [_CTF_UNITS.get(t) for t in types]
    return labels, types, units


def _map_ctf(raw: CtfRaw) -> _Mapped:
    if len(raw.channels) != raw.no_channels:
        raise InconsistentHeader(
            f"res4 declares {raw.no_channels} channels but describes {len(raw.channels)}."
        )
    labels, types, units = _ctf_channels(raw)
    return _Mapped(
        sampling_rate=raw.sample_rate,
        channel_count=raw.no_channels,
        samples_per_trial=raw.no_samples,
        pre_trigger_samples=raw.pre_trig_pts,
        trial_count=raw.no_trials if raw.payload_trials is None else raw.payload_trials,
        labels=labels,
        types=types,
        units=units,
        geometry=_ctf_geometry(raw.channels, types),
        source=str(raw.dataset or raw.res4_path or ""),
    )


def _map_bci2000(raw: Bci2000Raw) -> _Mapped:
    return _Mapped(
        sampling_rate=raw.sampling_rate,
        channel_count=raw.source_ch,
        samples_per_trial=raw.n_samples,
        labels=raw.channel_names,
        source=str(raw.path),
    )


def _map_mdf(raw: MdfRaw) -> _Mapped:
    return _Mapped(
        sampling_rate=raw.sampling_rate,
        channel_count=len(raw.channels),
        samples_per_trial=raw.channels[0].n_samples,
        labels=[c.logical_name for c in raw.channels],
        units=[c.unit for c in raw.channels],
        source=str(raw.path),
    )


def _map_buffer(raw: BufferRaw) -> _Mapped:
    mapped = _Mapped(
        sampling_rate=raw.fsample,
        channel_count=raw.nchans,
        samples_per_trial=raw.nsamples,
        labels=raw.channel_names or (),
        types=[ChannelType.UNKNOWN] * raw.nchans,
        source=f"buffer://{raw.host}:{raw.port}",
        announce_fake_labels=raw.nchans < FAKE_LABELS_QUIET_CHANNELS,
    )
    if raw.ctf_res4 is not None:
        if raw.ctf_res4.no_channels != raw.nchans:
            raise InconsistentHeader(
                f"Buffer reports {raw.nchans} channels, its res4 chunk {raw.ctf_res4.no_channels}."
            )
        labels, types, units = _ctf_channels(raw.ctf_res4)
        mapped.labels, mapped.types, mapped.units = labels, types, units
        mapped.geometry = _ctf_geometry(raw.ctf_res4.channels, types)
    elif raw.channel_flags and len(raw.channel_flags) == raw.nchans + 1:
        # first entry names the flag kind, then one flag per channel
        values = {t.value for t in ChannelType}
        mapped.types = [
            ChannelType(f.lower()) if f.lower() in values else ChannelType.UNKNOWN
            for f in raw.channel_flags[1:]
        ]
    return mapped


_MAPPERS: dict[type, Callable[[Any], _Mapped]] = {
    EdfRaw: _map_edf,
    BrainVisionRaw: _map_brainvision,
    NeuralynxRaw: _map_ncs,
    NeuralynxTtlRaw: _map_ttl,
    CtfRaw: _map_ctf,
    Bci2000Raw: _map_bci2000,
    MdfRaw: _map_mdf,
    BufferRaw: _map_buffer,
}

_unmapped = set(RAW_HEADER_TYPES) - set(_MAPPERS)
if _unmapped:
    raise TypeError(f"No normalizer for raw header types: {sorted(t.__name__ for t in _unmapped)}")


def normalize(raw: RawHeader, tag: str = "unknown", *, source: str | None = None) -> CanonicalHeader:
    """Turn a decoder's raw header into a validated CanonicalHeader."""
    mapper = _MAPPERS.get(type(raw))
    if mapper is None:
        raise UnsupportedFormat(f"No normalizer for {type(raw).__name__}.")
    m = mapper(raw)

    diagnostics: list[str] = []
    labels, diag = repair_labels(m.labels, int(m.channel_count), announce=m.announce_fake_labels)
    diagnostics.extend(diag)

    types = tuple(m.types) if m.types is not None else infer_types(labels, m.default_type)
    units = infer_units(types, m.units)

    geometry = None
    if m.geometry is not None:
        geometry, diag = build_geometry(m.geometry, labels)
        diagnostics.extend(diag)

    for msg in diagnostics:
        logger.info("%s: %s", tag, msg)

    return CanonicalHeader(
        sampling_rate=m.sampling_rate,
        channel_count=m.channel_count,
        samples_per_trial=m.samples_per_trial,
        pre_trigger_samples=m.pre_trigger_samples,
        trial_count=m.trial_count,
        labels=labels,
        channel_type=types,
        channel_unit=units,
        first_timestamp=m.first_timestamp,
        timestamp_per_sample=m.timestamp_per_sample,
        sensor_geometry=geometry,
        raw_origin=copy.deepcopy(raw),
        format_tag=tag,
        source=source if source is not None else m.source,
        warnings=tuple(diagnostics),
    )
