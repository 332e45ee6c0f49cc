# recheader/core/raw.py
"""
Format-native header structures.

Each decoder returns exactly one of the variants below; together they form the
``RawHeader`` union. They keep the fields as the file stores them (strings,
narrow integers, vendor codes) so that nothing is lost before normalisation.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Union, get_args


# ---------------------------------------------------------------------------
# EDF / BDF
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class EdfSignal:
    label: str
    transducer: str
    physical_dim: str
    physical_min: float
    physical_max: float
    digital_min: float
    digital_max: float
    prefiltering: str
    samples_per_record: int

    @property
    def is_annotation(self) -> bool:
        return self.label in ("EDF Annotations", "BDF Annotations")


@dataclass(frozen=True, slots=True)
class EdfRaw:
    path: Path
    version: str
    patient: str
    recording: str
    start_date: str
    start_time: str
    header_bytes: int
    reserved: str
    num_records: int
    record_duration: float
    signals: tuple[EdfSignal, ...]
    bytes_per_sample: int = 2

    @property
    def is_bdf(self) -> bool:
        return self.bytes_per_sample == 3

    @property
    def data_signals(self) -> tuple[EdfSignal, ...]:
        return tuple(s for s in self.signals if not s.is_annotation)


# ---------------------------------------------------------------------------
# BrainVision
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BrainVisionChannel:
    name: str
    reference: str
    resolution: float
    unit: str


@dataclass(frozen=True, slots=True)
class BrainVisionRaw:
    header_path: Path
    data_path: Path
    marker_path: Path | None
    data_format: str
    orientation: str
    binary_format: str | None
    sampling_interval_us: float
    n_channels: int
    channels: tuple[BrainVisionChannel, ...]
    n_samples: int
    n_samples_pre: int
    n_trials: int
    common_infos: dict[str, str] = field(default_factory=dict, repr=False)


# ---------------------------------------------------------------------------
# Neuralynx
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class NeuralynxRaw:
    path: Path
    header: dict[str, str] = field(repr=False)
    n_records: int
    samples_per_record: int
    sampling_frequency: float
    channel_number: int
    first_timestamp: int
    last_timestamp: int
    ad_bit_volts: float | None = None
    channel_label: str = ""


@dataclass(frozen=True, slots=True)
class NeuralynxTtlRaw:
    path: Path
    kind: str          # "ttl", "tsl" or "tsh"
    n_samples: int
    sampling_frequency: float


# ---------------------------------------------------------------------------
# CTF
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CtfCoil:
    position: tuple[float, float, float]
    orientation: tuple[float, float, float]
    turns: int
    area: float


@dataclass(frozen=True, slots=True)
class CtfChannel:
    name: str
    sensor_type: int
    proper_gain: float
    io_gain: float
    coils: tuple[CtfCoil, ...]


@dataclass(frozen=True, slots=True)
class CtfRaw:
    dataset: Path | None
    res4_path: Path | None
    head: str
    app_name: str
    data_origin: str
    description: str
    no_samples: int
    no_channels: int
    sample_rate: float
    epoch_time: float
    no_trials: int
    pre_trig_pts: int
    run_description: str
    channels: tuple[CtfChannel, ...]
    meg4_files: tuple[Path, ...] = ()
    meg4_bytes: int = 0
    payload_trials: int | None = None   # whole trials in meg4_bytes, None without payload


# ---------------------------------------------------------------------------
# BCI2000
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Bci2000Raw:
    path: Path
    header_len: int
    source_ch: int
    statevector_len: int
    data_format: str
    sampling_rate: float
    channel_names: tuple[str, ...]
    n_samples: int
    states: tuple[str, ...] = ()
    parameters: dict[str, str] = field(default_factory=dict, repr=False)


# ---------------------------------------------------------------------------
# MDF (asammdf)
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class MdfSegment:
    """
    One MDF channel in one measurement.

    Examples of measurement_name:
    - "RecResult[1]"
    - "D[3]"
    - "SomeOtherKey"
    """
    measurement_name: str      # "RecResult[1]", "D[3]", etc.
    key: str                   # "RecResult", "D", ...
    index: int | None          # 1, 2, 3... if present in [ ]
    source_path: str
    channel_name: str
    unit: str | None
    n_samples: int
    group_index: int
    channel_index: int


@dataclass(frozen=True, slots=True)
class MdfChannel:
    """
    Logical channel view (potentially spanning multiple measurements).

    A logical channel is identified by (logical_name, key), e.g.:
    - logical_name = "eng_spd", key = "RecResult"  -> RecResult[1..N]
    - logical_name = "eng_spd", key = "D"          -> D[1..M]
    """
    logical_name: str
    key: str
    segments: tuple[MdfSegment, ...]
    unit: str | None

    @property
    def n_samples(self) -> int:
        return sum(seg.n_samples for seg in self.segments)


@dataclass(frozen=True, slots=True)
class MdfRaw:
    path: Path
    version: str
    channels: tuple[MdfChannel, ...]
    sampling_rate: float
    group_rates: dict[int, float] = field(default_factory=dict, repr=False)


# ---------------------------------------------------------------------------
# Realtime buffer
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BufferRaw:
    host: str
    port: int
    nchans: int
    nsamples: int
    nevents: int
    fsample: float
    data_type: int
    bufsize: int
    chunks: dict[int, bytes] = field(default_factory=dict, repr=False)
    # decoded chunks; None when absent or not decodable
    channel_names: tuple[str, ...] | None = None
    channel_flags: tuple[str, ...] | None = None
    resolutions: tuple[float, ...] | None = None
    keyval: dict[str, str] | None = None
    nifti_1: dict[str, object] | None = field(default=None, repr=False)
    siemens_ap: dict[str, str] | None = field(default=None, repr=False)
    ctf_res4: CtfRaw | None = field(default=None, repr=False)


RawHeader = Union[
    EdfRaw,
    BrainVisionRaw,
    NeuralynxRaw,
    NeuralynxTtlRaw,
    CtfRaw,
    Bci2000Raw,
    MdfRaw,
    BufferRaw,
]

RAW_HEADER_TYPES: tuple[type, ...] = get_args(RawHeader)
