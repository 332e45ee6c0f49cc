# recheader/core/header.py
from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Sequence

import numpy as np

from .exceptions import InvalidHeader


class ChannelType(str, Enum):
    """Classification of a recorded channel."""

    MEGGRAD = "meggrad"
    MEGMAG = "megmag"
    MEGREF = "megref"
    EEG = "eeg"
    EOG = "eog"
    ECG = "ecg"
    EMG = "emg"
    LFP = "lfp"
    TRIGGER = "trigger"
    ADC = "adc"
    HEADLOC = "headloc"
    UNKNOWN = "unknown"

    @property
    def is_magnetic(self) -> bool:
        return self in (ChannelType.MEGGRAD, ChannelType.MEGMAG, ChannelType.MEGREF)


Vector3 = tuple[float, float, float]


@dataclass(frozen=True, slots=True)
class SensorGeometry:
    """
    Physical sensor layout used for forward modelling.

    Each coil belongs to one channel (``coil_channel`` indexes ``labels``);
    gradiometers contribute two or more coils to the same channel.
    Positions and orientations are kept as plain tuples so that two geometries
    built from the same file compare equal.
    """
    labels: tuple[str, ...]
    coil_positions: tuple[Vector3, ...]
    coil_orientations: tuple[Vector3, ...]
    coil_channel: tuple[int, ...]
    unit: str = "cm"

    def __post_init__(self) -> None:
        n = len(self.coil_positions)
        if len(self.coil_orientations) != n or len(self.coil_channel) != n:
            raise InvalidHeader(
                "SensorGeometry coil positions, orientations and channel indices must have equal length."
            )
        for idx in self.coil_channel:
            if not 0 <= idx < len(self.labels):
                raise InvalidHeader(f"SensorGeometry coil refers to unknown channel index {idx}.")

    @property
    def n_coils(self) -> int:
        return len(self.coil_positions)

    def as_arrays(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Return (positions, orientations, coil_channel) as numpy arrays."""
        pos = np.asarray(self.coil_positions, dtype=np.float64).reshape(-1, 3)
        ori = np.asarray(self.coil_orientations, dtype=np.float64).reshape(-1, 3)
        chan = np.asarray(self.coil_channel, dtype=np.int64)
        return pos, ori, chan


def _as_count(name: str, value: Any) -> np.int64:
    try:
        as_float = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidHeader(f"CanonicalHeader.{name} must be numeric, got {value!r}.") from e
    if not np.isfinite(as_float) or as_float != int(as_float):
        raise InvalidHeader(f"CanonicalHeader.{name} must be a whole number, got {value!r}.")
    if as_float < 0:
        raise InvalidHeader(f"CanonicalHeader.{name} must be >= 0, got {value!r}.")
    return np.int64(int(as_float))


@dataclass(frozen=True, slots=True)
class CanonicalHeader:
    """
    Format-independent description of a recording.

    Design goals:
    - one shape for every supported file format
    - fixed-width numerics: np.float64 rate, np.int64 counts, np.uint64 timestamps
    - immutable and validated; derived copies are made with ``with_``-methods

    For continuously recorded data ``trial_count == 1`` and
    ``pre_trigger_samples == 0``.
    """
    sampling_rate: float
    channel_count: int
    samples_per_trial: int
    pre_trigger_samples: int
    trial_count: int
    labels: tuple[str, ...]
    channel_type: tuple[ChannelType, ...]
    channel_unit: tuple[str, ...]
    first_timestamp: int | None = None
    timestamp_per_sample: float | None = None
    sensor_geometry: SensorGeometry | None = field(default=None, repr=False)
    raw_origin: Any = field(default=None, repr=False, compare=False)
    format_tag: str = "unknown"
    source: str = ""
    warnings: tuple[str, ...] = field(default=(), repr=False)

    def __post_init__(self) -> None:
        try:
            rate = np.float64(self.sampling_rate)
        except (TypeError, ValueError) as e:
            raise InvalidHeader(f"CanonicalHeader.sampling_rate must be numeric, got {self.sampling_rate!r}.") from e
        if not np.isfinite(rate) or rate <= 0:
            raise InvalidHeader(f"CanonicalHeader.sampling_rate must be > 0, got {self.sampling_rate!r}.")
        object.__setattr__(self, "sampling_rate", rate)

        for name in ("channel_count", "samples_per_trial", "pre_trigger_samples", "trial_count"):
            object.__setattr__(self, name, _as_count(name, getattr(self, name)))

        if self.pre_trigger_samples > self.samples_per_trial:
            raise InvalidHeader(
                f"CanonicalHeader.pre_trigger_samples ({self.pre_trigger_samples}) exceeds "
                f"samples_per_trial ({self.samples_per_trial})."
            )

        labels = tuple(self.labels)
        if any(not isinstance(lab, str) or not lab.strip() for lab in labels):
            raise InvalidHeader("CanonicalHeader.labels must be non-empty strings.")
        if len(set(labels)) != len(labels):
            raise InvalidHeader("CanonicalHeader.labels must be unique.")
        if len(labels) != self.channel_count:
            raise InvalidHeader(
                f"CanonicalHeader.channel_count ({self.channel_count}) does not match "
                f"the number of labels ({len(labels)})."
            )
        object.__setattr__(self, "labels", labels)

        try:
            types = tuple(ChannelType(t) for t in self.channel_type)
        except ValueError as e:
            raise InvalidHeader(f"CanonicalHeader.channel_type contains an unknown type: {e}") from e
        units = tuple(str(u) for u in self.channel_unit)
        if len(types) != len(labels) or len(units) != len(labels):
            raise InvalidHeader("CanonicalHeader.channel_type and channel_unit must match labels in length.")
        object.__setattr__(self, "channel_type", types)
        object.__setattr__(self, "channel_unit", units)

        if self.first_timestamp is not None:
            object.__setattr__(self, "first_timestamp", np.uint64(self.first_timestamp))
        if self.timestamp_per_sample is not None:
            object.__setattr__(self, "timestamp_per_sample", np.float64(self.timestamp_per_sample))
        if self.sensor_geometry is not None and not isinstance(self.sensor_geometry, SensorGeometry):
            raise InvalidHeader("CanonicalHeader.sensor_geometry must be a SensorGeometry instance.")

        object.__setattr__(self, "warnings", tuple(self.warnings))

    # ---- derived values ----
    @property
    def total_samples(self) -> np.int64:
        return np.int64(self.samples_per_trial * self.trial_count)

    @property
    def is_continuous(self) -> bool:
        return self.trial_count == 1 and self.pre_trigger_samples == 0

    @property
    def duration(self) -> float:
        """Recording length in seconds (all trials)."""
        return float(self.total_samples / self.sampling_rate)

    def channel_index(self, label: str) -> int:
        try:
            return self.labels.index(label)
        except ValueError as e:
            raise KeyError(label) from e

    # ---- transformations ----
    def with_counts(
        self,
        *,
        samples_per_trial: int | None = None,
        pre_trigger_samples: int | None = None,
        trial_count: int | None = None,
    ) -> "CanonicalHeader":
        """Return a copy with updated trial structure (used when files grow)."""
        changes: dict[str, Any] = {}
        if samples_per_trial is not None:
            changes["samples_per_trial"] = samples_per_trial
        if pre_trigger_samples is not None:
            changes["pre_trigger_samples"] = pre_trigger_samples
        if trial_count is not None:
            changes["trial_count"] = trial_count
        changes["raw_origin"] = copy.deepcopy(self.raw_origin)
        return replace(self, **changes)

    def with_warnings(self, extra: Sequence[str]) -> "CanonicalHeader":
        if not extra:
            return self
        return replace(self, warnings=self.warnings + tuple(extra))
