# recheader/io/chantype.py
"""Channel type and unit inference from labels, vendor codes and format defaults."""
from __future__ import annotations

import re
from typing import Sequence

from recheader.core.header import ChannelType

UNKNOWN_UNIT = "unknown"

# CTF res4 sensor type codes
CTF_SENSOR_TYPES: dict[int, ChannelType] = {
    0: ChannelType.MEGREF,   # reference magnetometer
    1: ChannelType.MEGREF,   # reference gradiometer
    2: ChannelType.MEGREF,
    3: ChannelType.MEGREF,
    4: ChannelType.MEGMAG,
    5: ChannelType.MEGGRAD,
    9: ChannelType.EEG,
    10: ChannelType.ADC,
    11: ChannelType.TRIGGER,
    13: ChannelType.HEADLOC,
    14: ChannelType.ADC,     # DAC
}

# Unit implied by the channel type when the file does not state one.
TYPE_UNITS: dict[ChannelType, str] = {
    ChannelType.MEGGRAD: "T",
    ChannelType.MEGMAG: "T",
    ChannelType.MEGREF: "T",
}

_PREFIXES: tuple[tuple[tuple[str, ...], ChannelType], ...] = (
    (("EOG", "VEOG", "HEOG", "EYE"), ChannelType.EOG),
    (("ECG", "EKG"), ChannelType.ECG),
    (("EMG",), ChannelType.EMG),
    (("STATUS", "TRIG", "STI", "UPPT", "MARKER"), ChannelType.TRIGGER),
    (("UADC", "ADC"), ChannelType.ADC),
    (("HLC",), ChannelType.HEADLOC),
    (("EEG",), ChannelType.EEG),
)

# 10-20 / 10-10 / 10-5 electrode names: Fp1, AFz, FCC3h, TP10, ...
_ELECTRODE_RE = re.compile(
    r"^(?:Nz|Fp|AFF|AF|FFT|FFC|FTT|FT|FCC|FC|F|TTP|TPP|TP|T|CCP|CPP|CP|C|PPO|PO|POO|P|OI|O|Iz|I|A|M)"
    r"(?:z|\d{1,2})?h?$",
    re.IGNORECASE,
)


def type_from_label(label: str, default: ChannelType = ChannelType.UNKNOWN) -> ChannelType:
    """Classify a channel by its name alone."""
    name = label.strip()
    upper = name.upper()
    for prefixes, ctype in _PREFIXES:
        if upper.startswith(prefixes):
            return ctype
    if name and _ELECTRODE_RE.match(name) and any(ch.isdigit() or ch in "zZ" for ch in name):
        return ChannelType.EEG
    return default


def infer_types(
    labels: Sequence[str],
    default: ChannelType = ChannelType.UNKNOWN,
) -> tuple[ChannelType, ...]:
    return tuple(type_from_label(lab, default) for lab in labels)


def ctf_type(sensor_type: int, label: str) -> ChannelType:
    """CTF sensor code first; labels refine electrode channels (EOG, ECG on EEG inputs)."""
    ctype = CTF_SENSOR_TYPES.get(sensor_type)
    if ctype is None:
        return type_from_label(label)
    if ctype in (ChannelType.EEG, ChannelType.ADC):
        refined = type_from_label(label, ctype)
        if refined in (ChannelType.EOG, ChannelType.ECG, ChannelType.EMG):
            return refined
    return ctype


def infer_unit(ctype: ChannelType, given: str | None = None) -> str:
    """Unit stated by the file if any, else the unit implied by the channel type."""
    if given is not None and given.strip():
        return given.strip()
    return TYPE_UNITS.get(ctype, UNKNOWN_UNIT)


def infer_units(
    types: Sequence[ChannelType],
    given: Sequence[str | None] | None = None,
) -> tuple[str, ...]:
    if given is None:
        given = [None] * len(types)
    return tuple(infer_unit(t, g) for t, g in zip(types, given))
