# recheader/io/decoders/ctf.py
"""
CTF MEG datasets.

A dataset is a ``<name>.ds`` directory holding ``<name>.res4`` (the header,
big-endian fixed layout) and the sample payload in ``<name>.meg4``,
``<name>.1_meg4``, ``<name>.2_meg4``, ... Each payload file starts with an
8-byte identifier followed by int32 samples, trial by trial.
"""
from __future__ import annotations

import logging
import os
import struct
from dataclasses import replace
from pathlib import Path

from recheader.core.exceptions import DecodeError
from recheader.core.header import CanonicalHeader
from recheader.core.raw import CtfChannel, CtfCoil, CtfRaw
from recheader.io.files import DatasetFiles, ctf_payload_files
from recheader.io.options import ReadOptions
from recheader.io.registry import default_registry

logger = logging.getLogger(__name__)

MEG4_HEADER_BYTES = 8
MEG4_SAMPLE_BYTES = 4

CHANNEL_NAME_BYTES = 32
MAX_COILS = 8

_GENERAL = struct.Struct(">i h 2x d d h 2x i")      # at 1288
_FILTER_HEAD = struct.Struct(">d i i h")
_SENSOR_HEAD = struct.Struct(">h h i d d d d h h 4x")  # 48 bytes
_COIL = struct.Struct(">4d 4d h 6x d")                 # 80 bytes
SENSOR_BYTES = _SENSOR_HEAD.size + 2 * MAX_COILS * _COIL.size  # 1328

_OFF_APP_NAME = 8
_OFF_DATA_ORIGIN = 264
_OFF_DESCRIPTION = 520
_OFF_GENERAL = 1288
_OFF_RUN_DESC_LEN = 1836
_OFF_RUN_DESC = 1844


def _cstr(raw: bytes) -> str:
    return raw.split(b"\x00", 1)[0].decode("latin-1").strip()


def _unpack(st: struct.Struct, data: bytes, offset: int) -> tuple:
    if offset + st.size > len(data):
        raise DecodeError(f"res4 truncated at byte {offset} (need {st.size} more bytes).")
    return st.unpack_from(data, offset)


def parse_res4(
    data: bytes,
    *,
    dataset: Path | None = None,
    res4_path: Path | None = None,
) -> CtfRaw:
    """Decode the res4 header bytes (from a file or a realtime chunk)."""
    head = _cstr(data[:8])
    if not head.startswith("MEG4") or not head.endswith("RS"):
        raise DecodeError(f"Not a CTF res4 header (identifier {head!r}).")

    no_samples, no_channels, sample_rate, epoch_time, no_trials, pre_trig = _unpack(
        _GENERAL, data, _OFF_GENERAL
    )
    if no_channels <= 0:
        raise DecodeError(f"res4 declares {no_channels} channels.")

    (rd_len,) = _unpack(struct.Struct(">i"), data, _OFF_RUN_DESC_LEN)
    offset = _OFF_RUN_DESC
    run_description = _cstr(data[offset: offset + rd_len])
    offset += rd_len

    (no_filters,) = _unpack(struct.Struct(">h"), data, offset)
    offset += 2
    for _ in range(no_filters):
        *_, n_params = _unpack(_FILTER_HEAD, data, offset)
        offset += _FILTER_HEAD.size + 8 * n_params

    names = []
    for _ in range(no_channels):
        if offset + CHANNEL_NAME_BYTES > len(data):
            raise DecodeError("res4 truncated inside the channel name table.")
        names.append(_cstr(data[offset: offset + CHANNEL_NAME_BYTES]))
        offset += CHANNEL_NAME_BYTES

    channels = []
    for name in names:
        sensor_type, _, _, proper_gain, _, io_gain, _, num_coils, _ = _unpack(_SENSOR_HEAD, data, offset)
        coils = []
        for k in range(min(max(num_coils, 0), MAX_COILS)):
            values = _unpack(_COIL, data, offset + _SENSOR_HEAD.size + k * _COIL.size)
            coils.append(
                CtfCoil(
                    position=tuple(values[0:3]),
                    orientation=tuple(values[4:7]),
                    turns=values[8],
                    area=values[9],
                )
            )
        channels.append(
            CtfChannel(
                name=name,
                sensor_type=sensor_type,
                proper_gain=proper_gain,
                io_gain=io_gain,
                coils=tuple(coils),
            )
        )
        offset += SENSOR_BYTES

    return CtfRaw(
        dataset=dataset,
        res4_path=res4_path,
        head=head,
        app_name=_cstr(data[_OFF_APP_NAME:_OFF_APP_NAME + 256]),
        data_origin=_cstr(data[_OFF_DATA_ORIGIN:_OFF_DATA_ORIGIN + 256]),
        description=_cstr(data[_OFF_DESCRIPTION:_OFF_DESCRIPTION + 256]),
        no_samples=no_samples,
        no_channels=no_channels,
        sample_rate=sample_rate,
        epoch_time=epoch_time,
        no_trials=no_trials,
        pre_trig_pts=pre_trig,
        run_description=run_description,
        channels=tuple(channels),
    )


def payload_bytes(files: list[Path]) -> int:
    """Sample bytes across all payload files, excluding each file's identifier."""
    return sum(max(os.path.getsize(p) - MEG4_HEADER_BYTES, 0) for p in files)


def trials_in_payload(n_bytes: int, no_channels: int, no_samples: int) -> int:
    per_trial = no_channels * MEG4_SAMPLE_BYTES * no_samples
    if per_trial <= 0:
        raise DecodeError(f"Cannot size trials of {no_channels} channels x {no_samples} samples.")
    return n_bytes // per_trial


def refresh_trials(header: CanonicalHeader, files: DatasetFiles) -> CanonicalHeader:
    """Recount trials from the payload currently on disk (it grows during acquisition)."""
    meg4 = ctf_payload_files(files.dataset, files.header.stem)
    if not meg4:
        return header
    trials = trials_in_payload(
        payload_bytes(meg4), int(header.channel_count), int(header.samples_per_trial)
    )
    if trials != header.trial_count:
        logger.debug("'%s': trial count %d -> %d", files.dataset, header.trial_count, trials)
        return header.with_counts(trial_count=trials)
    return header


@default_registry.register(
    "ctf_ds", "ctf_res4", "ctf_meg4", cache_default=True, refresh=refresh_trials
)
def decode_ctf(files: DatasetFiles, options: ReadOptions) -> CtfRaw:
    with open(files.header, "rb") as f:
        data = f.read()
    raw = parse_res4(data, dataset=files.dataset, res4_path=files.header)

    meg4 = ctf_payload_files(files.dataset, files.header.stem)
    if not meg4:
        logger.warning("CTF dataset '%s' has no .meg4 payload", files.dataset)
        return raw
    n_bytes = payload_bytes(meg4)
    trials = trials_in_payload(n_bytes, raw.no_channels, raw.no_samples)
    if trials != raw.no_trials:
        logger.info("'%s': res4 lists %d trials, payload holds %d", files.dataset, raw.no_trials, trials)
    return replace(raw, meg4_files=tuple(meg4), meg4_bytes=n_bytes, payload_trials=trials)
