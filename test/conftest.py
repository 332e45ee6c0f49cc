# test/conftest.py
"""Writers for small, valid recording files of every supported format."""
import socket
import struct
import threading
from pathlib import Path

import numpy as np
import pytest

from recheader.io.cache import default_cache
from recheader.io.diagnostics import reset_warn_once


@pytest.fixture(autouse=True)
def _fresh_process_state():
    default_cache.clear()
    reset_warn_once()
    yield
    default_cache.clear()


# ---------------------------------------------------------------------------
# EDF / BDF
# ---------------------------------------------------------------------------
def _field(value, width):
    return str(value).ljust(width)[:width].encode("latin-1")


def write_edf(
    path,
    labels=("Fp1", "Fp2", "Cz"),
    samples_per_record=256,
    num_records=4,
    duration=1,
    bdf=False,
    units="uV",
    spr_per_signal=None,
    num_records_field=None,
    header_bytes=None,
):
    path = Path(path)
    ns = len(labels)
    spr = list(spr_per_signal) if spr_per_signal is not None else [samples_per_record] * ns
    hb = header_bytes if header_bytes is not None else 256 * (ns + 1)
    nr_field = num_records if num_records_field is None else num_records_field

    fixed = (
        (b"\xffBIOSEMI" if bdf else _field("0", 8))
        + _field("patient", 80)
        + _field("recording", 80)
        + _field("01.02.20", 8)
        + _field("10.00.00", 8)
        + _field(hb, 8)
        + _field("", 44)
        + _field(nr_field, 8)
        + _field(duration, 8)
        + _field(ns, 4)
    )
    columns = [
        ([lab for lab in labels], 16),
        (["AgAgCl electrode"] * ns, 80),
        ([units] * ns, 8),
        (["-3200"] * ns, 8),
        (["3200"] * ns, 8),
        (["-32768"] * ns, 8),
        (["32767"] * ns, 8),
        (["HP:0.1Hz"] * ns, 80),
        (spr, 8),
        ([""] * ns, 32),
    ]
    block = b"".join(_field(v, w) for values, w in columns for v in values)
    bps = 3 if bdf else 2
    payload = bytes(num_records * sum(spr) * bps)
    path.write_bytes(fixed + block + payload)
    return path


# ---------------------------------------------------------------------------
# BrainVision
# ---------------------------------------------------------------------------
def write_brainvision(
    directory,
    stem="rec",
    labels=("Fp1", "Fp2", "Cz", "Pz"),
    n_samples=1000,
    interval_us=1000,
    binary_format="INT_16",
    n_channels=None,
    segment_points=None,
    data_points=None,
    write_data=True,
    extra_sections="",
):
    directory = Path(directory)
    n_channels = len(labels) if n_channels is None else n_channels
    lines = [
        "Brain Vision Data Exchange Header File Version 1.0",
        "; Data created by the Vision Recorder",
        "",
        "[Common Infos]",
        "Codepage=UTF-8",
        f"DataFile={stem}.eeg",
        f"MarkerFile={stem}.vmrk",
        "DataFormat=BINARY",
        "; Data orientation: MULTIPLEXED=ch1,pt1, ch2,pt1 ...",
        "DataOrientation=MULTIPLEXED",
        f"NumberOfChannels={n_channels}",
        f"SamplingInterval={interval_us}",
    ]
    if segment_points is not None:
        lines += ["SegmentationType=MARKERBASED", f"SegmentDataPoints={segment_points}"]
    if data_points is not None:
        lines.append(f"DataPoints={data_points}")
    lines += ["", "[Binary Infos]", f"BinaryFormat={binary_format}", "", "[Channel Infos]"]
    lines += [f"Ch{i}={lab},,0.1,µV" for i, lab in enumerate(labels, start=1)]
    lines += ["", "[Comment]", "", "A m p l i f i e r  S e t u p", "Channels", "  #  Name", extra_sections]

    vhdr = directory / f"{stem}.vhdr"
    vhdr.write_text("\n".join(lines), encoding="utf-8")
    bps = {"INT_16": 2, "IEEE_FLOAT_32": 4, "INT_32": 4}[binary_format]
    if write_data:
        (directory / f"{stem}.eeg").write_bytes(bytes(n_samples * n_channels * bps))
    return vhdr


# ---------------------------------------------------------------------------
# Neuralynx
# ---------------------------------------------------------------------------
def write_ncs(
    path,
    n_records=3,
    frequency=1000,
    channel=0,
    first_timestamp=1_000_000,
    last_channel=None,
    last_frequency=None,
    ad_bit_volts=True,
    acq_ent_name=None,
):
    path = Path(path)
    header = "######## Neuralynx Data File Header\r\n"
    if acq_ent_name:
        header += f"-AcqEntName {acq_ent_name}\r\n"
    header += f"-SamplingFrequency {frequency}\r\n"
    if ad_bit_volts:
        header += "-ADBitVolts 0.000000030518\r\n"
    header += "-ADChannel 0\r\n"
    block = header.encode("latin-1").ljust(16384, b"\x00")

    step = int(512 * 1_000_000 / frequency)
    records = []
    for i in range(n_records):
        last = i == n_records - 1
        chan = last_channel if (last and last_channel is not None) else channel
        freq = last_frequency if (last and last_frequency is not None) else frequency
        records.append(
            struct.pack("<QIII", first_timestamp + i * step, chan, freq, 512)
            + np.zeros(512, dtype="<i2").tobytes()
        )
    path.write_bytes(block + b"".join(records))
    return path


def write_ttl(path, n_samples=100):
    path = Path(path)
    path.write_bytes(bytes(8) + np.arange(n_samples, dtype="<i4").tobytes())
    return path


# ---------------------------------------------------------------------------
# CTF
# ---------------------------------------------------------------------------
CTF_DEFAULT_CHANNELS = (
    # name, sensor type, coils (position, orientation)
    ("MLC11-1706", 5, [((1.0, 2.0, 3.0), (0.0, 0.0, 1.0)), ((1.0, 2.0, 8.0), (0.0, 0.0, -1.0))]),
    ("MRC11-1706", 5, [((-1.0, 2.0, 3.0), (0.0, 0.0, 1.0)), ((-1.0, 2.0, 8.0), (0.0, 0.0, -1.0))]),
    ("BR1-1706", 0, [((0.0, 0.0, 20.0), (1.0, 0.0, 0.0))]),
    ("EEG001", 9, []),
    ("UPPT001", 11, []),
)


def build_res4(
    channels=CTF_DEFAULT_CHANNELS,
    no_samples=600,
    sample_rate=1200.0,
    no_trials=2,
    pre_trig=0,
    run_description="test run",
    no_channels=None,
):
    n = len(channels) if no_channels is None else no_channels
    rd = run_description.encode("latin-1") + b"\x00"
    buf = bytearray(1844 + len(rd) + 2 + 32 * len(channels) + 1328 * len(channels))
    buf[0:8] = b"MEG41RS\x00"
    buf[8:8 + 9] = b"Acq 5.4.2"
    struct.pack_into(">i h 2x d d h 2x i", buf, 1288, no_samples, n, sample_rate,
                     no_samples / sample_rate, no_trials, pre_trig)
    struct.pack_into(">i", buf, 1836, len(rd))
    offset = 1844
    buf[offset:offset + len(rd)] = rd
    offset += len(rd)
    struct.pack_into(">h", buf, offset, 0)  # no filters
    offset += 2
    for name, _, _ in channels:
        raw = name.encode("latin-1")
        buf[offset:offset + len(raw)] = raw
        offset += 32
    for _, sensor_type, coils in channels:
        struct.pack_into(">h h i d d d d h h 4x", buf, offset,
                         sensor_type, 0, 0, 1.0, 1.0, 1.0, 0.0, len(coils), 0)
        for k, (pos, ori) in enumerate(coils):
            struct.pack_into(">4d 4d h 6x d", buf, offset + 48 + 80 * k,
                             *pos, 0.0, *ori, 0.0, 1, 2.0e-4)
        offset += 1328
    return bytes(buf)


def write_ctf_dataset(directory, name="sub01", trials_on_disk=2, extra_meg4_parts=0, **res4_kwargs):
    ds = Path(directory) / f"{name}.ds"
    ds.mkdir()
    res4 = build_res4(**res4_kwargs)
    (ds / f"{name}.res4").write_bytes(res4)
    channels = res4_kwargs.get("channels", CTF_DEFAULT_CHANNELS)
    no_samples = res4_kwargs.get("no_samples", 600)
    trial_bytes = len(channels) * 4 * no_samples
    (ds / f"{name}.meg4").write_bytes(b"MEG41CP\x00" + bytes(trial_bytes * trials_on_disk))
    for k in range(1, extra_meg4_parts + 1):
        (ds / f"{name}.{k}_meg4").write_bytes(b"MEG41CP\x00" + bytes(trial_bytes))
    return ds


def append_ctf_trials(ds, n_trials=1, name="sub01", channels=CTF_DEFAULT_CHANNELS, no_samples=600):
    with open(Path(ds) / f"{name}.meg4", "ab") as f:
        f.write(bytes(len(channels) * 4 * no_samples * n_trials))


# ---------------------------------------------------------------------------
# BCI2000
# ---------------------------------------------------------------------------
def write_bci2000(
    path,
    labels=("C3", "Cz", "C4"),
    source_ch=None,
    n_samples=512,
    sampling_rate="256Hz",
    statevector_len=2,
    data_format="int16",
    source_ch_param=None,
):
    path = Path(path)
    source_ch = len(labels) if source_ch is None else source_ch
    param_ch = source_ch if source_ch_param is None else source_ch_param
    body = (
        "[ State Vector Definition ] \r\n"
        "Running 1 0 0 0\r\n"
        "SourceTime 16 0 0 1\r\n"
        "[ Parameter Definition ] \r\n"
        f"Source:Signal%20Properties:DataIOFilter int SourceCh= {param_ch} 16 1 % // number of channels\r\n"
        f"Source:Signal%20Properties:DataIOFilter int SampleBlockSize= 32 32 1 % // block size\r\n"
        f"Source:Signal%20Properties:DataIOFilter int SamplingRate= {sampling_rate} 256Hz 1 % // rate\r\n"
    )
    if labels:
        body += (
            "Source:Signal%20Properties:DataIOFilter list ChannelNames= "
            f"{len(labels)} {' '.join(labels)} // channel names\r\n"
        )
    body += "\r\n"

    def first_line(header_len):
        return (
            f"HeaderLen= {header_len:6d} SourceCh= {source_ch} "
            f"StatevectorLen= {statevector_len} DataFormat= {data_format}\r\n"
        )

    header_len = len(first_line(0)) + len(body)
    header = (first_line(header_len) + body).encode("latin-1")
    bps = {"int16": 2, "int32": 4, "float32": 4}[data_format]
    payload = bytes(n_samples * (source_ch * bps + statevector_len))
    path.write_bytes(header + payload)
    return path


# ---------------------------------------------------------------------------
# MDF
# ---------------------------------------------------------------------------
def write_mdf(path, measurements=(("RecResult[1]", 100), ("RecResult[2]", 50)), rate=100.0,
              channels=(("eng_spd", "rpm"), ("torque", "Nm"))):
    asammdf = pytest.importorskip("asammdf")
    path = Path(path)
    mdf = asammdf.MDF(version="4.10")
    for acq_name, n in measurements:
        t = np.arange(n, dtype=np.float64) / rate
        signals = [
            asammdf.Signal(samples=np.zeros(n, dtype=np.float64), timestamps=t, name=name, unit=unit)
            for name, unit in channels
        ]
        mdf.append(signals, acq_name=acq_name)
    mdf.save(path, overwrite=True)
    mdf.close()
    return path


# ---------------------------------------------------------------------------
# Realtime buffer
# ---------------------------------------------------------------------------
def buffer_response(nchans=2, nsamples=100, fsample=250.0, chunks=(), command=0x204):
    chunk_bytes = b"".join(struct.pack("<II", t, len(d)) + d for t, d in chunks)
    payload = struct.pack("<IIIfII", nchans, nsamples, 0, fsample, 9, len(chunk_bytes)) + chunk_bytes
    return struct.pack("<HHI", 1, command, len(payload)) + payload


class BufferServer:
    """One-shot TCP server answering a single GET_HDR with canned bytes."""

    def __init__(self, response: bytes):
        self.response = response
        self.request = b""
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(1)
        self.port = self._sock.getsockname()[1]
        self._thread = threading.Thread(target=self._serve, daemon=True)

    def _serve(self):
        conn, _ = self._sock.accept()
        with conn:
            while len(self.request) < 8:
                part = conn.recv(8 - len(self.request))
                if not part:
                    break
                self.request += part
            conn.sendall(self.response)

    def __enter__(self):
        self._thread.start()
        return self

    def __exit__(self, *exc):
        self._thread.join(timeout=5)
        self._sock.close()


@pytest.fixture
def buffer_server():
    return BufferServer
