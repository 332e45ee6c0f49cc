# recheader/io/realtime.py
"""
Header acquisition from a FieldTrip-style realtime buffer.

Wire format (little endian):
  request   version:u16  command:u16  bufsize:u32              (GET_HDR, bufsize 0)
  response  version:u16  command:u16  bufsize:u32  payload[bufsize]
  payload   nchans:u32 nsamples:u32 nevents:u32 fsample:f32 data_type:u32 bufsize:u32
            followed by ``bufsize`` bytes of chunks: type:u32 size:u32 data[size]
"""
from __future__ import annotations

import logging
import socket
import struct
import threading
import time
from dataclasses import replace
from enum import IntEnum
from typing import Any, Callable

import numpy as np

from recheader.core.exceptions import ReadError, RealtimeConnectionError
from recheader.core.header import CanonicalHeader
from recheader.core.raw import BufferRaw, CtfRaw
from recheader.io.decoders.ctf import parse_res4
from recheader.io.normalize import normalize
from recheader.io.options import RETRY_INTERVAL

logger = logging.getLogger(__name__)

TAG = "fcdc_buffer"

VERSION = 1
GET_HDR = 0x201
GET_OK = 0x204
GET_ERR = 0x205

DEFAULT_TIMEOUT = 5.0

MESSAGE = struct.Struct("<HHI")
HEADER_DEF = struct.Struct("<IIIfII")
CHUNK_DEF = struct.Struct("<II")

NIFTI1_HEADER_BYTES = 348


class ChunkType(IntEnum):
    UNSPECIFIED = 0
    CHANNEL_NAMES = 1
    CHANNEL_FLAGS = 2
    RESOLUTIONS = 3
    ASCII_KEYVAL = 4
    NIFTI1 = 5
    SIEMENS_AP = 6
    CTF_RES4 = 7


# ---- wire ----
def _recv_exact(sock: socket.socket, n: int) -> bytes:
    buf = bytearray()
    while len(buf) < n:
        part = sock.recv(n - len(buf))
        if not part:
            raise RealtimeConnectionError(f"Buffer closed the connection after {len(buf)} of {n} bytes.")
        buf.extend(part)
    return bytes(buf)


def parse_chunks(data: bytes) -> dict[int, bytes]:
    """Split the chunk area of a header; a truncated tail is dropped."""
    chunks: dict[int, bytes] = {}
    offset = 0
    while offset + CHUNK_DEF.size <= len(data):
        ctype, size = CHUNK_DEF.unpack_from(data, offset)
        offset += CHUNK_DEF.size
        if offset + size > len(data):
            logger.warning("Chunk of type %d announces %d bytes, only %d left", ctype, size, len(data) - offset)
            break
        chunks[ctype] = data[offset: offset + size]
        offset += size
    return chunks


def request_header(host: str, port: int, timeout: float = DEFAULT_TIMEOUT) -> BufferRaw:
    """One GET_HDR round trip; every failure is a RealtimeConnectionError."""
    try:
        with socket.create_connection((host, port), timeout=timeout) as sock:
            sock.sendall(MESSAGE.pack(VERSION, GET_HDR, 0))
            version, command, bufsize = MESSAGE.unpack(_recv_exact(sock, MESSAGE.size))
            payload = _recv_exact(sock, bufsize)
    except RealtimeConnectionError:
        raise
    except OSError as e:
        raise RealtimeConnectionError(f"Cannot read header from {host}:{port}: {e}") from e

    if version != VERSION:
        raise RealtimeConnectionError(f"{host}:{port} speaks protocol version {version}, expected {VERSION}.")
    if command == GET_ERR:
        raise RealtimeConnectionError(f"{host}:{port} has no header yet.")
    if command != GET_OK:
        raise RealtimeConnectionError(f"{host}:{port} answered with unexpected command 0x{command:x}.")
    if len(payload) < HEADER_DEF.size:
        raise RealtimeConnectionError(f"{host}:{port} sent a {len(payload)}-byte header definition.")

    nchans, nsamples, nevents, fsample, data_type, chunk_bytes = HEADER_DEF.unpack_from(payload, 0)
    chunks = parse_chunks(payload[HEADER_DEF.size: HEADER_DEF.size + chunk_bytes])
    raw = BufferRaw(
        host=host,
        port=port,
        nchans=nchans,
        nsamples=nsamples,
        nevents=nevents,
        fsample=float(fsample),
        data_type=data_type,
        bufsize=chunk_bytes,
        chunks=chunks,
    )
    return decode_chunks(raw)


# ---- chunk decoders ----
def _strings(data: bytes) -> list[str]:
    return [s.decode("utf-8") for s in data.rstrip(b"\x00").split(b"\x00")]


def decode_channel_names(data: bytes, nchans: int) -> tuple[str, ...]:
    names = _strings(data)
    if len(names) != nchans:
        raise ValueError(f"{len(names)} channel names for {nchans} channels")
    return tuple(names)


def decode_channel_flags(data: bytes, nchans: int) -> tuple[str, ...]:
    return tuple(_strings(data))


def decode_resolutions(data: bytes, nchans: int) -> tuple[float, ...]:
    if len(data) != 8 * nchans:
        raise ValueError(f"{len(data)} bytes of resolutions for {nchans} channels")
    return tuple(float(v) for v in np.frombuffer(data, dtype="<f8"))


def decode_keyval(data: bytes, nchans: int) -> dict[str, str]:
    items = _strings(data)
    if len(items) % 2:
        raise ValueError("odd number of key/value strings")
    return dict(zip(items[0::2], items[1::2]))


def decode_nifti1(data: bytes, nchans: int) -> dict[str, object]:
    if len(data) < NIFTI1_HEADER_BYTES:
        raise ValueError(f"NIFTI-1 header needs {NIFTI1_HEADER_BYTES} bytes, got {len(data)}")
    (sizeof_hdr,) = struct.unpack_from("<i", data, 0)
    endian = "<" if sizeof_hdr == NIFTI1_HEADER_BYTES else ">"
    if struct.unpack_from(f"{endian}i", data, 0)[0] != NIFTI1_HEADER_BYTES:
        raise ValueError("sizeof_hdr is not 348")
    dim = struct.unpack_from(f"{endian}8h", data, 40)
    datatype, bitpix = struct.unpack_from(f"{endian}hh", data, 70)
    pixdim = struct.unpack_from(f"{endian}8f", data, 76)
    return {
        "dim": dim,
        "datatype": datatype,
        "bitpix": bitpix,
        "pixdim": pixdim,
        "descrip": data[148:228].split(b"\x00", 1)[0].decode("latin-1"),
        "magic": data[344:348].split(b"\x00", 1)[0].decode("latin-1"),
    }


def decode_siemens_ap(data: bytes, nchans: int) -> dict[str, str]:
    """Key/value lines of the ASCCONV protocol block."""
    text = data.split(b"\x00", 1)[0].decode("latin-1")
    begin = text.find("### ASCCONV BEGIN")
    end = text.find("### ASCCONV END")
    if begin >= 0:
        text = text[text.find("\n", begin) + 1: end if end > begin else None]
    out: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        if sep:
            out[key.strip()] = value.split("#", 1)[0].strip()
    return out


def decode_ctf_res4(data: bytes, nchans: int) -> CtfRaw:
    return parse_res4(data)


_CHUNK_FIELDS: dict[ChunkType, tuple[str, Callable[[bytes, int], Any]]] = {
    ChunkType.CHANNEL_NAMES: ("channel_names", decode_channel_names),
    ChunkType.CHANNEL_FLAGS: ("channel_flags", decode_channel_flags),
    ChunkType.RESOLUTIONS: ("resolutions", decode_resolutions),
    ChunkType.ASCII_KEYVAL: ("keyval", decode_keyval),
    ChunkType.NIFTI1: ("nifti_1", decode_nifti1),
    ChunkType.SIEMENS_AP: ("siemens_ap", decode_siemens_ap),
    ChunkType.CTF_RES4: ("ctf_res4", decode_ctf_res4),
}


def decode_chunks(raw: BufferRaw) -> BufferRaw:
    """Decode every known chunk; a chunk that fails is logged and left unset."""
    decoded: dict[str, Any] = {}
    for ctype, data in raw.chunks.items():
        if ctype not in _CHUNK_FIELDS:
            logger.debug("Ignoring chunk of type %d (%d bytes)", ctype, len(data))
            continue
        field_name, decoder = _CHUNK_FIELDS[ChunkType(ctype)]
        try:
            decoded[field_name] = decoder(data, raw.nchans)
        except (ReadError, ValueError, struct.error, IndexError) as e:
            logger.warning("Cannot decode %s chunk from %s:%d: %s", ChunkType(ctype).name, raw.host, raw.port, e)
    return replace(raw, **decoded) if decoded else raw


# ---- retry ----
def fetch_header(
    host: str,
    port: int,
    retry: bool = False,
    *,
    interval: float = RETRY_INTERVAL,
    max_wait: float | None = None,
    cancel: threading.Event | None = None,
    fetch: Callable[[str, int], BufferRaw] = request_header,
    sleep: Callable[[float], None] = time.sleep,
) -> CanonicalHeader:
    """Read the header of a live buffer.

    Without ``retry`` one attempt is made and its failure is raised as
    RealtimeConnectionError. With ``retry`` the call blocks, sleeping
    ``interval`` seconds between attempts, until the buffer answers, until
    ``max_wait`` seconds have passed, or until ``cancel`` is set.
    """
    deadline = None if max_wait is None else time.monotonic() + max_wait
    attempt = 0
    while True:
        if cancel is not None and cancel.is_set():
            raise RealtimeConnectionError(f"Reading header from {host}:{port} was cancelled.")
        attempt += 1
        try:
            raw = fetch(host, port)
            break
        except OSError as e:
            if not retry:
                if isinstance(e, RealtimeConnectionError):
                    raise
                raise RealtimeConnectionError(f"Cannot read header from {host}:{port}: {e}") from e
            if deadline is not None and time.monotonic() + interval > deadline:
                raise RealtimeConnectionError(
                    f"No header from {host}:{port} after {attempt} attempts ({max_wait} s)."
                ) from e
            logger.warning("could not read header from %s:%d, retrying in %g s", host, port, interval)
            sleep(interval)

    return normalize(raw, TAG)
