# recheader/io/read.py
from __future__ import annotations

import logging
from functools import partial
from pathlib import Path
from typing import Any

from recheader.core.exceptions import NotFound, UnsupportedFormat
from recheader.core.header import CanonicalHeader
from recheader.io.cache import HeaderCache, default_cache
from recheader.io.files import DatasetFiles, dataset_files, file_identity
from recheader.io.identify import URI_SCHEMES, identify, parse_buffer_uri
from recheader.io.join import discover_segments, join
from recheader.io.normalize import normalize
from recheader.io.options import ReadOptions
from recheader.io.realtime import TAG as BUFFER_TAG, fetch_header
from recheader.io.registry import DecoderEntry, DecoderRegistry, default_registry

logger = logging.getLogger(__name__)


def _segment_files(files: DatasetFiles, entry: DecoderEntry, options: ReadOptions) -> list[DatasetFiles]:
    if not (options.join_segments and entry.segmented):
        return [files]
    paths = discover_segments(files.header)
    if len(paths) > 1:
        logger.info("'%s' continues in %d more files", files.header, len(paths) - 1)
    return [files] + [DatasetFiles(dataset=files.dataset, header=p, data=p, tag=files.tag) for p in paths[1:]]


def _identity_paths(parts: list[DatasetFiles], entry: DecoderEntry) -> list[Path]:
    paths: list[Path] = []
    for f in parts:
        paths.append(f.header)
        # formats with a refresh hook track payload growth themselves
        if entry.refresh is None and f.data != f.header and f.data.is_file():
            paths.append(f.data)
    return paths


def read_header(
    path_or_uri: str | Path,
    options: Any = None,
    *,
    header_cache: HeaderCache | None = None,
    registry: DecoderRegistry | None = None,
) -> CanonicalHeader:
    """Read the header of a recording file, dataset or live buffer.

    ``options`` is a mapping, a flat key/value sequence or a ReadOptions.
    Returns a fully validated CanonicalHeader or raises a ReadError subclass.
    """
    opts = ReadOptions.from_any(options)
    cache = default_cache if header_cache is None else header_cache
    registry = default_registry if registry is None else registry
    target = str(path_or_uri)

    tag = opts.format_override or identify(target)

    if tag == BUFFER_TAG:
        # live data: never cached, no fallback
        host, port = parse_buffer_uri(target)
        return fetch_header(host, port, opts.retry, interval=opts.retry_interval, max_wait=opts.max_wait)
    if tag in URI_SCHEMES.values():
        raise UnsupportedFormat(f"Reading headers from '{tag}' resources is not supported.")

    if not Path(target).exists():
        raise NotFound(f"No such file or directory: '{target}'")

    files = dataset_files(target, tag)
    entry = registry.resolve(files.tag, opts)
    parts = _segment_files(files, entry, opts)

    def parse() -> CanonicalHeader:
        headers = [normalize(entry.decode(part, opts), entry.tag) for part in parts]
        return headers[0] if len(headers) == 1 else join(headers)

    use_cache = opts.cache if opts.cache is not None else entry.cache_default
    if not use_cache:
        return parse()

    identity = file_identity(_identity_paths(parts, entry))
    refresh = partial(entry.refresh, files=files) if entry.refresh is not None else None
    return cache.get_or_parse(identity, parse, refresh=refresh)
