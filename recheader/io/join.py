# recheader/io/join.py
"""
Segmented recordings.

A continuous recording that hit a size limit continues in numbered sibling
files: ``rec.edf``, ``rec_1.edf``, ``rec_2.edf``, ... (``_``, ``.`` or ``-``
before the number). discover_segments() finds them, join() folds their
headers into one continuous header.
"""
from __future__ import annotations

import copy
import logging
import re
from dataclasses import replace
from pathlib import Path
from typing import Sequence

from recheader.core.exceptions import InconsistentSegments, JoinError
from recheader.core.header import CanonicalHeader

logger = logging.getLogger(__name__)

_NUMBERED_RE = re.compile(r"^.+[_.-]\d+$")


def discover_segments(path: str | Path) -> list[Path]:
    """Return ``path`` followed by its numbered continuation files in order.

    Numbers must be contiguous from the lowest one found; discovery stops at
    the first gap. A path that is itself a numbered part is returned alone.
    """
    path = Path(path)
    if _NUMBERED_RE.match(path.stem):
        return [path]

    part_re = re.compile(rf"^{re.escape(path.stem)}[_.-](\d+){re.escape(path.suffix)}$")
    by_number: dict[int, Path] = {}
    for sibling in path.parent.iterdir():
        m = part_re.match(sibling.name)
        if not m or not sibling.is_file():
            continue
        n = int(m.group(1))
        if n in by_number:
            raise JoinError(
                f"Ambiguous segment {n} of '{path}': '{by_number[n].name}' and '{sibling.name}'."
            )
        by_number[n] = sibling

    parts = [path]
    if not by_number:
        return parts
    n = min(by_number)
    while n in by_number:
        parts.append(by_number[n])
        n += 1
    skipped = sorted(k for k in by_number if k >= n)
    if skipped:
        logger.warning("'%s': segment %d missing, ignoring segments %s", path, n, skipped)
    return parts


def _check_part(base: CanonicalHeader, part: CanonicalHeader, i: int) -> None:
    if part.channel_count != base.channel_count:
        raise InconsistentSegments(
            f"Segment {i} has {part.channel_count} channels, segment 0 has {base.channel_count}."
        )
    if part.sampling_rate != base.sampling_rate:
        raise InconsistentSegments(
            f"Segment {i} is sampled at {part.sampling_rate} Hz, segment 0 at {base.sampling_rate} Hz."
        )
    if part.labels != base.labels:
        differing = [a for a, b in zip(base.labels, part.labels) if a != b]
        raise InconsistentSegments(f"Segment {i} has different channel labels (first: {differing[:1]}).")


def join(headers: Sequence[CanonicalHeader]) -> CanonicalHeader:
    """Fold per-file headers of one recording into a single continuous header."""
    if not headers:
        raise JoinError("Nothing to join.")
    base = headers[0]
    total = 0
    warnings: list[str] = []
    for i, part in enumerate(headers):
        _check_part(base, part, i)
        total += int(part.samples_per_trial) * int(part.trial_count)
        warnings.extend(w for w in part.warnings if w not in warnings)

    logger.debug("Joined %d segments of '%s': %d samples", len(headers), base.source, total)
    return replace(
        base,
        samples_per_trial=total,
        pre_trigger_samples=0,
        trial_count=1,
        raw_origin=tuple(copy.deepcopy(h.raw_origin) for h in headers),
        warnings=tuple(warnings),
    )
