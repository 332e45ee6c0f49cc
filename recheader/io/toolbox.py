# recheader/io/toolbox.py
"""Probe for optional decoding libraries."""
from __future__ import annotations

import functools
import importlib.util
import logging

logger = logging.getLogger(__name__)

# toolbox name -> importable module providing it
TOOLBOX_MODULES = {
    "asammdf": "asammdf",
}


@functools.lru_cache(maxsize=None)
def available(name: str) -> bool:
    """Return True when the library behind toolbox ``name`` can be imported.

    The answer is memoised for the lifetime of the process.
    """
    module = TOOLBOX_MODULES.get(name.lower(), name)
    try:
        found = importlib.util.find_spec(module) is not None
    except (ImportError, ValueError):
        found = False
    if not found:
        logger.debug("Toolbox '%s' (module '%s') is not available", name, module)
    return found
