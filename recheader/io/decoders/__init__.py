# recheader/io/decoders/__init__.py
"""
Built-in decoders.

Importing this package registers every decoder below in
``recheader.io.registry.default_registry``.
"""

from . import bci2000, brainvision, ctf, edf, mdf, neuralynx

__all__ = ["bci2000", "brainvision", "ctf", "edf", "mdf", "neuralynx"]
