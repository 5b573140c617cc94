"""Scramblery — randomized image obfuscation engine."""

from scramblery._version import __version__

__all__ = ["__version__"]
