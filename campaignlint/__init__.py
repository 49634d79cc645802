"""campaignlint: real-time static analysis for Marketing Cloud dialects."""

from ._version import __version__

__all__ = ["__version__"]
