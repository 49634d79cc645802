"""
Version import for the campaignlint backend.

Single source of truth: campaignlint/_version.py
"""

from campaignlint._version import __version__, __release_date__

__all__ = ["__version__", "__release_date__"]
