"""
Version information for the campaignlint package.

This module provides the single source of truth for version information.
Update both __version__ and __release_date__ when releasing new versions.
"""

__version__ = "0.4.0"
__version_info__ = tuple(map(int, __version__.split(".")))
__release_date__ = "Oct 17, 2026"

# Additional version metadata
__description__ = "Real-time static analysis for AMPscript, SSJS and SQL campaign code"
