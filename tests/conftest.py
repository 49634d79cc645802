"""
Pytest configuration for the campaign code analyzer.

Tests import the service as `backend.app.*` and the version metadata as
`campaignlint`; both live at the repository root, which is not necessarily on
`sys.path` when the package is not installed.
"""

from __future__ import annotations

import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parent.parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))
