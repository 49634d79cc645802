"""
Autofix models (deterministic textual rewrites of campaign code).

Autofix is a trust boundary: whenever we rewrite code, we must be explicit,
auditable, and reversible.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class AutofixChange(BaseModel):
    """A single applied autofix change."""

    rule_id: str
    message: str
    line: Optional[int] = None


class AutofixReport(BaseModel):
    """Autofix metadata attached to an analysis result."""

    applied: bool = False

    original_code: Optional[str] = None
    fixed_code: Optional[str] = None
    diff: Optional[str] = None

    changes: List[AutofixChange] = Field(default_factory=list)
    # Diagnostics that had no registered rewrite
    skipped_rules: List[str] = Field(default_factory=list)
