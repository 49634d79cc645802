"""
Safe autofix engine (deterministic, offline).

This is intentionally conservative:
- Only rules with a registered line rewrite in the dialect validator are fixed.
- Rewrites are line-based and applied bottom-up (formatting elsewhere is untouched).
- Every rewrite produces an explicit diff and change list for transparency.
"""

from __future__ import annotations

import difflib
import logging
from typing import Sequence

from ..models.autofix import AutofixReport
from ..models.linting import Diagnostic
from .validators import BaseDialectValidator, Capability

logger = logging.getLogger(__name__)


class AutofixService:
    """Turn a validator's fixable diagnostics into an auditable AutofixReport."""

    def build_report(
        self,
        validator: BaseDialectValidator,
        code: str,
        diagnostics: Sequence[Diagnostic],
    ) -> AutofixReport:
        report = AutofixReport(applied=False, original_code=code)
        if not diagnostics or not validator.supports(Capability.FIX):
            return report

        fixed_code, changes, skipped = validator.apply_fixes(code, diagnostics)
        report.skipped_rules = skipped
        if fixed_code == code:
            return report

        ext = validator.dialect.value
        report.applied = True
        report.fixed_code = fixed_code
        report.changes = changes
        report.diff = "\n".join(
            difflib.unified_diff(
                code.splitlines(),
                fixed_code.splitlines(),
                fromfile=f"before.{ext}",
                tofile=f"after.{ext}",
                lineterm="",
            )
        )
        logger.debug(f"Autofix applied {len(changes)} change(s) for {ext}; skipped rules: {skipped}")
        return report
