"""
Linting models (static quality feedback for campaign code).

These models are intentionally small and stable: they are part of the API surface
between the analysis engine and the editor UI (live squiggles, problems panel).
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Dialect(str, Enum):
    """Languages the engine understands."""

    AMPSCRIPT = "ampscript"     # template-script embedded in email bodies
    SSJS = "ssjs"               # server-side JavaScript
    SQL = "sql"                 # query activity SQL
    HTML = "html"
    CSS = "css"
    JAVASCRIPT = "javascript"

    @classmethod
    def parse(cls, value: str) -> "Dialect":
        """Resolve a dialect name, accepting a few common aliases."""
        key = (value or "").strip().lower()
        aliases = {
            "amp": cls.AMPSCRIPT,
            "server-side-javascript": cls.SSJS,
            "serverjs": cls.SSJS,
            "js": cls.JAVASCRIPT,
            "markup": cls.HTML,
        }
        if key in aliases:
            return aliases[key]
        return cls(key)


class Severity(str, Enum):
    """Severity level for findings (error > warning > info)."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        return {"error": 3, "warning": 2, "info": 1}[self.value]


class DiagnosticCategory(str, Enum):
    SYNTAX = "syntax"
    SEMANTIC = "semantic"
    SECURITY = "security"
    PERFORMANCE = "performance"
    STYLE = "style"


class Diagnostic(BaseModel):
    """A single finding produced by any analysis pass."""

    model_config = ConfigDict(frozen=True)

    # 1-based line number / 0-based column offset
    line: int = Field(..., ge=1)
    column: Optional[int] = Field(default=None, ge=0)

    message: str
    rule: str
    category: DiagnosticCategory
    severity: Severity

    # Remediation hint; validators also use it when rewriting the line
    fix_suggestion: Optional[str] = None

    def dedup_key(self) -> tuple:
        return (self.rule, self.line, self.column)


class SuggestionKind(str, Enum):
    PERFORMANCE = "performance"
    BEST_PRACTICE = "best_practice"
    SECURITY = "security"
    MAINTAINABILITY = "maintainability"


class Impact(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_severity(cls, severity: Severity) -> "Impact":
        return {
            Severity.ERROR: cls.HIGH,
            Severity.WARNING: cls.MEDIUM,
            Severity.INFO: cls.LOW,
        }[severity]


class Suggestion(BaseModel):
    """Advisory hint. Never affects validity."""

    model_config = ConfigDict(frozen=True)

    message: str
    kind: SuggestionKind

    id: Optional[str] = None
    title: Optional[str] = None
    impact: Optional[Impact] = None
    line: Optional[int] = None


class ValidationResult(BaseModel):
    """Bundle returned by a validator's `validate()` entry point."""

    is_valid: bool = True
    errors: List[Diagnostic] = Field(default_factory=list)
    warnings: List[Diagnostic] = Field(default_factory=list)
    suggestions: List[Suggestion] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validity_follows_errors(self) -> "ValidationResult":
        self.is_valid = not self.errors
        return self
