"""
Analysis models for the real-time orchestrator and the analysis facade.

LiveAnalysisResult is the immutable snapshot handed back to the editor on each
debounced cycle; CodeAnalysisRequest/CodeAnalysisResult describe the one-shot
"analyze everything" path used by the full-analysis endpoint.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .autofix import AutofixReport
from .linting import Diagnostic, Dialect, Severity, Suggestion
from .metrics import PerformanceMetrics
from .rules import RuleDefinition, Violation


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RealTimeAnalysisConfig(BaseModel):
    """Runtime switches for the real-time orchestrator."""

    debounce_ms: int = Field(default=300, gt=0)
    enable_live_validation: bool = True
    enable_performance_metrics: bool = True
    enable_best_practices: bool = True


class RealTimeAnalysisConfigUpdate(BaseModel):
    """Partial config update; unset fields keep their current value."""

    debounce_ms: Optional[int] = Field(default=None, gt=0)
    enable_live_validation: Optional[bool] = None
    enable_performance_metrics: Optional[bool] = None
    enable_best_practices: Optional[bool] = None


class LiveAnalysisResult(BaseModel):
    """Merged result of one analysis cycle."""

    model_config = ConfigDict(frozen=True)

    errors: List[Diagnostic] = Field(default_factory=list)
    warnings: List[Diagnostic] = Field(default_factory=list)
    suggestions: List[Suggestion] = Field(default_factory=list)
    is_valid: bool = True
    computed_at: datetime = Field(default_factory=_utcnow)

    # Per-session cycle number (0 for results not tied to a cycle)
    sequence: int = 0

    @model_validator(mode="after")
    def _check_partition(self) -> "LiveAnalysisResult":
        if any(d.severity != Severity.ERROR for d in self.errors):
            raise ValueError("errors may only contain error-severity diagnostics")
        if self.is_valid != (len(self.errors) == 0):
            raise ValueError("is_valid must be true exactly when there are no errors")
        return self

    @classmethod
    def empty(cls, sequence: int = 0) -> "LiveAnalysisResult":
        return cls(sequence=sequence)


class AnalysisLevel(str, Enum):
    SYNTAX = "syntax"
    PERFORMANCE = "performance"
    BEST_PRACTICES = "best_practices"
    COMPREHENSIVE = "comprehensive"


class CodeAnalysisRequest(BaseModel):
    code: str
    dialect: Dialect
    analysis_level: AnalysisLevel = AnalysisLevel.COMPREHENSIVE
    include_fixes: bool = True


class CodeAnalysisResult(BaseModel):
    """Full one-shot analysis of a source unit."""

    dialect: Dialect
    is_valid: bool
    syntax_errors: List[Diagnostic] = Field(default_factory=list)
    semantic_warnings: List[Diagnostic] = Field(default_factory=list)
    performance_issues: List[Diagnostic] = Field(default_factory=list)
    best_practice_violations: List[Violation] = Field(default_factory=list)
    optimization_suggestions: List[Suggestion] = Field(default_factory=list)
    metrics: Optional[PerformanceMetrics] = None
    fixed_code: Optional[str] = None
    autofix: Optional[AutofixReport] = None
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    processing_time_ms: float = 0.0


# --- HTTP request / response bodies -------------------------------------------------


class SourceUnitRequest(BaseModel):
    code: str
    dialect: Dialect


class RealtimeAnalysisRequest(SourceUnitRequest):
    session_id: str = Field(..., min_length=1)


class DiagnosticsResponse(BaseModel):
    dialect: Dialect
    diagnostics: List[Diagnostic] = Field(default_factory=list)


class ViolationsResponse(BaseModel):
    dialect: Dialect
    violations: List[Violation] = Field(default_factory=list)


class RuleListResponse(BaseModel):
    total: int
    rules: List[RuleDefinition] = Field(default_factory=list)
