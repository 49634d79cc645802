"""Data models for the campaign code analyzer."""

from .linting import (
    Diagnostic,
    DiagnosticCategory,
    Dialect,
    Impact,
    Severity,
    Suggestion,
    SuggestionKind,
    ValidationResult,
)
from .rules import RuleCategory, RuleDefinition, RuleScope, Violation
from .metrics import ComplexityMetrics, MemoryMetrics, PerformanceMetrics, Recommendation, RecommendationKind
from .analysis import LiveAnalysisResult, RealTimeAnalysisConfig

__all__ = [
    "Diagnostic",
    "DiagnosticCategory",
    "Dialect",
    "Impact",
    "Severity",
    "Suggestion",
    "SuggestionKind",
    "ValidationResult",
    "RuleCategory",
    "RuleDefinition",
    "RuleScope",
    "Violation",
    "ComplexityMetrics",
    "MemoryMetrics",
    "PerformanceMetrics",
    "Recommendation",
    "RecommendationKind",
    "LiveAnalysisResult",
    "RealTimeAnalysisConfig",
]
