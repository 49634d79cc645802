"""Services for the campaign code analyzer."""

from .rule_set import RuleSet, RuleTableLoader
from .best_practices_enforcer import BestPracticesEnforcer
from .performance_metrics import PerformanceMetricsCalculator
from .code_analysis_service import CodeAnalysisService
from .realtime_analyzer import RealTimeAnalyzer

__all__ = [
    "RuleSet",
    "RuleTableLoader",
    "BestPracticesEnforcer",
    "PerformanceMetricsCalculator",
    "CodeAnalysisService",
    "RealTimeAnalyzer",
]
