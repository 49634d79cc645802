"""
Code analysis service.

Thin facade over the dialect validators, the best-practices enforcer and the
metrics calculator. The real-time analyzer and the HTTP API call into this
service instead of the validators directly, so dialect implementations can be
swapped through the ValidatorRegistry.
"""

import logging
import time
from typing import List, Optional, Union

from ..models.analysis import AnalysisLevel, CodeAnalysisRequest, CodeAnalysisResult
from ..models.linting import Diagnostic, Dialect, Severity, Suggestion
from ..models.metrics import PerformanceMetrics
from ..models.rules import Violation
from .autofix_service import AutofixService
from .best_practices_enforcer import BestPracticesEnforcer
from .performance_metrics import PerformanceMetricsCalculator
from .validators import BaseDialectValidator, Capability, ValidatorRegistry

logger = logging.getLogger(__name__)

SYNTAX_WEIGHT = 0.5
SEMANTIC_WEIGHT = 0.3
PERFORMANCE_WEIGHT = 0.2
MIN_CONFIDENCE = 0.1


class UnsupportedDialectError(ValueError):
    """Raised when no validator is registered for the requested dialect."""

    def __init__(self, dialect: object):
        super().__init__(f"Unsupported dialect: {dialect}")
        self.dialect = dialect


def calculate_confidence(
    syntax: List[Diagnostic], semantic: List[Diagnostic], performance: List[Diagnostic]
) -> float:
    total = len(syntax) + len(semantic) + len(performance)
    if total == 0:
        return 1.0
    weighted = (
        len(syntax) * SYNTAX_WEIGHT
        + len(semantic) * SEMANTIC_WEIGHT
        + len(performance) * PERFORMANCE_WEIGHT
    ) / total
    return max(MIN_CONFIDENCE, 1.0 - weighted)


class CodeAnalysisService:
    """Dialect-aware analysis entry points."""

    def __init__(
        self,
        enforcer: Optional[BestPracticesEnforcer] = None,
        metrics_calculator: Optional[PerformanceMetricsCalculator] = None,
        autofix: Optional[AutofixService] = None,
    ):
        self.enforcer = enforcer or BestPracticesEnforcer()
        self.metrics_calculator = metrics_calculator or PerformanceMetricsCalculator()
        self.autofix = autofix or AutofixService()

    def get_validator(self, dialect: Union[Dialect, str]) -> BaseDialectValidator:
        try:
            resolved = dialect if isinstance(dialect, Dialect) else Dialect.parse(dialect)
        except ValueError:
            raise UnsupportedDialectError(dialect)
        validator = ValidatorRegistry.get(resolved)
        if validator is None:
            raise UnsupportedDialectError(resolved.value)
        return validator

    async def validate_syntax(self, code: str, dialect: Union[Dialect, str]) -> List[Diagnostic]:
        """
        Syntax diagnostics, plus semantic diagnostics where the validator has them.

        Validators without the SYNTAX capability fall back to their validate() bundle.
        """
        validator = self.get_validator(dialect)
        if not validator.supports(Capability.SYNTAX):
            bundle = validator.validate(code)
            return bundle.errors + bundle.warnings

        diagnostics = list(validator.validate_syntax(code))
        if validator.supports(Capability.SEMANTICS):
            diagnostics.extend(validator.validate_semantics(code))
        return diagnostics

    async def analyze_performance(self, code: str, dialect: Union[Dialect, str]) -> PerformanceMetrics:
        validator = self.get_validator(dialect)
        return self.metrics_calculator.calculate_metrics(code, validator.dialect)

    async def get_best_practice_violations(self, code: str, dialect: Union[Dialect, str]) -> List[Violation]:
        validator = self.get_validator(dialect)
        return self.enforcer.enforce_rules(code, validator.dialect)

    async def analyze_code(self, request: CodeAnalysisRequest) -> CodeAnalysisResult:
        start = time.time()
        validator = self.get_validator(request.dialect)
        code = request.code
        level = request.analysis_level
        logger.info(f"Starting code analysis: dialect={request.dialect.value} level={level.value} chars={len(code)}")

        if validator.supports(Capability.SYNTAX):
            syntax = validator.validate_syntax(code)
            semantic = validator.validate_semantics(code) if validator.supports(Capability.SEMANTICS) else []
        else:
            bundle = validator.validate(code)
            syntax, semantic = bundle.errors + bundle.warnings, []

        metrics: Optional[PerformanceMetrics] = None
        performance: List[Diagnostic] = []
        if level in (AnalysisLevel.PERFORMANCE, AnalysisLevel.COMPREHENSIVE):
            metrics = self.metrics_calculator.calculate_metrics(code, request.dialect)
            if validator.supports(Capability.PERFORMANCE):
                performance = validator.analyze_performance(code)

        violations: List[Violation] = []
        suggestions: List[Suggestion] = []
        if level in (AnalysisLevel.BEST_PRACTICES, AnalysisLevel.COMPREHENSIVE):
            violations = self.enforcer.enforce_rules(code, request.dialect)
            if validator.supports(Capability.OPTIMIZATION):
                suggestions = validator.get_optimization_suggestions(code)

        fixed_code = None
        report = None
        if request.include_fixes and (syntax or semantic) and validator.supports(Capability.FIX):
            report = self.autofix.build_report(validator, code, syntax + semantic)
            fixed_code = report.fixed_code if report.applied else None

        everything = [*syntax, *semantic, *performance, *violations]
        processing_ms = (time.time() - start) * 1000

        result = CodeAnalysisResult(
            dialect=request.dialect,
            is_valid=not any(d.severity == Severity.ERROR for d in everything),
            syntax_errors=syntax,
            semantic_warnings=semantic,
            performance_issues=performance,
            best_practice_violations=violations,
            optimization_suggestions=suggestions,
            metrics=metrics,
            fixed_code=fixed_code,
            autofix=report,
            confidence=calculate_confidence(syntax, semantic, performance),
            processing_time_ms=round(processing_ms, 2),
        )
        logger.info(
            f"Code analysis completed: {len(syntax)} syntax, {len(semantic)} semantic, "
            f"{len(performance)} performance, {len(violations)} rule finding(s) in {processing_ms:.1f}ms"
        )
        return result
