"""
Tests for the CodeAnalysisService facade and the autofix report.
"""

from unittest.mock import patch

import pytest

from backend.app.models.analysis import AnalysisLevel, CodeAnalysisRequest
from backend.app.models.linting import Diagnostic, DiagnosticCategory, Dialect, Severity
from backend.app.services.autofix_service import AutofixService
from backend.app.services.code_analysis_service import (
    CodeAnalysisService,
    UnsupportedDialectError,
    calculate_confidence,
)
from backend.app.services.validators import BaseDialectValidator, ValidatorRegistry


def _diag(category=DiagnosticCategory.SYNTAX):
    return Diagnostic(line=1, column=0, rule="r", message="m", category=category, severity=Severity.WARNING)


class PlainMarkupValidator(BaseDialectValidator):
    """Validate-only validator, like a dialect plugged in without the richer passes."""

    name = "plain_markup"
    dialect = Dialect.HTML

    def validate(self, code):
        found = [_diag()] if "<img" in code else []
        return self.bundle(found)


@pytest.fixture(scope="module")
def service():
    return CodeAnalysisService()


def test_confidence_weights():
    assert calculate_confidence([], [], []) == 1.0
    assert calculate_confidence([_diag()], [], []) == pytest.approx(0.5)
    assert calculate_confidence([], [_diag()], []) == pytest.approx(0.7)
    assert calculate_confidence([_diag()], [], [_diag()]) == pytest.approx(0.65)


def test_get_validator_resolves_aliases(service):
    assert service.get_validator("amp").dialect == Dialect.AMPSCRIPT
    assert service.get_validator(Dialect.SQL).dialect == Dialect.SQL
    with pytest.raises(UnsupportedDialectError):
        service.get_validator("cobol")


@pytest.mark.asyncio
async def test_validate_syntax_falls_back_to_validate_bundle(service):
    """A validator without the syntax capability has its validate() bundle used instead."""
    with patch.object(ValidatorRegistry, "get", return_value=PlainMarkupValidator()):
        diagnostics = await service.validate_syntax('<img src="a.png">', Dialect.HTML)
    assert [d.rule for d in diagnostics] == ["r"]


@pytest.mark.asyncio
async def test_validate_syntax_includes_semantics(service):
    diagnostics = await service.validate_syntax("%%=Concat(@a,@b)=%", Dialect.AMPSCRIPT)
    rules = {d.rule for d in diagnostics}
    assert {"ampscript-output-syntax", "ampscript-undefined-variable"} <= rules


@pytest.mark.asyncio
async def test_unsupported_dialect_from_every_entry_point(service):
    with pytest.raises(UnsupportedDialectError):
        await service.validate_syntax("x", "cobol")
    with pytest.raises(UnsupportedDialectError):
        await service.analyze_performance("x", "cobol")
    with pytest.raises(UnsupportedDialectError):
        await service.get_best_practice_violations("x", "cobol")


@pytest.mark.asyncio
async def test_select_star_is_valid_with_warnings(service):
    result = await service.analyze_code(CodeAnalysisRequest(code="SELECT * FROM Subscribers", dialect=Dialect.SQL))

    assert result.is_valid is True
    assert "sql-select-star" in [d.rule for d in result.syntax_errors]
    assert [v.rule for v in result.best_practice_violations] == ["sql-select-star"]
    assert result.metrics is not None
    assert result.fixed_code is None
    assert result.confidence == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_syntax_level_skips_metrics_and_rules(service):
    request = CodeAnalysisRequest(
        code="SELECT * FROM Subscribers", dialect=Dialect.SQL, analysis_level=AnalysisLevel.SYNTAX
    )
    result = await service.analyze_code(request)
    assert result.metrics is None
    assert result.best_practice_violations == []
    assert result.optimization_suggestions == []
    assert result.performance_issues == []


@pytest.mark.asyncio
async def test_full_analysis_returns_fixed_code(service):
    request = CodeAnalysisRequest(code="%%=Concat(@a,@b)=%", dialect=Dialect.AMPSCRIPT)
    result = await service.analyze_code(request)

    assert result.is_valid is False
    assert result.fixed_code == "%%=Concat(@a,@b)=%%"
    assert result.autofix.applied is True
    assert result.autofix.diff.startswith("--- before.ampscript")
    assert [c.rule_id for c in result.autofix.changes] == ["ampscript-output-syntax"]
    assert "ampscript-undefined-variable" in result.autofix.skipped_rules


@pytest.mark.asyncio
async def test_fixes_can_be_turned_off(service):
    request = CodeAnalysisRequest(code="%%=Concat(@a,@b)=%", dialect=Dialect.AMPSCRIPT, include_fixes=False)
    result = await service.analyze_code(request)
    assert result.fixed_code is None
    assert result.autofix is None


def test_autofix_report_without_fix_capability():
    validator = PlainMarkupValidator()
    code = '<img src="a.png">'
    report = AutofixService().build_report(validator, code, validator.validate(code).warnings)
    assert report.applied is False
    assert report.fixed_code is None
    assert report.original_code == code


def test_autofix_report_when_no_rewrite_applies():
    sql = ValidatorRegistry.get(Dialect.SQL)
    code = "SELECT * FROM Subscribers"
    report = AutofixService().build_report(sql, code, sql.validate_syntax(code))
    assert report.applied is False
    assert set(report.skipped_rules) == {"sql-select-star", "sql-missing-top"}


def test_fixer_tables_are_read_only_and_per_validator():
    with pytest.raises(TypeError):
        PlainMarkupValidator.fixers["r"] = lambda line, d: line
    assert dict(PlainMarkupValidator.fixers) == {}

    html = ValidatorRegistry.get(Dialect.HTML)
    css = ValidatorRegistry.get(Dialect.CSS)
    assert "html-img-alt" in html.fixers
    assert "html-img-alt" not in css.fixers
