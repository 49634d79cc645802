"""
Tests for RealTimeAnalyzer: debouncing, session cache, stale completions,
configuration switches and failure handling.

Most tests stub CodeAnalysisService with AsyncMocks so the timing is driven
only by the debounce window.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from backend.app.models.analysis import RealTimeAnalysisConfig
from backend.app.models.linting import Diagnostic, DiagnosticCategory, Dialect, Impact, Severity
from backend.app.models.metrics import PerformanceMetrics, Recommendation, RecommendationKind
from backend.app.services.code_analysis_service import CodeAnalysisService, UnsupportedDialectError
from backend.app.services import realtime_analyzer
from backend.app.services.realtime_analyzer import RealTimeAnalyzer, merge_results
from backend.app.services.best_practices_enforcer import BestPracticesEnforcer


def _diag(rule, severity=Severity.WARNING, line=1):
    return Diagnostic(line=line, column=0, rule=rule, message=rule, category=DiagnosticCategory.SYNTAX, severity=severity)


def _service():
    service = MagicMock()
    service.validate_syntax = AsyncMock(side_effect=lambda code, dialect: [_diag(f"seen-{code}")])
    service.get_best_practice_violations = AsyncMock(return_value=[])
    service.analyze_performance = AsyncMock(return_value=PerformanceMetrics())
    return service


def _analyzer(service=None, debounce_ms=10, **switches):
    return RealTimeAnalyzer(service or _service(), RealTimeAnalysisConfig(debounce_ms=debounce_ms, **switches))


@pytest.mark.asyncio
async def test_burst_collapses_into_one_pass_over_latest_code():
    service = _service()
    analyzer = _analyzer(service)

    results = await asyncio.gather(
        analyzer.analyze_code_realtime("a", Dialect.SSJS, "s1"),
        analyzer.analyze_code_realtime("b", Dialect.SSJS, "s1"),
        analyzer.analyze_code_realtime("c", Dialect.SSJS, "s1"),
    )

    service.validate_syntax.assert_awaited_once_with("c", Dialect.SSJS)
    assert all(r == results[0] for r in results)
    assert [d.rule for d in results[0].warnings] == ["seen-c"]
    assert results[0].sequence == 3
    assert analyzer.get_cached_result("s1") == results[0]


@pytest.mark.asyncio
async def test_sessions_are_independent():
    service = _service()
    analyzer = _analyzer(service)

    first, second = await asyncio.gather(
        analyzer.analyze_code_realtime("a", Dialect.SSJS, "s1"),
        analyzer.analyze_code_realtime("b", Dialect.SSJS, "s2"),
    )
    assert service.validate_syntax.await_count == 2
    assert [d.rule for d in first.warnings] == ["seen-a"]
    assert [d.rule for d in second.warnings] == ["seen-b"]
    assert analyzer.active_sessions() == ["s1", "s2"]


@pytest.mark.asyncio
async def test_stale_completion_does_not_overwrite_cache():
    gate = asyncio.Event()
    service = _service()

    async def validate(code, dialect):
        if code == "old":
            await gate.wait()
        return [_diag(f"seen-{code}")]

    service.validate_syntax.side_effect = validate
    analyzer = _analyzer(service, debounce_ms=5)

    old = asyncio.create_task(analyzer.analyze_code_realtime("old", Dialect.SSJS, "s1"))
    while service.validate_syntax.call_count == 0:
        await asyncio.sleep(0.001)

    # The old pass is analysing; a new call starts its own cycle instead of preempting it
    new = await analyzer.analyze_code_realtime("new", Dialect.SSJS, "s1")
    gate.set()
    old_result = await old

    assert old_result.sequence == 1
    assert new.sequence == 2
    cached = analyzer.get_cached_result("s1")
    assert cached.sequence == 2
    assert [d.rule for d in cached.warnings] == ["seen-new"]


@pytest.mark.asyncio
async def test_clear_cache_releases_pending_callers():
    service = _service()
    analyzer = _analyzer(service, debounce_ms=200)

    pending = asyncio.create_task(analyzer.analyze_code_realtime("a", Dialect.SSJS, "s1"))
    await asyncio.sleep(0)

    assert analyzer.clear_cache("s1") is True
    result = await pending

    assert result.errors == [] and result.warnings == []
    assert result.sequence == 0
    service.validate_syntax.assert_not_awaited()
    assert analyzer.get_cached_result("s1") is None
    assert analyzer.clear_cache("s1") is False


@pytest.mark.asyncio
async def test_disabled_best_practices_are_not_run():
    service = _service()
    analyzer = _analyzer(service)
    analyzer.update_config({"enable_best_practices": False})

    await analyzer.analyze_code_realtime("a", Dialect.AMPSCRIPT, "s1")
    service.get_best_practice_violations.assert_not_awaited()
    service.validate_syntax.assert_awaited_once()


@pytest.mark.asyncio
async def test_disabled_live_validation_skips_validators():
    service = _service()
    analyzer = _analyzer(service, enable_live_validation=False)

    result = await analyzer.analyze_code_realtime("a", Dialect.SSJS, "s1")
    service.validate_syntax.assert_not_awaited()
    assert result.is_valid is True


@pytest.mark.asyncio
async def test_failure_falls_back_to_last_result():
    service = _service()
    analyzer = _analyzer(service)

    good = await analyzer.analyze_code_realtime("a", Dialect.SSJS, "s1")
    service.validate_syntax.side_effect = RuntimeError("validator crashed")
    degraded = await analyzer.analyze_code_realtime("b", Dialect.SSJS, "s1")

    assert degraded == good
    assert analyzer.get_cached_result("s1") == good


@pytest.mark.asyncio
async def test_failure_without_history_gives_empty_result():
    service = _service()
    service.validate_syntax.side_effect = RuntimeError("validator crashed")
    analyzer = _analyzer(service)

    result = await analyzer.analyze_code_realtime("a", Dialect.SSJS, "s1")
    assert result.is_valid is True
    assert result.errors == [] and result.warnings == []


@pytest.mark.asyncio
async def test_immediate_paths_degrade_but_reject_unknown_dialects():
    service = _service()
    service.validate_syntax.side_effect = RuntimeError("boom")
    service.get_best_practice_violations.side_effect = UnsupportedDialectError("cobol")
    service.analyze_performance.side_effect = RuntimeError("boom")
    analyzer = _analyzer(service)

    assert await analyzer.validate_syntax_immediate("a", Dialect.SSJS) == []
    assert await analyzer.calculate_performance_metrics("a", Dialect.SSJS) == PerformanceMetrics()
    with pytest.raises(UnsupportedDialectError):
        await analyzer.enforce_best_practices("a", Dialect.SSJS)


@pytest.mark.asyncio
async def test_metrics_switch():
    service = _service()
    analyzer = _analyzer(service, enable_performance_metrics=False)
    assert await analyzer.calculate_performance_metrics("a", Dialect.SSJS) == PerformanceMetrics()
    service.analyze_performance.assert_not_awaited()


def test_update_config_is_partial_and_validated():
    analyzer = _analyzer(debounce_ms=300)
    updated = analyzer.update_config({"debounce_ms": 50, "enable_live_validation": None})
    assert updated.debounce_ms == 50
    assert updated.enable_live_validation is True

    with pytest.raises(ValidationError):
        analyzer.update_config({"debounce_ms": 0})
    assert analyzer.config.debounce_ms == 50


@pytest.mark.asyncio
async def test_shutdown_releases_everything():
    analyzer = _analyzer(debounce_ms=500)
    pending = asyncio.create_task(analyzer.analyze_code_realtime("a", Dialect.SSJS, "s1"))
    await asyncio.sleep(0)

    await analyzer.shutdown()
    result = await pending
    assert result.sequence == 0
    assert analyzer.active_sessions() == []


def test_merge_prefers_validator_finding_for_same_construct():
    diagnostics = [_diag("sql-select-star"), _diag("boom", Severity.ERROR, line=2)]
    violations = BestPracticesEnforcer().enforce_rules("SELECT * FROM Subscribers", Dialect.SQL)

    result = merge_results(diagnostics, violations, sequence=7)
    assert [d.rule for d in result.errors] == ["boom"]
    assert [d.rule for d in result.warnings] == ["sql-select-star"]
    assert type(result.warnings[0]) is Diagnostic
    assert [s.title for s in result.suggestions] == ["Avoid SELECT *"]
    assert result.is_valid is False
    assert result.sequence == 7


@pytest.mark.asyncio
async def test_end_to_end_with_real_validators():
    analyzer = RealTimeAnalyzer(CodeAnalysisService(), RealTimeAnalysisConfig(debounce_ms=5))

    result = await analyzer.analyze_code_realtime("SELECT * FROM Subscribers", "sql", "editor-1")
    assert result.is_valid is True
    assert [d.rule for d in result.warnings].count("sql-select-star") == 1

    result = await analyzer.analyze_code_realtime("%%=Concat(@a,@b)=%", Dialect.AMPSCRIPT, "editor-2")
    assert [d.rule for d in result.errors] == ["ampscript-output-syntax"]


@pytest.mark.asyncio
async def test_disabled_best_practices_with_real_rule_table():
    analyzer = RealTimeAnalyzer(CodeAnalysisService(), RealTimeAnalysisConfig(debounce_ms=5))
    code = "SET myVar = 1"

    enabled = await analyzer.analyze_code_realtime(code, Dialect.AMPSCRIPT, "naming")
    assert [d.rule for d in enabled.errors] == ["naming_ampscript_variables"]

    analyzer.update_config({"enable_best_practices": False})
    assert await analyzer.enforce_best_practices(code, Dialect.AMPSCRIPT) == []

    result = await analyzer.analyze_code_realtime(code, Dialect.AMPSCRIPT, "naming")
    assert result.suggestions == []
    assert result.errors == [] and result.warnings == []
    assert result.is_valid is True


@pytest.mark.asyncio
async def test_analysing_cycle_stays_referenced_until_done():
    gate = asyncio.Event()
    service = _service()

    async def validate(code, dialect):
        await gate.wait()
        return [_diag(f"seen-{code}")]

    service.validate_syntax.side_effect = validate
    analyzer = _analyzer(service, debounce_ms=5)

    caller = asyncio.create_task(analyzer.analyze_code_realtime("a", Dialect.SSJS, "s1"))
    while service.validate_syntax.call_count == 0:
        await asyncio.sleep(0.001)

    session = analyzer._sessions["s1"]
    assert session.pending is None
    [task] = session.running
    assert not task.done()

    gate.set()
    result = await caller
    await task
    await asyncio.sleep(0)

    assert [d.rule for d in result.warnings] == ["seen-a"]
    assert session.running == set()


@pytest.mark.asyncio
async def test_slow_metrics_pass_adds_recommendation(monkeypatch):
    existing = Recommendation(kind=RecommendationKind.CACHING, message="cache it", impact=Impact.HIGH)
    service = _service()
    service.analyze_performance = AsyncMock(return_value=PerformanceMetrics(recommendations=[existing]))
    analyzer = _analyzer(service)

    fast = await analyzer.calculate_performance_metrics("a", Dialect.SSJS)
    assert fast.recommendations == [existing]

    monkeypatch.setattr(realtime_analyzer, "SLOW_ANALYSIS_MS", -1)
    slow = await analyzer.calculate_performance_metrics("a", Dialect.SSJS)
    assert slow.recommendations[0] == existing
    assert [r.kind for r in slow.recommendations[1:]] == [RecommendationKind.OPTIMIZATION]
    assert slow.recommendations[1].impact == Impact.MEDIUM
    assert slow.recommendations[1].message.startswith("Analysis took")


@pytest.mark.asyncio
async def test_complexity_and_api_recommendations_are_not_repeated():
    analyzer = RealTimeAnalyzer(CodeAnalysisService(), RealTimeAnalysisConfig(debounce_ms=5))
    branches = "\n".join(f"if (a == {i}) {{ Write({i}); }}" for i in range(11))
    lookups = "\n".join(f"var r{i} = Platform.Function.Lookup('DE', 'v', 'k', {i});" for i in range(6))

    metrics = await analyzer.calculate_performance_metrics(f"var a = 1;\n{branches}\n{lookups}", Dialect.SSJS)
    kinds = [r.kind for r in metrics.recommendations]
    assert kinds.count(RecommendationKind.REFACTORING) == 1
    assert kinds.count(RecommendationKind.CACHING) == 1
