"""
Tests for PerformanceMetricsCalculator.

The estimates are heuristics; these tests pin the counting rules and the
recommendation thresholds rather than the absolute numbers.
"""

import pytest

from backend.app.models.linting import Dialect, Impact
from backend.app.models.metrics import PerformanceMetrics, RecommendationKind
from backend.app.services.performance_metrics import PerformanceMetricsCalculator


@pytest.fixture
def calculator():
    return PerformanceMetricsCalculator()


def test_empty_code_gives_default_metrics(calculator):
    assert calculator.calculate_metrics("", Dialect.SSJS) == PerformanceMetrics()
    assert calculator.calculate_metrics("   \n", Dialect.SQL).recommendations == []


def test_simple_ssjs_counts(calculator):
    code = "var a = 1;\nif (a && b) {\n  Write(a);\n}"
    metrics = calculator.calculate_metrics(code, Dialect.SSJS)

    assert metrics.complexity.cyclomatic == 3
    assert metrics.complexity.cognitive == 2
    assert metrics.complexity.nesting_depth == 1
    assert metrics.complexity.lines_of_code == 4
    assert metrics.memory_usage.variable_count == 1
    assert metrics.memory_usage.estimated_bytes == pytest.approx((1024 + 64) * 1.3)
    assert metrics.estimated_execution_time_ms == pytest.approx(1.0 * 4 * 1.45)
    assert metrics.recommendations == []


def test_keywords_in_strings_are_not_counted(calculator):
    metrics = calculator.calculate_metrics('var s = "if (a) { for (b) }";', Dialect.SSJS)
    assert metrics.complexity.cyclomatic == 1
    assert metrics.loop_complexity == 0


def test_nested_loops_raise_loop_complexity(calculator):
    code = "\n".join([
        "for (var i = 0; i < 2; i++) {",
        "  for (var j = 0; j < 2; j++) {",
        "    for (var k = 0; k < 2; k++) {",
        "      Write(k);",
        "    }",
        "  }",
        "}",
    ])
    metrics = calculator.calculate_metrics(code, Dialect.SSJS)

    assert metrics.loop_complexity == 6
    assert metrics.complexity.nesting_depth == 3
    [rec] = metrics.recommendations
    assert rec.kind == RecommendationKind.OPTIMIZATION
    assert rec.impact == Impact.HIGH


def test_deep_nesting_points_at_deepest_line(calculator):
    code = "\n".join([
        "if (a) {",
        " if (b) {",
        "  if (c) {",
        "   if (d) {",
        "    if (e) {",
        "     Write(e);",
        "    }",
        "   }",
        "  }",
        " }",
        "}",
    ])
    metrics = calculator.calculate_metrics(code, Dialect.JAVASCRIPT)

    assert metrics.complexity.nesting_depth == 5
    [rec] = [r for r in metrics.recommendations if r.kind == RecommendationKind.REFACTORING]
    assert rec.line == 5
    assert rec.impact == Impact.MEDIUM


def test_many_lookups_recommend_caching(calculator):
    lines = ["%%["] + [f"SET @v{i} = Lookup('Prefs', 'Value', 'Id', {i})" for i in range(6)] + ["]%%"]
    metrics = calculator.calculate_metrics("\n".join(lines), Dialect.AMPSCRIPT)

    assert metrics.api_call_count == 6
    assert metrics.memory_usage.variable_count == 6
    [rec] = [r for r in metrics.recommendations if r.kind == RecommendationKind.CACHING]
    assert rec.line == 2


def test_ampscript_keywords_outside_blocks_are_ignored(calculator):
    code = "Hello IF you FOR real\n%%[ SET @a = 1 ]%%"
    metrics = calculator.calculate_metrics(code, Dialect.AMPSCRIPT)
    assert metrics.complexity.cyclomatic == 1
    assert metrics.complexity.lines_of_code == 2


def test_threshold_is_strictly_greater(calculator):
    exactly_ten = "\n".join('s += "x";' for _ in range(10))
    eleven = exactly_ten + '\ns += "x";'

    metrics = calculator.calculate_metrics(exactly_ten, Dialect.JAVASCRIPT)
    assert metrics.memory_usage.string_concatenations == 10
    assert metrics.recommendations == []

    metrics = calculator.calculate_metrics(eleven, Dialect.JAVASCRIPT)
    [rec] = metrics.recommendations
    assert rec.kind == RecommendationKind.OPTIMIZATION
    assert rec.line == 1


def test_html_resources_count_as_calls(calculator):
    metrics = calculator.calculate_metrics('<img src="a.png" alt="">\n<p>text</p>', Dialect.HTML)
    assert metrics.api_call_count == 1
