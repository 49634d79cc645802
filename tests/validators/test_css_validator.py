"""
Tests for the CSS validator.
"""

from backend.app.models.linting import Dialect, Severity, SuggestionKind
from backend.app.services.validators import ValidatorRegistry
from backend.app.services.validators.css_validator import parse_rules


def _validator():
    return ValidatorRegistry.get(Dialect.CSS)


def _by_rule(diagnostics, rule):
    return [d for d in diagnostics if d.rule == rule]


def _rules(result):
    return [d.rule for d in result.errors + result.warnings]


def test_parse_rules_inside_media_query():
    [rule] = parse_rules("@media (max-width: 600px) {\n  .col { width: 100%; }\n}")
    assert rule.selector == ".col"
    assert [(d.prop, d.value) for d in rule.declarations] == [("width", "100%")]


def test_css_braces_and_important():
    result = _validator().validate(".a { color: red !important;\n")
    [error] = result.errors
    assert error.rule == "css-brace-matching"
    assert (error.line, error.column) == (1, 3)
    assert "css-important" in _rules(result)


def test_css_braces_in_comments_are_ignored():
    result = _validator().validate("/* { */\n.a { color: red; }")
    assert result.errors == []


def test_missing_semicolon_is_fixed():
    validator = _validator()
    code = ".a {\n  color: red\n  margin: 0;\n}"
    [error] = validator.validate_syntax(code)
    assert error.rule == "css-missing-semicolon"
    assert (error.line, error.column) == (2, 12)
    assert validator.generate_fixed_code(code, [error]) == ".a {\n  color: red;\n  margin: 0;\n}"


def test_declaration_without_colon():
    [error] = _validator().validate_syntax(".a { color red; }")
    assert error.rule == "css-invalid-declaration"
    assert error.column == 5


def test_invalid_color_and_unit():
    errors = _validator().validate_syntax(".a { color: #12345; width: 10pxx; margin: 1.5em; background: #fff; }")
    assert [d.rule for d in errors] == ["css-invalid-color", "css-unknown-unit"]
    assert errors[1].message == "Unknown unit 'pxx'"


def test_urls_are_not_checked_for_units():
    assert _validator().validate_syntax(".a { background: url(img/2x.png#frag) no-repeat; }") == []


def test_unknown_property():
    code = ".a { colr: red; -webkit-appearance: none; --brand: #fff; mso-hide: all; }"
    [finding] = _by_rule(_validator().validate_semantics(code), "css-unknown-property")
    assert finding.severity == Severity.WARNING
    assert "colr" in finding.message


def test_high_specificity():
    code = "#a #b .c { color: red; }\n.a.b.c.d.e { color: red; }\n.a .b, #c { color: red; }"
    findings = _by_rule(_validator().validate_semantics(code), "css-high-specificity")
    assert [d.line for d in findings] == [1, 2]


def test_focus_outline_is_restored():
    validator = _validator()
    code = "a:focus { outline: none; }"
    [finding] = _by_rule(validator.validate_semantics(code), "css-focus-outline")
    assert finding.severity == Severity.WARNING
    assert validator.generate_fixed_code(code, [finding]) == "a:focus { outline: 2px solid currentColor; }"


def test_performance_checks():
    code = '* { box-sizing: border-box; }\n.card { box-shadow: 0 0 4px #000; transition: width 0.3s; }\n[class*="col"] { float: left; }'
    diagnostics = _validator().analyze_performance(code)
    assert [d.line for d in _by_rule(diagnostics, "css-universal-selector")] == [1]
    [expensive] = _by_rule(diagnostics, "css-expensive-property")
    assert expensive.severity == Severity.INFO
    assert [d.line for d in _by_rule(diagnostics, "css-animate-layout")] == [2]


def test_optimization_suggestions():
    code = "\n".join([
        ".a { float: left; color: #333; }",
        ".b { color: #333; }",
        ".c { border-color: #333; }",
        ".d { animation: spin 1s; }",
        "a:focus { color: red; }",
    ])
    suggestions = _validator().get_optimization_suggestions(code)
    assert {s.id for s in suggestions} == {
        "css-modern-layout:1",
        "css-will-change:4",
        "css-focus-visible:5",
        "css-custom-property:#333",
    }
    [palette] = [s for s in suggestions if s.id.startswith("css-custom-property")]
    assert palette.kind == SuggestionKind.MAINTAINABILITY
