"""
Tests for the SSJS validator.
"""

from backend.app.models.linting import Dialect, Severity, SuggestionKind
from backend.app.services.validators import ValidatorRegistry


def _validator():
    return ValidatorRegistry.get(Dialect.SSJS)


def _by_rule(diagnostics, rule):
    return [d for d in diagnostics if d.rule == rule]


def test_data_extension_init_in_single_loop_is_warning():
    code = "\n".join([
        "for (var i = 0; i < 3; i++) {",
        '    var de = DataExtension.Init("X");',
        "}",
    ])
    [finding] = _by_rule(_validator().analyze_performance(code), "ssjs-performance-loop")
    assert finding.severity == Severity.WARNING
    assert finding.line == 2
    assert finding.column == 13


def test_lookup_in_nested_loops_is_error():
    code = "\n".join([
        "for (var i = 0; i < 3; i++) {",
        "    for (var j = 0; j < 3; j++) {",
        '        var rows = de.Rows.Lookup(["Id"], [j]);',
        "    }",
        "}",
    ])
    [finding] = _by_rule(_validator().analyze_performance(code), "ssjs-performance-loop")
    assert finding.severity == Severity.ERROR
    assert finding.line == 3


def test_call_after_loop_is_not_flagged():
    code = "\n".join([
        "for (var i = 0; i < 3; i++) {",
        "    total += i;",
        "}",
        'var de = DataExtension.Init("X");',
    ])
    assert _by_rule(_validator().analyze_performance(code), "ssjs-performance-loop") == []


def test_script_tag_without_runat():
    code = "<script>\nvar x = 1;\nWrite(x);\n</script>"
    validator = _validator()
    diagnostics = validator.validate_syntax(code)

    [tag] = _by_rule(diagnostics, "ssjs-script-tag")
    assert (tag.line, tag.column) == (1, 0)
    assert tag.severity == Severity.ERROR

    fixed = validator.generate_fixed_code(code, diagnostics)
    assert fixed.startswith('<script runat="server">')


def test_markup_outside_script_block_is_ignored():
    code = '<p>Hello = world</p>\n<script runat="server">\nvar x = 1;\nWrite(x);\n</script>'
    assert _validator().validate_syntax(code) == []


def test_assignment_in_condition():
    code = "var a = 1;\nif (a = 1) {\n  Write(a);\n}"
    validator = _validator()
    diagnostics = validator.validate_syntax(code)

    [finding] = _by_rule(diagnostics, "ssjs-comparison")
    assert (finding.line, finding.column) == (2, 6)
    assert "if (a == 1) {" in validator.generate_fixed_code(code, diagnostics)


def test_missing_semicolon_warning_and_fix():
    code = "var x = 1\nWrite(x);"
    validator = _validator()
    diagnostics = validator.validate_syntax(code)

    [finding] = _by_rule(diagnostics, "ssjs-semicolon")
    assert finding.severity == Severity.WARNING
    assert (finding.line, finding.column) == (1, 9)
    assert validator.generate_fixed_code(code, diagnostics) == "var x = 1;\nWrite(x);"


def test_data_extension_constructor():
    code = 'var de = new DataExtension("X");'
    validator = _validator()
    diagnostics = validator.validate_syntax(code)
    assert _by_rule(diagnostics, "ssjs-de-constructor")
    assert validator.generate_fixed_code(code, diagnostics) == 'var de = DataExtension.Init("X");'


def test_unbalanced_braces():
    diagnostics = _validator().validate_syntax("function f() {\n  return 1;\n")
    [finding] = _by_rule(diagnostics, "ssjs-brace-matching")
    assert (finding.line, finding.column) == (1, 13)


def test_strings_do_not_trigger_syntax_checks():
    code = 'var s = "for (x) { eval(";\nWrite(s);'
    validator = _validator()
    assert validator.validate_syntax(code) == []
    assert _by_rule(validator.validate_semantics(code), "ssjs-eval") == []


def test_platform_load_missing_for_core_objects():
    code = 'var de = DataExtension.Init("X");\nWrite(de);'
    diagnostics = _validator().validate_semantics(code)
    assert _by_rule(diagnostics, "ssjs-platform-load-missing")


def test_platform_load_at_top_is_accepted():
    code = 'Platform.Load("Core", "1.1.1");\nvar de = DataExtension.Init("X");\nWrite(de);'
    rules = {d.rule for d in _validator().validate_semantics(code)}
    assert not {r for r in rules if r.startswith("ssjs-platform-load")}


def test_request_value_in_lookup_is_injection():
    code = 'var rows = de.Rows.Lookup(["Email"], [Request.GetQueryStringParameter("e")]);'
    [finding] = _by_rule(_validator().validate_semantics(code), "ssjs-injection-risk")
    assert finding.severity == Severity.ERROR


def test_eval_is_security_error():
    [finding] = _by_rule(_validator().validate_semantics("var o = eval(s);"), "ssjs-eval")
    assert finding.severity == Severity.ERROR


def test_request_value_written_without_encoding():
    code = 'var q = Request.GetQueryStringParameter("q");\nWrite(q);'
    [finding] = _by_rule(_validator().validate_semantics(code), "ssjs-unescaped-output")
    assert finding.line == 2

    encoded = 'var q = Request.GetQueryStringParameter("q");\nWrite(Platform.Function.HTMLEncode(q));'
    assert _by_rule(_validator().validate_semantics(encoded), "ssjs-unescaped-output") == []


def test_undeclared_and_unused_variables():
    diagnostics = _validator().validate_semantics("total = 5;\nvar unused = 1;\nWrite(total);")
    [undeclared] = _by_rule(diagnostics, "ssjs-undeclared-variable")
    assert (undeclared.line, undeclared.column) == (1, 0)
    [unused] = _by_rule(diagnostics, "ssjs-unused-variable")
    assert unused.line == 2


def test_hardcoded_credential():
    diagnostics = _validator().validate_semantics('var password = "hunter22";')
    assert _by_rule(diagnostics, "ssjs-hardcoded-credential")


def test_unfiltered_retrieve_and_batch_lookups():
    code = "\n".join([
        "var rows = de.Rows.Retrieve();",
        'var a = de.Rows.Lookup(["Id"], [1]);',
        'var b = de.Rows.Lookup(["Id"], [2]);',
    ])
    diagnostics = _validator().analyze_performance(code)
    [retrieve] = _by_rule(diagnostics, "ssjs-unlimited-retrieve")
    assert retrieve.severity == Severity.ERROR
    [batch] = _by_rule(diagnostics, "ssjs-batch-operations")
    assert batch.severity == Severity.INFO
    assert batch.line == 3


def test_string_concatenation_in_loop():
    code = "\n".join([
        'var html = "";',
        "for (var i = 0; i < 3; i++) {",
        '    html += "<li>" + i + "</li>";',
        "}",
    ])
    [finding] = _by_rule(_validator().analyze_performance(code), "ssjs-string-concat-loop")
    assert finding.line == 3


def test_remote_call_without_try_suggests_error_handling():
    suggestions = _validator().get_optimization_suggestions('var r = HTTP.Get("https://example.com");')
    assert [s.kind for s in suggestions] == [SuggestionKind.MAINTAINABILITY]
