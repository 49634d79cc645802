"""
Tests for the AMPscript validator.

The validator is heuristic: these tests pin the behaviours the editor relies on
(delimiters, loop-bound lookups, request parameter flow, fixes) rather than
trying to enumerate every possible finding.
"""

from __future__ import annotations

from backend.app.models.linting import Dialect, Severity
from backend.app.services.validators import Capability, ValidatorRegistry


def _validator():
    return ValidatorRegistry.get(Dialect.AMPSCRIPT)


def _rules(diagnostics):
    return [d.rule for d in diagnostics]


def test_registered_with_full_capability_set():
    validator = _validator()
    assert validator is not None
    for capability in Capability:
        assert validator.supports(capability)


def test_plain_assignment_without_sigil_has_no_validator_findings():
    """The missing @ is left to the naming rule of the rule table."""
    validator = _validator()
    result = validator.validate("SET myVar = 1")
    assert result.errors == []
    assert result.warnings == []


def test_broken_output_block_is_one_syntax_error():
    validator = _validator()
    diagnostics = validator.validate_syntax("%%=Concat(@a,@b)=%")

    errors = [d for d in diagnostics if d.severity == Severity.ERROR]
    assert len(errors) == 1
    assert errors[0].rule == "ampscript-output-syntax"
    assert errors[0].line == 1
    assert errors[0].column == 0


def test_undefined_variables_are_warnings_only():
    validator = _validator()
    result = validator.validate("%%=Concat(@a,@b)=%")
    undefined = [d for d in result.warnings if d.rule == "ampscript-undefined-variable"]
    assert {d.column for d in undefined} == {10, 13}
    assert all(d.severity == Severity.WARNING for d in undefined)


def test_unclosed_processing_block_reported_at_last_line():
    code = "%%[\nSET @name = 'x'\n\n%%=v(@name)=%%"
    validator = _validator()
    diagnostics = validator.validate_syntax(code)

    delimiter = [d for d in diagnostics if d.rule == "ampscript-delimiters"]
    assert len(delimiter) == 1
    assert delimiter[0].line == 4
    assert delimiter[0].fix_suggestion == "Add ]%% at the end"


def test_stray_block_close_is_flagged():
    diagnostics = _validator().validate_syntax("Hello ]%%")
    assert _rules(diagnostics) == ["ampscript-delimiters"]
    assert diagnostics[0].column == 6


def test_single_equals_in_condition():
    code = "%%[\nSET @a = 1\nIF @a = 1 THEN\nSET @b = 2\nENDIF\n]%%"
    diagnostics = _validator().validate_syntax(code)
    comparison = [d for d in diagnostics if d.rule == "ampscript-comparison"]
    assert len(comparison) == 1
    assert comparison[0].line == 3


def test_unclosed_for_loop():
    code = "%%[\nFOR @i = 1 TO 3 DO\nSET @x = @i\n]%%"
    diagnostics = _validator().validate_syntax(code)
    assert "ampscript-loop-structure" in _rules(diagnostics)


def test_unknown_lowercase_function():
    diagnostics = _validator().validate_syntax("%%[ SET @x = lookupz('DE', 'a', 'b', 'c') ]%%")
    unknown = [d for d in diagnostics if d.rule == "ampscript-unknown-function"]
    assert len(unknown) == 1
    assert unknown[0].severity == Severity.ERROR


def test_lookup_inside_loop_is_warning_and_nested_loop_is_error():
    single = "\n".join([
        "%%[",
        "FOR @i = 1 TO 3 DO",
        "  SET @v = Lookup('Prefs', 'Value', 'Id', @i)",
        "NEXT @i",
        "]%%",
    ])
    nested = "\n".join([
        "%%[",
        "FOR @i = 1 TO 3 DO",
        "  FOR @j = 1 TO 3 DO",
        "    SET @v = Lookup('Prefs', 'Value', 'Id', @j)",
        "  NEXT @j",
        "NEXT @i",
        "]%%",
    ])
    validator = _validator()

    [finding] = [d for d in validator.analyze_performance(single) if d.rule == "ampscript-lookup-in-loop"]
    assert finding.severity == Severity.WARNING
    assert finding.line == 3

    [finding] = [d for d in validator.analyze_performance(nested) if d.rule == "ampscript-lookup-in-loop"]
    assert finding.severity == Severity.ERROR
    assert finding.line == 4


def test_request_parameter_into_lookup_is_injection_error():
    code = "%%[ SET @email = Lookup('Subs', 'Email', 'Id', RequestParameter('id')) ]%%"
    diagnostics = _validator().validate_semantics(code)
    [finding] = [d for d in diagnostics if d.rule == "ampscript-sql-injection"]
    assert finding.severity == Severity.ERROR


def test_tainted_variable_rendered_without_encoding():
    code = "%%[ SET @q = RequestParameter('q') ]%%\n%%=v(@q)=%%"
    diagnostics = _validator().validate_semantics(code)
    xss = [d for d in diagnostics if d.rule == "ampscript-xss-prevention"]
    assert xss and xss[0].line == 2


def test_encoded_output_is_not_flagged():
    code = "%%[ SET @q = RequestParameter('q') ]%%\n%%=HTMLEncode(@q)=%%"
    diagnostics = _validator().validate_semantics(code)
    assert "ampscript-xss-prevention" not in _rules(diagnostics)


def test_keywords_inside_strings_are_ignored():
    code = "%%[ SET @msg = 'IF you FOR real lookupz(' ]%%\n%%=v(@msg)=%%"
    diagnostics = _validator().validate_syntax(code)
    assert diagnostics == []


def test_generate_fixed_code_closes_output_block():
    validator = _validator()
    code = "%%=Concat(@a,@b)=%"
    diagnostics = validator.validate_syntax(code)
    assert validator.generate_fixed_code(code, diagnostics) == "%%=Concat(@a,@b)=%%"


def test_generate_fixed_code_rewrites_comparison():
    validator = _validator()
    code = "%%[\nSET @a = 1\nIF @a = 1 THEN\nSET @b = @a\nENDIF\n]%%"
    fixed = validator.generate_fixed_code(code, validator.validate_syntax(code))
    assert "IF @a == 1 THEN" in fixed
    assert "SET @a = 1" in fixed


def test_delimiter_fixes_do_not_depend_on_hint_wording():
    validator = _validator()

    unclosed = "%%[\nSET @name = 'x'"
    reworded = [
        d.model_copy(update={"fix_suggestion": "Terminate the block"})
        for d in validator.validate_syntax(unclosed)
        if d.rule == "ampscript-delimiters"
    ]
    assert validator.generate_fixed_code(unclosed, reworded) == "%%[\nSET @name = 'x' ]%%"

    stray = "SET @a = 1 ]%%"
    reworded = [
        d.model_copy(update={"fix_suggestion": None})
        for d in validator.validate_syntax(stray)
        if d.rule == "ampscript-delimiters"
    ]
    assert validator.generate_fixed_code(stray, reworded) == "%%[ SET @a = 1 ]%%"


def test_nested_block_open_is_not_rewritten():
    validator = _validator()
    code = "%%[ SET @a = 1 %%[ SET @b = 2 ]%%"
    nested = [d for d in validator.validate_syntax(code) if d.rule == "ampscript-delimiters"]
    assert len(nested) == 1
    assert nested[0].column == 15
    assert validator.generate_fixed_code(code, nested) == code
