"""
Tests for the HTML validator.
"""

from backend.app.models.linting import Dialect, Severity
from backend.app.services.validators import ALL_CAPABILITIES, ValidatorRegistry


def _validator():
    return ValidatorRegistry.get(Dialect.HTML)


def _by_rule(diagnostics, rule):
    return [d for d in diagnostics if d.rule == rule]


def test_html_has_every_capability():
    assert _validator().capabilities == ALL_CAPABILITIES


def test_misnested_tags():
    result = _validator().validate("<div><span>Hi</div>")
    [error] = result.errors
    assert error.rule == "html-tag-mismatch"
    assert (error.line, error.column) == (1, 5)


def test_orphan_closing_tag():
    result = _validator().validate("<td>cell\n</section>")
    [error] = result.errors
    assert error.line == 2


def test_optional_end_tags_and_void_elements():
    result = _validator().validate('<ul><li>one<li>two</ul><br><img src="a.png" alt="">')
    assert result.errors == []


def test_embedded_ampscript_is_not_parsed_as_markup():
    result = _validator().validate("%%[ IF @a < 3 THEN ]%%<p>x</p>%%[ ENDIF ]%%")
    assert result.errors == []


def test_block_element_inside_paragraph():
    [error] = _validator().validate_syntax("<p>Intro<div>block</div></p>")
    assert error.rule == "html-invalid-nesting"
    assert error.column == 8

    assert _validator().validate_syntax("<p>one<p>two</p>") == []


def test_void_element_end_tag_is_removed():
    validator = _validator()
    code = "<br></br>"
    [finding] = validator.validate_syntax(code)
    assert finding.rule == "html-self-closing-tag"
    assert finding.severity == Severity.WARNING
    assert validator.generate_fixed_code(code, [finding]) == "<br>"


def test_duplicate_and_unquoted_attributes():
    validator = _validator()
    code = '<td class="a" class="b" width=100>x</td>'
    diagnostics = validator.validate_syntax(code)

    [duplicate] = _by_rule(diagnostics, "html-duplicate-attribute")
    assert duplicate.severity == Severity.ERROR
    assert duplicate.column == 14

    unquoted = _by_rule(diagnostics, "html-quoted-attributes")
    assert [d.column for d in unquoted] == [24]
    assert validator.generate_fixed_code(code, unquoted) == '<td class="a" class="b" width="100">x</td>'


def test_document_structure_and_doctype_fix():
    validator = _validator()
    code = "<html>\n<body><p>Hi</p></body>\n</html>"
    diagnostics = validator.validate_syntax(code)
    assert {d.rule for d in diagnostics} == {"html-doctype", "html-required-structure"}
    assert "<head>" in _by_rule(diagnostics, "html-required-structure")[0].message

    fixed = validator.generate_fixed_code(code, _by_rule(diagnostics, "html-doctype"))
    assert fixed == "<!DOCTYPE html>\n" + code

    complete = "<!DOCTYPE html>\n<html><head><title>t</title></head><body></body></html>"
    assert validator.validate_syntax(complete) == []


def test_fragments_skip_document_checks():
    assert _validator().validate_syntax("<table><tr><td>x</td></tr></table>") == []


def test_inputs_need_a_label():
    code = "\n".join([
        '<label for="email">Email</label><input id="email" type="email">',
        '<label>Name <input type="text"></label>',
        '<input type="hidden" name="t">',
        '<input type="text" name="zip">',
        '<input type="text" aria-label="City">',
    ])
    findings = _by_rule(_validator().validate_semantics(code), "html-accessibility-label")
    assert [d.line for d in findings] == [4]


def test_required_attributes():
    code = '<img alt="x">\n<a>link</a>\n<a name="top"></a>\n<meta name="description">'
    findings = _by_rule(_validator().validate_semantics(code), "html-required-attributes")
    assert [(d.line, d.message.split()[-2]) for d in findings] == [(1, "src"), (2, "href"), (4, "content")]


def test_head_without_title_or_description():
    code = '<html><head><meta charset="utf-8"></head><body></body></html>'
    diagnostics = _validator().validate_semantics(code)
    [title] = _by_rule(diagnostics, "html-seo-title")
    [description] = _by_rule(diagnostics, "html-seo-meta-description")
    assert title.severity == Severity.WARNING
    assert description.severity == Severity.INFO


def test_deprecated_elements():
    code = '<center><font color="red">x</font></center>\n<marquee>go</marquee>'
    findings = _by_rule(_validator().validate_semantics(code), "html-deprecated-elements")
    assert [(d.line, d.severity) for d in findings] == [
        (1, Severity.INFO),
        (1, Severity.INFO),
        (2, Severity.WARNING),
    ]


def test_image_without_alt_is_fixed():
    validator = _validator()
    code = '<img src="a.png">\n<img src="b.png" />'
    missing_alt = _by_rule(validator.validate(code).warnings, "html-img-alt")

    assert [d.severity for d in missing_alt] == [Severity.WARNING, Severity.WARNING]
    fixed = validator.generate_fixed_code(code, missing_alt)
    assert fixed == '<img src="a.png" alt="">\n<img src="b.png" alt="" />'


def test_inline_handler_is_info():
    result = _validator().validate('<a href="#" onclick="go()">x</a>')
    [finding] = result.warnings
    assert finding.rule == "html-inline-handler"
    assert finding.severity == Severity.INFO


def test_script_placement_and_image_loading():
    code = "\n".join([
        "<html><head>",
        '<script src="a.js"></script>',
        '<script src="b.js" defer></script>',
        "</head><body>",
        "<script>track();</script>",
        '<script runat="server">Platform.Load("core", "1");</script>',
        '<img src="hero.png" alt="">',
        '<img src="logo.png" alt="" loading="lazy">',
        "</body></html>",
    ])
    diagnostics = _validator().analyze_performance(code)
    assert [d.line for d in _by_rule(diagnostics, "html-script-placement")] == [2]
    assert [d.line for d in _by_rule(diagnostics, "html-inline-scripts")] == [5]
    assert [d.line for d in _by_rule(diagnostics, "html-lazy-loading")] == [7]


def test_optimization_suggestions():
    code = '<link rel="stylesheet" href="s.css">\n<div class="header">x</div>\n<img src="a.jpg" alt="">'
    ids = {s.id for s in _validator().get_optimization_suggestions(code)}
    assert ids == {"html-preload-css:1", "html-semantic-element:2", "html-modern-image:3"}
