"""
Tests for the rule table and the YAML rule loader.
"""

import pytest

from backend.app.models.linting import Dialect, Severity
from backend.app.models.rules import RuleCategory, RuleScope
from backend.app.services.rule_set import (
    RuleDefinitionError,
    RuleSet,
    RuleTableLoader,
    build_rule,
    load_default_rules,
)


def _rule(**overrides):
    data = {
        "id": "no_alert",
        "name": "No alert",
        "category": "maintainability",
        "severity": "warning",
        "pattern": r"\balert\s*\(",
        "message": "Remove alert()",
        "dialects": ["javascript"],
    }
    data.update(overrides)
    return data


def test_build_rule_expands_all():
    rule = build_rule(_rule(dialects=["all"]))
    assert rule.dialects == frozenset(Dialect)


def test_build_rule_accepts_languages_and_aliases():
    rule = build_rule({k: v for k, v in _rule(languages=["js", "ssjs"]).items() if k != "dialects"})
    assert rule.dialects == {Dialect.JAVASCRIPT, Dialect.SSJS}
    assert rule.category == RuleCategory.MAINTAINABILITY
    assert rule.scope == RuleScope.LINE


def test_invalid_regex_is_rejected():
    with pytest.raises(RuleDefinitionError):
        build_rule(_rule(pattern="(unclosed"))


def test_unknown_dialect_is_rejected():
    with pytest.raises(RuleDefinitionError):
        build_rule(_rule(dialects=["cobol"]))


def test_missing_dialects_is_rejected():
    with pytest.raises(RuleDefinitionError):
        build_rule(_rule(dialects=[]))


def test_add_replaces_in_place():
    rule_set = RuleSet([_rule(id="a"), _rule(id="b")])
    rule_set.add(_rule(id="a", severity="error"))

    assert [r.id for r in rule_set] == ["a", "b"]
    assert rule_set.get("a").severity == Severity.ERROR
    assert len(rule_set) == 2


def test_remove_and_contains():
    rule_set = RuleSet([_rule()])
    assert "no_alert" in rule_set
    assert rule_set.remove("no_alert") is True
    assert rule_set.remove("no_alert") is False
    assert "no_alert" not in rule_set


def test_copy_is_independent():
    original = RuleSet([_rule()])
    clone = original.copy()
    clone.remove("no_alert")
    assert "no_alert" in original


def test_for_dialect_filters():
    rule_set = RuleSet([_rule(id="js_only"), _rule(id="everywhere", dialects=["all"])])
    assert [r.id for r in rule_set.for_dialect(Dialect.SQL)] == ["everywhere"]
    assert {r.id for r in rule_set.for_dialect(Dialect.JAVASCRIPT)} == {"js_only", "everywhere"}


def test_default_rules_cover_every_dialect():
    rule_set = load_default_rules()
    assert len(rule_set) > 10
    for dialect in Dialect:
        assert rule_set.for_dialect(dialect), dialect
    assert rule_set.get("structure_trailing_whitespace").dialects == frozenset(Dialect)


def test_loader_skips_bad_files_and_bad_rules(tmp_path):
    (tmp_path / "good.yaml").write_text(
        "rules:\n"
        "  - id: ok_rule\n"
        "    name: OK\n"
        "    category: naming\n"
        "    severity: info\n"
        "    pattern: 'foo'\n"
        "    message: foo found\n"
        "    dialects: [sql]\n"
        "  - id: bad_rule\n"
        "    name: Bad\n"
        "    category: naming\n"
        "    severity: info\n"
        "    pattern: '(foo'\n"
        "    message: never loaded\n"
        "    dialects: [sql]\n",
        encoding="utf-8",
    )
    (tmp_path / "broken.yaml").write_text("rules: [unclosed\n", encoding="utf-8")

    rule_set = RuleTableLoader(tmp_path).load()
    assert [r.id for r in rule_set] == ["ok_rule"]


def test_loader_with_missing_directory(tmp_path):
    assert len(RuleTableLoader(tmp_path / "missing").load()) == 0
