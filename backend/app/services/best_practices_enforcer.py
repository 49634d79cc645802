"""
Best-practices enforcer.

Evaluates the declarative rule table (RuleSet) against a source unit and
returns ordered, de-duplicated Violations.
"""

import logging
from typing import Dict, List, Optional, Tuple, Union

from ..models.linting import DiagnosticCategory, Dialect
from ..models.rules import RuleCategory, RuleDefinition, RuleScope, Violation
from .rule_set import RuleSet, load_default_rules
from .validators.text_scan import offset_to_position, split_lines

logger = logging.getLogger(__name__)

_CATEGORY_MAP = {
    RuleCategory.SECURITY: DiagnosticCategory.SECURITY,
    RuleCategory.PERFORMANCE: DiagnosticCategory.PERFORMANCE,
}


class BestPracticesEnforcer:
    """Matches rule patterns line by line (and over the whole text for text-scope rules)."""

    def __init__(self, rule_set: Optional[RuleSet] = None):
        self.rule_set = rule_set if rule_set is not None else load_default_rules()

    def get_rules_for_language(self, dialect: Dialect) -> List[RuleDefinition]:
        return self.rule_set.for_dialect(dialect)

    def add_custom_rule(self, rule: Union[RuleDefinition, Dict]) -> RuleDefinition:
        """Add or replace a rule. Raises RuleDefinitionError for an invalid definition."""
        added = self.rule_set.add(rule)
        logger.info(f"Custom rule registered: {added.id} ({', '.join(sorted(d.value for d in added.dialects))})")
        return added

    def remove_rule(self, rule_id: str) -> bool:
        removed = self.rule_set.remove(rule_id)
        if removed:
            logger.info(f"Rule removed: {rule_id}")
        return removed

    def enforce_rules(self, code: str, dialect: Dialect) -> List[Violation]:
        if not code:
            return []

        lines = split_lines(code)
        found: Dict[Tuple[str, int, int], Violation] = {}

        for rule in self.get_rules_for_language(dialect):
            try:
                for line_no, column in self._matches(rule, code, lines):
                    key = (rule.id, line_no, column)
                    if key not in found:
                        found[key] = self._violation(rule, line_no, column)
            except Exception as e:
                logger.warning(f"Rule {rule.id} failed: {e}")

        return sorted(found.values(), key=lambda v: (-v.severity.rank, v.line, v.column or 0, v.rule))

    def _matches(self, rule: RuleDefinition, code: str, lines: List[str]):
        regex = rule.regex
        for index, line in enumerate(lines):
            for m in regex.finditer(line):
                if m.end() > m.start():
                    yield index + 1, m.start()

        if rule.scope == RuleScope.TEXT:
            text = "\n".join(lines)
            for m in regex.finditer(text):
                if m.end() > m.start():
                    yield offset_to_position(text, m.start())

    @staticmethod
    def _violation(rule: RuleDefinition, line: int, column: int) -> Violation:
        return Violation(
            id=Violation.make_id(rule.id, line, column),
            line=line,
            column=column,
            message=rule.message,
            rule=rule.id,
            category=_CATEGORY_MAP.get(rule.category, DiagnosticCategory.STYLE),
            severity=rule.severity,
            fix_suggestion=rule.suggestion or None,
            rule_name=rule.name,
            rule_category=rule.category,
            suggestion=rule.suggestion,
            documentation_ref=rule.documentation_ref,
        )
