"""
Rule table for the best-practices enforcer.

RuleSet is the explicit, mutable rule table an enforcer is constructed with.
RuleTableLoader reads rule definitions from the YAML files in data/rules/
(see data/rules/default.yaml for the format), so teams can add rules without
writing Python code.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

import yaml
from pydantic import ValidationError

from ..models.linting import Dialect
from ..models.rules import RuleDefinition

logger = logging.getLogger(__name__)

DEFAULT_RULES_DIR = Path(__file__).parent.parent / "data" / "rules"


class RuleDefinitionError(ValueError):
    """Raised for a rule that cannot be built (bad regex, unknown dialect, missing field)."""


def build_rule(data: Union[Dict[str, Any], RuleDefinition]) -> RuleDefinition:
    """
    Build a RuleDefinition from a plain mapping.

    `dialects` accepts dialect names or aliases; the single entry "all"
    expands to every dialect.
    """
    if isinstance(data, RuleDefinition):
        return data
    if not isinstance(data, dict):
        raise RuleDefinitionError(f"rule must be a mapping, got {type(data).__name__}")

    fields = dict(data)
    raw_dialects = fields.get("dialects") or fields.get("languages")
    fields.pop("languages", None)
    if isinstance(raw_dialects, str):
        raw_dialects = [raw_dialects]
    if not raw_dialects:
        raise RuleDefinitionError(f"rule {fields.get('id')!r} has no dialects")

    dialects = set()
    for name in raw_dialects:
        if str(name).lower() == "all":
            dialects.update(Dialect)
            continue
        try:
            dialects.add(Dialect.parse(name))
        except ValueError as e:
            raise RuleDefinitionError(f"rule {fields.get('id')!r}: {e}") from e
    fields["dialects"] = frozenset(dialects)

    try:
        return RuleDefinition(**fields)
    except ValidationError as e:
        raise RuleDefinitionError(f"invalid rule {fields.get('id')!r}: {e}") from e


class RuleSet:
    """Ordered rule table keyed by rule id."""

    def __init__(self, rules: Iterable[RuleDefinition] = ()):
        self._rules: Dict[str, RuleDefinition] = {}
        for rule in rules:
            self.add(rule)

    def add(self, rule: Union[RuleDefinition, Dict[str, Any]]) -> RuleDefinition:
        """Add a rule; an existing rule with the same id is replaced in place."""
        rule = build_rule(rule)
        if rule.id in self._rules:
            logger.info(f"Replacing rule {rule.id}")
        self._rules[rule.id] = rule
        return rule

    def remove(self, rule_id: str) -> bool:
        return self._rules.pop(rule_id, None) is not None

    def get(self, rule_id: str) -> Optional[RuleDefinition]:
        return self._rules.get(rule_id)

    def for_dialect(self, dialect: Dialect) -> List[RuleDefinition]:
        return [rule for rule in self._rules.values() if rule.applies_to(dialect)]

    def copy(self) -> "RuleSet":
        return RuleSet(self._rules.values())

    def __iter__(self) -> Iterator[RuleDefinition]:
        return iter(list(self._rules.values()))

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._rules


class RuleTableLoader:
    """
    Loads YAML rule tables.

    Every *.yaml file in the rules directory is read with yaml.safe_load; a
    file that fails to parse is logged and skipped, and so is an individual
    rule that fails validation.
    """

    def __init__(self, rules_dir: Optional[Union[str, Path]] = None):
        self.rules_dir = Path(rules_dir) if rules_dir else DEFAULT_RULES_DIR

    def load(self) -> RuleSet:
        rule_set = RuleSet()
        if not self.rules_dir.exists():
            logger.warning(f"Rules directory does not exist: {self.rules_dir}")
            return rule_set

        yaml_files = sorted(self.rules_dir.glob("*.yaml"))
        if not yaml_files:
            logger.warning(f"No .yaml files found in {self.rules_dir}")
            return rule_set

        logger.info(f"Loading rule tables from {self.rules_dir}")
        for yaml_file in yaml_files:
            try:
                with open(yaml_file, "r", encoding="utf-8") as f:
                    document = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                logger.error(f"Failed to parse {yaml_file.name}: {e}")
                continue

            loaded = self.load_rules(document.get("rules") or [], rule_set, source=yaml_file.name)
            logger.info(f"Loaded {loaded} rule(s) from {yaml_file.name}")

        logger.info(f"Total rules loaded: {len(rule_set)}")
        return rule_set

    @staticmethod
    def load_rules(entries: Iterable[Dict[str, Any]], rule_set: RuleSet, source: str = "<memory>") -> int:
        loaded = 0
        for entry in entries:
            try:
                rule_set.add(entry)
                loaded += 1
            except RuleDefinitionError as e:
                logger.error(f"Skipping rule in {source}: {e}")
        return loaded


def load_default_rules(rules_dir: Optional[Union[str, Path]] = None) -> RuleSet:
    return RuleTableLoader(rules_dir).load()
