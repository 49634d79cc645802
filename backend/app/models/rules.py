"""
Best-practice rule models.

A RuleDefinition is a declarative regex rule loaded from YAML (see
data/rules/default.yaml) or registered at runtime through the rules API.
A Violation is a Diagnostic produced by matching one of those rules.
"""

from __future__ import annotations

import re
from enum import Enum
from functools import lru_cache
from typing import FrozenSet, Optional, Pattern

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .linting import Diagnostic, Dialect, Severity


class RuleCategory(str, Enum):
    NAMING = "naming"
    STRUCTURE = "structure"
    PERFORMANCE = "performance"
    SECURITY = "security"
    MAINTAINABILITY = "maintainability"
    DOCUMENTATION = "documentation"
    ERROR_HANDLING = "error_handling"


class RuleScope(str, Enum):
    LINE = "line"   # evaluated on each line only
    TEXT = "text"   # also evaluated once over the whole text (multi-line matches)


@lru_cache(maxsize=512)
def _compile(pattern: str, flags: int) -> Pattern[str]:
    return re.compile(pattern, flags)


class RuleDefinition(BaseModel):
    """A single best-practice rule."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str
    category: RuleCategory
    severity: Severity
    pattern: str = Field(..., description="Regular expression source")
    ignore_case: bool = False
    multiline: bool = False
    scope: RuleScope = RuleScope.LINE
    message: str
    suggestion: str = ""
    documentation_ref: Optional[str] = None
    dialects: FrozenSet[Dialect]

    @field_validator("pattern")
    @classmethod
    def _pattern_compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"invalid regular expression {value!r}: {e}") from e
        return value

    @field_validator("dialects")
    @classmethod
    def _at_least_one_dialect(cls, value: FrozenSet[Dialect]) -> FrozenSet[Dialect]:
        if not value:
            raise ValueError("a rule must apply to at least one dialect")
        return value

    @property
    def regex(self) -> Pattern[str]:
        flags = 0
        if self.ignore_case:
            flags |= re.IGNORECASE
        if self.multiline:
            flags |= re.MULTILINE
        return _compile(self.pattern, flags)

    def applies_to(self, dialect: Dialect) -> bool:
        return dialect in self.dialects


class Violation(Diagnostic):
    """Diagnostic produced by the best-practices enforcer."""

    id: str
    rule_name: str
    rule_category: RuleCategory
    suggestion: str = ""
    documentation_ref: Optional[str] = None

    @staticmethod
    def make_id(rule_id: str, line: int, column: Optional[int]) -> str:
        return f"{rule_id}:{line}:{column if column is not None else 0}"
