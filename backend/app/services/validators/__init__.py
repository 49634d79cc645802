"""
Validator framework for campaign code dialects.

Provides the capability-based validator interface and the per-dialect registry.
Every dialect validator exposes `validate(code)`; richer validators additionally
expose syntax, semantics, performance, optimization and fix capabilities.
Callers query `supports()` instead of assuming a fixed method set.

New dialects are added by subclassing BaseDialectValidator and decorating the
class with @ValidatorRegistry.register.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from types import MappingProxyType
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple, Type
import logging

from ...models.autofix import AutofixChange
from ...models.linting import (
    Diagnostic,
    DiagnosticCategory,
    Dialect,
    Severity,
    Suggestion,
    ValidationResult,
)
from .text_scan import MaskedLine, split_lines

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    VALIDATE = "validate"
    SYNTAX = "syntax"
    SEMANTICS = "semantics"
    PERFORMANCE = "performance"
    OPTIMIZATION = "optimization"
    FIX = "fix"


ALL_CAPABILITIES: FrozenSet[Capability] = frozenset(Capability)


class UnsupportedCapabilityError(NotImplementedError):
    """Raised when a validator is asked for a capability it does not have."""

    def __init__(self, validator: "BaseDialectValidator", capability: Capability):
        super().__init__(f"{validator.name} does not support '{capability.value}'")
        self.capability = capability


# A fixer rewrites one source line for one diagnostic; None means "leave as is"
LineFixer = Callable[[str, Diagnostic], Optional[str]]
LineCheck = Callable[[MaskedLine], Iterable[Diagnostic]]


def diag(
    line: int,
    column: Optional[int],
    rule: str,
    message: str,
    category: DiagnosticCategory,
    severity: Severity,
    fix_suggestion: Optional[str] = None,
) -> Diagnostic:
    """Shorthand used by the dialect validators."""
    return Diagnostic(
        line=max(1, line),
        column=None if column is None else max(0, column),
        rule=rule,
        message=message,
        category=category,
        severity=severity,
        fix_suggestion=fix_suggestion,
    )


class BaseDialectValidator(ABC):
    """
    Base class for all dialect validators.

    Subclasses declare their `dialect` and `capabilities` and implement the
    methods matching those capabilities. Unsupported methods raise
    UnsupportedCapabilityError.
    """

    name: str = "base_validator"
    dialect: Dialect
    capabilities: FrozenSet[Capability] = frozenset({Capability.VALIDATE})

    # rule id -> line rewrite used by generate_fixed_code; subclasses assign their own
    fixers: Mapping[str, LineFixer] = MappingProxyType({})

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def _require(self, capability: Capability) -> None:
        if not self.supports(capability):
            raise UnsupportedCapabilityError(self, capability)

    @abstractmethod
    def validate(self, code: str) -> ValidationResult:
        """Run every check this validator has and return one bundle."""

    def validate_syntax(self, code: str) -> List[Diagnostic]:
        raise UnsupportedCapabilityError(self, Capability.SYNTAX)

    def validate_semantics(self, code: str) -> List[Diagnostic]:
        raise UnsupportedCapabilityError(self, Capability.SEMANTICS)

    def analyze_performance(self, code: str) -> List[Diagnostic]:
        raise UnsupportedCapabilityError(self, Capability.PERFORMANCE)

    def get_optimization_suggestions(self, code: str) -> List[Suggestion]:
        raise UnsupportedCapabilityError(self, Capability.OPTIMIZATION)

    def generate_fixed_code(self, code: str, diagnostics: Sequence[Diagnostic]) -> str:
        """Return `code` with every fixable diagnostic rewritten."""
        self._require(Capability.FIX)
        fixed, _changes, _skipped = self.apply_fixes(code, diagnostics)
        return fixed

    def apply_fixes(
        self, code: str, diagnostics: Sequence[Diagnostic]
    ) -> Tuple[str, List[AutofixChange], List[str]]:
        """
        Apply line rewrites bottom-up so earlier line numbers stay valid.

        Returns (fixed_code, applied changes, rule ids that had no rewrite).
        """
        lines = split_lines(code)
        changes: List[AutofixChange] = []
        skipped: List[str] = []
        seen = set()

        for d in sorted(diagnostics, key=lambda d: (d.line, d.column or 0), reverse=True):
            if (d.rule, d.line) in seen:
                continue
            seen.add((d.rule, d.line))

            fixer = self.fixers.get(d.rule)
            if fixer is None:
                if d.rule not in skipped:
                    skipped.append(d.rule)
                continue
            if not 1 <= d.line <= len(lines):
                continue
            try:
                new_line = fixer(lines[d.line - 1], d)
            except Exception as e:
                logger.warning(f"Fixer for {d.rule} failed on line {d.line}: {e}")
                continue
            if new_line is None or new_line == lines[d.line - 1]:
                continue
            lines[d.line - 1] = new_line
            changes.append(AutofixChange(rule_id=d.rule, message=d.fix_suggestion or d.message, line=d.line))

        changes.reverse()
        return "\n".join(lines), changes, skipped

    # -- helpers for subclasses ------------------------------------------------

    def run_line_checks(self, lines: Sequence[MaskedLine], checks: Sequence[LineCheck]) -> List[Diagnostic]:
        """Run per-line checks; a failing check is logged and the scan continues."""
        found: List[Diagnostic] = []
        for line in lines:
            for check in checks:
                try:
                    found.extend(check(line))
                except Exception as e:
                    logger.warning(
                        f"{self.name}: check {getattr(check, '__name__', check)} failed on line {line.number}: {e}"
                    )
        return found

    def guarded(self, label: str, fn: Callable[[], List], default=None) -> List:
        """Run a whole-text check, isolating failures."""
        try:
            return fn()
        except Exception as e:
            logger.warning(f"{self.name}: {label} failed: {e}", exc_info=True)
            return [] if default is None else default

    @staticmethod
    def bundle(diagnostics: Iterable[Diagnostic], suggestions: Iterable[Suggestion] = ()) -> ValidationResult:
        errors: List[Diagnostic] = []
        warnings: List[Diagnostic] = []
        for d in diagnostics:
            (errors if d.severity == Severity.ERROR else warnings).append(d)
        return ValidationResult(errors=errors, warnings=warnings, suggestions=list(suggestions))

    def __repr__(self) -> str:
        caps = ",".join(sorted(c.value for c in self.capabilities))
        return f"<{self.__class__.__name__}(dialect={self.dialect.value}, capabilities={caps})>"


class ScriptDialectValidator(BaseDialectValidator):
    """Validator with the full capability set; `validate` composes the passes."""

    capabilities = ALL_CAPABILITIES

    def validate(self, code: str) -> ValidationResult:
        diagnostics: List[Diagnostic] = []
        diagnostics.extend(self.validate_syntax(code))
        diagnostics.extend(self.validate_semantics(code))
        diagnostics.extend(self.analyze_performance(code))
        return self.bundle(diagnostics, self.get_optimization_suggestions(code))


class ValidatorRegistry:
    """
    Registry of dialect validators.

    Validators register themselves with the @ValidatorRegistry.register decorator;
    instances are created lazily and reused.
    """

    _classes: Dict[Dialect, Type[BaseDialectValidator]] = {}
    _instances: Dict[Dialect, BaseDialectValidator] = {}

    @classmethod
    def register(cls, validator_class: Type[BaseDialectValidator]) -> Type[BaseDialectValidator]:
        if not issubclass(validator_class, BaseDialectValidator):
            raise TypeError(f"{validator_class} must inherit from BaseDialectValidator")
        dialect = validator_class.dialect
        if dialect in cls._classes and cls._classes[dialect] is not validator_class:
            logger.info(f"Replacing validator for {dialect.value}: {cls._classes[dialect].__name__} -> {validator_class.__name__}")
        cls._classes[dialect] = validator_class
        cls._instances.pop(dialect, None)
        logger.debug(f"Registered validator for {dialect.value}: {validator_class.__name__}")
        return validator_class

    @classmethod
    def get(cls, dialect: Dialect) -> Optional[BaseDialectValidator]:
        validator = cls._instances.get(dialect)
        if validator is None:
            validator_class = cls._classes.get(dialect)
            if validator_class is None:
                return None
            validator = cls._instances[dialect] = validator_class()
        return validator

    @classmethod
    def dialects(cls) -> List[Dialect]:
        return list(cls._classes.keys())

    @classmethod
    def list_validators(cls) -> Dict[str, Dict[str, object]]:
        return {
            dialect.value: {
                "validator": validator_class.__name__,
                "capabilities": sorted(c.value for c in validator_class.capabilities),
            }
            for dialect, validator_class in cls._classes.items()
        }


# Importing the dialect modules registers their validators (they need the names above)
from . import (  # noqa: E402,F401
    ampscript_validator,
    css_validator,
    html_validator,
    javascript_validator,
    sql_validator,
    ssjs_validator,
)

__all__ = [
    "ALL_CAPABILITIES",
    "BaseDialectValidator",
    "Capability",
    "LineFixer",
    "ScriptDialectValidator",
    "UnsupportedCapabilityError",
    "ValidatorRegistry",
    "diag",
]
