"""
Client-side JavaScript validator (CloudPages scripts, landing page widgets).

Shares the masking and block tracking used for SSJS; the checks target the
browser: DOM access, listeners, promises and async functions.
"""

from __future__ import annotations

import logging
import re
from functools import partial
from typing import Dict, List, Optional, Tuple

from ...models.linting import Diagnostic, DiagnosticCategory, Dialect, Impact, Severity, Suggestion, SuggestionKind
from . import ScriptDialectValidator, ValidatorRegistry, diag
from .ssjs_validator import CONDITION_RE, LONE_EQUALS_RE, condition_span, fix_condition_assignment
from .text_scan import (
    LEXICAL_SYNTAX,
    BlockMap,
    BlockTracker,
    MaskedLine,
    MaskedSource,
    call_arguments,
    mask_lines,
    mask_source,
    offset_to_position,
    unbalanced_delimiters,
)

logger = logging.getLogger(__name__)


DOM_QUERY_RE = re.compile(r"\bdocument\.(getElementById|getElementsBy\w+|querySelector(?:All)?)\s*\(")
DOM_WRITE_RE = re.compile(r"\.innerHTML\s*\+=|\.(?:appendChild|insertAdjacentHTML)\s*\(")
_LOOSE_EQUALITY_RE = re.compile(r"(?<![=!<>])([=!])=(?!=)(?!\s*null\b)")
_EVAL_RE = re.compile(r"\beval\s*\(|\bnew\s+Function\s*\(|\bset(?:Timeout|Interval)\s*\(\s*[\"'`]")
_XSS_RE = re.compile(r"\.innerHTML\s*=(?!=)|\bdocument\.write\s*\(")
_CONST_RE = re.compile(r"\bconst\s+[A-Za-z_$][\w$]*\s*(?:;|$)")
_AWAIT_RE = re.compile(r"\bawait\b")
_ASYNC_RE = re.compile(r"\basync\b")
_THEN_RE = re.compile(r"\.then\s*\(")
_METHOD_HEAD_RE = re.compile(r"(?:^|[\s,])(?!(?:if|for|while|switch|catch|with)\b)[A-Za-z_$][\w$]*\s*\([^()]*\)\s*$")
_HOT_EVENTS_RE = re.compile(r"addEventListener\s*\(\s*[\"'](scroll|resize|mousemove)[\"']")


def _fix_strict_equality(line: str, d: Diagnostic) -> Optional[str]:
    masked = mask_lines([line], LEXICAL_SYNTAX[Dialect.JAVASCRIPT]).lines[0].masked
    positions = [m.end() for m in _LOOSE_EQUALITY_RE.finditer(masked)]
    if not positions:
        return None
    for pos in reversed(positions):
        line = line[:pos] + "=" + line[pos:]
    return line


def _frame_kind(head: str) -> str:
    """Classify the block opened after `head` (text since the last ; { or })."""
    is_function = "=>" in head or re.search(r"\bfunction\b", head) or _METHOD_HEAD_RE.search(head)
    if not is_function:
        return "block"
    return "async" if _ASYNC_RE.search(head) else "function"


def _statement_end(text: str, start: int) -> int:
    """End of the statement containing `start`, following chained `.calls` across lines."""
    depth = 0
    i = start
    while i < len(text):
        ch = text[i]
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
            if depth < 0:
                return i
        elif depth == 0 and ch == ";":
            return i
        elif depth == 0 and ch == "\n" and not text[i:].lstrip().startswith("."):
            return i
        i += 1
    return len(text)


@ValidatorRegistry.register
class JavaScriptValidator(ScriptDialectValidator):
    name = "javascript_validator"
    dialect = Dialect.JAVASCRIPT
    fixers = {
        "js-assignment-in-condition": partial(fix_condition_assignment, operator="==="),
        "js-strict-equality": _fix_strict_equality,
    }

    def _scan(self, code: str) -> Tuple[MaskedSource, BlockMap]:
        source = mask_source(code, Dialect.JAVASCRIPT)
        return source, BlockTracker.for_dialect(Dialect.JAVASCRIPT).scan(source.lines)

    # ------------------------------------------------------------------ syntax

    def validate_syntax(self, code: str) -> List[Diagnostic]:
        source, _blocks = self._scan(code)
        found: List[Diagnostic] = []
        for pairs, rule in (("{}", "js-brace-matching"), ("()", "js-paren-matching"), ("[]", "js-bracket-matching")):
            for issue in unbalanced_delimiters(source.lines, pairs):
                found.append(diag(
                    issue.line, issue.column, rule,
                    f"Unclosed '{issue.char}'" if issue.kind == "unclosed" else f"Unexpected '{issue.char}'",
                    DiagnosticCategory.SYNTAX, Severity.ERROR, "Balance the delimiters",
                ))
        for line_no, col in source.unterminated_strings:
            found.append(diag(
                line_no, col, "js-unterminated-string", "String literal is not closed",
                DiagnosticCategory.SYNTAX, Severity.ERROR, "Close the string with a matching quote",
            ))
        found.extend(self.run_line_checks(source.lines, [self._check_condition, self._check_const]))
        return found

    def _check_condition(self, line: MaskedLine) -> List[Diagnostic]:
        found = []
        for m in CONDITION_RE.finditer(line.masked):
            span = condition_span(line.masked, m.end() - 1)
            if span is None:
                continue
            lone = LONE_EQUALS_RE.search(line.masked[span[0]:span[1]])
            if lone:
                found.append(diag(
                    line.number, span[0] + lone.start(), "js-assignment-in-condition",
                    "Assignment inside a condition", DiagnosticCategory.SYNTAX, Severity.ERROR,
                    "Use === to compare",
                ))
        return found

    def _check_const(self, line: MaskedLine) -> List[Diagnostic]:
        m = _CONST_RE.search(line.masked)
        if not m:
            return []
        return [diag(
            line.number, m.start(), "js-const-initialization", "const declaration without an initializer",
            DiagnosticCategory.SYNTAX, Severity.ERROR, "Initialize the constant or declare it with let",
        )]

    # --------------------------------------------------------------- semantics

    def validate_semantics(self, code: str) -> List[Diagnostic]:
        source, _blocks = self._scan(code)
        found: List[Diagnostic] = []
        found.extend(self.run_line_checks(source.lines, [
            self._check_eval, self._check_xss, self._check_equality, self._check_var,
        ]))
        found.extend(self.guarded("await placement", lambda: self._check_await(source.lines)))
        found.extend(self.guarded("promise handling", lambda: self._check_promises(source.text)))
        return found

    def _check_eval(self, line: MaskedLine) -> List[Diagnostic]:
        m = _EVAL_RE.search(line.masked)
        if not m:
            return []
        return [diag(
            line.number, m.start(), "js-eval", "Code is evaluated from a string",
            DiagnosticCategory.SECURITY, Severity.WARNING, "Pass a function, or parse data with JSON.parse",
        )]

    def _check_xss(self, line: MaskedLine) -> List[Diagnostic]:
        m = _XSS_RE.search(line.masked)
        if not m:
            return []
        return [diag(
            line.number, m.start(), "js-xss", "Writing HTML directly can inject untrusted content",
            DiagnosticCategory.SECURITY, Severity.WARNING, "Use textContent or sanitize the value",
        )]

    def _check_equality(self, line: MaskedLine) -> List[Diagnostic]:
        return [
            diag(
                line.number, m.start(), "js-strict-equality", f"Loose comparison '{m.group(1)}='",
                DiagnosticCategory.STYLE, Severity.WARNING, f"Use '{m.group(1)}==' to avoid type coercion",
            )
            for m in _LOOSE_EQUALITY_RE.finditer(line.masked)
        ]

    def _check_var(self, line: MaskedLine) -> List[Diagnostic]:
        m = re.search(r"\bvar\s+", line.masked)
        if not m:
            return []
        return [diag(
            line.number, m.start(), "js-var-usage", "var is function scoped",
            DiagnosticCategory.STYLE, Severity.INFO, "Use let or const",
        )]

    def _check_await(self, lines: List[MaskedLine]) -> List[Diagnostic]:
        found: List[Diagnostic] = []
        frames: List[str] = []
        head = ""
        for line in lines:
            text = line.masked
            awaits = {m.start() for m in _AWAIT_RE.finditer(text)}
            # Single-line async arrows have no block of their own
            line_is_async = _ASYNC_RE.search(text) is not None
            for col, ch in enumerate(text):
                if col in awaits and not line_is_async:
                    function = next((f for f in reversed(frames) if f != "block"), None)
                    if function != "async":
                        found.append(diag(
                            line.number, col, "js-await-async", "await used outside an async function",
                            DiagnosticCategory.SEMANTIC, Severity.WARNING, "Mark the enclosing function async",
                        ))
                if ch == "{":
                    frames.append(_frame_kind(head))
                    head = ""
                elif ch == "}":
                    if frames:
                        frames.pop()
                    head = ""
                elif ch == ";":
                    head = ""
                else:
                    head += ch
            head += "\n"
        return found

    def _check_promises(self, text: str) -> List[Diagnostic]:
        found: List[Diagnostic] = []
        covered = -1
        for m in _THEN_RE.finditer(text):
            if m.start() < covered:
                continue
            end = _statement_end(text, m.start())
            covered = end
            start = max(text.rfind(c, 0, m.start()) for c in ";{}") + 1
            if text[start:m.start()].lstrip().startswith("return"):
                continue
            statement = text[m.start():end]
            if ".catch" in statement:
                continue
            args = call_arguments(text, m.end() - 1)
            if args and len(args) >= 2:
                continue
            line, col = offset_to_position(text, m.start())
            found.append(diag(
                line, col, "js-promise-catch", "Promise chain has no rejection handler",
                DiagnosticCategory.SEMANTIC, Severity.WARNING, "Add .catch() to the chain",
            ))
        return found

    # ------------------------------------------------------------- performance

    def analyze_performance(self, code: str) -> List[Diagnostic]:
        source, blocks = self._scan(code)
        found: List[Diagnostic] = []
        found.extend(self.run_line_checks(source.lines, [
            lambda line: self._check_dom_in_loop(line, blocks),
            self._check_loop_length,
        ]))
        found.extend(self.guarded("DOM caching", lambda: self._check_dom_caching(source.lines)))
        found.extend(self.guarded("listener cleanup", lambda: self._check_listener_cleanup(source.lines)))
        return found

    def _check_dom_in_loop(self, line: MaskedLine, blocks: BlockMap) -> List[Diagnostic]:
        found = []
        for regex in (DOM_QUERY_RE, DOM_WRITE_RE):
            for m in regex.finditer(line.masked):
                if blocks.loop_depth_at(line.number, m.start()) < 1:
                    continue
                call = m.group(0).rstrip("( +=").lstrip(".")
                found.append(diag(
                    line.number, m.start(), "js-expensive-in-loop", f"{call} inside a loop touches the DOM every iteration",
                    DiagnosticCategory.PERFORMANCE, Severity.WARNING,
                    "Query once before the loop and batch DOM writes",
                ))
        return found

    def _check_loop_length(self, line: MaskedLine) -> List[Diagnostic]:
        m = re.search(r"\bfor\s*\([^;]*;[^;]*\.length\b", line.masked)
        if not m:
            return []
        return [diag(
            line.number, m.start(), "js-cache-array-length", "Loop condition reads .length on every iteration",
            DiagnosticCategory.PERFORMANCE, Severity.INFO, "Cache the length in a variable before the loop",
        )]

    def _check_dom_caching(self, lines: List[MaskedLine]) -> List[Diagnostic]:
        found: List[Diagnostic] = []
        seen: Dict[Tuple[str, str], int] = {}
        for line in lines:
            for m in DOM_QUERY_RE.finditer(line.masked):
                args = call_arguments(line.masked, m.end() - 1)
                if not args:
                    continue
                key = (m.group(1), line.raw[args[0][0]:args[-1][1]].strip())
                seen[key] = seen.get(key, 0) + 1
                if seen[key] == 2:
                    found.append(diag(
                        line.number, m.start(), "js-dom-caching", f"{m.group(1)}({key[1]}) is repeated",
                        DiagnosticCategory.PERFORMANCE, Severity.INFO, "Store the element in a variable and reuse it",
                    ))
        return found

    def _check_listener_cleanup(self, lines: List[MaskedLine]) -> List[Diagnostic]:
        if any("removeEventListener" in line.masked for line in lines):
            return []
        for line in lines:
            col = line.masked.find("addEventListener")
            if col >= 0:
                return [diag(
                    line.number, col, "js-event-listener-cleanup", "Event listeners are never removed",
                    DiagnosticCategory.PERFORMANCE, Severity.INFO,
                    "Remove listeners that outlive their element to avoid memory leaks",
                )]
        return []

    # ------------------------------------------------------------ suggestions

    def get_optimization_suggestions(self, code: str) -> List[Suggestion]:
        source, _blocks = self._scan(code)
        suggestions: List[Suggestion] = []
        concat_suggested = False
        for line in source.lines:
            hot = _HOT_EVENTS_RE.search(line.raw)
            if hot:
                suggestions.append(Suggestion(
                    id=f"js-debounce:{line.number}",
                    kind=SuggestionKind.PERFORMANCE,
                    title="Debounce frequent events",
                    message=f"Debounce or throttle the {hot.group(1)} handler",
                    impact=Impact.MEDIUM,
                    line=line.number,
                ))
            if not concat_suggested and re.search(r"[\"']\s*\+|\+\s*[\"']", line.masked):
                concat_suggested = True
                suggestions.append(Suggestion(
                    id=f"js-template-literal:{line.number}",
                    kind=SuggestionKind.BEST_PRACTICE,
                    title="Use template literals",
                    message="Build strings with template literals instead of + concatenation",
                    impact=Impact.LOW,
                    line=line.number,
                ))

        text = source.text
        risky = re.search(r"\bJSON\.parse\s*\(|\blocalStorage\.getItem\s*\(", text)
        if risky and not re.search(r"\btry\b", text):
            line, _col = offset_to_position(text, risky.start())
            suggestions.append(Suggestion(
                id="js-error-handling",
                kind=SuggestionKind.MAINTAINABILITY,
                title="Handle parse and storage errors",
                message="Wrap JSON.parse and localStorage access in try/catch; both throw on bad data or blocked storage",
                impact=Impact.HIGH,
                line=line,
            ))
        return suggestions
