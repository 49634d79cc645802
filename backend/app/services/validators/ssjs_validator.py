"""
Server-side JavaScript (SSJS) validator.

SSJS runs inside `<script runat="server">` blocks; when the text has no script
tag at all it is treated as a bare script body.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from typing import Dict, List, Optional, Set, Tuple

from ...models.linting import Diagnostic, DiagnosticCategory, Dialect, Impact, Severity, Suggestion, SuggestionKind
from . import ScriptDialectValidator, ValidatorRegistry, diag
from .text_scan import (
    LEXICAL_SYNTAX,
    BlockMap,
    BlockTracker,
    MaskedLine,
    MaskedSource,
    call_arguments,
    mask_lines,
    split_lines,
    unbalanced_delimiters,
)

logger = logging.getLogger(__name__)


# Expensive platform primitives (data access, HTTP, SOAP)
EXPENSIVE_CALLS = [
    re.compile(r"\bDataExtension\.Init\s*\("),
    re.compile(r"\bScript\.Util\.(?:WSProxy|HttpRequest|HttpGet|HttpPost)\s*\("),
    re.compile(r"\bHTTP\.(?:Get|Post)\s*\("),
    re.compile(
        r"\bPlatform\.Function\.(?:Lookup\w*|InsertD\w*|UpdateD\w*|UpsertD\w*|DeleteD\w*|HTTP\w*"
        r"|ContentBlockBy\w+|RetrieveSalesforceObjects|CreateSalesforceObject|UpdateSingleSalesforceObject)\s*\("
    ),
    re.compile(r"\.Rows\.(?:Lookup|Retrieve|Add|Update|Remove)\s*\("),
    re.compile(r"\.(?:retrieve|createItem|updateItem|deleteItem|performItem|createBatch|updateBatch)\s*\("),
]

QUERY_PRIMITIVES = re.compile(
    r"(?:\.Rows\.(?:Lookup|Retrieve)|Platform\.Function\.Lookup\w*|\.retrieve|\.execute|ExecuteQuery|Query\.Definition\.Add)\s*\("
)
REQUEST_GETTERS = re.compile(
    r"\b(?:Platform\.)?Request\.(?:GetQueryStringParameter|GetFormField|GetPostData|GetCookieValue)\s*\("
    r"|\bRequestParameter\s*\("
)
OUTPUT_CALLS = re.compile(r"\b(?:Write|Platform\.Response\.Write)\s*\(")
ENCODERS = ("HTMLEncode", "URLEncode", "encodeURIComponent", "encodeURI", "Stringify")
CORE_OBJECTS = re.compile(r"\b(?:DataExtension|Subscriber|List|Email|TriggeredSend|Send|Folder|Account)\.(?:Init|Add|Retrieve)\b")

_SCRIPT_TAG_RE = re.compile(r"<script\b[^>]*>", re.IGNORECASE)
_SCRIPT_CLOSE_RE = re.compile(r"</script\s*>", re.IGNORECASE)
_RUNAT_RE = re.compile(r"runat\s*=\s*[\"']?server", re.IGNORECASE)
_DECL_RE = re.compile(r"\b(?:var|let|const)\s+([A-Za-z_$][\w$]*)")
_FUNC_RE = re.compile(r"\bfunction\s*([A-Za-z_$][\w$]*)?\s*\(([^)]*)\)")
_IDENT_RE = re.compile(r"(?<![\w$.])([A-Za-z_$][\w$]*)")
_IMPLICIT_GLOBAL_RE = re.compile(r"^\s*([A-Za-z_$][\w$]*)\s*=(?!=)")
CONDITION_RE = re.compile(r"\b(?:if|while)\s*\(")
LONE_EQUALS_RE = re.compile(r"(?<![=!<>+\-*/%&|^])=(?![=>])")
_CREDENTIAL_RE = re.compile(
    r"[\"']?\b(?:password|passwd|pwd|secret|api_?key|apiKey|client_?secret|clientSecret|access_?token|accessToken)\b[\"']?"
    r"\s*[:=]\s*[\"'][^\"']{3,}[\"']",
    re.IGNORECASE,
)

JS_KEYWORDS = frozenset("""
    var let const function return if else for while do switch case default break continue
    try catch finally throw new typeof instanceof in of delete void this null undefined true false
    Platform Write DataExtension Script HTTP Request Variable Attribute Stringify ParseJSON
    Subscriber List Email TriggeredSend Send Folder Account WSProxy Core Array Object String Number
    Math Date JSON parseInt parseFloat isNaN Boolean Error arguments
""".split())

STATEMENT_HEADERS = re.compile(r"^\s*(?:}\s*)?(?:if|else|for|while|do|switch|try|catch|finally|function|case|default)\b")
CONTINUATION_ENDINGS = (";", "{", "}", ",", "(", "[", ":", "&&", "||", "+", "-", "*", "/", "?", "=", ".", ">", "<", "!")


def script_view(lines: List[str]) -> List[str]:
    """Blank everything outside <script> blocks (including the tags themselves)."""
    if not any(_SCRIPT_TAG_RE.search(line) for line in lines):
        return list(lines)
    out: List[str] = []
    inside = False
    for raw in lines:
        chars = [" "] * len(raw)
        i = 0
        while i < len(raw):
            if inside:
                close = _SCRIPT_CLOSE_RE.match(raw, i)
                if close:
                    inside = False
                    i = close.end()
                    continue
                chars[i] = raw[i]
                i += 1
                continue
            tag = _SCRIPT_TAG_RE.match(raw, i)
            if tag:
                inside = True
                i = tag.end()
                continue
            i += 1
        out.append("".join(chars))
    return out


def condition_span(masked: str, start: int) -> Optional[Tuple[int, int]]:
    """Span of the parenthesised condition whose "(" is at `start`."""
    args = call_arguments(masked, start)
    if not args:
        return None
    return args[0][0], args[-1][1]


def _fix_semicolon(line: str, d: Diagnostic) -> Optional[str]:
    masked = mask_lines([line], LEXICAL_SYNTAX[Dialect.SSJS]).lines[0].masked
    end = len(masked.rstrip())
    if end == 0:
        return None
    return line[:end] + ";" + line[end:]


def fix_condition_assignment(line: str, d: Diagnostic, operator: str = "==") -> Optional[str]:
    masked = mask_lines([line], LEXICAL_SYNTAX[Dialect.SSJS]).lines[0].masked
    m = CONDITION_RE.search(masked)
    if not m:
        return None
    span = condition_span(masked, m.end() - 1)
    if span is None:
        return None
    positions = [span[0] + e.start() for e in LONE_EQUALS_RE.finditer(masked[span[0]:span[1]])]
    if not positions:
        return None
    chars = list(line)
    for pos in reversed(positions):
        chars[pos] = operator
    return "".join(chars)


def _fix_script_tag(line: str, d: Diagnostic) -> Optional[str]:
    m = _SCRIPT_TAG_RE.search(line)
    if not m or _RUNAT_RE.search(m.group(0)):
        return None
    return line[: m.start()] + '<script runat="server"' + line[m.start() + len("<script"):]


def _fix_de_constructor(line: str, d: Diagnostic) -> Optional[str]:
    return re.sub(r"\bnew\s+DataExtension\s*\(", "DataExtension.Init(", line)


@ValidatorRegistry.register
class SSJSValidator(ScriptDialectValidator):
    """Heuristic SSJS checks (syntax, semantics, security, performance)."""

    name = "ssjs_validator"
    dialect = Dialect.SSJS
    fixers = {
        "ssjs-semicolon": _fix_semicolon,
        "ssjs-comparison": fix_condition_assignment,
        "ssjs-script-tag": _fix_script_tag,
        "ssjs-de-constructor": _fix_de_constructor,
    }

    def _scan(self, code: str) -> Tuple[MaskedSource, BlockMap]:
        raw_lines = split_lines(code)
        source = mask_lines(script_view(raw_lines), LEXICAL_SYNTAX[Dialect.SSJS])
        for masked_line, raw in zip(source.lines, raw_lines):
            masked_line.raw = raw
        return source, BlockTracker.for_dialect(Dialect.SSJS).scan(source.lines)

    # ------------------------------------------------------------------ syntax

    def validate_syntax(self, code: str) -> List[Diagnostic]:
        source, _blocks = self._scan(code)
        lines = source.lines
        found: List[Diagnostic] = []

        found.extend(self.run_line_checks(lines, [
            self._check_script_tag,
            self._check_comparison,
            self._check_de_constructor,
        ]))
        found.extend(self.guarded("statement terminators", lambda: self._check_semicolons(lines)))

        for issue in unbalanced_delimiters(lines, "(){}[]"):
            rule = "ssjs-brace-matching" if issue.char in "{}" else "ssjs-paren-matching"
            what = "Unclosed" if issue.kind == "unclosed" else "Unexpected"
            found.append(diag(
                issue.line, issue.column, rule, f"{what} '{issue.char}'",
                DiagnosticCategory.SYNTAX, Severity.ERROR,
                "Balance the opening and closing delimiters",
            ))
        for line_no, col in source.unterminated_strings:
            found.append(diag(
                line_no, col, "ssjs-unterminated-string", "String literal is not closed",
                DiagnosticCategory.SYNTAX, Severity.ERROR, "Close the string with a matching quote",
            ))
        return found

    def _check_script_tag(self, line: MaskedLine) -> List[Diagnostic]:
        m = _SCRIPT_TAG_RE.search(line.raw)
        if m and not _RUNAT_RE.search(m.group(0)):
            return [diag(
                line.number, m.start(), "ssjs-script-tag",
                'SSJS script tag is missing runat="server"',
                DiagnosticCategory.SYNTAX, Severity.ERROR,
                'Add runat="server" to the script tag',
            )]
        return []

    def _check_comparison(self, line: MaskedLine) -> List[Diagnostic]:
        found = []
        for m in CONDITION_RE.finditer(line.masked):
            span = condition_span(line.masked, m.end() - 1)
            if span is None:
                continue
            lone = LONE_EQUALS_RE.search(line.masked[span[0]:span[1]])
            if lone:
                found.append(diag(
                    line.number, span[0] + lone.start(), "ssjs-comparison",
                    "Assignment inside a condition; use == or === for comparison",
                    DiagnosticCategory.SYNTAX, Severity.ERROR,
                    "Replace = with == for comparison",
                ))
        return found

    def _check_de_constructor(self, line: MaskedLine) -> List[Diagnostic]:
        m = re.search(r"\bnew\s+DataExtension\s*\(", line.masked)
        if m:
            return [diag(
                line.number, m.start(), "ssjs-de-constructor",
                "DataExtension is not constructed with new",
                DiagnosticCategory.SYNTAX, Severity.ERROR,
                'Use DataExtension.Init("ExternalKey") instead',
            )]
        return []

    def _check_semicolons(self, lines: List[MaskedLine]) -> List[Diagnostic]:
        found = []
        depth = 0
        code_lines = [line for line in lines if not line.is_blank]
        for idx, line in enumerate(code_lines):
            text = line.masked.rstrip()
            stripped = text.strip()
            for ch in line.masked:
                if ch in "([":
                    depth += 1
                elif ch in ")]":
                    depth = max(0, depth - 1)

            # still inside a call or array spanning several lines
            if depth > 0:
                continue
            if stripped.endswith(CONTINUATION_ENDINGS) or STATEMENT_HEADERS.match(stripped):
                continue
            if re.match(r"^[\w$\"']+\s*:", stripped):  # object literal property
                continue
            nxt = code_lines[idx + 1].masked.strip() if idx + 1 < len(code_lines) else ""
            if nxt.startswith((".", "+", "-", "?", ":", "&&", "||", ")", "]", ",")):
                continue
            if nxt.startswith("}") and re.match(r"^[\w$\"'\[\]]+$", stripped):
                continue
            found.append(diag(
                line.number, len(text), "ssjs-semicolon", "Missing semicolon at end of statement",
                DiagnosticCategory.SYNTAX, Severity.WARNING, "Add ; at the end of the statement",
            ))
        return found

    # --------------------------------------------------------------- semantics

    def validate_semantics(self, code: str) -> List[Diagnostic]:
        source, _blocks = self._scan(code)
        lines = source.lines
        found: List[Diagnostic] = []
        found.extend(self.guarded("variable tracking", lambda: self._check_variables(lines)))
        found.extend(self.guarded("Platform.Load", lambda: self._check_platform_load(lines)))
        found.extend(self.run_line_checks(lines, [
            self._check_de_init,
            self._check_wsproxy,
            self._check_injection,
            self._check_credentials,
            self._check_eval,
        ]))
        found.extend(self.guarded("unescaped output", lambda: self._check_output(lines)))
        return found

    def _check_variables(self, lines: List[MaskedLine]) -> List[Diagnostic]:
        declared: Dict[str, Tuple[int, int]] = {}
        decl_sites: Set[Tuple[int, int]] = set()
        for line in lines:
            for m in _DECL_RE.finditer(line.masked):
                declared.setdefault(m.group(1), (line.number, m.start(1)))
                decl_sites.add((line.number, m.start(1)))
            for m in _FUNC_RE.finditer(line.masked):
                if m.group(1):
                    declared.setdefault(m.group(1), (line.number, m.start(1)))
                    decl_sites.add((line.number, m.start(1)))
                for param in re.finditer(r"[A-Za-z_$][\w$]*", m.group(2)):
                    # parameters are declared but never reported as unused
                    decl_sites.add((line.number, m.start(2) + param.start()))

        used: Set[str] = set()
        found: List[Diagnostic] = []
        for line in lines:
            for m in _IDENT_RE.finditer(line.masked):
                if (line.number, m.start(1)) in decl_sites:
                    continue
                used.add(m.group(1))

            g = _IMPLICIT_GLOBAL_RE.match(line.masked)
            if g and g.group(1) not in declared and g.group(1) not in JS_KEYWORDS:
                found.append(diag(
                    line.number, g.start(1), "ssjs-undeclared-variable",
                    f"'{g.group(1)}' is assigned without being declared",
                    DiagnosticCategory.SEMANTIC, Severity.WARNING,
                    f"Declare it first: var {g.group(1)};",
                ))

        for name, (line_no, col) in declared.items():
            if name not in used:
                found.append(diag(
                    line_no, col, "ssjs-unused-variable", f"'{name}' is declared but never used",
                    DiagnosticCategory.SEMANTIC, Severity.WARNING, f"Remove '{name}' or use it",
                ))
        return found

    def _check_platform_load(self, lines: List[MaskedLine]) -> List[Diagnostic]:
        found = []
        loads = [(line, re.search(r"\bPlatform\.Load\s*\(", line.masked)) for line in lines]
        loads = [(line, m) for line, m in loads if m]
        uses_core = next((line for line in lines if CORE_OBJECTS.search(line.masked)), None)

        if not loads:
            if uses_core is not None:
                found.append(diag(
                    uses_core.number, None, "ssjs-platform-load-missing",
                    "Core library objects are used but Platform.Load is never called",
                    DiagnosticCategory.SEMANTIC, Severity.WARNING,
                    'Add Platform.Load("Core", "1.1.1"); at the top of the script',
                ))
            return found

        code_lines = [line.number for line in lines if not line.is_blank]
        for line, m in loads:
            position = code_lines.index(line.number) if line.number in code_lines else 0
            if position > 2:
                found.append(diag(
                    line.number, m.start(), "ssjs-platform-load-position",
                    "Platform.Load should be called at the beginning of the script",
                    DiagnosticCategory.SEMANTIC, Severity.WARNING,
                    "Move Platform.Load to the top of the script",
                ))
            if not re.search(r"[\"']core[\"']", line.raw, re.IGNORECASE):
                found.append(diag(
                    line.number, m.start(), "ssjs-platform-load-core",
                    'Platform.Load should load the "Core" library',
                    DiagnosticCategory.SEMANTIC, Severity.WARNING,
                    'Use Platform.Load("Core", "1.1.1");',
                ))
        return found

    def _check_de_init(self, line: MaskedLine) -> List[Diagnostic]:
        found = []
        for m in re.finditer(r"\bDataExtension\.Init\s*\(", line.masked):
            args = call_arguments(line.masked, m.end() - 1)
            if args is not None and not args:
                found.append(diag(
                    line.number, m.start(), "ssjs-de-init",
                    "DataExtension.Init() needs the data extension external key",
                    DiagnosticCategory.SEMANTIC, Severity.ERROR,
                    'Pass the external key: DataExtension.Init("MyDE")',
                ))
            before = line.masked[: m.start()].rstrip()
            after_close = ""
            if args is not None:
                close = args[-1][1] if args else m.end()
                after_close = line.masked[close + 1:].lstrip()
            bound = before.endswith(("=", "(", ",", ":", "return", "?")) or after_close.startswith(".")
            if not bound:
                found.append(diag(
                    line.number, m.start(), "ssjs-de-init-assignment",
                    "DataExtension.Init() result should be assigned to a variable",
                    DiagnosticCategory.SEMANTIC, Severity.ERROR,
                    'Assign the result: var de = DataExtension.Init("MyDE");',
                ))
        return found

    def _check_wsproxy(self, line: MaskedLine) -> List[Diagnostic]:
        m = re.search(r"\bnew\s+Script\.Util\.WSProxy\s*\(", line.masked)
        if not m:
            return []
        args = call_arguments(line.masked, m.end() - 1)
        if args:
            return []
        return [diag(
            line.number, m.start(), "ssjs-wsproxy-auth",
            "WSProxy created without an explicit authentication context",
            DiagnosticCategory.SEMANTIC, Severity.WARNING,
            "Call setClientId() or pass an access token when working across business units",
        )]

    def _check_injection(self, line: MaskedLine) -> List[Diagnostic]:
        found = []
        for m in QUERY_PRIMITIVES.finditer(line.masked):
            args = call_arguments(line.masked, m.end() - 1)
            if not args:
                continue
            arg_text = line.masked[args[0][0]:args[-1][1]]
            if "+" in arg_text or REQUEST_GETTERS.search(line.raw[args[0][0]:args[-1][1]]):
                found.append(diag(
                    line.number, m.start(), "ssjs-injection-risk",
                    "Concatenated or request-supplied value passed to a query primitive",
                    DiagnosticCategory.SECURITY, Severity.ERROR,
                    "Use filter objects with validated values instead of string concatenation",
                ))
        return found

    def _check_credentials(self, line: MaskedLine) -> List[Diagnostic]:
        m = _CREDENTIAL_RE.search(line.raw)
        if m and line.masked[m.start():m.start() + 1].strip():
            return [diag(
                line.number, m.start(), "ssjs-hardcoded-credential", "Hardcoded credential in script",
                DiagnosticCategory.SECURITY, Severity.WARNING,
                "Load secrets from a protected data extension or key management at runtime",
            )]
        return []

    def _check_eval(self, line: MaskedLine) -> List[Diagnostic]:
        m = re.search(r"(?<![\w$.])eval\s*\(", line.masked)
        if m:
            return [diag(
                line.number, m.start(), "ssjs-eval", "eval() executes arbitrary code",
                DiagnosticCategory.SECURITY, Severity.ERROR, "Parse data with Platform.Function.ParseJSON instead",
            )]
        return []

    def _check_output(self, lines: List[MaskedLine]) -> List[Diagnostic]:
        tainted: Set[str] = set()
        found = []
        for line in lines:
            for m in re.finditer(r"\b(?:var\s+)?([A-Za-z_$][\w$]*)\s*=(?!=)", line.masked):
                rhs = line.raw[m.end():]
                if REQUEST_GETTERS.search(rhs) and not any(e in rhs for e in ENCODERS):
                    tainted.add(m.group(1))
            for m in OUTPUT_CALLS.finditer(line.masked):
                args = call_arguments(line.masked, m.end() - 1)
                if not args:
                    continue
                raw_args = line.raw[args[0][0]:args[-1][1]]
                if any(e in raw_args for e in ENCODERS):
                    continue
                masked_args = line.masked[args[0][0]:args[-1][1]]
                names = {i.group(1) for i in _IDENT_RE.finditer(masked_args)}
                if REQUEST_GETTERS.search(raw_args) or names & tainted:
                    found.append(diag(
                        line.number, m.start(), "ssjs-unescaped-output",
                        "Request value written to the page without encoding",
                        DiagnosticCategory.SECURITY, Severity.WARNING,
                        "Encode with Platform.Function.HTMLEncode() before writing",
                    ))
        return found

    # ------------------------------------------------------------- performance

    def analyze_performance(self, code: str) -> List[Diagnostic]:
        source, blocks = self._scan(code)
        lines = source.lines
        found: List[Diagnostic] = []
        found.extend(self.run_line_checks(lines, [
            lambda line: self._check_loop_calls(line, blocks),
            self._check_unfiltered_retrieve,
            lambda line: self._check_concat_in_loop(line, blocks),
        ]))
        found.extend(self.guarded("batch operations", lambda: self._check_batch_lookups(lines)))
        return found

    def _check_loop_calls(self, line: MaskedLine, blocks: BlockMap) -> List[Diagnostic]:
        found = []
        seen: Set[int] = set()
        for regex in EXPENSIVE_CALLS:
            for m in regex.finditer(line.masked):
                if m.start() in seen:
                    continue
                seen.add(m.start())
                depth = blocks.loop_depth_at(line.number, m.start())
                if depth < 1:
                    continue
                call = m.group(0).rstrip("( ").lstrip(".")
                found.append(diag(
                    line.number, m.start(), "ssjs-performance-loop",
                    f"{call} inside {'nested loops' if depth >= 2 else 'a loop'} runs once per iteration",
                    DiagnosticCategory.PERFORMANCE, Severity.ERROR if depth >= 2 else Severity.WARNING,
                    f"Move {call} outside the loop and reuse the result",
                ))
        return found

    def _check_unfiltered_retrieve(self, line: MaskedLine) -> List[Diagnostic]:
        found = []
        for m in re.finditer(r"\.Rows\.Retrieve\s*\(", line.masked):
            args = call_arguments(line.masked, m.end() - 1)
            if args is not None and not args:
                found.append(diag(
                    line.number, m.start() + 1, "ssjs-unlimited-retrieve",
                    "Rows.Retrieve() without a filter returns every row",
                    DiagnosticCategory.PERFORMANCE, Severity.ERROR,
                    "Pass a filter object to Rows.Retrieve()",
                ))
        for m in re.finditer(r"\.retrieve\s*\(", line.masked):
            args = call_arguments(line.masked, m.end() - 1)
            if args is not None and len(args) < 3:
                found.append(diag(
                    line.number, m.start() + 1, "ssjs-unlimited-retrieve",
                    "WSProxy retrieve without a filter returns every object",
                    DiagnosticCategory.PERFORMANCE, Severity.ERROR,
                    "Pass a filter as the third argument of retrieve()",
                ))
        return found

    def _check_concat_in_loop(self, line: MaskedLine, blocks: BlockMap) -> List[Diagnostic]:
        m = re.search(r"([A-Za-z_$][\w$]*)\s*\+=", line.masked)
        if not m or blocks.loop_depth_at(line.number, m.start()) < 1:
            return []
        if not re.search(r"\+=\s*[\"'`]|[\"'`]\s*\+", line.raw[m.start():]):
            return []
        return [diag(
            line.number, m.start(), "ssjs-string-concat-loop",
            f"String concatenation on '{m.group(1)}' inside a loop",
            DiagnosticCategory.PERFORMANCE, Severity.WARNING,
            "Collect parts in an array and join() once after the loop",
        )]

    def _lookup_receivers(self, lines: List[MaskedLine]) -> Dict[str, List[Tuple[int, int]]]:
        receivers: Dict[str, List[Tuple[int, int]]] = defaultdict(list)
        for line in lines:
            for m in re.finditer(r"([A-Za-z_$][\w$]*)\.Rows\.Lookup\s*\(", line.masked):
                receivers[m.group(1)].append((line.number, m.start()))
        return receivers

    def _check_batch_lookups(self, lines: List[MaskedLine]) -> List[Diagnostic]:
        found = []
        for receiver, sites in self._lookup_receivers(lines).items():
            if len(sites) >= 2:
                found.append(diag(
                    sites[1][0], sites[1][1], "ssjs-batch-operations",
                    f"{len(sites)} separate Rows.Lookup calls on '{receiver}'",
                    DiagnosticCategory.PERFORMANCE, Severity.INFO,
                    "Retrieve the needed rows once with a combined filter",
                ))
        return found

    # ------------------------------------------------------------ suggestions

    def get_optimization_suggestions(self, code: str) -> List[Suggestion]:
        source, blocks = self._scan(code)
        suggestions: List[Suggestion] = []
        has_try = any(re.search(r"\btry\s*\{?", line.masked) for line in source.lines)

        for line in source.lines:
            for regex in EXPENSIVE_CALLS:
                m = regex.search(line.masked)
                if m and blocks.loop_depth_at(line.number, m.start()) >= 1:
                    suggestions.append(Suggestion(
                        id=f"ssjs-batch:{line.number}",
                        kind=SuggestionKind.PERFORMANCE,
                        title="Batch data access outside the loop",
                        message="Retrieve data once before the loop and process records in memory",
                        impact=Impact.HIGH,
                        line=line.number,
                    ))
                    break
            if not has_try and re.search(r"\bHTTP\.(?:Get|Post)\s*\(|Script\.Util\.(?:HttpRequest|WSProxy)", line.masked):
                suggestions.append(Suggestion(
                    id=f"ssjs-try-catch:{line.number}",
                    kind=SuggestionKind.MAINTAINABILITY,
                    title="Wrap remote calls in try/catch",
                    message="HTTP and SOAP calls can fail; handle errors so the page still renders",
                    impact=Impact.HIGH,
                    line=line.number,
                ))
        for receiver, sites in self._lookup_receivers(source.lines).items():
            if len(sites) >= 2:
                suggestions.append(Suggestion(
                    id=f"ssjs-batch-lookup:{receiver}",
                    kind=SuggestionKind.PERFORMANCE,
                    title="Combine lookups",
                    message=f"Combine {len(sites)} lookups on '{receiver}' into one filtered retrieve",
                    impact=Impact.MEDIUM,
                    line=sites[0][0],
                ))
        return suggestions
