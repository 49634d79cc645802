"""
AMPscript validator.

AMPscript lives inside HTML: processing blocks `%%[ ... ]%%`, inline output
blocks `%%= ... =%%` and `<script language="ampscript">` tags. Only those
regions are analyzed; text without any AMPscript delimiter is treated as a
bare AMPscript snippet.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
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
)

logger = logging.getLogger(__name__)


AMPSCRIPT_FUNCTIONS = frozenset(name.lower() for name in [
    "AttributeValue", "Concat", "Length", "Substring", "Replace", "Uppercase", "Lowercase",
    "ProperCase", "Trim", "IndexOf", "Format", "FormatCurrency", "FormatNumber", "FormatDate",
    "Now", "DateAdd", "DateDiff", "DatePart", "DateParse", "StringToDate", "SystemDateToLocalDate",
    "LocalDateToSystemDate", "IsNull", "Empty", "IIF", "IsEmailAddress", "IsPhoneNumber",
    "Add", "Subtract", "Multiply", "Divide", "Mod", "Random",
    "Lookup", "LookupRows", "LookupRowsCS", "LookupOrderedRows", "LookupOrderedRowsCS",
    "Row", "Field", "RowCount", "InsertData", "InsertDE", "UpdateData", "UpdateDE",
    "UpsertData", "UpsertDE", "DeleteData", "DeleteDE", "ClaimRow", "ClaimRowValue", "UnclaimRow",
    "CreateSalesforceObject", "UpdateSingleSalesforceObject", "RetrieveSalesforceObjects",
    "HTTPGet", "HTTPPost", "HTTPPost2", "HTTPPut", "HTTPDelete", "HTTPRequestHeader",
    "Base64Encode", "Base64Decode", "MD5", "SHA1", "SHA256", "SHA512", "GUID",
    "EncryptSymmetric", "DecryptSymmetric", "URLEncode", "HTMLEncode", "WrapLongURL",
    "RedirectTo", "RaiseError", "BuildRowsetFromString", "BuildRowsetFromJSON", "BuildRowsetFromXML",
    "CreateObject", "SetObjectProperty", "AddObjectArrayItem", "InvokeCreate", "InvokeDelete",
    "InvokeExecute", "InvokePerform", "InvokeRetrieve", "InvokeUpdate",
    "RegExMatch", "StringToHex", "TreatAsContent", "TreatAsContentArea",
    "ContentBlockByName", "ContentBlockById", "ContentBlockByKey", "ContentArea", "ContentAreaByName",
    "v", "Output", "OutputLine", "PersonalizationString",
])

SFMC_SYSTEM_FUNCTIONS = frozenset(name.lower() for name in [
    "CloudPagesURL", "MicrositeURL", "RequestParameter", "QueryParameter",
    "HTTPResponseHeader", "GetPortfolioItem", "SetPortfolioItem",
])

KEYWORDS = frozenset({"var", "set", "if", "elseif", "else", "endif", "for", "to", "downto", "do",
                      "next", "then", "and", "or", "not"})

DATA_FUNCTIONS = ("Lookup", "LookupRows", "LookupRowsCS", "LookupOrderedRows", "LookupOrderedRowsCS",
                  "InsertData", "UpdateData", "UpsertData", "DeleteData",
                  "InsertDE", "UpdateDE", "UpsertDE", "DeleteDE", "ClaimRow")
DATA_WRITE_FUNCTIONS = ("InsertData", "UpdateData", "UpsertData", "DeleteData",
                        "InsertDE", "UpdateDE", "UpsertDE", "DeleteDE")
API_FUNCTIONS = ("HTTPGet", "HTTPPost", "HTTPPost2", "HTTPPut", "HTTPDelete",
                 "CreateSalesforceObject", "UpdateSingleSalesforceObject", "RetrieveSalesforceObjects")
SF_FUNCTIONS = ("CreateSalesforceObject", "UpdateSingleSalesforceObject", "RetrieveSalesforceObjects")
ENCODERS = ("HTMLEncode", "URLEncode", "Replace", "Base64Encode", "WrapLongURL")

_CALL_RE = re.compile(r"\b([A-Za-z_][A-Za-z0-9_]*)\s*\(")
_VAR_RE = re.compile(r"@[A-Za-z_][A-Za-z0-9_]*")
_VAR_DECL_RE = re.compile(r"\bVAR\s+(@[\w\s,@]+)", re.IGNORECASE)
_SET_RE = re.compile(r"\bSET\s+(@\w+)\s*=", re.IGNORECASE)
_FOR_VAR_RE = re.compile(r"\bFOR\s+(@\w+)\s*=", re.IGNORECASE)
_CONDITION_RE = re.compile(r"\b(?:ELSE)?IF\b(?P<cond>.*?)\bTHEN\b", re.IGNORECASE)
_LONE_EQUALS_RE = re.compile(r"(?<![=!<>])=(?!=)")
_REQUEST_RE = re.compile(r"\b(?:RequestParameter|QueryParameter)\s*\(", re.IGNORECASE)
_CREDENTIAL_RE = re.compile(
    r"@\w*(?:password|passwd|pwd|secret|api_?key|access_?token|token|client_?secret)\w*\s*=\s*[\"'][^\"']{3,}[\"']",
    re.IGNORECASE,
)
_AUTH_HEADER_RE = re.compile(r"[\"']Authorization[\"']\s*,\s*[\"'](?:Bearer|Basic)\s+[A-Za-z0-9._\-+/=]{8,}", re.IGNORECASE)
_SCRIPT_OPEN_RE = re.compile(r"<script\b[^>]*language\s*=\s*[\"']?ampscript[\"']?[^>]*>", re.IGNORECASE)
_SCRIPT_CLOSE_RE = re.compile(r"</script\s*>", re.IGNORECASE)
_DELIMITER_RE = re.compile(r"%%\[|\]%%|%%=|=%%")


@dataclass
class _Scan:
    """Everything the AMPscript passes share for one source text."""

    source: MaskedSource
    blocks: BlockMap
    delimiter_issues: List[Diagnostic] = field(default_factory=list)

    @property
    def lines(self) -> List[MaskedLine]:
        return self.source.lines


def script_regions(lines: List[str]) -> Tuple[List[str], List[Diagnostic]]:
    """
    Blank out everything that is not AMPscript and report delimiter problems.

    Delimiters themselves are blanked too so they never look like operators.
    """
    whole = "\n".join(lines)
    if not _DELIMITER_RE.search(whole) and not _SCRIPT_OPEN_RE.search(whole):
        return list(lines), []

    issues: List[Diagnostic] = []
    out: List[str] = []
    in_block: Optional[Tuple[int, int]] = None   # (line, column) of an open %%[
    in_script_tag = False

    for number, raw in enumerate(lines, start=1):
        chars = [" "] * len(raw)
        i = 0
        while i < len(raw):
            if in_script_tag:
                close = _SCRIPT_CLOSE_RE.match(raw, i)
                if close:
                    in_script_tag = False
                    i = close.end()
                    continue
                chars[i] = raw[i]
                i += 1
                continue

            if in_block is not None:
                if raw.startswith("]%%", i):
                    in_block = None
                    i += 3
                    continue
                if raw.startswith("%%[", i):
                    issues.append(diag(
                        number, i, "ampscript-delimiters",
                        f"Nested %%[ inside a processing block opened on line {in_block[0]}",
                        DiagnosticCategory.SYNTAX, Severity.ERROR,
                        "Close the previous block with ]%% before opening a new one",
                    ))
                    i += 3
                    continue
                chars[i] = raw[i]
                i += 1
                continue

            if raw.startswith("%%[", i):
                in_block = (number, i)
                i += 3
                continue

            if raw.startswith("%%=", i):
                end = raw.find("=%%", i + 3)
                if end == -1:
                    issues.append(diag(
                        number, i, "ampscript-output-syntax",
                        "Invalid AMPscript output block: %%= is not closed with =%%",
                        DiagnosticCategory.SYNTAX, Severity.ERROR,
                        "Close the output block with =%%",
                    ))
                    for j in range(i + 3, len(raw)):
                        chars[j] = raw[j]
                    break
                for j in range(i + 3, end):
                    chars[j] = raw[j]
                i = end + 3
                continue

            if raw.startswith("]%%", i):
                issues.append(diag(
                    number, i, "ampscript-delimiters",
                    "Unexpected ]%% without a matching %%[",
                    DiagnosticCategory.SYNTAX, Severity.ERROR,
                    "Add %%[ at the beginning of the block",
                ))
                i += 3
                continue

            if raw.startswith("=%%", i):
                issues.append(diag(
                    number, i, "ampscript-output-syntax",
                    "Unexpected =%% without a matching %%=",
                    DiagnosticCategory.SYNTAX, Severity.ERROR,
                    "Open the output block with %%=",
                ))
                i += 3
                continue

            tag = _SCRIPT_OPEN_RE.match(raw, i)
            if tag:
                in_script_tag = True
                i = tag.end()
                continue
            i += 1
        out.append("".join(chars))

    if in_block is not None:
        last = max((n for n, raw in enumerate(lines, start=1) if raw.strip()), default=1)
        issues.append(diag(
            last, None, "ampscript-delimiters",
            f"Processing block opened on line {in_block[0]} is never closed with ]%%",
            DiagnosticCategory.SYNTAX, Severity.ERROR,
            "Add ]%% at the end",
        ))

    return out, issues


def _fix_comparison(line: str, d: Diagnostic) -> Optional[str]:
    masked = mask_lines([line], LEXICAL_SYNTAX[Dialect.AMPSCRIPT]).lines[0].masked
    m = _CONDITION_RE.search(masked)
    if not m:
        return None
    cond_start = m.start("cond")
    cond = masked[cond_start:m.end("cond")]
    positions = [cond_start + e.start() for e in _LONE_EQUALS_RE.finditer(cond)]
    if not positions:
        return None
    chars = list(line)
    for pos in reversed(positions):
        chars[pos] = "=="
    return "".join(chars)


def _fix_delimiters(line: str, d: Diagnostic) -> Optional[str]:
    # An unclosed block is reported without a column; stray and nested
    # delimiters point at the offending token.
    if d.column is None:
        return line.rstrip() + " ]%%"
    if line.startswith("]%%", d.column):
        return "%%[ " + line
    return None


def _fix_output_block(line: str, d: Diagnostic) -> Optional[str]:
    start = d.column or 0
    if not line.startswith("%%=", start):
        return None
    broken = re.compile(r"=%(?!%)|(?<!=)%%(?!\[)").search(line, start + 3)
    if broken:
        return line[: broken.start()] + "=%%" + line[broken.end():]
    return line.rstrip() + "=%%"


@ValidatorRegistry.register
class AMPscriptValidator(ScriptDialectValidator):
    """Heuristic AMPscript checks (syntax, semantics, security, performance)."""

    name = "ampscript_validator"
    dialect = Dialect.AMPSCRIPT
    fixers = {
        "ampscript-comparison": _fix_comparison,
        "ampscript-delimiters": _fix_delimiters,
        "ampscript-output-syntax": _fix_output_block,
    }

    def _scan(self, code: str) -> _Scan:
        region_lines, issues = script_regions(split_lines(code))
        source = mask_lines(region_lines, LEXICAL_SYNTAX[Dialect.AMPSCRIPT])
        # masking ran over the region view, so put the real text back for raw lookups
        for masked_line, raw in zip(source.lines, split_lines(code)):
            masked_line.raw = raw
        blocks = BlockTracker.for_dialect(Dialect.AMPSCRIPT).scan(source.lines)
        return _Scan(source=source, blocks=blocks, delimiter_issues=issues)

    # ------------------------------------------------------------------ syntax

    def validate_syntax(self, code: str) -> List[Diagnostic]:
        scan = self._scan(code)
        found: List[Diagnostic] = list(scan.delimiter_issues)
        found.extend(self.run_line_checks(scan.lines, [self._check_functions, self._check_comparison]))
        found.extend(self.guarded("block structure", lambda: self._check_blocks(scan)))

        for line_no, col in scan.source.unterminated_strings:
            found.append(diag(
                line_no, col, "ampscript-unterminated-string",
                "String literal is not closed",
                DiagnosticCategory.SYNTAX, Severity.ERROR,
                "Close the string with a matching quote",
            ))
        return found

    def _check_functions(self, line: MaskedLine) -> List[Diagnostic]:
        found = []
        for m in _CALL_RE.finditer(line.masked):
            name = m.group(1)
            key = name.lower()
            if key in AMPSCRIPT_FUNCTIONS or key in SFMC_SYSTEM_FUNCTIONS or key in KEYWORDS:
                continue
            # PascalCase names are accepted as custom / newer platform functions
            if re.fullmatch(r"[A-Z][A-Za-z0-9]*", name):
                continue
            found.append(diag(
                line.number, m.start(1), "ampscript-unknown-function",
                f"Unknown AMPscript function: {name}",
                DiagnosticCategory.SYNTAX, Severity.ERROR,
                "Check the function name spelling against the AMPscript function reference",
            ))
        return found

    def _check_comparison(self, line: MaskedLine) -> List[Diagnostic]:
        found = []
        for m in _CONDITION_RE.finditer(line.masked):
            lone = _LONE_EQUALS_RE.search(m.group("cond"))
            if lone:
                found.append(diag(
                    line.number, m.start("cond") + lone.start(), "ampscript-comparison",
                    "Use == for comparison, not = (assignment)",
                    DiagnosticCategory.SYNTAX, Severity.ERROR,
                    "Replace = with == for comparison",
                ))
        return found

    def _check_blocks(self, scan: _Scan) -> List[Diagnostic]:
        found = []
        for frame in scan.blocks.unclosed:
            is_loop = frame.token.upper() == "FOR"
            found.append(diag(
                frame.line, frame.column,
                "ampscript-loop-structure" if is_loop else "ampscript-block-structure",
                f"{frame.token.upper()} without matching {'NEXT' if is_loop else 'ENDIF'}",
                DiagnosticCategory.SYNTAX, Severity.ERROR,
                "Add the missing NEXT statement" if is_loop else "Add the missing ENDIF statement",
            ))
        for line_no, col, token in scan.blocks.unexpected_closers:
            is_loop = token.upper() == "NEXT"
            found.append(diag(
                line_no, col,
                "ampscript-loop-structure" if is_loop else "ampscript-block-structure",
                f"{token.upper()} without matching {'FOR' if is_loop else 'IF'}",
                DiagnosticCategory.SYNTAX, Severity.ERROR,
                "Remove the extra statement or add the opening one",
            ))
        return found

    # --------------------------------------------------------------- semantics

    def validate_semantics(self, code: str) -> List[Diagnostic]:
        scan = self._scan(code)
        found: List[Diagnostic] = []
        found.extend(self.guarded("variable tracking", lambda: self._check_variables(scan)))
        found.extend(self.run_line_checks(scan.lines, [self._check_data_operations, self._check_credentials]))
        found.extend(self.guarded("request parameter flow", lambda: self._check_request_flow(scan)))
        return found

    def _check_variables(self, scan: _Scan) -> List[Diagnostic]:
        declared: Dict[str, Tuple[int, int, str]] = {}
        used: Set[str] = set()
        found: List[Diagnostic] = []

        for line in scan.lines:
            targets: Dict[int, str] = {}
            for m in _VAR_DECL_RE.finditer(line.masked):
                for v in _VAR_RE.finditer(m.group(1)):
                    targets[m.start(1) + v.start()] = v.group(0)
            for regex in (_SET_RE, _FOR_VAR_RE):
                for m in regex.finditer(line.masked):
                    targets[m.start(1)] = m.group(1)

            for m in _VAR_RE.finditer(line.masked):
                key = m.group(0).lower()
                if m.start() in targets:
                    declared.setdefault(key, (line.number, m.start(), m.group(0)))
                    continue
                used.add(key)
                if key not in declared:
                    found.append(diag(
                        line.number, m.start(), "ampscript-undefined-variable",
                        f"Variable {m.group(0)} used before declaration",
                        DiagnosticCategory.SEMANTIC, Severity.WARNING,
                        f"Declare {m.group(0)} with VAR or SET before using it",
                    ))

        for key, (line_no, col, name) in declared.items():
            if key not in used:
                found.append(diag(
                    line_no, col, "ampscript-unused-variable",
                    f"Variable {name} declared but never used",
                    DiagnosticCategory.SEMANTIC, Severity.WARNING,
                    f"Remove unused variable {name} or use it in the code",
                ))
        return found

    def _check_data_operations(self, line: MaskedLine) -> List[Diagnostic]:
        found = []
        for m in _CALL_RE.finditer(line.masked):
            name = m.group(1)
            if name.lower() in {f.lower() for f in DATA_WRITE_FUNCTIONS}:
                args = call_arguments(line.masked, m.end() - 1)
                first = line.masked[args[0][0]:args[0][1]].strip() if args else ""
                if args is not None and not (first.startswith(("\"", "'", "@")) or _CALL_RE.match(first)):
                    found.append(diag(
                        line.number, m.start(1), "ampscript-de-operation",
                        f"{name} should name the target data extension",
                        DiagnosticCategory.SEMANTIC, Severity.WARNING,
                        f"Pass the data extension name as the first argument of {name}",
                    ))
            elif name.lower() in {f.lower() for f in SF_FUNCTIONS}:
                found.append(diag(
                    line.number, m.start(1), "ampscript-sf-operation",
                    f"{name} requires a Salesforce connection and object permissions",
                    DiagnosticCategory.SEMANTIC, Severity.INFO,
                    "Ensure the Marketing Cloud Connect integration user can access the object",
                ))
        return found

    def _check_credentials(self, line: MaskedLine) -> List[Diagnostic]:
        found = []
        for regex in (_CREDENTIAL_RE, _AUTH_HEADER_RE):
            m = regex.search(line.raw)
            if m and line.masked[m.start():m.start() + 1].strip():
                found.append(diag(
                    line.number, m.start(), "ampscript-hardcoded-credential",
                    "Hardcoded credential in AMPscript",
                    DiagnosticCategory.SECURITY, Severity.WARNING,
                    "Store secrets in a protected data extension or key management and load them at runtime",
                ))
                break
        return found

    def _check_request_flow(self, scan: _Scan) -> List[Diagnostic]:
        """Track request parameters into lookups (injection) and output blocks (XSS)."""
        tainted: Set[str] = set()
        found: List[Diagnostic] = []
        data_calls = {f.lower() for f in DATA_FUNCTIONS}
        encoders = {f.lower() for f in ENCODERS}

        code_lines = [line.raw for line in scan.lines]
        for line in scan.lines:
            for m in _SET_RE.finditer(line.masked):
                rhs = line.masked[m.end():]
                if _REQUEST_RE.search(rhs) and not any(e in rhs.lower() for e in encoders):
                    tainted.add(m.group(1).lower())

            for m in _CALL_RE.finditer(line.masked):
                name = m.group(1).lower()
                args = call_arguments(line.masked, m.end() - 1)
                if args is None:
                    continue
                arg_text = line.masked[args[0][0]:args[-1][1]] if args else ""

                if name in data_calls:
                    if _REQUEST_RE.search(arg_text):
                        found.append(diag(
                            line.number, m.start(1), "ampscript-sql-injection",
                            f"Request parameter passed directly into {m.group(1)}",
                            DiagnosticCategory.SECURITY, Severity.ERROR,
                            "Validate and sanitize request parameters before using them in lookups",
                        ))
                    elif any(v.group(0).lower() in tainted for v in _VAR_RE.finditer(arg_text)):
                        found.append(diag(
                            line.number, m.start(1), "ampscript-sql-injection",
                            f"Unvalidated request value flows into {m.group(1)}",
                            DiagnosticCategory.SECURITY, Severity.WARNING,
                            "Validate the value (IsNull/Empty/RegExMatch) before the lookup",
                        ))

                if name in ("v", "output", "outputline"):
                    self._flag_unencoded_output(line, m.start(1), arg_text, tainted, encoders, found)

            # bare inline output: %%=@var=%% or %%=RequestParameter("x")=%%
            raw = code_lines[line.number - 1]
            for block in re.finditer(r"%%=(.*?)=%%", raw):
                inner = block.group(1).strip()
                if _VAR_RE.fullmatch(inner) or _REQUEST_RE.match(inner):
                    self._flag_unencoded_output(line, block.start(), inner, tainted, encoders, found)

        return found

    @staticmethod
    def _flag_unencoded_output(line, column, expr, tainted, encoders, found) -> None:
        if any(e + "(" in expr.lower().replace(" ", "") for e in encoders):
            return
        direct = _REQUEST_RE.search(expr)
        via_var = any(v.group(0).lower() in tainted for v in _VAR_RE.finditer(expr))
        if direct or via_var:
            found.append(diag(
                line.number, column, "ampscript-xss-prevention",
                "Request parameter rendered without encoding",
                DiagnosticCategory.SECURITY, Severity.WARNING,
                "Wrap the value in HTMLEncode() or URLEncode() before output",
            ))

    # ------------------------------------------------------------- performance

    def analyze_performance(self, code: str) -> List[Diagnostic]:
        scan = self._scan(code)
        found: List[Diagnostic] = []
        found.extend(self.run_line_checks(scan.lines, [
            lambda line: self._check_loop_calls(line, scan.blocks),
            self._check_lookuprows_filter,
            self._check_concat,
        ]))
        found.extend(self.guarded("batch lookup", lambda: self._check_repeated_lookups(scan)))
        return found

    def _check_loop_calls(self, line: MaskedLine, blocks: BlockMap) -> List[Diagnostic]:
        found = []
        expensive = {f.lower() for f in DATA_FUNCTIONS + API_FUNCTIONS}
        for m in _CALL_RE.finditer(line.masked):
            if m.group(1).lower() not in expensive:
                continue
            depth = blocks.loop_depth_at(line.number, m.start(1))
            if depth < 1:
                continue
            found.append(diag(
                line.number, m.start(1), "ampscript-lookup-in-loop",
                f"{m.group(1)} called inside {'nested loops' if depth >= 2 else 'a FOR loop'}",
                DiagnosticCategory.PERFORMANCE, Severity.ERROR if depth >= 2 else Severity.WARNING,
                "Retrieve the rows once with LookupRows() before the loop and read them with Field()",
            ))
        return found

    def _check_lookuprows_filter(self, line: MaskedLine) -> List[Diagnostic]:
        found = []
        for m in re.finditer(r"\b(LookupRows|LookupOrderedRows)(?:CS)?\s*\(", line.masked, re.IGNORECASE):
            args = call_arguments(line.masked, m.end() - 1)
            minimum = 3 if m.group(1).lower() == "lookuprows" else 5
            if args is not None and len(args) < minimum:
                found.append(diag(
                    line.number, m.start(1), "ampscript-lookuprows-filtering",
                    f"{m.group(1)} without filter criteria can return large row sets",
                    DiagnosticCategory.PERFORMANCE, Severity.WARNING,
                    "Add a filter column and value to restrict the rows returned",
                ))
        return found

    def _check_concat(self, line: MaskedLine) -> List[Diagnostic]:
        count = len(re.findall(r"\bConcat\s*\(", line.masked, re.IGNORECASE))
        if count > 3:
            return [diag(
                line.number, None, "ampscript-concat-performance",
                f"{count} Concat calls on one line",
                DiagnosticCategory.PERFORMANCE, Severity.WARNING,
                "Combine the pieces with a single Concat or Format call",
            )]
        return []

    def _lookup_targets(self, scan: _Scan) -> Dict[str, List[Tuple[int, int]]]:
        targets: Dict[str, List[Tuple[int, int]]] = defaultdict(list)
        for line in scan.lines:
            for m in re.finditer(r"\bLookup\s*\(", line.masked, re.IGNORECASE):
                args = call_arguments(line.masked, m.end() - 1)
                if not args:
                    continue
                first = line.raw[args[0][0]:args[0][1]].strip().strip("\"'")
                if first:
                    targets[first.lower()].append((line.number, m.start()))
        return targets

    def _check_repeated_lookups(self, scan: _Scan) -> List[Diagnostic]:
        found = []
        for de_name, sites in self._lookup_targets(scan).items():
            if len(sites) < 2:
                continue
            line_no, col = sites[1]
            found.append(diag(
                line_no, col, "ampscript-batch-lookup",
                f"{len(sites)} Lookup calls against '{de_name}' could be one LookupRows call",
                DiagnosticCategory.PERFORMANCE, Severity.INFO,
                "Fetch the row once with LookupRows() and read each column with Field()",
            ))
        return found

    # ------------------------------------------------------------ suggestions

    def get_optimization_suggestions(self, code: str) -> List[Suggestion]:
        scan = self._scan(code)
        suggestions: List[Suggestion] = []
        for line in scan.lines:
            if len(re.findall(r"\bConcat\s*\(", line.masked, re.IGNORECASE)) > 2:
                suggestions.append(Suggestion(
                    id=f"ampscript-format:{line.number}",
                    kind=SuggestionKind.PERFORMANCE,
                    title="Use Format instead of chained Concat",
                    message="Format() builds complex strings in one call",
                    impact=Impact.MEDIUM,
                    line=line.number,
                ))
            if re.search(r"\bHTTP(?:Get|Post2?)\s*\(", line.masked, re.IGNORECASE):
                suggestions.append(Suggestion(
                    id=f"ampscript-http-errors:{line.number}",
                    kind=SuggestionKind.MAINTAINABILITY,
                    title="Handle HTTP failures",
                    message="Check the status of HTTP calls and provide a fallback when they fail",
                    impact=Impact.HIGH,
                    line=line.number,
                ))
        for de_name, sites in self._lookup_targets(scan).items():
            if len(sites) >= 2:
                suggestions.append(Suggestion(
                    id=f"ampscript-batch-lookup:{de_name}",
                    kind=SuggestionKind.PERFORMANCE,
                    title="Batch repeated lookups",
                    message=f"Replace {len(sites)} Lookup calls on '{de_name}' with one LookupRows call",
                    impact=Impact.MEDIUM,
                    line=sites[0][0],
                ))
        return suggestions
