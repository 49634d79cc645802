"""
SQL validator for Marketing Cloud query activities (a T-SQL subset).

Checks run per statement: the masked text is split on ";" and on GO batch
separators, and match offsets are converted back to (line, column).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

from ...models.linting import Diagnostic, DiagnosticCategory, Dialect, Impact, Severity, Suggestion, SuggestionKind
from . import ScriptDialectValidator, ValidatorRegistry, diag
from .text_scan import MaskedSource, call_arguments, mask_source, offset_to_position, unbalanced_delimiters

logger = logging.getLogger(__name__)


SQL_FUNCTIONS = frozenset("""
    GETDATE GETUTCDATE SYSDATETIME SYSUTCDATETIME DATEADD DATEDIFF DATEDIFF_BIG DATEPART DATENAME
    DATEFROMPARTS DATETIMEFROMPARTS EOMONTH YEAR MONTH DAY ISDATE SWITCHOFFSET TODATETIMEOFFSET
    CONVERT CAST TRY_CAST TRY_CONVERT PARSE TRY_PARSE FORMAT
    LEN LEFT RIGHT SUBSTRING CHARINDEX PATINDEX REPLACE STUFF REVERSE REPLICATE SPACE STR
    UPPER LOWER LTRIM RTRIM TRIM CONCAT CONCAT_WS CHAR NCHAR ASCII UNICODE QUOTENAME SOUNDEX DIFFERENCE
    COUNT COUNT_BIG SUM AVG MIN MAX STDEV VAR STRING_AGG
    ISNULL COALESCE NULLIF IIF CHOOSE ISNUMERIC
    ROUND CEILING FLOOR ABS POWER SQRT SQUARE LOG EXP SIGN PI RAND
    ROW_NUMBER RANK DENSE_RANK NTILE LAG LEAD FIRST_VALUE LAST_VALUE
    NEWID CHECKSUM HASHBYTES JSON_VALUE JSON_QUERY ISJSON
    VARCHAR NVARCHAR CHAR NCHAR DECIMAL NUMERIC DATETIME2 VARBINARY FLOAT
""".split())

# Words that may legitimately be followed by "("
SQL_KEYWORDS = frozenset("""
    SELECT FROM WHERE IN EXISTS VALUES AS ON OVER AND OR NOT INTO JOIN WHEN THEN ELSE CASE
    EXEC EXECUTE WITH UNION ALL ANY SOME BY USING TOP APPLY
""".split())

AGGREGATES = ("COUNT", "SUM", "AVG", "MIN", "MAX", "STDEV", "VAR", "STRING_AGG", "COUNT_BIG")

SYSTEM_TABLES = (
    "_Subscribers", "_ListSubscribers", "_EnterpriseAttribute", "_Bounce", "_Click", "_Open", "_Sent",
    "_Unsubscribe", "_Complaint", "_Job", "_Journey", "_JourneyActivity", "_SurveyResponse",
    "_ForwardedEmail", "_FTAF", "_BusinessUnitUnsubscribes", "_SMSMessageTracking",
    "_SMSSubscriptionLog", "_MobileAddress", "_MobileSubscription", "_PushAddress", "_Undeliverablesms",
)

SENSITIVE_COLUMNS = re.compile(
    r"\b\w*(?:password|passwd|ssn|social_?security|credit_?card|card_?number|cvv|secret|api_?key|token)\w*\b",
    re.IGNORECASE,
)

_CALL_RE = re.compile(r"\b([A-Za-z_][\w]*)\s*\(")
_SELECT_RE = re.compile(r"\bSELECT\b", re.IGNORECASE)
_SELECT_STAR_RE = re.compile(r"\bSELECT\s+(?:DISTINCT\s+)?(?:TOP\s*\(?\s*\d+\s*\)?\s+(?:PERCENT\s+)?)?\*", re.IGNORECASE)
_TABLE_REF_RE = re.compile(
    r"\b(?:FROM|JOIN|UPDATE|INTO)\s+(\[?[\w.]+\]?(?:\.\[?[\w]+\]?)*)(?:\s+(?:AS\s+)?(\[?[A-Za-z_]\w*\]?))?",
    re.IGNORECASE,
)
_SUBQUERY_ALIAS_RE = re.compile(r"\)\s*(?:AS\s+)?([A-Za-z_]\w*)")
_QUALIFIED_RE = re.compile(r"(?<![\w.\]])\[?([A-Za-z_]\w*)\]?\.(?=\[?[A-Za-z_*])")
_CLAUSE_END_RE = re.compile(r"\b(?:WHERE|GROUP\s+BY|ORDER\s+BY|HAVING|UNION|INNER|LEFT|RIGHT|FULL|CROSS|OUTER|JOIN)\b", re.IGNORECASE)

ALIAS_STOPWORDS = frozenset("""
    WHERE ON INNER LEFT RIGHT FULL OUTER CROSS JOIN GROUP ORDER HAVING UNION SET VALUES SELECT WITH
    NOLOCK OPTION AND OR EXCEPT INTERSECT
""".split())


@dataclass
class _Statement:
    start: int
    text: str


def _statements(masked_text: str) -> List[_Statement]:
    statements: List[_Statement] = []
    start = 0
    for m in re.finditer(r";|^\s*GO\s*$", masked_text, re.IGNORECASE | re.MULTILINE):
        if masked_text[start:m.start()].strip():
            statements.append(_Statement(start, masked_text[start:m.start()]))
        start = m.end()
    if masked_text[start:].strip():
        statements.append(_Statement(start, masked_text[start:]))
    return statements


def _fix_double_equals(line: str, d: Diagnostic) -> Optional[str]:
    return re.sub(r"(?<![<>!=])==(?!=)", "=", line)


@ValidatorRegistry.register
class SQLValidator(ScriptDialectValidator):
    """Heuristic checks for query-activity SQL."""

    name = "sql_validator"
    dialect = Dialect.SQL
    fixers = {"sql-double-equals": _fix_double_equals}

    def _at(self, source_text: str, stmt: _Statement, local: int) -> Tuple[int, int]:
        return offset_to_position(source_text, stmt.start + local)

    def _emit(
        self, text: str, stmt: _Statement, local: int, rule: str, message: str,
        category: DiagnosticCategory, severity: Severity, fix: Optional[str] = None,
    ) -> Diagnostic:
        line, column = self._at(text, stmt, local)
        return diag(line, column, rule, message, category, severity, fix)

    def _parse(self, code: str) -> Tuple[MaskedSource, str, List[_Statement]]:
        source = mask_source(code, Dialect.SQL)
        text = source.text
        return source, text, _statements(text)

    # ------------------------------------------------------------------ syntax

    def validate_syntax(self, code: str) -> List[Diagnostic]:
        source, text, statements = self._parse(code)
        found: List[Diagnostic] = []

        for issue in unbalanced_delimiters(source.lines, "()"):
            found.append(diag(
                issue.line, issue.column, "sql-parentheses-mismatch",
                "Unclosed parenthesis" if issue.kind == "unclosed" else "Unexpected closing parenthesis",
                DiagnosticCategory.SYNTAX, Severity.ERROR, "Balance the parentheses",
            ))
        for line_no, col in source.unterminated_strings:
            found.append(diag(
                line_no, col, "sql-quote-mismatch", "String literal is not closed",
                DiagnosticCategory.SYNTAX, Severity.ERROR, "Close the string with a single quote",
            ))

        found.extend(self.run_line_checks(source.lines, [self._check_functions, self._check_double_equals]))
        for stmt in statements:
            found.extend(self.guarded("statement structure", lambda stmt=stmt: self._check_statement(text, stmt)))
        return found

    def _check_functions(self, line) -> List[Diagnostic]:
        found = []
        for m in _CALL_RE.finditer(line.masked):
            name = m.group(1).upper()
            if name in SQL_FUNCTIONS or name in SQL_KEYWORDS:
                continue
            before = line.masked[: m.start()].rstrip().upper()
            # INSERT INTO Target (col, ...) and table-valued references
            if re.search(r"\b(?:INTO|FROM|JOIN|UPDATE|TABLE)\s*$", before):
                continue
            if before.endswith("."):
                continue
            found.append(diag(
                line.number, m.start(1), "sql-unknown-function",
                f"Unknown or unsupported SQL function: {m.group(1)}",
                DiagnosticCategory.SYNTAX, Severity.ERROR,
                "Query activities support a subset of T-SQL functions; check the name",
            ))
        return found

    def _check_double_equals(self, line) -> List[Diagnostic]:
        m = re.search(r"(?<![<>!=])==(?!=)", line.masked)
        if m:
            return [diag(
                line.number, m.start(), "sql-double-equals", "SQL compares with =, not ==",
                DiagnosticCategory.SYNTAX, Severity.ERROR, "Replace == with =",
            )]
        return []

    def _check_statement(self, text: str, stmt: _Statement) -> List[Diagnostic]:
        found: List[Diagnostic] = []
        s = stmt.text
        upper = s.upper()

        select = _SELECT_RE.search(s)
        if select and not re.search(r"\bFROM\b", upper) and "(" not in s:
            found.append(self._emit(
                text, stmt, select.start(), "sql-missing-from", "SELECT statement missing FROM clause",
                DiagnosticCategory.SYNTAX, Severity.ERROR, "Add a FROM clause naming the source data extension",
            ))

        for m in re.finditer(r"\b(CROSS\s+|OUTER\s+)?(JOIN|APPLY)\b", s, re.IGNORECASE):
            if m.group(1) or m.group(2).upper() == "APPLY":
                continue
            rest = s[m.end():]
            nxt = _CLAUSE_END_RE.search(rest)
            segment = rest[: nxt.start()] if nxt else rest
            if not re.search(r"\b(?:ON|USING)\b", segment, re.IGNORECASE):
                found.append(self._emit(
                    text, stmt, m.start(), "sql-join-on", "JOIN without an ON condition",
                    DiagnosticCategory.SYNTAX, Severity.ERROR, "Add ON <left>.<key> = <right>.<key>",
                ))

        having = re.search(r"\bHAVING\b", s, re.IGNORECASE)
        if having and not re.search(r"\bGROUP\s+BY\b", s, re.IGNORECASE):
            found.append(self._emit(
                text, stmt, having.start(), "sql-having-group-by", "HAVING used without GROUP BY",
                DiagnosticCategory.SYNTAX, Severity.ERROR, "Add GROUP BY or move the condition to WHERE",
            ))

        star = _SELECT_STAR_RE.search(s)
        if star:
            found.append(self._emit(
                text, stmt, star.start(), "sql-select-star", "Avoid SELECT *; list the columns you need",
                DiagnosticCategory.PERFORMANCE, Severity.WARNING, "Specify the needed columns explicitly",
            ))

        if select and not re.search(r"\b(?:TOP|WHERE)\b", upper) and not re.search(r"^\s*INSERT\b", upper):
            found.append(self._emit(
                text, stmt, select.start(), "sql-missing-top",
                "Unfiltered SELECT; consider TOP to limit the result size",
                DiagnosticCategory.PERFORMANCE, Severity.INFO, "Add TOP n or a WHERE clause",
            ))
        return found

    # --------------------------------------------------------------- semantics

    def validate_semantics(self, code: str) -> List[Diagnostic]:
        source, text, statements = self._parse(code)
        raw_text = "\n".join(line.raw for line in source.lines)
        found: List[Diagnostic] = []
        for stmt in statements:
            raw_stmt = raw_text[stmt.start: stmt.start + len(stmt.text)]
            found.extend(self.guarded("aliases", lambda stmt=stmt: self._check_aliases(text, stmt)))
            found.extend(self.guarded("aggregates", lambda stmt=stmt: self._check_aggregates(text, stmt)))
            found.extend(self.guarded("conversion", lambda stmt=stmt, raw=raw_stmt: self._check_conversion(text, stmt, raw)))
            found.extend(self.guarded("security", lambda stmt=stmt, raw=raw_stmt: self._check_security(text, stmt, raw)))
        return found

    def _check_aliases(self, text: str, stmt: _Statement) -> List[Diagnostic]:
        s = stmt.text
        if not re.search(r"\b(?:FROM|UPDATE)\b", s, re.IGNORECASE):
            return []
        known: Set[str] = set()
        for m in _TABLE_REF_RE.finditer(s):
            for part in re.split(r"\.", m.group(1)):
                known.add(part.strip("[]").lower())
            if m.group(2) and m.group(2).strip("[]").upper() not in ALIAS_STOPWORDS:
                known.add(m.group(2).strip("[]").lower())
        for m in _SUBQUERY_ALIAS_RE.finditer(s):
            known.add(m.group(1).lower())
        for m in re.finditer(r"\b([A-Za-z_]\w*)\s+AS\s*\(", s, re.IGNORECASE):  # CTE names
            known.add(m.group(1).lower())

        found = []
        reported: Set[str] = set()
        for m in _QUALIFIED_RE.finditer(s):
            alias = m.group(1).lower()
            if alias in known or alias in reported:
                continue
            reported.add(alias)
            found.append(self._emit(
                text, stmt, m.start(1), "sql-unknown-table-alias",
                f"'{m.group(1)}' is not a table or alias defined in this statement",
                DiagnosticCategory.SEMANTIC, Severity.WARNING, "Define the alias in FROM/JOIN or fix the prefix",
            ))
        return found

    def _select_items(self, s: str) -> Optional[Tuple[int, List[Tuple[int, str]]]]:
        m = re.search(r"\bSELECT\b(?:\s+DISTINCT)?(?:\s+TOP\s*\(?\s*\d+\s*\)?(?:\s+PERCENT)?)?", s, re.IGNORECASE)
        if not m:
            return None
        depth = 0
        start = m.end()
        items: List[Tuple[int, str]] = []
        i = start
        while i < len(s):
            ch = s[i]
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
            elif depth == 0 and ch == ",":
                items.append((start, s[start:i]))
                start = i + 1
            elif depth == 0 and re.match(r"\bFROM\b", s[i:i + 5], re.IGNORECASE) and (i == 0 or not s[i - 1].isalnum()):
                break
            i += 1
        items.append((start, s[start:i]))
        return m.start(), items

    def _check_aggregates(self, text: str, stmt: _Statement) -> List[Diagnostic]:
        s = stmt.text
        if re.search(r"\bGROUP\s+BY\b", s, re.IGNORECASE):
            return []
        parsed = self._select_items(s)
        if not parsed:
            return []
        select_at, items = parsed
        agg_re = re.compile(r"\b(?:" + "|".join(AGGREGATES) + r")\s*\(", re.IGNORECASE)
        has_agg = any(agg_re.search(item) for _, item in items)
        plain = [
            (pos, item) for pos, item in items
            if not agg_re.search(item)
            and not re.search(r"\bOVER\s*\(", item, re.IGNORECASE)
            and re.search(r"[A-Za-z_]", re.sub(r"\bAS\s+\w+|'\s*'", "", item, flags=re.IGNORECASE))
        ]
        if has_agg and plain:
            return [self._emit(
                text, stmt, select_at, "sql-aggregate-group-by",
                "Aggregate mixed with non-aggregated columns without GROUP BY",
                DiagnosticCategory.SEMANTIC, Severity.WARNING, "Add the plain columns to GROUP BY",
            )]
        return []

    def _check_conversion(self, text: str, stmt: _Statement, raw: str) -> List[Diagnostic]:
        found = []
        for m in re.finditer(r"\b([\w.\[\]]*(?:Id|ID|Count|Number|Age|Amount))\s*(?:=|<>|>|<)\s*'\d+'", raw):
            found.append(self._emit(
                text, stmt, m.start(), "sql-implicit-conversion",
                f"Numeric column {m.group(1)} compared with a string literal",
                DiagnosticCategory.SEMANTIC, Severity.INFO, "Compare with a number or CAST explicitly",
            ))
        return found

    def _check_security(self, text: str, stmt: _Statement, raw: str) -> List[Diagnostic]:
        found = []
        s = stmt.text

        dynamic = re.search(r"\b(?:EXEC(?:UTE)?\s*\(|sp_executesql\b)", s, re.IGNORECASE)
        if dynamic and "+" in s[dynamic.start():]:
            found.append(self._emit(
                text, stmt, dynamic.start(), "sql-dynamic-execution",
                "Dynamic SQL built by string concatenation",
                DiagnosticCategory.SECURITY, Severity.ERROR, "Avoid dynamic SQL; use static queries",
            ))

        for m in re.finditer(r"'[^']*\b(?:SELECT|INSERT|UPDATE|DELETE|WHERE)\b[^']*'\s*\+|\+\s*'[^']*\b(?:WHERE|AND|OR)\b", raw, re.IGNORECASE):
            found.append(self._emit(
                text, stmt, m.start(), "sql-injection-risk",
                "Query text assembled by concatenation; values may be injected",
                DiagnosticCategory.SECURITY, Severity.ERROR, "Use parameters instead of concatenating values",
            ))
            break

        parsed = self._select_items(s)
        if parsed:
            for pos, item in parsed[1]:
                m = SENSITIVE_COLUMNS.search(item)
                if m:
                    found.append(self._emit(
                        text, stmt, pos + m.start(), "sql-sensitive-data",
                        f"Selecting sensitive column {m.group(0)}",
                        DiagnosticCategory.SECURITY, Severity.WARNING, "Mask or exclude sensitive data",
                    ))

        cred = re.search(r"\b\w*(?:password|passwd|secret|api_?key)\w*\s*=\s*'[^']{3,}'", raw, re.IGNORECASE)
        if cred:
            found.append(self._emit(
                text, stmt, cred.start(), "sql-hardcoded-credential", "Credential literal in query",
                DiagnosticCategory.SECURITY, Severity.WARNING, "Do not embed secrets in queries",
            ))
        return found

    # ------------------------------------------------------------- performance

    def analyze_performance(self, code: str) -> List[Diagnostic]:
        source, text, statements = self._parse(code)
        raw_text = "\n".join(line.raw for line in source.lines)
        found: List[Diagnostic] = []
        for stmt in statements:
            raw_stmt = raw_text[stmt.start: stmt.start + len(stmt.text)]
            found.extend(self.guarded("performance", lambda stmt=stmt, raw=raw_stmt: self._check_performance(text, stmt, raw)))
        return found

    def _check_performance(self, text: str, stmt: _Statement, raw: str) -> List[Diagnostic]:
        found: List[Diagnostic] = []
        s = stmt.text
        upper = s.upper()
        has_where = re.search(r"\bWHERE\b", upper) is not None

        for m in re.finditer(r"\bLIKE\s+'%", raw, re.IGNORECASE):
            if s[m.start():m.start() + 4].upper() == "LIKE":
                found.append(self._emit(
                    text, stmt, m.start(), "sql-leading-wildcard",
                    "Leading wildcard in LIKE prevents index use",
                    DiagnosticCategory.PERFORMANCE, Severity.WARNING, "Avoid a leading % when possible",
                ))

        dml = re.match(r"\s*(UPDATE|DELETE)\b", s, re.IGNORECASE)
        if dml and not has_where:
            found.append(self._emit(
                text, stmt, dml.start(1), "sql-missing-where",
                f"{dml.group(1).upper()} without WHERE affects every row",
                DiagnosticCategory.PERFORMANCE, Severity.ERROR, "Add a WHERE clause",
            ))

        where = re.search(r"\bWHERE\b", s, re.IGNORECASE)
        if where:
            clause_end = re.search(r"\b(?:GROUP\s+BY|ORDER\s+BY|HAVING|UNION)\b", s[where.end():], re.IGNORECASE)
            clause = s[where.end(): where.end() + clause_end.start()] if clause_end else s[where.end():]
            fn = re.search(
                r"\b(UPPER|LOWER|LTRIM|RTRIM|TRIM|CONVERT|CAST|YEAR|MONTH|DAY|DATEPART|SUBSTRING|LEFT|RIGHT|ISNULL|COALESCE)"
                r"\s*\(\s*\[?[A-Za-z_][\w.\[\]]*\]?\s*[,)]",
                clause, re.IGNORECASE,
            )
            if fn:
                found.append(self._emit(
                    text, stmt, where.end() + fn.start(), "sql-function-in-where",
                    f"{fn.group(1).upper()}() on a column in WHERE prevents index use",
                    DiagnosticCategory.PERFORMANCE, Severity.WARNING, "Compare the raw column against a computed value",
                ))

        cross = re.search(r"\bCROSS\s+JOIN\b", s, re.IGNORECASE)
        comma_from = re.search(r"\bFROM\s+[\w.\[\]]+(?:\s+(?:AS\s+)?\w+)?\s*,\s*[\w.\[\]]+", s, re.IGNORECASE)
        if cross or (comma_from and not has_where):
            at = (cross or comma_from).start()
            found.append(self._emit(
                text, stmt, at, "sql-cartesian-product", "Query produces a cartesian product",
                DiagnosticCategory.PERFORMANCE, Severity.WARNING, "Join the tables with an explicit ON condition",
            ))

        if not has_where and not re.search(r"\bTOP\b", upper):
            for table in SYSTEM_TABLES:
                m = re.search(r"(?<![\w])" + re.escape(table) + r"\b", s, re.IGNORECASE)
                if m:
                    found.append(self._emit(
                        text, stmt, m.start(), "sfmc-system-table-filtering",
                        f"System data view {table} queried without WHERE or TOP",
                        DiagnosticCategory.PERFORMANCE, Severity.WARNING,
                        f"Filter {table}, for example on EventDate > DATEADD(DAY, -30, GETDATE())",
                    ))

        not_in = re.search(r"\bNOT\s+IN\s*\(\s*SELECT\b", s, re.IGNORECASE)
        if not_in:
            found.append(self._emit(
                text, stmt, not_in.start(), "sql-not-in-subquery", "NOT IN with a subquery scales poorly",
                DiagnosticCategory.PERFORMANCE, Severity.WARNING, "Use NOT EXISTS or a LEFT JOIN ... IS NULL",
            ))
        return found

    # ------------------------------------------------------------ suggestions

    def get_optimization_suggestions(self, code: str) -> List[Suggestion]:
        source, text, statements = self._parse(code)
        suggestions: List[Suggestion] = []
        for stmt in statements:
            s = stmt.text
            line, _ = self._at(text, stmt, len(s) - len(s.lstrip()))
            if _SELECT_STAR_RE.search(s):
                suggestions.append(Suggestion(
                    id=f"sql-columns:{line}", kind=SuggestionKind.PERFORMANCE, title="Select explicit columns",
                    message="Listing only the needed columns reduces data moved into the target data extension",
                    impact=Impact.MEDIUM, line=line,
                ))
            if re.search(r"\bNOT\s+IN\s*\(\s*SELECT\b", s, re.IGNORECASE):
                suggestions.append(Suggestion(
                    id=f"sql-not-exists:{line}", kind=SuggestionKind.PERFORMANCE, title="Prefer NOT EXISTS",
                    message="NOT EXISTS short-circuits and handles NULLs correctly",
                    impact=Impact.MEDIUM, line=line,
                ))
            uses_event_view = any(re.search(re.escape(t) + r"\b", s, re.IGNORECASE) for t in ("_Sent", "_Open", "_Click", "_Bounce"))
            if uses_event_view and "DATEADD" not in s.upper():
                suggestions.append(Suggestion(
                    id=f"sql-date-window:{line}", kind=SuggestionKind.PERFORMANCE, title="Bound event data views by date",
                    message="Filter tracking views with EventDate > DATEADD(DAY, -n, GETDATE())",
                    impact=Impact.HIGH, line=line,
                ))
            where = re.search(r"\bWHERE\b(.*)", s, re.IGNORECASE | re.DOTALL)
            if where and re.search(r"\bOR\b", where.group(1), re.IGNORECASE):
                suggestions.append(Suggestion(
                    id=f"sql-or:{line}", kind=SuggestionKind.PERFORMANCE, title="Review OR conditions",
                    message="OR across different columns can prevent index use; consider IN or UNION",
                    impact=Impact.LOW, line=line,
                ))
        return suggestions
