"""
Performance metrics calculator.

Complexity, memory and execution-time estimates for a source unit, computed
from per-dialect token tables (DialectProfile). The figures are heuristics
meant for relative comparison in the editor, not measurements.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Pattern, Sequence, Tuple

from ..models.linting import Dialect, Impact
from ..models.metrics import (
    ComplexityMetrics,
    MemoryMetrics,
    PerformanceMetrics,
    Recommendation,
    RecommendationKind,
)
from .validators.ampscript_validator import script_regions
from .validators.ssjs_validator import EXPENSIVE_CALLS, script_view
from .validators.text_scan import (
    LEXICAL_SYNTAX,
    BlockMap,
    BlockTracker,
    LexicalSyntax,
    MaskedLine,
    mask_lines,
    mask_source,
    split_lines,
)

logger = logging.getLogger(__name__)

# Execution-time coefficients
K_CYCLOMATIC = 0.1
K_NESTING = 0.15
K_LOOP = 0.3
K_API = 0.5

# Memory weights (bytes)
BASE_MEMORY = 1024
BYTES_PER_VARIABLE = 64
BYTES_PER_CONCATENATION = 256
BYTES_PER_ARRAY_OPERATION = 512

# Recommendation thresholds (strictly greater than)
MAX_CYCLOMATIC = 10
MAX_NESTING = 4
MAX_CONCATENATIONS = 10
MAX_MEMORY_BYTES = 10 * 1024
MAX_API_CALLS = 5
MAX_LOOP_COMPLEXITY = 5


def _p(pattern: str, ignore_case: bool = False) -> Pattern[str]:
    return re.compile(pattern, re.IGNORECASE if ignore_case else 0)


@dataclass
class DialectProfile:
    """Token tables and cost constants for one dialect."""

    decisions: List[Tuple[Pattern[str], int]]
    logical_operators: List[Pattern[str]]
    api_calls: List[Pattern[str]]
    variables: List[Pattern[str]]
    concatenations: List[Pattern[str]]
    array_operations: List[Pattern[str]]
    memory_multiplier: float
    base_ms_per_line: float
    api_overhead_ms: float
    # Produces the lines analysed for structure (e.g. only script regions)
    view: Optional[Callable[[List[str]], List[str]]] = None
    lexical: LexicalSyntax = field(default_factory=LexicalSyntax)


def _ampscript_view(lines: List[str]) -> List[str]:
    return script_regions(lines)[0]


_JS_DECISIONS = [
    (_p(r"\bif\s*\("), 1),
    (_p(r"\bfor\s*\("), 1),
    (_p(r"\bwhile\s*\("), 1),
    (_p(r"\bcase\b"), 1),
    (_p(r"\bcatch\s*\("), 1),
    (_p(r"(?<!\?)\?(?![.?:])"), 1),
]
_JS_LOGICAL = [_p(r"&&|\|\|")]
_JS_VARIABLES = [_p(r"\b(?:var|let|const)\s+[A-Za-z_$]")]
_JS_CONCAT = [_p(r"[\"'`]\s*\+(?!\+)|(?<!\+)\+\s*[\"'`]|\+=\s*[\"'`]")]
_JS_ARRAYS = [
    _p(r"\.(?:push|pop|shift|unshift|splice|slice|concat|map|filter|reduce|forEach|sort|join|indexOf)\s*\("),
    _p(r"\bnew\s+Array\s*\("),
]

PROFILES: Dict[Dialect, DialectProfile] = {
    Dialect.AMPSCRIPT: DialectProfile(
        decisions=[
            (_p(r"\bIF\b", True), 1),
            (_p(r"\bELSEIF\b", True), 1),
            (_p(r"\bFOR\b", True), 1),
            (_p(r"\bIIF\s*\(", True), 1),
        ],
        logical_operators=[_p(r"\b(?:AND|OR)\b", True)],
        api_calls=[
            _p(r"\b(?:Lookup|LookupRows|LookupRowsCS|LookupOrderedRows|LookupOrderedRowsCS|"
               r"InsertData|InsertDE|UpdateData|UpdateDE|UpsertData|UpsertDE|DeleteData|DeleteDE|"
               r"HTTPGet|HTTPPost|HTTPPost2|HTTPPut|HTTPDelete|InvokeCreate|InvokeRetrieve|InvokeUpdate|"
               r"CreateSalesforceObject|UpdateSingleSalesforceObject|RetrieveSalesforceObjects|"
               r"ContentBlockByKey|ContentBlockByName|ContentBlockById)\s*\(", True),
        ],
        variables=[_p(r"\bSET\s+@\w+", True), _p(r"(?:\bVAR\b|,)\s*@\w+(?=\s*(?:,|$|\]|\n))", True)],
        concatenations=[_p(r"\bConcat\s*\(", True)],
        array_operations=[
            _p(r"\b(?:Row|Field|RowCount|BuildRowsetFromString|BuildRowsetFromJSON|BuildRowsetFromXML)\s*\(", True),
        ],
        memory_multiplier=1.5,
        base_ms_per_line=2.0,
        api_overhead_ms=150.0,
        view=_ampscript_view,
        lexical=LEXICAL_SYNTAX[Dialect.AMPSCRIPT],
    ),
    Dialect.SSJS: DialectProfile(
        decisions=_JS_DECISIONS,
        logical_operators=_JS_LOGICAL,
        api_calls=list(EXPENSIVE_CALLS),
        variables=_JS_VARIABLES,
        concatenations=_JS_CONCAT,
        array_operations=_JS_ARRAYS,
        memory_multiplier=1.3,
        base_ms_per_line=1.0,
        api_overhead_ms=100.0,
        view=script_view,
        lexical=LEXICAL_SYNTAX[Dialect.SSJS],
    ),
    Dialect.JAVASCRIPT: DialectProfile(
        decisions=_JS_DECISIONS,
        logical_operators=_JS_LOGICAL,
        api_calls=[_p(r"\bfetch\s*\("), _p(r"\bnew\s+XMLHttpRequest\b"), _p(r"\$\.(?:ajax|get|post)\s*\("), _p(r"\baxios\.\w+\s*\(")],
        variables=_JS_VARIABLES,
        concatenations=_JS_CONCAT,
        array_operations=_JS_ARRAYS,
        memory_multiplier=1.2,
        base_ms_per_line=0.5,
        api_overhead_ms=80.0,
        lexical=LEXICAL_SYNTAX[Dialect.JAVASCRIPT],
    ),
    Dialect.SQL: DialectProfile(
        decisions=[
            (_p(r"\bWHEN\b", True), 1),
            (_p(r"\bIF\b", True), 1),
            (_p(r"\bWHILE\b", True), 1),
            (_p(r"\bIIF\s*\(", True), 1),
        ],
        logical_operators=[_p(r"\b(?:AND|OR)\b", True)],
        api_calls=[_p(r"\b(?:SELECT|INSERT|UPDATE|DELETE|MERGE)\b", True)],
        variables=[_p(r"\bDECLARE\s+@\w+", True)],
        concatenations=[_p(r"'\s*\+|\+\s*'", True), _p(r"\bCONCAT\s*\(", True)],
        array_operations=[_p(r"\b(?:GROUP\s+BY|ORDER\s+BY|UNION|DISTINCT|PARTITION\s+BY)\b", True)],
        memory_multiplier=1.0,
        base_ms_per_line=5.0,
        api_overhead_ms=50.0,
        lexical=LEXICAL_SYNTAX[Dialect.SQL],
    ),
    Dialect.CSS: DialectProfile(
        decisions=[(_p(r"@media\b"), 1), (_p(r"@supports\b"), 1)],
        logical_operators=[_p(r"\band\b")],
        api_calls=[_p(r"@import\b"), _p(r"\burl\s*\(")],
        variables=[_p(r"--[\w-]+\s*:")],
        concatenations=[],
        array_operations=[],
        memory_multiplier=0.6,
        base_ms_per_line=0.2,
        api_overhead_ms=0.0,
        lexical=LEXICAL_SYNTAX[Dialect.CSS],
    ),
    Dialect.HTML: DialectProfile(
        decisions=[(_p(r"<!--\[if\b", True), 1)],
        logical_operators=[],
        api_calls=[_p(r"<(?:img|script|link|iframe)\b[^>]*\b(?:src|href)\s*=", True)],
        variables=[],
        concatenations=[],
        array_operations=[],
        memory_multiplier=0.5,
        base_ms_per_line=0.1,
        api_overhead_ms=0.0,
        lexical=LEXICAL_SYNTAX[Dialect.HTML],
    ),
}


def _count(patterns: Sequence[Pattern[str]], lines: Sequence[MaskedLine]) -> Tuple[int, Optional[int]]:
    """Total matches and the first line that had one."""
    total = 0
    first_line = None
    for line in lines:
        for pattern in patterns:
            hits = len(pattern.findall(line.masked))
            if hits and first_line is None:
                first_line = line.number
            total += hits
    return total, first_line


class PerformanceMetricsCalculator:
    """Computes PerformanceMetrics for any supported dialect."""

    def __init__(self, profiles: Optional[Dict[Dialect, DialectProfile]] = None):
        self.profiles = profiles or PROFILES

    def calculate_metrics(self, code: str, dialect: Dialect) -> PerformanceMetrics:
        profile = self.profiles.get(dialect)
        if profile is None or not (code or "").strip():
            return PerformanceMetrics()

        raw_lines = split_lines(code)
        view_lines = profile.view(raw_lines) if profile.view else raw_lines
        lines = mask_lines(view_lines, profile.lexical).lines
        blocks = BlockTracker.for_dialect(dialect).scan(lines)

        loc = sum(1 for line in mask_source(code, dialect).lines if not line.is_blank)
        cyclomatic, cognitive = self._complexity(profile, lines, blocks)
        nesting = blocks.max_nesting

        api_calls, first_api_line = _count(profile.api_calls, lines)
        variables, _ = _count(profile.variables, lines)
        concatenations, first_concat_line = _count(profile.concatenations, lines)
        array_ops, _ = _count(profile.array_operations, lines)
        loop_complexity = sum(site.depth for site in blocks.loops)

        estimated_bytes = (
            BASE_MEMORY
            + BYTES_PER_VARIABLE * variables
            + BYTES_PER_CONCATENATION * concatenations
            + BYTES_PER_ARRAY_OPERATION * array_ops
        ) * profile.memory_multiplier

        execution_ms = (
            profile.base_ms_per_line * loc
            * (1 + K_CYCLOMATIC * cyclomatic + K_NESTING * nesting)
            * (1 + K_LOOP * loop_complexity)
            * (1 + K_API * api_calls)
            + profile.api_overhead_ms * api_calls
        )

        metrics = PerformanceMetrics(
            complexity=ComplexityMetrics(
                cyclomatic=cyclomatic,
                cognitive=cognitive,
                nesting_depth=nesting,
                lines_of_code=loc,
            ),
            memory_usage=MemoryMetrics(
                estimated_bytes=round(estimated_bytes, 2),
                variable_count=variables,
                string_concatenations=concatenations,
                array_operations=array_ops,
            ),
            estimated_execution_time_ms=round(execution_ms, 2),
            api_call_count=api_calls,
            loop_complexity=loop_complexity,
        )
        metrics.recommendations = self._recommendations(
            metrics,
            deepest_line=self._deepest_line(blocks),
            first_api_line=first_api_line,
            first_concat_line=first_concat_line,
        )
        logger.debug(
            f"Metrics for {dialect.value}: cyclomatic={cyclomatic} cognitive={cognitive} "
            f"nesting={nesting} api={api_calls} loops={loop_complexity}"
        )
        return metrics

    @staticmethod
    def _complexity(profile: DialectProfile, lines: Sequence[MaskedLine], blocks: BlockMap) -> Tuple[int, int]:
        cyclomatic = 1
        cognitive = 0
        for line in lines:
            for pattern, weight in profile.decisions:
                for m in pattern.finditer(line.masked):
                    cyclomatic += weight
                    cognitive += 1 + blocks.nesting_at(line.number, m.start())
            for pattern in profile.logical_operators:
                hits = len(pattern.findall(line.masked))
                cyclomatic += hits
                cognitive += hits
        return cyclomatic, cognitive

    @staticmethod
    def _deepest_line(blocks: BlockMap) -> Optional[int]:
        for number in sorted(blocks.states):
            state = blocks.states[number]
            levels = [state.nesting] + [n for _, n, _ in state.events]
            if blocks.max_nesting and max(levels) == blocks.max_nesting:
                return number
        return None

    @staticmethod
    def _recommendations(
        metrics: PerformanceMetrics,
        deepest_line: Optional[int],
        first_api_line: Optional[int],
        first_concat_line: Optional[int],
    ) -> List[Recommendation]:
        recs: List[Recommendation] = []
        complexity = metrics.complexity
        memory = metrics.memory_usage

        if complexity.cyclomatic > MAX_CYCLOMATIC:
            recs.append(Recommendation(
                kind=RecommendationKind.REFACTORING,
                message=f"Cyclomatic complexity is {complexity.cyclomatic}; split the logic into smaller blocks",
                impact=Impact.HIGH,
            ))
        if complexity.nesting_depth > MAX_NESTING:
            recs.append(Recommendation(
                kind=RecommendationKind.REFACTORING,
                message=f"Nesting depth is {complexity.nesting_depth}; extract the inner blocks into functions",
                impact=Impact.MEDIUM,
                line=deepest_line,
            ))
        if memory.string_concatenations > MAX_CONCATENATIONS:
            recs.append(Recommendation(
                kind=RecommendationKind.OPTIMIZATION,
                message=f"{memory.string_concatenations} string concatenations; use a builder or a template",
                impact=Impact.MEDIUM,
                line=first_concat_line,
            ))
        if memory.estimated_bytes > MAX_MEMORY_BYTES:
            recs.append(Recommendation(
                kind=RecommendationKind.OPTIMIZATION,
                message=f"Estimated memory {memory.estimated_bytes / 1024:.1f} KB; review the data structures in use",
                impact=Impact.MEDIUM,
            ))
        if metrics.api_call_count > MAX_API_CALLS:
            recs.append(Recommendation(
                kind=RecommendationKind.CACHING,
                message=f"{metrics.api_call_count} data/API calls; cache results or batch the requests",
                impact=Impact.HIGH,
                line=first_api_line,
            ))
        if metrics.loop_complexity > MAX_LOOP_COMPLEXITY:
            recs.append(Recommendation(
                kind=RecommendationKind.OPTIMIZATION,
                message=f"Loop complexity is {metrics.loop_complexity}; reduce nested iteration",
                impact=Impact.HIGH,
            ))
        return recs
