"""
Real-time analyzer.

Debounced, per-session analysis for the editor. Each session moves through
Idle -> Pending -> Analyzing -> Cached:

- a call arms an asyncio task that sleeps `debounce_ms` and then analyses;
- another call for the same session while the task is still sleeping cancels
  it and arms a new one with the latest code; the superseded callers wait for
  the replacement and receive its result;
- a call that arrives while a pass is already analysing starts a new cycle and
  never preempts the running pass.

Every cycle gets a per-session sequence number. A completion whose number is
lower than the cached result's is returned to its own callers but never
overwrites the cache.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Union

from ..models.analysis import LiveAnalysisResult, RealTimeAnalysisConfig, RealTimeAnalysisConfigUpdate
from ..models.linting import Diagnostic, Dialect, Impact, Severity, Suggestion, SuggestionKind
from ..models.metrics import PerformanceMetrics, Recommendation, RecommendationKind
from ..models.rules import RuleCategory, Violation
from .code_analysis_service import CodeAnalysisService, UnsupportedDialectError

logger = logging.getLogger(__name__)

# Metrics passes slower than this get an extra recommendation
SLOW_ANALYSIS_MS = 1000

_SUGGESTION_KIND = {
    RuleCategory.SECURITY: SuggestionKind.SECURITY,
    RuleCategory.PERFORMANCE: SuggestionKind.PERFORMANCE,
    RuleCategory.MAINTAINABILITY: SuggestionKind.MAINTAINABILITY,
    RuleCategory.DOCUMENTATION: SuggestionKind.MAINTAINABILITY,
    RuleCategory.STRUCTURE: SuggestionKind.MAINTAINABILITY,
}


@dataclass
class AnalysisSession:
    """Debounce and cache state for one editor session."""

    session_id: str
    pending: Optional[asyncio.Task] = None
    # Every cycle task until it finishes, including the one that is analysing
    running: Set[asyncio.Task] = field(default_factory=set)
    waiters: List[asyncio.Future] = field(default_factory=list)
    last_result: Optional[LiveAnalysisResult] = None
    issued_sequence: int = 0
    cached_sequence: int = 0


def violation_to_suggestion(violation: Violation) -> Suggestion:
    return Suggestion(
        id=violation.id,
        title=violation.rule_name,
        message=violation.suggestion or violation.message,
        kind=_SUGGESTION_KIND.get(violation.rule_category, SuggestionKind.BEST_PRACTICE),
        impact=Impact.from_severity(violation.severity),
        line=violation.line,
    )


def merge_results(
    diagnostics: List[Diagnostic], violations: List[Violation], sequence: int = 0
) -> LiveAnalysisResult:
    """
    Merge validator diagnostics and rule violations into one result.

    Findings are de-duplicated by (rule, line, column); validator diagnostics
    come first, so they win over a violation describing the same construct.
    """
    seen = set()
    errors: List[Diagnostic] = []
    warnings: List[Diagnostic] = []
    for finding in [*diagnostics, *violations]:
        key = finding.dedup_key()
        if key in seen:
            continue
        seen.add(key)
        (errors if finding.severity == Severity.ERROR else warnings).append(finding)

    def rank(d: Diagnostic):
        return (-d.severity.rank, d.line, d.column or 0, d.rule)

    return LiveAnalysisResult(
        errors=sorted(errors, key=rank),
        warnings=sorted(warnings, key=rank),
        suggestions=[violation_to_suggestion(v) for v in violations],
        is_valid=not errors,
        sequence=sequence,
    )


class RealTimeAnalyzer:
    """Per-session debounced analysis on top of CodeAnalysisService."""

    def __init__(
        self,
        analysis_service: Optional[CodeAnalysisService] = None,
        config: Optional[RealTimeAnalysisConfig] = None,
    ):
        self.analysis_service = analysis_service or CodeAnalysisService()
        self.config = config or RealTimeAnalysisConfig()
        self._sessions: Dict[str, AnalysisSession] = {}

    # ------------------------------------------------------------ debounced

    async def analyze_code_realtime(self, code: str, dialect: Dialect, session_id: str) -> LiveAnalysisResult:
        session = self._sessions.get(session_id)
        if session is None:
            session = self._sessions[session_id] = AnalysisSession(session_id=session_id)

        session.issued_sequence += 1
        sequence = session.issued_sequence

        if session.pending is not None and not session.pending.done():
            logger.debug(f"Session {session_id}: replacing pending cycle with #{sequence}")
            session.pending.cancel()

        waiter = asyncio.get_running_loop().create_future()
        session.waiters.append(waiter)
        task = asyncio.create_task(self._run_cycle(session, code, dialect, sequence))
        session.pending = task
        session.running.add(task)
        task.add_done_callback(session.running.discard)
        return await waiter

    async def _run_cycle(self, session: AnalysisSession, code: str, dialect: Dialect, sequence: int) -> None:
        try:
            await asyncio.sleep(self.config.debounce_ms / 1000)
        except asyncio.CancelledError:
            # Superseded; the waiters now belong to the replacement cycle
            return

        # Analyzing: from here on this pass is never cancelled by a newer call;
        # session.running keeps the task referenced until it is done
        waiters, session.waiters = session.waiters, []
        if session.pending is asyncio.current_task():
            session.pending = None

        result = await self._analyze(session, code, dialect, sequence)
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(result)

    async def _analyze(
        self, session: AnalysisSession, code: str, dialect: Dialect, sequence: int
    ) -> LiveAnalysisResult:
        try:
            diagnostics, violations = await asyncio.gather(
                self._diagnostics(code, dialect),
                self._violations(code, dialect),
            )
            result = merge_results(diagnostics, violations, sequence)
        except Exception as e:
            logger.warning(f"Session {session.session_id}: analysis #{sequence} failed: {e}", exc_info=True)
            return session.last_result or LiveAnalysisResult.empty(sequence=sequence)

        if self._sessions.get(session.session_id) is not session:
            logger.debug(f"Session {session.session_id} was cleared; result #{sequence} not cached")
        elif sequence < session.cached_sequence:
            logger.debug(
                f"Session {session.session_id}: stale result #{sequence} "
                f"(cached #{session.cached_sequence}) not cached"
            )
        else:
            session.last_result = result
            session.cached_sequence = sequence

        logger.debug(
            f"Session {session.session_id}: cycle #{sequence} -> "
            f"{len(result.errors)} error(s), {len(result.warnings)} warning(s)"
        )
        return result

    async def _diagnostics(self, code: str, dialect: Dialect) -> List[Diagnostic]:
        if not self.config.enable_live_validation:
            return []
        return await self.analysis_service.validate_syntax(code, dialect)

    async def _violations(self, code: str, dialect: Dialect) -> List[Violation]:
        if not self.config.enable_best_practices:
            return []
        return await self.analysis_service.get_best_practice_violations(code, dialect)

    # ---------------------------------------------------------- immediate

    async def validate_syntax_immediate(self, code: str, dialect: Dialect) -> List[Diagnostic]:
        """Validator diagnostics without debouncing; failures degrade to []."""
        try:
            return await self._diagnostics(code, dialect)
        except UnsupportedDialectError:
            raise
        except Exception as e:
            logger.warning(f"Immediate validation failed for {dialect}: {e}", exc_info=True)
            return []

    async def enforce_best_practices(self, code: str, dialect: Dialect) -> List[Violation]:
        try:
            return await self._violations(code, dialect)
        except UnsupportedDialectError:
            raise
        except Exception as e:
            logger.warning(f"Best-practice enforcement failed for {dialect}: {e}", exc_info=True)
            return []

    async def calculate_performance_metrics(self, code: str, dialect: Dialect) -> PerformanceMetrics:
        if not self.config.enable_performance_metrics:
            return PerformanceMetrics()
        start = time.time()
        try:
            metrics = await self.analysis_service.analyze_performance(code, dialect)
        except UnsupportedDialectError:
            raise
        except Exception as e:
            logger.warning(f"Metrics calculation failed for {dialect}: {e}", exc_info=True)
            return PerformanceMetrics()

        elapsed_ms = (time.time() - start) * 1000
        if elapsed_ms > SLOW_ANALYSIS_MS:
            logger.info(f"Metrics for {dialect} took {elapsed_ms:.0f}ms")
            slow = Recommendation(
                kind=RecommendationKind.OPTIMIZATION,
                message=f"Analysis took {elapsed_ms:.0f}ms; break the code into smaller units",
                impact=Impact.MEDIUM,
            )
            metrics = metrics.model_copy(update={"recommendations": [*metrics.recommendations, slow]})
        return metrics

    # ------------------------------------------------------- cache / config

    def get_cached_result(self, session_id: str) -> Optional[LiveAnalysisResult]:
        session = self._sessions.get(session_id)
        return session.last_result if session else None

    def clear_cache(self, session_id: str) -> bool:
        """
        Drop a session: cancel its pending cycle and release waiting callers
        with an empty result. A pass already analysing finishes for its own
        callers but does not repopulate the session.
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        self._release(session)
        logger.info(f"Session {session_id} cleared")
        return True

    def _release(self, session: AnalysisSession) -> None:
        if session.pending is not None and not session.pending.done():
            session.pending.cancel()
        session.pending = None
        for waiter in session.waiters:
            if not waiter.done():
                waiter.set_result(LiveAnalysisResult.empty())
        session.waiters = []

    def update_config(
        self, changes: Union[RealTimeAnalysisConfigUpdate, Dict[str, Any]]
    ) -> RealTimeAnalysisConfig:
        """Apply a partial update; raises pydantic.ValidationError for invalid values."""
        if isinstance(changes, RealTimeAnalysisConfigUpdate):
            updates = changes.model_dump(exclude_none=True)
        else:
            updates = {k: v for k, v in changes.items() if v is not None}
        self.config = RealTimeAnalysisConfig(**{**self.config.model_dump(), **updates})
        logger.info(f"Real-time analysis config updated: {updates}")
        return self.config

    def active_sessions(self) -> List[str]:
        return sorted(self._sessions)

    async def shutdown(self) -> None:
        """Cancel every pending cycle and wait for passes in flight (application shutdown)."""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        tasks = [task for s in sessions for task in s.running if not task.done()]
        for session in sessions:
            self._release(session)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Real-time analyzer stopped ({len(sessions)} session(s) released)")
