"""
Analysis API endpoints.

Real-time (debounced, per editor session) and one-shot analysis of campaign
code: syntax diagnostics, performance metrics, best-practice violations and
the full combined report.
"""

import logging

from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from ..models.analysis import (
    CodeAnalysisRequest,
    CodeAnalysisResult,
    DiagnosticsResponse,
    LiveAnalysisResult,
    RealtimeAnalysisRequest,
    RealTimeAnalysisConfig,
    RealTimeAnalysisConfigUpdate,
    SourceUnitRequest,
    ViolationsResponse,
)
from ..config import config
from ..models.metrics import PerformanceMetrics
from ..services.code_analysis_service import UnsupportedDialectError
from ..services.shared import analysis_service, realtime_analyzer

logger = logging.getLogger(__name__)

router = APIRouter()


def _unsupported(e: UnsupportedDialectError) -> HTTPException:
    return HTTPException(status_code=400, detail=str(e))


@router.post("/realtime", response_model=LiveAnalysisResult)
async def analyze_realtime(request: RealtimeAnalysisRequest):
    """
    Debounced analysis for an editor session.

    Calls for the same session inside the debounce window collapse into one
    pass over the latest code; every caller receives that pass's result.
    """
    try:
        analysis_service.get_validator(request.dialect)
    except UnsupportedDialectError as e:
        raise _unsupported(e)
    return await realtime_analyzer.analyze_code_realtime(request.code, request.dialect, request.session_id)


@router.post("/syntax", response_model=DiagnosticsResponse)
async def validate_syntax(request: SourceUnitRequest):
    """Immediate (non-debounced) syntax and semantic diagnostics."""
    try:
        diagnostics = await realtime_analyzer.validate_syntax_immediate(request.code, request.dialect)
    except UnsupportedDialectError as e:
        raise _unsupported(e)
    return DiagnosticsResponse(dialect=request.dialect, diagnostics=diagnostics)


@router.post("/metrics", response_model=PerformanceMetrics)
async def calculate_metrics(request: SourceUnitRequest):
    try:
        return await realtime_analyzer.calculate_performance_metrics(request.code, request.dialect)
    except UnsupportedDialectError as e:
        raise _unsupported(e)


@router.post("/best-practices", response_model=ViolationsResponse)
async def best_practices(request: SourceUnitRequest):
    try:
        violations = await realtime_analyzer.enforce_best_practices(request.code, request.dialect)
    except UnsupportedDialectError as e:
        raise _unsupported(e)
    return ViolationsResponse(dialect=request.dialect, violations=violations)


@router.post("/full", response_model=CodeAnalysisResult)
async def analyze_full(request: CodeAnalysisRequest):
    """Comprehensive one-shot analysis, including fixed code when rewrites apply."""
    try:
        return await analysis_service.analyze_code(request)
    except UnsupportedDialectError as e:
        raise _unsupported(e)


@router.get("/sessions/{session_id}", response_model=LiveAnalysisResult)
async def get_session_result(session_id: str):
    result = realtime_analyzer.get_cached_result(session_id)
    if result is None:
        raise HTTPException(status_code=404, detail=f"No cached analysis for session {session_id}")
    return result


@router.delete("/sessions/{session_id}")
async def clear_session(session_id: str):
    if not realtime_analyzer.clear_cache(session_id):
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return {"session_id": session_id, "cleared": True}


@router.get("/config", response_model=RealTimeAnalysisConfig)
async def get_config():
    return realtime_analyzer.config


@router.patch("/config", response_model=RealTimeAnalysisConfig)
async def update_config(update: RealTimeAnalysisConfigUpdate):
    try:
        updated = realtime_analyzer.update_config(update)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid analysis config: {e}")

    # Persist so the switches survive a restart
    config.set_analysis_config(updated)
    return updated
