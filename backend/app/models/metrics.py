"""Performance metrics models."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .linting import Impact


class ComplexityMetrics(BaseModel):
    cyclomatic: int = 1
    cognitive: int = 0
    nesting_depth: int = 0
    lines_of_code: int = 0


class MemoryMetrics(BaseModel):
    estimated_bytes: float = 0.0
    variable_count: int = 0
    string_concatenations: int = 0
    array_operations: int = 0


class RecommendationKind(str, Enum):
    REFACTORING = "refactoring"
    OPTIMIZATION = "optimization"
    CACHING = "caching"


class Recommendation(BaseModel):
    kind: RecommendationKind
    message: str
    impact: Impact
    line: Optional[int] = None


class PerformanceMetrics(BaseModel):
    """Complexity, memory and cost estimates for one source unit."""

    complexity: ComplexityMetrics = Field(default_factory=ComplexityMetrics)
    memory_usage: MemoryMetrics = Field(default_factory=MemoryMetrics)
    estimated_execution_time_ms: float = 0.0
    api_call_count: int = 0
    loop_complexity: int = 0
    recommendations: List[Recommendation] = Field(default_factory=list)
