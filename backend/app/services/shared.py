"""
Shared service instances to ensure consistency across API endpoints.

This module provides singleton service instances that are shared
across all API endpoints, so the rule table, the validator registry and
the per-session analysis cache are the same for every request.
"""

from ..config import config
from .best_practices_enforcer import BestPracticesEnforcer
from .code_analysis_service import CodeAnalysisService
from .realtime_analyzer import RealTimeAnalyzer
from .rule_set import load_default_rules

# Initialize with configured paths and switches (ENV > config.json > default)
rule_set = load_default_rules(config.get_rules_dir())
enforcer = BestPracticesEnforcer(rule_set)
analysis_service = CodeAnalysisService(enforcer=enforcer)
realtime_analyzer = RealTimeAnalyzer(analysis_service, config.get_realtime_config())

__all__ = ["analysis_service", "enforcer", "realtime_analyzer", "rule_set"]
