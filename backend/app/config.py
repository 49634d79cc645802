"""
Configuration management for the campaign code analyzer.

Handles loading project-level configuration for the analysis engine and the API.

Configuration priority (highest to lowest):
1. Environment variables (for Docker/container deployments)
2. config.json file (for local development)
3. Built-in defaults
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models.analysis import RealTimeAnalysisConfig

logger = logging.getLogger(__name__)

# Config file path at project root
CONFIG_FILE = Path(__file__).parent.parent.parent / "config.json"

# Default values (used when neither env var nor config.json specifies)
DEFAULT_DEBOUNCE_MS = 300
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://localhost:5173"]

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_bool(name: str) -> Optional[bool]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    value = value.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    logger.warning(f"Ignoring {name}={value!r}: expected a boolean")
    return None


class Config:
    """
    Project-level configuration manager.

    Priority: ENV > config.json > defaults

    Environment variables for Docker:
      - ANALYSIS_DEBOUNCE_MS: debounce window for real-time analysis (ms, > 0)
      - ENABLE_LIVE_VALIDATION / ENABLE_PERFORMANCE_METRICS / ENABLE_BEST_PRACTICES: pass switches
      - RULES_DIR: directory holding the YAML rule tables
      - LOG_LEVEL: server log level
      - CORS_ORIGINS: comma-separated list of allowed origins
    """

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = Path(config_file) if config_file else CONFIG_FILE
        self.data = self.load()

    def load(self) -> Dict[str, Any]:
        """Load configuration from file."""
        if self.config_file.exists():
            try:
                with open(self.config_file, 'r') as f:
                    return json.load(f)
            except Exception as e:
                logger.error(f"Failed to load config: {e}")
                return self._default_config()
        else:
            return self._default_config()

    def save(self) -> None:
        """Save configuration to file."""
        try:
            with open(self.config_file, 'w') as f:
                json.dump(self.data, f, indent=2)
            logger.info(f"Configuration saved to {self.config_file}")
        except Exception as e:
            logger.error(f"Failed to save config: {e}")

    def _default_config(self) -> Dict[str, Any]:
        """Return default configuration."""
        return {
            "analysis": {
                "debounce_ms": DEFAULT_DEBOUNCE_MS,
                "enable_live_validation": True,
                "enable_performance_metrics": True,
                "enable_best_practices": True,
            }
        }

    def _analysis(self) -> Dict[str, Any]:
        return self.data.get("analysis", {})

    def get_debounce_ms(self) -> int:
        """
        Get the real-time analysis debounce window.

        Priority: ANALYSIS_DEBOUNCE_MS env var > config.json > default
        """
        env_value = os.getenv('ANALYSIS_DEBOUNCE_MS')
        if env_value:
            try:
                value = int(env_value)
                if value > 0:
                    return value
            except ValueError:
                pass
            logger.warning(f"Ignoring ANALYSIS_DEBOUNCE_MS={env_value!r}: expected a positive integer")

        value = self._analysis().get("debounce_ms", DEFAULT_DEBOUNCE_MS)
        return value if isinstance(value, int) and value > 0 else DEFAULT_DEBOUNCE_MS

    def _get_flag(self, env_name: str, key: str) -> bool:
        env_value = _env_bool(env_name)
        if env_value is not None:
            return env_value
        return bool(self._analysis().get(key, True))

    def get_enable_live_validation(self) -> bool:
        return self._get_flag('ENABLE_LIVE_VALIDATION', 'enable_live_validation')

    def get_enable_performance_metrics(self) -> bool:
        return self._get_flag('ENABLE_PERFORMANCE_METRICS', 'enable_performance_metrics')

    def get_enable_best_practices(self) -> bool:
        return self._get_flag('ENABLE_BEST_PRACTICES', 'enable_best_practices')

    def get_realtime_config(self) -> RealTimeAnalysisConfig:
        return RealTimeAnalysisConfig(
            debounce_ms=self.get_debounce_ms(),
            enable_live_validation=self.get_enable_live_validation(),
            enable_performance_metrics=self.get_enable_performance_metrics(),
            enable_best_practices=self.get_enable_best_practices(),
        )

    def set_analysis_config(self, realtime: RealTimeAnalysisConfig) -> None:
        """Persist real-time analysis settings to config.json."""
        self.data["analysis"] = realtime.model_dump()
        self.save()

    def get_rules_dir(self) -> Optional[str]:
        """Get rule table directory (ENV > config.json > None for the bundled tables)."""
        env_path = os.getenv('RULES_DIR')
        if env_path:
            return env_path
        return self.data.get('paths', {}).get('rules_dir')

    def get_log_level(self) -> str:
        level = os.getenv('LOG_LEVEL') or self.data.get('logging', {}).get('level') or DEFAULT_LOG_LEVEL
        return str(level).upper()

    def get_cors_origins(self) -> List[str]:
        env_value = os.getenv('CORS_ORIGINS')
        if env_value:
            return [origin.strip() for origin in env_value.split(',') if origin.strip()]
        return self.data.get('cors_origins') or list(DEFAULT_CORS_ORIGINS)


# Global config instance
config = Config()
