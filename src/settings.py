"""
Analysis configuration.

Defaults are the long-standing heuristic constants for sleep, baselines and streaks.
Any field can be overridden from the environment (or a .env file) as
HEALTH_<FIELD_NAME>, e.g. HEALTH_Z_SCORE_THRESHOLD=2.5.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

from dotenv import load_dotenv

log = logging.getLogger("settings")

ENV_PREFIX = "HEALTH_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class AnalysisConfig:
    short_sleep_hours: float = 6.0
    baseline_lookback_days: int = 14
    baseline_min_points: int = 5
    z_score_threshold: float = 2.0
    rhr_elevation_sd: float = 1.5
    rhr_streak_days: int = 3
    min_days_for_correlation: int = 6
    default_time_zone: str = "UTC"
    # Any validation error stops the pass before aggregation
    fail_on_validation_errors: bool = True
    # Emit 0.0 for summed fields whose samples really add up to zero
    keep_zero_totals: bool = False
    insights_window_days: int = 14
    sort_warning_ratio: float = 0.1

    @classmethod
    def from_env(cls, env: Optional[Dict[str, str]] = None, **overrides: Any) -> "AnalysisConfig":
        """Build a config from HEALTH_* variables, then apply keyword overrides."""
        if env is None:
            load_dotenv()
            env = dict(os.environ)

        values: Dict[str, Any] = {}
        for f in fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None or not raw.strip():
                continue
            parsed = _coerce(raw.strip(), f.default)
            if parsed is None:
                log.warning("Ignoring %s%s=%r (expected %s)",
                            ENV_PREFIX, f.name.upper(), raw, type(f.default).__name__)
                continue
            values[f.name] = parsed

        values.update(overrides)
        return cls(**values)

    def with_overrides(self, **overrides: Any) -> "AnalysisConfig":
        return replace(self, **overrides)


def _coerce(raw: str, default: Any) -> Any:
    if isinstance(default, bool):
        low = raw.lower()
        if low in _TRUE:
            return True
        if low in _FALSE:
            return False
        return None
    try:
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
    except ValueError:
        return None
    return raw
