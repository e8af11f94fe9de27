"""Fixed-schema day slice handed to the external insight generator.

The generator (prompting, HTTP relay, response caching) lives outside this
repo; this module only decides *what* it receives. Stress scoring is an
injected collaborator and is treated as opaque.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from analytics.stats import is_finite_number
from daily_aggregator import DailyRecord, index_days
from settings import AnalysisConfig
from timezones import add_days_to_key

# (day_by_key, day_key, config) -> {"score": float | None, "label": str | None}
StressScorer = Callable[[Mapping[str, DailyRecord], str, AnalysisConfig], Mapping[str, Any]]

NUMERIC_INSIGHTS_FIELDS = [
    "sleep_hours", "sleep_quality", "sleep_minutes", "sleep_respiration_rpm",
    "workout_minutes", "workout_load", "workout_calories", "steps",
    "calories", "carbs_g", "protein_g", "fat_g", "sugar_g",
    "rhr_bpm", "weight_kg", "bp_systolic", "bp_diastolic",
    "stress_score",
]
INSIGHTS_FIELDS = ["day_key", *NUMERIC_INSIGHTS_FIELDS, "stress_label"]


def _num_or_none(value: Any) -> Optional[float]:
    return float(value) if is_finite_number(value) else None


def _stress_for(scorer: Optional[StressScorer], day_by_key: Mapping[str, DailyRecord],
                day_key: str, config: AnalysisConfig) -> Dict[str, Any]:
    if scorer is None:
        return {"score": None, "label": None}
    detail = scorer(day_by_key, day_key, config) or {}
    label = detail.get("label")
    return {
        "score": _num_or_none(detail.get("score")),
        "label": label if isinstance(label, str) else None,
    }


def reshape_day(day: DailyRecord, stress: Mapping[str, Any]) -> Dict[str, Any]:
    primary = day.sleep_primary
    row: Dict[str, Any] = {"day_key": day.day_key}
    for key in NUMERIC_INSIGHTS_FIELDS:
        if key == "sleep_respiration_rpm":
            row[key] = _num_or_none(primary.respiration_rpm if primary else None)
        elif key == "stress_score":
            row[key] = stress.get("score")
        else:
            row[key] = _num_or_none(day.get(key))
    row["stress_label"] = stress.get("label")
    return row


def select_window(days: Sequence[DailyRecord], day_key: Optional[str], length: int) -> List[DailyRecord]:
    """Last *length* days at or before day_key (default: the last day)."""
    if day_key is not None:
        days = [d for d in days if d.day_key <= day_key]
    return list(days[-length:]) if length > 0 else []


def build_insights_payload(days: Sequence[DailyRecord], *, time_zone: str,
                           day_key: Optional[str] = None,
                           stress_scorer: Optional[StressScorer] = None,
                           config: Optional[AnalysisConfig] = None) -> Dict[str, Any]:
    """
    Shape the recent days into the insight generator's request body.

    Each day's stress fields come from the scorer's verdict on the previous
    day, looked up within the slice only.
    """
    config = config or AnalysisConfig()
    window = select_window(days, day_key, config.insights_window_days)
    day_by_key = index_days(window)

    rows = []
    for day in window:
        stress = _stress_for(stress_scorer, day_by_key, add_days_to_key(day.day_key, -1), config)
        rows.append(reshape_day(day, stress))

    return {
        "day_key": day_key or (window[-1].day_key if window else None),
        "time_zone": time_zone,
        "days": rows,
    }
