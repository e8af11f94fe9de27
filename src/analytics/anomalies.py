"""
Rolling-baseline anomaly detection.

For day i the baseline is the trailing window [max(0, i - lookback), i):
the day itself never contributes to its own baseline. A baseline exists only
when the window holds at least `baseline_min_points` finite values.

    z = (x - μ) / σ        σ = population SD of the window

A day is anomalous when |z| ≥ z_score_threshold. Windows with σ = 0 never
flag (a constant history says nothing about spread).
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence, Set

from analytics.stats import finite_values, is_finite_number, mean, population_sd
from daily_aggregator import DailyRecord
from settings import AnalysisConfig
from timezones import add_days_to_key


class RollingStats(NamedTuple):
    means: List[Optional[float]]
    sds: List[Optional[float]]


class AnomalyResult(NamedTuple):
    anomaly_indices: Set[int]
    means: List[Optional[float]]
    sds: List[Optional[float]]


def rolling_stats(values: Sequence[Any], lookback_days: int, min_points: int = 5) -> RollingStats:
    means: List[Optional[float]] = [None] * len(values)
    sds: List[Optional[float]] = [None] * len(values)

    for i in range(len(values)):
        window = finite_values(values[max(0, i - lookback_days):i])
        if len(window) < min_points:
            continue
        means[i] = mean(window)
        sds[i] = population_sd(window)

    return RollingStats(means, sds)


def detect_anomalies(values: Sequence[Any], config: Optional[AnalysisConfig] = None) -> AnomalyResult:
    config = config or AnalysisConfig()
    means, sds = rolling_stats(values, config.baseline_lookback_days, config.baseline_min_points)
    anomaly_indices: Set[int] = set()

    for i, v in enumerate(values):
        mu, sd = means[i], sds[i]
        if not is_finite_number(v) or mu is None or sd is None:
            continue
        if sd == 0:
            continue
        z = (v - mu) / sd
        if abs(z) >= config.z_score_threshold:
            anomaly_indices.add(i)

    return AnomalyResult(anomaly_indices, means, sds)


def detect_metric_anomalies(days: Sequence[DailyRecord], metric_key: str,
                            config: Optional[AnalysisConfig] = None) -> List[Dict[str, Any]]:
    """Anomalies of one metric, mapped back to day keys."""
    values = [d.get(metric_key) for d in days]
    result = detect_anomalies(values, config)
    out = []
    for i in sorted(result.anomaly_indices):
        value = values[i]
        mu, sd = result.means[i], result.sds[i]
        z = (value - mu) / sd
        out.append({
            "index": i,
            "day_key": days[i].day_key,
            "metric": metric_key,
            "value": value,
            "mean": mu,
            "sd": sd,
            "z": z,
            "direction": "HIGH" if z > 0 else "LOW",
        })
    return out


def window_days(day_by_key: Mapping[str, DailyRecord], end_day_key: str, length: int) -> List[DailyRecord]:
    """Calendar window of *length* days ending at end_day_key (inclusive)."""
    out = []
    for offset in range(length - 1, -1, -1):
        day_key = add_days_to_key(end_day_key, -offset)
        out.append(day_by_key.get(day_key) or DailyRecord(day_key=day_key))
    return out


def compute_baseline_stats(day_by_key: Mapping[str, DailyRecord], end_day_key: str, metric_key: str,
                           config: Optional[AnalysisConfig] = None) -> Optional[Dict[str, Any]]:
    """Mean/SD of a metric over the lookback window ending at end_day_key."""
    config = config or AnalysisConfig()
    window = window_days(day_by_key, end_day_key, config.baseline_lookback_days)
    values = finite_values([d.get(metric_key) for d in window])
    if len(values) < config.baseline_min_points:
        return None
    return {"mean": mean(values), "sd": population_sd(values), "n": len(values)}
