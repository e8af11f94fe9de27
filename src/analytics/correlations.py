"""
Pairwise and lagged Pearson correlation tables.

For a pair (x, y) and lag L, day k's x is paired with day k+L's y. Days
where either side is missing (or k+L falls off the end) are dropped, which
is why the daily series must be gap-filled before it gets here. A pair is
reported only with at least `min_days_for_correlation` paired samples, and
tables are ranked by |r| so strong negative relationships rank alongside
strong positive ones.
"""

from __future__ import annotations

import logging
from itertools import combinations
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from analytics.stats import correlation_p_value, pearson_correlation
from daily_aggregator import DailyRecord, days_to_frame
from settings import AnalysisConfig

log = logging.getLogger("correlations")


def _paired_samples(data: pd.DataFrame, x_key: str, y_key: str, lag_days: int) -> pd.DataFrame:
    return pd.DataFrame({
        "x": data[x_key],
        "y": data[y_key].shift(-lag_days),
    }).dropna()


def _correlate(data: pd.DataFrame, x_key: str, y_key: str, lag_days: int,
               min_days: int) -> Optional[Dict[str, Any]]:
    valid = _paired_samples(data, x_key, y_key, lag_days)
    n = len(valid)
    if n < min_days:
        return None
    r = pearson_correlation(valid["x"].to_numpy(), valid["y"].to_numpy())
    if r is None:
        return None
    return {
        "x": x_key,
        "y": y_key,
        "lag_days": lag_days,
        "r": r,
        "n": n,
        "p_value": correlation_p_value(r, n),
    }


def _rank(results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(results, key=lambda row: abs(row["r"]), reverse=True)


def pairwise_correlations(days: Sequence[DailyRecord], metric_keys: Sequence[str], lag_days: int = 0,
                          min_days: Optional[int] = None,
                          config: Optional[AnalysisConfig] = None) -> List[Dict[str, Any]]:
    """Every unordered metric pair, x = the earlier key in metric_keys."""
    config = config or AnalysisConfig()
    min_days = config.min_days_for_correlation if min_days is None else min_days
    keys = list(dict.fromkeys(metric_keys))
    data = days_to_frame(days, keys)

    results = []
    for x_key, y_key in combinations(keys, 2):
        row = _correlate(data, x_key, y_key, lag_days, min_days)
        if row is not None:
            results.append(row)

    log.debug("%d/%d pairs correlated at lag %d", len(results), len(keys) * (len(keys) - 1) // 2, lag_days)
    return _rank(results)


def lag_correlations(days: Sequence[DailyRecord], predictors: Sequence[str], targets: Sequence[str],
                     lag_days: int = 1, min_days: Optional[int] = None,
                     config: Optional[AnalysisConfig] = None) -> List[Dict[str, Any]]:
    """Directed table: predictor on day k vs target on day k + lag_days."""
    config = config or AnalysisConfig()
    min_days = config.min_days_for_correlation if min_days is None else min_days
    keys = list(dict.fromkeys([*predictors, *targets]))
    data = days_to_frame(days, keys)

    results = []
    for predictor in dict.fromkeys(predictors):
        for target in dict.fromkeys(targets):
            if predictor == target:
                continue
            row = _correlate(data, predictor, target, lag_days, min_days)
            if row is not None:
                results.append(row)
    return _rank(results)
