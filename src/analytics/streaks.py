"""
Streak detection.

find_streaks() is the generic building block: maximal runs of truthy flags
as inclusive (start, end, len) index ranges. The robust detector flags days
at or above a single whole-series threshold:

    threshold = median + k · σ_robust        σ_robust = MAD · 1.4826

falling back to the population SD when the MAD is zero. Missing values are
never elevated, so a gap day ends the current streak.
"""

from __future__ import annotations

import logging
import math
from typing import Any, List, NamedTuple, Optional, Sequence

from analytics.stats import finite_values, is_finite_number, median, population_sd
from constants import MAD_TO_SD
from daily_aggregator import DailyRecord
from settings import AnalysisConfig

log = logging.getLogger("streaks")


class Streak(NamedTuple):
    start: int
    end: int
    len: int

    def as_dict(self) -> dict:
        return {"start": self.start, "end": self.end, "len": self.len}


class StreakResult(NamedTuple):
    qualifying: List[Streak]
    threshold: Optional[float] = None
    baseline_median: Optional[float] = None
    robust_sd: Optional[float] = None


def find_streaks(flags: Sequence[Any]) -> List[Streak]:
    streaks: List[Streak] = []
    start: Optional[int] = None
    for i, flag in enumerate(flags):
        if flag:
            if start is None:
                start = i
        elif start is not None:
            streaks.append(Streak(start, i - 1, i - start))
            start = None
    if start is not None:
        streaks.append(Streak(start, len(flags) - 1, len(flags) - start))
    return streaks


def longest_streak(flags: Sequence[Any]) -> Streak:
    """First longest run; Streak(0, -1, 0) when nothing is flagged."""
    longest = Streak(0, -1, 0)
    for s in find_streaks(flags):
        if s.len > longest.len:
            longest = s
    return longest


def robust_sd(values: Sequence[float], center: float) -> Optional[float]:
    mad = median([abs(v - center) for v in values])
    sd = mad * MAD_TO_SD if mad is not None else None
    if sd is None or not math.isfinite(sd) or sd == 0:
        sd = population_sd(values)
    if sd is None or not math.isfinite(sd) or sd == 0:
        return None
    return sd


def detect_elevated_streaks(days: Sequence[DailyRecord], metric_key: str = "rhr_bpm",
                            config: Optional[AnalysisConfig] = None) -> StreakResult:
    config = config or AnalysisConfig()
    values = [d.get(metric_key) for d in days]
    numeric = finite_values(values)
    if len(numeric) < config.baseline_min_points:
        return StreakResult([])

    baseline_median = median(numeric)
    sd = robust_sd(numeric, baseline_median)
    if sd is None:
        log.debug("%s: constant series, no elevation threshold", metric_key)
        return StreakResult([], baseline_median=baseline_median)

    threshold = baseline_median + config.rhr_elevation_sd * sd
    elevated = [is_finite_number(v) and v >= threshold for v in values]
    qualifying = [s for s in find_streaks(elevated) if s.len >= config.rhr_streak_days]
    return StreakResult(qualifying, threshold, baseline_median, sd)
