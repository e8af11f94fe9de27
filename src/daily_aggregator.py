"""
Daily aggregation.

Buckets normalized records into one DailyRecord per local calendar day,
applying a reducer per record type, then fills every gap day between the
first and last observed day so downstream windows can index by position.

Reducers:
  sum     : nutrition macros, steps, workout minutes/calories/load
  average : sleep quality, resting HR, blood pressure
  latest  : weight (greatest timestamp of the day wins)
  sleep   : minutes attributed to the day the session ENDS
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Set

import pandas as pd

from analytics.stats import mean
from constants import (
    BLOOD_PRESSURE, DEFAULT_ACTIVITY, DEFAULT_INTENSITY_FACTOR, INTENSITY_FACTORS,
    KG_PER_LB, KNOWN_RECORD_TYPES, NUMERIC_DAY_FIELDS, NUTRITION, NUTRITION_FIELDS,
    RESTING_HEART_RATE, SLEEP_SESSION, STEPS, SUMMED_FIELDS, WEIGHT, WORKOUT,
)
from record_normalizer import NormalizedRecord, is_plain_object, to_number
from timezones import UTC_ZONE, DayKeyFormatter, day_key_range

log = logging.getLogger("daily_aggregator")


# ─── Public shapes ─────────────────────────────────────────

@dataclass
class SleepSession:
    start: datetime
    end: datetime
    duration_min: float
    quality: Optional[float] = None
    respiration_rpm: Optional[float] = None
    stages_min: Optional[Dict[str, Optional[float]]] = None
    source: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["start"] = self.start.isoformat()
        out["end"] = self.end.isoformat()
        return out


@dataclass
class WorkoutActivity:
    activity: str
    duration_min: float
    calories: Optional[float] = None


@dataclass
class DailyRecord:
    day_key: str
    sleep_hours: Optional[float] = None
    sleep_minutes: Optional[float] = None
    sleep_quality: Optional[float] = None
    sleep_primary: Optional[SleepSession] = None
    sleep_sessions: List[SleepSession] = field(default_factory=list)
    sugar_g: Optional[float] = None
    calories: Optional[float] = None
    carbs_g: Optional[float] = None
    protein_g: Optional[float] = None
    fat_g: Optional[float] = None
    steps: Optional[float] = None
    workout_minutes: Optional[float] = None
    workout_calories: Optional[float] = None
    workout_load: Optional[float] = None
    workout_by_activity: List[WorkoutActivity] = field(default_factory=list)
    rhr_bpm: Optional[float] = None
    weight_kg: Optional[float] = None
    bp_systolic: Optional[float] = None
    bp_diastolic: Optional[float] = None

    def get(self, metric_key: str) -> Optional[float]:
        """Numeric metric value, or None for missing/unknown keys."""
        if metric_key not in NUMERIC_DAY_FIELDS:
            return None
        return getattr(self, metric_key)

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"day_key": self.day_key}
        for key in NUMERIC_DAY_FIELDS:
            out[key] = getattr(self, key)
        out["sleep_primary"] = self.sleep_primary.as_dict() if self.sleep_primary else None
        out["sleep_sessions"] = [s.as_dict() for s in self.sleep_sessions]
        out["workout_by_activity"] = [asdict(w) for w in self.workout_by_activity]
        return out


class AggregationResult(NamedTuple):
    days: List[DailyRecord]
    min_day_key: Optional[str]
    max_day_key: Optional[str]


# ─── Accumulator ───────────────────────────────────────────

@dataclass
class _DayAccumulator:
    day_key: str
    sleep_minutes: float = 0.0
    sleep_qualities: List[float] = field(default_factory=list)
    sleep_sessions: List[SleepSession] = field(default_factory=list)
    totals: Dict[str, float] = field(default_factory=lambda: {k: 0.0 for k in SUMMED_FIELDS})
    present: Set[str] = field(default_factory=set)
    by_activity: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    rhr_samples: List[float] = field(default_factory=list)
    weight_samples: List[tuple] = field(default_factory=list)
    bp_samples: List[tuple] = field(default_factory=list)

    def add(self, key: str, value: Optional[float]) -> None:
        if value is None:
            return
        self.totals[key] += value
        self.present.add(key)


def _normalize_sleep_stages(raw: Any) -> Optional[Dict[str, Optional[float]]]:
    if not is_plain_object(raw):
        return None
    awake = to_number(raw.get("awake", raw.get("wake")))
    rem = to_number(raw.get("rem"))
    light = to_number(raw.get("light", raw.get("core")))
    deep = to_number(raw.get("deep"))

    if not any(v is not None and v > 0 for v in (awake, rem, light, deep)):
        return None
    return {
        "awake": None if awake is None else max(0.0, awake),
        "rem": None if rem is None else max(0.0, rem),
        "light": None if light is None else max(0.0, light),
        "deep": None if deep is None else max(0.0, deep),
    }


def pick_primary_sleep_session(sessions: Sequence[SleepSession]) -> Optional[SleepSession]:
    """Longest session of the day; ties go to the earliest start."""
    best: Optional[SleepSession] = None
    for s in sessions:
        if s.duration_min is None or s.duration_min <= 0:
            continue
        if best is None or s.duration_min > best.duration_min:
            best = s
        elif s.duration_min == best.duration_min and s.start < best.start:
            best = s
    return best


def _latest_sample(samples: Sequence[tuple]) -> Optional[tuple]:
    latest = None
    for sample in samples:
        if latest is None or sample[0] > latest[0]:
            latest = sample
    return latest


def _minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60.0


# ─── Reducers ──────────────────────────────────────────────

def _reduce_sleep(day: _DayAccumulator, rec: NormalizedRecord) -> None:
    duration = _minutes_between(rec.start, rec.end)
    day.sleep_minutes += duration
    quality = to_number(rec.data.get("quality"))
    if quality is not None:
        day.sleep_qualities.append(quality)
    stages = rec.data.get("stages_min")
    if stages is None:
        stages = rec.data.get("stages")
    day.sleep_sessions.append(SleepSession(
        start=rec.start,
        end=rec.end,
        duration_min=duration,
        quality=quality,
        respiration_rpm=to_number(rec.data.get("respiration_rpm")),
        stages_min=_normalize_sleep_stages(stages),
        source=rec.source,
    ))


def _reduce_nutrition(day: _DayAccumulator, rec: NormalizedRecord) -> None:
    for key in NUTRITION_FIELDS:
        day.add(key, to_number(rec.data.get(key)))


def _reduce_steps(day: _DayAccumulator, rec: NormalizedRecord) -> None:
    day.add("steps", to_number(rec.data.get("count")))


def _reduce_workout(day: _DayAccumulator, rec: NormalizedRecord) -> None:
    activity = rec.data.get("activity")
    activity = activity.strip() if isinstance(activity, str) and activity.strip() else DEFAULT_ACTIVITY
    intensity = rec.data.get("intensity")
    factor = DEFAULT_INTENSITY_FACTOR
    if isinstance(intensity, str):
        factor = INTENSITY_FACTORS.get(intensity.strip().lower(), DEFAULT_INTENSITY_FACTOR)

    duration = to_number(rec.data.get("duration_min"))
    if duration is None and rec.start and rec.end:
        duration = _minutes_between(rec.start, rec.end)
    calories = to_number(rec.data.get("calories"))

    day.add("workout_minutes", duration)
    day.add("workout_calories", calories)
    if duration is None:
        return
    day.add("workout_load", duration * factor)

    entry = day.by_activity.setdefault(activity, {"duration_min": 0.0, "calories": 0.0, "has_calories": False})
    entry["duration_min"] += duration
    if calories is not None:
        entry["calories"] += calories
        entry["has_calories"] = True


def _reduce_rhr(day: _DayAccumulator, rec: NormalizedRecord) -> None:
    bpm = to_number(rec.data.get("bpm"))
    if bpm is not None:
        day.rhr_samples.append(bpm)


def _reduce_weight(day: _DayAccumulator, rec: NormalizedRecord) -> None:
    kg = to_number(rec.data.get("kg"))
    if kg is None:
        lb = to_number(rec.data.get("lb"))
        if lb is not None:
            kg = lb * KG_PER_LB
    if kg is not None and rec.timestamp:
        day.weight_samples.append((rec.timestamp, kg))


def _reduce_blood_pressure(day: _DayAccumulator, rec: NormalizedRecord) -> None:
    systolic = to_number(rec.data.get("systolic"))
    diastolic = to_number(rec.data.get("diastolic"))
    if systolic is not None and diastolic is not None and rec.timestamp:
        day.bp_samples.append((rec.timestamp, systolic, diastolic))


_REDUCERS = {
    NUTRITION: _reduce_nutrition,
    STEPS: _reduce_steps,
    WORKOUT: _reduce_workout,
    RESTING_HEART_RATE: _reduce_rhr,
    WEIGHT: _reduce_weight,
    BLOOD_PRESSURE: _reduce_blood_pressure,
}


# ─── Finalize ──────────────────────────────────────────────

def _finalize(day: _DayAccumulator, keep_zero_totals: bool) -> DailyRecord:
    def total(key: str) -> Optional[float]:
        value = day.totals[key]
        if keep_zero_totals:
            return value if key in day.present else None
        return value if value > 0 else None

    has_sleep = bool(day.sleep_sessions) if keep_zero_totals else day.sleep_minutes > 0
    latest_weight = _latest_sample(day.weight_samples)
    workout_by_activity = [
        WorkoutActivity(
            activity=activity,
            duration_min=entry["duration_min"],
            calories=entry["calories"] if entry["has_calories"] else None,
        )
        for activity, entry in day.by_activity.items()
        if entry["duration_min"] > 0
    ]

    return DailyRecord(
        day_key=day.day_key,
        sleep_hours=day.sleep_minutes / 60 if has_sleep else None,
        sleep_minutes=day.sleep_minutes if has_sleep else None,
        sleep_quality=mean(day.sleep_qualities),
        sleep_primary=pick_primary_sleep_session(day.sleep_sessions),
        sleep_sessions=list(day.sleep_sessions),
        workout_by_activity=workout_by_activity,
        rhr_bpm=mean(day.rhr_samples),
        weight_kg=latest_weight[1] if latest_weight else None,
        bp_systolic=mean([s[1] for s in day.bp_samples]),
        bp_diastolic=mean([s[2] for s in day.bp_samples]),
        **{key: total(key) for key in SUMMED_FIELDS},
    )


def aggregate_daily(records: Iterable[NormalizedRecord], time_zone: Optional[str], *,
                    formatter: Optional[DayKeyFormatter] = None,
                    fallback_time_zone: str = UTC_ZONE,
                    keep_zero_totals: bool = False) -> AggregationResult:
    """Reduce normalized records into a contiguous list of DailyRecord."""
    formatter = formatter or DayKeyFormatter(fallback_time_zone)
    resolved = formatter.resolve(time_zone, fallback_time_zone)
    if resolved != time_zone:
        log.warning("Invalid time zone %r, using %s", time_zone, resolved)

    day_map: Dict[str, _DayAccumulator] = {}

    def get_day(day_key: str) -> _DayAccumulator:
        day = day_map.get(day_key)
        if day is None:
            day = _DayAccumulator(day_key)
            day_map[day_key] = day
        return day

    n_ignored = 0
    for rec in records:
        if rec.type not in KNOWN_RECORD_TYPES:
            n_ignored += 1
            continue

        if rec.type == SLEEP_SESSION:
            if not rec.start or not rec.end:
                continue
            _reduce_sleep(get_day(formatter.day_key(rec.end, resolved)), rec)
            continue

        moment = rec.best_time
        if moment is None:
            continue
        _REDUCERS[rec.type](get_day(formatter.day_key(moment, resolved)), rec)

    if n_ignored:
        log.debug("Ignored %d records of unrecognized type", n_ignored)

    if not day_map:
        return AggregationResult([], None, None)

    day_keys = sorted(day_map)
    min_day_key, max_day_key = day_keys[0], day_keys[-1]
    days = [
        _finalize(day_map[k], keep_zero_totals) if k in day_map else DailyRecord(day_key=k)
        for k in day_key_range(min_day_key, max_day_key)
    ]
    log.info("Aggregated %d days (%s -> %s, %d with data)",
             len(days), min_day_key, max_day_key, len(day_keys))
    return AggregationResult(days, min_day_key, max_day_key)


# ─── Views ─────────────────────────────────────────────────

def index_days(days: Iterable[DailyRecord]) -> Dict[str, DailyRecord]:
    return {d.day_key: d for d in days}


def days_to_frame(days: Sequence[DailyRecord],
                  metric_keys: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """Numeric metric columns indexed by day_key; missing values are NaN."""
    columns = list(metric_keys or NUMERIC_DAY_FIELDS)
    rows = [[d.get(k) for k in columns] for d in days]
    index = pd.Index([d.day_key for d in days], name="day_key")
    return pd.DataFrame(rows, index=index, columns=columns, dtype=float)
