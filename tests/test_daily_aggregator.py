"""
Tests for daily aggregation.

Covers: sleep end-day attribution, per-type reducers, latest-wins weight,
averaged vitals, gap filling / contiguity, timezone bucketing, the
zero-vs-missing switch, and the DataFrame view.
"""
from datetime import date

import pandas as pd
import pytest

from constants import KG_PER_LB
from daily_aggregator import (
    DailyRecord,
    aggregate_daily,
    days_to_frame,
    index_days,
    pick_primary_sleep_session,
)
from record_normalizer import normalize_and_validate_records


def _agg(records, tz="UTC", **kw):
    norm = normalize_and_validate_records(records)
    assert norm.errors == []
    return aggregate_daily(norm.normalized, tz, **kw)


def _sleep(start, end, **data):
    return {"type": "sleep_session", "start": start, "end": end, "data": data}


def _event(rec_type, ts, **data):
    return {"type": rec_type, "timestamp": ts, "data": data}


# ─── Sleep ────────────────────────────────────────────────────


class TestSleep:

    def test_attributed_to_end_day(self):
        out = _agg([_sleep("2024-01-01T23:00:00Z", "2024-01-02T06:00:00Z")])
        assert [d.day_key for d in out.days] == ["2024-01-02"]
        assert out.days[0].sleep_hours == pytest.approx(7.0)
        assert out.days[0].sleep_minutes == pytest.approx(420.0)

    def test_start_day_has_no_sleep_when_in_range(self):
        out = _agg([
            _event("steps", "2024-01-01T12:00:00Z", count=500),
            _sleep("2024-01-01T23:00:00Z", "2024-01-02T06:00:00Z"),
        ])
        by_key = index_days(out.days)
        assert by_key["2024-01-01"].sleep_hours is None
        assert by_key["2024-01-02"].sleep_hours == pytest.approx(7.0)

    def test_sessions_sum_and_quality_averages(self):
        out = _agg([
            _sleep("2024-01-01T23:00:00Z", "2024-01-02T05:00:00Z", quality=80),
            _sleep("2024-01-02T13:00:00Z", "2024-01-02T14:30:00Z", quality="60"),
        ])
        day = out.days[0]
        assert day.sleep_hours == pytest.approx(7.5)
        assert day.sleep_quality == pytest.approx(70.0)
        assert len(day.sleep_sessions) == 2
        assert day.sleep_primary.duration_min == pytest.approx(360.0)

    def test_stage_detail_retained(self):
        out = _agg([_sleep("2024-01-01T23:00:00Z", "2024-01-02T06:00:00Z",
                           respiration_rpm=14.5,
                           stages={"wake": 20, "rem": 90, "core": 220, "deep": -5})])
        session = out.days[0].sleep_primary
        assert session.respiration_rpm == 14.5
        assert session.stages_min == {"awake": 20.0, "rem": 90.0, "light": 220.0, "deep": 0.0}

    def test_empty_stages_dropped(self):
        out = _agg([_sleep("2024-01-01T23:00:00Z", "2024-01-02T06:00:00Z", stages_min={"rem": 0})])
        assert out.days[0].sleep_primary.stages_min is None

    def test_sleep_uses_local_end_day(self):
        # 06:00Z on Jan 2 is still Jan 1 in Los Angeles
        out = _agg([_sleep("2024-01-01T20:00:00Z", "2024-01-02T06:00:00Z")], tz="America/Los_Angeles")
        assert out.days[0].day_key == "2024-01-01"


class TestPrimarySession:

    def test_tie_goes_to_earliest_start(self):
        out = _agg([
            _sleep("2024-01-02T13:00:00Z", "2024-01-02T15:00:00Z"),
            _sleep("2024-01-02T01:00:00Z", "2024-01-02T03:00:00Z"),
        ])
        assert out.days[0].sleep_primary.start.hour == 1

    def test_no_sessions(self):
        assert pick_primary_sleep_session([]) is None


# ─── Sums ─────────────────────────────────────────────────────


class TestSummedFields:

    def test_nutrition_sums(self):
        out = _agg([
            _event("nutrition", "2024-01-01T08:00:00Z", calories=500, carbs_g=60, protein_g=20, fat_g=10, sugar_g=12),
            _event("nutrition", "2024-01-01T19:00:00Z", calories="700", protein_g=40, sugar_g="bad"),
        ])
        day = out.days[0]
        assert day.calories == 1200
        assert day.carbs_g == 60
        assert day.protein_g == 60
        assert day.fat_g == 10
        assert day.sugar_g == 12

    def test_steps_sum(self):
        out = _agg([
            _event("steps", "2024-01-01T08:00:00Z", count=3000),
            _event("steps", "2024-01-01T18:00:00Z", count="2500"),
        ])
        assert out.days[0].steps == 5500

    def test_nutrition_uses_start_when_no_timestamp(self):
        rec = {"type": "nutrition", "start": "2024-01-03T12:00:00Z", "end": "2024-01-03T12:30:00Z",
               "data": {"calories": 300}}
        out = _agg([rec])
        assert out.days[0].day_key == "2024-01-03"
        assert out.days[0].calories == 300


class TestWorkouts:

    def test_load_uses_intensity_factor(self):
        out = _agg([
            _event("workout", "2024-01-01T07:00:00Z", duration_min=40, intensity="hard", calories=400, activity="Run"),
            _event("workout", "2024-01-01T18:00:00Z", duration_min=30, intensity="easy", activity="Yoga"),
            _event("workout", "2024-01-01T20:00:00Z", duration_min=20, activity="Run"),
        ])
        day = out.days[0]
        assert day.workout_minutes == 90
        assert day.workout_calories == 400
        assert day.workout_load == pytest.approx(40 * 1.35 + 30 * 0.8 + 20 * 1.0)

    def test_activity_breakdown(self):
        out = _agg([
            _event("workout", "2024-01-01T07:00:00Z", duration_min=40, calories=400, activity=" Run "),
            _event("workout", "2024-01-01T20:00:00Z", duration_min=20, activity="Run"),
            _event("workout", "2024-01-01T21:00:00Z", duration_min=15),
        ])
        breakdown = {w.activity: w for w in out.days[0].workout_by_activity}
        assert breakdown["Run"].duration_min == 60
        assert breakdown["Run"].calories == 400
        assert breakdown["Workout"].duration_min == 15
        assert breakdown["Workout"].calories is None

    def test_duration_from_start_end(self):
        rec = {"type": "workout", "start": "2024-01-01T07:00:00Z", "end": "2024-01-01T07:45:00Z",
               "data": {"intensity": "moderate"}}
        out = _agg([rec])
        assert out.days[0].workout_minutes == pytest.approx(45.0)
        assert out.days[0].workout_load == pytest.approx(45.0)

    def test_intensity_matched_case_insensitively(self):
        out = _agg([
            _event("workout", "2024-01-01T07:00:00Z", duration_min=20, intensity="Hard"),
            _event("workout", "2024-01-01T18:00:00Z", duration_min=10, intensity=" EASY "),
        ])
        assert out.days[0].workout_load == pytest.approx(20 * 1.35 + 10 * 0.8)

    def test_unknown_intensity_defaults_to_one(self):
        out = _agg([_event("workout", "2024-01-01T07:00:00Z", duration_min=30, intensity="brutal")])
        assert out.days[0].workout_load == pytest.approx(30.0)


# ─── Vitals ───────────────────────────────────────────────────


class TestVitals:

    def test_weight_latest_wins(self):
        out = _agg([
            _event("weight", "2024-01-01T18:00:00Z", kg=71),
            _event("weight", "2024-01-01T09:00:00Z", kg=70),
        ])
        assert out.days[0].weight_kg == 71

    def test_weight_in_pounds(self):
        out = _agg([_event("weight", "2024-01-01T09:00:00Z", lb=154)])
        assert out.days[0].weight_kg == pytest.approx(154 * KG_PER_LB)

    def test_rhr_averaged(self):
        out = _agg([
            _event("resting_heart_rate", "2024-01-01T06:00:00Z", bpm=60),
            _event("resting_heart_rate", "2024-01-01T22:00:00Z", bpm=64),
        ])
        assert out.days[0].rhr_bpm == pytest.approx(62.0)

    def test_bp_averaged_and_requires_both_parts(self):
        out = _agg([
            _event("blood_pressure", "2024-01-01T08:00:00Z", systolic=120, diastolic=80),
            _event("blood_pressure", "2024-01-01T20:00:00Z", systolic=130, diastolic=90),
            _event("blood_pressure", "2024-01-01T21:00:00Z", systolic=180),
        ])
        day = out.days[0]
        assert day.bp_systolic == pytest.approx(125.0)
        assert day.bp_diastolic == pytest.approx(85.0)


# ─── Range and gaps ───────────────────────────────────────────


class TestRange:

    def test_empty_input(self):
        out = aggregate_daily([], "UTC")
        assert out.days == [] and out.min_day_key is None and out.max_day_key is None

    def test_gap_days_materialized(self):
        out = _agg([
            _event("steps", "2024-01-01T12:00:00Z", count=100),
            _event("steps", "2024-01-05T12:00:00Z", count=200),
        ])
        keys = [d.day_key for d in out.days]
        assert keys == ["2024-01-01", "2024-01-02", "2024-01-03", "2024-01-04", "2024-01-05"]
        assert out.min_day_key == "2024-01-01" and out.max_day_key == "2024-01-05"
        gap = out.days[2]
        assert gap.steps is None and gap.sleep_hours is None and gap.weight_kg is None

    def test_keys_contiguous_strictly_increasing(self):
        out = _agg([
            _event("steps", "2024-02-27T12:00:00Z", count=1),
            _event("steps", "2024-03-02T12:00:00Z", count=1),
            _event("steps", "2024-02-29T12:00:00Z", count=1),
        ])
        keys = [date.fromisoformat(d.day_key) for d in out.days]
        assert all((b - a).days == 1 for a, b in zip(keys, keys[1:]))
        assert len(set(keys)) == len(keys)

    def test_unknown_types_do_not_open_days(self):
        out = _agg([
            _event("mood", "2023-12-25T12:00:00Z", score=3),
            _event("steps", "2024-01-01T12:00:00Z", count=100),
        ])
        assert [d.day_key for d in out.days] == ["2024-01-01"]

    def test_invalid_time_zone_falls_back(self):
        out = _agg([_event("steps", "2024-01-01T23:30:00Z", count=10)], tz="Nowhere/Land",
                   fallback_time_zone="Asia/Tokyo")
        assert out.days[0].day_key == "2024-01-02"

    def test_timezone_bucketing(self):
        records = [
            _event("steps", "2024-01-01T23:30:00Z", count=10),
            _event("steps", "2024-01-02T00:30:00Z", count=20),
        ]
        assert len(_agg(records, tz="UTC").days) == 2
        tokyo = _agg(records, tz="Asia/Tokyo")
        assert [d.day_key for d in tokyo.days] == ["2024-01-02"]
        assert tokyo.days[0].steps == 30


class TestZeroVersusMissing:

    def test_zero_total_is_missing_by_default(self):
        out = _agg([_event("steps", "2024-01-01T12:00:00Z", count=0)])
        assert out.days[0].steps is None

    def test_keep_zero_totals(self):
        out = _agg([
            _event("steps", "2024-01-01T12:00:00Z", count=0),
            _event("steps", "2024-01-03T12:00:00Z", count=10),
        ], keep_zero_totals=True)
        assert out.days[0].steps == 0.0
        assert out.days[0].calories is None
        assert out.days[1].steps is None


# ─── Views ────────────────────────────────────────────────────


class TestViews:

    def test_days_to_frame(self):
        out = _agg([
            _event("steps", "2024-01-01T12:00:00Z", count=100),
            _event("steps", "2024-01-03T12:00:00Z", count=300),
        ])
        frame = days_to_frame(out.days, ["steps", "rhr_bpm"])
        assert list(frame.index) == ["2024-01-01", "2024-01-02", "2024-01-03"]
        assert frame.loc["2024-01-03", "steps"] == 300
        assert pd.isna(frame.loc["2024-01-02", "steps"])
        assert frame["rhr_bpm"].isna().all()

    def test_get_unknown_metric(self):
        assert DailyRecord(day_key="2024-01-01").get("nope") is None

    def test_as_dict_is_json_shaped(self):
        out = _agg([_sleep("2024-01-01T23:00:00Z", "2024-01-02T06:00:00Z", quality=90)])
        d = out.days[0].as_dict()
        assert d["day_key"] == "2024-01-02"
        assert d["sleep_hours"] == pytest.approx(7.0)
        assert d["sleep_primary"]["end"] == "2024-01-02T06:00:00+00:00"
        assert d["workout_by_activity"] == []
