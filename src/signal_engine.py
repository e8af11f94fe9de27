"""
Health Signal Engine
====================
Runs one full analysis pass over a raw record payload. Every call
recomputes from the complete record set; nothing is cached or persisted
between calls.

Architecture (layers):
  Layer 0: Normalize.     shape-check the payload, validate records,
            collect sources, sort-order diagnostic.
  Layer 1: Aggregate.     timezone-aware daily buckets, per-metric reducers,
            contiguous gap-filled day range.
  Layer 2: Signals
            2a rolling-baseline z-score anomalies per metric,
            2b robust (median/MAD) elevated resting-HR streaks,
            2c same-day + lag-1 Pearson correlation tables.

Status semantics:
  success  : everything computed.
  degraded : computed, but on partial or thin data (see degraded_reasons).
  failed   : nothing past the failing layer was computed.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from analytics.anomalies import detect_metric_anomalies
from analytics.correlations import pairwise_correlations
from analytics.stats import finite_values, mean
from analytics.streaks import detect_elevated_streaks
from constants import SIGNAL_METRICS
from daily_aggregator import AggregationResult, DailyRecord, aggregate_daily
from record_normalizer import (
    NormalizationResult, PayloadError, normalize_and_validate_records, parse_payload,
)
from settings import AnalysisConfig
from timezones import DayKeyFormatter, validate_time_zone

log = logging.getLogger("signal_engine")

STREAK_METRIC = "rhr_bpm"


class HealthSignalEngine:
    """
    Orchestrates all layers of one analysis pass.
    Owns its DayKeyFormatter, so separate engines share no state.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None,
                 formatter: Optional[DayKeyFormatter] = None,
                 metrics: Optional[Sequence[str]] = None):
        self.config = config or AnalysisConfig()
        self.formatter = formatter or DayKeyFormatter(self.config.default_time_zone)
        self.metrics = list(metrics or SIGNAL_METRICS)

    # ─── MAIN ENTRY ────────────────────────────────────────

    def analyze(self, raw: Any, time_zone: Optional[str] = None) -> Dict[str, Any]:
        """
        Run layers 0-2 and return every output plus analysis_status metadata.

        Parameters
        ----------
        raw : str | bytes | dict | list
            JSON text, a {user?, records} object, or a bare record list.
        time_zone : str, optional
            Overrides payload user.tz. Invalid zones fall back to the
            configured default.
        """
        result: Dict[str, Any] = {
            "analysis_status": "success",
            "degraded_reasons": [],
            "errors": [],
            "warnings": [],
            "user": {},
            "time_zone": self.config.default_time_zone,
            "sources": [],
            "days": [],
            "min_day_key": None,
            "max_day_key": None,
            "anomalies": {},
            "rhr_streaks": None,
            "correlations": [],
            "lag_correlations": [],
        }

        try:
            payload = parse_payload(raw)
        except PayloadError as e:
            log.error("Rejected payload: %s", e)
            result["errors"] = [str(e)]
            return self._fail(result, "invalid_payload")

        user = payload["user"]
        result["user"] = user
        tz = self._resolve_time_zone(time_zone, user.get("tz"))
        result["time_zone"] = tz

        norm = self._layer0_normalize(payload["records"])
        result["errors"] = list(norm.errors)
        result["warnings"] = list(norm.warnings)
        result["sources"] = sorted(norm.sources)

        if norm.errors:
            if self.config.fail_on_validation_errors:
                log.warning("%d validation errors; analysis stopped before aggregation", len(norm.errors))
                return self._fail(result, "validation_errors")
            self._degrade(result, "validation_errors")

        try:
            agg = self._layer1_aggregate(norm.normalized, tz)
            result["days"] = agg.days
            result["min_day_key"] = agg.min_day_key
            result["max_day_key"] = agg.max_day_key

            if not agg.days:
                self._degrade(result, "no_days")
                log.info("   No aggregatable records; skipping signal layers")
                return result
            if len(agg.days) < self.config.baseline_min_points:
                self._degrade(result, "insufficient_daily_rows")

            result["anomalies"] = self._layer2a_anomalies(agg.days)
            result["rhr_streaks"] = self._layer2b_streaks(agg.days)
            result["correlations"], result["lag_correlations"] = self._layer2c_correlations(agg.days)
        except Exception as e:
            log.exception("Core signal layers failed: %s", e)
            result["errors"].append(f"Signal analysis failed: {e}")
            return self._fail(result, "core_layer_failure")

        if result["degraded_reasons"]:
            log.warning("Analysis status=degraded (%s)", ", ".join(result["degraded_reasons"]))
        self._log_digest(result)
        return result

    # ─── Status helpers ────────────────────────────────────

    @staticmethod
    def _degrade(result: Dict[str, Any], reason: str) -> None:
        if result["analysis_status"] == "success":
            result["analysis_status"] = "degraded"
        if reason not in result["degraded_reasons"]:
            result["degraded_reasons"].append(reason)

    @staticmethod
    def _fail(result: Dict[str, Any], reason: str) -> Dict[str, Any]:
        result["analysis_status"] = "failed"
        if reason not in result["degraded_reasons"]:
            result["degraded_reasons"].append(reason)
        return result

    def _resolve_time_zone(self, override: Optional[str], user_tz: Any) -> str:
        for candidate in (override, user_tz):
            if isinstance(candidate, str) and candidate.strip():
                if validate_time_zone(candidate.strip()):
                    return candidate.strip()
                log.warning("Unknown time zone %r, falling back to %s",
                            candidate, self.config.default_time_zone)
        return self.formatter.resolve(self.config.default_time_zone)

    # ─── LAYER 0: Normalize ────────────────────────────────

    def _layer0_normalize(self, records: List[Any]) -> NormalizationResult:
        log.info("   Layer 0: normalizing %d records…", len(records))
        norm = normalize_and_validate_records(records, self.config.sort_warning_ratio)
        log.info("   %d valid, %d errors, sources=%s",
                 len(norm.normalized), len(norm.errors), ", ".join(sorted(norm.sources)) or "none")
        return norm

    # ─── LAYER 1: Aggregate ────────────────────────────────

    def _layer1_aggregate(self, normalized, time_zone: str) -> AggregationResult:
        log.info("   Layer 1: daily aggregation (%s)…", time_zone)
        return aggregate_daily(
            normalized,
            time_zone,
            formatter=self.formatter,
            fallback_time_zone=self.config.default_time_zone,
            keep_zero_totals=self.config.keep_zero_totals,
        )

    # ─── LAYER 2a: Anomalies ───────────────────────────────

    def _layer2a_anomalies(self, days: List[DailyRecord]) -> Dict[str, List[Dict[str, Any]]]:
        """Rolling-baseline z-score anomalies for every tracked metric."""
        log.info("   Layer 2a: rolling-baseline anomalies…")
        return {m: detect_metric_anomalies(days, m, self.config) for m in self.metrics}

    # ─── LAYER 2b: Streaks ─────────────────────────────────

    def _layer2b_streaks(self, days: List[DailyRecord]) -> Dict[str, Any]:
        """Elevated resting-HR streaks against one robust whole-series threshold."""
        log.info("   Layer 2b: robust elevated streaks…")
        found = detect_elevated_streaks(days, STREAK_METRIC, self.config)
        qualifying = []
        for s in found.qualifying:
            window = days[s.start:s.end + 1]
            qualifying.append({
                **s.as_dict(),
                "start_day_key": window[0].day_key,
                "end_day_key": window[-1].day_key,
                "mean_value": mean(finite_values([d.get(STREAK_METRIC) for d in window])),
            })
        return {
            "metric": STREAK_METRIC,
            "qualifying": qualifying,
            "threshold": found.threshold,
            "baseline_median": found.baseline_median,
            "robust_sd": found.robust_sd,
        }

    # ─── LAYER 2c: Correlations ────────────────────────────

    def _layer2c_correlations(self, days: List[DailyRecord]) -> Tuple[List[Dict], List[Dict]]:
        """Same-day and lag-1 pairwise Pearson tables, ranked by |r|."""
        log.info("   Layer 2c: pairwise correlations…")
        same_day = pairwise_correlations(days, self.metrics, lag_days=0, config=self.config)
        lag1 = pairwise_correlations(days, self.metrics, lag_days=1, config=self.config)
        return same_day, lag1

    # ─── Digest ────────────────────────────────────────────

    def _log_digest(self, result: Dict[str, Any]) -> None:
        n_anomalies = sum(len(v) for v in result["anomalies"].values())
        streaks = result["rhr_streaks"] or {}
        log.info(
            "\n   COMPUTATION DIGEST (%s -> %s, %d days, tz=%s)\n"
            "   Layer 0 Normalize      : %d errors, %d warnings, %d sources\n"
            "   Layer 2a Anomalies     : %d across %d metrics\n"
            "   Layer 2b Streaks       : %d qualifying\n"
            "   Layer 2c Correlations  : %d same-day, %d lag-1\n"
            "   Status                 : %s",
            result["min_day_key"],
            result["max_day_key"],
            len(result["days"]),
            result["time_zone"],
            len(result["errors"]),
            len(result["warnings"]),
            len(result["sources"]),
            n_anomalies,
            len(result["anomalies"]),
            len(streaks.get("qualifying", [])),
            len(result["correlations"]),
            len(result["lag_correlations"]),
            result["analysis_status"],
        )
