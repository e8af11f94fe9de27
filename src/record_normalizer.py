"""
Record normalization and validation.

Turns an untrusted JSON payload into a list of NormalizedRecord values plus
per-record error strings. Validation problems are collected, never raised;
only a payload with the wrong overall shape fails fast (PayloadError).
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Set

from constants import DEFAULT_SOURCE

log = logging.getLogger("record_normalizer")

SORT_WARNING_RATIO = 0.1


class PayloadError(ValueError):
    """Raised when a payload is not JSON or not a records container."""


# ─── Coercion helpers ──────────────────────────────────────

def is_plain_object(value: Any) -> bool:
    return isinstance(value, dict)


def to_number(value: Any) -> Optional[float]:
    """Finite number or numeric string -> float; everything else -> None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            num = float(value)
        except OverflowError:
            return None
        return num if math.isfinite(num) else None
    if isinstance(value, str):
        text = value.strip()
        if not text or "_" in text:
            return None
        try:
            num = float(text)
        except ValueError:
            return None
        return num if math.isfinite(num) else None
    return None


def parse_date(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string into an aware datetime (naive -> UTC)."""
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text[-1] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ─── Payload shape ─────────────────────────────────────────

def normalize_payload(raw: Any) -> Optional[Dict[str, Any]]:
    """Accept a bare record list or {user?, records}; None for anything else."""
    if isinstance(raw, list):
        return {"user": {}, "records": raw}
    if is_plain_object(raw):
        records = raw.get("records")
        if not isinstance(records, list):
            return None
        user = raw.get("user")
        return {"user": user if is_plain_object(user) else {}, "records": records}
    return None


def parse_payload(raw: Any) -> Dict[str, Any]:
    """Decode (if needed) and shape-check a payload, failing fast."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise PayloadError(f"Payload is not valid UTF-8: {e}") from e
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except (ValueError, RecursionError) as e:
            raise PayloadError(f"Invalid JSON: {e}") from e

    payload = normalize_payload(raw)
    if payload is None:
        raise PayloadError(
            'Expected a JSON array of records or an object with a "records" array, '
            f"got {type(raw).__name__}"
        )
    return payload


# ─── Records ───────────────────────────────────────────────

@dataclass(frozen=True)
class NormalizedRecord:
    type: str
    data: Dict[str, Any]
    source: str = DEFAULT_SOURCE
    timestamp: Optional[datetime] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    index: int = field(default=0, compare=False)

    @property
    def best_time(self) -> Optional[datetime]:
        return self.timestamp or self.start or self.end


class NormalizationResult(NamedTuple):
    normalized: List[NormalizedRecord]
    errors: List[str]
    sources: Set[str]
    warnings: List[str]


def check_records_sort_order(normalized: Sequence[NormalizedRecord],
                             ratio: float = SORT_WARNING_RATIO) -> Optional[str]:
    """Warn when more than *ratio* of consecutive pairs go backwards in time."""
    if len(normalized) < 2:
        return None

    out_of_order = 0
    for prev, curr in zip(normalized, normalized[1:]):
        prev_time, curr_time = prev.best_time, curr.best_time
        if prev_time and curr_time and curr_time < prev_time:
            out_of_order += 1

    pairs = len(normalized) - 1
    pct = out_of_order / pairs
    if pct <= ratio:
        return None

    message = (
        f"Records appear unsorted: {out_of_order}/{pairs} ({pct * 100:.1f}%) are out of "
        "timestamp order. Consider sorting records chronologically for consistent results."
    )
    log.warning(message)
    return message


def normalize_and_validate_records(records: Sequence[Any],
                                   sort_warning_ratio: float = SORT_WARNING_RATIO) -> NormalizationResult:
    errors: List[str] = []
    normalized: List[NormalizedRecord] = []
    sources: Set[str] = set()

    for i, rec in enumerate(records):
        n = i + 1
        if not is_plain_object(rec):
            errors.append(f"Record #{n}: expected an object.")
            continue

        rec_type = rec.get("type")
        if not isinstance(rec_type, str) or not rec_type:
            errors.append(f'Record #{n}: missing required field "type".')
            continue

        data = rec.get("data")
        if not is_plain_object(data):
            errors.append(f'Record #{n} ({rec_type}): missing required field "data".')
            continue

        timestamp = parse_date(rec.get("timestamp"))
        start = parse_date(rec.get("start"))
        end = parse_date(rec.get("end"))

        if not timestamp and not (start and end):
            errors.append(f'Record #{n} ({rec_type}): provide either "timestamp" or both "start" and "end".')
            continue
        if start and end and end <= start:
            errors.append(f'Record #{n} ({rec_type}): "end" must be after "start".')
            continue

        source = rec.get("source")
        if not isinstance(source, str) or not source:
            source = DEFAULT_SOURCE
        sources.add(source)

        normalized.append(NormalizedRecord(
            type=rec_type,
            data=dict(data),
            source=source,
            timestamp=timestamp,
            start=start,
            end=end,
            index=i,
        ))

    warnings: List[str] = []
    sort_warning = check_records_sort_order(normalized, sort_warning_ratio)
    if sort_warning:
        warnings.append(sort_warning)

    if errors:
        log.info("Normalized %d/%d records (%d rejected)", len(normalized), len(records), len(errors))
    return NormalizationResult(normalized, errors, sources, warnings)
