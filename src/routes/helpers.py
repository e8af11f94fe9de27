"""
Shared helpers for API routes and the CLI.
Contains: JSON-safe conversion of analysis results.
"""

from __future__ import annotations

import math
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import numpy as np


def _to_jsonable(value: Any) -> Any:
    """Recursively convert engine output into plain JSON types.

    Dataclasses with an as_dict() use it; sets become sorted lists;
    NaN/inf become None.
    """
    if value is None or isinstance(value, (str, bool)):
        return value
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating, Decimal)):
        num = float(value)
        return num if math.isfinite(num) else None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if hasattr(value, "as_dict") and callable(value.as_dict):
        return _to_jsonable(value.as_dict())
    if is_dataclass(value) and not isinstance(value, type):
        return _to_jsonable(asdict(value))
    if isinstance(value, dict):
        return {str(k): _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (set, frozenset)):
        return [_to_jsonable(v) for v in sorted(value)]
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(v) for v in value]
    return str(value)
