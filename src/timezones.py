"""
Timezone handling for day keys.

A day key is the local calendar date (YYYY-MM-DD) of an instant in a given
IANA zone. Zone lookups are memoized per DayKeyFormatter instance; callers
construct one and pass it down instead of sharing a module-level cache.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

log = logging.getLogger("timezones")

UTC_ZONE = "UTC"


def validate_time_zone(time_zone: Optional[str]) -> bool:
    """True when *time_zone* names a zone the tz database can load."""
    if not isinstance(time_zone, str) or not time_zone.strip():
        return False
    try:
        ZoneInfo(time_zone)
        return True
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        log.debug("validate_time_zone(%r) failed: %s", time_zone, e)
        return False


class DayKeyFormatter:
    """Maps aware datetimes to local day keys, caching ZoneInfo per zone name."""

    def __init__(self, fallback_time_zone: str = UTC_ZONE):
        self.fallback_time_zone = fallback_time_zone
        self._zones: Dict[str, ZoneInfo] = {}

    def resolve(self, time_zone: Optional[str], fallback_time_zone: Optional[str] = None) -> str:
        """Return the first valid zone of time_zone, the fallback, then UTC."""
        for candidate in (time_zone, fallback_time_zone, self.fallback_time_zone):
            if candidate is None:
                continue
            if candidate in self._zones or validate_time_zone(candidate):
                return candidate
        return UTC_ZONE

    def zone(self, time_zone: Optional[str], fallback_time_zone: Optional[str] = None) -> ZoneInfo:
        name = self.resolve(time_zone, fallback_time_zone)
        tz = self._zones.get(name)
        if tz is None:
            tz = ZoneInfo(name)
            self._zones[name] = tz
        return tz

    def day_key(self, moment: datetime, time_zone: Optional[str],
                fallback_time_zone: Optional[str] = None) -> str:
        return moment.astimezone(self.zone(time_zone, fallback_time_zone)).date().isoformat()

    @property
    def cached_zones(self) -> List[str]:
        return sorted(self._zones)


def add_days_to_key(day_key: str, days: int) -> str:
    return (date.fromisoformat(day_key) + timedelta(days=days)).isoformat()


def day_key_range(min_day_key: str, max_day_key: str) -> List[str]:
    """Every day key from min to max inclusive."""
    start = date.fromisoformat(min_day_key)
    end = date.fromisoformat(max_day_key)
    return [(start + timedelta(days=i)).isoformat() for i in range((end - start).days + 1)]
