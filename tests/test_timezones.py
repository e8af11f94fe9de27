"""Tests for timezone validation, the day-key formatter cache and key arithmetic."""
from datetime import datetime, timezone

from timezones import DayKeyFormatter, add_days_to_key, day_key_range, validate_time_zone


class TestValidateTimeZone:

    def test_valid_zones(self):
        assert validate_time_zone("UTC")
        assert validate_time_zone("America/Los_Angeles")

    def test_invalid_zones(self):
        for tz in (None, "", "   ", "Mars/Olympus", "../etc/passwd", 42):
            assert not validate_time_zone(tz), tz


class TestDayKeyFormatter:

    def test_local_day_differs_from_utc(self):
        fmt = DayKeyFormatter()
        moment = datetime(2024, 1, 2, 3, 0, tzinfo=timezone.utc)
        assert fmt.day_key(moment, "UTC") == "2024-01-02"
        assert fmt.day_key(moment, "America/New_York") == "2024-01-01"
        assert fmt.day_key(moment, "Asia/Tokyo") == "2024-01-02"

    def test_invalid_zone_falls_back(self):
        fmt = DayKeyFormatter("Asia/Tokyo")
        moment = datetime(2024, 1, 1, 20, 0, tzinfo=timezone.utc)
        assert fmt.resolve("Not/AZone") == "Asia/Tokyo"
        assert fmt.day_key(moment, "Not/AZone") == "2024-01-02"

    def test_explicit_fallback_wins_over_instance_default(self):
        fmt = DayKeyFormatter("Asia/Tokyo")
        assert fmt.resolve("bogus", "Europe/London") == "Europe/London"

    def test_everything_invalid_uses_utc(self):
        fmt = DayKeyFormatter("also-bogus")
        assert fmt.resolve("bogus", "still-bogus") == "UTC"

    def test_cache_is_per_instance(self):
        a = DayKeyFormatter()
        b = DayKeyFormatter()
        a.zone("Europe/Paris")
        assert a.cached_zones == ["Europe/Paris"]
        assert b.cached_zones == []


class TestDayKeyArithmetic:

    def test_add_days_across_month_and_leap_day(self):
        assert add_days_to_key("2024-02-28", 1) == "2024-02-29"
        assert add_days_to_key("2024-03-01", -1) == "2024-02-29"
        assert add_days_to_key("2023-12-31", 1) == "2024-01-01"

    def test_range_inclusive(self):
        assert day_key_range("2024-01-30", "2024-02-02") == [
            "2024-01-30", "2024-01-31", "2024-02-01", "2024-02-02",
        ]

    def test_single_day_range(self):
        assert day_key_range("2024-01-01", "2024-01-01") == ["2024-01-01"]
