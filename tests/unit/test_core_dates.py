"""Unit tests for date and timezone helpers."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from trialist.core.dates import (
    days_between,
    epoch_millis_to_utc_date,
    format_timestamp,
    parse_local_datetime,
    parse_timezone,
    to_utc_date,
)
from tests.factories import millis


class TestParseTimezone:
    def test_known_timezone(self) -> None:
        assert parse_timezone("America/Los_Angeles") == ZoneInfo("America/Los_Angeles")

    def test_unknown_timezone_returns_none(self) -> None:
        assert parse_timezone("Mars/Olympus_Mons") is None

    def test_empty_returns_none(self) -> None:
        assert parse_timezone(None) is None
        assert parse_timezone("") is None
        assert parse_timezone("   ") is None

    def test_malformed_returns_none(self) -> None:
        assert parse_timezone("../etc/passwd") is None


class TestLocalDates:
    def test_date_only_is_local_midnight(self) -> None:
        dt = parse_local_datetime("2020-01-01", ZoneInfo("America/Los_Angeles"))
        assert dt == datetime(2020, 1, 1, 8, tzinfo=timezone.utc)

    def test_explicit_offset_is_kept(self) -> None:
        dt = parse_local_datetime("2020-01-01T00:00:00+00:00", ZoneInfo("America/Los_Angeles"))
        assert dt == datetime(2020, 1, 1, tzinfo=timezone.utc)

    def test_unparseable_returns_none(self) -> None:
        assert parse_local_datetime("January first", ZoneInfo("UTC")) is None
        assert parse_local_datetime(None, ZoneInfo("UTC")) is None

    def test_to_utc_date_west_of_utc(self) -> None:
        dt = parse_local_datetime("2020-01-01", ZoneInfo("America/Los_Angeles"))
        assert to_utc_date(dt) == date(2020, 1, 1)

    def test_to_utc_date_east_of_utc(self) -> None:
        """Local midnight east of UTC falls on the previous UTC day."""
        dt = parse_local_datetime("2020-01-01", ZoneInfo("Asia/Tokyo"))
        assert to_utc_date(dt) == date(2019, 12, 31)


class TestTimestamps:
    def test_epoch_millis_to_utc_date(self) -> None:
        assert epoch_millis_to_utc_date(millis(2020, 1, 1, 23, 59)) == date(2020, 1, 1)

    def test_format_timestamp_in_local_zone(self) -> None:
        ts = format_timestamp(millis(2020, 1, 1, 20), ZoneInfo("America/Los_Angeles"))
        assert ts == "2020-01-01T12:00:00.000-08:00"

    def test_format_timestamp_keeps_milliseconds(self) -> None:
        ts = format_timestamp(millis(2020, 6, 1) + 250, ZoneInfo("UTC"))
        assert ts == "2020-06-01T00:00:00.250Z"

    def test_zero_offset_is_written_as_z(self) -> None:
        """Any zone sitting at UTC, not just UTC itself, is rendered with Z."""
        winter = format_timestamp(millis(2020, 1, 15, 9), ZoneInfo("Europe/London"))
        summer = format_timestamp(millis(2020, 7, 15, 9), ZoneInfo("Europe/London"))
        assert winter == "2020-01-15T09:00:00.000Z"
        assert summer == "2020-07-15T10:00:00.000+01:00"

    def test_days_between(self) -> None:
        assert days_between(date(2020, 1, 1), date(2020, 2, 11)) == 41
        assert days_between(date(2020, 1, 1), date(2020, 1, 1)) == 0
