"""
Temporal normalizer tests

Covers date-only normalization, offset-carrying timestamps and the
lenient fallback used by the resource builders.
"""
import logging
import time
from datetime import datetime, timedelta, timezone

import pytest

from document_assembler.errors import FormatError
from document_assembler.temporal import (
    format_timestamp,
    normalize_date,
    normalize_timestamp,
    parse_date_strict,
    parse_timestamp,
)

from conftest import FIXED_NOW, FIXED_NOW_TEXT


@pytest.fixture
def local_zone(monkeypatch):
    """Switch the process-local time zone (POSIX TZ strings)."""
    def _set(tz: str):
        monkeypatch.setenv("TZ", tz)
        time.tzset()

    yield _set
    monkeypatch.undo()
    time.tzset()


class TestNormalizeDate:
    """Date-only normalization to YYYY-MM-DD."""

    @pytest.mark.parametrize("raw,expected", [
        ("1990-06-15", "1990-06-15"),
        ("15-06-1990", "1990-06-15"),
        ("15/06/1990", "1990-06-15"),
        ("5/6/1990", "1990-06-05"),
        (" 01-12-2001 ", "2001-12-01"),
    ])
    def test_recognized_formats(self, raw, expected):
        assert normalize_date(raw) == expected

    @pytest.mark.parametrize("raw", [
        "",
        "   ",
        None,
        "15.06.1990",
        "1990/06/15",
        "15-06/1990",
        "June 15 1990",
        "31-02-2020",
    ])
    def test_unrecognized_returns_none(self, raw):
        assert normalize_date(raw) is None

    def test_strict_parser_raises(self):
        with pytest.raises(FormatError):
            parse_date_strict("not a date")

    def test_unparseable_date_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="document_assembler.temporal"):
            normalize_date("99-99-9999")
        assert "unparseable date" in caplog.text


class TestFormatTimestamp:
    """Rendering YYYY-MM-DDTHH:MM:SS±HH:MM."""

    def test_positive_offset(self):
        assert format_timestamp(FIXED_NOW) == FIXED_NOW_TEXT

    def test_negative_offset_with_minutes(self):
        newfoundland = timezone(-timedelta(hours=3, minutes=30))
        moment = datetime(2023, 11, 2, 8, 5, 9, tzinfo=newfoundland)
        assert format_timestamp(moment) == "2023-11-02T08:05:09-03:30"

    def test_utc_offset(self):
        moment = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
        assert format_timestamp(moment) == "2024-01-01T00:00:00+00:00"

    def test_microseconds_are_dropped(self):
        moment = FIXED_NOW.replace(microsecond=987654)
        assert format_timestamp(moment) == FIXED_NOW_TEXT

    @pytest.mark.skipif(not hasattr(time, "tzset"), reason="requires time.tzset")
    def test_naive_uses_local_positive_offset(self, local_zone):
        local_zone("IST-05:30")
        assert format_timestamp(datetime(2024, 1, 15, 10, 0, 0)) == "2024-01-15T10:00:00+05:30"

    @pytest.mark.skipif(not hasattr(time, "tzset"), reason="requires time.tzset")
    def test_naive_uses_local_negative_offset(self, local_zone):
        local_zone("EST+05:00")
        assert format_timestamp(datetime(2024, 1, 15, 10, 0, 0)) == "2024-01-15T10:00:00-05:00"


class TestTimestampRoundTrip:
    """normalize(parse(normalize(x))) == normalize(x)."""

    @pytest.mark.parametrize("moment", [
        FIXED_NOW,
        datetime(2020, 2, 29, 23, 59, 59, tzinfo=timezone(timedelta(hours=-8))),
        datetime(1999, 12, 31, 0, 0, 1, 500, tzinfo=timezone(timedelta(hours=12, minutes=45))),
        datetime(2024, 7, 1, 12, 0, 0, tzinfo=timezone.utc),
    ])
    def test_round_trip(self, moment):
        text = format_timestamp(moment)
        assert format_timestamp(parse_timestamp(text)) == text

    @pytest.mark.skipif(not hasattr(time, "tzset"), reason="requires time.tzset")
    def test_round_trip_of_naive_local_time(self, local_zone):
        local_zone("EST+05:00")
        text = format_timestamp(datetime(2024, 1, 15, 10, 0, 0))
        reparsed = parse_timestamp(text)
        assert reparsed.hour == 10
        assert format_timestamp(reparsed) == text

    def test_parse_rejects_garbage(self):
        with pytest.raises(FormatError):
            parse_timestamp("yesterday")


class TestNormalizeTimestamp:
    """Lenient normalization with build-time fallback."""

    def test_empty_defaults_to_now(self):
        assert normalize_timestamp(None, FIXED_NOW) == FIXED_NOW_TEXT
        assert normalize_timestamp("", FIXED_NOW) == FIXED_NOW_TEXT

    def test_date_only_takes_time_of_now(self):
        assert normalize_timestamp("2024-01-05", FIXED_NOW) == "2024-01-05T14:30:15+05:30"
        assert normalize_timestamp("05-01-2024", FIXED_NOW) == "2024-01-05T14:30:15+05:30"

    def test_datetime_keeps_its_offset(self):
        assert normalize_timestamp("2024-01-05T09:15:00-04:00", FIXED_NOW) == "2024-01-05T09:15:00-04:00"

    def test_zulu_suffix(self):
        assert normalize_timestamp("2024-01-05T09:15:00Z", FIXED_NOW) == "2024-01-05T09:15:00+00:00"

    def test_unparseable_falls_back_to_now(self, caplog):
        with caplog.at_level(logging.WARNING, logger="document_assembler.temporal"):
            assert normalize_timestamp("next tuesday", FIXED_NOW) == FIXED_NOW_TEXT
            assert normalize_timestamp("2024-13-45T99:00", FIXED_NOW) == FIXED_NOW_TEXT
        assert "Falling back to build time" in caplog.text

    @pytest.mark.skipif(not hasattr(time, "tzset"), reason="requires time.tzset")
    def test_date_only_uses_local_offset_on_that_date(self, local_zone):
        local_zone("EST+05EDT,M3.2.0,M11.1.0")
        winter_now = datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone(timedelta(hours=-5)))

        assert normalize_timestamp("2024-07-01", winter_now) == "2024-07-01T10:00:00-04:00"
        assert normalize_timestamp("2024-02-01", winter_now) == "2024-02-01T10:00:00-05:00"

    @pytest.mark.skipif(not hasattr(time, "tzset"), reason="requires time.tzset")
    def test_date_only_keeps_offset_of_foreign_clock(self, local_zone):
        local_zone("EST+05EDT,M3.2.0,M11.1.0")
        assert normalize_timestamp("2024-07-01", FIXED_NOW) == "2024-07-01T14:30:15+05:30"
