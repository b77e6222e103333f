"""Recurrence - parsing the supported RFC 5545 subset and expanding occurrence windows.

Tests:
    - Rule strings and mappings parse to the same RecurrenceRule
    - Unsupported parts, bad values and unknown zones are rejected
    - Canonical rule string parses back to an equal rule
    - Window boundaries: start inclusive, end exclusive (or inclusive on request)
    - Wall-clock time survives the October DST change in Europe/Helsinki
"""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from rollcall.core.domain_types import Frequency, Weekday
from rollcall.core.errors import RecurrenceValidationError, ValidationError
from rollcall.core.recurrence import (
    RecurrenceRule, expand_occurrences, load_timezone, parse_recurrence,
)

HEL = "Europe/Helsinki"
UTC = timezone.utc

# Monday 2026-10-19, 18:00 Helsinki (EEST, UTC+3) == 15:00 UTC
MONDAY_18_LOCAL = datetime(2026, 10, 19, 18, 0, tzinfo=ZoneInfo(HEL))
MONDAY_18_UTC = datetime(2026, 10, 19, 15, 0, tzinfo=UTC)


def _weekly_monday() -> RecurrenceRule:
    return RecurrenceRule(
        dtstart=MONDAY_18_LOCAL, frequency=Frequency.WEEKLY,
        timezone=HEL, by_day=(Weekday.MO,),
    )


# ─── Parsing ────────────────────────────────────────────────────

def test_parse_plain_rule_uses_default_anchor():
    rule = parse_recurrence(
        "FREQ=WEEKLY;BYDAY=MO", timezone=HEL, default_dtstart=MONDAY_18_UTC,
    )
    assert rule.frequency == Frequency.WEEKLY
    assert rule.by_day == (Weekday.MO,)
    assert rule.interval == 1
    assert rule.count is None
    assert rule.dtstart == MONDAY_18_UTC
    assert rule.dtstart.tzinfo == ZoneInfo(HEL)


def test_parse_naive_default_anchor_is_utc():
    rule = parse_recurrence(
        "FREQ=DAILY", timezone=HEL, default_dtstart=datetime(2026, 10, 19, 15, 0),
    )
    assert rule.dtstart == MONDAY_18_UTC


def test_parse_dtstart_with_tzid():
    rule = parse_recurrence(
        "DTSTART;TZID=Europe/Helsinki:20261019T180000\nRRULE:FREQ=WEEKLY;BYDAY=MO",
        timezone=HEL,
    )
    assert rule.dtstart == MONDAY_18_UTC


def test_parse_dtstart_zulu_and_floating():
    zulu = parse_recurrence("DTSTART:20261019T150000Z\nFREQ=DAILY", timezone=HEL)
    floating = parse_recurrence("DTSTART:20261019T180000\nFREQ=DAILY", timezone=HEL)
    assert zulu.dtstart == floating.dtstart == MONDAY_18_UTC


def test_parse_mapping_matches_rule_string():
    from_mapping = parse_recurrence(
        {"freq": "WEEKLY", "byday": ["MO"], "interval": 2, "count": 4,
         "dtstart": "2026-10-19T18:00:00"},
        timezone=HEL,
    )
    from_string = parse_recurrence(
        "DTSTART;TZID=Europe/Helsinki:20261019T180000\n"
        "RRULE:FREQ=WEEKLY;INTERVAL=2;BYDAY=MO;COUNT=4",
        timezone=HEL,
    )
    assert from_mapping == from_string


def test_byday_is_deduplicated_and_ordered():
    rule = parse_recurrence(
        "FREQ=WEEKLY;BYDAY=FR,MO,FR", timezone=HEL, default_dtstart=MONDAY_18_UTC,
    )
    assert rule.by_day == (Weekday.MO, Weekday.FR)


@pytest.mark.parametrize("raw", [
    "FREQ=HOURLY",
    "FREQ=WEEKLY;BYDAY=XX",
    "FREQ=DAILY;INTERVAL=0",
    "FREQ=DAILY;COUNT=-1",
    "FREQ=DAILY;COUNT=abc",
    "FREQ=MONTHLY;BYMONTHDAY=1",
    "FREQ=DAILY;FREQ=WEEKLY",
    "BYDAY=MO",
    "FREQ",
    "",
])
def test_invalid_rules_rejected(raw):
    with pytest.raises(RecurrenceValidationError):
        parse_recurrence(raw, timezone=HEL, default_dtstart=MONDAY_18_UTC)


def test_malformed_dtstart_rejected():
    with pytest.raises(RecurrenceValidationError):
        parse_recurrence("DTSTART:2026-10-19\nFREQ=DAILY", timezone=HEL)


def test_unknown_mapping_key_rejected():
    with pytest.raises(RecurrenceValidationError):
        parse_recurrence({"freq": "DAILY", "until": "2027"}, timezone=HEL)


def test_missing_anchor_rejected():
    with pytest.raises(RecurrenceValidationError):
        parse_recurrence("FREQ=DAILY", timezone=HEL)


def test_unknown_timezone_rejected():
    with pytest.raises(RecurrenceValidationError):
        load_timezone("Mars/Olympus_Mons")


def test_recurrence_error_is_a_validation_error():
    err = RecurrenceValidationError("bad")
    assert isinstance(err, ValidationError)
    assert err.field == "recurrence"
    assert err.http_status == 400


def test_canonical_string_parses_back_to_equal_rule():
    rule = RecurrenceRule(
        dtstart=MONDAY_18_LOCAL, frequency=Frequency.WEEKLY, timezone=HEL,
        by_day=(Weekday.MO, Weekday.TH), interval=2, count=10,
    )
    text = rule.to_rule_string()
    assert text == (
        "DTSTART;TZID=Europe/Helsinki:20261019T180000\n"
        "RRULE:FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,TH;COUNT=10"
    )
    assert parse_recurrence(text, timezone=HEL) == rule


# ─── Expansion ──────────────────────────────────────────────────

def test_window_start_is_inclusive():
    hits = expand_occurrences(
        _weekly_monday(), MONDAY_18_UTC, MONDAY_18_UTC + timedelta(hours=1),
    )
    assert hits == [MONDAY_18_UTC]


def test_window_end_is_exclusive_by_default():
    hits = expand_occurrences(
        _weekly_monday(), MONDAY_18_UTC - timedelta(hours=1), MONDAY_18_UTC,
    )
    assert hits == []


def test_window_end_inclusive_on_request():
    hits = expand_occurrences(
        _weekly_monday(), MONDAY_18_UTC - timedelta(minutes=10), MONDAY_18_UTC,
        inclusive_end=True,
    )
    assert hits == [MONDAY_18_UTC]


def test_ten_minute_horizon_before_start_finds_one_occurrence():
    now = MONDAY_18_UTC - timedelta(minutes=5)
    hits = expand_occurrences(
        _weekly_monday(), now, now + timedelta(minutes=10), inclusive_end=True,
    )
    assert hits == [MONDAY_18_UTC]


def test_empty_or_inverted_window():
    rule = _weekly_monday()
    assert expand_occurrences(rule, MONDAY_18_UTC, MONDAY_18_UTC) == []
    assert expand_occurrences(rule, MONDAY_18_UTC, MONDAY_18_UTC - timedelta(days=1)) == []


def test_window_before_anchor_is_empty():
    start = MONDAY_18_UTC - timedelta(days=30)
    assert expand_occurrences(_weekly_monday(), start, start + timedelta(days=7)) == []


def test_naive_bounds_rejected():
    with pytest.raises(RecurrenceValidationError):
        expand_occurrences(_weekly_monday(), datetime(2026, 10, 19), datetime(2026, 10, 20))


def test_wall_clock_time_kept_across_dst_end():
    # Helsinki leaves summer time on 2026-10-25: 18:00 local moves from 15:00 to 16:00 UTC
    hits = expand_occurrences(
        _weekly_monday(),
        datetime(2026, 10, 19, tzinfo=UTC),
        datetime(2026, 11, 1, tzinfo=UTC),
    )
    assert hits == [
        datetime(2026, 10, 19, 15, 0, tzinfo=UTC),
        datetime(2026, 10, 26, 16, 0, tzinfo=UTC),
    ]
    assert all(h.tzinfo == UTC for h in hits)


def test_count_limits_occurrences():
    rule = RecurrenceRule(
        dtstart=MONDAY_18_LOCAL, frequency=Frequency.DAILY, timezone=HEL, count=3,
    )
    hits = expand_occurrences(
        rule, MONDAY_18_UTC - timedelta(days=1), MONDAY_18_UTC + timedelta(days=30),
    )
    assert len(hits) == 3
    assert hits == sorted(hits)


def test_interval_skips_weeks():
    rule = RecurrenceRule(
        dtstart=MONDAY_18_LOCAL, frequency=Frequency.WEEKLY, timezone=HEL,
        by_day=(Weekday.MO,), interval=2,
    )
    hits = expand_occurrences(
        rule, datetime(2026, 11, 1, tzinfo=UTC), datetime(2026, 11, 30, tzinfo=UTC),
    )
    # 2026-11-30 18:00 local is past the window end
    assert [h.day for h in hits] == [2, 16]
