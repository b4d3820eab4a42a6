from datetime import date, datetime, timezone

import pytest

from vetmed.core.timeutil import (
    ensure_utc,
    format_minutes,
    local_slot_to_utc,
    minutes_between,
    minutes_since_midnight,
    parse_time_local,
    to_local,
)


@pytest.mark.parametrize("token, minutes", [("00:00", 0), ("08:00", 480), ("20:15", 1215), ("23:59:59", 1439)])
def test_parse_time_local(token, minutes):
    assert parse_time_local(token) == minutes


@pytest.mark.parametrize("token", ["", "8", "24:00", "12:60", "ab:cd", "12:00:61", "1:2:3:4", None])
def test_parse_time_local_rejects_garbage(token):
    with pytest.raises(ValueError):
        parse_time_local(token)


def test_naive_instants_are_utc():
    naive = datetime(2026, 6, 15, 12, 0)
    assert ensure_utc(naive) == datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)
    assert minutes_since_midnight(to_local(naive, "America/New_York")) == 8 * 60


def test_unknown_timezone_raises_value_error():
    with pytest.raises(ValueError):
        to_local(datetime(2026, 6, 15, tzinfo=timezone.utc), "Not/AZone")


def test_local_slot_to_utc_follows_dst():
    winter = local_slot_to_utc(date(2026, 1, 15), 8 * 60, "America/New_York")
    summer = local_slot_to_utc(date(2026, 7, 15), 8 * 60, "America/New_York")
    assert winter.hour == 13
    assert summer.hour == 12


def test_minutes_between_floors():
    start = datetime(2026, 6, 15, 12, 0, 30, tzinfo=timezone.utc)
    end = datetime(2026, 6, 15, 12, 0, 0, tzinfo=timezone.utc)
    assert minutes_between(start, end) == -1
    assert minutes_between(end, start) == 0


def test_format_minutes():
    assert format_minutes(485) == "08:05"
