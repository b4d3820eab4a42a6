"""Tests for the due-status engine: slot matching, classification and due sections."""
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from vetmed.core.timeutil import local_slot_to_utc
from vetmed.models.administration import AdminStatus
from vetmed.models.regimen import ScheduleType
from vetmed.services.due_status import (
    DueCandidate,
    DueSection,
    Schedule,
    classify,
    compute_due_sections,
    find_closest_slot,
    status_for_delay,
)

TZ = "America/New_York"
DAY = date(2026, 6, 15)  # EDT, UTC-4


def local(hour: int, minute: int = 0) -> datetime:
    """UTC instant for a wall-clock time in New York on DAY."""
    return local_slot_to_utc(DAY, hour * 60 + minute, TZ)


FIXED = Schedule(schedule_type=ScheduleType.FIXED, times_local=("08:00", "20:00"), cutoff_minutes=240)
PRN = Schedule(schedule_type=ScheduleType.PRN)


# ---------------------------------------------------------------------------
# classify
# ---------------------------------------------------------------------------

class TestClassify:
    @pytest.mark.parametrize(
        "offset, expected",
        [
            (-30, AdminStatus.ON_TIME),
            (30, AdminStatus.ON_TIME),
            (60, AdminStatus.ON_TIME),
            (90, AdminStatus.LATE),
            (180, AdminStatus.LATE),
            (200, AdminStatus.VERY_LATE),
            (300, AdminStatus.VERY_LATE),
        ],
    )
    def test_status_thresholds(self, offset, expected):
        single = Schedule(schedule_type=ScheduleType.FIXED, times_local=("08:00",), cutoff_minutes=240)
        result = classify(local(8) + timedelta(minutes=offset), single, TZ)
        assert result.status == expected

    def test_never_produces_missed(self):
        for diff in range(0, 24 * 60, 17):
            assert status_for_delay(diff, 240) != AdminStatus.MISSED

    def test_matches_closest_slot(self):
        """19:10 is 50 min before 20:00 and 11h10m after 08:00."""
        result = classify(local(19, 10), FIXED, TZ)
        assert result.status == AdminStatus.ON_TIME
        assert result.matched_time == "20:00"
        assert result.scheduled_for == local(20)

    def test_scheduled_for_is_utc_on_local_date(self):
        result = classify(local(9, 30), FIXED, TZ)
        assert result.status == AdminStatus.LATE
        assert result.scheduled_for == datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)

    def test_tie_prefers_earlier_time(self):
        """14:00 is six hours from both slots; configured order does not matter."""
        reversed_order = Schedule(schedule_type=ScheduleType.FIXED, times_local=("20:00", "08:00"))
        assert classify(local(14), FIXED, TZ).matched_time == "08:00"
        assert classify(local(14), reversed_order, TZ).matched_time == "08:00"

    def test_prn_bypass(self):
        for hour in (0, 7, 13, 23):
            result = classify(local(hour), PRN, TZ)
            assert result.status == AdminStatus.PRN
            assert result.scheduled_for is None

    def test_provided_status_overrides(self):
        result = classify(local(14), FIXED, TZ, provided_status="LATE")
        assert result.status == AdminStatus.LATE
        assert result.scheduled_for is None

    def test_malformed_slots_are_skipped(self):
        schedule = Schedule(schedule_type=ScheduleType.FIXED, times_local=("bogus", "25:00", "20:00"))
        result = classify(local(19, 30), schedule, TZ)
        assert result.matched_time == "20:00"

    def test_no_usable_slot_falls_back_to_on_time(self):
        schedule = Schedule(schedule_type=ScheduleType.FIXED, times_local=("nope",))
        result = classify(local(10), schedule, TZ)
        assert result.status == AdminStatus.ON_TIME
        assert result.scheduled_for is None

    def test_unknown_timezone_falls_back_to_on_time(self):
        result = classify(local(10), FIXED, "Mars/Olympus_Mons")
        assert result.status == AdminStatus.ON_TIME
        assert result.scheduled_for is None

    def test_interval_is_on_time_without_slot(self):
        schedule = Schedule(schedule_type=ScheduleType.INTERVAL, interval_hours=8)
        result = classify(local(10), schedule, TZ)
        assert result.status == AdminStatus.ON_TIME
        assert result.scheduled_for is None

    def test_uses_animal_timezone(self):
        """08:00 in Los Angeles is 11:00 in New York."""
        at = local_slot_to_utc(DAY, 8 * 60, "America/Los_Angeles")
        assert classify(at, FIXED, "America/Los_Angeles").status == AdminStatus.ON_TIME
        assert classify(at, FIXED, TZ).status == AdminStatus.LATE


def test_find_closest_slot_ignores_garbage():
    assert find_closest_slot(600, ["xx", None, "09:30"]) == 570
    assert find_closest_slot(600, []) is None


def test_schedule_cutoff_defaults_to_setting(monkeypatch):
    from vetmed.core.config import settings

    regimen = SimpleNamespace(schedule_type="FIXED", times_local=["08:00"], cutoff_minutes=None, interval_hours=None)
    assert Schedule.from_regimen(regimen).cutoff_minutes == settings.DEFAULT_CUTOFF_MINUTES

    monkeypatch.setattr(settings, "DEFAULT_CUTOFF_MINUTES", 90)
    assert Schedule.from_regimen(regimen).cutoff_minutes == 90

    regimen.cutoff_minutes = 300
    assert Schedule.from_regimen(regimen).cutoff_minutes == 300


# ---------------------------------------------------------------------------
# compute_due_sections
# ---------------------------------------------------------------------------

def candidate(regimen_id: str, schedule: Schedule, **kwargs) -> DueCandidate:
    return DueCandidate(regimen_id=regimen_id, schedule=schedule, timezone=kwargs.pop("timezone", TZ), **kwargs)


class TestDueSections:
    def test_section_assignment(self):
        entries = compute_due_sections(
            [
                candidate("soon", Schedule(ScheduleType.FIXED, ("10:30",))),
                candidate("overdue", Schedule(ScheduleType.FIXED, ("08:30",))),
                candidate("later", Schedule(ScheduleType.FIXED, ("15:00",))),
                candidate("prn", PRN),
            ],
            now=local(10),
        )
        sections = {e.regimen_id: e for e in entries}
        assert sections["soon"].section == DueSection.DUE
        assert sections["soon"].minutes_until_due == 30
        assert sections["overdue"].section == DueSection.DUE
        assert sections["overdue"].minutes_until_due == -90
        assert sections["overdue"].is_overdue
        assert sections["later"].section == DueSection.LATER
        assert sections["prn"].section == DueSection.PRN

    def test_ordering(self):
        entries = compute_due_sections(
            [
                candidate("prn", PRN),
                candidate("later-far", Schedule(ScheduleType.FIXED, ("18:00",))),
                candidate("later-near", Schedule(ScheduleType.FIXED, ("12:00",))),
                candidate("due-soon", Schedule(ScheduleType.FIXED, ("10:20",))),
                candidate("due-overdue", Schedule(ScheduleType.FIXED, ("09:00",))),
                candidate("nothing", Schedule(ScheduleType.FIXED, ("06:00",))),
            ],
            now=local(10),
        )
        assert [e.regimen_id for e in entries] == [
            "due-overdue", "due-soon", "later-near", "later-far", "prn", "nothing",
        ]

    def test_upcoming_excluded_lands_in_none(self):
        entries = compute_due_sections(
            [candidate("later", Schedule(ScheduleType.FIXED, ("15:00",)))],
            now=local(10),
            include_upcoming=False,
        )
        assert entries[0].section == DueSection.NONE

    def test_fixed_slot_long_past_is_none_not_prn(self):
        entries = compute_due_sections([candidate("am", Schedule(ScheduleType.FIXED, ("06:00",)))], now=local(10))
        assert entries[0].section == DueSection.NONE

    def test_first_slot_within_lookback_is_target(self):
        entries = compute_due_sections([candidate("r", FIXED)], now=local(10))
        assert entries[0].minutes_until_due == -120
        assert entries[0].target_time == local(8)

    def test_addressed_slot_moves_to_next(self):
        entries = compute_due_sections(
            [candidate("r", FIXED, last_administered_at=local(8, 5))],
            now=local(10),
        )
        assert entries[0].section == DueSection.LATER
        assert entries[0].target_time == local(20)

    def test_filters_inactive_deleted_and_out_of_range(self):
        entries = compute_due_sections(
            [
                candidate("inactive", FIXED, active=False),
                candidate("deleted", FIXED, deleted=True),
                candidate("future", FIXED, start_date=date(2026, 7, 1)),
                candidate("ended", FIXED, end_date=date(2026, 6, 14)),
                candidate("ok", FIXED, start_date=DAY, end_date=DAY),
            ],
            now=local(10),
        )
        assert [e.regimen_id for e in entries] == ["ok"]

    def test_interval_due_when_never_given(self):
        schedule = Schedule(ScheduleType.INTERVAL, interval_hours=8)
        entries = compute_due_sections([candidate("iv", schedule)], now=local(10))
        assert entries[0].section == DueSection.DUE
        assert entries[0].minutes_until_due == 0

    def test_interval_next_dose(self):
        schedule = Schedule(ScheduleType.INTERVAL, interval_hours=8)
        entries = compute_due_sections(
            [candidate("iv", schedule, last_administered_at=local(6))],
            now=local(10),
        )
        assert entries[0].section == DueSection.LATER
        assert entries[0].minutes_until_due == 240
        assert entries[0].target_time == local(14)

    def test_bad_candidate_does_not_blank_list(self):
        entries = compute_due_sections(
            [
                candidate("bad-tz", FIXED, timezone="Nowhere/Special"),
                candidate("good", Schedule(ScheduleType.FIXED, ("10:15",))),
            ],
            now=local(10),
        )
        by_id = {e.regimen_id: e.section for e in entries}
        assert by_id == {"good": DueSection.DUE, "bad-tz": DueSection.NONE}
        assert entries[0].regimen_id == "good"

    def test_deterministic_for_same_now(self):
        regimens = [
            candidate("a", FIXED),
            candidate("b", PRN),
            candidate("c", Schedule(ScheduleType.FIXED, ("10:00", "22:00"))),
        ]
        first = [(e.regimen_id, e.section, e.minutes_until_due) for e in compute_due_sections(regimens, local(9))]
        second = [(e.regimen_id, e.section, e.minutes_until_due) for e in compute_due_sections(regimens, local(9))]
        assert first == second
