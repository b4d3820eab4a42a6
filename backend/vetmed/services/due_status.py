"""
Due-Status Engine.
Matches an administration to its FIXED schedule slot, classifies timeliness,
and groups active regimens into due / later / prn sections for the recording
screen. Pure functions: no database or network access.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Iterable, List, Optional, Tuple

from ..core.config import settings
from ..core.timeutil import (
    ensure_utc,
    format_minutes,
    local_slot_to_utc,
    minutes_between,
    minutes_since_midnight,
    parse_time_local,
    to_local,
)
from ..models.administration import AdminStatus
from ..models.regimen import ScheduleType

logger = logging.getLogger(__name__)

# Timeliness thresholds (minutes after the matched slot)
ON_TIME_WINDOW_MINUTES = 60
LATE_WINDOW_MINUTES = 180

# Due-section window around a slot
DUE_SOON_MINUTES = 60       # slot within the next hour is due now
DUE_LOOKBACK_MINUTES = 180  # slot passed less than three hours ago is still due


@dataclass(frozen=True)
class Schedule:
    schedule_type: ScheduleType
    times_local: Tuple[str, ...] = ()
    cutoff_minutes: int = settings.DEFAULT_CUTOFF_MINUTES
    interval_hours: Optional[int] = None

    @classmethod
    def from_regimen(cls, regimen) -> "Schedule":
        return cls(
            schedule_type=ScheduleType(regimen.schedule_type),
            times_local=tuple(regimen.times_local or ()),
            cutoff_minutes=regimen.cutoff_minutes if regimen.cutoff_minutes is not None else settings.DEFAULT_CUTOFF_MINUTES,
            interval_hours=regimen.interval_hours,
        )


@dataclass
class Classification:
    status: AdminStatus
    scheduled_for: Optional[datetime] = None
    matched_time: Optional[str] = None


def usable_slots(times_local: Optional[Iterable[str]]) -> List[Tuple[int, str]]:
    """Parse configured slot strings, dropping the ones that cannot be read."""
    slots = []
    for token in times_local or ():
        try:
            slots.append((parse_time_local(token), token))
        except ValueError:
            logger.warning("Skipping malformed schedule time %r", token)
    return slots


def find_closest_slot(admin_minutes: int, times_local: Optional[Iterable[str]]) -> Optional[int]:
    """
    Slot (minutes since midnight) with the smallest absolute distance to
    admin_minutes. Equidistant slots resolve to the earlier time of day.
    """
    best: Optional[Tuple[int, int]] = None
    for minutes, _token in usable_slots(times_local):
        candidate = (abs(admin_minutes - minutes), minutes)
        if best is None or candidate < best:
            best = candidate
    return best[1] if best else None


def status_for_delay(diff_minutes: int, cutoff_minutes: int) -> AdminStatus:
    if diff_minutes <= ON_TIME_WINDOW_MINUTES:
        return AdminStatus.ON_TIME
    if diff_minutes <= LATE_WINDOW_MINUTES:
        return AdminStatus.LATE
    if diff_minutes > cutoff_minutes:
        # Past the cutoff the slot should already have been marked missed by
        # the nightly job; the dose itself is still recorded as very late.
        logger.debug("Administration %d min after slot exceeds cutoff %d", diff_minutes, cutoff_minutes)
    return AdminStatus.VERY_LATE


def classify(
    administered_at: datetime,
    schedule: Schedule,
    animal_timezone: str,
    provided_status: Optional[str] = None,
) -> Classification:
    """
    Compute status and scheduled slot for an administration.

    A provided status (computed on the device while offline) replaces the
    computation and leaves scheduled_for empty.
    """
    if provided_status is not None:
        return Classification(status=AdminStatus(provided_status))

    if schedule.schedule_type == ScheduleType.PRN:
        return Classification(status=AdminStatus.PRN)

    if schedule.schedule_type != ScheduleType.FIXED:
        return Classification(status=AdminStatus.ON_TIME)

    try:
        local = to_local(administered_at, animal_timezone)
    except ValueError as exc:
        logger.warning("Cannot classify administration: %s", exc)
        return Classification(status=AdminStatus.ON_TIME)

    admin_minutes = minutes_since_midnight(local)
    slot_minutes = find_closest_slot(admin_minutes, schedule.times_local)
    if slot_minutes is None:
        return Classification(status=AdminStatus.ON_TIME)

    status = status_for_delay(admin_minutes - slot_minutes, schedule.cutoff_minutes)
    return Classification(
        status=status,
        scheduled_for=local_slot_to_utc(local.date(), slot_minutes, animal_timezone),
        matched_time=format_minutes(slot_minutes),
    )


# ── Due sections ─────────────────────────────────────────────────────────────

class DueSection(str, Enum):
    DUE = "due"        # dose expected now
    LATER = "later"    # upcoming later today
    PRN = "prn"        # as-needed medication
    NONE = "none"      # scheduled, but nothing to do right now


SECTION_ORDER = {
    DueSection.DUE: 0,
    DueSection.LATER: 1,
    DueSection.PRN: 2,
    DueSection.NONE: 3,
}


@dataclass
class DueCandidate:
    regimen_id: str
    schedule: Schedule
    timezone: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    active: bool = True
    deleted: bool = False
    last_administered_at: Optional[datetime] = None
    context: Any = None  # carried through untouched for the caller


@dataclass
class DueEntry:
    candidate: DueCandidate
    section: DueSection
    minutes_until_due: int = 0
    target_time: Optional[datetime] = None

    @property
    def regimen_id(self) -> str:
        return self.candidate.regimen_id

    @property
    def is_overdue(self) -> bool:
        return self.minutes_until_due < 0


def determine_section(minutes_until_due: int, include_upcoming: bool) -> DueSection:
    if -DUE_LOOKBACK_MINUTES < minutes_until_due < DUE_SOON_MINUTES:
        return DueSection.DUE
    if minutes_until_due >= DUE_SOON_MINUTES and include_upcoming:
        return DueSection.LATER
    return DueSection.NONE


def is_in_effect(candidate: DueCandidate, now: datetime) -> bool:
    if not candidate.active or candidate.deleted:
        return False
    try:
        local_day = to_local(now, candidate.timezone).date()
    except ValueError:
        local_day = ensure_utc(now).date()
    if candidate.start_date and candidate.start_date > local_day:
        return False
    if candidate.end_date and candidate.end_date < local_day:
        return False
    return True


def _addressed_slot(candidate: DueCandidate, local_now: datetime) -> Optional[int]:
    """Slot already covered by today's latest administration, if any."""
    if candidate.last_administered_at is None:
        return None
    last_local = to_local(candidate.last_administered_at, candidate.timezone)
    if last_local.date() != local_now.date():
        return None
    return find_closest_slot(minutes_since_midnight(last_local), candidate.schedule.times_local)


def _evaluate_fixed(candidate: DueCandidate, now: datetime, include_upcoming: bool) -> DueEntry:
    local_now = to_local(now, candidate.timezone)
    current = minutes_since_midnight(local_now)
    addressed = _addressed_slot(candidate, local_now)

    for minutes, _token in sorted(usable_slots(candidate.schedule.times_local)):
        until = minutes - current
        if until <= -DUE_LOOKBACK_MINUTES or minutes == addressed:
            continue
        return DueEntry(
            candidate=candidate,
            section=determine_section(until, include_upcoming),
            minutes_until_due=until,
            target_time=local_slot_to_utc(local_now.date(), minutes, candidate.timezone),
        )
    return DueEntry(candidate=candidate, section=DueSection.NONE)


def _evaluate_interval(candidate: DueCandidate, now: datetime, include_upcoming: bool) -> DueEntry:
    hours = candidate.schedule.interval_hours
    if not hours or hours <= 0:
        return DueEntry(candidate=candidate, section=DueSection.NONE)
    if candidate.last_administered_at is None:
        return DueEntry(candidate=candidate, section=DueSection.DUE, target_time=ensure_utc(now))

    target = ensure_utc(candidate.last_administered_at) + timedelta(hours=hours)
    until = minutes_between(now, target)
    # An interval dose never stops being due until it is given
    if until < DUE_SOON_MINUTES:
        section = DueSection.DUE
    elif include_upcoming:
        section = DueSection.LATER
    else:
        section = DueSection.NONE
    return DueEntry(candidate=candidate, section=section, minutes_until_due=until, target_time=target)


def evaluate_candidate(candidate: DueCandidate, now: datetime, include_upcoming: bool = True) -> DueEntry:
    schedule_type = candidate.schedule.schedule_type
    if schedule_type == ScheduleType.PRN:
        return DueEntry(candidate=candidate, section=DueSection.PRN)
    if schedule_type == ScheduleType.FIXED:
        return _evaluate_fixed(candidate, now, include_upcoming)
    if schedule_type == ScheduleType.INTERVAL:
        return _evaluate_interval(candidate, now, include_upcoming)
    return DueEntry(candidate=candidate, section=DueSection.NONE)


def compute_due_sections(
    candidates: Iterable[DueCandidate],
    now: datetime,
    include_upcoming: bool = True,
) -> List[DueEntry]:
    """
    Evaluate every regimen in effect at `now` and order them by urgency:
    due, later, prn, none; within a section, most overdue / soonest first.
    """
    entries: List[DueEntry] = []
    for candidate in candidates:
        try:
            if not is_in_effect(candidate, now):
                continue
            entries.append(evaluate_candidate(candidate, now, include_upcoming))
        except Exception as exc:
            logger.warning("Due status failed for regimen %s: %s", candidate.regimen_id, exc)
            entries.append(DueEntry(candidate=candidate, section=DueSection.NONE))

    entries.sort(key=lambda e: (SECTION_ORDER[e.section], e.minutes_until_due))
    return entries
