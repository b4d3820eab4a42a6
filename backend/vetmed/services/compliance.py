"""
Compliance insights - status breakdown, late-rate trend, day/hour heatmap,
and reminder suggestions for slots that are regularly late or missed.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import numpy as np
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.permissions import PERM_VIEW_HOUSEHOLD, require_household_permission
from ..core.timeutil import ensure_utc, to_local
from ..models.administration import Administration, AdminStatus
from ..models.animal import Animal

logger = logging.getLogger(__name__)

LATE_STATUSES = (AdminStatus.LATE.value, AdminStatus.VERY_LATE.value)
PROBLEM_STATUSES = LATE_STATUSES + (AdminStatus.MISSED.value,)

# Reminder suggestion thresholds
SUGGESTION_MIN_DOSES = 3
SUGGESTION_PROBLEM_PCT = 25
SUGGESTION_HIGH_PRIORITY_PCT = 40

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


@dataclass
class ComplianceRecord:
    status: str
    recorded_at: datetime
    timezone: str
    scheduled_for: Optional[datetime] = None
    regimen_id: Optional[str] = None
    animal_name: Optional[str] = None


@dataclass
class ComplianceSummary:
    total: int
    counts: Dict[str, int]
    on_time_rate: Optional[float]
    late_rate_trend: Optional[float]  # change in daily late rate per day


@dataclass
class HeatmapBucket:
    dow: int  # 0 = Sunday
    hour: int
    count: int
    late_pct: int
    missed_pct: int


@dataclass
class ReminderSuggestion:
    regimen_id: str
    dow: int
    hour: int
    problem_pct: int
    priority: str
    summary: str
    details: Dict = field(default_factory=dict)


def _linear_trend(x: List[float], y: List[float]) -> Optional[float]:
    """Return slope of the best-fit line, or None if not enough data."""
    if len(x) < 2:
        return None
    try:
        coeffs = np.polyfit(x, y, 1)
    except (ValueError, np.linalg.LinAlgError) as exc:
        logger.debug("Trend fit failed: %s", exc)
        return None
    return float(coeffs[0])


def _pct(part: int, total: int) -> int:
    return int(round(part / total * 100)) if total else 0


def _sunday_first_dow(local_dt: datetime) -> int:
    return (local_dt.weekday() + 1) % 7


def compliance_summary(records: Iterable[ComplianceRecord]) -> ComplianceSummary:
    records = list(records)
    counts = {status.value: 0 for status in AdminStatus}
    daily: Dict = defaultdict(lambda: [0, 0])  # local date -> [scheduled, late]

    for record in records:
        counts[record.status] = counts.get(record.status, 0) + 1
        if record.status == AdminStatus.PRN.value:
            continue
        day = to_local(record.recorded_at, record.timezone).date()
        daily[day][0] += 1
        if record.status in PROBLEM_STATUSES:
            daily[day][1] += 1

    scheduled = len(records) - counts[AdminStatus.PRN.value]
    on_time_rate = counts[AdminStatus.ON_TIME.value] / scheduled if scheduled else None

    days = sorted(daily)
    trend = _linear_trend(
        [float(d.toordinal()) for d in days],
        [daily[d][1] / daily[d][0] for d in days],
    )
    return ComplianceSummary(total=len(records), counts=counts, on_time_rate=on_time_rate, late_rate_trend=trend)


def _bucket_counts(records: Iterable[ComplianceRecord], key) -> Dict:
    buckets: Dict = defaultdict(lambda: {"total": 0, "late": 0, "missed": 0})
    for record in records:
        if record.scheduled_for is None:
            continue
        local = to_local(record.scheduled_for, record.timezone)
        bucket = buckets[key(record, local)]
        bucket["total"] += 1
        if record.status in LATE_STATUSES:
            bucket["late"] += 1
        elif record.status == AdminStatus.MISSED.value:
            bucket["missed"] += 1
    return buckets


def compliance_heatmap(records: Iterable[ComplianceRecord]) -> List[HeatmapBucket]:
    """Bucket scheduled doses by local day-of-week and hour of the slot."""
    buckets = _bucket_counts(records, lambda record, local: (_sunday_first_dow(local), local.hour))
    return [
        HeatmapBucket(
            dow=dow,
            hour=hour,
            count=b["total"],
            late_pct=_pct(b["late"], b["total"]),
            missed_pct=_pct(b["missed"], b["total"]),
        )
        for (dow, hour), b in sorted(buckets.items())
    ]


def reminder_suggestions(records: Iterable[ComplianceRecord], limit: int = 3) -> List[ReminderSuggestion]:
    records = list(records)
    names = {r.regimen_id: r.animal_name for r in records}
    buckets = _bucket_counts(
        records,
        lambda record, local: (record.regimen_id, _sunday_first_dow(local), local.hour),
    )

    ranked = sorted(
        (
            (key, b)
            for key, b in buckets.items()
            if b["total"] >= SUGGESTION_MIN_DOSES
        ),
        key=lambda item: (item[1]["late"] + item[1]["missed"]) / item[1]["total"],
        reverse=True,
    )

    suggestions = []
    for (regimen_id, dow, hour), b in ranked[:limit]:
        problems = b["late"] + b["missed"]
        problem_pct = _pct(problems, b["total"])
        if problem_pct < SUGGESTION_PROBLEM_PCT:
            continue
        animal = names.get(regimen_id) or "this animal"
        suggestions.append(
            ReminderSuggestion(
                regimen_id=regimen_id,
                dow=dow,
                hour=hour,
                problem_pct=problem_pct,
                priority="high" if problem_pct >= SUGGESTION_HIGH_PRIORITY_PCT else "medium",
                summary=f"Add a {hour:02d}:00 reminder for {animal} on {DAY_NAMES[dow]}s",
                details={"late_or_missed": problems, "total": b["total"], "lead_minutes": 15},
            )
        )
    return suggestions


def load_records(
    db: Session,
    user,
    household_id: str,
    animal_id: Optional[str] = None,
    regimen_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[ComplianceRecord]:
    require_household_permission(db, user, household_id, PERM_VIEW_HOUSEHOLD)
    q = (
        db.query(Administration, Animal.timezone, Animal.name)
        .join(Animal, Administration.animal_id == Animal.id)
        .filter(Administration.household_id == household_id)
    )
    if animal_id:
        q = q.filter(Administration.animal_id == animal_id)
    if regimen_id:
        q = q.filter(Administration.regimen_id == regimen_id)
    if start:
        q = q.filter(Administration.recorded_at >= ensure_utc(start))
    if end:
        q = q.filter(Administration.recorded_at <= ensure_utc(end))

    return [
        ComplianceRecord(
            status=administration.status,
            recorded_at=administration.recorded_at,
            scheduled_for=administration.scheduled_for,
            timezone=timezone_name or settings.DEFAULT_ANIMAL_TIMEZONE,
            regimen_id=administration.regimen_id,
            animal_name=animal_name,
        )
        for administration, timezone_name, animal_name in q.order_by(Administration.recorded_at).all()
    ]
