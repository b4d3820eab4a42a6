"""Compliance insights: summary, day/hour heatmap and reminder suggestions."""
from dataclasses import asdict
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..core.security import get_current_user
from ..models.base import get_db
from ..services import compliance

router = APIRouter(prefix="/insights", tags=["insights"])


class ComplianceSummaryResponse(BaseModel):
    total: int
    counts: Dict[str, int]
    on_time_rate: Optional[float]
    late_rate_trend: Optional[float]


class HeatmapBucketResponse(BaseModel):
    dow: int
    hour: int
    count: int
    late_pct: int
    missed_pct: int


class SuggestionResponse(BaseModel):
    regimen_id: str
    dow: int
    hour: int
    problem_pct: int
    priority: str
    summary: str
    details: Dict


@router.get("/compliance", response_model=ComplianceSummaryResponse)
def compliance_summary(
    household_id: str,
    animal_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    records = compliance.load_records(db, current_user, household_id, animal_id=animal_id, start=start, end=end)
    return asdict(compliance.compliance_summary(records))


@router.get("/heatmap", response_model=List[HeatmapBucketResponse])
def compliance_heatmap(
    household_id: str,
    animal_id: Optional[str] = None,
    regimen_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    records = compliance.load_records(
        db, current_user, household_id, animal_id=animal_id, regimen_id=regimen_id, start=start, end=end
    )
    return [asdict(b) for b in compliance.compliance_heatmap(records)]


@router.get("/suggestions", response_model=List[SuggestionResponse])
def reminder_suggestions(
    household_id: str,
    start: Optional[datetime] = None,
    limit: int = Query(3, ge=1, le=10),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    records = compliance.load_records(db, current_user, household_id, start=start)
    return [asdict(s) for s in compliance.reminder_suggestions(records, limit=limit)]
