from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from ..core.security import get_current_user
from ..core.timeutil import ensure_utc, utcnow
from ..models.base import get_db
from ..services import regimens as regimen_service

router = APIRouter(prefix="/regimens", tags=["regimens"])


class RegimenResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    animal_id: str
    medication_id: str
    name: Optional[str]
    schedule_type: str
    times_local: Optional[List[str]]
    interval_hours: Optional[int]
    start_date: date
    end_date: Optional[date]
    cutoff_minutes: int
    high_risk: bool
    requires_co_sign: bool
    active: bool
    dose: Optional[str]
    route: Optional[str]
    instructions: Optional[str]
    prn_reason: Optional[str]


class DueRegimenResponse(BaseModel):
    regimen: RegimenResponse
    animal_name: str
    medication_name: str
    section: str
    minutes_until_due: int
    target_time: Optional[datetime]
    is_overdue: bool


@router.get("", response_model=List[RegimenResponse])
def list_regimens(
    household_id: str,
    animal_id: Optional[str] = None,
    active_only: bool = True,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return regimen_service.list_regimens(db, current_user, household_id, animal_id=animal_id, active_only=active_only)


@router.get("/due", response_model=List[DueRegimenResponse])
def list_due(
    household_id: str,
    animal_id: Optional[str] = None,
    include_upcoming: bool = True,
    at: Optional[datetime] = Query(None, description="Evaluate as of this instant (defaults to now)"),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    """Active regimens grouped into due / later / prn / none, most urgent first."""
    now = ensure_utc(at) if at else utcnow()
    entries = regimen_service.list_due(
        db, current_user, household_id, now, animal_id=animal_id, include_upcoming=include_upcoming
    )
    results = []
    for entry in entries:
        regimen = entry.candidate.context
        medication = regimen.medication
        results.append(
            DueRegimenResponse(
                regimen=RegimenResponse.model_validate(regimen),
                animal_name=regimen.animal.name,
                medication_name=(medication.brand_name or medication.generic_name) if medication else "",
                section=entry.section.value,
                minutes_until_due=entry.minutes_until_due,
                target_time=entry.target_time,
                is_overdue=entry.is_overdue,
            )
        )
    return results
