from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from ..core.security import get_current_user
from ..models.base import get_db
from ..schemas import RecordAdministrationRequest
from ..services import administrations as administration_service

router = APIRouter(prefix="/administrations", tags=["administrations"])


class AdministrationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    regimen_id: str
    animal_id: str
    household_id: str
    caregiver_id: str
    recorded_at: datetime
    scheduled_for: Optional[datetime]
    status: str
    source_item_id: Optional[str]
    dose: Optional[str]
    site: Optional[str]
    notes: Optional[str]
    adverse_event: bool
    co_sign_user_id: Optional[str]
    co_signed_at: Optional[datetime]
    idempotency_key: str


@router.post("", response_model=AdministrationResponse, status_code=status.HTTP_201_CREATED)
def record_administration(
    req: RecordAdministrationRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    """Record a dose. Replaying the same idempotency key returns the original record."""
    return administration_service.record_administration(db, current_user, req)


@router.get("", response_model=List[AdministrationResponse])
def list_administrations(
    household_id: str,
    animal_id: Optional[str] = None,
    start: Optional[datetime] = Query(None, description="Recorded at or after"),
    end: Optional[datetime] = Query(None, description="Recorded at or before"),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return administration_service.list_administrations(
        db, current_user, household_id, animal_id=animal_id, start=start, end=end, limit=limit
    )
