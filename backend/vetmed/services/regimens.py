import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.permissions import PERM_VIEW_HOUSEHOLD, require_household_permission
from ..models.administration import Administration
from ..models.animal import Animal
from ..models.regimen import Regimen
from .due_status import DueCandidate, DueEntry, Schedule, compute_due_sections

logger = logging.getLogger(__name__)


def _household_regimens(db: Session, household_id: str, animal_id: Optional[str] = None):
    q = (
        db.query(Regimen)
        .join(Animal, Regimen.animal_id == Animal.id)
        .filter(
            Animal.household_id == household_id,
            Animal.deleted_at.is_(None),
            Regimen.deleted_at.is_(None),
        )
    )
    if animal_id:
        q = q.filter(Regimen.animal_id == animal_id)
    return q


def list_regimens(
    db: Session,
    user,
    household_id: str,
    animal_id: Optional[str] = None,
    active_only: bool = True,
) -> List[Regimen]:
    require_household_permission(db, user, household_id, PERM_VIEW_HOUSEHOLD)
    q = _household_regimens(db, household_id, animal_id)
    if active_only:
        q = q.filter(Regimen.active.is_(True))
    return q.order_by(Regimen.created_at.asc()).all()


def _latest_administrations(db: Session, regimen_ids: List[str]) -> dict:
    if not regimen_ids:
        return {}
    rows = (
        db.query(Administration.regimen_id, func.max(Administration.recorded_at))
        .filter(Administration.regimen_id.in_(regimen_ids))
        .group_by(Administration.regimen_id)
        .all()
    )
    return {regimen_id: latest for regimen_id, latest in rows}


def list_due(
    db: Session,
    user,
    household_id: str,
    now: datetime,
    animal_id: Optional[str] = None,
    include_upcoming: bool = True,
) -> List[DueEntry]:
    """Active regimens of the household grouped and ordered by what is due at `now`."""
    require_household_permission(db, user, household_id, PERM_VIEW_HOUSEHOLD)
    regimens = _household_regimens(db, household_id, animal_id).filter(Regimen.active.is_(True)).all()
    latest = _latest_administrations(db, [r.id for r in regimens])

    candidates = []
    for regimen in regimens:
        try:
            schedule = Schedule.from_regimen(regimen)
        except ValueError:
            logger.warning("Regimen %s has unknown schedule type %r", regimen.id, regimen.schedule_type)
            continue
        candidates.append(
            DueCandidate(
                regimen_id=regimen.id,
                schedule=schedule,
                timezone=regimen.animal.timezone or settings.DEFAULT_ANIMAL_TIMEZONE,
                start_date=regimen.start_date,
                end_date=regimen.end_date,
                active=regimen.active,
                deleted=regimen.deleted_at is not None,
                last_administered_at=latest.get(regimen.id),
                context=regimen,
            )
        )
    return compute_due_sections(candidates, now, include_upcoming=include_upcoming)
