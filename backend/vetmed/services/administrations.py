"""
Recording and listing medication administrations.
Every write carries an idempotency key so that an offline replay of the same
action resolves to the row that was persisted first.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.permissions import (
    PERM_RECORD_ADMINISTRATIONS,
    PERM_VIEW_HOUSEHOLD,
    require_household_permission,
)
from ..core.timeutil import ensure_utc, to_local
from ..models.administration import Administration, AdminStatus
from ..models.animal import Animal
from ..models.base import generate_uuid
from ..models.medication import InventoryItem
from ..models.regimen import Regimen, ScheduleType
from ..schemas import RecordAdministrationRequest
from .audit import create_audit_log
from .due_status import Schedule, classify
from .exceptions import Conflict, InvalidOperation, ResourceNotFound

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 100


def _find_by_key(db: Session, idempotency_key: str) -> Optional[Administration]:
    return db.query(Administration).filter(Administration.idempotency_key == idempotency_key).first()


def _same_household(existing: Administration, household_id: str) -> Administration:
    if existing.household_id != household_id:
        raise Conflict("Idempotency key already used for a different household")
    return existing


def _validate_provided_status(regimen: Regimen, provided: AdminStatus) -> None:
    is_prn = regimen.schedule_type == ScheduleType.PRN.value
    if is_prn and provided != AdminStatus.PRN:
        raise InvalidOperation("PRN regimens can only be recorded with status PRN")
    if not is_prn and provided == AdminStatus.PRN:
        raise InvalidOperation("Status PRN is only valid for PRN regimens")


def record_administration(db: Session, user, req: RecordAdministrationRequest) -> Administration:
    require_household_permission(db, user, req.household_id, PERM_RECORD_ADMINISTRATIONS)

    existing = _find_by_key(db, req.idempotency_key)
    if existing is not None:
        logger.info("Administration replay for key %s returns %s", req.idempotency_key, existing.id)
        return _same_household(existing, req.household_id)

    animal = (
        db.query(Animal)
        .filter(Animal.id == req.animal_id, Animal.household_id == req.household_id, Animal.deleted_at.is_(None))
        .first()
    )
    if animal is None:
        raise ResourceNotFound("Animal not found in household")

    regimen = (
        db.query(Regimen)
        .filter(
            Regimen.id == req.regimen_id,
            Regimen.animal_id == animal.id,
            Regimen.active.is_(True),
            Regimen.deleted_at.is_(None),
        )
        .first()
    )
    if regimen is None:
        raise ResourceNotFound("Regimen not found or not active for this animal")

    timezone_name = animal.timezone or settings.DEFAULT_ANIMAL_TIMEZONE
    administered_at = ensure_utc(req.administered_at)

    item = None
    if req.inventory_source_id:
        item = (
            db.query(InventoryItem)
            .filter(
                InventoryItem.id == req.inventory_source_id,
                InventoryItem.household_id == req.household_id,
                InventoryItem.deleted_at.is_(None),
            )
            .first()
        )
        if item is None:
            raise ResourceNotFound("Inventory item not found in household")
        if item.expires_on < to_local(administered_at, timezone_name).date() and not req.allow_override:
            raise InvalidOperation(
                f"Inventory item expired on {item.expires_on.isoformat()}; set allow_override to record anyway"
            )

    schedule = Schedule.from_regimen(regimen)
    if req.status is not None:
        _validate_provided_status(regimen, req.status)
        computed = classify(administered_at, schedule, timezone_name)
        if computed.status != req.status:
            logger.info(
                "Client status %s differs from computed %s for key %s",
                req.status.value, computed.status.value, req.idempotency_key,
            )
    classification = classify(
        administered_at,
        schedule,
        timezone_name,
        provided_status=req.status.value if req.status is not None else None,
    )

    administration = Administration(
        id=generate_uuid(),
        regimen_id=regimen.id,
        animal_id=animal.id,
        household_id=req.household_id,
        caregiver_id=user.id,
        scheduled_for=classification.scheduled_for,
        recorded_at=administered_at,
        status=classification.status.value,
        source_item_id=item.id if item is not None else None,
        dose=req.dose or regimen.dose,
        site=req.site,
        notes=req.notes,
        adverse_event=req.adverse_event,
        idempotency_key=req.idempotency_key,
    )
    db.add(administration)

    if item is not None and item.units_remaining:
        item.units_remaining -= 1

    create_audit_log(
        db,
        user_id=user.id,
        household_id=req.household_id,
        action="CREATE",
        resource_type="administrations",
        resource_id=administration.id,
        details={
            "regimen_id": regimen.id,
            "status": classification.status.value,
            "idempotency_key": req.idempotency_key,
        },
    )

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        winner = _find_by_key(db, req.idempotency_key)
        if winner is None:
            raise
        logger.info("Concurrent insert for key %s resolved to %s", req.idempotency_key, winner.id)
        return _same_household(winner, req.household_id)

    db.refresh(administration)
    logger.info(
        "Recorded administration %s (%s) for regimen %s",
        administration.id, administration.status, regimen.id,
    )
    return administration


def list_administrations(
    db: Session,
    user,
    household_id: str,
    animal_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 50,
) -> List[Administration]:
    require_household_permission(db, user, household_id, PERM_VIEW_HOUSEHOLD)
    q = db.query(Administration).filter(Administration.household_id == household_id)
    if animal_id:
        q = q.filter(Administration.animal_id == animal_id)
    if start:
        q = q.filter(Administration.recorded_at >= ensure_utc(start))
    if end:
        q = q.filter(Administration.recorded_at <= ensure_utc(end))
    return q.order_by(Administration.recorded_at.asc()).limit(min(limit, MAX_LIST_LIMIT)).all()
