"""
Co-sign workflow for high-risk administrations.
A second household member confirms the dose within COSIGN_REQUEST_TTL_HOURS.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.permissions import (
    PERM_RECORD_ADMINISTRATIONS,
    get_membership,
    require_household_permission,
)
from ..core.timeutil import ensure_utc, utcnow
from ..models.administration import Administration
from ..models.base import generate_uuid
from ..models.cosign import CosignRequest, CosignStatus
from ..models.household import MembershipRole
from ..models.regimen import Regimen
from .audit import create_audit_log
from .exceptions import AccessDenied, Conflict, InvalidOperation, ResourceNotFound

logger = logging.getLogger(__name__)


def create_request(
    db: Session,
    user,
    administration_id: str,
    cosigner_id: str,
    now: Optional[datetime] = None,
) -> CosignRequest:
    now = ensure_utc(now) if now else utcnow()
    administration = db.query(Administration).filter(Administration.id == administration_id).first()
    if administration is None:
        raise ResourceNotFound("Administration not found")
    household_id = administration.household_id
    require_household_permission(db, user, household_id, PERM_RECORD_ADMINISTRATIONS)

    if cosigner_id == user.id:
        raise InvalidOperation("Cannot request co-signing from yourself")
    cosigner_membership = get_membership(db, cosigner_id, household_id)
    if cosigner_membership is None:
        raise ResourceNotFound("Cosigner is not a member of this household")
    if cosigner_membership.role == MembershipRole.VETREADONLY:
        raise AccessDenied("Users with VETREADONLY role cannot co-sign administrations")

    regimen = db.query(Regimen).filter(Regimen.id == administration.regimen_id).first()
    if regimen is None or not regimen.requires_co_sign:
        raise InvalidOperation("This medication does not require co-signing")
    if administration.co_sign_user_id is not None:
        raise InvalidOperation("This administration has already been co-signed")
    if administration.caregiver_id == cosigner_id:
        raise InvalidOperation("Cannot request co-signing for your own administration")

    pending = (
        db.query(CosignRequest)
        .filter(
            CosignRequest.administration_id == administration.id,
            CosignRequest.status == CosignStatus.PENDING,
        )
        .first()
    )
    if pending is not None:
        raise Conflict("A co-sign request for this administration already exists")

    request = CosignRequest(
        id=generate_uuid(),
        administration_id=administration.id,
        household_id=household_id,
        requester_id=user.id,
        cosigner_id=cosigner_id,
        status=CosignStatus.PENDING,
        expires_at=now + timedelta(hours=settings.COSIGN_REQUEST_TTL_HOURS),
    )
    db.add(request)
    create_audit_log(
        db,
        user_id=user.id,
        household_id=household_id,
        action="CREATE",
        resource_type="cosign_requests",
        resource_id=request.id,
        details={"administration_id": administration.id, "cosigner_id": cosigner_id},
    )
    db.commit()
    db.refresh(request)
    logger.info("Co-sign request %s created for administration %s", request.id, administration.id)
    return request


def _pending_for_cosigner(db: Session, request_id: str, user) -> CosignRequest:
    request = (
        db.query(CosignRequest)
        .filter(
            CosignRequest.id == request_id,
            CosignRequest.cosigner_id == user.id,
            CosignRequest.status == CosignStatus.PENDING,
        )
        .first()
    )
    if request is None:
        raise ResourceNotFound("Co-sign request not found, already processed, or you are not the assigned cosigner")
    return request


def _check_not_expired(db: Session, request: CosignRequest, now: datetime) -> None:
    if ensure_utc(request.expires_at) < now:
        request.status = CosignStatus.EXPIRED
        db.commit()
        logger.info("Co-sign request %s expired", request.id)
        raise InvalidOperation("Co-sign request has expired")


def approve(
    db: Session,
    user,
    request_id: str,
    signature: str,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> CosignRequest:
    now = ensure_utc(now) if now else utcnow()
    request = _pending_for_cosigner(db, request_id, user)
    _check_not_expired(db, request, now)

    administration = request.administration
    if administration.co_sign_user_id is not None:
        raise Conflict("Administration has already been co-signed")

    request.status = CosignStatus.APPROVED
    request.signature = signature
    request.signed_at = now
    administration.co_sign_user_id = user.id
    administration.co_signed_at = now
    administration.co_sign_notes = notes

    create_audit_log(
        db,
        user_id=user.id,
        household_id=request.household_id,
        action="COSIGN_APPROVE",
        resource_type="cosign_requests",
        resource_id=request.id,
        details={"administration_id": administration.id},
    )
    db.commit()
    db.refresh(request)
    return request


def reject(
    db: Session,
    user,
    request_id: str,
    reason: str,
    now: Optional[datetime] = None,
) -> CosignRequest:
    now = ensure_utc(now) if now else utcnow()
    request = _pending_for_cosigner(db, request_id, user)
    _check_not_expired(db, request, now)

    request.status = CosignStatus.REJECTED
    request.rejection_reason = reason
    request.signed_at = now

    create_audit_log(
        db,
        user_id=user.id,
        household_id=request.household_id,
        action="COSIGN_REJECT",
        resource_type="cosign_requests",
        resource_id=request.id,
        details={"administration_id": request.administration_id, "reason": reason},
    )
    db.commit()
    db.refresh(request)
    return request


def list_pending(db: Session, user, now: Optional[datetime] = None) -> List[CosignRequest]:
    """Unexpired pending requests assigned to the caller."""
    now = ensure_utc(now) if now else utcnow()
    requests = (
        db.query(CosignRequest)
        .filter(CosignRequest.cosigner_id == user.id, CosignRequest.status == CosignStatus.PENDING)
        .order_by(CosignRequest.created_at.asc())
        .all()
    )
    return [r for r in requests if ensure_utc(r.expires_at) >= now]
