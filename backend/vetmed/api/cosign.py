from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from ..core.security import get_current_user
from ..models.base import get_db
from ..services import cosign as cosign_service

router = APIRouter(prefix="/cosign", tags=["cosign"])


class CosignRequestCreate(BaseModel):
    administration_id: str
    cosigner_id: str


class CosignApproval(BaseModel):
    signature: str = Field(min_length=1)
    notes: Optional[str] = None


class CosignRejection(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class CosignResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    administration_id: str
    household_id: str
    requester_id: str
    cosigner_id: str
    status: str
    rejection_reason: Optional[str]
    signed_at: Optional[datetime]
    expires_at: datetime
    created_at: datetime


@router.post("/requests", response_model=CosignResponse, status_code=status.HTTP_201_CREATED)
def create_request(
    req: CosignRequestCreate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return cosign_service.create_request(db, current_user, req.administration_id, req.cosigner_id)


@router.get("/requests/pending", response_model=List[CosignResponse])
def list_pending(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    """Requests waiting on the current user's signature."""
    return cosign_service.list_pending(db, current_user)


@router.post("/requests/{request_id}/approve", response_model=CosignResponse)
def approve_request(
    request_id: str,
    req: CosignApproval,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return cosign_service.approve(db, current_user, request_id, req.signature, notes=req.notes)


@router.post("/requests/{request_id}/reject", response_model=CosignResponse)
def reject_request(
    request_id: str,
    req: CosignRejection,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return cosign_service.reject(db, current_user, request_id, req.reason)
