"""Admin endpoints: household audit log viewer (owner only)."""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from ..core.permissions import PERM_VIEW_AUDIT_LOGS, require_household_permission
from ..core.security import get_current_user
from ..core.timeutil import ensure_utc
from ..models.audit import AuditLog
from ..models.base import get_db

router = APIRouter(prefix="/admin", tags=["admin"])


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    household_id: Optional[str]
    action: str
    resource_type: str
    resource_id: Optional[str]
    details: Optional[dict]
    ip_address: Optional[str]
    request_method: Optional[str]
    request_path: Optional[str]
    created_at: datetime


@router.get("/audit-logs", response_model=List[AuditLogResponse])
def get_audit_logs(
    household_id: str,
    user_id: Optional[str] = Query(None, description="Filter by user ID"),
    action: Optional[str] = Query(None, description="Filter by action type"),
    resource_type: Optional[str] = Query(None, description="Filter by resource type"),
    since: Optional[datetime] = Query(None, description="Filter records after this datetime"),
    until: Optional[datetime] = Query(None, description="Filter records before this datetime"),
    skip: int = 0,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    """Searchable audit log for one household. Filterable by user, date range, action type."""
    require_household_permission(db, current_user, household_id, PERM_VIEW_AUDIT_LOGS)
    q = db.query(AuditLog).filter(AuditLog.household_id == household_id)
    if user_id:
        q = q.filter(AuditLog.user_id == user_id)
    if action:
        q = q.filter(AuditLog.action == action)
    if resource_type:
        q = q.filter(AuditLog.resource_type == resource_type)
    if since:
        q = q.filter(AuditLog.created_at >= ensure_utc(since))
    if until:
        q = q.filter(AuditLog.created_at <= ensure_utc(until))
    return q.order_by(AuditLog.created_at.desc()).offset(skip).limit(limit).all()
