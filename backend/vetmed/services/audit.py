from typing import Optional

from sqlalchemy.orm import Session

from ..models.audit import AuditLog
from ..models.base import generate_uuid


def create_audit_log(
    db: Session,
    user_id: str,
    household_id: Optional[str],
    action: str,
    resource_type: str,
    resource_id: Optional[str],
    details: Optional[dict] = None,
) -> AuditLog:
    """Stage an audit row in the caller's transaction; the caller commits."""
    entry = AuditLog(
        id=generate_uuid(),
        user_id=user_id,
        household_id=household_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
    )
    db.add(entry)
    return entry
