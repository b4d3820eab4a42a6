from sqlalchemy import Column, String, JSON
from .base import Base, TimestampMixin, generate_uuid


class AuditLog(Base, TimestampMixin):
    """Audit trail of every write against household data."""
    __tablename__ = "audit_logs"

    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String(100), nullable=False, index=True)
    household_id = Column(String, nullable=True, index=True)
    action = Column(String(50), nullable=False)  # CREATE, UPDATE_INVENTORY_QUANTITY, ...
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String, nullable=True)
    ip_address = Column(String(45), nullable=True)
    request_method = Column(String(10), nullable=True)
    request_path = Column(String(500), nullable=True)
    details = Column(JSON, nullable=True)
