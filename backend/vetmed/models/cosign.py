from sqlalchemy import Column, String, Text, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin, generate_uuid


class CosignStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class CosignRequest(Base, TimestampMixin):
    __tablename__ = "cosign_requests"

    id = Column(String, primary_key=True, default=generate_uuid)
    administration_id = Column(String, ForeignKey("administrations.id", ondelete="CASCADE"), nullable=False, index=True)
    household_id = Column(String, ForeignKey("households.id"), nullable=False, index=True)
    requester_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    cosigner_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=CosignStatus.PENDING)
    signature = Column(Text, nullable=True)  # Base64 encoded signature image
    rejection_reason = Column(Text, nullable=True)
    signed_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    administration = relationship("Administration")
