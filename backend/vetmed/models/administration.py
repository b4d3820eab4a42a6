from enum import Enum

from sqlalchemy import Column, String, Text, Boolean, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin, generate_uuid


class AdminStatus(str, Enum):
    ON_TIME = "ON_TIME"
    LATE = "LATE"
    VERY_LATE = "VERY_LATE"
    MISSED = "MISSED"
    PRN = "PRN"


class Administration(Base, TimestampMixin):
    __tablename__ = "administrations"

    id = Column(String, primary_key=True, default=generate_uuid)
    regimen_id = Column(String, ForeignKey("regimens.id"), nullable=False, index=True)
    animal_id = Column(String, ForeignKey("animals.id"), nullable=False, index=True)
    household_id = Column(String, ForeignKey("households.id"), nullable=False, index=True)
    caregiver_id = Column(String, ForeignKey("users.id"), nullable=False)
    scheduled_for = Column(DateTime(timezone=True), nullable=True, index=True)
    recorded_at = Column(DateTime(timezone=True), nullable=False, index=True)
    status = Column(String(20), nullable=False, index=True)
    source_item_id = Column(String, ForeignKey("inventory_items.id"), nullable=True)
    site = Column(String(100), nullable=True)
    dose = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    # Second caregiver confirmation for high-risk medications
    co_sign_user_id = Column(String, ForeignKey("users.id"), nullable=True)
    co_signed_at = Column(DateTime(timezone=True), nullable=True)
    co_sign_notes = Column(Text, nullable=True)

    adverse_event = Column(Boolean, default=False, nullable=False)
    # One persisted row per logical action; the unique constraint turns a
    # concurrent duplicate into an IntegrityError.
    idempotency_key = Column(String(255), unique=True, nullable=False, index=True)

    regimen = relationship("Regimen")
    animal = relationship("Animal")
