from enum import Enum

from sqlalchemy import Column, String, Integer, Boolean, Date, DateTime, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin, generate_uuid
from ..core.config import settings


class ScheduleType(str, Enum):
    FIXED = "FIXED"
    INTERVAL = "INTERVAL"
    PRN = "PRN"
    TAPER = "TAPER"


class Regimen(Base, TimestampMixin):
    __tablename__ = "regimens"

    id = Column(String, primary_key=True, default=generate_uuid)
    animal_id = Column(String, ForeignKey("animals.id", ondelete="CASCADE"), nullable=False, index=True)
    medication_id = Column(String, ForeignKey("medication_catalog.id"), nullable=False)
    name = Column(String(200), nullable=True)
    instructions = Column(Text, nullable=True)
    schedule_type = Column(String(20), nullable=False, default=ScheduleType.FIXED.value)
    times_local = Column(JSON, nullable=True)  # ["08:00", "20:00"], local to the animal
    interval_hours = Column(Integer, nullable=True)
    start_date = Column(Date, nullable=False, index=True)
    end_date = Column(Date, nullable=True)
    prn_reason = Column(Text, nullable=True)
    cutoff_minutes = Column(Integer, nullable=False, default=lambda: settings.DEFAULT_CUTOFF_MINUTES)
    high_risk = Column(Boolean, default=False, nullable=False)
    requires_co_sign = Column(Boolean, default=False, nullable=False)
    active = Column(Boolean, default=True, nullable=False, index=True)
    dose = Column(String(100), nullable=True)
    route = Column(String(20), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)

    animal = relationship("Animal", back_populates="regimens")
    medication = relationship("MedicationCatalog")
