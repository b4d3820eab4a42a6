from sqlalchemy import Column, String, Text, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin, generate_uuid


class Animal(Base, TimestampMixin):
    __tablename__ = "animals"

    id = Column(String, primary_key=True, default=generate_uuid)
    household_id = Column(String, ForeignKey("households.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    species = Column(String(50), nullable=False)
    breed = Column(String(100), nullable=True)
    # Schedule times of every regimen are local to this zone
    timezone = Column(String(64), nullable=False, default="America/New_York")
    notes = Column(Text, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)

    household = relationship("Household", back_populates="animals")
    regimens = relationship("Regimen", back_populates="animal", cascade="all, delete-orphan")
