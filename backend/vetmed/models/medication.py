from sqlalchemy import Column, String, Integer, Boolean, Date, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin, generate_uuid


class MedicationCatalog(Base, TimestampMixin):
    __tablename__ = "medication_catalog"

    id = Column(String, primary_key=True, default=generate_uuid)
    generic_name = Column(String(200), nullable=False, index=True)
    brand_name = Column(String(200), nullable=True, index=True)
    strength = Column(String(100), nullable=True)
    route = Column(String(20), nullable=False, default="ORAL")  # ORAL, SC, IM, TOPICAL, ...
    form = Column(String(20), nullable=False, default="TABLET")  # TABLET, LIQUID, ...
    controlled_substance = Column(Boolean, default=False, nullable=False)
    warnings = Column(Text, nullable=True)


class InventoryItem(Base, TimestampMixin):
    __tablename__ = "inventory_items"

    id = Column(String, primary_key=True, default=generate_uuid)
    household_id = Column(String, ForeignKey("households.id", ondelete="CASCADE"), nullable=False, index=True)
    medication_id = Column(String, ForeignKey("medication_catalog.id"), nullable=False, index=True)
    assigned_animal_id = Column(String, ForeignKey("animals.id", ondelete="SET NULL"), nullable=True, index=True)
    brand_override = Column(String(200), nullable=True)
    lot = Column(String(100), nullable=True)
    expires_on = Column(Date, nullable=False, index=True)
    units_total = Column(Integer, nullable=True)
    units_remaining = Column(Integer, nullable=True)
    unit_type = Column(String(50), nullable=True)
    opened_on = Column(Date, nullable=True)
    in_use = Column(Boolean, default=False, nullable=False, index=True)
    notes = Column(Text, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    medication = relationship("MedicationCatalog")
