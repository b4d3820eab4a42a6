"""
Write-request bodies shared by the HTTP routers and the offline mutation queue.
A queued mutation replays exactly the body the router accepts.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .models.administration import AdminStatus


class RecordAdministrationRequest(BaseModel):
    household_id: str
    animal_id: str
    regimen_id: str
    administered_at: datetime
    idempotency_key: str = Field(min_length=1, max_length=255)
    inventory_source_id: Optional[str] = None
    dose: Optional[str] = None
    site: Optional[str] = None
    notes: Optional[str] = None
    adverse_event: bool = False
    # Record against an expired inventory item anyway
    allow_override: bool = False
    # Computed on the device while offline; validated server-side
    status: Optional[AdminStatus] = None


class InventoryQuantityChange(BaseModel):
    household_id: str
    quantity_change: int
    reason: Optional[str] = Field(None, max_length=500)


class InventoryInUseRequest(BaseModel):
    household_id: str
    animal_id: str
