from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from ..core.security import get_current_user
from ..models.base import get_db
from ..schemas import InventoryInUseRequest, InventoryQuantityChange
from ..services import inventory as inventory_service

router = APIRouter(prefix="/inventory", tags=["inventory"])


class InventoryItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    household_id: str
    medication_id: str
    assigned_animal_id: Optional[str]
    brand_override: Optional[str]
    lot: Optional[str]
    expires_on: date
    units_total: Optional[int]
    units_remaining: Optional[int]
    unit_type: Optional[str]
    opened_on: Optional[date]
    in_use: bool


class InventoryListItem(InventoryItemResponse):
    generic_name: Optional[str] = None
    brand_name: Optional[str] = None
    strength: Optional[str] = None
    is_expired: bool = False


@router.get("", response_model=List[InventoryListItem])
def list_inventory(
    household_id: str,
    in_use: Optional[bool] = None,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    today = date.today()
    items = inventory_service.list_inventory(db, current_user, household_id, in_use=in_use)
    results = []
    for item in items:
        row = InventoryListItem.model_validate(item)
        if item.medication is not None:
            row.generic_name = item.medication.generic_name
            row.brand_name = item.medication.brand_name
            row.strength = item.medication.strength
        row.is_expired = item.expires_on < today
        results.append(row)
    return results


@router.patch("/{item_id}/quantity", response_model=InventoryItemResponse)
def update_quantity(
    item_id: str,
    req: InventoryQuantityChange,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return inventory_service.update_quantity(
        db, current_user, item_id, req.household_id, req.quantity_change, reason=req.reason
    )


@router.post("/{item_id}/in-use", response_model=InventoryItemResponse)
def mark_as_in_use(
    item_id: str,
    req: InventoryInUseRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    """Mark this item as the one being used; other items of the same medication are unmarked."""
    return inventory_service.mark_as_in_use(db, current_user, item_id, req.household_id, req.animal_id)
