"""
Household medication inventory: stock adjustments and the in-use marker.
At most one item per medication is in use within a household.
"""
import logging
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.permissions import (
    PERM_MANAGE_INVENTORY,
    PERM_VIEW_HOUSEHOLD,
    require_household_permission,
)
from ..models.animal import Animal
from ..models.medication import InventoryItem
from .audit import create_audit_log
from .exceptions import InvalidOperation, ResourceNotFound

logger = logging.getLogger(__name__)


def _get_item(db: Session, item_id: str, household_id: str) -> InventoryItem:
    item = (
        db.query(InventoryItem)
        .filter(
            InventoryItem.id == item_id,
            InventoryItem.household_id == household_id,
            InventoryItem.deleted_at.is_(None),
        )
        .first()
    )
    if item is None:
        raise ResourceNotFound("Inventory item not found")
    return item


def list_inventory(db: Session, user, household_id: str, in_use: Optional[bool] = None) -> List[InventoryItem]:
    require_household_permission(db, user, household_id, PERM_VIEW_HOUSEHOLD)
    q = db.query(InventoryItem).filter(
        InventoryItem.household_id == household_id,
        InventoryItem.deleted_at.is_(None),
    )
    if in_use is not None:
        q = q.filter(InventoryItem.in_use.is_(in_use))
    return q.order_by(InventoryItem.expires_on.asc()).all()


def update_quantity(
    db: Session,
    user,
    item_id: str,
    household_id: str,
    quantity_change: int,
    reason: Optional[str] = None,
) -> InventoryItem:
    require_household_permission(db, user, household_id, PERM_MANAGE_INVENTORY)
    item = _get_item(db, item_id, household_id)

    old_quantity = item.units_remaining or 0
    new_quantity = old_quantity + quantity_change
    if new_quantity < 0:
        raise InvalidOperation(
            f"Quantity change {quantity_change} would leave {new_quantity} units remaining"
        )

    item.units_remaining = new_quantity
    create_audit_log(
        db,
        user_id=user.id,
        household_id=household_id,
        action="UPDATE_INVENTORY_QUANTITY",
        resource_type="inventory_items",
        resource_id=item.id,
        details={
            "old_quantity": old_quantity,
            "new_quantity": new_quantity,
            "quantity_change": quantity_change,
            "reason": reason,
        },
    )
    db.commit()
    db.refresh(item)
    logger.info("Inventory item %s quantity %d -> %d", item.id, old_quantity, new_quantity)
    return item


def mark_as_in_use(db: Session, user, item_id: str, household_id: str, animal_id: str) -> InventoryItem:
    require_household_permission(db, user, household_id, PERM_MANAGE_INVENTORY)
    item = _get_item(db, item_id, household_id)

    animal = (
        db.query(Animal)
        .filter(Animal.id == animal_id, Animal.household_id == household_id, Animal.deleted_at.is_(None))
        .first()
    )
    if animal is None:
        raise ResourceNotFound("Animal not found in household")

    cleared = (
        db.query(InventoryItem)
        .filter(
            InventoryItem.household_id == household_id,
            InventoryItem.medication_id == item.medication_id,
            InventoryItem.id != item.id,
            InventoryItem.in_use.is_(True),
        )
        .update({InventoryItem.in_use: False}, synchronize_session="fetch")
    )

    item.in_use = True
    item.assigned_animal_id = animal.id
    if item.opened_on is None:
        item.opened_on = date.today()

    create_audit_log(
        db,
        user_id=user.id,
        household_id=household_id,
        action="MARK_INVENTORY_IN_USE",
        resource_type="inventory_items",
        resource_id=item.id,
        details={"animal_id": animal.id, "cleared_items": cleared},
    )
    db.commit()
    db.refresh(item)
    logger.info("Inventory item %s in use for animal %s (%d others cleared)", item.id, animal.id, cleared)
    return item
