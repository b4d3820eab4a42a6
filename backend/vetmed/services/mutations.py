"""
Write operations the device can queue while offline.

Each variant is tagged with the name it is stored under and knows the one
remote call that replays it. The set is closed: a stored tag that is not
listed here was written by some other build and cannot be replayed.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from ..schemas import InventoryInUseRequest, InventoryQuantityChange, RecordAdministrationRequest

ADMIN_CREATE = "admin.create"
INVENTORY_UPDATE = "inventory.update"
INVENTORY_MARK_IN_USE = "inventory.markAsInUse"


class MutationDecodeError(Exception):
    """A stored mutation cannot be turned back into a replayable request."""


class UnknownMutationType(MutationDecodeError):
    def __init__(self, mutation_type: str):
        super().__init__(f"Unknown mutation type: {mutation_type}")
        self.mutation_type = mutation_type


class AdministrationCreate(BaseModel):
    type: Literal["admin.create"] = ADMIN_CREATE
    data: RecordAdministrationRequest

    @property
    def household_id(self) -> str:
        return self.data.household_id

    @property
    def natural_key(self) -> Optional[str]:
        return self.data.idempotency_key

    async def dispatch(self, remote) -> Any:
        return await remote.create_administration(self.data)


class InventoryQuantityUpdate(BaseModel):
    type: Literal["inventory.update"] = INVENTORY_UPDATE
    item_id: str
    data: InventoryQuantityChange

    @property
    def household_id(self) -> str:
        return self.data.household_id

    @property
    def natural_key(self) -> Optional[str]:
        return None

    async def dispatch(self, remote) -> Any:
        return await remote.update_inventory_quantity(self.item_id, self.data)


class InventoryMarkInUse(BaseModel):
    type: Literal["inventory.markAsInUse"] = INVENTORY_MARK_IN_USE
    item_id: str
    data: InventoryInUseRequest

    @property
    def household_id(self) -> str:
        return self.data.household_id

    @property
    def natural_key(self) -> Optional[str]:
        return None

    async def dispatch(self, remote) -> Any:
        return await remote.mark_inventory_in_use(self.item_id, self.data)


Mutation = Annotated[
    Union[AdministrationCreate, InventoryQuantityUpdate, InventoryMarkInUse],
    Field(discriminator="type"),
]

MUTATION_TYPES = (ADMIN_CREATE, INVENTORY_UPDATE, INVENTORY_MARK_IN_USE)

_mutation_adapter = TypeAdapter(Mutation)


def encode_payload(mutation: BaseModel) -> Dict[str, Any]:
    """JSON-safe payload stored beside the type tag."""
    return mutation.model_dump(mode="json", exclude={"type"})


def decode_mutation(mutation_type: str, payload: Dict[str, Any]):
    if mutation_type not in MUTATION_TYPES:
        raise UnknownMutationType(mutation_type)
    try:
        return _mutation_adapter.validate_python({**(payload or {}), "type": mutation_type})
    except ValidationError as exc:
        raise MutationDecodeError(f"Malformed {mutation_type} payload: {exc.error_count()} error(s)") from exc


@dataclass
class QueuedMutation:
    """A durable queue entry; `id` is the idempotency key of the action."""
    id: str
    type: str
    payload: Dict[str, Any]
    timestamp: datetime
    household_id: str
    user_id: Optional[str] = None
    retries: int = 0
    max_retries: int = 3
    last_error: Optional[str] = None
