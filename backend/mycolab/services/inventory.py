"""Inventory items, lots, locations, and lot consumption."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID, uuid4

from .. import schemas
from ..errors import NotFoundError, ValidationError
from ..projection import LabState

# purpose: track consumable stock and snapshot the cost of each usage against a lot
# status: active

logger = logging.getLogger(__name__)

LOW_STOCK_FRACTION = 0.1


def lot_status(quantity: float, original_quantity: float) -> str:
    if quantity <= 0:
        return "empty"
    if original_quantity > 0 and quantity < original_quantity * LOW_STOCK_FRACTION:
        return "low"
    return "available"


def create_location(state: LabState, payload: schemas.LocationCreate) -> schemas.Location:
    location = schemas.Location(
        id=uuid4(),
        user_id=state.actor_id,
        created_at=datetime.now(timezone.utc),
        **payload.model_dump(),
    )
    with state.mutation():
        state.store.insert("locations", location.model_dump())
        state.put("locations", location)
        state.emit("location.created", collection="locations", record_id=location.id)
    return location


def create_item(state: LabState, payload: schemas.InventoryItemCreate) -> schemas.InventoryItem:
    now = datetime.now(timezone.utc)
    item = schemas.InventoryItem(
        id=uuid4(),
        user_id=state.actor_id,
        created_at=now,
        updated_at=now,
        **payload.model_dump(),
    )
    with state.mutation():
        state.store.insert("inventory_items", item.model_dump())
        state.put("inventory_items", item)
        state.emit("item.created", collection="inventory_items", record_id=item.id)
    return item


def create_lot(state: LabState, payload: schemas.InventoryLotCreate) -> schemas.InventoryLot:
    item = state.require_owned("inventory_items", payload.inventory_item_id)
    now = datetime.now(timezone.utc)
    original = payload.original_quantity if payload.original_quantity is not None else payload.quantity
    lot = schemas.InventoryLot(
        id=uuid4(),
        user_id=state.actor_id,
        inventory_item_id=item.id,
        quantity=payload.quantity,
        original_quantity=original,
        unit=payload.unit or item.unit,
        status=lot_status(payload.quantity, original),
        purchase_cost=payload.purchase_cost,
        created_at=now,
        updated_at=now,
    )
    with state.mutation():
        state.store.insert("inventory_lots", lot.model_dump())
        state.put("inventory_lots", lot)
        state.emit("lot.created", collection="inventory_lots", record_id=lot.id, item_id=str(item.id))
    return lot


def _unit_cost(lot: schemas.InventoryLot, item: schemas.InventoryItem | None) -> float:
    if lot.purchase_cost is not None and lot.original_quantity > 0:
        return lot.purchase_cost / lot.original_quantity
    return item.unit_cost if item is not None else 0.0


def record_usage(
    state: LabState,
    lot_id: UUID,
    payload: schemas.InventoryUsageCreate,
) -> schemas.InventoryUsage:
    """Consume stock from a lot and log the usage with its cost snapshot.

    Consumption is floored at the lot's remaining quantity; the usage row
    records what was actually taken.
    """

    lot = state.require_owned("inventory_lots", lot_id)
    if not lot.is_active:
        raise ValidationError(f"lot {lot_id} is inactive")
    item = state.get_inventory_item(lot.inventory_item_id)
    if item is None:
        raise NotFoundError(f"inventory item {lot.inventory_item_id} not found")

    now = datetime.now(timezone.utc)
    consumed = min(payload.quantity, lot.quantity)
    remaining = lot.quantity - consumed
    unit_cost = _unit_cost(lot, item)
    usage = schemas.InventoryUsage(
        id=uuid4(),
        user_id=state.actor_id,
        lot_id=lot.id,
        inventory_item_id=item.id,
        quantity=consumed,
        unit=lot.unit,
        usage_type=payload.usage_type,
        reference_type=payload.reference_type,
        reference_id=payload.reference_id,
        reference_name=payload.reference_name,
        unit_cost_at_usage=unit_cost,
        consumed_cost=consumed * unit_cost,
        used_at=now,
        notes=payload.notes,
    )
    lot_patch = {
        "quantity": remaining,
        "status": lot_status(remaining, lot.original_quantity),
        "updated_at": now,
    }
    with state.mutation():
        state.store.update("inventory_lots", lot.id, lot_patch)
        state.store.insert("inventory_usages", usage.model_dump())
        state.put("inventory_lots", lot.model_copy(update=lot_patch))
        state.put("inventory_usages", usage)
        state.emit(
            "lot.consumed",
            collection="inventory_lots",
            record_id=lot.id,
            quantity=consumed,
            status=lot_patch["status"],
        )
    if consumed < payload.quantity:
        logger.info("lot %s short by %.2f %s", lot.id, payload.quantity - consumed, lot.unit)
    return usage
