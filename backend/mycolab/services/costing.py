"""Cost roll-up for cultures and grows plus lab-wide valuation."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from .. import schemas
from ..projection import LabState

# purpose: derive per-ml culture cost, grow cost totals, and inventory valuation buckets
# status: active

logger = logging.getLogger(__name__)

# grams of spawn per millilitre of source culture
SPAWN_VOLUME_RATIO = 100.0


def total_culture_cost(culture: schemas.Culture) -> float:
    return culture.purchase_cost + culture.production_cost + culture.parent_culture_cost + culture.cost


def remaining_culture_cost(culture: schemas.Culture) -> float:
    """Cost still held by the culture after transfers carried some of it away."""

    return max(0.0, total_culture_cost(culture) - culture.cost_transferred_out)


def cost_per_ml(culture: schemas.Culture | None) -> float:
    if culture is None:
        return 0.0
    total = remaining_culture_cost(culture)
    fill = culture.fill_volume_ml or 0.0
    if total <= 0 or fill <= 0:
        return 0.0
    return total / fill


def grow_inventory_cost(state: LabState, grow_id: UUID) -> float:
    """Sum consumed cost of usages charged to any version of the grow."""

    grow_ids = state.group_ids("grows", grow_id)
    total = 0.0
    for usage in state.records("inventory_usages"):
        if usage.reference_id not in grow_ids:
            continue
        item = state.get_inventory_item(usage.inventory_item_id)
        if item is not None and (item.asset_type == "equipment" or not item.include_in_grow_cost):
            continue
        total += usage.consumed_cost
    return total


def recalculate_grow_costs(state: LabState, grow_id: UUID) -> schemas.Grow:
    grow = state.require_live("grows", grow_id)
    source_cost = 0.0
    if grow.source_culture_id is not None:
        source = state.get_culture(grow.source_culture_id)
        source_cost = (grow.spawn_weight / SPAWN_VOLUME_RATIO) * cost_per_ml(source)
    inventory_cost = grow_inventory_cost(state, grow.id)
    total = source_cost + inventory_cost + grow.labor_cost + grow.overhead_cost
    dry_yield = sum(flush.dry_weight for flush in grow.flushes)

    patch = {
        "source_culture_cost": source_cost,
        "inventory_cost": inventory_cost,
        "total_cost": total,
        "cost_per_gram_wet": total / grow.total_yield if grow.total_yield > 0 else None,
        "cost_per_gram_dry": total / dry_yield if dry_yield > 0 else None,
        "profit": grow.revenue - total if grow.revenue is not None else None,
        "updated_at": datetime.now(timezone.utc),
    }
    with state.mutation():
        state.store.update("grows", grow.id, patch)
        updated = state.put("grows", grow.model_copy(update=patch))
        state.emit("grow.costs_recalculated", collection="grows", record_id=grow.id, total_cost=total)
    logger.debug("grow %s total cost %.2f", grow.id, total)
    return updated


def _item_value(item: schemas.InventoryItem) -> float:
    if item.current_value is not None:
        return item.current_value
    return item.unit_cost * item.quantity


def lab_valuation(state: LabState) -> schemas.LabValuation:
    equipment = durables = consumables = 0.0
    for item in state.records("inventory_items"):
        if not item.is_active:
            continue
        value = _item_value(item)
        if item.asset_type == "equipment":
            equipment += value
        elif item.asset_type == "durable":
            durables += value
        else:
            consumables += value
    equipment += sum(location.cost for location in state.records("locations") if location.is_active)
    return schemas.LabValuation(
        equipment=equipment,
        durables=durables,
        consumables=consumables,
        total=equipment + durables + consumables,
    )
