import pytest

from mycolab import schemas
from mycolab.errors import PersistenceError
from mycolab.services import costing, inventory, records, versioning


def _item(state, **fields):
    payload = {"name": "Gypsum", "unit": "g", "unit_cost": 1.0, **fields}
    return inventory.create_item(state, schemas.InventoryItemCreate(**payload))


def _lot(state, item, quantity=10.0, **fields):
    return inventory.create_lot(
        state,
        schemas.InventoryLotCreate(inventory_item_id=item.id, quantity=quantity, **fields),
    )


def _use(state, lot, quantity, grow=None):
    return inventory.record_usage(
        state,
        lot.id,
        schemas.InventoryUsageCreate(
            quantity=quantity,
            reference_type="grow" if grow else None,
            reference_id=grow.id if grow else None,
        ),
    )


def _spawned_grow(state, spawn_weight=500):
    culture = records.create_culture(
        state,
        schemas.CultureCreate(type="liquid_culture", fill_volume_ml=20, purchase_cost=10),
    )
    return records.create_grow(
        state,
        schemas.GrowCreate(name="Tub", source_culture_id=culture.id, spawn_weight=spawn_weight),
    )


def test_culture_cost_helpers():
    culture = schemas.Culture.model_validate(
        {
            "id": "00000000-0000-0000-0000-000000000001",
            "user_id": "00000000-0000-0000-0000-000000000002",
            "record_group_id": "00000000-0000-0000-0000-000000000001",
            "valid_from": "2024-01-01T00:00:00Z",
            "created_at": "2024-01-01T00:00:00Z",
            "updated_at": "2024-01-01T00:00:00Z",
            "type": "agar",
            "label": "AG-1",
            "purchase_cost": 4,
            "production_cost": 3,
            "parent_culture_cost": 2,
            "cost": 1,
            "fill_volume_ml": 5,
        }
    )
    assert costing.total_culture_cost(culture) == 10
    assert costing.cost_per_ml(culture) == 2
    assert costing.cost_per_ml(culture.model_copy(update={"fill_volume_ml": None})) == 0
    assert costing.cost_per_ml(None) == 0


def test_grow_cost_rollup(state):
    grow = _spawned_grow(state)
    lot = _lot(state, _item(state))
    _use(state, lot, 3, grow)

    updated = costing.recalculate_grow_costs(state, grow.id)

    assert updated.source_culture_cost == pytest.approx(2.5)
    assert updated.inventory_cost == pytest.approx(3.0)
    assert updated.total_cost == pytest.approx(5.5)
    assert updated.cost_per_gram_wet is None
    assert updated.profit is None
    assert state.store.get("grows", grow.id)["total_cost"] == pytest.approx(5.5)


def test_grow_costs_with_yield_and_revenue(state):
    grow = records.create_grow(state, schemas.GrowCreate(name="Tub", labor_cost=8, overhead_cost=2, revenue=25))
    records.add_flush(state, grow.id, schemas.FlushCreate(wet_weight=200, dry_weight=20))

    updated = costing.recalculate_grow_costs(state, grow.id)

    assert updated.total_cost == pytest.approx(10.0)
    assert updated.cost_per_gram_wet == pytest.approx(0.05)
    assert updated.cost_per_gram_dry == pytest.approx(0.5)
    assert updated.profit == pytest.approx(15.0)


def test_inventory_cost_excludes_equipment_and_opted_out_items(state):
    grow = _spawned_grow(state)
    _use(state, _lot(state, _item(state, name="Bags", unit_cost=2.0)), 2, grow)
    _use(state, _lot(state, _item(state, name="Scale", asset_type="equipment")), 1, grow)
    _use(state, _lot(state, _item(state, name="Gloves", include_in_grow_cost=False)), 4, grow)
    _use(state, _lot(state, _item(state, name="Other")), 5)

    assert costing.grow_inventory_cost(state, grow.id) == pytest.approx(4.0)


def test_inventory_cost_follows_amended_grow(state):
    grow = _spawned_grow(state)
    _use(state, _lot(state, _item(state)), 3, grow)
    amended = versioning.amend(state, "grow", grow.id, {"labor_cost": 1.0})

    assert costing.grow_inventory_cost(state, amended.id) == pytest.approx(3.0)
    assert costing.recalculate_grow_costs(state, amended.id).total_cost == pytest.approx(6.5)


def test_record_usage_snapshots_lot_cost(state):
    item = _item(state, unit_cost=9.0)
    lot = _lot(state, item, quantity=20, purchase_cost=10)

    usage = _use(state, lot, 5)

    assert usage.unit_cost_at_usage == pytest.approx(0.5)
    assert usage.consumed_cost == pytest.approx(2.5)
    updated = state.get_inventory_lot(lot.id)
    assert updated.quantity == 15
    assert updated.status == "available"


def test_record_usage_low_and_empty(state):
    lot = _lot(state, _item(state), quantity=100)

    _use(state, lot, 95)
    assert state.get_inventory_lot(lot.id).status == "low"

    usage = _use(state, lot, 50)
    assert usage.quantity == 5
    assert usage.consumed_cost == pytest.approx(5.0)
    assert state.get_inventory_lot(lot.id).quantity == 0
    assert state.get_inventory_lot(lot.id).status == "empty"


def test_record_usage_rolls_back_lot_on_failure(flaky_state):
    lot = _lot(flaky_state, _item(flaky_state), quantity=10)
    flaky_state.store.failures.add(("insert", "inventory_usages"))

    with pytest.raises(PersistenceError):
        _use(flaky_state, lot, 4)

    assert flaky_state.get_inventory_lot(lot.id).quantity == 10
    assert flaky_state.store.get("inventory_lots", lot.id)["quantity"] == 10
    assert flaky_state.records("inventory_usages") == []


def test_lab_valuation_buckets(state):
    _item(state, name="Pressure cooker", asset_type="equipment", unit_cost=120, quantity=1)
    _item(state, name="Flow hood", asset_type="equipment", current_value=300, unit_cost=500, quantity=1)
    _item(state, name="Jars", asset_type="durable", unit_cost=2, quantity=12)
    _item(state, name="Rye", asset_type="consumable", unit_cost=0.5, quantity=10)
    _item(state, name="Syringe stock", asset_type="culture_source", unit_cost=15, quantity=1)
    inventory.create_location(state, schemas.LocationCreate(name="Grow tent", cost=80))

    valuation = costing.lab_valuation(state)

    assert valuation.equipment == pytest.approx(500)
    assert valuation.durables == pytest.approx(24)
    assert valuation.consumables == pytest.approx(20)
    assert valuation.total == pytest.approx(544)
