from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends

from .. import schemas
from ..projection import LabState
from ..services import costing, inventory
from .deps import get_state

router = APIRouter(prefix="/api/inventory", tags=["inventory"])


@router.post("/items", response_model=schemas.InventoryItem)
async def create_item(payload: schemas.InventoryItemCreate, state: LabState = Depends(get_state)):
    return inventory.create_item(state, payload)


@router.get("/items", response_model=List[schemas.InventoryItem])
async def list_items(state: LabState = Depends(get_state)):
    return [item for item in state.records("inventory_items") if item.is_active]


@router.post("/lots", response_model=schemas.InventoryLot)
async def create_lot(payload: schemas.InventoryLotCreate, state: LabState = Depends(get_state)):
    return inventory.create_lot(state, payload)


@router.get("/items/{item_id}/lots", response_model=List[schemas.InventoryLot])
async def list_lots(item_id: UUID, state: LabState = Depends(get_state)):
    state.require_owned("inventory_items", item_id)
    return state.lots_for_item(item_id)


@router.post("/lots/{lot_id}/usage", response_model=schemas.InventoryUsage)
async def record_usage(
    lot_id: UUID,
    payload: schemas.InventoryUsageCreate,
    state: LabState = Depends(get_state),
):
    return inventory.record_usage(state, lot_id, payload)


@router.post("/locations", response_model=schemas.Location)
async def create_location(payload: schemas.LocationCreate, state: LabState = Depends(get_state)):
    return inventory.create_location(state, payload)


@router.get("/locations", response_model=List[schemas.Location])
async def list_locations(state: LabState = Depends(get_state)):
    return [location for location in state.records("locations") if location.is_active]


@router.get("/valuation", response_model=schemas.LabValuation)
async def valuation(state: LabState = Depends(get_state)):
    return costing.lab_valuation(state)
