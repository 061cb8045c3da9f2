from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends

from .. import schemas
from ..projection import LabState
from ..services import records
from .deps import get_state

router = APIRouter(prefix="/api/spawn", tags=["spawn"])


@router.post("", response_model=schemas.PreparedSpawn)
async def create_prepared_spawn(
    payload: schemas.PreparedSpawnCreate,
    state: LabState = Depends(get_state),
):
    return records.create_prepared_spawn(state, payload)


@router.get("", response_model=List[schemas.PreparedSpawn])
async def list_prepared_spawn(state: LabState = Depends(get_state)):
    return state.active_prepared_spawn()


@router.post("/{spawn_id}/inoculate", response_model=schemas.PreparedSpawn)
async def inoculate(
    spawn_id: UUID,
    payload: schemas.InoculateRequest,
    state: LabState = Depends(get_state),
):
    return records.inoculate_prepared_spawn(state, spawn_id, payload.culture_id)
