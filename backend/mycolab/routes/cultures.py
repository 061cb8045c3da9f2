from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Response

from .. import schemas
from ..projection import LabState
from ..services import lineage, outcomes, records, stages
from .deps import get_state

router = APIRouter(prefix="/api/cultures", tags=["cultures"])


@router.post("", response_model=schemas.Culture)
async def create_culture(
    payload: schemas.CultureCreate,
    state: LabState = Depends(get_state),
):
    return records.create_culture(state, payload)


@router.get("", response_model=List[schemas.Culture])
async def list_cultures(
    status: Optional[schemas.CultureStatus] = None,
    state: LabState = Depends(get_state),
):
    cultures = state.active_cultures()
    if status:
        cultures = [c for c in cultures if c.status == status]
    return sorted(cultures, key=lambda c: c.created_at)


@router.get("/labels/next")
async def next_label(
    type: schemas.CultureType,
    state: LabState = Depends(get_state),
):
    return {"label": records.generate_culture_label(state, type)}


@router.get("/{culture_id}", response_model=schemas.Culture)
async def get_culture(culture_id: UUID, state: LabState = Depends(get_state)):
    return state.require_owned("cultures", culture_id)


@router.patch("/{culture_id}", response_model=schemas.Culture)
async def update_culture(
    culture_id: UUID,
    payload: schemas.CultureUpdate,
    state: LabState = Depends(get_state),
):
    return records.update_culture(state, culture_id, payload)


@router.post("/{culture_id}/observations", response_model=schemas.Culture)
async def add_observation(
    culture_id: UUID,
    payload: schemas.CultureObservationCreate,
    state: LabState = Depends(get_state),
):
    return stages.add_culture_observation(state, culture_id, payload)


@router.post("/{culture_id}/transfers", response_model=Optional[schemas.Culture])
async def transfer_culture(
    culture_id: UUID,
    payload: schemas.CultureTransferCreate,
    state: LabState = Depends(get_state),
):
    return lineage.transfer(state, culture_id, payload)


@router.get("/{culture_id}/lineage", response_model=schemas.CultureLineage)
async def culture_lineage(culture_id: UUID, state: LabState = Depends(get_state)):
    state.require_owned("cultures", culture_id)
    return lineage.lineage(state, culture_id)


@router.delete("/{culture_id}", status_code=204)
async def delete_culture(
    culture_id: UUID,
    outcome: Optional[schemas.DisposalRequest] = Body(default=None),
    state: LabState = Depends(get_state),
):
    outcomes.delete_culture(state, culture_id, outcome)
    return Response(status_code=204)
