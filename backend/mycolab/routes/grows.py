from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Response

from .. import schemas
from ..projection import LabState
from ..services import costing, outcomes, records, stages
from .deps import get_state

router = APIRouter(prefix="/api/grows", tags=["grows"])


@router.post("", response_model=schemas.Grow)
async def create_grow(payload: schemas.GrowCreate, state: LabState = Depends(get_state)):
    return records.create_grow(state, payload)


@router.get("", response_model=List[schemas.Grow])
async def list_grows(
    stage: Optional[schemas.GrowStage] = None,
    state: LabState = Depends(get_state),
):
    grows = state.active_grows()
    if stage:
        grows = [g for g in grows if g.current_stage == stage]
    return sorted(grows, key=lambda g: g.created_at)


@router.get("/{grow_id}", response_model=schemas.Grow)
async def get_grow(grow_id: UUID, state: LabState = Depends(get_state)):
    return state.require_owned("grows", grow_id)


@router.patch("/{grow_id}", response_model=schemas.Grow)
async def update_grow(
    grow_id: UUID,
    payload: schemas.GrowUpdate,
    state: LabState = Depends(get_state),
):
    return records.update_grow(state, grow_id, payload)


@router.post("/{grow_id}/advance", response_model=schemas.Grow)
async def advance_grow(grow_id: UUID, state: LabState = Depends(get_state)):
    # terminal grows come back unchanged
    return stages.advance_stage(state, grow_id) or state.require_owned("grows", grow_id)


@router.post("/{grow_id}/contaminate", response_model=schemas.Grow)
async def contaminate_grow(
    grow_id: UUID,
    payload: Optional[schemas.ContaminationRequest] = None,
    state: LabState = Depends(get_state),
):
    return stages.mark_contaminated(state, grow_id, payload.notes if payload else None)


@router.post("/{grow_id}/abort", response_model=schemas.Grow)
async def abort_grow(
    grow_id: UUID,
    payload: Optional[schemas.ContaminationRequest] = None,
    state: LabState = Depends(get_state),
):
    return stages.abort_grow(state, grow_id, payload.notes if payload else None)


@router.post("/{grow_id}/observations", response_model=schemas.Grow)
async def add_observation(
    grow_id: UUID,
    payload: schemas.GrowObservationCreate,
    state: LabState = Depends(get_state),
):
    return stages.add_observation(state, grow_id, payload)


@router.post("/{grow_id}/flushes", response_model=schemas.Grow)
async def add_flush(
    grow_id: UUID,
    payload: schemas.FlushCreate,
    state: LabState = Depends(get_state),
):
    return records.add_flush(state, grow_id, payload)


@router.post("/{grow_id}/recalculate-costs", response_model=schemas.Grow)
async def recalculate_costs(grow_id: UUID, state: LabState = Depends(get_state)):
    return costing.recalculate_grow_costs(state, grow_id)


@router.delete("/{grow_id}", status_code=204)
async def delete_grow(
    grow_id: UUID,
    outcome: Optional[schemas.DisposalRequest] = Body(default=None),
    state: LabState = Depends(get_state),
):
    outcomes.delete_grow(state, grow_id, outcome)
    return Response(status_code=204)
