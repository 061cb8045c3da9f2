from datetime import datetime
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Response

from .. import audit, schemas
from ..projection import LabState
from ..services import versioning
from .deps import get_state

router = APIRouter(prefix="/api/history", tags=["history"])


@router.post("/archive-all", response_model=schemas.ArchiveCounts)
async def archive_all(payload: schemas.ArchiveRequest, state: LabState = Depends(get_state)):
    return versioning.archive_all(state, payload.reason)


@router.get("/report", response_model=List[schemas.AmendmentReportItem])
async def amendment_report(
    start: datetime,
    end: datetime,
    state: LabState = Depends(get_state),
):
    return audit.amendment_report(state, start, end)


@router.get("/audit/{record_group_id}", response_model=List[schemas.AmendmentLogEntry])
async def audit_log(record_group_id: UUID, state: LabState = Depends(get_state)):
    return versioning.get_audit_log(state, record_group_id)


@router.get("/{entity_type}/groups/{record_group_id}", response_model=List[schemas.VersionSummary])
async def record_history(
    entity_type: str,
    record_group_id: UUID,
    state: LabState = Depends(get_state),
):
    return versioning.get_history(state, entity_type, record_group_id)


@router.post("/{entity_type}/{record_id}/amend")
async def amend_record(
    entity_type: str,
    record_id: UUID,
    payload: schemas.AmendRequest,
    state: LabState = Depends(get_state),
):
    amended = versioning.amend(
        state,
        entity_type,
        record_id,
        payload.changes,
        payload.amendment_type,
        payload.reason,
    )
    return amended.model_dump(mode="json")


@router.post("/{entity_type}/{record_id}/archive", status_code=204)
async def archive_record(
    entity_type: str,
    record_id: UUID,
    payload: schemas.ArchiveRequest,
    state: LabState = Depends(get_state),
):
    versioning.archive(state, entity_type, record_id, payload.reason)
    return Response(status_code=204)
