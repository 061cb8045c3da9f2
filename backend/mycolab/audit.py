from collections import Counter
from datetime import datetime, timezone
from uuid import UUID, uuid4

from . import schemas
from .errors import PersistenceError
from .eventlog import report_failure
from .projection import LabState


def log_amendment(
    state: LabState,
    *,
    entity_type: str,
    record_group_id: UUID,
    original_record_id: UUID,
    new_record_id: UUID | None,
    amendment_type: str,
    reason: str | None = None,
) -> schemas.AmendmentLogEntry | None:
    entry = schemas.AmendmentLogEntry(
        id=uuid4(),
        user_id=state.actor_id,
        entity_type=entity_type,
        record_group_id=record_group_id,
        original_record_id=original_record_id,
        new_record_id=new_record_id,
        amendment_type=amendment_type,
        reason=reason,
        created_at=datetime.now(timezone.utc),
    )
    try:
        with state.mutation():
            state.store.insert("amendment_log", entry.model_dump())
            state.put("amendment_log", entry)
    except PersistenceError as exc:
        report_failure(
            state,
            "audit",
            exc,
            record_group_id=record_group_id,
            amendment_type=amendment_type,
        )
        return None
    return entry


def amendment_report(
    state: LabState,
    start: datetime,
    end: datetime,
) -> list[schemas.AmendmentReportItem]:
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    counts = Counter(
        entry.amendment_type
        for entry in state.records("amendment_log")
        if start <= entry.created_at <= end
    )
    return [
        schemas.AmendmentReportItem(amendment_type=kind, count=count)
        for kind, count in sorted(counts.items())
    ]
