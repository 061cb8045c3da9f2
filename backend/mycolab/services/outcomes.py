"""Terminal outcome records written when cultures and grows are disposed of."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID, uuid4

from .. import schemas
from ..errors import PersistenceError, ValidationError
from ..eventlog import report_failure
from ..projection import LabState
from . import costing

# purpose: keep append-only outcome facts that outlive the entity they describe
# inputs: projection handle, outcome payloads, disposal requests
# outputs: EntityOutcome and ContaminationDetails records, deleted entities
# status: active
# depends_on: mycolab.eventlog

logger = logging.getLogger(__name__)

EARLY_CONTAMINATION_DAYS = 7
LATE_CONTAMINATION_DAYS = 21


def contamination_outcome_code(days_active: int) -> str:
    if days_active <= EARLY_CONTAMINATION_DAYS:
        return "contamination_early"
    if days_active > LATE_CONTAMINATION_DAYS:
        return "contamination_late"
    return "contamination_mid"


def record_outcome(state: LabState, payload: schemas.EntityOutcomeCreate) -> schemas.EntityOutcome:
    """Persist an outcome; a storage failure is reported and the local value returned."""

    now = datetime.now(timezone.utc)
    outcome = schemas.EntityOutcome(
        id=uuid4(),
        user_id=state.actor_id,
        recorded_at=now,
        **payload.model_dump(exclude={"contamination", "ended_at"}),
        ended_at=payload.ended_at or now,
    )
    if outcome.started_at is not None:
        outcome = outcome.model_copy(update={"duration_days": (outcome.ended_at - outcome.started_at).days})

    try:
        with state.mutation():
            state.store.insert("entity_outcomes", outcome.model_dump())
            state.put("entity_outcomes", outcome)
            state.emit(
                "outcome.recorded",
                collection="entity_outcomes",
                record_id=outcome.id,
                entity_id=str(outcome.entity_id),
                outcome_code=outcome.outcome_code,
            )
    except PersistenceError as exc:
        report_failure(state, "outcome", exc, entity_id=outcome.entity_id, outcome_code=outcome.outcome_code)
        return outcome

    if payload.contamination is not None:
        record_contamination_details(state, outcome.id, payload.contamination)
    return outcome


def record_contamination_details(
    state: LabState,
    outcome_id: UUID,
    payload: schemas.ContaminationDetailsCreate,
) -> schemas.ContaminationDetails | None:
    details = schemas.ContaminationDetails(
        id=uuid4(),
        user_id=state.actor_id,
        outcome_id=outcome_id,
        recorded_at=datetime.now(timezone.utc),
        **payload.model_dump(),
    )
    try:
        if any(d.outcome_id == outcome_id for d in state.records("contamination_details")):
            raise PersistenceError(f"contamination details already recorded for outcome {outcome_id}")
        with state.mutation():
            state.store.insert("contamination_details", details.model_dump())
            state.put("contamination_details", details)
    except PersistenceError as exc:
        report_failure(state, "contamination_details", exc, outcome_id=outcome_id)
        return None
    return details


def _delete_group(state: LabState, collection: str, record, event: str) -> list[UUID]:
    """Hard-delete every version in the record's group in one transaction."""

    versions = state.versions(collection, record.record_group_id)
    with state.mutation():
        for version in versions:
            state.store.delete(collection, version.id)
            state.discard(collection, version.id)
        state.emit(event, collection=collection, record_id=record.id, record_group_id=str(record.record_group_id))
    return [version.id for version in versions]


def _require_code(outcome: schemas.DisposalRequest) -> str:
    if not outcome.outcome_code:
        raise ValidationError("an outcome code is required")
    return outcome.outcome_code


def delete_culture(
    state: LabState,
    culture_id: UUID,
    outcome: schemas.DisposalRequest | None = None,
) -> None:
    culture = state.require_owned("cultures", culture_id)
    culture = state.versions("cultures", culture.record_group_id)[-1]
    if outcome is not None:
        record_outcome(
            state,
            schemas.EntityOutcomeCreate(
                entity_type="culture",
                entity_id=culture.record_group_id,
                entity_name=culture.label,
                started_at=culture.created_at,
                total_cost=costing.total_culture_cost(culture),
                **outcome.model_dump(exclude={"contamination", "outcome_code"}),
                outcome_code=_require_code(outcome),
                contamination=outcome.contamination,
            ),
        )
    deleted = _delete_group(state, "cultures", culture, "culture.deleted")
    logger.info("deleted culture %s (%d versions)", culture.record_group_id, len(deleted))


def _grow_outcome_code(grow: schemas.Grow, outcome: schemas.DisposalRequest, ended_at: datetime) -> str:
    if outcome.outcome_code:
        return outcome.outcome_code
    if grow.current_stage == "contaminated" or outcome.contamination is not None:
        started_at = grow.spawned_at or grow.created_at
        return contamination_outcome_code((ended_at - started_at).days)
    return _require_code(outcome)


def delete_grow(
    state: LabState,
    grow_id: UUID,
    outcome: schemas.DisposalRequest | None = None,
) -> None:
    """Remove a grow and its history, recording an outcome first when given.

    Contaminated grows disposed of without an explicit code get an early,
    mid or late contamination code from how long they were active.
    """

    grow = state.require_owned("grows", grow_id)
    grow = state.versions("grows", grow.record_group_id)[-1]
    if outcome is not None:
        ended_at = grow.completed_at or datetime.now(timezone.utc)
        record_outcome(
            state,
            schemas.EntityOutcomeCreate(
                entity_type="grow",
                entity_id=grow.record_group_id,
                entity_name=grow.name,
                started_at=grow.spawned_at or grow.created_at,
                ended_at=ended_at,
                total_cost=grow.total_cost,
                total_yield_wet=grow.total_yield,
                total_yield_dry=sum(flush.dry_weight for flush in grow.flushes),
                **outcome.model_dump(exclude={"contamination", "outcome_code"}),
                outcome_code=_grow_outcome_code(grow, outcome, ended_at),
                contamination=outcome.contamination,
            ),
        )
    deleted = _delete_group(state, "grows", grow, "grow.deleted")
    logger.info("deleted grow %s (%d versions)", grow.record_group_id, len(deleted))
