"""Grow stage machine and the observation cascades that drive it."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from .. import schemas
from ..errors import ValidationError
from ..projection import LabState

# purpose: advance grows through their lifecycle and apply observation-triggered transitions
# inputs: projection handle, grow or culture ids, observation payloads
# outputs: updated Grow and Culture values plus stage-change events
# status: active

logger = logging.getLogger(__name__)

STAGE_ORDER = ("spawning", "colonization", "fruiting", "harvesting", "completed")
TERMINAL_STAGES = frozenset({"completed", "contaminated", "aborted"})
PIN_KEYWORDS = ("pin", "pins", "pinning", "primordia", "knots")

_STAGE_TIMESTAMPS = {
    "colonization": "colonization_started_at",
    "fruiting": "fruiting_started_at",
    "completed": "completed_at",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_pinning_observation(observation: schemas.GrowObservation | schemas.GrowObservationCreate) -> bool:
    """True when a milestone observation reports pins forming."""

    if observation.type != "milestone":
        return False
    text = f"{observation.title} {observation.notes}".lower()
    return any(keyword in text for keyword in PIN_KEYWORDS)


def next_stage(stage: str) -> str | None:
    if stage in TERMINAL_STAGES:
        return None
    index = STAGE_ORDER.index(stage)
    return STAGE_ORDER[index + 1]


def _write_grow(state: LabState, grow: schemas.Grow, patch: dict[str, Any], event: str) -> schemas.Grow:
    patch["updated_at"] = _utcnow()
    with state.mutation():
        state.store.update("grows", grow.id, patch)
        updated = state.put("grows", grow.model_copy(update=patch))
        state.emit(event, collection="grows", record_id=grow.id, stage=updated.current_stage)
    return updated


def _stage_patch(stage: str, now: datetime) -> dict[str, Any]:
    patch: dict[str, Any] = {"current_stage": stage}
    stamp = _STAGE_TIMESTAMPS.get(stage)
    if stamp:
        patch[stamp] = now
    if stage == "completed":
        patch["status"] = "completed"
    return patch


def advance_stage(state: LabState, grow_id: UUID) -> schemas.Grow | None:
    grow = state.get_grow(grow_id)
    if grow is None or not grow.is_live or grow.current_stage in TERMINAL_STAGES:
        return None
    state.assert_owner(grow)
    stage = next_stage(grow.current_stage)
    updated = _write_grow(state, grow, _stage_patch(stage, _utcnow()), "grow.stage_advanced")
    logger.info("grow %s advanced %s -> %s", grow.id, grow.current_stage, stage)
    return updated


def _failure_patch(grow: schemas.Grow, stage: str, notes: str | None) -> dict[str, Any]:
    patch: dict[str, Any] = {"current_stage": stage, "status": "failed"}
    if notes:
        patch["notes"] = f"{grow.notes}\n{notes}".strip() if grow.notes else notes
    return patch


def mark_contaminated(state: LabState, grow_id: UUID, notes: str | None = None) -> schemas.Grow:
    grow = state.require_live("grows", grow_id)
    logger.warning("grow %s marked contaminated at %s", grow.id, grow.current_stage)
    return _write_grow(state, grow, _failure_patch(grow, "contaminated", notes), "grow.contaminated")


def abort_grow(state: LabState, grow_id: UUID, notes: str | None = None) -> schemas.Grow:
    grow = state.require_live("grows", grow_id)
    if grow.current_stage in TERMINAL_STAGES:
        raise ValidationError(f"grow {grow_id} is already {grow.current_stage}")
    return _write_grow(state, grow, _failure_patch(grow, "aborted", notes), "grow.aborted")


def add_observation(
    state: LabState,
    grow_id: UUID,
    payload: schemas.GrowObservationCreate,
) -> schemas.Grow:
    """Append an observation and apply any cascade it triggers.

    Contamination takes precedence over pinning. Terminal grows record the
    observation without changing stage.
    """

    grow = state.require_live("grows", grow_id)
    now = _utcnow()
    observation = schemas.GrowObservation(
        id=uuid4(),
        date=payload.date or now,
        stage=grow.current_stage,
        **payload.model_dump(exclude={"date"}),
    )
    patch: dict[str, Any] = {"observations": [*grow.observations, observation]}
    event = "grow.observation_added"
    if grow.current_stage not in TERMINAL_STAGES:
        if observation.type == "contamination":
            patch.update({"current_stage": "contaminated", "status": "failed"})
            event = "grow.contaminated"
        elif grow.current_stage == "colonization" and is_pinning_observation(observation):
            patch.update(_stage_patch("fruiting", now))
            if grow.first_pins_at is None:
                patch["first_pins_at"] = now
            event = "grow.stage_advanced"
    return _write_grow(state, grow, patch, event)


def add_culture_observation(
    state: LabState,
    culture_id: UUID,
    payload: schemas.CultureObservationCreate,
) -> schemas.Culture:
    culture = state.require_live("cultures", culture_id)
    now = _utcnow()
    observation = schemas.CultureObservation(id=uuid4(), date=payload.date or now, **payload.model_dump(exclude={"date"}))
    patch: dict[str, Any] = {"observations": [*culture.observations, observation], "updated_at": now}
    if observation.health_rating is not None:
        patch["health_rating"] = observation.health_rating
    if observation.type == "contamination":
        patch["status"] = "contaminated"
    with state.mutation():
        state.store.update("cultures", culture.id, patch)
        updated = state.put("cultures", culture.model_copy(update=patch))
        state.emit("culture.observation_added", collection="cultures", record_id=culture.id, status=updated.status)
    return updated
