"""Create and edit cultures, grows, and prepared spawn."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from pydantic import ValidationError as SchemaValidationError

from .. import schemas
from ..errors import ValidationError
from ..projection import LabState
from . import costing, lineage
from .stages import TERMINAL_STAGES

# purpose: own the first version of each versioned record and the plain field edits made to it
# inputs: projection handle, create/update payloads
# outputs: Culture, Grow, and PreparedSpawn values committed to store and projection
# status: active
# depends_on: mycolab.services.lineage (parent loop checks)

logger = logging.getLogger(__name__)

LABEL_PREFIXES = {
    "spore_syringe": "SS",
    "liquid_culture": "LC",
    "agar": "AG",
    "slant": "SL",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _version_fields(state: LabState, record_id: UUID, now: datetime) -> dict[str, Any]:
    return {
        "id": record_id,
        "user_id": state.actor_id,
        "record_group_id": record_id,
        "version": 1,
        "is_current": True,
        "valid_from": now,
        "amendment_type": "original",
        "created_at": now,
        "updated_at": now,
    }


def _apply(record, patch: dict[str, Any]):
    try:
        return type(record).model_validate({**record.model_dump(), **patch})
    except SchemaValidationError as exc:
        raise ValidationError(str(exc)) from exc


def generate_culture_label(state: LabState, culture_type: str, now: datetime | None = None) -> str:
    """Label such as ``LC-261018-004``: type prefix, date, and per-type sequence."""

    now = now or _utcnow()
    groups = {c.record_group_id for c in state.records("cultures") if c.type == culture_type}
    prefix = LABEL_PREFIXES.get(culture_type, "CUL")
    return f"{prefix}-{now:%y%m%d}-{len(groups) + 1:03d}"


def new_culture(state: LabState, *, type: str, now: datetime | None = None, **fields: Any) -> schemas.Culture:
    now = now or _utcnow()
    culture_id = uuid4()
    if not fields.get("label"):
        fields["label"] = generate_culture_label(state, type, now)
    if fields.get("parent_id") is not None:
        lineage.ensure_acyclic_parent(state, culture_id, fields["parent_id"])
    try:
        culture = schemas.Culture(type=type, **_version_fields(state, culture_id, now), **fields)
    except SchemaValidationError as exc:
        raise ValidationError(str(exc)) from exc
    culture = culture.model_copy(update={"cost_per_ml": costing.cost_per_ml(culture)})
    with state.mutation():
        state.store.insert("cultures", culture.model_dump())
        state.put("cultures", culture)
        state.emit("culture.created", collection="cultures", record_id=culture.id, label=culture.label)
    return culture


def create_culture(state: LabState, payload: schemas.CultureCreate) -> schemas.Culture:
    fields = payload.model_dump()
    parent = state.get_culture(payload.parent_id)
    if parent is not None:
        fields["generation"] = parent.generation + 1
    culture = new_culture(state, **fields)
    logger.info("created culture %s (%s)", culture.label, culture.id)
    return culture


def update_culture(state: LabState, culture_id: UUID, payload: schemas.CultureUpdate) -> schemas.Culture:
    """Edit fields of the current version in place; use amend for a tracked correction."""

    culture = state.require_live("cultures", culture_id)
    patch = payload.model_dump(exclude_unset=True)
    if patch.get("parent_id") is not None:
        lineage.ensure_acyclic_parent(state, culture.record_group_id, patch["parent_id"])
    patch["updated_at"] = _utcnow()
    updated = _apply(culture, patch)
    updated = updated.model_copy(update={"cost_per_ml": costing.cost_per_ml(updated)})
    patch = {key: getattr(updated, key) for key in [*patch, "cost_per_ml"]}
    with state.mutation():
        state.store.update("cultures", culture.id, patch)
        state.put("cultures", updated)
        state.emit("culture.updated", collection="cultures", record_id=culture.id)
    return updated


def create_grow(state: LabState, payload: schemas.GrowCreate) -> schemas.Grow:
    if payload.source_culture_id is not None:
        state.require_owned("cultures", payload.source_culture_id)
    now = _utcnow()
    grow_id = uuid4()
    fields = payload.model_dump()
    fields["spawned_at"] = fields["spawned_at"] or now
    grow = schemas.Grow(**_version_fields(state, grow_id, now), **fields)
    with state.mutation():
        state.store.insert("grows", grow.model_dump())
        state.put("grows", grow)
        state.emit("grow.created", collection="grows", record_id=grow.id, name=grow.name)
    logger.info("created grow %s (%s)", grow.name, grow.id)
    return grow


def update_grow(state: LabState, grow_id: UUID, payload: schemas.GrowUpdate) -> schemas.Grow:
    grow = state.require_live("grows", grow_id)
    patch = payload.model_dump(exclude_unset=True)
    if patch.get("source_culture_id") is not None:
        state.require_owned("cultures", patch["source_culture_id"])
    patch["updated_at"] = _utcnow()
    updated = _apply(grow, patch)
    patch = {key: getattr(updated, key) for key in patch}
    with state.mutation():
        state.store.update("grows", grow.id, patch)
        state.put("grows", updated)
        state.emit("grow.updated", collection="grows", record_id=grow.id)
    return updated


def add_flush(state: LabState, grow_id: UUID, payload: schemas.FlushCreate) -> schemas.Grow:
    grow = state.require_live("grows", grow_id)
    if grow.current_stage in TERMINAL_STAGES - {"completed"}:
        raise ValidationError(f"cannot harvest a grow that is {grow.current_stage}")
    now = _utcnow()
    flush = schemas.Flush(
        id=uuid4(),
        flush_number=max((f.flush_number for f in grow.flushes), default=0) + 1,
        harvest_date=payload.harvest_date or now,
        **payload.model_dump(exclude={"harvest_date"}),
    )
    patch: dict[str, Any] = {
        "flushes": [*grow.flushes, flush],
        "total_yield": grow.total_yield + flush.wet_weight,
        "updated_at": now,
    }
    if grow.first_harvest_at is None:
        patch["first_harvest_at"] = flush.harvest_date
    if grow.current_stage == "fruiting":
        patch["current_stage"] = "harvesting"
    with state.mutation():
        state.store.update("grows", grow.id, patch)
        updated = state.put("grows", grow.model_copy(update=patch))
        state.emit("grow.harvested", collection="grows", record_id=grow.id, flush_number=flush.flush_number)
    return updated


def create_prepared_spawn(state: LabState, payload: schemas.PreparedSpawnCreate) -> schemas.PreparedSpawn:
    now = _utcnow()
    spawn_id = uuid4()
    spawn = schemas.PreparedSpawn(**_version_fields(state, spawn_id, now), **payload.model_dump())
    with state.mutation():
        state.store.insert("prepared_spawn", spawn.model_dump())
        state.put("prepared_spawn", spawn)
        state.emit("spawn.created", collection="prepared_spawn", record_id=spawn.id)
    return spawn


def inoculate_prepared_spawn(state: LabState, spawn_id: UUID, culture_id: UUID) -> schemas.PreparedSpawn:
    spawn = state.require_live("prepared_spawn", spawn_id)
    if spawn.status in {"inoculated", "contaminated", "expired"}:
        raise ValidationError(f"prepared spawn {spawn_id} is {spawn.status}")
    culture = state.require_owned("cultures", culture_id)
    now = _utcnow()
    patch = {
        "status": "inoculated",
        "inoculated_at": now,
        "inoculated_culture_id": culture.id,
        "updated_at": now,
    }
    with state.mutation():
        state.store.update("prepared_spawn", spawn.id, patch)
        updated = state.put("prepared_spawn", spawn.model_copy(update=patch))
        state.emit(
            "spawn.inoculated",
            collection="prepared_spawn",
            record_id=spawn.id,
            culture_id=str(culture.id),
        )
    return updated
