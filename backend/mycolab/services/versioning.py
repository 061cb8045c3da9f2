"""Append-only amend and archive operations for versioned records."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping
from uuid import UUID, uuid4

from pydantic import ValidationError as SchemaValidationError

from .. import audit, schemas
from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..projection import VERSIONED_COLLECTIONS, LabState, collection_for
from . import costing, lineage

# purpose: supersede records with new versions and retire record groups without losing history
# inputs: projection handle, entity type, record ids, change sets, reasons
# outputs: new current versions, archive counts, version summaries, audit entries
# status: active
# depends_on: mycolab.projection, mycolab.audit

logger = logging.getLogger(__name__)

VERSIONING_FIELDS = frozenset(schemas.VersionedRecord.model_fields) - {"created_at", "updated_at"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _archive_patch(state: LabState, reason: str, now: datetime) -> dict[str, Any]:
    return {
        "is_archived": True,
        "archived_at": now,
        "archived_by": state.actor_id,
        "archive_reason": reason,
        "is_current": False,
        "updated_at": now,
    }


def _require_reason(reason: str | None) -> str:
    if reason is None or not reason.strip():
        raise ValidationError("an archive reason is required")
    return reason.strip()


def _amended_culture(state: LabState, amended: schemas.Culture, changes: Mapping[str, Any]) -> schemas.Culture:
    """Re-derive lineage and cost fields of an amended culture from its final values."""

    update: dict[str, Any] = {}
    if "parent_id" in changes:
        if amended.parent_id is not None:
            lineage.ensure_acyclic_parent(state, amended.record_group_id, amended.parent_id)
        parent = state.get_culture(amended.parent_id)
        if parent is not None:
            update["generation"] = parent.generation + 1
        elif amended.parent_id is None:
            update["generation"] = 0
    update["cost_per_ml"] = costing.cost_per_ml(amended.model_copy(update=update))
    return amended.model_copy(update=update)


def amend(
    state: LabState,
    entity_type: str,
    original_id: UUID,
    changes: Mapping[str, Any],
    amendment_type: str = "correction",
    reason: str | None = None,
):
    """Supersede the current version of a record with an amended copy.

    The original row is closed with a conditional write that only matches
    while it is still current and unarchived, so two racing amends cannot
    both produce a successor.
    """

    collection = collection_for(entity_type)
    original = state.get(collection, original_id)
    if original is None or not original.is_current:
        raise NotFoundError(f"{entity_type} {original_id} is not a current record")
    state.assert_owner(original)

    group_id = original.record_group_id or original.id
    if original.is_archived or any(v.is_archived for v in state.versions(collection, group_id)):
        raise ValidationError(f"{entity_type} group {group_id} is archived")
    if amendment_type == "original":
        raise ValidationError("amendments cannot use the 'original' type")
    touched = VERSIONING_FIELDS.intersection(changes)
    if touched:
        raise ValidationError(f"cannot amend versioning fields: {', '.join(sorted(touched))}")

    now = _utcnow()
    new_id = uuid4()
    try:
        amended = type(original).model_validate(
            {
                **original.model_dump(),
                **changes,
                "id": new_id,
                "record_group_id": group_id,
                "version": original.version + 1,
                "is_current": True,
                "valid_from": now,
                "valid_to": None,
                "superseded_by_id": None,
                "amendment_type": amendment_type,
                "amendment_reason": reason,
                "amends_record_id": original.id,
                "updated_at": now,
            }
        )
    except SchemaValidationError as exc:
        raise ValidationError(f"invalid amendment for {entity_type}: {exc}") from exc
    if entity_type == "culture":
        amended = _amended_culture(state, amended, changes)

    superseded = {"is_current": False, "valid_to": now, "superseded_by_id": new_id, "updated_at": now}
    with state.mutation():
        affected = state.store.conditional_update(
            collection,
            original.id,
            superseded,
            {"is_current": True, "is_archived": False},
        )
        if affected:
            state.store.insert(collection, amended.model_dump())
            state.put(collection, original.model_copy(update=superseded))
            state.put(collection, amended)
            state.emit(
                "record.amended",
                collection=collection,
                record_id=new_id,
                record_group_id=str(group_id),
                version=amended.version,
            )
    if not affected:
        state.resync(collection, original.id)
        raise ValidationError(f"{entity_type} {original_id} changed before the amendment was applied")

    logger.info("amended %s %s -> %s (v%d)", entity_type, original.id, new_id, amended.version)
    audit.log_amendment(
        state,
        entity_type=entity_type,
        record_group_id=group_id,
        original_record_id=original.id,
        new_record_id=new_id,
        amendment_type=amendment_type,
        reason=reason,
    )
    return amended


def archive(state: LabState, entity_type: str, record_id: UUID, reason: str | None) -> None:
    """Soft-delete one version; repeating the call is a silent no-op."""

    collection = collection_for(entity_type)
    record = state.require(collection, record_id)
    state.assert_owner(record)
    if record.is_archived:
        logger.debug("%s %s already archived", entity_type, record_id)
        return
    reason = _require_reason(reason)

    now = _utcnow()
    patch = _archive_patch(state, reason, now)
    if record.is_current:
        patch["valid_to"] = now
    with state.mutation():
        affected = state.store.conditional_update(collection, record.id, patch, {"is_archived": False})
        if affected:
            state.put(collection, record.model_copy(update=patch))
            state.emit("record.archived", collection=collection, record_id=record.id, reason=reason)
    if not affected:
        # archived elsewhere since our last load
        state.resync(collection, record.id)
        return

    audit.log_amendment(
        state,
        entity_type=entity_type,
        record_group_id=record.record_group_id,
        original_record_id=record.id,
        new_record_id=None,
        amendment_type="archive",
        reason=reason,
    )


def _archive_collection(state: LabState, entity_type: str, collection: str, reason: str) -> int:
    now = _utcnow()
    owned = {"user_id": state.actor_id, "is_archived": False}
    with state.mutation():
        pending = state.store.select(collection, owned)
        state.store.update_where(collection, {"valid_to": now}, {**owned, "is_current": True})
        affected = state.store.update_where(collection, _archive_patch(state, reason, now), owned)
        if pending:
            state.replace(collection, state.store.select(collection, {"id": [row["id"] for row in pending]}))
        state.emit("records.archived", collection=collection, count=affected, reason=reason)

    for row in pending:
        audit.log_amendment(
            state,
            entity_type=entity_type,
            record_group_id=row["record_group_id"],
            original_record_id=row["id"],
            new_record_id=None,
            amendment_type="archive",
            reason=reason,
        )
    return affected


def archive_all(state: LabState, reason: str | None) -> schemas.ArchiveCounts:
    """Archive every unarchived record the actor owns, one batch per entity type.

    Batches commit independently; a failure aborts the remaining types and
    leaves earlier ones archived.
    """

    reason = _require_reason(reason)
    counts = {
        entity_type: _archive_collection(state, entity_type, collection, reason)
        for entity_type, collection in VERSIONED_COLLECTIONS.items()
    }
    logger.info("archive_all for %s: %s", state.actor_id, counts)
    return schemas.ArchiveCounts(
        cultures_archived=counts["culture"],
        grows_archived=counts["grow"],
        prepared_spawn_archived=counts["prepared_spawn"],
    )


def get_history(state: LabState, entity_type: str, record_group_id: UUID) -> list[schemas.VersionSummary]:
    collection = collection_for(entity_type)
    rows = state.store.select(collection, {"record_group_id": record_group_id}, order_by="version")
    if not rows:
        raise NotFoundError(f"no {entity_type} history for group {record_group_id}")
    if not state.is_admin and rows[0]["user_id"] != state.actor_id:
        raise AuthorizationError("record group belongs to another user")
    return [schemas.VersionSummary.model_validate(row) for row in rows]


def get_audit_log(state: LabState, record_group_id: UUID) -> list[schemas.AmendmentLogEntry]:
    filters: dict[str, Any] = {"record_group_id": record_group_id}
    if not state.is_admin:
        filters["user_id"] = state.actor_id
    rows = state.store.select("amendment_log", filters, order_by="created_at", descending=True)
    return [schemas.AmendmentLogEntry.model_validate(row) for row in rows]
