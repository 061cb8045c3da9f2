"""Culture ancestry and volume transfers between cultures."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone
from uuid import UUID, uuid4

from .. import schemas
from ..config import get_settings
from ..errors import ValidationError
from ..projection import LabState
from . import costing

# purpose: walk parent/child culture links and move volume plus inherited cost along them
# inputs: projection handle, culture ids, transfer payloads
# outputs: CultureLineage views, updated source and destination cultures
# status: active
# depends_on: mycolab.services.costing

logger = logging.getLogger(__name__)

DROP_ML = 0.05
WEDGE_FRACTION = 0.1
DEFAULT_WEDGE_FILL_ML = 20.0
EMPTY_VOLUME_THRESHOLD_ML = 0.5


def transferred_volume_ml(quantity: float, unit: str, source_fill_ml: float | None = None) -> float:
    """Convert a transfer quantity to millilitres."""

    if unit == "drop":
        return quantity * DROP_ML
    if unit == "wedge":
        fill = source_fill_ml if source_fill_ml and source_fill_ml > 0 else DEFAULT_WEDGE_FILL_ML
        return quantity * fill * WEDGE_FRACTION
    # ml and cc are the same volume
    return quantity


def _latest(state: LabState, culture: schemas.Culture) -> schemas.Culture:
    versions = state.versions("cultures", culture.record_group_id)
    return versions[-1] if versions else culture


def _resolve(state: LabState, culture_id: UUID | None) -> schemas.Culture | None:
    culture = state.get_culture(culture_id)
    if culture is None:
        return None
    return _latest(state, culture)


def ensure_acyclic_parent(state: LabState, record_group_id: UUID, parent_id: UUID) -> None:
    """Reject a parent whose own ancestry already contains ``record_group_id``."""

    limit = get_settings().lineage_depth_limit
    seen: set[UUID] = set()
    node = _resolve(state, parent_id)
    if node is None and parent_id == record_group_id:
        raise ValidationError("a culture cannot be its own parent")
    while node is not None and len(seen) < limit:
        if node.record_group_id == record_group_id:
            raise ValidationError(f"parent {parent_id} would create a lineage cycle")
        if node.record_group_id in seen:
            break
        seen.add(node.record_group_id)
        node = _resolve(state, node.parent_id)


def lineage(state: LabState, culture_id: UUID) -> schemas.CultureLineage:
    """Ancestors (root first) and depth-first descendants of a culture.

    Traversal stops at a missing parent, a node already visited, or the
    configured depth limit, so corrupted links never loop.
    """

    limit = get_settings().lineage_depth_limit
    start = _resolve(state, culture_id)
    if start is None:
        return schemas.CultureLineage()

    ancestors: list[schemas.Culture] = []
    visited = {start.record_group_id}
    node = _resolve(state, start.parent_id)
    while node is not None and node.record_group_id not in visited and len(ancestors) < limit:
        visited.add(node.record_group_id)
        ancestors.append(node)
        node = _resolve(state, node.parent_id)
    ancestors.reverse()

    children: dict[UUID, list[schemas.Culture]] = defaultdict(list)
    latest_by_group: dict[UUID, schemas.Culture] = {}
    for culture in state.records("cultures"):
        current = latest_by_group.get(culture.record_group_id)
        if current is None or culture.version > current.version:
            latest_by_group[culture.record_group_id] = culture
    for culture in latest_by_group.values():
        parent = state.get_culture(culture.parent_id)
        if parent is not None:
            children[parent.record_group_id].append(culture)

    descendants: list[schemas.Culture] = []
    seen = {start.record_group_id}
    stack = [(child, 1) for child in reversed(children[start.record_group_id])]
    while stack:
        culture, depth = stack.pop()
        if culture.record_group_id in seen or depth > limit:
            continue
        seen.add(culture.record_group_id)
        descendants.append(culture)
        stack.extend((child, depth + 1) for child in reversed(children[culture.record_group_id]))

    return schemas.CultureLineage(ancestors=ancestors, descendants=descendants)


def transfer(
    state: LabState,
    culture_id: UUID,
    payload: schemas.CultureTransferCreate,
) -> schemas.Culture | None:
    """Move volume out of a culture, carrying its per-ml cost to the destination."""

    source = state.require_owned("cultures", culture_id)
    if not source.is_live:
        raise ValidationError(f"culture {culture_id} is superseded or archived")

    now = datetime.now(timezone.utc)
    volume = transferred_volume_ml(payload.quantity, payload.unit, source.fill_volume_ml)
    rate = costing.cost_per_ml(source)
    inherited = rate * volume

    target = None
    if payload.to_id is not None:
        target = state.require_owned("cultures", payload.to_id)
        if not target.is_live:
            raise ValidationError(f"culture {payload.to_id} is superseded or archived")
        if target.record_group_id == source.record_group_id:
            raise ValidationError("cannot transfer a culture into itself")

    entry = schemas.CultureTransfer(
        id=uuid4(),
        date=payload.date or now,
        from_id=source.id,
        to_id=payload.to_id,
        to_type=payload.to_type,
        quantity=payload.quantity,
        unit=payload.unit,
        transferred_volume_ml=volume,
        cost_transferred=inherited,
        notes=payload.notes,
    )
    source_patch: dict = {
        "volume_used": source.volume_used + volume,
        "updated_at": now,
    }
    if source.fill_volume_ml is not None:
        remaining = max(0.0, source.fill_volume_ml - volume)
        source_patch["fill_volume_ml"] = remaining
        if remaining < EMPTY_VOLUME_THRESHOLD_ML:
            source_patch["status"] = "used"
    source_patch["cost_transferred_out"] = source.cost_transferred_out + inherited
    source_patch["cost_per_ml"] = costing.cost_per_ml(source.model_copy(update=source_patch))

    destination: schemas.Culture | None = None
    with state.mutation():
        if target is not None:
            fill = (target.fill_volume_ml or 0.0) + volume
            target_patch = {
                "fill_volume_ml": fill,
                "parent_culture_cost": target.parent_culture_cost + inherited,
                "updated_at": now,
            }
            target_patch["cost_per_ml"] = costing.cost_per_ml(target.model_copy(update=target_patch))
            destination = target.model_copy(update=target_patch)
            state.store.update("cultures", target.id, target_patch)
            state.put("cultures", destination)
            entry = entry.model_copy(update={"to_id": destination.id})
        elif payload.to_type in schemas.CULTURE_TYPES:
            from .records import new_culture

            destination = new_culture(
                state,
                type=payload.to_type,
                parent_id=source.id,
                generation=source.generation + 1,
                strain_id=source.strain_id,
                status="colonizing",
                fill_volume_ml=volume,
                parent_culture_cost=inherited,
                now=now,
            )
            entry = entry.model_copy(update={"to_id": destination.id})

        source_patch["transfers"] = [*source.transfers, entry]
        state.store.update("cultures", source.id, source_patch)
        state.put("cultures", source.model_copy(update=source_patch))
        state.emit(
            "culture.transferred",
            collection="cultures",
            record_id=source.id,
            to_id=str(entry.to_id) if entry.to_id else None,
            volume_ml=volume,
        )

    logger.info("transferred %.2f ml from culture %s to %s", volume, source.id, payload.to_type)
    return destination
