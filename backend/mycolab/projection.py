"""In-memory projection of an actor's cultivation records."""

# purpose: hold immutable record values observed by the API and commit them only after store writes succeed
# status: active
# depends_on: mycolab.store, mycolab.schemas

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator, TypeVar
from uuid import UUID

from pydantic import BaseModel

from . import schemas
from .errors import AuthorizationError, NotFoundError, ValidationError
from .store import RowStore

logger = logging.getLogger(__name__)

COLLECTION_SCHEMAS: dict[str, type[BaseModel]] = {
    "cultures": schemas.Culture,
    "grows": schemas.Grow,
    "prepared_spawn": schemas.PreparedSpawn,
    "locations": schemas.Location,
    "inventory_items": schemas.InventoryItem,
    "inventory_lots": schemas.InventoryLot,
    "inventory_usages": schemas.InventoryUsage,
    "entity_outcomes": schemas.EntityOutcome,
    "contamination_details": schemas.ContaminationDetails,
    "amendment_log": schemas.AmendmentLogEntry,
}

VERSIONED_COLLECTIONS: dict[str, str] = {
    "culture": "cultures",
    "grow": "grows",
    "prepared_spawn": "prepared_spawn",
}

Listener = Callable[[schemas.LabEvent], None]
R = TypeVar("R", bound=BaseModel)


def collection_for(entity_type: str) -> str:
    try:
        return VERSIONED_COLLECTIONS[entity_type]
    except KeyError:
        raise NotFoundError(f"unknown entity type {entity_type}") from None


class LabState:
    """Projection of one actor's records over a row store.

    Services stage new values with :meth:`put` inside :meth:`mutation`. The
    block wraps a store transaction; if any write raises, the store rolls
    back and the projection is restored to its snapshot, so the two never
    diverge. Listeners only hear about changes that committed.
    """

    def __init__(self, store: RowStore, actor_id: UUID, *, is_admin: bool = False) -> None:
        self.store = store
        self.actor_id = actor_id
        self.is_admin = is_admin
        self._records: dict[str, dict[UUID, BaseModel]] = {name: {} for name in COLLECTION_SCHEMAS}
        self._listeners: list[Listener] = []
        self._pending: list[schemas.LabEvent] | None = None
        self._depth = 0

    # loading

    def load(self) -> "LabState":
        for collection in COLLECTION_SCHEMAS:
            self.refresh(collection)
        return self

    def refresh(self, collection: str | None = None) -> None:
        """Re-fetch one collection (or all) after an external change notification."""

        if collection is None:
            self.load()
            return
        model = COLLECTION_SCHEMAS[collection]
        rows = self.store.select(collection, {"user_id": self.actor_id})
        self._records[collection] = {row["id"]: model.model_validate(row) for row in rows}
        logger.debug("refreshed %s: %d rows", collection, len(rows))

    def apply_external(self, message: str | schemas.LabEvent) -> None:
        """Re-fetch whatever a change published by another instance touched."""

        event = message if isinstance(message, schemas.LabEvent) else schemas.LabEvent.model_validate_json(message)
        if event.collection is not None and event.collection not in COLLECTION_SCHEMAS:
            logger.warning("ignoring event for unknown collection %s", event.collection)
            return
        self.refresh(event.collection)

    def resync(self, collection: str, record_id: UUID) -> BaseModel | None:
        """Replace one projected record with the store's copy."""

        row = self.store.get(collection, record_id)
        if row is None:
            self._records[collection].pop(record_id, None)
            return None
        record = COLLECTION_SCHEMAS[collection].model_validate(row)
        self._records[collection][record_id] = record
        return record

    # reads

    def get(self, collection: str, record_id: UUID | None):
        if record_id is None:
            return None
        return self._records[collection].get(record_id)

    def require(self, collection: str, record_id: UUID):
        record = self.get(collection, record_id)
        if record is None:
            raise NotFoundError(f"{collection} record {record_id} not found")
        return record

    def require_owned(self, collection: str, record_id: UUID):
        record = self.require(collection, record_id)
        self.assert_owner(record)
        return record

    def require_live(self, collection: str, record_id: UUID):
        """Owned record that is still the current, unarchived version of its group."""

        record = self.require_owned(collection, record_id)
        if not record.is_live:
            raise ValidationError(f"{collection} record {record_id} is superseded or archived")
        return record

    def assert_owner(self, record: BaseModel) -> None:
        if self.is_admin:
            return
        if getattr(record, "user_id", None) != self.actor_id:
            raise AuthorizationError("record belongs to another user")

    def records(self, collection: str) -> list:
        return list(self._records[collection].values())

    def versions(self, collection: str, record_group_id: UUID) -> list:
        rows = [r for r in self._records[collection].values() if r.record_group_id == record_group_id]
        return sorted(rows, key=lambda r: r.version)

    def group_ids(self, collection: str, record_id: UUID) -> set[UUID]:
        """Every version id sharing a record group with ``record_id``."""

        record = self.get(collection, record_id)
        if record is None:
            return {record_id}
        return {r.id for r in self.versions(collection, record.record_group_id)} | {record_id}

    def _live(self, collection: str) -> list:
        return [r for r in self._records[collection].values() if r.is_live]

    def active_cultures(self) -> list[schemas.Culture]:
        return self._live("cultures")

    def active_grows(self) -> list[schemas.Grow]:
        return self._live("grows")

    def active_prepared_spawn(self) -> list[schemas.PreparedSpawn]:
        return self._live("prepared_spawn")

    def get_culture(self, culture_id: UUID | None) -> schemas.Culture | None:
        return self.get("cultures", culture_id)

    def get_grow(self, grow_id: UUID | None) -> schemas.Grow | None:
        return self.get("grows", grow_id)

    def get_inventory_item(self, item_id: UUID | None) -> schemas.InventoryItem | None:
        return self.get("inventory_items", item_id)

    def get_inventory_lot(self, lot_id: UUID | None) -> schemas.InventoryLot | None:
        return self.get("inventory_lots", lot_id)

    def lots_for_item(self, item_id: UUID) -> list[schemas.InventoryLot]:
        return [
            lot
            for lot in self._records["inventory_lots"].values()
            if lot.inventory_item_id == item_id and lot.is_active
        ]

    # writes

    @contextmanager
    def mutation(self) -> Iterator["LabState"]:
        """Transactional boundary for one logical state change."""

        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return
        snapshot = {name: dict(records) for name, records in self._records.items()}
        self._pending = []
        self._depth = 1
        try:
            with self.store.transaction():
                yield self
        except BaseException:
            self._records = snapshot
            self._pending = None
            logger.debug("mutation rolled back; projection restored")
            raise
        finally:
            self._depth = 0
        events, self._pending = self._pending, None
        for event in events:
            self._notify(event)

    def put(self, collection: str, record: R) -> R:
        self._records[collection][record.id] = record
        return record

    def discard(self, collection: str, record_id: UUID) -> None:
        self._records[collection].pop(record_id, None)

    def replace(self, collection: str, rows: Iterable[dict]) -> None:
        model = COLLECTION_SCHEMAS[collection]
        for row in rows:
            record = model.model_validate(row)
            self._records[collection][record.id] = record

    # notifications

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event_type: str, *, collection: str | None = None, record_id: UUID | None = None, **payload) -> None:
        event = schemas.LabEvent(type=event_type, collection=collection, record_id=record_id, payload=payload)
        if self._pending is not None:
            self._pending.append(event)
        else:
            self._notify(event)

    def _notify(self, event: schemas.LabEvent) -> None:
        for listener in list(self._listeners):
            listener(event)
