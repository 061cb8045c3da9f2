"""Row-store adapters behind the cultivation projection."""

# purpose: give services one insert/update/select contract over SQLAlchemy or local memory
# status: active
# depends_on: mycolab.models, mycolab.database

from __future__ import annotations

import abc
import copy
import logging
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, Mapping

import sqlalchemy as sa
from pydantic_core import to_jsonable_python
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .errors import NotFoundError, PersistenceError

logger = logging.getLogger(__name__)

COLLECTION_MODELS: dict[str, type] = {
    "cultures": models.Culture,
    "grows": models.Grow,
    "prepared_spawn": models.PreparedSpawn,
    "locations": models.Location,
    "inventory_items": models.InventoryItem,
    "inventory_lots": models.InventoryLot,
    "inventory_usages": models.InventoryUsage,
    "entity_outcomes": models.EntityOutcome,
    "contamination_details": models.ContaminationDetails,
    "amendment_log": models.DataAmendmentLog,
}

Row = dict[str, Any]


def _matches(row: Mapping[str, Any], filters: Mapping[str, Any] | None) -> bool:
    for key, expected in (filters or {}).items():
        value = row.get(key)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


class RowStore(abc.ABC):
    """Uniform per-collection contract used by the domain services."""

    @abc.abstractmethod
    def insert(self, collection: str, row: Mapping[str, Any]) -> Row:
        """Persist a new row and return it with its identifier."""

    @abc.abstractmethod
    def update(self, collection: str, record_id: uuid.UUID, patch: Mapping[str, Any]) -> None:
        """Apply a patch to one row; NotFoundError when it is absent."""

    @abc.abstractmethod
    def update_where(
        self,
        collection: str,
        patch: Mapping[str, Any],
        predicate: Mapping[str, Any],
    ) -> int:
        """Apply a patch to every row matching the predicate and return rows affected."""

    @abc.abstractmethod
    def delete(self, collection: str, record_id: uuid.UUID) -> None:
        """Remove one row."""

    @abc.abstractmethod
    def select(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Row]:
        """Return rows matching equality (or membership) filters."""

    @abc.abstractmethod
    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group writes so they commit or roll back together."""

    def conditional_update(
        self,
        collection: str,
        record_id: uuid.UUID,
        patch: Mapping[str, Any],
        predicate: Mapping[str, Any],
    ) -> int:
        """Update a row only while the predicate still holds."""

        return self.update_where(collection, patch, {**predicate, "id": record_id})

    def get(self, collection: str, record_id: uuid.UUID) -> Row | None:
        rows = self.select(collection, {"id": record_id})
        return rows[0] if rows else None


class MemoryRowStore(RowStore):
    """Process-local store used when no database is configured."""

    def __init__(self) -> None:
        self._tables: dict[str, dict[uuid.UUID, Row]] = {name: {} for name in COLLECTION_MODELS}
        self._depth = 0

    def _table(self, collection: str) -> dict[uuid.UUID, Row]:
        try:
            return self._tables[collection]
        except KeyError:
            raise PersistenceError(f"unknown collection {collection}") from None

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return
        snapshot = copy.deepcopy(self._tables)
        self._depth = 1
        try:
            yield
        except BaseException:
            self._tables = snapshot
            raise
        finally:
            self._depth = 0

    def insert(self, collection: str, row: Mapping[str, Any]) -> Row:
        table = self._table(collection)
        stored = copy.deepcopy(dict(row))
        stored.setdefault("id", uuid.uuid4())
        if stored["id"] in table:
            raise PersistenceError(f"duplicate key {stored['id']} in {collection}")
        table[stored["id"]] = stored
        return copy.deepcopy(stored)

    def update(self, collection: str, record_id: uuid.UUID, patch: Mapping[str, Any]) -> None:
        table = self._table(collection)
        if record_id not in table:
            raise NotFoundError(f"{collection} row {record_id} not found")
        table[record_id].update(copy.deepcopy(dict(patch)))

    def update_where(
        self,
        collection: str,
        patch: Mapping[str, Any],
        predicate: Mapping[str, Any],
    ) -> int:
        affected = 0
        for row in self._table(collection).values():
            if _matches(row, predicate):
                row.update(copy.deepcopy(dict(patch)))
                affected += 1
        return affected

    def delete(self, collection: str, record_id: uuid.UUID) -> None:
        table = self._table(collection)
        if table.pop(record_id, None) is None:
            raise NotFoundError(f"{collection} row {record_id} not found")

    def select(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Row]:
        rows = [copy.deepcopy(row) for row in self._table(collection).values() if _matches(row, filters)]
        if order_by:
            rows.sort(key=lambda row: (row.get(order_by) is None, row.get(order_by)), reverse=descending)
        return rows


class SqlRowStore(RowStore):
    """SQLAlchemy-backed store bound to a session."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self._depth = 0

    def _model(self, collection: str):
        try:
            return COLLECTION_MODELS[collection]
        except KeyError:
            raise PersistenceError(f"unknown collection {collection}") from None

    @staticmethod
    def _values(model, data: Mapping[str, Any]) -> Row:
        columns = sa.inspect(model).columns
        values: Row = {}
        for key, value in data.items():
            if key not in columns:
                continue
            if isinstance(columns[key].type, sa.JSON):
                value = to_jsonable_python(value)
            values[key] = value
        return values

    @staticmethod
    def _to_row(obj) -> Row:
        mapper = sa.inspect(obj).mapper
        return {attr.key: getattr(obj, attr.key) for attr in mapper.column_attrs}

    def _where(self, model, predicate: Mapping[str, Any] | None):
        clauses = []
        for key, expected in (predicate or {}).items():
            column = getattr(model, key)
            if isinstance(expected, (list, tuple, set, frozenset)):
                clauses.append(column.in_(list(expected)))
            elif expected is None:
                clauses.append(column.is_(None))
            else:
                clauses.append(column == expected)
        return clauses

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return
        self._depth = 1
        try:
            yield
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError(str(exc)) from exc
        except BaseException:
            self.db.rollback()
            raise
        finally:
            self._depth = 0

    def insert(self, collection: str, row: Mapping[str, Any]) -> Row:
        model = self._model(collection)
        with self.transaction():
            try:
                obj = model(**self._values(model, row))
                self.db.add(obj)
                self.db.flush()
            except SQLAlchemyError as exc:
                raise PersistenceError(f"insert into {collection} failed: {exc}") from exc
            row = self._to_row(obj)
            self.db.expunge(obj)
            return row

    def update(self, collection: str, record_id: uuid.UUID, patch: Mapping[str, Any]) -> None:
        if self.update_where(collection, patch, {"id": record_id}) == 0:
            raise NotFoundError(f"{collection} row {record_id} not found")

    def update_where(
        self,
        collection: str,
        patch: Mapping[str, Any],
        predicate: Mapping[str, Any],
    ) -> int:
        model = self._model(collection)
        stmt = (
            sa.update(model)
            .where(*self._where(model, predicate))
            .values(**self._values(model, patch))
            .execution_options(synchronize_session=False)
        )
        with self.transaction():
            try:
                result = self.db.execute(stmt)
            except SQLAlchemyError as exc:
                raise PersistenceError(f"update of {collection} failed: {exc}") from exc
            return result.rowcount

    def delete(self, collection: str, record_id: uuid.UUID) -> None:
        model = self._model(collection)
        stmt = sa.delete(model).where(model.id == record_id).execution_options(synchronize_session=False)
        with self.transaction():
            try:
                result = self.db.execute(stmt)
            except SQLAlchemyError as exc:
                raise PersistenceError(f"delete from {collection} failed: {exc}") from exc
            if result.rowcount == 0:
                raise NotFoundError(f"{collection} row {record_id} not found")

    def select(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Row]:
        model = self._model(collection)
        stmt = (
            sa.select(model)
            .where(*self._where(model, filters))
            .execution_options(populate_existing=True)
        )
        if order_by:
            column = getattr(model, order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        try:
            objects = self.db.scalars(stmt).all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"select from {collection} failed: {exc}") from exc
        rows = [self._to_row(obj) for obj in objects]
        # rows are plain values; keep the identity map from serving stale objects
        for obj in objects:
            self.db.expunge(obj)
        return rows


def build_store(db: Session | None) -> RowStore:
    """Return the SQL store for a session, or the shared local store when there is none."""

    if db is None:
        logger.debug("no database configured, using local in-memory store")
        return local_store()
    return SqlRowStore(db)


_LOCAL_STORE: MemoryRowStore | None = None


def local_store() -> MemoryRowStore:
    global _LOCAL_STORE
    if _LOCAL_STORE is None:
        _LOCAL_STORE = MemoryRowStore()
    return _LOCAL_STORE


def reset_local_store() -> None:
    global _LOCAL_STORE
    _LOCAL_STORE = None
