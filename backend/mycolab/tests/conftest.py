import os
os.environ["TESTING"] = "1"
os.environ.pop("DATABASE_URL", None)
import sys
import uuid
from contextlib import contextmanager
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.append(str(Path(__file__).resolve().parents[2]))

from mycolab import models, pubsub  # noqa: F401
from mycolab.database import Base, get_db
from mycolab.errors import PersistenceError
from mycolab.main import app
from mycolab.projection import LabState
from mycolab.store import MemoryRowStore, RowStore, SqlRowStore


def make_session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(params=["memory", "sqlite"])
def store(request):
    if request.param == "memory":
        yield MemoryRowStore()
        return
    db = make_session_factory()()
    try:
        yield SqlRowStore(db)
    finally:
        db.close()


@pytest.fixture
def actor_id():
    return uuid.uuid4()


@pytest.fixture
def state(store, actor_id):
    return LabState(store, actor_id).load()


@pytest.fixture
def events(state):
    captured = []
    state.subscribe(captured.append)
    return captured


class FlakyStore(RowStore):
    """Delegating store that fails chosen (operation, collection) pairs."""

    # purpose: inject persistence failures mid-transaction to exercise rollback paths
    # status: active

    def __init__(self, inner: RowStore, *failures: tuple[str, str]):
        self.inner = inner
        self.failures = set(failures)

    def _check(self, operation, collection):
        if (operation, collection) in self.failures:
            raise PersistenceError(f"injected {operation} failure on {collection}")

    def insert(self, collection, row):
        self._check("insert", collection)
        return self.inner.insert(collection, row)

    def update(self, collection, record_id, patch):
        self._check("update", collection)
        return self.inner.update(collection, record_id, patch)

    def update_where(self, collection, patch, predicate):
        self._check("update", collection)
        return self.inner.update_where(collection, patch, predicate)

    def delete(self, collection, record_id):
        self._check("delete", collection)
        return self.inner.delete(collection, record_id)

    def select(self, collection, filters=None, order_by=None, descending=False):
        return self.inner.select(collection, filters, order_by, descending)

    @contextmanager
    def transaction(self):
        with self.inner.transaction():
            yield


@pytest.fixture
def flaky_state(store, actor_id):
    """State over a FlakyStore; tests set ``flaky_state.store.failures`` before acting."""

    return LabState(FlakyStore(store), actor_id).load()


@pytest.fixture
def client():
    session_factory = make_session_factory()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    pubsub._redis = None
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.pop(get_db, None)


def actor_headers(user_id=None):
    return {"X-User-Id": str(user_id or uuid.uuid4())}
