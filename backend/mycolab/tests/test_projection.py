import uuid

import pytest

from mycolab import schemas
from mycolab.errors import AuthorizationError, NotFoundError
from mycolab.projection import LabState, collection_for
from mycolab.services import records


def test_events_are_delivered_only_after_commit(state, events):
    with pytest.raises(RuntimeError):
        with state.mutation():
            records.create_culture(state, schemas.CultureCreate(type="agar"))
            assert events == []
            raise RuntimeError("abort")

    assert events == []
    assert state.records("cultures") == []
    assert state.store.select("cultures") == []

    records.create_culture(state, schemas.CultureCreate(type="agar"))
    assert [e.type for e in events] == ["culture.created"]


def test_unsubscribe_stops_delivery(state):
    seen = []
    unsubscribe = state.subscribe(seen.append)
    unsubscribe()
    records.create_grow(state, schemas.GrowCreate(name="Tub"))
    assert seen == []


def test_apply_external_refreshes_collection(store, actor_id):
    here = LabState(store, actor_id).load()
    there = LabState(store, actor_id).load()
    grow = records.create_grow(there, schemas.GrowCreate(name="Remote"))
    captured = []
    there.subscribe(captured.append)
    records.update_grow(there, grow.id, schemas.GrowUpdate(name="Renamed"))

    here.apply_external(captured[-1].model_dump_json())

    assert here.get_grow(grow.id).name == "Renamed"


def test_ownership_checks(store, actor_id):
    owner = LabState(store, actor_id).load()
    grow = records.create_grow(owner, schemas.GrowCreate(name="Mine"))
    admin = LabState(store, uuid.uuid4(), is_admin=True)
    stranger = LabState(store, uuid.uuid4())

    admin.assert_owner(grow)
    with pytest.raises(AuthorizationError):
        stranger.assert_owner(grow)
    with pytest.raises(NotFoundError):
        stranger.load().require_owned("grows", grow.id)


def test_collection_for_unknown_type():
    assert collection_for("prepared_spawn") == "prepared_spawn"
    with pytest.raises(NotFoundError):
        collection_for("strain")
