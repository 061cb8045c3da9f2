"""Amend, archive, and history behaviour over both row stores."""

import uuid

import pytest

from mycolab import schemas
from mycolab.errors import AuthorizationError, NotFoundError, PersistenceError, ValidationError
from mycolab.projection import LabState
from mycolab.services import records, versioning


def _culture(state, **fields):
    payload = {"type": "agar", "fill_volume_ml": 20, "purchase_cost": 10, **fields}
    return records.create_culture(state, schemas.CultureCreate(**payload))


def _grow(state, name="Tub"):
    return records.create_grow(state, schemas.GrowCreate(name=name))


def _current(state, group_id):
    return [v for v in state.versions("cultures", group_id) if v.is_current]


def test_amend_supersedes_original(state, events):
    original = _culture(state, notes="first")

    amended = versioning.amend(state, "culture", original.id, {"notes": "fixed"}, "correction", "typo")

    assert amended.version == 2
    assert amended.record_group_id == original.id
    assert amended.amends_record_id == original.id
    assert amended.notes == "fixed"
    assert amended.label == original.label
    old = state.get_culture(original.id)
    assert not old.is_current
    assert old.superseded_by_id == amended.id
    assert old.valid_to is not None
    assert _current(state, original.id) == [amended]
    assert state.active_cultures() == [amended]
    assert "record.amended" in [e.type for e in events]

    stored = state.store.select("cultures", {"record_group_id": original.id, "is_current": True})
    assert [row["id"] for row in stored] == [amended.id]


def test_amend_chain_keeps_single_current_version(state):
    original = _culture(state)
    second = versioning.amend(state, "culture", original.id, {"notes": "b"})
    third = versioning.amend(state, "culture", second.id, {"notes": "c"})

    versions = state.versions("cultures", original.id)
    assert [v.version for v in versions] == [1, 2, 3]
    assert [v.id for v in versions if v.is_current] == [third.id]


def test_amend_requires_current_version(state):
    original = _culture(state)
    versioning.amend(state, "culture", original.id, {"notes": "b"})

    with pytest.raises(NotFoundError):
        versioning.amend(state, "culture", original.id, {"notes": "again"})
    with pytest.raises(NotFoundError):
        versioning.amend(state, "culture", uuid.uuid4(), {"notes": "x"})


def test_amend_rejects_versioning_fields_and_bad_values(state):
    original = _culture(state)

    with pytest.raises(ValidationError):
        versioning.amend(state, "culture", original.id, {"version": 7})
    with pytest.raises(ValidationError):
        versioning.amend(state, "culture", original.id, {"is_current": False})
    with pytest.raises(ValidationError):
        versioning.amend(state, "culture", original.id, {"status": "thriving"})
    assert len(state.versions("cultures", original.id)) == 1


def test_amend_archived_group_is_rejected(state):
    grow = _grow(state)
    versioning.archive(state, "grow", grow.id, "done")

    with pytest.raises((ValidationError, NotFoundError)):
        versioning.amend(state, "grow", grow.id, {"name": "renamed"})


def test_amend_failure_rolls_back_store_and_projection(flaky_state):
    original = _culture(flaky_state)
    flaky_state.store.failures.add(("insert", "cultures"))

    with pytest.raises(PersistenceError):
        versioning.amend(flaky_state, "culture", original.id, {"notes": "lost"})

    assert flaky_state.get_culture(original.id).is_current
    assert len(flaky_state.records("cultures")) == 1
    row = flaky_state.store.get("cultures", original.id)
    assert row["is_current"] is True
    assert row["superseded_by_id"] is None
    assert versioning.get_audit_log(flaky_state, original.id) == []


def test_archive_is_idempotent(state):
    culture = _culture(state)

    versioning.archive(state, "culture", culture.id, "contaminated batch")
    versioning.archive(state, "culture", culture.id, "contaminated batch")

    archived = state.get_culture(culture.id)
    assert archived.is_archived and not archived.is_current
    assert archived.archived_by == state.actor_id
    assert archived.archive_reason == "contaminated batch"
    log = versioning.get_audit_log(state, culture.id)
    assert [entry.amendment_type for entry in log] == ["archive"]
    assert state.active_cultures() == []


def test_archive_requires_reason(state):
    culture = _culture(state)
    with pytest.raises(ValidationError):
        versioning.archive(state, "culture", culture.id, "   ")
    assert not state.get_culture(culture.id).is_archived


def test_archive_archived_elsewhere_is_silent(store, actor_id):
    first = LabState(store, actor_id).load()
    culture = _culture(first)
    second = LabState(store, actor_id).load()

    versioning.archive(second, "culture", culture.id, "from another tab")
    versioning.archive(first, "culture", culture.id, "stale view")

    assert first.get_culture(culture.id).is_archived
    assert first.get_culture(culture.id).archive_reason == "from another tab"
    assert len(versioning.get_audit_log(first, culture.id)) == 1


def test_archive_all_counts_and_keeps_history(state):
    cultures = [_culture(state) for _ in range(3)]
    for name in ("A", "B"):
        _grow(state, name)

    counts = versioning.archive_all(state, "season reset")

    assert counts == schemas.ArchiveCounts(cultures_archived=3, grows_archived=2, prepared_spawn_archived=0)
    assert state.active_cultures() == []
    assert state.active_grows() == []
    history = versioning.get_history(state, "culture", cultures[0].id)
    assert len(history) == 1 and history[0].is_archived
    assert versioning.archive_all(state, "again") == schemas.ArchiveCounts()


def test_archive_all_counts_superseded_versions(state):
    culture = _culture(state)
    versioning.amend(state, "culture", culture.id, {"notes": "v2"})

    counts = versioning.archive_all(state, "cleanup")

    assert counts.cultures_archived == 2
    assert all(v.is_archived for v in state.versions("cultures", culture.id))


def test_get_history_orders_versions(state):
    original = _culture(state)
    second = versioning.amend(state, "culture", original.id, {"notes": "b"})

    history = versioning.get_history(state, "culture", original.id)

    assert [h.version for h in history] == [1, 2]
    assert history[0].superseded_by_id == second.id
    assert history[1].amendment_type == "correction"


def test_get_history_unknown_group(state):
    with pytest.raises(NotFoundError):
        versioning.get_history(state, "culture", uuid.uuid4())
    with pytest.raises(NotFoundError):
        versioning.get_history(state, "strain", uuid.uuid4())


def test_get_history_of_another_user(store, actor_id):
    owner = LabState(store, actor_id).load()
    culture = _culture(owner)
    intruder = LabState(store, uuid.uuid4()).load()

    with pytest.raises(AuthorizationError):
        versioning.get_history(intruder, "culture", culture.id)
    assert versioning.get_audit_log(intruder, culture.id) == []


def test_audit_log_is_newest_first(state):
    original = _culture(state)
    second = versioning.amend(state, "culture", original.id, {"notes": "b"}, "update")
    versioning.archive(state, "culture", second.id, "retired")

    log = versioning.get_audit_log(state, original.id)

    assert [entry.amendment_type for entry in log] == ["archive", "update"]
    assert log[1].new_record_id == second.id


def test_archive_all_stops_at_failing_batch(flaky_state):
    cultures = [_culture(flaky_state) for _ in range(2)]
    grow = _grow(flaky_state)
    flaky_state.store.failures.add(("update", "grows"))

    with pytest.raises(PersistenceError):
        versioning.archive_all(flaky_state, "season reset")

    assert flaky_state.active_cultures() == []
    for culture in cultures:
        assert flaky_state.store.get("cultures", culture.id)["is_archived"] is True
        assert [e.amendment_type for e in versioning.get_audit_log(flaky_state, culture.id)] == ["archive"]
    assert flaky_state.get_grow(grow.id).is_live
    assert flaky_state.store.get("grows", grow.id)["is_archived"] is False
    assert versioning.get_audit_log(flaky_state, grow.id) == []


def test_repeat_archive_ignores_missing_reason(state):
    culture = _culture(state)
    versioning.archive(state, "culture", culture.id, "spent")

    versioning.archive(state, "culture", culture.id, "  ")
    versioning.archive(state, "culture", culture.id, None)

    assert state.get_culture(culture.id).archive_reason == "spent"
