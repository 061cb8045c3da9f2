import uuid
from datetime import datetime, timedelta, timezone

import pytest

from mycolab import audit, schemas
from mycolab.errors import NotFoundError, PersistenceError, ValidationError
from mycolab.services import outcomes, records, stages, versioning


def _grow(state):
    return records.create_grow(state, schemas.GrowCreate(name="Lions mane"))


def test_record_outcome_computes_duration(state):
    start = datetime(2024, 3, 1, tzinfo=timezone.utc)
    outcome = outcomes.record_outcome(
        state,
        schemas.EntityOutcomeCreate(
            entity_type="grow",
            entity_id=uuid.uuid4(),
            outcome_category="success",
            outcome_code="harvested",
            started_at=start,
            ended_at=start + timedelta(days=12, hours=20),
        ),
    )
    assert outcome.duration_days == 12
    assert state.store.get("entity_outcomes", outcome.id)["outcome_code"] == "harvested"


def test_record_outcome_defaults_end_to_now(state):
    outcome = outcomes.record_outcome(
        state,
        schemas.EntityOutcomeCreate(
            entity_type="culture",
            entity_id=uuid.uuid4(),
            outcome_category="neutral",
            outcome_code="used_up",
            started_at=datetime.now(timezone.utc) - timedelta(days=3, minutes=5),
        ),
    )
    assert outcome.ended_at is not None
    assert outcome.duration_days == 3


def test_record_outcome_without_start_has_no_duration(state):
    outcome = outcomes.record_outcome(
        state,
        schemas.EntityOutcomeCreate(
            entity_type="culture",
            entity_id=uuid.uuid4(),
            outcome_category="failure",
            outcome_code="dried_out",
        ),
    )
    assert outcome.duration_days is None


@pytest.mark.parametrize(
    "days,code",
    [
        (0, "contamination_early"),
        (7, "contamination_early"),
        (8, "contamination_mid"),
        (21, "contamination_mid"),
        (22, "contamination_late"),
    ],
)
def test_contamination_outcome_code(days, code):
    assert outcomes.contamination_outcome_code(days) == code


def test_delete_grow_with_outcome_and_contamination(state):
    grow = _grow(state)
    records.add_flush(state, grow.id, schemas.FlushCreate(wet_weight=120, dry_weight=12))

    outcomes.delete_grow(
        state,
        grow.id,
        schemas.DisposalRequest(
            outcome_category="failure",
            outcome_code="contamination_early",
            contamination=schemas.ContaminationDetailsCreate(contamination_type="trichoderma"),
        ),
    )

    assert state.get_grow(grow.id) is None
    assert state.store.get("grows", grow.id) is None
    [outcome] = state.records("entity_outcomes")
    assert outcome.entity_id == grow.id
    assert outcome.entity_name == "Lions mane"
    assert outcome.total_yield_wet == 120
    assert outcome.total_yield_dry == 12
    [details] = state.records("contamination_details")
    assert details.outcome_id == outcome.id
    assert details.contamination_type == "trichoderma"


def test_delete_culture_without_outcome(state):
    culture = records.create_culture(state, schemas.CultureCreate(type="agar"))
    outcomes.delete_culture(state, culture.id)
    assert state.get_culture(culture.id) is None
    assert state.records("entity_outcomes") == []
    with pytest.raises(NotFoundError):
        outcomes.delete_culture(state, culture.id)


def test_outcome_failure_is_reported_and_delete_proceeds(flaky_state):
    events = []
    flaky_state.subscribe(events.append)
    culture = records.create_culture(flaky_state, schemas.CultureCreate(type="agar", purchase_cost=6))
    flaky_state.store.failures.add(("insert", "entity_outcomes"))

    outcomes.delete_culture(
        flaky_state,
        culture.id,
        schemas.DisposalRequest(outcome_category="neutral", outcome_code="used_up"),
    )

    assert flaky_state.get_culture(culture.id) is None
    assert flaky_state.records("entity_outcomes") == []
    assert "outcome.failed" in [e.type for e in events]


def test_record_outcome_failure_returns_local_value(flaky_state):
    flaky_state.store.failures.add(("insert", "entity_outcomes"))
    outcome = outcomes.record_outcome(
        flaky_state,
        schemas.EntityOutcomeCreate(
            entity_type="grow",
            entity_id=uuid.uuid4(),
            outcome_category="success",
            outcome_code="harvested",
            total_cost=12.5,
        ),
    )
    assert outcome.id is not None
    assert outcome.total_cost == 12.5


def test_delete_failure_propagates(flaky_state):
    grow = _grow(flaky_state)
    flaky_state.store.failures.add(("delete", "grows"))

    with pytest.raises(PersistenceError):
        outcomes.delete_grow(
            flaky_state,
            grow.id,
            schemas.DisposalRequest(outcome_category="neutral", outcome_code="abandoned"),
        )

    assert flaky_state.get_grow(grow.id) is not None
    assert len(flaky_state.records("entity_outcomes")) == 1


def test_contamination_details_are_one_per_outcome(state):
    events = []
    state.subscribe(events.append)
    outcome = outcomes.record_outcome(
        state,
        schemas.EntityOutcomeCreate(
            entity_type="grow",
            entity_id=uuid.uuid4(),
            outcome_category="failure",
            outcome_code="contamination_mid",
        ),
    )
    details = schemas.ContaminationDetailsCreate(contamination_type="bacterial")

    assert outcomes.record_contamination_details(state, outcome.id, details) is not None
    assert outcomes.record_contamination_details(state, outcome.id, details) is None
    assert len(state.records("contamination_details")) == 1
    assert "contamination_details.failed" in [e.type for e in events]


def test_audit_failure_does_not_undo_amend(flaky_state):
    culture = records.create_culture(flaky_state, schemas.CultureCreate(type="agar"))
    flaky_state.store.failures.add(("insert", "amendment_log"))

    amended = versioning.amend(flaky_state, "culture", culture.id, {"notes": "kept"})

    assert flaky_state.get_culture(amended.id).is_current
    assert versioning.get_audit_log(flaky_state, culture.id) == []


def test_amendment_report_counts_by_type(state):
    culture = records.create_culture(state, schemas.CultureCreate(type="agar"))
    second = versioning.amend(state, "culture", culture.id, {"notes": "a"}, "correction")
    third = versioning.amend(state, "culture", second.id, {"notes": "b"}, "correction")
    versioning.archive(state, "culture", third.id, "done")

    report = audit.amendment_report(
        state,
        datetime(2000, 1, 1),
        datetime.now(timezone.utc) + timedelta(minutes=1),
    )

    assert [(r.amendment_type, r.count) for r in report] == [("archive", 1), ("correction", 2)]


def test_delete_amended_culture_removes_every_version(state):
    culture = records.create_culture(state, schemas.CultureCreate(type="agar", purchase_cost=4))
    amended = versioning.amend(state, "culture", culture.id, {"notes": "relabelled"})

    outcomes.delete_culture(
        state,
        amended.id,
        schemas.DisposalRequest(outcome_category="neutral", outcome_code="used_up"),
    )

    assert state.versions("cultures", culture.id) == []
    assert state.store.select("cultures", {"record_group_id": culture.id}) == []
    [outcome] = state.records("entity_outcomes")
    assert outcome.entity_id == culture.id
    assert outcome.total_cost == 4


def test_delete_by_superseded_id_removes_the_group(state):
    grow = _grow(state)
    versioning.amend(state, "grow", grow.id, {"name": "Renamed"})

    outcomes.delete_grow(state, grow.id)

    assert state.records("grows") == []
    assert state.store.select("grows") == []


def test_contaminated_grow_gets_code_from_days_active(state):
    spawned = datetime.now(timezone.utc) - timedelta(days=10)
    grow = records.create_grow(state, schemas.GrowCreate(name="Tub", spawned_at=spawned))
    stages.mark_contaminated(state, grow.id)

    outcomes.delete_grow(state, grow.id, schemas.DisposalRequest(outcome_category="failure"))

    [outcome] = state.records("entity_outcomes")
    assert outcome.outcome_code == "contamination_mid"


def test_disposal_without_code_is_rejected(state):
    culture = records.create_culture(state, schemas.CultureCreate(type="agar"))

    with pytest.raises(ValidationError):
        outcomes.delete_culture(state, culture.id, schemas.DisposalRequest(outcome_category="neutral"))

    assert state.get_culture(culture.id) is not None
    assert state.records("entity_outcomes") == []
