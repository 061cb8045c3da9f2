import uuid
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Text,
    Float,
)
from sqlalchemy.dialects.postgresql import UUID
from datetime import datetime, timezone

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VersionedColumns:
    # purpose: shared append-only versioning columns for amendable records
    # status: active
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    record_group_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    version = Column(Integer, nullable=False, default=1)
    is_current = Column(Boolean, nullable=False, default=True)
    valid_from = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    valid_to = Column(DateTime(timezone=True))
    superseded_by_id = Column(UUID(as_uuid=True))
    is_archived = Column(Boolean, nullable=False, default=False)
    archived_at = Column(DateTime(timezone=True))
    archived_by = Column(UUID(as_uuid=True))
    archive_reason = Column(Text)
    amendment_type = Column(String, nullable=False, default="original")
    amendment_reason = Column(Text)
    amends_record_id = Column(UUID(as_uuid=True))
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)


class Culture(VersionedColumns, Base):
    __tablename__ = "cultures"
    type = Column(String, nullable=False)
    label = Column(String, nullable=False)
    strain_id = Column(UUID(as_uuid=True))
    location_id = Column(UUID(as_uuid=True))
    status = Column(String, nullable=False, default="active")
    # no foreign key: lineage tolerates dangling parents
    parent_id = Column(UUID(as_uuid=True), index=True)
    generation = Column(Integer, nullable=False, default=0)
    volume_ml = Column(Float)
    fill_volume_ml = Column(Float)
    volume_used = Column(Float, nullable=False, default=0.0)
    purchase_cost = Column(Float, nullable=False, default=0.0)
    production_cost = Column(Float, nullable=False, default=0.0)
    parent_culture_cost = Column(Float, nullable=False, default=0.0)
    cost_transferred_out = Column(Float, nullable=False, default=0.0)
    cost = Column(Float, nullable=False, default=0.0)
    cost_per_ml = Column(Float, nullable=False, default=0.0)
    health_rating = Column(Integer)
    notes = Column(Text, default="")
    expires_at = Column(DateTime(timezone=True))
    observations = Column(JSON, default=list)
    transfers = Column(JSON, default=list)


class Grow(VersionedColumns, Base):
    __tablename__ = "grows"
    name = Column(String, nullable=False)
    strain_id = Column(UUID(as_uuid=True))
    status = Column(String, nullable=False, default="active")
    current_stage = Column(String, nullable=False, default="spawning")
    source_culture_id = Column(UUID(as_uuid=True))
    spawn_type = Column(String)
    spawn_weight = Column(Float, nullable=False, default=0.0)
    substrate_weight = Column(Float, nullable=False, default=0.0)
    container_count = Column(Integer, nullable=False, default=1)
    location_id = Column(UUID(as_uuid=True))
    spawned_at = Column(DateTime(timezone=True))
    colonization_started_at = Column(DateTime(timezone=True))
    fruiting_started_at = Column(DateTime(timezone=True))
    first_pins_at = Column(DateTime(timezone=True))
    first_harvest_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    flushes = Column(JSON, default=list)
    total_yield = Column(Float, nullable=False, default=0.0)
    observations = Column(JSON, default=list)
    notes = Column(Text, default="")
    source_culture_cost = Column(Float, nullable=False, default=0.0)
    inventory_cost = Column(Float, nullable=False, default=0.0)
    labor_cost = Column(Float, nullable=False, default=0.0)
    overhead_cost = Column(Float, nullable=False, default=0.0)
    total_cost = Column(Float, nullable=False, default=0.0)
    cost_per_gram_wet = Column(Float)
    cost_per_gram_dry = Column(Float)
    revenue = Column(Float)
    profit = Column(Float)


class PreparedSpawn(VersionedColumns, Base):
    __tablename__ = "prepared_spawn"
    label = Column(String, nullable=False)
    spawn_type = Column(String, nullable=False, default="grain")
    status = Column(String, nullable=False, default="preparing")
    weight_grams = Column(Float, nullable=False, default=0.0)
    container_count = Column(Integer, nullable=False, default=1)
    production_cost = Column(Float, nullable=False, default=0.0)
    inoculated_at = Column(DateTime(timezone=True))
    inoculated_culture_id = Column(UUID(as_uuid=True))
    notes = Column(Text, default="")


class Location(Base):
    __tablename__ = "locations"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    name = Column(String, nullable=False)
    cost = Column(Float, nullable=False, default=0.0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class InventoryItem(Base):
    __tablename__ = "inventory_items"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    name = Column(String, nullable=False)
    unit = Column(String, nullable=False, default="unit")
    unit_cost = Column(Float, nullable=False, default=0.0)
    quantity = Column(Float, nullable=False, default=0.0)
    asset_type = Column(String, nullable=False, default="consumable")
    include_in_grow_cost = Column(Boolean, nullable=False, default=True)
    current_value = Column(Float)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)


class InventoryLot(Base):
    __tablename__ = "inventory_lots"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    inventory_item_id = Column(UUID(as_uuid=True), ForeignKey("inventory_items.id"), nullable=False)
    quantity = Column(Float, nullable=False, default=0.0)
    original_quantity = Column(Float, nullable=False, default=0.0)
    unit = Column(String, nullable=False, default="unit")
    status = Column(String, nullable=False, default="available")
    purchase_cost = Column(Float)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)


class InventoryUsage(Base):
    __tablename__ = "inventory_usages"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    lot_id = Column(UUID(as_uuid=True), ForeignKey("inventory_lots.id"), nullable=False)
    inventory_item_id = Column(UUID(as_uuid=True), nullable=False)
    quantity = Column(Float, nullable=False)
    unit = Column(String, nullable=False)
    usage_type = Column(String, nullable=False, default="other")
    reference_type = Column(String)
    reference_id = Column(UUID(as_uuid=True), index=True)
    reference_name = Column(String)
    unit_cost_at_usage = Column(Float, nullable=False, default=0.0)
    consumed_cost = Column(Float, nullable=False, default=0.0)
    used_at = Column(DateTime(timezone=True), default=_utcnow)
    notes = Column(Text)


class EntityOutcome(Base):
    __tablename__ = "entity_outcomes"
    # purpose: append-only terminal facts recorded before an entity is deleted
    # status: active
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    entity_type = Column(String, nullable=False)
    entity_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    entity_name = Column(String)
    outcome_category = Column(String, nullable=False)
    outcome_code = Column(String, nullable=False)
    outcome_label = Column(String)
    started_at = Column(DateTime(timezone=True))
    ended_at = Column(DateTime(timezone=True))
    duration_days = Column(Integer)
    total_cost = Column(Float)
    total_yield_wet = Column(Float)
    total_yield_dry = Column(Float)
    notes = Column(Text)
    recorded_at = Column(DateTime(timezone=True), default=_utcnow)


class ContaminationDetails(Base):
    __tablename__ = "contamination_details"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    outcome_id = Column(
        UUID(as_uuid=True),
        ForeignKey("entity_outcomes.id"),
        nullable=False,
        unique=True,
    )
    contamination_type = Column(String)
    suspected_cause = Column(String)
    notes = Column(Text)
    recorded_at = Column(DateTime(timezone=True), default=_utcnow)


class DataAmendmentLog(Base):
    __tablename__ = "data_amendment_log"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    entity_type = Column(String, nullable=False)
    record_group_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    original_record_id = Column(UUID(as_uuid=True), nullable=False)
    new_record_id = Column(UUID(as_uuid=True))
    amendment_type = Column(String, nullable=False)
    reason = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
