"""Pydantic schemas for cultivation records, payloads, and derived views."""

# purpose: define immutable record values held by the projection plus request contracts
# status: active

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, Field


def _ensure_utc(value: datetime) -> datetime:
    # sqlite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


Timestamp = Annotated[datetime, AfterValidator(_ensure_utc)]

CultureType = Literal["spore_syringe", "liquid_culture", "agar", "slant"]
CultureStatus = Literal["active", "colonizing", "ready", "contaminated", "expired", "used"]
TransferUnit = Literal["ml", "cc", "drop", "wedge"]
TransferTarget = Literal["spore_syringe", "liquid_culture", "agar", "slant", "grain_spawn", "bulk"]
GrowStage = Literal[
    "spawning",
    "colonization",
    "fruiting",
    "harvesting",
    "completed",
    "contaminated",
    "aborted",
]
GrowStatus = Literal["active", "paused", "completed", "failed"]
AmendmentType = Literal["original", "correction", "update", "void", "merge"]
AssetType = Literal["equipment", "durable", "consumable", "culture_source"]
LotStatus = Literal["available", "low", "empty"]
UsageType = Literal["recipe", "grow", "culture", "waste", "adjustment", "other"]
OutcomeCategory = Literal["success", "failure", "neutral"]
EntityType = Literal["culture", "grow", "prepared_spawn"]
PreparedSpawnStatus = Literal[
    "preparing",
    "sterilizing",
    "cooling",
    "ready",
    "reserved",
    "inoculated",
    "contaminated",
    "expired",
]

CULTURE_TYPES: frozenset[str] = frozenset({"spore_syringe", "liquid_culture", "agar", "slant"})


class RecordModel(BaseModel):
    """Base for values stored in the projection; frozen once written."""

    model_config = ConfigDict(frozen=True, extra="ignore", from_attributes=True)


class VersionedRecord(RecordModel):
    """Append-only version of a logical record."""

    # purpose: carry tagged-version metadata shared by cultures, grows, and prepared spawn
    id: UUID
    user_id: UUID
    record_group_id: UUID
    version: int = 1
    is_current: bool = True
    valid_from: Timestamp
    valid_to: Optional[Timestamp] = None
    superseded_by_id: Optional[UUID] = None
    is_archived: bool = False
    archived_at: Optional[Timestamp] = None
    archived_by: Optional[UUID] = None
    archive_reason: Optional[str] = None
    amendment_type: AmendmentType = "original"
    amendment_reason: Optional[str] = None
    amends_record_id: Optional[UUID] = None
    created_at: Timestamp
    updated_at: Timestamp

    @property
    def is_live(self) -> bool:
        return self.is_current and not self.is_archived


class CultureObservation(RecordModel):
    id: UUID
    date: Timestamp
    type: Literal["general", "growth", "contamination", "transfer", "harvest"] = "general"
    notes: str = ""
    health_rating: Optional[int] = None


class CultureTransfer(RecordModel):
    id: UUID
    date: Timestamp
    from_id: UUID
    to_id: Optional[UUID] = None
    to_type: TransferTarget
    quantity: float
    unit: TransferUnit
    transferred_volume_ml: float
    cost_transferred: float = 0.0
    notes: Optional[str] = None


class Culture(VersionedRecord):
    type: CultureType
    label: str
    strain_id: Optional[UUID] = None
    location_id: Optional[UUID] = None
    status: CultureStatus = "active"
    parent_id: Optional[UUID] = None
    generation: int = 0
    volume_ml: Optional[float] = None
    fill_volume_ml: Optional[float] = None
    volume_used: float = 0.0
    purchase_cost: float = 0.0
    production_cost: float = 0.0
    parent_culture_cost: float = 0.0
    cost: float = 0.0
    cost_transferred_out: float = 0.0
    cost_per_ml: float = 0.0
    health_rating: Optional[int] = None
    notes: Optional[str] = ""
    expires_at: Optional[Timestamp] = None
    observations: List[CultureObservation] = Field(default_factory=list)
    transfers: List[CultureTransfer] = Field(default_factory=list)


class GrowObservation(RecordModel):
    id: UUID
    date: Timestamp
    stage: GrowStage
    type: Literal["general", "environmental", "contamination", "milestone", "photo"] = "general"
    title: str = ""
    notes: str = ""
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    colonization_percent: Optional[float] = None


class Flush(RecordModel):
    id: UUID
    flush_number: int
    harvest_date: Timestamp
    wet_weight: float
    dry_weight: float = 0.0
    mushroom_count: Optional[int] = None
    quality: Literal["excellent", "good", "fair", "poor"] = "good"
    notes: Optional[str] = None


class Grow(VersionedRecord):
    name: str
    strain_id: Optional[UUID] = None
    status: GrowStatus = "active"
    current_stage: GrowStage = "spawning"
    source_culture_id: Optional[UUID] = None
    spawn_type: Optional[str] = None
    spawn_weight: float = 0.0
    substrate_weight: float = 0.0
    container_count: int = 1
    location_id: Optional[UUID] = None
    spawned_at: Optional[Timestamp] = None
    colonization_started_at: Optional[Timestamp] = None
    fruiting_started_at: Optional[Timestamp] = None
    first_pins_at: Optional[Timestamp] = None
    first_harvest_at: Optional[Timestamp] = None
    completed_at: Optional[Timestamp] = None
    flushes: List[Flush] = Field(default_factory=list)
    total_yield: float = 0.0
    observations: List[GrowObservation] = Field(default_factory=list)
    notes: Optional[str] = ""
    source_culture_cost: float = 0.0
    inventory_cost: float = 0.0
    labor_cost: float = 0.0
    overhead_cost: float = 0.0
    total_cost: float = 0.0
    cost_per_gram_wet: Optional[float] = None
    cost_per_gram_dry: Optional[float] = None
    revenue: Optional[float] = None
    profit: Optional[float] = None


class PreparedSpawn(VersionedRecord):
    label: str
    spawn_type: str = "grain"
    status: PreparedSpawnStatus = "preparing"
    weight_grams: float = 0.0
    container_count: int = 1
    production_cost: float = 0.0
    inoculated_at: Optional[Timestamp] = None
    inoculated_culture_id: Optional[UUID] = None
    notes: Optional[str] = ""


class Location(RecordModel):
    id: UUID
    user_id: UUID
    name: str
    cost: float = 0.0
    is_active: bool = True
    created_at: Timestamp


class InventoryItem(RecordModel):
    id: UUID
    user_id: UUID
    name: str
    unit: str = "unit"
    unit_cost: float = 0.0
    quantity: float = 0.0
    asset_type: AssetType = "consumable"
    include_in_grow_cost: bool = True
    current_value: Optional[float] = None
    is_active: bool = True
    created_at: Timestamp
    updated_at: Timestamp


class InventoryLot(RecordModel):
    id: UUID
    user_id: UUID
    inventory_item_id: UUID
    quantity: float
    original_quantity: float
    unit: str = "unit"
    status: LotStatus = "available"
    purchase_cost: Optional[float] = None
    is_active: bool = True
    created_at: Timestamp
    updated_at: Timestamp


class InventoryUsage(RecordModel):
    id: UUID
    user_id: UUID
    lot_id: UUID
    inventory_item_id: UUID
    quantity: float
    unit: str
    usage_type: UsageType = "other"
    reference_type: Optional[Literal["recipe", "grow", "culture"]] = None
    reference_id: Optional[UUID] = None
    reference_name: Optional[str] = None
    unit_cost_at_usage: float = 0.0
    consumed_cost: float = 0.0
    used_at: Timestamp
    notes: Optional[str] = None


class EntityOutcome(RecordModel):
    id: UUID
    user_id: UUID
    entity_type: Literal["culture", "grow"]
    entity_id: UUID
    entity_name: Optional[str] = None
    outcome_category: OutcomeCategory
    outcome_code: str
    outcome_label: Optional[str] = None
    started_at: Optional[Timestamp] = None
    ended_at: Optional[Timestamp] = None
    duration_days: Optional[int] = None
    total_cost: Optional[float] = None
    total_yield_wet: Optional[float] = None
    total_yield_dry: Optional[float] = None
    notes: Optional[str] = None
    recorded_at: Timestamp


class ContaminationDetails(RecordModel):
    id: UUID
    user_id: UUID
    outcome_id: UUID
    contamination_type: Optional[str] = None
    suspected_cause: Optional[str] = None
    notes: Optional[str] = None
    recorded_at: Timestamp


class AmendmentLogEntry(RecordModel):
    id: UUID
    user_id: UUID
    entity_type: EntityType
    record_group_id: UUID
    original_record_id: UUID
    new_record_id: Optional[UUID] = None
    amendment_type: str
    reason: Optional[str] = None
    created_at: Timestamp


# request payloads


class CultureCreate(BaseModel):
    type: CultureType
    label: Optional[str] = None
    strain_id: Optional[UUID] = None
    location_id: Optional[UUID] = None
    status: CultureStatus = "active"
    parent_id: Optional[UUID] = None
    volume_ml: Optional[float] = Field(default=None, ge=0)
    fill_volume_ml: Optional[float] = Field(default=None, ge=0)
    purchase_cost: float = Field(default=0.0, ge=0)
    production_cost: float = Field(default=0.0, ge=0)
    cost: float = Field(default=0.0, ge=0)
    health_rating: Optional[int] = Field(default=None, ge=1, le=5)
    notes: Optional[str] = ""
    expires_at: Optional[datetime] = None


class CultureUpdate(BaseModel):
    label: Optional[str] = None
    strain_id: Optional[UUID] = None
    location_id: Optional[UUID] = None
    status: Optional[CultureStatus] = None
    parent_id: Optional[UUID] = None
    volume_ml: Optional[float] = Field(default=None, ge=0)
    fill_volume_ml: Optional[float] = Field(default=None, ge=0)
    purchase_cost: Optional[float] = Field(default=None, ge=0)
    production_cost: Optional[float] = Field(default=None, ge=0)
    cost: Optional[float] = Field(default=None, ge=0)
    health_rating: Optional[int] = Field(default=None, ge=1, le=5)
    notes: Optional[str] = None
    expires_at: Optional[datetime] = None


class CultureObservationCreate(BaseModel):
    date: Optional[datetime] = None
    type: Literal["general", "growth", "contamination", "transfer", "harvest"] = "general"
    notes: str = ""
    health_rating: Optional[int] = Field(default=None, ge=1, le=5)


class CultureTransferCreate(BaseModel):
    """Transfer request from a source culture."""

    # purpose: describe a volume moved out of a culture and where it went
    to_type: TransferTarget
    to_id: Optional[UUID] = None
    quantity: float = Field(gt=0)
    unit: TransferUnit = "ml"
    date: Optional[datetime] = None
    notes: Optional[str] = None


class GrowCreate(BaseModel):
    name: str
    strain_id: Optional[UUID] = None
    source_culture_id: Optional[UUID] = None
    spawn_type: Optional[str] = None
    spawn_weight: float = Field(default=0.0, ge=0)
    substrate_weight: float = Field(default=0.0, ge=0)
    container_count: int = Field(default=1, ge=1)
    location_id: Optional[UUID] = None
    spawned_at: Optional[datetime] = None
    labor_cost: float = Field(default=0.0, ge=0)
    overhead_cost: float = Field(default=0.0, ge=0)
    revenue: Optional[float] = None
    notes: Optional[str] = ""


class GrowUpdate(BaseModel):
    name: Optional[str] = None
    strain_id: Optional[UUID] = None
    status: Optional[GrowStatus] = None
    source_culture_id: Optional[UUID] = None
    spawn_type: Optional[str] = None
    spawn_weight: Optional[float] = Field(default=None, ge=0)
    substrate_weight: Optional[float] = Field(default=None, ge=0)
    container_count: Optional[int] = Field(default=None, ge=1)
    location_id: Optional[UUID] = None
    labor_cost: Optional[float] = Field(default=None, ge=0)
    overhead_cost: Optional[float] = Field(default=None, ge=0)
    revenue: Optional[float] = None
    notes: Optional[str] = None


class GrowObservationCreate(BaseModel):
    date: Optional[datetime] = None
    type: Literal["general", "environmental", "contamination", "milestone", "photo"] = "general"
    title: str = ""
    notes: str = ""
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    colonization_percent: Optional[float] = Field(default=None, ge=0, le=100)


class FlushCreate(BaseModel):
    harvest_date: Optional[datetime] = None
    wet_weight: float = Field(ge=0)
    dry_weight: float = Field(default=0.0, ge=0)
    mushroom_count: Optional[int] = Field(default=None, ge=0)
    quality: Literal["excellent", "good", "fair", "poor"] = "good"
    notes: Optional[str] = None


class PreparedSpawnCreate(BaseModel):
    label: str
    spawn_type: str = "grain"
    status: PreparedSpawnStatus = "preparing"
    weight_grams: float = Field(default=0.0, ge=0)
    container_count: int = Field(default=1, ge=1)
    production_cost: float = Field(default=0.0, ge=0)
    notes: Optional[str] = ""


class LocationCreate(BaseModel):
    name: str
    cost: float = Field(default=0.0, ge=0)


class InventoryItemCreate(BaseModel):
    name: str
    unit: str = "unit"
    unit_cost: float = Field(default=0.0, ge=0)
    quantity: float = Field(default=0.0, ge=0)
    asset_type: AssetType = "consumable"
    include_in_grow_cost: bool = True
    current_value: Optional[float] = Field(default=None, ge=0)


class InventoryLotCreate(BaseModel):
    inventory_item_id: UUID
    quantity: float = Field(ge=0)
    original_quantity: Optional[float] = Field(default=None, ge=0)
    unit: Optional[str] = None
    purchase_cost: Optional[float] = Field(default=None, ge=0)


class InventoryUsageCreate(BaseModel):
    quantity: float = Field(gt=0)
    usage_type: UsageType = "grow"
    reference_type: Optional[Literal["recipe", "grow", "culture"]] = None
    reference_id: Optional[UUID] = None
    reference_name: Optional[str] = None
    notes: Optional[str] = None


class ContaminationDetailsCreate(BaseModel):
    contamination_type: Optional[str] = None
    suspected_cause: Optional[str] = None
    notes: Optional[str] = None


class EntityOutcomeCreate(BaseModel):
    """Outcome payload recorded when a culture or grow is removed."""

    entity_type: Literal["culture", "grow"]
    entity_id: UUID
    entity_name: Optional[str] = None
    outcome_category: OutcomeCategory
    outcome_code: str
    outcome_label: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    total_cost: Optional[float] = None
    total_yield_wet: Optional[float] = None
    total_yield_dry: Optional[float] = None
    notes: Optional[str] = None
    contamination: Optional[ContaminationDetailsCreate] = None


class DisposalRequest(BaseModel):
    """Outcome fields supplied by the caller when deleting an entity."""

    outcome_category: OutcomeCategory
    outcome_code: Optional[str] = None
    outcome_label: Optional[str] = None
    notes: Optional[str] = None
    contamination: Optional[ContaminationDetailsCreate] = None


class AmendRequest(BaseModel):
    changes: Dict[str, Any] = Field(default_factory=dict)
    amendment_type: AmendmentType = "correction"
    reason: Optional[str] = None


class ArchiveRequest(BaseModel):
    reason: str = Field(min_length=1)


class ContaminationRequest(BaseModel):
    notes: Optional[str] = None


class InoculateRequest(BaseModel):
    culture_id: UUID


# derived views


class VersionSummary(BaseModel):
    id: UUID
    record_group_id: UUID
    version: int
    is_current: bool
    is_archived: bool
    amendment_type: AmendmentType
    amendment_reason: Optional[str] = None
    valid_from: Timestamp
    valid_to: Optional[Timestamp] = None
    superseded_by_id: Optional[UUID] = None

    model_config = ConfigDict(from_attributes=True)


class CultureLineage(BaseModel):
    ancestors: List[Culture] = Field(default_factory=list)
    descendants: List[Culture] = Field(default_factory=list)


class ArchiveCounts(BaseModel):
    cultures_archived: int = 0
    grows_archived: int = 0
    prepared_spawn_archived: int = 0


class LabValuation(BaseModel):
    equipment: float = 0.0
    durables: float = 0.0
    consumables: float = 0.0
    total: float = 0.0


class AmendmentReportItem(BaseModel):
    amendment_type: str
    count: int


class LabEvent(BaseModel):
    """Notification emitted to projection listeners after a state change."""

    type: str
    collection: Optional[str] = None
    record_id: Optional[UUID] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
