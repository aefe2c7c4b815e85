from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

AssetStatus = Literal["Operational", "Maintenance", "Under Repair", "Broken"]
WorkOrderStatus = Literal["Open", "In Progress", "Completed", "Cancelled"]
Priority = Literal["Low", "Medium", "High"]
Rank = Literal["Junior Associate", "Associate", "Senior Specialist", "Lead Specialist", "Expert Advisor"]
StorageMode = Literal["local", "sql_remote"]

ASSET_OPERATIONAL = "Operational"
ASSET_MAINTENANCE = "Maintenance"
ASSET_UNDER_REPAIR = "Under Repair"
ASSET_BROKEN = "Broken"
ASSET_STATUSES = (ASSET_OPERATIONAL, ASSET_MAINTENANCE, ASSET_UNDER_REPAIR, ASSET_BROKEN)

WO_OPEN = "Open"
WO_IN_PROGRESS = "In Progress"
WO_COMPLETED = "Completed"
WO_CANCELLED = "Cancelled"
WORK_ORDER_STATUSES = (WO_OPEN, WO_IN_PROGRESS, WO_COMPLETED, WO_CANCELLED)
ACTIVE_WORK_ORDER_STATUSES = frozenset({WO_OPEN, WO_IN_PROGRESS})

# lowest tier first
RANKS = ("Junior Associate", "Associate", "Senior Specialist", "Lead Specialist", "Expert Advisor")
DEFAULT_TECHNICIAN_PASSWORD = "password123"


class WireModel(BaseModel):
    """camelCase on the wire and in backup files, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Entities ---


class Asset(WireModel):
    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=200)
    category: str = Field(default="", max_length=120)
    location: str = Field(default="", max_length=200)
    purchase_date: str = ""
    arrived_date: str = ""
    status: AssetStatus = ASSET_OPERATIONAL
    image_url: str = ""
    last_maintenance: str = "Never"


class WorkOrder(WireModel):
    id: str = Field(..., min_length=1, max_length=64)
    asset_id: str = Field(..., min_length=1, max_length=64)
    technician_id: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=8000)
    priority: Priority = "Medium"
    status: WorkOrderStatus = WO_OPEN
    created_at: str = ""
    due_date: str = ""
    completed_at: Optional[str] = None
    completion_note: Optional[str] = None
    evidence: list[str] = Field(default_factory=list)


class Technician(WireModel):
    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=120)
    specialty: str = Field(default="", max_length=120)
    active_tasks: int = Field(default=0, ge=0)
    password: Optional[str] = None
    rank: Optional[Rank] = None
    average_rating: Optional[float] = Field(default=None, ge=0, le=5)


def parse_entity(model: type[WireModel], doc: Any) -> dict[str, Any]:
    """Validate a wire/backup document and return a snake_case row."""
    return model.model_validate(doc).model_dump()


def dump_entity(model: type[WireModel], row: dict[str, Any]) -> dict[str, Any]:
    """Render a snake_case row as a camelCase wire document."""
    return model.model_validate(row).model_dump(by_alias=True, exclude_none=True)


# --- API inputs ---


class AssetCreateIn(WireModel):
    id: Optional[str] = Field(default=None, min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=200)
    category: str = Field(default="", max_length=120)
    location: str = Field(default="", max_length=200)
    purchase_date: Optional[str] = None
    arrived_date: Optional[str] = None
    status: AssetStatus = ASSET_OPERATIONAL
    image_url: str = ""


class AssetPatchIn(WireModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category: Optional[str] = Field(default=None, max_length=120)
    location: Optional[str] = Field(default=None, max_length=200)
    purchase_date: Optional[str] = None
    arrived_date: Optional[str] = None
    status: Optional[AssetStatus] = None
    image_url: Optional[str] = None
    last_maintenance: Optional[str] = None


class AssetStatusIn(WireModel):
    status: AssetStatus


class WorkOrderCreateIn(WireModel):
    id: Optional[str] = Field(default=None, min_length=1, max_length=64)
    asset_id: str = Field(..., min_length=1, max_length=64)
    technician_id: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=8000)
    priority: Priority = "Medium"
    due_date: str = ""


class WorkOrderPatchIn(WireModel):
    technician_id: Optional[str] = Field(default=None, min_length=1, max_length=64)
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=8000)
    priority: Optional[Priority] = None
    due_date: Optional[str] = None


class WorkOrderReassignIn(WireModel):
    technician_id: str = Field(..., min_length=1, max_length=64)


class WorkOrderStatusIn(WireModel):
    status: WorkOrderStatus
    note: Optional[str] = Field(default=None, max_length=4000)
    evidence: Optional[list[str]] = None


class TechnicianCreateIn(WireModel):
    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=120)
    specialty: str = Field(default="", max_length=120)
    rank: Optional[Rank] = None
    password: str = Field(default=DEFAULT_TECHNICIAN_PASSWORD, min_length=1, max_length=120)


class TechnicianPromoteIn(WireModel):
    rank: Rank


class CatalogEntryIn(WireModel):
    name: str = Field(..., min_length=1, max_length=120)


class AdminLoginIn(WireModel):
    password: str = Field(..., min_length=1, max_length=200)


class TechnicianLoginIn(WireModel):
    technician_id: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1, max_length=120)


class StorageModeIn(WireModel):
    mode: StorageMode
    endpoint: Optional[str] = Field(default=None, max_length=500)
