"""
Pydantic schemas for reservations and availability checks.
"""
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ReservationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


# Reservations in these states hold their assets
BLOCKING_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED, ReservationStatus.ACTIVE)


class ReservationCreate(BaseModel):
    """
    Schema for creating a reservation.

    Assets can be given directly (asset_ids), through kits (kit_ids, which
    needs kit reservations on the plan) or both. location_id reserves a
    managed location and needs location reservations on the plan.
    """
    title: str = Field(..., min_length=1, max_length=200)
    project_name: Optional[str] = None
    description: Optional[str] = None
    start_date: date
    end_date: date
    start_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    end_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    location: Optional[str] = None
    location_id: Optional[str] = None
    status: ReservationStatus = ReservationStatus.PENDING
    team_members: Optional[List[str]] = None
    priority: ReservationPriority = ReservationPriority.NORMAL
    notes: Optional[str] = None
    asset_ids: List[str] = Field(default_factory=list)
    quantities: Dict[str, int] = Field(default_factory=dict)
    kit_ids: List[str] = Field(default_factory=list)
    override_conflicts: bool = False

    @model_validator(mode="after")
    def check_reservation(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if not self.asset_ids and not self.kit_ids and not self.location_id:
            raise ValueError("Reserve at least one asset, kit or location")
        if any(q < 1 for q in self.quantities.values()):
            raise ValueError("quantities must be positive")
        return self


class ReservationAsset(BaseModel):
    asset_id: str
    quantity: int = 1


class Reservation(BaseModel):
    id: str
    organization_id: str
    title: str
    project_name: Optional[str] = None
    description: Optional[str] = None
    start_date: date
    end_date: date
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    location: Optional[str] = None
    location_id: Optional[str] = None
    status: ReservationStatus
    reserved_by: Optional[str] = None
    team_members: Optional[List[str]] = None
    priority: ReservationPriority = ReservationPriority.NORMAL
    notes: Optional[str] = None
    assets: List[ReservationAsset] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class AvailabilityRequest(BaseModel):
    asset_ids: List[str] = Field(..., min_length=1)
    start_date: date
    end_date: date
    exclude_reservation_id: Optional[str] = None

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ReservationConflict(BaseModel):
    reservation_id: str
    title: str
    start_date: date
    end_date: date
    status: str


class AssetAvailability(BaseModel):
    asset_id: str
    asset_name: str
    is_available: bool
    conflicts: List[ReservationConflict] = Field(default_factory=list)


class AvailabilityResponse(BaseModel):
    availability: List[AssetAvailability]
