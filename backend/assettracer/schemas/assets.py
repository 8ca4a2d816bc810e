"""
Pydantic schemas for assets, inventory items and asset kits.
"""
from pydantic import BaseModel, Field, field_validator, ConfigDict
from typing import Optional, List
from datetime import date, datetime
from enum import Enum


class AssetStatus(str, Enum):
    """Asset lifecycle status."""
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    RETIRED = "retired"
    SOLD = "sold"


class AssetType(str, Enum):
    """Individual item or a group of identical items."""
    INDIVIDUAL = "individual"
    GROUP = "group"


class AssetCreate(BaseModel):
    """Schema for creating a new asset."""
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = None
    purchase_date: Optional[date] = None
    purchase_cost: float = Field(default=0, ge=0)
    current_value: float = Field(default=0, ge=0)
    status: AssetStatus = AssetStatus.ACTIVE
    location: Optional[str] = None
    serial_number: Optional[str] = None
    image_url: Optional[str] = None
    asset_type: AssetType = AssetType.INDIVIDUAL
    parent_group_id: Optional[str] = None
    quantity: int = Field(default=1, ge=1)

    @field_validator('name')
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class AssetUpdate(BaseModel):
    """Schema for updating an asset. All fields optional."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = None
    purchase_date: Optional[date] = None
    purchase_cost: Optional[float] = Field(None, ge=0)
    current_value: Optional[float] = Field(None, ge=0)
    status: Optional[AssetStatus] = None
    location: Optional[str] = None
    serial_number: Optional[str] = None
    image_url: Optional[str] = None
    quantity: Optional[int] = Field(None, ge=1)


class Asset(AssetCreate):
    """Asset as stored."""
    id: str
    organization_id: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AssetImportRequest(BaseModel):
    """Bulk import payload (e.g. from a spreadsheet)."""
    assets: List[AssetCreate] = Field(..., min_length=1, max_length=1000)


class AssetImportResponse(BaseModel):
    imported: int
    assets: List[Asset]


class AssetROI(BaseModel):
    """Return on investment for one asset."""
    asset_id: str
    purchase_cost: float
    current_value: float
    total_revenue: float
    total_expenses: float
    net_profit: float
    roi_percentage: Optional[float] = Field(None, description="None when the asset has no cost basis")


class InventoryItemCreate(BaseModel):
    """Schema for creating an inventory item."""
    name: str = Field(..., min_length=1, max_length=200)
    sku: Optional[str] = None
    category: Optional[str] = None
    quantity: int = Field(default=0, ge=0)
    unit_cost: float = Field(default=0, ge=0)
    reorder_level: int = Field(default=0, ge=0)
    location: Optional[str] = None


class InventoryItem(InventoryItemCreate):
    id: str
    organization_id: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AssetKitItem(BaseModel):
    asset_id: str
    quantity: int = Field(default=1, ge=1)


class AssetKitCreate(BaseModel):
    """A named bundle of assets that can be reserved together."""
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = None
    items: List[AssetKitItem] = Field(..., min_length=1)


class AssetKit(BaseModel):
    id: str
    organization_id: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    items: List[AssetKitItem] = Field(default_factory=list)
