"""
Asset, kit and inventory API endpoints.

Creation routes are quota-governed (maxAssets, maxInventoryItems); ROI and
CSV export are plan features.
"""
from fastapi import APIRouter, Depends, status
from typing import List
import logging

from ...core.dependencies import get_current_organization
from ...core.tier_limits import Feature
from ...dependencies.tier_check import FeatureGate
from ...schemas.auth import OrganizationContext
from ...schemas.assets import (
    Asset, AssetCreate, AssetUpdate, AssetROI,
    AssetImportRequest, AssetImportResponse,
    AssetKit, AssetKitCreate,
    InventoryItem, InventoryItemCreate,
)
from ...services.asset_service import asset_service
from ...utils.responses import csv_response

router = APIRouter(prefix="/assets", tags=["assets"])
inventory_router = APIRouter(prefix="/inventory", tags=["inventory"])
logger = logging.getLogger(__name__)

ASSET_EXPORT_COLUMNS = [
    "id", "name", "category", "status", "location", "serial_number",
    "purchase_date", "purchase_cost", "current_value", "created_at",
]

# ================================================================
# Asset CRUD Operations
# ================================================================

@router.get("", response_model=List[Asset])
async def list_assets(org: OrganizationContext = Depends(get_current_organization)):
    return await asset_service.list_assets(org.organization_id)


@router.post("", response_model=Asset, status_code=status.HTTP_201_CREATED)
async def create_asset(
    asset_data: AssetCreate,
    org: OrganizationContext = Depends(get_current_organization)
):
    """Create a new asset. Rejected with 403 quota_exceeded once maxAssets is reached."""
    return await asset_service.create_asset(org.organization_id, asset_data)


@router.post("/import", response_model=AssetImportResponse, status_code=status.HTTP_201_CREATED)
async def import_assets(
    request: AssetImportRequest,
    org: OrganizationContext = Depends(get_current_organization)
):
    """Bulk create; the whole batch must fit in the remaining asset quota."""
    assets = await asset_service.import_assets(org.organization_id, request.assets)
    return AssetImportResponse(imported=len(assets), assets=assets)


# Routes with fixed paths must come before /{asset_id}

@router.get("/export/csv")
async def export_assets_csv(org: OrganizationContext = Depends(FeatureGate(Feature.HAS_CSV_EXPORT))):
    rows = await asset_service.export_rows(org.organization_id)
    return csv_response("assets", ASSET_EXPORT_COLUMNS, rows)


@router.get("/kits", response_model=List[AssetKit])
async def list_kits(org: OrganizationContext = Depends(get_current_organization)):
    return await asset_service.list_kits(org.organization_id)


@router.post("/kits", response_model=AssetKit, status_code=status.HTTP_201_CREATED)
async def create_kit(
    kit_data: AssetKitCreate,
    org: OrganizationContext = Depends(get_current_organization)
):
    return await asset_service.create_kit(org.organization_id, kit_data, org.user.id)


@router.get("/{asset_id}", response_model=Asset)
async def get_asset(asset_id: str, org: OrganizationContext = Depends(get_current_organization)):
    return await asset_service.get_asset(org.organization_id, asset_id)


@router.patch("/{asset_id}", response_model=Asset)
async def update_asset(
    asset_id: str,
    changes: AssetUpdate,
    org: OrganizationContext = Depends(get_current_organization)
):
    return await asset_service.update_asset(org.organization_id, asset_id, changes)


@router.delete("/{asset_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_asset(asset_id: str, org: OrganizationContext = Depends(get_current_organization)):
    await asset_service.delete_asset(org.organization_id, asset_id)


@router.get("/{asset_id}/roi", response_model=AssetROI)
async def get_asset_roi(
    asset_id: str,
    org: OrganizationContext = Depends(FeatureGate(Feature.HAS_ROI_TRACKING))
):
    return await asset_service.get_asset_roi(org.organization_id, asset_id)


# ================================================================
# Inventory
# ================================================================

@inventory_router.get("", response_model=List[InventoryItem])
async def list_inventory(org: OrganizationContext = Depends(get_current_organization)):
    return await asset_service.list_inventory(org.organization_id)


@inventory_router.post("", response_model=InventoryItem, status_code=status.HTTP_201_CREATED)
async def create_inventory_item(
    item: InventoryItemCreate,
    org: OrganizationContext = Depends(get_current_organization)
):
    return await asset_service.create_inventory_item(org.organization_id, item)


@inventory_router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_inventory_item(item_id: str, org: OrganizationContext = Depends(get_current_organization)):
    await asset_service.delete_inventory_item(org.organization_id, item_id)
