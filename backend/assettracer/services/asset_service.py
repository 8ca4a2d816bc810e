"""
Asset Service - CRUD for assets, inventory items and asset kits.

Quota-governed creates go through create_within_quota so the count is
checked before the insert and re-verified after it.
"""
import logging
from typing import Any, Dict, List

from fastapi import HTTPException, status

from ..core.errors import AssetTracerError
from ..core.tier_limits import QuotaResource
from ..dependencies.tier_check import create_within_quota
from ..schemas.assets import (
    Asset, AssetCreate, AssetUpdate, AssetROI,
    AssetKit, AssetKitCreate, AssetKitItem,
    InventoryItem, InventoryItemCreate,
)
from ..utils.json_encoder import deep_serialize
from .persistence import persistence


logger = logging.getLogger(__name__)


def calculate_roi(asset: Dict[str, Any], transactions: List[Dict[str, Any]]) -> AssetROI:
    """
    ROI for one asset from its revenue and expense transactions.

    Total spend is the purchase cost plus recorded expenses; ROI is undefined
    (None) when there is no spend to measure against.
    """
    revenue = sum(float(t.get("amount") or 0) for t in transactions if t.get("type") == "revenue")
    expenses = sum(float(t.get("amount") or 0) for t in transactions if t.get("type") == "expense")
    purchase_cost = float(asset.get("purchase_cost") or 0)
    total_spend = purchase_cost + expenses
    net_profit = revenue - total_spend

    return AssetROI(
        asset_id=asset["id"],
        purchase_cost=purchase_cost,
        current_value=float(asset.get("current_value") or 0),
        total_revenue=round(revenue, 2),
        total_expenses=round(expenses, 2),
        net_profit=round(net_profit, 2),
        roi_percentage=round(net_profit / total_spend * 100, 2) if total_spend > 0 else None,
    )


class AssetService:
    """
    Asset Service - Manages asset, inventory and kit operations

    Responsibilities:
    - Asset CRUD and bulk import (maxAssets)
    - Inventory items (maxInventoryItems)
    - Asset kits (bundles used by kit reservations)
    - Per-asset ROI
    """

    def __init__(self):
        self.db = persistence

    # ================================================================
    # Asset CRUD Operations
    # ================================================================

    async def list_assets(self, organization_id: str) -> List[Asset]:
        try:
            rows = await self.db.list("assets", organization_id)
            return [Asset(**row) for row in rows]
        except Exception as e:
            logger.error(f"Error listing assets: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to list assets"
            )

    async def get_asset(self, organization_id: str, asset_id: str) -> Asset:
        try:
            row = await self.db.get("assets", organization_id, asset_id)
        except Exception as e:
            logger.error(f"Error getting asset {asset_id}: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to get asset"
            )

        if not row:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Asset not found"
            )
        return Asset(**row)

    async def create_asset(self, organization_id: str, asset_data: AssetCreate) -> Asset:
        """Create a new asset, within the organization's asset quota."""
        record = deep_serialize(asset_data.model_dump())

        async def insert():
            return await self.db.insert("assets", organization_id, record)

        try:
            row = await create_within_quota(organization_id, QuotaResource.MAX_ASSETS, insert)
            logger.info(f"Created asset {row.get('id')} for organization {organization_id}")
            return Asset(**row)
        except (HTTPException, AssetTracerError):
            raise
        except Exception as e:
            logger.error(f"Error creating asset: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to create asset"
            )

    async def import_assets(self, organization_id: str, assets: List[AssetCreate]) -> List[Asset]:
        """
        Bulk create assets.

        The whole batch is rejected if current + len(assets) exceeds the quota;
        partial imports are never committed.
        """
        records = [deep_serialize(asset.model_dump()) for asset in assets]

        async def insert():
            return await self.db.insert_many("assets", organization_id, records)

        try:
            rows = await create_within_quota(
                organization_id, QuotaResource.MAX_ASSETS, insert, requested=len(records)
            )
            logger.info(f"Imported {len(rows)} assets for organization {organization_id}")
            return [Asset(**row) for row in rows]
        except (HTTPException, AssetTracerError):
            raise
        except Exception as e:
            logger.error(f"Error importing assets: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to import assets"
            )

    async def update_asset(self, organization_id: str, asset_id: str, changes: AssetUpdate) -> Asset:
        payload = deep_serialize(changes.model_dump(exclude_unset=True))
        if not payload:
            return await self.get_asset(organization_id, asset_id)

        try:
            row = await self.db.update("assets", organization_id, asset_id, payload)
        except Exception as e:
            logger.error(f"Error updating asset {asset_id}: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to update asset"
            )

        if not row:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Asset not found"
            )
        return Asset(**row)

    async def delete_asset(self, organization_id: str, asset_id: str) -> None:
        try:
            deleted = await self.db.delete("assets", organization_id, asset_id)
        except Exception as e:
            logger.error(f"Error deleting asset {asset_id}: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to delete asset"
            )

        if not deleted:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Asset not found"
            )

    async def get_asset_roi(self, organization_id: str, asset_id: str) -> AssetROI:
        asset = await self.get_asset(organization_id, asset_id)
        transactions = await self.db.list(
            "transactions", organization_id,
            columns="type, amount, transaction_date",
            filters={"asset_id": asset_id},
        )
        return calculate_roi(asset.model_dump(), transactions)

    # ================================================================
    # Inventory
    # ================================================================

    async def list_inventory(self, organization_id: str) -> List[InventoryItem]:
        rows = await self.db.list("inventory_items", organization_id)
        return [InventoryItem(**row) for row in rows]

    async def create_inventory_item(self, organization_id: str, item: InventoryItemCreate) -> InventoryItem:
        record = item.model_dump()

        async def insert():
            return await self.db.insert("inventory_items", organization_id, record)

        row = await create_within_quota(organization_id, QuotaResource.MAX_INVENTORY_ITEMS, insert)
        return InventoryItem(**row)

    async def delete_inventory_item(self, organization_id: str, item_id: str) -> None:
        if not await self.db.delete("inventory_items", organization_id, item_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Inventory item not found"
            )

    # ================================================================
    # Asset kits
    # ================================================================

    async def create_kit(self, organization_id: str, kit_data: AssetKitCreate, user_id: str) -> AssetKit:
        asset_ids = [item.asset_id for item in kit_data.items]
        found = await self.db.get_many("assets", organization_id, asset_ids, columns="id")
        missing = set(asset_ids) - {row["id"] for row in found}
        if missing:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown assets in kit: {', '.join(sorted(missing))}"
            )

        kit = await self.db.insert("asset_kits", organization_id, {
            "name": kit_data.name,
            "description": kit_data.description,
            "category": kit_data.category,
            "created_by": user_id,
        })
        await self.db.insert_many("asset_kit_items", organization_id, [
            {"kit_id": kit["id"], "asset_id": item.asset_id, "quantity": item.quantity}
            for item in kit_data.items
        ])
        return AssetKit(**kit, items=kit_data.items)

    async def list_kits(self, organization_id: str) -> List[AssetKit]:
        kits = await self.db.list("asset_kits", organization_id, order_by="name", desc=False)
        if not kits:
            return []
        items = await self.get_kit_items(organization_id, [kit["id"] for kit in kits])
        return [AssetKit(**kit, items=items.get(kit["id"], [])) for kit in kits]

    async def get_kit_items(self, organization_id: str, kit_ids: List[str]) -> Dict[str, List[AssetKitItem]]:
        """Items per kit id; raises 404 if any kit does not belong to the organization."""
        kits = await self.db.get_many("asset_kits", organization_id, kit_ids, columns="id")
        missing = set(kit_ids) - {kit["id"] for kit in kits}
        if missing:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Kit not found: {', '.join(sorted(missing))}"
            )

        items: Dict[str, List[AssetKitItem]] = {kit_id: [] for kit_id in kit_ids}
        for kit_id in kit_ids:
            rows = await self.db.list(
                "asset_kit_items", organization_id,
                columns="kit_id, asset_id, quantity",
                filters={"kit_id": kit_id},
                order_by="asset_id", desc=False,
            )
            items[kit_id] = [AssetKitItem(asset_id=row["asset_id"], quantity=row.get("quantity") or 1) for row in rows]
        return items

    async def export_rows(self, organization_id: str) -> List[Dict[str, Any]]:
        """Rows for CSV export."""
        return await self.db.list(
            "assets", organization_id,
            columns="id, name, category, status, location, serial_number, purchase_date, purchase_cost, current_value, created_at",
        )


# Global asset service instance
asset_service = AssetService()

