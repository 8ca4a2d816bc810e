"""
Reservation Service - bookings of assets, kits and locations.

Feature gates are applied before the quota so a free organization asking for
a kit reservation is told about the missing feature, not its monthly count.
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status

from ..core.tier_limits import Feature, QuotaResource, SubscriptionTier, require_feature_or_reject
from ..dependencies.tier_check import create_within_quota
from ..schemas.reservations import (
    BLOCKING_STATUSES,
    AssetAvailability,
    Reservation,
    ReservationConflict,
    ReservationCreate,
)
from ..utils.json_encoder import deep_serialize
from .asset_service import asset_service
from .persistence import persistence


logger = logging.getLogger(__name__)


def overlaps(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """Inclusive date-range overlap."""
    return start_a <= end_b and end_a >= start_b


class ReservationService:
    """Reservations and availability for an organization."""

    def __init__(self):
        self.db = persistence

    async def list_reservations(self, organization_id: str) -> List[Reservation]:
        rows = await self.db.list("reservations", organization_id, order_by="start_date")
        return [Reservation(**row) for row in rows]

    async def get_reservation(self, organization_id: str, reservation_id: str) -> Reservation:
        row = await self.db.get("reservations", organization_id, reservation_id)
        if not row:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Reservation not found"
            )
        assets = await self.db.list_in(
            "reservation_assets", organization_id, "reservation_id", [reservation_id],
            columns="asset_id, quantity",
        )
        return Reservation(**{**row, "assets": assets})

    async def check_availability(
        self,
        organization_id: str,
        asset_ids: List[str],
        start_date: date,
        end_date: date,
        exclude_reservation_id: Optional[str] = None,
    ) -> List[AssetAvailability]:
        """Per-asset availability against pending, confirmed and active reservations."""
        reservations = await self.db.list(
            "reservations", organization_id,
            columns="id, title, start_date, end_date, status",
        )
        blocking = {
            r["id"]: r for r in reservations
            if r["id"] != exclude_reservation_id
            and r.get("status") in {s.value for s in BLOCKING_STATUSES}
            and overlaps(start_date, end_date, date.fromisoformat(str(r["start_date"])), date.fromisoformat(str(r["end_date"])))
        }

        links = await self.db.list_in(
            "reservation_assets", organization_id, "reservation_id", list(blocking),
            columns="reservation_id, asset_id",
        )
        assets = await self.db.get_many("assets", organization_id, asset_ids, columns="id, name")
        names = {a["id"]: a.get("name") for a in assets}

        results = []
        for asset_id in asset_ids:
            conflicts = [
                ReservationConflict(
                    reservation_id=link["reservation_id"],
                    title=blocking[link["reservation_id"]]["title"],
                    start_date=blocking[link["reservation_id"]]["start_date"],
                    end_date=blocking[link["reservation_id"]]["end_date"],
                    status=blocking[link["reservation_id"]]["status"],
                )
                for link in links
                if link["asset_id"] == asset_id and link["reservation_id"] in blocking
            ]
            results.append(AssetAvailability(
                asset_id=asset_id,
                asset_name=names.get(asset_id) or "Unknown Asset",
                is_available=not conflicts,
                conflicts=conflicts,
            ))
        return results

    async def _resolve_assets(self, organization_id: str, data: ReservationCreate) -> Dict[str, int]:
        """Asset id -> quantity, combining direct assets and expanded kits."""
        quantities: Dict[str, int] = {}
        for asset_id in data.asset_ids:
            quantities[asset_id] = quantities.get(asset_id, 0) + data.quantities.get(asset_id, 1)

        if data.kit_ids:
            kit_items = await asset_service.get_kit_items(organization_id, data.kit_ids)
            for items in kit_items.values():
                for item in items:
                    quantities[item.asset_id] = quantities.get(item.asset_id, 0) + item.quantity

        if quantities:
            found = await self.db.get_many("assets", organization_id, list(quantities), columns="id")
            missing = set(quantities) - {row["id"] for row in found}
            if missing:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Unknown assets: {', '.join(sorted(missing))}"
                )
        return quantities

    async def create_reservation(
        self,
        organization_id: str,
        data: ReservationCreate,
        user_id: str,
        tier: SubscriptionTier,
    ) -> Reservation:
        """
        Create a reservation.

        Raises FeatureNotAvailable for kits, locations or conflict overrides
        the plan lacks, 409 on unresolved conflicts, and QuotaExceeded once the
        monthly reservation quota is used up.
        """
        if data.kit_ids:
            require_feature_or_reject(tier, Feature.HAS_KIT_RESERVATIONS)
        if data.location_id:
            require_feature_or_reject(tier, Feature.HAS_LOCATION_RESERVATIONS)
            if not await self.db.get("locations", organization_id, data.location_id):
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="Location not found"
                )

        quantities = await self._resolve_assets(organization_id, data)

        if quantities:
            availability = await self.check_availability(
                organization_id, list(quantities), data.start_date, data.end_date
            )
            conflicted = [a for a in availability if not a.is_available]
            if conflicted:
                if not data.override_conflicts:
                    raise HTTPException(
                        status_code=status.HTTP_409_CONFLICT,
                        detail={
                            "error": "reservation_conflict",
                            "message": "Some assets are already reserved for these dates",
                            "conflicts": [deep_serialize(a.model_dump()) for a in conflicted],
                        },
                    )
                require_feature_or_reject(tier, Feature.HAS_CONFLICT_OVERRIDE)
                logger.info(
                    f"Conflict override by {user_id} in organization {organization_id} "
                    f"for {len(conflicted)} asset(s)"
                )

        record = deep_serialize({
            **data.model_dump(exclude={"asset_ids", "quantities", "kit_ids", "override_conflicts"}),
            "reserved_by": user_id,
        })

        async def insert():
            return await self.db.insert("reservations", organization_id, record)

        row = await create_within_quota(organization_id, QuotaResource.MAX_RESERVATIONS_PER_MONTH, insert)

        assets: List[Dict[str, Any]] = []
        if quantities:
            assets = await self.db.insert_many("reservation_assets", organization_id, [
                {"reservation_id": row["id"], "asset_id": asset_id, "quantity": quantity}
                for asset_id, quantity in quantities.items()
            ])
        return Reservation(**{**row, "assets": assets})

    async def cancel_reservation(self, organization_id: str, reservation_id: str) -> Reservation:
        row = await self.db.update("reservations", organization_id, reservation_id, {"status": "cancelled"})
        if not row:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Reservation not found"
            )
        return Reservation(**row)

    async def packing_list(self, organization_id: str, reservation_id: str) -> Dict[str, Any]:
        """Reservation plus the asset rows needed to pack it."""
        reservation = await self.get_reservation(organization_id, reservation_id)
        asset_rows = await self.db.get_many(
            "assets", organization_id, [a.asset_id for a in reservation.assets],
            columns="id, name, category, location, serial_number",
        )
        by_id = {row["id"]: row for row in asset_rows}
        items = [
            {**by_id.get(a.asset_id, {"id": a.asset_id, "name": "Unknown Asset"}), "quantity": a.quantity}
            for a in reservation.assets
        ]
        return {"reservation": reservation, "items": items}


# Global reservation service instance
reservation_service = ReservationService()
