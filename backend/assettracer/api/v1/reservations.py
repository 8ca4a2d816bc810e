"""
Reservation API endpoints.
"""
from typing import List

from fastapi import APIRouter, Depends, status

from ...core.dependencies import get_current_organization
from ...core.tier_limits import Feature, normalize_tier
from ...dependencies.tier_check import FeatureGate, get_organization_with_tier
from ...schemas.auth import OrganizationContext
from ...schemas.reservations import (
    AvailabilityRequest,
    AvailabilityResponse,
    Reservation,
    ReservationCreate,
)
from ...services.document_renderer import document_renderer
from ...services.persistence import persistence
from ...services.reservation_service import reservation_service
from ...utils.responses import csv_response, pdf_response

router = APIRouter(prefix="/reservations", tags=["reservations"])

RESERVATION_EXPORT_COLUMNS = [
    "id", "title", "project_name", "start_date", "end_date", "start_time", "end_time",
    "location", "status", "priority", "reserved_by", "created_at",
]


@router.get("", response_model=List[Reservation])
async def list_reservations(org: OrganizationContext = Depends(get_current_organization)):
    return await reservation_service.list_reservations(org.organization_id)


@router.post("", response_model=Reservation, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    data: ReservationCreate,
    org: OrganizationContext = Depends(get_organization_with_tier)
):
    """
    Create a reservation.

    403 feature_not_available for kits, locations or conflict overrides the
    plan lacks; 409 when assets are already booked; 403 quota_exceeded once
    maxReservationsPerMonth is reached.
    """
    return await reservation_service.create_reservation(
        org.organization_id, data, org.user.id, normalize_tier(org.tier)
    )


@router.post("/check-availability", response_model=AvailabilityResponse)
async def check_availability(
    request: AvailabilityRequest,
    org: OrganizationContext = Depends(get_current_organization)
):
    availability = await reservation_service.check_availability(
        org.organization_id,
        request.asset_ids,
        request.start_date,
        request.end_date,
        request.exclude_reservation_id,
    )
    return AvailabilityResponse(availability=availability)


@router.get("/export/csv")
async def export_reservations_csv(org: OrganizationContext = Depends(FeatureGate(Feature.HAS_CSV_EXPORT))):
    reservations = await reservation_service.list_reservations(org.organization_id)
    rows = [r.model_dump(mode="json") for r in reservations]
    return csv_response("reservations", RESERVATION_EXPORT_COLUMNS, rows)


@router.get("/{reservation_id}", response_model=Reservation)
async def get_reservation(reservation_id: str, org: OrganizationContext = Depends(get_current_organization)):
    return await reservation_service.get_reservation(org.organization_id, reservation_id)


@router.post("/{reservation_id}/cancel", response_model=Reservation)
async def cancel_reservation(reservation_id: str, org: OrganizationContext = Depends(get_current_organization)):
    return await reservation_service.cancel_reservation(org.organization_id, reservation_id)


@router.get("/{reservation_id}/pdf")
async def get_reservation_pdf(
    reservation_id: str,
    org: OrganizationContext = Depends(FeatureGate(Feature.HAS_PDF_EXPORT))
):
    packing = await reservation_service.packing_list(org.organization_id, reservation_id)
    organization = await persistence.get_organization(org.organization_id) or {}
    content = document_renderer.render_reservation(packing["reservation"], packing["items"], organization)
    return pdf_response(content, f"reservation-{reservation_id}.pdf")


@router.get("/{reservation_id}/packing-list")
async def get_packing_list(
    reservation_id: str,
    org: OrganizationContext = Depends(FeatureGate(Feature.HAS_PDF_EXPORT))
):
    packing = await reservation_service.packing_list(org.organization_id, reservation_id)
    organization = await persistence.get_organization(org.organization_id) or {}
    content = document_renderer.render_packing_list(packing["reservation"], packing["items"], organization)
    return pdf_response(content, f"packing-list-{reservation_id}.pdf")
