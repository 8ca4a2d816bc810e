"""
Tests for PDF rendering.
"""
from datetime import date

import pytest

from assettracer.schemas.invoices import Invoice, Quotation
from assettracer.schemas.reservations import Reservation
from assettracer.services.document_renderer import DocumentRenderer


ORGANIZATION = {"name": "Acme & Sons Rentals", "email": "hello@acme.example.com"}
CLIENT = {"name": "Jane <Buyer>", "email": "jane@buyer.example.com", "company": "Buyer Co"}
LINE = {
    "description": "Lighting kit & stands",
    "quantity": 2,
    "unit_price": 100,
    "tax_rate": 10,
    "amount": 200,
    "tax_amount": 20,
    "total": 220,
}


@pytest.fixture
def renderer():
    return DocumentRenderer()


@pytest.fixture
def reservation():
    return Reservation(
        id="res-1",
        organization_id="org-1",
        title="Wedding shoot",
        project_name="Smith wedding",
        start_date=date(2026, 6, 1),
        end_date=date(2026, 6, 2),
        location="Garden venue",
        status="confirmed",
        notes="Bring spare batteries",
    )


def test_invoice(renderer):
    invoice = Invoice(
        id="inv-1", organization_id="org-1", client_id="c-1", invoice_number="INV-202606-ABCDEF",
        issue_date=date(2026, 6, 1), due_date=date(2026, 6, 15),
        subtotal=200, tax_total=20, total=220, balance=220,
        notes="Thanks for your business", terms="Net 14", items=[LINE],
    )
    pdf = renderer.render_invoice(invoice, CLIENT, ORGANIZATION)
    assert pdf.startswith(b"%PDF")


def test_quotation(renderer):
    quotation = Quotation(
        id="quo-1", organization_id="org-1", client_id="c-1", quotation_number="QUO-202606-ABCDEF",
        issue_date=date(2026, 6, 1), valid_until=date(2026, 7, 1),
        subtotal=200, tax_total=20, total=220, items=[LINE],
    )
    assert renderer.render_quotation(quotation, CLIENT, {}).startswith(b"%PDF")


def test_reservation(renderer, reservation):
    items = [{"id": "a-1", "name": "Camera", "category": "Video", "quantity": 2}]
    assert renderer.render_reservation(reservation, items, ORGANIZATION).startswith(b"%PDF")


def test_packing_list_without_items(renderer, reservation):
    assert renderer.render_packing_list(reservation, [], ORGANIZATION).startswith(b"%PDF")
