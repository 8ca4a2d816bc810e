"""
Document Renderer - PDF output for invoices, quotations and reservations.

Documents are built with reportlab's platypus layer and returned as bytes;
callers stream them back to the client or attach them to email.
"""
import io
import logging
from datetime import date
from typing import Any, Dict, List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ..schemas.invoices import Invoice, LineItem, Quotation
from ..schemas.reservations import Reservation


logger = logging.getLogger(__name__)

BRAND_COLOR = colors.HexColor("#7c3aed")

_TABLE_STYLE = TableStyle([
    ("BACKGROUND", (0, 0), (-1, 0), BRAND_COLOR),
    ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
    ("FONTSIZE", (0, 0), (-1, -1), 9),
    ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
    ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
])


def _money(amount: float, currency: str) -> str:
    return f"{currency} {amount:,.2f}"


def _fmt_date(value: Optional[date]) -> str:
    return value.strftime("%d %b %Y") if value else "-"


class DocumentRenderer:
    """Renders business documents to PDF bytes."""

    def __init__(self):
        self.styles = getSampleStyleSheet()

    def _build(self, title: str, story: List[Any]) -> bytes:
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            title=title,
            leftMargin=18 * mm,
            rightMargin=18 * mm,
            topMargin=18 * mm,
            bottomMargin=18 * mm,
        )
        doc.build(story)
        pdf = buffer.getvalue()
        logger.debug(f"Rendered {title!r} ({len(pdf)} bytes)")
        return pdf

    def _header(self, organization: Dict[str, Any], heading: str, number: str) -> List[Any]:
        org_lines = [escape(organization.get("name") or "")]
        for key in ("address", "email", "phone"):
            if organization.get(key):
                org_lines.append(escape(str(organization[key])))
        return [
            Paragraph(heading, self.styles["Title"]),
            Paragraph(f"<b>{escape(number)}</b>", self.styles["Normal"]),
            Spacer(1, 4 * mm),
            Paragraph("<br/>".join(org_lines), self.styles["Normal"]),
            Spacer(1, 6 * mm),
        ]

    def _party(self, label: str, client: Dict[str, Any]) -> List[Any]:
        lines = [f"<b>{label}</b>", escape(client.get("name") or "")]
        for key in ("company", "address", "city", "country", "email"):
            if client.get(key):
                lines.append(escape(str(client[key])))
        return [Paragraph("<br/>".join(lines), self.styles["Normal"]), Spacer(1, 6 * mm)]

    def _line_items(self, items: List[LineItem], currency: str) -> Table:
        rows = [["Description", "Qty", "Unit price", "Tax %", "Total"]]
        for item in items:
            rows.append([
                Paragraph(escape(item.description), self.styles["Normal"]),
                f"{item.quantity:g}",
                _money(item.unit_price, currency),
                f"{item.tax_rate:g}",
                _money(item.total, currency),
            ])
        table = Table(rows, colWidths=[80 * mm, 15 * mm, 30 * mm, 15 * mm, 34 * mm], repeatRows=1)
        table.setStyle(_TABLE_STYLE)
        return table

    def _totals(self, rows: List[List[str]]) -> Table:
        table = Table(rows, colWidths=[140 * mm, 34 * mm])
        table.setStyle(TableStyle([
            ("ALIGN", (0, 0), (-1, -1), "RIGHT"),
            ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
        ]))
        return table

    def _notes(self, notes: Optional[str], terms: Optional[str]) -> List[Any]:
        story: List[Any] = []
        if notes:
            story += [Spacer(1, 6 * mm), Paragraph(f"<b>Notes</b><br/>{escape(notes)}", self.styles["Normal"])]
        if terms:
            story += [Spacer(1, 4 * mm), Paragraph(f"<b>Terms</b><br/>{escape(terms)}", self.styles["Normal"])]
        return story

    def render_invoice(self, invoice: Invoice, client: Dict[str, Any], organization: Dict[str, Any]) -> bytes:
        story = self._header(organization, "INVOICE", invoice.invoice_number)
        story += self._party("Bill to", client)
        story.append(Paragraph(
            f"Issued {_fmt_date(invoice.issue_date)} &nbsp;&nbsp; Due {_fmt_date(invoice.due_date)}"
            f" &nbsp;&nbsp; Status {invoice.status.value.upper()}",
            self.styles["Normal"],
        ))
        story.append(Spacer(1, 4 * mm))
        story.append(self._line_items(invoice.items, invoice.currency))
        story.append(Spacer(1, 4 * mm))
        story.append(self._totals([
            ["Subtotal", _money(invoice.subtotal, invoice.currency)],
            ["Tax", _money(invoice.tax_total, invoice.currency)],
            ["Total", _money(invoice.total, invoice.currency)],
            ["Paid", _money(invoice.paid_amount, invoice.currency)],
            ["Balance due", _money(invoice.balance, invoice.currency)],
        ]))
        story += self._notes(invoice.notes, invoice.terms)
        return self._build(f"Invoice {invoice.invoice_number}", story)

    def render_quotation(self, quotation: Quotation, client: Dict[str, Any], organization: Dict[str, Any]) -> bytes:
        story = self._header(organization, "QUOTATION", quotation.quotation_number)
        story += self._party("Prepared for", client)
        story.append(Paragraph(
            f"Issued {_fmt_date(quotation.issue_date)} &nbsp;&nbsp; Valid until {_fmt_date(quotation.valid_until)}",
            self.styles["Normal"],
        ))
        story.append(Spacer(1, 4 * mm))
        story.append(self._line_items(quotation.items, quotation.currency))
        story.append(Spacer(1, 4 * mm))
        story.append(self._totals([
            ["Subtotal", _money(quotation.subtotal, quotation.currency)],
            ["Tax", _money(quotation.tax_total, quotation.currency)],
            ["Total", _money(quotation.total, quotation.currency)],
        ]))
        story += self._notes(quotation.notes, quotation.terms)
        return self._build(f"Quotation {quotation.quotation_number}", story)

    def _reservation_summary(self, reservation: Reservation) -> List[Any]:
        details = [
            ["Dates", f"{_fmt_date(reservation.start_date)} to {_fmt_date(reservation.end_date)}"],
            ["Status", reservation.status.value.title()],
            ["Priority", reservation.priority.value.title()],
        ]
        if reservation.project_name:
            details.insert(0, ["Project", reservation.project_name])
        if reservation.location:
            details.append(["Location", reservation.location])
        table = Table(details, colWidths=[35 * mm, 139 * mm])
        table.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
        ]))
        return [table, Spacer(1, 6 * mm)]

    def render_reservation(
        self,
        reservation: Reservation,
        items: List[Dict[str, Any]],
        organization: Dict[str, Any],
    ) -> bytes:
        story = self._header(organization, "RESERVATION", reservation.title)
        story += self._reservation_summary(reservation)
        rows = [["Asset", "Category", "Qty"]]
        rows += [[item.get("name") or "", item.get("category") or "-", str(item.get("quantity", 1))] for item in items]
        table = Table(rows, colWidths=[100 * mm, 50 * mm, 24 * mm], repeatRows=1)
        table.setStyle(_TABLE_STYLE)
        story.append(table)
        story += self._notes(reservation.notes, None)
        return self._build(f"Reservation {reservation.title}", story)

    def render_packing_list(
        self,
        reservation: Reservation,
        items: List[Dict[str, Any]],
        organization: Dict[str, Any],
    ) -> bytes:
        """Checklist with serial numbers and an empty tick column for packing."""
        story = self._header(organization, "PACKING LIST", reservation.title)
        story += self._reservation_summary(reservation)
        rows = [["", "Asset", "Serial number", "Storage location", "Qty"]]
        rows += [
            [
                "[  ]",
                item.get("name") or "",
                item.get("serial_number") or "-",
                item.get("location") or "-",
                str(item.get("quantity", 1)),
            ]
            for item in items
        ]
        table = Table(rows, colWidths=[12 * mm, 62 * mm, 40 * mm, 44 * mm, 16 * mm], repeatRows=1)
        table.setStyle(_TABLE_STYLE)
        story.append(table)
        story += [
            Spacer(1, 12 * mm),
            Paragraph("Packed by: ____________________ &nbsp;&nbsp; Date: ____________", self.styles["Normal"]),
        ]
        return self._build(f"Packing list {reservation.title}", story)


# Global document renderer instance
document_renderer = DocumentRenderer()
