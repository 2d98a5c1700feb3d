"""Visuelle Darstellung der geprüften Rechnung (ReportLab, A4)."""

from __future__ import annotations

import io
from decimal import Decimal

from reportlab.pdfgen import canvas

from erechnung.dto import format_quantity
from erechnung.review import ReviewedInvoice

PAGE_WIDTH = 595
PAGE_HEIGHT = 842
PAGE_MARGIN = 48
LINE_HEIGHT = 14
TEXT_SIZE = 10
FONT_REGULAR = "Helvetica"
FONT_BOLD = "Helvetica-Bold"


def _decimal(value: Decimal) -> str:
    return f"{value:.2f}"


def _money(value: Decimal, currency: str) -> str:
    return f"{_decimal(value)} {currency}"


class _PageWriter:
    """Schreibt Zeilen von oben nach unten und bricht am unteren Rand um."""

    def __init__(self, pdf: canvas.Canvas) -> None:
        self.pdf = pdf
        self.cursor = PAGE_HEIGHT - PAGE_MARGIN

    def _ensure_space(self, height: float = LINE_HEIGHT) -> None:
        if self.cursor - height >= PAGE_MARGIN:
            return
        self.pdf.showPage()
        self.cursor = PAGE_HEIGHT - PAGE_MARGIN

    def line(self, text: str, *, bold: bool = False, size: int = TEXT_SIZE) -> None:
        self._ensure_space()
        self.pdf.setFont(FONT_BOLD if bold else FONT_REGULAR, size)
        self.pdf.drawString(PAGE_MARGIN, self.cursor, text)
        self.cursor -= LINE_HEIGHT

    def heading(self, text: str) -> None:
        self.line(text, bold=True, size=12)

    def spacer(self, height: float = LINE_HEIGHT / 2) -> None:
        self.cursor -= height
        self._ensure_space()


def render_invoice_pdf(invoice: ReviewedInvoice) -> bytes:
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=(PAGE_WIDTH, PAGE_HEIGHT), invariant=1)
    writer = _PageWriter(pdf)

    header = invoice.header
    currency = header.currency.upper()

    writer.line(f"Invoice {header.invoice_number}", bold=True, size=18)
    writer.line(f"Issue date: {header.issue_date.isoformat()}  Currency: {currency}")
    if header.due_date:
        writer.line(f"Due date: {header.due_date.isoformat()}")
    if header.buyer_reference:
        writer.line(f"Buyer reference: {header.buyer_reference}")
    writer.spacer()

    seller = invoice.seller
    writer.heading("Seller")
    writer.line(seller.name)
    writer.line(f"{seller.street}, {seller.post_code} {seller.city}, {seller.country_code}")
    if seller.vat_id:
        writer.line(f"VAT ID: {seller.vat_id}")
    elif seller.tax_number:
        writer.line(f"Tax number: {seller.tax_number}")
    writer.spacer()

    buyer = invoice.buyer
    writer.heading("Buyer")
    writer.line(buyer.name)
    writer.line(f"{buyer.street}, {buyer.post_code} {buyer.city}, {buyer.country_code}")
    writer.spacer()

    writer.heading("Line items")
    for index, item in enumerate(invoice.lines, start=1):
        writer.line(f"{index}. {item.description}")
        writer.line(
            f"   Qty {format_quantity(item.quantity)} {item.unit}"
            f" | Unit {_money(item.unit_price, currency)}"
            f" | Net {_money(item.net_amount, currency)}"
            f" | VAT {item.vat_rate}%"
        )
    writer.spacer()

    totals = invoice.totals
    writer.heading("Totals")
    writer.line(f"Net: {_money(totals.net_amount, currency)}")
    writer.line(f"VAT: {_money(totals.vat_amount, currency)}")
    writer.line(f"Gross: {_money(totals.gross_amount, currency)}", bold=True)
    writer.spacer()

    payment = invoice.payment
    writer.heading("Payment")
    writer.line(f"Means: {payment.means}")
    if payment.iban:
        writer.line(f"IBAN: {payment.iban}")
    if payment.terms_text:
        writer.line(f"Terms: {payment.terms_text}")

    pdf.showPage()
    pdf.save()
    return buffer.getvalue()
