"""Normalisierung gespeicherter Rechnungsdatensätze in das kanonische Modell.

Die Positionsauflösung folgt einer festen Priorität:

1. Positionen aus der Datenbank (sortiert nach ``positionIndex``), jeweils
   einzeln repariert,
2. Positionen aus den Rohdaten eines Imports (``rawJson.extendedData``),
3. eine synthetische Position aus den Kopfsummen.

Fehlt alles davon, wird ``GenerationError`` ausgelöst; es entsteht nie eine
Rechnung ohne Positionen.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

from .core.logging import get_logger
from .dto import (
    Address,
    CanonicalInvoice,
    InvoiceHeader,
    LineItem,
    Party,
    Payment,
    Totals,
    quantize_money,
    round_rate,
    parse_decimal,
    tax_category_for_rate,
    to_decimal,
)
from .errors import GenerationError
from .tax import aggregate_tax_subtotals

logger = get_logger(__name__)

DEFAULT_CURRENCY = "EUR"
DEFAULT_COUNTRY_CODE = "DE"
UNKNOWN_SUPPLIER = "Unbekannter Lieferant"
UNKNOWN_CUSTOMER = "Unbekannter Kunde"
SYNTHETIC_LINE_DESCRIPTION = "Rechnungsposition"

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")
_COUNTRY_RE = re.compile(r"^[A-Z]{2}$")
_VAT_ID_RE = re.compile(r"^[A-Z]{2}[0-9A-Z]{2,}$")
_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def normalize_string(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_currency(value: object) -> str:
    text = normalize_string(value)
    if text and _CURRENCY_RE.match(text.upper()):
        return text.upper()
    return DEFAULT_CURRENCY


def normalize_country_code(value: object) -> str:
    text = normalize_string(value)
    if text and _COUNTRY_RE.match(text.upper()):
        return text.upper()
    return DEFAULT_COUNTRY_CODE


def to_positive_decimal(
    value: object, fallback: Decimal, parse: Callable[[object], Optional[Decimal]] = to_decimal
) -> Decimal:
    parsed = parse(value)
    if parsed is None or parsed <= 0:
        return fallback
    return parsed


def to_date_only(value: object, field_name: Optional[str] = None) -> Optional[date]:
    """Wandelt Datumswerte in ein reines Datum (UTC) um.

    Mit ``field_name`` ist das Feld Pflicht: fehlende oder unlesbare Werte
    lösen ``GenerationError`` aus. Ohne ``field_name`` ergibt ein unlesbarer
    Wert ``None``.
    """

    if value is None or value == "":
        if field_name:
            raise GenerationError(f'Invoice is missing required field "{field_name}".')
        return None

    parsed = _parse_date(value)
    if parsed is None and field_name:
        raise GenerationError(f'Invoice field "{field_name}" is not a valid date.')
    return parsed


def _parse_date(value: object) -> Optional[date]:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date()


def _mapping(value: object) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


@dataclass(frozen=True)
class StoredLineItem:
    position_index: int
    description: Optional[str] = None
    quantity: object = None
    unit_price: object = None
    net_amount: object = None
    tax_rate: object = None
    tax_amount: object = None
    gross_amount: object = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "StoredLineItem":
        return cls(
            position_index=int(data.get("positionIndex", data.get("position_index", 0)) or 0),
            description=data.get("description"),
            quantity=data.get("quantity"),
            unit_price=data.get("unitPrice", data.get("unit_price")),
            net_amount=data.get("netAmount", data.get("net_amount")),
            tax_rate=data.get("taxRate", data.get("tax_rate")),
            tax_amount=data.get("taxAmount", data.get("tax_amount")),
            gross_amount=data.get("grossAmount", data.get("gross_amount")),
        )


@dataclass(frozen=True)
class StoredInvoice:
    """Read-only Sicht auf einen gespeicherten Rechnungsdatensatz."""

    id: str
    number: Optional[str] = None
    issue_date: object = None
    due_date: object = None
    currency: Optional[str] = None
    supplier_name: Optional[str] = None
    customer_name: Optional[str] = None
    tax_id: Optional[str] = None
    net_amount: object = None
    tax_amount: object = None
    gross_amount: object = None
    line_items: Tuple[StoredLineItem, ...] = ()
    raw_json: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "StoredInvoice":
        def pick(camel: str, snake: str) -> Any:
            return data.get(camel, data.get(snake))

        items = pick("lineItems", "line_items") or []
        return cls(
            id=str(data.get("id", "")),
            number=data.get("number"),
            issue_date=pick("issueDate", "issue_date"),
            due_date=pick("dueDate", "due_date"),
            currency=data.get("currency"),
            supplier_name=pick("supplierName", "supplier_name"),
            customer_name=pick("customerName", "customer_name"),
            tax_id=pick("taxId", "tax_id"),
            net_amount=pick("netAmount", "net_amount"),
            tax_amount=pick("taxAmount", "tax_amount"),
            gross_amount=pick("grossAmount", "gross_amount"),
            line_items=tuple(
                item if isinstance(item, StoredLineItem) else StoredLineItem.from_mapping(item)
                for item in items
            ),
            raw_json=_mapping(pick("rawJson", "raw_json")),
        )

    @property
    def extended_data(self) -> Mapping[str, Any]:
        return _mapping(self.raw_json.get("extendedData"))

    @property
    def review_data(self) -> Mapping[str, Any]:
        return _mapping(self.raw_json.get("reviewData"))


def default_tax_rate(net_amount: object, tax_amount: object) -> Decimal:
    """Leitet den Standardsatz aus den Kopfsummen ab (``tax / net * 100``).

    Der Satz wird nicht auf die zulässigen Sätze 0/7/19 eingerastet.
    """

    net = parse_decimal(net_amount)
    tax = parse_decimal(tax_amount)
    if not net or not tax:
        return _ZERO
    return round_rate(tax / net * _HUNDRED)


def repair_db_line_item(item: StoredLineItem, default_rate: Decimal) -> Optional[LineItem]:
    quantity = to_positive_decimal(item.quantity, Decimal("1"), parse_decimal)
    net = parse_decimal(item.net_amount)
    unit_price = parse_decimal(item.unit_price)
    rate = parse_decimal(item.tax_rate)
    rate = default_rate if rate is None else rate
    tax = parse_decimal(item.tax_amount)
    gross = parse_decimal(item.gross_amount)

    if net is None:
        if unit_price is None:
            return None
        net = unit_price * quantity
    net = quantize_money(net)

    if tax is None:
        tax = gross - net if gross is not None else net * rate / _HUNDRED
    tax = quantize_money(tax)
    gross = quantize_money(gross if gross is not None else net + tax)
    unit_price = quantize_money(unit_price if unit_price is not None else net / quantity)
    rate = round_rate(rate)

    return LineItem(
        position_index=item.position_index,
        description=normalize_string(item.description) or f"Position {item.position_index}",
        quantity=quantity,
        unit_price=unit_price,
        net_amount=net,
        tax_rate=rate,
        tax_amount=tax,
        gross_amount=gross,
        tax_category_code=tax_category_for_rate(rate),
    )


def map_raw_line_item(
    item: Mapping[str, Any], position_index: int, default_rate: Decimal
) -> Optional[LineItem]:
    quantity = to_positive_decimal(normalize_string(item.get("quantity")), Decimal("1"))
    unit_price = to_decimal(normalize_string(item.get("unitPrice")))
    line_total = to_decimal(normalize_string(item.get("totalAmount")))

    if line_total is None:
        if unit_price is None:
            return None
        line_total = unit_price * quantity
    net = quantize_money(line_total)

    rate = round_rate(default_rate)
    tax = quantize_money(net * rate / _HUNDRED)

    return LineItem(
        position_index=position_index,
        description=(
            normalize_string(item.get("description"))
            or normalize_string(item.get("name"))
            or f"Position {position_index}"
        ),
        quantity=quantity,
        unit_price=quantize_money(unit_price if unit_price is not None else net / quantity),
        net_amount=net,
        tax_rate=rate,
        tax_amount=tax,
        gross_amount=quantize_money(net + tax),
    )


def _synthetic_line_item(invoice: StoredInvoice, default_rate: Decimal) -> LineItem:
    fallback_net = parse_decimal(invoice.net_amount)
    fallback_tax = parse_decimal(invoice.tax_amount)
    fallback_gross = parse_decimal(invoice.gross_amount)

    if fallback_net is None and fallback_gross is None:
        raise GenerationError("Invoice has no usable line item data and no fallback totals.")

    net = quantize_money(fallback_net if fallback_net is not None else fallback_gross)
    if fallback_tax is not None:
        tax = quantize_money(fallback_tax)
    else:
        gross_basis = fallback_gross if fallback_gross is not None else net
        tax = quantize_money(max(gross_basis - net, _ZERO))
    gross = quantize_money(fallback_gross if fallback_gross is not None else net + tax)

    return LineItem(
        position_index=1,
        description=normalize_string(invoice.number) or SYNTHETIC_LINE_DESCRIPTION,
        quantity=Decimal("1"),
        unit_price=net,
        net_amount=net,
        tax_rate=default_rate,
        tax_amount=tax,
        gross_amount=gross,
    )


def resolve_line_items(invoice: StoredInvoice, default_rate: Decimal) -> Tuple[LineItem, ...]:
    db_items = sorted(invoice.line_items, key=lambda item: item.position_index)
    from_db = [
        line for line in (repair_db_line_item(item, default_rate) for item in db_items) if line
    ]
    if from_db:
        return tuple(from_db)

    raw_items: Sequence[Any] = invoice.extended_data.get("lineItems") or []
    if not isinstance(raw_items, Sequence) or isinstance(raw_items, (str, bytes)):
        raw_items = []
    from_raw: List[LineItem] = []
    for index, raw in enumerate(raw_items, start=1):
        line = map_raw_line_item(_mapping(raw), index, default_rate)
        if line is not None:
            from_raw.append(line)
    if from_raw:
        logger.info("Invoice %s: %d line items taken from import data", invoice.id, len(from_raw))
        return tuple(from_raw)

    logger.info("Invoice %s: no line items, using header totals", invoice.id)
    return (_synthetic_line_item(invoice, default_rate),)


def _address(details: object) -> Address:
    address = _mapping(_mapping(details).get("address"))
    return Address(
        line1=normalize_string(address.get("line1")),
        postcode=normalize_string(address.get("postcode")),
        city=normalize_string(address.get("city")),
        country_code=normalize_country_code(address.get("countryCode")),
    )


def _split_tax_id(tax_id: object) -> Tuple[Optional[str], Optional[str]]:
    """USt-IdNr. (``DE123456789``) oder Steuernummer (``12/345/67890``)."""

    text = normalize_string(tax_id)
    if not text:
        return None, None
    compact = re.sub(r"\s+", "", text).upper()
    if _VAT_ID_RE.match(compact):
        return compact, None
    return None, text


def _payment(review: Mapping[str, Any]) -> Optional[Payment]:
    payment = _mapping(review.get("payment"))
    if not payment:
        return None
    iban = normalize_string(payment.get("iban"))
    return Payment(
        means=normalize_string(payment.get("means")) or "bankTransfer",
        iban=re.sub(r"\s+", "", iban).upper() if iban else None,
        terms_text=normalize_string(payment.get("termsText")),
    )


def _sum(values: Sequence[Decimal]) -> Decimal:
    total = Decimal("0.00")
    for value in values:
        total += value
    return total


def normalize_invoice(invoice: StoredInvoice) -> CanonicalInvoice:
    """Baut frisch ein ``CanonicalInvoice`` aus dem gespeicherten Datensatz."""

    issue_date = to_date_only(invoice.issue_date, "issueDate")
    due_date = to_date_only(invoice.due_date)
    extended = invoice.extended_data
    review = invoice.review_data

    rate = default_tax_rate(invoice.net_amount, invoice.tax_amount)
    lines = resolve_line_items(invoice, rate)
    breakdown = aggregate_tax_subtotals(lines)

    header_net = parse_decimal(invoice.net_amount)
    header_tax = parse_decimal(invoice.tax_amount)
    header_gross = parse_decimal(invoice.gross_amount)
    net_total = quantize_money(
        header_net if header_net is not None else _sum([line.net_amount for line in lines])
    )
    tax_total = quantize_money(
        header_tax if header_tax is not None else _sum([line.tax_amount for line in lines])
    )
    gross_total = quantize_money(header_gross if header_gross is not None else net_total + tax_total)

    vat_id, tax_number = _split_tax_id(invoice.tax_id)
    header = InvoiceHeader(
        invoice_number=normalize_string(invoice.number) or invoice.id,
        issue_date=issue_date,
        due_date=due_date,
        currency=normalize_currency(invoice.currency),
        buyer_reference=normalize_string(_mapping(review.get("header")).get("buyerReference")),
    )

    return CanonicalInvoice(
        header=header,
        seller=Party(
            name=normalize_string(invoice.supplier_name) or UNKNOWN_SUPPLIER,
            address=_address(extended.get("supplierDetails")),
            vat_id=vat_id,
            tax_number=tax_number,
        ),
        buyer=Party(
            name=normalize_string(invoice.customer_name) or UNKNOWN_CUSTOMER,
            address=_address(extended.get("customerDetails")),
        ),
        lines=lines,
        totals=Totals(net_amount=net_total, tax_amount=tax_total, gross_amount=gross_total),
        tax_breakdown=breakdown,
        payment=_payment(review),
    )
