"""Kanonisches Rechnungsmodell für XRechnung und ZUGFeRD.

Alle Beträge sind ``Decimal`` und werden mit ``ROUND_HALF_UP`` (kaufmännisch,
halb weg von Null) auf zwei Nachkommastellen quantisiert. Die Objekte sind
unveränderlich: ein ``CanonicalInvoice`` wird pro Export frisch aus dem
gespeicherten Datensatz aufgebaut und danach nicht mehr verändert.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, List, Optional, Tuple


DecimalLike = Decimal | str | int | float

_CENT = Decimal("0.01")
_QUANTITY_STEP = Decimal("0.0001")
_GERMAN_GROUPED = re.compile(r"^-?\d{1,3}(\.\d{3})*(,\d+)?$")
_GERMAN_COMMA = re.compile(r"^-?\d+(,\d+)$")

TAX_CATEGORY_STANDARD = "S"
TAX_CATEGORY_ZERO = "Z"


def to_decimal(value: object) -> Optional[Decimal]:
    """Konvertiere Eingaben tolerant in ``Decimal``.

    Strings dürfen deutsche Schreibweisen nutzen (``1.234,56`` oder ``12,5``).
    ``None``, leere Strings, Booleans sowie nicht-endliche Werte ergeben ``None``.
    Floats werden über ``str`` konvertiert, damit keine binären Artefakte
    entstehen.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        parsed = Decimal(str(value))
        return parsed if parsed.is_finite() else None

    text = str(value).strip()
    if not text:
        return None
    if _GERMAN_GROUPED.match(text):
        text = text.replace(".", "").replace(",", ".")
    elif _GERMAN_COMMA.match(text):
        text = text.replace(",", ".")
    try:
        parsed = Decimal(text)
    except InvalidOperation:
        return None
    return parsed if parsed.is_finite() else None


def parse_decimal(value: object) -> Optional[Decimal]:
    """Strikte Konvertierung für Datenbankspalten (Punkt als Dezimaltrenner).

    Anders als ``to_decimal`` wird ``1.500`` nicht als Tausendergruppe gelesen.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (Decimal, int)):
        parsed = Decimal(value)
        return parsed if parsed.is_finite() else None

    text = str(value).strip()
    if not text:
        return None
    try:
        parsed = Decimal(text)
    except InvalidOperation:
        return None
    return parsed if parsed.is_finite() else None


def _require_decimal(value: DecimalLike) -> Decimal:
    parsed = parse_decimal(value)
    if parsed is None:
        raise ValueError(f"Not a finite decimal value: {value!r}")
    return parsed


def quantize_money(amount: DecimalLike) -> Decimal:
    """Rundet Beträge auf zwei Nachkommastellen (ROUND_HALF_UP)."""

    return _require_decimal(amount).quantize(_CENT, rounding=ROUND_HALF_UP)


def round_rate(rate: DecimalLike) -> Decimal:
    return _require_decimal(rate).quantize(_CENT, rounding=ROUND_HALF_UP)


def _trim_zeros(text: str) -> str:
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text in ("", "-0"):
        return "0"
    return text


def format_money(amount: DecimalLike) -> str:
    return f"{quantize_money(amount):.2f}"


def format_rate(rate: DecimalLike) -> str:
    """``19.00`` -> ``19``, ``7.50`` -> ``7.5``."""

    return _trim_zeros(f"{round_rate(rate):.2f}")


def format_quantity(quantity: DecimalLike) -> str:
    value = _require_decimal(quantity).quantize(_QUANTITY_STEP, rounding=ROUND_HALF_UP)
    return _trim_zeros(f"{value:.4f}")


def tax_category_for_rate(rate: Decimal) -> str:
    return TAX_CATEGORY_STANDARD if rate > 0 else TAX_CATEGORY_ZERO


@dataclass(frozen=True, slots=True)
class Address:
    line1: Optional[str] = None
    postcode: Optional[str] = None
    city: Optional[str] = None
    country_code: str = "DE"


@dataclass(frozen=True, slots=True)
class Party:
    name: str
    address: Address = field(default_factory=Address)
    vat_id: Optional[str] = None
    tax_number: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Payment:
    means: str = "bankTransfer"
    iban: Optional[str] = None
    terms_text: Optional[str] = None


@dataclass(frozen=True, slots=True)
class InvoiceHeader:
    invoice_number: str
    issue_date: date
    currency: str = "EUR"
    due_date: Optional[date] = None
    buyer_reference: Optional[str] = None

    @property
    def delivery_date(self) -> date:
        return self.due_date or self.issue_date


@dataclass(frozen=True, slots=True)
class LineItem:
    position_index: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    net_amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    gross_amount: Decimal
    tax_category_code: Optional[str] = None

    def __post_init__(self) -> None:
        quantity = _require_decimal(self.quantity)
        if quantity <= 0:
            raise ValueError(f"Line {self.position_index}: quantity must be positive")
        object.__setattr__(self, "quantity", quantity)
        object.__setattr__(self, "tax_rate", round_rate(self.tax_rate))
        for name in ("unit_price", "net_amount", "tax_amount", "gross_amount"):
            object.__setattr__(self, name, quantize_money(getattr(self, name)))

        expected = tax_category_for_rate(self.tax_rate)
        if self.tax_category_code is None:
            object.__setattr__(self, "tax_category_code", expected)
        elif self.tax_category_code != expected:
            raise ValueError(
                f"Line {self.position_index}: tax category {self.tax_category_code!r} "
                f"does not match rate {format_rate(self.tax_rate)}"
            )


@dataclass(frozen=True, slots=True)
class TaxSubtotal:
    tax_rate: Decimal
    tax_category_code: str
    taxable_amount: Decimal
    tax_amount: Decimal


@dataclass(frozen=True, slots=True)
class Totals:
    net_amount: Decimal
    tax_amount: Decimal
    gross_amount: Decimal


@dataclass(frozen=True, slots=True)
class CanonicalInvoice:
    header: InvoiceHeader
    seller: Party
    buyer: Party
    lines: Tuple[LineItem, ...]
    totals: Totals
    tax_breakdown: Tuple[TaxSubtotal, ...]
    payment: Optional[Payment] = None

    def __post_init__(self) -> None:
        if not self.lines:
            raise ValueError("Invoice requires at least one line item")
        object.__setattr__(self, "lines", tuple(self.lines))
        object.__setattr__(self, "tax_breakdown", tuple(self.tax_breakdown))


@dataclass(frozen=True)
class SchemaValidationResult:
    valid: bool
    errors: Tuple[str, ...]
    schema_path: str

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["errors"] = list(self.errors)
        return data


@dataclass(frozen=True)
class GenerationResult:
    xml: str
    validation: SchemaValidationResult

    @property
    def errors(self) -> List[str]:
        return list(self.validation.errors)
