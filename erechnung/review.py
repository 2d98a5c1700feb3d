"""Geprüfte Rechnungsdaten (Review-Payload) als Pydantic-Modell.

Der Review-Schritt liegt außerhalb der Engine; hier wird nur das Ergebnis
eingelesen, normalisiert und gegen die fachlichen Regeln geprüft. Der
ZUGFeRD-Packager arbeitet ausschließlich mit diesem Modell.
"""

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .dto import to_decimal

MONEY_TOLERANCE = Decimal("0.02")
VAT_RATES = (0, 7, 19)

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_VAT_ID = re.compile(r"^[A-Z]{2}[A-Z0-9]{2,12}$")
_IBAN_SHAPE = re.compile(r"^[A-Z]{2}\d{2}[A-Z0-9]+$")
_DE_POSTCODE = re.compile(r"^\d{5}$")
_INTL_POSTCODE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9\s-]{1,11}$")


def normalize_iban(value: str) -> str:
    return re.sub(r"\s+", "", value).upper()


def normalize_vat_id(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9]", "", value).upper()


def is_valid_iban(value: str) -> bool:
    """Länge, Form und Prüfsumme (ISO 13616, mod 97)."""

    iban = normalize_iban(value)
    if not 15 <= len(iban) <= 34 or not _IBAN_SHAPE.match(iban):
        return False
    rearranged = iban[4:] + iban[:4]
    numeric = "".join(str(ord(char) - 55) if char.isalpha() else char for char in rearranged)
    return int(numeric) % 97 == 1


def is_postcode_valid(postcode: str, country_code: str) -> bool:
    if country_code.upper() == "DE":
        return bool(_DE_POSTCODE.match(postcode.strip()))
    return bool(_INTL_POSTCODE.match(postcode.strip()))


def _approx(left: Decimal, right: Decimal) -> bool:
    return abs(left - right) <= MONEY_TOLERANCE


def _strip_or_none(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip() or None
    return value


def _parse_money(value: Any) -> Any:
    if value is None or isinstance(value, Decimal):
        return value
    parsed = to_decimal(value)
    if parsed is None:
        raise ValueError("Betrag muss eine gültige Zahl sein.")
    return parsed


def _parse_vat_rate(value: Any) -> int:
    rate = to_decimal(value)
    if rate is None or rate not in VAT_RATES:
        raise ValueError("Steuersatz muss 0, 7 oder 19 sein.")
    return int(rate)


def _parse_iso_date(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        if not _ISO_DATE.match(value):
            raise ValueError("Datum muss im Format YYYY-MM-DD sein.")
    return value


class ReviewModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ReviewHeader(ReviewModel):
    profile: Literal["EN16931", "ZUGFERD", "XRECHNUNG_B2G"] = "EN16931"
    invoice_number: str = Field(min_length=1)
    issue_date: date
    currency: str = Field(pattern=r"^[A-Z]{3}$")
    due_date: Optional[date] = None
    buyer_reference: Optional[str] = None

    @field_validator("invoice_number", "buyer_reference", "currency", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return _strip_or_none(value)

    @field_validator("currency", mode="before")
    @classmethod
    def _upper_currency(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @field_validator("issue_date", "due_date", mode="before")
    @classmethod
    def _iso_date(cls, value: Any) -> Any:
        return _parse_iso_date(value)


class ReviewAddressParty(ReviewModel):
    name: str = Field(min_length=1)
    street: str = Field(min_length=1)
    post_code: str = Field(min_length=1)
    city: str = Field(min_length=1)
    country_code: str = Field(pattern=r"^[A-Z]{2}$")

    @field_validator("name", "street", "post_code", "city", "country_code", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("country_code", mode="before")
    @classmethod
    def _upper_country(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _check_postcode(self) -> "ReviewAddressParty":
        if not is_postcode_valid(self.post_code, self.country_code):
            if self.country_code == "DE":
                raise ValueError("PLZ muss für Deutschland aus genau 5 Ziffern bestehen.")
            raise ValueError("Postleitzahl ist für das ausgewählte Land ungültig.")
        return self


class ReviewSeller(ReviewAddressParty):
    vat_id: Optional[str] = None
    tax_number: Optional[str] = None

    @field_validator("vat_id", mode="before")
    @classmethod
    def _normalize_vat_id(cls, value: Any) -> Any:
        value = _strip_or_none(value)
        return normalize_vat_id(value) if isinstance(value, str) else value

    @field_validator("tax_number", mode="before")
    @classmethod
    def _strip_tax_number(cls, value: Any) -> Any:
        return _strip_or_none(value)

    @model_validator(mode="after")
    def _check_tax_ids(self) -> "ReviewSeller":
        if not self.vat_id and not self.tax_number:
            raise ValueError("USt-IdNr. oder Steuernummer ist erforderlich.")
        if self.vat_id and not _VAT_ID.match(self.vat_id):
            raise ValueError(
                "USt-IdNr. muss im Format mit Länderpräfix vorliegen (z. B. DE123456789)."
            )
        return self


class ReviewBuyer(ReviewAddressParty):
    pass


class ReviewPayment(ReviewModel):
    means: Literal["bankTransfer", "card", "directDebit", "cash", "other"]
    iban: Optional[str] = None
    terms_text: Optional[str] = None

    @field_validator("iban", mode="before")
    @classmethod
    def _normalize_iban(cls, value: Any) -> Any:
        value = _strip_or_none(value)
        if isinstance(value, str):
            value = normalize_iban(value)
            if not is_valid_iban(value):
                raise ValueError("Ungültige IBAN.")
        return value

    @field_validator("terms_text", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return _strip_or_none(value)


class ReviewLine(ReviewModel):
    description: str = Field(min_length=1)
    quantity: Decimal = Field(gt=0)
    unit: str = Field(min_length=1)
    unit_price: Decimal = Field(ge=0)
    net_amount: Decimal = Field(ge=0)
    vat_rate: int
    vat_category: str = Field(min_length=1)

    @field_validator("description", "unit", "vat_category", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("quantity", "unit_price", "net_amount", mode="before")
    @classmethod
    def _money(cls, value: Any) -> Any:
        return _parse_money(value)

    @field_validator("vat_rate", mode="before")
    @classmethod
    def _allowed_rate(cls, value: Any) -> int:
        return _parse_vat_rate(value)


class ReviewTotals(ReviewModel):
    net_amount: Decimal = Field(ge=0)
    vat_amount: Decimal = Field(ge=0)
    gross_amount: Decimal = Field(ge=0)

    @field_validator("net_amount", "vat_amount", "gross_amount", mode="before")
    @classmethod
    def _money(cls, value: Any) -> Any:
        return _parse_money(value)


class ReviewTaxBreakdown(ReviewModel):
    rate: int
    taxable_amount: Decimal = Field(ge=0)
    tax_amount: Decimal = Field(ge=0)

    @field_validator("taxable_amount", "tax_amount", mode="before")
    @classmethod
    def _money(cls, value: Any) -> Any:
        return _parse_money(value)

    @field_validator("rate", mode="before")
    @classmethod
    def _allowed_rate(cls, value: Any) -> int:
        return _parse_vat_rate(value)


class ReviewedInvoice(ReviewModel):
    header: ReviewHeader
    seller: ReviewSeller
    buyer: ReviewBuyer
    payment: ReviewPayment
    lines: List[ReviewLine] = Field(min_length=1)
    totals: ReviewTotals
    tax_breakdown: List[ReviewTaxBreakdown] = Field(min_length=1)

    @model_validator(mode="after")
    def _business_rules(self) -> "ReviewedInvoice":
        problems: List[str] = []
        header = self.header

        if header.due_date and header.due_date < header.issue_date:
            problems.append("Fälligkeitsdatum darf nicht vor dem Rechnungsdatum liegen.")
        if header.profile == "XRECHNUNG_B2G" and not header.buyer_reference:
            problems.append("Für XRECHNUNG_B2G ist eine Buyer Reference (Leitweg-ID) erforderlich.")
        if not header.due_date and not self.payment.terms_text:
            problems.append("Bitte Fälligkeitsdatum oder Zahlungsbedingungen hinterlegen.")
        if self.payment.means == "bankTransfer" and not self.payment.iban:
            problems.append("Für Überweisung ist eine IBAN erforderlich.")

        totals = self.totals
        if not _approx(sum((line.net_amount for line in self.lines), Decimal("0")), totals.net_amount):
            problems.append("Summe der Positions-Nettobeträge passt nicht zum Gesamt-Nettobetrag.")
        taxable = sum((item.taxable_amount for item in self.tax_breakdown), Decimal("0"))
        if not _approx(taxable, totals.net_amount):
            problems.append("Summe der steuerpflichtigen Beträge passt nicht zum Nettobetrag.")
        tax = sum((item.tax_amount for item in self.tax_breakdown), Decimal("0"))
        if not _approx(tax, totals.vat_amount):
            problems.append("Summe der Steuerbeträge passt nicht zur Gesamtsteuer.")
        if not _approx(totals.net_amount + totals.vat_amount, totals.gross_amount):
            problems.append("Nettobetrag + Steuerbetrag muss dem Bruttobetrag entsprechen.")
        for item in self.tax_breakdown:
            if not _approx(item.tax_amount, item.taxable_amount * item.rate / 100):
                problems.append(f"Steuerbetrag für {item.rate}% ist inkonsistent.")

        if problems:
            raise ValueError(" ".join(problems))
        return self
