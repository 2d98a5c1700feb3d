"""Tests for the reviewed invoice model and its business rules."""

from __future__ import annotations

from copy import deepcopy
from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from erechnung.review import ReviewedInvoice, is_postcode_valid, is_valid_iban
from erechnung.samples import SAMPLE_IBAN, build_review_data, get_scenario


@pytest.fixture
def review_data() -> dict:
    return deepcopy(build_review_data(get_scenario("mixed_7_19")))


def test_sample_review_data_is_valid(review_data: dict) -> None:
    invoice = ReviewedInvoice.model_validate(review_data)

    assert invoice.header.invoice_number == "RE-2025-0003"
    assert invoice.header.issue_date == date(2025, 1, 15)
    assert invoice.seller.post_code == "10115"
    assert invoice.lines[1].vat_rate == 7
    assert invoice.totals.gross_amount == Decimal("183.20")


def test_iban_checksum() -> None:
    assert is_valid_iban(SAMPLE_IBAN)
    assert is_valid_iban("de02 1203 0000 0000 2020 51")
    assert not is_valid_iban("DE03120300000000202051")
    assert not is_valid_iban("DE02")


def test_postcode_rules() -> None:
    assert is_postcode_valid("10115", "DE")
    assert not is_postcode_valid("1011", "DE")
    assert is_postcode_valid("SW1A 1AA", "GB")


def test_invalid_vat_rate_rejected(review_data: dict) -> None:
    review_data["lines"][0]["vatRate"] = 16

    with pytest.raises(ValidationError, match="Steuersatz muss 0, 7 oder 19 sein."):
        ReviewedInvoice.model_validate(review_data)


def test_seller_requires_tax_identifier(review_data: dict) -> None:
    review_data["seller"].pop("vatId")

    with pytest.raises(ValidationError, match="USt-IdNr. oder Steuernummer ist erforderlich."):
        ReviewedInvoice.model_validate(review_data)


def test_tax_number_is_enough(review_data: dict) -> None:
    review_data["seller"].pop("vatId")
    review_data["seller"]["taxNumber"] = "12/345/67890"

    assert ReviewedInvoice.model_validate(review_data).seller.tax_number == "12/345/67890"


def test_bank_transfer_requires_iban(review_data: dict) -> None:
    review_data["payment"]["iban"] = None

    with pytest.raises(ValidationError, match="Für Überweisung ist eine IBAN erforderlich."):
        ReviewedInvoice.model_validate(review_data)


def test_due_date_before_issue_date(review_data: dict) -> None:
    review_data["header"]["dueDate"] = "2025-01-01"

    with pytest.raises(ValidationError, match="Fälligkeitsdatum darf nicht vor dem Rechnungsdatum liegen."):
        ReviewedInvoice.model_validate(review_data)


def test_b2g_requires_buyer_reference(review_data: dict) -> None:
    review_data["header"]["profile"] = "XRECHNUNG_B2G"

    with pytest.raises(ValidationError, match="Leitweg-ID"):
        ReviewedInvoice.model_validate(review_data)

    review_data["header"]["buyerReference"] = "04011000-12345-67"
    assert ReviewedInvoice.model_validate(review_data).header.buyer_reference == "04011000-12345-67"


def test_totals_must_add_up(review_data: dict) -> None:
    review_data["totals"]["grossAmount"] = "200.00"

    with pytest.raises(ValidationError, match="Nettobetrag \\+ Steuerbetrag muss dem Bruttobetrag entsprechen."):
        ReviewedInvoice.model_validate(review_data)


def test_amounts_within_tolerance_are_accepted(review_data: dict) -> None:
    review_data["totals"]["vatAmount"] = "23.21"
    review_data["totals"]["grossAmount"] = "183.21"

    assert ReviewedInvoice.model_validate(review_data).totals.vat_amount == Decimal("23.21")


def test_german_amount_notation(review_data: dict) -> None:
    review_data["lines"][0]["unitPrice"] = "100,00"

    assert ReviewedInvoice.model_validate(review_data).lines[0].unit_price == Decimal("100.00")
