"""Tests for Decimal helpers, line items and tax aggregation."""

from __future__ import annotations

from decimal import Decimal

import pytest

from erechnung.dto import (
    LineItem,
    format_money,
    format_quantity,
    format_rate,
    parse_decimal,
    quantize_money,
    to_decimal,
)
from erechnung.tax import aggregate_tax_subtotals


def _line(index: int, net: str, rate: str, tax: str) -> LineItem:
    return LineItem(
        position_index=index,
        description=f"Position {index}",
        quantity=Decimal("1"),
        unit_price=Decimal(net),
        net_amount=Decimal(net),
        tax_rate=Decimal(rate),
        tax_amount=Decimal(tax),
        gross_amount=Decimal(net) + Decimal(tax),
    )


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1.234,56", Decimal("1234.56")),
        ("12,5", Decimal("12.5")),
        ("100.00", Decimal("100.00")),
        (19, Decimal("19")),
        (0.1, Decimal("0.1")),
        ("", None),
        ("abc", None),
        (None, None),
        (True, None),
        ("NaN", None),
    ],
)
def test_to_decimal_tolerant(raw: object, expected: Decimal | None) -> None:
    """Deutsche Schreibweisen werden erkannt, Unlesbares ergibt None."""
    assert to_decimal(raw) == expected


def test_quantize_money_rounds_half_up() -> None:
    """Kaufmännische Rundung, nicht Banker's Rounding."""
    assert quantize_money("2.675") == Decimal("2.68")
    assert quantize_money("0.125") == Decimal("0.13")
    assert quantize_money("-0.125") == Decimal("-0.13")
    assert format_money(Decimal("5")) == "5.00"


def test_three_decimal_strings_are_not_thousands() -> None:
    assert parse_decimal("1.500") == Decimal("1.5")
    assert parse_decimal("1,5") is None
    assert parse_decimal(" ") is None
    assert format_quantity("1.500") == "1.5"
    assert format_money("2.675") == "2.68"
    assert to_decimal("1.500") == Decimal("1500")


def test_rate_and_quantity_formatting() -> None:
    assert format_rate(Decimal("19.00")) == "19"
    assert format_rate(Decimal("7.5")) == "7.5"
    assert format_rate(Decimal("0")) == "0"
    assert format_quantity(Decimal("2.5000")) == "2.5"
    assert format_quantity(Decimal("3")) == "3"


def test_line_item_derives_category_from_rate() -> None:
    assert _line(1, "100.00", "19", "19.00").tax_category_code == "S"
    assert _line(2, "50.00", "0", "0.00").tax_category_code == "Z"


def test_line_item_rejects_mismatched_category() -> None:
    with pytest.raises(ValueError, match="does not match rate"):
        LineItem(
            position_index=1,
            description="Export",
            quantity=Decimal("1"),
            unit_price=Decimal("10"),
            net_amount=Decimal("10"),
            tax_rate=Decimal("0"),
            tax_amount=Decimal("0"),
            gross_amount=Decimal("10"),
            tax_category_code="S",
        )


def test_line_item_rejects_non_positive_quantity() -> None:
    with pytest.raises(ValueError, match="quantity must be positive"):
        LineItem(
            position_index=1,
            description="Null",
            quantity=Decimal("0"),
            unit_price=Decimal("10"),
            net_amount=Decimal("0"),
            tax_rate=Decimal("19"),
            tax_amount=Decimal("0"),
            gross_amount=Decimal("0"),
        )


def test_aggregate_groups_by_rate_ascending() -> None:
    """Sätze [19, 19, 7] ergeben genau zwei Gruppen, sortiert nach Satz."""
    lines = [
        _line(1, "100.00", "19", "19.00"),
        _line(2, "10.00", "19", "1.90"),
        _line(3, "60.00", "7", "4.20"),
    ]

    subtotals = aggregate_tax_subtotals(lines)

    assert [format_rate(item.tax_rate) for item in subtotals] == ["7", "19"]
    assert subtotals[0].taxable_amount == Decimal("60.00")
    assert subtotals[0].tax_amount == Decimal("4.20")
    assert subtotals[1].taxable_amount == Decimal("110.00")
    assert subtotals[1].tax_amount == Decimal("20.90")
    assert subtotals[1].tax_category_code == "S"


def test_aggregate_separates_zero_rate() -> None:
    subtotals = aggregate_tax_subtotals(
        [_line(1, "50.00", "0", "0.00"), _line(2, "100.00", "19", "19.00")]
    )

    assert [(item.tax_category_code, item.taxable_amount) for item in subtotals] == [
        ("Z", Decimal("50.00")),
        ("S", Decimal("100.00")),
    ]


def test_aggregate_sums_match_lines() -> None:
    lines = [
        _line(1, "33.33", "19", "6.33"),
        _line(2, "33.33", "19", "6.33"),
        _line(3, "33.34", "7", "2.33"),
    ]

    subtotals = aggregate_tax_subtotals(lines)

    assert sum(item.taxable_amount for item in subtotals) == sum(line.net_amount for line in lines)
    assert sum(item.tax_amount for item in subtotals) == sum(line.tax_amount for line in lines)
