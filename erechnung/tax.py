"""Aggregation der Positionen zu Steuer-Zwischensummen (EN16931 BG-23)."""

from __future__ import annotations

from typing import Dict, Iterable, Tuple

from .dto import LineItem, TaxSubtotal, format_rate, quantize_money


def aggregate_tax_subtotals(lines: Iterable[LineItem]) -> Tuple[TaxSubtotal, ...]:
    """Gruppiert nach ``(Kategorie, formatierter Satz)``, aufsteigend nach Satz.

    Nach jedem Akkumulationsschritt wird gerundet, nicht erst am Ende.
    """

    grouped: Dict[Tuple[str, str], TaxSubtotal] = {}

    for item in lines:
        key = (item.tax_category_code, format_rate(item.tax_rate))
        existing = grouped.get(key)
        if existing is None:
            grouped[key] = TaxSubtotal(
                tax_rate=item.tax_rate,
                tax_category_code=item.tax_category_code,
                taxable_amount=quantize_money(item.net_amount),
                tax_amount=quantize_money(item.tax_amount),
            )
            continue

        grouped[key] = TaxSubtotal(
            tax_rate=existing.tax_rate,
            tax_category_code=existing.tax_category_code,
            taxable_amount=quantize_money(existing.taxable_amount + item.net_amount),
            tax_amount=quantize_money(existing.tax_amount + item.tax_amount),
        )

    return tuple(sorted(grouped.values(), key=lambda subtotal: subtotal.tax_rate))

