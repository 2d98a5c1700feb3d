"""Deterministische Beispielrechnungen für Tests & CLI."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Tuple

from .dto import quantize_money

ISSUE_DATE = "2025-01-15"
DUE_DATE = "2025-02-14"
SAMPLE_IBAN = "DE02120300000000202051"
PAYMENT_TERMS = "Zahlbar innerhalb von 30 Tagen ohne Abzug."

SELLER_DETAILS = {
    "name": "Muster Handwerk GmbH",
    "street": "Musterstraße 1",
    "postCode": "10115",
    "city": "Berlin",
    "countryCode": "DE",
    "vatId": "DE123456789",
}

BUYER_DETAILS = {
    "name": "Kunde AG",
    "street": "Kundenweg 5",
    "postCode": "20095",
    "city": "Hamburg",
    "countryCode": "DE",
}


@dataclass(frozen=True)
class SampleScenario:
    code: str
    description: str
    # (Beschreibung, Menge, Einzelpreis, Steuersatz)
    line_specs: Tuple[Tuple[str, str, str, str], ...]
    source: str = "db"


SCENARIOS: List[SampleScenario] = [
    SampleScenario("01", "single_19", (("Beratung", "1", "100.00", "19"),)),
    SampleScenario(
        "02",
        "mixed_0_19",
        (
            ("Beratung", "1", "100.00", "19"),
            ("Export-Lieferung", "5", "10.00", "0"),
        ),
    ),
    SampleScenario(
        "03",
        "mixed_7_19",
        (
            ("Beratung", "1", "100.00", "19"),
            ("Fachbuch", "2", "30.00", "7"),
        ),
    ),
    SampleScenario("04", "header_only", (("Pauschale", "1", "200.00", "19"),), source="header"),
    SampleScenario(
        "05",
        "raw_lines",
        (
            ("Wartung", "2", "50.00", "19"),
            ("Anfahrt", "1", "25.00", "19"),
        ),
        source="raw",
    ),
]


def get_scenario(code_or_name: str) -> SampleScenario:
    for scenario in SCENARIOS:
        if code_or_name in (scenario.code, scenario.description):
            return scenario
    raise KeyError(f"Unknown sample scenario: {code_or_name}")


def invoice_number(scenario: SampleScenario) -> str:
    return f"RE-2025-{scenario.code.zfill(4)}"


def _german(value: Decimal) -> str:
    return f"{value:.2f}".replace(".", ",")


def _computed_lines(scenario: SampleScenario) -> List[Dict[str, Decimal]]:
    lines = []
    for description, quantity, unit_price, rate in scenario.line_specs:
        qty = Decimal(quantity)
        net = quantize_money(qty * Decimal(unit_price))
        tax = quantize_money(net * Decimal(rate) / Decimal("100"))
        lines.append(
            {
                "description": description,
                "quantity": qty,
                "unit_price": Decimal(unit_price),
                "net": net,
                "rate": Decimal(rate),
                "tax": tax,
            }
        )
    return lines


def _totals(lines: List[Dict[str, Any]]) -> Tuple[Decimal, Decimal, Decimal]:
    net = sum((line["net"] for line in lines), Decimal("0.00"))
    tax = sum((line["tax"] for line in lines), Decimal("0.00"))
    return net, tax, net + tax


def build_review_data(scenario: SampleScenario) -> Dict[str, Any]:
    lines = _computed_lines(scenario)
    net, tax, gross = _totals(lines)

    breakdown: Dict[Decimal, Dict[str, Decimal]] = {}
    for line in lines:
        entry = breakdown.setdefault(line["rate"], {"taxable": Decimal("0.00"), "tax": Decimal("0.00")})
        entry["taxable"] += line["net"]
        entry["tax"] += line["tax"]

    return {
        "header": {
            "profile": "EN16931",
            "invoiceNumber": invoice_number(scenario),
            "issueDate": ISSUE_DATE,
            "dueDate": DUE_DATE,
            "currency": "EUR",
        },
        "seller": dict(SELLER_DETAILS),
        "buyer": dict(BUYER_DETAILS),
        "payment": {"means": "bankTransfer", "iban": SAMPLE_IBAN, "termsText": PAYMENT_TERMS},
        "lines": [
            {
                "description": line["description"],
                "quantity": str(line["quantity"]),
                "unit": "Stk",
                "unitPrice": f"{line['unit_price']:.2f}",
                "netAmount": f"{line['net']:.2f}",
                "vatRate": int(line["rate"]),
                "vatCategory": "S" if line["rate"] > 0 else "Z",
            }
            for line in lines
        ],
        "totals": {
            "netAmount": f"{net:.2f}",
            "vatAmount": f"{tax:.2f}",
            "grossAmount": f"{gross:.2f}",
        },
        "taxBreakdown": [
            {
                "rate": int(rate),
                "taxableAmount": f"{entry['taxable']:.2f}",
                "taxAmount": f"{entry['tax']:.2f}",
            }
            for rate, entry in sorted(breakdown.items())
        ],
    }


def _party_details(details: Dict[str, str]) -> Dict[str, Any]:
    return {
        "address": {
            "line1": details["street"],
            "postcode": details["postCode"],
            "city": details["city"],
            "countryCode": details["countryCode"],
        }
    }


def build_stored_invoice(scenario: SampleScenario, *, with_review: bool = True) -> Dict[str, Any]:
    """Gespeicherter Datensatz in der Form, die ``StoredInvoice.from_mapping`` erwartet."""

    lines = _computed_lines(scenario)
    net, tax, gross = _totals(lines)

    extended: Dict[str, Any] = {
        "supplierDetails": _party_details(SELLER_DETAILS),
        "customerDetails": _party_details(BUYER_DETAILS),
    }
    line_items: List[Dict[str, Any]] = []

    if scenario.source == "db":
        line_items = [
            {
                "positionIndex": index,
                "description": line["description"],
                "quantity": str(line["quantity"]),
                "unitPrice": f"{line['unit_price']:.2f}",
                "netAmount": f"{line['net']:.2f}",
                "taxRate": str(line["rate"]),
                "taxAmount": f"{line['tax']:.2f}",
                "grossAmount": f"{line['net'] + line['tax']:.2f}",
            }
            for index, line in enumerate(lines, start=1)
        ]
    elif scenario.source == "raw":
        extended["lineItems"] = [
            {
                "description": line["description"],
                "quantity": str(line["quantity"]),
                "unitPrice": _german(line["unit_price"]),
                "totalAmount": _german(line["net"]),
            }
            for line in lines
        ]

    raw_json: Dict[str, Any] = {"extendedData": extended}
    if with_review:
        raw_json["reviewData"] = build_review_data(scenario)

    return {
        "id": f"inv-{scenario.code}",
        "number": invoice_number(scenario),
        "issueDate": ISSUE_DATE,
        "dueDate": DUE_DATE,
        "currency": "EUR",
        "supplierName": SELLER_DETAILS["name"],
        "customerName": BUYER_DETAILS["name"],
        "taxId": SELLER_DETAILS["vatId"],
        "netAmount": f"{net:.2f}",
        "taxAmount": f"{tax:.2f}",
        "grossAmount": f"{gross:.2f}",
        "lineItems": line_items,
        "rawJson": raw_json,
    }
