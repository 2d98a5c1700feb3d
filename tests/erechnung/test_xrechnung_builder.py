"""Tests for the XRechnung CII builder."""

from __future__ import annotations

from lxml import etree

import pytest

from erechnung.errors import GenerationError
from erechnung.normalizer import StoredInvoice, normalize_invoice
from erechnung.samples import SCENARIOS, build_stored_invoice, get_scenario
from erechnung.xrechnung import (
    XRECHNUNG_GUIDELINE_ID,
    build_xrechnung_xml,
    generate_xrechnung,
    generate_xrechnung_xml,
)

NS = {
    "rsm": "urn:un:unece:uncefact:data:standard:CrossIndustryInvoice:100",
    "ram": "urn:un:unece:uncefact:data:standard:ReusableAggregateBusinessInformationEntity:100",
    "udt": "urn:un:unece:uncefact:data:standard:UnqualifiedDataType:100",
}


def _tree(xml: str) -> etree._Element:
    return etree.fromstring(xml.encode("utf-8"))


def _canonical(name: str = "single_19"):
    return normalize_invoice(StoredInvoice.from_mapping(build_stored_invoice(get_scenario(name))))


def test_builder_is_idempotent() -> None:
    """Identische Eingaben ergeben byte-identisches XML."""
    canonical = _canonical("mixed_7_19")

    assert build_xrechnung_xml(canonical) == build_xrechnung_xml(canonical)


def test_document_header_and_guideline() -> None:
    xml = build_xrechnung_xml(_canonical())
    root = _tree(xml)

    assert xml.startswith("<?xml version='1.0' encoding='UTF-8'?>")
    assert not xml.encode("utf-8").startswith(b"\xef\xbb\xbf")
    assert root.findtext(
        "rsm:ExchangedDocumentContext/ram:GuidelineSpecifiedDocumentContextParameter/ram:ID", namespaces=NS
    ) == XRECHNUNG_GUIDELINE_ID
    assert root.findtext("rsm:ExchangedDocument/ram:ID", namespaces=NS) == "RE-2025-0001"
    assert root.findtext("rsm:ExchangedDocument/ram:TypeCode", namespaces=NS) == "380"

    issue = root.find("rsm:ExchangedDocument/ram:IssueDateTime/udt:DateTimeString", namespaces=NS)
    assert issue is not None
    assert issue.text == "20250115"
    assert issue.get("format") == "102"


def test_delivery_date_uses_due_date() -> None:
    root = _tree(build_xrechnung_xml(_canonical()))

    occurrence = root.findtext(
        "rsm:SupplyChainTradeTransaction/ram:ApplicableHeaderTradeDelivery/"
        "ram:ActualDeliverySupplyChainEvent/ram:OccurrenceDateTime/udt:DateTimeString",
        namespaces=NS,
    )
    assert occurrence == "20250214"


def test_mixed_rates_produce_two_tax_groups() -> None:
    root = _tree(build_xrechnung_xml(_canonical("mixed_0_19")))

    groups = root.findall(
        "rsm:SupplyChainTradeTransaction/ram:ApplicableHeaderTradeSettlement/ram:ApplicableTradeTax",
        namespaces=NS,
    )
    assert [
        (group.findtext("ram:CategoryCode", namespaces=NS), group.findtext("ram:RateApplicablePercent", namespaces=NS))
        for group in groups
    ] == [("Z", "0"), ("S", "19")]
    assert [group.findtext("ram:BasisAmount", namespaces=NS) for group in groups] == ["50.00", "100.00"]


def test_monetary_summation() -> None:
    root = _tree(build_xrechnung_xml(_canonical("mixed_7_19")))
    summation = root.find(
        "rsm:SupplyChainTradeTransaction/ram:ApplicableHeaderTradeSettlement/"
        "ram:SpecifiedTradeSettlementHeaderMonetarySummation",
        namespaces=NS,
    )

    assert summation is not None
    assert summation.findtext("ram:LineTotalAmount", namespaces=NS) == "160.00"
    assert summation.findtext("ram:TaxBasisTotalAmount", namespaces=NS) == "160.00"
    tax_total = summation.find("ram:TaxTotalAmount", namespaces=NS)
    assert tax_total is not None
    assert tax_total.text == "23.20"
    assert tax_total.get("currencyID") == "EUR"
    assert summation.findtext("ram:GrandTotalAmount", namespaces=NS) == "183.20"
    assert summation.findtext("ram:DuePayableAmount", namespaces=NS) == "183.20"


def test_line_items_are_rendered() -> None:
    root = _tree(build_xrechnung_xml(_canonical("raw_lines")))
    items = root.findall("rsm:SupplyChainTradeTransaction/ram:IncludedSupplyChainTradeLineItem", namespaces=NS)

    assert [item.findtext("ram:SpecifiedTradeProduct/ram:Name", namespaces=NS) for item in items] == [
        "Wartung",
        "Anfahrt",
    ]
    quantity = items[0].find("ram:SpecifiedLineTradeDelivery/ram:BilledQuantity", namespaces=NS)
    assert quantity is not None
    assert quantity.text == "2"
    assert quantity.get("unitCode") == "C62"


def test_seller_tax_registration_and_payment() -> None:
    root = _tree(build_xrechnung_xml(_canonical()))
    seller = root.find(
        "rsm:SupplyChainTradeTransaction/ram:ApplicableHeaderTradeAgreement/ram:SellerTradeParty",
        namespaces=NS,
    )
    assert seller is not None
    registration = seller.find("ram:SpecifiedTaxRegistration/ram:ID", namespaces=NS)
    assert registration is not None
    assert registration.get("schemeID") == "VA"
    assert registration.text == "DE123456789"

    means = root.find(
        "rsm:SupplyChainTradeTransaction/ram:ApplicableHeaderTradeSettlement/"
        "ram:SpecifiedTradeSettlementPaymentMeans",
        namespaces=NS,
    )
    assert means is not None
    assert means.findtext("ram:TypeCode", namespaces=NS) == "58"
    assert means.findtext("ram:Information", namespaces=NS) == "Überweisung"
    assert means.findtext("ram:PayeePartyCreditorFinancialAccount/ram:IBANID", namespaces=NS) == (
        "DE02120300000000202051"
    )


def test_lang_selects_payment_means_text() -> None:
    xml = build_xrechnung_xml(_canonical(), lang="en")

    assert "<ram:Information>Credit transfer</ram:Information>" in xml


def test_optional_fields_are_omitted() -> None:
    """Fehlende optionale Werte erzeugen keine leeren Elemente."""
    stored = StoredInvoice.from_mapping(
        {
            "id": "inv-bare",
            "number": "RE-BARE",
            "issueDate": "2025-03-01",
            "netAmount": "10.00",
            "taxAmount": "1.90",
            "grossAmount": "11.90",
        }
    )
    xml = build_xrechnung_xml(normalize_invoice(stored))

    assert "SpecifiedTradeSettlementPaymentMeans" not in xml
    assert "SpecifiedTradePaymentTerms" not in xml
    assert "BuyerReference" not in xml
    assert "PostcodeCode" not in xml
    assert "<ram:CountryID>DE</ram:CountryID>" in xml


@pytest.mark.parametrize("scenario", SCENARIOS, ids=lambda scenario: scenario.description)
def test_generate_for_all_samples(scenario, lxml_checker) -> None:
    result = generate_xrechnung(build_stored_invoice(scenario), checker=lxml_checker)

    assert result.validation.valid, result.errors
    assert "IssueDateTime" in result.xml


def test_generate_without_issue_date_raises(lxml_checker) -> None:
    stored = build_stored_invoice(get_scenario("single_19"))
    stored["issueDate"] = None

    with pytest.raises(GenerationError):
        generate_xrechnung_xml(stored, checker=lxml_checker)


def test_generate_skips_schema_when_disabled() -> None:
    result = generate_xrechnung(build_stored_invoice(get_scenario("single_19")), validate_xsd=False)

    assert result.validation.valid
    assert result.validation.errors == ()
