"""XRechnung 3.0 Generator (UN/CEFACT CII, Profil XRECHNUNG-CII).

Der Builder ist rein und deterministisch: identische kanonische Eingaben
ergeben byte-identisches XML. Es fließen keine Zeitstempel ein.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Mapping, Optional, Union

from erechnung.core.config import settings
from erechnung.core.logging import get_logger
from erechnung.dto import (
    Address,
    CanonicalInvoice,
    GenerationResult,
    LineItem,
    Party,
    Payment,
    SchemaValidationResult,
    TaxSubtotal,
    format_money,
    format_quantity,
    format_rate,
)
from erechnung.errors import GenerationError
from erechnung.normalizer import StoredInvoice, normalize_invoice

from .nodes import MaybeNode, Node, group, leaf, required, serialize
from .validator import SchemaChecker, resolve_schema_path, validate_xrechnung_xml

logger = get_logger(__name__)

XRECHNUNG_GUIDELINE_ID = "urn:cen.eu:en16931:2017#compliant#urn:xeinkauf.de:kosit:xrechnung_3.0"
XRECHNUNG_BUSINESS_PROCESS_ID = "urn:fdc:peppol.eu:2017:poacc:billing:01:1.0"
XRECHNUNG_FORMAT = "XRECHNUNG-CII"
INVOICE_TYPE_CODE = "380"
DEFAULT_UNIT_CODE = "C62"
DEFAULT_LANG = "de"
GENERATOR_VERSION = "xrechnung-cii-3.0.0"

# UNTDID 4461
PAYMENT_MEANS_CODES = {
    "bankTransfer": "58",
    "directDebit": "59",
    "card": "48",
    "cash": "10",
    "other": "1",
}

PAYMENT_MEANS_TEXT = {
    "de": {
        "bankTransfer": "Überweisung",
        "directDebit": "Lastschrift",
        "card": "Kartenzahlung",
        "cash": "Barzahlung",
        "other": "Sonstige",
    },
    "en": {
        "bankTransfer": "Credit transfer",
        "directDebit": "Direct debit",
        "card": "Card payment",
        "cash": "Cash",
        "other": "Other",
    },
}


def version() -> str:
    return GENERATOR_VERSION


def _date_102(value: date) -> Node:
    return required("udt:DateTimeString", text=value.strftime("%Y%m%d"), format="102")


def _address(address: Address) -> Node:
    return required(
        "ram:PostalTradeAddress",
        leaf("ram:PostcodeCode", address.postcode),
        leaf("ram:LineOne", address.line1),
        leaf("ram:CityName", address.city),
        leaf("ram:CountryID", address.country_code),
    )


def _tax_registration(scheme: str, value: Optional[str]) -> MaybeNode:
    return group("ram:SpecifiedTaxRegistration", leaf("ram:ID", value, schemeID=scheme))


def _party(tag: str, party: Party) -> Node:
    return required(
        tag,
        leaf("ram:Name", party.name),
        _address(party.address),
        _tax_registration("VA", party.vat_id),
        _tax_registration("FC", party.tax_number),
    )


def _line_item(item: LineItem) -> Node:
    return required(
        "ram:IncludedSupplyChainTradeLineItem",
        required(
            "ram:AssociatedDocumentLineDocument",
            leaf("ram:LineID", item.position_index),
        ),
        required("ram:SpecifiedTradeProduct", leaf("ram:Name", item.description)),
        required(
            "ram:SpecifiedLineTradeAgreement",
            required(
                "ram:NetPriceProductTradePrice",
                leaf("ram:ChargeAmount", format_money(item.unit_price)),
            ),
        ),
        required(
            "ram:SpecifiedLineTradeDelivery",
            leaf("ram:BilledQuantity", format_quantity(item.quantity), unitCode=DEFAULT_UNIT_CODE),
        ),
        required(
            "ram:SpecifiedLineTradeSettlement",
            required(
                "ram:ApplicableTradeTax",
                leaf("ram:TypeCode", "VAT"),
                leaf("ram:CategoryCode", item.tax_category_code),
                leaf("ram:RateApplicablePercent", format_rate(item.tax_rate)),
            ),
            required(
                "ram:SpecifiedTradeSettlementLineMonetarySummation",
                leaf("ram:LineTotalAmount", format_money(item.net_amount)),
            ),
        ),
    )


def _header_tax(subtotal: TaxSubtotal) -> Node:
    return required(
        "ram:ApplicableTradeTax",
        leaf("ram:CalculatedAmount", format_money(subtotal.tax_amount)),
        leaf("ram:TypeCode", "VAT"),
        leaf("ram:BasisAmount", format_money(subtotal.taxable_amount)),
        leaf("ram:CategoryCode", subtotal.tax_category_code),
        leaf("ram:RateApplicablePercent", format_rate(subtotal.tax_rate)),
    )


def _payment_means(payment: Optional[Payment], lang: str) -> MaybeNode:
    if payment is None:
        return None
    means = payment.means if payment.means in PAYMENT_MEANS_CODES else "other"
    texts = PAYMENT_MEANS_TEXT.get(lang, PAYMENT_MEANS_TEXT[DEFAULT_LANG])
    account = leaf("ram:IBANID", payment.iban)
    return required(
        "ram:SpecifiedTradeSettlementPaymentMeans",
        leaf("ram:TypeCode", PAYMENT_MEANS_CODES[means]),
        leaf("ram:Information", texts[means]),
        group("ram:PayerPartyDebtorFinancialAccount", account) if means == "directDebit" else None,
        group("ram:PayeePartyCreditorFinancialAccount", account) if means != "directDebit" else None,
    )


def _payment_terms(invoice: CanonicalInvoice) -> MaybeNode:
    terms = invoice.payment.terms_text if invoice.payment else None
    due = invoice.header.due_date
    return group(
        "ram:SpecifiedTradePaymentTerms",
        leaf("ram:Description", terms),
        group("ram:DueDateDateTime", _date_102(due)) if due else None,
    )


def build_xrechnung_tree(invoice: CanonicalInvoice, *, lang: str = DEFAULT_LANG) -> Node:
    header = invoice.header
    currency = header.currency
    totals = invoice.totals

    return required(
        "rsm:CrossIndustryInvoice",
        required(
            "rsm:ExchangedDocumentContext",
            required(
                "ram:BusinessProcessSpecifiedDocumentContextParameter",
                leaf("ram:ID", XRECHNUNG_BUSINESS_PROCESS_ID),
            ),
            required(
                "ram:GuidelineSpecifiedDocumentContextParameter",
                leaf("ram:ID", XRECHNUNG_GUIDELINE_ID),
            ),
        ),
        required(
            "rsm:ExchangedDocument",
            leaf("ram:ID", header.invoice_number),
            leaf("ram:TypeCode", INVOICE_TYPE_CODE),
            required("ram:IssueDateTime", _date_102(header.issue_date)),
        ),
        required(
            "rsm:SupplyChainTradeTransaction",
            [_line_item(item) for item in invoice.lines],
            required(
                "ram:ApplicableHeaderTradeAgreement",
                leaf("ram:BuyerReference", header.buyer_reference),
                _party("ram:SellerTradeParty", invoice.seller),
                _party("ram:BuyerTradeParty", invoice.buyer),
            ),
            required(
                "ram:ApplicableHeaderTradeDelivery",
                required(
                    "ram:ActualDeliverySupplyChainEvent",
                    required("ram:OccurrenceDateTime", _date_102(header.delivery_date)),
                ),
            ),
            required(
                "ram:ApplicableHeaderTradeSettlement",
                leaf("ram:InvoiceCurrencyCode", currency),
                _payment_means(invoice.payment, lang),
                [_header_tax(subtotal) for subtotal in invoice.tax_breakdown],
                _payment_terms(invoice),
                required(
                    "ram:SpecifiedTradeSettlementHeaderMonetarySummation",
                    leaf("ram:LineTotalAmount", format_money(totals.net_amount)),
                    leaf("ram:TaxBasisTotalAmount", format_money(totals.net_amount)),
                    leaf("ram:TaxTotalAmount", format_money(totals.tax_amount), currencyID=currency),
                    leaf("ram:GrandTotalAmount", format_money(totals.gross_amount)),
                    leaf("ram:DuePayableAmount", format_money(totals.gross_amount)),
                ),
            ),
        ),
    )


def build_xrechnung_xml(invoice: CanonicalInvoice, *, lang: str = DEFAULT_LANG) -> str:
    """Serialisiert das kanonische Modell als UTF-8-XML (ohne BOM)."""

    return serialize(build_xrechnung_tree(invoice, lang=lang))


StoredInput = Union[StoredInvoice, Mapping[str, Any]]


def generate_xrechnung(
    invoice: StoredInput,
    *,
    lang: str = DEFAULT_LANG,
    validate_xsd: bool = True,
    xsd_path: Optional[str] = None,
    checker: Optional[SchemaChecker] = None,
) -> GenerationResult:
    stored = invoice if isinstance(invoice, StoredInvoice) else StoredInvoice.from_mapping(invoice)
    canonical = normalize_invoice(stored)
    xml = build_xrechnung_xml(canonical, lang=lang or DEFAULT_LANG)

    if validate_xsd:
        validation = validate_xrechnung_xml(xml, xsd_path=xsd_path, checker=checker)
    else:
        schema_path = resolve_schema_path(xsd_path or settings.XRECHNUNG_XSD_PATH)
        validation = SchemaValidationResult(valid=True, errors=(), schema_path=str(schema_path))

    if not validation.valid:
        raise GenerationError(
            "Generated XRechnung XML did not pass validation.", details=validation.errors
        )

    logger.info(
        "XRechnung %s generated (%d lines, %d bytes)",
        canonical.header.invoice_number,
        len(canonical.lines),
        len(xml.encode("utf-8")),
    )
    return GenerationResult(xml=xml, validation=validation)


def generate_xrechnung_xml(invoice: StoredInput, **options: Any) -> str:
    return generate_xrechnung(invoice, **options).xml
