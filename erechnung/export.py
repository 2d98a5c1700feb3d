"""Export-Service: gespeicherte Rechnung -> XRechnung-XML oder ZUGFeRD-PDF.

Ein Artefakt wird nur zurückgegeben, wenn die blockierende Validierung
bestanden ist. Warnungen (z. B. fehlender offizieller Validator) werden
protokolliert, aber nicht ausgelöst.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, Mapping, Optional, Union

from pydantic import ValidationError

from .core.logging import get_logger
from .errors import EInvoiceError, InvoiceExportError, ValidationFailure
from .facturx.generator import ZugferdOptions, generate_zugferd_pdf, slugify_filename_segment
from .normalizer import StoredInvoice, normalize_string
from .orchestrator import (
    EInvoiceValidationResult,
    OfficialValidators,
    ensure_valid,
    validate_xrechnung_export,
    validate_zugferd_export,
)
from .review import ReviewedInvoice
from .xrechnung.generator import DEFAULT_LANG, generate_xrechnung
from .xrechnung.validator import SchemaChecker

logger = get_logger(__name__)

MISSING_REVIEW_DATA = "MISSING_REVIEW_DATA"
VALIDATION_FAILED = "VALIDATION_FAILED"
GENERATION_FAILED = "GENERATION_FAILED"

XML_CONTENT_TYPE = "application/xml; charset=utf-8"
PDF_CONTENT_TYPE = "application/pdf"

ExportKind = Literal["xrechnung", "zugferd"]
EXPORT_FORMATS = ("xrechnung", "zugferd")


@dataclass(frozen=True)
class ExportResult:
    filename: str
    content_type: str
    content: bytes
    validation: EInvoiceValidationResult


def load_review_data(invoice: StoredInvoice) -> ReviewedInvoice:
    review = invoice.raw_json.get("reviewData")
    if not isinstance(review, Mapping) or not review:
        raise InvoiceExportError(
            MISSING_REVIEW_DATA,
            "ZUGFeRD export requires review data. Please validate the invoice first.",
        )
    try:
        return ReviewedInvoice.model_validate(review)
    except ValidationError as exc:
        logger.info("Invoice %s: review data incomplete (%d errors)", invoice.id, exc.error_count())
        raise InvoiceExportError(
            MISSING_REVIEW_DATA, "ZUGFeRD export requires complete review data."
        ) from exc


def _log_warnings(fmt: str, invoice: StoredInvoice, result: EInvoiceValidationResult) -> None:
    for issue in result.warnings:
        logger.warning("%s export %s: [%s] %s", fmt, invoice.id, issue.source, issue.message)


def _export_xrechnung(
    invoice: StoredInvoice,
    slug: str,
    *,
    lang: str,
    validate_xsd: bool,
    xsd_path: Optional[str],
    checker: Optional[SchemaChecker],
    officials: Optional[OfficialValidators],
) -> ExportResult:
    generated = generate_xrechnung(
        invoice, lang=lang, validate_xsd=validate_xsd, xsd_path=xsd_path, checker=checker
    )
    validation = validate_xrechnung_export(
        generated.xml, builtin=generated.validation, officials=officials
    )
    ensure_valid("XRECHNUNG", validation)
    _log_warnings("XRECHNUNG", invoice, validation)
    return ExportResult(
        filename=f"{slug}-xrechnung.xml",
        content_type=XML_CONTENT_TYPE,
        content=generated.xml.encode("utf-8"),
        validation=validation,
    )


def _export_zugferd(
    invoice: StoredInvoice,
    slug: str,
    *,
    lang: str,
    validate_xsd: bool,
    xsd_path: Optional[str],
    checker: Optional[SchemaChecker],
    officials: Optional[OfficialValidators],
    options: Optional[ZugferdOptions],
    now: Optional[datetime],
) -> ExportResult:
    reviewed = load_review_data(invoice)

    generated = generate_xrechnung(
        invoice, lang=lang, validate_xsd=validate_xsd, xsd_path=xsd_path, checker=checker
    )
    xml_validation = validate_xrechnung_export(
        generated.xml, builtin=generated.validation, officials=officials
    )
    ensure_valid("XRECHNUNG", xml_validation)

    packaged = generate_zugferd_pdf(
        reviewed, generated.xml, options=options, output_base_filename=slug, now=now
    )
    validation = validate_zugferd_export(
        packaged.pdf, generated.xml, officials=officials, checker=checker, xsd_path=xsd_path
    )
    ensure_valid("ZUGFERD", validation)
    _log_warnings("XRECHNUNG", invoice, xml_validation)
    _log_warnings("ZUGFERD", invoice, validation)
    return ExportResult(
        filename=packaged.filename,
        content_type=PDF_CONTENT_TYPE,
        content=packaged.pdf,
        validation=validation,
    )


def generate_invoice_export(
    invoice: Union[StoredInvoice, Mapping[str, Any]],
    fmt: ExportKind,
    *,
    lang: str = DEFAULT_LANG,
    validate_xsd: bool = True,
    xsd_path: Optional[str] = None,
    checker: Optional[SchemaChecker] = None,
    officials: Optional[OfficialValidators] = None,
    options: Optional[ZugferdOptions] = None,
    now: Optional[datetime] = None,
) -> ExportResult:
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {fmt}")

    common = dict(
        lang=lang, validate_xsd=validate_xsd, xsd_path=xsd_path, checker=checker, officials=officials
    )
    invoice_id = invoice.id if isinstance(invoice, StoredInvoice) else invoice.get("id")

    try:
        stored = invoice if isinstance(invoice, StoredInvoice) else StoredInvoice.from_mapping(invoice)
        slug = slugify_filename_segment(normalize_string(stored.number) or stored.id)
        if fmt == "xrechnung":
            result = _export_xrechnung(stored, slug, **common)
        else:
            result = _export_zugferd(stored, slug, options=options, now=now, **common)
    except InvoiceExportError:
        raise
    except ValidationFailure as exc:
        logger.error("Invoice %s: %s export rejected: %s", invoice_id, fmt, exc)
        raise InvoiceExportError(VALIDATION_FAILED, str(exc)) from exc
    except (EInvoiceError, ValueError) as exc:
        logger.error("Invoice %s: %s export failed: %s", invoice_id, fmt, exc)
        raise InvoiceExportError(GENERATION_FAILED, str(exc) or "Export failed.") from exc

    logger.info("Invoice %s exported as %s (%d bytes)", stored.id, result.filename, len(result.content))
    return result
