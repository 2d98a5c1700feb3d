"""E-Rechnung Dokumenten-Engine: XRechnung (CII) und ZUGFeRD (PDF/A-3)."""

from .dto import (
    Address,
    CanonicalInvoice,
    GenerationResult,
    InvoiceHeader,
    LineItem,
    Party,
    Payment,
    SchemaValidationResult,
    TaxSubtotal,
    Totals,
)
from .errors import (
    ConfigurationError,
    EInvoiceError,
    ExternalToolFailure,
    GenerationError,
    InvoiceExportError,
    PdfInspectionError,
    ValidationFailure,
)
from .export import ExportResult, generate_invoice_export
from .facturx import ZugferdOptions, ZugferdResult, generate_zugferd_pdf, version as zugferd_version
from .normalizer import StoredInvoice, StoredLineItem, normalize_invoice
from .orchestrator import (
    EInvoiceValidationResult,
    OfficialValidators,
    ensure_valid,
    ValidationIssue,
    format_validation_error_message,
    validate_xrechnung_export,
    validate_zugferd_export,
)
from .review import ReviewedInvoice
from .tax import aggregate_tax_subtotals
from .xrechnung import (
    build_xrechnung_xml,
    generate_xrechnung,
    generate_xrechnung_xml,
    validate_xrechnung_xml,
    version as xrechnung_version,
)

version = xrechnung_version

__all__ = [
    "Address",
    "CanonicalInvoice",
    "GenerationResult",
    "InvoiceHeader",
    "LineItem",
    "Party",
    "Payment",
    "SchemaValidationResult",
    "TaxSubtotal",
    "Totals",
    "ConfigurationError",
    "EInvoiceError",
    "ExternalToolFailure",
    "GenerationError",
    "InvoiceExportError",
    "PdfInspectionError",
    "ValidationFailure",
    "ExportResult",
    "generate_invoice_export",
    "ZugferdOptions",
    "ZugferdResult",
    "generate_zugferd_pdf",
    "zugferd_version",
    "StoredInvoice",
    "StoredLineItem",
    "normalize_invoice",
    "EInvoiceValidationResult",
    "OfficialValidators",
    "ensure_valid",
    "ValidationIssue",
    "format_validation_error_message",
    "validate_xrechnung_export",
    "validate_zugferd_export",
    "ReviewedInvoice",
    "aggregate_tax_subtotals",
    "build_xrechnung_xml",
    "generate_xrechnung",
    "generate_xrechnung_xml",
    "validate_xrechnung_xml",
    "xrechnung_version",
    "version",
]
