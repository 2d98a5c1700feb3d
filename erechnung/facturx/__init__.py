"""ZUGFeRD / Factur-X: PDF/A-3 mit eingebetteter XRechnung."""

from .generator import (
    ALLOWED_ATTACHMENT_NAMES,
    ZugferdMetadata,
    ZugferdOptions,
    ZugferdResult,
    build_xmp_metadata,
    generate_zugferd_pdf,
    slugify_filename_segment,
    version,
)
from .pdfa import PdfA3Document
from .reader import extract_xml_from_pdf, read_metadata_xml
from .render import render_invoice_pdf

__all__ = [
    "ALLOWED_ATTACHMENT_NAMES",
    "ZugferdMetadata",
    "ZugferdOptions",
    "ZugferdResult",
    "build_xmp_metadata",
    "generate_zugferd_pdf",
    "slugify_filename_segment",
    "version",
    "PdfA3Document",
    "extract_xml_from_pdf",
    "read_metadata_xml",
    "render_invoice_pdf",
]
