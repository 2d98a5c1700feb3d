"""Auslesen eingebetteter Rechnungs-XML und XMP-Metadaten aus PDFs."""

from __future__ import annotations

import io
from typing import List, Optional

import pikepdf

from erechnung.errors import PdfInspectionError

KNOWN_ATTACHMENT_NAMES = ("zugferd-invoice.xml", "factur-x.xml", "xrechnung.xml", "order-x.xml")


def _open(pdf_bytes: bytes) -> pikepdf.Pdf:
    try:
        return pikepdf.Pdf.open(io.BytesIO(pdf_bytes))
    except pikepdf.PdfError as exc:
        raise PdfInspectionError(f"PDF could not be opened: {exc}") from exc


def _pick_attachment(names: List[str]) -> Optional[str]:
    for candidate in KNOWN_ATTACHMENT_NAMES:
        if candidate in names:
            return candidate
    return next((name for name in names if name.lower().endswith(".xml")), None)


def extract_xml_from_pdf(pdf_bytes: bytes) -> str:
    with _open(pdf_bytes) as pdf:
        names = list(pdf.attachments.keys())
        name = _pick_attachment(names)
        if name is None:
            raise PdfInspectionError("No embedded XML attachment found in PDF.")
        data = pdf.attachments[name].get_file().read_bytes()

    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise PdfInspectionError(f"Embedded XML {name} is not valid UTF-8.") from exc


def read_metadata_xml(pdf_bytes: bytes) -> str:
    with _open(pdf_bytes) as pdf:
        metadata = pdf.Root.get(pikepdf.Name("/Metadata"))
        if not isinstance(metadata, pikepdf.Stream):
            raise PdfInspectionError("Metadata stream not found.")
        data = metadata.read_bytes()
    return data.decode("utf-8", errors="replace")
