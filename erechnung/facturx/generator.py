"""ZUGFeRD-Generator – PDF/A-3 mit eingebetteter XRechnung (ReportLab+pikepdf).

ReportLab zeichnet die Rechnung aus den geprüften Review-Daten, pikepdf ergänzt
die PDF/A-3-Bausteine (Anhang mit AFRelationship, OutputIntent, XMP mit
Factur-X-Extension-Schema, Tagging-Marker, deterministische Trailer-ID).

Hinweis: PDF/A ist "Best-Effort" – formale Konformität belegt erst der
offizielle Validator.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from html import escape
from pathlib import Path
from typing import Optional

import pikepdf

from erechnung.core.config import Settings
from erechnung.core.logging import get_logger
from erechnung.errors import GenerationError
from erechnung.review import ReviewedInvoice

from .pdfa import PdfA3Document
from .render import render_invoice_pdf

logger = get_logger(__name__)

GENERATOR_VERSION = "zugferd-pdfa3-1.0.0"
ALLOWED_ATTACHMENT_NAMES = ("factur-x.xml", "zugferd-invoice.xml")
DEFAULT_ATTACHMENT_NAME = "factur-x.xml"
DEFAULT_ZUGFERD_VERSION = "2.4"
DEFAULT_CONFORMANCE_LEVEL = "XRECHNUNG"
DEFAULT_LANGUAGE = "de-DE"
DEFAULT_PRODUCER = "e-rechnung ZUGFeRD generator"
DEFAULT_CREATOR = "E-Rechnung"
ATTACHMENT_DESCRIPTION = "XRechnung XML"
KEYWORDS = ("Invoice", "Factur-X", "ZUGFeRD", "XRechnung")
FACTURX_NAMESPACE = "urn:factur-x:pdfa:CrossIndustryDocument:invoice:1p0#"


def version() -> str:
    """Gibt die Generator-Version zurück."""

    return GENERATOR_VERSION


@dataclass(frozen=True)
class ZugferdOptions:
    attachment_name: str = DEFAULT_ATTACHMENT_NAME
    zugferd_version: str = DEFAULT_ZUGFERD_VERSION
    conformance_level: str = DEFAULT_CONFORMANCE_LEVEL
    creator: Optional[str] = None
    producer: Optional[str] = None
    language: str = DEFAULT_LANGUAGE

    @classmethod
    def from_settings(cls, config: Settings) -> "ZugferdOptions":
        return cls(
            attachment_name=config.ZUGFERD_ATTACHMENT_NAME,
            zugferd_version=config.ZUGFERD_VERSION,
            conformance_level=config.ZUGFERD_CONFORMANCE_LEVEL,
            producer=config.ZUGFERD_PRODUCER,
        )


@dataclass(frozen=True)
class ZugferdMetadata:
    attachment_name: str
    zugferd_version: str
    conformance_level: str
    invoice_number: str


@dataclass(frozen=True)
class ZugferdResult:
    filename: str
    pdf: bytes
    metadata: ZugferdMetadata


def _option(value: Optional[str], fallback: str) -> str:
    stripped = (value or "").strip()
    return stripped or fallback


def slugify_filename_segment(value: str) -> str:
    cleaned = re.sub(r"[^\w.-]+", "-", value.strip(), flags=re.ASCII)
    cleaned = re.sub(r"-{2,}", "-", cleaned.strip("-"))
    return cleaned or "invoice"


def build_output_filename(invoice_number: str, output_base_filename: Optional[str] = None) -> str:
    if output_base_filename and output_base_filename.strip():
        base = Path(output_base_filename.strip()).stem or "invoice"
        return f"{base}-zugferd.pdf"
    return f"{slugify_filename_segment(invoice_number)}-zugferd.pdf"


def resolve_attachment_name(value: Optional[str]) -> str:
    name = _option(value, DEFAULT_ATTACHMENT_NAME)
    if name not in ALLOWED_ATTACHMENT_NAMES:
        raise GenerationError(
            f'Invalid attachment name "{name}". Expected "factur-x.xml" or "zugferd-invoice.xml".'
        )
    return name


def _ensure_reviewed_invoice(invoice: Optional[ReviewedInvoice]) -> ReviewedInvoice:
    if invoice is None:
        raise GenerationError("validatedInvoice is required.")
    header = getattr(invoice, "header", None)
    if not (getattr(header, "invoice_number", None) or "").strip():
        raise GenerationError("validatedInvoice.header.invoiceNumber is required.")
    if not (getattr(getattr(invoice, "seller", None), "name", None) or "").strip():
        raise GenerationError("validatedInvoice.seller.name is required.")
    if not (getattr(getattr(invoice, "buyer", None), "name", None) or "").strip():
        raise GenerationError("validatedInvoice.buyer.name is required.")
    if not getattr(invoice, "lines", None):
        raise GenerationError("validatedInvoice.lines must contain at least one line item.")
    return invoice


def _normalize_xml(xml: Optional[str]) -> str:
    normalized = (xml or "").strip()
    if not normalized:
        raise GenerationError("XRechnung XML is required.")
    if not normalized.startswith("<"):
        raise GenerationError("Invalid XRechnung XML input. Expected XML content as text.")
    return normalized


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.replace(microsecond=0).isoformat()


def trailer_id(subject: str, xml: str) -> bytes:
    return hashlib.sha512(f"{subject}|{xml}".encode("utf-8")).digest()


def build_xmp_metadata(
    *,
    subject: str,
    creator: str,
    producer: str,
    attachment_name: str,
    zugferd_version: str,
    conformance_level: str,
    produced_at: str,
) -> str:
    """XMP-Paket: PDF/A-Kennung, Dublin Core, PDF/XMP-Basis und Factur-X-Extension."""

    subject = escape(subject)
    creator = escape(creator)
    producer = escape(producer)
    produced_at = escape(produced_at)

    return f"""<?xpacket begin="\ufeff" id="W5M0MpCehiHzreSzNTczkc9d"?>
<x:xmpmeta xmlns:x="adobe:ns:meta/">
  <rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#">
    <rdf:Description xmlns:pdfaid="http://www.aiim.org/pdfa/ns/id/" rdf:about="">
      <pdfaid:part>3</pdfaid:part>
      <pdfaid:conformance>B</pdfaid:conformance>
    </rdf:Description>
    <rdf:Description xmlns:dc="http://purl.org/dc/elements/1.1/" rdf:about="">
      <dc:format>application/pdf</dc:format>
      <dc:title>
        <rdf:Alt>
          <rdf:li xml:lang="x-default">{subject}</rdf:li>
        </rdf:Alt>
      </dc:title>
      <dc:date>
        <rdf:Seq>
          <rdf:li>{produced_at}</rdf:li>
        </rdf:Seq>
      </dc:date>
      <dc:creator>
        <rdf:Seq>
          <rdf:li>{creator}</rdf:li>
        </rdf:Seq>
      </dc:creator>
      <dc:description>
        <rdf:Alt>
          <rdf:li xml:lang="x-default">{subject}</rdf:li>
        </rdf:Alt>
      </dc:description>
    </rdf:Description>
    <rdf:Description xmlns:pdf="http://ns.adobe.com/pdf/1.3/" rdf:about="">
      <pdf:Producer>{producer}</pdf:Producer>
      <pdf:PDFVersion>1.7</pdf:PDFVersion>
    </rdf:Description>
    <rdf:Description xmlns:xmp="http://ns.adobe.com/xap/1.0/" rdf:about="">
      <xmp:CreatorTool>{producer}</xmp:CreatorTool>
      <xmp:CreateDate>{produced_at}</xmp:CreateDate>
      <xmp:ModifyDate>{produced_at}</xmp:ModifyDate>
      <xmp:MetadataDate>{produced_at}</xmp:MetadataDate>
    </rdf:Description>
    <rdf:Description
      xmlns:pdfaExtension="http://www.aiim.org/pdfa/ns/extension/"
      xmlns:pdfaSchema="http://www.aiim.org/pdfa/ns/schema#"
      xmlns:pdfaProperty="http://www.aiim.org/pdfa/ns/property#"
      rdf:about=""
    >
      <pdfaExtension:schemas>
        <rdf:Bag>
          <rdf:li rdf:parseType="Resource">
            <pdfaSchema:schema>Factur-X PDFA Extension Schema</pdfaSchema:schema>
            <pdfaSchema:namespaceURI>{FACTURX_NAMESPACE}</pdfaSchema:namespaceURI>
            <pdfaSchema:prefix>fx</pdfaSchema:prefix>
            <pdfaSchema:property>
              <rdf:Seq>
                <rdf:li rdf:parseType="Resource">
                  <pdfaProperty:name>DocumentFileName</pdfaProperty:name>
                  <pdfaProperty:valueType>Text</pdfaProperty:valueType>
                  <pdfaProperty:category>external</pdfaProperty:category>
                  <pdfaProperty:description>The name of the embedded XML document</pdfaProperty:description>
                </rdf:li>
                <rdf:li rdf:parseType="Resource">
                  <pdfaProperty:name>DocumentType</pdfaProperty:name>
                  <pdfaProperty:valueType>Text</pdfaProperty:valueType>
                  <pdfaProperty:category>external</pdfaProperty:category>
                  <pdfaProperty:description>The type of the hybrid document in capital letters, e.g. INVOICE or ORDER</pdfaProperty:description>
                </rdf:li>
                <rdf:li rdf:parseType="Resource">
                  <pdfaProperty:name>Version</pdfaProperty:name>
                  <pdfaProperty:valueType>Text</pdfaProperty:valueType>
                  <pdfaProperty:category>external</pdfaProperty:category>
                  <pdfaProperty:description>The version of the ZUGFeRD document profile</pdfaProperty:description>
                </rdf:li>
                <rdf:li rdf:parseType="Resource">
                  <pdfaProperty:name>ConformanceLevel</pdfaProperty:name>
                  <pdfaProperty:valueType>Text</pdfaProperty:valueType>
                  <pdfaProperty:category>external</pdfaProperty:category>
                  <pdfaProperty:description>The conformance level of the embedded XML document</pdfaProperty:description>
                </rdf:li>
              </rdf:Seq>
            </pdfaSchema:property>
          </rdf:li>
        </rdf:Bag>
      </pdfaExtension:schemas>
    </rdf:Description>
    <rdf:Description xmlns:fx="{FACTURX_NAMESPACE}" rdf:about="">
      <fx:DocumentType>INVOICE</fx:DocumentType>
      <fx:DocumentFileName>{escape(attachment_name)}</fx:DocumentFileName>
      <fx:Version>{escape(zugferd_version)}</fx:Version>
      <fx:ConformanceLevel>{escape(conformance_level)}</fx:ConformanceLevel>
    </rdf:Description>
  </rdf:RDF>
</x:xmpmeta>
<?xpacket end="w"?>"""


def generate_zugferd_pdf(
    invoice: ReviewedInvoice,
    xml: str,
    *,
    options: Optional[ZugferdOptions] = None,
    output_base_filename: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ZugferdResult:
    """Erzeugt das ZUGFeRD-PDF aus geprüften Review-Daten und fertiger XRechnung.

    Das XML wird unverändert (nur getrimmt) eingebettet; es wird nicht erneut
    erzeugt. Fehler beim Zusammenbau werden als ``GenerationError`` gemeldet.
    """

    reviewed = _ensure_reviewed_invoice(invoice)
    normalized_xml = _normalize_xml(xml)
    opts = options or ZugferdOptions()

    attachment_name = resolve_attachment_name(opts.attachment_name)
    zugferd_version = _option(opts.zugferd_version, DEFAULT_ZUGFERD_VERSION)
    conformance_level = _option(opts.conformance_level, DEFAULT_CONFORMANCE_LEVEL)
    language = _option(opts.language, DEFAULT_LANGUAGE)
    producer = _option(opts.producer, DEFAULT_PRODUCER)
    invoice_number = reviewed.header.invoice_number.strip()
    creator = _option(opts.creator, reviewed.seller.name.strip() or DEFAULT_CREATOR)

    timestamp = now or datetime.now(timezone.utc)
    subject = f"Invoice {invoice_number}"
    filename = build_output_filename(invoice_number, output_base_filename)

    try:
        visual = render_invoice_pdf(reviewed)
        with PdfA3Document.open(visual) as document:
            document.embed_attachment(
                attachment_name,
                normalized_xml.encode("utf-8"),
                mime_type="text/xml",
                description=ATTACHMENT_DESCRIPTION,
                relationship="Alternative",
                modified=timestamp,
            )
            document.set_document_info(
                title=f"{creator}: {subject}",
                subject=subject,
                author=creator,
                creator=producer,
                producer=producer,
                keywords=KEYWORDS,
                language=language,
                created=timestamp,
            )
            document.set_trailer_id(trailer_id(subject, normalized_xml))
            document.set_output_intent()
            document.fix_link_annotations()
            document.mark_structured()
            document.set_xmp_metadata(
                build_xmp_metadata(
                    subject=subject,
                    creator=creator,
                    producer=producer,
                    attachment_name=attachment_name,
                    zugferd_version=zugferd_version,
                    conformance_level=conformance_level,
                    produced_at=format_timestamp(timestamp),
                )
            )
            pdf_bytes = document.save()
    except (pikepdf.PdfError, OSError, ValueError) as exc:
        raise GenerationError(
            "Failed to generate ZUGFeRD PDF from validated invoice and XML.", details=[str(exc)]
        ) from exc

    logger.info(
        "ZUGFeRD PDF %s generated (%s, %d bytes)", filename, attachment_name, len(pdf_bytes)
    )
    return ZugferdResult(
        filename=filename,
        pdf=pdf_bytes,
        metadata=ZugferdMetadata(
            attachment_name=attachment_name,
            zugferd_version=zugferd_version,
            conformance_level=conformance_level,
            invoice_number=invoice_number,
        ),
    )
