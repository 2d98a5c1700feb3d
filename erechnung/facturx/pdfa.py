"""PDF/A-3 Nachbearbeitung mit pikepdf.

``PdfA3Document`` kapselt ein ``pikepdf.Pdf`` und bietet nur die Operationen,
die der ZUGFeRD-Packager braucht: Anhang einbetten, Dokumentinfo, Trailer-ID,
OutputIntent, Tagging-Marker, Link-Annotationen, XMP und Speichern.
"""

from __future__ import annotations

import io
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

import pikepdf
from pikepdf.models.metadata import encode_pdf_date

RESOURCE_DIR = Path(__file__).resolve().parent / "resources"
SRGB_ICC_PROFILE = RESOURCE_DIR / "sRGB-IEC61966-2.1.icc"

# PDF-Annotationsflag "Print"
ANNOTATION_FLAG_PRINT = 4


class PdfA3Document:
    def __init__(self, pdf: pikepdf.Pdf) -> None:
        self._pdf = pdf

    @classmethod
    def open(cls, pdf_bytes: bytes) -> "PdfA3Document":
        return cls(pikepdf.Pdf.open(io.BytesIO(pdf_bytes)))

    def __enter__(self) -> "PdfA3Document":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self._pdf.close()

    @property
    def root(self) -> pikepdf.Dictionary:
        return self._pdf.Root

    def embed_attachment(
        self,
        name: str,
        data: bytes,
        *,
        mime_type: str = "text/xml",
        description: str = "",
        relationship: str = "Alternative",
        modified: Optional[datetime] = None,
    ) -> pikepdf.Dictionary:
        """Bettet ``data`` als Embedded File ein (Names-Baum und Root/AF)."""

        pdf = self._pdf
        stream = pikepdf.Stream(pdf, data)
        stream[pikepdf.Name("/Type")] = pikepdf.Name("/EmbeddedFile")
        stream[pikepdf.Name("/Subtype")] = pikepdf.Name("/" + mime_type)

        params = pikepdf.Dictionary()
        params["/Size"] = len(data)
        if modified is not None:
            params["/ModDate"] = pikepdf.String(encode_pdf_date(modified))
        stream[pikepdf.Name("/Params")] = params

        ef_dict = pikepdf.Dictionary()
        ef_dict["/F"] = stream
        ef_dict["/UF"] = stream

        filespec = pikepdf.Dictionary()
        filespec["/Type"] = pikepdf.Name("/Filespec")
        filespec["/F"] = pikepdf.String(name)
        filespec["/UF"] = pikepdf.String(name)
        filespec["/Desc"] = pikepdf.String(description)
        filespec["/EF"] = ef_dict
        filespec["/AFRelationship"] = pikepdf.Name("/" + relationship)
        filespec = pdf.make_indirect(filespec)

        root = pdf.Root
        if pikepdf.Name("/Names") not in root:
            root[pikepdf.Name("/Names")] = pikepdf.Dictionary()
        names = root[pikepdf.Name("/Names")]
        if pikepdf.Name("/EmbeddedFiles") not in names:
            names[pikepdf.Name("/EmbeddedFiles")] = pikepdf.Dictionary(Names=pikepdf.Array())
        names[pikepdf.Name("/EmbeddedFiles")][pikepdf.Name("/Names")].extend(
            [pikepdf.String(name), filespec]
        )

        if pikepdf.Name("/AF") not in root:
            root[pikepdf.Name("/AF")] = pikepdf.Array()
        root[pikepdf.Name("/AF")].append(filespec)
        return filespec

    def set_document_info(
        self,
        *,
        title: str,
        subject: str,
        author: str,
        creator: str,
        producer: str,
        keywords: Sequence[str],
        language: str,
        created: datetime,
    ) -> None:
        pdf_date = pikepdf.String(encode_pdf_date(created))
        info = pikepdf.Dictionary()
        info["/Title"] = pikepdf.String(title)
        info["/Subject"] = pikepdf.String(subject)
        info["/Author"] = pikepdf.String(author)
        info["/Creator"] = pikepdf.String(creator)
        info["/Producer"] = pikepdf.String(producer)
        info["/Keywords"] = pikepdf.String(" ".join(keywords))
        info["/CreationDate"] = pdf_date
        info["/ModDate"] = pdf_date
        self._pdf.trailer[pikepdf.Name("/Info")] = self._pdf.make_indirect(info)
        self._pdf.Root[pikepdf.Name("/Lang")] = pikepdf.String(language)

    def set_trailer_id(self, digest: bytes) -> None:
        # qpdf übernimmt beim Speichern nur ID[0]; ID[1] wird aus dem Inhalt
        # neu berechnet (deterministic_id in save).
        self._pdf.trailer[pikepdf.Name("/ID")] = pikepdf.Array(
            [pikepdf.String(digest), pikepdf.String(digest)]
        )

    def set_output_intent(
        self, icc_profile: Optional[bytes] = None, *, identifier: str = "sRGB"
    ) -> None:
        profile = icc_profile if icc_profile is not None else SRGB_ICC_PROFILE.read_bytes()
        pdf = self._pdf
        profile_stream = pikepdf.Stream(pdf, profile)
        profile_stream[pikepdf.Name("/N")] = 3

        intent = pikepdf.Dictionary()
        intent["/Type"] = pikepdf.Name("/OutputIntent")
        intent["/S"] = pikepdf.Name("/GTS_PDFA1")
        intent["/OutputConditionIdentifier"] = pikepdf.String(identifier)
        intent["/DestOutputProfile"] = profile_stream
        pdf.Root[pikepdf.Name("/OutputIntents")] = pikepdf.Array([pdf.make_indirect(intent)])

    def mark_structured(self) -> None:
        pdf = self._pdf
        pdf.Root[pikepdf.Name("/MarkInfo")] = pikepdf.Dictionary(Marked=True)
        pdf.Root[pikepdf.Name("/StructTreeRoot")] = pdf.make_indirect(
            pikepdf.Dictionary(Type=pikepdf.Name("/StructTreeRoot"))
        )

    def fix_link_annotations(self) -> int:
        """Setzt das Print-Flag auf allen Link-Annotationen; liefert deren Anzahl."""

        fixed = 0
        for page in self._pdf.pages:
            annotations = page.obj.get(pikepdf.Name("/Annots"))
            if not isinstance(annotations, pikepdf.Array):
                continue
            for annotation in annotations:
                if not isinstance(annotation, pikepdf.Dictionary):
                    continue
                if annotation.get(pikepdf.Name("/Subtype")) != pikepdf.Name("/Link"):
                    continue
                flags = int(annotation.get(pikepdf.Name("/F"), 0))
                annotation[pikepdf.Name("/F")] = flags | ANNOTATION_FLAG_PRINT
                fixed += 1
        return fixed

    def set_xmp_metadata(self, xmp: str) -> None:
        # Roh-Stream statt open_metadata(): das Paket wird byte-genau übernommen
        metadata = pikepdf.Stream(self._pdf, xmp.encode("utf-8"))
        metadata[pikepdf.Name("/Type")] = pikepdf.Name("/Metadata")
        metadata[pikepdf.Name("/Subtype")] = pikepdf.Name("/XML")
        self._pdf.Root[pikepdf.Name("/Metadata")] = metadata

    def save(self) -> bytes:
        buffer = io.BytesIO()
        self._pdf.save(
            buffer,
            min_version="1.7",
            fix_metadata_version=False,
            object_stream_mode=pikepdf.ObjectStreamMode.disable,
            deterministic_id=True,
        )
        return buffer.getvalue()
