"""Profil- und XSD-Prüfung für XRechnung-CII."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import List, Optional, Protocol

from lxml import etree

from erechnung.core.config import Settings, settings
from erechnung.core.logging import get_logger
from erechnung.dto import SchemaValidationResult
from erechnung.errors import ConfigurationError, ExternalToolFailure
from erechnung.toolrunner import CommandRunner, SubprocessRunner

logger = get_logger(__name__)

PROFILE_MARKER = "xrechnung_3.0"
RESOURCE_DIR = Path(__file__).resolve().parent / "resources"
DEFAULT_XSD_PATH = RESOURCE_DIR / "CrossIndustryInvoice_XRechnung.xsd"

_PROFILE_MISSING = (
    'Generated XML is not marked as XRechnung 3.0 (missing guideline ID containing "xrechnung_3.0").'
)
_GUIDELINE_PATH = "{*}ExchangedDocumentContext/{*}GuidelineSpecifiedDocumentContextParameter/{*}ID"


def _parser() -> etree.XMLParser:
    return etree.XMLParser(resolve_entities=False, no_network=True)


def check_profile(xml: str) -> List[str]:
    try:
        root = etree.fromstring(xml.encode("utf-8"), _parser())
    except etree.XMLSyntaxError as err:
        return [f"Profile detection failed: {err}"]

    if etree.QName(root).localname != "CrossIndustryInvoice":
        return [_PROFILE_MISSING]
    profile_id = (root.findtext(_GUIDELINE_PATH) or "").strip()
    if not profile_id or PROFILE_MARKER not in profile_id.lower():
        return [_PROFILE_MISSING]
    return []


def resolve_schema_path(override: Optional[str] = None) -> Path:
    if not override:
        return DEFAULT_XSD_PATH
    path = Path(override)
    return path if path.is_absolute() else Path.cwd() / path


def ensure_schema_readable(path: Path) -> None:
    if not path.is_file() or not os.access(path, os.R_OK):
        raise ConfigurationError(f"XSD schema file not found or not readable: {path}")


def extract_xmllint_errors(failure: ExternalToolFailure) -> List[str]:
    lines: List[str] = []
    for line in failure.output_lines():
        if line.endswith("validates") or line in lines:
            continue
        lines.append(line)
    if lines:
        return lines
    message = str(failure).strip()
    return [message] if message else ["Unknown xmllint validation error"]


class SchemaChecker(Protocol):
    def check(self, xml: str, schema_path: Path) -> List[str]:
        """Liefert die XSD-Fehlerzeilen; leere Liste bei Erfolg."""


class XmllintSchemaChecker:
    """XSD-Prüfung über ``xmllint --noout --schema`` in einem Temp-Verzeichnis."""

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        *,
        xmllint_path: str = "xmllint",
        timeout_ms: int = 15_000,
    ) -> None:
        self.runner = runner or SubprocessRunner()
        self.xmllint_path = xmllint_path
        self.timeout_ms = timeout_ms

    @classmethod
    def from_settings(
        cls, config: Settings, runner: Optional[CommandRunner] = None
    ) -> "XmllintSchemaChecker":
        return cls(
            runner or SubprocessRunner.from_settings(config),
            xmllint_path=config.XMLLINT_PATH,
            timeout_ms=config.XMLLINT_TIMEOUT_MS,
        )

    def check(self, xml: str, schema_path: Path) -> List[str]:
        with tempfile.TemporaryDirectory(prefix="xrechnung-validation-") as temp_dir:
            xml_path = Path(temp_dir) / "invoice.xml"
            xml_path.write_text(xml, encoding="utf-8")
            try:
                self.runner.run(
                    [self.xmllint_path, "--noout", "--schema", str(schema_path), str(xml_path)],
                    timeout_ms=self.timeout_ms,
                )
            except ExternalToolFailure as failure:
                errors = extract_xmllint_errors(failure)
                logger.warning("xmllint reported %d schema error(s)", len(errors))
                return errors
        return []


class LxmlSchemaChecker:
    """In-Process-Alternative zu xmllint auf Basis von ``lxml.etree.XMLSchema``."""

    def check(self, xml: str, schema_path: Path) -> List[str]:
        schema = etree.XMLSchema(etree.parse(str(schema_path)))
        try:
            document = etree.fromstring(xml.encode("utf-8"), _parser())
        except etree.XMLSyntaxError as err:
            return [f"XML parse error: {err}"]
        if schema.validate(document):
            return []
        return [f"invoice.xml:{error.line}: {error.message}" for error in schema.error_log]


def validate_xrechnung_xml(
    xml: str,
    *,
    xsd_path: Optional[str] = None,
    checker: Optional[SchemaChecker] = None,
) -> SchemaValidationResult:
    """Profilmarker + XSD. Gültig nur, wenn beide Prüfungen fehlerfrei sind."""

    schema_path = resolve_schema_path(xsd_path or settings.XRECHNUNG_XSD_PATH)
    ensure_schema_readable(schema_path)

    profile_errors = check_profile(xml)
    active_checker = checker or XmllintSchemaChecker.from_settings(settings)
    schema_errors = active_checker.check(xml, schema_path)

    errors = tuple(profile_errors + schema_errors)
    return SchemaValidationResult(valid=not errors, errors=errors, schema_path=str(schema_path))
