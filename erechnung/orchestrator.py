"""Zweistufige Validierung der Export-Artefakte.

Stufe 1 (builtin): Profilmarker + XSD, bei ZUGFeRD zusätzlich Abgleich des
eingebetteten XML und der XMP-Marker. Stufe 2 (official): optionale externe
Validator-Kommandos. Fehlt ein Kommando, entsteht nur eine Warnung.
"""

from __future__ import annotations

import shlex
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple

from .core.config import DEFAULT_VALIDATOR_TIMEOUT_MS, Settings, settings
from .core.logging import get_logger
from .dto import SchemaValidationResult
from .errors import EInvoiceError, ExternalToolFailure, PdfInspectionError, ValidationFailure
from .facturx.reader import extract_xml_from_pdf, read_metadata_xml
from .toolrunner import CommandRunner, SubprocessRunner
from .xrechnung.validator import SchemaChecker, validate_xrechnung_xml

logger = get_logger(__name__)

Severity = Literal["error", "warning"]
Source = Literal["builtin", "official"]
ExportFormat = Literal["XRECHNUNG", "ZUGFERD"]

MAX_OFFICIAL_OUTPUT_LINES = 20
INPUT_PLACEHOLDER = "{input}"
XRECHNUNG_VALIDATOR_URL = "https://www.xrechnung.org/validator"
ZUGFERD_VALIDATOR_URL = "https://www.ferd-net.de/werkzeuge/prueftools/index.html"

PDFAID_PART_MARKER = "<pdfaid:part>3</pdfaid:part>"
PDFAID_CONFORMANCE_MARKER = "<pdfaid:conformance>B</pdfaid:conformance>"
FX_FILENAME_MARKER = "<fx:DocumentFileName>"


@dataclass(frozen=True)
class ValidationIssue:
    severity: Severity
    source: Source
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"severity": self.severity, "source": self.source, "message": self.message}


@dataclass(frozen=True)
class EInvoiceValidationResult:
    valid: bool
    used_official_validator: bool
    issues: Tuple[ValidationIssue, ...] = ()

    @classmethod
    def from_issues(
        cls, issues: Sequence[ValidationIssue], *, used_official_validator: bool
    ) -> "EInvoiceValidationResult":
        return cls(
            valid=all(issue.severity != "error" for issue in issues),
            used_official_validator=used_official_validator,
            issues=tuple(issues),
        )

    @property
    def errors(self) -> List[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "usedOfficialValidator": self.used_official_validator,
            "issues": [issue.to_dict() for issue in self.issues],
        }


def _builtin_error(message: str) -> ValidationIssue:
    return ValidationIssue("error", "builtin", message)


def build_validator_command(template: str, input_path: Path) -> str:
    """Setzt den (shell-escapten) Pfad für ``{input}`` ein oder hängt ihn an."""

    quoted = shlex.quote(str(input_path))
    if INPUT_PLACEHOLDER in template:
        return template.replace(INPUT_PLACEHOLDER, quoted)
    return f"{template} {quoted}"


def official_output_lines(failure: ExternalToolFailure) -> List[str]:
    lines = failure.output_lines(stderr_first=True)[:MAX_OFFICIAL_OUTPUT_LINES]
    if lines:
        return lines
    message = str(failure).strip()
    return [message or "Unknown error"]


@dataclass(frozen=True)
class OfficialValidators:
    """Konfigurierte Validator-Kommandos (Shell-Templates) samt Runner."""

    xrechnung_command: Optional[str] = None
    zugferd_command: Optional[str] = None
    timeout_ms: int = DEFAULT_VALIDATOR_TIMEOUT_MS
    runner: CommandRunner = field(default_factory=SubprocessRunner)

    @classmethod
    def from_settings(
        cls, config: Settings, runner: Optional[CommandRunner] = None
    ) -> "OfficialValidators":
        return cls(
            xrechnung_command=config.XRECHNUNG_VALIDATOR_COMMAND,
            zugferd_command=config.ZUGFERD_VALIDATOR_COMMAND,
            timeout_ms=config.EINVOICE_VALIDATOR_TIMEOUT_MS,
            runner=runner or SubprocessRunner.from_settings(config),
        )

    def run(self, template: str, payload: bytes, extension: str) -> List[ValidationIssue]:
        with tempfile.TemporaryDirectory(prefix="einvoice-validator-") as temp_dir:
            input_path = Path(temp_dir) / f"invoice{extension}"
            input_path.write_bytes(payload)
            command = build_validator_command(template, input_path)
            try:
                self.runner.run(["/bin/sh", "-c", command], timeout_ms=self.timeout_ms)
            except ExternalToolFailure as failure:
                lines = official_output_lines(failure)
                logger.warning("Official validator reported %d issue(s)", len(lines))
                return [ValidationIssue("error", "official", line) for line in lines]
        return []

    def check(
        self,
        template: Optional[str],
        payload: bytes,
        extension: str,
        *,
        label: str,
        manual_url: str,
    ) -> Tuple[List[ValidationIssue], bool]:
        command = (template or "").strip()
        if not command:
            warning = ValidationIssue(
                "warning",
                "official",
                f"Official {label} validator command is not configured. "
                f"Manual official validation can be performed via {manual_url}.",
            )
            return [warning], False
        return self.run(command, payload, extension), True


def _officials(officials: Optional[OfficialValidators]) -> OfficialValidators:
    return officials or OfficialValidators.from_settings(settings)


def validate_xrechnung_export(
    xml: str,
    *,
    builtin: Optional[SchemaValidationResult] = None,
    officials: Optional[OfficialValidators] = None,
    checker: Optional[SchemaChecker] = None,
    xsd_path: Optional[str] = None,
) -> EInvoiceValidationResult:
    """Prüft ein XRechnung-Artefakt; ein vorhandenes Builtin-Ergebnis wird wiederverwendet."""

    issues: List[ValidationIssue] = []
    schema_result = builtin or validate_xrechnung_xml(xml, xsd_path=xsd_path, checker=checker)
    if not schema_result.valid:
        issues.extend(_builtin_error(error) for error in schema_result.errors)

    active = _officials(officials)
    official_issues, used_official = active.check(
        active.xrechnung_command,
        xml.encode("utf-8"),
        ".xml",
        label="XRechnung",
        manual_url=XRECHNUNG_VALIDATOR_URL,
    )
    issues.extend(official_issues)

    result = EInvoiceValidationResult.from_issues(issues, used_official_validator=used_official)
    logger.info(
        "XRechnung export validation: valid=%s errors=%d warnings=%d",
        result.valid,
        len(result.errors),
        len(result.warnings),
    )
    return result


def validate_zugferd_export(
    pdf: bytes,
    xml: str,
    *,
    officials: Optional[OfficialValidators] = None,
    checker: Optional[SchemaChecker] = None,
    xsd_path: Optional[str] = None,
) -> EInvoiceValidationResult:
    issues: List[ValidationIssue] = []

    try:
        embedded: Optional[str] = extract_xml_from_pdf(pdf)
    except PdfInspectionError as exc:
        issues.append(_builtin_error(f"Embedded XML extraction failed: {exc}"))
        embedded = None

    if embedded and embedded.strip() != xml.strip():
        issues.append(
            _builtin_error(
                "Embedded XML in generated ZUGFeRD PDF does not match generated XRechnung XML."
            )
        )

    try:
        schema_result = validate_xrechnung_xml(xml, xsd_path=xsd_path, checker=checker)
        issues.extend(_builtin_error(error) for error in schema_result.errors)
    except EInvoiceError as exc:
        issues.append(_builtin_error(f"XRechnung XML validation failed: {exc}"))

    try:
        metadata: Optional[str] = read_metadata_xml(pdf)
    except PdfInspectionError as exc:
        issues.append(_builtin_error(f"PDF metadata inspection failed: {exc}"))
        metadata = None

    if metadata:
        if PDFAID_PART_MARKER not in metadata:
            issues.append(_builtin_error("Generated PDF is missing pdfaid:part=3 metadata marker."))
        if PDFAID_CONFORMANCE_MARKER not in metadata:
            issues.append(
                _builtin_error("Generated PDF is missing pdfaid:conformance=B metadata marker.")
            )
        if FX_FILENAME_MARKER not in metadata:
            issues.append(
                _builtin_error(
                    "Generated PDF metadata is missing fx:DocumentFileName for ZUGFeRD attachment."
                )
            )

    active = _officials(officials)
    official_issues, used_official = active.check(
        active.zugferd_command,
        pdf,
        ".pdf",
        label="ZUGFeRD",
        manual_url=ZUGFERD_VALIDATOR_URL,
    )
    issues.extend(official_issues)

    result = EInvoiceValidationResult.from_issues(issues, used_official_validator=used_official)
    logger.info(
        "ZUGFeRD export validation: valid=%s errors=%d warnings=%d",
        result.valid,
        len(result.errors),
        len(result.warnings),
    )
    return result


def format_validation_error_message(fmt: ExportFormat, result: EInvoiceValidationResult) -> str:
    details = " | ".join(f"[{issue.source}] {issue.message}" for issue in result.errors)
    return f"{fmt} validation failed: {details or 'Unknown validation error'}"


def ensure_valid(fmt: ExportFormat, result: EInvoiceValidationResult) -> EInvoiceValidationResult:
    """Blockiert den Export: ``ValidationFailure`` bei mindestens einem Fehler."""

    if not result.valid:
        raise ValidationFailure(format_validation_error_message(fmt, result), issues=result.errors)
    return result
