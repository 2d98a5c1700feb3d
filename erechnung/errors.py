"""Fehlerklassen der E-Rechnungs-Engine."""

from __future__ import annotations

from typing import Iterable, List, Optional


class EInvoiceError(RuntimeError):
    pass


class GenerationError(EInvoiceError):
    """Unvollständige oder fehlerhafte Eingabe; es wird kein Artefakt erzeugt."""

    def __init__(self, message: str, details: Optional[Iterable[str]] = None) -> None:
        super().__init__(message)
        self.details: List[str] = list(details or [])


class ValidationFailure(EInvoiceError):
    """Artefakt hat Profil-, Schema- oder Abgleichsprüfung nicht bestanden."""

    def __init__(self, message: str, issues: Optional[Iterable[object]] = None) -> None:
        super().__init__(message)
        self.issues = list(issues or [])


class ConfigurationError(EInvoiceError):
    pass


class ExternalToolFailure(EInvoiceError):
    """Timeout, Exit-Code != 0 oder Ausgabe-Limit eines externen Prozesses."""

    def __init__(self, message: str, *, stdout: str = "", stderr: str = "") -> None:
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr

    def output_lines(self, *, stderr_first: bool = False) -> List[str]:
        streams = (self.stderr, self.stdout) if stderr_first else (self.stdout, self.stderr)
        lines: List[str] = []
        for stream in streams:
            lines.extend(line.strip() for line in stream.splitlines() if line.strip())
        return lines


class PdfInspectionError(EInvoiceError):
    pass


class InvoiceExportError(EInvoiceError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
