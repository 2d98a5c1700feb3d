"""Ausführung externer Werkzeuge (xmllint, offizielle Validatoren).

Fachlogik ruft ``subprocess`` nie direkt auf, sondern bekommt einen
``CommandRunner`` injiziert. Tests ersetzen ihn durch eine Attrappe.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Sequence

from .core.config import DEFAULT_MAX_OUTPUT_BYTES, Settings
from .core.logging import get_logger
from .errors import ConfigurationError, ExternalToolFailure

logger = get_logger(__name__)


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: str
    stderr: str


class CommandRunner(Protocol):
    def run(
        self, argv: Sequence[str], *, timeout_ms: int, cwd: Optional[Path] = None
    ) -> CommandResult:
        """Führt ``argv`` aus; Timeout, Exit-Code != 0 und Überlauf -> ``ExternalToolFailure``."""


def _decode(data: Optional[bytes], limit: int) -> str:
    if not data:
        return ""
    return data[:limit].decode("utf-8", errors="replace")


class SubprocessRunner:
    def __init__(self, max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES) -> None:
        self.max_output_bytes = max_output_bytes

    @classmethod
    def from_settings(cls, settings: Settings) -> "SubprocessRunner":
        return cls(max_output_bytes=settings.VALIDATOR_MAX_OUTPUT_BYTES)

    def run(
        self, argv: Sequence[str], *, timeout_ms: int, cwd: Optional[Path] = None
    ) -> CommandResult:
        args = [str(arg) for arg in argv]
        limit = self.max_output_bytes
        try:
            completed = subprocess.run(
                args,
                capture_output=True,
                timeout=timeout_ms / 1000,
                check=False,
                cwd=str(cwd) if cwd else None,
            )
        except FileNotFoundError as exc:
            raise ConfigurationError(f"Executable not found: {args[0]}") from exc
        except subprocess.TimeoutExpired as exc:
            logger.warning("%s timed out after %d ms", args[0], timeout_ms)
            raise ExternalToolFailure(
                f"Command timed out after {timeout_ms} ms: {args[0]}",
                stdout=_decode(exc.stdout, limit),
                stderr=_decode(exc.stderr, limit),
            ) from exc

        stdout = _decode(completed.stdout, limit)
        stderr = _decode(completed.stderr, limit)

        if len(completed.stdout or b"") + len(completed.stderr or b"") > limit:
            logger.warning("%s exceeded output limit of %d bytes", args[0], limit)
            raise ExternalToolFailure(
                f"Command output exceeded {limit} bytes: {args[0]}",
                stdout=stdout,
                stderr=stderr,
            )

        if completed.returncode != 0:
            logger.warning("%s exited with status %d", args[0], completed.returncode)
            raise ExternalToolFailure(
                f"Command failed with exit code {completed.returncode}: {args[0]}",
                stdout=stdout,
                stderr=stderr,
            )

        return CommandResult(completed.returncode, stdout, stderr)
