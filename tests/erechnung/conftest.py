import shlex
import socket
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

import pytest

from erechnung.errors import ExternalToolFailure
from erechnung.orchestrator import OfficialValidators
from erechnung.review import ReviewedInvoice
from erechnung.samples import SCENARIOS, build_review_data, build_stored_invoice
from erechnung.toolrunner import CommandResult
from erechnung.xrechnung.validator import LxmlSchemaChecker

FIXED_NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True, scope="session")
def egress_guard():
    """Die Engine arbeitet vollständig offline; jeder Netzwerkzugriff ist ein Fehler."""

    real_getaddrinfo = socket.getaddrinfo
    real_create_connection = socket.create_connection

    def guard_getaddrinfo(host, *args, **kwargs):
        raise RuntimeError(f"Egress blocked: getaddrinfo({host!r}) disallowed")

    def guard_create_connection(address, *args, **kwargs):
        raise RuntimeError(f"Egress blocked: create_connection({address!r}) disallowed")

    socket.getaddrinfo = guard_getaddrinfo  # type: ignore[assignment]
    socket.create_connection = guard_create_connection  # type: ignore[assignment]
    yield
    socket.getaddrinfo = real_getaddrinfo  # type: ignore[assignment]
    socket.create_connection = real_create_connection  # type: ignore[assignment]


class FakeRunner:
    """Attrappe für ``CommandRunner``: protokolliert Aufrufe und Eingabedateien."""

    def __init__(
        self,
        *,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        message: Optional[str] = None,
        raises: Optional[Exception] = None,
    ) -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.message = message
        self.raises = raises
        self.calls: List[List[str]] = []
        self.input_paths: List[Path] = []
        self.payloads: List[bytes] = []

    def _input_path(self, argv: Sequence[str]) -> Path:
        tokens = shlex.split(argv[2]) if argv[:2] == ["/bin/sh", "-c"] else list(argv)
        candidates = [token for token in tokens if Path(token).name.startswith("invoice.")]
        return Path(candidates[-1] if candidates else tokens[-1])

    def run(self, argv, *, timeout_ms, cwd=None):
        argv = [str(arg) for arg in argv]
        self.calls.append(argv)
        path = self._input_path(argv)
        self.input_paths.append(path)
        if path.exists():
            self.payloads.append(path.read_bytes())
        if self.raises is not None:
            raise self.raises
        if self.returncode != 0:
            raise ExternalToolFailure(
                self.message if self.message is not None else f"Command failed with exit code {self.returncode}: {argv[0]}",
                stdout=self.stdout,
                stderr=self.stderr,
            )
        return CommandResult(0, self.stdout, self.stderr)


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def lxml_checker() -> LxmlSchemaChecker:
    return LxmlSchemaChecker()


@pytest.fixture
def make_runner():
    return FakeRunner


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def no_officials(fake_runner: FakeRunner) -> OfficialValidators:
    return OfficialValidators(runner=fake_runner)


@pytest.fixture
def single_scenario():
    return SCENARIOS[0]


@pytest.fixture
def stored_invoice(single_scenario) -> dict:
    return build_stored_invoice(single_scenario)


@pytest.fixture
def reviewed_invoice(single_scenario) -> ReviewedInvoice:
    return ReviewedInvoice.model_validate(build_review_data(single_scenario))
