"""Tests for the subprocess runner used by xmllint and official validators."""

from __future__ import annotations

import pytest

from erechnung.errors import ConfigurationError, ExternalToolFailure
from erechnung.toolrunner import SubprocessRunner


def test_successful_command() -> None:
    result = SubprocessRunner().run(["/bin/sh", "-c", "echo ok"], timeout_ms=5_000)

    assert result.returncode == 0
    assert result.stdout.strip() == "ok"


def test_non_zero_exit_keeps_output() -> None:
    with pytest.raises(ExternalToolFailure, match="exit code 3") as excinfo:
        SubprocessRunner().run(["/bin/sh", "-c", "echo out; echo err >&2; exit 3"], timeout_ms=5_000)

    assert excinfo.value.stdout.strip() == "out"
    assert excinfo.value.output_lines(stderr_first=True) == ["err", "out"]


def test_timeout() -> None:
    with pytest.raises(ExternalToolFailure, match="timed out after 200 ms"):
        SubprocessRunner().run(["/bin/sh", "-c", "exec sleep 5"], timeout_ms=200)


def test_output_limit() -> None:
    runner = SubprocessRunner(max_output_bytes=16)

    with pytest.raises(ExternalToolFailure, match="exceeded 16 bytes") as excinfo:
        runner.run(["/bin/sh", "-c", "printf '%040d' 0"], timeout_ms=5_000)

    assert len(excinfo.value.stdout) == 16


def test_missing_executable() -> None:
    with pytest.raises(ConfigurationError, match="Executable not found"):
        SubprocessRunner().run(["/nonexistent/xmllint", "--version"], timeout_ms=1_000)
