"""Tests for environment-driven settings."""

from __future__ import annotations

import pytest

from erechnung.core.config import DEFAULT_VALIDATOR_TIMEOUT_MS, DEFAULT_XMLLINT_TIMEOUT_MS, Settings
from erechnung.facturx import ZugferdOptions
from erechnung.orchestrator import OfficialValidators


def test_blank_commands_are_unset(monkeypatch) -> None:
    monkeypatch.setenv("XRECHNUNG_VALIDATOR_COMMAND", "   ")
    monkeypatch.setenv("EINVOICE_VALIDATOR_TIMEOUT_MS", "0")

    config = Settings()

    assert config.XRECHNUNG_VALIDATOR_COMMAND is None
    assert config.EINVOICE_VALIDATOR_TIMEOUT_MS == DEFAULT_VALIDATOR_TIMEOUT_MS


@pytest.mark.parametrize("raw", ["abc", "-5", "inf", ""])
def test_unusable_timeouts_fall_back_to_defaults(monkeypatch, raw: str) -> None:
    monkeypatch.setenv("EINVOICE_VALIDATOR_TIMEOUT_MS", raw)
    monkeypatch.setenv("XMLLINT_TIMEOUT_MS", raw)

    config = Settings()

    assert config.EINVOICE_VALIDATOR_TIMEOUT_MS == DEFAULT_VALIDATOR_TIMEOUT_MS
    assert config.XMLLINT_TIMEOUT_MS == DEFAULT_XMLLINT_TIMEOUT_MS


def test_settings_feed_validators_and_options(monkeypatch) -> None:
    monkeypatch.setenv("ZUGFERD_VALIDATOR_COMMAND", "mustang --source {input}")
    monkeypatch.setenv("EINVOICE_VALIDATOR_TIMEOUT_MS", "1234")
    monkeypatch.setenv("ZUGFERD_ATTACHMENT_NAME", "zugferd-invoice.xml")
    monkeypatch.setenv("log_level", "verbose")

    config = Settings()
    officials = OfficialValidators.from_settings(config)
    options = ZugferdOptions.from_settings(config)

    assert officials.zugferd_command == "mustang --source {input}"
    assert officials.timeout_ms == 1234
    assert options.attachment_name == "zugferd-invoice.xml"
    assert config.log_level == "INFO"
