"""Tests for PII redaction in engine logs."""

from __future__ import annotations

import logging

from erechnung.core.logging import PIIRedactionFilter, get_logger


def test_iban_is_masked_in_args(caplog) -> None:
    logger = get_logger("erechnung.test")

    with caplog.at_level(logging.INFO, logger="erechnung.test"):
        logger.info("Zahlung an %s", "DE02120300000000202051")

    assert "DE02120300000000202051" not in caplog.text
    assert "DE" + "*" * 20 in caplog.text


def test_email_is_masked() -> None:
    assert PIIRedactionFilter().redact("Kontakt: buchhaltung@example.com") == "Kontakt: b" + "*" * 10 + "@example.com"


def test_filter_attached_once() -> None:
    logger = get_logger("erechnung.once")
    get_logger("erechnung.once")

    assert sum(isinstance(f, PIIRedactionFilter) for f in logger.filters) == 1
