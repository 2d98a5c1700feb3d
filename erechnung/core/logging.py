"""Centralized logging configuration with PII redaction."""

import logging
import re
import sys
from typing import Optional


class PIIRedactionFilter(logging.Filter):
    """Filter to redact PII from log messages."""

    def __init__(self):
        super().__init__()
        # IBAN pattern: 2 letters + 2 digits + 11 to 30 alphanumeric characters
        self.iban_pattern = re.compile(r'\b([A-Z]{2}\d{2}[A-Z0-9]{11,30})\b')
        # Email pattern: word characters, @, word characters, ., word characters
        self.email_pattern = re.compile(r'(\b\S+@\S+\.\S+\b)')
        # Phone pattern: optional +, digits, spaces, dashes, slashes
        self.phone_pattern = re.compile(r'(\+\d[\d \-/]{6,}\d)')

    def redact(self, text: str) -> str:
        text = self.iban_pattern.sub(self._mask_iban, text)
        text = self.email_pattern.sub(self._mask_email, text)
        return self.phone_pattern.sub(self._mask_phone, text)

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact PII from log record message."""
        if isinstance(record.msg, str) and record.msg:
            record.msg = self.redact(record.msg)

        # Also redact args if they contain strings
        if isinstance(record.args, tuple) and record.args:
            record.args = tuple(
                self.redact(arg) if isinstance(arg, str) else arg for arg in record.args
            )

        return True

    def _mask_iban(self, match) -> str:
        """Mask IBAN: show country code, mask the rest."""
        iban = match.group(1)
        return iban[:2] + "*" * (len(iban) - 2)

    def _mask_email(self, match) -> str:
        """Mask email: show first char of user, keep domain."""
        email = match.group(1)
        user, domain = email.split("@", 1)
        if len(user) <= 1:
            masked_user = "*"
        else:
            masked_user = user[0] + "*" * (len(user) - 1)
        return f"{masked_user}@{domain}"

    def _mask_phone(self, match) -> str:
        """Mask phone: show first 2 chars, mask the rest."""
        phone = match.group(1)
        return phone[:2] + "*" * (len(phone) - 2)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with PII redaction applied."""
    logger = logging.getLogger(name)
    if not any(isinstance(f, PIIRedactionFilter) for f in logger.filters):
        logger.addFilter(PIIRedactionFilter())
    return logger


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the root logger for CLI entry points."""
    from .config import settings

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, (level or settings.log_level).upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    handler.addFilter(PIIRedactionFilter())
    root_logger.addHandler(handler)
