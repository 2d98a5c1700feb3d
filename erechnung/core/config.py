"""Core configuration with Pydantic v2 Settings."""

import math
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

DEFAULT_XMLLINT_TIMEOUT_MS = 15_000
DEFAULT_VALIDATOR_TIMEOUT_MS = 30_000
DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024


def _timeout_or_default(value: object, default: int) -> int:
    """Unlesbare, nicht-endliche oder nicht-positive Werte ergeben den Standard."""
    try:
        parsed = float(str(value).strip())
    except ValueError:
        return default
    if not math.isfinite(parsed) or parsed <= 0:
        return default
    return int(parsed)


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    app_env: str = "development"
    log_level: str = "INFO"

    # XSD validation (xmllint)
    # Optional override for the bundled CII schema; relative paths resolve against CWD
    XRECHNUNG_XSD_PATH: Optional[str] = None
    XMLLINT_PATH: str = "xmllint"
    XMLLINT_TIMEOUT_MS: int = DEFAULT_XMLLINT_TIMEOUT_MS

    # Official validators: shell command templates, "{input}" is replaced by the temp file path
    XRECHNUNG_VALIDATOR_COMMAND: Optional[str] = None
    ZUGFERD_VALIDATOR_COMMAND: Optional[str] = None
    EINVOICE_VALIDATOR_TIMEOUT_MS: int = DEFAULT_VALIDATOR_TIMEOUT_MS

    # Combined stdout+stderr cap for every external tool
    VALIDATOR_MAX_OUTPUT_BYTES: int = DEFAULT_MAX_OUTPUT_BYTES

    # ZUGFeRD packaging defaults
    ZUGFERD_ATTACHMENT_NAME: str = "factur-x.xml"
    ZUGFERD_VERSION: str = "2.4"
    ZUGFERD_CONFORMANCE_LEVEL: str = "XRECHNUNG"
    ZUGFERD_PRODUCER: str = "e-rechnung ZUGFeRD generator"

    @field_validator("XRECHNUNG_VALIDATOR_COMMAND", "ZUGFERD_VALIDATOR_COMMAND", "XRECHNUNG_XSD_PATH")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None

    @field_validator("EINVOICE_VALIDATOR_TIMEOUT_MS", mode="before")
    @classmethod
    def _positive_validator_timeout(cls, value: object) -> int:
        return _timeout_or_default(value, DEFAULT_VALIDATOR_TIMEOUT_MS)

    @field_validator("XMLLINT_TIMEOUT_MS", mode="before")
    @classmethod
    def _positive_xmllint_timeout(cls, value: object) -> int:
        return _timeout_or_default(value, DEFAULT_XMLLINT_TIMEOUT_MS)

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        up = value.upper()
        if up not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            return "INFO"
        return up


# Global settings instance
settings = Settings()
