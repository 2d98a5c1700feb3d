"""XRechnung 3.0 (CII) Generator und Validator."""

from .generator import (
    XRECHNUNG_BUSINESS_PROCESS_ID,
    XRECHNUNG_FORMAT,
    XRECHNUNG_GUIDELINE_ID,
    build_xrechnung_tree,
    build_xrechnung_xml,
    generate_xrechnung,
    generate_xrechnung_xml,
    version,
)
from .validator import (
    DEFAULT_XSD_PATH,
    LxmlSchemaChecker,
    SchemaChecker,
    XmllintSchemaChecker,
    check_profile,
    ensure_schema_readable,
    resolve_schema_path,
    validate_xrechnung_xml,
)

__all__ = [
    "XRECHNUNG_BUSINESS_PROCESS_ID",
    "XRECHNUNG_FORMAT",
    "XRECHNUNG_GUIDELINE_ID",
    "build_xrechnung_tree",
    "build_xrechnung_xml",
    "generate_xrechnung",
    "generate_xrechnung_xml",
    "version",
    "DEFAULT_XSD_PATH",
    "LxmlSchemaChecker",
    "SchemaChecker",
    "XmllintSchemaChecker",
    "check_profile",
    "ensure_schema_readable",
    "resolve_schema_path",
    "validate_xrechnung_xml",
]
