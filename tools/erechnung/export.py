"""CLI: gespeicherte Rechnung (JSON) als XRechnung-XML oder ZUGFeRD-PDF exportieren."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

from erechnung.core.config import settings
from erechnung.core.logging import get_logger, setup_logging
from erechnung.errors import InvoiceExportError
from erechnung.export import EXPORT_FORMATS, generate_invoice_export
from erechnung.samples import build_stored_invoice, get_scenario
from erechnung.xrechnung.validator import LxmlSchemaChecker, XmllintSchemaChecker

logger = get_logger(__name__)


def _load_invoice(input_path: Optional[Path], sample: Optional[str]) -> Mapping[str, Any]:
    if sample:
        return build_stored_invoice(get_scenario(sample))
    if input_path is None:
        raise SystemExit("Either --input or --sample is required")
    data = json.loads(input_path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise SystemExit(f"Input must contain a JSON object: {input_path}")
    return data


def export_invoice(
    *,
    invoice: Mapping[str, Any],
    format_name: str,
    dest_dir: Path,
    xsd_path: Optional[str] = None,
    skip_xsd: bool = False,
    in_process_xsd: bool = False,
) -> Dict[str, Any]:
    """Schreibt Artefakt + ``validation.json`` nach ``dest_dir`` und liefert den Report."""

    dest_dir.mkdir(parents=True, exist_ok=True)
    checker = LxmlSchemaChecker() if in_process_xsd else XmllintSchemaChecker.from_settings(settings)

    try:
        result = generate_invoice_export(
            invoice,
            format_name,  # type: ignore[arg-type]
            validate_xsd=not skip_xsd,
            xsd_path=xsd_path,
            checker=checker,
        )
    except InvoiceExportError as exc:
        report: Dict[str, Any] = {
            "format": format_name,
            "valid": False,
            "code": exc.code,
            "message": str(exc),
        }
    else:
        artifact = dest_dir / result.filename
        artifact.write_bytes(result.content)
        report = {
            "format": format_name,
            "filename": result.filename,
            "contentType": result.content_type,
            **result.validation.to_dict(),
        }

    (dest_dir / "validation.json").write_text(
        json.dumps(report, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
    )
    return report


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export an invoice as XRechnung XML or ZUGFeRD PDF")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--input", type=Path, help="Stored invoice as JSON file")
    source.add_argument("--sample", help="Built-in sample scenario (code or name, e.g. 01 or single_19)")
    parser.add_argument("--format", choices=list(EXPORT_FORMATS), default="xrechnung")
    parser.add_argument("--out", required=True, type=Path, help="Output directory")
    parser.add_argument("--xsd", help="Override for the XRechnung CII schema")
    parser.add_argument("--skip-xsd", action="store_true", help="Skip XSD validation of the XML")
    parser.add_argument(
        "--lxml", action="store_true", help="Validate the XSD in-process with lxml instead of xmllint"
    )
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    return parser.parse_args(list(argv) if argv is not None else None)


def main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging("DEBUG" if args.verbose else None)

    report = export_invoice(
        invoice=_load_invoice(args.input, args.sample),
        format_name=args.format,
        dest_dir=args.out,
        xsd_path=args.xsd,
        skip_xsd=args.skip_xsd,
        in_process_xsd=args.lxml,
    )
    if not report["valid"]:
        logger.error("Export failed: %s", report.get("message", "validation failed"))
        print(json.dumps(report, indent=2, ensure_ascii=False))
        return 1

    print(f"Exported {args.out / report['filename']}")
    for issue in report["issues"]:
        print(f" - [{issue['severity']}/{issue['source']}] {issue['message']}")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
