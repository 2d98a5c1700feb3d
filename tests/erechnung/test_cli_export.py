"""Tests for the export CLI."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from erechnung.samples import build_stored_invoice, get_scenario
from tools.erechnung import export as cli


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch) -> None:
    monkeypatch.setattr(cli, "setup_logging", lambda level=None: None)


@pytest.mark.parametrize(
    ("format_name", "filename"),
    [("xrechnung", "RE-2025-0002-xrechnung.xml"), ("zugferd", "RE-2025-0002-zugferd.pdf")],
)
def test_cli_exports_sample(tmp_path: Path, format_name: str, filename: str, capsys) -> None:
    out_dir = tmp_path / "out"

    exit_code = cli.main(["--sample", "02", "--format", format_name, "--out", str(out_dir), "--lxml"])

    assert exit_code == 0
    assert (out_dir / filename).exists()
    report = json.loads((out_dir / "validation.json").read_text(encoding="utf-8"))
    assert report["valid"] is True
    assert report["filename"] == filename
    assert report["format"] == format_name
    assert f"Exported {out_dir / filename}" in capsys.readouterr().out


def test_cli_reads_input_file(tmp_path: Path) -> None:
    source = tmp_path / "invoice.json"
    source.write_text(json.dumps(build_stored_invoice(get_scenario("raw_lines"))), encoding="utf-8")

    exit_code = cli.main(["--input", str(source), "--out", str(tmp_path / "out"), "--skip-xsd"])

    assert exit_code == 0
    assert (tmp_path / "out" / "RE-2025-0005-xrechnung.xml").exists()


def test_cli_reports_missing_review_data(tmp_path: Path, capsys) -> None:
    """Fehlende Review-Daten: Exit-Code 1, Report mit Fehlercode, kein Artefakt."""
    source = tmp_path / "invoice.json"
    stored = build_stored_invoice(get_scenario("single_19"), with_review=False)
    source.write_text(json.dumps(stored), encoding="utf-8")
    out_dir = tmp_path / "out"

    exit_code = cli.main(["--input", str(source), "--format", "zugferd", "--out", str(out_dir), "--lxml"])

    assert exit_code == 1
    report = json.loads((out_dir / "validation.json").read_text(encoding="utf-8"))
    assert report == {
        "format": "zugferd",
        "valid": False,
        "code": "MISSING_REVIEW_DATA",
        "message": "ZUGFeRD export requires review data. Please validate the invoice first.",
    }
    assert not list(out_dir.glob("*.pdf"))
    assert "MISSING_REVIEW_DATA" in capsys.readouterr().out


def test_cli_requires_source(tmp_path: Path) -> None:
    with pytest.raises(SystemExit):
        cli.parse_args(["--out", str(tmp_path)])


def test_cli_rejects_non_object_input(tmp_path: Path) -> None:
    source = tmp_path / "invoice.json"
    source.write_text("[]", encoding="utf-8")

    with pytest.raises(SystemExit, match="Input must contain a JSON object"):
        cli.main(["--input", str(source), "--out", str(tmp_path / "out")])
