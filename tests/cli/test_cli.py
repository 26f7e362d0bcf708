from __future__ import annotations

import json
from pathlib import Path

from docx import Document
import pytest

from odpdoc.cli.export_document import main as export_main
from odpdoc.cli.extract_structure import main as extract_main
from odpdoc.cli.import_document import main as import_main
from odpdoc.cli.register_setup import main as setup_main


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    for name in ("ODPDOC_DB_PATH", "ODPDOC_NOOP_UPDATES", "ODPDOC_UNRESOLVED_SETUP", "ODPDOC_ACTOR"):
        monkeypatch.delenv(name, raising=False)


def _write_document(path: Path, statement: str = "Data shall be checked on entry.") -> None:
    document = Document()
    document.add_heading("Operational Needs", level=1)
    document.add_heading("Data Quality", level=2)
    document.add_paragraph(f"Statement: {statement}")
    document.add_paragraph("Impacts Stakeholders: FMP")
    document.save(str(path))


def test_import_export_round_trip_through_cli(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    db_path = tmp_path / "records.db"
    source = tmp_path / "edited.docx"
    exported = tmp_path / "exported.docx"
    _write_document(source)

    assert setup_main(["--kind", "stakeholder", "--name", "FMP", "--db-path", str(db_path)]) == 0
    setup_payload = json.loads(capsys.readouterr().out)
    assert [element["name"] for element in setup_payload["elements"]] == ["FMP"]

    exit_code = import_main(["--path", str(source), "--scope", "idl", "--db-path", str(db_path)])
    payload = json.loads(capsys.readouterr().out)

    assert exit_code == 0
    assert payload["committed"] is True
    assert payload["created"] == ["on:idl/1"]
    assert payload["errors"] == []

    assert export_main(["--scope", "idl", "--output", str(exported), "--db-path", str(db_path)]) == 0
    export_payload = json.loads(capsys.readouterr().out)
    assert export_payload["bytes"] > 0

    reimport_code = import_main(["--path", str(exported), "--scope", "idl", "--db-path", str(db_path)])
    reimport = json.loads(capsys.readouterr().out)

    assert reimport_code == 0
    assert reimport["created"] == []
    assert reimport["updated"] == []
    assert reimport["skipped"] == ["on:idl/1"]


def test_import_with_errors_exits_with_rollback_code(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    source = tmp_path / "edited.docx"
    _write_document(source)

    exit_code = import_main(["--path", str(source), "--scope", "idl", "--db-path", str(tmp_path / "records.db")])
    payload = json.loads(capsys.readouterr().out)

    assert exit_code == 1
    assert payload["committed"] is False
    assert payload["created"] == []
    assert [error["code"] for error in payload["errors"]] == ["unresolved-reference"]
    assert payload["errors"][0]["field"] == "impacts_stakeholders"


def test_import_of_corrupt_file_is_fatal(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    source = tmp_path / "corrupt.docx"
    source.write_bytes(b"not a zip archive")

    exit_code = import_main(["--path", str(source), "--scope", "idl", "--db-path", str(tmp_path / "records.db")])
    payload = json.loads(capsys.readouterr().out)

    assert exit_code == 2
    assert "Unsupported document format" in payload["fatal"]


def test_extract_structure_prints_generic_tree(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    source = tmp_path / "edited.docx"
    _write_document(source)

    assert extract_main(["--path", str(source)]) == 0
    payload = json.loads(capsys.readouterr().out)

    needs = payload["tree"]["subsections"][0]
    assert needs["title"] == "Operational Needs"
    assert needs["subsections"][0]["content"]["paragraphs"][0]["text"].startswith("Statement:")
    assert payload["warnings"] == []


def test_settings_come_from_environment(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    source = tmp_path / "edited.docx"
    _write_document(source)
    monkeypatch.setenv("ODPDOC_DB_PATH", str(tmp_path / "env.db"))
    monkeypatch.setenv("ODPDOC_UNRESOLVED_SETUP", "create")

    exit_code = import_main(["--path", str(source), "--scope", "idl"])
    payload = json.loads(capsys.readouterr().out)

    assert exit_code == 0
    assert [element["name"] for element in payload["created_setup_elements"]] == ["FMP"]
    assert (tmp_path / "env.db").exists()
