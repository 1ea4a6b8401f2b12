from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from io import BytesIO
import logging
from pathlib import Path
import re

import anyio
from openpyxl import load_workbook
from openpyxl.worksheet.formula import ArrayFormula
from pydantic import ValidationError
import pytest

from exrealign.core.mapping import ColumnMapping
from exrealign.core.workbook import decode_workbook
from exrealign.errors import RealignError
from exrealign.session import (
    ExportResult,
    RealignSession,
    SourceSettings,
    write_export,
)

XlsxBuilder = Callable[..., bytes]
FIXED_NOW = datetime(2024, 3, 5, 14, 7, 9)


def _session(
    xlsx_bytes: XlsxBuilder,
    source: dict[str, list[list[object]]],
    template: dict[str, list[list[object]]],
) -> RealignSession:
    session = RealignSession()
    session.set_source_workbook(decode_workbook(xlsx_bytes(source)))
    session.set_template_workbook(decode_workbook(xlsx_bytes(template)))
    return session


@pytest.fixture
def session(
    xlsx_bytes: XlsxBuilder,
    people_rows: list[list[object]],
    template_rows: list[list[object]],
) -> RealignSession:
    return _session(
        xlsx_bytes,
        {"People": people_rows, "Notes": [["n"]]},
        {"Layout": template_rows},
    )


def test_new_session_lists_missing_requirements() -> None:
    assert RealignSession().missing_requirements() == [
        "Upload source file",
        "Upload template file",
    ]


def test_loading_selects_first_sheets(session: RealignSession) -> None:
    assert session.source.sheet == "People"
    assert session.template.sheet == "Layout"
    assert session.missing_requirements() == []


def test_headers_honor_column_span(xlsx_bytes: XlsxBuilder) -> None:
    session = _session(
        xlsx_bytes,
        {"S": [["a", "b", "c", "d", "e"]]},
        {"T": [["a"]]},
    )
    session.configure_source(start_column="A", end_column="C")
    assert session.source_headers() == ["a", "b", "c"]
    session.configure_source(end_column=None)
    assert session.source_headers() == ["a", "b", "c", "d", "e"]


def test_source_settings_validate_columns() -> None:
    assert SourceSettings(start_column="b", end_column=" ").model_dump() == {
        "sheet": None,
        "header_row": 1,
        "start_column": "B",
        "end_column": None,
    }
    with pytest.raises(ValidationError):
        SourceSettings(start_column="1")
    with pytest.raises(ValidationError):
        SourceSettings(header_row=0)


def test_configure_rejects_sheet_changes(session: RealignSession) -> None:
    with pytest.raises(ValueError, match="select_source_sheet"):
        session.configure_source(sheet="Notes")


def test_initialize_mapping_runs_only_while_empty(session: RealignSession) -> None:
    mapping = session.initialize_mapping()
    assert mapping.as_dict() == {"Name": "Name", "City": "City"}
    session.set_mapping("City", None)
    assert session.initialize_mapping().as_dict() == {"Name": "Name"}


def test_sheet_change_resets_mapping(session: RealignSession) -> None:
    session.initialize_mapping()
    session.configure_source(header_row=1, end_column="C")
    assert not session.mapping.is_empty
    session.select_source_sheet("Notes")
    assert session.mapping.is_empty


def test_select_unknown_sheet(session: RealignSession) -> None:
    with pytest.raises(RealignError, match="Sheet 'Missing' not found") as exc:
        session.select_template_sheet("Missing")
    assert exc.value.kind == "sheet_not_found"


def test_export_values(session: RealignSession) -> None:
    session.initialize_mapping()
    result = session.export_values(now=FIXED_NOW)
    assert result.ok
    assert result.filename == "realigned_2024-03-05T14-07-09.xlsx"
    assert (result.column_count, result.data_row_count) == (3, 2)

    ws = load_workbook(BytesIO(result.payload))["Realigned_Data"]
    rows = [list(row) for row in ws.iter_rows(values_only=True)]
    assert rows == [
        ["City", "Name", "Country"],
        ["NYC", "Alice", None],
        ["LA", "Bob", None],
    ]


def test_export_values_custom_filename(session: RealignSession) -> None:
    session.custom_filename = "myfile"
    result = session.export_values()
    assert re.match(r"^myfile_\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}\.xlsx$", result.filename)


def test_export_values_reports_duplicate_targets(session: RealignSession) -> None:
    session.replace_mapping(
        ColumnMapping.from_pairs([("Name", "Name"), ("City", "Name")])
    )
    result = session.export_values()
    assert result.ok
    assert len(result.warnings) == 1
    assert "using 'Name'" in result.warnings[0]


def test_export_values_warns_when_nothing_is_mapped(
    session: RealignSession, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING):
        result = session.export_values()
    assert result.ok
    assert result.warnings == [
        "No source headers are mapped to the template headers; "
        "every data column is blank."
    ]
    assert "No source headers are mapped" in caplog.text


def test_export_with_formulas_warns_when_mapping_is_cleared(
    session: RealignSession,
) -> None:
    session.initialize_mapping()
    session.set_mapping("Name", "")
    session.set_mapping("City", None)
    session.set_mapping("Age", "Unknown")
    result = session.export_with_formulas()
    assert result.ok
    assert any("No source headers are mapped" in w for w in result.warnings)


def test_export_values_missing_template_headers(xlsx_bytes: XlsxBuilder) -> None:
    session = _session(xlsx_bytes, {"S": [["Name"], ["Alice"]]}, {"T": [[]]})
    result = session.export_values()
    assert result.error is not None
    assert result.error.kind == "missing_template_headers"
    assert result.payload == b""


def test_export_values_missing_source_headers(xlsx_bytes: XlsxBuilder) -> None:
    session = _session(xlsx_bytes, {"S": [["Name"], ["Alice"]]}, {"T": [["Name"]]})
    session.configure_source(header_row=5)
    result = session.export_values()
    assert result.error is not None
    assert result.error.kind == "missing_source_headers"


def test_export_values_missing_source_data(xlsx_bytes: XlsxBuilder) -> None:
    session = _session(xlsx_bytes, {"S": [["Name"]]}, {"T": [["Name"]]})
    result = session.export_values()
    assert result.error is not None
    assert result.error.kind == "missing_source_data"
    assert result.error.message == (
        "No source data found. Please check your start row setting."
    )


def test_export_with_formulas(xlsx_bytes: XlsxBuilder) -> None:
    session = _session(
        xlsx_bytes,
        {
            "Orders": [["Price", "Qty", "Total"], [2, 3, "=A2*B2"]],
            "Summary": [["=SUM(Orders!C:C)"]],
        },
        {"T": [["Total", "Price"]]},
    )
    session.initialize_mapping()
    result = session.export_with_formulas(now=FIXED_NOW)
    assert result.ok
    assert result.filename == "realigned_with_formulas_2024-03-05T14-07-09.xlsx"
    assert result.sheet_name == "Realigned_Data"

    book = load_workbook(BytesIO(result.payload))
    assert book.sheetnames == ["Orders", "Summary", "Realigned_Data"]
    assert book["Orders"]["C2"].value == "=A2*B2"
    assert book["Summary"]["A1"].value == "=SUM(Orders!C:C)"
    realigned = book["Realigned_Data"]
    assert realigned["A1"].value == "Total"
    assert realigned["B1"].value == "Price"
    assert realigned["A2"].value == "=A2*B2"
    assert realigned["B2"].value == 2


def test_export_with_formulas_keeps_array_formulas(xlsx_bytes: XlsxBuilder) -> None:
    session = _session(
        xlsx_bytes,
        {
            "Orders": [
                ["Price", "Qty", "Total"],
                [2, 3, ArrayFormula("C2", "=SUM(A2:A3*B2:B3)")],
                [4, 5],
            ]
        },
        {"T": [["Total", "Price"]]},
    )
    session.initialize_mapping()
    result = session.export_with_formulas()
    book = load_workbook(BytesIO(result.payload))
    kept = book["Orders"]["C2"].value
    assert isinstance(kept, ArrayFormula)
    assert kept.ref == "C2"
    moved = book["Realigned_Data"]["A2"].value
    assert isinstance(moved, ArrayFormula)
    assert moved.ref == "A2"
    assert moved.text == "=SUM(A2:A3*B2:B3)"


def test_export_with_formulas_renames_clashing_sheet(xlsx_bytes: XlsxBuilder) -> None:
    session = _session(
        xlsx_bytes,
        {"Data": [["Name"], ["Alice"]], "Realigned_Data": [["old"]]},
        {"T": [["Name"]]},
    )
    session.initialize_mapping()
    result = session.export_with_formulas()
    assert result.sheet_name == "Realigned_Data_1"
    assert any("already exists" in warning for warning in result.warnings)


def test_export_with_formulas_without_source_workbook(
    xlsx_bytes: XlsxBuilder,
) -> None:
    session = RealignSession()
    session.set_template_workbook(decode_workbook(xlsx_bytes({"T": [["Name"]]})))
    result = session.export_with_formulas()
    assert result.error is not None
    assert result.error.kind == "missing_source_workbook"
    assert result.error.message == (
        "Source workbook not available. Please re-upload your source file."
    )


def test_load_async(xlsx_bytes: XlsxBuilder) -> None:
    session = RealignSession()
    anyio.run(session.load_source_async, xlsx_bytes({"S": [["Name"], ["Alice"]]}))
    anyio.run(session.load_template_async, xlsx_bytes({"T": [["name"]]}))
    assert session.initialize_mapping().as_dict() == {"Name": "name"}


def test_write_export(session: RealignSession, tmp_path: Path) -> None:
    session.initialize_mapping()
    result = session.export_values(now=FIXED_NOW)
    written = write_export(result, tmp_path / "out")
    assert written.out_path is not None
    assert Path(written.out_path).read_bytes() == result.payload

    renamed = write_export(result, tmp_path / "out", on_conflict="rename")
    assert renamed.out_path is not None
    assert Path(renamed.out_path).name == "realigned_2024-03-05T14-07-09_1.xlsx"
    assert renamed.warnings == [
        "Output exists; renamed to: realigned_2024-03-05T14-07-09_1.xlsx"
    ]


def test_write_export_rejects_failed_result(tmp_path: Path) -> None:
    failed = ExportResult.model_validate(
        {
            "mode": "values",
            "filename": "x.xlsx",
            "error": {"kind": "missing_source_data", "message": "No data"},
        }
    )
    with pytest.raises(ValueError, match="Cannot write a failed export"):
        write_export(failed, tmp_path)
