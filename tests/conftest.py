from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from io import BytesIO
from pathlib import Path

from openpyxl import Workbook as OpenpyxlWorkbook
import pytest

Rows = Sequence[Sequence[object]]
XlsxBuilder = Callable[[Mapping[str, Rows]], bytes]
XlsxWriter = Callable[[str, Mapping[str, Rows]], Path]


def _build_xlsx(sheets: Mapping[str, Rows]) -> bytes:
    """Build workbook bytes; strings starting with '=' become formulas."""
    book = OpenpyxlWorkbook()
    default_sheet = book.active
    for name, rows in sheets.items():
        ws = book.create_sheet(title=name)
        for row in rows:
            ws.append(list(row))
    if default_sheet is not None:
        book.remove(default_sheet)
    buffer = BytesIO()
    book.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def xlsx_bytes() -> XlsxBuilder:
    return _build_xlsx


@pytest.fixture
def xlsx_file(tmp_path: Path) -> XlsxWriter:
    def _write(name: str, sheets: Mapping[str, Rows]) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(_build_xlsx(sheets))
        return path

    return _write


@pytest.fixture
def people_rows() -> list[list[object]]:
    return [
        ["Name", "Age", "City"],
        ["Alice", 30, "NYC"],
        ["Bob", 0, "LA"],
    ]


@pytest.fixture
def template_rows() -> list[list[object]]:
    return [["City", "Name", "Country"]]
