"""Header and data-row readers over the sparse sheet model.

Row numbers passed in here are 1-based, as users type them; everything is
translated to 0-based indices before touching the sheet.
"""

from __future__ import annotations

from exrealign.models import CellValue, Sheet, render_text
from exrealign.shared.a1 import column_label_to_index


def extract_headers(
    sheet: Sheet,
    header_row: int,
    start_column: str = "A",
    end_column: str | None = None,
) -> list[str]:
    """Read header labels from one row over a column span.

    Args:
        sheet: Sheet to read.
        header_row: 1-based header row number.
        start_column: First column label of the span.
        end_column: Last column label of the span; blank or None reads through
            the last used column.

    Returns:
        Header labels in column order. Columns without a defined cell are
        omitted; an empty-string cell is kept as ``""``.
    """
    bounds = sheet.used_range
    row_index = header_row - 1
    if bounds is None or not bounds.contains_row(row_index):
        return []
    start = column_label_to_index(start_column)
    end = (
        column_label_to_index(end_column)
        if end_column and end_column.strip()
        else bounds.max_col
    )
    headers: list[str] = []
    for col in range(start, end + 1):
        cell = sheet.get(row_index, col)
        if cell is None or cell.value is None:
            continue
        headers.append(render_text(cell.value) or "")
    return headers


def sheet_rows(sheet: Sheet) -> list[list[CellValue]]:
    """Return the sheet as a dense grid anchored at A1, None for gaps."""
    bounds = sheet.used_range
    if bounds is None:
        return []
    width = bounds.max_col + 1
    rows: list[list[CellValue]] = [
        [None] * width for _ in range(bounds.max_row + 1)
    ]
    for (row, col), cell in sheet.cells.items():
        rows[row][col] = cell.value
    return rows


def source_header_row(sheet: Sheet, header_row: int) -> list[str | None]:
    """Return the full, unsliced header row rendered as labels."""
    rows = sheet_rows(sheet)
    row_index = header_row - 1
    if row_index < 0 or row_index >= len(rows):
        return []
    return [render_text(value) for value in rows[row_index]]


def source_data_rows(sheet: Sheet, header_row: int) -> list[list[CellValue]]:
    """Return the rows strictly after the header row."""
    return sheet_rows(sheet)[max(header_row, 0) :]
