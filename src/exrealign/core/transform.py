from __future__ import annotations

from collections.abc import Sequence

from exrealign.core.mapping import ColumnMapping
from exrealign.models import Cell, CellValue, Sheet


def resolve_source_column(
    template_header: str,
    full_source_header_row: Sequence[str | None],
    mapping: ColumnMapping,
) -> int | None:
    """Find the source column index feeding a template header.

    The first mapping entry (insertion order) targeting the template header
    wins; its source label is looked up by first occurrence in the full,
    unsliced source header row.

    Returns:
        0-based source column index, or None when unmapped or not found.
    """
    source = mapping.source_for(template_header)
    if source is None:
        return None
    for index, label in enumerate(full_source_header_row):
        if label == source:
            return index
    return None


def transform_values(
    full_source_header_row: Sequence[str | None],
    source_data_rows: Sequence[Sequence[CellValue]],
    template_headers: Sequence[str],
    mapping: ColumnMapping,
) -> list[list[CellValue]]:
    """Realign source rows to the template column order as plain values.

    Args:
        full_source_header_row: Source header row before any column slicing.
        source_data_rows: Rows strictly after the header row.
        template_headers: Target header labels in output order.
        mapping: Source -> template header mapping.

    Returns:
        Matrix whose first row is ``template_headers`` followed by one row per
        source data row, each exactly ``len(template_headers)`` wide. Unmapped
        or missing columns are ``""``.
    """
    indexes = [
        resolve_source_column(header, full_source_header_row, mapping)
        for header in template_headers
    ]
    matrix: list[list[CellValue]] = [list(template_headers)]
    for row in source_data_rows:
        matrix.append([_pick(row, index) for index in indexes])
    return matrix


def _pick(row: Sequence[CellValue], index: int | None) -> CellValue:
    if index is None or index >= len(row):
        return ""
    value = row[index]
    return "" if value is None else value


def rows_to_sheet(rows: Sequence[Sequence[CellValue]]) -> Sheet:
    """Lay a value matrix out from A1, one typed cell per value."""
    sheet = Sheet()
    for row_index, row in enumerate(rows):
        for col_index, value in enumerate(row):
            sheet.put(row_index, col_index, Cell.of(value))
    return sheet


__all__ = ["resolve_source_column", "rows_to_sheet", "transform_values"]
