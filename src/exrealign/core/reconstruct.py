"""Formula-preserving workbook reconstruction.

The original sheets are copied cell by cell and a realigned sheet is appended.
Copied cells keep their formula text verbatim: references are not rewritten
for the new column position, so relative column references in moved formulas
can point somewhere else after reordering. The range of a single-column array
formula moves with its cell; wider array formulas become plain formulas on the
realigned sheet.
"""

from __future__ import annotations

from collections.abc import Sequence
import logging

from exrealign.core.headers import source_data_rows, source_header_row
from exrealign.core.mapping import ColumnMapping
from exrealign.core.transform import resolve_source_column
from exrealign.errors import RealignError
from exrealign.models import Cell, Sheet, SheetRange, Workbook
from exrealign.shared.a1 import decode_range, encode_cell, encode_range
from exrealign.shared.output_path import numbered_names

logger = logging.getLogger(__name__)

REALIGNED_SHEET_NAME = "Realigned_Data"


def copy_sheet(sheet: Sheet) -> Sheet:
    """Copy every defined cell and the used range unchanged."""
    return Sheet(
        cells={coord: cell.model_copy() for coord, cell in sheet.cells.items()},
        used_range=sheet.used_range,
    )


def copy_workbook(workbook: Workbook) -> Workbook:
    """Copy all sheets, in order, into a new workbook."""
    copied = Workbook()
    for name, sheet in workbook.sheets.items():
        copied.add_sheet(name, copy_sheet(sheet))
    return copied


def build_realigned_sheet(
    source_sheet: Sheet,
    header_row: int,
    template_headers: Sequence[str],
    mapping: ColumnMapping,
) -> Sheet:
    """Build the realigned sheet from original cell objects.

    Template headers go on the source header row; each data row keeps its
    original row number.

    Args:
        source_sheet: Sheet holding the source table.
        header_row: 1-based source header row number.
        template_headers: Target header labels in column order.
        mapping: Source -> template header mapping.

    Returns:
        New sheet with cells copied from the mapped source columns.
    """
    header_index = header_row - 1
    full_headers = source_header_row(source_sheet, header_row)
    data_rows = source_data_rows(source_sheet, header_row)
    indexes = [
        resolve_source_column(header, full_headers, mapping)
        for header in template_headers
    ]

    cells: dict[tuple[int, int], Cell] = {}
    for col, header in enumerate(template_headers):
        cells[(header_index, col)] = Cell.string(header)

    for offset, row_values in enumerate(data_rows):
        row = header_index + 1 + offset
        for col, source_col in enumerate(indexes):
            if source_col is None:
                cells[(row, col)] = Cell.string("")
                continue
            original = source_sheet.get(row, source_col)
            if original is not None:
                cells[(row, col)] = _moved_cell(original, col - source_col)
                continue
            fallback = row_values[source_col] if source_col < len(row_values) else None
            cells[(row, col)] = Cell.string(fallback)

    used_range = None
    if template_headers:
        used_range = SheetRange(
            min_row=header_index,
            min_col=0,
            max_row=header_index + len(data_rows),
            max_col=len(template_headers) - 1,
        )
    return Sheet(cells=cells, used_range=used_range)


def _moved_cell(original: Cell, shift: int) -> Cell:
    """Copy a cell moved ``shift`` columns, carrying its array range along."""
    if original.array_ref is None:
        return original.model_copy()
    bounds = decode_range(original.array_ref)
    if bounds.col_count != 1:
        return original.model_copy(update={"array_ref": None})
    moved = bounds.model_copy(
        update={"min_col": bounds.min_col + shift, "max_col": bounds.max_col + shift}
    )
    ref = (
        encode_cell(moved.min_row, moved.min_col)
        if moved.row_count == 1
        else encode_range(moved)
    )
    return original.model_copy(update={"array_ref": ref})


def reconstruct_workbook(
    workbook: Workbook,
    source_sheet_name: str,
    header_row: int,
    template_headers: Sequence[str],
    mapping: ColumnMapping,
    *,
    sheet_name: str = REALIGNED_SHEET_NAME,
) -> Workbook:
    """Copy the workbook and append the realigned sheet.

    Raises:
        RealignError: If the source sheet does not exist.
    """
    source_sheet = workbook.get_sheet(source_sheet_name)
    if source_sheet is None:
        raise RealignError.of(
            "sheet_not_found",
            f"Source sheet '{source_sheet_name}' not found in workbook.",
        )
    rebuilt = copy_workbook(workbook)
    target_name = next_available_sheet_name(rebuilt, sheet_name)
    if target_name != sheet_name:
        logger.warning(
            "Sheet '%s' already exists; writing realigned data to '%s'.",
            sheet_name,
            target_name,
        )
    rebuilt.add_sheet(
        target_name,
        build_realigned_sheet(source_sheet, header_row, template_headers, mapping),
    )
    return rebuilt


def next_available_sheet_name(workbook: Workbook, name: str) -> str:
    """Return ``name`` or the first free ``name_N`` variant."""
    if name not in workbook.sheets:
        return name
    for candidate in numbered_names(name):
        if candidate not in workbook.sheets:
            return candidate
    raise RuntimeError(f"No free sheet name left for {name}")


__all__ = [
    "REALIGNED_SHEET_NAME",
    "build_realigned_sheet",
    "copy_sheet",
    "copy_workbook",
    "next_available_sheet_name",
    "reconstruct_workbook",
]
