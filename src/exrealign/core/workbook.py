from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from io import BytesIO
import logging
from pathlib import Path
from typing import Any
import warnings
from zipfile import BadZipFile

import anyio
from openpyxl import Workbook as OpenpyxlWorkbook
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.formula import ArrayFormula, DataTableFormula

from exrealign.errors import RealignError
from exrealign.models import Cell, Sheet, Workbook

logger = logging.getLogger(__name__)

_DECODE_ERRORS = (BadZipFile, InvalidFileException, KeyError, ValueError, OSError)


@contextmanager
def openpyxl_workbook(data: bytes, *, data_only: bool) -> Iterator[Any]:
    """Open an openpyxl workbook from bytes and ensure it is closed.

    Args:
        data: Raw workbook bytes.
        data_only: Whether to read cached formula results instead of formulas.

    Yields:
        openpyxl workbook instance.
    """
    with warnings.catch_warnings():
        warnings.filterwarnings(
            "ignore",
            message="Unknown extension is not supported and will be removed",
            category=UserWarning,
            module="openpyxl",
        )
        warnings.filterwarnings(
            "ignore",
            message="Conditional Formatting extension is not supported and will be removed",
            category=UserWarning,
            module="openpyxl",
        )
        warnings.filterwarnings(
            "ignore",
            message="Data Validation extension is not supported and will be removed",
            category=UserWarning,
            module="openpyxl",
        )
        wb = load_workbook(BytesIO(data), data_only=data_only)
    try:
        yield wb
    finally:
        wb.close()


def decode_workbook(data: bytes) -> Workbook:
    """Decode ``.xlsx`` bytes into the in-memory workbook model.

    Formulas come from a regular load and cached results from a ``data_only``
    load, so each formula cell carries both.

    Args:
        data: Raw workbook bytes.

    Returns:
        Decoded workbook with sheets in file order.

    Raises:
        RealignError: If the bytes are not a readable workbook.
    """
    try:
        with openpyxl_workbook(data, data_only=False) as formula_book:
            with openpyxl_workbook(data, data_only=True) as value_book:
                workbook = Workbook()
                for ws in formula_book.worksheets:
                    workbook.add_sheet(
                        ws.title, _decode_sheet(ws, value_book[ws.title])
                    )
    except _DECODE_ERRORS as exc:
        raise RealignError.of(
            "decode_failure", f"Failed to read workbook: {exc}"
        ) from exc
    logger.debug("Decoded workbook with sheets: %s", workbook.sheet_names)
    return workbook


async def decode_workbook_async(data: bytes) -> Workbook:
    """Decode workbook bytes in a worker thread."""
    return await anyio.to_thread.run_sync(decode_workbook, data)


def load_workbook_file(path: Path) -> Workbook:
    """Read and decode a workbook file from disk."""
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise RealignError.of(
            "decode_failure", f"Failed to read workbook file: {path}"
        ) from exc
    return decode_workbook(data)


def encode_workbook(workbook: Workbook) -> bytes:
    """Encode the workbook model as ``.xlsx`` bytes.

    Formula cells are written as formulas; openpyxl does not persist cached
    results, so the spreadsheet application recalculates them on open. Cells
    with an ``array_ref`` are written back as array formulas over that range.
    """
    book = OpenpyxlWorkbook()
    default_sheet = book.active
    for name, sheet in workbook.sheets.items():
        ws = book.create_sheet(title=name)
        for (row, col), cell in sorted(sheet.cells.items()):
            target = ws.cell(row=row + 1, column=col + 1)
            if cell.formula is not None:
                if cell.array_ref is not None:
                    target.value = ArrayFormula(cell.array_ref, cell.formula)
                else:
                    target.value = cell.formula
                continue
            target.value = cell.value
            if cell.kind == "s" and isinstance(cell.value, str):
                # Keep text such as "=A1" from being written as a formula.
                target.data_type = "s"
    if workbook.sheets and default_sheet is not None:
        book.remove(default_sheet)
    buffer = BytesIO()
    book.save(buffer)
    return buffer.getvalue()


def _decode_sheet(formula_ws: Any, value_ws: Any) -> Sheet:
    """Collect defined cells from paired formula/value worksheets.

    Data-table (what-if) formulas are not kept: their cells carry the cached
    result only, and cells without one are left undefined.
    """
    sheet = Sheet()
    for row in formula_ws.iter_rows():
        for source in row:
            raw = source.value
            if raw is None:
                continue
            row_index = source.row - 1
            col_index = source.column - 1
            cached = value_ws.cell(row=source.row, column=source.column)
            if isinstance(raw, DataTableFormula):
                logger.warning(
                    "Data table formula at %s!%s is kept as its cached value.",
                    formula_ws.title,
                    source.coordinate,
                )
                if cached.value is not None:
                    sheet.put(
                        row_index,
                        col_index,
                        Cell.of(cached.value, error=cached.data_type == "e"),
                    )
                continue
            if isinstance(raw, ArrayFormula):
                cell = Cell.of(
                    cached.value,
                    formula=raw.text,
                    error=cached.data_type == "e",
                    array_ref=raw.ref,
                )
            elif source.data_type == "f":
                cell = Cell.of(
                    cached.value, formula=str(raw), error=cached.data_type == "e"
                )
            else:
                cell = Cell.of(raw, error=source.data_type == "e")
            sheet.put(row_index, col_index, cell)
    return sheet


__all__ = [
    "decode_workbook",
    "decode_workbook_async",
    "encode_workbook",
    "load_workbook_file",
    "openpyxl_workbook",
]
