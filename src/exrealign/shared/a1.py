from __future__ import annotations

import re

from exrealign.models import SheetRange

_A1_PATTERN = re.compile(r"^[A-Za-z]{1,3}[1-9][0-9]*$")
_A1_RANGE_PATTERN = re.compile(r"^[A-Za-z]{1,3}[1-9][0-9]*:[A-Za-z]{1,3}[1-9][0-9]*$")
_COLUMN_LABEL_PATTERN = re.compile(r"^[A-Za-z]{1,3}$")

MAX_COLUMN_INDEX = 16_383


def split_a1(value: str) -> tuple[str, int]:
    """Split A1 notation into normalized (column_label, row_number)."""
    candidate = value.strip()
    if not _A1_PATTERN.match(candidate):
        raise ValueError(f"Invalid cell reference: {value}")
    idx = 0
    for index, char in enumerate(candidate):
        if char.isdigit():
            idx = index
            break
    return candidate[:idx].upper(), int(candidate[idx:])


def column_label_to_index(label: str) -> int:
    """Convert Excel-style column label (A/AA) to 0-based index."""
    normalized = label.strip().upper()
    if not _COLUMN_LABEL_PATTERN.match(normalized):
        raise ValueError(f"Invalid column label: {label}")
    index = 0
    for char in normalized:
        index = index * 26 + (ord(char) - ord("A") + 1)
    if index - 1 > MAX_COLUMN_INDEX:
        raise ValueError(f"Column label out of range: {label}")
    return index - 1


def column_index_to_label(index: int) -> str:
    """Convert 0-based column index to Excel-style column label."""
    if index < 0:
        raise ValueError("Column index must not be negative.")
    if index > MAX_COLUMN_INDEX:
        raise ValueError(f"Column index out of range: {index}")
    chunks: list[str] = []
    current = index + 1
    while current > 0:
        current -= 1
        chunks.append(chr(ord("A") + (current % 26)))
        current //= 26
    return "".join(reversed(chunks))


def encode_cell(row: int, col: int) -> str:
    """Format 0-based row/column as an A1 address.

    Args:
        row: 0-based row index.
        col: 0-based column index.

    Returns:
        A1 address such as ``"B3"``.
    """
    if row < 0:
        raise ValueError("Row index must not be negative.")
    return f"{column_index_to_label(col)}{row + 1}"


def decode_cell(address: str) -> tuple[int, int]:
    """Parse an A1 address into a 0-based (row, col) tuple."""
    label, row = split_a1(address)
    return row - 1, column_label_to_index(label)


def encode_range(bounds: SheetRange) -> str:
    """Format range bounds as ``"A1:C10"``."""
    start = encode_cell(bounds.min_row, bounds.min_col)
    end = encode_cell(bounds.max_row, bounds.max_col)
    return f"{start}:{end}"


def decode_range(value: str) -> SheetRange:
    """Parse an A1 range (or single cell) into normalized bounds.

    Args:
        value: Range text such as ``"A1:C10"``, ``"c10:a1"`` or ``"B2"``.

    Returns:
        Bounds with min <= max on both axes.

    Raises:
        ValueError: If the text is not a valid reference.
    """
    candidate = value.strip()
    if ":" not in candidate:
        row, col = decode_cell(candidate)
        return SheetRange(min_row=row, min_col=col, max_row=row, max_col=col)
    if not _A1_RANGE_PATTERN.match(candidate):
        raise ValueError(f"Invalid range reference: {value}")
    start, end = candidate.split(":", maxsplit=1)
    start_row, start_col = decode_cell(start)
    end_row, end_col = decode_cell(end)
    return SheetRange(
        min_row=min(start_row, end_row),
        min_col=min(start_col, end_col),
        max_row=max(start_row, end_row),
        max_col=max(start_col, end_col),
    )


def range_cell_count(value: str) -> int:
    """Return the number of cells represented by an A1 range."""
    bounds = decode_range(value)
    return bounds.row_count * bounds.col_count
