"""In-memory workbook model shared by the loader, the engine and the writer."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, model_validator

CellValue: TypeAlias = (
    str | bool | int | float | datetime | date | time | timedelta | None
)
CellKind = Literal["s", "n", "b", "d", "e", "z"]
CellCoordinate: TypeAlias = tuple[int, int]


def render_text(value: CellValue) -> str | None:
    """Render a scalar the way it reads in a cell (``TRUE``, ``30``, ``1.5``)."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime | date | time):
        return value.isoformat()
    return str(value)


def kind_of(value: CellValue, *, error: bool = False) -> CellKind:
    """Return the type tag for a scalar value."""
    if value is None:
        return "z"
    if isinstance(value, bool):
        return "b"
    if isinstance(value, int | float):
        return "n"
    if isinstance(value, datetime | date | time | timedelta):
        return "d"
    return "e" if error else "s"


class Cell(BaseModel):
    """Single cell: raw value, optional formula, cached text and type tag.

    ``array_ref`` is set on the anchor cell of an array (CSE) formula and holds
    the A1 range the array covers.
    """

    model_config = ConfigDict(frozen=True)

    value: CellValue = None
    formula: str | None = None
    text: str | None = None
    kind: CellKind = "z"
    array_ref: str | None = None

    @classmethod
    def of(
        cls,
        value: CellValue,
        *,
        formula: str | None = None,
        error: bool = False,
        array_ref: str | None = None,
    ) -> Cell:
        """Build a cell, deriving the type tag and cached text from the value."""
        return cls(
            value=value,
            formula=formula,
            text=render_text(value),
            kind=kind_of(value, error=error),
            array_ref=array_ref,
        )

    @classmethod
    def string(cls, value: object) -> Cell:
        """Build a string-typed cell from any scalar."""
        text = "" if value is None else str(value)
        return cls(value=text, text=text, kind="s")


class SheetRange(BaseModel):
    """Rectangular bounds of a sheet, 0-based and inclusive."""

    model_config = ConfigDict(frozen=True)

    min_row: int = Field(ge=0)
    min_col: int = Field(ge=0)
    max_row: int = Field(ge=0)
    max_col: int = Field(ge=0)

    @model_validator(mode="after")
    def _validate_order(self) -> SheetRange:
        if self.min_row > self.max_row or self.min_col > self.max_col:
            raise ValueError("Range minimum must not exceed maximum.")
        return self

    @property
    def row_count(self) -> int:
        return self.max_row - self.min_row + 1

    @property
    def col_count(self) -> int:
        return self.max_col - self.min_col + 1

    def contains_row(self, row: int) -> bool:
        """Check whether a row falls inside the range.

        Args:
            row: 0-based row index.

        Returns:
            True when ``min_row <= row <= max_row``.
        """
        return self.min_row <= row <= self.max_row


class Sheet(BaseModel):
    """Sparse sheet: defined cells keyed by 0-based (row, col)."""

    cells: dict[CellCoordinate, Cell] = Field(default_factory=dict)
    used_range: SheetRange | None = None

    def get(self, row: int, col: int) -> Cell | None:
        """Return the cell at a coordinate, or None when undefined."""
        return self.cells.get((row, col))

    def put(self, row: int, col: int, cell: Cell) -> None:
        """Store a cell and grow the used range to include it."""
        self.cells[(row, col)] = cell
        if self.used_range is None:
            self.used_range = SheetRange(
                min_row=row, min_col=col, max_row=row, max_col=col
            )
            return
        bounds = self.used_range
        self.used_range = SheetRange(
            min_row=min(bounds.min_row, row),
            min_col=min(bounds.min_col, col),
            max_row=max(bounds.max_row, row),
            max_col=max(bounds.max_col, col),
        )


class Workbook(BaseModel):
    """Ordered collection of sheets keyed by unique name."""

    sheets: dict[str, Sheet] = Field(default_factory=dict)

    @property
    def sheet_names(self) -> list[str]:
        return list(self.sheets)

    def get_sheet(self, name: str) -> Sheet | None:
        return self.sheets.get(name)

    def add_sheet(self, name: str, sheet: Sheet) -> None:
        """Append a sheet; names must be unique."""
        if name in self.sheets:
            raise ValueError(f"Sheet already exists: {name}")
        self.sheets[name] = sheet
