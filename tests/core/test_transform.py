from __future__ import annotations

from exrealign.core.mapping import ColumnMapping, auto_map
from exrealign.core.transform import (
    resolve_source_column,
    rows_to_sheet,
    transform_values,
)


def test_transform_reorders_auto_mapped_columns() -> None:
    full_headers = ["Name", "Age", "City"]
    mapping = auto_map(full_headers, ["City", "Name"])
    matrix = transform_values(
        full_headers, [["Alice", 30, "NYC"]], ["City", "Name"], mapping
    )
    assert matrix == [["City", "Name"], ["NYC", "Alice"]]


def test_transform_unmapped_template_header_is_blank() -> None:
    full_headers = ["Name", "City"]
    template = ["Name", "Country"]
    mapping = auto_map(full_headers, template)
    matrix = transform_values(
        full_headers, [["Alice", "NYC"], ["Bob", "LA"]], template, mapping
    )
    assert [row[1] for row in matrix[1:]] == ["", ""]


def test_transform_shape_matches_template() -> None:
    template = ["A", "B", "C", "D"]
    rows = [[1], [2, 3], [], [4, 5, 6, 7, 8]]
    matrix = transform_values(["A"], rows, template, auto_map(["A"], template))
    assert len(matrix) == len(rows) + 1
    assert matrix[0] == template
    assert all(len(row) == len(template) for row in matrix)


def test_transform_keeps_falsy_values_and_blanks_none() -> None:
    mapping = ColumnMapping.from_pairs([("N", "N"), ("B", "B"), ("X", "X")])
    matrix = transform_values(
        ["N", "B", "X"], [[0, False, None]], ["N", "B", "X"], mapping
    )
    assert matrix[1] == [0, False, ""]


def test_transform_duplicate_target_uses_first_registered() -> None:
    mapping = ColumnMapping.from_pairs([("Old", "Name"), ("New", "Name")])
    matrix = transform_values(
        ["Old", "New"], [["first", "second"]], ["Name"], mapping
    )
    assert matrix[1] == ["first"]


def test_resolve_source_column_uses_first_occurrence() -> None:
    mapping = ColumnMapping.from_pairs([("Name", "Name")])
    assert resolve_source_column("Name", [None, "Name", "Name"], mapping) == 1


def test_resolve_source_column_missing_source_header() -> None:
    mapping = ColumnMapping.from_pairs([("Gone", "Name")])
    assert resolve_source_column("Name", ["Name"], mapping) is None
    assert resolve_source_column("City", ["Name"], mapping) is None


def test_resolve_source_column_reads_full_row_not_slice() -> None:
    # "City" sits past a narrowed header span but still feeds its column.
    mapping = ColumnMapping.from_pairs([("City", "City")])
    matrix = transform_values(
        ["Name", "Age", "City"], [["Alice", 30, "NYC"]], ["City"], mapping
    )
    assert matrix[1] == ["NYC"]


def test_rows_to_sheet_places_matrix_from_a1() -> None:
    sheet = rows_to_sheet([["City", "Name"], ["NYC", 30]])
    assert sheet.get(0, 0) is not None
    assert sheet.get(1, 1) is not None
    cell = sheet.get(1, 1)
    assert cell is not None and cell.value == 30 and cell.kind == "n"
    assert sheet.used_range is not None
    assert (sheet.used_range.row_count, sheet.used_range.col_count) == (2, 2)
