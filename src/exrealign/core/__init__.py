from __future__ import annotations

from .headers import extract_headers, sheet_rows, source_data_rows, source_header_row
from .mapping import (
    ColumnMapping,
    auto_map,
    initialize_if_empty,
    is_auto_mapped,
    normalize_header,
    set_mapping,
)
from .reconstruct import (
    REALIGNED_SHEET_NAME,
    build_realigned_sheet,
    copy_workbook,
    reconstruct_workbook,
)
from .transform import resolve_source_column, rows_to_sheet, transform_values
from .workbook import (
    decode_workbook,
    decode_workbook_async,
    encode_workbook,
    load_workbook_file,
)

__all__ = [
    "REALIGNED_SHEET_NAME",
    "ColumnMapping",
    "auto_map",
    "build_realigned_sheet",
    "copy_workbook",
    "decode_workbook",
    "decode_workbook_async",
    "encode_workbook",
    "extract_headers",
    "initialize_if_empty",
    "is_auto_mapped",
    "load_workbook_file",
    "normalize_header",
    "reconstruct_workbook",
    "resolve_source_column",
    "rows_to_sheet",
    "set_mapping",
    "sheet_rows",
    "source_data_rows",
    "source_header_row",
    "transform_values",
]
