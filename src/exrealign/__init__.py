"""Realign spreadsheet columns to a template's header layout."""

from __future__ import annotations

import logging

from .core import (
    REALIGNED_SHEET_NAME,
    ColumnMapping,
    auto_map,
    build_realigned_sheet,
    decode_workbook,
    encode_workbook,
    extract_headers,
    initialize_if_empty,
    reconstruct_workbook,
    resolve_source_column,
    set_mapping,
    transform_values,
)
from .errors import RealignError, RealignErrorDetail, RealignErrorKind
from .models import Cell, Sheet, SheetRange, Workbook
from .session import (
    ExportResult,
    RealignSession,
    SourceSettings,
    TemplateSettings,
    write_export,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "REALIGNED_SHEET_NAME",
    "Cell",
    "ColumnMapping",
    "ExportResult",
    "RealignError",
    "RealignErrorDetail",
    "RealignErrorKind",
    "RealignSession",
    "Sheet",
    "SheetRange",
    "SourceSettings",
    "TemplateSettings",
    "Workbook",
    "auto_map",
    "build_realigned_sheet",
    "decode_workbook",
    "encode_workbook",
    "extract_headers",
    "initialize_if_empty",
    "reconstruct_workbook",
    "resolve_source_column",
    "set_mapping",
    "transform_values",
    "write_export",
]
