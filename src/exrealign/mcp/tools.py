from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

from exrealign.core.mapping import ColumnMapping, is_auto_mapped
from exrealign.errors import RealignError, RealignErrorDetail
from exrealign.models import Workbook
from exrealign.session import (
    RealignSession,
    SourceSettings,
    TemplateSettings,
    write_export,
)
from exrealign.shared.output_path import ExportMode, OnConflictPolicy

from .io import PathPolicy, resolve_input_path


class DocumentPairInput(BaseModel):
    """Source and template workbook locations shared by every tool."""

    source_path: str
    template_path: str
    source: SourceSettings = Field(default_factory=SourceSettings)
    template: TemplateSettings = Field(default_factory=TemplateSettings)


class ListHeadersToolInput(DocumentPairInput):
    """Tool input for listing sheets and header rows."""


class ListHeadersToolOutput(BaseModel):
    """Tool output for listing sheets and header rows."""

    source_sheets: list[str] = Field(default_factory=list)
    template_sheets: list[str] = Field(default_factory=list)
    source_sheet: str | None = None
    template_sheet: str | None = None
    source_headers: list[str] = Field(default_factory=list)
    template_headers: list[str] = Field(default_factory=list)


class AutoMapToolInput(DocumentPairInput):
    """Tool input for auto-mapping source headers to template headers."""


class AutoMapToolOutput(BaseModel):
    """Tool output for auto-mapping."""

    mapping: dict[str, str] = Field(default_factory=dict)
    auto_mapped: list[str] = Field(default_factory=list)
    unmapped_source_headers: list[str] = Field(default_factory=list)
    unmapped_template_headers: list[str] = Field(default_factory=list)


class ExportToolInput(DocumentPairInput):
    """Tool input for exporting the realigned workbook."""

    mode: ExportMode = "values"
    mapping: dict[str, str] | None = Field(
        default=None,
        description="Source header -> template header. Omit to auto-map.",
    )
    out_dir: str | None = None
    out_name: str | None = Field(
        default=None, description="Base filename; a timestamp is appended."
    )
    on_conflict: OnConflictPolicy | None = None


class ExportToolOutput(BaseModel):
    """Tool output for exporting the realigned workbook."""

    out_path: str | None = None
    filename: str | None = None
    sheet_name: str | None = None
    column_count: int = 0
    data_row_count: int = 0
    mapping: dict[str, str] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: RealignErrorDetail | None = None


def run_list_headers_tool(
    payload: ListHeadersToolInput, *, policy: PathPolicy | None = None
) -> ListHeadersToolOutput:
    """Run the header listing tool handler.

    Args:
        payload: Tool input payload.
        policy: Optional path policy for access control.

    Returns:
        Sheet names and header labels of both workbooks.
    """
    session = open_session(payload, policy=policy)
    return ListHeadersToolOutput(
        source_sheets=_sheet_names(session.source_workbook),
        template_sheets=_sheet_names(session.template_workbook),
        source_sheet=session.source.sheet,
        template_sheet=session.template.sheet,
        source_headers=session.source_headers(),
        template_headers=session.template_headers(),
    )


def run_auto_map_tool(
    payload: AutoMapToolInput, *, policy: PathPolicy | None = None
) -> AutoMapToolOutput:
    """Run the auto-map tool handler.

    Args:
        payload: Tool input payload.
        policy: Optional path policy for access control.

    Returns:
        Suggested mapping plus the headers left unmapped on each side.
    """
    session = open_session(payload, policy=policy)
    mapping = session.auto_map()
    source_headers = session.source_headers()
    template_headers = session.template_headers()
    targets = set(mapping.as_dict().values())
    return AutoMapToolOutput(
        mapping=mapping.as_dict(),
        auto_mapped=[
            header
            for header in source_headers
            if is_auto_mapped(header, mapping, template_headers)
        ],
        unmapped_source_headers=[h for h in source_headers if h not in mapping],
        unmapped_template_headers=[h for h in template_headers if h not in targets],
    )


def run_export_tool(
    payload: ExportToolInput,
    *,
    policy: PathPolicy | None = None,
    on_conflict: OnConflictPolicy | None = None,
) -> ExportToolOutput:
    """Run the export tool handler.

    Args:
        payload: Tool input payload.
        policy: Optional path policy for access control.
        on_conflict: Server default conflict policy.

    Returns:
        Written file location, or the error that stopped the export.
    """
    try:
        session = open_session(payload, policy=policy)
    except RealignError as exc:
        return ExportToolOutput(error=exc.detail)
    if payload.mapping is None:
        session.initialize_mapping()
    else:
        session.replace_mapping(ColumnMapping.from_dict(payload.mapping))
    session.custom_filename = payload.out_name
    result = (
        session.export_with_formulas()
        if payload.mode == "formulas"
        else session.export_values()
    )
    if result.error is not None:
        return ExportToolOutput(
            filename=result.filename,
            mapping=session.mapping.as_dict(),
            error=result.error,
        )
    out_dir = (
        Path(payload.out_dir)
        if payload.out_dir
        else Path(payload.source_path).parent
    )
    written = write_export(
        result,
        out_dir,
        on_conflict=payload.on_conflict or on_conflict or "overwrite",
        policy=policy,
    )
    return ExportToolOutput(
        out_path=written.out_path,
        filename=written.filename,
        sheet_name=written.sheet_name,
        column_count=written.column_count,
        data_row_count=written.data_row_count,
        mapping=session.mapping.as_dict(),
        warnings=written.warnings,
    )


def open_session(
    payload: DocumentPairInput, *, policy: PathPolicy | None = None
) -> RealignSession:
    """Load both workbooks and apply the requested sheets and settings."""
    session = RealignSession()
    session.load_source(resolve_input_path(Path(payload.source_path), policy=policy))
    session.load_template(
        resolve_input_path(Path(payload.template_path), policy=policy)
    )
    if payload.source.sheet:
        session.select_source_sheet(payload.source.sheet)
    if payload.template.sheet:
        session.select_template_sheet(payload.template.sheet)
    session.configure_source(
        **payload.source.model_dump(exclude={"sheet"}),
    )
    session.configure_template(
        **payload.template.model_dump(exclude={"sheet"}),
    )
    return session


def _sheet_names(workbook: Workbook | None) -> list[str]:
    return workbook.sheet_names if workbook is not None else []


__all__ = [
    "AutoMapToolInput",
    "AutoMapToolOutput",
    "DocumentPairInput",
    "ExportToolInput",
    "ExportToolOutput",
    "ListHeadersToolInput",
    "ListHeadersToolOutput",
    "open_session",
    "run_auto_map_tool",
    "run_export_tool",
    "run_list_headers_tool",
]
