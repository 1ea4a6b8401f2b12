"""Per-session orchestration of the source/template pair and the exports."""

from __future__ import annotations

from datetime import datetime
import logging
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from exrealign.core.headers import extract_headers, source_data_rows, source_header_row
from exrealign.core.mapping import ColumnMapping, auto_map, initialize_if_empty
from exrealign.core.reconstruct import REALIGNED_SHEET_NAME, reconstruct_workbook
from exrealign.core.transform import rows_to_sheet, transform_values
from exrealign.core.workbook import (
    decode_workbook_async,
    encode_workbook,
    load_workbook_file,
)
from exrealign.errors import RealignError, RealignErrorDetail
from exrealign.mcp.io import PathPolicy
from exrealign.models import CellValue, Sheet, Workbook
from exrealign.shared.a1 import column_label_to_index
from exrealign.shared.output_path import (
    ExportMode,
    OnConflictPolicy,
    apply_conflict_policy,
    build_export_filename,
    resolve_output_path,
)

logger = logging.getLogger(__name__)


class SourceSettings(BaseModel):
    """Where the source table sits in the source workbook."""

    sheet: str | None = None
    header_row: int = Field(default=1, ge=1, description="1-based header row.")
    start_column: str = "A"
    end_column: str | None = None

    @field_validator("start_column")
    @classmethod
    def _validate_start_column(cls, value: str) -> str:
        column_label_to_index(value)
        return value.strip().upper()

    @field_validator("end_column")
    @classmethod
    def _validate_end_column(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        column_label_to_index(value)
        return value.strip().upper()


class TemplateSettings(BaseModel):
    """Where the header row sits in the template workbook."""

    sheet: str | None = None
    header_row: int = Field(default=1, ge=1, description="1-based header row.")
    start_column: str = "A"

    @field_validator("start_column")
    @classmethod
    def _validate_start_column(cls, value: str) -> str:
        column_label_to_index(value)
        return value.strip().upper()


class ExportResult(BaseModel):
    """Outcome of one export: the file bytes, or the error that stopped it."""

    mode: ExportMode
    filename: str
    payload: bytes = b""
    sheet_name: str = REALIGNED_SHEET_NAME
    column_count: int = 0
    data_row_count: int = 0
    out_path: str | None = None
    warnings: list[str] = Field(default_factory=list)
    error: RealignErrorDetail | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RealignSession:
    """Holds one source/template pair, their settings and the current mapping.

    The mapping is only ever replaced as a whole. Choosing a new file or sheet
    clears it; changing rows or columns does not.
    """

    def __init__(self) -> None:
        self.source_workbook: Workbook | None = None
        self.template_workbook: Workbook | None = None
        self.source = SourceSettings()
        self.template = TemplateSettings()
        self.custom_filename: str | None = None
        self._mapping = ColumnMapping()

    @property
    def mapping(self) -> ColumnMapping:
        return self._mapping

    # ------------------------------------------------------------------
    # documents
    # ------------------------------------------------------------------

    def set_source_workbook(self, workbook: Workbook) -> None:
        """Keep the source workbook and select its first sheet."""
        self.source_workbook = workbook
        first = workbook.sheet_names[0] if workbook.sheet_names else None
        self.source = self.source.model_copy(update={"sheet": first})
        self._reset_mapping()

    def set_template_workbook(self, workbook: Workbook) -> None:
        """Keep the template workbook and select its first sheet."""
        self.template_workbook = workbook
        first = workbook.sheet_names[0] if workbook.sheet_names else None
        self.template = self.template.model_copy(update={"sheet": first})
        self._reset_mapping()

    def load_source(self, path: Path) -> None:
        """Read the source workbook from disk.

        Args:
            path: Path to an ``.xlsx`` or ``.xlsm`` file.

        Raises:
            RealignError: If the file cannot be read or decoded.
        """
        self.set_source_workbook(load_workbook_file(path))

    def load_template(self, path: Path) -> None:
        """Read the template workbook from disk.

        Args:
            path: Path to an ``.xlsx`` or ``.xlsm`` file.

        Raises:
            RealignError: If the file cannot be read or decoded.
        """
        self.set_template_workbook(load_workbook_file(path))

    async def load_source_async(self, data: bytes) -> None:
        """Decode source workbook bytes in a worker thread."""
        self.set_source_workbook(await decode_workbook_async(data))

    async def load_template_async(self, data: bytes) -> None:
        """Decode template workbook bytes in a worker thread."""
        self.set_template_workbook(await decode_workbook_async(data))

    def select_source_sheet(self, name: str) -> None:
        """Choose the source sheet and clear the mapping.

        Raises:
            RealignError: If no source workbook is loaded or the sheet is missing.
        """
        _require_sheet(self.source_workbook, name, role="source")
        self.source = self.source.model_copy(update={"sheet": name})
        self._reset_mapping()

    def select_template_sheet(self, name: str) -> None:
        """Choose the template sheet and clear the mapping."""
        _require_sheet(self.template_workbook, name, role="template")
        self.template = self.template.model_copy(update={"sheet": name})
        self._reset_mapping()

    def configure_source(self, **changes: object) -> None:
        """Update source settings such as ``header_row`` or ``end_column``."""
        self.source = SourceSettings.model_validate(
            _merge_settings(self.source, changes)
        )

    def configure_template(self, **changes: object) -> None:
        """Update template settings such as ``header_row``."""
        self.template = TemplateSettings.model_validate(
            _merge_settings(self.template, changes)
        )

    def missing_requirements(self) -> list[str]:
        """List what still has to be provided before mapping can start."""
        missing: list[str] = []
        if self.source_workbook is None:
            missing.append("Upload source file")
        if self.template_workbook is None:
            missing.append("Upload template file")
        if self.source_workbook is not None and not self.source.sheet:
            missing.append("Select source sheet")
        if self.template_workbook is not None and not self.template.sheet:
            missing.append("Select template sheet")
        return missing

    # ------------------------------------------------------------------
    # headers and mapping
    # ------------------------------------------------------------------

    def source_headers(self) -> list[str]:
        """Header labels of the selected source span, or [] when not ready."""
        sheet = self._optional_sheet(self.source_workbook, self.source.sheet)
        if sheet is None:
            return []
        return extract_headers(
            sheet,
            self.source.header_row,
            self.source.start_column,
            self.source.end_column,
        )

    def template_headers(self) -> list[str]:
        """Header labels of the template row, or [] when not ready."""
        sheet = self._optional_sheet(self.template_workbook, self.template.sheet)
        if sheet is None:
            return []
        return extract_headers(
            sheet, self.template.header_row, self.template.start_column
        )

    def initialize_mapping(self) -> ColumnMapping:
        """Auto-map once, only while no mapping entries exist."""
        self._mapping = initialize_if_empty(
            self._mapping, self.source_headers(), self.template_headers()
        )
        return self._mapping

    def auto_map(self) -> ColumnMapping:
        """Replace the mapping with a fresh auto-map."""
        self._mapping = auto_map(self.source_headers(), self.template_headers())
        return self._mapping

    def set_mapping(self, source: str, template: str | None) -> ColumnMapping:
        """Map one source header, or clear it with a blank template header.

        Args:
            source: Source header label.
            template: Template header label; None or blank removes the entry.

        Returns:
            The updated mapping.
        """
        self._mapping = self._mapping.set(source, template)
        return self._mapping

    def replace_mapping(self, mapping: ColumnMapping) -> ColumnMapping:
        """Swap in a whole mapping, e.g. one edited outside the session.

        Args:
            mapping: New mapping.

        Returns:
            The mapping now held by the session.
        """
        self._mapping = mapping
        return self._mapping

    # ------------------------------------------------------------------
    # exports
    # ------------------------------------------------------------------

    def export_values(self, *, now: datetime | None = None) -> ExportResult:
        """Export the realigned table as plain values in a one-sheet workbook."""
        filename = build_export_filename("values", self.custom_filename, now=now)
        try:
            template_headers = self._require_template_headers()
            sheet = self._source_sheet_for_values()
            full_headers, data_rows = self._require_source_table(sheet)
            matrix = transform_values(
                full_headers, data_rows, template_headers, self._mapping
            )
            book = Workbook()
            book.add_sheet(REALIGNED_SHEET_NAME, rows_to_sheet(matrix))
            payload = encode_workbook(book)
        except RealignError as exc:
            logger.info("Values export failed: %s", exc.detail.message)
            return ExportResult(mode="values", filename=filename, error=exc.detail)
        logger.info(
            "Values export %s: %d columns, %d data rows.",
            filename,
            len(template_headers),
            len(data_rows),
        )
        return ExportResult(
            mode="values",
            filename=filename,
            payload=payload,
            column_count=len(template_headers),
            data_row_count=len(data_rows),
            warnings=self._mapping_warnings(template_headers),
        )

    def export_with_formulas(self, *, now: datetime | None = None) -> ExportResult:
        """Export every original sheet plus the realigned sheet, formulas intact."""
        filename = build_export_filename("formulas", self.custom_filename, now=now)
        try:
            template_headers = self._require_template_headers()
            workbook = self.source_workbook
            if workbook is None or not self.source.sheet:
                raise RealignError.of(
                    "missing_source_workbook",
                    "Source workbook not available. Please re-upload your source file.",
                )
            sheet = _require_sheet(workbook, self.source.sheet, role="source")
            _, data_rows = self._require_source_table(sheet)
            rebuilt = reconstruct_workbook(
                workbook,
                self.source.sheet,
                self.source.header_row,
                template_headers,
                self._mapping,
            )
            payload = encode_workbook(rebuilt)
        except RealignError as exc:
            logger.info("Formula export failed: %s", exc.detail.message)
            return ExportResult(mode="formulas", filename=filename, error=exc.detail)
        sheet_name = rebuilt.sheet_names[-1]
        warnings = self._mapping_warnings(template_headers)
        if sheet_name != REALIGNED_SHEET_NAME:
            warnings.append(
                f"Sheet '{REALIGNED_SHEET_NAME}' already exists; "
                f"realigned data written to '{sheet_name}'."
            )
        logger.info(
            "Formula export %s: %d sheets, %d columns.",
            filename,
            len(rebuilt.sheet_names),
            len(template_headers),
        )
        return ExportResult(
            mode="formulas",
            filename=filename,
            payload=payload,
            sheet_name=sheet_name,
            column_count=len(template_headers),
            data_row_count=len(data_rows),
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _reset_mapping(self) -> None:
        self._mapping = ColumnMapping()

    def _optional_sheet(
        self, workbook: Workbook | None, name: str | None
    ) -> Sheet | None:
        if workbook is None or not name:
            return None
        return workbook.get_sheet(name)

    def _require_template_headers(self) -> list[str]:
        headers = self.template_headers()
        if not headers:
            raise RealignError.of(
                "missing_template_headers",
                "No template headers found. Please check your template file.",
            )
        return headers

    def _source_sheet_for_values(self) -> Sheet:
        if self.source_workbook is None or not self.source.sheet:
            raise RealignError.of(
                "missing_source_headers",
                "No source headers found. Please check your source file.",
            )
        return _require_sheet(
            self.source_workbook, self.source.sheet, role="source"
        )

    def _require_source_table(
        self, sheet: Sheet
    ) -> tuple[list[str | None], list[list[CellValue]]]:
        full_headers = source_header_row(sheet, self.source.header_row)
        if not full_headers:
            raise RealignError.of(
                "missing_source_headers",
                "No source headers found. Please check your source file.",
            )
        data_rows = source_data_rows(sheet, self.source.header_row)
        if not data_rows:
            raise RealignError.of(
                "missing_source_data",
                "No source data found. Please check your start row setting.",
            )
        return full_headers, data_rows

    def _mapping_warnings(self, template_headers: list[str]) -> list[str]:
        targets = {template for _, template in self._mapping.entries}
        if targets.isdisjoint(template_headers):
            message = (
                "No source headers are mapped to the template headers; "
                "every data column is blank."
            )
            logger.warning(message)
            return [message]
        return self._duplicate_warnings(template_headers)

    def _duplicate_warnings(self, template_headers: list[str]) -> list[str]:
        warnings: list[str] = []
        for target, sources in self._mapping.duplicate_targets().items():
            if target not in template_headers:
                continue
            ignored = ", ".join(repr(source) for source in sources[1:])
            message = (
                f"Template header '{target}' is mapped from several source "
                f"headers; using '{sources[0]}', ignoring {ignored}."
            )
            logger.warning(message)
            warnings.append(message)
        return warnings


def write_export(
    result: ExportResult,
    out_dir: Path,
    *,
    on_conflict: OnConflictPolicy = "overwrite",
    policy: PathPolicy | None = None,
) -> ExportResult:
    """Write a successful export under ``out_dir``.

    Args:
        result: Export to write.
        out_dir: Target directory; created when missing.
        on_conflict: What to do when the file already exists.
        policy: Optional path policy for access control.

    Returns:
        Copy of the result with ``out_path`` and any conflict warning set.

    Raises:
        ValueError: If the export failed and has nothing to write.
    """
    if result.error is not None:
        raise ValueError(f"Cannot write a failed export: {result.error.message}")
    output_path = resolve_output_path(out_dir, result.filename, policy=policy)
    output_path, warning, skipped = apply_conflict_policy(output_path, on_conflict)
    warnings = list(result.warnings)
    if warning:
        warnings.append(warning)
    if not skipped:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(result.payload)
        logger.info("Wrote %s", output_path)
    return result.model_copy(
        update={"out_path": str(output_path), "warnings": warnings}
    )


def _require_sheet(
    workbook: Workbook | None, name: str, *, role: Literal["source", "template"]
) -> Sheet:
    if workbook is None:
        raise RealignError.of(
            "missing_source_workbook"
            if role == "source"
            else "missing_template_headers",
            f"{role.capitalize()} workbook not available. "
            f"Please re-upload your {role} file.",
        )
    sheet = workbook.get_sheet(name)
    if sheet is None:
        raise RealignError.of(
            "sheet_not_found", f"Sheet '{name}' not found in workbook."
        )
    return sheet


def _merge_settings(
    current: BaseModel, changes: dict[str, object]
) -> dict[str, object]:
    if "sheet" in changes:
        raise ValueError("Use select_source_sheet/select_template_sheet for sheets.")
    return {**current.model_dump(), **changes}


__all__ = [
    "ExportResult",
    "RealignSession",
    "SourceSettings",
    "TemplateSettings",
    "write_export",
]
