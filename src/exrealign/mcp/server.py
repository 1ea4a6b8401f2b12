"""stdio MCP server exposing header listing, auto-mapping and export."""

from __future__ import annotations

import argparse
from collections.abc import Callable
import functools
import importlib
import logging
from pathlib import Path
from types import ModuleType
from typing import TYPE_CHECKING, Any, TypeVar, cast

import anyio
from pydantic import BaseModel, Field

from exrealign.session import SourceSettings, TemplateSettings
from exrealign.shared.output_path import ExportMode, OnConflictPolicy

from .io import PathPolicy
from .tools import (
    AutoMapToolInput,
    AutoMapToolOutput,
    ExportToolInput,
    ExportToolOutput,
    ListHeadersToolInput,
    ListHeadersToolOutput,
    run_auto_map_tool,
    run_export_tool,
    run_list_headers_tool,
)

if TYPE_CHECKING:  # pragma: no cover - typing only
    from mcp.server.fastmcp import FastMCP

logger = logging.getLogger(__name__)

_T = TypeVar("_T")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class ServerConfig(BaseModel):
    """Process-level settings for ``exrealign-mcp``."""

    root: Path = Field(..., description="Directory the tools may read and write.")
    deny_globs: list[str] = Field(default_factory=list)
    log_level: str = "INFO"
    log_file: Path | None = None
    on_conflict: OnConflictPolicy = Field(
        default="overwrite",
        description="Policy for existing export files when a call gives none.",
    )


def main(argv: list[str] | None = None) -> int:
    """Entry point for ``exrealign-mcp``; returns the process exit code."""
    config = _parse_args(argv)
    _configure_logging(config)
    try:
        run_server(config)
    except Exception as exc:  # pragma: no cover - surface runtime errors
        logger.error("exrealign MCP server stopped: %s", exc)
        return 1
    return 0


def run_server(config: ServerConfig) -> None:
    """Build the app for ``config`` and serve over stdio until closed."""
    _import_mcp()
    policy = PathPolicy(root=config.root, deny_globs=config.deny_globs)
    logger.info(
        "Serving workbooks under %s (on_conflict=%s)",
        policy.normalize_root(),
        config.on_conflict,
    )
    _create_app(policy, on_conflict=config.on_conflict).run()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="exrealign-mcp",
        description="Realign source workbook columns to a template over MCP (stdio).",
    )
    parser.add_argument(
        "--root", type=Path, required=True, help="Directory holding the workbooks."
    )
    parser.add_argument(
        "--deny-glob",
        dest="deny_globs",
        action="append",
        default=[],
        metavar="PATTERN",
        help="Reject paths matching PATTERN (repeatable).",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level name.")
    parser.add_argument("--log-file", type=Path, help="Also log to this file.")
    parser.add_argument(
        "--on-conflict",
        choices=["overwrite", "skip", "rename"],
        default="overwrite",
        help="What to do when an export file already exists.",
    )
    return parser


def _parse_args(argv: list[str] | None) -> ServerConfig:
    args = _build_parser().parse_args(argv)
    return ServerConfig.model_validate(vars(args))


def _configure_logging(config: ServerConfig) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.log_file is not None:
        handlers.append(logging.FileHandler(config.log_file))
    logging.basicConfig(
        level=config.log_level.upper(), handlers=handlers, format=LOG_FORMAT
    )


def _import_mcp() -> ModuleType:
    """Import the optional MCP SDK."""
    try:
        return importlib.import_module("mcp")
    except ModuleNotFoundError as exc:
        raise RuntimeError(
            "The MCP SDK is required for exrealign-mcp. "
            "Install with `pip install exrealign[mcp]`."
        ) from exc


def _create_app(policy: PathPolicy, *, on_conflict: OnConflictPolicy) -> FastMCP:
    from mcp.server.fastmcp import FastMCP

    app = FastMCP("exrealign MCP", json_response=True)
    _register_tools(app, policy, default_on_conflict=on_conflict)
    return app


async def _in_worker(func: Callable[..., _T], /, *args: Any, **kwargs: Any) -> _T:
    """Run a blocking tool handler in a worker thread."""
    work = functools.partial(func, *args, **kwargs)
    return cast(_T, await anyio.to_thread.run_sync(work))


def _register_tools(
    app: FastMCP, policy: PathPolicy, *, default_on_conflict: OnConflictPolicy
) -> None:
    """Register the realignment tools on ``app``.

    Args:
        app: FastMCP application (or any object with a compatible ``tool``).
        policy: Path policy applied to every workbook and output path.
        default_on_conflict: Conflict policy for exports that name none.
    """

    async def _list_headers_tool(
        source_path: str,
        template_path: str,
        source: dict[str, Any] | None = None,
        template: dict[str, Any] | None = None,
    ) -> ListHeadersToolOutput:
        """List sheet names and header labels of the source and template.

        Args:
            source_path: Source workbook path (relative to the server root).
            template_path: Template workbook path.
            source: Optional source settings: sheet, header_row (1-based),
                start_column, end_column.
            template: Optional template settings: sheet, header_row,
                start_column.
        """
        payload = ListHeadersToolInput(
            source_path=source_path,
            template_path=template_path,
            source=_source_settings(source),
            template=_template_settings(template),
        )
        return await _in_worker(run_list_headers_tool, payload, policy=policy)

    async def _auto_map_tool(
        source_path: str,
        template_path: str,
        source: dict[str, Any] | None = None,
        template: dict[str, Any] | None = None,
    ) -> AutoMapToolOutput:
        """Suggest a mapping by matching header labels case-insensitively.

        Args:
            source_path: Source workbook path.
            template_path: Template workbook path.
            source: Optional source settings.
            template: Optional template settings.
        """
        payload = AutoMapToolInput(
            source_path=source_path,
            template_path=template_path,
            source=_source_settings(source),
            template=_template_settings(template),
        )
        return await _in_worker(run_auto_map_tool, payload, policy=policy)

    async def _export_tool(
        source_path: str,
        template_path: str,
        mode: ExportMode = "values",
        mapping: dict[str, str] | None = None,
        source: dict[str, Any] | None = None,
        template: dict[str, Any] | None = None,
        out_dir: str | None = None,
        out_name: str | None = None,
        on_conflict: OnConflictPolicy | None = None,
    ) -> ExportToolOutput:
        """Write the source rows realigned to the template's columns.

        Args:
            source_path: Source workbook path.
            template_path: Template workbook path.
            mode: 'values' writes one Realigned_Data sheet of plain values;
                'formulas' keeps every source sheet and appends Realigned_Data
                built from the original cells.
            mapping: Source header -> template header. Omit to auto-map.
            source: Optional source settings.
            template: Optional template settings.
            out_dir: Output directory; defaults to the source file's directory.
            out_name: Base filename; '_<timestamp>.xlsx' is appended.
            on_conflict: overwrite, skip or rename when the file exists.
        """
        payload = ExportToolInput(
            source_path=source_path,
            template_path=template_path,
            mode=mode,
            mapping=mapping,
            source=_source_settings(source),
            template=_template_settings(template),
            out_dir=out_dir,
            out_name=out_name,
            on_conflict=on_conflict,
        )
        return await _in_worker(
            run_export_tool,
            payload,
            policy=policy,
            on_conflict=on_conflict or default_on_conflict,
        )

    app.tool(name="exrealign_list_headers")(_list_headers_tool)
    app.tool(name="exrealign_auto_map")(_auto_map_tool)
    app.tool(name="exrealign_export")(_export_tool)


def _source_settings(data: dict[str, Any] | None) -> SourceSettings:
    return SourceSettings.model_validate(data or {})


def _template_settings(data: dict[str, Any] | None) -> TemplateSettings:
    return TemplateSettings.model_validate(data or {})


__all__ = ["ServerConfig", "main", "run_server"]
