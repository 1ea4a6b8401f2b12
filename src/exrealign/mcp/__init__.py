"""MCP server integration for exrealign."""

from __future__ import annotations

from .io import WORKBOOK_SUFFIXES, PathPolicy, resolve_input_path

__all__ = ["WORKBOOK_SUFFIXES", "PathPolicy", "resolve_input_path"]
