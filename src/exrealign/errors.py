from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

RealignErrorKind = Literal[
    "missing_template_headers",
    "missing_source_headers",
    "missing_source_data",
    "missing_source_workbook",
    "sheet_not_found",
    "decode_failure",
]


class RealignErrorDetail(BaseModel):
    """Structured error details for realignment failures."""

    kind: RealignErrorKind
    message: str


class RealignError(ValueError):
    """Realignment error with structured detail."""

    def __init__(self, detail: RealignErrorDetail) -> None:
        super().__init__(detail.message)
        self.detail = detail

    @classmethod
    def of(cls, kind: RealignErrorKind, message: str) -> RealignError:
        """Build a RealignError from a kind and message."""
        return cls(RealignErrorDetail(kind=kind, message=message))

    @property
    def kind(self) -> RealignErrorKind:
        return self.detail.kind


__all__ = ["RealignError", "RealignErrorDetail", "RealignErrorKind"]
