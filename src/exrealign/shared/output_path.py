from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, NamedTuple

from exrealign.mcp.io import PathPolicy

OnConflictPolicy = Literal["overwrite", "skip", "rename"]
ExportMode = Literal["values", "formulas"]

EXPORT_SUFFIX = ".xlsx"
DEFAULT_BASE_NAMES: dict[ExportMode, str] = {
    "values": "realigned",
    "formulas": "realigned_with_formulas",
}
MAX_RENAME_ATTEMPTS = 10_000


class ConflictResolution(NamedTuple):
    """Where to write, what to report, and whether to skip writing."""

    path: Path
    warning: str | None
    skipped: bool


def format_timestamp(now: datetime) -> str:
    """Format an ISO-8601 date-time to the second, with ``:`` as ``-``.

    Timezone-aware values are converted to UTC first; naive values are taken
    as UTC already.
    """
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.replace(microsecond=0, tzinfo=None).isoformat().replace(":", "-")


def build_export_filename(
    mode: ExportMode, custom_name: str | None = None, *, now: datetime | None = None
) -> str:
    """Build ``<base>_<timestamp>.xlsx`` for an export.

    Args:
        mode: Export mode selecting the default base name.
        custom_name: Optional user-supplied base name; trimmed, and reduced to
            its final path component.
        now: Timestamp source; defaults to the current UTC time.

    Returns:
        Export filename.
    """
    base = Path(custom_name.strip()).name if custom_name else ""
    if not base:
        base = DEFAULT_BASE_NAMES[mode]
    stamp = format_timestamp(now or datetime.now(timezone.utc))
    return f"{base}_{stamp}{EXPORT_SUFFIX}"


def resolve_output_path(
    out_dir: Path, filename: str, *, policy: PathPolicy | None
) -> Path:
    """Join and resolve ``out_dir / filename``, enforcing ``policy`` if given."""
    if policy is None:
        return (out_dir / filename).resolve()
    return policy.ensure_allowed(policy.ensure_allowed(out_dir) / filename)


def apply_conflict_policy(
    output_path: Path, on_conflict: OnConflictPolicy
) -> ConflictResolution:
    """Decide how to handle an export path that may already exist."""
    if not output_path.exists() or on_conflict == "overwrite":
        return ConflictResolution(output_path, None, False)
    if on_conflict == "skip":
        return ConflictResolution(
            output_path, f"Output exists; skipping write: {output_path.name}", True
        )
    renamed = next_available_path(output_path)
    return ConflictResolution(
        renamed, f"Output exists; renamed to: {renamed.name}", False
    )


def numbered_names(stem: str, suffix: str = "") -> Iterator[str]:
    """Yield ``stem_1<suffix>``, ``stem_2<suffix>``, ... up to the rename limit."""
    for idx in range(1, MAX_RENAME_ATTEMPTS):
        yield f"{stem}_{idx}{suffix}"


def next_available_path(path: Path) -> Path:
    """Return ``path`` or the first sibling ``<stem>_N<suffix>`` that is free."""
    if not path.exists():
        return path
    for name in numbered_names(path.stem, path.suffix):
        candidate = path.with_name(name)
        if not candidate.exists():
            return candidate
    raise RuntimeError(f"No free file name left for {path}")


__all__ = [
    "DEFAULT_BASE_NAMES",
    "EXPORT_SUFFIX",
    "ConflictResolution",
    "ExportMode",
    "OnConflictPolicy",
    "apply_conflict_policy",
    "build_export_filename",
    "format_timestamp",
    "next_available_path",
    "numbered_names",
    "resolve_output_path",
]
