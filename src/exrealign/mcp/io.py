from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

WORKBOOK_SUFFIXES = frozenset({".xlsx", ".xlsm"})


class PathPolicy(BaseModel):
    """Restricts tool file access to one root directory."""

    root: Path = Field(..., description="Directory every tool path must stay in.")
    deny_globs: list[str] = Field(
        default_factory=list, description="Glob patterns rejected under root."
    )

    def normalize_root(self) -> Path:
        return self.root.resolve()

    def ensure_allowed(self, path: Path) -> Path:
        """Resolve a path against root and check it against the policy.

        Args:
            path: Absolute path, or a path relative to root.

        Returns:
            The resolved path.

        Raises:
            ValueError: If the path escapes root or matches a deny glob.
        """
        root = self.normalize_root()
        resolved = (path if path.is_absolute() else root / path).resolve()
        if not _is_within(resolved, root):
            raise ValueError(
                "Path is outside root. "
                f"resolved={resolved}, root={root}, "
                "example_relative='inputs/source.xlsx'."
            )
        relative = resolved.relative_to(root)
        if any(
            relative.match(pattern) or resolved.match(pattern)
            for pattern in self.deny_globs
        ):
            raise ValueError(f"Path is denied by policy: {resolved}")
        return resolved


def resolve_input_path(path: Path, *, policy: PathPolicy | None) -> Path:
    """Resolve a source or template workbook path for reading.

    Raises:
        FileNotFoundError: If nothing exists at the path.
        ValueError: If the path is rejected by the policy, is not a regular
            file, or does not look like an ``.xlsx``/``.xlsm`` workbook.
    """
    resolved = policy.ensure_allowed(path) if policy else path.resolve()
    if not resolved.exists():
        raise FileNotFoundError(f"Input file not found: {resolved}")
    if not resolved.is_file():
        raise ValueError(f"Input path is not a file: {resolved}")
    if resolved.suffix.lower() not in WORKBOOK_SUFFIXES:
        raise ValueError(
            f"Unsupported workbook type '{resolved.suffix}': {resolved.name}"
        )
    return resolved


def _is_within(path: Path, root: Path) -> bool:
    return path == root or root in path.parents


__all__ = ["WORKBOOK_SUFFIXES", "PathPolicy", "resolve_input_path"]
