from __future__ import annotations

from collections.abc import Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field


def normalize_header(label: str) -> str:
    """Normalize a header label for auto-map comparison."""
    return label.strip().lower()


class ColumnMapping(BaseModel):
    """Immutable, insertion-ordered source header -> template header mapping.

    Keys and values are compared verbatim; case folding only happens inside
    :func:`auto_map`. Every edit returns a new instance.
    """

    model_config = ConfigDict(frozen=True)

    entries: tuple[tuple[str, str], ...] = Field(default_factory=tuple)

    @classmethod
    def from_pairs(cls, pairs: Sequence[tuple[str, str]]) -> ColumnMapping:
        """Build a mapping from (source, template) pairs, skipping blanks."""
        mapping = cls()
        for source, template in pairs:
            mapping = mapping.set(source, template)
        return mapping

    @classmethod
    def from_dict(cls, data: Mapping[str, str]) -> ColumnMapping:
        """Build a mapping from a plain dict.

        Args:
            data: Source header -> template header; blank targets are skipped.

        Returns:
            Mapping in the dict's iteration order.
        """
        return cls.from_pairs(list(data.items()))

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, source: object) -> bool:
        return any(key == source for key, _ in self.entries)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def get(self, source: str) -> str | None:
        """Return the template header mapped from a source header."""
        for key, value in self.entries:
            if key == source:
                return value
        return None

    def source_for(self, template: str) -> str | None:
        """Return the first-registered source header mapped to a template header."""
        for key, value in self.entries:
            if value == template:
                return key
        return None

    def set(self, source: str, template: str | None) -> ColumnMapping:
        """Return a new mapping with one entry updated.

        An existing entry keeps its position; a new entry is appended. A blank
        template clears the entry.
        """
        target = template if template and template.strip() else None
        updated: list[tuple[str, str]] = []
        replaced = False
        for key, value in self.entries:
            if key != source:
                updated.append((key, value))
                continue
            replaced = True
            if target is not None:
                updated.append((key, target))
        if not replaced and target is not None:
            updated.append((source, target))
        return ColumnMapping(entries=tuple(updated))

    def duplicate_targets(self) -> dict[str, list[str]]:
        """Return template headers claimed by more than one source header."""
        claimed: dict[str, list[str]] = {}
        for key, value in self.entries:
            claimed.setdefault(value, []).append(key)
        return {target: keys for target, keys in claimed.items() if len(keys) > 1}

    def as_dict(self) -> dict[str, str]:
        """Return the entries as a plain, insertion-ordered dict.

        Returns:
            Source header -> template header.
        """
        return dict(self.entries)


def auto_map(
    source_headers: Sequence[str], template_headers: Sequence[str]
) -> ColumnMapping:
    """Match source headers to template headers by normalized label.

    Each non-blank source header maps to the first template header with the
    same lower-cased, trimmed label; headers without a match are left out.

    Args:
        source_headers: Source header labels in column order.
        template_headers: Template header labels in column order.

    Returns:
        Mapping holding exact-label pairs only.
    """
    pairs: list[tuple[str, str]] = []
    for source in source_headers:
        normalized = normalize_header(source)
        if not normalized:
            continue
        for template in template_headers:
            if normalize_header(template) == normalized:
                pairs.append((source, template))
                break
    return ColumnMapping.from_pairs(pairs)


def set_mapping(
    mapping: ColumnMapping, source: str, template: str | None
) -> ColumnMapping:
    """Return a copy of ``mapping`` with ``source`` remapped or cleared."""
    return mapping.set(source, template)


def initialize_if_empty(
    mapping: ColumnMapping,
    source_headers: Sequence[str],
    template_headers: Sequence[str],
) -> ColumnMapping:
    """Auto-map only when nothing is mapped yet and both header sets exist."""
    if not mapping.is_empty or not source_headers or not template_headers:
        return mapping
    return auto_map(source_headers, template_headers)


def is_auto_mapped(
    source: str, mapping: ColumnMapping, template_headers: Sequence[str]
) -> bool:
    """Return whether a mapped source header has a same-label template header."""
    if mapping.get(source) is None:
        return False
    normalized = normalize_header(source)
    return any(normalize_header(t) == normalized for t in template_headers)


__all__ = [
    "ColumnMapping",
    "auto_map",
    "initialize_if_empty",
    "is_auto_mapped",
    "normalize_header",
    "set_mapping",
]
