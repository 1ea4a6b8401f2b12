from __future__ import annotations

from .a1 import (
    column_index_to_label,
    column_label_to_index,
    decode_cell,
    decode_range,
    encode_cell,
    encode_range,
    range_cell_count,
    split_a1,
)
from .output_path import (
    apply_conflict_policy,
    build_export_filename,
    next_available_path,
    numbered_names,
    resolve_output_path,
)

__all__ = [
    "apply_conflict_policy",
    "build_export_filename",
    "column_index_to_label",
    "column_label_to_index",
    "decode_cell",
    "decode_range",
    "encode_cell",
    "encode_range",
    "next_available_path",
    "numbered_names",
    "range_cell_count",
    "resolve_output_path",
    "split_a1",
]
