"""
Schema module for docsync.

This module infers content type definitions from synced documents:
- Type definitions (FieldType, FieldDef, ContentTypeDef)
- Pure inference functions over sampled field values
- ContentTypeIndexer, the thread-safe registry fed by the sync path

Invariants:
    - Inference never performs I/O; link targets are resolved in finalize()
    - Int widens to Float, other conflicts keep the earliest-seen type

How to change safely:
    - Add new FieldType members at the end
    - Recompute fingerprints in tests after changing to_dict()
"""

from .indexer import ContentTypeIndexer
from .inference import (
    compute_fingerprint,
    declared_type,
    infer_field,
    infer_field_type,
    infer_fields,
)
from .types import ContentTypeDef, FieldDef, FieldType, asset_type, type_name

__all__ = [
    "ContentTypeDef",
    "ContentTypeIndexer",
    "FieldDef",
    "FieldType",
    "asset_type",
    "compute_fingerprint",
    "declared_type",
    "infer_field",
    "infer_field_type",
    "infer_fields",
    "type_name",
]
