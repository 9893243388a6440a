"""
Field type inference from sampled documents and declared content types.

Pure functions with no I/O - fully testable. These are used by the
ContentTypeIndexer to derive field definitions from synced documents.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Iterable
from typing import Any

from ..document import Document, is_link
from ..links import is_embedded_document
from .types import ContentTypeDef, FieldDef, FieldType, type_name

_ISO8601 = re.compile(
    r"^\d{4}-\d{2}-\d{2}"
    r"(T\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?)?$"
)

_DECLARED_TYPES = {
    "Symbol": FieldType.STRING,
    "Text": FieldType.STRING,
    "Integer": FieldType.INT,
    "Number": FieldType.FLOAT,
    "Date": FieldType.DATETIME,
    "Boolean": FieldType.BOOLEAN,
    "Object": FieldType.JSON,
    "Location": FieldType.COORDINATES,
}


def infer_field_type(value: Any) -> FieldType:
    """Map a sampled field value to a FieldType.

    Checks bool before int since bool is a subclass of int.
    """
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if isinstance(value, int):
        return FieldType.INT
    if isinstance(value, float):
        return FieldType.FLOAT
    if isinstance(value, str):
        return FieldType.DATETIME if _ISO8601.match(value) else FieldType.STRING
    if is_link(value) or is_embedded_document(value):
        if _link_type(value) == "Asset":
            return FieldType.ASSET
        return FieldType.LINK
    if isinstance(value, dict) and "lat" in value and "lon" in value:
        return FieldType.COORDINATES
    return FieldType.JSON


def infer_field(name: str, value: Any) -> FieldDef | None:
    """Field definition for one sampled value, None when there is no sample."""
    if value is None:
        return None

    array = isinstance(value, list)
    samples = value if array else [value]
    if array and not samples:
        return FieldDef(name, FieldType.JSON, array=True)

    field_type = infer_field_type(samples[0])
    link_ids: frozenset[str] = frozenset()
    if field_type == FieldType.LINK:
        link_ids = frozenset(
            s["sys"]["id"]
            for s in samples
            if (is_link(s) or is_embedded_document(s)) and _link_type(s) == "Entry"
        )
    return FieldDef(name, field_type, array=array, link_ids=link_ids)


def _link_type(value: dict[str, Any]) -> str:
    sys = value["sys"]
    if sys.get("type") == "Link":
        return sys.get("linkType") or "Entry"
    return sys["type"]


def sample_value(value: Any, single_locale: bool) -> Any:
    """Value to infer from: the field itself, or its first locale's value."""
    if single_locale:
        return value
    if isinstance(value, dict) and value and not is_link(value):
        return next(iter(value.values()))
    return None


def infer_fields(doc: Document) -> list[FieldDef]:
    """Field definitions observed on one entry or asset."""
    single_locale = bool((doc.get("sys") or {}).get("locale"))
    observed = []
    for name in sorted(doc.get("fields") or {}):
        field_def = infer_field(name, sample_value(doc["fields"][name], single_locale))
        if field_def is not None:
            observed.append(field_def)
    return observed


def declared_field(raw_field: dict[str, Any]) -> FieldDef:
    """Field definition from a content type's declared field.

    Raises:
        ValueError: If the declared type or link type is unknown
    """
    name = raw_field["id"]
    array = raw_field.get("type") == "Array"
    definition = (raw_field.get("items") or {}) if array else raw_field
    declared = definition.get("type")

    if declared == "Link":
        link_type = definition.get("linkType")
        if link_type == "Entry":
            field_type = FieldType.LINK
        elif link_type == "Asset":
            field_type = FieldType.ASSET
        else:
            raise ValueError(f"Unknown link type {link_type} for field {name}")
    elif declared in _DECLARED_TYPES:
        field_type = _DECLARED_TYPES[declared]
    else:
        raise ValueError(f"Unknown field type {declared} for field {name}")

    link_types: frozenset[str] = frozenset()
    if field_type == FieldType.LINK:
        link_types = frozenset(_link_content_types(definition.get("validations") or []))
    return FieldDef(
        name,
        field_type,
        array=array,
        required=bool(raw_field.get("required")),
        link_types=link_types,
    )


def _link_content_types(validations: Iterable[dict[str, Any]]) -> list[str]:
    for validation in validations:
        if validation.get("linkContentType"):
            return [type_name(ct) for ct in validation["linkContentType"]]
    return []


def declared_type(raw_content_type: dict[str, Any]) -> ContentTypeDef:
    """ContentTypeDef from a raw content type definition."""
    content_type = raw_content_type["sys"]["id"]
    fields = [declared_field(f) for f in raw_content_type.get("fields") or []]
    return ContentTypeDef(
        name=type_name(content_type),
        content_type=content_type,
        fields={f.name: f for f in fields},
    )


def compute_fingerprint(types: Iterable[ContentTypeDef]) -> str:
    """SHA-256 fingerprint over the canonical form of a set of types."""
    canonical = json.dumps(
        [t.to_dict() for t in sorted(types, key=lambda t: t.name)],
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
