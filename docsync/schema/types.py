"""
Type definitions for inferred content types.

This module defines the schema model built by the ContentTypeIndexer:
- FieldType: The scalar or link type of a field
- FieldDef: One field of a content type
- ContentTypeDef: A named content type and its fields

Invariants:
    - Definitions are immutable; merging returns new instances
    - Names are derived from content type ids (page -> Page)
    - to_dict()/from_dict() round-trip every attribute

How to change safely:
    - Add new FieldType members at the end; values are persisted
    - Keep to_dict() key order stable, fingerprints depend on it

Example:
    >>> page = ContentTypeDef(
    ...     name="Page",
    ...     content_type="page",
    ...     fields={"title": FieldDef("title", FieldType.STRING)},
    ... )
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Any


class FieldType(Enum):
    """Field types a content type can declare or be inferred to have."""

    BOOLEAN = "Boolean"
    INT = "Int"
    FLOAT = "Float"
    STRING = "String"
    DATETIME = "DateTime"
    COORDINATES = "Coordinates"
    LINK = "Link"  # Link to an entry
    ASSET = "Asset"  # Link to an asset
    JSON = "Json"

    @classmethod
    def from_str(cls, value: str) -> FieldType:
        """Convert string representation to FieldType.

        Raises:
            ValueError: If value is not a valid field type
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid field type '{value}'. Valid types: {valid}")


@dataclass(frozen=True)
class FieldDef:
    """Definition of a single field within a content type.

    Attributes:
        name: Field name as it appears under ``fields``
        type: Field type (element type for arrays)
        array: Whether the field holds a list
        required: Whether the content type declares the field required
        link_types: Names of content types a Link field may point at
        link_ids: Candidate target ids seen while sampling, resolved to
            link_types by ContentTypeIndexer.finalize()
    """

    name: str
    type: FieldType
    array: bool = False
    required: bool = False
    link_types: frozenset[str] = dataclass_field(default_factory=frozenset)
    link_ids: frozenset[str] = dataclass_field(default_factory=frozenset)

    def merge(self, other: FieldDef) -> FieldDef:
        """Unify two observations of the same field.

        Int widens to Float, never the reverse. Any other conflict keeps
        this (earlier) definition's type. Array flags are OR'd and link
        targets are unioned.
        """
        field_type = self.type
        if self.type == FieldType.INT and other.type == FieldType.FLOAT:
            field_type = FieldType.FLOAT
        return replace(
            self,
            type=field_type,
            array=self.array or other.array,
            required=self.required or other.required,
            link_types=self.link_types | other.link_types,
            link_ids=self.link_ids | other.link_ids,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        result: dict[str, Any] = {"name": self.name, "type": self.type.value}
        if self.array:
            result["array"] = True
        if self.required:
            result["required"] = True
        if self.link_types:
            result["link_types"] = sorted(self.link_types)
        if self.link_ids:
            result["link_ids"] = sorted(self.link_ids)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FieldDef:
        """Create from dictionary representation."""
        return cls(
            name=data["name"],
            type=FieldType.from_str(data["type"]),
            array=data.get("array", False),
            required=data.get("required", False),
            link_types=frozenset(data.get("link_types", ())),
            link_ids=frozenset(data.get("link_ids", ())),
        )


@dataclass(frozen=True)
class ContentTypeDef:
    """A content type and the fields observed or declared on it.

    Attributes:
        name: Type name derived from the content type id
        content_type: Content type id as used in sys.contentType
        fields: Field definitions keyed by field name
    """

    name: str
    content_type: str
    fields: dict[str, FieldDef] = dataclass_field(default_factory=dict)

    def field(self, name: str) -> FieldDef | None:
        return self.fields.get(name)

    def with_field(self, field_def: FieldDef) -> ContentTypeDef:
        """Return a copy with field_def merged into any existing definition."""
        existing = self.fields.get(field_def.name)
        merged = existing.merge(field_def) if existing else field_def
        return replace(self, fields={**self.fields, field_def.name: merged})

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "content_type": self.content_type,
            "fields": [self.fields[n].to_dict() for n in sorted(self.fields)],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContentTypeDef:
        """Create from dictionary representation."""
        fields = [FieldDef.from_dict(f) for f in data.get("fields", [])]
        return cls(
            name=data["name"],
            content_type=data["content_type"],
            fields={f.name: f for f in fields},
        )


def type_name(content_type_id: str) -> str:
    """Type name for a content type id.

    Underscore-separated words are camel-cased; any other character that
    cannot appear in an identifier becomes an underscore.

    Example:
        >>> type_name("menu_item")
        'MenuItem'
        >>> type_name("section-faq")
        'Section_faq'
    """
    camel = "".join(p[:1].upper() + p[1:] for p in content_type_id.split("_"))
    return re.sub(r"[^_a-zA-Z0-9]", "_", camel)


def asset_type() -> ContentTypeDef:
    """Built-in definition of the Asset type."""
    return ContentTypeDef(
        name="Asset",
        content_type="Asset",
        fields={
            "title": FieldDef("title", FieldType.STRING),
            "description": FieldDef("description", FieldType.STRING),
            "file": FieldDef("file", FieldType.JSON),
        },
    )
