"""
Document model for replicated content.

A Document is the raw JSON object delivered by the remote API:

    {
        "sys": {
            "id": "7kqN...",
            "type": "Entry",
            "revision": 3,
            "updatedAt": "2024-01-02T03:04:05.000Z",
            "contentType": {"sys": {"type": "Link", "linkType": "ContentType", "id": "page"}}
        },
        "fields": {"title": {"en-US": "Home", "es-MX": "Inicio"}}
    }

Documents stay plain dicts everywhere in the package. This module only
provides typed accessors, validation at the ingestion boundary, and the
link/tombstone markers shared by the store backends.

Invariants:
    - Identity is sys.id
    - Tombstone kinds (DeletedEntry, DeletedAsset) and Nil markers read as absent
    - Missing revision is treated as 0

How to change safely:
    - Keep SysInfo.from_document tolerant of extra sys keys
    - New kinds must be added to DocumentKind and to the tombstone set if needed
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Any

Document = dict[str, Any]

NIL_TYPE = "Nil"
LINK_TYPE = "Link"


class MalformedDocumentError(ValueError):
    """Document is missing its id or kind and cannot be stored."""

    pass


class DocumentKind(Enum):
    """Kinds of documents delivered by the remote API."""

    ENTRY = "Entry"
    ASSET = "Asset"
    DELETED_ENTRY = "DeletedEntry"
    DELETED_ASSET = "DeletedAsset"

    @property
    def is_tombstone(self) -> bool:
        """Whether this kind marks a deletion."""
        return self in (DocumentKind.DELETED_ENTRY, DocumentKind.DELETED_ASSET)

    @classmethod
    def from_str(cls, value: str) -> DocumentKind:
        """Convert a sys.type string to a DocumentKind.

        Raises:
            MalformedDocumentError: If value is not a document kind
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise MalformedDocumentError(f"Invalid document type '{value}'. Valid types: {valid}")


@dataclass(frozen=True)
class SysInfo:
    """Typed view over a document's sys block.

    Attributes:
        id: Document identifier
        kind: Document kind
        revision: Monotonic revision counter
        content_type: Content type id (entries only)
        updated_at: ISO-8601 timestamp of the last change
        locale: Locale of a single-locale view, None for all-locale documents
    """

    id: str
    kind: DocumentKind
    revision: int = 0
    content_type: str | None = None
    updated_at: str | None = None
    locale: str | None = None

    @classmethod
    def from_document(cls, doc: Any) -> SysInfo:
        """Extract sys metadata from a raw document.

        Raises:
            MalformedDocumentError: If id or type is missing or invalid
        """
        if not isinstance(doc, dict) or not isinstance(doc.get("sys"), dict):
            raise MalformedDocumentError("Document has no sys block")
        sys = doc["sys"]

        required = ["id", "type"]
        missing = [f for f in required if not sys.get(f)]
        if missing:
            raise MalformedDocumentError(f"Missing required sys fields: {missing}")

        try:
            revision = int(sys.get("revision") or 0)
        except (TypeError, ValueError):
            raise MalformedDocumentError(f"Invalid revision {sys.get('revision')!r} for {sys['id']}") from None

        return cls(
            id=str(sys["id"]),
            kind=DocumentKind.from_str(sys["type"]),
            revision=revision,
            content_type=content_type_of(doc),
            updated_at=sys.get("updatedAt"),
            locale=sys.get("locale"),
        )


def validate_document(doc: Any) -> SysInfo:
    """Validate a document at the ingestion boundary."""
    return SysInfo.from_document(doc)


def document_id(doc: Document | None) -> str | None:
    if not doc:
        return None
    return (doc.get("sys") or {}).get("id")


def document_type(doc: Document | None) -> str | None:
    if not doc:
        return None
    return (doc.get("sys") or {}).get("type")


def revision_of(doc: Document | None) -> int:
    """Revision of a document, 0 when absent."""
    if not doc:
        return 0
    return int((doc.get("sys") or {}).get("revision") or 0)


def content_type_of(doc: Document | None) -> str | None:
    """Content type id of an entry, None for assets and tombstones."""
    if not doc:
        return None
    ct = (doc.get("sys") or {}).get("contentType")
    if not isinstance(ct, dict):
        return None
    return (ct.get("sys") or {}).get("id")


def is_tombstone(doc: Document | None) -> bool:
    return document_type(doc) in (
        DocumentKind.DELETED_ENTRY.value,
        DocumentKind.DELETED_ASSET.value,
    )


def is_nil(doc: Document | None) -> bool:
    return document_type(doc) == NIL_TYPE


def reads_as_absent(doc: Document | None) -> bool:
    """Whether a stored value must be reported to readers as missing."""
    return doc is None or is_tombstone(doc) or is_nil(doc)


def nil_document(doc_id: str) -> Document:
    """Marker cached for ids confirmed missing on the remote."""
    return {"sys": {"id": doc_id, "type": NIL_TYPE, "revision": 1}}


def make_link(doc_id: str, link_type: str = "Entry") -> Document:
    return {"sys": {"id": doc_id, "type": LINK_TYPE, "linkType": link_type}}


def is_link(value: Any) -> bool:
    """Whether a value is a link descriptor."""
    if not isinstance(value, dict):
        return False
    sys = value.get("sys")
    return isinstance(sys, dict) and sys.get("type") == LINK_TYPE and "id" in sys


def link_type_of(doc: Document) -> str:
    """Link type that would point at this document."""
    kind = document_type(doc)
    if kind in (DocumentKind.ASSET.value, DocumentKind.DELETED_ASSET.value):
        return "Asset"
    return "Entry"


def deep_copy(doc: Document | None) -> Document | None:
    """Copy a stored document so callers cannot mutate store state."""
    if doc is None:
        return None
    return copy.deepcopy(doc)
