"""
Content type indexer.

Builds content type definitions by sampling the documents that flow
through the sync engine and webhook receiver:

    indexer = ContentTypeIndexer()
    emitter.on("Entry", indexer.index)
    ...
    await indexer.finalize(store)   # resolve link targets
    indexer.types["Page"].fields["title"].type  # FieldType.STRING

Declared content type definitions from the remote API can be indexed as
well; declared fields win over inferred ones.

Link targets are resolved in two phases. index() only records the ids a
Link field pointed at; finalize() looks each id up in a Store to learn
which content types the field links to. Ids that are still missing stay
pending for the next finalize().

Invariants:
    - The Asset type is always present
    - Merges for one content type are serialized by that type's lock
    - Int widens to Float; any other conflict keeps the earliest type
    - Tombstones and unknown kinds are ignored

How to change safely:
    - Keep index() synchronous and free of I/O; it runs inside event
      listeners on the sync path
    - Never hold a type lock across an await
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Any

from ..document import Document, DocumentKind, content_type_of, document_type
from ..store.base import Store
from .inference import compute_fingerprint, declared_type, infer_fields
from .types import ContentTypeDef, FieldType, asset_type, type_name

logger = logging.getLogger(__name__)

CONTENT_TYPE_KIND = "ContentType"


class ContentTypeIndexer:
    """Thread-safe registry of inferred content types.

    Attributes:
        types: Snapshot of every known type keyed by type name
        fingerprint: SHA-256 over the canonical form of all types
    """

    def __init__(self) -> None:
        asset = asset_type()
        self._types: dict[str, ContentTypeDef] = {asset.name: asset}
        self._lock = threading.Lock()
        self._type_locks: dict[str, threading.Lock] = {}

    def _lock_for(self, name: str) -> threading.Lock:
        with self._lock:
            return self._type_locks.setdefault(name, threading.Lock())

    @property
    def types(self) -> dict[str, ContentTypeDef]:
        with self._lock:
            return dict(self._types)

    def get(self, name: str) -> ContentTypeDef | None:
        with self._lock:
            return self._types.get(name)

    def by_content_type(self, content_type: str) -> ContentTypeDef | None:
        """Find a type by its content type id rather than its name."""
        return self.get(type_name(content_type))

    @property
    def fingerprint(self) -> str:
        return compute_fingerprint(self.types.values())

    def index(self, doc: Document) -> ContentTypeDef | None:
        """Record the fields observed on one document.

        Returns:
            The updated type, or None when the document was ignored
        """
        kind = document_type(doc)
        if kind == CONTENT_TYPE_KIND:
            return self.index_content_type(doc)
        if kind == DocumentKind.ASSET.value:
            content_type = DocumentKind.ASSET.value
        elif kind == DocumentKind.ENTRY.value:
            content_type = content_type_of(doc)
        else:
            return None
        if not content_type:
            return None

        name = type_name(content_type)
        observed = infer_fields(doc)
        with self._lock_for(name):
            current = self.get(name) or ContentTypeDef(name=name, content_type=content_type)
            for field_def in observed:
                current = current.with_field(field_def)
            self._store(current)
        return current

    def index_content_type(self, raw_content_type: dict[str, Any]) -> ContentTypeDef:
        """Record a declared content type definition.

        Declared fields replace inferred ones; fields only seen in
        documents are kept.

        Raises:
            ValueError: If a declared field type is unknown
        """
        declared = declared_type(raw_content_type)
        with self._lock_for(declared.name):
            current = self.get(declared.name)
            fields = dict(declared.fields)
            if current is not None:
                for name, field_def in current.fields.items():
                    if name in fields:
                        fields[name] = replace(fields[name], link_ids=field_def.link_ids)
                    else:
                        fields[name] = field_def
            updated = replace(declared, fields=fields)
            self._store(updated)
        logger.debug(
            "Content type declared",
            extra={"type_name": updated.name, "fields": len(updated.fields)},
        )
        return updated

    def _store(self, content_type: ContentTypeDef) -> None:
        with self._lock:
            self._types[content_type.name] = content_type

    async def finalize(self, store: Store) -> None:
        """Resolve recorded link ids into link target types.

        Each pending id is looked up with store.find(). Ids the store does
        not know yet are kept for the next call.
        """
        pending: dict[str, str | None] = {}
        for content_type in self.types.values():
            for field_def in content_type.fields.values():
                if field_def.type == FieldType.LINK:
                    pending.update((link_id, None) for link_id in field_def.link_ids)

        for link_id in pending:
            target = await store.find(link_id)
            if target is None:
                continue
            kind = document_type(target)
            target_type = content_type_of(target) or kind
            if target_type:
                pending[link_id] = type_name(target_type)

        resolved = {k: v for k, v in pending.items() if v is not None}
        for name in list(self.types):
            with self._lock_for(name):
                current = self.get(name)
                if current is None:
                    continue
                fields = {}
                for field_name, field_def in current.fields.items():
                    found = {resolved[i] for i in field_def.link_ids if i in resolved}
                    if found:
                        field_def = replace(
                            field_def,
                            link_types=field_def.link_types | found,
                            link_ids=field_def.link_ids.difference(resolved),
                        )
                    fields[field_name] = field_def
                self._store(replace(current, fields=fields))

        logger.info(
            "Content types finalized",
            extra={
                "types": len(self.types),
                "links_resolved": len(resolved),
                "links_pending": len(pending) - len(resolved),
            },
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        types = self.types
        return {
            "fingerprint": compute_fingerprint(types.values()),
            "types": [types[name].to_dict() for name in sorted(types)],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContentTypeIndexer:
        """Create from dictionary representation."""
        indexer = cls()
        for raw in data.get("types", []):
            indexer._store(ContentTypeDef.from_dict(raw))
        return indexer
