"""
Link resolution for documents.

A field may hold a link descriptor pointing at another document:

    {"sys": {"type": "Link", "linkType": "Entry", "id": "page-1"}}

resolve_links() walks a document (all-locales or single-locale shape),
replaces each link with whatever the supplied resolver returns, and
recurses into resolved documents with one less unit of depth.

Invariants:
    - depth <= 0 leaves the document untouched, links stay raw
    - A link the resolver cannot satisfy stays a raw link descriptor
    - The input document is never mutated
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from .document import Document, DocumentKind, is_link

Resolver = Callable[[Document], Awaitable[Document | None]]

_DOCUMENT_TYPES = (DocumentKind.ENTRY.value, DocumentKind.ASSET.value)


def is_embedded_document(value: Any) -> bool:
    """Whether a field value is an already-resolved entry or asset."""
    if not isinstance(value, dict):
        return False
    sys = value.get("sys")
    return isinstance(sys, dict) and sys.get("type") in _DOCUMENT_TYPES


async def resolve_links(doc: Document | None, depth: int | None, resolve: Resolver) -> Document | None:
    """Substitute link descriptors with resolved documents up to depth.

    Args:
        doc: Document to walk
        depth: Remaining number of link hops to follow
        resolve: Coroutine mapping a link (or embedded document) to its
            replacement, or None when it cannot be resolved

    Returns:
        A new document with links replaced, or doc itself when depth is exhausted
    """
    if not doc or not depth or depth <= 0:
        return doc
    fields = doc.get("fields")
    if not isinstance(fields, dict):
        return doc

    single_locale = bool((doc.get("sys") or {}).get("locale"))
    resolved_fields: dict[str, Any] = {}
    for name, value in fields.items():
        if single_locale or not isinstance(value, dict) or is_link(value):
            resolved_fields[name] = await _resolve_value(value, depth, resolve)
        else:
            resolved_fields[name] = {
                locale: await _resolve_value(v, depth, resolve) for locale, v in value.items()
            }
    return {**doc, "fields": resolved_fields}


async def _resolve_value(value: Any, depth: int, resolve: Resolver) -> Any:
    if isinstance(value, list):
        return [await _resolve_value(v, depth, resolve) for v in value]
    if not (is_link(value) or is_embedded_document(value)):
        return value

    resolved = await resolve(value)
    if resolved is None:
        return value
    if is_link(resolved):
        return resolved
    return await resolve_links(resolved, depth - 1, resolve)


def store_resolver(find: Callable[..., Awaitable[Document | None]]) -> Resolver:
    """Build a resolver that looks linked ids up with a store's find()."""

    async def _resolve(value: Document) -> Document | None:
        if not is_link(value):
            return value
        return await find(value["sys"]["id"])

    return _resolve
