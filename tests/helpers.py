"""
Document builders shared by the test suite.
"""

from __future__ import annotations

from typing import Any


def entry(
    doc_id: str,
    content_type: str = "page",
    revision: int = 1,
    updated_at: str = "2024-01-01T00:00:00.000Z",
    locale: str = "en-US",
    **fields: Any,
) -> dict[str, Any]:
    """All-locales entry with every field under a single locale."""
    return {
        "sys": {
            "id": doc_id,
            "type": "Entry",
            "revision": revision,
            "updatedAt": updated_at,
            "contentType": {"sys": {"type": "Link", "linkType": "ContentType", "id": content_type}},
        },
        "fields": {name: {locale: value} for name, value in fields.items()},
    }


def localized_entry(
    doc_id: str,
    content_type: str,
    fields: dict[str, dict[str, Any]],
    revision: int = 1,
    updated_at: str = "2024-01-01T00:00:00.000Z",
) -> dict[str, Any]:
    """Entry whose fields are given as {name: {locale: value}}."""
    doc = entry(doc_id, content_type, revision=revision, updated_at=updated_at)
    doc["fields"] = fields
    return doc


def asset(doc_id: str, revision: int = 1, title: str = "Logo") -> dict[str, Any]:
    return {
        "sys": {
            "id": doc_id,
            "type": "Asset",
            "revision": revision,
            "updatedAt": "2024-01-01T00:00:00.000Z",
        },
        "fields": {
            "title": {"en-US": title},
            "file": {"en-US": {"url": f"//images.example.com/{doc_id}.png"}},
        },
    }


def deleted_entry(doc_id: str, revision: int = 1) -> dict[str, Any]:
    return {"sys": {"id": doc_id, "type": "DeletedEntry", "revision": revision}}


def link(doc_id: str, link_type: str = "Entry") -> dict[str, Any]:
    return {"sys": {"type": "Link", "linkType": link_type, "id": doc_id}}
