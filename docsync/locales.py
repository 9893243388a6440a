"""
Locale views and locale-fallback expansion.

Stores keep documents in the all-locales shape, where each field maps a
locale code to a value:

    {"fields": {"title": {"en-US": "Home", "es-MX": "Inicio"}}}

Readers usually want a single-locale view instead:

    {"sys": {"locale": "es-MX", ...}, "fields": {"title": "Inicio"}}

This module converts between the two shapes, walks configured fallback
chains (es-MX -> es-US -> en-US), and expands query paths that cross
several localized link hops into every combination of fallback choices.

Invariants:
    - Transforms never mutate their input
    - A fallback chain stops at the first locale without a fallback, or on a cycle
    - Path expansion varies the outermost hop slowest, most specific first
"""

from __future__ import annotations

import itertools
from collections.abc import Iterator, Mapping, Sequence
from typing import Any

from .document import Document

STAR = "*"


def fallback_chain(locale: str | None, fallbacks: Mapping[str, str] | None) -> list[str]:
    """Ordered locales to try for a requested locale.

    Example:
        >>> fallback_chain("es-MX", {"es-MX": "es-US", "es-US": "en-US"})
        ['es-MX', 'es-US', 'en-US']
    """
    chain: list[str] = []
    fallbacks = fallbacks or {}
    while locale and locale not in chain:
        chain.append(locale)
        locale = fallbacks.get(locale)
    return chain


def expand_locale_paths(
    path_tuples: Sequence[Sequence[str | None]],
    fallbacks: Mapping[str, str] | None,
) -> Iterator[list[str]]:
    """Expand a hop-split path into every locale-fallback combination.

    Each tuple is one hop: ``[sys_or_fields, field, locale, *link_keys]``.
    A hop whose locale slot is None is not localizable and contributes
    exactly one choice.

    Example:
        A two-hop path with chain es-MX -> es-US -> en-US yields
        ``fields.page.es-MX.fields.title.es-MX`` first, then
        ``fields.page.es-MX.fields.title.es-US`` and so on, 9 variants in all.
    """
    choices = []
    for hop in path_tuples:
        if len(hop) > 2 and hop[0] == "fields" and hop[2] is not None:
            choices.append(fallback_chain(hop[2], fallbacks))
        else:
            choices.append([None])

    for combo in itertools.product(*choices):
        path: list[str] = []
        for hop, locale in zip(path_tuples, combo):
            if locale is None:
                path.extend(p for p in hop if p is not None)
            else:
                path.extend([hop[0], hop[1], locale])
                path.extend(p for p in hop[3:] if p is not None)
        yield path


def localized_value(value: Any, locale: str, fallbacks: Mapping[str, str] | None) -> Any:
    """Pick a locale's value from an all-locales field, walking fallbacks."""
    if not isinstance(value, dict):
        return None
    for candidate in fallback_chain(locale, fallbacks):
        v = value.get(candidate)
        if v is not None:
            return v
    return None


def to_locale(
    doc: Document,
    locale: str,
    fallbacks: Mapping[str, str] | None = None,
) -> Document:
    """Reduce an all-locales document to a single-locale view.

    Documents that already carry sys.locale are returned unchanged.
    """
    if (doc.get("sys") or {}).get("locale"):
        return doc
    if "fields" not in doc:
        return doc

    result = dict(doc)
    result["sys"] = {**doc.get("sys", {}), "locale": locale}
    result["fields"] = {
        name: localized_value(value, locale, fallbacks)
        for name, value in (doc.get("fields") or {}).items()
        if value is not None
    }
    return result


def to_star(doc: Document) -> Document:
    """Expand a single-locale view back into the all-locales shape."""
    locale = (doc.get("sys") or {}).get("locale")
    if not locale:
        return doc

    sys = {k: v for k, v in doc["sys"].items() if k != "locale"}
    fields = {name: {locale: value} for name, value in (doc.get("fields") or {}).items()}
    return {**doc, "sys": sys, "fields": fields}

