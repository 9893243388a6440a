"""
Locale middleware.

Stores keep documents in the all-locales shape because that is what the
sync protocol delivers. This middleware turns every document read through
it into a single-locale view for the locale named in the read options,
or the configured default. Locale "*" returns the all-locales shape.
"""

from __future__ import annotations

from typing import Any

from ..document import Document
from ..locales import STAR, to_locale, to_star
from ..store.base import Store
from .base import StoreMiddleware


class LocaleMiddleware(StoreMiddleware):
    """Produce single-locale views of stored documents.

    Documents that are already single-locale pass through unchanged.

    Attributes:
        default_locale: Locale used when the read options name none
        locale_fallbacks: Chain walked when a field has no value in the locale
    """

    def __init__(
        self,
        store: Store,
        default_locale: str = "en-US",
        locale_fallbacks: dict[str, str] | None = None,
    ) -> None:
        super().__init__(store)
        self.default_locale = default_locale
        self.locale_fallbacks = dict(locale_fallbacks or {})

    def transform(self, doc: Document, options: dict[str, Any]) -> Document:
        locale = options.get("locale") or self.default_locale
        if locale == STAR:
            return to_star(doc)
        return to_locale(doc, locale, self.locale_fallbacks)
