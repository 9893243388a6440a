"""
Unit tests for backend-agnostic query objects.

Tests cover:
- Field path construction
- Hop splitting and locale-fallback expansion
- Filter normalization and operator parsing
- Immutability of chained queries
"""

import pytest

from docsync.locales import expand_locale_paths, fallback_chain
from docsync.store.base import QueryTooComplexError, UnsupportedOperatorError
from docsync.store.memory import MemoryStore
from docsync.store.query import Condition, normalize_filter, order_terms

FALLBACKS = {"es-MX": "es-US", "es-US": "en-US"}


class TestBuildPath:
    """Tests for Query.build_path."""

    @pytest.fixture
    def query(self):
        return MemoryStore().find_all("page")

    def test_field(self, query):
        assert query.build_path("slug") == ["fields", "slug", "en-US"]

    def test_id(self, query):
        assert query.build_path("id") == ["sys", "id"]

    def test_sys(self, query):
        assert query.build_path("sys.contentType.sys.id") == ["sys", "contentType", "sys", "id"]

    def test_linked_field(self, query):
        assert query.build_path("page.title") == [
            "fields", "page", "en-US", "fields", "title", "en-US",
        ]

    def test_linked_id(self, query):
        assert query.build_path("page.id") == ["fields", "page", "en-US", "sys", "id"]

    def test_explicit_fields_prefix(self, query):
        assert query.build_path("fields.slug") == ["fields", "slug", "en-US"]

    def test_locale_option(self, query):
        """The locale option selects the locale segment."""
        assert query.with_options(locale="es-MX").build_path("slug") == [
            "fields", "slug", "es-MX",
        ]

    def test_star_locale_uses_default(self, query):
        assert query.with_options(locale="*").build_path("slug") == ["fields", "slug", "en-US"]


class TestCondition:
    """Tests for Condition hop splitting and expansion."""

    def test_path_tuples_single_hop(self):
        condition = Condition(("fields", "slug", "en-US"), "eq", "/")

        assert condition.path_tuples == [["fields", "slug", "en-US"]]

    def test_path_tuples_two_hops(self):
        condition = Condition(
            ("fields", "page", "en-US", "fields", "title", "en-US"), "eq", "x"
        )

        assert condition.path_tuples == [
            ["fields", "page", "en-US"],
            ["fields", "title", "en-US"],
        ]

    def test_path_tuples_link_id(self):
        """A trailing sys.id stays in the hop that holds the link."""
        condition = Condition(("fields", "page", "en-US", "sys", "id"), "eq", "x")

        assert condition.path_tuples == [["fields", "page", "en-US", "sys", "id"]]

    def test_path_tuples_sys(self):
        condition = Condition(("sys", "id"), "eq", "x")

        assert condition.path_tuples == [["sys", "id"]]

    def test_two_hop_expansion_tries_nine_variants(self):
        """es-MX -> es-US -> en-US over two localized hops yields 9 paths."""
        condition = Condition(
            ("fields", "page", "es-MX", "fields", "title", "es-MX"),
            "eq",
            "x",
            locale_fallbacks=FALLBACKS,
        )

        variants = [".".join(c.path) for c in condition.each_locale_fallback()]

        assert len(variants) == 9
        assert variants[0] == "fields.page.es-MX.fields.title.es-MX"
        assert variants[1] == "fields.page.es-MX.fields.title.es-US"
        assert variants[3] == "fields.page.es-US.fields.title.es-MX"
        assert variants[-1] == "fields.page.en-US.fields.title.en-US"
        assert len(set(variants)) == 9

    def test_sys_hop_is_not_expanded(self):
        condition = Condition(("sys", "id"), "eq", "x", locale_fallbacks=FALLBACKS)

        assert len(list(condition.each_locale_fallback())) == 1

    def test_negated_positive(self):
        ne = Condition(("sys", "id"), "ne", "x")
        missing = Condition(("sys", "id"), "exists", False)

        assert ne.negated and ne.positive().op == "eq"
        assert missing.negated and missing.positive().expected is True
        assert not Condition(("sys", "id"), "in", ["x"]).negated


class TestLocaleHelpers:
    """Tests for fallback chains."""

    def test_chain(self):
        assert fallback_chain("es-MX", FALLBACKS) == ["es-MX", "es-US", "en-US"]

    def test_chain_stops_on_cycle(self):
        assert fallback_chain("a", {"a": "b", "b": "a"}) == ["a", "b"]

    def test_expand_single_hop(self):
        paths = list(expand_locale_paths([["fields", "slug", "es-US"]], FALLBACKS))

        assert paths == [["fields", "slug", "es-US"], ["fields", "slug", "en-US"]]


class TestQueryBuilding:
    """Tests for chaining, filters and operators."""

    @pytest.fixture
    def query(self):
        return MemoryStore().find_all("page")

    def test_chaining_is_immutable(self, query):
        filtered = query.eq("slug", "/")

        assert query.conditions == ()
        assert len(filtered.conditions) == 1
        assert filtered is not query

    def test_with_options_is_immutable(self, query):
        limited = query.with_options(limit=1)

        assert "limit" not in query.options
        assert limited.options["limit"] == 1

    def test_apply_dot_notation(self, query):
        applied = query.apply({"page.title": "Home"})

        assert [c.path for c in applied.conditions] == [
            ("fields", "page", "en-US", "fields", "title", "en-US"),
        ]

    def test_apply_operator_map(self, query):
        applied = query.apply({"title": {"ne": "Draft", "$exists": True}})

        assert [(c.op, c.expected) for c in applied.conditions] == [("ne", "Draft"), ("exists", True)]

    def test_apply_nested_join(self, query):
        applied = query.apply({"page": {"slug": {"eq": "/"}}})

        assert applied.conditions[0].path == (
            "fields", "page", "en-US", "fields", "slug", "en-US",
        )

    def test_exists_string_value(self, query):
        assert query.apply({"slug": {"exists": "false"}}).conditions[0].expected is False

    def test_unknown_operator(self, query):
        with pytest.raises(UnsupportedOperatorError):
            query.apply({"slug": {"eq": "/", "$near": [1, 2]}})

    def test_unknown_operator_direct(self, query):
        with pytest.raises(UnsupportedOperatorError, match="near"):
            query.apply_operator("near", "slug", 1)

    def test_normalize_merges_prefixes(self):
        assert normalize_filter({"page.title": "a", "page.slug": "b"}) == {
            "page": {"title": "a", "slug": "b"}
        }

    def test_filter_too_deep(self, query):
        """Filters nesting deeper than seven levels are rejected."""
        with pytest.raises(QueryTooComplexError):
            query.apply({"a.b.c.d.e.f.g.h.i": "x"})

    def test_filter_at_limit(self, query):
        applied = query.apply({"a.b.c.d.e.f.g": "x"})

        assert len(applied.conditions) == 1

    def test_to_param_ignores_include(self, query):
        base = query.eq("slug", "/")

        assert base.to_param() == base.with_options(include=2).to_param()
        assert base.to_param() != base.with_options(limit=2).to_param()

    def test_order_terms(self, query):
        ordered = query.with_options(order="-sys.updatedAt,title")

        assert order_terms(ordered) == [
            (["sys", "updatedAt"], True),
            (["fields", "title", "en-US"], False),
        ]
