"""
Relational document store on SQLite.

Documents are stored whole as JSON text keyed by id. Generated columns
expose the kind, content type, revision and updatedAt of each document
so they can be indexed, and query conditions compile to parameterized
json_extract/json_each predicates evaluated inside SQLite.

Invariants:
    - index() reads the previous row and upserts inside one
      BEGIN IMMEDIATE transaction; the revision guard is part of the
      upsert statement itself
    - Tombstones keep their row and read as absent
    - Every statement is parameterized; no document value is ever
      interpolated into SQL text

How to change safely:
    - Schema changes must be additive (CREATE ... IF NOT EXISTS)
    - Keep predicate semantics identical to MemoryQuery
    - Test concurrent index() calls after touching the upsert

Table schema:
    documents:
        - id TEXT PRIMARY KEY
        - data TEXT (JSON document)
        - kind TEXT (generated from sys.type)
        - content_type TEXT (generated from sys.contentType.sys.id)
        - revision INTEGER (generated from sys.revision)
        - updated_at TEXT (generated from sys.updatedAt)
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ..document import Document, DocumentKind, reads_as_absent, revision_of
from .base import BaseStore, UnsupportedOperatorError
from .query import Condition, Query, as_list, order_terms

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

_UPSERT_IF_NEWER = """
    INSERT INTO documents (id, data) VALUES (:id, :data)
    ON CONFLICT(id) DO UPDATE SET data = excluded.data
    WHERE :revision >= documents.revision
"""

_COMPARISONS = {"lt": "<", "lte": "<=", "gt": ">", "gte": ">="}


class SQLiteStore(BaseStore):
    """Document store in a single SQLite database file.

    Thread safety:
        Each operation opens its own connection. SQLite serializes
        writers; WAL mode lets readers proceed alongside a writer.

    Example:
        >>> store = SQLiteStore("/var/lib/docsync/content.db")
        >>> await store.initialize()
        >>> await store.index(doc)
        >>> await store.find_all("page").eq("slug", "/home").first()
    """

    def __init__(
        self,
        path: str,
        default_locale: str = "en-US",
        locale_fallbacks: dict[str, str] | None = None,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        cache_size_pages: int = -16000,
    ) -> None:
        """Initialize the store.

        Args:
            path: Database file path
            default_locale: Locale used to build query field paths
            locale_fallbacks: Fallback chain applied to query conditions
            wal_mode: Enable SQLite WAL journal mode
            busy_timeout_ms: SQLite busy timeout
            cache_size_pages: SQLite cache size (negative = KB)
        """
        super().__init__(default_locale, locale_fallbacks)
        self.path = Path(path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.cache_size_pages = cache_size_pages

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            str(self.path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row
        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute(f"PRAGMA cache_size = {self.cache_size_pages}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

    async def initialize(self) -> None:
        """Create the database file and schema if they don't exist."""
        with self._get_connection() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at INTEGER NOT NULL
                );

                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    kind TEXT GENERATED ALWAYS AS (json_extract(data, '$.sys.type')) VIRTUAL,
                    content_type TEXT GENERATED ALWAYS AS
                        (json_extract(data, '$.sys.contentType.sys.id')) VIRTUAL,
                    revision INTEGER GENERATED ALWAYS AS
                        (COALESCE(json_extract(data, '$.sys.revision'), 0)) VIRTUAL,
                    updated_at TEXT GENERATED ALWAYS AS
                        (json_extract(data, '$.sys.updatedAt')) VIRTUAL
                );

                CREATE INDEX IF NOT EXISTS idx_documents_kind ON documents(kind);
                CREATE INDEX IF NOT EXISTS idx_documents_content_type
                    ON documents(content_type, kind);
                CREATE INDEX IF NOT EXISTS idx_documents_updated ON documents(updated_at DESC);

                INSERT OR IGNORE INTO schema_version (version, applied_at)
                VALUES (1, strftime('%s', 'now') * 1000);
            """)
        logger.info("Initialized document database", extra={"path": str(self.path)})

    async def find(self, doc_id: str, **options: Any) -> Document | None:
        with self._get_connection() as conn:
            value = _read(conn, doc_id)
        if reads_as_absent(value):
            return None
        return value

    def find_all(self, content_type: str, options: dict[str, Any] | None = None) -> SQLiteQuery:
        return SQLiteQuery(
            self,
            content_type,
            options,
            default_locale=self.default_locale,
            locale_fallbacks=self.locale_fallbacks,
        )

    async def set(self, doc_id: str, value: Document) -> Document | None:
        with self._transaction() as conn:
            previous = _read(conn, doc_id)
            conn.execute(
                "INSERT OR REPLACE INTO documents (id, data) VALUES (?, ?)",
                (doc_id, json.dumps(value)),
            )
        return previous

    async def delete(self, doc_id: str) -> Document | None:
        with self._transaction() as conn:
            previous = _read(conn, doc_id)
            conn.execute("DELETE FROM documents WHERE id = ?", (doc_id,))
        return previous

    async def _compare_and_set(self, doc_id: str, doc: Document) -> tuple[bool, Document | None]:
        with self._transaction() as conn:
            previous = _read(conn, doc_id)
            cursor = conn.execute(
                _UPSERT_IF_NEWER,
                {"id": doc_id, "data": json.dumps(doc), "revision": revision_of(doc)},
            )
            applied = cursor.rowcount > 0
        return applied, previous

    async def row_count(self) -> int:
        """Number of stored rows, tombstones included."""
        with self._get_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]

    def execute_query(self, sql: str, params: dict[str, Any]) -> list[Document]:
        with self._get_connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [json.loads(row["data"]) for row in rows]


def _read(conn: sqlite3.Connection, doc_id: str) -> Document | None:
    row = conn.execute("SELECT data FROM documents WHERE id = ?", (doc_id,)).fetchone()
    if row is None:
        return None
    return json.loads(row["data"])


def json_path(keys: list[str | None] | tuple[str, ...]) -> str:
    """Quote a key sequence as an SQLite JSON path."""
    return "$" + "".join('."{}"'.format(str(k).replace('"', '\\"')) for k in keys if k is not None)


class SQLiteQuery(Query):
    """Query compiled to a single SELECT over the documents table."""

    store: SQLiteStore

    async def _execute(self) -> list[Document]:
        sql, params = self.to_sql()
        logger.debug("Executing document query", extra={"sql": sql, "params": params})
        return self.store.execute_query(sql, params)

    def to_sql(self) -> tuple[str, dict[str, Any]]:
        compiler = _Compiler()
        where = [compiler.content_type_clause(self.content_type)]
        where.extend(compiler.condition(c) for c in self.conditions)

        sql = "SELECT d.data FROM documents d WHERE " + " AND ".join(where)

        order = []
        for path, descending in order_terms(self):
            p = compiler.param(json_path(path))
            order.append(f"json_extract(d.data, {p}) IS NULL")
            order.append(f"json_extract(d.data, {p}) {'DESC' if descending else 'ASC'}")
        order.append("d.id ASC")
        sql += " ORDER BY " + ", ".join(order)

        limit = self.options.get("limit")
        skip = self.options.get("skip")
        if limit is not None or skip:
            sql += f" LIMIT {compiler.param(int(limit) if limit is not None else -1)}"
            sql += f" OFFSET {compiler.param(int(skip or 0))}"
        return sql, compiler.params


class _Compiler:
    """Accumulates named parameters while compiling conditions."""

    def __init__(self) -> None:
        self.params: dict[str, Any] = {}
        self._aliases = 0

    def param(self, value: Any) -> str:
        name = f"p{len(self.params)}"
        self.params[name] = value
        return f":{name}"

    def alias(self) -> str:
        self._aliases += 1
        return f"j{self._aliases}"

    def content_type_clause(self, content_type: str) -> str:
        if content_type == DocumentKind.ASSET.value:
            return f"d.kind = {self.param(DocumentKind.ASSET.value)}"
        return (
            f"d.kind = {self.param(DocumentKind.ENTRY.value)} "
            f"AND d.content_type = {self.param(content_type)}"
        )

    def condition(self, condition: Condition) -> str:
        positive = condition.positive()
        variants = [self._hops(v.path_tuples, v, "d") for v in positive.each_locale_fallback()]
        clause = "(" + " OR ".join(variants) + ")"
        return f"NOT {clause}" if condition.negated else clause

    def _hops(self, hops: list[list[str | None]], condition: Condition, source: str) -> str:
        if len(hops) == 1:
            return self._leaf(json_path(hops[0]), condition, source)

        link_path = json_path(hops[0])
        single = self.param(link_path + '."sys"."id"')
        many = self.param(link_path)
        alias = self.alias()
        inner = self._hops(hops[1:], condition, alias)
        return (
            f"EXISTS (SELECT 1 FROM documents {alias} WHERE {alias}.id IN ("
            f"SELECT json_extract({source}.data, {single}) "
            f"UNION ALL SELECT json_extract(value, '$.sys.id') FROM json_each({source}.data, {many}) "
            f"WHERE json_type({source}.data, {many}) = 'array'"
            f") AND {inner})"
        )

    def _leaf(self, path: str, condition: Condition, source: str) -> str:
        p = self.param(path)
        candidates = f"SELECT 1 FROM json_each({source}.data, {p}) WHERE type != 'null'"
        op = condition.op
        expected = condition.expected

        if op == "eq":
            return f"EXISTS ({candidates} AND value = {self.param(expected)})"
        if op == "in":
            values = as_list(expected)
            if not values:
                return "0"
            placeholders = ", ".join(self.param(v) for v in values)
            return f"EXISTS ({candidates} AND value IN ({placeholders}))"
        if op == "all":
            values = as_list(expected)
            if not values:
                return "1"
            return "(" + " AND ".join(
                f"EXISTS ({candidates} AND value = {self.param(v)})" for v in values
            ) + ")"
        if op == "exists":
            return f"EXISTS ({candidates})"
        if op == "match":
            escaped = str(expected).replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            return f"EXISTS ({candidates} AND value LIKE {self.param(f'%{escaped}%')} ESCAPE '\\')"
        if op in _COMPARISONS:
            if isinstance(expected, str):
                guard = "type = 'text'"
            else:
                guard = "type IN ('integer', 'real')"
            return f"EXISTS ({candidates} AND {guard} AND value {_COMPARISONS[op]} {self.param(expected)})"
        raise UnsupportedOperatorError(f"Operator not implemented: {op}")
