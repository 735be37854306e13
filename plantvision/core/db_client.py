"""SQLite store with CRUD operations, filter parsing and explicit transactions.

Filter syntax (PocketBase style):
    status = "pending" && (priority = "high" || priority = "urgent")
    due_date < "2024-01-01T00:00:00.000000Z" && completed_at = null
    equipment_name ~ "pump"

Quoted values are strings; unquoted ``true``, ``false``, ``null`` and numbers are
literals. ``&&`` binds tighter than ``||``. Sort strings name one column with an
optional ``-`` prefix for descending order; ``id`` is always the tie-breaker.
"""

import asyncio
import json
import logging
import re
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

import aiosqlite

from plantvision.core import schema
from plantvision.core.config import settings


logger = logging.getLogger(__name__)

FilterValue = str | int | float | bool | None


class DatabaseError(Exception):
    """Store operation failed."""


class RecordNotFoundError(DatabaseError):
    """No record with the requested id."""


class ConcurrentUpdateError(DatabaseError):
    """Record no longer matches the expected values of a conditional update."""


def format_timestamp(value: datetime) -> str:
    """Render a datetime as fixed-width ISO-8601 UTC so string order matches time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def utc_now() -> str:
    """Current time as a store timestamp."""
    return format_timestamp(datetime.now(UTC))


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding inside a double-quoted filter value."""
    return json.dumps(str(value))[1:-1]


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection name contains only alphanumeric characters and underscores."""
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


# Filter parsing


@dataclass(frozen=True)
class Comparison:
    """A single ``field op value`` condition."""

    field: str
    op: str
    value: FilterValue


@dataclass(frozen=True)
class BoolGroup:
    """Conjunction (``and``) or disjunction (``or``) of child conditions."""

    kind: str
    children: tuple["Comparison | BoolGroup", ...]


FilterNode = Comparison | BoolGroup

_TOKEN_RE = re.compile(
    r"""\s*(?:
        (?P<lparen>\()
      | (?P<rparen>\))
      | (?P<and>&&)
      | (?P<or>\|\|)
      | (?P<field>[A-Za-z_][A-Za-z0-9_]*)\s*(?P<op>!=|>=|<=|=|>|<|~)\s*
        (?:"(?P<dq>(?:[^"\\]|\\.)*)"
          |'(?P<sq>(?:[^'\\]|\\.)*)'
          |(?P<lit>true|false|null|-?\d+(?:\.\d+)?)\b)
    )""",
    re.VERBOSE,
)


def _literal(raw: str) -> FilterValue:
    if raw == "true":
        return True
    if raw == "false":
        return False
    if raw == "null":
        return None
    if "." in raw:
        return float(raw)
    return int(raw)


def _tokenize(filter_query: str) -> list[tuple[str, Any]]:
    tokens: list[tuple[str, Any]] = []
    position = 0
    text = filter_query.rstrip()
    while position < len(text):
        match = _TOKEN_RE.match(text, position)
        if not match or match.end() == position:
            msg = f"Invalid filter syntax near: {text[position:]!r}"
            raise ValueError(msg)
        position = match.end()
        if match.group("lparen"):
            tokens.append(("(", None))
        elif match.group("rparen"):
            tokens.append((")", None))
        elif match.group("and"):
            tokens.append(("and", None))
        elif match.group("or"):
            tokens.append(("or", None))
        else:
            if match.group("dq") is not None:
                value: FilterValue = json.loads(f'"{match.group("dq")}"')
            elif match.group("sq") is not None:
                value = match.group("sq").replace("\\'", "'")
            else:
                value = _literal(match.group("lit"))
            op = match.group("op")
            if value is None and op not in {"=", "!="}:
                msg = f"Operator {op} cannot compare against null"
                raise ValueError(msg)
            tokens.append(("cmp", Comparison(field=match.group("field"), op=op, value=value)))
    return tokens


class _FilterParser:
    """Recursive descent over the token stream: or-expr := and-expr ('||' and-expr)*."""

    def __init__(self, tokens: list[tuple[str, Any]]) -> None:
        self._tokens = tokens
        self._index = 0

    def parse(self) -> FilterNode:
        node = self._or_expr()
        if self._index != len(self._tokens):
            msg = "Invalid filter syntax: unexpected trailing tokens"
            raise ValueError(msg)
        return node

    def _peek(self) -> str | None:
        return self._tokens[self._index][0] if self._index < len(self._tokens) else None

    def _or_expr(self) -> FilterNode:
        children = [self._and_expr()]
        while self._peek() == "or":
            self._index += 1
            children.append(self._and_expr())
        return children[0] if len(children) == 1 else BoolGroup("or", tuple(children))

    def _and_expr(self) -> FilterNode:
        children = [self._factor()]
        while self._peek() == "and":
            self._index += 1
            children.append(self._factor())
        return children[0] if len(children) == 1 else BoolGroup("and", tuple(children))

    def _factor(self) -> FilterNode:
        kind = self._peek()
        if kind == "(":
            self._index += 1
            node = self._or_expr()
            if self._peek() != ")":
                msg = "Invalid filter syntax: unbalanced parentheses"
                raise ValueError(msg)
            self._index += 1
            return node
        if kind == "cmp":
            node = self._tokens[self._index][1]
            self._index += 1
            return node
        msg = "Invalid filter syntax: expected a comparison"
        raise ValueError(msg)


def parse_filter_tree(filter_query: str) -> FilterNode | None:
    """Parse a filter string into a condition tree (None for an empty filter)."""
    if not filter_query or not filter_query.strip():
        return None
    return _FilterParser(_tokenize(filter_query)).parse()


def _comparison_sql(node: Comparison) -> tuple[str, list[FilterValue]]:
    if node.value is None:
        return (f"{node.field} IS NULL" if node.op == "=" else f"{node.field} IS NOT NULL"), []
    if node.op == "~":
        escaped = str(node.value).replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return f"{node.field} LIKE ? ESCAPE '\\'", [f"%{escaped}%"]
    return f"{node.field} {node.op} ?", [node.value]


def _node_sql(node: FilterNode) -> tuple[str, list[FilterValue]]:
    if isinstance(node, Comparison):
        return _comparison_sql(node)
    parts = []
    params: list[FilterValue] = []
    for child in node.children:
        sql, child_params = _node_sql(child)
        parts.append(sql)
        params.extend(child_params)
    joiner = " AND " if node.kind == "and" else " OR "
    return f"({joiner.join(parts)})", params


def parse_filter(filter_query: str) -> tuple[str, list[FilterValue]]:
    """Parse filter syntax into a SQL WHERE clause and parameter list."""
    tree = parse_filter_tree(filter_query)
    if tree is None:
        return "", []
    return _node_sql(tree)


def parse_sort(sort: str) -> tuple[str, bool]:
    """Split a sort string into (column, descending)."""
    sort = sort.strip()
    descending = sort.startswith("-")
    column = sort.lstrip("+-").strip()
    if not re.match(r"^[A-Za-z_][A-Za-z0-9_]*$", column):
        msg = f"Invalid sort parameter: {sort}"
        raise ValueError(msg)
    return column, descending


def _order_clause(sort: str) -> str:
    if not sort:
        return "ORDER BY id ASC"
    column, descending = parse_sort(sort)
    direction = "DESC" if descending else "ASC"
    return f"ORDER BY {column} {direction}, id ASC"


# Encoding


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, dict | list):
        return json.dumps(value)
    if isinstance(value, Enum):
        return value.value
    return value


def _decode_record(record: dict[str, Any]) -> dict[str, Any]:
    decoded = dict(record)
    for key, value in record.items():
        if key in schema.JSON_FIELDS and isinstance(value, str):
            decoded[key] = json.loads(value)
        elif key in schema.BOOL_FIELDS and value is not None:
            decoded[key] = bool(value)
    return decoded


def _where(filter_query: str) -> tuple[str, list[FilterValue]]:
    clause, params = parse_filter(filter_query)
    return (f"WHERE {clause}" if clause else ""), params


class StoreSession:
    """CRUD operations bound to a single connection.

    Used directly inside ``Store.transaction()``/``Store.snapshot()``; the store's
    own methods run one operation per session in autocommit mode.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def _fetch_all(self, query: str, params: list[Any]) -> list[dict[str, Any]]:
        cursor = await self._conn.execute(query, params)
        rows = await cursor.fetchall()
        columns = [description[0] for description in cursor.description]
        return [_decode_record(dict(zip(columns, row, strict=True))) for row in rows]

    async def create_record(self, *, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a new record and return it with its assigned id and timestamps."""
        _validate_collection_name(collection)
        now = utc_now()
        record = {"id": str(uuid.uuid4()), "created": now, "updated": now, **data}

        columns = list(record.keys())
        placeholders = ", ".join("?" for _ in columns)
        values = [_encode_value(record[key]) for key in columns]
        query = f"INSERT INTO {collection} ({', '.join(columns)}) VALUES ({placeholders})"  # noqa: S608 - collection is validated
        await self._conn.execute(query, values)

        logger.debug("Created record", extra={"collection": collection, "record_id": record["id"]})
        return await self.get_record(collection=collection, record_id=record["id"])

    async def get_record(self, *, collection: str, record_id: str) -> dict[str, Any]:
        """Fetch a single record by ID, raising RecordNotFoundError if not found."""
        _validate_collection_name(collection)
        query = f"SELECT * FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
        records = await self._fetch_all(query, [record_id])
        if not records:
            msg = f"Record not found in {collection}: {record_id}"
            raise RecordNotFoundError(msg)
        return records[0]

    async def get_first_record(
        self, *, collection: str, filter_query: str, sort: str = ""
    ) -> dict[str, Any] | None:
        """Return the first record matching the filter, or None."""
        records = await self.list_records(collection=collection, per_page=1, filter_query=filter_query, sort=sort)
        return records[0] if records else None

    async def update_record(
        self,
        *,
        collection: str,
        record_id: str,
        data: dict[str, Any],
        expected: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Update a record by ID and return the updated record.

        ``expected`` turns the write into a compare-and-set: the row is only
        updated while each named column still holds the given value.
        """
        if not data:
            msg = "Empty update payload"
            raise ValueError(msg)
        _validate_collection_name(collection)

        payload = {"updated": utc_now(), **data}
        set_clause = ", ".join(f"{key} = ?" for key in payload)
        values = [_encode_value(value) for value in payload.values()]
        conditions = ["id = ?"]
        values.append(record_id)
        for key, value in (expected or {}).items():
            if value is None:
                conditions.append(f"{key} IS NULL")
            else:
                conditions.append(f"{key} = ?")
                values.append(_encode_value(value))

        query = f"UPDATE {collection} SET {set_clause} WHERE {' AND '.join(conditions)}"  # noqa: S608 - collection is validated
        cursor = await self._conn.execute(query, values)
        if cursor.rowcount == 0:
            # Distinguish a missing row from a failed precondition
            await self.get_record(collection=collection, record_id=record_id)
            msg = f"Record {record_id} in {collection} changed concurrently"
            raise ConcurrentUpdateError(msg)

        logger.debug("Updated record", extra={"collection": collection, "record_id": record_id})
        return await self.get_record(collection=collection, record_id=record_id)

    async def delete_record(self, *, collection: str, record_id: str) -> None:
        """Delete a record by ID, raising RecordNotFoundError if not found."""
        _validate_collection_name(collection)
        query = f"DELETE FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
        cursor = await self._conn.execute(query, [record_id])
        if cursor.rowcount == 0:
            msg = f"Record not found in {collection}: {record_id}"
            raise RecordNotFoundError(msg)
        logger.debug("Deleted record", extra={"collection": collection, "record_id": record_id})

    async def delete_records(self, *, collection: str, filter_query: str) -> int:
        """Delete every record matching the filter and return how many were removed."""
        _validate_collection_name(collection)
        where_clause, params = _where(filter_query)
        if not where_clause:
            msg = "Refusing to delete without a filter"
            raise ValueError(msg)
        query = f"DELETE FROM {collection} {where_clause}"  # noqa: S608 - collection is validated
        cursor = await self._conn.execute(query, params)
        return cursor.rowcount

    async def list_records(
        self,
        *,
        collection: str,
        page: int = 1,
        per_page: int = 50,
        filter_query: str = "",
        sort: str = "",
    ) -> list[dict[str, Any]]:
        """List records with optional filtering, sorting, and pagination."""
        _validate_collection_name(collection)
        where_clause, params = _where(filter_query)
        offset = (max(page, 1) - 1) * per_page
        query = f"SELECT * FROM {collection} {where_clause} {_order_clause(sort)} LIMIT ? OFFSET ?"  # noqa: S608 - collection is validated
        return await self._fetch_all(query, [*params, per_page, offset])

    async def count_records(self, *, collection: str, filter_query: str = "") -> int:
        """Count records matching the filter."""
        _validate_collection_name(collection)
        where_clause, params = _where(filter_query)
        query = f"SELECT COUNT(*) FROM {collection} {where_clause}"  # noqa: S608 - collection is validated
        cursor = await self._conn.execute(query, params)
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def count_by(self, *, collection: str, field: str, filter_query: str = "") -> dict[str, int]:
        """Count matching records grouped by the value of one column."""
        _validate_collection_name(collection)
        _validate_collection_name(field)
        where_clause, params = _where(filter_query)
        query = f"SELECT {field}, COUNT(*) FROM {collection} {where_clause} GROUP BY {field}"  # noqa: S608 - names are validated
        cursor = await self._conn.execute(query, params)
        rows = await cursor.fetchall()
        return {str(value): int(count) for value, count in rows if value is not None}

    async def distinct_values(self, *, collection: str, field: str, filter_query: str = "") -> list[Any]:
        """Distinct non-null values of one column, sorted ascending."""
        _validate_collection_name(collection)
        _validate_collection_name(field)
        where_clause, params = _where(filter_query)
        null_guard = f"{'AND' if where_clause else 'WHERE'} {field} IS NOT NULL"
        query = f"SELECT DISTINCT {field} FROM {collection} {where_clause} {null_guard} ORDER BY {field}"  # noqa: S608 - names are validated
        cursor = await self._conn.execute(query, params)
        rows = await cursor.fetchall()
        return [row[0] for row in rows]


class Store:
    """Async SQLite store.

    All access to the shared connection is serialised by an ``asyncio.Lock`` so
    a transaction never interleaves with other statements. aiosqlite runs the
    actual I/O on its worker thread, so waiting handlers suspend rather than
    block the event loop.
    """

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    @property
    def db_path(self) -> str:
        return self._db_path

    async def connect(self) -> None:
        """Open the connection (idempotent)."""
        if self._conn is not None:
            return
        if self._db_path != ":memory:":
            Path(self._db_path).resolve().parent.mkdir(parents=True, exist_ok=True)
        # isolation_level=None: transactions are issued explicitly
        conn = await aiosqlite.connect(self._db_path, isolation_level=None)
        await conn.execute("PRAGMA foreign_keys = ON")
        await conn.execute("PRAGMA journal_mode = WAL")
        self._conn = conn
        logger.info("Opened SQLite connection", extra={"db_path": self._db_path})

    async def close(self) -> None:
        if self._conn is None:
            return
        try:
            await self._conn.close()
            logger.info("Closed SQLite connection", extra={"db_path": self._db_path})
        finally:
            self._conn = None

    async def init_db(self) -> None:
        """Create tables, indexes and views if they do not exist."""
        await self.connect()
        async with self._lock:
            conn = self._require_conn()
            for statement in schema.schema_statements():
                await conn.execute(statement)
        logger.info("Database schema initialized", extra={"collections": schema.COLLECTIONS})

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            msg = "Store is not connected. Call connect() first."
            raise DatabaseError(msg)
        return self._conn

    @asynccontextmanager
    async def transaction(self, *, readonly: bool = False) -> AsyncIterator[StoreSession]:
        """Run the enclosed operations atomically.

        Commits on normal exit; rolls back on any exception, including task
        cancellation. A ``readonly`` transaction always rolls back.
        """
        async with self._lock:
            conn = self._require_conn()
            await conn.execute("BEGIN" if readonly else "BEGIN IMMEDIATE")
            try:
                yield StoreSession(conn)
            except aiosqlite.Error as e:
                await conn.execute("ROLLBACK")
                logger.error("transaction_failed", extra={"db_path": self._db_path, "error": str(e)})
                msg = f"Transaction failed: {e}"
                raise DatabaseError(msg) from e
            except BaseException:
                await conn.execute("ROLLBACK")
                raise
            await conn.execute("ROLLBACK" if readonly else "COMMIT")

    @asynccontextmanager
    async def snapshot(self) -> AsyncIterator[StoreSession]:
        """Consistent read view across several queries."""
        async with self.transaction(readonly=True) as session:
            yield session

    @asynccontextmanager
    async def _autocommit(self, operation: str, collection: str) -> AsyncIterator[StoreSession]:
        async with self._lock:
            try:
                yield StoreSession(self._require_conn())
            except (DatabaseError, ValueError):
                raise
            except aiosqlite.Error as e:
                logger.error(f"{operation}_failed", extra={"collection": collection, "error": str(e)})
                msg = f"Failed to {operation.replace('_', ' ')} in {collection}: {e}"
                raise DatabaseError(msg) from e

    async def create_record(self, *, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        async with self._autocommit("create_record", collection) as session:
            return await session.create_record(collection=collection, data=data)

    async def get_record(self, *, collection: str, record_id: str) -> dict[str, Any]:
        async with self._autocommit("get_record", collection) as session:
            return await session.get_record(collection=collection, record_id=record_id)

    async def get_first_record(
        self, *, collection: str, filter_query: str, sort: str = ""
    ) -> dict[str, Any] | None:
        async with self._autocommit("get_first_record", collection) as session:
            return await session.get_first_record(collection=collection, filter_query=filter_query, sort=sort)

    async def update_record(
        self,
        *,
        collection: str,
        record_id: str,
        data: dict[str, Any],
        expected: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        async with self._autocommit("update_record", collection) as session:
            return await session.update_record(
                collection=collection, record_id=record_id, data=data, expected=expected
            )

    async def delete_record(self, *, collection: str, record_id: str) -> None:
        async with self._autocommit("delete_record", collection) as session:
            await session.delete_record(collection=collection, record_id=record_id)

    async def delete_records(self, *, collection: str, filter_query: str) -> int:
        async with self._autocommit("delete_records", collection) as session:
            return await session.delete_records(collection=collection, filter_query=filter_query)

    async def list_records(
        self,
        *,
        collection: str,
        page: int = 1,
        per_page: int = 50,
        filter_query: str = "",
        sort: str = "",
    ) -> list[dict[str, Any]]:
        async with self._autocommit("list_records", collection) as session:
            return await session.list_records(
                collection=collection, page=page, per_page=per_page, filter_query=filter_query, sort=sort
            )

    async def count_records(self, *, collection: str, filter_query: str = "") -> int:
        async with self._autocommit("count_records", collection) as session:
            return await session.count_records(collection=collection, filter_query=filter_query)

    async def count_by(self, *, collection: str, field: str, filter_query: str = "") -> dict[str, int]:
        async with self._autocommit("count_by", collection) as session:
            return await session.count_by(collection=collection, field=field, filter_query=filter_query)

    async def distinct_values(self, *, collection: str, field: str, filter_query: str = "") -> list[Any]:
        async with self._autocommit("distinct_values", collection) as session:
            return await session.distinct_values(collection=collection, field=field, filter_query=filter_query)

    async def list_page(
        self,
        *,
        collection: str,
        page: int = 1,
        per_page: int = 50,
        filter_query: str = "",
        sort: str = "",
    ) -> tuple[list[dict[str, Any]], int]:
        """Return one page of records and the total match count from a single snapshot."""
        async with self.snapshot() as session:
            records = await session.list_records(
                collection=collection, page=page, per_page=per_page, filter_query=filter_query, sort=sort
            )
            total = await session.count_records(collection=collection, filter_query=filter_query)
        return records, total
