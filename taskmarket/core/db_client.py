"""SQLite persistence gateway with CRUD operations, transactions and change events."""

import asyncio
import json
import logging
import re
import sqlite3
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

import aiosqlite

from taskmarket.core import change_feed
from taskmarket.core.change_feed import ChangeEvent, ChangeKind
from taskmarket.core.config import Constants, settings
from taskmarket.core.errors import NotFoundError, StoreError


logger = logging.getLogger(__name__)

FilterParam = str | int | float | bool | None

# Columns stored as 0/1 and surfaced as bool
_BOOL_FIELDS = {
    "is_requestor_verified",
    "is_doer_verified",
    "requestor_rated",
    "doer_rated",
    "read",
}

_SQL_OPERATORS = {
    "=": "=",
    "!=": "!=",
    ">": ">",
    "<": "<",
    ">=": ">=",
    "<=": "<=",
    "~": "LIKE",
}

_COMPARISON_RE = re.compile(r"""(\w+)\s*(!=|>=|<=|=|>|<|~)\s*(['"])([^'"]*)\3""")
_SORT_RE = re.compile(r"^(-?)([A-Za-z_][A-Za-z0-9_]*)(?:\s+(ASC|DESC))?$", re.IGNORECASE)


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection name contains only alphanumeric characters and underscores."""
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding in filter queries via json.dumps."""
    return json.dumps(str(value))[1:-1]


def _coerce_id(collection: str, record_id: str) -> int:
    try:
        return int(record_id)
    except (TypeError, ValueError) as e:
        msg = f"Record not found in {collection}: {record_id}"
        raise NotFoundError(msg) from e


def _to_record(columns: list[str], row: tuple[Any, ...]) -> dict[str, Any]:
    """Build a record dict, exposing ids as strings and flags as booleans."""
    record: dict[str, Any] = {}
    for key, value in zip(columns, row, strict=True):
        if isinstance(value, int) and (key == "id" or key.endswith("_id")):
            record[key] = str(value)
        elif key in _BOOL_FIELDS and value is not None:
            record[key] = bool(value)
        else:
            record[key] = value
    return record


def _to_sql_value(value: Any) -> Any:  # noqa: ANN401
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict | list):
        return json.dumps(value)
    return value


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


# Filter parsing: `field = "v" && (a = "x" || b = "y")`


def _parse_value(value: str, *, is_like: bool = False) -> FilterParam:
    """Parse a filter literal to the matching Python type for SQLite."""
    if is_like:
        escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return f"%{escaped}%"
    if value.isdigit():
        return int(value)
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    return value


def _parse_comparison(comparison: str) -> tuple[str, FilterParam]:
    match = _COMPARISON_RE.fullmatch(comparison.strip())
    if not match:
        msg = f"Invalid filter syntax: {comparison}"
        raise ValueError(msg)

    field, op, _quote, raw_value = match.groups()
    sql_op = _SQL_OPERATORS[op]
    if sql_op == "LIKE":
        return f"{field} LIKE ? ESCAPE '\\'", _parse_value(raw_value, is_like=True)
    return f"{field} {sql_op} ?", _parse_value(raw_value)


def _split_top_level(filter_query: str, separator: str) -> list[str]:
    """Split on a separator that is not nested inside parentheses."""
    parts: list[str] = []
    depth = 0
    start = 0
    i = 0
    while i < len(filter_query):
        char = filter_query[i]
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif depth == 0 and filter_query.startswith(separator, i):
            parts.append(filter_query[start:i].strip())
            i += len(separator)
            start = i
            continue
        i += 1
    parts.append(filter_query[start:].strip())
    return [part for part in parts if part]


def parse_filter(filter_query: str) -> tuple[str, list[FilterParam]]:
    """Parse filter syntax into a SQL WHERE clause and parameter list."""
    if not filter_query:
        return "", []

    conditions: list[str] = []
    params: list[FilterParam] = []
    for part in _split_top_level(filter_query, "&&"):
        if part.startswith("(") and part.endswith(")"):
            or_conditions = []
            for or_part in _split_top_level(part[1:-1], "||"):
                cond, value = _parse_comparison(or_part)
                or_conditions.append(cond)
                params.append(value)
            conditions.append(f"({' OR '.join(or_conditions)})")
        else:
            cond, value = _parse_comparison(part)
            conditions.append(cond)
            params.append(value)

    return " AND ".join(conditions), params


def parse_sort(sort: str) -> str:
    """Translate `-field` / `field` / `field DESC` into an ORDER BY clause."""
    if not sort:
        return "id ASC"
    match = _SORT_RE.match(sort.strip())
    if not match:
        logger.warning("Invalid sort parameter, using default", extra={"sort": sort})
        return "id ASC"
    minus, field, direction = match.groups()
    if minus:
        return f"{field} DESC, id DESC"
    return f"{field} {(direction or 'ASC').upper()}, id ASC"


# Connection management


_db_connections: dict[tuple[int, int, str], aiosqlite.Connection] = {}
_write_locks: dict[tuple[int, int, str], asyncio.Lock] = {}
_connect_locks: dict[int, asyncio.Lock] = {}


def _cache_key(db_path: str | None) -> tuple[int, int, str]:
    loop = asyncio.get_running_loop()
    return (threading.get_ident(), id(loop), str(get_db_path(db_path)))


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Get or create a cached connection for the current thread, loop, and db path."""
    cache_key = _cache_key(db_path)
    cached_conn = _db_connections.get(cache_key)
    if cached_conn is not None:
        return cached_conn

    connect_lock = _connect_locks.setdefault(cache_key[1], asyncio.Lock())
    async with connect_lock:
        if cache_key in _db_connections:
            return _db_connections[cache_key]

        path = get_db_path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        # isolation_level=None: transactions are managed explicitly by atomic()
        conn = await aiosqlite.connect(str(path), isolation_level=None)
        await conn.execute("PRAGMA foreign_keys = ON")
        await conn.execute("PRAGMA journal_mode = WAL")

        _db_connections[cache_key] = conn
        _write_locks[cache_key] = asyncio.Lock()

        logger.info(
            "Created new SQLite connection",
            extra={"db_path": str(path), "thread_id": cache_key[0], "loop_id": cache_key[1]},
        )
        return conn


async def close_connection(*, db_path: str | None = None) -> None:
    """Close the cached SQLite connection for the current thread, loop, and db path."""
    cache_key = _cache_key(db_path)
    conn = _db_connections.pop(cache_key, None)
    _write_locks.pop(cache_key, None)
    if conn is None:
        return

    try:
        await conn.close()
        logger.info("Closed SQLite connection", extra={"db_path": cache_key[2]})
    except (sqlite3.Error, ValueError) as e:
        logger.warning("Error closing SQLite connection", extra={"error": str(e), "db_path": cache_key[2]})


async def init_db(*, db_path: str | None = None) -> None:
    """Initialize the database schema by delegating to schema.init_db()."""
    from taskmarket.core import schema  # noqa: PLC0415

    await schema.init_db(db_path=db_path)


class Transaction:
    """Unit of work bound to one connection inside BEGIN IMMEDIATE ... COMMIT.

    Change events for writes are collected and published only after commit.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn
        self.events: list[ChangeEvent] = []

    async def _execute(self, query: str, params: list[Any] | tuple[Any, ...] = ()) -> aiosqlite.Cursor:
        try:
            return await self._conn.execute(query, params)
        except sqlite3.OperationalError as e:
            if "no such table" in str(e):
                msg = f"{e}. Call init_db() first."
                raise StoreError(msg) from e
            raise StoreError(str(e)) from e
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e

    async def get_record(self, *, collection: str, record_id: str) -> dict[str, Any]:
        """Fetch a single record by ID, raising NotFoundError if it does not exist."""
        _validate_collection_name(collection)
        query = f"SELECT * FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
        cursor = await self._execute(query, (_coerce_id(collection, record_id),))
        row = await cursor.fetchone()
        if row is None:
            msg = f"Record not found in {collection}: {record_id}"
            raise NotFoundError(msg)
        return _to_record([d[0] for d in cursor.description], row)

    async def list_records(
        self,
        *,
        collection: str,
        page: int = 1,
        per_page: int = Constants.DEFAULT_PER_PAGE_LIMIT,
        filter_query: str = "",
        sort: str = "",
    ) -> list[dict[str, Any]]:
        """List records with optional filtering, sorting, and pagination."""
        _validate_collection_name(collection)
        where_clause, params = parse_filter(filter_query)
        where_sql = f"WHERE {where_clause}" if where_clause else ""
        offset = (page - 1) * per_page

        query = f"SELECT * FROM {collection} {where_sql} ORDER BY {parse_sort(sort)} LIMIT ? OFFSET ?"  # noqa: S608
        cursor = await self._execute(query, [*params, per_page, offset])
        rows = await cursor.fetchall()
        columns = [d[0] for d in cursor.description]
        return [_to_record(columns, row) for row in rows]

    async def get_first_record(self, *, collection: str, filter_query: str, sort: str = "") -> dict[str, Any] | None:
        """Return the first record matching the filter, or None."""
        records = await self.list_records(collection=collection, filter_query=filter_query, sort=sort, per_page=1)
        return records[0] if records else None

    async def count_records(self, *, collection: str, filter_query: str = "") -> int:
        """Count records matching the filter."""
        _validate_collection_name(collection)
        where_clause, params = parse_filter(filter_query)
        where_sql = f"WHERE {where_clause}" if where_clause else ""
        cursor = await self._execute(f"SELECT COUNT(*) FROM {collection} {where_sql}", params)  # noqa: S608
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def create_record(self, *, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a new record and return it with its assigned id."""
        _validate_collection_name(collection)
        columns = list(data.keys())
        placeholders = ", ".join("?" for _ in columns)
        values = [_to_sql_value(data[key]) for key in columns]

        query = f"INSERT INTO {collection} ({', '.join(columns)}) VALUES ({placeholders})"  # noqa: S608
        cursor = await self._execute(query, values)
        record = await self.get_record(collection=collection, record_id=str(cursor.lastrowid))

        self.events.append(ChangeEvent(table=collection, kind=ChangeKind.INSERT, row=record))
        logger.info("Created record", extra={"collection": collection, "record_id": record["id"]})
        return record

    async def update_record(self, *, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Update a record by ID and return the updated record."""
        updated = await self.update_record_if(collection=collection, record_id=record_id, data=data, expected={})
        if not updated:
            msg = f"Record not found in {collection}: {record_id}"
            raise NotFoundError(msg)
        return await self.get_record(collection=collection, record_id=record_id)

    async def update_record_if(
        self,
        *,
        collection: str,
        record_id: str,
        data: dict[str, Any],
        expected: dict[str, Any],
    ) -> bool:
        """Compare-and-set: apply the update only if every `expected` field still holds.

        Returns:
            True if the row was updated, False if it is missing or a guard did not hold
        """
        if not data:
            msg = "Empty update payload"
            raise ValueError(msg)
        _validate_collection_name(collection)

        set_clause = ", ".join(f"{key} = ?" for key in data)
        guard_clause = "".join(f" AND {key} = ?" for key in expected)
        values = [_to_sql_value(v) for v in data.values()]
        values.append(_coerce_id(collection, record_id))
        values.extend(_to_sql_value(v) for v in expected.values())

        query = f"UPDATE {collection} SET {set_clause} WHERE id = ?{guard_clause}"  # noqa: S608
        cursor = await self._execute(query, values)
        if cursor.rowcount == 0:
            return False

        record = await self.get_record(collection=collection, record_id=record_id)
        self.events.append(ChangeEvent(table=collection, kind=ChangeKind.UPDATE, row=record))
        logger.info("Updated record", extra={"collection": collection, "record_id": record_id})
        return True

    async def list_all_records(
        self, *, collection: str, filter_query: str = "", sort: str = ""
    ) -> list[dict[str, Any]]:
        """List every matching record, paging through the whole result set."""
        records: list[dict[str, Any]] = []
        page = 1
        while True:
            batch = await self.list_records(
                collection=collection,
                page=page,
                per_page=Constants.MAX_PER_PAGE_LIMIT,
                filter_query=filter_query,
                sort=sort,
            )
            records.extend(batch)
            if len(batch) < Constants.MAX_PER_PAGE_LIMIT:
                return records
            page += 1

    async def update_records(self, *, collection: str, filter_query: str, data: dict[str, Any]) -> int:
        """Update every record matching the filter in one statement and return how many changed."""
        if not filter_query:
            msg = "Bulk update requires a filter"
            raise ValueError(msg)
        if not data:
            msg = "Empty update payload"
            raise ValueError(msg)
        _validate_collection_name(collection)
        where_clause, params = parse_filter(filter_query)

        cursor = await self._execute(f"SELECT id FROM {collection} WHERE {where_clause}", params)  # noqa: S608
        record_ids = [str(row[0]) for row in await cursor.fetchall()]
        if not record_ids:
            return 0

        set_clause = ", ".join(f"{key} = ?" for key in data)
        values = [_to_sql_value(v) for v in data.values()]
        query = f"UPDATE {collection} SET {set_clause} WHERE {where_clause}"  # noqa: S608
        await self._execute(query, [*values, *params])

        for record_id in record_ids:
            record = await self.get_record(collection=collection, record_id=record_id)
            self.events.append(ChangeEvent(table=collection, kind=ChangeKind.UPDATE, row=record))
        logger.info("Updated records", extra={"collection": collection, "count": len(record_ids)})
        return len(record_ids)


@asynccontextmanager
async def atomic(*, db_path: str | None = None) -> AsyncIterator[Transaction]:
    """Run a block of reads and writes as one serialised SQLite transaction.

    Usage:
        async with db_client.atomic() as tx:
            task = await tx.get_record(collection="tasks", record_id=task_id)
            await tx.update_record(collection="tasks", record_id=task_id, data={...})
    """
    conn = await get_connection(db_path=db_path)
    lock = _write_locks[_cache_key(db_path)]
    async with lock:
        tx = Transaction(conn)
        try:
            await conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            raise StoreError(f"Failed to begin transaction: {e}") from e
        try:
            yield tx
        except BaseException:
            try:
                await conn.execute("ROLLBACK")
            except sqlite3.Error:
                logger.exception("Rollback failed")
            raise
        try:
            await conn.execute("COMMIT")
        except sqlite3.Error as e:
            logger.error("commit_failed", extra={"error": str(e)})
            try:
                await conn.execute("ROLLBACK")
            except sqlite3.Error:
                logger.exception("Rollback failed")
            raise StoreError(f"Failed to commit transaction: {e}") from e

    for event in tx.events:
        change_feed.publish(event)


async def create_record(*, collection: str, data: dict[str, Any]) -> dict[str, Any]:
    """Insert a new record and return it with its assigned id."""
    try:
        async with atomic() as tx:
            return await tx.create_record(collection=collection, data=data)
    except StoreError as e:
        logger.error("create_record_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to create record in {collection}: {e}"
        raise StoreError(msg) from e


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Fetch a single record by ID, raising NotFoundError if not found."""
    try:
        async with atomic() as tx:
            return await tx.get_record(collection=collection, record_id=record_id)
    except StoreError as e:
        logger.error("get_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to get record from {collection}: {e}"
        raise StoreError(msg) from e


async def update_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Update a record by ID and return the updated record."""
    try:
        async with atomic() as tx:
            return await tx.update_record(collection=collection, record_id=record_id, data=data)
    except StoreError as e:
        logger.error("update_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to update record in {collection}: {e}"
        raise StoreError(msg) from e


async def update_record_if(
    *,
    collection: str,
    record_id: str,
    data: dict[str, Any],
    expected: dict[str, Any],
) -> bool:
    """Compare-and-set update; True if the guarded update was applied."""
    try:
        async with atomic() as tx:
            return await tx.update_record_if(collection=collection, record_id=record_id, data=data, expected=expected)
    except StoreError as e:
        logger.error(
            "update_record_if_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)}
        )
        msg = f"Failed to update record in {collection}: {e}"
        raise StoreError(msg) from e


async def list_records(
    *,
    collection: str,
    page: int = 1,
    per_page: int = Constants.DEFAULT_PER_PAGE_LIMIT,
    filter_query: str = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """List records with optional filtering, sorting, and pagination."""
    try:
        async with atomic() as tx:
            records = await tx.list_records(
                collection=collection, page=page, per_page=per_page, filter_query=filter_query, sort=sort
            )
    except StoreError as e:
        logger.error("list_records_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to list records from {collection}: {e}"
        raise StoreError(msg) from e

    logger.debug("Listed records", extra={"collection": collection, "count": len(records)})
    return records


async def list_all_records(*, collection: str, filter_query: str = "", sort: str = "") -> list[dict[str, Any]]:
    """List every matching record, without a page limit, from one consistent snapshot."""
    try:
        async with atomic() as tx:
            records = await tx.list_all_records(collection=collection, filter_query=filter_query, sort=sort)
    except StoreError as e:
        logger.error("list_all_records_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to list records from {collection}: {e}"
        raise StoreError(msg) from e

    logger.debug("Listed all records", extra={"collection": collection, "count": len(records)})
    return records


async def get_first_record(*, collection: str, filter_query: str, sort: str = "") -> dict[str, Any] | None:
    """Return the first record matching the filter, or None."""
    try:
        async with atomic() as tx:
            return await tx.get_first_record(collection=collection, filter_query=filter_query, sort=sort)
    except StoreError as e:
        logger.error(
            "get_first_record_failed", extra={"collection": collection, "filter_query": filter_query, "error": str(e)}
        )
        msg = f"Failed to get first record from {collection}: {e}"
        raise StoreError(msg) from e


async def count_records(*, collection: str, filter_query: str = "") -> int:
    """Count records matching the filter."""
    try:
        async with atomic() as tx:
            return await tx.count_records(collection=collection, filter_query=filter_query)
    except StoreError as e:
        logger.error("count_records_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to count records in {collection}: {e}"
        raise StoreError(msg) from e


def build_in_filter(field: str, values: list[str]) -> str:
    """Build an OR group matching any of the values, e.g. `(task_id = "1" || task_id = "2")`."""
    if not values:
        msg = "build_in_filter requires at least one value"
        raise ValueError(msg)
    conditions = " || ".join(f'{field} = "{sanitize_param(value)}"' for value in values)
    return f"({conditions})"
