"""Read queries against a managed connection."""

from __future__ import annotations

import logging
import re
from typing import AsyncIterator

import asyncpg

from .models import Row

LOG = logging.getLogger(__name__)

_SIMPLE_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_$]*\Z")

# Reserved words PostgreSQL refuses as bare table or schema names.
_RESERVED = frozenset(
    {
        "all", "analyse", "analyze", "and", "any", "array", "as", "asc", "both",
        "case", "cast", "check", "collate", "column", "constraint", "create",
        "current_user", "default", "desc", "distinct", "do", "else", "end",
        "except", "false", "fetch", "for", "foreign", "from", "grant", "group",
        "having", "in", "initially", "intersect", "into", "leading", "limit",
        "not", "null", "offset", "on", "only", "or", "order", "primary",
        "references", "returning", "select", "session_user", "some", "table",
        "then", "to", "trailing", "true", "union", "unique", "user", "using",
        "when", "where", "window", "with",
    }
)


class QueryExecutionError(RuntimeError):
    """Raised when a query fails to execute."""


def quote_ident(name: str) -> str:
    """Render a configured name so it resolves as if written bare.

    Plain identifiers stay unquoted, so PostgreSQL folds them to lower case
    (``Users`` reads ``users``). Reserved words are quoted in their folded
    form; anything else that cannot appear bare is quoted verbatim.
    """

    if _SIMPLE_IDENTIFIER.match(name):
        folded = name.lower()
        if folded not in _RESERVED:
            return name
        return f'"{folded}"'
    return '"' + name.replace('"', '""') + '"'


def build_select(schema: str, table: str) -> str:
    schema = (schema or "").strip()
    table = (table or "").strip()
    if not schema or not table:
        raise QueryExecutionError("Provide both a schema and a table to query.")
    return f"SELECT * FROM {quote_ident(schema)}.{quote_ident(table)}"


async def run_query(
    connection: asyncpg.Connection,
    schema: str,
    table: str,
    *,
    prefetch: int | None = None,
) -> AsyncIterator[Row]:
    """Stream every row of ``schema.table`` through a server-side cursor.

    Rows are fetched lazily in batches of ``prefetch``. The iterator can be
    consumed once; the cursor and its read-only transaction are released when
    it is exhausted or closed early (use ``contextlib.aclosing``). Nothing is
    retried: a dropped connection or a rejected statement raises
    :class:`QueryExecutionError`.
    """

    statement = build_select(schema, table)
    if connection.is_closed():
        raise QueryExecutionError(f"Connection closed before running: {statement}")
    LOG.info("Executing query", extra={"statement": statement})
    try:
        async with connection.transaction(readonly=True):
            async for record in connection.cursor(statement, prefetch=prefetch):
                yield record
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, TimeoutError) as exc:
        raise QueryExecutionError(f"{statement} failed: {exc}") from exc


__all__ = [
    "QueryExecutionError",
    "build_select",
    "quote_ident",
    "run_query",
]
