"""Tests for the streaming table query."""

from __future__ import annotations

from contextlib import aclosing
from typing import Any

import asyncpg
import pytest

from pgiam.query import QueryExecutionError, build_select, quote_ident, run_query


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class _FakeTransaction:
    def __init__(self, connection: "_FakeConnection", options: dict[str, Any]) -> None:
        self._connection = connection
        self.options = options

    async def __aenter__(self) -> "_FakeTransaction":
        self._connection.transactions.append(self)
        self._connection.in_transaction = True
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self._connection.in_transaction = False


class _FakeCursor:
    def __init__(self, connection: "_FakeConnection") -> None:
        self._connection = connection
        self._rows = iter(connection.rows)

    def __aiter__(self) -> "_FakeCursor":
        return self

    async def __anext__(self) -> dict[str, Any]:
        if self._connection.error is not None:
            raise self._connection.error
        try:
            row = next(self._rows)
        except StopIteration:
            raise StopAsyncIteration from None
        self._connection.fetched += 1
        return row


class _FakeConnection:
    def __init__(self, rows: list[dict[str, Any]] | None = None, *, error: Exception | None = None) -> None:
        self.rows = rows or []
        self.error = error
        self.closed = False
        self.statements: list[str] = []
        self.transactions: list[_FakeTransaction] = []
        self.in_transaction = False
        self.fetched = 0

    def is_closed(self) -> bool:
        return self.closed

    def transaction(self, **options: Any) -> _FakeTransaction:
        return _FakeTransaction(self, options)

    def cursor(self, statement: str, *, prefetch: int | None = None) -> _FakeCursor:
        assert self.in_transaction
        self.statements.append(statement)
        return _FakeCursor(self)


USERS = [
    {"id": 1, "email": "alice@example.com"},
    {"id": 2, "email": "bob@example.com"},
    {"id": 3, "email": "carol@example.com"},
]


def test_quote_ident_leaves_simple_names_bare() -> None:
    assert quote_ident("users") == "users"
    assert quote_ident("order_items2") == "order_items2"


def test_quote_ident_leaves_mixed_case_bare_for_folding() -> None:
    assert quote_ident("Users") == "Users"
    assert quote_ident("Order_Items") == "Order_Items"


def test_quote_ident_quotes_reserved_and_odd_names() -> None:
    assert quote_ident("user") == '"user"'
    assert quote_ident("User") == '"user"'
    assert quote_ident('we"ird') == '"we""ird"'
    assert quote_ident("1st") == '"1st"'


def test_build_select_targets_schema_and_table() -> None:
    assert build_select("public", "users") == "SELECT * FROM public.users"


def test_build_select_keeps_configured_case_unquoted() -> None:
    assert build_select("Public", "Users") == "SELECT * FROM Public.Users"


def test_build_select_requires_both_names() -> None:
    with pytest.raises(QueryExecutionError):
        build_select("public", "  ")


@pytest.mark.anyio
async def test_run_query_streams_all_rows_in_readonly_transaction() -> None:
    connection = _FakeConnection(USERS)

    rows = [row async for row in run_query(connection, "public", "users")]

    assert [row["id"] for row in rows] == [1, 2, 3]
    assert connection.statements == ["SELECT * FROM public.users"]
    assert connection.transactions[0].options == {"readonly": True}
    assert connection.in_transaction is False


@pytest.mark.anyio
async def test_run_query_is_lazy_and_releases_cursor_on_early_stop() -> None:
    connection = _FakeConnection(USERS)
    stream = run_query(connection, "public", "users")

    assert connection.statements == []
    async with aclosing(stream) as rows:
        async for row in rows:
            assert row["id"] == 1
            break

    assert connection.fetched == 1
    assert connection.in_transaction is False


@pytest.mark.anyio
async def test_run_query_cannot_be_restarted() -> None:
    connection = _FakeConnection(USERS)
    stream = run_query(connection, "public", "users")

    first = [row async for row in stream]
    second = [row async for row in stream]

    assert len(first) == 3
    assert second == []


@pytest.mark.anyio
async def test_run_query_wraps_server_errors() -> None:
    error = asyncpg.UndefinedTableError('relation "public.missing" does not exist')
    connection = _FakeConnection(error=error)

    with pytest.raises(QueryExecutionError) as excinfo:
        [row async for row in run_query(connection, "public", "missing")]

    assert excinfo.value.__cause__ is error
    assert connection.in_transaction is False


@pytest.mark.anyio
async def test_run_query_wraps_dropped_connections() -> None:
    connection = _FakeConnection(error=asyncpg.InterfaceError("connection is closed"))

    with pytest.raises(QueryExecutionError):
        [row async for row in run_query(connection, "public", "users")]


@pytest.mark.anyio
async def test_run_query_rejects_closed_handle() -> None:
    connection = _FakeConnection(USERS)
    connection.closed = True

    with pytest.raises(QueryExecutionError):
        [row async for row in run_query(connection, "public", "users")]
    assert connection.statements == []
