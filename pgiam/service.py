"""Synchronous data access built on the connection manager."""

from __future__ import annotations

import asyncio
import logging
import threading
from contextlib import aclosing
from typing import Any, Coroutine, TypeVar

from .config import ConnectionConfig
from .connections import ConnectionManager
from .credentials import CredentialProvider
from .query import QueryExecutionError, run_query

LOG = logging.getLogger(__name__)

T = TypeVar("T")


class DataService:
    """Runs the connection manager on a private event loop for blocking callers.

    Calls from any thread are funnelled onto the one loop and run one at a
    time, from the liveness check to the last row, so a caller never probes or
    replaces a connection another caller is still reading from. A warm
    connection survives between calls.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        *,
        manager: ConnectionManager | None = None,
        credentials: CredentialProvider | None = None,
    ) -> None:
        LOG.info("Starting data service", extra=config.describe())
        self._config = config
        self._manager = manager or ConnectionManager(config, credentials=credentials)
        self._work_lock = asyncio.Lock()
        self._stopped = False
        self._loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(
            target=self._loop.run_forever,
            name="pgiam-connection-manager",
            daemon=True,
        )
        self._loop_thread.start()

    @property
    def manager(self) -> ConnectionManager:
        return self._manager

    @property
    def closed(self) -> bool:
        return self._loop.is_closed()

    def get_data(self, *, timeout: float | None = None) -> tuple[object, ...]:
        """Read the configured table and return the primary key of each row.

        ``timeout`` bounds any connection refresh this call needs.
        """

        return self._run(self._get_data(timeout))

    def cancel(self) -> None:
        """Abort a refresh currently waiting out its backoff."""

        self._loop.call_soon_threadsafe(self._manager.cancel_backoff)

    def shutdown(self) -> None:
        """Close the held connection and stop the background event loop."""

        if self._stopped:
            return
        self._stopped = True
        try:
            self._run(self._close())
        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._loop_thread.join(timeout=1)
            if not self._loop_thread.is_alive():
                self._loop.close()

    def _run(self, coro: Coroutine[Any, Any, T]) -> T:
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    async def _close(self) -> None:
        async with self._work_lock:
            await self._manager.close()

    async def _get_data(self, timeout: float | None) -> tuple[object, ...]:
        async with self._work_lock:
            return await self._read_keys(timeout)

    async def _read_keys(self, timeout: float | None) -> tuple[object, ...]:
        config = self._config
        connection = await self._manager.ensure_connection(timeout=timeout)
        keys: list[object] = []
        async with aclosing(run_query(connection, config.db_schema, config.table or "")) as rows:
            async for row in rows:
                try:
                    key = row[config.primary_key]
                except KeyError as exc:
                    raise QueryExecutionError(
                        f"Column '{config.primary_key}' missing from {config.db_schema}.{config.table}"
                    ) from exc
                LOG.info("Row observed", extra={"primary_key": key})
                keys.append(key)
        LOG.info("Read rows", extra={"table": config.table, "row_count": len(keys)})
        return tuple(keys)


__all__ = ["DataService"]
