"""Connection manager keeping a single authenticated PostgreSQL connection usable."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

import asyncpg

from .config import ConnectionConfig
from .credentials import CredentialProvider, CredentialServiceError, RdsTokenProvider
from .models import ConnectionParameters, ConnectionState

LOG = logging.getLogger(__name__)

StateListener = Callable[[ConnectionState], None]


class ConnectionRefreshError(RuntimeError):
    """Raised when a replacement connection cannot be opened."""


class Backoff:
    """Fixed delay inserted before reopening a connection; can be cancelled."""

    def __init__(self, delay: float = 1.0) -> None:
        if delay < 0:
            raise ValueError("Backoff delay must not be negative.")
        self._delay = delay
        self._cancelled = asyncio.Event()

    @property
    def delay(self) -> float:
        return self._delay

    def cancel(self) -> None:
        """Interrupt the current or next ``wait``. Must be called from the loop's thread."""

        self._cancelled.set()

    def reset(self) -> None:
        """Forget a cancellation so the next ``wait`` sleeps the full delay."""

        self._cancelled.clear()

    async def wait(self) -> None:
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=self._delay)
        except TimeoutError:
            return
        raise ConnectionRefreshError("Backoff was cancelled before reconnecting.")


class ConnectionManager:
    """Owns one connection slot and hands out a handle that passed a liveness check.

    Each call to :meth:`ensure_connection` probes the held connection. A live
    one is returned as-is; otherwise the manager waits for the backoff, builds
    fresh credentials (minting an IAM token when configured to) and makes
    exactly one attempt to open a replacement. A failed attempt leaves the slot
    empty so the next call starts over.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        *,
        credentials: CredentialProvider | None = None,
        backoff: Backoff | None = None,
    ) -> None:
        self._config = config
        self._credentials = credentials or RdsTokenProvider()
        self._backoff = backoff or Backoff(config.backoff_seconds)
        self._connection: asyncpg.Connection | None = None
        self._state = ConnectionState.EMPTY
        self._lock = asyncio.Lock()
        self._listeners: set[StateListener] = set()

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        """Current lifecycle state of the connection slot."""

        return self._state

    @property
    def connection(self) -> asyncpg.Connection | None:
        """The held connection, if any (not probed)."""

        return self._connection

    @property
    def backoff(self) -> Backoff:
        return self._backoff

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Subscribe to state transitions; returns an unsubscribe handle."""

        self._listeners.add(listener)

        def _unsubscribe() -> None:
            self._listeners.discard(listener)

        return _unsubscribe

    async def ensure_connection(self, *, timeout: float | None = None) -> asyncpg.Connection:
        """Return a live connection, replacing a missing or stale one.

        ``timeout`` bounds the whole refresh (backoff, token and connect);
        expiry raises :class:`ConnectionRefreshError`.
        """

        async with self._lock:
            # A cancel issued from here on, liveness check included, aborts this refresh.
            self._backoff.reset()
            current = self._connection
            if current is not None:
                if await self._probe(current):
                    LOG.debug("Reusing live connection", extra={"host": self._config.host})
                    return current
                self._discard()
            self._set_state(ConnectionState.REFRESHING)
            try:
                async with asyncio.timeout(timeout):
                    connection = await self._open()
            except TimeoutError as exc:
                self._set_state(ConnectionState.EMPTY)
                raise ConnectionRefreshError(f"Timed out refreshing connection after {timeout}s.") from exc
            except BaseException:
                self._set_state(ConnectionState.EMPTY)
                raise
            finally:
                self._backoff.reset()
            self._connection = connection
            self._set_state(ConnectionState.LIVE)
            return connection

    def cancel_backoff(self) -> None:
        """Abort a refresh that is waiting out its backoff."""

        self._backoff.cancel()

    async def close(self) -> None:
        """Close the held connection and empty the slot."""

        async with self._lock:
            connection, self._connection = self._connection, None
            try:
                if connection is not None and not connection.is_closed():
                    await connection.close(timeout=self._config.probe_timeout)
            except Exception:
                LOG.warning("Error while closing connection; terminating it", exc_info=True)
                connection.terminate()
            finally:
                self._set_state(ConnectionState.EMPTY)

    async def _probe(self, connection: asyncpg.Connection) -> bool:
        if connection.is_closed():
            LOG.warning("Held connection is closed", extra={"host": self._config.host})
            return False
        try:
            await connection.fetchval("SELECT 1", timeout=self._config.probe_timeout)
        except Exception as exc:
            LOG.warning("Liveness probe failed", extra={"host": self._config.host, "error": str(exc)})
            return False
        return True

    def _discard(self) -> None:
        connection, self._connection = self._connection, None
        if connection is None:
            return
        try:
            connection.terminate()
        except Exception:  # pragma: no cover - best effort cleanup
            LOG.debug("Error while terminating stale connection", exc_info=True)

    async def _open(self) -> asyncpg.Connection:
        LOG.info("Refreshing database connection", extra={"backoff_s": self._backoff.delay})
        await self._backoff.wait()
        params = await self._build_parameters()
        try:
            connection = await asyncpg.connect(**params.connect_kwargs())
        except Exception as exc:
            LOG.error("Connection refresh failed", extra={"dsn": params.dsn, "error": str(exc)})
            raise ConnectionRefreshError(f"Failed to open connection to {params.dsn}: {exc}") from exc
        LOG.info("Opened database connection", extra={"dsn": params.dsn, "port": params.port})
        return connection

    async def _build_parameters(self) -> ConnectionParameters:
        config = self._config
        if config.use_token:
            try:
                password = await asyncio.to_thread(
                    self._credentials.generate_token,
                    config.username,
                    config.host,
                    config.region,
                    config.port,
                )
            except CredentialServiceError as exc:
                raise ConnectionRefreshError(f"Could not obtain an auth token: {exc}") from exc
        else:
            password = config.password.get_secret_value() if config.password is not None else None
        return ConnectionParameters(
            host=config.host,
            port=config.port,
            database=config.database,
            user=config.username,
            password=password,
            ssl=config.ssl_mode,
            timeout=config.connect_timeout,
        )

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        self._state = state
        for listener in tuple(self._listeners):
            listener(state)


__all__ = [
    "Backoff",
    "ConnectionManager",
    "ConnectionRefreshError",
    "StateListener",
]
