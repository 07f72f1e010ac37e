"""String-transformation request handler backed by the data service."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from .connections import ConnectionRefreshError
from .credentials import CredentialServiceError
from .query import QueryExecutionError

LOG = logging.getLogger(__name__)

INTENTIONAL_FAILURE = "exception"


class DataSource(Protocol):
    """Anything exposing a blocking ``get_data`` call."""

    def get_data(self, *, timeout: float | None = None) -> tuple[object, ...]: ...


@dataclass(frozen=True, slots=True)
class HandlerResult:
    """Outcome returned to the caller instead of raising."""

    ok: bool
    value: str | None = None
    error: str | None = None


def uppercase(value: str, source: DataSource, *, timeout: float | None = None) -> HandlerResult:
    """Touch the database, then upper-case ``value``."""

    LOG.info("Handling request")
    try:
        source.get_data(timeout=timeout)
    except (CredentialServiceError, ConnectionRefreshError, QueryExecutionError) as exc:
        LOG.error("Data access failed", exc_info=exc)
        return HandlerResult(ok=False, error=str(exc))
    if value == INTENTIONAL_FAILURE:
        return HandlerResult(ok=False, error="Intentional exception")
    return HandlerResult(ok=True, value=value.upper())


__all__ = ["DataSource", "HandlerResult", "uppercase"]
