"""Shared types used across the connection and query modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

Row = Mapping[str, Any]

DSN_SCHEME = "postgresql"


class ConnectionState(str, Enum):
    """Lifecycle of the manager's single connection slot."""

    EMPTY = "empty"
    LIVE = "live"
    REFRESHING = "refreshing"


@dataclass(frozen=True, slots=True)
class ConnectionParameters:
    """Everything needed to open one authenticated, encrypted connection."""

    host: str
    port: int
    database: str
    user: str
    password: str | None = field(default=None, repr=False)
    ssl: str = "require"
    timeout: float = 10.0

    @property
    def dsn(self) -> str:
        return f"{DSN_SCHEME}://{self.host}/{self.database}"

    def connect_kwargs(self) -> dict[str, object]:
        kwargs: dict[str, object] = {
            "dsn": self.dsn,
            "port": self.port,
            "user": self.user,
            "ssl": self.ssl,
            "timeout": self.timeout,
        }
        if self.password is not None:
            kwargs["password"] = self.password
        return kwargs


__all__ = ["ConnectionParameters", "ConnectionState", "DSN_SCHEME", "Row"]
