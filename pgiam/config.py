"""Connection configuration loading helpers."""

from __future__ import annotations

import logging
import os
from typing import Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator, model_validator

LOG = logging.getLogger(__name__)

DEFAULT_PORT = 5432

# Environment variable -> ConnectionConfig field.
ENV_FIELDS: Mapping[str, str] = {
    "dbEndpoint": "host",
    "region": "region",
    "userName": "username",
    "database": "database",
    "schema": "db_schema",
    "table": "table",
    "password": "password",
    "backoffMs": "backoff_ms",
    "probeTimeout": "probe_timeout",
    "connectTimeout": "connect_timeout",
    "sslMode": "ssl_mode",
    "primaryKey": "primary_key",
}

_REQUIRED_FIELDS = frozenset({"host", "username", "database"})

SslMode = Literal["require", "verify-ca", "verify-full"]


class ConfigurationError(ValueError):
    """Raised when required configuration is missing or malformed."""


class ConnectionConfig(BaseModel):
    """Immutable, process-wide settings for the managed connection."""

    model_config = ConfigDict(frozen=True)

    host: str
    port: int = Field(default=DEFAULT_PORT, gt=0)
    region: str = ""
    username: str
    database: str
    db_schema: str = "public"
    table: str | None = None
    use_token: bool = False
    password: SecretStr | None = None
    backoff_ms: int = Field(default=1000, ge=0)
    probe_timeout: float = Field(default=1.0, gt=0)
    connect_timeout: float = Field(default=10.0, gt=0)
    ssl_mode: SslMode = "require"
    primary_key: str = "id"

    @field_validator("host", "username", "database")
    @classmethod
    def require_value(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @model_validator(mode="after")
    def require_region_for_tokens(self) -> ConnectionConfig:
        if self.use_token and not self.region.strip():
            raise ValueError("region is required when token authentication is enabled")
        return self

    @property
    def backoff_seconds(self) -> float:
        return self.backoff_ms / 1000

    def describe(self) -> dict[str, object]:
        """Loggable view of the configuration with secrets left out."""

        return {
            "host": self.host,
            "port": self.port,
            "region": self.region,
            "username": self.username,
            "database": self.database,
            "schema": self.db_schema,
            "table": self.table,
            "use_token": self.use_token,
            "ssl_mode": self.ssl_mode,
        }


def resolve_port(raw: str | None, default: int = DEFAULT_PORT) -> int:
    """Parse a port value, falling back to ``default`` when absent or non-numeric."""

    try:
        return int(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        LOG.warning("Port is missing or not an integer; using default", extra={"port": default})
        return default


def load_config(environ: Mapping[str, str] | None = None) -> ConnectionConfig:
    """Build the connection configuration from environment variables."""

    env = os.environ if environ is None else environ
    values: dict[str, object] = {}
    for name, field in ENV_FIELDS.items():
        raw = env.get(name)
        if raw is None:
            continue
        value = raw.strip()
        if value or field in _REQUIRED_FIELDS:
            values[field] = value
    values["port"] = resolve_port(env.get("port"))
    values["use_token"] = env.get("useToken", "").strip().lower() == "true"
    try:
        config = ConnectionConfig(**values)
    except ValidationError as exc:
        raise ConfigurationError(_summarize(exc)) from exc
    LOG.info("Loaded connection configuration", extra=config.describe())
    return config


def _summarize(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "config"
        problems.append(f"{location}: {error['msg']}")
    return "Invalid connection configuration (" + "; ".join(problems) + ")"


__all__ = [
    "ConfigurationError",
    "ConnectionConfig",
    "DEFAULT_PORT",
    "ENV_FIELDS",
    "load_config",
    "resolve_port",
]
