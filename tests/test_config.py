"""Tests for environment configuration loading."""

from __future__ import annotations

import pytest

from pgiam.config import ConfigurationError, ConnectionConfig, load_config, resolve_port


def _env(**overrides: str) -> dict[str, str]:
    env = {
        "dbEndpoint": "db.local",
        "userName": "app_user",
        "database": "app",
        "schema": "public",
        "table": "users",
        "password": "secret",
    }
    env.update(overrides)
    return env


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("6543", 6543), ("", 5432), ("abc", 5432), (None, 5432)],
)
def test_resolve_port_falls_back_to_default(raw: str | None, expected: int) -> None:
    assert resolve_port(raw) == expected


def test_load_config_reads_environment() -> None:
    config = load_config(_env(port="6543", region="eu-west-1"))

    assert config.host == "db.local"
    assert config.port == 6543
    assert config.region == "eu-west-1"
    assert config.username == "app_user"
    assert config.database == "app"
    assert config.db_schema == "public"
    assert config.table == "users"
    assert config.use_token is False
    assert config.password is not None and config.password.get_secret_value() == "secret"
    assert config.backoff_ms == 1000
    assert config.backoff_seconds == 1.0
    assert config.ssl_mode == "require"


def test_load_config_uses_default_port_for_garbage() -> None:
    assert load_config(_env(port="abc")).port == 5432


@pytest.mark.parametrize(("raw", "expected"), [("true", True), ("TRUE", True), ("yes", False), ("", False)])
def test_use_token_only_accepts_true(raw: str, expected: bool) -> None:
    config = load_config(_env(useToken=raw, region="us-east-1"))

    assert config.use_token is expected


def test_tuning_values_are_parsed() -> None:
    config = load_config(
        _env(backoffMs="250", probeTimeout="0.5", connectTimeout="3", sslMode="verify-full", primaryKey="user_id")
    )

    assert config.backoff_seconds == 0.25
    assert config.probe_timeout == 0.5
    assert config.connect_timeout == 3.0
    assert config.ssl_mode == "verify-full"
    assert config.primary_key == "user_id"


@pytest.mark.parametrize("missing", ["dbEndpoint", "userName", "database"])
def test_required_values_must_be_present(missing: str) -> None:
    env = _env()
    del env[missing]

    with pytest.raises(ConfigurationError):
        load_config(env)


def test_required_values_must_not_be_blank() -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        load_config(_env(dbEndpoint="   "))

    assert "host" in str(excinfo.value)


def test_token_auth_requires_region() -> None:
    with pytest.raises(ConfigurationError):
        load_config(_env(useToken="true"))


def test_negative_port_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        load_config(_env(port="-1"))


def test_plaintext_ssl_mode_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        load_config(_env(sslMode="disable"))


def test_config_is_immutable() -> None:
    config = load_config(_env())

    with pytest.raises(ValueError):
        config.host = "elsewhere"  # type: ignore[misc]


def test_describe_omits_password() -> None:
    config = ConnectionConfig(host="db.local", username="app_user", database="app", password="secret")

    described = config.describe()

    assert "password" not in described
    assert "secret" not in str(described)
    assert "secret" not in repr(config)
