"""Short-lived database credentials issued by AWS IAM."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import boto3
from botocore.exceptions import BotoCoreError, ClientError

LOG = logging.getLogger(__name__)


class CredentialServiceError(RuntimeError):
    """Raised when the token service is unreachable or refuses to issue a token."""


@runtime_checkable
class CredentialProvider(Protocol):
    """Protocol implemented by credential providers."""

    def generate_token(self, username: str, host: str, region: str, port: int) -> str:
        """Return a fresh authentication token usable as a password."""


class RdsTokenProvider:
    """Issues RDS IAM authentication tokens via boto3.

    Every call asks AWS for a new token; nothing is cached between calls, and
    retrying is left to the caller. Credentials come from the default AWS
    provider chain unless a session is supplied.
    """

    def __init__(self, session: boto3.session.Session | None = None) -> None:
        self._session = session

    def generate_token(self, username: str, host: str, region: str, port: int) -> str:
        LOG.info("Requesting RDS auth token", extra={"db_user": username, "host": host, "region": region})
        try:
            client = self._get_session().client("rds", region_name=region)
            token = client.generate_db_auth_token(
                DBHostname=host,
                Port=port,
                DBUsername=username,
                Region=region,
            )
        except (BotoCoreError, ClientError) as exc:
            raise CredentialServiceError(
                f"Failed to generate auth token for '{username}' on {host}:{port}: {exc}"
            ) from exc
        if not token:
            raise CredentialServiceError(f"Token service returned an empty token for '{username}' on {host}:{port}")
        return token

    def _get_session(self) -> boto3.session.Session:
        if self._session is None:
            self._session = boto3.session.Session()
        return self._session


__all__ = ["CredentialProvider", "CredentialServiceError", "RdsTokenProvider"]
