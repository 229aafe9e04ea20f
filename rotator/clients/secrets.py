"""Secret store access for directory API credentials."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from rotator.config import DirectorySettings
from rotator.exceptions import SecretResolutionError


class SecretStore:
    """Read secrets from AWS Secrets Manager without blocking the event loop."""

    def __init__(self, region_name: str | None = None, client: Any | None = None) -> None:
        self._region_name = region_name
        self._client = client

    def _get_client(self) -> Any:
        """Create the Secrets Manager client lazily."""
        if self._client is None:
            self._client = boto3.client("secretsmanager", region_name=self._region_name)
        return self._client

    async def get_secret(self, name: str) -> str:
        """Return the SecretString of the current version of a secret."""
        return await asyncio.to_thread(self._get_secret_sync, name)

    def _get_secret_sync(self, name: str) -> str:
        try:
            response = self._get_client().get_secret_value(SecretId=name)
        except (BotoCoreError, ClientError) as exc:
            raise SecretResolutionError(f"Unable to read secret {name!r}: {exc}") from exc
        secret = response.get("SecretString")
        if not isinstance(secret, str):
            raise SecretResolutionError(f"Secret {name!r} has no string value.")
        return secret


async def resolve_client_secret(settings: DirectorySettings, store: SecretStore) -> str:
    """Resolve the management API secret from the store, else the literal setting."""
    if settings.client_secret_name:
        raw_secret = await store.get_secret(settings.client_secret_name)
        try:
            blob = json.loads(raw_secret)
        except json.JSONDecodeError as exc:
            raise SecretResolutionError("Secret value is not valid JSON.") from exc
        value = blob.get(settings.client_secret_field) if isinstance(blob, dict) else None
        if not isinstance(value, str) or not value:
            raise SecretResolutionError(
                f"Secret is missing the {settings.client_secret_field!r} field."
            )
        return value

    if settings.client_secret is not None:
        literal = settings.client_secret.get_secret_value()
        if literal:
            return literal
    raise SecretResolutionError("No directory client secret is configured.")
