"""Async fetcher for client-published key-set documents."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from rotator.exceptions import EmptyKeySetError, KeySetFetchError
from rotator.types import JWKS

DEFAULT_TIMEOUT = httpx.Timeout(connect=2.0, read=5.0, write=5.0, pool=5.0)
_CACHE_HEADERS = ("cache-control", "expires")


@dataclass(frozen=True)
class FetchedKeySet:
    """Fetched document together with its raw body and caching headers."""

    document: JWKS
    raw_body: str
    headers: dict[str, str]


class KeySetFetcher:
    """Fetch and validate remote key-set documents over HTTPS."""

    def __init__(
        self,
        timeout: httpx.Timeout | float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout or DEFAULT_TIMEOUT)

    async def fetch(self, url: str) -> FetchedKeySet:
        """Fetch a key-set document, rejecting non-2xx, non-JSON and empty responses."""
        if not url.lower().startswith("https://"):
            raise KeySetFetchError("Key-set URL must use https.")
        try:
            response = await self._client.get(url, headers={"Accept": "application/json"})
        except httpx.RequestError as exc:
            raise KeySetFetchError(f"Key-set request failed: {exc}") from exc

        if not response.is_success:
            raise KeySetFetchError(
                f"Key-set request failed with status {response.status_code}.",
                response.status_code,
            )

        payload = self._json_object(response)
        keys = payload.get("keys")
        if not isinstance(keys, list) or not keys:
            raise EmptyKeySetError(f"No keys found at {url}.")

        headers = {
            name: response.headers[name] for name in _CACHE_HEADERS if name in response.headers
        }
        return FetchedKeySet(document={"keys": keys}, raw_body=response.text, headers=headers)

    async def aclose(self) -> None:
        """Close underlying HTTP client if owned by this instance."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> KeySetFetcher:
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        """Exit async context manager and close managed resources."""
        del exc_type, exc, tb
        await self.aclose()

    @staticmethod
    def _json_object(response: httpx.Response) -> dict[str, Any]:
        """Return response JSON as object."""
        try:
            payload = response.json()
        except ValueError as exc:
            raise KeySetFetchError(
                "Key-set endpoint returned invalid JSON.", response.status_code
            ) from exc
        if not isinstance(payload, dict):
            raise KeySetFetchError(
                "Key-set endpoint returned invalid JSON object.", response.status_code
            )
        return payload
