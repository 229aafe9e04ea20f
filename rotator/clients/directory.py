"""Async client for the identity-provider management API."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from rotator.core.keys import CredentialMaterial
from rotator.core.subjects import Subject
from rotator.exceptions import (
    DirectoryAPIError,
    DirectoryAuthenticationError,
    DirectoryUnavailableError,
)

DEFAULT_TIMEOUT = httpx.Timeout(connect=2.0, read=10.0, write=10.0, pool=5.0)
MANAGEMENT_SCOPES = "create:client_credentials update:clients read:clients"
_LIST_FIELDS = "client_id,name,client_metadata,client_authentication_methods"

logger = structlog.get_logger(__name__)


class DirectoryClient:
    """Management API client for listing, registering and linking credentials."""

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        audience: str | None = None,
        jwks_uri_field: str = "jwks_uri",
        page_size: int = 50,
        timeout: httpx.Timeout | float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Create client with sane defaults and optional injected transport."""
        self._base_url = base_url.rstrip("/")
        self._client_id = client_id
        self._client_secret = client_secret
        self._audience = audience or f"{self._base_url}/api/v2/"
        self._jwks_uri_field = jwks_uri_field
        self._page_size = page_size
        self._access_token: str | None = None
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout or DEFAULT_TIMEOUT,
        )

    async def authenticate(self) -> None:
        """Obtain a management API token with the client-credentials grant."""
        try:
            response = await self._client.post(
                "/oauth/token",
                json={
                    "grant_type": "client_credentials",
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "audience": self._audience,
                    "scope": MANAGEMENT_SCOPES,
                },
            )
        except httpx.RequestError as exc:
            raise DirectoryAuthenticationError("Directory token endpoint unavailable.") from exc

        if not response.is_success:
            raise DirectoryAuthenticationError(
                f"Directory token request failed with status {response.status_code}."
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise DirectoryAuthenticationError(
                "Directory token endpoint returned invalid JSON."
            ) from exc
        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not isinstance(token, str) or not token:
            raise DirectoryAuthenticationError("Directory token response has no access_token.")
        self._access_token = token

    async def list_subjects(self) -> list[Subject]:
        """List every client record, page by page, in directory order."""
        subjects: list[Subject] = []
        page = 0
        while True:
            try:
                response = await self._request(
                    "GET",
                    "/api/v2/clients",
                    params={
                        "page": page,
                        "per_page": self._page_size,
                        "include_totals": "true",
                        "fields": _LIST_FIELDS,
                        "include_fields": "true",
                    },
                )
            except DirectoryAPIError as exc:
                raise DirectoryUnavailableError(f"Unable to list clients: {exc.detail}") from exc

            payload = self._json(response)
            records, total = self._page_records(payload)
            subjects.extend(
                Subject.from_record(record, jwks_uri_field=self._jwks_uri_field)
                for record in records
                if isinstance(record, dict) and record.get("client_id")
            )
            page += 1
            if not records or len(records) < self._page_size:
                break
            if total is not None and page * self._page_size >= total:
                break

        logger.info("subjects_listed", count=len(subjects))
        return subjects

    async def get_subject(self, client_id: str) -> Subject:
        """Fetch a single client record."""
        response = await self._request(
            "GET",
            f"/api/v2/clients/{quote(client_id, safe='')}",
            params={"fields": _LIST_FIELDS, "include_fields": "true"},
        )
        payload = self._json(response)
        if not isinstance(payload, dict) or not payload.get("client_id"):
            raise DirectoryAPIError(
                "Directory returned an invalid client record.", response.status_code
            )
        return Subject.from_record(payload, jwks_uri_field=self._jwks_uri_field)

    async def create_credential(self, client_id: str, material: CredentialMaterial) -> str:
        """Register converted key material and return the new credential ID."""
        response = await self._request(
            "POST",
            f"/api/v2/clients/{quote(client_id, safe='')}/credentials",
            json=material.as_request(),
        )
        payload = self._json(response)
        credential_id = payload.get("id") if isinstance(payload, dict) else None
        if not isinstance(credential_id, str) or not credential_id:
            raise DirectoryAPIError("Credential response is missing an id.", response.status_code)
        return credential_id

    async def update_subject(
        self,
        client_id: str,
        metadata: dict[str, str] | None = None,
        credential_ids: Sequence[str] | None = None,
    ) -> None:
        """Write metadata and/or the private_key_jwt binding in one call."""
        body: dict[str, Any] = {}
        if metadata is not None:
            body["client_metadata"] = metadata
        if credential_ids is not None:
            body["client_authentication_methods"] = {
                "private_key_jwt": {
                    "credentials": [{"id": credential_id} for credential_id in credential_ids]
                }
            }
        if not body:
            return
        await self._request("PATCH", f"/api/v2/clients/{quote(client_id, safe='')}", json=body)

    async def aclose(self) -> None:
        """Close underlying HTTP client if owned by this instance."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> DirectoryClient:
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        """Exit async context manager and close managed resources."""
        del exc_type, exc, tb
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Execute an authenticated request and normalize upstream failures."""
        if self._access_token is None:
            await self.authenticate()
        response = await self._send(method, path, **kwargs)
        if response.status_code == 401:
            # Expired token mid-run: refresh once and replay.
            logger.info("directory_token_refreshed", path=path)
            try:
                await self.authenticate()
            except DirectoryAuthenticationError as exc:
                raise DirectoryAPIError(exc.detail, 401) from exc
            response = await self._send(method, path, **kwargs)

        if response.status_code >= 400:
            raise DirectoryAPIError(self._error_message(response), response.status_code)
        return response

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._access_token}"}
        try:
            return await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.RequestError as exc:
            raise DirectoryAPIError(f"Directory API unavailable: {exc}") from exc

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Extract the upstream error message, falling back to the status code."""
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            message = (
                payload.get("message") or payload.get("error_description") or payload.get("error")
            )
            if message:
                return f"{message} (status {response.status_code})"
        return f"Directory API request failed with status {response.status_code}."

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        """Return response JSON or raise a directory error."""
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise DirectoryAPIError(
                "Directory API returned invalid JSON.", response.status_code
            ) from exc

    @staticmethod
    def _page_records(payload: Any) -> tuple[list[Any], int | None]:
        """Normalize paged (with totals) and bare-list listing responses."""
        if isinstance(payload, list):
            return payload, None
        if isinstance(payload, dict):
            records = payload.get("clients")
            total = payload.get("total")
            return (
                records if isinstance(records, list) else [],
                total if isinstance(total, int) else None,
            )
        return [], None
