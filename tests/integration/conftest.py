"""Shared integration fixtures: a fake tenant, fake key-set hosts and settings."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import pytest

from rotator.clients.secrets import SecretStore
from rotator.config import Settings
from rotator.handler import RotatorRuntime, open_runtime

TENANT_HOST = "tenant.example.com"
NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


class FakeTenant:
    """In-memory management API plus key-set hosts behind one MockTransport."""

    def __init__(self) -> None:
        self.clients: list[dict[str, Any]] = []
        self.key_sets: dict[str, tuple[int, Any, dict[str, str]]] = {}
        self.credentials: list[dict[str, Any]] = []
        self.patches: list[tuple[str, dict[str, Any]]] = []
        self.fetched: list[str] = []
        self.token_status = 200

    def add_client(
        self,
        client_id: str,
        metadata: dict[str, str] | None = None,
        credential_ids: list[str] | None = None,
    ) -> None:
        record: dict[str, Any] = {"client_id": client_id, "client_metadata": metadata or {}}
        if credential_ids:
            record["client_authentication_methods"] = {
                "private_key_jwt": {"credentials": [{"id": item} for item in credential_ids]}
            }
        self.clients.append(record)

    def publish(
        self,
        url: str,
        body: Any,
        status_code: int = 200,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.key_sets[url] = (status_code, body, headers or {})

    def client(self, client_id: str) -> dict[str, Any]:
        return next(record for record in self.clients if record["client_id"] == client_id)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        if request.url.host != TENANT_HOST:
            url = str(request.url)
            self.fetched.append(url)
            if url not in self.key_sets:
                return httpx.Response(404)
            status_code, body, headers = self.key_sets[url]
            return httpx.Response(status_code, json=body, headers=headers)
        return self._management(request)

    def _management(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/oauth/token":
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "access_denied"})
            return httpx.Response(200, json={"access_token": "mgmt-token"})

        assert request.headers["Authorization"] == "Bearer mgmt-token"
        if path == "/api/v2/clients" and request.method == "GET":
            return httpx.Response(200, json={"clients": self.clients, "total": len(self.clients)})

        client_id = path.split("/")[4]
        if path.endswith("/credentials") and request.method == "POST":
            body = json.loads(request.content)
            credential_id = f"cred_{len(self.credentials) + 1}"
            self.credentials.append({"id": credential_id, "client_id": client_id, **body})
            return httpx.Response(201, json={"id": credential_id})
        if request.method == "PATCH":
            body = json.loads(request.content)
            self.patches.append((client_id, body))
            record = self.client(client_id)
            record.update(body)
            return httpx.Response(200, json=record)
        if request.method == "GET":
            return httpx.Response(200, json=self.client(client_id))
        return httpx.Response(405)


class FakeRedis:
    """Minimal async Redis stub."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def set(self, key: str, value: str, exat: int | None = None) -> bool:
        self.values[key] = value
        return True


class _UnusedSecretsManager:
    def get_secret_value(self, SecretId: str) -> dict[str, Any]:  # noqa: N803
        raise AssertionError("secret store should not be called")


@pytest.fixture
def tenant() -> FakeTenant:
    """Fresh fake tenant per test."""
    return FakeTenant()


@pytest.fixture
def fake_redis() -> FakeRedis:
    """Empty Redis stub per test."""
    return FakeRedis()


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Build settings without touching the environment-only fields."""

    def _make(**cache: Any) -> Settings:
        return Settings(
            directory={
                "domain": TENANT_HOST,
                "client_id": "rotator",
                "client_secret": "literal-secret",
            },
            cache=cache or {"backend": "embedded"},
        )

    return _make


RuntimeFactory = Callable[[Settings], AbstractAsyncContextManager[RotatorRuntime]]


@pytest.fixture
def runtime_factory(tenant: FakeTenant) -> Callable[..., RuntimeFactory]:
    """Bind open_runtime to the fake tenant transport."""

    def _factory(redis_client: FakeRedis | None = None) -> RuntimeFactory:
        @asynccontextmanager
        async def _open(settings: Settings) -> AsyncIterator[RotatorRuntime]:
            async with httpx.AsyncClient(
                base_url=f"https://{TENANT_HOST}",
                transport=httpx.MockTransport(tenant.handle),
            ) as http_client:
                async with open_runtime(
                    settings,
                    secret_store=SecretStore(client=_UnusedSecretsManager()),
                    http_client=http_client,
                    redis_client=redis_client,
                    now=lambda: NOW,
                ) as runtime:
                    yield runtime

        return _open

    return _factory


@pytest.fixture
def future() -> Callable[[int], str]:
    """Return ISO instants relative to the fixed test clock."""

    def _future(seconds: int) -> str:
        return (NOW + timedelta(seconds=seconds)).isoformat()

    return _future
