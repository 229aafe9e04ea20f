"""Invocation entry point shared by the scheduled, HTTP and CLI surfaces."""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import AsyncIterator, Callable, Mapping
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import uuid4

import httpx
import structlog
from pydantic import ValidationError
from redis import asyncio as redis_async
from redis.asyncio.client import Redis

from rotator.clients.directory import DirectoryClient
from rotator.clients.jwks import KeySetFetcher
from rotator.clients.secrets import SecretStore, resolve_client_secret
from rotator.config import Settings, configure_structlog, get_settings
from rotator.core.freshness import EmbeddedFreshnessCache, FreshnessCache, RedisFreshnessCache
from rotator.core.keys import select_by_use
from rotator.exceptions import FatalError, InvalidRequestError, KeyConversionError, RotatorError
from rotator.schemas.rotation import (
    ErrorResponse,
    LinkCredentialRequest,
    LinkCredentialResponse,
)
from rotator.services.batch_service import BatchService
from rotator.services.rotation_service import RotationService

BATCH_MESSAGE = "Processed clients with jwks_uri"

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class InvocationResponse:
    """Status code and JSON body returned by every surface."""

    status_code: int
    body: dict[str, Any]

    def as_lambda(self) -> dict[str, Any]:
        """Return the serverless proxy response shape."""
        return {"statusCode": self.status_code, "body": json.dumps(self.body)}


def _error(status_code: int, message: str) -> InvocationResponse:
    return InvocationResponse(
        status_code=status_code, body=ErrorResponse(error=message).model_dump()
    )


@dataclass(frozen=True)
class RotatorRuntime:
    """Collaborators owned by a single invocation."""

    directory: DirectoryClient
    rotation: RotationService
    batch: BatchService


def build_freshness_cache(
    settings: Settings,
    redis_client: Redis | None,
    now: Callable[[], datetime] | None = None,
) -> FreshnessCache:
    """Select the freshness backend configured at startup."""
    if settings.cache.backend == "redis":
        if redis_client is None:
            raise FatalError("Redis cache backend selected without a client.")
        return RedisFreshnessCache(redis_client, key_prefix=settings.cache.key_prefix, now=now)
    return EmbeddedFreshnessCache(expiry_field=settings.rotation.expiry_field, now=now)


@asynccontextmanager
async def open_runtime(
    settings: Settings,
    secret_store: SecretStore | None = None,
    http_client: httpx.AsyncClient | None = None,
    redis_client: Redis | None = None,
    now: Callable[[], datetime] | None = None,
) -> AsyncIterator[RotatorRuntime]:
    """Open authenticated collaborators for one invocation and close them on exit."""
    client_secret = await resolve_client_secret(
        settings.directory, secret_store or SecretStore(region_name=settings.secrets.region_name)
    )

    owns_redis = False
    if redis_client is None and settings.cache.backend == "redis" and settings.cache.redis_url:
        redis_client = redis_async.from_url(settings.cache.redis_url, decode_responses=True)
        owns_redis = True

    directory = DirectoryClient(
        base_url=settings.directory.base_url,
        client_id=settings.directory.client_id,
        client_secret=client_secret,
        audience=settings.directory.resolved_audience,
        jwks_uri_field=settings.rotation.jwks_uri_field,
        page_size=settings.directory.page_size,
        timeout=settings.directory.timeout_seconds,
        http_client=http_client,
    )
    fetcher = KeySetFetcher(
        timeout=settings.rotation.fetch_timeout_seconds, http_client=http_client
    )
    try:
        async with directory, fetcher:
            await directory.authenticate()
            rotation = RotationService(
                directory=directory,
                fetcher=fetcher,
                freshness=build_freshness_cache(settings, redis_client, now=now),
                algorithm=settings.rotation.credential_algorithm,
                key_id_field=settings.rotation.key_id_field,
                default_ttl_seconds=settings.rotation.default_ttl_seconds,
                selector=select_by_use(settings.rotation.key_use),
                now=now,
            )
            batch = BatchService(
                rotation,
                concurrency=settings.rotation.concurrency,
                deadline_seconds=settings.rotation.deadline_seconds,
            )
            yield RotatorRuntime(directory=directory, rotation=rotation, batch=batch)
    finally:
        if owns_redis and redis_client is not None:
            await redis_client.aclose()


RuntimeFactory = Callable[[Settings], AbstractAsyncContextManager[RotatorRuntime]]


class RotationHandler:
    """Run batch rotations or single-subject links and shape the response."""

    def __init__(self, settings: Settings, runtime_factory: RuntimeFactory = open_runtime) -> None:
        self._settings = settings
        self._runtime_factory = runtime_factory

    async def handle_event(
        self, event: Mapping[str, Any], deadline_at: float | None = None
    ) -> InvocationResponse:
        """Dispatch on the presence of a request body."""
        body = event.get("body")
        if body in (None, ""):
            return await self.run_batch(deadline_at=deadline_at)
        if isinstance(body, str):
            try:
                body = json.loads(body)
            except json.JSONDecodeError:
                return _error(400, "Request body is not valid JSON.")
        if not isinstance(body, dict):
            return _error(400, "Request body must be a JSON object.")
        return await self.link_credential(body)

    async def run_batch(self, deadline_at: float | None = None) -> InvocationResponse:
        """Rotate every listed subject; only fatal errors fail the invocation.

        `deadline_at` is a `time.monotonic()` reading after which no new subject starts.
        """
        structlog.contextvars.bind_contextvars(invocation_id=str(uuid4()))
        try:
            async with self._runtime_factory(self._settings) as runtime:
                subjects = await runtime.directory.list_subjects()
                result = await runtime.batch.run(subjects, deadline_at=deadline_at)
        except FatalError as exc:
            logger.error("invocation_failed", code=exc.code, error=exc.detail)
            return _error(500, exc.detail)
        except Exception as exc:
            logger.exception("invocation_failed", code="unexpected_error")
            return _error(500, str(exc) or exc.__class__.__name__)
        finally:
            structlog.contextvars.unbind_contextvars("invocation_id")

        return InvocationResponse(
            status_code=200,
            body={
                "message": BATCH_MESSAGE,
                "results": result.as_payload(),
                "summary": result.summary(),
            },
        )

    async def link_credential(self, body: Mapping[str, Any]) -> InvocationResponse:
        """Register and link a caller-supplied key for one subject."""
        structlog.contextvars.bind_contextvars(invocation_id=str(uuid4()))
        try:
            request = self._parse_link_request(body)
            async with self._runtime_factory(self._settings) as runtime:
                credential_id = await runtime.rotation.link_key(request.client_id, request.jwk)
        except (InvalidRequestError, KeyConversionError) as exc:
            logger.warning("invalid_request", code=exc.code, error=exc.detail)
            return _error(400, exc.detail)
        except RotatorError as exc:
            logger.error("invocation_failed", code=exc.code, error=exc.detail)
            return _error(500, exc.detail)
        except Exception as exc:
            logger.exception("invocation_failed", code="unexpected_error")
            return _error(500, str(exc) or exc.__class__.__name__)
        finally:
            structlog.contextvars.unbind_contextvars("invocation_id")

        response = LinkCredentialResponse(client_id=request.client_id, credential_id=credential_id)
        return InvocationResponse(status_code=200, body=response.model_dump())

    @staticmethod
    def _parse_link_request(body: Mapping[str, Any]) -> LinkCredentialRequest:
        try:
            return LinkCredentialRequest.model_validate(dict(body))
        except ValidationError as exc:
            errors = exc.errors()
            message = errors[0].get("msg", "validation error") if errors else "validation error"
            raise InvalidRequestError(f"Invalid request payload: {message}.") from exc


def context_deadline(context: Any, margin_seconds: float) -> float | None:
    """Translate the runtime's remaining invocation time into a monotonic deadline."""
    get_remaining = getattr(context, "get_remaining_time_in_millis", None)
    if get_remaining is None:
        return None
    remaining_seconds = get_remaining() / 1000 - margin_seconds
    return time.monotonic() + max(remaining_seconds, 0.0)


def handler(event: Mapping[str, Any] | None, context: Any = None) -> dict[str, Any]:
    """Serverless entry point for scheduled and synchronous invocations."""
    try:
        settings = get_settings()
    except ValidationError as exc:
        logger.error("invalid_configuration", error_count=exc.error_count())
        return _error(500, "Invalid rotator configuration.").as_lambda()
    configure_structlog(settings)
    deadline_at = context_deadline(context, settings.rotation.deadline_margin_seconds)
    response = asyncio.run(
        RotationHandler(settings).handle_event(event or {}, deadline_at=deadline_at)
    )
    return response.as_lambda()
