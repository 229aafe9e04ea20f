"""Freshness cache for remote key sets with external and embedded backends."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

import structlog
from redis.asyncio.client import Redis
from redis.exceptions import RedisError

from rotator.core.cache_keys import derive_cache_key
from rotator.core.subjects import Subject
from rotator.core.ttl import ResolvedTTL
from rotator.types import CacheEntryPayload

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return the current aware UTC instant."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class FreshnessLookup:
    """Result of a freshness lookup for one key-set URL."""

    valid: bool
    payload: dict[str, Any] | None = None
    expires_at: datetime | None = None


MISS = FreshnessLookup(valid=False)


class FreshnessCache(Protocol):
    """Capability deciding whether a URL's key set is still fresh."""

    async def lookup(self, url: str, subject: Subject) -> FreshnessLookup: ...

    def metadata_updates(self, resolved: ResolvedTTL) -> dict[str, str]: ...

    async def store(
        self, url: str, payload: str, resolved: ResolvedTTL, subject_id: str
    ) -> bool: ...


def _parse_instant(value: str) -> datetime:
    """Parse an ISO-8601 instant, assuming UTC when no offset is present."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class RedisFreshnessCache:
    """Freshness state kept in Redis, addressed by a hash of the key-set URL."""

    def __init__(
        self,
        redis_client: Redis,
        key_prefix: str = "jwks:",
        now: Clock | None = None,
    ) -> None:
        self._redis = redis_client
        self._key_prefix = key_prefix
        self._now = now or utc_now

    async def lookup(self, url: str, subject: Subject) -> FreshnessLookup:
        """Return a valid hit only for a readable, unexpired entry."""
        cache_key = derive_cache_key(url)
        try:
            raw_entry = await self._redis.get(self._redis_key(cache_key))
        except (RedisError, OSError) as exc:
            logger.warning(
                "freshness_cache_read_failed",
                client_id=subject.client_id,
                cache_key=cache_key,
                error=str(exc),
            )
            return MISS
        if raw_entry is None:
            return MISS

        try:
            entry = json.loads(raw_entry)
            expires_at = _parse_instant(str(entry["expires_at"]))
            payload = json.loads(entry["payload"])
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning(
                "freshness_cache_entry_invalid",
                client_id=subject.client_id,
                cache_key=cache_key,
                error=str(exc),
            )
            return MISS

        if expires_at <= self._now():
            return FreshnessLookup(valid=False, expires_at=expires_at)
        return FreshnessLookup(valid=True, payload=payload, expires_at=expires_at)

    def metadata_updates(self, resolved: ResolvedTTL) -> dict[str, str]:
        """External entries never touch subject metadata."""
        del resolved
        return {}

    async def store(self, url: str, payload: str, resolved: ResolvedTTL, subject_id: str) -> bool:
        """Write the entry with an absolute expiration hint for Redis cleanup."""
        cache_key = derive_cache_key(url)
        entry: CacheEntryPayload = {
            "cache_key": cache_key,
            "payload": payload,
            "expires_at": resolved.expires_at.isoformat(),
            "subject_id": subject_id,
            "ttl_source": resolved.as_record(),
        }
        expiration_hint = max(
            int(resolved.expires_at.timestamp()),
            int(self._now().timestamp()) + 1,
        )
        try:
            await self._redis.set(
                self._redis_key(cache_key), json.dumps(entry), exat=expiration_hint
            )
        except (RedisError, OSError) as exc:
            logger.error(
                "freshness_cache_write_failed",
                client_id=subject_id,
                cache_key=cache_key,
                error=str(exc),
            )
            return False
        return True

    def _redis_key(self, cache_key: str) -> str:
        """Build Redis key for a derived cache key."""
        return f"{self._key_prefix}{cache_key}"


class EmbeddedFreshnessCache:
    """Freshness expiry kept on the subject's own metadata."""

    def __init__(self, expiry_field: str = "jwks_expires_at", now: Clock | None = None) -> None:
        self._expiry_field = expiry_field
        self._now = now or utc_now

    async def lookup(self, url: str, subject: Subject) -> FreshnessLookup:
        """Read the expiry from the already-fetched subject record."""
        del url
        raw_expiry = subject.metadata.get(self._expiry_field)
        if not raw_expiry:
            return MISS
        try:
            expires_at = _parse_instant(raw_expiry)
        except ValueError:
            logger.warning(
                "freshness_metadata_invalid",
                client_id=subject.client_id,
                field=self._expiry_field,
            )
            return MISS
        return FreshnessLookup(valid=expires_at > self._now(), expires_at=expires_at)

    def metadata_updates(self, resolved: ResolvedTTL) -> dict[str, str]:
        """Return the expiry field written alongside the credential link."""
        return {self._expiry_field: resolved.expires_at.isoformat()}

    async def store(self, url: str, payload: str, resolved: ResolvedTTL, subject_id: str) -> bool:
        """No-op: the expiry travels with the subject update."""
        del url, payload, resolved, subject_id
        return True
