"""Expiry resolution from HTTP caching headers."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from email.utils import parsedate_to_datetime
from typing import Literal

DEFAULT_TTL_SECONDS = 300

# Delta-seconds larger than 2**31 are treated as 2**31 (RFC 9111 section 1.2.2).
MAX_DELTA_SECONDS = 2147483648

LATEST = datetime.max.replace(tzinfo=UTC)

# Unparseable Expires values resolve here so they read as already expired.
EXPIRED = datetime.min.replace(tzinfo=UTC)

TTLSourceKind = Literal["max-age", "expires", "default"]


@dataclass(frozen=True)
class ResolvedTTL:
    """Absolute expiry plus the header that produced it."""

    expires_at: datetime
    source: TTLSourceKind
    raw: str

    def as_record(self) -> dict[str, str]:
        """Return a diagnostic record suitable for persistence."""
        return {"source": self.source, "raw": self.raw}


def _max_age_seconds(cache_control: str) -> int | None:
    """Extract a non-negative integer max-age directive, if any."""
    for directive in cache_control.split(","):
        name, _, value = directive.strip().partition("=")
        if name.strip().lower() != "max-age":
            continue
        value = value.strip().strip('"')
        if value.isascii() and value.isdigit():
            return int(value)
        return None
    return None


def _parse_http_date(value: str) -> datetime:
    """Parse an RFC 7231 date, mapping garbage to an already-expired instant."""
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return EXPIRED
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _after(now: datetime, seconds: int) -> datetime:
    """Add a non-negative delta, saturating at the latest representable instant."""
    try:
        return now + timedelta(seconds=min(seconds, MAX_DELTA_SECONDS))
    except OverflowError:
        return LATEST


def _lower_keys(headers: Mapping[str, str]) -> dict[str, str]:
    return {str(key).lower(): str(value) for key, value in headers.items()}


def resolve_ttl(
    now: datetime,
    headers: Mapping[str, str],
    default_ttl_seconds: int = DEFAULT_TTL_SECONDS,
) -> ResolvedTTL:
    """Resolve expiry from max-age, then Expires, then the default window."""
    normalized = _lower_keys(headers)

    cache_control = normalized.get("cache-control")
    if cache_control:
        max_age = _max_age_seconds(cache_control)
        if max_age is not None:
            return ResolvedTTL(
                expires_at=_after(now, max_age),
                source="max-age",
                raw=cache_control,
            )

    expires = normalized.get("expires")
    if expires is not None:
        return ResolvedTTL(expires_at=_parse_http_date(expires), source="expires", raw=expires)

    return ResolvedTTL(
        expires_at=_after(now, default_ttl_seconds),
        source="default",
        raw=str(default_ttl_seconds),
    )


def resolve_expiry(
    now: datetime,
    headers: Mapping[str, str],
    default_ttl_seconds: int = DEFAULT_TTL_SECONDS,
) -> datetime:
    """Return only the absolute expiry instant for the given headers."""
    return resolve_ttl(now, headers, default_ttl_seconds).expires_at
