"""Wire-level data contract types."""

from __future__ import annotations

from typing import Any, Literal, TypedDict

CredentialAlgorithm = Literal["RS256", "RS384", "PS256"]

JWK = dict[str, Any]


class JWKS(TypedDict):
    """Remote key-set document."""

    keys: list[JWK]


class CacheEntryPayload(TypedDict):
    """Serialized freshness entry kept in the external keyed store."""

    cache_key: str
    payload: str
    expires_at: str
    subject_id: str
    ttl_source: dict[str, str]


class OutcomePayload(TypedDict, total=False):
    """Per-subject entry in the batch response body."""

    client_id: str
    state: str
    credential_id: str
    reason: str
    detail: str
