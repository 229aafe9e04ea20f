"""Per-subject key rotation: freshness check, fetch, create and link."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Protocol

import structlog

from rotator.clients.jwks import FetchedKeySet
from rotator.core.freshness import FreshnessCache, utc_now
from rotator.core.keys import (
    CredentialMaterial,
    KeySelector,
    convert_to_credential_material,
    extract_key,
)
from rotator.core.subjects import Subject
from rotator.core.ttl import DEFAULT_TTL_SECONDS, resolve_ttl
from rotator.exceptions import SubjectFailure
from rotator.types import JWK, CredentialAlgorithm, OutcomePayload

logger = structlog.get_logger(__name__)


class RotationState(StrEnum):
    """States a subject passes through during one rotation run."""

    SKIPPED_NO_URL = "SKIPPED_NO_URL"
    SKIPPED_INSECURE_URL = "SKIPPED_INSECURE_URL"
    SKIPPED_FRESH = "SKIPPED_FRESH"
    FETCHING = "FETCHING"
    ROTATING = "ROTATING"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass(frozen=True)
class SubjectOutcome:
    """Terminal result recorded for one subject."""

    client_id: str
    state: RotationState
    credential_id: str | None = None
    reason: str | None = None
    detail: str | None = None

    @classmethod
    def skipped(cls, client_id: str, state: RotationState, reason: str) -> SubjectOutcome:
        return cls(client_id=client_id, state=state, reason=reason)

    @classmethod
    def failed(cls, client_id: str, reason: str, detail: str) -> SubjectOutcome:
        return cls(client_id=client_id, state=RotationState.FAILED, reason=reason, detail=detail)

    def as_payload(self) -> OutcomePayload:
        """Return the JSON-serializable response entry."""
        payload: OutcomePayload = {"client_id": self.client_id, "state": self.state.value}
        if self.credential_id is not None:
            payload["credential_id"] = self.credential_id
        if self.reason is not None:
            payload["reason"] = self.reason
        if self.detail is not None:
            payload["detail"] = self.detail
        return payload


class DirectoryGateway(Protocol):
    """Directory operations needed to register and link credentials."""

    async def get_subject(self, client_id: str) -> Subject: ...

    async def create_credential(self, client_id: str, material: CredentialMaterial) -> str: ...

    async def update_subject(
        self,
        client_id: str,
        metadata: dict[str, str] | None = None,
        credential_ids: Sequence[str] | None = None,
    ) -> None: ...


class KeySetSource(Protocol):
    """Remote key-set retrieval."""

    async def fetch(self, url: str) -> FetchedKeySet: ...


def _append_credential(existing: Sequence[str], credential_id: str) -> list[str]:
    """Keep previously linked credentials and add the new one last."""
    linked = [item for item in existing if item != credential_id]
    linked.append(credential_id)
    return linked


class RotationService:
    """Drive one subject from freshness check to a linked credential."""

    def __init__(
        self,
        directory: DirectoryGateway,
        fetcher: KeySetSource,
        freshness: FreshnessCache,
        algorithm: CredentialAlgorithm = "RS256",
        key_id_field: str = "key_id",
        default_ttl_seconds: int = DEFAULT_TTL_SECONDS,
        selector: KeySelector | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._directory = directory
        self._fetcher = fetcher
        self._freshness = freshness
        self._algorithm = algorithm
        self._key_id_field = key_id_field
        self._default_ttl_seconds = default_ttl_seconds
        self._selector = selector
        self._now = now or utc_now

    async def rotate_subject(self, subject: Subject) -> SubjectOutcome:
        """Rotate a subject's credential unless it is skipped or still fresh."""
        log = logger.bind(client_id=subject.client_id)
        jwks_uri = subject.jwks_uri
        if jwks_uri is None:
            log.info("subject_skipped", reason="jwks_uri_missing")
            return SubjectOutcome.skipped(
                subject.client_id, RotationState.SKIPPED_NO_URL, "jwks_uri_missing"
            )
        if not subject.has_secure_jwks_uri:
            log.error("subject_skipped", reason="jwks_uri_insecure", jwks_uri=jwks_uri)
            return SubjectOutcome.skipped(
                subject.client_id, RotationState.SKIPPED_INSECURE_URL, "jwks_uri_insecure"
            )

        cached = await self._freshness.lookup(jwks_uri, subject)
        if cached.valid:
            log.info(
                "subject_skipped",
                reason="cache_fresh",
                expires_at=cached.expires_at.isoformat() if cached.expires_at else None,
            )
            return SubjectOutcome.skipped(
                subject.client_id, RotationState.SKIPPED_FRESH, "cache_fresh"
            )

        try:
            log.info("subject_state", state=RotationState.FETCHING.value, jwks_uri=jwks_uri)
            fetched = await self._fetcher.fetch(jwks_uri)
            resolved = resolve_ttl(self._now(), fetched.headers, self._default_ttl_seconds)

            log.info("subject_state", state=RotationState.ROTATING.value)
            key = extract_key(fetched.document, self._selector)
            material = convert_to_credential_material(key, self._algorithm)
            credential_id = await self._directory.create_credential(subject.client_id, material)
            metadata = {
                **subject.metadata,
                self._key_id_field: material.kid,
                **self._freshness.metadata_updates(resolved),
            }
            await self._directory.update_subject(
                subject.client_id,
                metadata=metadata,
                credential_ids=_append_credential(subject.credential_ids, credential_id),
            )
        except SubjectFailure as exc:
            log.error("subject_failed", reason=exc.code, error=exc.detail)
            return SubjectOutcome.failed(subject.client_id, exc.code, exc.detail)

        cache_stored = await self._freshness.store(
            jwks_uri, fetched.raw_body, resolved, subject.client_id
        )
        log.info(
            "subject_rotated",
            credential_id=credential_id,
            kid=material.kid,
            expires_at=resolved.expires_at.isoformat(),
            ttl_source=resolved.source,
            cache_stored=cache_stored,
        )
        return SubjectOutcome(
            client_id=subject.client_id,
            state=RotationState.DONE,
            credential_id=credential_id,
        )

    async def link_key(self, client_id: str, key: JWK) -> str:
        """Create and link a credential from a caller-supplied key, bypassing the cache."""
        material = convert_to_credential_material(key, self._algorithm)
        subject = await self._directory.get_subject(client_id)
        credential_id = await self._directory.create_credential(client_id, material)
        await self._directory.update_subject(
            client_id,
            metadata={**subject.metadata, self._key_id_field: material.kid},
            credential_ids=_append_credential(subject.credential_ids, credential_id),
        )
        logger.info(
            "subject_linked", client_id=client_id, credential_id=credential_id, kid=material.kid
        )
        return credential_id
