"""Subject records as read from the directory."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Subject:
    """Registered client whose published signing key is tracked."""

    client_id: str
    metadata: dict[str, str] = field(default_factory=dict)
    credential_ids: tuple[str, ...] = ()
    jwks_uri_field: str = "jwks_uri"

    @property
    def jwks_uri(self) -> str | None:
        """Return the configured key-set URL, if any."""
        value = self.metadata.get(self.jwks_uri_field)
        if not value or not value.strip():
            return None
        return value.strip()

    @property
    def has_secure_jwks_uri(self) -> bool:
        """Return True when the key-set URL uses an encrypted transport."""
        uri = self.jwks_uri
        return uri is not None and uri.lower().startswith("https://")

    @classmethod
    def from_record(cls, record: Mapping[str, Any], jwks_uri_field: str = "jwks_uri") -> Subject:
        """Build a subject from a management API client record."""
        raw_metadata = record.get("client_metadata") or {}
        metadata = (
            {str(key): str(value) for key, value in raw_metadata.items() if value is not None}
            if isinstance(raw_metadata, Mapping)
            else {}
        )
        return cls(
            client_id=str(record["client_id"]),
            metadata=metadata,
            credential_ids=_linked_credential_ids(record),
            jwks_uri_field=jwks_uri_field,
        )


def _linked_credential_ids(record: Mapping[str, Any]) -> tuple[str, ...]:
    """Read credential IDs from the private_key_jwt authentication binding."""
    methods = record.get("client_authentication_methods") or {}
    if not isinstance(methods, Mapping):
        return ()
    binding = methods.get("private_key_jwt") or {}
    if not isinstance(binding, Mapping):
        return ()
    credentials = binding.get("credentials") or []
    ids: list[str] = []
    for item in credentials:
        if isinstance(item, Mapping) and item.get("id"):
            ids.append(str(item["id"]))
    return tuple(ids)
