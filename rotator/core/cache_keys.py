"""Cache key derivation for remote key-set URLs."""

from __future__ import annotations

from hashlib import sha256


def derive_cache_key(url: str) -> str:
    """Hash a key-set URL into a stable 64-character hex cache key."""
    return sha256(url.encode("utf-8")).hexdigest()
