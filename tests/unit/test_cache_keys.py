"""Unit tests for key-set URL cache key derivation."""

from __future__ import annotations

from hashlib import sha256

from rotator.core.cache_keys import derive_cache_key


def test_cache_key_is_deterministic_sha256_hex() -> None:
    """Same URL always maps to the same 64-character hex digest."""
    url = "https://client.example.com/.well-known/jwks.json"

    first = derive_cache_key(url)
    second = derive_cache_key(url)

    assert first == second
    assert first == sha256(url.encode("utf-8")).hexdigest()
    assert len(first) == 64
    assert all(character in "0123456789abcdef" for character in first)


def test_cache_keys_do_not_collide_across_sample() -> None:
    """Distinct URLs, including near-identical ones, derive distinct keys."""
    urls = [f"https://client-{index}.example.com/jwks.json" for index in range(500)]
    urls += [
        "https://client.example.com/jwks.json",
        "https://client.example.com/jwks.json/",
        "https://CLIENT.example.com/jwks.json",
        "https://client.example.com/jwks.json?v=2",
    ]

    keys = {derive_cache_key(url) for url in urls}

    assert len(keys) == len(urls)
