"""Shared test fixtures for key material."""

from __future__ import annotations

import base64
from collections.abc import Callable
from typing import Any

import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

JWKFactory = Callable[[str], dict[str, Any]]


def _b64url_uint(value: int) -> str:
    """Encode an integer to base64url without padding."""
    value_bytes = value.to_bytes((value.bit_length() + 7) // 8, "big")
    return base64.urlsafe_b64encode(value_bytes).rstrip(b"=").decode("ascii")


@pytest.fixture(scope="session")
def rsa_public_numbers() -> rsa.RSAPublicNumbers:
    """Generate one RSA public key per test session."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return private_key.public_key().public_numbers()


@pytest.fixture
def make_jwk(rsa_public_numbers: rsa.RSAPublicNumbers) -> JWKFactory:
    """Build RSA public JWKs with a chosen key ID."""

    def _make(kid: str) -> dict[str, Any]:
        return {
            "kty": "RSA",
            "kid": kid,
            "use": "sig",
            "alg": "RS256",
            "n": _b64url_uint(rsa_public_numbers.n),
            "e": _b64url_uint(rsa_public_numbers.e),
        }

    return _make
