"""Key selection and JWK to credential-material conversion."""

from __future__ import annotations

import base64
import binascii
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from rotator.exceptions import EmptyKeySetError, KeyConversionError
from rotator.types import JWK, CredentialAlgorithm

CREDENTIAL_TYPE = "public_key"

KeySelector = Callable[[JWK], bool]

_EC_CURVES: dict[str, ec.EllipticCurve] = {
    "P-256": ec.SECP256R1(),
    "P-384": ec.SECP384R1(),
    "P-521": ec.SECP521R1(),
}


@dataclass(frozen=True)
class CredentialMaterial:
    """Converted key ready for the directory credential-registration call."""

    kid: str
    name: str
    credential_type: str
    algorithm: CredentialAlgorithm
    pem: str

    def as_request(self) -> dict[str, str]:
        """Return the credential-registration request body."""
        return {
            "name": self.name,
            "credential_type": self.credential_type,
            "alg": self.algorithm,
            "pem": self.pem,
        }


def select_by_use(key_use: str | None) -> KeySelector | None:
    """Build a selector that accepts keys with the given `use`, or without one."""
    if key_use is None:
        return None

    def _selector(key: JWK) -> bool:
        declared = key.get("use")
        return declared is None or declared == key_use

    return _selector


def extract_key(document: Mapping[str, Any], selector: KeySelector | None = None) -> JWK:
    """Return the first key record in document order, optionally filtered."""
    keys = document.get("keys")
    if not isinstance(keys, list) or not keys:
        raise EmptyKeySetError("Key set contains no keys.")
    for key in keys:
        if not isinstance(key, dict):
            continue
        if selector is None or selector(key):
            return key
    raise EmptyKeySetError("Key set contains no usable keys.")


def credential_name(kid: str) -> str:
    """Return the directory-visible credential name for a key ID."""
    return f"credential-for-{kid}"


def convert_to_credential_material(
    key: JWK,
    algorithm: CredentialAlgorithm = "RS256",
) -> CredentialMaterial:
    """Convert a public JWK into PEM-encoded credential material."""
    kid = str(key.get("kid") or "")
    if not kid:
        raise KeyConversionError("Key record is missing 'kid'.")

    public_key = jwk_to_public_key(key)
    pem = public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")
    return CredentialMaterial(
        kid=kid,
        name=credential_name(kid),
        credential_type=CREDENTIAL_TYPE,
        algorithm=algorithm,
        pem=pem,
    )


def jwk_to_public_key(key: JWK) -> rsa.RSAPublicKey | ec.EllipticCurvePublicKey:
    """Build a cryptography public key object from RSA or EC JWK members."""
    kty = key.get("kty")
    try:
        if kty == "RSA":
            n_value, e_value = key.get("n"), key.get("e")
            if not n_value or not e_value:
                raise KeyConversionError("Incomplete RSA public key.")
            return rsa.RSAPublicNumbers(
                _b64url_uint(e_value), _b64url_uint(n_value)
            ).public_key()
        if kty == "EC":
            curve = _EC_CURVES.get(str(key.get("crv")))
            if curve is None:
                raise KeyConversionError(f"Unsupported EC curve {key.get('crv')!r}.")
            x_value, y_value = key.get("x"), key.get("y")
            if not x_value or not y_value:
                raise KeyConversionError("Incomplete EC public key.")
            return ec.EllipticCurvePublicNumbers(
                _b64url_uint(x_value), _b64url_uint(y_value), curve
            ).public_key()
    except (TypeError, ValueError) as exc:
        raise KeyConversionError(f"Malformed {kty} key: {exc}") from exc
    raise KeyConversionError(f"Unsupported key type {kty!r}.")


def _b64url_uint(value: Any) -> int:
    """Decode an unpadded base64url big-endian integer."""
    if not isinstance(value, str):
        raise ValueError("key member must be a string")
    padded = value + "=" * (-len(value) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ValueError("invalid base64url encoding") from exc
    return int.from_bytes(raw, "big")
