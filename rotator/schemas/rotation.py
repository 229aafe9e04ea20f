"""Request and response schemas for rotation invocations."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LinkCredentialRequest(BaseModel):
    """Single-subject request: register and link a caller-supplied key."""

    model_config = ConfigDict(extra="ignore")

    client_id: str = Field(min_length=1)
    jwk: dict[str, Any]

    @field_validator("client_id")
    @classmethod
    def strip_client_id(cls, value: str) -> str:
        """Reject blank client IDs."""
        stripped = value.strip()
        if not stripped:
            raise ValueError("client_id must not be blank.")
        return stripped

    @field_validator("jwk")
    @classmethod
    def require_kid(cls, value: dict[str, Any]) -> dict[str, Any]:
        """Require the key ID used to name the credential."""
        if not isinstance(value.get("kid"), str) or not value["kid"]:
            raise ValueError("jwk.kid is required.")
        return value


class LinkCredentialResponse(BaseModel):
    """Single-subject success envelope."""

    message: str = "Credential created and linked"
    client_id: str
    credential_id: str


class ErrorResponse(BaseModel):
    """Error envelope shared by every invocation surface."""

    error: str
