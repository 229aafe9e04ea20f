"""Rotator exception hierarchy."""

from __future__ import annotations


class RotatorError(Exception):
    """Base class for all rotator-specific exceptions."""

    code = "rotator_error"

    def __init__(self, detail: str, code: str | None = None) -> None:
        """Initialize with user-facing detail and optional machine-readable code."""
        super().__init__(detail)
        self.detail = detail
        if code is not None:
            self.code = code


class FatalError(RotatorError):
    """Raised when the whole invocation cannot proceed."""

    code = "fatal_error"


class SecretResolutionError(FatalError):
    """Raised when the directory API secret cannot be resolved."""

    code = "secret_unavailable"


class DirectoryAuthenticationError(FatalError):
    """Raised when the management API token cannot be obtained."""

    code = "directory_auth_failed"


class DirectoryUnavailableError(FatalError):
    """Raised when subjects cannot be listed from the directory."""

    code = "directory_unavailable"


class SubjectFailure(RotatorError):
    """Raised when one subject fails; recorded on its outcome, never fatal."""

    code = "subject_failed"


class KeySetFetchError(SubjectFailure):
    """Raised when the remote key-set document cannot be retrieved or decoded."""

    code = "key_set_fetch_failed"

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        """Initialize with optional HTTP status code context."""
        super().__init__(detail)
        self.status_code = status_code


class EmptyKeySetError(SubjectFailure):
    """Raised when a key-set document carries no key records."""

    code = "empty_key_set"


class KeyConversionError(SubjectFailure):
    """Raised when a key record cannot be converted to credential material."""

    code = "key_conversion_failed"


class DirectoryAPIError(SubjectFailure):
    """Raised when a directory create/update call fails."""

    code = "directory_error"

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        """Initialize with optional HTTP status code context."""
        super().__init__(detail)
        self.status_code = status_code


class InvalidRequestError(RotatorError):
    """Raised when a synchronous invocation payload is malformed."""

    code = "invalid_request"
