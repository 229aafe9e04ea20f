"""Unit tests for caching-header expiry resolution."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from rotator.core.ttl import EXPIRED, LATEST, MAX_DELTA_SECONDS, resolve_expiry, resolve_ttl

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


def test_max_age_sets_expiry_relative_to_now() -> None:
    """max-age directive wins and is added to the current instant."""
    assert resolve_expiry(NOW, {"cache-control": "max-age=120"}) == NOW + timedelta(seconds=120)


def test_max_age_is_found_among_other_directives() -> None:
    """max-age is located regardless of directive order and header case."""
    expiry = resolve_expiry(
        NOW,
        {
            "Cache-Control": "public, must-revalidate, Max-Age=600",
            "Expires": "Wed, 21 Oct 2015 07:28:00 GMT",
        },
    )

    assert expiry == NOW + timedelta(seconds=600)


def test_expires_header_used_without_max_age() -> None:
    """Expires applies when no max-age directive is present."""
    resolved = resolve_ttl(
        NOW, {"cache-control": "no-transform", "expires": "Sun, 01 Mar 2026 13:30:00 GMT"}
    )

    assert resolved.expires_at == datetime(2026, 3, 1, 13, 30, 0, tzinfo=UTC)
    assert resolved.source == "expires"


def test_default_window_without_caching_headers() -> None:
    """Neither header yields the five-minute default."""
    resolved = resolve_ttl(NOW, {})

    assert resolved.expires_at == NOW + timedelta(seconds=300)
    assert resolved.source == "default"


def test_default_window_is_configurable() -> None:
    """Callers may override the fallback window."""
    assert resolve_expiry(NOW, {}, default_ttl_seconds=60) == NOW + timedelta(seconds=60)


def test_malformed_max_age_falls_back_to_expires() -> None:
    """Non-numeric max-age is ignored in favor of a valid Expires."""
    expiry = resolve_expiry(
        NOW,
        {"cache-control": "max-age=abc", "expires": "Sun, 01 Mar 2026 12:10:00 GMT"},
    )

    assert expiry == datetime(2026, 3, 1, 12, 10, 0, tzinfo=UTC)


def test_malformed_max_age_without_expires_uses_default() -> None:
    """Non-numeric max-age with no Expires falls back to the default."""
    assert resolve_expiry(NOW, {"cache-control": "max-age=-5"}) == NOW + timedelta(seconds=300)


def test_malformed_expires_is_treated_as_already_expired() -> None:
    """Garbage Expires resolves to an instant in the past instead of raising."""
    resolved = resolve_ttl(NOW, {"expires": "not a date"})

    assert resolved.expires_at == EXPIRED
    assert resolved.expires_at < NOW


def test_resolved_ttl_record_reports_source() -> None:
    """Diagnostic record carries source and raw header."""
    resolved = resolve_ttl(NOW, {"cache-control": "max-age=30"})

    assert resolved.as_record() == {"source": "max-age", "raw": "max-age=30"}


def test_oversized_max_age_is_capped() -> None:
    """Delta-seconds beyond 2**31 are clamped instead of overflowing."""
    resolved = resolve_ttl(NOW, {"cache-control": "max-age=999999999999"})

    assert resolved.source == "max-age"
    assert resolved.expires_at == NOW + timedelta(seconds=MAX_DELTA_SECONDS)


def test_expiry_saturates_at_latest_instant() -> None:
    """Additions past the calendar limit resolve to the latest instant."""
    near_end = datetime(9999, 12, 1, tzinfo=UTC)

    assert resolve_expiry(near_end, {"cache-control": "max-age=999999999999"}) == LATEST
    assert resolve_expiry(near_end, {}, default_ttl_seconds=10**12) == LATEST
