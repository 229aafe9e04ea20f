"""Unit tests for operational CLI commands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from rotator import cli
from rotator.handler import InvocationResponse


class _HandlerStub:
    """Rotation handler stub recording calls."""

    calls: list[tuple[str, object]] = []

    def __init__(self, settings: object) -> None:
        del settings

    async def run_batch(self) -> InvocationResponse:
        self.calls.append(("rotate", None))
        return InvocationResponse(status_code=200, body={"message": "ok", "results": []})

    async def link_credential(self, body: dict) -> InvocationResponse:
        self.calls.append(("link", body))
        return InvocationResponse(status_code=500, body={"error": "Rate limited (status 429)"})


@pytest.fixture(autouse=True)
def _patched_cli(monkeypatch: pytest.MonkeyPatch) -> None:
    _HandlerStub.calls = []
    monkeypatch.setattr(cli, "get_settings", lambda: object())
    monkeypatch.setattr(cli, "configure_structlog", lambda settings: None)
    monkeypatch.setattr(cli, "RotationHandler", _HandlerStub)


def test_rotate_prints_body_and_exits_zero(capsys: pytest.CaptureFixture[str]) -> None:
    """Successful batch run exits 0 with the JSON body on stdout."""
    exit_code = cli.main(["rotate"])

    assert exit_code == 0
    assert json.loads(capsys.readouterr().out) == {"message": "ok", "results": []}
    assert _HandlerStub.calls == [("rotate", None)]


def test_link_reads_jwk_file_and_reports_failure(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """Link passes the file's JWK through and maps errors to exit code 1."""
    jwk_file = tmp_path / "key.json"
    jwk_file.write_text(json.dumps({"kty": "RSA", "kid": "k1"}), encoding="utf-8")

    exit_code = cli.main(["link", "--client-id", "c1", "--jwk-file", str(jwk_file)])

    assert exit_code == 1
    assert json.loads(capsys.readouterr().out) == {"error": "Rate limited (status 429)"}
    assert _HandlerStub.calls == [
        ("link", {"client_id": "c1", "jwk": {"kty": "RSA", "kid": "k1"}})
    ]


def test_link_with_unreadable_file_exits_two(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """Unreadable JWK files never reach the handler."""
    missing = tmp_path / "missing.json"

    exit_code = cli.main(["link", "--client-id", "c1", "--jwk-file", str(missing)])

    assert exit_code == 2
    assert "Unable to read JWK file" in json.loads(capsys.readouterr().out)["error"]
    assert _HandlerStub.calls == []
