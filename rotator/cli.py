"""CLI entrypoints for key rotation operational tasks."""

from __future__ import annotations

import argparse
import asyncio
import json
from collections.abc import Sequence
from pathlib import Path

from rotator.config import configure_structlog, get_settings
from rotator.handler import InvocationResponse, RotationHandler


def _emit(response: InvocationResponse) -> int:
    """Print the response body and map the status code to an exit code."""
    print(json.dumps(response.body))
    return 0 if response.status_code == 200 else 1


async def _run_rotate() -> int:
    """Rotate credentials for every subject with a key-set URL."""
    settings = get_settings()
    configure_structlog(settings)
    return _emit(await RotationHandler(settings).run_batch())


async def _run_link(client_id: str, jwk_file: Path) -> int:
    """Create and link a credential for one subject from a JWK file."""
    settings = get_settings()
    configure_structlog(settings)
    try:
        jwk = json.loads(jwk_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        print(json.dumps({"error": f"Unable to read JWK file: {exc}"}))
        return 2
    handler = RotationHandler(settings)
    return _emit(await handler.link_credential({"client_id": client_id, "jwk": jwk}))


def _build_parser() -> argparse.ArgumentParser:
    """Build command-line parser for supported operational commands."""
    parser = argparse.ArgumentParser(prog="python -m rotator.cli")
    subcommands = parser.add_subparsers(dest="command", required=True)

    subcommands.add_parser("rotate", help="Rotate credentials for all subjects.")

    link_parser = subcommands.add_parser("link", help="Link a JWK to one subject.")
    link_parser.add_argument("--client-id", required=True)
    link_parser.add_argument(
        "--jwk-file",
        type=Path,
        required=True,
        help="Path to a JSON file holding a single public JWK.",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run CLI command."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command == "rotate":
        return asyncio.run(_run_rotate())
    if args.command == "link":
        return asyncio.run(_run_link(client_id=args.client_id, jwk_file=args.jwk_file))
    parser.error("Unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
