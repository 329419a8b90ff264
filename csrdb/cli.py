"""Operator commands: `python -m csrdb ping` and `python -m csrdb fetch-cert`."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Sequence

from .certs import fetch_certificate, write_cached_certificate
from .config import load_settings
from .connections import ConnectionManager
from .errors import CertificateUnavailable
from .query import ping

LOG = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="csrdb", description="Database connectivity tools.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("ping", help="Connect using DB_* settings and run a probe query.")

    fetch = commands.add_parser("fetch-cert", help="Fetch the server certificate and cache it.")
    fetch.add_argument("--host", help="host:port to contact (defaults to DB_HOST).")
    fetch.add_argument("--out", type=Path, help="Where to write the PEM (defaults to DB_CERT_PATH, else stdout).")
    return parser


async def _ping() -> int:
    manager = ConnectionManager()
    try:
        result = await ping(manager)
    finally:
        await manager.close()
    print(json.dumps(result.as_dict(), default=str))
    return 0 if result.ok else 1


async def _fetch_cert(host: str | None, out: Path | None) -> int:
    settings = load_settings()
    target = host or settings.host
    if not target:
        LOG.error("No host given and DB_HOST is not set.")
        return 2
    try:
        material = await fetch_certificate(target, timeout=settings.cert_timeout)
    except CertificateUnavailable as exc:
        LOG.error("%s", exc)
        return 1
    destination = out or settings.cert_path
    if destination is None:
        sys.stdout.write(material.pem or "")
        return 0
    return 0 if await write_cached_certificate(destination, material.pem or "") else 1


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.command == "ping":
        return asyncio.run(_ping())
    return asyncio.run(_fetch_cert(args.host, args.out))


__all__ = ["build_parser", "main"]
