"""Trust certificate resolution: inline PEM, cached file, or a live fetch."""

from __future__ import annotations

import asyncio
import logging
import ssl
import struct
from pathlib import Path
from typing import Awaitable, Callable

from .errors import CertificateUnavailable
from .models import TrustMaterial

LOG = logging.getLogger(__name__)

DEFAULT_PORT = 5432

# PostgreSQL SSLRequest: length 8, request code 80877103.
_SSL_REQUEST = struct.pack("!ii", 8, 80877103)

CertificateFetcher = Callable[..., Awaitable[TrustMaterial]]


def split_host(host: str) -> tuple[str, int]:
    """Split ``hostname:port`` (or ``[v6]:port``) into its parts."""

    value = host.strip()
    if value.startswith("["):
        address, _, rest = value[1:].partition("]")
        port = rest[1:] if rest.startswith(":") else ""
        return address, int(port) if port else DEFAULT_PORT
    if value.count(":") == 1:
        name, port = value.split(":", 1)
        return name, int(port) if port else DEFAULT_PORT
    return value, DEFAULT_PORT


async def fetch_certificate(host: str, *, timeout: float = 5.0) -> TrustMaterial:
    """Read the server certificate presented by ``host`` during the TLS upgrade."""

    hostname, port = split_host(host)
    try:
        der = await asyncio.wait_for(_peer_certificate(hostname, port), timeout)
    except CertificateUnavailable:
        raise
    except (OSError, asyncio.TimeoutError, asyncio.IncompleteReadError, ssl.SSLError) as exc:
        raise CertificateUnavailable(f"Could not fetch certificate from {host}: {exc}") from exc
    if not der:
        raise CertificateUnavailable(f"{host} presented no certificate.")
    return TrustMaterial.from_der(der)


async def obtain_trust(
    host: str,
    cached_path: Path | None = None,
    inline_pem: str | None = None,
    *,
    fetch: CertificateFetcher = fetch_certificate,
    timeout: float = 5.0,
) -> TrustMaterial:
    """Resolve trust material, preferring inline PEM, then the cache file, then the network."""

    if inline_pem and "BEGIN CERTIFICATE" in inline_pem:
        return TrustMaterial.from_pem(inline_pem)
    if cached_path is not None and cached_path.is_file():
        pem = await asyncio.to_thread(cached_path.read_text, encoding="utf-8")
        LOG.debug("Using cached certificate at %s", cached_path)
        return TrustMaterial.from_pem(pem)
    material = await fetch(host, timeout=timeout)
    if cached_path is not None and material.pem:
        await write_cached_certificate(cached_path, material.pem)
    return material


async def write_cached_certificate(path: Path, pem: str) -> bool:
    """Advisory cache write; failures are logged and reported as ``False``."""

    try:
        await asyncio.to_thread(_write_text, path, pem)
    except OSError as exc:
        LOG.warning("Could not cache certificate at %s: %s", path, exc)
        return False
    LOG.info("Cached server certificate at %s", path)
    return True


def _write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


async def _peer_certificate(hostname: str, port: int) -> bytes | None:
    reader, writer = await asyncio.open_connection(hostname, port)
    try:
        writer.write(_SSL_REQUEST)
        await writer.drain()
        answer = await reader.readexactly(1)
        if answer != b"S":
            raise CertificateUnavailable(f"{hostname}:{port} does not accept TLS connections.")
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        await writer.start_tls(context, server_hostname=hostname)
        ssl_object = writer.get_extra_info("ssl_object")
        if ssl_object is None:
            return None
        return ssl_object.getpeercert(binary_form=True)
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except Exception:  # pragma: no cover - best effort cleanup
            pass


__all__ = [
    "CertificateFetcher",
    "fetch_certificate",
    "obtain_trust",
    "split_host",
    "write_cached_certificate",
]
