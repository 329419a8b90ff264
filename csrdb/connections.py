"""Lazy, single-flight connection manager backed by an asyncpg pool."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import ssl
from typing import Any, Awaitable, Callable

import asyncpg

from .certs import CertificateFetcher, fetch_certificate, split_host
from .config import DatabaseSettings, load_settings
from .descriptor import build_descriptor, is_ip_host, server_name_from
from .errors import ConnectFailed, DatabaseError, MissingCredentials
from .models import ConnectionHandle, ServerDescriptor

LOG = logging.getLogger(__name__)

DescriptorBuilder = Callable[[DatabaseSettings], Awaitable[ServerDescriptor]]
PoolOpener = Callable[..., Awaitable[ConnectionHandle]]


class ServerNameContext(ssl.SSLContext):
    """SSL context that presents ``server_name`` instead of the dialled host."""

    server_name: str | None = None

    def wrap_bio(self, incoming, outgoing, server_side=False, server_hostname=None, session=None):  # type: ignore[override]
        return super().wrap_bio(
            incoming,
            outgoing,
            server_side=server_side,
            server_hostname=self.server_name or server_hostname,
            session=session,
        )


def build_ssl_context(descriptor: ServerDescriptor) -> ssl.SSLContext:
    """Verified context pinned to the trust anchor, or encrypt-only in insecure mode."""

    context = ServerNameContext(ssl.PROTOCOL_TLS_CLIENT)
    context.server_name = descriptor.tls_server_name
    if not descriptor.verify_peer:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        return context
    if descriptor.trust_anchor is None:
        raise ConnectFailed("Secure mode requires a trust anchor.")
    context.load_verify_locations(cadata=descriptor.trust_anchor)
    # The anchor is usually the server leaf, not a root.
    context.verify_flags |= ssl.VERIFY_X509_PARTIAL_CHAIN
    return context


async def open_pool(
    descriptor: ServerDescriptor,
    *,
    fetch: CertificateFetcher = fetch_certificate,
    min_size: int = 1,
    max_size: int = 5,
    timeout: float = 10.0,
    cert_timeout: float = 5.0,
) -> ConnectionHandle:
    """Open a bounded pool against ``descriptor``."""

    if descriptor.verify_peer and descriptor.trust_anchor is None:
        material = await fetch(descriptor.host, timeout=cert_timeout)
        server_name = descriptor.tls_server_name
        if server_name is None and is_ip_host(descriptor.host):
            server_name = server_name_from(material)
        descriptor = dataclasses.replace(
            descriptor,
            trust_anchor=material.trust_anchor,
            tls_server_name=server_name,
        )

    try:
        context = build_ssl_context(descriptor)
    except ssl.SSLError as exc:
        raise ConnectFailed(f"Trust anchor for {descriptor.host} is not a usable certificate: {exc}") from exc
    hostname, port = split_host(descriptor.host)
    kwargs: dict[str, Any] = {
        "host": hostname,
        "port": port,
        "user": descriptor.user,
        "password": descriptor.password,
        "ssl": context,
        "min_size": min_size,
        "max_size": max_size,
        "timeout": timeout,
    }
    if descriptor.database:
        kwargs["database"] = descriptor.database
    if descriptor.schema:
        kwargs["server_settings"] = {"search_path": descriptor.schema}
    try:
        pool = await asyncpg.create_pool(**kwargs)
    except Exception as exc:
        raise ConnectFailed(f"Failed to open pool for {descriptor.host}: {exc}") from exc
    return ConnectionHandle(pool=pool, descriptor=descriptor)


class ConnectionManager:
    """Owns the one cached connection handle and the acquisition in flight.

    Concurrent callers of :meth:`get_connection` share a single pending
    acquisition. Failures are reported as ``None`` (see :attr:`last_error`)
    and leave the manager cold so the next call retries from scratch.
    """

    def __init__(
        self,
        settings: DatabaseSettings | None = None,
        *,
        build: DescriptorBuilder = build_descriptor,
        opener: PoolOpener = open_pool,
    ) -> None:
        self._settings = settings
        self._build = build
        self._opener = opener
        self._handle: ConnectionHandle | None = None
        self._pending: asyncio.Task[ConnectionHandle | None] | None = None
        self._last_error: Exception | None = None

    @property
    def state(self) -> str:
        if self._handle is not None:
            return "warm"
        if self._pending is not None:
            return "warming"
        return "cold"

    @property
    def last_error(self) -> Exception | None:
        """Why the most recent acquisition returned no handle."""

        return self._last_error

    async def get_connection(self) -> ConnectionHandle | None:
        """Return the cached handle, joining or starting an acquisition when cold."""

        if self._handle is not None:
            return self._handle
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._acquire())
        return await asyncio.shield(self._pending)

    def invalidate(self) -> None:
        """Drop the cached handle and any pending acquisition."""

        self._handle = None
        self._pending = None

    async def close(self) -> None:
        handle = self._handle
        self.invalidate()
        if handle is not None:
            await handle.close()

    async def _acquire(self) -> ConnectionHandle | None:
        task = asyncio.current_task()
        try:
            handle = await self._open()
        except MissingCredentials as exc:
            LOG.warning("DB env missing; database will be unavailable: %s", exc)
            return self._fail(exc, task)
        except DatabaseError as exc:
            LOG.error("DB connect failed: %s", exc)
            return self._fail(exc, task)
        except Exception as exc:
            LOG.exception("DB connect failed unexpectedly")
            return self._fail(exc, task)
        else:
            if self._pending is not task:
                LOG.info("Connection to %s settled after invalidation; not caching it.", handle.descriptor.host)
                return handle
            self._handle = handle
            self._last_error = None
            return handle
        finally:
            if self._pending is task:
                self._pending = None

    async def _open(self) -> ConnectionHandle:
        settings = self._settings if self._settings is not None else load_settings()
        descriptor = await self._build(settings)
        return await self._opener(
            descriptor,
            max_size=settings.pool_max_size,
            timeout=settings.connect_timeout,
            cert_timeout=settings.cert_timeout,
        )

    def _fail(self, exc: Exception, task: asyncio.Task[Any] | None) -> None:
        if self._pending is task:
            self._last_error = exc
        return None


__all__ = [
    "ConnectionManager",
    "DescriptorBuilder",
    "PoolOpener",
    "ServerNameContext",
    "build_ssl_context",
    "open_pool",
]
