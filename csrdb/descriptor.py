"""Build immutable server descriptors from settings and trust material."""

from __future__ import annotations

import ipaddress
import logging
import re
from typing import Awaitable, Callable

from .certs import obtain_trust, split_host
from .config import DatabaseSettings
from .errors import MissingCredentials
from .models import ServerDescriptor, TrustMaterial

LOG = logging.getLogger(__name__)

TrustResolver = Callable[..., Awaitable[TrustMaterial]]

_SAN_DNS = re.compile(r"DNS:([^,\s]+)", re.IGNORECASE)


def is_ip_host(host: str) -> bool:
    """Return True when the host part of ``host`` is an IPv4/IPv6 literal."""

    hostname, _ = split_host(host)
    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return True


def first_dns_from_san(alt_names: str | None) -> str | None:
    if not alt_names:
        return None
    match = _SAN_DNS.search(alt_names)
    return match.group(1) if match else None


def needs_server_name(host: str, server_name: str | None) -> bool:
    """An override is only applied for IP hosts or names the host does not start with."""

    if not server_name:
        return False
    return is_ip_host(host) or not host.startswith(server_name)


def server_name_from(material: TrustMaterial) -> str | None:
    return first_dns_from_san(material.subject_alt_names) or material.subject_common_name


async def build_descriptor(
    settings: DatabaseSettings,
    *,
    obtain: TrustResolver = obtain_trust,
) -> ServerDescriptor:
    """Turn settings into a descriptor, resolving trust material in secure mode."""

    if not settings.has_credentials:
        raise MissingCredentials("DB_HOST, DB_ID and DB_PASSWORD must all be set.")
    host = settings.host or ""

    if settings.tls_insecure:
        # An explicit override is honoured as-is; nothing is derived without a certificate.
        descriptor = ServerDescriptor(
            host=host,
            user=settings.user or "",
            password=settings.password or "",
            verify_peer=False,
            tls_server_name=settings.sni,
            database=settings.database,
            schema=settings.schema_name,
        )
        if settings.log_config:
            LOG.info("DB server (insecure): host=%s sni=%s", host, descriptor.tls_server_name)
        return descriptor

    material = await obtain(
        host,
        settings.cert_path,
        settings.ca_pem,
        timeout=settings.cert_timeout,
    )
    server_name = settings.sni or server_name_from(material)
    descriptor = ServerDescriptor(
        host=host,
        user=settings.user or "",
        password=settings.password or "",
        trust_anchor=material.trust_anchor,
        verify_peer=True,
        tls_server_name=server_name if needs_server_name(host, server_name) else None,
        database=settings.database,
        schema=settings.schema_name,
    )
    if settings.log_config:
        LOG.info(
            "DB server (secure): host=%s sni=%s ca_provided=%s",
            host,
            descriptor.tls_server_name,
            descriptor.trust_anchor is not None,
        )
    return descriptor


__all__ = [
    "TrustResolver",
    "build_descriptor",
    "first_dns_from_san",
    "is_ip_host",
    "needs_server_name",
    "server_name_from",
]
