"""Shared dataclasses used across the certificate, descriptor and connection modules."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.x509.oid import NameOID

if TYPE_CHECKING:
    import asyncpg

PEM_HEADER = "-----BEGIN CERTIFICATE-----"
PEM_FOOTER = "-----END CERTIFICATE-----"


def der_to_pem(der: bytes) -> str:
    """Render DER bytes as PEM: 64-character base64 lines and a trailing newline."""

    body = base64.standard_b64encode(der).decode("ascii")
    lines = [body[idx : idx + 64] for idx in range(0, len(body), 64)]
    return "\n".join([PEM_HEADER, *lines, PEM_FOOTER]) + "\n"


@dataclass(frozen=True, slots=True)
class TrustMaterial:
    """Certificate used to validate the remote database endpoint."""

    pem: str | None = None
    raw: bytes | None = None
    subject_common_name: str | None = None
    subject_alt_names: str | None = None

    @property
    def trust_anchor(self) -> str | bytes | None:
        return self.pem or self.raw

    @classmethod
    def from_pem(cls, pem: str) -> TrustMaterial:
        """Wrap PEM text, filling identity fields when the certificate decodes."""

        try:
            cert = x509.load_pem_x509_certificate(pem.encode("ascii"))
        except (ValueError, UnicodeEncodeError):
            return cls(pem=pem)
        common_name, alt_names = _identity(cert)
        return cls(
            pem=pem,
            raw=cert.public_bytes(Encoding.DER),
            subject_common_name=common_name,
            subject_alt_names=alt_names,
        )

    @classmethod
    def from_der(cls, der: bytes) -> TrustMaterial:
        """Wrap DER bytes, converting them to PEM."""

        try:
            cert = x509.load_der_x509_certificate(der)
        except ValueError:
            return cls(pem=der_to_pem(der), raw=der)
        common_name, alt_names = _identity(cert)
        return cls(
            pem=der_to_pem(der),
            raw=der,
            subject_common_name=common_name,
            subject_alt_names=alt_names,
        )


@dataclass(frozen=True, slots=True)
class ServerDescriptor:
    """Immutable parameters for opening the connection pool."""

    host: str
    user: str
    password: str = field(repr=False)
    trust_anchor: str | bytes | None = field(default=None, repr=False)
    verify_peer: bool = True
    tls_server_name: str | None = None
    database: str | None = None
    schema: str | None = None


@dataclass(frozen=True, slots=True)
class ConnectionHandle:
    """Open connection pool plus the descriptor it was created from."""

    pool: "asyncpg.Pool"
    descriptor: ServerDescriptor

    async def close(self) -> None:
        await self.pool.close()


def _identity(cert: x509.Certificate) -> tuple[str | None, str | None]:
    names = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    common_name = str(names[0].value) if names else None
    try:
        extension = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return common_name, None
    entries: list[str] = []
    for name in extension.value:
        if isinstance(name, x509.DNSName):
            entries.append(f"DNS:{name.value}")
        elif isinstance(name, x509.IPAddress):
            entries.append(f"IP Address:{name.value}")
    return common_name, ", ".join(entries) or None


__all__ = [
    "ConnectionHandle",
    "PEM_FOOTER",
    "PEM_HEADER",
    "ServerDescriptor",
    "TrustMaterial",
    "der_to_pem",
]
