"""Shared fixtures: isolated environment and a throwaway certificate."""

from __future__ import annotations

import datetime as dt
import ipaddress
from dataclasses import dataclass
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

DB_ENV_VARS = (
    "DB_HOST",
    "DB2_HOST",
    "DB_ID",
    "DB_USER",
    "DB2_USER",
    "DB_PASSWORD",
    "DB2_PASS",
    "DB_NAME",
    "DB_SNI",
    "DB2_SNI",
    "DB_CERT_PATH",
    "DB_CA_PEM",
    "DB_TLS_INSECURE",
    "DB_LOG_CONFIG",
    "DB_SCHEMA",
    "DB_CONNECT_TIMEOUT",
    "DB_CERT_TIMEOUT",
    "DB_POOL_MAX_SIZE",
)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def clean_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    for name in DB_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@dataclass(frozen=True)
class SelfSigned:
    pem: str
    der: bytes
    key_pem: bytes


def make_certificate(common_name: str = "db.example.com", dns_names: tuple[str, ...] = ("db.internal.example.com",)) -> SelfSigned:
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = dt.datetime.now(dt.timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - dt.timedelta(days=1))
        .not_valid_after(now + dt.timedelta(days=1))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
    )
    if dns_names:
        builder = builder.add_extension(
            x509.SubjectAlternativeName(
                [x509.DNSName(dns) for dns in dns_names]
                + [x509.IPAddress(ipaddress.ip_address("10.0.0.5"))]
            ),
            critical=False,
        )
    cert = builder.sign(key, hashes.SHA256())
    return SelfSigned(
        pem=cert.public_bytes(serialization.Encoding.PEM).decode("ascii"),
        der=cert.public_bytes(serialization.Encoding.DER),
        key_pem=key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ),
    )


@pytest.fixture(scope="session")
def certificate() -> SelfSigned:
    return make_certificate()


@pytest.fixture
def certificate_factory():
    return make_certificate


def make_signed_leaf(dns_name: str = "db.internal.example.com") -> tuple[SelfSigned, SelfSigned]:
    """Return ``(ca, leaf)`` where the leaf is issued by the CA, as a managed server would present."""

    ca = make_certificate(common_name="Test Root CA", dns_names=())
    ca_cert = x509.load_pem_x509_certificate(ca.pem.encode("ascii"))
    ca_key = serialization.load_pem_private_key(ca.key_pem, password=None)
    key = ec.generate_private_key(ec.SECP256R1())
    now = dt.datetime.now(dt.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, dns_name)]))
        .issuer_name(ca_cert.subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - dt.timedelta(days=1))
        .not_valid_after(now + dt.timedelta(days=1))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.SubjectAlternativeName(
                [x509.DNSName(dns_name), x509.IPAddress(ipaddress.ip_address("10.0.0.5"))]
            ),
            critical=False,
        )
        .sign(ca_key, hashes.SHA256())
    )
    leaf = SelfSigned(
        pem=cert.public_bytes(serialization.Encoding.PEM).decode("ascii"),
        der=cert.public_bytes(serialization.Encoding.DER),
        key_pem=key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ),
    )
    return ca, leaf


@pytest.fixture(scope="session")
def signed_leaf() -> tuple[SelfSigned, SelfSigned]:
    return make_signed_leaf()
