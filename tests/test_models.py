"""Tests for trust material helpers."""

from __future__ import annotations

import base64

from csrdb.models import PEM_FOOTER, PEM_HEADER, ServerDescriptor, TrustMaterial, der_to_pem


def test_der_to_pem_layout() -> None:
    der = bytes(range(256)) * 3

    pem = der_to_pem(der)
    lines = pem.split("\n")

    assert pem.endswith(PEM_FOOTER + "\n")
    assert lines[0] == PEM_HEADER
    body = lines[1:-2]
    assert all(len(line) == 64 for line in body[:-1])
    assert 0 < len(body[-1]) <= 64
    assert base64.standard_b64decode("".join(body)) == der


def test_from_der_fills_pem_and_identity(certificate) -> None:
    material = TrustMaterial.from_der(certificate.der)

    assert material.raw == certificate.der
    assert material.pem == certificate.pem
    assert material.subject_common_name == "db.example.com"
    assert material.subject_alt_names == "DNS:db.internal.example.com, IP Address:10.0.0.5"


def test_from_pem_decodes_identity(certificate) -> None:
    material = TrustMaterial.from_pem(certificate.pem)

    assert material.pem == certificate.pem
    assert material.raw == certificate.der
    assert material.trust_anchor == certificate.pem


def test_from_pem_keeps_undecodable_text() -> None:
    text = "-----BEGIN CERTIFICATE-----\nnot really\n-----END CERTIFICATE-----\n"

    material = TrustMaterial.from_pem(text)

    assert material.pem == text
    assert material.raw is None
    assert material.subject_common_name is None


def test_trust_anchor_falls_back_to_raw() -> None:
    assert TrustMaterial(raw=b"\x30\x82").trust_anchor == b"\x30\x82"


def test_descriptor_repr_hides_secrets() -> None:
    descriptor = ServerDescriptor(host="db:5432", user="agent", password="hunter2", trust_anchor="PEM")

    assert "hunter2" not in repr(descriptor)
    assert "agent" in repr(descriptor)
