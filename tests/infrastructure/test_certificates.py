"""Tests for the certbot-backed certificate provider."""

from __future__ import annotations

import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from bluegreen.infrastructure.certificates import CertbotProvider, certificate_expiry

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)
DOMAIN = "shop.example.com"


def write_certificate(cert_dir: Path, domain: str, expires: datetime) -> Path:
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domain)])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(expires - timedelta(days=90))
        .not_valid_after(expires)
        .sign(key, hashes.SHA256())
    )
    path = cert_dir / domain / "fullchain.pem"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    return path


@pytest.fixture
def certbot_calls(monkeypatch: pytest.MonkeyPatch) -> list[list[str]]:
    calls: list[list[str]] = []

    def fake_run(cmd: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        calls.append(cmd)
        return subprocess.CompletedProcess(cmd, 1, "", "challenge failed")

    monkeypatch.setattr("bluegreen.infrastructure.certificates.subprocess.run", fake_run)
    return calls


class TestCertbotProvider:
    def test_expiry_is_read_from_pem(self, tmp_path: Path) -> None:
        expires = (NOW + timedelta(days=60)).replace(microsecond=0)
        path = write_certificate(tmp_path, DOMAIN, expires)
        assert certificate_expiry(path) == expires

    def test_valid_certificate_is_not_renewed(
        self, tmp_path: Path, certbot_calls: list[list[str]]
    ) -> None:
        write_certificate(tmp_path, DOMAIN, NOW + timedelta(days=60))
        provider = CertbotProvider(tmp_path, now=lambda: NOW)
        status = provider.ensure(DOMAIN)
        assert status.valid
        assert not status.renewed
        assert certbot_calls == []

    def test_expiring_certificate_triggers_certbot(
        self, tmp_path: Path, certbot_calls: list[list[str]]
    ) -> None:
        write_certificate(tmp_path, DOMAIN, NOW + timedelta(days=5))
        provider = CertbotProvider(tmp_path, email="ops@example.com", now=lambda: NOW)
        status = provider.ensure(DOMAIN)

        assert not status.valid
        assert "expires in" in status.message
        assert len(certbot_calls) == 1
        cmd = certbot_calls[0]
        assert cmd[:2] == ["certbot", "certonly"]
        assert "-d" in cmd and DOMAIN in cmd
        assert cmd[-2:] == ["--email", "ops@example.com"]

    def test_missing_certificate(self, tmp_path: Path, certbot_calls: list[list[str]]) -> None:
        status = CertbotProvider(tmp_path, now=lambda: NOW).ensure(DOMAIN)
        assert not status.valid
        assert status.message == "certificate missing"
        assert "--register-unsafely-without-email" in certbot_calls[0]

    def test_successful_renewal_is_reported(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def fake_run(cmd: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
            write_certificate(tmp_path, DOMAIN, NOW + timedelta(days=90))
            return subprocess.CompletedProcess(cmd, 0, "", "")

        monkeypatch.setattr("bluegreen.infrastructure.certificates.subprocess.run", fake_run)
        status = CertbotProvider(tmp_path, now=lambda: NOW).ensure(DOMAIN)
        assert status.valid
        assert status.renewed
