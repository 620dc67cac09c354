"""Certificate provider backed by certbot.

``ensure(domain)`` reads ``<cert_dir>/<domain>/fullchain.pem`` with
``cryptography``; when the certificate is missing or expires within the
renewal threshold it runs ``certbot certonly --webroot`` and re-reads it.
Results are cached until the certificate enters the renewal window.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone
from pathlib import Path

from cryptography import x509

from bluegreen.infrastructure.collaborators import CertificateStatus

logger = logging.getLogger(__name__)

RENEWAL_THRESHOLD_DAYS = 30


def certificate_expiry(path: Path) -> datetime:
    """Expiry (UTC) of the first certificate in a PEM file."""
    cert = x509.load_pem_x509_certificate(Path(path).read_bytes())
    return cert.not_valid_after_utc


class CertbotProvider:
    """:class:`~bluegreen.infrastructure.collaborators.CertificateProvider`.

    Parameters
    ----------
    cert_dir:
        Directory with one ``<domain>/fullchain.pem`` per domain.
    email:
        Account e-mail passed to certbot.
    webroot:
        Directory served at ``/.well-known/acme-challenge/``.
    command:
        Command prefix that runs certbot (for example ``docker exec certbot
        certbot``).
    renewal_days:
        Renew when fewer days than this remain.
    """

    def __init__(
        self,
        cert_dir: Path,
        email: str = "",
        webroot: Path = Path("/var/www/html"),
        command: Sequence[str] = ("certbot",),
        renewal_days: int = RENEWAL_THRESHOLD_DAYS,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.cert_dir = Path(cert_dir)
        self.email = email
        self.webroot = Path(webroot)
        self.command = tuple(command)
        self.renewal_days = renewal_days
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._cache: dict[str, CertificateStatus] = {}
        self._lock = threading.Lock()

    def fullchain(self, domain: str) -> Path:
        return self.cert_dir / domain / "fullchain.pem"

    def _status(self, domain: str) -> CertificateStatus:
        path = self.fullchain(domain)
        if not path.is_file():
            return CertificateStatus(domain, valid=False, message="certificate missing")
        try:
            expires = certificate_expiry(path)
        except (OSError, ValueError) as exc:
            return CertificateStatus(domain, valid=False, message=f"unreadable certificate: {exc}")
        remaining = expires - self._now()
        if remaining < timedelta(days=self.renewal_days):
            return CertificateStatus(
                domain,
                valid=False,
                expires_at=expires,
                message=f"expires in {remaining.days} days",
            )
        return CertificateStatus(domain, valid=True, expires_at=expires)

    def _request(self, domain: str) -> bool:
        cmd = [
            *self.command,
            "certonly",
            "--webroot",
            f"--webroot-path={self.webroot}",
            "--agree-tos",
            "--no-eff-email",
            "--non-interactive",
            "--keep-until-expiring",
            "-d",
            domain,
        ]
        if self.email:
            cmd += ["--email", self.email]
        else:
            cmd.append("--register-unsafely-without-email")
        logger.info("Requesting certificate for %s", domain)
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, timeout=300, check=False)
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.error("certbot failed for %s: %s", domain, exc)
            return False
        if proc.returncode != 0:
            logger.error("certbot failed for %s: %s", domain, (proc.stderr or proc.stdout).strip())
            return False
        return True

    def ensure(self, domain: str) -> CertificateStatus:
        with self._lock:
            cached = self._cache.get(domain)
        if cached is not None and cached.valid and cached.expires_at is not None:
            if cached.expires_at - self._now() >= timedelta(days=self.renewal_days):
                return cached

        status = self._status(domain)
        if not status.valid:
            logger.warning("Certificate for %s needs renewal: %s", domain, status.message)
            if self._request(domain):
                status = self._status(domain)
                if status.valid:
                    status = CertificateStatus(
                        domain, valid=True, expires_at=status.expires_at, renewed=True
                    )
        with self._lock:
            self._cache[domain] = status
        return status
