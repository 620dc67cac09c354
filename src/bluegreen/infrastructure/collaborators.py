"""Narrow interfaces to the external systems the orchestrator drives.

The proxy process, the container runtime and the certificate authority are
not reimplemented here; they are consumed through these protocols.  Real
implementations live in :mod:`bluegreen.infrastructure.docker_runtime` and
:mod:`bluegreen.infrastructure.certificates`; in-memory fakes live in
:mod:`bluegreen.testing`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class CommandResult:
    """Exit status and combined output of an external command."""

    returncode: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass(frozen=True)
class CertificateStatus:
    """Outcome of an ``ensure certificate`` call."""

    domain: str
    valid: bool
    expires_at: datetime | None = None
    renewed: bool = False
    message: str = ""


@runtime_checkable
class ProxyController(Protocol):
    """The live reverse-proxy process."""

    def is_reachable(self) -> bool:
        """Whether the proxy process is running and can be asked to test/reload."""
        ...

    def test_config(self) -> CommandResult:
        """Test the full configuration tree currently on disk."""
        ...

    def reload(self) -> CommandResult:
        """Gracefully reload; existing connections drain."""
        ...


@runtime_checkable
class ContainerRuntime(Protocol):
    """Start, stop and inspect containers by name."""

    def is_running(self, name: str) -> bool: ...

    def start(self, name: str) -> None: ...

    def stop(self, name: str) -> None: ...

    def remove(self, name: str) -> None: ...

    def exposed_ports(self, name: str) -> list[int]:
        """Container-side ports a container exposes or publishes."""
        ...

    def is_on_network(self, name: str, network: str) -> bool: ...

    def compose_up(self, compose_file: Path, project: str, cwd: Path) -> CommandResult:
        """Build and start every service of a compose project."""
        ...

    def compose_down(self, compose_file: Path, project: str, cwd: Path) -> CommandResult:
        """Stop and remove every container of a compose project."""
        ...


@runtime_checkable
class CertificateProvider(Protocol):
    """Ensures a valid TLS certificate exists for a domain.

    Idempotent: returns the cached status when the certificate is not near
    expiry.
    """

    def ensure(self, domain: str) -> CertificateStatus: ...
