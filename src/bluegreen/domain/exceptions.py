"""Domain exceptions for the blue/green deployment orchestrator.

All domain-specific exceptions inherit from ``BlueGreenError`` so callers can
catch the full family with a single ``except`` clause when needed.  The five
deployment failure kinds (generation, validation, infrastructure, health and
switch) each map to a distinct recovery policy in the orchestrator.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any


class BlueGreenError(Exception):
    """Base exception for all blue/green deployment errors."""

    def __init__(self, message: str = "", details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = details or {}


class RegistryError(BlueGreenError):
    """Raised when a service registry document is missing or malformed."""

    def __init__(
        self,
        message: str = "Invalid service registry",
        service: str = "",
        path: Path | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.service = service
        self.path = path


class StateError(BlueGreenError):
    """Raised when a deployment state document cannot be read or written."""

    def __init__(
        self,
        message: str = "Invalid deployment state",
        service: str = "",
        path: Path | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.service = service
        self.path = path


class GenerationError(BlueGreenError):
    """Raised when no upstream group could be produced for a service.

    Signals a mis-configured registry.  Non-fatal to the running proxy, fatal
    to the deployment run that needed the configuration.
    """

    def __init__(
        self,
        message: str = "No upstream groups generated",
        service: str = "",
        domain: str = "",
        color: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.service = service
        self.domain = domain
        self.color = color


class ValidationRejection(BlueGreenError):
    """Raised when a staged artifact fails one of the validation gates.

    The artifact has been quarantined at ``quarantine_path``; the proxy keeps
    serving from its existing promoted set.
    """

    def __init__(
        self,
        message: str = "Configuration rejected",
        domain: str = "",
        color: str = "",
        gate: str = "",
        quarantine_path: Path | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.domain = domain
        self.color = color
        self.gate = gate
        self.quarantine_path = quarantine_path


class InfrastructureFailure(BlueGreenError):
    """Raised when a shared dependency is unavailable and cannot be started."""

    def __init__(
        self,
        message: str = "Shared infrastructure unavailable",
        service: str = "",
        missing: tuple[str, ...] = (),
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.service = service
        self.missing = missing


class HealthCheckFailure(BlueGreenError):
    """Raised when a color fails readiness or ongoing monitoring."""

    def __init__(
        self,
        message: str = "Health check failed",
        service: str = "",
        color: str = "",
        failures: int = 0,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.service = service
        self.color = color
        self.failures = failures


class SwitchFailure(BlueGreenError):
    """Raised when traffic cannot be switched; the previous color stays live."""

    def __init__(
        self,
        message: str = "Traffic switch failed",
        domain: str = "",
        color: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.domain = domain
        self.color = color


class LockTimeout(BlueGreenError):
    """Raised when a per-domain deployment lock cannot be acquired in time."""

    def __init__(
        self,
        message: str = "Timed out waiting for deployment lock",
        domain: str = "",
        timeout: float = 0.0,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.domain = domain
        self.timeout = timeout


class DeploymentCancelled(BlueGreenError):
    """Raised when an operator abort interrupts a running phase."""

    def __init__(
        self,
        message: str = "Deployment cancelled",
        phase: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.phase = phase
