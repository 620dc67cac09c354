"""Value objects for the blue/green deployment orchestrator.

All types here are frozen dataclasses -- immutable, compared by value.  They
describe services as declared in the registry, configuration artifacts on
disk, and the outcome of health probes and validation runs.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .enums import ArtifactStage, Color, HealthStatus, ValidationGate

# ---------------------------------------------------------------------------
# ComponentSpec
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ComponentSpec:
    """One deployable component of a service (frontend, backend, ...).

    The running container for a color is named ``{container_name_base}-{color}``.
    ``container_port`` is optional; when absent the port resolver works it out
    from the compose manifest, the service ``.env`` or a running container.
    """

    key: str
    container_name_base: str
    container_port: int | None = None
    health_endpoint: str = "/health"
    health_timeout: float = 5.0
    health_retries: int = 3
    startup_time: float = 5.0

    def __post_init__(self) -> None:
        if not self.container_name_base:
            raise ValueError(f"component {self.key!r} has no container_name_base")
        if self.container_port is not None and not (0 < self.container_port < 65536):
            raise ValueError(
                f"container_port must be in [1, 65535], got {self.container_port}"
            )
        if self.health_timeout <= 0:
            raise ValueError(f"health_timeout must be > 0, got {self.health_timeout}")
        if self.health_retries < 1:
            raise ValueError(f"health_retries must be >= 1, got {self.health_retries}")
        if self.startup_time < 0:
            raise ValueError(f"startup_time must be >= 0, got {self.startup_time}")

    def container_name(self, color: Color) -> str:
        return f"{self.container_name_base}-{color.value}"


# ---------------------------------------------------------------------------
# Routes and public checks
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CustomRoute:
    """An operator-declared location forwarded to one component.

    ``path`` is matched by prefix; custom routes are always rendered ahead of
    the generic ``/api/`` rule so the proxy prefers them.
    """

    path: str
    component: str
    upstream_path: str | None = None
    rate_limit_burst: int | None = None

    def __post_init__(self) -> None:
        if not self.path.startswith("/"):
            raise ValueError(f"route path must start with '/', got {self.path!r}")


@dataclass(frozen=True)
class HttpsCheck:
    """Optional public-URL probe run after the internal health checks."""

    enabled: bool = True
    endpoint: str = "/"
    timeout: float = 10.0
    retries: int = 3


# ---------------------------------------------------------------------------
# ServiceDescriptor
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ServiceDescriptor:
    """Immutable description of one network-facing service.

    Built by the registry store from a validated registry document.  Every
    component referenced from ``domains`` is guaranteed to exist in
    ``components``.
    """

    name: str
    service_path: Path
    domain: str
    components: Mapping[str, ComponentSpec]
    domains: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    production_path: Path | None = None
    shared_services: tuple[str, ...] = ()
    network: str = "nginx-network"
    docker_compose_file: str | None = None
    docker_project_base: str | None = None
    custom_routes: Mapping[str, tuple[CustomRoute, ...]] = field(default_factory=dict)
    https_check: HttpsCheck = field(default_factory=HttpsCheck)

    def __post_init__(self) -> None:
        if not self.components:
            raise ValueError(f"service {self.name!r} declares no components")
        for domain, keys in self.domains.items():
            missing = [k for k in keys if k not in self.components]
            if missing:
                raise ValueError(
                    f"domain {domain!r} of service {self.name!r} references "
                    f"unknown components: {', '.join(missing)}"
                )

    # -- topology -----------------------------------------------------------

    @property
    def multi_domain(self) -> bool:
        return bool(self.domains)

    def all_domains(self) -> tuple[str, ...]:
        """The primary domain followed by any additional domains."""
        extra = tuple(d for d in self.domains if d != self.domain)
        return (self.domain, *extra)

    def components_for(self, domain: str | None = None) -> tuple[ComponentSpec, ...]:
        """Components exposed on *domain*, or all components when unscoped."""
        if domain is not None and self.domains.get(domain):
            return tuple(self.components[k] for k in self.domains[domain])
        return tuple(self.components.values())

    def routes_for(self, domain: str) -> tuple[CustomRoute, ...]:
        return tuple(self.custom_routes.get(domain, ()))

    # -- filesystem / compose ----------------------------------------------

    @property
    def root(self) -> Path:
        """Production checkout when it exists, otherwise the service path."""
        if self.production_path is not None and self.production_path.is_dir():
            return self.production_path
        return self.service_path

    def compose_file_for(self, color: Color) -> Path:
        """Compose manifest for *color*, falling back to ``docker-compose.yml``."""
        if self.docker_compose_file:
            name = self.docker_compose_file.replace("{color}", color.value)
            name = name.replace("${COLOR}", color.value)
        else:
            name = f"docker-compose.{self.name}.{color.value}.yml"
        candidate = self.root / name
        if candidate.is_file():
            return candidate
        return self.root / "docker-compose.yml"

    def project_name(self, color: Color) -> str:
        base = self.docker_project_base or self.name
        return f"{base}_{color.value}"


# ---------------------------------------------------------------------------
# ConfigArtifact
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ConfigArtifact:
    """A generated proxy configuration for one (domain, color)."""

    domain: str
    color: Color
    stage: ArtifactStage
    path: Path
    rejected_at: str | None = None

    @property
    def filename(self) -> str:
        return f"{self.domain}.{self.color.value}.conf"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GateResult:
    """Outcome of one validation gate."""

    gate: ValidationGate
    passed: bool
    message: str = ""
    skipped: bool = False


@dataclass(frozen=True)
class ValidationReport:
    """Ordered gate results for one staged artifact.

    Gates short-circuit, so ``results`` stops at the first failure.
    """

    domain: str
    color: Color
    results: tuple[GateResult, ...] = ()

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.results)

    @property
    def failed_gate(self) -> GateResult | None:
        for r in self.results:
            if not r.passed:
                return r
        return None


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HealthResult:
    """Result of probing one component."""

    component: str
    address: str
    status: HealthStatus
    attempts: int = 0
    detail: str = ""
    timestamp: float = field(default_factory=time.time)

    @property
    def healthy(self) -> bool:
        return self.status is HealthStatus.HEALTHY


@dataclass(frozen=True)
class ServiceHealth:
    """Aggregated health of a service color.

    ``status`` follows the aggregation policy that produced it: by default a
    service is healthy when at least one component is healthy; callers may
    require all components instead.
    """

    service: str
    color: Color
    status: HealthStatus
    components: tuple[HealthResult, ...] = ()
    require_all: bool = False

    @property
    def healthy(self) -> bool:
        return self.status is HealthStatus.HEALTHY

    @property
    def unhealthy_components(self) -> tuple[str, ...]:
        return tuple(r.component for r in self.components if not r.healthy)
