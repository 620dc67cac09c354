"""Health monitor: bounded HTTP probes against service components.

``check_health`` probes one component: up to ``health_retries`` requests to
``http://<address><health_endpoint>``, each limited by ``health_timeout``,
with a short backoff between attempts.  Any single success counts as
healthy.

``check_service_health`` aggregates the components of a service color.

Aggregation policy
------------------
By default a service color is **healthy when at least one of its components
is healthy**.  A multi-component service that is partially degraded (say a
slow frontend while the backend answers) therefore does not trigger a
rollback.  This also means a completely broken component can be masked by a
healthy sibling; callers that cannot tolerate that pass
``require_all=True``.
"""

from __future__ import annotations

import logging

import httpx
from docker.errors import DockerException

from bluegreen.domain.enums import Color, HealthStatus
from bluegreen.domain.exceptions import InfrastructureFailure
from bluegreen.domain.values import (
    ComponentSpec,
    HealthResult,
    HttpsCheck,
    ServiceDescriptor,
    ServiceHealth,
)
from bluegreen.infrastructure.collaborators import ContainerRuntime
from bluegreen.services.cancellation import CancellationToken
from bluegreen.services.port_resolver import PortResolver

logger = logging.getLogger(__name__)


def _url(address: str, path: str) -> str:
    base = address if "://" in address else f"http://{address}"
    if not path.startswith("/"):
        path = "/" + path
    return base.rstrip("/") + path


class HealthMonitor:
    """Probes component health endpoints over HTTP.

    Parameters
    ----------
    client:
        ``httpx.Client`` used for every request.  Tests pass one built on
        ``httpx.MockTransport``.
    port_resolver:
        Resolves component ports for service-level checks.
    runtime:
        Used to pick the container to probe (colored or uncolored name) and
        to fail fast when none runs.  Optional.
    backoff:
        Seconds to wait between retries.
    token:
        Cancellation token interrupting backoff waits.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        port_resolver: PortResolver | None = None,
        runtime: ContainerRuntime | None = None,
        backoff: float = 1.0,
        token: CancellationToken | None = None,
    ) -> None:
        self._client = client or httpx.Client()
        self._ports = port_resolver or PortResolver(runtime)
        self._runtime = runtime
        self._backoff = backoff
        self._token = token or CancellationToken()

    @property
    def token(self) -> CancellationToken:
        return self._token

    def close(self) -> None:
        self._client.close()

    # -- single component --------------------------------------------------

    def check_health(self, spec: ComponentSpec, address: str) -> HealthResult:
        """Probe *spec*'s health endpoint at *address* (``host:port``)."""
        url = _url(address, spec.health_endpoint)
        detail = ""
        for attempt in range(1, spec.health_retries + 1):
            self._token.raise_if_cancelled("health check")
            try:
                response = self._client.get(url, timeout=spec.health_timeout)
            except httpx.HTTPError as exc:
                detail = f"{type(exc).__name__}: {exc}"
            else:
                if response.status_code < 400:
                    logger.debug("%s healthy on attempt %d", url, attempt)
                    return HealthResult(spec.key, address, HealthStatus.HEALTHY, attempt)
                detail = f"HTTP {response.status_code}"
            logger.debug("%s attempt %d/%d failed: %s", url, attempt, spec.health_retries, detail)
            if attempt < spec.health_retries and self._token.wait(self._backoff):
                self._token.raise_if_cancelled("health check")
        return HealthResult(spec.key, address, HealthStatus.UNHEALTHY, spec.health_retries, detail)

    # -- service aggregate -------------------------------------------------

    def _running(self, name: str) -> bool:
        assert self._runtime is not None
        try:
            return self._runtime.is_running(name)
        except (DockerException, InfrastructureFailure) as exc:
            logger.warning("Could not inspect %s, treating it as not running: %s", name, exc)
            return False

    def _container_for(self, spec: ComponentSpec, color: Color) -> str | None:
        colored = spec.container_name(color)
        if self._runtime is None or self._running(colored):
            return colored
        if self._running(spec.container_name_base):
            return spec.container_name_base
        return None

    def check_service_health(
        self,
        descriptor: ServiceDescriptor,
        color: Color,
        require_all: bool = False,
        domain: str | None = None,
    ) -> ServiceHealth:
        """Aggregate component health of *color* (see module docstring)."""
        results: list[HealthResult] = []
        for spec in descriptor.components_for(domain):
            port = self._ports.resolve(descriptor, spec.key, color)
            if port is None:
                logger.warning("Skipping health check of %s: port unknown", spec.key)
                continue
            container = self._container_for(spec, color)
            if container is None:
                results.append(
                    HealthResult(
                        spec.key,
                        spec.container_name(color),
                        HealthStatus.UNHEALTHY,
                        detail="container not running",
                    )
                )
                continue
            result = self.check_health(spec, f"{container}:{port}")
            level = logging.INFO if result.healthy else logging.WARNING
            logger.log(level, "%s (%s) is %s", spec.key, result.address, result.status.value)
            results.append(result)

        if not results:
            status = HealthStatus.UNHEALTHY
        elif require_all:
            status = HealthStatus.HEALTHY if all(r.healthy for r in results) else HealthStatus.UNHEALTHY
        else:
            status = HealthStatus.HEALTHY if any(r.healthy for r in results) else HealthStatus.UNHEALTHY

        healthy = sum(1 for r in results if r.healthy)
        logger.info(
            "%s %s: %d/%d components healthy -> %s",
            descriptor.name, color.value, healthy, len(results), status.value,
        )
        return ServiceHealth(descriptor.name, color, status, tuple(results), require_all)

    # -- public URL --------------------------------------------------------

    def check_public_url(self, domain: str, check: HttpsCheck) -> bool:
        """Probe ``https://<domain><endpoint>``.  Failure is only a warning."""
        if not check.enabled:
            return True
        url = f"https://{domain}{check.endpoint}"
        for attempt in range(1, check.retries + 1):
            try:
                response = self._client.get(url, timeout=check.timeout)
                if response.status_code < 400:
                    logger.info("Public URL %s is reachable", url)
                    return True
                detail = f"HTTP {response.status_code}"
            except httpx.HTTPError as exc:
                detail = str(exc)
            logger.debug("Public URL %s attempt %d failed: %s", url, attempt, detail)
            if attempt < check.retries and self._token.wait(self._backoff):
                break
        logger.warning("Public URL %s is not reachable (traffic may still be propagating)", url)
        return False
