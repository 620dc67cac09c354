"""Wiring of a :class:`DeploymentOrchestrator` from an ``OrchestratorConfig``.

Every collaborator can be injected; omitted ones are the production
implementations (Docker SDK runtime, nginx inside its container, certbot,
a plain ``httpx.Client``).

Example
-------
::

    config = OrchestratorConfig.from_env()
    orchestrator = build_orchestrator(config)
    orchestrator.deploy("shop")

Tests inject fakes::

    orchestrator = build_orchestrator(
        config,
        runtime=FakeRuntime(...),
        proxy=FakeProxy(),
        client=httpx.Client(transport=health_transport({...})),
    )
"""

from __future__ import annotations

from pathlib import Path

import httpx

from bluegreen.infrastructure.artifacts import ArtifactStore
from bluegreen.infrastructure.certificates import CertbotProvider
from bluegreen.infrastructure.collaborators import (
    CertificateProvider,
    ContainerRuntime,
    ProxyController,
)
from bluegreen.infrastructure.config import OrchestratorConfig
from bluegreen.infrastructure.docker_runtime import DockerProxyController, DockerRuntime
from bluegreen.infrastructure.event_bus import EventBus
from bluegreen.infrastructure.locks import LockManager, ReloadLock
from bluegreen.infrastructure.registry_store import RegistryStore
from bluegreen.infrastructure.state_store import StateStore
from bluegreen.services.cancellation import CancellationToken
from bluegreen.services.config_builder import ConfigBuilder
from bluegreen.services.config_generator import ConfigGenerator
from bluegreen.services.health import HealthMonitor
from bluegreen.services.orchestrator import DeploymentOrchestrator
from bluegreen.services.port_resolver import PortResolver
from bluegreen.services.traffic_switch import TrafficSwitch
from bluegreen.services.validation import ValidationPipeline

RELOAD_LOCK_NAME = "nginx-reload.lock"


def build_orchestrator(
    config: OrchestratorConfig,
    runtime: ContainerRuntime | None = None,
    proxy: ProxyController | None = None,
    client: httpx.Client | None = None,
    certificates: CertificateProvider | None = None,
    bus: EventBus | None = None,
    token: CancellationToken | None = None,
) -> DeploymentOrchestrator:
    """Assemble the full component graph for *config*."""
    config.validate()
    paths = config.paths

    if runtime is None:
        runtime = DockerRuntime()
    if proxy is None:
        if not isinstance(runtime, DockerRuntime):
            raise ValueError("a proxy controller is required with a non-Docker runtime")
        proxy = DockerProxyController(runtime, config.proxy)
    if certificates is None and config.cert_dir is not None:
        certificates = CertbotProvider(
            Path(config.cert_dir),
            email=config.certbot_email,
            renewal_days=config.cert_renewal_days,
        )
    token = token or CancellationToken()

    artifacts = ArtifactStore(paths.conf_dir)
    artifacts.ensure_directories()
    reload_lock = ReloadLock(paths.lock_dir / RELOAD_LOCK_NAME, timeout=config.lock_timeout)
    ports = PortResolver(runtime)

    pipeline = ValidationPipeline(artifacts, proxy, reload_lock, bus)
    generator = ConfigGenerator(ConfigBuilder(ports), artifacts, pipeline, paths.template)
    switch = TrafficSwitch(
        artifacts, proxy, reload_lock, bus, latency_target=config.switch_latency_target
    )
    health = HealthMonitor(
        client=client,
        port_resolver=ports,
        runtime=runtime,
        backoff=config.health_backoff,
        token=token,
    )
    return DeploymentOrchestrator(
        registry=RegistryStore(paths.registry_dir),
        states=StateStore(paths.state_dir),
        artifacts=artifacts,
        generator=generator,
        switch=switch,
        health=health,
        runtime=runtime,
        locks=LockManager(paths.lock_dir, config.lock_timeout),
        monitor=config.monitor,
        certificates=certificates,
        bus=bus,
        token=token,
    )
