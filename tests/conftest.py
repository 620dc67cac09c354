"""Shared fixtures for the bluegreen test suite."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import httpx
import pytest

from bluegreen.infrastructure.artifacts import ArtifactStore
from bluegreen.infrastructure.config import MonitorConfig, OrchestratorConfig, PathsConfig
from bluegreen.infrastructure.event_bus import EventBus, EventStore
from bluegreen.infrastructure.registry_store import RegistryStore
from bluegreen.infrastructure.state_store import StateStore
from bluegreen.services.factory import build_orchestrator
from bluegreen.services.orchestrator import DeploymentOrchestrator
from bluegreen.testing import FakeProxy, FakeRuntime, health_transport
from tests.helpers.registry import SHOP_CONTAINERS, make_service_dir, shop_document, write_registry

# ---------------------------------------------------------------------------
# Filesystem fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def paths(tmp_path: Path) -> PathsConfig:
    """Default directory layout rooted at ``tmp_path``."""
    return PathsConfig.under(tmp_path / "bluegreen")


@pytest.fixture
def service_path(tmp_path: Path) -> Path:
    return make_service_dir(tmp_path)


@pytest.fixture
def shop_registry(paths: PathsConfig, service_path: Path) -> Path:
    return write_registry(paths.registry_dir, "shop", shop_document(service_path))


@pytest.fixture
def registry(paths: PathsConfig) -> RegistryStore:
    return RegistryStore(paths.registry_dir)


@pytest.fixture
def states(paths: PathsConfig) -> StateStore:
    return StateStore(paths.state_dir)


@pytest.fixture
def artifacts(paths: PathsConfig) -> ArtifactStore:
    store = ArtifactStore(paths.conf_dir)
    store.ensure_directories()
    return store


# ---------------------------------------------------------------------------
# Collaborator fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def runtime() -> FakeRuntime:
    """Blue shop containers and the proxy running; compose projects known."""
    return FakeRuntime(
        running=["nginx-microservice", *SHOP_CONTAINERS["shop_blue"]],
        projects=SHOP_CONTAINERS,
    )


@pytest.fixture
def proxy() -> FakeProxy:
    return FakeProxy()


@pytest.fixture
def statuses() -> dict[str, Any]:
    """Health status per host; mutate it to change what probes see."""
    return {
        "shop-frontend-blue": 200,
        "shop-backend-blue": 200,
        "shop-frontend-green": 200,
        "shop-backend-green": 200,
    }


@pytest.fixture
def client(statuses: dict[str, Any]) -> Iterator[httpx.Client]:
    with httpx.Client(transport=health_transport(statuses)) as c:
        yield c


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def event_store(bus: EventBus) -> EventStore:
    store = EventStore()
    bus.subscribe_all(store.append)
    return store


@pytest.fixture
def config(paths: PathsConfig) -> OrchestratorConfig:
    """Fast monitoring: three polls, budget of two consecutive failures."""
    return OrchestratorConfig(
        paths=paths,
        monitor=MonitorConfig(interval=0.01, window=0.03, failure_budget=2),
        lock_timeout=2.0,
        health_backoff=0.0,
    )


@pytest.fixture
def orchestrator(
    config: OrchestratorConfig,
    shop_registry: Path,
    runtime: FakeRuntime,
    proxy: FakeProxy,
    client: httpx.Client,
    bus: EventBus,
) -> DeploymentOrchestrator:
    return build_orchestrator(config, runtime=runtime, proxy=proxy, client=client, bus=bus)
