"""Infrastructure layer: configuration, stores, locks, events and collaborators."""

from bluegreen.infrastructure.artifacts import ArtifactStore
from bluegreen.infrastructure.collaborators import (
    CertificateProvider,
    CertificateStatus,
    CommandResult,
    ContainerRuntime,
    ProxyController,
)
from bluegreen.infrastructure.config import (
    MonitorConfig,
    OrchestratorConfig,
    PathsConfig,
    ProxyConfig,
    load_config_from_json,
)
from bluegreen.infrastructure.event_bus import EventBus, EventStore
from bluegreen.infrastructure.locks import DomainLock, LockManager, ReloadLock
from bluegreen.infrastructure.registry_store import RegistryStore
from bluegreen.infrastructure.state_store import StateStore

__all__ = [
    "ArtifactStore",
    "CertificateProvider",
    "CertificateStatus",
    "CommandResult",
    "ContainerRuntime",
    "DomainLock",
    "EventBus",
    "EventStore",
    "LockManager",
    "MonitorConfig",
    "OrchestratorConfig",
    "PathsConfig",
    "ProxyConfig",
    "ProxyController",
    "RegistryStore",
    "ReloadLock",
    "StateStore",
    "load_config_from_json",
]
