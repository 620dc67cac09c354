"""Domain layer for the blue/green deployment orchestrator.

Re-exports all public domain types so that consumers can write::

    from bluegreen.domain import Color, DeploymentState, ServiceDescriptor
"""

# -- Enumerations -------------------------------------------------------------
from .enums import (
    ArtifactStage,
    Color,
    ColorStatus,
    DeploymentPhase,
    HealthStatus,
    ServiceTier,
    ValidationGate,
)

# -- Value Objects ------------------------------------------------------------
from .values import (
    ComponentSpec,
    ConfigArtifact,
    CustomRoute,
    GateResult,
    HealthResult,
    HttpsCheck,
    ServiceDescriptor,
    ServiceHealth,
    ValidationReport,
)

# -- Entities -----------------------------------------------------------------
from .entities import ColorRecord, DeploymentState, LastDeployment

# -- Events -------------------------------------------------------------------
from .events import (
    ArtifactPromoted,
    ArtifactRejected,
    DomainEvent,
    HealthChecked,
    PhaseChanged,
    RollbackTriggered,
    TrafficSwitched,
)

# -- Exceptions ---------------------------------------------------------------
from .exceptions import (
    BlueGreenError,
    DeploymentCancelled,
    GenerationError,
    HealthCheckFailure,
    InfrastructureFailure,
    LockTimeout,
    RegistryError,
    StateError,
    SwitchFailure,
    ValidationRejection,
)

__all__ = [
    "ArtifactStage",
    "Color",
    "ColorStatus",
    "DeploymentPhase",
    "HealthStatus",
    "ServiceTier",
    "ValidationGate",
    "ComponentSpec",
    "ConfigArtifact",
    "CustomRoute",
    "GateResult",
    "HealthResult",
    "HttpsCheck",
    "ServiceDescriptor",
    "ServiceHealth",
    "ValidationReport",
    "ColorRecord",
    "DeploymentState",
    "LastDeployment",
    "ArtifactPromoted",
    "ArtifactRejected",
    "DomainEvent",
    "HealthChecked",
    "PhaseChanged",
    "RollbackTriggered",
    "TrafficSwitched",
    "BlueGreenError",
    "DeploymentCancelled",
    "GenerationError",
    "HealthCheckFailure",
    "InfrastructureFailure",
    "LockTimeout",
    "RegistryError",
    "StateError",
    "SwitchFailure",
    "ValidationRejection",
]
