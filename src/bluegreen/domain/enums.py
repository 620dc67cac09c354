"""Domain enumerations for the blue/green deployment orchestrator.

These enums capture the fixed vocabularies used across the domain layer:
colors and their statuses, artifact lifecycle stages, orchestrator phases,
service tiers, validation gates, and health outcomes.
"""

from enum import Enum


class Color(Enum):
    """One of the two parallel environments of a service."""

    BLUE = "blue"
    GREEN = "green"

    @property
    def other(self) -> "Color":
        """The opposite color."""
        return Color.GREEN if self is Color.BLUE else Color.BLUE

    @classmethod
    def parse(cls, value: "str | Color") -> "Color":
        """Accept either a ``Color`` or its (case-insensitive) string value."""
        if isinstance(value, Color):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"invalid color {value!r}, expected 'blue' or 'green'") from None


class ColorStatus(Enum):
    """Lifecycle status of one color of a service."""

    STOPPED = "stopped"
    READY = "ready"  # prepared and healthy, not yet receiving traffic
    RUNNING = "running"  # receiving traffic
    BACKUP = "backup"  # previous color, kept warm for rollback


class ArtifactStage(Enum):
    """Lifecycle stage of a generated proxy configuration artifact."""

    STAGED = "staged"
    PROMOTED = "promoted"
    REJECTED = "rejected"


class DeploymentPhase(Enum):
    """Finite-state-machine states of a single deployment run."""

    IDLE = "idle"
    INFRA_CHECKED = "infra_checked"
    PREPARING = "preparing"
    READY = "ready"
    SWITCHED = "switched"
    MONITORING = "monitoring"
    CLEANED = "cleaned"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (DeploymentPhase.CLEANED, DeploymentPhase.ROLLED_BACK, DeploymentPhase.FAILED)


class ServiceTier(Enum):
    """Failure-propagation tier of a service."""

    INFRASTRUCTURE = "infrastructure"  # fatal
    MICROSERVICE = "microservice"  # shared, fatal
    APPLICATION = "application"  # isolated

    @property
    def fatal(self) -> bool:
        return self is not ServiceTier.APPLICATION


class ValidationGate(Enum):
    """The ordered gates of the validation pipeline."""

    STRUCTURAL = "structural"
    SYNTAX = "syntax"
    COMPATIBILITY = "compatibility"


class HealthStatus(Enum):
    """Outcome of a health probe."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
