"""Domain events for the blue/green deployment orchestrator.

Every event is a frozen dataclass inheriting from ``DomainEvent``.  The
orchestrator, validation pipeline and traffic switch emit events; listeners
(the CLI's console, the event store, tests) react.

All events carry a ``timestamp`` and a ``source_id`` identifying the service
that produced them.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path

from .enums import Color, DeploymentPhase, ValidationGate
from .values import ServiceHealth

# ---------------------------------------------------------------------------
# Base event
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    timestamp: float = field(default_factory=time.time)
    source_id: str = ""


# ---------------------------------------------------------------------------
# Orchestrator events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PhaseChanged(DomainEvent):
    """A deployment run moved to a new phase."""

    previous: DeploymentPhase = DeploymentPhase.IDLE
    phase: DeploymentPhase = DeploymentPhase.IDLE
    color: Color | None = None
    message: str = ""


@dataclass(frozen=True)
class HealthChecked(DomainEvent):
    """A service color was health checked."""

    health: ServiceHealth | None = None
    phase: DeploymentPhase = DeploymentPhase.IDLE


@dataclass(frozen=True)
class RollbackTriggered(DomainEvent):
    """Traffic is being returned to the previous color."""

    failed_color: Color = Color.GREEN
    restored_color: Color = Color.BLUE
    reason: str = ""


# ---------------------------------------------------------------------------
# Artifact events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ArtifactPromoted(DomainEvent):
    """A staged artifact passed validation and was promoted."""

    domain: str = ""
    color: Color = Color.BLUE
    path: Path | None = None


@dataclass(frozen=True)
class ArtifactRejected(DomainEvent):
    """A staged artifact failed a gate and was quarantined."""

    domain: str = ""
    color: Color = Color.BLUE
    gate: ValidationGate = ValidationGate.STRUCTURAL
    reason: str = ""
    path: Path | None = None


@dataclass(frozen=True)
class TrafficSwitched(DomainEvent):
    """A domain's live pointer now resolves to a different color."""

    domain: str = ""
    color: Color = Color.BLUE
    elapsed: float = 0.0
