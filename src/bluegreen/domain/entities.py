"""Domain entities for the blue/green deployment orchestrator.

``DeploymentState`` is the one mutable record in the domain: it tracks which
color of a service (or of one domain of a multi-domain service) receives
traffic.  Its transition methods are the only sanctioned way to change it and
are called by the orchestrator and the traffic switch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .enums import Color, ColorStatus


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with a ``Z`` suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# ---------------------------------------------------------------------------
# Per-color record
# ---------------------------------------------------------------------------

@dataclass
class ColorRecord:
    """Status of one color."""

    status: ColorStatus = ColorStatus.STOPPED
    deployed_at: str | None = None
    version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "deployed_at": self.deployed_at,
            "version": self.version,
        }


@dataclass
class LastDeployment:
    """Outcome of the most recent switch or rollback."""

    color: Color = Color.BLUE
    timestamp: str | None = None
    success: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "color": self.color.value,
            "timestamp": self.timestamp,
            "success": self.success,
        }


# ---------------------------------------------------------------------------
# DeploymentState
# ---------------------------------------------------------------------------

@dataclass
class DeploymentState:
    """Active-color record for a service or a (service, domain) pair.

    A fresh state has blue active and running and green stopped.  Exactly one
    color is active; the other is ``backup``, ``ready`` or ``stopped``.
    """

    active_color: Color = Color.BLUE
    blue: ColorRecord = field(default_factory=lambda: ColorRecord(ColorStatus.RUNNING))
    green: ColorRecord = field(default_factory=ColorRecord)
    last_deployment: LastDeployment = field(default_factory=LastDeployment)

    # -- accessors ------------------------------------------------------------

    @property
    def inactive_color(self) -> Color:
        return self.active_color.other

    def record(self, color: Color) -> ColorRecord:
        return self.blue if color is Color.BLUE else self.green

    def status_of(self, color: Color) -> ColorStatus:
        return self.record(color).status

    def validate(self) -> None:
        """Raise ``ValueError`` if both colors claim to serve traffic."""
        inactive = self.record(self.inactive_color).status
        if inactive is ColorStatus.RUNNING:
            raise ValueError(
                f"inactive color {self.inactive_color.value} is marked running "
                f"while {self.active_color.value} is active"
            )

    # -- lifecycle transitions ------------------------------------------------

    def mark_prepared(self, color: Color, version: str | None = None) -> None:
        """*color* has been started and passed its readiness checks."""
        if color is self.active_color:
            raise ValueError(f"cannot prepare the active color {color.value}")
        rec = self.record(color)
        rec.status = ColorStatus.READY
        rec.deployed_at = utc_timestamp()
        if version is not None:
            rec.version = version

    def mark_switched(self, color: Color) -> None:
        """Traffic now flows to *color*; the previous color becomes backup."""
        previous = color.other
        self.active_color = color
        self.record(color).status = ColorStatus.RUNNING
        self.record(previous).status = ColorStatus.BACKUP
        self.last_deployment = LastDeployment(color, utc_timestamp(), True)

    def mark_rolled_back(self, failed: Color) -> None:
        """Traffic returned to the color before *failed*, which is stopped."""
        previous = failed.other
        self.active_color = previous
        self.record(previous).status = ColorStatus.RUNNING
        self.record(failed).status = ColorStatus.STOPPED
        self.last_deployment = LastDeployment(failed, utc_timestamp(), False)

    def mark_cleaned(self, color: Color) -> None:
        """The inactive *color* has been stopped and removed."""
        if color is self.active_color:
            raise ValueError(f"cannot clean up the active color {color.value}")
        rec = self.record(color)
        rec.status = ColorStatus.STOPPED
        rec.deployed_at = None
        rec.version = None

    # -- serialization ----------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "active_color": self.active_color.value,
            "blue": self.blue.to_dict(),
            "green": self.green.to_dict(),
            "last_deployment": self.last_deployment.to_dict(),
        }
