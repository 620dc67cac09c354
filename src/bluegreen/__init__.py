"""bluegreen: zero-downtime blue/green deployments behind an nginx reverse proxy.

Each service runs as two parallel colors.  A deployment prepares the idle
color, validates and promotes its proxy configuration, swaps the live
pointer with a graceful reload, monitors, and either cleans up the old color
or rolls back to it.
"""

__version__ = "0.1.0"

from bluegreen.services.orchestrator import DeploymentOrchestrator, DeploymentResult
from bluegreen.services.factory import build_orchestrator

__all__ = [
    "DeploymentOrchestrator",
    "DeploymentResult",
    "build_orchestrator",
]
