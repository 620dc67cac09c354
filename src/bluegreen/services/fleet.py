"""Fleet-wide deployment with tiered failure propagation.

Services are deployed tier by tier:

1. **infrastructure** (the proxy itself, the shared database server): a
   failure aborts the whole fleet run;
2. **microservices** (``*-microservice``, shared by applications): a failure
   aborts the fleet run;
3. **applications**: a failure is recorded and the remaining applications
   are still deployed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from bluegreen.domain.enums import ServiceTier
from bluegreen.domain.exceptions import BlueGreenError, DeploymentCancelled

if TYPE_CHECKING:
    from bluegreen.services.orchestrator import DeploymentOrchestrator, DeploymentResult

logger = logging.getLogger(__name__)

INFRASTRUCTURE_SERVICES = frozenset({"nginx-microservice", "database-server", "nginx"})
MICROSERVICE_SUFFIX = "-microservice"

_TIER_ORDER = (ServiceTier.INFRASTRUCTURE, ServiceTier.MICROSERVICE, ServiceTier.APPLICATION)


def classify_tier(name: str) -> ServiceTier:
    """Tier of a service or container name."""
    if name in INFRASTRUCTURE_SERVICES:
        return ServiceTier.INFRASTRUCTURE
    if name.endswith(MICROSERVICE_SUFFIX):
        return ServiceTier.MICROSERVICE
    return ServiceTier.APPLICATION


@dataclass
class FleetReport:
    """Outcome of a fleet run.

    Attributes
    ----------
    results:
        Per-service results of the deployments that completed (including
        ones that rolled back).
    failures:
        Per-service error messages of deployments that raised.
    aborted_at:
        Service whose fatal-tier failure stopped the run, if any.
    """

    results: dict[str, DeploymentResult] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)
    aborted_at: str | None = None

    @property
    def success(self) -> bool:
        return (
            self.aborted_at is None
            and not self.failures
            and all(r.success for r in self.results.values())
        )


class FleetRunner:
    """Deploys many services through one orchestrator, tier by tier."""

    def __init__(self, orchestrator: DeploymentOrchestrator) -> None:
        self._orchestrator = orchestrator

    @staticmethod
    def order(services: Iterable[str]) -> list[str]:
        """*services* sorted by tier, keeping the given order within a tier."""
        names = list(services)
        return [n for tier in _TIER_ORDER for n in names if classify_tier(n) is tier]

    def deploy_all(self, services: Iterable[str]) -> FleetReport:
        """Deploy every service.

        Raises
        ------
        BlueGreenError
            Re-raised from an infrastructure or microservice deployment; the
            report built so far is attached as ``details["report"]``.
        DeploymentCancelled
            When the run is cancelled, whatever the tier.
        """
        report = FleetReport()
        for name in self.order(services):
            tier = classify_tier(name)
            try:
                report.results[name] = self._orchestrator.deploy(name)
            except DeploymentCancelled:
                report.aborted_at = name
                raise
            except Exception as exc:
                report.failures[name] = str(exc)
                if tier.fatal:
                    report.aborted_at = name
                    logger.error("%s tier service %s failed; aborting fleet run", tier.value, name)
                    if isinstance(exc, BlueGreenError):
                        exc.details["report"] = report
                    raise
                logger.exception("Application %s failed (isolated): %s", name, exc)
        return report
