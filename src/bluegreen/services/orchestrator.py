"""Deployment orchestrator: the blue/green state machine.

A deployment run walks::

    IDLE -> INFRA_CHECKED -> PREPARING(inactive) -> READY -> SWITCHED
         -> MONITORING -> CLEANED | ROLLED_BACK

and is a sequential pipeline of blocking phases, each bounded by its own
timeout (startup delay, health timeout x retries, monitoring window) and
interruptible through a :class:`CancellationToken`.

The individual commands (``prepare``, ``switch``, ``rollback``, ``cleanup``,
``healthcheck``) are exposed separately and are idempotent: re-running one on
an already settled state is a no-op.

All domains of a service are locked for the duration of a command, so two
runs touching the same domain's artifacts and live pointer never interleave.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from bluegreen.domain.entities import DeploymentState
from bluegreen.domain.enums import Color, ColorStatus, DeploymentPhase, ServiceTier
from bluegreen.domain.events import HealthChecked, PhaseChanged, RollbackTriggered
from bluegreen.domain.exceptions import (
    BlueGreenError,
    HealthCheckFailure,
    InfrastructureFailure,
    RegistryError,
    SwitchFailure,
)
from bluegreen.domain.values import ConfigArtifact, ServiceDescriptor, ServiceHealth
from bluegreen.infrastructure.artifacts import ArtifactStore
from bluegreen.infrastructure.collaborators import CertificateProvider, ContainerRuntime
from bluegreen.infrastructure.config import MonitorConfig
from bluegreen.infrastructure.event_bus import EventBus
from bluegreen.infrastructure.locks import LockManager
from bluegreen.infrastructure.log_setup import DeploymentLogAdapter
from bluegreen.infrastructure.registry_store import RegistryStore
from bluegreen.infrastructure.state_store import StateStore
from bluegreen.services.cancellation import CancellationToken
from bluegreen.services.config_generator import ConfigGenerator
from bluegreen.services.fleet import classify_tier
from bluegreen.services.health import HealthMonitor
from bluegreen.services.traffic_switch import TrafficSwitch

logger = logging.getLogger(__name__)

INFRASTRUCTURE_COMPOSE = "docker-compose.infrastructure.yml"


# ===================================================================== #
#  Results                                                               #
# ===================================================================== #

@dataclass
class DeploymentResult:
    """Outcome of one orchestrator command.

    Attributes
    ----------
    service:
        Registry name of the service.
    action:
        The command that produced this result.
    phase:
        The phase the run ended in.
    color:
        The color the command acted on.
    success:
        Whether the command reached its goal.  A run that rolled back is
        *not* successful even though the rollback itself worked.
    changed:
        ``False`` when the command found nothing to do.
    message:
        Human-readable summary.
    phases:
        Every phase entered, in order.
    health:
        Last health aggregate observed, if any.
    elapsed_seconds:
        Wall-clock duration.
    """

    service: str
    action: str
    phase: DeploymentPhase = DeploymentPhase.IDLE
    color: Color | None = None
    success: bool = True
    changed: bool = True
    message: str = ""
    phases: list[DeploymentPhase] = field(default_factory=list)
    health: ServiceHealth | None = None
    elapsed_seconds: float = 0.0


@dataclass
class DomainStatus:
    """State of one domain as reported by ``status``."""

    domain: str
    state: DeploymentState
    live_color: Color | None


@dataclass
class _Run:
    """Bookkeeping for one command."""

    descriptor: ServiceDescriptor
    states: dict[str | None, DeploymentState]
    result: DeploymentResult
    log: DeploymentLogAdapter
    started: float = field(default_factory=time.monotonic)

    @property
    def primary(self) -> DeploymentState:
        return next(iter(self.states.values()))


# ===================================================================== #
#  Orchestrator                                                          #
# ===================================================================== #

class DeploymentOrchestrator:
    """Drives blue/green deployments of registered services.

    Parameters
    ----------
    registry / states / artifacts:
        Repositories for descriptors, deployment state and config artifacts.
    generator:
        Ensures promoted configs exist before a switch.
    switch:
        Repoints live pointers and reloads the proxy.
    health:
        Health monitor used for readiness and post-switch monitoring.
    runtime:
        Container runtime starting and stopping compose projects.
    locks:
        Per-domain deployment locks.
    monitor:
        Post-switch monitoring window.
    certificates:
        Optional certificate provider consulted during the infra check.
    bus:
        Optional event bus receiving phase and rollback events.
    token:
        Cancellation token; defaults to the health monitor's.
    """

    def __init__(
        self,
        registry: RegistryStore,
        states: StateStore,
        artifacts: ArtifactStore,
        generator: ConfigGenerator,
        switch: TrafficSwitch,
        health: HealthMonitor,
        runtime: ContainerRuntime,
        locks: LockManager,
        monitor: MonitorConfig | None = None,
        certificates: CertificateProvider | None = None,
        bus: EventBus | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        self._registry = registry
        self._states = states
        self._artifacts = artifacts
        self._generator = generator
        self._switch = switch
        self._health = health
        self._runtime = runtime
        self._locks = locks
        self._monitor_config = monitor or MonitorConfig()
        self._certificates = certificates
        self._bus = bus
        self._token = token or health.token

    @property
    def token(self) -> CancellationToken:
        return self._token

    # -- state helpers -------------------------------------------------------

    @staticmethod
    def _state_keys(descriptor: ServiceDescriptor) -> list[str | None]:
        if descriptor.multi_domain:
            return list(descriptor.all_domains())
        return [None]

    def _load_states(self, descriptor: ServiceDescriptor) -> dict[str | None, DeploymentState]:
        return {
            key: self._states.load(descriptor.name, key)
            for key in self._state_keys(descriptor)
        }

    def _save_states(self, run: _Run) -> None:
        for key, state in run.states.items():
            self._states.save(run.descriptor.name, state, key)

    def _begin(self, service: str, action: str) -> _Run:
        descriptor = self._registry.load(service)
        result = DeploymentResult(service=descriptor.name, action=action)
        log = DeploymentLogAdapter(logger, service=descriptor.name, action=action)
        return _Run(descriptor, self._load_states(descriptor), result, log)

    def _enter(self, run: _Run, phase: DeploymentPhase, color: Color | None = None, message: str = "") -> None:
        previous = run.result.phase
        run.result.phase = phase
        run.result.phases.append(phase)
        run.log.with_context(color=color.value if color else "-").info(
            "%s -> %s%s", previous.value, phase.value, f": {message}" if message else ""
        )
        if self._bus is not None:
            self._bus.publish(
                PhaseChanged(
                    source_id=run.descriptor.name,
                    previous=previous,
                    phase=phase,
                    color=color,
                    message=message,
                )
            )

    def _finish(
        self,
        run: _Run,
        success: bool,
        message: str,
        changed: bool = True,
    ) -> DeploymentResult:
        run.result.success = success
        run.result.changed = changed
        run.result.message = message
        run.result.elapsed_seconds = time.monotonic() - run.started
        level = logging.INFO if success else logging.ERROR
        run.log.log(level, message)
        return run.result

    def _fail(self, run: _Run, exc: Exception) -> None:
        run.result.success = False
        run.result.message = str(exc)
        self._enter(run, DeploymentPhase.FAILED, run.result.color, str(exc))

    # -- phases --------------------------------------------------------------

    def check_infrastructure(self, descriptor: ServiceDescriptor) -> None:
        """Verify shared dependencies run, starting the local fallback if needed.

        Raises
        ------
        InfrastructureFailure
            When a shared service is down and no service-local
            ``docker-compose.infrastructure.yml`` can bring it up.
        """
        missing = [s for s in descriptor.shared_services if not self._runtime.is_running(s)]
        if missing:
            fallback = descriptor.root / INFRASTRUCTURE_COMPOSE
            if not fallback.is_file():
                raise InfrastructureFailure(
                    f"Shared services not running for {descriptor.name}: {', '.join(missing)}",
                    service=descriptor.name,
                    missing=tuple(missing),
                )
            logger.warning(
                "Starting service-local infrastructure for %s (%s)",
                descriptor.name, ", ".join(missing),
            )
            base = descriptor.docker_project_base or descriptor.name
            outcome = self._runtime.compose_up(fallback, f"{base}_infrastructure", descriptor.root)
            missing = [s for s in missing if not self._runtime.is_running(s)]
            if not outcome.ok or missing:
                raise InfrastructureFailure(
                    f"Could not start shared services for {descriptor.name}: "
                    f"{', '.join(missing) or outcome.output.strip()}",
                    service=descriptor.name,
                    missing=tuple(missing),
                    details={"output": outcome.output},
                )

        for shared in descriptor.shared_services:
            if not self._runtime.is_on_network(shared, descriptor.network):
                logger.warning("%s is not attached to network %s", shared, descriptor.network)

        if self._certificates is not None:
            for domain in descriptor.all_domains():
                status = self._certificates.ensure(domain)
                if not status.valid:
                    logger.warning("No valid certificate for %s: %s", domain, status.message)

    def _startup_delay(self, descriptor: ServiceDescriptor) -> float:
        return max(c.startup_time for c in descriptor.components.values())

    def _start_color(self, descriptor: ServiceDescriptor, color: Color) -> None:
        compose_file = descriptor.compose_file_for(color)
        if not compose_file.is_file():
            raise RegistryError(
                f"No compose manifest for {descriptor.name} {color.value} at {compose_file}",
                service=descriptor.name,
                path=compose_file,
            )
        outcome = self._runtime.compose_up(compose_file, descriptor.project_name(color), descriptor.root)
        if not outcome.ok:
            raise HealthCheckFailure(
                f"Failed to start {color.value} containers of {descriptor.name}",
                service=descriptor.name,
                color=color.value,
                details={"output": outcome.output},
            )

    def _check(self, run: _Run, color: Color, phase: DeploymentPhase) -> ServiceHealth:
        health = self._health.check_service_health(run.descriptor, color)
        run.result.health = health
        if self._bus is not None:
            self._bus.publish(HealthChecked(source_id=run.descriptor.name, health=health, phase=phase))
        return health

    def _prepare_color(self, run: _Run, color: Color, version: str | None) -> None:
        descriptor = run.descriptor
        self._enter(run, DeploymentPhase.PREPARING, color)
        self._start_color(descriptor, color)

        delay = self._startup_delay(descriptor)
        run.log.info("Waiting %.1fs for %s to start", delay, color.value)
        if self._token.wait(delay):
            self._token.raise_if_cancelled(DeploymentPhase.PREPARING.value)

        health = self._check(run, color, DeploymentPhase.PREPARING)
        if not health.healthy:
            raise HealthCheckFailure(
                f"{descriptor.name} {color.value} failed readiness checks "
                f"(unhealthy: {', '.join(health.unhealthy_components) or 'all'})",
                service=descriptor.name,
                color=color.value,
                failures=len(health.unhealthy_components),
            )

        for state in run.states.values():
            if state.active_color is not color:
                state.mark_prepared(color, version)
        self._save_states(run)
        self._enter(run, DeploymentPhase.READY, color)

    def _point_all(self, run: _Run, color: Color) -> None:
        """Switch every domain to *color*, undoing earlier domains on failure."""
        descriptor = run.descriptor
        ensured = self._generator.ensure_configs(descriptor)
        missing = [d for d in descriptor.all_domains() if not ensured.get((d, color))]
        if missing:
            raise SwitchFailure(
                f"No valid promoted {color.value} config for {', '.join(missing)}",
                domain=missing[0],
                color=color.value,
            )

        switched: list[tuple[str, Color | None]] = []
        try:
            for domain in descriptor.all_domains():
                before = self._artifacts.live_color(domain)
                self._switch.switch_to(domain, color, source_id=descriptor.name)
                switched.append((domain, before))
        except SwitchFailure:
            for domain, before in reversed(switched):
                if before is not None and before is not color:
                    run.log.warning("Restoring %s to %s", domain, before.value)
                    self._switch.switch_to(domain, before, source_id=descriptor.name)
            raise

    def _switch_color(self, run: _Run, color: Color) -> None:
        self._point_all(run, color)
        for state in run.states.values():
            state.mark_switched(color)
        self._save_states(run)
        self._enter(run, DeploymentPhase.SWITCHED, color)

        for domain in run.descriptor.all_domains():
            self._health.check_public_url(domain, run.descriptor.https_check)

    def _monitor(self, run: _Run, color: Color) -> bool:
        """Poll *color*; ``False`` once consecutive failures exceed the budget."""
        self._enter(run, DeploymentPhase.MONITORING, color)
        consecutive = 0
        for poll in range(1, self._monitor_config.polls + 1):
            if self._token.wait(self._monitor_config.interval):
                self._token.raise_if_cancelled(DeploymentPhase.MONITORING.value)
            health = self._check(run, color, DeploymentPhase.MONITORING)
            if health.healthy:
                consecutive = 0
                continue
            consecutive += 1
            run.log.warning(
                "Monitoring poll %d/%d failed (%d consecutive, budget %d)",
                poll, self._monitor_config.polls, consecutive, self._monitor_config.failure_budget,
            )
            if consecutive > self._monitor_config.failure_budget:
                return False
        return True

    def _ensure_running(self, run: _Run, color: Color) -> None:
        descriptor = run.descriptor
        names = [c.container_name(color) for c in descriptor.components.values()]
        if all(self._runtime.is_running(n) for n in names):
            return
        run.log.warning("Restarting %s containers of %s", color.value, descriptor.name)
        compose_file = descriptor.compose_file_for(color)
        outcome = self._runtime.compose_up(compose_file, descriptor.project_name(color), descriptor.root)
        if not outcome.ok:
            run.log.error("Could not restart %s: %s", color.value, outcome.output.strip())

    def _stop_color(self, run: _Run, color: Color) -> None:
        """Stop *color*'s compose project and any leftover component containers.

        Shared infrastructure is never stopped here.
        """
        descriptor = run.descriptor
        outcome = self._runtime.compose_down(
            descriptor.compose_file_for(color), descriptor.project_name(color), descriptor.root
        )
        if not outcome.ok:
            run.log.warning("compose down for %s failed: %s", color.value, outcome.output.strip())

        protected = set(descriptor.shared_services)
        for component in descriptor.components.values():
            name = component.container_name(color)
            if name in protected or classify_tier(name) is ServiceTier.INFRASTRUCTURE:
                continue
            if self._runtime.is_running(name):
                self._runtime.stop(name)
                self._runtime.remove(name)

    def _rollback(self, run: _Run, failed: Color, reason: str) -> None:
        restored = failed.other
        run.log.warning("Rolling back %s -> %s: %s", failed.value, restored.value, reason)
        if self._bus is not None:
            self._bus.publish(
                RollbackTriggered(
                    source_id=run.descriptor.name,
                    failed_color=failed,
                    restored_color=restored,
                    reason=reason,
                )
            )
        self._ensure_running(run, restored)
        self._point_all(run, restored)
        self._stop_color(run, failed)
        for state in run.states.values():
            state.mark_rolled_back(failed)
        self._save_states(run)
        self._enter(run, DeploymentPhase.ROLLED_BACK, restored, reason)

    def _cleanup(self, run: _Run, color: Color) -> None:
        self._stop_color(run, color)
        for state in run.states.values():
            if state.active_color is not color:
                state.mark_cleaned(color)
        self._save_states(run)
        self._enter(run, DeploymentPhase.CLEANED, color)

    # -- commands ------------------------------------------------------------

    def deploy(self, service: str, version: str | None = None) -> DeploymentResult:
        """Run the full pipeline for *service*.

        Returns a result ending in ``CLEANED`` (success) or ``ROLLED_BACK``
        (monitoring failed; the previous color serves traffic again).

        Raises
        ------
        InfrastructureFailure, HealthCheckFailure, GenerationError, SwitchFailure
            When the run aborts before or at the switch.  The active color is
            untouched in that case.
        """
        run = self._begin(service, "deploy")
        descriptor = run.descriptor
        with self._locks.domains(descriptor.all_domains()):
            run.states = self._load_states(descriptor)
            previous = run.primary.active_color
            target = previous.other
            run.result.color = target
            try:
                self._token.raise_if_cancelled(DeploymentPhase.IDLE.value)
                self.check_infrastructure(descriptor)
                self._enter(run, DeploymentPhase.INFRA_CHECKED)
                self._prepare_color(run, target, version)
                self._switch_color(run, target)
            except Exception as exc:
                self._fail(run, exc)
                raise

            try:
                healthy = self._monitor(run, target)
            except Exception as exc:
                self._rollback(run, target, f"monitoring aborted: {exc}")
                self._finish(run, False, f"Deployment of {descriptor.name} rolled back: {exc}")
                raise

            if not healthy:
                self._rollback(
                    run,
                    target,
                    f"more than {self._monitor_config.failure_budget} consecutive health check failures",
                )
                return self._finish(
                    run, False, f"Deployment of {descriptor.name} rolled back to {previous.value}"
                )

            self._cleanup(run, previous)
            return self._finish(run, True, f"Deployed {descriptor.name} to {target.value}")

    def prepare(
        self, service: str, color: Color | None = None, version: str | None = None
    ) -> DeploymentResult:
        """Start and readiness-check the inactive color."""
        run = self._begin(service, "prepare")
        descriptor = run.descriptor
        with self._locks.domains(descriptor.all_domains()):
            run.states = self._load_states(descriptor)
            target = color or run.primary.inactive_color
            run.result.color = target
            if target is run.primary.active_color:
                return self._finish(
                    run, False, f"{target.value} is the active color of {descriptor.name}", changed=False
                )

            if run.primary.status_of(target) is ColorStatus.READY:
                health = self._check(run, target, DeploymentPhase.READY)
                if health.healthy:
                    return self._finish(
                        run, True, f"{descriptor.name} {target.value} already prepared", changed=False
                    )

            try:
                self.check_infrastructure(descriptor)
                self._enter(run, DeploymentPhase.INFRA_CHECKED)
                self._prepare_color(run, target, version)
            except BlueGreenError as exc:
                self._fail(run, exc)
                raise
            return self._finish(run, True, f"Prepared {descriptor.name} {target.value}")

    def switch(self, service: str, color: Color | None = None) -> DeploymentResult:
        """Move traffic to *color* (default: the prepared inactive color)."""
        run = self._begin(service, "switch")
        descriptor = run.descriptor
        with self._locks.domains(descriptor.all_domains()):
            run.states = self._load_states(descriptor)
            active = run.primary.active_color
            target = color or run.primary.inactive_color
            run.result.color = target

            if target is active or (color is None and run.primary.status_of(target) is not ColorStatus.READY):
                live = {d: self._artifacts.live_color(d) for d in descriptor.all_domains()}
                if all(c is active for c in live.values()):
                    return self._finish(
                        run, True, f"{descriptor.name} already serving {active.value}", changed=False
                    )
                # Repair pointers that drifted from the recorded active color.
                try:
                    self._point_all(run, active)
                except BlueGreenError as exc:
                    self._fail(run, exc)
                    raise
                return self._finish(run, True, f"Repointed {descriptor.name} to {active.value}")

            try:
                self._switch_color(run, target)
            except BlueGreenError as exc:
                self._fail(run, exc)
                raise
            return self._finish(run, True, f"Switched {descriptor.name} to {target.value}")

    def rollback(self, service: str, reason: str = "operator request") -> DeploymentResult:
        """Return traffic to the previous color and stop the current one."""
        run = self._begin(service, "rollback")
        descriptor = run.descriptor
        with self._locks.domains(descriptor.all_domains()):
            run.states = self._load_states(descriptor)
            primary = run.primary
            failed = primary.active_color
            restored = failed.other
            run.result.color = restored

            last = primary.last_deployment
            if (
                not last.success
                and last.color is restored
                and primary.status_of(restored) is ColorStatus.STOPPED
            ):
                return self._finish(
                    run, True, f"{descriptor.name} already rolled back to {failed.value}", changed=False
                )

            # A color that never ran and never served traffic is no rollback target.
            previous = primary.record(restored)
            if (
                previous.status is ColorStatus.STOPPED
                and previous.deployed_at is None
                and last.timestamp is None
            ):
                return self._finish(
                    run,
                    False,
                    f"{descriptor.name} {restored.value} was never deployed; nothing to roll back to",
                    changed=False,
                )

            try:
                self._rollback(run, failed, reason)
            except BlueGreenError as exc:
                self._fail(run, exc)
                raise
            return self._finish(run, True, f"Rolled back {descriptor.name} to {restored.value}")

    def cleanup(self, service: str) -> DeploymentResult:
        """Stop the inactive color."""
        run = self._begin(service, "cleanup")
        descriptor = run.descriptor
        with self._locks.domains(descriptor.all_domains()):
            run.states = self._load_states(descriptor)
            inactive = run.primary.inactive_color
            run.result.color = inactive
            if run.primary.status_of(inactive) is ColorStatus.STOPPED:
                return self._finish(
                    run, True, f"{descriptor.name} {inactive.value} already stopped", changed=False
                )
            self._cleanup(run, inactive)
            return self._finish(run, True, f"Cleaned up {descriptor.name} {inactive.value}")

    def healthcheck(
        self, service: str, color: Color | None = None, require_all: bool = False
    ) -> ServiceHealth:
        """Health of *color* (default: the active color).  Takes no locks."""
        descriptor = self._registry.load(service)
        states = self._load_states(descriptor)
        target = color or next(iter(states.values())).active_color
        health = self._health.check_service_health(descriptor, target, require_all=require_all)
        for domain in descriptor.all_domains():
            self._health.check_public_url(domain, descriptor.https_check)
        return health

    def status(self, service: str) -> list[DomainStatus]:
        descriptor = self._registry.load(service)
        states = self._load_states(descriptor)
        report = []
        for key, state in states.items():
            domain = key or descriptor.domain
            report.append(DomainStatus(domain, state, self._artifacts.live_color(domain)))
        return report

    def services(self) -> list[str]:
        return self._registry.list_services()

    def rejected_artifacts(self, service: str) -> list[ConfigArtifact]:
        """Quarantined artifacts of every domain of *service*, oldest first."""
        descriptor = self._registry.load(service)
        found: list[ConfigArtifact] = []
        for domain in descriptor.all_domains():
            found.extend(self._artifacts.list_rejected(domain))
        return found

    def ensure_configs(self, service: str) -> dict[tuple[str, Color], bool]:
        descriptor = self._registry.load(service)
        with self._locks.domains(descriptor.all_domains()):
            return self._generator.ensure_configs(descriptor)
