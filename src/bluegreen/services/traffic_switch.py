"""Traffic switch: repoint a domain's live configuration and reload.

The switch never generates configuration itself; it requires a promoted
artifact for the target (domain, color) and fails closed without one.  The
live pointer is replaced by an atomic rename, then the proxy reloads
gracefully so existing connections drain on the old workers.
"""

from __future__ import annotations

import logging
import time

from bluegreen.domain.enums import Color
from bluegreen.domain.events import TrafficSwitched
from bluegreen.domain.exceptions import SwitchFailure
from bluegreen.infrastructure.artifacts import ArtifactStore
from bluegreen.infrastructure.collaborators import ProxyController
from bluegreen.infrastructure.event_bus import EventBus
from bluegreen.infrastructure.locks import ReloadLock

logger = logging.getLogger(__name__)


class TrafficSwitch:
    """Atomically moves a domain's traffic to a promoted color.

    Parameters
    ----------
    artifacts:
        Artifact store owning the live pointers.
    proxy:
        Live proxy to reload.  When it is not reachable the pointer is still
        switched and the proxy picks it up on its next start.
    reload_lock:
        Process-wide lock shared with the validation pipeline.
    latency_target:
        Switches slower than this many seconds are logged as warnings.
    """

    def __init__(
        self,
        artifacts: ArtifactStore,
        proxy: ProxyController | None = None,
        reload_lock: ReloadLock | None = None,
        bus: EventBus | None = None,
        latency_target: float = 2.0,
    ) -> None:
        self._artifacts = artifacts
        self._proxy = proxy
        self._reload_lock = reload_lock or ReloadLock()
        self._bus = bus
        self._latency_target = latency_target

    def current_color(self, domain: str) -> Color | None:
        return self._artifacts.live_color(domain)

    def switch_to(self, domain: str, color: Color, source_id: str = "") -> bool:
        """Point *domain* at its promoted *color* artifact and reload.

        Raises
        ------
        SwitchFailure
            If no promoted artifact exists or the reload fails.  On reload
            failure the previous pointer is restored.
        """
        if not self._artifacts.has_promoted(domain, color):
            raise SwitchFailure(
                f"No promoted {color.value} config for {domain}; refusing to switch",
                domain=domain,
                color=color.value,
            )

        started = time.monotonic()
        previous = self._artifacts.live_color(domain)
        try:
            self._artifacts.point_live(domain, color)
        except OSError as exc:
            raise SwitchFailure(
                f"Could not repoint {domain} to {color.value}: {exc}",
                domain=domain,
                color=color.value,
            ) from exc

        try:
            self._reload()
        except SwitchFailure:
            if previous is not None and previous is not color:
                logger.error("Reload failed; restoring %s pointer for %s", previous.value, domain)
                self._artifacts.point_live(domain, previous)
            raise

        elapsed = time.monotonic() - started
        if elapsed > self._latency_target:
            logger.warning(
                "Switch of %s to %s took %.2fs (target %.1fs)",
                domain, color.value, elapsed, self._latency_target,
            )
        else:
            logger.info("Switched %s to %s in %.2fs", domain, color.value, elapsed)
        if self._bus is not None:
            self._bus.publish(
                TrafficSwitched(source_id=source_id, domain=domain, color=color, elapsed=elapsed)
            )
        return True

    def _reload(self) -> None:
        if self._proxy is None or not self._proxy.is_reachable():
            logger.warning("Proxy not reachable; new pointer takes effect on next start")
            return
        with self._reload_lock:
            result = self._proxy.reload()
        if not result.ok:
            raise SwitchFailure(f"Proxy reload failed: {result.output.strip()}")
