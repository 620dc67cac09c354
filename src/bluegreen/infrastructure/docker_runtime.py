"""Docker-backed implementations of the container runtime and proxy controller.

Containers are inspected and controlled through the ``docker`` SDK.  Compose
projects (one per color) are brought up and down with the ``docker compose``
CLI, since the SDK has no compose support.  The proxy controller runs
``nginx -t`` / ``nginx -s reload`` inside the proxy container.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import docker
from docker.errors import APIError, DockerException, NotFound

from bluegreen.domain.exceptions import InfrastructureFailure
from bluegreen.infrastructure.collaborators import CommandResult
from bluegreen.infrastructure.config import ProxyConfig

logger = logging.getLogger(__name__)

COMPOSE_TIMEOUT = 900.0


# ===================================================================== #
#  Container runtime                                                     #
# ===================================================================== #

class DockerRuntime:
    """:class:`~bluegreen.infrastructure.collaborators.ContainerRuntime` on Docker.

    Parameters
    ----------
    client:
        A ``docker.DockerClient``.  Created from the environment on first use
        when omitted.
    compose_command:
        The compose CLI invocation, ``docker compose`` by default.
    """

    def __init__(
        self,
        client: docker.DockerClient | None = None,
        compose_command: Sequence[str] = ("docker", "compose"),
    ) -> None:
        self._client = client
        self._compose = tuple(compose_command)

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    def _get(self, name: str) -> Any | None:
        try:
            return self.client.containers.get(name)
        except NotFound:
            return None
        except DockerException as exc:
            raise InfrastructureFailure(
                f"Docker daemon error inspecting {name}: {exc}",
                details={"container": name},
            ) from exc

    # -- inspection ---------------------------------------------------------

    def is_running(self, name: str) -> bool:
        container = self._get(name)
        return container is not None and container.status == "running"

    def exposed_ports(self, name: str) -> list[int]:
        container = self._get(name)
        if container is None:
            return []
        attrs = container.attrs
        keys: list[str] = list((attrs.get("NetworkSettings") or {}).get("Ports") or {})
        keys += list((attrs.get("Config") or {}).get("ExposedPorts") or {})
        ports: list[int] = []
        for key in keys:
            number = key.split("/", 1)[0]
            if number.isdigit() and int(number) not in ports:
                ports.append(int(number))
        return ports

    def is_on_network(self, name: str, network: str) -> bool:
        container = self._get(name)
        if container is None:
            return False
        networks = (container.attrs.get("NetworkSettings") or {}).get("Networks") or {}
        return network in networks

    # -- control ------------------------------------------------------------

    def start(self, name: str) -> None:
        container = self._get(name)
        if container is None:
            raise InfrastructureFailure(f"Container {name} does not exist", missing=(name,))
        if container.status != "running":
            logger.info("Starting container %s", name)
            try:
                container.start()
            except APIError as exc:
                raise InfrastructureFailure(f"Could not start {name}: {exc}", missing=(name,)) from exc

    def stop(self, name: str) -> None:
        container = self._get(name)
        if container is not None and container.status == "running":
            logger.info("Stopping container %s", name)
            try:
                container.stop(timeout=30)
            except APIError as exc:
                logger.warning("Could not stop container %s: %s", name, exc)

    def remove(self, name: str) -> None:
        container = self._get(name)
        if container is not None:
            logger.info("Removing container %s", name)
            try:
                container.remove(force=True)
            except APIError as exc:
                logger.warning("Could not remove container %s: %s", name, exc)

    # -- compose ------------------------------------------------------------

    def _run_compose(self, args: Sequence[str], cwd: Path) -> CommandResult:
        cmd = [*self._compose, *args]
        logger.debug("Running %s in %s", " ".join(cmd), cwd)
        try:
            proc = subprocess.run(
                cmd,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=COMPOSE_TIMEOUT,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            return CommandResult(124, f"timed out after {exc.timeout}s")
        except FileNotFoundError as exc:
            return CommandResult(127, str(exc))
        return CommandResult(proc.returncode, (proc.stdout or "") + (proc.stderr or ""))

    def compose_up(self, compose_file: Path, project: str, cwd: Path) -> CommandResult:
        return self._run_compose(
            ["-f", str(compose_file), "-p", project, "up", "-d", "--build"], cwd
        )

    def compose_down(self, compose_file: Path, project: str, cwd: Path) -> CommandResult:
        return self._run_compose(["-f", str(compose_file), "-p", project, "down"], cwd)


# ===================================================================== #
#  Proxy controller                                                      #
# ===================================================================== #

class DockerProxyController:
    """Controls nginx running inside a container via ``docker exec``."""

    def __init__(self, runtime: DockerRuntime, config: ProxyConfig | None = None) -> None:
        self._runtime = runtime
        self._config = config or ProxyConfig()

    def is_reachable(self) -> bool:
        try:
            return self._runtime.is_running(self._config.container_name)
        except InfrastructureFailure as exc:
            logger.warning("Docker unavailable while probing proxy: %s", exc)
            return False

    def _exec(self, command: Sequence[str]) -> CommandResult:
        try:
            container = self._runtime.client.containers.get(self._config.container_name)
            exit_code, output = container.exec_run(list(command))
        except NotFound:
            return CommandResult(1, f"proxy container {self._config.container_name} not found")
        except DockerException as exc:
            return CommandResult(1, str(exc))
        text = output.decode("utf-8", "replace") if isinstance(output, bytes) else str(output)
        return CommandResult(exit_code or 0, text)

    def test_config(self) -> CommandResult:
        return self._exec(self._config.test_command)

    def reload(self) -> CommandResult:
        return self._exec(self._config.reload_command)
