"""Port resolution for service components.

When a component does not declare ``container_port`` in the registry, its
port is discovered through a fixed cascade:

1. the declared port;
2. the component's entry in the compose manifest (``ports`` then ``expose``);
3. the service ``.env`` file: ``<KEY>_PORT``, ``<BASE>_PORT``,
   ``SERVICE_PORT``, ``PORT``;
4. the ports exposed by a currently running container of the component.

An unresolved port is reported as ``None``; callers skip the component's
upstream group and warn.  A port is never guessed.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values

from bluegreen.domain.enums import Color
from bluegreen.domain.values import ComponentSpec, ServiceDescriptor
from bluegreen.infrastructure.collaborators import ContainerRuntime

logger = logging.getLogger(__name__)

_ENV_DEFAULT_RE = re.compile(r"\$\{[^}:]+:?-([^}]*)\}")


def _env_name(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9]", "_", value).upper()


def parse_port_entry(entry: Any) -> int | None:
    """Container-side port of one compose ``ports`` / ``expose`` entry.

    Handles ``8080``, ``"8080"``, ``"80:8080"``, ``"127.0.0.1:80:8080"``,
    ``"8080/tcp"``, ``"8080-8081"`` and the long form ``{target: 8080}``.
    ``${VAR:-8080}`` interpolations resolve to their default.
    """
    if isinstance(entry, bool):
        return None
    if isinstance(entry, int):
        return entry if 0 < entry < 65536 else None
    if isinstance(entry, dict):
        return parse_port_entry(entry.get("target"))
    if not isinstance(entry, str):
        return None
    text = _ENV_DEFAULT_RE.sub(lambda m: m.group(1), entry.strip().strip('"').strip("'"))
    text = text.split("/", 1)[0]
    container_side = text.rsplit(":", 1)[-1]
    container_side = container_side.split("-", 1)[0]
    if container_side.isdigit():
        return parse_port_entry(int(container_side))
    return None


class PortResolver:
    """Resolves component ports for a service descriptor.

    Parameters
    ----------
    runtime:
        Container runtime used by the last step of the cascade.  Without one
        that step is skipped.
    """

    def __init__(self, runtime: ContainerRuntime | None = None) -> None:
        self._runtime = runtime

    def resolve(
        self,
        descriptor: ServiceDescriptor,
        component_key: str,
        color: Color = Color.BLUE,
    ) -> int | None:
        component = descriptor.components.get(component_key)
        if component is None:
            logger.warning("Unknown component %r of service %s", component_key, descriptor.name)
            return None

        if component.container_port is not None:
            return component.container_port

        for source, lookup in (
            ("compose manifest", lambda: self._from_compose(descriptor, component, color)),
            (".env", lambda: self._from_env(descriptor, component)),
            ("running container", lambda: self._from_container(component)),
        ):
            port = lookup()
            if port is not None:
                logger.debug(
                    "Resolved port %d for %s/%s from %s",
                    port, descriptor.name, component_key, source,
                )
                return port

        logger.warning(
            "Could not resolve a port for %s/%s (no declared port, manifest "
            "mapping, env variable or running container)",
            descriptor.name,
            component_key,
        )
        return None

    # -- step 2: compose manifest -------------------------------------------------

    def _from_compose(
        self, descriptor: ServiceDescriptor, component: ComponentSpec, color: Color
    ) -> int | None:
        candidates = [descriptor.compose_file_for(color), descriptor.root / "docker-compose.yml"]
        for path in dict.fromkeys(candidates):
            services = _load_compose_services(path)
            if not services:
                continue
            entry = _find_compose_service(services, component)
            if entry is None:
                continue
            for field_name in ("ports", "expose"):
                for item in entry.get(field_name) or []:
                    port = parse_port_entry(item)
                    if port is not None:
                        return port
        return None

    # -- step 3: .env ------------------------------------------------------------

    def _from_env(self, descriptor: ServiceDescriptor, component: ComponentSpec) -> int | None:
        env_file = descriptor.root / ".env"
        if not env_file.is_file():
            return None
        values = dotenv_values(env_file)
        names = (
            f"{_env_name(component.key)}_PORT",
            f"{_env_name(component.container_name_base)}_PORT",
            "SERVICE_PORT",
            "PORT",
        )
        for name in dict.fromkeys(names):
            port = parse_port_entry(values.get(name) or "")
            if port is not None:
                return port
        return None

    # -- step 4: running container ------------------------------------------------

    def _from_container(self, component: ComponentSpec) -> int | None:
        if self._runtime is None:
            return None
        base = component.container_name_base
        for name in (f"{base}-{Color.BLUE.value}", f"{base}-{Color.GREEN.value}", base):
            try:
                if not self._runtime.is_running(name):
                    continue
                ports = self._runtime.exposed_ports(name)
            except Exception as exc:
                logger.warning("Could not inspect container %s: %s", name, exc)
                return None
            if ports:
                return ports[0]
        return None


def _load_compose_services(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Could not parse compose manifest %s: %s", path, exc)
        return {}
    services = document.get("services") if isinstance(document, dict) else None
    return services if isinstance(services, dict) else {}


def _find_compose_service(services: dict[str, Any], component: ComponentSpec) -> dict[str, Any] | None:
    """Match a compose service by key, base name or declared container name."""
    base = component.container_name_base
    for name in (component.key, base):
        entry = services.get(name)
        if isinstance(entry, dict):
            return entry
    for entry in services.values():
        if not isinstance(entry, dict):
            continue
        container_name = str(entry.get("container_name") or "")
        container_name = _ENV_DEFAULT_RE.sub(lambda m: m.group(1), container_name)
        if container_name == base or container_name.startswith(f"{base}-"):
            return entry
    return None
