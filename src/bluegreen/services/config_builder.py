"""Typed builder for proxy configuration.

Upstream groups and routing rules are assembled as small immutable node
objects (:class:`UpstreamGroup`, :class:`UpstreamServer`,
:class:`LocationRule`, :class:`Directive`) and serialized by one renderer.
Directive arguments are checked when nodes are built, so a value can never
close a block or inject a directive into the generated file.

Upstream naming: ``{container_name_base}-{color}``.  Each group always lists
both the blue and the green container; the member matching the group's color
carries ``weight=100`` and the other is ``backup``.  Members use
``resolve`` so the proxy starts even while a container is absent.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

from bluegreen.domain.enums import Color
from bluegreen.domain.exceptions import GenerationError
from bluegreen.domain.values import ComponentSpec, CustomRoute, ServiceDescriptor
from bluegreen.services.port_resolver import PortResolver

logger = logging.getLogger(__name__)

ACTIVE_WEIGHT = 100
COMMON_PROXY_SETTINGS = "/etc/nginx/includes/common-proxy-settings.conf"
FRONTEND_LOCATION = "/etc/nginx/includes/frontend-location.conf"
GATEWAY_DEFAULT_PORT = 80

FRONTEND = "frontend"
BACKEND = "backend"
GATEWAY = "api-gateway"

_UNSAFE_ARG = re.compile(r"[;{}\s#]")


def upstream_variable(component_key: str) -> str:
    """nginx variable holding a component's upstream name, e.g. ``$API_GATEWAY_UPSTREAM``."""
    return "$" + re.sub(r"[^A-Za-z0-9]", "_", component_key).upper() + "_UPSTREAM"


# ===================================================================== #
#  Nodes                                                                 #
# ===================================================================== #

@dataclass(frozen=True)
class Directive:
    """A single ``name arg ...;`` statement."""

    name: str
    args: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        for token in (self.name, *self.args):
            if not token or _UNSAFE_ARG.search(token):
                raise ValueError(f"unsafe directive token {token!r} in {self.name!r}")

    def render(self) -> str:
        return " ".join((self.name, *self.args)) + ";"


@dataclass(frozen=True)
class UpstreamServer:
    """One member of an upstream group."""

    host: str
    port: int
    weight: int | None = None
    backup: bool = False
    max_fails: int = 3
    fail_timeout: str = "30s"
    resolve: bool = True

    def __post_init__(self) -> None:
        if self.weight is not None and self.backup:
            raise ValueError("a server is either weighted or backup, not both")
        if not (0 < self.port < 65536):
            raise ValueError(f"invalid port {self.port}")

    def directive(self) -> Directive:
        args = [f"{self.host}:{self.port}"]
        if self.weight is not None:
            args.append(f"weight={self.weight}")
        if self.backup:
            args.append("backup")
        args += [f"max_fails={self.max_fails}", f"fail_timeout={self.fail_timeout}"]
        if self.resolve:
            args.append("resolve")
        return Directive("server", tuple(args))


@dataclass(frozen=True)
class UpstreamGroup:
    """An ``upstream`` block."""

    name: str
    servers: tuple[UpstreamServer, ...]
    zone_size: str = "64k"

    @property
    def zone(self) -> str:
        return f"{self.name}_zone"

    @classmethod
    def pair(cls, base: str, port: int, color: Color) -> UpstreamGroup:
        """The blue/green pair for *base*, weighted towards *color*."""
        servers = tuple(
            UpstreamServer(
                host=f"{base}-{member.value}",
                port=port,
                weight=ACTIVE_WEIGHT if member is color else None,
                backup=member is not color,
            )
            for member in (Color.BLUE, Color.GREEN)
        )
        return cls(name=f"{base}-{color.value}", servers=servers)


@dataclass(frozen=True)
class LocationRule:
    """A routing rule.

    With a ``path`` it renders as a ``location`` block; without one its
    directives are emitted at server level (used for the frontend include).
    """

    path: str | None
    directives: tuple[Directive, ...]
    comment: str = ""
    modifier: str = ""

    @property
    def specificity(self) -> int:
        return len(self.path or "")


# ===================================================================== #
#  Renderer                                                              #
# ===================================================================== #

_INDENT = "    "


def render_upstreams(groups: Iterable[UpstreamGroup]) -> str:
    lines: list[str] = []
    for group in groups:
        lines.append(f"upstream {group.name} {{")
        lines.append(_INDENT + Directive("zone", (group.zone, group.zone_size)).render())
        for server in group.servers:
            lines.append(_INDENT + server.directive().render())
        lines.append("}")
    return "\n".join(lines) + ("\n" if lines else "")


def render_routes(rules: Iterable[LocationRule]) -> str:
    chunks: list[str] = []
    for rule in rules:
        lines: list[str] = []
        if rule.comment:
            lines.append(f"{_INDENT}# {rule.comment}")
        if rule.path is None:
            lines += [_INDENT + d.render() for d in rule.directives]
        else:
            opener = " ".join(p for p in ("location", rule.modifier, rule.path) if p)
            lines.append(f"{_INDENT}{opener} {{")
            lines += [_INDENT * 2 + d.render() for d in rule.directives]
            lines.append(f"{_INDENT}}}")
        chunks.append("\n".join(lines))
    return "\n\n".join(chunks) + ("\n" if chunks else "")


# ===================================================================== #
#  Builder                                                               #
# ===================================================================== #

class ConfigBuilder:
    """Builds upstream groups and routing rules from a service descriptor."""

    def __init__(self, port_resolver: PortResolver) -> None:
        self._ports = port_resolver

    # -- upstreams ---------------------------------------------------------

    def build_upstreams(
        self,
        descriptor: ServiceDescriptor,
        color: Color,
        domain: str | None = None,
    ) -> tuple[UpstreamGroup, ...]:
        """One group per component with a resolvable port.

        Raises
        ------
        GenerationError
            If no group could be built at all.
        """
        groups: list[UpstreamGroup] = []
        skipped: list[str] = []
        seen: set[str] = set()
        for component in descriptor.components_for(domain):
            if component.container_name_base in seen:
                continue
            port = self._ports.resolve(descriptor, component.key, color)
            if port is None:
                logger.warning(
                    "Skipping upstream for %s/%s: port could not be resolved",
                    descriptor.name,
                    component.key,
                )
                skipped.append(component.key)
                continue
            seen.add(component.container_name_base)
            groups.append(UpstreamGroup.pair(component.container_name_base, port, color))

        if not groups:
            raise GenerationError(
                f"No upstream groups generated for {descriptor.name} "
                f"(domain: {domain or 'all'}); check container_name_base and "
                f"ports in the registry",
                service=descriptor.name,
                domain=domain or "",
                color=color.value,
                details={"skipped": skipped},
            )
        return tuple(groups)

    # -- routes ------------------------------------------------------------

    def build_routes(
        self,
        descriptor: ServiceDescriptor,
        domain: str,
        color: Color,
    ) -> tuple[LocationRule, ...]:
        """Routing rules for *domain*, most specific first."""
        exposed = {c.key: c for c in descriptor.components_for(domain)}
        frontend = exposed.get(FRONTEND)
        backend = exposed.get(BACKEND)
        gateway = descriptor.components.get(GATEWAY)

        generic: list[LocationRule] = []
        if frontend is not None:
            generic.append(self._frontend_root(frontend, color))
        elif backend is not None:
            generic.append(self._backend_root(backend, color))

        if backend is not None:
            generic += self._backend_rules(backend, color)
        elif gateway is not None:
            generic.append(self._gateway_api(descriptor, gateway, color))

        custom = self._custom_rules(descriptor, descriptor.routes_for(domain), color)
        claimed = {rule.path for rule in custom}
        generic = [rule for rule in generic if rule.path is None or rule.path not in claimed]
        return tuple(custom) + tuple(generic)

    @staticmethod
    def _upstream(component: ComponentSpec, color: Color) -> str:
        return f"{component.container_name_base}-{color.value}"

    def _frontend_root(self, frontend: ComponentSpec, color: Color) -> LocationRule:
        return LocationRule(
            path=None,
            comment="Frontend service - root path",
            directives=(
                Directive("set", (upstream_variable(FRONTEND), self._upstream(frontend, color))),
                Directive("include", (FRONTEND_LOCATION,)),
            ),
        )

    def _proxy(
        self,
        path: str,
        variable: str,
        upstream: str,
        target: str,
        comment: str,
        burst: int | None = None,
    ) -> LocationRule:
        directives: list[Directive] = []
        if burst is not None:
            directives.append(Directive("limit_req", ("zone=api", f"burst={burst}", "nodelay")))
        directives += [
            Directive("set", (variable, upstream)),
            Directive("proxy_pass", (f"http://{variable}{target}",)),
            Directive("include", (COMMON_PROXY_SETTINGS,)),
        ]
        return LocationRule(path=path, directives=tuple(directives), comment=comment)

    def _backend_root(self, backend: ComponentSpec, color: Color) -> LocationRule:
        return self._proxy(
            "/",
            upstream_variable(BACKEND),
            self._upstream(backend, color),
            "",
            "Backend-only service - root path routes to backend",
        )

    def _backend_rules(self, backend: ComponentSpec, color: Color) -> list[LocationRule]:
        variable = upstream_variable(BACKEND)
        upstream = self._upstream(backend, color)
        health = LocationRule(
            path="/health",
            comment="Health check endpoint",
            directives=(
                Directive("set", (variable, upstream)),
                Directive("proxy_pass", (f"http://{variable}/health",)),
                Directive("proxy_http_version", ("1.1",)),
                Directive("proxy_set_header", ("Host", "$host")),
                Directive("access_log", ("off",)),
                Directive("limit_req", ("zone=api", "burst=5", "nodelay")),
            ),
        )
        return [
            self._proxy("/api/", variable, upstream, "/api/", "API routes with stricter rate limiting", burst=20),
            self._proxy("/ws", variable, upstream, "/ws", "WebSocket support"),
            health,
        ]

    def _gateway_api(
        self, descriptor: ServiceDescriptor, gateway: ComponentSpec, color: Color
    ) -> LocationRule:
        port = self._ports.resolve(descriptor, gateway.key, color) or GATEWAY_DEFAULT_PORT
        return self._proxy(
            "/api/",
            upstream_variable(GATEWAY),
            self._upstream(gateway, color),
            f":{port}/api/",
            "API Gateway routes",
            burst=20,
        )

    def _custom_rules(
        self,
        descriptor: ServiceDescriptor,
        routes: tuple[CustomRoute, ...],
        color: Color,
    ) -> list[LocationRule]:
        rules: list[LocationRule] = []
        for route in routes:
            component = descriptor.components[route.component]
            variable = upstream_variable(route.component)
            directives: list[Directive] = []
            if route.rate_limit_burst is not None:
                directives.append(
                    Directive("limit_req", ("zone=api", f"burst={route.rate_limit_burst}", "nodelay"))
                )
            directives += [
                Directive("set", (variable, self._upstream(component, color))),
                Directive("proxy_pass", (f"http://{variable}{route.upstream_path or ''}",)),
                Directive("include", (COMMON_PROXY_SETTINGS,)),
            ]
            rules.append(
                LocationRule(
                    path=route.path,
                    modifier="^~",
                    directives=tuple(directives),
                    comment=f"Custom route -> {route.component}",
                )
            )
        # Longest prefix first; ^~ keeps them ahead of regex locations.
        rules.sort(key=lambda r: r.specificity, reverse=True)
        return rules
