"""Schemas for the on-disk registry and state documents.

Schema validation is centralized here, at the repository boundary: the
registry and state stores parse raw JSON through these pydantic models and
hand the rest of the system only well-typed domain objects.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from bluegreen.domain.entities import ColorRecord, DeploymentState, LastDeployment
from bluegreen.domain.enums import Color, ColorStatus
from bluegreen.domain.values import ComponentSpec, CustomRoute, HttpsCheck, ServiceDescriptor

# -- Registry ------------------------------------------------------------------


class ComponentDocument(BaseModel):
    """One entry of the registry's ``services`` map."""

    model_config = ConfigDict(extra="ignore")

    container_name_base: str = Field(min_length=1)
    container_port: int | None = Field(default=None, ge=1, le=65535)
    health_endpoint: str = "/health"
    health_timeout: float = Field(default=5.0, gt=0)
    health_retries: int = Field(default=3, ge=1)
    startup_time: float = Field(default=5.0, ge=0)

    @field_validator("container_port", mode="before")
    @classmethod
    def _blank_port(cls, value: Any) -> Any:
        if value in ("", "null"):
            return None
        return value


class RouteDocument(BaseModel):
    """A custom location declared for one domain."""

    model_config = ConfigDict(extra="ignore")

    path: str = Field(pattern=r"^/")
    component: str
    upstream_path: str | None = None
    rate_limit_burst: int | None = Field(default=None, ge=1)


class RegistryDocument(BaseModel):
    """A service registry document (``<registry_dir>/<service>.json``)."""

    model_config = ConfigDict(extra="ignore")

    service_name: str = Field(min_length=1)
    service_path: str = ""
    production_path: str | None = None
    domain: str = Field(min_length=1)
    domains: dict[str, list[str]] = Field(default_factory=dict)
    services: dict[str, ComponentDocument] = Field(min_length=1)
    shared_services: list[str] = Field(default_factory=list)
    network: str = "nginx-network"
    docker_compose_file: str | None = None
    docker_project_base: str | None = None
    routes: dict[str, list[RouteDocument]] = Field(default_factory=dict)
    https_check_enabled: bool = True
    https_check_endpoint: str = "/"
    https_check_timeout: float = Field(default=10.0, gt=0)
    https_check_retries: int = Field(default=3, ge=1)

    @field_validator("domains", mode="before")
    @classmethod
    def _normalize_domains(cls, value: Any) -> Any:
        # Accept both {"d": ["frontend"]} and {"d": {"services": ["frontend"]}}.
        if not isinstance(value, dict):
            return value
        normalized: dict[str, Any] = {}
        for domain, entry in value.items():
            if isinstance(entry, dict):
                entry = entry.get("services", [])
            normalized[domain] = entry
        return normalized

    @model_validator(mode="after")
    def _check_references(self) -> RegistryDocument:
        for domain, keys in self.domains.items():
            missing = [k for k in keys if k not in self.services]
            if missing:
                raise ValueError(
                    f"domain {domain!r} references unknown services: {', '.join(missing)}"
                )
        for domain, routes in self.routes.items():
            for route in routes:
                if route.component not in self.services:
                    raise ValueError(
                        f"route {route.path!r} on {domain!r} targets unknown "
                        f"service {route.component!r}"
                    )
        return self

    def to_descriptor(self) -> ServiceDescriptor:
        components = {
            key: ComponentSpec(key=key, **doc.model_dump())
            for key, doc in self.services.items()
        }
        routes = {
            domain: tuple(CustomRoute(**r.model_dump()) for r in entries)
            for domain, entries in self.routes.items()
        }
        return ServiceDescriptor(
            name=self.service_name,
            service_path=Path(self.service_path or "."),
            production_path=Path(self.production_path) if self.production_path else None,
            domain=self.domain,
            domains={d: tuple(keys) for d, keys in self.domains.items()},
            components=components,
            shared_services=tuple(self.shared_services),
            network=self.network,
            docker_compose_file=self.docker_compose_file,
            docker_project_base=self.docker_project_base,
            custom_routes=routes,
            https_check=HttpsCheck(
                enabled=self.https_check_enabled,
                endpoint=self.https_check_endpoint,
                timeout=self.https_check_timeout,
                retries=self.https_check_retries,
            ),
        )


# -- State ---------------------------------------------------------------------


class ColorDocument(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: ColorStatus = ColorStatus.STOPPED
    deployed_at: str | None = None
    version: str | None = None

    @field_validator("deployed_at", "version", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)


class LastDeploymentDocument(BaseModel):
    model_config = ConfigDict(extra="ignore")

    color: Color = Color.BLUE
    timestamp: str | None = None
    success: bool = True

    @field_validator("timestamp", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)


class StateDocument(BaseModel):
    """A deployment state document for one service or one domain."""

    model_config = ConfigDict(extra="ignore")

    active_color: Color = Color.BLUE
    blue: ColorDocument = Field(
        default_factory=lambda: ColorDocument(status=ColorStatus.RUNNING)
    )
    green: ColorDocument = Field(default_factory=ColorDocument)
    last_deployment: LastDeploymentDocument = Field(default_factory=LastDeploymentDocument)

    def to_entity(self) -> DeploymentState:
        return DeploymentState(
            active_color=self.active_color,
            blue=ColorRecord(**self.blue.model_dump()),
            green=ColorRecord(**self.green.model_dump()),
            last_deployment=LastDeployment(**self.last_deployment.model_dump()),
        )

    @classmethod
    def from_entity(cls, state: DeploymentState) -> StateDocument:
        return cls.model_validate(state.to_dict())


class MultiDomainStateDocument(BaseModel):
    """State file of a multi-domain service: one state per domain."""

    model_config = ConfigDict(extra="ignore")

    service_name: str
    domains: dict[str, StateDocument] = Field(default_factory=dict)
