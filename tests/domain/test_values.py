"""Tests for domain value objects and enums."""

from __future__ import annotations

from pathlib import Path

import pytest

from bluegreen.domain.enums import Color, DeploymentPhase, HealthStatus, ServiceTier, ValidationGate
from bluegreen.domain.values import (
    ComponentSpec,
    CustomRoute,
    GateResult,
    HealthResult,
    ServiceDescriptor,
    ServiceHealth,
    ValidationReport,
)


def _descriptor(tmp_path: Path, **kwargs: object) -> ServiceDescriptor:
    defaults: dict[str, object] = {
        "name": "shop",
        "service_path": tmp_path,
        "domain": "shop.example.com",
        "components": {
            "frontend": ComponentSpec("frontend", "shop-frontend", 3000),
            "backend": ComponentSpec("backend", "shop-backend", 8000),
        },
    }
    defaults.update(kwargs)
    return ServiceDescriptor(**defaults)  # type: ignore[arg-type]


class TestEnums:
    def test_color_other(self) -> None:
        assert Color.BLUE.other is Color.GREEN
        assert Color.GREEN.other is Color.BLUE

    def test_color_parse(self) -> None:
        assert Color.parse(" Green ") is Color.GREEN
        assert Color.parse(Color.BLUE) is Color.BLUE
        with pytest.raises(ValueError, match="invalid color"):
            Color.parse("red")

    def test_terminal_phases(self) -> None:
        assert DeploymentPhase.CLEANED.terminal
        assert DeploymentPhase.ROLLED_BACK.terminal
        assert not DeploymentPhase.MONITORING.terminal

    def test_only_application_tier_is_isolated(self) -> None:
        assert ServiceTier.INFRASTRUCTURE.fatal
        assert ServiceTier.MICROSERVICE.fatal
        assert not ServiceTier.APPLICATION.fatal


class TestComponentSpec:
    def test_container_name(self) -> None:
        spec = ComponentSpec("backend", "shop-backend", 8000)
        assert spec.container_name(Color.GREEN) == "shop-backend-green"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"container_port": 0},
            {"container_port": 70000},
            {"health_timeout": 0},
            {"health_retries": 0},
            {"startup_time": -1},
        ],
    )
    def test_invalid_values(self, kwargs: dict[str, float]) -> None:
        with pytest.raises(ValueError):
            ComponentSpec("backend", "shop-backend", **kwargs)  # type: ignore[arg-type]

    def test_route_path_must_be_absolute(self) -> None:
        with pytest.raises(ValueError, match="must start with"):
            CustomRoute("api", "backend")


class TestServiceDescriptor:
    def test_single_domain(self, tmp_path: Path) -> None:
        d = _descriptor(tmp_path)
        assert not d.multi_domain
        assert d.all_domains() == ("shop.example.com",)
        assert [c.key for c in d.components_for("shop.example.com")] == ["frontend", "backend"]

    def test_multi_domain_puts_primary_first(self, tmp_path: Path) -> None:
        d = _descriptor(
            tmp_path,
            domains={"api.example.com": ("backend",), "shop.example.com": ("frontend",)},
        )
        assert d.multi_domain
        assert d.all_domains() == ("shop.example.com", "api.example.com")
        assert [c.key for c in d.components_for("api.example.com")] == ["backend"]

    def test_unknown_domain_component_is_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="unknown components: worker"):
            _descriptor(tmp_path, domains={"api.example.com": ("worker",)})

    def test_compose_file_per_color_with_fallback(self, tmp_path: Path) -> None:
        (tmp_path / "docker-compose.shop.green.yml").write_text("services: {}\n")
        d = _descriptor(tmp_path)
        assert d.compose_file_for(Color.GREEN).name == "docker-compose.shop.green.yml"
        assert d.compose_file_for(Color.BLUE).name == "docker-compose.yml"

    def test_compose_file_template(self, tmp_path: Path) -> None:
        (tmp_path / "compose.blue.yml").write_text("services: {}\n")
        d = _descriptor(tmp_path, docker_compose_file="compose.{color}.yml")
        assert d.compose_file_for(Color.BLUE) == tmp_path / "compose.blue.yml"

    def test_production_path_wins_when_present(self, tmp_path: Path) -> None:
        prod = tmp_path / "prod"
        prod.mkdir()
        assert _descriptor(tmp_path, production_path=prod).root == prod
        assert _descriptor(tmp_path, production_path=tmp_path / "missing").root == tmp_path

    def test_project_name(self, tmp_path: Path) -> None:
        assert _descriptor(tmp_path).project_name(Color.GREEN) == "shop_green"
        d = _descriptor(tmp_path, docker_project_base="store")
        assert d.project_name(Color.BLUE) == "store_blue"


class TestReports:
    def test_validation_report_failed_gate(self) -> None:
        report = ValidationReport(
            "shop.example.com",
            Color.GREEN,
            (
                GateResult(ValidationGate.STRUCTURAL, True),
                GateResult(ValidationGate.SYNTAX, False, "syntax error"),
            ),
        )
        assert not report.passed
        assert report.failed_gate is not None
        assert report.failed_gate.gate is ValidationGate.SYNTAX

    def test_service_health_unhealthy_components(self) -> None:
        health = ServiceHealth(
            "shop",
            Color.GREEN,
            HealthStatus.HEALTHY,
            (
                HealthResult("frontend", "shop-frontend-green:3000", HealthStatus.UNHEALTHY),
                HealthResult("backend", "shop-backend-green:8000", HealthStatus.HEALTHY),
            ),
        )
        assert health.healthy
        assert health.unhealthy_components == ("frontend",)
