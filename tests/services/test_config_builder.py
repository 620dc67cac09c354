"""Tests for the typed configuration builder and renderer."""

from __future__ import annotations

from pathlib import Path

import pytest

from bluegreen.domain.enums import Color
from bluegreen.domain.exceptions import GenerationError
from bluegreen.domain.values import ComponentSpec, CustomRoute, ServiceDescriptor
from bluegreen.services.config_builder import (
    ConfigBuilder,
    Directive,
    UpstreamGroup,
    render_routes,
    render_upstreams,
    upstream_variable,
)
from bluegreen.services.port_resolver import PortResolver


def _descriptor(tmp_path: Path, components: dict[str, ComponentSpec], **kwargs: object) -> ServiceDescriptor:
    return ServiceDescriptor(
        name="shop",
        service_path=tmp_path,
        domain="shop.example.com",
        components=components,
        **kwargs,  # type: ignore[arg-type]
    )


@pytest.fixture
def builder() -> ConfigBuilder:
    return ConfigBuilder(PortResolver())


FRONTEND = ComponentSpec("frontend", "shop-frontend", 3000)
BACKEND = ComponentSpec("backend", "shop-backend", 8000)


class TestNodes:
    def test_upstream_variable(self) -> None:
        assert upstream_variable("api-gateway") == "$API_GATEWAY_UPSTREAM"

    def test_directive_rejects_injection(self) -> None:
        with pytest.raises(ValueError, match="unsafe"):
            Directive("proxy_pass", ("http://x; } server {",))

    def test_pair_weights_active_member(self) -> None:
        text = render_upstreams([UpstreamGroup.pair("shop-backend", 8000, Color.GREEN)])
        assert text == (
            "upstream shop-backend-green {\n"
            "    zone shop-backend-green_zone 64k;\n"
            "    server shop-backend-blue:8000 backup max_fails=3 fail_timeout=30s resolve;\n"
            "    server shop-backend-green:8000 weight=100 max_fails=3 fail_timeout=30s resolve;\n"
            "}\n"
        )


class TestUpstreams:
    def test_one_group_per_component(self, tmp_path: Path, builder: ConfigBuilder) -> None:
        d = _descriptor(tmp_path, {"frontend": FRONTEND, "backend": BACKEND})
        groups = builder.build_upstreams(d, Color.BLUE)
        assert [g.name for g in groups] == ["shop-frontend-blue", "shop-backend-blue"]

    def test_shared_base_is_emitted_once(self, tmp_path: Path, builder: ConfigBuilder) -> None:
        d = _descriptor(
            tmp_path,
            {"backend": BACKEND, "worker": ComponentSpec("worker", "shop-backend", 8000)},
        )
        assert len(builder.build_upstreams(d, Color.BLUE)) == 1

    def test_unresolved_port_skips_group(self, tmp_path: Path, builder: ConfigBuilder) -> None:
        d = _descriptor(
            tmp_path, {"frontend": ComponentSpec("frontend", "shop-frontend"), "backend": BACKEND}
        )
        assert [g.name for g in builder.build_upstreams(d, Color.GREEN)] == ["shop-backend-green"]

    def test_no_groups_raises(self, tmp_path: Path, builder: ConfigBuilder) -> None:
        d = _descriptor(tmp_path, {"frontend": ComponentSpec("frontend", "shop-frontend")})
        with pytest.raises(GenerationError, match="No upstream groups") as info:
            builder.build_upstreams(d, Color.BLUE)
        assert info.value.details["skipped"] == ["frontend"]

    def test_domain_subset(self, tmp_path: Path, builder: ConfigBuilder) -> None:
        d = _descriptor(
            tmp_path,
            {"frontend": FRONTEND, "backend": BACKEND},
            domains={"api.example.com": ("backend",)},
        )
        groups = builder.build_upstreams(d, Color.BLUE, "api.example.com")
        assert [g.name for g in groups] == ["shop-backend-blue"]


class TestRoutes:
    def test_frontend_and_backend(self, tmp_path: Path, builder: ConfigBuilder) -> None:
        d = _descriptor(tmp_path, {"frontend": FRONTEND, "backend": BACKEND})
        text = render_routes(builder.build_routes(d, "shop.example.com", Color.GREEN))
        assert "    set $FRONTEND_UPSTREAM shop-frontend-green;" in text
        assert "include /etc/nginx/includes/frontend-location.conf;" in text
        assert "location /api/ {" in text
        assert "proxy_pass http://$BACKEND_UPSTREAM/api/;" in text
        assert "limit_req zone=api burst=20 nodelay;" in text
        assert "location /ws {" in text
        assert "location /health {" in text
        assert "location / {" not in text

    def test_backend_only_gets_root(self, tmp_path: Path, builder: ConfigBuilder) -> None:
        d = _descriptor(tmp_path, {"backend": BACKEND})
        rules = builder.build_routes(d, "shop.example.com", Color.BLUE)
        assert rules[0].path == "/"
        assert "proxy_pass http://$BACKEND_UPSTREAM;" in render_routes(rules)

    def test_gateway_api(self, tmp_path: Path, builder: ConfigBuilder) -> None:
        d = _descriptor(
            tmp_path,
            {"frontend": FRONTEND, "api-gateway": ComponentSpec("api-gateway", "shop-gw", 8080)},
        )
        text = render_routes(builder.build_routes(d, "shop.example.com", Color.BLUE))
        assert "set $API_GATEWAY_UPSTREAM shop-gw-blue;" in text
        assert "proxy_pass http://$API_GATEWAY_UPSTREAM:8080/api/;" in text

    def test_custom_routes_longest_first_and_claim_paths(
        self, tmp_path: Path, builder: ConfigBuilder
    ) -> None:
        d = _descriptor(
            tmp_path,
            {"frontend": FRONTEND, "backend": BACKEND},
            custom_routes={
                "shop.example.com": (
                    CustomRoute("/api/", "frontend"),
                    CustomRoute("/api/admin/", "backend", upstream_path="/admin/", rate_limit_burst=5),
                )
            },
        )
        rules = builder.build_routes(d, "shop.example.com", Color.BLUE)
        assert [r.path for r in rules[:2]] == ["/api/admin/", "/api/"]
        assert all(r.modifier == "^~" for r in rules[:2])
        assert [r.path for r in rules].count("/api/") == 1
        text = render_routes(rules)
        assert "location ^~ /api/admin/ {" in text
        assert "proxy_pass http://$BACKEND_UPSTREAM/admin/;" in text
