"""Tests for RegistryStore and the registry document schema."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from bluegreen.domain.exceptions import RegistryError
from bluegreen.infrastructure.config import PathsConfig
from bluegreen.infrastructure.registry_store import RegistryStore
from tests.helpers.registry import component, shop_document, write_registry


class TestRegistryStore:
    def test_load_builds_descriptor(self, registry: RegistryStore, shop_registry: Path) -> None:
        d = registry.load("shop")
        assert d.name == "shop"
        assert d.domain == "shop.example.com"
        assert set(d.components) == {"frontend", "backend"}
        assert d.components["backend"].container_port == 8000
        assert d.https_check.enabled is False

    def test_list_and_exists(self, registry: RegistryStore, shop_registry: Path) -> None:
        assert registry.list_services() == ["shop"]
        assert registry.exists("shop")
        assert not registry.exists("blog")

    def test_missing_service(self, registry: RegistryStore) -> None:
        with pytest.raises(RegistryError, match="not found"):
            registry.load("blog")

    def test_resolves_declared_service_name(
        self, paths: PathsConfig, registry: RegistryStore, service_path: Path
    ) -> None:
        write_registry(paths.registry_dir, "shop-file", shop_document(service_path))
        assert registry.resolve_service_name("shop") == "shop-file"
        assert registry.load("shop").name == "shop"

    def test_invalid_json(self, paths: PathsConfig, registry: RegistryStore) -> None:
        paths.registry_dir.mkdir(parents=True)
        (paths.registry_dir / "broken.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(RegistryError, match="not valid JSON"):
            registry.load("broken")

    def test_schema_violation(
        self, paths: PathsConfig, registry: RegistryStore, service_path: Path
    ) -> None:
        doc = shop_document(service_path, services={})
        write_registry(paths.registry_dir, "shop", doc)
        with pytest.raises(RegistryError, match="failed validation"):
            registry.load("shop")

    def test_reload_after_change(
        self, paths: PathsConfig, registry: RegistryStore, service_path: Path
    ) -> None:
        path = write_registry(paths.registry_dir, "shop", shop_document(service_path))
        assert registry.load("shop").network == "nginx-network"
        write_registry(paths.registry_dir, "shop", shop_document(service_path, network="edge"))
        # Force a distinct mtime on filesystems with coarse timestamps.
        stat = path.stat()
        os.utime(path, (stat.st_atime, stat.st_mtime + 5))
        assert registry.load("shop").network == "edge"


class TestRegistryDocument:
    def test_domains_accept_nested_services_form(
        self, paths: PathsConfig, registry: RegistryStore, service_path: Path
    ) -> None:
        doc = shop_document(
            service_path,
            domains={
                "shop.example.com": {"services": ["frontend"]},
                "api.example.com": {"services": ["backend"]},
            },
        )
        write_registry(paths.registry_dir, "shop", doc)
        d = registry.load("shop")
        assert d.multi_domain
        assert d.domains["api.example.com"] == ("backend",)

    def test_domain_referencing_unknown_component(
        self, paths: PathsConfig, registry: RegistryStore, service_path: Path
    ) -> None:
        doc = shop_document(service_path, domains={"api.example.com": ["worker"]})
        write_registry(paths.registry_dir, "shop", doc)
        with pytest.raises(RegistryError, match="unknown services: worker"):
            registry.load("shop")

    def test_blank_port_means_unresolved(
        self, paths: PathsConfig, registry: RegistryStore, service_path: Path
    ) -> None:
        backend = component("shop-backend", None)
        backend["container_port"] = ""
        doc = shop_document(service_path, services={"backend": backend})
        write_registry(paths.registry_dir, "shop", doc)
        assert registry.load("shop").components["backend"].container_port is None

    def test_custom_routes(
        self, paths: PathsConfig, registry: RegistryStore, service_path: Path
    ) -> None:
        doc = shop_document(
            service_path,
            routes={"shop.example.com": [{"path": "/admin/", "component": "backend"}]},
        )
        write_registry(paths.registry_dir, "shop", doc)
        routes = registry.load("shop").routes_for("shop.example.com")
        assert routes[0].path == "/admin/"
        assert routes[0].component == "backend"
