"""Tests for configuration dataclasses."""

from __future__ import annotations

from pathlib import Path

import pytest

from bluegreen.infrastructure.config import (
    MonitorConfig,
    OrchestratorConfig,
    PathsConfig,
    ProxyConfig,
    load_config_from_json,
)


class TestMonitorConfig:
    def test_defaults(self) -> None:
        cfg = MonitorConfig()
        assert cfg.interval == 30.0
        assert cfg.window == 300.0
        assert cfg.failure_budget == 2
        assert cfg.polls == 10

    def test_zero_window_means_no_polls(self) -> None:
        assert MonitorConfig(window=0).polls == 0

    def test_short_window_polls_once(self) -> None:
        assert MonitorConfig(interval=10, window=1).polls == 1

    @pytest.mark.parametrize(
        "kwargs",
        [{"interval": 0}, {"window": -1}, {"failure_budget": -1}],
    )
    def test_invalid(self, kwargs: dict[str, float]) -> None:
        with pytest.raises(ValueError):
            MonitorConfig(**kwargs).validate()  # type: ignore[arg-type]


class TestPathsConfig:
    def test_strings_become_paths(self) -> None:
        cfg = PathsConfig(registry_dir="reg")  # type: ignore[arg-type]
        assert cfg.registry_dir == Path("reg")

    def test_default_template_is_packaged(self) -> None:
        assert PathsConfig().template.name == "domain-blue-green.conf.template"

    def test_under(self, tmp_path: Path) -> None:
        cfg = PathsConfig.under(tmp_path)
        assert cfg.conf_dir == tmp_path / "nginx" / "conf.d"
        assert cfg.lock_dir == tmp_path / "state" / "locks"


class TestProxyConfig:
    def test_command_strings_are_split(self) -> None:
        cfg = ProxyConfig.from_dict({"reload_command": "nginx -s reload", "extra": 1})
        assert cfg.reload_command == ("nginx", "-s", "reload")

    def test_empty_container_rejected(self) -> None:
        with pytest.raises(ValueError, match="container_name"):
            ProxyConfig.from_dict({"container_name": ""})


class TestOrchestratorConfig:
    def test_from_dict_ignores_unknown_keys(self) -> None:
        cfg = OrchestratorConfig.from_dict(
            {
                "monitor": {"interval": 5, "window": 20, "bogus": True},
                "lock_timeout": 10,
                "unknown": "x",
            }
        )
        assert cfg.monitor.polls == 4
        assert cfg.lock_timeout == 10

    def test_to_dict_round_trips(self) -> None:
        cfg = OrchestratorConfig(cert_dir="/etc/letsencrypt/live", certbot_email="ops@example.com")
        again = OrchestratorConfig.from_dict(cfg.to_dict())
        assert again == cfg

    def test_negative_timeout_rejected(self) -> None:
        with pytest.raises(ValueError, match="lock_timeout"):
            OrchestratorConfig.from_dict({"lock_timeout": -1})

    def test_from_env(self, tmp_path: Path) -> None:
        cfg = OrchestratorConfig.from_env(
            {
                "BLUEGREEN_HOME": str(tmp_path),
                "BLUEGREEN_CONF_DIR": str(tmp_path / "conf"),
                "BLUEGREEN_MONITOR_INTERVAL": "15",
                "BLUEGREEN_FAILURE_BUDGET": "3",
                "BLUEGREEN_PROXY_CONTAINER": "edge-nginx",
                "BLUEGREEN_CERT_DIR": str(tmp_path / "certs"),
                "BLUEGREEN_LOCK_TIMEOUT": "",
            }
        )
        assert cfg.paths.registry_dir == tmp_path / "service-registry"
        assert cfg.paths.conf_dir == tmp_path / "conf"
        assert cfg.monitor.interval == 15.0
        assert cfg.monitor.failure_budget == 3
        assert cfg.proxy.container_name == "edge-nginx"
        assert cfg.cert_dir == str(tmp_path / "certs")
        assert cfg.lock_timeout == 300.0


class TestLoadConfigFromJson:
    def test_valid(self) -> None:
        cfg = load_config_from_json('{"paths": {"state_dir": "/srv/state"}}')
        assert cfg.paths.state_dir == Path("/srv/state")

    def test_malformed(self) -> None:
        with pytest.raises(ValueError, match="Invalid JSON"):
            load_config_from_json("{nope")

    def test_non_object(self) -> None:
        with pytest.raises(ValueError, match="JSON object"):
            load_config_from_json("[]")
