"""Configuration dataclasses for the blue/green deployment orchestrator.

Each config is a plain ``dataclass`` with a ``validate()`` method that raises
``ValueError`` on invalid combinations.  Configs are **frozen** so they can be
shared between the orchestrator, its collaborators and worker threads without
risking silent mutation.

``OrchestratorConfig.from_env`` builds the full configuration from
``BLUEGREEN_*`` environment variables; ``load_config_from_json`` reads the same
structure from a JSON document.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields
from importlib import resources
from pathlib import Path
from typing import Any

ENV_PREFIX = "BLUEGREEN_"

_TEMPLATE_NAME = "domain-blue-green.conf.template"


def default_template_path() -> Path:
    """The nginx template shipped with the package."""
    return Path(str(resources.files("bluegreen") / "templates" / _TEMPLATE_NAME))


# ===================================================================== #
#  Paths                                                                 #
# ===================================================================== #

@dataclass(frozen=True)
class PathsConfig:
    """Filesystem layout shared by every store.

    Attributes
    ----------
    registry_dir:
        Directory holding one ``<service>.json`` registry document per service.
    state_dir:
        Directory holding ``<service>.json`` deployment state documents.
    conf_dir:
        nginx ``conf.d`` directory; ``staging/``, ``promoted/`` and
        ``rejected/`` live below it together with the ``<domain>.conf``
        live pointers.
    template_path:
        Template rendered into each artifact.  Defaults to the packaged one.
    logs_dir:
        Directory receiving ``deploy.log``.
    lock_dir:
        Directory for per-domain lock files.
    """

    registry_dir: Path = Path("service-registry")
    state_dir: Path = Path("state")
    conf_dir: Path = Path("nginx/conf.d")
    template_path: Path | None = None
    logs_dir: Path = Path("logs/blue-green")
    lock_dir: Path = Path("state/locks")

    def __post_init__(self) -> None:
        # Coerce strings from JSON / env into paths.
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, str):
                object.__setattr__(self, f.name, Path(value))

    @property
    def template(self) -> Path:
        return self.template_path or default_template_path()

    def validate(self) -> None:
        if self.template_path is not None and not self.template_path.name:
            raise ValueError("template_path must name a file")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            data[f.name] = str(value) if value is not None else None
        return data

    @classmethod
    def under(cls, base: Path) -> PathsConfig:
        """Default layout rooted at *base*."""
        base = Path(base)
        return cls(
            registry_dir=base / "service-registry",
            state_dir=base / "state",
            conf_dir=base / "nginx" / "conf.d",
            logs_dir=base / "logs" / "blue-green",
            lock_dir=base / "state" / "locks",
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PathsConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys and v is not None}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Proxy                                                                 #
# ===================================================================== #

@dataclass(frozen=True)
class ProxyConfig:
    """How to reach the live nginx process.

    Attributes
    ----------
    container_name:
        Name of the container running nginx.
    test_command / reload_command:
        Commands executed inside that container.
    """

    container_name: str = "nginx-microservice"
    test_command: tuple[str, ...] = ("nginx", "-t")
    reload_command: tuple[str, ...] = ("nginx", "-s", "reload")

    def __post_init__(self) -> None:
        for name in ("test_command", "reload_command"):
            value = getattr(self, name)
            if isinstance(value, str):
                object.__setattr__(self, name, tuple(value.split()))
            elif isinstance(value, list):
                object.__setattr__(self, name, tuple(value))

    def validate(self) -> None:
        if not self.container_name:
            raise ValueError("container_name must not be empty")
        if not self.test_command or not self.reload_command:
            raise ValueError("test_command and reload_command must not be empty")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProxyConfig:
        valid_keys = {f.name for f in fields(cls)}
        cfg = cls(**{k: v for k, v in data.items() if k in valid_keys})
        cfg.validate()
        return cfg


# ===================================================================== #
#  Monitoring                                                            #
# ===================================================================== #

@dataclass(frozen=True)
class MonitorConfig:
    """Post-switch monitoring window.

    Attributes
    ----------
    interval:
        Seconds between health polls of the newly active color.
    window:
        Total monitoring duration in seconds.
    failure_budget:
        Consecutive failures tolerated; one more triggers rollback.
    """

    interval: float = 30.0
    window: float = 300.0
    failure_budget: int = 2

    def validate(self) -> None:
        if self.interval <= 0:
            raise ValueError(f"interval must be > 0, got {self.interval}")
        if self.window < 0:
            raise ValueError(f"window must be >= 0, got {self.window}")
        if self.failure_budget < 0:
            raise ValueError(f"failure_budget must be >= 0, got {self.failure_budget}")

    @property
    def polls(self) -> int:
        """Number of polls in one window."""
        if self.window <= 0:
            return 0
        return max(1, round(self.window / self.interval))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MonitorConfig:
        valid_keys = {f.name for f in fields(cls)}
        cfg = cls(**{k: v for k, v in data.items() if k in valid_keys})
        cfg.validate()
        return cfg


# ===================================================================== #
#  Orchestrator                                                          #
# ===================================================================== #

@dataclass(frozen=True)
class OrchestratorConfig:
    """Top-level configuration composed from the sections above.

    Attributes
    ----------
    lock_timeout:
        Seconds to wait for a per-domain deployment lock.
    health_backoff:
        Seconds slept between health-check retries.
    switch_latency_target:
        A switch slower than this many seconds is logged as a warning.
    cert_renewal_days:
        Certificates expiring within this many days are renewed.
    cert_dir:
        Directory with one ``<domain>/fullchain.pem`` per domain.  ``None``
        disables certificate checks.
    certbot_email:
        Account e-mail used when requesting certificates.
    """

    paths: PathsConfig = field(default_factory=PathsConfig)
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    lock_timeout: float = 300.0
    health_backoff: float = 1.0
    switch_latency_target: float = 2.0
    cert_renewal_days: int = 30
    cert_dir: str | None = None
    certbot_email: str = ""

    def validate(self) -> None:
        self.paths.validate()
        self.proxy.validate()
        self.monitor.validate()
        if self.lock_timeout < 0:
            raise ValueError(f"lock_timeout must be >= 0, got {self.lock_timeout}")
        if self.health_backoff < 0:
            raise ValueError(f"health_backoff must be >= 0, got {self.health_backoff}")
        if self.switch_latency_target <= 0:
            raise ValueError(
                f"switch_latency_target must be > 0, got {self.switch_latency_target}"
            )
        if self.cert_renewal_days < 0:
            raise ValueError(
                f"cert_renewal_days must be >= 0, got {self.cert_renewal_days}"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "paths": self.paths.to_dict(),
            "proxy": self.proxy.to_dict(),
            "monitor": self.monitor.to_dict(),
            "lock_timeout": self.lock_timeout,
            "health_backoff": self.health_backoff,
            "switch_latency_target": self.switch_latency_target,
            "cert_renewal_days": self.cert_renewal_days,
            "cert_dir": self.cert_dir,
            "certbot_email": self.certbot_email,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OrchestratorConfig:
        scalars = {
            "lock_timeout",
            "health_backoff",
            "switch_latency_target",
            "cert_renewal_days",
            "cert_dir",
            "certbot_email",
        }
        cfg = cls(
            paths=PathsConfig.from_dict(data.get("paths", {})),
            proxy=ProxyConfig.from_dict(data.get("proxy", {})),
            monitor=MonitorConfig.from_dict(data.get("monitor", {})),
            **{k: v for k, v in data.items() if k in scalars},
        )
        cfg.validate()
        return cfg

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> OrchestratorConfig:
        """Build a config from ``BLUEGREEN_*`` variables.

        ``BLUEGREEN_HOME`` roots the default directory layout; individual
        ``BLUEGREEN_REGISTRY_DIR``-style variables override single paths.
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(ENV_PREFIX + name)
            return value if value not in (None, "") else None

        home = get("HOME")
        paths = PathsConfig.under(Path(home)) if home else PathsConfig()
        overrides = {
            "registry_dir": get("REGISTRY_DIR"),
            "state_dir": get("STATE_DIR"),
            "conf_dir": get("CONF_DIR"),
            "template_path": get("TEMPLATE"),
            "logs_dir": get("LOGS_DIR"),
            "lock_dir": get("LOCK_DIR"),
        }
        merged = {**paths.to_dict(), **{k: v for k, v in overrides.items() if v}}

        proxy: dict[str, Any] = {}
        if get("PROXY_CONTAINER"):
            proxy["container_name"] = get("PROXY_CONTAINER")

        monitor: dict[str, Any] = {}
        if get("MONITOR_INTERVAL"):
            monitor["interval"] = float(get("MONITOR_INTERVAL"))  # type: ignore[arg-type]
        if get("MONITOR_WINDOW"):
            monitor["window"] = float(get("MONITOR_WINDOW"))  # type: ignore[arg-type]
        if get("FAILURE_BUDGET"):
            monitor["failure_budget"] = int(get("FAILURE_BUDGET"))  # type: ignore[arg-type]

        data: dict[str, Any] = {"paths": merged, "proxy": proxy, "monitor": monitor}
        if get("LOCK_TIMEOUT"):
            data["lock_timeout"] = float(get("LOCK_TIMEOUT"))  # type: ignore[arg-type]
        if get("CERT_DIR"):
            data["cert_dir"] = get("CERT_DIR")
        if get("CERTBOT_EMAIL"):
            data["certbot_email"] = get("CERTBOT_EMAIL")
        return cls.from_dict(data)


# ===================================================================== #
#  JSON loading                                                          #
# ===================================================================== #

def load_config_from_json(json_str: str) -> OrchestratorConfig:
    """Parse a JSON document into an ``OrchestratorConfig``.

    Raises
    ------
    ValueError
        If the JSON is malformed or a value is out of range.
    """
    try:
        raw = json.loads(json_str)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON config: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"Config root must be a JSON object, got {type(raw).__name__}")
    return OrchestratorConfig.from_dict(raw)
