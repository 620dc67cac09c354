"""Service layer for the blue/green deployment orchestrator.

Re-exports public service types for convenient top-level access::

    from bluegreen.services import (
        PortResolver, ConfigBuilder, ConfigGenerator,
        ValidationPipeline, TrafficSwitch, HealthMonitor,
        DeploymentOrchestrator, DeploymentResult, FleetRunner,
    )
"""

from bluegreen.services.cancellation import CancellationToken
from bluegreen.services.config_builder import (
    ConfigBuilder,
    Directive,
    LocationRule,
    UpstreamGroup,
    UpstreamServer,
    render_routes,
    render_upstreams,
)
from bluegreen.services.config_generator import ConfigGenerator, render
from bluegreen.services.factory import build_orchestrator
from bluegreen.services.fleet import FleetReport, FleetRunner, classify_tier
from bluegreen.services.health import HealthMonitor
from bluegreen.services.orchestrator import (
    DeploymentOrchestrator,
    DeploymentResult,
    DomainStatus,
)
from bluegreen.services.port_resolver import PortResolver, parse_port_entry
from bluegreen.services.traffic_switch import TrafficSwitch
from bluegreen.services.validation import (
    ValidationPipeline,
    check_structure,
    extract_upstream_names,
)

__all__ = [
    # ports
    "PortResolver",
    "parse_port_entry",
    # generation
    "ConfigBuilder",
    "ConfigGenerator",
    "Directive",
    "LocationRule",
    "UpstreamGroup",
    "UpstreamServer",
    "render",
    "render_routes",
    "render_upstreams",
    # validation
    "ValidationPipeline",
    "check_structure",
    "extract_upstream_names",
    # switching and health
    "TrafficSwitch",
    "HealthMonitor",
    "CancellationToken",
    # orchestration
    "DeploymentOrchestrator",
    "DeploymentResult",
    "DomainStatus",
    "FleetReport",
    "FleetRunner",
    "classify_tier",
    "build_orchestrator",
]
