"""Tests for domain events."""

from __future__ import annotations

import time
from pathlib import Path

import pytest

from bluegreen.domain.enums import Color, DeploymentPhase, HealthStatus, ValidationGate
from bluegreen.domain.events import (
    ArtifactPromoted,
    ArtifactRejected,
    DomainEvent,
    HealthChecked,
    PhaseChanged,
    RollbackTriggered,
    TrafficSwitched,
)
from bluegreen.domain.values import ServiceHealth


class TestDomainEvent:
    def test_base_event_has_timestamp(self) -> None:
        before = time.time()
        event = DomainEvent(source_id="shop")
        after = time.time()
        assert before <= event.timestamp <= after

    def test_event_immutability(self) -> None:
        event = DomainEvent(source_id="shop")
        with pytest.raises(AttributeError):
            event.source_id = "blog"  # type: ignore[misc]

    def test_subclasses_are_domain_events(self) -> None:
        for cls in (
            PhaseChanged,
            HealthChecked,
            RollbackTriggered,
            ArtifactPromoted,
            ArtifactRejected,
            TrafficSwitched,
        ):
            assert isinstance(cls(), DomainEvent)


class TestDeploymentEvents:
    def test_phase_changed(self) -> None:
        event = PhaseChanged(
            source_id="shop",
            previous=DeploymentPhase.PREPARING,
            phase=DeploymentPhase.SWITCHING,
            color=Color.GREEN,
        )
        assert event.previous is DeploymentPhase.PREPARING
        assert event.phase is DeploymentPhase.SWITCHING
        assert event.color is Color.GREEN

    def test_health_checked_carries_aggregate(self) -> None:
        health = ServiceHealth("shop", Color.GREEN, HealthStatus.UNHEALTHY)
        event = HealthChecked(source_id="shop", health=health, phase=DeploymentPhase.MONITORING)
        assert event.health is health
        assert not event.health.healthy

    def test_rollback_defaults_restore_blue(self) -> None:
        event = RollbackTriggered(source_id="shop", reason="monitoring failed")
        assert event.failed_color is Color.GREEN
        assert event.restored_color is Color.BLUE


class TestArtifactEvents:
    def test_rejected_records_gate_and_quarantine(self, tmp_path: Path) -> None:
        path = tmp_path / "rejected" / "shop.example.com.green.conf.20260101T000000"
        event = ArtifactRejected(
            source_id="shop",
            domain="shop.example.com",
            color=Color.GREEN,
            gate=ValidationGate.COMPATIBILITY,
            reason="duplicate upstream",
            path=path,
        )
        assert event.gate is ValidationGate.COMPATIBILITY
        assert event.path == path

    def test_traffic_switched(self) -> None:
        event = TrafficSwitched(source_id="shop", domain="shop.example.com", color=Color.GREEN, elapsed=0.2)
        assert event.domain == "shop.example.com"
        assert event.elapsed == pytest.approx(0.2)
