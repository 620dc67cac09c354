"""Tests for the live-pointer traffic switch."""

from __future__ import annotations

import pytest

from bluegreen.domain.enums import Color
from bluegreen.domain.events import TrafficSwitched
from bluegreen.domain.exceptions import SwitchFailure
from bluegreen.infrastructure.artifacts import ArtifactStore
from bluegreen.infrastructure.collaborators import CommandResult
from bluegreen.infrastructure.event_bus import EventBus, EventStore
from bluegreen.services.traffic_switch import TrafficSwitch
from bluegreen.testing import FakeProxy

DOMAIN = "shop.example.com"


@pytest.fixture
def promoted(artifacts: ArtifactStore) -> ArtifactStore:
    for color in Color:
        staged = artifacts.write_staged(DOMAIN, color, f"upstream x-{color.value} {{ server a:1; }}\n")
        artifacts.promote(DOMAIN, color, staged)
    return artifacts


class TestSwitch:
    def test_switch_repoints_and_reloads(self, promoted: ArtifactStore) -> None:
        proxy = FakeProxy()
        bus = EventBus()
        store = EventStore()
        bus.subscribe_all(store.append)
        switch = TrafficSwitch(promoted, proxy, bus=bus)

        assert switch.switch_to(DOMAIN, Color.GREEN, source_id="shop")
        assert switch.current_color(DOMAIN) is Color.GREEN
        assert proxy.reload_calls == 1
        events = store.query(TrafficSwitched, source_id="shop")
        assert [e.color for e in events] == [Color.GREEN]  # type: ignore[attr-defined]

    def test_refuses_without_promoted_artifact(self, artifacts: ArtifactStore) -> None:
        artifacts.write_staged(DOMAIN, Color.GREEN, "upstream x { server a:1; }\n")
        proxy = FakeProxy()
        with pytest.raises(SwitchFailure, match="No promoted green config"):
            TrafficSwitch(artifacts, proxy).switch_to(DOMAIN, Color.GREEN)
        assert proxy.reload_calls == 0
        assert not artifacts.pointer_path(DOMAIN).exists()

    def test_reload_failure_restores_pointer(self, promoted: ArtifactStore) -> None:
        proxy = FakeProxy(reload_results=[CommandResult(0), CommandResult(1, "reload failed")])
        switch = TrafficSwitch(promoted, proxy)
        switch.switch_to(DOMAIN, Color.BLUE)

        with pytest.raises(SwitchFailure, match="reload failed"):
            switch.switch_to(DOMAIN, Color.GREEN)
        assert switch.current_color(DOMAIN) is Color.BLUE

    def test_unreachable_proxy_still_switches(self, promoted: ArtifactStore) -> None:
        proxy = FakeProxy(reachable=False)
        switch = TrafficSwitch(promoted, proxy)
        assert switch.switch_to(DOMAIN, Color.GREEN)
        assert switch.current_color(DOMAIN) is Color.GREEN
        assert proxy.reload_calls == 0

    def test_pointer_never_targets_staging(self, promoted: ArtifactStore) -> None:
        TrafficSwitch(promoted, FakeProxy()).switch_to(DOMAIN, Color.GREEN)
        target = promoted.live_target(DOMAIN)
        assert target is not None
        assert target.parent.name == "promoted"
