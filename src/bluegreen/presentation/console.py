"""Rich console rendering of orchestrator results.

:class:`DeploymentConsole` turns results of the CLI commands into tables:
per-domain status, command outcomes, health aggregates and fleet reports.
"""

from __future__ import annotations

import sys
from collections.abc import Iterable, Mapping
from typing import Any

from rich.console import Console
from rich.table import Table
from rich.text import Text

from bluegreen.domain.enums import Color, ColorStatus
from bluegreen.domain.values import ServiceHealth
from bluegreen.services.fleet import FleetReport
from bluegreen.services.orchestrator import DeploymentResult, DomainStatus

_STATUS_STYLES = {
    ColorStatus.RUNNING: "bold green",
    ColorStatus.READY: "cyan",
    ColorStatus.BACKUP: "yellow",
    ColorStatus.STOPPED: "dim",
}

_COLOR_STYLES = {Color.BLUE: "bold blue", Color.GREEN: "bold green"}


def _color_text(color: Color | None) -> Text:
    if color is None:
        return Text("-", style="dim")
    return Text(color.value, style=_COLOR_STYLES[color])


def _ok_text(ok: bool, yes: str = "ok", no: str = "failed") -> Text:
    return Text(yes, style="green") if ok else Text(no, style="bold red")


class DeploymentConsole:
    """Console presentation layer for deployment commands.

    Parameters
    ----------
    file:
        Output stream.  Defaults to ``sys.stdout``.
    console:
        A pre-built rich ``Console``; takes precedence over *file*.
    """

    def __init__(self, file: Any = None, console: Console | None = None) -> None:
        self._console = console or Console(file=file or sys.stdout)

    @property
    def console(self) -> Console:
        return self._console

    # -- status ----------------------------------------------------------

    def print_status(self, service: str, statuses: Iterable[DomainStatus]) -> None:
        table = Table(title=f"{service} deployment status")
        table.add_column("Domain", style="bold")
        table.add_column("Active")
        table.add_column("Live pointer")
        table.add_column("Blue")
        table.add_column("Green")
        table.add_column("Last deployment")

        for status in statuses:
            state = status.state
            cells = []
            for color in (Color.BLUE, Color.GREEN):
                rec = state.record(color)
                label = rec.status.value
                if rec.version:
                    label += f" ({rec.version})"
                cells.append(Text(label, style=_STATUS_STYLES[rec.status]))

            live = _color_text(status.live_color)
            if status.live_color is not None and status.live_color is not state.active_color:
                live.append(" (drift)", style="bold red")

            last = state.last_deployment
            last_text = Text(f"{last.color.value} {last.timestamp or '-'} ")
            last_text.append_text(_ok_text(last.success))

            table.add_row(status.domain, _color_text(state.active_color), live, *cells, last_text)

        self._console.print(table)

    # -- command results --------------------------------------------------

    def print_result(self, result: DeploymentResult) -> None:
        table = Table(title=f"{result.action}: {result.service}", show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        table.add_row("Outcome", _ok_text(result.success, "success", "failure"))
        table.add_row("Color", _color_text(result.color))
        table.add_row("Phase", result.phase.value)
        if result.phases:
            table.add_row("Phases", " -> ".join(p.value for p in result.phases))
        if not result.changed:
            table.add_row("Changed", Text("no (already in place)", style="dim"))
        table.add_row("Elapsed", f"{result.elapsed_seconds:.1f}s")
        table.add_row("Message", result.message)
        self._console.print(table)
        if result.health is not None:
            self.print_health(result.health)

    def print_health(self, health: ServiceHealth) -> None:
        policy = "all components" if health.require_all else "at least one component"
        table = Table(
            title=f"{health.service} {health.color.value} health ({policy} must pass)"
        )
        table.add_column("Component", style="bold")
        table.add_column("Address")
        table.add_column("Status")
        table.add_column("Attempts", justify="right")
        table.add_column("Detail")
        for r in health.components:
            table.add_row(
                r.component,
                r.address,
                _ok_text(r.healthy, r.status.value, r.status.value),
                str(r.attempts),
                r.detail or "",
            )
        self._console.print(table)
        self._console.print(
            Text("Overall: ").append_text(
                _ok_text(health.healthy, health.status.value, health.status.value)
            )
        )

    def print_configs(self, service: str, results: Mapping[tuple[str, Color], bool]) -> None:
        table = Table(title=f"{service} promoted configs")
        table.add_column("Domain", style="bold")
        table.add_column("Color")
        table.add_column("Valid")
        for (domain, color), ok in sorted(results.items(), key=lambda i: (i[0][0], i[0][1].value)):
            table.add_row(domain, _color_text(color), _ok_text(ok, "yes", "no"))
        self._console.print(table)

    def print_fleet(self, report: FleetReport) -> None:
        table = Table(title="Fleet deployment")
        table.add_column("Service", style="bold")
        table.add_column("Outcome")
        table.add_column("Detail")
        for name, result in report.results.items():
            table.add_row(name, _ok_text(result.success, "deployed", "rolled back"), result.message)
        for name, message in report.failures.items():
            table.add_row(name, _ok_text(False), message)
        self._console.print(table)
        if report.aborted_at:
            self._console.print(
                Text(f"Fleet run aborted at {report.aborted_at}", style="bold red")
            )

    def print_error(self, message: str) -> None:
        self._console.print(Text(f"Error: {message}", style="bold red"))
