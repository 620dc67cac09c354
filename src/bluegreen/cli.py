"""Command-line interface for the blue/green deployment orchestrator.

Every subcommand is idempotent: running it again on a settled state is a
no-op that still exits 0.

Entry point
-----------
The ``main()`` function is registered as a console script in
``pyproject.toml``::

    [project.scripts]
    bluegreen = "bluegreen.cli:main"

Usage examples::

    bluegreen deploy shop
    bluegreen deploy --all
    bluegreen prepare shop --tag v1.4.2
    bluegreen switch shop
    bluegreen healthcheck shop --color green --require-all
    bluegreen rollback shop --reason "checkout errors"
    bluegreen cleanup shop
    bluegreen ensure-configs shop
    bluegreen status shop

Exit codes: 0 success, 1 deployment failure (including a rolled-back deploy
and an unhealthy health check), 2 usage, configuration or registry error,
130 cancelled.
"""

from __future__ import annotations

import argparse
import signal
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from bluegreen.domain.enums import Color
from bluegreen.domain.exceptions import BlueGreenError, DeploymentCancelled, RegistryError
from bluegreen.infrastructure.config import OrchestratorConfig, load_config_from_json
from bluegreen.infrastructure.log_setup import configure_logging
from bluegreen.presentation.console import DeploymentConsole
from bluegreen.services.cancellation import CancellationToken
from bluegreen.services.factory import build_orchestrator
from bluegreen.services.fleet import FleetRunner
from bluegreen.services.orchestrator import DeploymentOrchestrator

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_CANCELLED = 130


def _build_parser() -> argparse.ArgumentParser:
    """Build the top-level argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="bluegreen",
        description=(
            "Zero-downtime blue/green deployments behind an nginx reverse proxy."
        ),
    )
    parser.add_argument(
        "--version",
        action="store_true",
        default=False,
        help="Show version and exit.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON configuration file.  Defaults to BLUEGREEN_* environment variables.",
    )
    parser.add_argument(
        "--env-file",
        type=str,
        default=None,
        help="Dotenv file loaded before reading the environment. (default: ./.env)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Debug logging.",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available subcommands")

    # -- deploy ------------------------------------------------------------
    deploy_parser = subparsers.add_parser(
        "deploy",
        help="Full blue/green deployment.",
        description=(
            "Prepare the inactive color, switch traffic, monitor, then clean up "
            "or roll back.  Several services are deployed tier by tier."
        ),
    )
    deploy_parser.add_argument("services", nargs="*", help="Service names.")
    deploy_parser.add_argument(
        "--all",
        action="store_true",
        default=False,
        help="Deploy every registered service.",
    )
    deploy_parser.add_argument("--tag", type=str, default=None, help="Version label to record.")

    # -- prepare -----------------------------------------------------------
    prepare_parser = subparsers.add_parser(
        "prepare",
        help="Start and health-check the inactive color.",
    )
    prepare_parser.add_argument("service")
    prepare_parser.add_argument("--color", type=str, default=None, choices=["blue", "green"])
    prepare_parser.add_argument("--tag", type=str, default=None, help="Version label to record.")

    # -- switch ------------------------------------------------------------
    switch_parser = subparsers.add_parser(
        "switch",
        help="Move traffic to the prepared color.",
    )
    switch_parser.add_argument("service")
    switch_parser.add_argument("--color", type=str, default=None, choices=["blue", "green"])

    # -- healthcheck -------------------------------------------------------
    health_parser = subparsers.add_parser(
        "healthcheck",
        help="Probe the health of a color (default: active).",
    )
    health_parser.add_argument("service")
    health_parser.add_argument("--color", type=str, default=None, choices=["blue", "green"])
    health_parser.add_argument(
        "--require-all",
        action="store_true",
        default=False,
        help="Require every component to be healthy instead of at least one.",
    )

    # -- rollback ----------------------------------------------------------
    rollback_parser = subparsers.add_parser(
        "rollback",
        help="Return traffic to the previous color.",
    )
    rollback_parser.add_argument("service")
    rollback_parser.add_argument("--reason", type=str, default="operator request")

    # -- cleanup -----------------------------------------------------------
    cleanup_parser = subparsers.add_parser(
        "cleanup",
        help="Stop the inactive color.",
    )
    cleanup_parser.add_argument("service")

    # -- ensure-configs ----------------------------------------------------
    ensure_parser = subparsers.add_parser(
        "ensure-configs",
        help="Regenerate and validate proxy configs if they are missing or stale.",
    )
    ensure_parser.add_argument("service")

    # -- status ------------------------------------------------------------
    status_parser = subparsers.add_parser(
        "status",
        help="Show deployment state and live pointers.",
    )
    status_parser.add_argument("service")

    return parser


# =========================================================================
# Helpers
# =========================================================================

def _load_config(args: argparse.Namespace) -> OrchestratorConfig:
    load_dotenv(args.env_file)
    if args.config is not None:
        return load_config_from_json(Path(args.config).read_text(encoding="utf-8"))
    return OrchestratorConfig.from_env()


@contextmanager
def _cancel_on_signals(token: CancellationToken) -> Iterator[None]:
    """Turn SIGINT / SIGTERM into a cooperative cancellation of *token*."""

    def handler(signum: int, frame: Any) -> None:
        token.cancel(f"received {signal.Signals(signum).name}")

    previous = {sig: signal.signal(sig, handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


def _color(value: str | None) -> Color | None:
    return Color.parse(value) if value is not None else None


# =========================================================================
# Subcommand handlers
# =========================================================================

def _cmd_deploy(
    orchestrator: DeploymentOrchestrator, args: argparse.Namespace, out: DeploymentConsole
) -> int:
    """Handle the ``deploy`` subcommand."""
    services = orchestrator.services() if args.all else list(args.services)
    if not services:
        out.print_error("no service given (name one or pass --all)")
        return EXIT_USAGE

    if len(services) == 1:
        result = orchestrator.deploy(services[0], version=args.tag)
        out.print_result(result)
        return EXIT_OK if result.success else EXIT_FAILURE

    try:
        report = FleetRunner(orchestrator).deploy_all(services)
    except BlueGreenError as exc:
        partial = exc.details.get("report")
        if partial is not None:
            out.print_fleet(partial)
        raise
    out.print_fleet(report)
    return EXIT_OK if report.success else EXIT_FAILURE


def _cmd_prepare(
    orchestrator: DeploymentOrchestrator, args: argparse.Namespace, out: DeploymentConsole
) -> int:
    result = orchestrator.prepare(args.service, _color(args.color), version=args.tag)
    out.print_result(result)
    return EXIT_OK if result.success else EXIT_FAILURE


def _cmd_switch(
    orchestrator: DeploymentOrchestrator, args: argparse.Namespace, out: DeploymentConsole
) -> int:
    result = orchestrator.switch(args.service, _color(args.color))
    out.print_result(result)
    return EXIT_OK if result.success else EXIT_FAILURE


def _cmd_healthcheck(
    orchestrator: DeploymentOrchestrator, args: argparse.Namespace, out: DeploymentConsole
) -> int:
    health = orchestrator.healthcheck(
        args.service, _color(args.color), require_all=args.require_all
    )
    out.print_health(health)
    return EXIT_OK if health.healthy else EXIT_FAILURE


def _cmd_rollback(
    orchestrator: DeploymentOrchestrator, args: argparse.Namespace, out: DeploymentConsole
) -> int:
    result = orchestrator.rollback(args.service, reason=args.reason)
    out.print_result(result)
    return EXIT_OK if result.success else EXIT_FAILURE


def _cmd_cleanup(
    orchestrator: DeploymentOrchestrator, args: argparse.Namespace, out: DeploymentConsole
) -> int:
    result = orchestrator.cleanup(args.service)
    out.print_result(result)
    return EXIT_OK if result.success else EXIT_FAILURE


def _cmd_ensure_configs(
    orchestrator: DeploymentOrchestrator, args: argparse.Namespace, out: DeploymentConsole
) -> int:
    results = orchestrator.ensure_configs(args.service)
    out.print_configs(args.service, results)
    return EXIT_OK if all(results.values()) else EXIT_FAILURE


def _cmd_status(
    orchestrator: DeploymentOrchestrator, args: argparse.Namespace, out: DeploymentConsole
) -> int:
    out.print_status(args.service, orchestrator.status(args.service))
    rejected = orchestrator.rejected_artifacts(args.service)
    if rejected:
        out.console.print(f"{len(rejected)} rejected artifact(s), latest: {rejected[-1].path}")
    return EXIT_OK


_HANDLERS: dict[str, Any] = {
    "deploy": _cmd_deploy,
    "prepare": _cmd_prepare,
    "switch": _cmd_switch,
    "healthcheck": _cmd_healthcheck,
    "rollback": _cmd_rollback,
    "cleanup": _cmd_cleanup,
    "ensure-configs": _cmd_ensure_configs,
    "status": _cmd_status,
}


# =========================================================================
# Main entry point
# =========================================================================

def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Parameters
    ----------
    argv:
        Command-line arguments.  Defaults to ``sys.argv[1:]``.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        from bluegreen import __version__
        print(f"bluegreen {__version__}")
        sys.exit(EXIT_OK)

    if args.command is None:
        parser.print_help()
        sys.exit(EXIT_OK)

    handler = _HANDLERS.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(EXIT_USAGE)

    out = DeploymentConsole()
    try:
        config = _load_config(args)
    except (OSError, ValueError) as exc:
        out.print_error(f"invalid configuration: {exc}")
        sys.exit(EXIT_USAGE)

    configure_logging(config.paths.logs_dir, verbose=args.verbose)
    token = CancellationToken()

    try:
        orchestrator = build_orchestrator(config, token=token)
        with _cancel_on_signals(token):
            exit_code = handler(orchestrator, args, out)
    except DeploymentCancelled as exc:
        out.print_error(str(exc))
        exit_code = EXIT_CANCELLED
    except KeyboardInterrupt:
        out.print_error("interrupted")
        exit_code = EXIT_CANCELLED
    except RegistryError as exc:
        out.print_error(str(exc))
        exit_code = EXIT_USAGE
    except BlueGreenError as exc:
        out.print_error(str(exc))
        exit_code = EXIT_FAILURE

    sys.exit(exit_code)
