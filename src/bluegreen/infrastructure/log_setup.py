"""Logging configuration for deployment runs.

Every record carries the service, color and action it belongs to.  The
deploy log uses the line format operators grep for::

    [2026-01-01 12:00:00] [INFO] [shop] [green] [switch] Traffic switched

Modules log through ``logging.getLogger(__name__)``; the orchestrator wraps
its logger in a :class:`DeploymentLogAdapter` to attach the context.
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

DEPLOY_LOG_FORMAT = (
    "[%(asctime)s] [%(levelname)s] [%(service)s] [%(color)s] [%(action)s] %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_CONTEXT_FIELDS = ("service", "color", "action")


class DeploymentContextFilter(logging.Filter):
    """Fills missing context fields with ``-`` so the format never fails."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name in _CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, "-")
        return True


class DeploymentLogAdapter(logging.LoggerAdapter):
    """Attaches service / color / action to every record."""

    def __init__(
        self,
        logger: logging.Logger,
        service: str = "-",
        color: str = "-",
        action: str = "-",
    ) -> None:
        super().__init__(logger, {"service": service, "color": color, "action": action})

    def with_context(self, **context: str) -> DeploymentLogAdapter:
        merged = {**self.extra, **context}  # type: ignore[dict-item]
        return DeploymentLogAdapter(self.logger, **merged)

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}  # type: ignore[dict-item]
        return msg, kwargs


def configure_logging(
    logs_dir: Path | None = None,
    verbose: bool = False,
    console: Console | None = None,
) -> None:
    """Install a rich console handler and, with *logs_dir*, the deploy log.

    Safe to call more than once; previously installed handlers are replaced.
    """
    root = logging.getLogger("bluegreen")
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    context = DeploymentContextFilter()

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=verbose,
    )
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.addFilter(context)
    root.addHandler(console_handler)

    if logs_dir is not None:
        logs_dir = Path(logs_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(logs_dir / "deploy.log", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(DEPLOY_LOG_FORMAT, DATE_FORMAT))
        file_handler.addFilter(context)
        root.addHandler(file_handler)
