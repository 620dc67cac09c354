"""State store: the mutable active-color record of each service.

A single-domain service keeps one state document in
``<state_dir>/<service>.json``.  A multi-domain service keeps one state per
domain in the same file::

    {"service_name": "shop", "domains": {"shop.example": {...}, ...}}

Missing state is created with defaults (blue running, green stopped) on first
access.  Every write replaces the file atomically.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from bluegreen.domain.entities import DeploymentState
from bluegreen.domain.exceptions import StateError
from bluegreen.infrastructure.documents import MultiDomainStateDocument, StateDocument
from bluegreen.infrastructure.files import atomic_write_text

logger = logging.getLogger(__name__)


class StateStore:
    """Loads and saves :class:`DeploymentState` records.

    Parameters
    ----------
    state_dir:
        Directory holding one JSON file per service.
    """

    def __init__(self, state_dir: Path) -> None:
        self._dir = Path(state_dir)
        self._lock = threading.RLock()

    def path_for(self, service: str) -> Path:
        return self._dir / f"{service}.json"

    # -- raw document access ------------------------------------------------------

    def _read_raw(self, service: str) -> dict[str, Any] | None:
        path = self.path_for(service)
        if not path.is_file():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise StateError(
                f"Cannot read state file {path}: {exc}", service=service, path=path
            ) from exc
        if not isinstance(raw, dict):
            raise StateError(
                f"State file {path} must contain a JSON object", service=service, path=path
            )
        return raw

    def _parse_state(self, service: str, raw: dict[str, Any]) -> DeploymentState:
        try:
            state = StateDocument.model_validate(raw).to_entity()
        except ValidationError as exc:
            raise StateError(
                f"State for {service} failed validation: {exc}",
                service=service,
                path=self.path_for(service),
            ) from exc
        return state

    # -- public API -----------------------------------------------------------------

    def load(self, service: str, domain: str | None = None) -> DeploymentState:
        """Return the state of *service* (or of one of its domains).

        The default state is written to disk when none exists yet.  A legacy
        single-domain file seeds the state of any domain requested from it.
        """
        with self._lock:
            raw = self._read_raw(service)
            if raw is None:
                state = DeploymentState()
                logger.info("Initializing deployment state for %s", _label(service, domain))
                self.save(service, state, domain)
                return state

            if "domains" in raw and isinstance(raw["domains"], dict):
                if domain is None:
                    raise StateError(
                        f"State of {service} is per-domain; a domain is required",
                        service=service,
                        path=self.path_for(service),
                    )
                entry = raw["domains"].get(domain)
                if entry is None:
                    state = DeploymentState()
                    logger.info("Initializing deployment state for %s", _label(service, domain))
                    self.save(service, state, domain)
                    return state
                return self._parse_state(service, entry)

            return self._parse_state(service, raw)

    def save(self, service: str, state: DeploymentState, domain: str | None = None) -> None:
        """Persist *state* for *service* (or one of its domains)."""
        state.validate()
        document = StateDocument.from_entity(state).model_dump(mode="json")
        with self._lock:
            if domain is None:
                payload: dict[str, Any] = document
            else:
                raw = self._read_raw(service)
                if raw is not None and isinstance(raw.get("domains"), dict):
                    multi = MultiDomainStateDocument.model_validate(
                        {"service_name": raw.get("service_name", service), "domains": raw["domains"]}
                    )
                else:
                    multi = MultiDomainStateDocument(service_name=service)
                multi.domains[domain] = StateDocument.model_validate(document)
                payload = multi.model_dump(mode="json")
            atomic_write_text(self.path_for(service), json.dumps(payload, indent=2) + "\n")
        logger.debug("Saved state for %s: active=%s", _label(service, domain), state.active_color.value)


def _label(service: str, domain: str | None) -> str:
    return f"{service} ({domain})" if domain else service
