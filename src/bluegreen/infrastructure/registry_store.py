"""Registry store: read-only access to service descriptors.

Each service is described by ``<registry_dir>/<service>.json``.  Documents are
validated with :class:`~bluegreen.infrastructure.documents.RegistryDocument`
and converted into immutable :class:`~bluegreen.domain.values.ServiceDescriptor`
instances.  Loaded descriptors are cached per file modification time.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path

from pydantic import ValidationError

from bluegreen.domain.exceptions import RegistryError
from bluegreen.domain.values import ServiceDescriptor
from bluegreen.infrastructure.documents import RegistryDocument

logger = logging.getLogger(__name__)


class RegistryStore:
    """Loads :class:`ServiceDescriptor` objects from a registry directory.

    Parameters
    ----------
    registry_dir:
        Directory containing one JSON document per service.
    """

    def __init__(self, registry_dir: Path) -> None:
        self._dir = Path(registry_dir)
        self._lock = threading.Lock()
        self._cache: dict[Path, tuple[float, ServiceDescriptor]] = {}

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, service: str) -> Path:
        return self._dir / f"{service}.json"

    # -- queries ----------------------------------------------------------------

    def list_services(self) -> list[str]:
        """Names of all registry documents, sorted."""
        if not self._dir.is_dir():
            return []
        return sorted(p.stem for p in self._dir.glob("*.json"))

    def exists(self, service: str) -> bool:
        return self.path_for(service).is_file()

    def resolve_service_name(self, name: str) -> str:
        """Map *name* to a registry file stem.

        Accepts either the file stem or the ``service_name`` declared inside a
        document.  Raises :class:`RegistryError` when neither matches.
        """
        if self.exists(name):
            return name
        for stem in self.list_services():
            try:
                raw = json.loads(self.path_for(stem).read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError):
                continue
            if isinstance(raw, dict) and raw.get("service_name") == name:
                return stem
        raise RegistryError(
            f"Service {name!r} not found in registry {self._dir}",
            service=name,
            path=self.path_for(name),
        )

    def load(self, service: str) -> ServiceDescriptor:
        """Load and validate the descriptor for *service*.

        Raises
        ------
        RegistryError
            If the document is missing, not JSON, or fails schema validation.
        """
        stem = self.resolve_service_name(service)
        path = self.path_for(stem)
        try:
            mtime = path.stat().st_mtime
        except OSError as exc:
            raise RegistryError(
                f"Cannot read registry file {path}: {exc}", service=service, path=path
            ) from exc

        with self._lock:
            cached = self._cache.get(path)
            if cached is not None and cached[0] == mtime:
                return cached[1]

        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise RegistryError(
                f"Registry file {path} is not valid JSON: {exc}", service=service, path=path
            ) from exc

        try:
            document = RegistryDocument.model_validate(raw)
            descriptor = document.to_descriptor()
        except (ValidationError, ValueError) as exc:
            raise RegistryError(
                f"Registry file {path} failed validation: {exc}",
                service=service,
                path=path,
                details={"errors": str(exc)},
            ) from exc

        logger.debug(
            "Loaded registry for %s (%d components, %d domains)",
            descriptor.name,
            len(descriptor.components),
            len(descriptor.all_domains()),
        )
        with self._lock:
            self._cache[path] = (mtime, descriptor)
        return descriptor
