"""Artifact store: the on-disk lifecycle of generated proxy configurations.

Layout below the nginx ``conf.d`` directory::

    staging/<domain>.<color>.conf              written, not yet visible
    promoted/<domain>.<color>.conf             validated, eligible for the pointer
    rejected/<domain>.<color>.conf.<stamp>     quarantined for diagnostics
    <domain>.conf                              live pointer -> promoted/...

Every transition is a rename within one filesystem, so a reader sees either
the previous file or the complete new one.  The live pointer is a relative
symlink that only ever targets ``promoted/``.
"""

from __future__ import annotations

import logging
import os
import re
import time
from pathlib import Path

from bluegreen.domain.enums import ArtifactStage, Color
from bluegreen.domain.values import ConfigArtifact
from bluegreen.infrastructure.files import atomic_write_text

logger = logging.getLogger(__name__)

STAGING = "staging"
PROMOTED = "promoted"
REJECTED = "rejected"

_PROMOTED_RE = re.compile(r"^(?P<domain>.+)\.(?P<color>blue|green)\.conf$")
_REJECTED_RE = re.compile(r"^(?P<domain>.+)\.(?P<color>blue|green)\.conf\.(?P<stamp>\d{8}_\d{6}(?:_\d+)?)$")


class ArtifactStore:
    """Owns the staging / promoted / rejected directories and live pointers.

    Parameters
    ----------
    conf_dir:
        The proxy's configuration directory.
    """

    def __init__(self, conf_dir: Path) -> None:
        self.conf_dir = Path(conf_dir)
        self.staging_dir = self.conf_dir / STAGING
        self.promoted_dir = self.conf_dir / PROMOTED
        self.rejected_dir = self.conf_dir / REJECTED

    def ensure_directories(self) -> None:
        for d in (self.staging_dir, self.promoted_dir, self.rejected_dir):
            d.mkdir(parents=True, exist_ok=True)

    # -- paths -------------------------------------------------------------------

    @staticmethod
    def filename(domain: str, color: Color) -> str:
        return f"{domain}.{color.value}.conf"

    def staged_path(self, domain: str, color: Color) -> Path:
        return self.staging_dir / self.filename(domain, color)

    def promoted_path(self, domain: str, color: Color) -> Path:
        return self.promoted_dir / self.filename(domain, color)

    def pointer_path(self, domain: str) -> Path:
        return self.conf_dir / f"{domain}.conf"

    # -- staging -----------------------------------------------------------------

    def write_staged(self, domain: str, color: Color, text: str) -> Path:
        """Write a staged artifact and return its path."""
        self.ensure_directories()
        path = self.staged_path(domain, color)
        atomic_write_text(path, text)
        logger.debug("Staged %s", path)
        return path

    # -- promotion / rejection ---------------------------------------------------

    def promote(self, domain: str, color: Color, staged: Path) -> ConfigArtifact:
        """Atomically move *staged* over the promoted artifact for (domain, color)."""
        self.ensure_directories()
        target = self.promoted_path(domain, color)
        os.replace(staged, target)
        logger.info("Promoted %s", target)
        return ConfigArtifact(domain, color, ArtifactStage.PROMOTED, target)

    def reject(self, domain: str, color: Color, staged: Path) -> ConfigArtifact:
        """Quarantine *staged* under ``rejected/`` with a timestamp suffix."""
        self.ensure_directories()
        stamp = time.strftime("%Y%m%d_%H%M%S")
        target = self.rejected_dir / f"{self.filename(domain, color)}.{stamp}"
        n = 1
        while target.exists():
            target = self.rejected_dir / f"{self.filename(domain, color)}.{stamp}_{n}"
            n += 1
        os.replace(staged, target)
        logger.warning("Quarantined rejected artifact at %s", target)
        return ConfigArtifact(domain, color, ArtifactStage.REJECTED, target, rejected_at=stamp)

    # -- queries -----------------------------------------------------------------

    def has_promoted(self, domain: str, color: Color) -> bool:
        return self.promoted_path(domain, color).is_file()

    def read_promoted(self, domain: str, color: Color) -> str | None:
        path = self.promoted_path(domain, color)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def promoted(self) -> list[ConfigArtifact]:
        """All promoted artifacts, sorted by file name."""
        if not self.promoted_dir.is_dir():
            return []
        found: list[ConfigArtifact] = []
        for path in sorted(self.promoted_dir.iterdir()):
            m = _PROMOTED_RE.match(path.name)
            if m and path.is_file():
                found.append(
                    ConfigArtifact(m["domain"], Color(m["color"]), ArtifactStage.PROMOTED, path)
                )
        return found

    def list_rejected(self, domain: str | None = None) -> list[ConfigArtifact]:
        """Quarantined artifacts, oldest first, optionally for one domain."""
        if not self.rejected_dir.is_dir():
            return []
        found: list[ConfigArtifact] = []
        for path in sorted(self.rejected_dir.iterdir()):
            m = _REJECTED_RE.match(path.name)
            if not m or (domain is not None and m["domain"] != domain):
                continue
            found.append(
                ConfigArtifact(
                    m["domain"], Color(m["color"]), ArtifactStage.REJECTED, path,
                    rejected_at=m["stamp"],
                )
            )
        return found

    # -- live pointer ------------------------------------------------------------

    def point_live(self, domain: str, color: Color) -> Path:
        """Atomically repoint ``<domain>.conf`` at the promoted artifact.

        A new symlink is created under a temporary name and renamed over the
        pointer, so the pointer is never missing and never dangling into
        ``staging/`` or ``rejected/``.
        """
        target = self.promoted_path(domain, color)
        if not target.is_file():
            raise FileNotFoundError(f"No promoted artifact at {target}")
        pointer = self.pointer_path(domain)
        relative = Path(PROMOTED) / target.name
        tmp = self.conf_dir / f".{pointer.name}.{os.getpid()}.tmp"
        tmp.unlink(missing_ok=True)
        os.symlink(relative, tmp)
        try:
            os.replace(tmp, pointer)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise
        return pointer

    def live_target(self, domain: str) -> Path | None:
        """The artifact the live pointer resolves to, or ``None``."""
        pointer = self.pointer_path(domain)
        if not pointer.is_symlink():
            return None
        link = Path(os.readlink(pointer))
        return link if link.is_absolute() else (pointer.parent / link)

    def live_color(self, domain: str) -> Color | None:
        """Color of the promoted artifact the pointer targets, if any."""
        target = self.live_target(domain)
        if target is None or target.parent.resolve() != self.promoted_dir.resolve():
            return None
        m = _PROMOTED_RE.match(target.name)
        if not m or m["domain"] != domain:
            return None
        return Color(m["color"])
