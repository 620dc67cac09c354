"""Advisory locks serializing work on shared proxy resources.

- :class:`DomainLock` serializes deployment runs that target the same domain
  (artifact directories and the live pointer are shared per domain).  It is
  an ``fcntl.flock`` on ``<lock_dir>/<domain>.lock`` and therefore also
  excludes other processes.
- :class:`ReloadLock` serializes proxy test/reload calls, since a reload
  affects every domain served by the proxy.
"""

from __future__ import annotations

import fcntl
import logging
import threading
import time
from collections.abc import Iterable, Iterator
from contextlib import ExitStack, contextmanager
from pathlib import Path
from typing import IO

from bluegreen.domain.exceptions import LockTimeout

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.1


class FileLock:
    """Exclusive ``flock`` on a lock file with a bounded wait."""

    def __init__(self, path: Path, timeout: float = 300.0) -> None:
        self.path = Path(path)
        self.timeout = timeout
        self._fh: IO[str] | None = None

    @property
    def locked(self) -> bool:
        return self._fh is not None

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fh = open(self.path, "a+", encoding="utf-8")
        deadline = time.monotonic() + self.timeout
        while True:
            try:
                fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    fh.close()
                    raise LockTimeout(
                        f"Timed out after {self.timeout:.1f}s waiting for {self.path}",
                        domain=self.path.stem,
                        timeout=self.timeout,
                    ) from None
                time.sleep(_POLL_INTERVAL)
        self._fh = fh

    def release(self) -> None:
        if self._fh is None:
            return
        try:
            fcntl.flock(self._fh.fileno(), fcntl.LOCK_UN)
        finally:
            self._fh.close()
            self._fh = None

    def __enter__(self) -> FileLock:
        self.acquire()
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()


class DomainLock(FileLock):
    """Per-domain deployment lock."""

    def __init__(self, lock_dir: Path, domain: str, timeout: float = 300.0) -> None:
        super().__init__(Path(lock_dir) / f"{domain}.lock", timeout)
        self.domain = domain

    def acquire(self) -> None:
        logger.debug("Acquiring deployment lock for %s", self.domain)
        super().acquire()


class LockManager:
    """Hands out domain locks rooted at one lock directory."""

    def __init__(self, lock_dir: Path, timeout: float = 300.0) -> None:
        self.lock_dir = Path(lock_dir)
        self.timeout = timeout

    def domain(self, domain: str) -> DomainLock:
        return DomainLock(self.lock_dir, domain, self.timeout)

    @contextmanager
    def domains(self, domains: Iterable[str]) -> Iterator[None]:
        """Hold the locks of several domains, acquired in sorted order."""
        with ExitStack() as stack:
            for d in sorted(set(domains)):
                stack.enter_context(self.domain(d))
            yield


class ReloadLock:
    """Process-wide lock around proxy test and reload operations.

    With a *path*, the lock also excludes other processes via ``flock``.
    """

    def __init__(self, path: Path | None = None, timeout: float = 60.0) -> None:
        self._thread_lock = threading.Lock()
        self._file_lock = FileLock(path, timeout) if path is not None else None

    def __enter__(self) -> ReloadLock:
        self._thread_lock.acquire()
        if self._file_lock is not None:
            try:
                self._file_lock.acquire()
            except BaseException:
                self._thread_lock.release()
                raise
        return self

    def __exit__(self, *exc: object) -> None:
        try:
            if self._file_lock is not None:
                self._file_lock.release()
        finally:
            self._thread_lock.release()
