"""Validation pipeline: every configuration change is staged, then gated.

``staged -> promoted | rejected``.  Three ordered gates, each
short-circuiting:

1. **structural** -- every ``upstream`` block lists at least one ``server``
   (nginx refuses to start with an empty group);
2. **syntax** -- the live proxy tests its current configuration tree; skipped
   (pass) when the proxy is not reachable, in which case nginx validates on
   its own start-up;
3. **compatibility** -- upstream names of the staged artifact must not clash
   with any already promoted artifact (nginx rejects duplicate upstream names
   process-wide).

On success the staged file is renamed into ``promoted/``; on failure it is
renamed into ``rejected/`` with a timestamp and the promoted artifact for the
same (domain, color) is left untouched.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from bluegreen.domain.enums import Color, ValidationGate
from bluegreen.domain.events import ArtifactPromoted, ArtifactRejected
from bluegreen.domain.exceptions import ValidationRejection
from bluegreen.domain.values import GateResult, ValidationReport
from bluegreen.infrastructure.artifacts import ArtifactStore
from bluegreen.infrastructure.collaborators import ProxyController
from bluegreen.infrastructure.event_bus import EventBus
from bluegreen.infrastructure.locks import ReloadLock

logger = logging.getLogger(__name__)

_UPSTREAM_OPEN_RE = re.compile(r"^\s*upstream\s+([^\s{]+)\s*\{")
_SERVER_RE = re.compile(r"^\s*server\s+\S")
_INLINE_SERVER_RE = re.compile(r"(?:^|;)\s*server\s+\S")
_FATAL_SYNTAX_PATTERNS = ("duplicate upstream", "no servers are inside upstream", "syntax error")


# ===================================================================== #
#  Gate helpers                                                          #
# ===================================================================== #

def extract_upstream_names(text: str) -> list[str]:
    """Names of all ``upstream`` blocks in *text*, in order."""
    names = []
    for line in text.splitlines():
        m = _UPSTREAM_OPEN_RE.match(line)
        if m:
            names.append(m.group(1))
    return names


def check_structure(text: str) -> GateResult:
    """Fail when an upstream block has no member servers."""
    empty: list[str] = []
    current: str | None = None
    servers = 0
    depth = 0
    for line in text.splitlines():
        stripped = line.split("#", 1)[0]
        if current is None:
            m = _UPSTREAM_OPEN_RE.match(stripped)
            if m:
                rest = stripped[m.end():]
                current, depth = m.group(1), 1 + rest.count("{") - rest.count("}")
                servers = len(_INLINE_SERVER_RE.findall(rest))
                if depth <= 0:
                    if servers == 0:
                        empty.append(current)
                    current = None
            continue
        if _SERVER_RE.match(stripped):
            servers += 1
        depth += stripped.count("{") - stripped.count("}")
        if depth <= 0:
            if servers == 0:
                empty.append(current)
            current = None
    if current is not None:
        return GateResult(
            ValidationGate.STRUCTURAL, False, f"upstream {current} is not closed"
        )
    if empty:
        return GateResult(
            ValidationGate.STRUCTURAL,
            False,
            f"upstream block(s) with no servers: {', '.join(empty)}",
        )
    return GateResult(ValidationGate.STRUCTURAL, True)


# ===================================================================== #
#  Pipeline                                                              #
# ===================================================================== #

class ValidationPipeline:
    """Decides whether a staged artifact is promoted or rejected.

    Parameters
    ----------
    artifacts:
        The artifact store owning the directories.
    proxy:
        The live proxy, used by the syntax gate.  ``None`` skips that gate.
    reload_lock:
        Serializes ``nginx -t`` with reloads issued by the traffic switch.
    bus:
        Optional event bus receiving promotion / rejection events.
    """

    def __init__(
        self,
        artifacts: ArtifactStore,
        proxy: ProxyController | None = None,
        reload_lock: ReloadLock | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self._artifacts = artifacts
        self._proxy = proxy
        self._reload_lock = reload_lock or ReloadLock()
        self._bus = bus

    # -- gates -------------------------------------------------------------

    def check_structure(self, text: str) -> GateResult:
        return check_structure(text)

    def check_syntax(self) -> GateResult:
        if self._proxy is None or not self._proxy.is_reachable():
            logger.warning("Proxy not reachable; syntax check deferred to proxy start-up")
            return GateResult(ValidationGate.SYNTAX, True, "proxy not reachable", skipped=True)

        with self._reload_lock:
            result = self._proxy.test_config()
        if result.ok:
            return GateResult(ValidationGate.SYNTAX, True)

        fatal = [
            line.strip()
            for line in result.output.splitlines()
            if any(p in line for p in _FATAL_SYNTAX_PATTERNS)
        ]
        if fatal:
            return GateResult(ValidationGate.SYNTAX, False, "; ".join(fatal[:5]))
        logger.warning(
            "nginx -t reported non-fatal problems: %s",
            " | ".join(result.output.strip().splitlines()[-3:]),
        )
        return GateResult(ValidationGate.SYNTAX, True, "non-fatal warnings")

    def check_compatibility(self, domain: str, color: Color, text: str) -> GateResult:
        staged = extract_upstream_names(text)
        duplicates = sorted({n for n in staged if staged.count(n) > 1})
        if duplicates:
            return GateResult(
                ValidationGate.COMPATIBILITY,
                False,
                f"duplicate upstream(s) inside artifact: {', '.join(duplicates)}",
            )
        wanted = set(staged)
        for artifact in self._artifacts.promoted():
            # The artifact being replaced does not conflict with its successor.
            if artifact.domain == domain and artifact.color is color:
                continue
            clash = wanted.intersection(
                extract_upstream_names(artifact.path.read_text(encoding="utf-8"))
            )
            if clash:
                return GateResult(
                    ValidationGate.COMPATIBILITY,
                    False,
                    f"upstream(s) {', '.join(sorted(clash))} already defined in "
                    f"{artifact.path.name}",
                )
        return GateResult(ValidationGate.COMPATIBILITY, True)

    def validate(self, domain: str, color: Color, text: str) -> ValidationReport:
        """Run the gates in order, stopping at the first failure."""
        results: list[GateResult] = []
        for gate in (
            lambda: self.check_structure(text),
            self.check_syntax,
            lambda: self.check_compatibility(domain, color, text),
        ):
            result = gate()
            results.append(result)
            if not result.passed:
                break
        return ValidationReport(domain, color, tuple(results))

    # -- apply -------------------------------------------------------------

    def validate_and_apply(
        self, service: str, domain: str, color: Color, staged_path: Path
    ) -> bool:
        """Promote *staged_path* or quarantine it.

        Returns
        -------
        bool
            ``True`` when promoted.

        Raises
        ------
        ValidationRejection
            When a gate failed; the exception names the gate and the
            quarantined path.
        """
        staged_path = Path(staged_path)
        text = staged_path.read_text(encoding="utf-8")
        report = self.validate(domain, color, text)

        if report.passed:
            artifact = self._artifacts.promote(domain, color, staged_path)
            logger.info("%s config for %s promoted to %s", color.value, domain, artifact.path)
            if self._bus is not None:
                self._bus.publish(
                    ArtifactPromoted(source_id=service, domain=domain, color=color, path=artifact.path)
                )
            return True

        failed = report.failed_gate
        assert failed is not None
        rejected = self._artifacts.reject(domain, color, staged_path)
        logger.error(
            "%s config for %s rejected at %s gate: %s (quarantined at %s, last good: %s)",
            color.value,
            domain,
            failed.gate.value,
            failed.message,
            rejected.path,
            self._artifacts.promoted_path(domain, color),
        )
        if self._bus is not None:
            self._bus.publish(
                ArtifactRejected(
                    source_id=service,
                    domain=domain,
                    color=color,
                    gate=failed.gate,
                    reason=failed.message,
                    path=rejected.path,
                )
            )
        raise ValidationRejection(
            f"{domain} {color.value} config rejected at {failed.gate.value} gate: {failed.message}",
            domain=domain,
            color=color.value,
            gate=failed.gate.value,
            quarantine_path=rejected.path,
        )
