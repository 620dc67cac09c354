"""Proxy configuration generator.

Renders one artifact per (domain, color) from the service registry and the
domain template, stages it, and hands it to the validation pipeline.  Both
colors are always generated; each is validated on its own, so a rejected
green artifact never blocks promotion of the blue one.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from bluegreen.domain.enums import Color
from bluegreen.domain.exceptions import GenerationError, ValidationRejection
from bluegreen.domain.values import ServiceDescriptor
from bluegreen.infrastructure.artifacts import ArtifactStore
from bluegreen.services.config_builder import ConfigBuilder, render_routes, render_upstreams
from bluegreen.services.validation import ValidationPipeline, check_structure

logger = logging.getLogger(__name__)

DOMAIN_PLACEHOLDER = "DOMAIN_NAME"
UPSTREAMS_PLACEHOLDER = "UPSTREAM_BLOCKS"
ROUTES_PLACEHOLDER = "PROXY_LOCATIONS"

_PLACEHOLDER_RE = re.compile(r"\{\{(DOMAIN_NAME|UPSTREAM_BLOCKS|PROXY_LOCATIONS)\}\}")


def render(template: str, domain: str, upstreams: str, routes: str) -> str:
    """Substitute the three template placeholders.

    Substitution is a single pass: inserted blocks are never rescanned, and
    multi-line values are inserted whole.

    Raises
    ------
    GenerationError
        If the template lacks the upstream or routing placeholder.
    """
    for required in (UPSTREAMS_PLACEHOLDER, ROUTES_PLACEHOLDER):
        if "{{" + required + "}}" not in template:
            raise GenerationError(
                f"Template has no {{{{{required}}}}} placeholder", domain=domain
            )
    values = {
        DOMAIN_PLACEHOLDER: domain,
        UPSTREAMS_PLACEHOLDER: upstreams.rstrip("\n"),
        ROUTES_PLACEHOLDER: routes.rstrip("\n"),
    }
    return _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], template)


class ConfigGenerator:
    """Generates, stages and validates proxy artifacts.

    Parameters
    ----------
    builder:
        Builds the typed upstream / routing nodes.
    artifacts:
        Where artifacts are staged and promoted.
    pipeline:
        Validation pipeline deciding promotion or rejection.
    template_path:
        The domain template.
    """

    def __init__(
        self,
        builder: ConfigBuilder,
        artifacts: ArtifactStore,
        pipeline: ValidationPipeline,
        template_path: Path,
    ) -> None:
        self._builder = builder
        self._artifacts = artifacts
        self._pipeline = pipeline
        self._template_path = Path(template_path)

    def _template(self) -> str:
        try:
            return self._template_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise GenerationError(f"Cannot read template {self._template_path}: {exc}") from exc

    # -- text generation ---------------------------------------------------

    def generate_upstream_groups(
        self, descriptor: ServiceDescriptor, color: Color, domain: str | None = None
    ) -> str:
        return render_upstreams(self._builder.build_upstreams(descriptor, color, domain))

    def generate_routing_rules(self, descriptor: ServiceDescriptor, domain: str, color: Color) -> str:
        return render_routes(self._builder.build_routes(descriptor, domain, color))

    def generate(self, descriptor: ServiceDescriptor, domain: str, color: Color) -> str:
        """Full artifact text for (domain, color)."""
        try:
            upstreams = self.generate_upstream_groups(descriptor, color, domain)
            routes = self.generate_routing_rules(descriptor, domain, color)
        except ValueError as exc:
            raise GenerationError(
                f"Invalid configuration value for {descriptor.name}: {exc}",
                service=descriptor.name,
                domain=domain,
                color=color.value,
            ) from exc
        return render(self._template(), domain, upstreams, routes)

    def stage(self, descriptor: ServiceDescriptor, domain: str, color: Color) -> Path:
        return self._artifacts.write_staged(domain, color, self.generate(descriptor, domain, color))

    # -- ensure ----------------------------------------------------------

    def generate_and_apply(self, descriptor: ServiceDescriptor, domain: str) -> dict[Color, bool]:
        """Regenerate both colors of *domain* and validate each independently."""
        results: dict[Color, bool] = {}
        for color in (Color.BLUE, Color.GREEN):
            staged = self.stage(descriptor, domain, color)
            try:
                self._pipeline.validate_and_apply(descriptor.name, domain, color, staged)
            except ValidationRejection:
                results[color] = False
                logger.warning(
                    "%s config for %s rejected; continuing with the other color",
                    color.value, domain,
                )
            else:
                results[color] = True
        return results

    def ensure_configs(
        self, descriptor: ServiceDescriptor, domain: str | None = None
    ) -> dict[tuple[str, Color], bool]:
        """Make sure promoted artifacts exist and are current for both colors.

        Nothing is written when every promoted artifact already matches what
        the registry would generate and passes the structural check.  When
        generation fails but a sound promoted artifact exists, the existing
        artifact is kept.

        Returns
        -------
        dict[tuple[str, Color], bool]
            Whether a valid promoted artifact exists per (domain, color).
        """
        domains = (domain,) if domain is not None else descriptor.all_domains()
        results: dict[tuple[str, Color], bool] = {}
        for d in domains:
            for color in (Color.BLUE, Color.GREEN):
                results[(d, color)] = self._ensure_one(descriptor, d, color)
        return results

    def _ensure_one(self, descriptor: ServiceDescriptor, domain: str, color: Color) -> bool:
        existing = self._artifacts.read_promoted(domain, color)
        try:
            text = self.generate(descriptor, domain, color)
        except GenerationError:
            if existing is not None and check_structure(existing).passed:
                logger.warning(
                    "Generation failed for %s %s; keeping existing promoted artifact",
                    domain, color.value,
                )
                return True
            raise

        if existing is not None and existing == text and check_structure(existing).passed:
            logger.debug("Promoted %s %s config is current", domain, color.value)
            return True

        staged = self._artifacts.write_staged(domain, color, text)
        try:
            self._pipeline.validate_and_apply(descriptor.name, domain, color, staged)
        except ValidationRejection:
            return existing is not None and check_structure(existing).passed
        return True
