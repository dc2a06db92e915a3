"""
Render use case - preview one template against discovered facts.

Nothing is written: the rendered text is returned for printing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from groundwork.core.config.loader import load_config
from groundwork.core.errors import ConfigError, TemplateError
from groundwork.core.services.templating.catalog import validate_template
from groundwork.core.services.templating.parser import load_template
from groundwork.core.services.templating.renderer import render
from groundwork.core.use_cases.detect import detectors_for, discover_project, schema_for


@dataclass
class RenderPreview:
    content: str = ""
    target: str = ""
    unresolved: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "target": self.target,
            "content": self.content,
            "unresolved": self.unresolved,
            "warnings": self.warnings,
        }


def render_preview(
    template_path: Path,
    target_root: Path,
    config_path: Path | None = None,
) -> RenderPreview:
    """Render ``template_path`` against the facts of ``target_root``."""
    preview = RenderPreview()

    try:
        config = load_config(target_root, config_path)
        detectors = detectors_for(config)
        schema = schema_for(config, detectors)
        template = load_template(template_path)
        validate_template(template, schema)
    except (ConfigError, TemplateError) as e:
        preview.error = str(e)
        return preview

    facts, _ = discover_project(target_root, config, detectors)
    rendered = render(template, facts)

    preview.content = rendered.content
    preview.target = template.target or ""
    preview.unresolved = rendered.unresolved
    preview.warnings = rendered.warnings
    return preview
