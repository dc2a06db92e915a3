"""
Template catalog - the ordered set of generation steps and their templates.

A catalog is a directory holding ``catalog.yml`` plus template files::

    steps:
      - name: generate-overview
        blocking: true
        templates: [project-overview.md.tmpl]
      - name: generate-guides
        templates: [commands.md.tmpl, conventions.md.tmpl]

Loading validates everything up front: malformed templates, keys missing
from the fact schema, unsafe or duplicate targets, and malformed region
markers are all ``TemplateError``s, so no defect surfaces mid-run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from groundwork.core.errors import MergeError, TemplateError
from groundwork.core.models.fact import FactSchema
from groundwork.core.services.templating.parser import Template, load_template
from groundwork.core.services.templating.regions import parse_regions

logger = logging.getLogger(__name__)

CATALOG_FILE = "catalog.yml"
RESERVED_STEPS = ("discover", "verify")


def builtin_catalog_dir() -> Path:
    """The catalog shipped with the package."""
    return Path(__file__).resolve().parents[3] / "templates"


class CatalogStepSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    description: str = ""
    blocking: bool = False
    templates: list[str] = Field(min_length=1)

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        if not v or not all(c.isalnum() or c in "-_" for c in v):
            raise ValueError(f"invalid step name {v!r}")
        if v in RESERVED_STEPS:
            raise ValueError(f"step name {v!r} is reserved")
        return v


class CatalogSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    steps: list[CatalogStepSpec] = Field(min_length=1)


@dataclass
class CatalogStep:
    name: str
    blocking: bool
    templates: list[Template]
    description: str = ""


@dataclass
class Catalog:
    root: Path
    steps: list[CatalogStep] = field(default_factory=list)

    def step(self, name: str) -> CatalogStep | None:
        for step in self.steps:
            if step.name == name:
                return step
        return None

    def templates(self) -> list[Template]:
        return [t for step in self.steps for t in step.templates]

    def template(self, name: str) -> Template | None:
        for t in self.templates():
            if t.name == name:
                return t
        return None


def _check_target(template: Template) -> str:
    if not template.target:
        raise TemplateError("front matter must declare a target path", template.name)
    target = PurePosixPath(template.target)
    if target.is_absolute() or ".." in target.parts or template.target.startswith("~"):
        raise TemplateError(
            f"target {template.target!r} must be a relative path inside the project",
            template.name,
        )
    return str(target)


def validate_template(template: Template, schema: FactSchema) -> None:
    """Check a template's keys and region markers.

    Raises:
        TemplateError: On unknown keys or malformed region markers.
    """
    unknown = sorted(k for k in template.keys if k not in schema)
    if unknown:
        raise TemplateError(f"unknown fact keys: {', '.join(unknown)}", template.name)
    try:
        parse_regions(template.body, template.name)
    except MergeError as e:
        raise TemplateError(f"malformed region markers: {e}", template.name) from e


def load_catalog(directory: Path, schema: FactSchema) -> Catalog:
    """Load and validate a template catalog.

    Args:
        directory: Directory containing catalog.yml and the templates.
        schema: Fact schema every template key is checked against.

    Raises:
        TemplateError: On any problem with the catalog or its templates.
    """
    index = directory / CATALOG_FILE
    if not index.is_file():
        raise TemplateError(f"no {CATALOG_FILE} in {directory}")

    try:
        data = yaml.safe_load(index.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise TemplateError(f"cannot load {index}: {e}") from e

    try:
        spec = CatalogSpec.model_validate(data or {})
    except ValidationError as e:
        raise TemplateError(f"invalid {CATALOG_FILE}: {e}") from e

    catalog = Catalog(root=directory)
    seen_steps: set[str] = set()
    targets: dict[str, str] = {}

    for step_spec in spec.steps:
        if step_spec.name in seen_steps:
            raise TemplateError(f"duplicate step '{step_spec.name}' in {CATALOG_FILE}")
        seen_steps.add(step_spec.name)

        templates: list[Template] = []
        for rel in step_spec.templates:
            path = directory / rel
            if not path.is_file():
                raise TemplateError(f"template file not found: {path}", step_spec.name)
            template = load_template(path, name=rel)
            target = _check_target(template)
            if target in targets:
                raise TemplateError(
                    f"target {target!r} is also produced by {targets[target]}", rel
                )
            targets[target] = rel
            template.target = target
            validate_template(template, schema)
            templates.append(template)

        catalog.steps.append(CatalogStep(
            name=step_spec.name,
            blocking=step_spec.blocking,
            templates=templates,
            description=step_spec.description,
        ))

    logger.info(
        "Loaded catalog %s: %d steps, %d templates",
        directory, len(catalog.steps), len(catalog.templates()),
    )
    return catalog
