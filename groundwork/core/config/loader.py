"""
Configuration loader - reads groundwork.yml into a typed config model.

The file is optional: a target project without one gets the defaults.
It reads YAML, validates against Pydantic schemas, and returns typed
domain objects.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

from groundwork.core.errors import ConfigError
from groundwork.core.models.fact import FactValue, is_valid_key

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "groundwork.yml"
CONFIG_FILE_ALT = "groundwork.yaml"

DEFAULT_TOOLS = ["git", "docker", "node", "npm", "python3", "ruff", "prettier", "gofmt"]


class StepOverride(BaseModel):
    """Per-step policy override."""

    blocking: bool | None = None


class GroundworkConfig(BaseModel):
    """Settings for one target project."""

    # User-supplied facts; they enter the store first at high confidence.
    facts: dict[str, FactValue] = Field(default_factory=dict)

    templates_dir: Path | None = None
    state_dir: str = ".groundwork"

    max_workers: int = Field(default=4, ge=1, le=32)
    tool_timeout: float = Field(default=3.0, gt=0, le=60)
    tools: list[str] = Field(default_factory=lambda: list(DEFAULT_TOOLS))

    backup: bool = True
    steps: dict[str, StepOverride] = Field(default_factory=dict)

    # Where this config came from (not part of the YAML)
    source: Path | None = Field(default=None, exclude=True)

    @field_validator("facts", mode="before")
    @classmethod
    def _check_fact_keys(cls, v: object) -> object:
        if not isinstance(v, dict):
            return v
        for key, value in v.items():
            if not isinstance(key, str) or not is_valid_key(key) or "*" in key:
                raise ValueError(f"invalid fact key: {key!r}")
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                raise ValueError(f"fact {key!r}: numbers are not a fact kind, quote the value")
        return v

    @field_validator("tools")
    @classmethod
    def _check_tools(cls, v: list[str]) -> list[str]:
        for name in v:
            if not is_valid_key(name) or "." in name:
                raise ValueError(f"invalid tool name: {name!r}")
        return v

    def state_path(self, target_root: Path) -> Path:
        return target_root / self.state_dir

    def manifest_path(self, target_root: Path) -> Path:
        return self.state_path(target_root) / "manifest.json"

    def facts_path(self, target_root: Path) -> Path:
        return self.state_path(target_root) / "facts.json"

    def ledger_path(self, target_root: Path) -> Path:
        return self.state_path(target_root) / "runs.ndjson"

    def is_blocking(self, step: str, default: bool) -> bool:
        override = self.steps.get(step)
        if override is None or override.blocking is None:
            return default
        return override.blocking


def find_config_file(target_root: Path) -> Path | None:
    """Return the config file inside ``target_root``, if there is one."""
    for name in (CONFIG_FILE, CONFIG_FILE_ALT):
        candidate = target_root / name
        if candidate.is_file():
            return candidate
    return None


def load_config(target_root: Path, path: Path | None = None) -> GroundworkConfig:
    """Load and validate the configuration for a target project.

    Args:
        target_root: The project being scaffolded.
        path: Explicit config path. If None, looks for groundwork.yml in
            ``target_root``; a missing file yields the defaults.

    Returns:
        Validated GroundworkConfig. A relative ``templates_dir`` is resolved
        against the config file's directory.

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    if path is None:
        path = find_config_file(target_root)
        if path is None:
            logger.debug("No %s in %s, using defaults", CONFIG_FILE, target_root)
            return GroundworkConfig()
    elif not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = GroundworkConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    config.source = path
    if config.templates_dir is not None and not config.templates_dir.is_absolute():
        config.templates_dir = (path.parent / config.templates_dir).resolve()

    logger.info("Loaded config from %s (%d user facts)", path, len(config.facts))
    return config
