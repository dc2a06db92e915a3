"""
Detect use case - run discovery on a target and report the facts.

Read-only unless a snapshot path is given.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from groundwork.core.config.loader import GroundworkConfig, load_config
from groundwork.core.errors import ConfigError
from groundwork.core.models.fact import FactSchema
from groundwork.core.persistence.facts_file import save_snapshot
from groundwork.core.services.detectors import Detector, build_schema, default_detectors
from groundwork.core.services.discovery import DiscoveryReport, discover
from groundwork.core.services.facts import FactStore

logger = logging.getLogger(__name__)


def detectors_for(config: GroundworkConfig) -> list[Detector]:
    return default_detectors(config.tools, tool_timeout=config.tool_timeout)


def schema_for(config: GroundworkConfig, detectors: list[Detector]) -> FactSchema:
    """Fact schema for a project; ConfigError if user facts clash with it."""
    try:
        return build_schema(detectors, config.facts)
    except ValueError as e:
        source = config.source or "configuration"
        raise ConfigError(f"Invalid facts in {source}: {e}") from e


def discover_project(
    target_root: Path,
    config: GroundworkConfig,
    detectors: list[Detector] | None = None,
) -> tuple[FactStore, DiscoveryReport]:
    """Discovery with the project's user facts and worker bound."""
    if detectors is None:
        detectors = detectors_for(config)
    return discover(target_root, detectors, config.facts, max_workers=config.max_workers)


@dataclass
class DetectResult:
    """Result of the detect use case."""

    facts: FactStore | None = None
    discovery: DiscoveryReport | None = None
    target_root: Path | None = None
    snapshot_path: Path | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        result: dict = {}
        if self.error:
            result["error"] = self.error
            return result

        result["target_root"] = str(self.target_root)
        if self.facts is not None:
            result["facts"] = self.facts.to_dict()
        if self.discovery is not None:
            result["discovery"] = self.discovery.to_dict()
        if self.snapshot_path is not None:
            result["snapshot"] = str(self.snapshot_path)
        return result


def run_detect(
    target_root: Path,
    config_path: Path | None = None,
    snapshot: Path | None = None,
) -> DetectResult:
    """Discover facts about ``target_root``.

    Args:
        target_root: Project to inspect.
        config_path: Optional explicit groundwork.yml.
        snapshot: If given, write the fact snapshot there.

    Returns:
        DetectResult with the frozen fact store and discovery report.
    """
    result = DetectResult(target_root=target_root.resolve())
    if not target_root.is_dir():
        result.error = f"Target is not a directory: {target_root}"
        return result

    try:
        config = load_config(target_root, config_path)
        detectors = detectors_for(config)
        schema_for(config, detectors)
    except ConfigError as e:
        result.error = str(e)
        return result

    result.facts, result.discovery = discover_project(target_root, config, detectors)

    if snapshot is not None:
        try:
            save_snapshot(list(result.facts), snapshot)
        except OSError as e:
            result.error = f"Cannot write snapshot {snapshot}: {e}"
            return result
        result.snapshot_path = snapshot

    return result
