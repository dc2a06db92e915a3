"""
Detectors - independent units of discovery logic.

Each detector module exposes one or more ``Detector`` subclasses.
``default_detectors()`` returns the built-in catalog in registration order;
that order breaks confidence ties, so file-based detectors come first and
prose inference comes last.
"""

from __future__ import annotations

from collections.abc import Iterable

from groundwork.core.models.fact import FactKind, FactSchema, FactValue
from groundwork.core.services.detectors.base import Detector, Finding
from groundwork.core.services.detectors.conventions import ConventionsDetector
from groundwork.core.services.detectors.framework import FrameworkDetector
from groundwork.core.services.detectors.layout import LayoutDetector
from groundwork.core.services.detectors.manifests import (
    CargoDetector,
    GoModuleDetector,
    MakefileDetector,
    NodeManifestDetector,
    PythonProjectDetector,
)
from groundwork.core.services.detectors.prose import ReadmeProseDetector
from groundwork.core.services.detectors.tools import ToolAvailabilityDetector

__all__ = [
    "Detector",
    "Finding",
    "build_schema",
    "default_detectors",
]


def default_detectors(
    tools: list[str] | None = None,
    tool_timeout: float = 3.0,
) -> list[Detector]:
    """The built-in detector catalog, in registration order."""
    return [
        NodeManifestDetector(),
        PythonProjectDetector(),
        GoModuleDetector(),
        CargoDetector(),
        MakefileDetector(),
        FrameworkDetector(),
        LayoutDetector(),
        ConventionsDetector(),
        ToolAvailabilityDetector(tools or [], timeout=tool_timeout),
        ReadmeProseDetector(),
    ]


def build_schema(
    detectors: Iterable[Detector],
    user_facts: dict[str, FactValue] | None = None,
) -> FactSchema:
    """Fact schema: every key any detector may emit, plus user-supplied keys.

    Raises:
        ValueError: If two sources declare one key with different kinds.
    """
    schema = FactSchema()
    for detector in detectors:
        for pattern, kind in detector.provides.items():
            schema.declare(pattern, kind)
    for key, value in (user_facts or {}).items():
        existing = schema.kind_of(key)
        if existing is None:
            schema.declare(key, FactKind.of(value))
        elif not existing.accepts(value):
            raise ValueError(f"fact {key!r} must be a {existing.value}, got {value!r}")
    return schema
