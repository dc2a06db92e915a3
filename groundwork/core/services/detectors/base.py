"""
Detector base class and bounded file-reading helpers.

A detector inspects a handful of files in the target project and returns
findings. It never writes to the target and never touches the fact store
directly: the discovery engine aggregates findings after each stage.
"""

from __future__ import annotations

import json
import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar

from groundwork.core.models.fact import Confidence, FactKind, FactValue
from groundwork.core.services.facts import FactStore

logger = logging.getLogger(__name__)

MAX_READ_BYTES = 256 * 1024
HEAD_LINES = 50


@dataclass(frozen=True)
class Finding:
    """A ``(key, value, confidence)`` triple produced by a detector."""

    key: str
    value: FactValue
    confidence: Confidence
    source: str | None = None       # overrides the detector default


class Detector:
    """Base class for detectors.

    Subclasses declare:
        name:      unique detector name (used as fact provenance prefix)
        provides:  fact key (or ``*`` pattern) -> kind
        requires:  keys that must be set before ``detect`` runs
        ceiling:   strongest confidence this detector may claim
    """

    name: ClassVar[str] = ""
    provides: ClassVar[dict[str, FactKind]] = {}
    requires: ClassVar[tuple[str, ...]] = ()
    ceiling: ClassVar[Confidence] = Confidence.HIGH

    def detect(self, root: Path, facts: FactStore) -> list[Finding]:
        raise NotImplementedError

    def source_for(self, finding: Finding) -> str:
        """Provenance recorded on the fact."""
        return finding.source or self.name

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class FileDetector(Detector):
    """Detector whose findings all come from one signature file.

    The fact source is the file name, e.g. ``package.json``.
    """

    signature: ClassVar[str] = ""

    def source_for(self, finding: Finding) -> str:
        return finding.source or self.signature or self.name


# ── Bounded readers ─────────────────────────────────────────────


def read_text(path: Path, max_bytes: int = MAX_READ_BYTES) -> str | None:
    """Read at most ``max_bytes`` of a text file; None if unreadable."""
    if not path.is_file():
        return None
    try:
        with path.open("rb") as f:
            raw = f.read(max_bytes)
    except OSError as e:
        logger.debug("Cannot read %s: %s", path, e)
        return None
    return raw.decode("utf-8", errors="replace")


def read_head(path: Path, lines: int = HEAD_LINES) -> list[str]:
    """First ``lines`` lines of a text file (empty if unreadable)."""
    text = read_text(path)
    if text is None:
        return []
    return text.splitlines()[:lines]


def load_json(path: Path) -> dict[str, Any] | None:
    text = read_text(path)
    if text is None:
        return None
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"{path.name}: expected a JSON object")
    return data


def load_toml(path: Path) -> dict[str, Any] | None:
    text = read_text(path)
    if text is None:
        return None
    return tomllib.loads(text)


def first_existing(root: Path, candidates: list[str], dirs: bool = False) -> str | None:
    """Return the first candidate path (relative) that exists under ``root``."""
    for rel in candidates:
        p = root / rel
        if (p.is_dir() if dirs else p.is_file()):
            return rel
    return None
