"""
Manifest persistence - atomic read/write for the workflow Manifest.

The manifest is stored as JSON in .groundwork/manifest.json and rewritten
after every step transition.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from groundwork.core.models.manifest import MANIFEST_VERSION, Manifest
from groundwork.core.persistence.atomic import atomic_write_text

logger = logging.getLogger(__name__)


def load_manifest(path: Path) -> Manifest | None:
    """Load a manifest from a JSON file.

    Args:
        path: Path to the manifest JSON file.

    Returns:
        Manifest model, or None when the file is missing, corrupt, or from
        an unknown schema version (a fresh run is started in that case).
    """
    if not path.is_file():
        logger.info("No manifest at %s; starting fresh", path)
        return None

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        logger.warning("Corrupt manifest %s: %s; starting fresh", path, e)
        return None
    except OSError as e:
        logger.warning("Cannot read manifest %s: %s; starting fresh", path, e)
        return None

    if not isinstance(data, dict) or data.get("version") != MANIFEST_VERSION:
        logger.warning(
            "Manifest %s has unsupported version %r; starting fresh",
            path,
            data.get("version") if isinstance(data, dict) else None,
        )
        return None

    try:
        manifest = Manifest.model_validate(data)
    except Exception as e:
        logger.warning("Invalid manifest %s: %s; starting fresh", path, e)
        return None

    logger.debug("Loaded manifest from %s (%d steps)", path, len(manifest.steps))
    return manifest


def save_manifest(manifest: Manifest, path: Path) -> None:
    """Save a manifest to a JSON file (atomic write)."""
    data = manifest.model_dump(mode="json")
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    try:
        atomic_write_text(path, content, prefix=".manifest_")
    except OSError as e:
        logger.error("Failed to save manifest to %s: %s", path, e)
        raise
