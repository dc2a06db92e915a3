"""
Fact snapshot persistence - key -> {value, confidence, source}.

Written by the discover step for audit and debugging, and read back when a
resumed run needs facts without re-running discovery.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from groundwork.core.models.fact import Fact
from groundwork.core.persistence.atomic import atomic_write_text

logger = logging.getLogger(__name__)


def save_snapshot(facts: list[Fact], path: Path) -> None:
    data = {
        fact.key: {
            "value": fact.value,
            "confidence": fact.confidence.value,
            "source": fact.source,
        }
        for fact in sorted(facts, key=lambda f: f.key)
    }
    atomic_write_text(path, json.dumps(data, indent=2, ensure_ascii=False) + "\n", prefix=".facts_")


def load_snapshot(path: Path) -> list[Fact] | None:
    """Read a snapshot back into facts; None if missing or unreadable."""
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return [
            Fact(key=key, value=entry.get("value"), confidence=entry["confidence"],
                 source=entry.get("source", ""))
            for key, entry in data.items()
        ]
    except Exception as e:
        logger.warning("Cannot load fact snapshot %s: %s", path, e)
        return None
