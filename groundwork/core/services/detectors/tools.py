"""
Tool availability detector - which developer tools are on PATH.

Each probe runs with an explicit timeout; a probe that times out or fails
reports the tool as unavailable rather than failing discovery.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import ClassVar

from groundwork.core.models.fact import Confidence, FactKind
from groundwork.core.services.detectors.base import Detector, Finding
from groundwork.core.services.facts import FactStore

logger = logging.getLogger(__name__)


def has_cmd(cmd: str, timeout: float = 3.0) -> bool:
    """Check if a command is available on PATH."""
    try:
        result = subprocess.run(
            ["which", cmd],
            capture_output=True, timeout=timeout,
        )
        return result.returncode == 0
    except subprocess.TimeoutExpired:
        logger.warning("Probe for '%s' timed out after %.1fs; treating as unavailable", cmd, timeout)
        return False
    except OSError as e:
        logger.debug("Probe for '%s' failed: %s", cmd, e)
        return False


class ToolAvailabilityDetector(Detector):
    name = "tools"
    provides: ClassVar[dict[str, FactKind]] = {"tools.*.available": FactKind.BOOL}

    def __init__(self, tools: list[str], timeout: float = 3.0) -> None:
        self.tools = list(tools)
        self.timeout = timeout

    def detect(self, root: Path, facts: FactStore) -> list[Finding]:
        return [
            Finding(f"tools.{tool}.available", has_cmd(tool, self.timeout), Confidence.HIGH, "PATH")
            for tool in self.tools
        ]
