"""
README prose detector - low-confidence inference from free text.

Registered last so every file-based signal outranks it.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import ClassVar

from groundwork.core.models.fact import Confidence, FactKind
from groundwork.core.services.detectors.base import Detector, Finding, read_head
from groundwork.core.services.facts import FactStore

LOW = Confidence.LOW

_READMES = ["README.md", "README.rst", "README.txt", "README", "readme.md"]
_MAX_DESCRIPTION = 300

_LANGUAGE_HINT = re.compile(
    r"\b(?:written in|built with|implemented in|powered by)\s+"
    r"(python|typescript|javascript|go|golang|rust|ruby|java|c#|kotlin)\b",
    re.IGNORECASE,
)
_LANGUAGE_NAMES = {"golang": "go", "c#": "csharp"}
_BADGE = re.compile(r"^\s*(\[!\[|!\[|<img|<p|<a |<div)")


class ReadmeProseDetector(Detector):
    name = "readme-prose"
    ceiling = LOW
    provides: ClassVar[dict[str, FactKind]] = {
        "project.name": FactKind.STRING,
        "project.description": FactKind.STRING,
        "language.primary": FactKind.STRING,
    }

    def detect(self, root: Path, facts: FactStore) -> list[Finding]:
        for name in _READMES:
            lines = read_head(root / name, 80)
            if lines:
                return self._parse(lines, name)
        return []

    def _parse(self, lines: list[str], source: str) -> list[Finding]:
        found: list[Finding] = []
        title = None
        paragraph: list[str] = []

        for i, line in enumerate(lines):
            stripped = line.strip()
            if title is None and stripped.startswith("# "):
                title = stripped[2:].strip()
                continue
            # Setext heading: "Title\n====="
            if title is None and stripped and i + 1 < len(lines) and set(lines[i + 1].strip()) == {"="}:
                title = stripped
                continue
            if not stripped:
                if paragraph:
                    break
                continue
            if set(stripped) <= {"=", "-"} or stripped.startswith("#") or _BADGE.match(stripped):
                if paragraph:
                    break
                continue
            paragraph.append(stripped)

        if title:
            found.append(Finding("project.name", title, LOW, source))
        if paragraph:
            text = " ".join(paragraph)
            if len(text) > _MAX_DESCRIPTION:
                text = text[:_MAX_DESCRIPTION].rsplit(" ", 1)[0] + "..."
            found.append(Finding("project.description", text, LOW, source))

        if m := _LANGUAGE_HINT.search("\n".join(lines)):
            lang = m.group(1).lower()
            found.append(Finding("language.primary", _LANGUAGE_NAMES.get(lang, lang), LOW, source))
        return found
