"""
Layout detector - structural patterns in the directory tree.

Only existence checks, so every finding is medium confidence at most.
"""

from __future__ import annotations

from pathlib import Path
from typing import ClassVar

from groundwork.core.models.fact import Confidence, FactKind
from groundwork.core.services.detectors.base import Detector, Finding, first_existing
from groundwork.core.services.facts import FactStore

MEDIUM = Confidence.MEDIUM

_TEST_DIRS = ["tests", "test", "__tests__", "spec"]
_SOURCE_DIRS = ["src", "lib", "app", "pkg"]
_DOC_DIRS = ["docs", "doc"]
_ENTRY_POINTS = [
    "main.py", "app.py", "manage.py", "src/main.py", "src/app.py",
    "index.js", "index.ts", "src/index.ts", "src/index.js", "server.js",
    "main.go", "src/main.rs",
]
_CI = [
    (".github/workflows", "github-actions", True),
    (".gitlab-ci.yml", "gitlab-ci", False),
    (".circleci", "circleci", True),
    ("azure-pipelines.yml", "azure-pipelines", False),
    ("Jenkinsfile", "jenkins", False),
]
_DOCKER_FILES = ["Dockerfile", "docker-compose.yml", "docker-compose.yaml",
                 "compose.yml", "compose.yaml"]


class LayoutDetector(Detector):
    name = "layout"
    ceiling = MEDIUM
    provides: ClassVar[dict[str, FactKind]] = {
        "paths.tests": FactKind.STRING,
        "paths.source": FactKind.STRING,
        "paths.docs": FactKind.STRING,
        "paths.entry_point": FactKind.STRING,
        "ci.provider": FactKind.STRING,
        "infra.docker": FactKind.BOOL,
        "vcs.git": FactKind.BOOL,
    }

    def detect(self, root: Path, facts: FactStore) -> list[Finding]:
        found: list[Finding] = []

        for key, candidates in (
            ("paths.tests", _TEST_DIRS),
            ("paths.source", _SOURCE_DIRS),
            ("paths.docs", _DOC_DIRS),
        ):
            if rel := first_existing(root, candidates, dirs=True):
                found.append(Finding(key, f"{rel}/", MEDIUM))

        entry = first_existing(root, _ENTRY_POINTS) or self._go_cmd_entry(root)
        if entry:
            found.append(Finding("paths.entry_point", entry, MEDIUM))

        for rel, provider, is_dir in _CI:
            p = root / rel
            if p.is_dir() if is_dir else p.is_file():
                found.append(Finding("ci.provider", provider, MEDIUM))
                break

        docker = first_existing(root, _DOCKER_FILES) is not None
        found.append(Finding("infra.docker", docker, MEDIUM))
        found.append(Finding("vcs.git", (root / ".git").exists(), MEDIUM))
        return found

    @staticmethod
    def _go_cmd_entry(root: Path) -> str | None:
        cmd = root / "cmd"
        if not cmd.is_dir():
            return None
        for child in sorted(cmd.iterdir()):
            if (child / "main.go").is_file():
                return f"cmd/{child.name}/main.go"
        return None
