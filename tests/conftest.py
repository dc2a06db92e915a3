"""
Shared test fixtures and configuration.
"""

import json
import textwrap
from pathlib import Path

import pytest

from groundwork.core.models.fact import Confidence, Fact
from groundwork.core.services.facts import FactStore


def write_files(root: Path, files: dict[str, str]) -> Path:
    """Create ``files`` (relative path -> content) under ``root``."""
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content))
    return root


def make_store(**values) -> FactStore:
    """Frozen store from keyword values; ``__`` in a name becomes ``.``."""
    store = FactStore()
    for name, value in values.items():
        key = name.replace("__", ".")
        store.propose(Fact(key=key, value=value, confidence=Confidence.HIGH, source="test"))
    return store.freeze()


@pytest.fixture
def node_project(tmp_path: Path) -> Path:
    """A small Node project whose test script is ``run-tests``."""
    root = tmp_path / "node-app"
    root.mkdir()
    (root / "package.json").write_text(json.dumps({
        "name": "node-app",
        "description": "A tiny service",
        "version": "1.2.3",
        "main": "index.js",
        "scripts": {"test": "run-tests", "build": "tsc -p ."},
        "dependencies": {"express": "^4.18.0"},
    }))
    write_files(root, {
        "README.md": "# Node App\n\nServes things over HTTP.\n",
        "index.js": "const x = require('x');\n",
        # no tool probes in tests
        "groundwork.yml": "tools: []\n",
    })
    return root


@pytest.fixture
def catalog_dir(tmp_path: Path) -> Path:
    """A two-step catalog: a blocking overview and a non-blocking guide."""
    root = tmp_path / "catalog"
    write_files(root, {
        "catalog.yml": """\
            steps:
              - name: generate-overview
                blocking: true
                templates: [overview.md.tmpl]
              - name: generate-guide
                templates: [guide.md.tmpl]
        """,
        "overview.md.tmpl": """\
            ---
            target: docs/OVERVIEW.md
            required: [project.name]
            ---
            # {{ project.name }}

            Tests: {{ commands.test | none }}

            <!-- REGION:notes -->
            <!-- /REGION:notes -->
        """,
        "guide.md.tmpl": """\
            ---
            target: docs/GUIDE.md
            ---
            Language: {{ language.primary | unknown }}
        """,
    })
    return root
