"""
Tests for the built-in detectors.

Detectors are exercised directly with a hand-built fact store; the
discovery engine's scheduling and aggregation are tested separately.
"""

import json
import subprocess
from pathlib import Path

from groundwork.core.models.fact import Confidence
from groundwork.core.services.detectors import build_schema, default_detectors, tools
from groundwork.core.services.detectors.base import Finding
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
from groundwork.core.services.facts import FactStore
from tests.conftest import make_store, write_files


def _by_key(findings) -> dict:
    """First finding per key, the one the store would keep on a tie."""
    out: dict = {}
    for f in findings:
        out.setdefault(f.key, f)
    return out


# ── Manifests ───────────────────────────────────────────────────────


class TestNodeManifest:
    def test_scripts_verbatim(self, node_project: Path):
        found = _by_key(NodeManifestDetector().detect(node_project, FactStore()))
        assert found["commands.test"].value == "run-tests"
        assert found["commands.test"].confidence is Confidence.HIGH
        assert found["commands.build"].value == "tsc -p ."
        assert found["commands.scripts"].value == ["build", "test"]
        assert found["project.name"].value == "node-app"
        assert found["paths.entry_point"].value == "index.js"

    def test_language_and_manager(self, tmp_path: Path):
        write_files(tmp_path, {
            "package.json": json.dumps({"name": "x", "devDependencies": {"typescript": "5"}}),
            "pnpm-lock.yaml": "",
        })
        found = _by_key(NodeManifestDetector().detect(tmp_path, FactStore()))
        assert found["language.primary"].value == "typescript"
        assert found["tooling.package_manager"].value == "pnpm"
        assert found["commands.install"].value == "pnpm install"

    def test_package_manager_field_wins(self, tmp_path: Path):
        write_files(tmp_path, {
            "package.json": json.dumps({"name": "x", "packageManager": "yarn@4.1.0"}),
        })
        found = _by_key(NodeManifestDetector().detect(tmp_path, FactStore()))
        assert found["tooling.package_manager"].value == "yarn"

    def test_no_manifest(self, tmp_path: Path):
        assert NodeManifestDetector().detect(tmp_path, FactStore()) == []

    def test_source_is_signature_file(self):
        finding = Finding("project.name", "x", Confidence.HIGH)
        assert NodeManifestDetector().source_for(finding) == "package.json"


class TestPythonProject:
    def test_pyproject(self, tmp_path: Path):
        write_files(tmp_path, {
            "pyproject.toml": """\
                [project]
                name = "svc"
                version = "0.3.0"
                dependencies = ["fastapi>=0.100", "pytest"]

                [project.scripts]
                svc = "svc.cli:main"

                [tool.ruff]
                line-length = 100
            """,
            "uv.lock": "",
        })
        found = _by_key(PythonProjectDetector().detect(tmp_path, FactStore()))
        assert found["language.primary"].value == "python"
        assert found["project.name"].value == "svc"
        assert found["tooling.package_manager"].value == "uv"
        assert found["commands.install"].value == "uv sync"
        assert found["commands.test"].value == "pytest"
        assert found["commands.test"].confidence is Confidence.MEDIUM
        assert found["commands.lint"].value == "ruff check ."
        assert found["paths.entry_point"].value == "svc.cli:main"
        assert found["commands.run"].value == "svc"

    def test_requirements_only(self, tmp_path: Path):
        write_files(tmp_path, {"requirements.txt": "flask\n"})
        detector = PythonProjectDetector()
        found = _by_key(detector.detect(tmp_path, FactStore()))
        assert found["commands.install"].value == "pip install -r requirements.txt"
        assert detector.source_for(found["commands.install"]) == "requirements.txt"

    def test_setup_py_name(self, tmp_path: Path):
        write_files(tmp_path, {"setup.py": "from setuptools import setup\nsetup(name='legacy')\n"})
        found = _by_key(PythonProjectDetector().detect(tmp_path, FactStore()))
        assert found["project.name"].value == "legacy"
        assert found["project.name"].confidence is Confidence.MEDIUM


class TestGoAndCargo:
    def test_go_module(self, tmp_path: Path):
        write_files(tmp_path, {"go.mod": "module github.com/acme/widget\n\ngo 1.22\n"})
        found = _by_key(GoModuleDetector().detect(tmp_path, FactStore()))
        assert found["project.name"].value == "widget"
        assert found["commands.test"].value == "go test ./..."
        assert found["commands.test"].confidence is Confidence.MEDIUM

    def test_cargo(self, tmp_path: Path):
        write_files(tmp_path, {"Cargo.toml": '[package]\nname = "crab"\nversion = "0.1.0"\n'})
        found = _by_key(CargoDetector().detect(tmp_path, FactStore()))
        assert found["project.name"].value == "crab"
        assert found["language.primary"].value == "rust"
        assert found["commands.run"].value == "cargo run"


class TestMakefile:
    def test_targets_become_commands(self, tmp_path: Path):
        write_files(tmp_path, {"Makefile": "VAR := 1\nall: build\nbuild:\n\tgo build\ncheck:\n\tgo test\n"})
        found = _by_key(MakefileDetector().detect(tmp_path, FactStore()))
        assert found["commands.build"].value == "make build"
        assert found["commands.test"].value == "make check"
        assert "commands.lint" not in found

    def test_variable_assignment_is_not_a_target(self, tmp_path: Path):
        write_files(tmp_path, {"Makefile": "test:=1\n"})
        assert MakefileDetector().detect(tmp_path, FactStore()) == []


# ── Derived ─────────────────────────────────────────────────────────


class TestFramework:
    def test_node_framework(self, node_project: Path):
        facts = make_store(language__primary="javascript")
        [finding] = FrameworkDetector().detect(node_project, facts)
        assert finding.value == "express"
        assert finding.source == "package.json"

    def test_python_framework(self, tmp_path: Path):
        write_files(tmp_path, {"requirements.txt": "Django==5.0\n"})
        [finding] = FrameworkDetector().detect(tmp_path, make_store(language__primary="python"))
        assert finding.value == "django"

    def test_unknown_language(self, tmp_path: Path):
        assert FrameworkDetector().detect(tmp_path, make_store(language__primary="cobol")) == []


class TestLayout:
    def test_structure(self, tmp_path: Path):
        for d in ("src", "tests", "docs", ".github/workflows", ".git"):
            (tmp_path / d).mkdir(parents=True)
        write_files(tmp_path, {"Dockerfile": "FROM scratch\n"})
        found = _by_key(LayoutDetector().detect(tmp_path, FactStore()))
        assert found["paths.source"].value == "src/"
        assert found["paths.tests"].value == "tests/"
        assert found["paths.docs"].value == "docs/"
        assert found["ci.provider"].value == "github-actions"
        assert found["infra.docker"].value is True
        assert found["vcs.git"].value is True
        assert LayoutDetector.ceiling is Confidence.MEDIUM

    def test_empty_tree(self, tmp_path: Path):
        found = _by_key(LayoutDetector().detect(tmp_path, FactStore()))
        assert found["infra.docker"].value is False
        assert found["vcs.git"].value is False
        assert "paths.tests" not in found

    def test_go_cmd_entry(self, tmp_path: Path):
        write_files(tmp_path, {"cmd/server/main.go": "package main\n"})
        found = _by_key(LayoutDetector().detect(tmp_path, FactStore()))
        assert found["paths.entry_point"].value == "cmd/server/main.go"


class TestConventions:
    def test_editorconfig(self, tmp_path: Path):
        write_files(tmp_path, {".editorconfig": "root = true\n\n[*]\nindent_style = space\nindent_size = 2\n"})
        found = _by_key(ConventionsDetector().detect(tmp_path, make_store(language__primary="go")))
        # .editorconfig is listed before the go toolchain default
        assert found["conventions.indent"].value == "2 spaces"

    def test_prettier_and_eslint(self, tmp_path: Path):
        write_files(tmp_path, {
            ".prettierrc": '{"singleQuote": true, "useTabs": false, "tabWidth": 4}',
            ".eslintrc.json": "{}",
        })
        found = _by_key(ConventionsDetector().detect(tmp_path, make_store(language__primary="typescript")))
        assert found["conventions.formatter"].value == "prettier"
        assert found["conventions.quote_style"].value == "single"
        assert found["conventions.indent"].value == "4 spaces"
        assert found["conventions.linter"].value == "eslint"
        assert found["commands.format"].value == "npx prettier --write ."
        assert "console" in found["conventions.debug_pattern"].value

    def test_prettier_in_package_json(self, tmp_path: Path):
        write_files(tmp_path, {"package.json": json.dumps({"prettier": {"singleQuote": False}})})
        found = _by_key(ConventionsDetector().detect(tmp_path, make_store(language__primary="javascript")))
        assert found["conventions.quote_style"].value == "double"
        assert found["conventions.formatter"].source == "package.json"

    def test_python_ruff(self, tmp_path: Path):
        write_files(tmp_path, {
            "pyproject.toml": '[tool.ruff]\nline-length = 88\n\n[tool.ruff.format]\nquote-style = "single"\n',
        })
        found = _by_key(ConventionsDetector().detect(tmp_path, make_store(language__primary="python")))
        assert found["conventions.linter"].value == "ruff"
        assert found["conventions.formatter"].value == "ruff"
        assert found["conventions.quote_style"].value == "single"
        assert found["commands.format"].value == "ruff format ."
        assert found["conventions.debug_pattern"].value == r"\bprint\s*\("

    def test_go_defaults(self, tmp_path: Path):
        found = _by_key(ConventionsDetector().detect(tmp_path, make_store(language__primary="go")))
        assert found["conventions.formatter"].value == "gofmt"
        assert found["commands.format"].value == "gofmt -w ."
        assert found["conventions.indent"].value == "tabs"

    def test_quote_sampling_is_low_confidence(self, tmp_path: Path):
        write_files(tmp_path, {"app.py": "a = 'x'\nb = 'y'\nc = 'z'\n"})
        found = _by_key(ConventionsDetector().detect(tmp_path, make_store(language__primary="python")))
        assert found["conventions.quote_style"].value == "single"
        assert found["conventions.quote_style"].confidence is Confidence.LOW

    def test_quote_sampling_stops_after_enough_files(self, tmp_path: Path, monkeypatch):
        write_files(tmp_path, {f"src/mod{i}.js": "const a = 'x'\nconst b = 'y'\n" for i in range(12)})
        pulled = []
        original_glob = Path.glob

        def counting_glob(self, pattern, **kwargs):
            for path in original_glob(self, pattern, **kwargs):
                pulled.append(path)
                yield path

        monkeypatch.setattr(Path, "glob", counting_glob)
        found = _by_key(ConventionsDetector().detect(tmp_path, make_store(language__primary="javascript")))
        assert found["conventions.quote_style"].value == "single"
        assert len(pulled) == 5

    def test_quote_sampling_depth_is_bounded(self, tmp_path: Path):
        write_files(tmp_path, {"src/a/b/c/deep.js": "const a = 'x'\nconst b = 'y'\n"})
        found = _by_key(ConventionsDetector().detect(tmp_path, make_store(language__primary="javascript")))
        assert "conventions.quote_style" not in found

        write_files(tmp_path, {"src/a/b/near.js": "const a = 'x'\nconst b = 'y'\n"})
        found = _by_key(ConventionsDetector().detect(tmp_path, make_store(language__primary="javascript")))
        assert found["conventions.quote_style"].value == "single"


class TestReadmeProse:
    def test_heading_paragraph_language(self, tmp_path: Path):
        write_files(tmp_path, {"README.md": """\
            # Widget Factory

            [![build](https://ci/badge.svg)](https://ci)

            Makes widgets on demand.
            Written in Rust for speed.

            ## Usage
        """})
        found = _by_key(ReadmeProseDetector().detect(tmp_path, FactStore()))
        assert found["project.name"].value == "Widget Factory"
        assert found["project.description"].value == "Makes widgets on demand. Written in Rust for speed."
        assert found["language.primary"].value == "rust"
        assert found["project.name"].source == "README.md"

    def test_setext_heading(self, tmp_path: Path):
        write_files(tmp_path, {"README.rst": "Gadget\n======\n\nA gadget.\n"})
        found = _by_key(ReadmeProseDetector().detect(tmp_path, FactStore()))
        assert found["project.name"].value == "Gadget"
        assert found["project.description"].value == "A gadget."

    def test_long_description_truncated(self, tmp_path: Path):
        write_files(tmp_path, {"README.md": "# X\n\n" + "word " * 200 + "\n"})
        found = _by_key(ReadmeProseDetector().detect(tmp_path, FactStore()))
        assert len(found["project.description"].value) <= 303
        assert found["project.description"].value.endswith("...")


class TestTools:
    def test_available_and_missing(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(tools, "has_cmd", lambda cmd, timeout: cmd == "git")
        found = _by_key(ToolAvailabilityDetector(["git", "nope"]).detect(tmp_path, FactStore()))
        assert found["tools.git.available"].value is True
        assert found["tools.nope.available"].value is False
        assert found["tools.git.available"].source == "PATH"

    def test_timeout_means_unavailable(self, monkeypatch):
        def slow(*args, **kwargs):
            raise subprocess.TimeoutExpired(cmd="which", timeout=0.1)
        monkeypatch.setattr(tools.subprocess, "run", slow)
        assert tools.has_cmd("git", timeout=0.1) is False


class TestCatalog:
    def test_registration_order(self):
        names = [d.name for d in default_detectors()]
        assert names[:5] == ["node-manifest", "python-project", "go-module", "cargo", "makefile"]
        assert names[-1] == "readme-prose"

    def test_schema_covers_all_detectors(self):
        schema = build_schema(default_detectors(["git"]))
        assert "commands.test" in schema
        assert "tools.git.available" in schema
        assert "conventions.debug_pattern" in schema

    def test_schema_includes_user_facts(self):
        schema = build_schema(default_detectors(), {"team.owner": "platform"})
        assert "team.owner" in schema
