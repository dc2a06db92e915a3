"""
Signature-file detectors - build manifests that name commands outright.

These run first: a command written in package.json or a Makefile is a
deterministic signal and outranks any structural or prose inference.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, ClassVar

from groundwork.core.models.fact import Confidence, FactKind
from groundwork.core.services.detectors.base import (
    FileDetector,
    Finding,
    load_json,
    load_toml,
    read_head,
    read_text,
)
from groundwork.core.services.facts import FactStore

HIGH = Confidence.HIGH
MEDIUM = Confidence.MEDIUM

_PROJECT_KEYS: dict[str, FactKind] = {
    "project.name": FactKind.STRING,
    "project.description": FactKind.STRING,
    "project.version": FactKind.STRING,
    "language.primary": FactKind.STRING,
    "tooling.package_manager": FactKind.STRING,
    "paths.entry_point": FactKind.STRING,
}

_COMMAND_KEYS: dict[str, FactKind] = {
    f"commands.{name}": FactKind.STRING
    for name in ("build", "test", "lint", "format", "run", "install")
}


def _str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _with_source(found: list[Finding], source: str) -> list[Finding]:
    return [Finding(f.key, f.value, f.confidence, source) for f in found]


# ── Node ────────────────────────────────────────────────────────


_NODE_LOCKFILES = (
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("bun.lockb", "bun"),
    ("package-lock.json", "npm"),
)

# script name -> command key, first match wins per key
_NODE_SCRIPTS = (
    ("build", "build"),
    ("test", "test"),
    ("lint", "lint"),
    ("format", "format"),
    ("fmt", "format"),
    ("start", "run"),
    ("dev", "run"),
)


def node_dependencies(root: Path) -> set[str]:
    """Names in dependencies + devDependencies of package.json."""
    data = load_json(root / "package.json") or {}
    deps: set[str] = set()
    for section in ("dependencies", "devDependencies", "peerDependencies"):
        value = data.get(section)
        if isinstance(value, dict):
            deps.update(value)
    return deps


class NodeManifestDetector(FileDetector):
    name = "node-manifest"
    signature = "package.json"
    provides: ClassVar[dict[str, FactKind]] = {
        **_PROJECT_KEYS,
        **_COMMAND_KEYS,
        "commands.scripts": FactKind.LIST,
    }

    def detect(self, root: Path, facts: FactStore) -> list[Finding]:
        data = load_json(root / self.signature)
        if data is None:
            return []

        found: list[Finding] = []
        for field in ("name", "description", "version"):
            if value := _str(data.get(field)):
                found.append(Finding(f"project.{field}", value, HIGH))

        deps = node_dependencies(root)
        typescript = (root / "tsconfig.json").is_file() or "typescript" in deps
        found.append(Finding("language.primary", "typescript" if typescript else "javascript", HIGH))

        manager, manager_conf = "npm", MEDIUM
        for lockfile, name in _NODE_LOCKFILES:
            if (root / lockfile).is_file():
                manager, manager_conf = name, HIGH
                break
        declared = _str(data.get("packageManager"))
        if declared:
            manager, manager_conf = declared.split("@", 1)[0], HIGH
        found.append(Finding("tooling.package_manager", manager, manager_conf))
        found.append(Finding("commands.install", f"{manager} install", manager_conf))

        scripts = data.get("scripts")
        if isinstance(scripts, dict):
            seen: set[str] = set()
            for script, key in _NODE_SCRIPTS:
                body = _str(scripts.get(script))
                if body and key not in seen:
                    seen.add(key)
                    found.append(Finding(f"commands.{key}", body, HIGH))
            found.append(Finding("commands.scripts", sorted(str(s) for s in scripts), HIGH))

        if main := _str(data.get("main")):
            found.append(Finding("paths.entry_point", main, HIGH))
        return found


# ── Python ──────────────────────────────────────────────────────


_REQ_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")


def _requirement_name(spec: str) -> str | None:
    m = _REQ_NAME.match(spec)
    return m.group(1).lower().replace("_", "-") if m else None


def python_dependencies(root: Path) -> set[str]:
    """Normalized distribution names from pyproject.toml and requirements.txt."""
    deps: set[str] = set()
    data = load_toml(root / "pyproject.toml") or {}
    project = data.get("project", {})
    specs: list[str] = list(project.get("dependencies", []) or [])
    for extra in (project.get("optional-dependencies") or {}).values():
        specs.extend(extra or [])
    poetry = data.get("tool", {}).get("poetry", {})
    for section in ("dependencies", "dev-dependencies"):
        deps.update(k.lower() for k in (poetry.get(section) or {}) if k.lower() != "python")

    for line in read_head(root / "requirements.txt", 500):
        line = line.strip()
        if line and not line.startswith(("#", "-")):
            specs.append(line)

    for spec in specs:
        if isinstance(spec, str) and (name := _requirement_name(spec)):
            deps.add(name)
    return deps


class PythonProjectDetector(FileDetector):
    name = "python-project"
    signature = "pyproject.toml"
    provides: ClassVar[dict[str, FactKind]] = {**_PROJECT_KEYS, **_COMMAND_KEYS}

    def detect(self, root: Path, facts: FactStore) -> list[Finding]:
        data = load_toml(root / "pyproject.toml")
        if data is not None:
            return self._from_pyproject(root, data)
        if (root / "setup.py").is_file():
            return _with_source(self._from_setup_py(root), "setup.py")
        if (root / "requirements.txt").is_file():
            return _with_source([
                Finding("language.primary", "python", HIGH),
                Finding("tooling.package_manager", "pip", HIGH),
                Finding("commands.install", "pip install -r requirements.txt", HIGH),
            ], "requirements.txt")
        return []

    def _from_pyproject(self, root: Path, data: dict[str, Any]) -> list[Finding]:
        tool = data.get("tool", {})
        project = data.get("project") or tool.get("poetry") or {}

        found = [Finding("language.primary", "python", HIGH)]
        for field in ("name", "description", "version"):
            if value := _str(project.get(field)):
                found.append(Finding(f"project.{field}", value, HIGH))

        if "poetry" in tool or (root / "poetry.lock").is_file():
            manager, install = "poetry", "poetry install"
        elif (root / "uv.lock").is_file():
            manager, install = "uv", "uv sync"
        elif "pdm" in tool:
            manager, install = "pdm", "pdm install"
        else:
            manager, install = "pip", "pip install -e ."
        found.append(Finding("tooling.package_manager", manager, HIGH))
        found.append(Finding("commands.install", install, MEDIUM))

        deps = python_dependencies(root)
        if "pytest" in tool or "pytest" in deps:
            found.append(Finding("commands.test", "pytest", MEDIUM))
        if "ruff" in tool or "ruff" in deps:
            found.append(Finding("commands.lint", "ruff check .", MEDIUM))
        elif "flake8" in deps:
            found.append(Finding("commands.lint", "flake8", MEDIUM))

        scripts = project.get("scripts")
        if isinstance(scripts, dict) and scripts:
            name, target = next(iter(scripts.items()))
            if _str(target):
                found.append(Finding("paths.entry_point", str(target), HIGH))
                found.append(Finding("commands.run", str(name), MEDIUM))
        return found

    def _from_setup_py(self, root: Path) -> list[Finding]:
        found = [
            Finding("language.primary", "python", HIGH),
            Finding("tooling.package_manager", "pip", HIGH),
            Finding("commands.install", "pip install -e .", MEDIUM),
        ]
        text = read_text(root / "setup.py") or ""
        m = re.search(r"""\bname\s*=\s*["']([^"']+)["']""", text)
        if m:
            found.append(Finding("project.name", m.group(1), MEDIUM))
        return found


# ── Go ──────────────────────────────────────────────────────────


def go_requirements(root: Path) -> set[str]:
    deps: set[str] = set()
    for line in read_head(root / "go.mod", 300):
        line = line.strip()
        if line.startswith("require "):
            line = line[len("require "):].strip()
        parts = line.split()
        if len(parts) >= 2 and "/" in parts[0] and parts[1].startswith("v"):
            deps.add(parts[0])
    return deps


class GoModuleDetector(FileDetector):
    name = "go-module"
    signature = "go.mod"
    provides: ClassVar[dict[str, FactKind]] = {
        "project.name": FactKind.STRING,
        "language.primary": FactKind.STRING,
        "tooling.package_manager": FactKind.STRING,
        **_COMMAND_KEYS,
    }

    def detect(self, root: Path, facts: FactStore) -> list[Finding]:
        lines = read_head(root / self.signature)
        if not lines:
            return []
        found = [
            Finding("language.primary", "go", HIGH),
            Finding("tooling.package_manager", "go modules", HIGH),
            Finding("commands.build", "go build ./...", MEDIUM),
            Finding("commands.test", "go test ./...", MEDIUM),
            Finding("commands.lint", "go vet ./...", MEDIUM),
            Finding("commands.install", "go mod download", MEDIUM),
        ]
        for line in lines:
            if line.startswith("module "):
                module = line.split(None, 1)[1].strip()
                found.append(Finding("project.name", module.rstrip("/").rsplit("/", 1)[-1], HIGH))
                break
        return found


# ── Rust ────────────────────────────────────────────────────────


class CargoDetector(FileDetector):
    name = "cargo"
    signature = "Cargo.toml"
    provides: ClassVar[dict[str, FactKind]] = {
        "project.name": FactKind.STRING,
        "project.description": FactKind.STRING,
        "project.version": FactKind.STRING,
        "language.primary": FactKind.STRING,
        "tooling.package_manager": FactKind.STRING,
        **_COMMAND_KEYS,
    }

    def detect(self, root: Path, facts: FactStore) -> list[Finding]:
        data = load_toml(root / self.signature)
        if data is None:
            return []
        found = [
            Finding("language.primary", "rust", HIGH),
            Finding("tooling.package_manager", "cargo", HIGH),
            Finding("commands.build", "cargo build", MEDIUM),
            Finding("commands.test", "cargo test", MEDIUM),
            Finding("commands.lint", "cargo clippy", MEDIUM),
            Finding("commands.run", "cargo run", MEDIUM),
        ]
        package = data.get("package", {})
        for field in ("name", "description", "version"):
            if value := _str(package.get(field)):
                found.append(Finding(f"project.{field}", value, HIGH))
        return found


# ── Make ────────────────────────────────────────────────────────


_MAKE_TARGET = re.compile(r"^([A-Za-z0-9][A-Za-z0-9_.-]*)\s*:(?!=)")

_MAKE_COMMANDS = (
    ("build", "build"),
    ("all", "build"),
    ("test", "test"),
    ("check", "test"),
    ("lint", "lint"),
    ("format", "format"),
    ("fmt", "format"),
    ("run", "run"),
    ("serve", "run"),
    ("install", "install"),
)


class MakefileDetector(FileDetector):
    name = "makefile"
    signature = "Makefile"
    provides: ClassVar[dict[str, FactKind]] = dict(_COMMAND_KEYS)

    def detect(self, root: Path, facts: FactStore) -> list[Finding]:
        targets: set[str] = set()
        for line in read_head(root / self.signature, 400):
            if m := _MAKE_TARGET.match(line):
                targets.add(m.group(1))
        found: list[Finding] = []
        seen: set[str] = set()
        for target, key in _MAKE_COMMANDS:
            if target in targets and key not in seen:
                seen.add(key)
                found.append(Finding(f"commands.{key}", f"make {target}", HIGH))
        return found
