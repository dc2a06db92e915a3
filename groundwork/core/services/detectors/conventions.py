"""
Conventions detector - formatting and style conventions.

Formatter and linter config files give high-confidence answers. When
nothing is configured, a sample of source-file heads is used to guess the
quote style at low confidence. Formatter commands and debug-statement
patterns are derived from the primary language.
"""

from __future__ import annotations

import configparser
import re
from pathlib import Path
from typing import ClassVar

import yaml

from groundwork.core.models.fact import Confidence, FactKind
from groundwork.core.services.detectors.base import (
    Detector,
    Finding,
    load_json,
    load_toml,
    read_head,
    read_text,
)
from groundwork.core.services.facts import FactStore

HIGH = Confidence.HIGH
MEDIUM = Confidence.MEDIUM
LOW = Confidence.LOW

_PRETTIER_FILES = [".prettierrc", ".prettierrc.json", ".prettierrc.yaml", ".prettierrc.yml"]
_PRETTIER_JS = [".prettierrc.js", ".prettierrc.cjs", "prettier.config.js", "prettier.config.cjs"]
_ESLINT_FILES = [".eslintrc", ".eslintrc.json", ".eslintrc.js", ".eslintrc.cjs",
                 ".eslintrc.yml", "eslint.config.js", "eslint.config.mjs"]

FORMAT_COMMANDS = {
    "prettier": "npx prettier --write .",
    "ruff": "ruff format .",
    "black": "black .",
    "gofmt": "gofmt -w .",
    "rustfmt": "cargo fmt",
}

DEBUG_PATTERNS = {
    "javascript": r"console\.(log|debug)\s*\(",
    "typescript": r"console\.(log|debug)\s*\(",
    "python": r"\bprint\s*\(",
    "go": r"fmt\.Print(ln|f)?\s*\(",
    "csharp": r"Console\.Write(Line)?\s*\(",
    "java": r"System\.out\.print(ln)?\s*\(",
}

_SOURCE_SUFFIXES = {
    "javascript": ("js", "jsx"),
    "typescript": ("ts", "tsx"),
    "python": ("py",),
}
_SAMPLE_FILES = 5
# Directory levels searched below src/
_SAMPLE_DEPTH = 3
_SINGLE = re.compile(r"(?<![\w'\"])'[^'\n]*'")
_DOUBLE = re.compile(r"(?<![\w'\"])\"[^\"\n]*\"")


def _sample_patterns(language: str) -> list[str]:
    """Root files first, then src/ one level at a time down to _SAMPLE_DEPTH."""
    suffixes = _SOURCE_SUFFIXES.get(language, ())
    patterns = [f"*.{s}" for s in suffixes]
    for depth in range(_SAMPLE_DEPTH):
        patterns.extend("src/" + "*/" * depth + f"*.{s}" for s in suffixes)
    return patterns


class ConventionsDetector(Detector):
    name = "conventions"
    requires = ("language.primary",)
    provides: ClassVar[dict[str, FactKind]] = {
        "conventions.indent": FactKind.STRING,
        "conventions.quote_style": FactKind.STRING,
        "conventions.formatter": FactKind.STRING,
        "conventions.linter": FactKind.STRING,
        "conventions.debug_pattern": FactKind.STRING,
        "commands.format": FactKind.STRING,
    }

    def detect(self, root: Path, facts: FactStore) -> list[Finding]:
        language = str(facts.value("language.primary") or "")
        found: list[Finding] = []
        found.extend(self._editorconfig(root))

        if language in ("javascript", "typescript"):
            found.extend(self._node(root))
        elif language == "python":
            found.extend(self._python(root))
        elif language == "go":
            found.append(Finding("conventions.formatter", "gofmt", HIGH, "go toolchain"))
            found.append(Finding("conventions.indent", "tabs", HIGH, "go toolchain"))
            found.append(Finding("conventions.linter", "go vet", MEDIUM, "go toolchain"))
        elif language == "rust":
            found.append(Finding("conventions.formatter", "rustfmt", MEDIUM, "cargo"))
            found.append(Finding("conventions.linter", "clippy", MEDIUM, "cargo"))

        formatter = next((f.value for f in found if f.key == "conventions.formatter"), None)
        if isinstance(formatter, str) and formatter in FORMAT_COMMANDS:
            found.append(Finding("commands.format", FORMAT_COMMANDS[formatter], MEDIUM))

        if language in DEBUG_PATTERNS:
            found.append(Finding("conventions.debug_pattern", DEBUG_PATTERNS[language], MEDIUM))

        if not any(f.key == "conventions.quote_style" for f in found):
            if style := self._sample_quotes(root, language):
                found.append(Finding("conventions.quote_style", style, LOW, "source sample"))
        return found

    # ── Config files ─────────────────────────────────────────────

    def _editorconfig(self, root: Path) -> list[Finding]:
        text = read_text(root / ".editorconfig")
        if text is None:
            return []
        parser = configparser.ConfigParser(interpolation=None, strict=False)
        # .editorconfig allows a root=true line before any section
        parser.read_string("[__top__]\n" + text)
        if not parser.has_section("*"):
            return []
        section = parser["*"]
        style = section.get("indent_style", "").strip().lower()
        if style == "tab":
            return [Finding("conventions.indent", "tabs", HIGH, ".editorconfig")]
        if style == "space":
            size = section.get("indent_size", "").strip() or "4"
            return [Finding("conventions.indent", f"{size} spaces", HIGH, ".editorconfig")]
        return []

    def _node(self, root: Path) -> list[Finding]:
        found: list[Finding] = []
        prettier, source = self._prettier_config(root)
        if source:
            found.append(Finding("conventions.formatter", "prettier", HIGH, source))
            if isinstance(prettier, dict) and "singleQuote" in prettier:
                style = "single" if prettier["singleQuote"] else "double"
                found.append(Finding("conventions.quote_style", style, HIGH, source))
            elif isinstance(prettier, dict):
                # prettier's own default
                found.append(Finding("conventions.quote_style", "double", MEDIUM, source))
            if isinstance(prettier, dict) and "useTabs" in prettier:
                indent = "tabs" if prettier["useTabs"] else f"{prettier.get('tabWidth', 2)} spaces"
                found.append(Finding("conventions.indent", indent, HIGH, source))

        for name in _ESLINT_FILES:
            if (root / name).is_file():
                found.append(Finding("conventions.linter", "eslint", HIGH, name))
                break
        return found

    @staticmethod
    def _prettier_config(root: Path) -> tuple[dict | None, str | None]:
        for name in _PRETTIER_FILES:
            text = read_text(root / name)
            if text is not None:
                # YAML is a superset of the JSON form
                data = yaml.safe_load(text) if text.strip() else {}
                return (data if isinstance(data, dict) else {}), name
        for name in _PRETTIER_JS:
            if (root / name).is_file():
                return None, name
        package = load_json(root / "package.json") or {}
        if isinstance(package.get("prettier"), dict):
            return package["prettier"], "package.json"
        return None, None

    def _python(self, root: Path) -> list[Finding]:
        found: list[Finding] = []
        tool = (load_toml(root / "pyproject.toml") or {}).get("tool", {})
        ruff_toml = load_toml(root / "ruff.toml") or load_toml(root / ".ruff.toml")

        ruff = ruff_toml if ruff_toml is not None else tool.get("ruff")
        source = "ruff.toml" if ruff_toml is not None else "pyproject.toml"
        if ruff is not None:
            found.append(Finding("conventions.linter", "ruff", HIGH, source))
            quote = (ruff.get("format") or {}).get("quote-style")
            if quote in ("single", "double"):
                found.append(Finding("conventions.quote_style", quote, HIGH, source))
            if "format" in ruff:
                found.append(Finding("conventions.formatter", "ruff", HIGH, source))

        if "black" in tool:
            found.append(Finding("conventions.formatter", "black", HIGH, "pyproject.toml"))
            found.append(Finding("conventions.quote_style", "double", MEDIUM, "pyproject.toml"))
        elif ruff is not None and "format" not in ruff:
            found.append(Finding("conventions.formatter", "ruff", MEDIUM, source))

        if (root / ".flake8").is_file() and ruff is None:
            found.append(Finding("conventions.linter", "flake8", HIGH, ".flake8"))
        return found

    # ── Heuristic ────────────────────────────────────────────────

    @staticmethod
    def _sample_quotes(root: Path, language: str) -> str | None:
        files: list[Path] = []
        for pattern in _sample_patterns(language):
            for path in root.glob(pattern):
                if "node_modules" in path.parts or not path.is_file():
                    continue
                files.append(path)
                if len(files) >= _SAMPLE_FILES:
                    break
            if len(files) >= _SAMPLE_FILES:
                break

        single = double = 0
        for path in files:
            for line in read_head(path):
                if line.lstrip().startswith(("#", "//")):
                    continue
                single += len(_SINGLE.findall(line))
                double += len(_DOUBLE.findall(line))

        if single >= 2 * max(double, 1):
            return "single"
        if double >= 2 * max(single, 1):
            return "double"
        return None
