"""
Framework detector - runs after the primary language is known.

Looks the framework up in the dependency list of the language's own
manifest, so it never guesses across ecosystems.
"""

from __future__ import annotations

from pathlib import Path
from typing import ClassVar

from groundwork.core.models.fact import Confidence, FactKind
from groundwork.core.services.detectors.base import Detector, Finding, load_toml
from groundwork.core.services.detectors.manifests import (
    go_requirements,
    node_dependencies,
    python_dependencies,
)
from groundwork.core.services.facts import FactStore

# Ordered by specificity: meta-frameworks before the libraries they wrap.
_PYTHON = (("django", "django"), ("fastapi", "fastapi"), ("flask", "flask"),
           ("starlette", "starlette"), ("aiohttp", "aiohttp"), ("click", "click"),
           ("typer", "typer"))
_NODE = (("next", "next.js"), ("nuxt", "nuxt"), ("@angular/core", "angular"),
         ("@nestjs/core", "nestjs"), ("svelte", "svelte"), ("vue", "vue"),
         ("react", "react"), ("express", "express"), ("fastify", "fastify"))
_GO = (("github.com/gin-gonic/gin", "gin"), ("github.com/labstack/echo", "echo"),
       ("github.com/gofiber/fiber", "fiber"), ("github.com/spf13/cobra", "cobra"))
_RUST = (("actix-web", "actix-web"), ("axum", "axum"), ("rocket", "rocket"),
         ("clap", "clap"))


class FrameworkDetector(Detector):
    name = "framework"
    provides: ClassVar[dict[str, FactKind]] = {"framework.primary": FactKind.STRING}
    requires = ("language.primary",)

    def detect(self, root: Path, facts: FactStore) -> list[Finding]:
        language = facts.value("language.primary")
        if language == "python":
            deps, table, source = python_dependencies(root), _PYTHON, "pyproject.toml"
        elif language in ("javascript", "typescript"):
            deps, table, source = node_dependencies(root), _NODE, "package.json"
        elif language == "go":
            deps, table, source = {d.rsplit("/v", 1)[0] for d in go_requirements(root)}, _GO, "go.mod"
        elif language == "rust":
            cargo = load_toml(root / "Cargo.toml") or {}
            deps, table, source = set(cargo.get("dependencies", {})), _RUST, "Cargo.toml"
        else:
            return []

        for dependency, framework in table:
            if dependency in deps:
                return [Finding("framework.primary", framework, Confidence.HIGH, source)]
        return []
