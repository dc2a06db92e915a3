"""
Renderer - evaluate a parsed template against a fact store.

Single left-to-right pass over the node tree. Only the selected branch of
each conditional is emitted; block delimiters never reach the output.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from groundwork.core.models.fact import FactValue
from groundwork.core.services.facts import FactStore
from groundwork.core.services.templating.parser import (
    Conditional,
    Node,
    Placeholder,
    Template,
    Text,
)

logger = logging.getLogger(__name__)

UNRESOLVED_PATTERN = re.compile(r"<<unresolved:([a-z0-9_.*-]+)>>")


def unresolved_marker(key: str) -> str:
    return f"<<unresolved:{key}>>"


def stringify(value: FactValue) -> str:
    """Render a fact value as text: lists comma-joined, bools lowercase."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return ", ".join(value)
    return "" if value is None else str(value)


@dataclass
class RenderResult:
    content: str
    unresolved: list[str] = field(default_factory=list)
    defaulted: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def missing_required(self) -> list[str]:
        return [w for w in self.warnings if w.startswith("required")]


def render(template: Template, facts: FactStore) -> RenderResult:
    """Render ``template`` against ``facts``.

    Absent (or null) facts use the placeholder's declared default; without
    one they render as a visible ``<<unresolved:key>>`` marker and a warning
    is recorded.
    """
    out: list[str] = []
    result = RenderResult(content="")

    def emit(nodes: list[Node]) -> None:
        for node in nodes:
            if isinstance(node, Text):
                out.append(node.text)
            elif isinstance(node, Placeholder):
                value = facts.value(node.key)
                if value is not None:
                    out.append(stringify(value))
                elif node.default is not None:
                    out.append(node.default)
                    result.defaulted.append(node.key)
                else:
                    out.append(unresolved_marker(node.key))
                    if node.key not in result.unresolved:
                        result.unresolved.append(node.key)
                        result.warnings.append(
                            f"{template.name}:{node.line}: unresolved fact '{node.key}'"
                        )
            elif isinstance(node, Conditional):
                emit(node.then if facts.truthy(node.key) else node.otherwise)

    emit(template.nodes)

    for key in template.required:
        if facts.value(key) is None:
            result.warnings.append(f"required fact '{key}' is not set ({template.name})")

    result.content = "".join(out)
    for warning in result.warnings:
        logger.warning("%s", warning)
    return result
