"""
Template parser - turns template text into a node tree.

Syntax::

    ---                              optional YAML front matter
    target: ai-docs/COMMANDS.md
    required: [commands.test]
    ---
    Run tests with {{ commands.test }}.
    Build: {{ commands.build | not configured }}
    {{#if framework.primary}}
    Framework: {{ framework.primary }}
    {{else}}
    No framework detected.
    {{/if}}
    {{! comments are dropped }}

Conditionals nest one level deep at most. Everything that is wrong with a
template is a ``TemplateError`` raised here, at load time.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError

from groundwork.core.errors import TemplateError
from groundwork.core.models.fact import is_valid_key

MAX_DEPTH = 2

_TAG = re.compile(r"\{\{(.*?)\}\}")
_IF = re.compile(r"^#if\s+(\S+)$")
_PLACEHOLDER = re.compile(r"^([^\s|]+)\s*(?:\|\s*(.*))?$")
_FRONT_MATTER = re.compile(r"\A---[ \t]*\n(.*?)^---[ \t]*(?:\n|\Z)", re.DOTALL | re.MULTILINE)


# ── Nodes ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class Text:
    text: str


@dataclass(frozen=True)
class Placeholder:
    key: str
    default: str | None = None
    line: int = 0


@dataclass
class Conditional:
    key: str
    then: list = field(default_factory=list)
    otherwise: list = field(default_factory=list)
    line: int = 0


Node = Text | Placeholder | Conditional


class TemplateMeta(BaseModel):
    """Front matter fields."""

    model_config = ConfigDict(extra="forbid")

    target: str = ""
    required: list[str] = []
    description: str = ""


@dataclass
class Template:
    name: str
    nodes: list[Node]
    target: str = ""
    required: list[str] = field(default_factory=list)
    description: str = ""
    body: str = ""

    @property
    def keys(self) -> set[str]:
        """Every fact key the template references."""
        found: set[str] = set(self.required)

        def walk(nodes: list[Node]) -> None:
            for node in nodes:
                if isinstance(node, Placeholder):
                    found.add(node.key)
                elif isinstance(node, Conditional):
                    found.add(node.key)
                    walk(node.then)
                    walk(node.otherwise)

        walk(self.nodes)
        return found


# ── Parsing ─────────────────────────────────────────────────────


def _split_front_matter(text: str, name: str) -> tuple[TemplateMeta, str, int]:
    m = _FRONT_MATTER.match(text)
    if not m:
        return TemplateMeta(), text, 0
    try:
        data = yaml.safe_load(m.group(1)) or {}
    except yaml.YAMLError as e:
        raise TemplateError(f"invalid front matter: {e}", name) from e
    if not isinstance(data, dict):
        raise TemplateError("front matter must be a mapping", name)
    try:
        meta = TemplateMeta.model_validate(data)
    except ValidationError as e:
        raise TemplateError(f"invalid front matter: {e}", name) from e
    return meta, text[m.end():], m.group(0).count("\n")


def _tokens(body: str) -> list[tuple[str, str, int]]:
    """Split into ("text", value, line) and ("tag", inner, line) tokens.

    A block tag (``#if``, ``else``, ``/if``) alone on its line consumes the
    whole line, so conditionals leave no blank lines behind.
    """
    tokens: list[tuple[str, str, int]] = []
    pos = 0
    for m in _TAG.finditer(body):
        inner = m.group(1).strip()
        start, end = m.span()
        if inner.startswith(("#", "/", "!")) or inner == "else":
            line_start = body.rfind("\n", 0, start) + 1
            line_end = body.find("\n", end)
            eol = len(body) if line_end == -1 else line_end
            if line_start >= pos and not body[line_start:start].strip() and not body[end:eol].strip():
                start, end = line_start, (eol if line_end == -1 else eol + 1)
        if start > pos:
            tokens.append(("text", body[pos:start], body.count("\n", 0, pos) + 1))
        tokens.append(("tag", inner, body.count("\n", 0, m.start()) + 1))
        pos = end
    if pos < len(body):
        tokens.append(("text", body[pos:], body.count("\n", 0, pos) + 1))
    return tokens


def _check_key(key: str, name: str, line: int) -> str:
    if not is_valid_key(key) or "*" in key:
        raise TemplateError(f"invalid fact key {key!r}", name, line)
    return key


def parse_template(text: str, name: str = "<template>") -> Template:
    """Parse template text into a :class:`Template`.

    Raises:
        TemplateError: On malformed front matter, unknown tags, unbalanced
            or too deeply nested conditionals, or invalid keys.
    """
    meta, body, offset = _split_front_matter(text, name)
    for key in meta.required:
        _check_key(key, name, 1)

    root: list[Node] = []
    # Each frame: (conditional, in_else)
    stack: list[tuple[Conditional, bool]] = []

    def sink() -> list[Node]:
        if not stack:
            return root
        cond, in_else = stack[-1]
        return cond.otherwise if in_else else cond.then

    for kind, value, line in _tokens(body):
        line += offset
        if kind == "text":
            sink().append(Text(value))
            continue

        if value.startswith("!"):
            continue
        if m := _IF.match(value):
            if len(stack) >= MAX_DEPTH:
                raise TemplateError(
                    "conditional blocks may nest only one level deep", name, line
                )
            cond = Conditional(key=_check_key(m.group(1), name, line), line=line)
            sink().append(cond)
            stack.append((cond, False))
        elif value == "else":
            if not stack:
                raise TemplateError("{{else}} outside a conditional block", name, line)
            cond, in_else = stack[-1]
            if in_else:
                raise TemplateError("duplicate {{else}} in conditional block", name, line)
            stack[-1] = (cond, True)
        elif value == "/if":
            if not stack:
                raise TemplateError("{{/if}} without a matching {{#if}}", name, line)
            stack.pop()
        elif value.startswith(("#", "/")):
            raise TemplateError(f"unknown block tag {{{{{value}}}}}", name, line)
        elif m := _PLACEHOLDER.match(value):
            default = m.group(2).strip() if m.group(2) is not None else None
            sink().append(Placeholder(key=_check_key(m.group(1), name, line), default=default, line=line))
        else:
            raise TemplateError(f"malformed tag {{{{{value}}}}}", name, line)

    if stack:
        cond, _ = stack[-1]
        raise TemplateError(f"unclosed {{{{#if {cond.key}}}}}", name, cond.line)

    return Template(
        name=name,
        nodes=root,
        target=meta.target,
        required=list(meta.required),
        description=meta.description,
        body=body,
    )


def load_template(path: Path, name: str | None = None) -> Template:
    """Read and parse a template file."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise TemplateError(f"cannot read template: {e}", name or path.name) from e
    return parse_template(text, name or path.name)
