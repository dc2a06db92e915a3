"""
Preserved regions - parse marker-delimited spans into a region tree.

A region starts at a line holding only ``REGION:<name>`` and ends at a line
holding only ``/REGION:<name>``, optionally wrapped in an HTML, hash,
slash or C-style comment. The marker line is kept verbatim::

    <!-- REGION:notes -->
    user-owned text
    <!-- /REGION:notes -->

Regions may nest. A name may appear once per file. Malformed markers raise
``MergeError`` instead of guessing. ``REGION:`` inside prose (a rendered fact
value, say) is ordinary text.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass, field

from groundwork.core.errors import MergeError

_NAME = r"([A-Za-z0-9][A-Za-z0-9_.-]*)"
_MARKER = re.compile(
    r"^[ \t]*(?:<!--|#|//|/\*)?[ \t]*(/?)REGION:" + _NAME + r"[ \t]*(?:-->|\*/)?[ \t]*\r?\n?\Z"
)


@dataclass
class Region:
    name: str
    start: str                      # start marker line, newline included
    end: str = ""                   # end marker line
    children: list = field(default_factory=list)   # str | Region
    line: int = 0

    @property
    def body(self) -> str:
        return render_nodes(self.children)

    def raw(self, exclude: frozenset[str] = frozenset()) -> str:
        return self.start + render_nodes(self.children, exclude) + self.end

    def walk(self) -> Iterator[Region]:
        yield self
        for child in self.children:
            if isinstance(child, Region):
                yield from child.walk()


@dataclass
class RegionDocument:
    nodes: list                     # str | Region
    index: dict[str, Region] = field(default_factory=dict)

    def render(self) -> str:
        return render_nodes(self.nodes)

    def walk(self) -> Iterator[Region]:
        for node in self.nodes:
            if isinstance(node, Region):
                yield from node.walk()

    @property
    def names(self) -> list[str]:
        return [r.name for r in self.walk()]


def render_nodes(nodes: list, exclude: frozenset[str] = frozenset()) -> str:
    """Concatenate nodes, dropping any region whose name is in ``exclude``."""
    parts = []
    for node in nodes:
        if isinstance(node, Region):
            if node.name not in exclude:
                parts.append(node.raw(exclude))
        else:
            parts.append(node)
    return "".join(parts)


def parse_regions(text: str, path: str = "") -> RegionDocument:
    """Parse ``text`` into a region document.

    Raises:
        MergeError: unmatched start or end markers, crossed nesting,
            or duplicate region names.
    """
    doc = RegionDocument(nodes=[])
    stack: list[Region] = []

    def sink() -> list:
        return stack[-1].children if stack else doc.nodes

    for lineno, line in enumerate(text.splitlines(keepends=True), start=1):
        marker = _MARKER.match(line)
        start = marker if marker and not marker.group(1) else None
        end = marker if marker and marker.group(1) else None

        if start:
            name = start.group(2)
            if name in doc.index:
                raise MergeError(
                    f"duplicate region '{name}' (first at line {doc.index[name].line})", path, lineno
                )
            region = Region(name=name, start=line, line=lineno)
            doc.index[name] = region
            sink().append(region)
            stack.append(region)
        elif end:
            name = end.group(2)
            if not stack:
                raise MergeError(f"end marker for region '{name}' without a start", path, lineno)
            if stack[-1].name != name:
                raise MergeError(
                    f"end marker for region '{name}' while '{stack[-1].name}' is open", path, lineno
                )
            stack.pop().end = line
        else:
            nodes = sink()
            if nodes and isinstance(nodes[-1], str):
                nodes[-1] += line
            else:
                nodes.append(line)

    if stack:
        region = stack[-1]
        raise MergeError(f"region '{region.name}' is never closed", path, region.line)
    return doc


def skeleton(text: str) -> str:
    """``text`` with every region body removed (markers kept)."""
    doc = parse_regions(text)

    def strip(nodes: list) -> str:
        return "".join(n if isinstance(n, str) else n.start + n.end for n in nodes)

    return strip(doc.nodes)
