"""
Merger - combine freshly rendered content with an existing file.

Three cases over the destination:
    1. no existing file          -> new content verbatim ("created")
    2. existing, no regions      -> new content replaces it ("overwritten")
    3. existing, with regions    -> existing region bodies are spliced into
                                    the new content ("merged")

Region boundaries are re-derived from markers on every merge, so merging
the same new content into a previous merge result is a no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from groundwork.core.errors import MergeError
from groundwork.core.services.templating.regions import (
    Region,
    RegionDocument,
    parse_regions,
    render_nodes,
)

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    content: str
    mode: str = "created"           # created, overwritten, merged
    preserved: list[str] = field(default_factory=list)
    appended: list[str] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)


def _names_within(region: Region) -> set[str]:
    return {r.name for r in region.walk()}


def merge(existing: str | None, new: str, path: str = "") -> MergeResult:
    """Merge ``new`` into ``existing``, preserving existing region content.

    Args:
        existing: Current destination content, or None if there is no file.
        new: Freshly rendered content.
        path: Destination path, used in error messages only.

    Raises:
        MergeError: If either side has malformed region markers, or the
            merge would produce duplicate regions.
    """
    new_doc = parse_regions(new, f"{path} (rendered)" if path else "rendered content")
    if existing is None:
        return MergeResult(content=new, mode="created")

    old_doc = parse_regions(existing, path)
    if not old_doc.index:
        return MergeResult(content=new, mode="overwritten")

    result = MergeResult(content="", mode="merged")
    carried: set[str] = set()
    new_names = set(new_doc.index)

    def splice(nodes: list) -> str:
        parts: list[str] = []
        for node in nodes:
            if isinstance(node, str):
                parts.append(node)
                continue
            old = old_doc.index.get(node.name)
            if old is None:
                parts.append(node.start + splice(node.children) + node.end)
                continue
            # Regions the new content places elsewhere are not carried along.
            elsewhere = frozenset(new_names - _names_within(node))
            parts.append(node.start + render_nodes(old.children, elsewhere) + node.end)
            result.preserved.append(node.name)
            carried.update(r.name for r in old.walk() if r.name not in elsewhere)
        return "".join(parts)

    content = splice(new_doc.nodes)

    placed = carried | set(result.preserved)
    orphans = _orphans(old_doc, placed)
    if orphans:
        if content and not content.endswith("\n"):
            content += "\n"
        exclude = frozenset(placed)
        for region in orphans:
            block = region.raw(exclude)
            if not block.endswith("\n"):
                block += "\n"
            content += "\n" + block
            result.appended.append(region.name)
            message = (
                f"region '{region.name}' is no longer in the template; "
                f"its content was kept at the end of {path or 'the file'}"
            )
            result.conflicts.append(message)
            logger.warning("%s", message)

    # The result must itself be a well-formed region document.
    parse_regions(content, path)
    result.content = content
    return result


def _orphans(old_doc: RegionDocument, placed: set[str]) -> list[Region]:
    """Outermost existing regions whose content did not make it into the merge."""
    orphans: list[Region] = []
    covered: set[str] = set(placed)
    for region in old_doc.walk():
        if region.name in covered:
            continue
        orphans.append(region)
        covered.update(r.name for r in region.walk())
    return orphans

