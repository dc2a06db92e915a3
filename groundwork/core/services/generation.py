"""
Generation - render catalog templates into the target project.

Each template becomes one file: render against the frozen fact store,
merge with whatever is on disk, then write atomically. Files are
independent, so one step's templates fan out on a bounded thread pool and
the outcomes are aggregated in catalog order once every worker is done.

Backups (``<file>.groundwork-backup``) are taken before a write when:
    - a file without preserved regions is replaced by different content
      (and backups are enabled), or
    - the file was edited outside its preserved regions since the last run
      (always; the edit is overwritten and reported as a conflict).
"""

from __future__ import annotations

import hashlib
import logging
import shutil
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path

from groundwork.core.errors import MergeError
from groundwork.core.models.manifest import OutputRecord
from groundwork.core.persistence.atomic import atomic_write_text
from groundwork.core.services.facts import FactStore
from groundwork.core.services.templating.merger import merge
from groundwork.core.services.templating.parser import Template
from groundwork.core.services.templating.regions import skeleton
from groundwork.core.services.templating.renderer import render

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".groundwork-backup"


def sha256_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def backup_path(path: Path) -> Path:
    return path.with_name(path.name + BACKUP_SUFFIX)


# ═══════════════════════════════════════════════════════════════════
#  Results
# ═══════════════════════════════════════════════════════════════════


@dataclass
class FileOutcome:
    """What happened to one generated file."""

    path: str
    template: str
    action: str = "failed"      # created, updated, merged, unchanged, failed
    preserved: list[str] = field(default_factory=list)
    appended: list[str] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    backup: str | None = None
    error: str | None = None
    record: OutputRecord | None = None

    @property
    def ok(self) -> bool:
        return self.action != "failed"

    @property
    def written(self) -> bool:
        return self.action in ("created", "updated", "merged")

    def to_dict(self) -> dict:
        d: dict = {"path": self.path, "template": self.template, "action": self.action}
        if self.preserved:
            d["preserved"] = self.preserved
        if self.appended:
            d["appended"] = self.appended
        if self.conflicts:
            d["conflicts"] = self.conflicts
        if self.warnings:
            d["warnings"] = self.warnings
        if self.backup:
            d["backup"] = self.backup
        if self.error:
            d["error"] = self.error
        return d


@dataclass
class GenerationReport:
    outcomes: list[FileOutcome] = field(default_factory=list)

    @property
    def failed(self) -> list[FileOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def records(self) -> list[OutputRecord]:
        return [o.record for o in self.outcomes if o.record is not None]

    @property
    def files_written(self) -> int:
        return sum(1 for o in self.outcomes if o.written)

    @property
    def regions_preserved(self) -> int:
        return sum(len(o.preserved) for o in self.outcomes)

    def to_dict(self) -> dict:
        return {
            "files": [o.to_dict() for o in self.outcomes],
            "files_written": self.files_written,
            "regions_preserved": self.regions_preserved,
            "failed": [o.path for o in self.failed],
        }


# ═══════════════════════════════════════════════════════════════════
#  Per-file
# ═══════════════════════════════════════════════════════════════════


def _edited_outside_regions(existing: str, previous: OutputRecord | None) -> bool:
    if previous is None or not previous.skeleton_sha256:
        return False
    try:
        return sha256_text(skeleton(existing)) != previous.skeleton_sha256
    except MergeError:
        return True


def apply_output(
    template: Template,
    facts: FactStore,
    target_root: Path,
    previous: OutputRecord | None = None,
    backup: bool = True,
) -> FileOutcome:
    """Render one template and bring its target file up to date.

    Never raises for per-file problems: render, merge and I/O errors come
    back as a ``failed`` outcome and the destination is left untouched.
    """
    rel = template.target
    dest = target_root / rel
    outcome = FileOutcome(path=rel, template=template.name)

    try:
        rendered = render(template, facts)
        outcome.warnings = list(rendered.warnings)

        existing = dest.read_text(encoding="utf-8") if dest.is_file() else None
        merged = merge(existing, rendered.content, rel)
        outcome.preserved = merged.preserved
        outcome.appended = merged.appended
        outcome.conflicts = list(merged.conflicts)

        content = merged.content
        if existing is None:
            outcome.action = "created"
        elif existing == content:
            outcome.action = "unchanged"
        else:
            outcome.action = "merged" if merged.mode == "merged" else "updated"
            edited = _edited_outside_regions(existing, previous)
            if edited:
                message = (
                    f"{rel} was edited outside its preserved regions; "
                    f"the edits were overwritten (backup: {rel}{BACKUP_SUFFIX})"
                )
                outcome.conflicts.append(message)
                logger.warning("%s", message)
            if edited or (backup and merged.mode == "overwritten"):
                saved = backup_path(dest)
                shutil.copy2(dest, saved)
                outcome.backup = str(saved.relative_to(target_root))

        if outcome.action != "unchanged":
            atomic_write_text(dest, content)

        outcome.record = OutputRecord(
            path=rel,
            template=template.name,
            sha256=sha256_text(content),
            skeleton_sha256=sha256_text(skeleton(content)),
            required_keys=list(template.required),
        )
    except MergeError as e:
        outcome.action = "failed"
        outcome.error = str(e)
        logger.warning("Cannot merge %s: %s", rel, e)
    except (OSError, UnicodeDecodeError) as e:
        outcome.action = "failed"
        outcome.error = f"{type(e).__name__}: {e}"
        logger.warning("Cannot write %s: %s", rel, e)

    logger.debug("%s -> %s", template.name, outcome.action)
    return outcome


# ═══════════════════════════════════════════════════════════════════
#  Per-step
# ═══════════════════════════════════════════════════════════════════


def generate(
    templates: list[Template],
    facts: FactStore,
    target_root: Path,
    previous: dict[str, OutputRecord] | None = None,
    backup: bool = True,
    max_workers: int = 4,
) -> GenerationReport:
    """Apply every template concurrently; outcomes come back in template order.

    Args:
        templates: Templates of one generation step (distinct targets).
        facts: Frozen fact store.
        target_root: Project being scaffolded.
        previous: Output records of the last successful write, by path.
        backup: Whether replaced region-less files are backed up.
        max_workers: Thread pool bound.
    """
    previous = previous or {}
    report = GenerationReport()
    if not templates:
        return report

    results: dict[int, FileOutcome] = {}
    workers = max(1, min(max_workers, len(templates)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="gw-gen") as pool:
        futures = {
            pool.submit(
                apply_output, t, facts, target_root, previous.get(t.target), backup,
            ): i
            for i, t in enumerate(templates)
        }
        for future in as_completed(futures):
            results[futures[future]] = future.result()

    report.outcomes = [results[i] for i in range(len(templates))]
    logger.info(
        "Generated %d files (%d written, %d failed)",
        len(report.outcomes), report.files_written, len(report.failed),
    )
    return report
